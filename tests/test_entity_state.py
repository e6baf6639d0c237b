import asyncio
import os
import sys
import threading
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
for path in (SRC, ROOT):
    if path not in sys.path:
        sys.path.insert(0, path)

from app.entity_service import build_services
from app.entity_state import CancelToken, EntityState
from app.errors import EntityInUseError, EntityValidationError
from app.stores import MemoryBlobStore, MemoryTableStore


class GatedService:
    """Blocks list calls searching for "slow" until the gate opens."""

    name = "faqs"

    def __init__(self) -> None:
        self.gate = threading.Event()
        self.started = threading.Event()
        self.calls = []

    def list_page(self, filters):
        self.calls.append(dict(filters))
        if filters.get("search") == "slow":
            self.started.set()
            self.gate.wait(5)
            return [{"id": 1, "question": "stale"}], 1
        return [{"id": 2, "question": "fresh"}], 1


async def _wait_for(event: threading.Event) -> None:
    for _ in range(500):
        if event.is_set():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("event never set")


class TestEntityState(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.tables = MemoryTableStore()
        self.services = build_services(self.tables, MemoryBlobStore())
        self.faqs = self.services["faqs"]
        for idx in range(3):
            self.faqs.create({"question": {"id": f"Tanya {idx}"}, "answer": {"id": "Jawab"}})

    async def test_context_manager_loads_and_closes(self) -> None:
        async with EntityState(self.faqs) as state:
            self.assertEqual(len(state.items), 3)
            self.assertEqual(state.total, 3)
            self.assertFalse(state.loading)
            self.assertIsNone(state.error)
        self.assertTrue(state.closed)

    async def test_same_filters_by_value_do_not_refetch(self) -> None:
        service = GatedService()
        state = EntityState(service, {"search": "x", "page": 1})
        await state.load()
        self.assertFalse(await state.set_filters({"page": 1, "search": "x", "sort": None}))
        self.assertEqual(len(service.calls), 1)
        self.assertTrue(await state.set_filters({"page": 2, "search": "x"}))
        self.assertEqual(len(service.calls), 2)
        self.assertTrue(await state.update_filters(page=3))
        self.assertEqual(service.calls[-1], {"page": 3, "search": "x"})

    async def test_superseded_load_is_discarded(self) -> None:
        service = GatedService()
        state = EntityState(service, {"search": "slow"})
        first = asyncio.create_task(state.load())
        await _wait_for(service.started)
        state.filters = {"search": "fast"}
        await state.load()
        self.assertEqual(state.items, [{"id": 2, "question": "fresh"}])
        service.gate.set()
        await first
        self.assertEqual(state.items, [{"id": 2, "question": "fresh"}])
        self.assertFalse(state.loading)

    async def test_close_drops_late_results(self) -> None:
        service = GatedService()
        state = EntityState(service, {"search": "slow"})
        pending = asyncio.create_task(state.load())
        await _wait_for(service.started)
        state.close()
        service.gate.set()
        await pending
        self.assertEqual(state.items, [])
        self.assertFalse(state.loading)
        with self.assertRaises(RuntimeError):
            await state.load()

    async def test_load_error_is_kept_in_state(self) -> None:
        state = EntityState(self.faqs, {"sort": "secret"})
        items = await state.load()
        self.assertEqual(items, [])
        self.assertIsInstance(state.error, EntityValidationError)
        self.assertIn("Cannot sort", state.error_message)
        self.assertFalse(state.loading)

    async def test_create_update_delete_patch_local_list(self) -> None:
        async with EntityState(self.faqs) as state:
            created = await state.create({"question": {"id": "Baru"}, "answer": {"id": "Ya"}})
            self.assertEqual(state.items[0]["id"], created["id"])
            self.assertEqual(state.total, 4)

            await state.update(created["id"], {"question": {"en": "New"}})
            self.assertEqual(state.items[0]["question"], {"id": "Baru", "en": "New"})

            await state.delete(created["id"])
            self.assertNotIn(created["id"], [item["id"] for item in state.items])
            self.assertEqual(state.total, 3)

    async def test_failed_delete_reraises_and_keeps_items(self) -> None:
        skills = self.services["tech-stack-skills"]
        skill = skills.create({"title": {"id": "Frontend"}})
        self.services["tech-stacks"].create({"title": {"id": "React"}, "tech_stack_skill_id": skill["id"]})
        async with EntityState(skills) as state:
            with self.assertRaises(EntityInUseError):
                await state.delete(skill["id"])
            self.assertEqual([item["id"] for item in state.items], [skill["id"]])
            self.assertEqual(state.error_message, "Cannot delete: This skill is being used by tech stacks")


class TestCancelToken(unittest.TestCase):
    def test_cancel(self) -> None:
        token = CancelToken()
        self.assertFalse(token.cancelled)
        token.cancel()
        self.assertTrue(token.cancelled)


if __name__ == "__main__":
    unittest.main()
