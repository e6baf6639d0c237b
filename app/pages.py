"""Admin page routes and the public analytics ingestion endpoint."""

from __future__ import annotations

import functools
import json
import logging
import os
from typing import Any

import anyio
from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse
from starlette.datastructures import UploadFile as StarletteUploadFile

from folio.pagination import DEFAULT_LIMIT, build_pagination, normalize_page, total_pages
from folio.table import RowAction, build_table

from app.entity_service import EntityService, SingletonService
from app.entity_state import EntityState
from app.errors import EntityError, EntityNotFoundError, EntityValidationError
from app.forms import LocalizedForm
from app.responses import entity_error_response, error_response, ok_response
from app.storage import UploadedFile
from app.table_render import HtmlTableRenderer

logger = logging.getLogger("folio.pages")

ADMIN_PREFIX = "/" + os.getenv("FOLIO_ADMIN_PREFIX", "admin").strip("/")
ROW_ACTIONS = (
    RowAction("view", "View", icon="eye"),
    RowAction("edit", "Edit", icon="pencil"),
    RowAction("delete", "Delete", icon="trash", variant="danger"),
)
_RESERVED_PARAMS = {"format", "lang"}

router = APIRouter(prefix=ADMIN_PREFIX)
api_router = APIRouter()
_html_renderer = HtmlTableRenderer()


async def _run(fn, *args, **kwargs) -> Any:
    return await anyio.to_thread.run_sync(functools.partial(fn, *args, **kwargs))


def _entity_service(request: Request, name: str) -> EntityService:
    service = request.app.state.services.get(name)
    if not isinstance(service, EntityService):
        raise EntityNotFoundError(f"Unknown entity {name}", path="entity")
    return service


def _singleton_service(request: Request, name: str) -> SingletonService:
    service = request.app.state.services.get(name)
    if not isinstance(service, SingletonService):
        raise EntityNotFoundError(f"Unknown settings {name}", path="entity")
    return service


def _present(service, item: dict | None) -> dict | None:
    if item is None:
        return None
    out = dict(item)
    if service.config.assets:
        out["asset_urls"] = {a.name: service.image_url(item.get(a.name)) for a in service.config.assets}
    return out


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise EntityError("Body must be valid JSON", code="INVALID_JSON", detail={"error": str(exc)})


async def _read_submission(request: Request) -> tuple[dict, dict[str, UploadedFile]]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        body = await _json_body(request)
        if not isinstance(body, dict):
            raise EntityError("Body must be a JSON object", code="INVALID_BODY")
        return body, {}
    form = await request.form()
    data: dict = {}
    files: dict[str, UploadedFile] = {}
    for key, value in form.multi_items():
        if isinstance(value, StarletteUploadFile):
            raw = await value.read()
            if not value.filename and not raw:
                continue
            files[key] = UploadedFile(
                filename=value.filename or "",
                content_type=value.content_type or "application/octet-stream",
                data=raw,
            )
        elif key == "data":
            try:
                parsed = json.loads(value or "{}")
            except json.JSONDecodeError as exc:
                raise EntityError("data must be valid JSON", code="INVALID_JSON", path="data", detail={"error": str(exc)})
            if not isinstance(parsed, dict):
                raise EntityError("data must be a JSON object", code="INVALID_JSON", path="data")
            data.update(parsed)
        else:
            data[key] = value
    return data, files


def _validation_failed(form: LocalizedForm):
    return error_response(
        "VALIDATION_FAILED",
        "Please fix the highlighted fields",
        path=next(iter(form.errors), None),
        detail={"fields": form.errors, "form": form.to_dict()},
        status=422,
    )


def _day_bounds(start: str | None, end: str | None) -> tuple[str | None, str | None]:
    if start and len(start) == 10:
        start = f"{start}T00:00:00.000000Z"
    if end and len(end) == 10:
        end = f"{end}T23:59:59.999999Z"
    return start, end


# Analytics dashboard


@router.get("/analytics")
async def analytics_dashboard(request: Request, start: str | None = None, end: str | None = None, group_by: str = "day"):
    analytics = request.app.state.analytics
    start, end = _day_bounds(start, end)
    try:
        stats = await _run(analytics.stats, start, end, group_by)
    except ValueError as exc:
        return error_response("VALIDATION_FAILED", str(exc), path="group_by", status=422)
    summary = await _run(analytics.summary, start, end)
    top_pages = await _run(analytics.top_pages, start, end)
    sources = await _run(analytics.traffic_sources, start, end)
    return ok_response({"summary": summary, "stats": stats, "top_pages": top_pages, "traffic_sources": sources})


@router.get("/analytics/events")
async def analytics_events(request: Request, event_type: str | None = None, start: str | None = None, end: str | None = None):
    start, end = _day_bounds(start, end)
    stats = await _run(request.app.state.analytics.event_stats, event_type, start, end)
    return ok_response({"event_stats": stats})


@router.get("/analytics/compare")
async def analytics_compare(
    request: Request,
    current_start: str,
    current_end: str,
    previous_start: str | None = None,
    previous_end: str | None = None,
):
    current_start, current_end = _day_bounds(current_start, current_end)
    previous_start, previous_end = _day_bounds(previous_start, previous_end)
    try:
        result = await _run(request.app.state.analytics.compare_periods, current_start, current_end, previous_start, previous_end)
    except ValueError as exc:
        return error_response("VALIDATION_FAILED", str(exc), status=422)
    return ok_response({"comparison": result})


# Singleton settings


@router.get("/settings/{name}")
async def get_settings(request: Request, name: str):
    service = _singleton_service(request, name)
    item = await _run(service.get)
    form = LocalizedForm(service.config, item or {})
    return ok_response({"item": _present(service, item), "form": form.to_dict()})


@router.post("/settings/{name}")
async def save_settings(request: Request, name: str):
    service = _singleton_service(request, name)
    data, files = await _read_submission(request)
    existing = await _run(service.get)
    form = LocalizedForm(service.config, existing or {})
    form.set_many(data)
    if form.validate():
        return _validation_failed(form)
    payload = form.payload(only=data.keys()) if existing else form.payload()
    try:
        item = await _run(service.save, payload, files)
    except EntityError as exc:
        return entity_error_response(exc, {"form": form.to_dict()})
    return ok_response({"item": _present(service, item)})


# Entities


@router.get("/{entity}")
async def list_entities(request: Request, entity: str):
    service = _entity_service(request, entity)
    params = dict(request.query_params)
    fmt = params.pop("format", "json")
    lang = params.pop("lang", None)
    filters = {k: v for k, v in params.items() if k not in _RESERVED_PARAMS}
    filters.setdefault("limit", DEFAULT_LIMIT)
    filters["page"] = normalize_page(filters.get("page"))
    async with EntityState(service, filters) as state:
        if state.error is not None:
            raise state.error
        items, total = state.items, state.total
    normalized = service.normalize_filters(filters)
    page_count = total_pages(total, normalized["limit"])
    pagination = build_pagination(normalized["page"], page_count)
    sort = {"sort": normalized["sort"], "order": normalized.get("order", "desc")} if normalized.get("sort") else None
    model = build_table(items, list(service.config.table_columns()), ROW_ACTIONS, sort=sort, lang=lang)
    if fmt == "html":
        return HTMLResponse(_html_renderer.render(model, pagination))
    return ok_response(
        {
            "entity": service.name,
            "label": service.config.label,
            "items": [_present(service, item) for item in items],
            "total": total,
            "page": normalized["page"],
            "limit": normalized["limit"],
            "total_pages": page_count,
            "filters": normalized,
            "table": model.to_dict(),
            "pagination": pagination,
        }
    )


@router.get("/{entity}/new")
async def new_entity_form(request: Request, entity: str, lang: str | None = None):
    service = _entity_service(request, entity)
    form = LocalizedForm(service.config, active=lang)
    return ok_response({"form": form.to_dict()})


@router.get("/{entity}/{row_id}/edit")
async def edit_entity_form(request: Request, entity: str, row_id: int, lang: str | None = None):
    service = _entity_service(request, entity)
    item = await _run(service.get, row_id)
    if item is None:
        return error_response("ENTITY_NOT_FOUND", f"{service.config.label} {row_id} not found", path="id", status=404)
    form = LocalizedForm(service.config, item, active=lang)
    return ok_response({"item": _present(service, item), "form": form.to_dict()})


@router.get("/{entity}/{row_id}/links/{link}")
async def get_entity_links(request: Request, entity: str, row_id: int, link: str):
    service = _entity_service(request, entity)
    ids = await _run(service.get_links, row_id, link)
    return ok_response({"ids": ids})


@router.put("/{entity}/{row_id}/links/{link}")
async def set_entity_links(request: Request, entity: str, row_id: int, link: str):
    service = _entity_service(request, entity)
    body = await _json_body(request)
    ids = body.get("ids") if isinstance(body, dict) else None
    if not isinstance(ids, list):
        return error_response("VALIDATION_FAILED", "ids must be a list", path="ids", status=422)
    saved = await _run(service.set_links, row_id, link, ids)
    return ok_response({"ids": saved})


@router.delete("/{entity}/{row_id}/files/{field}")
async def remove_entity_file(request: Request, entity: str, row_id: int, field: str):
    service = _entity_service(request, entity)
    item = await _run(service.remove_asset, row_id, field)
    return ok_response({"item": _present(service, item)})


@router.get("/{entity}/{row_id}")
async def get_entity(request: Request, entity: str, row_id: int):
    service = _entity_service(request, entity)
    item = await _run(service.get, row_id)
    if item is None:
        return error_response("ENTITY_NOT_FOUND", f"{service.config.label} {row_id} not found", path="id", status=404)
    return ok_response({"item": _present(service, item)})


@router.post("/{entity}")
async def create_entity(request: Request, entity: str):
    service = _entity_service(request, entity)
    data, files = await _read_submission(request)
    form = LocalizedForm(service.config)
    form.set_many(data)
    if form.validate():
        return _validation_failed(form)
    try:
        item = await _run(service.create, form.payload(), files)
    except EntityError as exc:
        return entity_error_response(exc, {"form": form.to_dict()})
    return ok_response({"item": _present(service, item)}, status=201)


@router.post("/{entity}/{row_id}")
async def update_entity(request: Request, entity: str, row_id: int):
    service = _entity_service(request, entity)
    data, files = await _read_submission(request)
    current = await _run(service.get, row_id)
    if current is None:
        return error_response("ENTITY_NOT_FOUND", f"{service.config.label} {row_id} not found", path="id", status=404)
    form = LocalizedForm(service.config, current)
    form.set_many(data)
    if form.validate():
        return _validation_failed(form)
    try:
        item = await _run(service.update, row_id, form.payload(only=data.keys()), files)
    except EntityError as exc:
        return entity_error_response(exc, {"form": form.to_dict()})
    return ok_response({"item": _present(service, item)})


def _parse_ids(values: list[str]) -> list[int]:
    ids: list[int] = []
    for value in values:
        for part in value.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                ids.append(int(part))
            except ValueError:
                raise EntityValidationError(f"Invalid id {part}", path="ids")
    return ids


@router.delete("/{entity}")
async def delete_entities(request: Request, entity: str, confirm: bool = False):
    service = _entity_service(request, entity)
    ids = _parse_ids(request.query_params.getlist("ids"))
    if not ids:
        return error_response("VALIDATION_FAILED", "ids is required", path="ids", status=422)
    if not confirm:
        return error_response(
            "CONFIRM_REQUIRED",
            f"Delete {len(ids)} {service.config.label.lower()}? This cannot be undone.",
            path="confirm",
            status=409,
        )
    deleted = await _run(service.delete_many, ids)
    logger.info("entity_delete_many_confirmed entity=%s ids=%s", entity, ids)
    return ok_response({"deleted": deleted, "ids": ids})


@router.delete("/{entity}/{row_id}")
async def delete_entity(request: Request, entity: str, row_id: int, confirm: bool = False):
    service = _entity_service(request, entity)
    if not confirm:
        return error_response(
            "CONFIRM_REQUIRED",
            f"Delete {service.config.label} {row_id}? This cannot be undone.",
            path="confirm",
            status=409,
        )
    await _run(service.delete, row_id)
    logger.info("entity_delete_confirmed entity=%s id=%s", entity, row_id)
    return ok_response({"deleted": row_id})


# Public ingestion


@api_router.post("/api/analytics")
async def ingest_analytics(request: Request):
    try:
        body = await request.json()
    except ValueError:
        return error_response("INVALID_JSON", "Body must be valid JSON", status=400)
    if not isinstance(body, dict):
        return error_response("INVALID_JSON", "Body must be a JSON object", status=400)
    analytics = request.app.state.analytics
    visitor_id = body.get("visitorId")
    if body.get("pageUrl"):
        forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
        visitor = await _run(
            analytics.record_page_view,
            body["pageUrl"],
            session_id=body.get("sessionId"),
            user_agent=body.get("userAgent") or request.headers.get("user-agent"),
            referer=body.get("referer") or request.headers.get("referer"),
            ip_info=body.get("ipInfo") if isinstance(body.get("ipInfo"), dict) else None,
            ip_address=forwarded or (request.client.host if request.client else None),
        )
        return ok_response({"visitor": visitor})
    if visitor_id is not None and body.get("duration") is not None:
        try:
            updated = await _run(analytics.update_duration, visitor_id, body["duration"])
        except (TypeError, ValueError):
            return error_response("VALIDATION_FAILED", "duration must be a number", path="duration", status=400)
        return ok_response({"updated": updated})
    if visitor_id is not None and body.get("eventType"):
        event = await _run(analytics.track_event, visitor_id, body["eventType"], body.get("eventData"))
        return ok_response({"event": event})
    return error_response("MISSING_FIELDS", "Missing required fields", status=400)
