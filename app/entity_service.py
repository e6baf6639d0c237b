"""Generic entity access: queries, asset uploads and delete guards for every content table."""

from __future__ import annotations

import logging
import re
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping

from folio.localized import coerce_localized, languages, merge_localized
from folio.pagination import page_offset

from app.entities import ICON_CLASS_PREFIXES, AssetField, EntityConfig, list_configs
from app.errors import EntityError, EntityInUseError, EntityNotFoundError, EntityValidationError, StorageError
from app.storage import UploadedFile, validate_upload

logger = logging.getLogger("folio.entities")

_ICON_CLASS_RE = re.compile("^(" + "|".join(re.escape(p) for p in ICON_CLASS_PREFIXES) + ")")
_EXTERNAL_RE = re.compile(r"^https?://", re.IGNORECASE)
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
_TS_LOCK = threading.Lock()
_LAST_TS: list[datetime] = []
MAX_LIMIT = 100


def is_icon_class(value: Any) -> bool:
    return isinstance(value, str) and "/" not in value and bool(_ICON_CLASS_RE.match(value))


def is_external_url(value: Any) -> bool:
    return isinstance(value, str) and bool(_EXTERNAL_RE.match(value))


def _parse_ts(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _now(after: Any = None) -> str:
    """Current UTC timestamp, strictly later than any earlier call and than ``after``."""
    with _TS_LOCK:
        current = datetime.now(timezone.utc)
        floors = list(_LAST_TS)
        previous = _parse_ts(after)
        if previous is not None:
            floors.append(previous)
        for floor in floors:
            if current <= floor:
                current = floor + timedelta(microseconds=1)
        _LAST_TS[:] = [current]
    return current.strftime(_TS_FORMAT)


def _coerce_filter_value(value: Any) -> Any:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        if lowered.lstrip("-").isdigit():
            return int(lowered)
    return value


class EntityService:
    def __init__(self, config: EntityConfig, table_store, blob_store, local_store=None) -> None:
        self.config = config
        self.store = table_store
        self.blobs = blob_store
        self.local = local_store

    @property
    def name(self) -> str:
        return self.config.name

    def _call(self, op: str, fn: Callable[[], Any], **context) -> Any:
        try:
            return fn()
        except StorageError as exc:
            logger.error("entity_op_failed entity=%s op=%s error=%s %s", self.name, op, exc, context)
            raise
        except EntityError as exc:
            logger.info("entity_op_rejected entity=%s op=%s code=%s message=%s %s", self.name, op, exc.code, exc.message, context)
            raise
        except Exception as exc:
            logger.exception("entity_op_failed entity=%s op=%s error=%s %s", self.name, op, exc, context)
            raise

    def _asset_store(self, asset: AssetField):
        if asset.store == "local" and self.local is not None:
            return self.local
        return self.blobs

    def _owns(self, value: Any) -> bool:
        return isinstance(value, str) and bool(value) and not is_icon_class(value) and not is_external_url(value)

    # Queries

    def normalize_filters(self, filters: Mapping[str, Any] | None) -> dict:
        filters = dict(filters or {})
        out: dict = {}
        search = filters.get("search")
        if isinstance(search, str) and search.strip():
            out["search"] = search.strip()
        sort = filters.get("sort")
        if sort:
            if sort not in self.config.sortable_fields:
                raise EntityValidationError(
                    f"Cannot sort {self.config.label} by {sort}",
                    path="sort",
                    detail={"allowed": list(self.config.sortable_fields)},
                )
            out["sort"] = sort
        order = filters.get("order")
        if order is not None:
            if order not in ("asc", "desc"):
                raise EntityValidationError("order must be asc or desc", path="order")
            out["order"] = order
        if filters.get("limit") not in (None, ""):
            try:
                limit = int(filters["limit"])
            except (TypeError, ValueError):
                raise EntityValidationError("limit must be an integer", path="limit")
            if limit < 1:
                raise EntityValidationError("limit must be positive", path="limit")
            out["limit"] = min(limit, MAX_LIMIT)
            out["page"] = filters.get("page") or 1
        for name in self.config.filter_fields:
            value = filters.get(name)
            if value not in (None, ""):
                out[name] = _coerce_filter_value(value)
        return out

    def _search_columns(self) -> list[tuple[str, str | None]]:
        columns: list[tuple[str, str | None]] = []
        for name in self.config.search_fields:
            if name in self.config.localized_fields:
                columns.extend((name, lang) for lang in languages())
            else:
                columns.append((name, None))
        return columns

    def _build_query(self, filters: dict, paged: bool = True) -> dict:
        query: dict = {}
        eq = {name: filters[name] for name in self.config.filter_fields if name in filters}
        if eq:
            query["eq"] = eq
        if filters.get("search") and self.config.search_fields:
            query["search"] = {"q": filters["search"], "columns": self._search_columns()}
        if paged:
            sort = filters.get("sort") or self.config.default_sort
            query["order"] = (sort, filters.get("order") == "asc")
            if filters.get("limit"):
                query["limit"] = filters["limit"]
                query["offset"] = page_offset(filters.get("page"), filters["limit"])
        return query

    def list(self, filters: Mapping[str, Any] | None = None) -> List[dict]:
        normalized = self.normalize_filters(filters)
        query = self._build_query(normalized)
        rows = self._call("list", lambda: self.store.select(self.config.table, query), filters=normalized)
        return list(rows or [])

    def list_page(self, filters: Mapping[str, Any] | None = None) -> tuple[List[dict], int]:
        normalized = self.normalize_filters(filters)
        query = self._build_query(normalized)
        count_query = self._build_query(normalized, paged=False)
        rows = self._call("list", lambda: self.store.select(self.config.table, query), filters=normalized)
        total = self._call("count", lambda: self.store.count(self.config.table, count_query), filters=normalized)
        return list(rows or []), int(total)

    def get(self, row_id: Any) -> dict | None:
        return self._call("get", lambda: self.store.get(self.config.table, row_id), id=row_id)

    # Writes

    def _clean(self, data: Mapping[str, Any] | None, current: dict | None = None) -> dict:
        data = dict(data or {})
        unknown = sorted(set(data) - self.config.writable_fields() - {"id", "created_at", "updated_at"})
        if unknown:
            raise EntityValidationError(
                f"Unknown fields for {self.config.label}: {', '.join(unknown)}",
                path=unknown[0],
                detail={"fields": unknown},
            )
        cleaned: dict = {}
        for name, value in data.items():
            if name in ("id", "created_at", "updated_at"):
                continue
            if name in self.config.localized_fields:
                if value is not None and not isinstance(value, (str, dict)):
                    raise EntityValidationError(f"{name} must be a language map", path=name)
                cleaned[name] = merge_localized((current or {}).get(name), value) if current else coerce_localized(value)
            elif name in self.config.email_fields:
                if value not in (None, "") and not (isinstance(value, str) and _EMAIL_RE.match(value.strip())):
                    raise EntityValidationError("Invalid email format", path=name, detail={"value": value})
                cleaned[name] = value.strip() if isinstance(value, str) else value
            elif self.config.asset(name) is not None:
                cleaned[name] = self._clean_asset_value(self.config.asset(name), value, current)
            else:
                cleaned[name] = value
        return cleaned

    def _clean_asset_value(self, asset: AssetField, value: Any, current: dict | None) -> Any:
        if value in (None, ""):
            return None
        if current is not None and value == current.get(asset.name):
            return value
        if is_external_url(value):
            return value
        if asset.allow_icon_class and is_icon_class(value):
            return value
        raise EntityValidationError(
            f"{asset.name} must be uploaded as a file",
            path=asset.name,
            detail={"value": value},
        )

    def _check_foreign_keys(self, payload: dict) -> None:
        for fk in self.config.foreign_keys:
            value = payload.get(fk.field)
            if value in (None, ""):
                continue
            found = self._call("fk_check", lambda: self.store.get(fk.table, value), field=fk.field)
            if found is None:
                raise EntityValidationError(fk.message, path=fk.field, detail={"table": fk.table, "id": value})

    def _prepare_uploads(self, files: Mapping[str, UploadedFile] | None) -> list[tuple[AssetField, UploadedFile]]:
        prepared = []
        for name, file in (files or {}).items():
            if file is None:
                continue
            asset = self.config.asset(name)
            if asset is None:
                raise EntityValidationError(f"{self.config.label} has no file field {name}", path=name)
            validate_upload(file, asset.mime_types, asset.max_bytes, field=name)
            prepared.append((asset, file))
        return prepared

    def _upload(self, prepared: list[tuple[AssetField, UploadedFile]]) -> dict:
        stored: dict = {}
        done: list[tuple[AssetField, str]] = []
        for asset, file in prepared:
            target = self._asset_store(asset)
            path = target.new_path(asset.folder, file.extension())
            try:
                stored[asset.name] = self._call(
                    "upload",
                    lambda: target.upload(path, file.data, file.content_type),
                    field=asset.name,
                    path=path,
                )
            except Exception:
                for done_asset, done_path in done:
                    self._remove_quietly(done_asset, done_path)
                raise
            done.append((asset, stored[asset.name]))
        return stored

    def _remove_quietly(self, asset: AssetField, path: str) -> None:
        try:
            self._asset_store(asset).remove([path])
        except Exception as exc:
            logger.warning("entity_blob_cleanup_failed entity=%s field=%s path=%s error=%s", self.name, asset.name, path, exc)

    def create(self, data: Mapping[str, Any], files: Mapping[str, UploadedFile] | None = None) -> dict:
        payload = self._clean(data)
        self._check_foreign_keys(payload)
        prepared = self._prepare_uploads(files)
        payload.update(self._upload(prepared))
        ts = _now()
        payload["created_at"] = ts
        payload["updated_at"] = ts
        created = self._call("create", lambda: self.store.insert(self.config.table, payload))
        logger.info("entity_created entity=%s id=%s", self.name, created.get("id"))
        return created

    def _require(self, row_id: Any) -> dict:
        current = self.get(row_id)
        if current is None:
            raise EntityNotFoundError(f"{self.config.label} {row_id} not found", path="id", detail={"id": row_id})
        return current

    def update(self, row_id: Any, changes: Mapping[str, Any], files: Mapping[str, UploadedFile] | None = None) -> dict:
        current = self._require(row_id)
        payload = self._clean(changes, current=current)
        self._check_foreign_keys(payload)
        prepared = self._prepare_uploads(files)
        payload.update(self._upload(prepared))
        superseded = [
            (asset, current.get(asset.name))
            for asset in self.config.assets
            if asset.name in payload
            and payload[asset.name] != current.get(asset.name)
            and self._owns(current.get(asset.name))
        ]
        payload["updated_at"] = _now(after=current.get("updated_at"))
        updated = self._call("update", lambda: self.store.update(self.config.table, row_id, payload), id=row_id)
        if updated is None:
            raise EntityNotFoundError(f"{self.config.label} {row_id} not found", path="id", detail={"id": row_id})
        for asset, old_path in superseded:
            self._remove_quietly(asset, old_path)
        logger.info("entity_updated entity=%s id=%s fields=%s", self.name, row_id, sorted(payload))
        return updated

    def reference_count(self, row_id: Any) -> int:
        total = 0
        for guard in self.config.guards:
            total += self._call(
                "guard_count",
                lambda: self.store.count(guard.table, {"eq": {guard.column: row_id}}),
                table=guard.table,
            )
        return total

    def _check_guards(self, row_id: Any) -> None:
        for guard in self.config.guards:
            count = self._call(
                "guard_count",
                lambda: self.store.count(guard.table, {"eq": {guard.column: row_id}}),
                table=guard.table,
            )
            if count > 0:
                raise EntityInUseError(
                    guard.message,
                    path="id",
                    detail={"table": guard.table, "column": guard.column, "count": count},
                )

    def _remove_owned_assets(self, row: dict) -> None:
        for asset in self.config.assets:
            path = row.get(asset.name)
            if self._owns(path):
                self._call(
                    "remove_blob",
                    lambda: self._asset_store(asset).remove([path]),
                    id=row.get("id"),
                    field=asset.name,
                    path=path,
                )

    def _unlink_all(self, row_id: Any) -> None:
        for link in self.config.links:
            rows = self._call("links", lambda: self.store.select(link.table, {"eq": {link.owner_column: row_id}}), id=row_id)
            if rows:
                self._call("unlink", lambda: self.store.delete_many(link.table, [r["id"] for r in rows]), id=row_id)

    def delete(self, row_id: Any) -> None:
        current = self._require(row_id)
        self._check_guards(row_id)
        # Blobs go first: a storage failure must leave the row and its links intact.
        self._remove_owned_assets(current)
        self._unlink_all(row_id)
        deleted = self._call("delete", lambda: self.store.delete(self.config.table, row_id), id=row_id)
        if not deleted:
            raise EntityNotFoundError(f"{self.config.label} {row_id} not found", path="id", detail={"id": row_id})
        logger.info("entity_deleted entity=%s id=%s", self.name, row_id)

    def delete_many(self, ids: List[Any]) -> int:
        ids = list(dict.fromkeys(ids))
        if not ids:
            raise EntityValidationError("No ids given", path="ids")
        rows = [self._require(row_id) for row_id in ids]
        for guard in self.config.guards:
            count = self._call(
                "guard_count",
                lambda: self.store.count(guard.table, {"in": {guard.column: ids}}),
                table=guard.table,
            )
            if count > 0:
                raise EntityInUseError(
                    f"Cannot delete: Some {self.config.label.lower()} are still referenced",
                    path="ids",
                    detail={"table": guard.table, "column": guard.column, "count": count},
                )
        for row in rows:
            self._remove_owned_assets(row)
        for row in rows:
            self._unlink_all(row["id"])
        deleted = self._call("delete_many", lambda: self.store.delete_many(self.config.table, ids))
        logger.info("entity_deleted_many entity=%s count=%s", self.name, deleted)
        return deleted

    def remove_asset(self, row_id: Any, field_name: str) -> dict:
        asset = self.config.asset(field_name)
        if asset is None:
            raise EntityValidationError(f"{self.config.label} has no file field {field_name}", path=field_name)
        current = self._require(row_id)
        changes = {field_name: None, "updated_at": _now(after=current.get("updated_at"))}
        updated = self._call("remove_asset", lambda: self.store.update(self.config.table, row_id, changes), id=row_id)
        if self._owns(current.get(field_name)):
            self._remove_quietly(asset, current[field_name])
        return updated

    # Links

    def get_links(self, row_id: Any, name: str) -> List[Any]:
        link = self.config.link(name)
        if link is None:
            raise EntityValidationError(f"{self.config.label} has no link {name}", path=name)
        rows = self._call("links", lambda: self.store.select(link.table, {"eq": {link.owner_column: row_id}}))
        return sorted(r[link.target_column] for r in rows)

    def set_links(self, row_id: Any, name: str, target_ids: List[Any]) -> List[Any]:
        link = self.config.link(name)
        if link is None:
            raise EntityValidationError(f"{self.config.label} has no link {name}", path=name)
        self._require(row_id)
        wanted = sorted(set(target_ids))
        if wanted:
            found = self._call("links", lambda: self.store.count(link.target_table, {"in": {"id": wanted}}))
            if found != len(wanted):
                raise EntityValidationError(
                    f"Invalid {link.name} ID",
                    path=name,
                    detail={"ids": wanted, "table": link.target_table},
                )
        existing = self._call("links", lambda: self.store.select(link.table, {"eq": {link.owner_column: row_id}}))
        if existing:
            self._call("unlink", lambda: self.store.delete_many(link.table, [r["id"] for r in existing]))
        ts = _now()
        for target_id in wanted:
            self._call(
                "link",
                lambda: self.store.insert(
                    link.table,
                    {link.owner_column: row_id, link.target_column: target_id, "created_at": ts},
                ),
            )
        return wanted

    # Display

    def image_url(self, path: Any) -> str:
        if not path or not isinstance(path, str):
            return ""
        if is_icon_class(path) or is_external_url(path):
            return path
        if path.startswith("/"):
            return self.local.public_url(path) if self.local is not None else path
        return self.blobs.public_url(path)

    icon_url = image_url


class SingletonService:
    """Settings tables holding at most one row.

    ``save`` reads then inserts or updates without a lock; concurrent saves from
    two admins can create a second row.
    """

    def __init__(self, service: EntityService) -> None:
        self.service = service
        self.config = service.config

    @property
    def name(self) -> str:
        return self.config.name

    def get(self) -> dict | None:
        rows = self.service._call(
            "get",
            lambda: self.service.store.select(self.config.table, {"order": ("id", True), "limit": 1}),
        )
        return rows[0] if rows else None

    def save(self, data: Mapping[str, Any], files: Mapping[str, UploadedFile] | None = None) -> dict:
        existing = self.get()
        if existing is None:
            return self.service.create(data, files)
        return self.service.update(existing["id"], data, files)

    def image_url(self, path: Any) -> str:
        return self.service.image_url(path)


def build_services(table_store, blob_store, local_store=None) -> Dict[str, Any]:
    services: Dict[str, Any] = {}
    for config in list_configs():
        service = EntityService(config, table_store, blob_store, local_store)
        services[config.name] = SingletonService(service) if config.singleton else service
    return services
