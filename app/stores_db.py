"""DB-backed table store for Supabase Postgres."""

from __future__ import annotations

from typing import Any, List

from psycopg2.extras import Json

from app.db import execute, fetch_all, fetch_one, get_conn


def _is_safe_ident(value: str) -> bool:
    if not value or not isinstance(value, str):
        return False
    if not (value[0].isalpha() or value[0] == "_"):
        return False
    for ch in value:
        if not (ch.isalnum() or ch == "_"):
            return False
    return True


def _ident(value: str) -> str:
    if not _is_safe_ident(value):
        raise ValueError(f"unsafe identifier: {value!r}")
    return f'"{value}"'


def _adapt(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return Json(value)
    return value


def _build_where(query: dict) -> tuple[str, list]:
    clauses: list[str] = []
    params: list = []
    for column, value in (query.get("eq") or {}).items():
        if value is None:
            clauses.append(f"{_ident(column)} is null")
        else:
            clauses.append(f"{_ident(column)} = %s")
            params.append(value)
    for column, values in (query.get("in") or {}).items():
        clauses.append(f"{_ident(column)} = any(%s)")
        params.append(list(values))
    for column, value in (query.get("gte") or {}).items():
        clauses.append(f"{_ident(column)} >= %s")
        params.append(value)
    for column, value in (query.get("lte") or {}).items():
        clauses.append(f"{_ident(column)} <= %s")
        params.append(value)
    search = query.get("search") or {}
    needle = str(search.get("q") or "").strip()
    if needle and search.get("columns"):
        parts = []
        for column, lang in search["columns"]:
            if lang is None:
                parts.append(f"{_ident(column)}::text ilike %s")
                params.append(f"%{needle}%")
            else:
                parts.append(f"{_ident(column)} ->> %s ilike %s")
                params.extend([lang, f"%{needle}%"])
        clauses.append("(" + " or ".join(parts) + ")")
    where = ("where " + " and ".join(clauses)) if clauses else ""
    return where, params


def _build_select(table: str, query: dict) -> tuple[str, list]:
    where, params = _build_where(query)
    sql = f"select * from {_ident(table)} {where}".rstrip()
    order = query.get("order")
    if order:
        column, ascending = order
        sql += f" order by {_ident(column)} {'asc' if ascending else 'desc'}, \"id\" {'asc' if ascending else 'desc'}"
    if query.get("limit") is not None:
        sql += " limit %s"
        params.append(int(query["limit"]))
    if query.get("offset"):
        sql += " offset %s"
        params.append(int(query["offset"]))
    return sql, params


def _build_count(table: str, query: dict) -> tuple[str, list]:
    where, params = _build_where(query)
    return f"select count(*) as n from {_ident(table)} {where}".rstrip(), params


class DbTableStore:
    def select(self, table: str, query: dict | None = None) -> List[dict]:
        sql, params = _build_select(table, query or {})
        with get_conn() as conn:
            return fetch_all(conn, sql, params, query_name=f"{table}.select")

    def count(self, table: str, query: dict | None = None) -> int:
        sql, params = _build_count(table, query or {})
        with get_conn() as conn:
            row = fetch_one(conn, sql, params, query_name=f"{table}.count")
        return int((row or {}).get("n") or 0)

    def get(self, table: str, row_id: Any) -> dict | None:
        with get_conn() as conn:
            return fetch_one(
                conn,
                f"select * from {_ident(table)} where \"id\" = %s limit 1",
                [row_id],
                query_name=f"{table}.get",
            )

    def insert(self, table: str, row: dict) -> dict:
        values = {k: v for k, v in row.items() if not (k == "id" and v is None)}
        columns = ", ".join(_ident(k) for k in values)
        placeholders = ", ".join(["%s"] * len(values))
        with get_conn() as conn:
            return fetch_one(
                conn,
                f"insert into {_ident(table)} ({columns}) values ({placeholders}) returning *",
                [_adapt(v) for v in values.values()],
                query_name=f"{table}.insert",
            )

    def update(self, table: str, row_id: Any, changes: dict) -> dict | None:
        values = {k: v for k, v in changes.items() if k != "id"}
        if not values:
            return self.get(table, row_id)
        assignments = ", ".join(f"{_ident(k)} = %s" for k in values)
        params = [_adapt(v) for v in values.values()] + [row_id]
        with get_conn() as conn:
            return fetch_one(
                conn,
                f"update {_ident(table)} set {assignments} where \"id\" = %s returning *",
                params,
                query_name=f"{table}.update",
            )

    def delete(self, table: str, row_id: Any) -> int:
        with get_conn() as conn:
            return execute(conn, f"delete from {_ident(table)} where \"id\" = %s", [row_id], query_name=f"{table}.delete")

    def delete_many(self, table: str, ids: List[Any]) -> int:
        if not ids:
            return 0
        with get_conn() as conn:
            return execute(
                conn,
                f"delete from {_ident(table)} where \"id\" = any(%s)",
                [list(ids)],
                query_name=f"{table}.delete_many",
            )
