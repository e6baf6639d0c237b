"""Entity-agnostic list table model: columns, row actions, sort and filter state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Protocol, Union

from .localized import localized_text

DEFAULT_EMPTY_MESSAGE = "Tidak ada data"
SORT_ORDERS = ("asc", "desc")


@dataclass(frozen=True)
class FieldAccessor:
    field: str
    kind: str = "field"

    @property
    def key(self) -> str:
        return self.field

    def value(self, item: dict, lang: str | None = None) -> Any:
        return item.get(self.field)


@dataclass(frozen=True)
class LocalizedAccessor:
    field: str
    placeholder: str = "-"
    kind: str = "localized"

    @property
    def key(self) -> str:
        return self.field

    def value(self, item: dict, lang: str | None = None) -> Any:
        return localized_text(item.get(self.field), lang, self.placeholder)


@dataclass(frozen=True)
class ComputedAccessor:
    name: str
    fn: Callable[[dict], Any]
    kind: str = "computed"

    @property
    def key(self) -> str:
        return self.name

    def value(self, item: dict, lang: str | None = None) -> Any:
        return self.fn(item)


Accessor = Union[FieldAccessor, LocalizedAccessor, ComputedAccessor]


@dataclass(frozen=True)
class Column:
    header: str
    accessor: Accessor
    sortable: bool = False

    @property
    def key(self) -> str:
        return self.accessor.key


@dataclass(frozen=True)
class RowAction:
    key: str
    label: str
    icon: str | None = None
    variant: str = "default"
    disabled: Callable[[dict], bool] | None = None
    hidden: Callable[[dict], bool] | None = None


@dataclass
class TableModel:
    state: str
    columns: list[dict]
    rows: list[dict] = field(default_factory=list)
    empty_message: str | None = None
    sort: dict | None = None

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "columns": self.columns,
            "rows": self.rows,
            "empty_message": self.empty_message,
            "sort": self.sort,
        }


class TableRenderer(Protocol):
    def render(self, model: TableModel) -> str: ...


def field_column(header: str, name: str, sortable: bool = False) -> Column:
    return Column(header, FieldAccessor(name), sortable)


def localized_column(header: str, name: str, sortable: bool = False) -> Column:
    return Column(header, LocalizedAccessor(name), sortable)


def _row_actions(item: dict, actions: Iterable[RowAction]) -> list[dict]:
    out = []
    for action in actions:
        if action.hidden is not None and action.hidden(item):
            continue
        out.append(
            {
                "key": action.key,
                "label": action.label,
                "icon": action.icon,
                "variant": action.variant,
                "disabled": bool(action.disabled(item)) if action.disabled is not None else False,
            }
        )
    return out


def build_table(
    items: list[dict] | None,
    columns: list[Column],
    actions: Iterable[RowAction] = (),
    loading: bool = False,
    empty_message: str = DEFAULT_EMPTY_MESSAGE,
    sort: dict | None = None,
    lang: str | None = None,
) -> TableModel:
    """Build the render model for one table.

    Exactly one of the states ``loading``, ``empty`` or ``rows`` is produced;
    loading wins over an empty list.
    """
    header = [
        {
            "key": col.key,
            "header": col.header,
            "sortable": col.sortable,
            "sorted": (sort or {}).get("order") if (sort or {}).get("sort") == col.key else None,
        }
        for col in columns
    ]
    if loading:
        return TableModel(state="loading", columns=header, sort=sort)
    if not items:
        return TableModel(state="empty", columns=header, empty_message=empty_message, sort=sort)
    actions = list(actions)
    rows = []
    for item in items:
        rows.append(
            {
                "id": item.get("id"),
                "cells": [col.accessor.value(item, lang) for col in columns],
                "actions": _row_actions(item, actions),
            }
        )
    return TableModel(state="rows", columns=header, rows=rows, sort=sort)


def toggle_sort(state: dict | None, field_name: str) -> dict:
    """Next sort state after clicking a sortable header."""
    state = state or {}
    if state.get("sort") == field_name:
        order = "desc" if state.get("order") == "asc" else "asc"
        return {"sort": field_name, "order": order}
    return {"sort": field_name, "order": "asc"}


def parse_sort_option(value: str | None) -> tuple[str, str] | None:
    """Split a filter-bar sort option such as ``created_at-desc``."""
    if not value or "-" not in value:
        return None
    name, order = value.rsplit("-", 1)
    if not name or order not in SORT_ORDERS:
        return None
    return name, order


def apply_filter_change(filters: dict | None, search: str | None = None, sort_option: str | None = None) -> dict:
    next_filters = dict(filters or {})
    if search is not None:
        if search.strip():
            next_filters["search"] = search.strip()
        else:
            next_filters.pop("search", None)
    if sort_option is not None:
        parsed = parse_sort_option(sort_option)
        if parsed:
            next_filters["sort"], next_filters["order"] = parsed
        else:
            next_filters.pop("sort", None)
            next_filters.pop("order", None)
    next_filters["page"] = 1
    return next_filters
