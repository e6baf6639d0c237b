"""Renderers for the list table model."""

from __future__ import annotations

import json
from typing import Any

from fastapi.encoders import jsonable_encoder
from jinja2 import StrictUndefined
from jinja2.sandbox import ImmutableSandboxedEnvironment

from folio.table import TableModel

_TABLE_TEMPLATE = """\
<table class="entity-table" data-state="{{ state }}">
  <thead><tr>
  {%- for col in columns %}
    <th{% if col.sortable %} data-sort="{{ col.key }}"{% if col.sorted %} aria-sort="{{ 'ascending' if col.sorted == 'asc' else 'descending' }}"{% endif %}{% endif %}>{{ col.header }}</th>
  {%- endfor %}
    {%- if has_actions %}<th>Actions</th>{% endif %}
  </tr></thead>
  <tbody>
  {%- if state == "loading" %}
    <tr class="loading"><td colspan="{{ span }}">Loading...</td></tr>
  {%- elif state == "empty" %}
    <tr class="empty"><td colspan="{{ span }}">{{ empty_message }}</td></tr>
  {%- else %}
  {%- for row in rows %}
    <tr data-id="{{ row.id }}">
    {%- for cell in row.cells %}<td>{{ cell if cell is not none else "" }}</td>{% endfor %}
    {%- if has_actions %}<td>
      {%- for action in row.actions %}<button type="button" data-action="{{ action.key }}" class="btn-{{ action.variant }}"{% if action.disabled %} disabled{% endif %}>{{ action.label }}</button>{% endfor -%}
    </td>{% endif %}
    </tr>
  {%- endfor %}
  {%- endif %}
  </tbody>
</table>
{%- if pagination %}
<nav class="pagination">
  <a data-page="{{ pagination.prev.page }}"{% if pagination.prev.disabled %} aria-disabled="true"{% endif %}>&laquo;</a>
  {%- for item in pagination["items"] %}
  {%- if item.type == "ellipsis" %}<span>&hellip;</span>
  {%- else %}<a data-page="{{ item.page }}"{% if item.current %} aria-current="page"{% endif %}>{{ item.page }}</a>{% endif %}
  {%- endfor %}
  <a data-page="{{ pagination.next.page }}"{% if pagination.next.disabled %} aria-disabled="true"{% endif %}>&raquo;</a>
</nav>
{%- endif %}
"""

_env = ImmutableSandboxedEnvironment(autoescape=True, undefined=StrictUndefined)
_table_template = _env.from_string(_TABLE_TEMPLATE)


class HtmlTableRenderer:
    def render(self, model: TableModel, pagination: dict | None = None) -> str:
        data = model.to_dict()
        has_actions = any(row["actions"] for row in data["rows"])
        return _table_template.render(
            **data,
            has_actions=has_actions,
            span=len(data["columns"]) + (1 if has_actions else 0),
            pagination=pagination,
        )


class JsonTableRenderer:
    def render(self, model: TableModel, pagination: dict | None = None) -> str:
        return json.dumps(self.payload(model, pagination), ensure_ascii=False)

    def payload(self, model: TableModel, pagination: dict | None = None) -> dict[str, Any]:
        return jsonable_encoder({"table": model.to_dict(), "pagination": pagination})
