"""Create/edit form state for entities with localized fields."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from markupsafe import escape

from folio.localized import coerce_localized, is_blank, languages, primary_language

from app.entities import EntityConfig


def to_html(value: Any) -> str:
    """Serialize rich text: paragraph lists become escaped ``<p>`` blocks, strings pass through."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "".join(f"<p>{escape(str(p))}</p>" for p in value if str(p).strip())
    return str(value)


def _label(name: str) -> str:
    return name.replace("_", " ").capitalize()


class LocalizedForm:
    def __init__(
        self,
        config: EntityConfig,
        values: Mapping[str, Any] | None = None,
        langs: Iterable[str] | None = None,
        active: str | None = None,
    ) -> None:
        self.config = config
        self.languages = list(langs) if langs is not None else languages()
        self.primary = primary_language()
        if self.primary not in self.languages:
            self.languages.insert(0, self.primary)
        self.active = active or self.primary
        self.localized: dict[str, dict[str, str]] = {name: {} for name in config.localized_fields}
        self.plain: dict[str, Any] = {}
        self.errors: dict[str, str] = {}
        if values:
            self.load(values)

    def load(self, values: Mapping[str, Any]) -> None:
        for name, value in values.items():
            if name in self.localized:
                self.localized[name] = {lang: text for lang, text in coerce_localized(value).items()}
            elif name not in ("id", "created_at", "updated_at"):
                self.plain[name] = value

    def switch(self, lang: str) -> None:
        if lang not in self.languages:
            raise ValueError(f"unsupported language: {lang}")
        self.active = lang

    def value(self, name: str, lang: str | None = None) -> Any:
        if name in self.localized:
            return self.localized[name].get(lang or self.active, "")
        return self.plain.get(name)

    def set(self, name: str, value: Any, lang: str | None = None) -> None:
        if name in self.localized:
            code = lang or self.active
            if name in self.config.rich_text_fields:
                value = to_html(value)
            self.localized[name][code] = "" if value is None else str(value)
        else:
            self.plain[name] = value

    def set_many(self, data: Mapping[str, Any]) -> None:
        for name, value in data.items():
            if name in self.localized and isinstance(value, dict):
                for lang, text in value.items():
                    self.set(name, text, lang=lang)
            else:
                self.set(name, value)

    def validate(self) -> dict[str, str]:
        errors: dict[str, str] = {}
        for name in self.config.required_fields:
            if name in self.localized:
                if is_blank(self.localized[name], self.primary):
                    errors[name] = f"{_label(name)} ({self.primary.upper()}) is required"
            else:
                value = self.plain.get(name)
                if value is None or (isinstance(value, str) and not value.strip()):
                    errors[name] = f"{_label(name)} is required"
        self.errors = errors
        return errors

    def is_valid(self) -> bool:
        return not self.validate()

    def payload(self, only: Iterable[str] | None = None) -> dict:
        names = set(only) if only is not None else None
        out: dict = {}
        for name, texts in self.localized.items():
            if names is None or name in names:
                out[name] = dict(texts)
        for name, value in self.plain.items():
            if names is None or name in names:
                out[name] = value
        return out

    def to_dict(self) -> dict:
        return {
            "entity": self.config.name,
            "languages": self.languages,
            "primary_language": self.primary,
            "active_language": self.active,
            "localized_fields": list(self.config.localized_fields),
            "rich_text_fields": list(self.config.rich_text_fields),
            "required_fields": list(self.config.required_fields),
            "file_fields": [
                {"name": a.name, "accept": list(a.mime_types), "max_bytes": a.max_bytes, "icon_class": a.allow_icon_class}
                for a in self.config.assets
            ],
            "values": self.payload(),
            "errors": dict(self.errors),
        }
