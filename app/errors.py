"""Domain errors raised by entity services and storage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


@dataclass(eq=False)
class EntityError(Exception):
    message: str
    code: str = "ENTITY_ERROR"
    path: str | None = None
    detail: dict | None = None

    status: ClassVar[int] = 400

    def __str__(self) -> str:
        return self.message

    def as_issue(self) -> dict:
        return {"code": self.code, "message": self.message, "path": self.path, "detail": self.detail}


@dataclass(eq=False)
class EntityNotFoundError(EntityError):
    code: str = "ENTITY_NOT_FOUND"

    status: ClassVar[int] = 404


@dataclass(eq=False)
class EntityValidationError(EntityError):
    code: str = "VALIDATION_FAILED"

    status: ClassVar[int] = 422


@dataclass(eq=False)
class UploadRejectedError(EntityError):
    code: str = "UPLOAD_REJECTED"

    status: ClassVar[int] = 422


@dataclass(eq=False)
class EntityInUseError(EntityError):
    code: str = "ENTITY_IN_USE"

    status: ClassVar[int] = 409


@dataclass(eq=False)
class StorageError(EntityError):
    code: str = "STORAGE_FAILED"

    status: ClassVar[int] = 502
