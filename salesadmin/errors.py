from __future__ import annotations

from typing import Dict, Optional

from pydantic import ValidationError


class NotFoundError(Exception):
    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class LoginRequired(Exception):
    def __init__(self, redirect_to: str):
        super().__init__("Login required")
        self.redirect_to = redirect_to


class AdminRequired(Exception):
    pass


class AggregationIntegrityError(RuntimeError):
    """A participation row points at an app platform or app that does not exist."""


class FormValidationError(Exception):
    """Per-field validation errors keyed by a dotted/bracketed field path."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__("; ".join(f"{path}: {message}" for path, message in errors.items()))
        self.errors = errors

    @classmethod
    def from_pydantic(cls, exc: ValidationError, prefix: Optional[str] = None) -> "FormValidationError":
        errors: Dict[str, str] = {}
        for error in exc.errors():
            path = format_path(error["loc"])
            if prefix:
                path = f"{prefix}.{path}" if path else prefix
            errors.setdefault(path, error_message(error))
        return cls(errors)

    @classmethod
    def single(cls, path: str, message: str) -> "FormValidationError":
        return cls({path: message})


def error_message(error: dict) -> str:
    if error["type"] == "value_error" and "error" in error.get("ctx", {}):
        return str(error["ctx"]["error"])
    return error["msg"]


def format_path(loc) -> str:
    """("apps", 0, "app_platforms", 1, "status") -> "apps[0].app_platforms[1].status"."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif path:
            path += f".{part}"
        else:
            path = str(part)
    return path
