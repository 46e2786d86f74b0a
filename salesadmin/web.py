from __future__ import annotations

from pathlib import Path
from typing import Optional, Type, TypeVar

from fastapi import Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from .auth import CurrentOperator
from .config import MAX_LINK_COUNT
from .errors import NotFoundError
from .flash import get_flash
from .models import (
    AppType,
    EventVisibility,
    ParticipationStatus,
    PlatformReleaseState,
    PlatformType,
    UrlType,
    UserRole,
)
from .participation import is_status_ok

BASE_DIR = Path(__file__).resolve().parent

templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
templates.env.globals.update(
    is_status_ok=is_status_ok,
    max_link_count=MAX_LINK_COUNT,
    AppType=AppType,
    EventVisibility=EventVisibility,
    ParticipationStatus=ParticipationStatus,
    PlatformReleaseState=PlatformReleaseState,
    PlatformType=PlatformType,
    UrlType=UrlType,
    UserRole=UserRole,
)

T = TypeVar("T")


def render(
    request: Request,
    name: str,
    operator: Optional[CurrentOperator] = None,
    status_code: int = 200,
    **context,
) -> HTMLResponse:
    context.setdefault("errors", {})
    context.setdefault("values", {})
    context["operator"] = operator
    context["flash_message"] = get_flash(request).pop_message()
    return templates.TemplateResponse(request, name, context, status_code=status_code)


def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


def get_or_404(db: Session, model: Type[T], entity_id: int, label: Optional[str] = None) -> T:
    obj = db.query(model).filter_by(id=entity_id).first()
    if obj is None:
        raise NotFoundError(label or model.__name__, entity_id)
    return obj
