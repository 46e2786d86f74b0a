from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session, joinedload

from ..auth import CurrentOperator, require_admin
from ..database import get_db
from ..errors import FormValidationError
from ..flash import FlashStore, get_flash
from ..forms import read_nested_form
from ..models import App, AppPlatform, Platform
from ..schemas import PlatformEditAction, PlatformForm, RemoveIntent, parse_intent, validate_form
from ..web import get_or_404, redirect, render

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/platforms")


def _check_unique_name(db: Session, name: str, platform_id=None) -> None:
    query = db.query(Platform.id).filter(Platform.name == name)
    if platform_id is not None:
        query = query.filter(Platform.id != platform_id)
    if query.first() is not None:
        raise FormValidationError.single("name", "A platform with this name already exists")


@router.get("", response_class=HTMLResponse)
async def platform_list(
    request: Request,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    platforms = db.query(Platform).order_by(Platform.name).all()
    return render(request, "platforms/list.html", operator, platforms=platforms)


@router.get("/new", response_class=HTMLResponse)
async def platform_new_form(request: Request, operator: CurrentOperator = Depends(require_admin)):
    return render(request, "platforms/form.html", operator, platform=None)


@router.post("/new", response_class=HTMLResponse)
async def platform_create(
    request: Request,
    db: Session = Depends(get_db),
    flash: FlashStore = Depends(get_flash),
    operator: CurrentOperator = Depends(require_admin),
):
    values = await read_nested_form(request)
    try:
        data = validate_form(PlatformForm, values)
        _check_unique_name(db, data.name)
    except FormValidationError as exc:
        return render(
            request, "platforms/form.html", operator, platform=None, values=values, errors=exc.errors, status_code=400
        )

    platform = Platform(name=data.name, type=data.type, url=data.url, comment=data.comment)
    db.add(platform)
    db.commit()
    db.refresh(platform)
    logger.info("Platform %s created by user %s", platform.id, operator.id)
    flash.message(f"Platform {platform.name} created")
    return redirect(f"/admin/platforms/{platform.id}")


@router.get("/{platform_id}", response_class=HTMLResponse)
async def platform_detail(
    request: Request,
    platform_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    platform = get_or_404(db, Platform, platform_id)
    app_platforms = (
        db.query(AppPlatform)
        .join(AppPlatform.app)
        .filter(AppPlatform.platform_id == platform.id)
        .options(joinedload(AppPlatform.app).joinedload(App.studio))
        .order_by(App.name)
        .all()
    )
    return render(request, "platforms/detail.html", operator, platform=platform, app_platforms=app_platforms)


@router.get("/{platform_id}/edit", response_class=HTMLResponse)
async def platform_edit_form(
    request: Request,
    platform_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    platform = get_or_404(db, Platform, platform_id)
    return render(request, "platforms/form.html", operator, platform=platform)


@router.post("/{platform_id}/edit", response_class=HTMLResponse)
async def platform_update(
    request: Request,
    platform_id: int,
    db: Session = Depends(get_db),
    flash: FlashStore = Depends(get_flash),
    operator: CurrentOperator = Depends(require_admin),
):
    platform = get_or_404(db, Platform, platform_id)
    values = await read_nested_form(request)
    try:
        data = parse_intent(PlatformEditAction, values)
        if not isinstance(data, RemoveIntent):
            _check_unique_name(db, data.name, platform.id)
    except FormValidationError as exc:
        return render(
            request,
            "platforms/form.html",
            operator,
            platform=platform,
            values=values,
            errors=exc.errors,
            status_code=400,
        )

    if isinstance(data, RemoveIntent):
        db.delete(platform)
        db.commit()
        logger.info("Platform %s deleted by user %s", platform_id, operator.id)
        flash.message(f"Platform {platform.name} deleted")
        return redirect("/admin/platforms")

    platform.name = data.name
    platform.type = data.type
    platform.url = data.url
    platform.comment = data.comment
    db.commit()
    return redirect(f"/admin/platforms/{platform.id}")
