from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from ..auth import CurrentOperator, require_admin
from ..database import atomic, get_db
from ..errors import FormValidationError
from ..flash import FlashStore, get_flash
from ..forms import read_nested_form
from ..models import App, AppPlatform, AppPlatformLink, EventAppPlatform, Platform, Studio
from ..schemas import (
    AppEditAction,
    AppForm,
    AppPlatformChoice,
    AppPlatformForm,
    LinkForm,
    RemoveIntent,
    parse_intent,
    validate_form,
)
from ..web import get_or_404, redirect, render

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/apps")


def build_app_platform_links(links: Iterable[LinkForm]) -> List[AppPlatformLink]:
    return [
        AppPlatformLink(url=link.url, title=link.title, type=link.type, comment=link.comment)
        for link in links
        if link.is_filled
    ]


def _all_platforms(db: Session):
    return db.query(Platform).order_by(Platform.name).all()


def _all_studios(db: Session):
    return db.query(Studio).order_by(Studio.name).all()


def _check_studio(db: Session, studio_id: int) -> None:
    if db.query(Studio.id).filter_by(id=studio_id).first() is None:
        raise FormValidationError.single("studio_id", "Unknown studio")


def _check_platforms(db: Session, platforms: List[AppPlatformChoice]) -> None:
    wanted = {platform.platform_id for platform in platforms}
    if not wanted:
        return
    known = {row.id for row in db.query(Platform.id).filter(Platform.id.in_(wanted))}
    unknown = sorted(wanted - known)
    if unknown:
        raise FormValidationError.single(
            "platforms", "Unknown platform " + ", ".join(str(platform_id) for platform_id in unknown)
        )


@router.get("", response_class=HTMLResponse)
async def app_list(
    request: Request,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    apps = (
        db.query(App)
        .options(joinedload(App.studio), selectinload(App.app_platforms).joinedload(AppPlatform.platform))
        .order_by(App.name)
        .all()
    )
    return render(request, "apps/list.html", operator, apps=apps)


@router.get("/new", response_class=HTMLResponse)
async def app_new_form(
    request: Request,
    studio_id: Optional[int] = None,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    return render(
        request,
        "apps/new.html",
        operator,
        platforms=_all_platforms(db),
        studios=_all_studios(db),
        values={"studio_id": str(studio_id) if studio_id is not None else ""},
    )


@router.post("/new", response_class=HTMLResponse)
async def app_create(
    request: Request,
    db: Session = Depends(get_db),
    flash: FlashStore = Depends(get_flash),
    operator: CurrentOperator = Depends(require_admin),
):
    values = await read_nested_form(request)
    try:
        data = validate_form(AppForm, values)
        _check_studio(db, data.studio_id)
        _check_platforms(db, data.checked_platforms)
        app = App(name=data.name, type=data.type, studio_id=data.studio_id, comment=data.comment)
        with atomic(db):
            db.add(app)
            for platform in data.checked_platforms:
                app.app_platforms.append(
                    AppPlatform(
                        platform_id=platform.platform_id,
                        release_state=platform.release_state,
                        is_early_access=platform.is_early_access,
                        is_free_to_play=platform.is_free_to_play,
                        comment=platform.comment,
                        links=build_app_platform_links(platform.links),
                    )
                )
    except IntegrityError:
        errors = {"platforms": "Failed to store app, check the selected platforms"}
    except FormValidationError as exc:
        errors = exc.errors
    else:
        logger.info("App %s created by user %s", app.id, operator.id)
        flash.message(f"App {app.name} created")
        return redirect(f"/admin/apps/{app.id}")

    return render(
        request,
        "apps/new.html",
        operator,
        platforms=_all_platforms(db),
        studios=_all_studios(db),
        values=values,
        errors=errors,
        status_code=400,
    )


@router.get("/{app_id}", response_class=HTMLResponse)
async def app_detail(
    request: Request,
    app_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    app = get_or_404(db, App, app_id)
    app_platforms = (
        db.query(AppPlatform)
        .join(AppPlatform.platform)
        .filter(AppPlatform.app_id == app.id)
        .options(
            joinedload(AppPlatform.platform),
            selectinload(AppPlatform.links),
            selectinload(AppPlatform.event_app_platforms).joinedload(EventAppPlatform.event),
        )
        .order_by(Platform.name)
        .all()
    )
    return render(request, "apps/detail.html", operator, app=app, app_platforms=app_platforms)


@router.get("/{app_id}/edit", response_class=HTMLResponse)
async def app_edit_form(
    request: Request,
    app_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    app = get_or_404(db, App, app_id)
    return render(request, "apps/edit.html", operator, app=app, studios=_all_studios(db))


@router.post("/{app_id}/edit", response_class=HTMLResponse)
async def app_update(
    request: Request,
    app_id: int,
    db: Session = Depends(get_db),
    flash: FlashStore = Depends(get_flash),
    operator: CurrentOperator = Depends(require_admin),
):
    app = get_or_404(db, App, app_id)
    values = await read_nested_form(request)
    try:
        data = parse_intent(AppEditAction, values)
        if not isinstance(data, RemoveIntent):
            _check_studio(db, data.studio_id)
    except FormValidationError as exc:
        return render(
            request,
            "apps/edit.html",
            operator,
            app=app,
            studios=_all_studios(db),
            values=values,
            errors=exc.errors,
            status_code=400,
        )

    if isinstance(data, RemoveIntent):
        db.delete(app)
        db.commit()
        logger.info("App %s deleted by user %s", app_id, operator.id)
        flash.message(f"App {app.name} deleted")
        return redirect("/admin/apps")

    app.name = data.name
    app.type = data.type
    app.studio_id = data.studio_id
    app.comment = data.comment
    db.commit()
    return redirect(f"/admin/apps/{app.id}")


def _missing_platforms(db: Session, app_id: int):
    used = db.query(AppPlatform.platform_id).filter(AppPlatform.app_id == app_id)
    return db.query(Platform).filter(Platform.id.not_in(used)).order_by(Platform.name).all()


@router.get("/{app_id}/new-platform", response_class=HTMLResponse)
async def app_platform_new_form(
    request: Request,
    app_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    app = get_or_404(db, App, app_id)
    return render(request, "apps/new_platform.html", operator, app=app, platforms=_missing_platforms(db, app.id))


@router.post("/{app_id}/new-platform", response_class=HTMLResponse)
async def app_platform_create(
    request: Request,
    app_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    app = get_or_404(db, App, app_id)
    values = await read_nested_form(request)
    try:
        data = validate_form(AppPlatformForm, values)
        if data.platform_id not in {platform.id for platform in _missing_platforms(db, app.id)}:
            raise FormValidationError.single("platform_id", "Platform is not available for this app")
        with atomic(db):
            db.add(
                AppPlatform(
                    app_id=app.id,
                    platform_id=data.platform_id,
                    release_state=data.release_state,
                    is_early_access=data.is_early_access,
                    is_free_to_play=data.is_free_to_play,
                    comment=data.comment,
                    links=build_app_platform_links(data.links),
                )
            )
    except IntegrityError:
        errors = {"platform_id": "Failed to store platform release"}
    except FormValidationError as exc:
        errors = exc.errors
    else:
        return redirect(f"/admin/apps/{app.id}")

    return render(
        request,
        "apps/new_platform.html",
        operator,
        app=app,
        platforms=_missing_platforms(db, app.id),
        values=values,
        errors=errors,
        status_code=400,
    )


@router.post("/{app_id}/platforms/{app_platform_id}/delete")
async def app_platform_delete(
    app_id: int,
    app_platform_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    app_platform = db.query(AppPlatform).filter_by(id=app_platform_id, app_id=app_id).first()
    if app_platform:
        db.delete(app_platform)
        db.commit()
        logger.info("App platform %s deleted by user %s", app_platform_id, operator.id)
    return redirect(f"/admin/apps/{app_id}")
