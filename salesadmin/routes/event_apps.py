from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..auth import CurrentOperator, require_admin
from ..database import get_db
from ..errors import FormValidationError, NotFoundError
from ..flash import FlashStore, get_flash
from ..forms import parse_nested, read_nested_form
from ..models import AppPlatform, Event, EventAppPlatform, PlatformType
from ..participation import (
    apply_filters,
    format_contact_emails,
    load_eligible_platforms,
    load_event_apps,
    load_studios,
)
from ..schemas import (
    AddPlatformIntent,
    DeletePlatformIntent,
    EventAppsAction,
    EventAppsQuery,
    SavePlatformIntent,
    parse_intent,
)
from ..steam_export import build_steam_export
from ..web import get_or_404, redirect, render
from ..wizard import (
    AppChoice,
    GroupBy,
    SaveIntent,
    Selection,
    SetAppDataIntent,
    WizardAction,
    bulk_add_participations,
    load_selectable_groups,
    load_selected_apps,
    remember_selection,
    take_selection,
    validate_save,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/events/{event_id}/apps")


def _current_url(request: Request) -> str:
    url = request.url.path
    if request.url.query:
        url += "?" + request.url.query
    return url


def _render_event_apps(
    request: Request,
    db: Session,
    operator: CurrentOperator,
    event: Event,
    errors: Optional[Dict[str, str]] = None,
    status_code: int = 200,
):
    filter_error = False
    try:
        query = EventAppsQuery.model_validate(parse_nested(request.query_params.multi_items()))
    except ValidationError:
        logger.info("Ignoring invalid filters on event %s: %s", event.id, request.url.query)
        query = EventAppsQuery()
        filter_error = True
    filters = query.to_filter()

    event_apps_data = load_event_apps(db, event.id)
    eligible = load_eligible_platforms(db, event_apps_data)
    filtered = apply_filters(event_apps_data, filters)

    studios = load_studios(db, event_apps_data.studio_ids)
    studios_by_id = {studio.id: studio for studio in studios}
    filtered_studios = [studios_by_id[studio_id] for studio_id in filtered.studio_ids if studio_id in studios_by_id]

    has_steam = any(platform.type == PlatformType.Steam for platform in filtered.platforms.values())
    steam_export = build_steam_export(filtered.app_list) if has_steam else None

    return render(
        request,
        "events/apps.html",
        operator,
        event=event,
        filters=filters,
        edit_app_id=query.edit_app_id,
        filter_error=filter_error,
        all_platforms=event_apps_data.platforms,
        apps=filtered.app_list,
        platforms=filtered.platform_list,
        eligible=eligible,
        studios=studios,
        studios_by_id=studios_by_id,
        filtered_studios=filtered_studios,
        contact_emails=format_contact_emails(filtered_studios),
        steam_export=steam_export,
        current_url=_current_url(request),
        errors=errors or {},
        status_code=status_code,
    )


@router.get("", response_class=HTMLResponse)
async def event_apps(
    request: Request,
    event_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    event = get_or_404(db, Event, event_id)
    return _render_event_apps(request, db, operator, event)


@router.post("")
async def event_apps_action(
    request: Request,
    event_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    event = get_or_404(db, Event, event_id)
    try:
        data = parse_intent(EventAppsAction, await read_nested_form(request))
        if isinstance(data, AddPlatformIntent):
            app_platform = get_or_404(db, AppPlatform, data.app_platform_id, "App platform")
            exists = db.query(EventAppPlatform).filter_by(event_id=event.id, app_platform_id=app_platform.id).first()
            if exists:
                raise FormValidationError.single("app_platform_id", "Platform is already part of the event")
    except FormValidationError as exc:
        return _render_event_apps(request, db, operator, event, errors=exc.errors, status_code=400)

    if isinstance(data, AddPlatformIntent):
        db.add(
            EventAppPlatform(
                event_id=event.id,
                app_platform_id=app_platform.id,
                status=data.status,
                comment=data.comment,
            )
        )
        db.commit()
        logger.info("App platform %s added to event %s", app_platform.id, event.id)
        return redirect(_current_url(request))

    event_app_platform = (
        db.query(EventAppPlatform).filter_by(id=data.event_app_platform_id, event_id=event.id).first()
    )
    if event_app_platform is None:
        raise NotFoundError("Event app platform", data.event_app_platform_id)

    if isinstance(data, DeletePlatformIntent):
        db.delete(event_app_platform)
        db.commit()
        logger.info("Participation %s removed from event %s", event_app_platform.id, event.id)
    elif isinstance(data, SavePlatformIntent):
        event_app_platform.status = data.status
        event_app_platform.comment = data.comment
        db.commit()
    return redirect(_current_url(request))


# =========================
# Add apps wizard
# =========================

@router.get("/add-apps", response_class=HTMLResponse)
async def add_apps(
    request: Request,
    event_id: int,
    group_by: str = GroupBy.none.value,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    event = get_or_404(db, Event, event_id)
    try:
        grouping = GroupBy(group_by)
    except ValueError:
        grouping = GroupBy.none
    return render(
        request,
        "events/add_apps.html",
        operator,
        event=event,
        group_by=grouping,
        groups=load_selectable_groups(db, event.id, grouping),
    )


@router.get("/add-apps/select-platforms", response_class=HTMLResponse)
async def select_platforms(
    request: Request,
    event_id: int,
    db: Session = Depends(get_db),
    flash: FlashStore = Depends(get_flash),
    operator: CurrentOperator = Depends(require_admin),
):
    event = get_or_404(db, Event, event_id)
    selection = take_selection(flash, event.id)
    if selection is None:
        return render(request, "events/select_platforms.html", operator, event=event, apps=None)
    return render(
        request,
        "events/select_platforms.html",
        operator,
        event=event,
        apps=load_selected_apps(db, event.id, selection),
        default_checked=selection.group_by == GroupBy.platform,
    )


def _rows_by_app_platform(values: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    rows = {}
    apps = values.get("apps")
    if not isinstance(apps, list):
        return rows
    for app in apps:
        app_platforms = app.get("app_platforms") if isinstance(app, dict) else None
        for row in app_platforms if isinstance(app_platforms, list) else []:
            if isinstance(row, dict) and row.get("app_platform_id"):
                rows[str(row["app_platform_id"])] = row
    return rows


def _reload_posted_apps(db: Session, event_id: int, posted_ids: List[str]):
    ids = [int(value) for value in posted_ids if value.isdigit()]
    app_platforms = db.query(AppPlatform).filter(AppPlatform.id.in_(ids)).all() if ids else []
    selection = Selection(
        group_by=GroupBy.none,
        app_data=[AppChoice(app_id=ap.app_id, app_platform_id=ap.id) for ap in app_platforms],
    )
    if not selection.app_data:
        return []
    return load_selected_apps(db, event_id, selection)


@router.post("/add-apps/select-platforms", response_class=HTMLResponse)
async def select_platforms_action(
    request: Request,
    event_id: int,
    db: Session = Depends(get_db),
    flash: FlashStore = Depends(get_flash),
    operator: CurrentOperator = Depends(require_admin),
):
    event = get_or_404(db, Event, event_id)
    values = await read_nested_form(request)

    try:
        data = parse_intent(WizardAction, values)
        if isinstance(data, SaveIntent):
            validate_save(data)
    except FormValidationError as exc:
        if values.get("intent") != "save":
            raise
        posted = _rows_by_app_platform(values)
        return render(
            request,
            "events/select_platforms.html",
            operator,
            event=event,
            apps=_reload_posted_apps(db, event.id, list(posted)),
            posted=posted,
            default_checked=False,
            errors=exc.errors,
            status_code=400,
        )

    if isinstance(data, SetAppDataIntent):
        if not data.app_data:
            # nothing picked, back to step one
            return redirect(f"/admin/events/{event.id}/apps/add-apps?group_by={data.group_by.value}")
        remember_selection(flash, event.id, data)
        return redirect(f"/admin/events/{event.id}/apps/add-apps/select-platforms")

    created = bulk_add_participations(
        db,
        event.id,
        [(row.app_platform_id, row.status, row.comment) for row in data.checked_rows()],
    )
    flash.message(f"Added {created} app platforms to the event")
    return redirect(f"/admin/events/{event.id}/apps")
