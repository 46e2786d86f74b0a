from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session, joinedload

from ..auth import CurrentOperator, require_admin, require_user
from ..database import get_db
from ..errors import FormValidationError
from ..flash import FlashStore, get_flash
from ..forms import read_nested_form
from ..models import App, AppPlatform, Event, EventAppPlatform, EventCoordinator, Platform, User
from ..participation import (
    count_statuses,
    format_contact_emails,
    load_event_apps,
    load_studios,
    summarize_platforms,
)
from ..schemas import CoordinatorForm, EventEditAction, EventForm, RemoveIntent, parse_intent, validate_form
from ..web import get_or_404, redirect, render

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/events")


@router.get("", response_class=HTMLResponse)
async def event_list(
    request: Request,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    events = db.query(Event).order_by(Event.running_from, Event.name).all()
    return render(request, "events/list.html", operator, events=events)


@router.get("/new", response_class=HTMLResponse)
async def event_new_form(request: Request, operator: CurrentOperator = Depends(require_admin)):
    return render(request, "events/form.html", operator, event=None)


@router.post("/new", response_class=HTMLResponse)
async def event_create(
    request: Request,
    db: Session = Depends(get_db),
    flash: FlashStore = Depends(get_flash),
    operator: CurrentOperator = Depends(require_admin),
):
    values = await read_nested_form(request)
    try:
        data = validate_form(EventForm, values)
    except FormValidationError as exc:
        return render(
            request, "events/form.html", operator, event=None, values=values, errors=exc.errors, status_code=400
        )

    event = Event(
        name=data.name,
        running_from=data.running_from,
        running_to=data.running_to,
        visibility=data.visibility,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Event %s created by user %s", event.id, operator.id)
    flash.message(f"Event {event.name} created")
    return redirect(f"/admin/events/{event.id}")


@router.get("/{event_id}", response_class=HTMLResponse)
async def event_detail(
    request: Request,
    event_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    event = get_or_404(db, Event, event_id)
    event_apps = load_event_apps(db, event.id)
    studios = load_studios(db, event_apps.studio_ids)

    return render(
        request,
        "events/detail.html",
        operator,
        event=event,
        app_count=len(event_apps.apps),
        platforms=summarize_platforms(event_apps),
        statuses=count_statuses(db, event.id),
        studios=studios,
        contact_emails=format_contact_emails(studios),
    )


@router.get("/{event_id}/edit", response_class=HTMLResponse)
async def event_edit_form(
    request: Request,
    event_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    event = get_or_404(db, Event, event_id)
    return render(request, "events/form.html", operator, event=event)


@router.post("/{event_id}/edit", response_class=HTMLResponse)
async def event_update(
    request: Request,
    event_id: int,
    db: Session = Depends(get_db),
    flash: FlashStore = Depends(get_flash),
    operator: CurrentOperator = Depends(require_admin),
):
    event = get_or_404(db, Event, event_id)
    values = await read_nested_form(request)
    try:
        data = parse_intent(EventEditAction, values)
    except FormValidationError as exc:
        return render(
            request, "events/form.html", operator, event=event, values=values, errors=exc.errors, status_code=400
        )

    if isinstance(data, RemoveIntent):
        db.delete(event)
        db.commit()
        logger.info("Event %s deleted by user %s", event_id, operator.id)
        flash.message(f"Event {event.name} deleted")
        return redirect("/admin/events")

    event.name = data.name
    event.running_from = data.running_from
    event.running_to = data.running_to
    event.visibility = data.visibility
    db.commit()
    return redirect(f"/admin/events/{event.id}")


# =========================
# Coordinators
# =========================

@router.get("/{event_id}/coordinators", response_class=HTMLResponse)
async def coordinator_list(
    request: Request,
    event_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    event = get_or_404(db, Event, event_id)
    coordinators = (
        db.query(EventCoordinator)
        .join(EventCoordinator.user)
        .filter(EventCoordinator.event_id == event.id)
        .options(joinedload(EventCoordinator.user))
        .order_by(User.name)
        .all()
    )
    return render(request, "events/coordinators.html", operator, event=event, coordinators=coordinators)


def _coordinator_candidates(db: Session, event_id: int):
    taken = db.query(EventCoordinator.user_id).filter(EventCoordinator.event_id == event_id)
    return db.query(User).filter(User.id.not_in(taken)).order_by(User.name).all()


@router.get("/{event_id}/coordinators/new", response_class=HTMLResponse)
async def coordinator_new_form(
    request: Request,
    event_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    event = get_or_404(db, Event, event_id)
    return render(
        request,
        "events/coordinator_form.html",
        operator,
        event=event,
        users=_coordinator_candidates(db, event.id),
    )


@router.post("/{event_id}/coordinators/new", response_class=HTMLResponse)
async def coordinator_create(
    request: Request,
    event_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    event = get_or_404(db, Event, event_id)
    values = await read_nested_form(request)
    try:
        data = validate_form(CoordinatorForm, values)
        user = get_or_404(db, User, data.user_id)
        if db.query(EventCoordinator).filter_by(event_id=event.id, user_id=user.id).first():
            raise FormValidationError.single("user_id", "User is already a coordinator")
    except FormValidationError as exc:
        return render(
            request,
            "events/coordinator_form.html",
            operator,
            event=event,
            users=_coordinator_candidates(db, event.id),
            errors=exc.errors,
            status_code=400,
        )

    db.add(EventCoordinator(event_id=event.id, user_id=user.id))
    db.commit()
    return redirect(f"/admin/events/{event.id}/coordinators")


@router.post("/{event_id}/coordinators/{coordinator_id}/delete")
async def coordinator_delete(
    event_id: int,
    coordinator_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    coordinator = db.query(EventCoordinator).filter_by(id=coordinator_id, event_id=event_id).first()
    if coordinator:
        db.delete(coordinator)
        db.commit()
    return redirect(f"/admin/events/{event_id}/coordinators")


# =========================
# Event apps of one platform
# =========================

@router.get("/{event_id}/platforms/{platform_id}", response_class=HTMLResponse)
async def event_platform(
    request: Request,
    event_id: int,
    platform_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_user),
):
    event = get_or_404(db, Event, event_id)
    platform = get_or_404(db, Platform, platform_id)
    event_app_platforms = (
        db.query(EventAppPlatform)
        .join(EventAppPlatform.app_platform)
        .join(AppPlatform.app)
        .filter(EventAppPlatform.event_id == event.id, AppPlatform.platform_id == platform.id)
        .options(joinedload(EventAppPlatform.app_platform).joinedload(AppPlatform.app).joinedload(App.studio))
        .order_by(App.name)
        .all()
    )
    return render(
        request,
        "events/platform.html",
        operator,
        event=event,
        platform=platform,
        event_app_platforms=event_app_platforms,
    )
