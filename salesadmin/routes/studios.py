from __future__ import annotations

import logging
from typing import Iterable, List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from ..auth import CurrentOperator, require_admin
from ..config import MAX_LINK_COUNT
from ..database import atomic, get_db
from ..errors import FormValidationError, NotFoundError
from ..flash import FlashStore, get_flash
from ..forms import read_nested_form
from ..models import Studio, StudioLink, StudioMember, User
from ..schemas import LinkForm, MemberForm, RemoveIntent, StudioEditAction, StudioForm, parse_intent, validate_form
from ..web import get_or_404, redirect, render

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/studios")


def build_studio_links(links: Iterable[LinkForm]) -> List[StudioLink]:
    return [
        StudioLink(url=link.url, title=link.title, type=link.type, comment=link.comment)
        for link in links
        if link.is_filled
    ]


def _check_unique_name(db: Session, name: str, studio_id=None) -> None:
    query = db.query(Studio.id).filter(Studio.name == name)
    if studio_id is not None:
        query = query.filter(Studio.id != studio_id)
    if query.first() is not None:
        raise FormValidationError.single("name", "A studio with this name already exists")


def _load_studio(db: Session, studio_id: int) -> Studio:
    studio = (
        db.query(Studio)
        .options(
            selectinload(Studio.members).joinedload(StudioMember.user),
            selectinload(Studio.links),
            selectinload(Studio.apps),
            joinedload(Studio.main_contact),
        )
        .filter_by(id=studio_id)
        .first()
    )
    if studio is None:
        raise NotFoundError("Studio", studio_id)
    return studio


@router.get("", response_class=HTMLResponse)
async def studio_list(
    request: Request,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    studios = (
        db.query(Studio)
        .options(joinedload(Studio.main_contact).joinedload(StudioMember.user), selectinload(Studio.apps))
        .order_by(Studio.name)
        .all()
    )
    return render(request, "studios/list.html", operator, studios=studios)


@router.get("/new", response_class=HTMLResponse)
async def studio_new_form(request: Request, operator: CurrentOperator = Depends(require_admin)):
    return render(request, "studios/new.html", operator)


@router.post("/new", response_class=HTMLResponse)
async def studio_create(
    request: Request,
    db: Session = Depends(get_db),
    flash: FlashStore = Depends(get_flash),
    operator: CurrentOperator = Depends(require_admin),
):
    values = await read_nested_form(request)
    try:
        data = validate_form(StudioForm, values)
        _check_unique_name(db, data.name)
        studio = Studio(name=data.name, comment=data.comment, links=build_studio_links(data.links))
        with atomic(db):
            db.add(studio)
    except IntegrityError:
        errors = {"name": "Failed to store studio"}
    except FormValidationError as exc:
        errors = exc.errors
    else:
        logger.info("Studio %s created by user %s", studio.id, operator.id)
        flash.message(f"Studio {studio.name} created")
        return redirect(f"/admin/studios/{studio.id}")

    return render(request, "studios/new.html", operator, values=values, errors=errors, status_code=400)


@router.get("/{studio_id}", response_class=HTMLResponse)
async def studio_detail(
    request: Request,
    studio_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    studio = _load_studio(db, studio_id)
    return render(request, "studios/detail.html", operator, studio=studio)


@router.get("/{studio_id}/edit", response_class=HTMLResponse)
async def studio_edit_form(
    request: Request,
    studio_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    studio = _load_studio(db, studio_id)
    return render(request, "studios/edit.html", operator, studio=studio)


@router.post("/{studio_id}/edit", response_class=HTMLResponse)
async def studio_update(
    request: Request,
    studio_id: int,
    db: Session = Depends(get_db),
    flash: FlashStore = Depends(get_flash),
    operator: CurrentOperator = Depends(require_admin),
):
    studio = _load_studio(db, studio_id)
    values = await read_nested_form(request)
    try:
        data = parse_intent(StudioEditAction, values)
        if not isinstance(data, RemoveIntent):
            _check_unique_name(db, data.name, studio.id)
            if data.main_contact_id is not None and data.main_contact_id not in {m.id for m in studio.members}:
                raise FormValidationError.single("main_contact_id", "Main contact must be a member of the studio")
            new_links = build_studio_links(data.links)
            if len(studio.links) + len(new_links) > MAX_LINK_COUNT:
                raise FormValidationError.single("links", f"A studio can have at most {MAX_LINK_COUNT} links")
    except FormValidationError as exc:
        return render(
            request,
            "studios/edit.html",
            operator,
            studio=studio,
            values=values,
            errors=exc.errors,
            status_code=400,
        )

    if isinstance(data, RemoveIntent):
        db.delete(studio)
        db.commit()
        logger.info("Studio %s deleted by user %s", studio_id, operator.id)
        flash.message(f"Studio {studio.name} deleted")
        return redirect("/admin/studios")

    with atomic(db):
        studio.name = data.name
        studio.comment = data.comment
        studio.main_contact_id = data.main_contact_id
        studio.links.extend(new_links)
    return redirect(f"/admin/studios/{studio.id}")


# =========================
# Members
# =========================

def _member_candidates(db: Session, studio_id: int):
    taken = db.query(StudioMember.user_id).filter(StudioMember.studio_id == studio_id)
    return db.query(User).filter(User.id.not_in(taken)).order_by(User.name).all()


@router.get("/{studio_id}/members/new", response_class=HTMLResponse)
async def member_new_form(
    request: Request,
    studio_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    studio = get_or_404(db, Studio, studio_id)
    return render(
        request,
        "studios/member_form.html",
        operator,
        studio=studio,
        users=_member_candidates(db, studio.id),
    )


@router.post("/{studio_id}/members/new", response_class=HTMLResponse)
async def member_create(
    request: Request,
    studio_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    studio = get_or_404(db, Studio, studio_id)
    values = await read_nested_form(request)
    try:
        data = validate_form(MemberForm, values)
        user = get_or_404(db, User, data.user_id)
        if db.query(StudioMember).filter_by(studio_id=studio.id, user_id=user.id).first():
            raise FormValidationError.single("user_id", "User is already a member of the studio")
    except FormValidationError as exc:
        return render(
            request,
            "studios/member_form.html",
            operator,
            studio=studio,
            users=_member_candidates(db, studio.id),
            values=values,
            errors=exc.errors,
            status_code=400,
        )

    member = StudioMember(studio_id=studio.id, user_id=user.id, position=data.position, comment=data.comment)
    with atomic(db):
        db.add(member)
        if data.set_as_main_contact:
            db.flush()
            studio.main_contact_id = member.id
    logger.info("User %s joined studio %s", user.id, studio.id)
    return redirect(f"/admin/studios/{studio.id}")
