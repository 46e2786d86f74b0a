from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session, joinedload, selectinload

from ..auth import CurrentOperator, hash_password, require_admin
from ..database import get_db
from ..errors import FormValidationError, NotFoundError
from ..flash import FlashStore, get_flash
from ..forms import read_nested_form
from ..models import EventCoordinator, StudioMember, User
from ..schemas import RemoveIntent, UserEditAction, UserForm, parse_intent, validate_form
from ..web import get_or_404, redirect, render

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/users")


def _check_unique_email(db: Session, email: str, user_id: Optional[int] = None) -> None:
    query = db.query(User.id).filter(User.email == email)
    if user_id is not None:
        query = query.filter(User.id != user_id)
    if query.first() is not None:
        raise FormValidationError.single("email", "A user with this email already exists")


@router.get("", response_class=HTMLResponse)
async def user_list(
    request: Request,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    users = db.query(User).order_by(User.name).all()
    return render(request, "users/list.html", operator, users=users)


@router.get("/new", response_class=HTMLResponse)
async def user_new_form(request: Request, operator: CurrentOperator = Depends(require_admin)):
    return render(request, "users/form.html", operator, user=None)


@router.post("/new", response_class=HTMLResponse)
async def user_create(
    request: Request,
    db: Session = Depends(get_db),
    flash: FlashStore = Depends(get_flash),
    operator: CurrentOperator = Depends(require_admin),
):
    values = await read_nested_form(request)
    try:
        data = validate_form(UserForm, values)
        email = data.email.lower()
        _check_unique_email(db, email)
    except FormValidationError as exc:
        values.pop("password", None)
        values.pop("confirm_password", None)
        return render(
            request, "users/form.html", operator, user=None, values=values, errors=exc.errors, status_code=400
        )

    user = User(email=email, name=data.name, role=data.role, password_hash=hash_password(data.password))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User %s created by user %s", user.id, operator.id)
    flash.message(f"User {user.name} created")
    return redirect(f"/admin/users/{user.id}")


@router.get("/{user_id}", response_class=HTMLResponse)
async def user_detail(
    request: Request,
    user_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    user = (
        db.query(User)
        .options(
            selectinload(User.memberships).joinedload(StudioMember.studio),
            selectinload(User.coordinated_events).joinedload(EventCoordinator.event),
        )
        .filter_by(id=user_id)
        .first()
    )
    if user is None:
        raise NotFoundError("User", user_id)
    return render(request, "users/detail.html", operator, user=user)


@router.get("/{user_id}/edit", response_class=HTMLResponse)
async def user_edit_form(
    request: Request,
    user_id: int,
    db: Session = Depends(get_db),
    operator: CurrentOperator = Depends(require_admin),
):
    user = get_or_404(db, User, user_id)
    return render(request, "users/form.html", operator, user=user)


@router.post("/{user_id}/edit", response_class=HTMLResponse)
async def user_update(
    request: Request,
    user_id: int,
    db: Session = Depends(get_db),
    flash: FlashStore = Depends(get_flash),
    operator: CurrentOperator = Depends(require_admin),
):
    user = get_or_404(db, User, user_id)
    values = await read_nested_form(request)
    try:
        data = parse_intent(UserEditAction, values)
        if isinstance(data, RemoveIntent):
            if user.id == operator.id:
                raise FormValidationError.single("intent", "You cannot remove yourself")
        else:
            _check_unique_email(db, data.email.lower(), user.id)
    except FormValidationError as exc:
        values.pop("password", None)
        values.pop("confirm_password", None)
        return render(
            request, "users/form.html", operator, user=user, values=values, errors=exc.errors, status_code=400
        )

    if isinstance(data, RemoveIntent):
        db.delete(user)
        db.commit()
        logger.info("User %s deleted by user %s", user_id, operator.id)
        flash.message(f"User {user.name} deleted")
        return redirect("/admin/users")

    user.email = data.email.lower()
    user.name = data.name
    user.role = data.role
    if data.password is not None:
        user.password_hash = hash_password(data.password)
        logger.info("Password of user %s changed by user %s", user.id, operator.id)
    db.commit()
    return redirect(f"/admin/users/{user.id}")
