from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from ..auth import (
    CurrentOperator,
    authenticate,
    get_optional_operator,
    login_user,
    logout_user,
    require_admin,
)
from ..database import get_db
from ..errors import FormValidationError
from ..schemas import LoginForm, validate_form
from ..web import redirect, render

router = APIRouter()


def safe_redirect_target(value: Optional[str], default: str = "/admin") -> str:
    # only local paths, no "//host" or absolute URLs
    if not value or not value.startswith("/") or value.startswith("//"):
        return default
    return value


@router.get("/", response_class=HTMLResponse)
async def index(request: Request, operator: Optional[CurrentOperator] = Depends(get_optional_operator)):
    return render(request, "index.html", operator)


@router.get("/admin")
async def admin_index(operator: CurrentOperator = Depends(require_admin)):
    return redirect("/admin/events")


@router.get("/login", response_class=HTMLResponse)
async def login_form(
    request: Request,
    redirect_to: str = "",
    operator: Optional[CurrentOperator] = Depends(get_optional_operator),
):
    if operator is not None:
        return redirect(safe_redirect_target(redirect_to))
    return render(request, "login.html", values={"redirect_to": redirect_to})


@router.post("/login", response_class=HTMLResponse)
async def login(
    request: Request,
    db: Session = Depends(get_db),
    email: str = Form(""),
    password: str = Form(""),
    redirect_to: str = Form(""),
):
    values = {"email": email, "redirect_to": redirect_to}
    try:
        data = validate_form(LoginForm, {"email": email, "password": password, "redirect_to": redirect_to})
    except FormValidationError as exc:
        return render(request, "login.html", values=values, errors=exc.errors, status_code=400)

    user = authenticate(db, data.email, data.password)
    if user is None:
        return render(
            request,
            "login.html",
            values=values,
            errors={"email": "Invalid email or password"},
            status_code=401,
        )

    login_user(request, user)
    return redirect(safe_redirect_target(data.redirect_to))


@router.post("/logout")
async def logout(request: Request):
    logout_user(request)
    return redirect("/")
