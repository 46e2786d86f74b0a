from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from urllib.parse import urlencode

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from .auth import ensure_admin_user
from .config import LOG_LEVEL, SESSION_HTTPS_ONLY, SESSION_MAX_AGE, SESSION_SECRET
from .database import Base, SessionLocal, engine
from .errors import AdminRequired, AggregationIntegrityError, FormValidationError, LoginRequired, NotFoundError
from .routes import apps, auth, event_apps, events, platforms, studios, users
from .web import BASE_DIR, redirect, templates

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# no migrations, the schema is created on import
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = SessionLocal()
    try:
        ensure_admin_user(db)
    finally:
        db.close()
    yield


app = FastAPI(title="Sales Event Admin", lifespan=lifespan)

app.add_middleware(
    SessionMiddleware,
    secret_key=SESSION_SECRET,
    max_age=SESSION_MAX_AGE,
    https_only=SESSION_HTTPS_ONLY,
    same_site="lax",
)

app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")

app.include_router(auth.router)
app.include_router(events.router)
app.include_router(event_apps.router)
app.include_router(apps.router)
app.include_router(platforms.router)
app.include_router(studios.router)
app.include_router(users.router)


def _error_page(request: Request, title: str, message: str, status_code: int, errors=None):
    return templates.TemplateResponse(
        request,
        "error.html",
        {"title": title, "message": message, "errors": errors or {}, "operator": None, "flash_message": None},
        status_code=status_code,
    )


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    return redirect("/login?" + urlencode({"redirect_to": exc.redirect_to}))


@app.exception_handler(AdminRequired)
async def admin_required_handler(request: Request, exc: AdminRequired):
    return _error_page(request, "Forbidden", "This area is for administrators only.", 403)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_page(request, "Not found", f"{exc.entity} not found", 404)


@app.exception_handler(FormValidationError)
async def form_validation_handler(request: Request, exc: FormValidationError):
    return _error_page(request, "Invalid form", "The submitted form contains errors.", 400, exc.errors)


@app.exception_handler(AggregationIntegrityError)
async def integrity_handler(request: Request, exc: AggregationIntegrityError):
    logger.error("Aggregation failed: %s", exc)
    return _error_page(request, "Data error", str(exc), 500)
