"""Two step "add apps to event" wizard.

Step one picks apps (optionally shown grouped by studio or platform), step two
picks status and comment per app platform.  The step one selection is handed
to step two through the session flash store and can be read exactly once.
"""
from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Annotated, Dict, Iterable, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, BeforeValidator, Field, Json, TypeAdapter
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from .database import atomic
from .errors import FormValidationError, NotFoundError
from .flash import FlashStore
from .forms import blank_to_none
from .models import App, AppPlatform, EventAppPlatform, ParticipationStatus, Platform, Studio
from .schemas import Checkbox, OptionalText

logger = logging.getLogger(__name__)


class GroupBy(str, enum.Enum):
    none = "none"
    studio = "studio"
    platform = "platform"


class AppChoice(BaseModel):
    app_id: int
    # only set when step one was grouped by platform
    app_platform_id: Optional[int] = None


class SetAppDataIntent(BaseModel):
    intent: Literal["set-app-data"]
    group_by: GroupBy = GroupBy.none
    app_data: List[Json[AppChoice]] = Field(default_factory=list)


class Selection(BaseModel):
    group_by: GroupBy
    app_data: List[AppChoice]


class SelectedRow(BaseModel):
    app_platform_id: int
    checked: Checkbox = False
    status: Annotated[Optional[ParticipationStatus], BeforeValidator(blank_to_none)] = None
    comment: OptionalText = None


class SelectedApp(BaseModel):
    app_platforms: List[SelectedRow] = Field(default_factory=list)


class SaveIntent(BaseModel):
    intent: Literal["save"]
    apps: List[SelectedApp] = Field(default_factory=list)

    def checked_rows(self) -> List[SelectedRow]:
        return [row for app in self.apps for row in app.app_platforms if row.checked]


WizardAction = TypeAdapter(
    Annotated[Union[SetAppDataIntent, SaveIntent], Field(discriminator="intent")]
)


def selection_flash_key(event_id: int) -> str:
    return f"add-apps:{event_id}"


def remember_selection(flash: FlashStore, event_id: int, data: SetAppDataIntent) -> None:
    selection = Selection(group_by=data.group_by, app_data=data.app_data)
    flash.set(selection_flash_key(event_id), selection.model_dump(mode="json"))


def take_selection(flash: FlashStore, event_id: int) -> Optional[Selection]:
    payload = flash.pop(selection_flash_key(event_id))
    if payload is None:
        return None
    return Selection.model_validate(payload)


@dataclass
class SelectableApp:
    id: int
    name: str
    app_platform_id: Optional[int] = None

    @property
    def option_value(self) -> str:
        return json.dumps({"app_id": self.id, "app_platform_id": self.app_platform_id})


@dataclass
class AppGroup:
    id: str
    name: str
    apps: List[SelectableApp] = field(default_factory=list)


def _participating_ids(event_id: int):
    return select(EventAppPlatform.app_platform_id).where(EventAppPlatform.event_id == event_id)


def _missing_app_platforms(db: Session, event_id: int):
    return (
        db.query(AppPlatform)
        .join(AppPlatform.app)
        .join(AppPlatform.platform)
        .filter(AppPlatform.id.not_in(_participating_ids(event_id)))
        .options(joinedload(AppPlatform.app), joinedload(AppPlatform.platform))
        .order_by(App.name, Platform.name)
    )


def load_selectable_groups(db: Session, event_id: int, group_by: GroupBy) -> List[AppGroup]:
    """Apps with at least one release that is not in the event yet."""
    app_platforms = _missing_app_platforms(db, event_id).all()

    apps: Dict[int, Tuple[App, List[AppPlatform]]] = {}
    for app_platform in app_platforms:
        apps.setdefault(app_platform.app_id, (app_platform.app, []))[1].append(app_platform)

    if group_by == GroupBy.studio:
        studio_ids = {app.studio_id for app, _ in apps.values()}
        studios = (
            db.query(Studio).filter(Studio.id.in_(studio_ids)).order_by(Studio.name).all()
            if studio_ids
            else []
        )
        return [
            AppGroup(
                id=str(studio.id),
                name=studio.name,
                apps=[
                    SelectableApp(id=app.id, name=app.name)
                    for app, _ in apps.values()
                    if app.studio_id == studio.id
                ],
            )
            for studio in studios
        ]

    if group_by == GroupBy.platform:
        groups: Dict[int, AppGroup] = {}
        for app_platform in sorted(app_platforms, key=lambda ap: (ap.platform.name, ap.app.name)):
            group = groups.get(app_platform.platform_id)
            if group is None:
                group = AppGroup(id=str(app_platform.platform_id), name=app_platform.platform.name)
                groups[app_platform.platform_id] = group
            group.apps.append(
                SelectableApp(
                    id=app_platform.app_id,
                    name=app_platform.app.name,
                    app_platform_id=app_platform.id,
                )
            )
        return list(groups.values())

    return [
        AppGroup(
            id="default",
            name="",
            apps=[SelectableApp(id=app.id, name=app.name) for app, _ in apps.values()],
        )
    ]


@dataclass
class WizardApp:
    id: int
    name: str
    app_platforms: List[AppPlatform] = field(default_factory=list)


def load_selected_apps(db: Session, event_id: int, selection: Selection) -> List[WizardApp]:
    app_ids = [choice.app_id for choice in selection.app_data]
    app_platform_ids = [
        choice.app_platform_id for choice in selection.app_data if choice.app_platform_id is not None
    ]

    query = _missing_app_platforms(db, event_id).filter(AppPlatform.app_id.in_(app_ids))
    if app_platform_ids:
        query = query.filter(AppPlatform.id.in_(app_platform_ids))

    apps: Dict[int, WizardApp] = {}
    for app_platform in query.all():
        app = apps.get(app_platform.app_id)
        if app is None:
            app = WizardApp(id=app_platform.app_id, name=app_platform.app.name)
            apps[app_platform.app_id] = app
        app.app_platforms.append(app_platform)
    return list(apps.values())


def validate_save(data: SaveIntent) -> None:
    errors: Dict[str, str] = {}
    if not data.checked_rows():
        errors["app_platforms"] = "No platforms selected"
    for app_index, app in enumerate(data.apps):
        for row_index, row in enumerate(app.app_platforms):
            if row.checked and row.status is None:
                errors[f"apps[{app_index}].app_platforms[{row_index}].status"] = "Select a status"
    if errors:
        raise FormValidationError(errors)


def bulk_add_participations(
    db: Session,
    event_id: int,
    rows: Iterable[Tuple[int, ParticipationStatus, Optional[str]]],
) -> int:
    """Insert participations, skipping app platforms already in the event."""
    rows = list(rows)
    requested = {app_platform_id for app_platform_id, _, _ in rows}
    known = {
        app_platform_id
        for (app_platform_id,) in db.query(AppPlatform.id).filter(AppPlatform.id.in_(requested))
    }
    unknown = requested - known
    if unknown:
        raise NotFoundError("App platform", min(unknown))

    existing = {
        app_platform_id
        for (app_platform_id,) in db.query(EventAppPlatform.app_platform_id).filter_by(event_id=event_id)
    }

    created = 0
    with atomic(db):
        for app_platform_id, status, comment in rows:
            if app_platform_id in existing:
                continue
            existing.add(app_platform_id)
            db.add(
                EventAppPlatform(
                    event_id=event_id,
                    app_platform_id=app_platform_id,
                    status=status,
                    comment=comment,
                )
            )
            created += 1

    logger.info("Added %d app platforms to event %s (%d skipped)", created, event_id, len(rows) - created)
    return created
