"""Event / app / platform association engine.

Everything here works on ORM rows that were already loaded for the current
request: the participation rows of one event are folded into apps and
platforms, then narrowed down by the filters of the event apps page.  Nothing
is cached between requests, every page view recomputes from the database.

Ordering is part of the contract.  ``EventApps.apps`` and
``EventApps.platforms`` are insertion-ordered dicts; apps appear in the order
of the participation scan (sorted by app name), the app platforms of one app
appear in scan order, and platforms appear in order of first discovery.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Union
from urllib.parse import urlencode

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload, selectinload

from .errors import AggregationIntegrityError
from .models import (
    App,
    AppPlatform,
    AppType,
    EventAppPlatform,
    ParticipationStatus,
    Platform,
    Studio,
    StudioMember,
)

logger = logging.getLogger(__name__)

OK_PREFIX = "OK_"


def is_status_ok(status: Union[ParticipationStatus, str, None]) -> bool:
    if status is None:
        return False
    text = status.value if isinstance(status, ParticipationStatus) else str(status)
    return text.startswith(OK_PREFIX)


@dataclass
class EventPlatformEntry:
    """An app platform as seen from one event: the release plus its participation."""

    app_platform: AppPlatform
    event_app_platform_id: int
    status: ParticipationStatus
    comment: Optional[str]

    @property
    def id(self) -> int:
        return self.app_platform.id

    @property
    def platform(self) -> Platform:
        return self.app_platform.platform

    @property
    def platform_id(self) -> int:
        return self.app_platform.platform_id

    @property
    def is_ok(self) -> bool:
        return is_status_ok(self.status)


@dataclass
class AppData:
    app: App
    app_platforms: List[EventPlatformEntry] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.app.id

    @property
    def name(self) -> str:
        return self.app.name

    @property
    def type(self) -> AppType:
        return self.app.type

    @property
    def studio_id(self) -> int:
        return self.app.studio_id

    def entry_for(self, platform_id: int) -> Optional[EventPlatformEntry]:
        for entry in self.app_platforms:
            if entry.platform_id == platform_id:
                return entry
        return None


@dataclass
class EventApps:
    apps: Dict[int, AppData] = field(default_factory=dict)
    platforms: Dict[int, Platform] = field(default_factory=dict)

    @property
    def app_list(self) -> List[AppData]:
        return list(self.apps.values())

    @property
    def platform_list(self) -> List[Platform]:
        return list(self.platforms.values())

    @property
    def studio_ids(self) -> List[int]:
        return list(dict.fromkeys(app.studio_id for app in self.apps.values()))


def aggregate_event_apps(event_app_platforms: Iterable[EventAppPlatform]) -> EventApps:
    """Fold participation rows into apps and platforms.

    The rows must already be sorted by app name; the resulting app order is
    the order of first appearance.  A row that cannot be resolved to an app
    platform and its app aborts the whole aggregation.
    """
    result = EventApps()
    for event_app_platform in event_app_platforms:
        app_platform = event_app_platform.app_platform
        if app_platform is None or app_platform.app is None or app_platform.platform is None:
            logger.error(
                "Participation %s has no resolvable app (app platform %s)",
                event_app_platform.id,
                event_app_platform.app_platform_id,
            )
            raise AggregationIntegrityError(
                f"Failed to find app for participation {event_app_platform.id}"
            )

        app_data = result.apps.get(app_platform.app_id)
        if app_data is None:
            app_data = AppData(app=app_platform.app)
            result.apps[app_platform.app_id] = app_data
        app_data.app_platforms.append(
            EventPlatformEntry(
                app_platform=app_platform,
                event_app_platform_id=event_app_platform.id,
                status=event_app_platform.status,
                comment=event_app_platform.comment,
            )
        )

        platform = app_platform.platform
        result.platforms.setdefault(platform.id, platform)
    return result


def load_event_apps(db: Session, event_id: int) -> EventApps:
    event_app_platforms = (
        db.query(EventAppPlatform)
        .outerjoin(EventAppPlatform.app_platform)
        .outerjoin(AppPlatform.app)
        .filter(EventAppPlatform.event_id == event_id)
        .options(
            joinedload(EventAppPlatform.app_platform).joinedload(AppPlatform.app),
            joinedload(EventAppPlatform.app_platform).joinedload(AppPlatform.platform),
            joinedload(EventAppPlatform.app_platform).selectinload(AppPlatform.links),
        )
        .order_by(App.name, EventAppPlatform.id)
        .all()
    )
    return aggregate_event_apps(event_app_platforms)


class EligiblePlatform(NamedTuple):
    app_platform_id: int
    platform: Platform


def eligible_platforms(
    event_apps: EventApps, app_platforms: Iterable[AppPlatform]
) -> Dict[int, List[EligiblePlatform]]:
    """Releases of the event's apps that are not part of the event yet.

    Every app of the event gets an entry, possibly empty.  Releases are
    matched by platform: an app has at most one release per platform.
    """
    result: Dict[int, List[EligiblePlatform]] = {app_id: [] for app_id in event_apps.apps}
    for app_platform in app_platforms:
        app_data = event_apps.apps.get(app_platform.app_id)
        if app_data is None:
            continue
        if app_data.entry_for(app_platform.platform_id) is None:
            result[app_platform.app_id].append(
                EligiblePlatform(app_platform_id=app_platform.id, platform=app_platform.platform)
            )
    return result


def load_eligible_platforms(db: Session, event_apps: EventApps) -> Dict[int, List[EligiblePlatform]]:
    app_platforms: List[AppPlatform] = []
    if event_apps.apps:
        app_platforms = (
            db.query(AppPlatform)
            .join(AppPlatform.platform)
            .filter(AppPlatform.app_id.in_(list(event_apps.apps)))
            .options(joinedload(AppPlatform.platform))
            .order_by(Platform.name)
            .all()
        )
    return eligible_platforms(event_apps, app_platforms)


FILTER_FACETS = ("platform", "studio", "status", "type")


@dataclass(frozen=True)
class ParticipationFilter:
    """Facets of the event apps page.

    ``None`` means the facet is not active.  Facets combine with AND, values
    inside a facet with OR.
    """

    platform: Optional[FrozenSet[int]] = None
    studio: Optional[FrozenSet[int]] = None
    status: Optional[FrozenSet[ParticipationStatus]] = None
    type: Optional[FrozenSet[AppType]] = None

    @property
    def is_active(self) -> bool:
        return any(getattr(self, facet) is not None for facet in FILTER_FACETS)

    def active_facets(self) -> Dict[str, FrozenSet]:
        return {
            facet: getattr(self, facet)
            for facet in FILTER_FACETS
            if getattr(self, facet) is not None
        }

    def matches_app(self, app: AppData) -> bool:
        if self.studio is not None and app.studio_id not in self.studio:
            return False
        if self.type is not None and app.type not in self.type:
            return False
        return True

    def matches_entry(self, entry: EventPlatformEntry) -> bool:
        if self.status is not None and entry.status not in self.status:
            return False
        if self.platform is not None and entry.platform_id not in self.platform:
            return False
        return True

    def merged(self, **facets: Iterable) -> "ParticipationFilter":
        values = {}
        for facet in FILTER_FACETS:
            current = getattr(self, facet)
            added = facets.get(facet)
            if added is None:
                values[facet] = current
            else:
                values[facet] = frozenset(current or ()) | frozenset(added)
        return ParticipationFilter(**values)

    def query_items(self) -> List[tuple]:
        items = []
        for facet, values in self.active_facets().items():
            for value in sorted(str(_plain(v)) for v in values):
                items.append((f"filters[{facet}][]", value))
        return items

    def to_query(self, edit_app_id: Optional[int] = None) -> str:
        items = self.query_items()
        if edit_app_id is not None:
            items.insert(0, ("edit_app_id", str(edit_app_id)))
        return "?" + urlencode(items) if items else "?"


def _plain(value):
    return value.value if hasattr(value, "value") else value


def apply_filters(event_apps: EventApps, filters: ParticipationFilter) -> EventApps:
    """Narrow apps and platforms down to what the filters select.

    Studio and type facets test the app itself.  Platform and status facets
    are tested together on each app platform, so an app survives only if a
    single one of its app platforms satisfies both.  The platform list is
    rebuilt from the matching app platforms of surviving apps.
    """
    if not filters.is_active:
        return event_apps

    result = EventApps()
    for app_id, app in event_apps.apps.items():
        if not filters.matches_app(app):
            continue
        matching = [entry for entry in app.app_platforms if filters.matches_entry(entry)]
        if not matching:
            continue
        result.apps[app_id] = app
        for entry in matching:
            result.platforms.setdefault(entry.platform_id, entry.platform)
    return result


@dataclass
class PlatformSummary:
    platform: Platform
    app_count: int
    studio_count: int


def summarize_platforms(event_apps: EventApps) -> List[PlatformSummary]:
    summaries = []
    for platform_id, platform in event_apps.platforms.items():
        apps = [app for app in event_apps.apps.values() if app.entry_for(platform_id) is not None]
        summaries.append(
            PlatformSummary(
                platform=platform,
                app_count=len(apps),
                studio_count=len({app.studio_id for app in apps}),
            )
        )
    return summaries


def count_statuses(db: Session, event_id: int) -> List[tuple]:
    """(status, participation count) pairs of an event, ordered by status."""
    return (
        db.query(EventAppPlatform.status, func.count(EventAppPlatform.id))
        .filter(EventAppPlatform.event_id == event_id)
        .group_by(EventAppPlatform.status)
        .order_by(EventAppPlatform.status)
        .all()
    )


def load_studios(db: Session, studio_ids: Iterable[int]) -> List[Studio]:
    studio_ids = list(studio_ids)
    if not studio_ids:
        return []
    return (
        db.query(Studio)
        .filter(Studio.id.in_(studio_ids))
        .options(joinedload(Studio.main_contact).joinedload(StudioMember.user))
        .order_by(Studio.name)
        .all()
    )


def format_contact_emails(studios: Iterable[Studio]) -> str:
    contacts = []
    for studio in studios:
        if studio.main_contact is None or studio.main_contact.user is None:
            continue
        user = studio.main_contact.user
        contacts.append(f'"{user.name} - {studio.name}" <{user.email}>')
    return ", ".join(contacts)
