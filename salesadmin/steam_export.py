"""Tab separated Steam sale data export.

One row per Steam store link of the (filtered) event apps::

    <id> TAB <kind> [TAB "<tag>;<tag>"] TAB // <app name> - <link title>

The trailing ``//`` part is a comment for humans only.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List

from .models import DEFAULT_RELEASE_STATE, PlatformType
from .participation import AppData, EventPlatformEntry

logger = logging.getLogger(__name__)

STEAM_STORE_URL_RE = re.compile(r"/store\.steampowered\.com/(app|sub|bundle)/(\d+)")

# Steam calls a plain app a "game" in sale data files
KIND_LABELS = {"app": "game"}


@dataclass
class MissingLink:
    app_id: int
    app_name: str
    app_platform_id: int
    platform_name: str


@dataclass
class SteamExport:
    rows: List[str] = field(default_factory=list)
    missing_links: List[MissingLink] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.rows)


def entry_tags(entry: EventPlatformEntry) -> List[str]:
    app_platform = entry.app_platform
    tags = []
    if app_platform.release_state is not None and app_platform.release_state != DEFAULT_RELEASE_STATE:
        tags.append(f"[Custom] Release state: {app_platform.release_state.value}")
    if app_platform.is_early_access:
        tags.append("[Custom] Early Access")
    if app_platform.is_free_to_play:
        tags.append("[Custom] Free to play")
    return tags


def build_steam_export(apps: Iterable[AppData]) -> SteamExport:
    export = SteamExport()
    for app in apps:
        for entry in app.app_platforms:
            if entry.platform.type != PlatformType.Steam:
                continue

            tags = entry_tags(entry)
            has_steam_link = False
            for link in entry.app_platform.links:
                match = STEAM_STORE_URL_RE.search(link.url or "")
                if not match:
                    continue
                has_steam_link = True

                kind, steam_id = match.groups()
                row = [steam_id, KIND_LABELS.get(kind, kind)]
                if tags:
                    row.append('"{}"'.format(";".join(tags)))
                row.append(f"// {app.name} - {link.title}")
                export.rows.append("\t".join(row))

            if not has_steam_link:
                export.missing_links.append(
                    MissingLink(
                        app_id=app.id,
                        app_name=app.name,
                        app_platform_id=entry.id,
                        platform_name=entry.platform.name,
                    )
                )

    if export.missing_links:
        logger.info("Steam export: %d app platforms without a store link", len(export.missing_links))
    return export
