from __future__ import annotations

from typing import Any, MutableMapping, Optional

from fastapi import Request

FLASH_PREFIX = "flash:"
GLOBAL_MESSAGE = "global_message"


class FlashStore:
    """Read-once values kept in the operator's session for the next request."""

    def __init__(self, session: MutableMapping[str, Any]):
        self._session = session

    def set(self, key: str, payload: Any) -> None:
        self._session[FLASH_PREFIX + key] = payload

    def pop(self, key: str, default: Optional[Any] = None) -> Any:
        return self._session.pop(FLASH_PREFIX + key, default)

    def message(self, text: str) -> None:
        self.set(GLOBAL_MESSAGE, text)

    def pop_message(self) -> Optional[str]:
        return self.pop(GLOBAL_MESSAGE)


def get_flash(request: Request) -> FlashStore:
    return FlashStore(request.session)
