"""Pytest configuration and shared fakes for the Big Clock tests."""
from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

_REPO_ROOT = Path(__file__).resolve().parents[1]
_root_str = str(_REPO_ROOT)
if _root_str not in sys.path:
    sys.path.insert(0, _root_str)

from big_clock.core.logging_service import LoggingService  # noqa: E402


class FakeClock:
    """Settable clock; the scheduler reads it through __call__."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeHandle:
    """Display handle recording every image and title pushed to it."""

    def __init__(self, name: str = "key", fail: bool = False):
        self.name = name
        self.fail = fail
        self.images: List[str] = []
        self.titles: List[str] = []

    async def set_image(self, image: str) -> None:
        if self.fail:
            raise RuntimeError(f"{self.name} rejected image")
        self.images.append(image)

    async def set_title(self, title: str) -> None:
        self.titles.append(title)


class RecordingDispatcher:
    """Stands in for RenderDispatcher and records (handle, glyph, settings)."""

    def __init__(self):
        self.calls: List[tuple] = []

    async def render(self, handle: Any, glyph: str, settings: Any) -> None:
        await handle.set_image(glyph)
        await handle.set_title("")
        self.calls.append((handle, glyph, settings))

    def glyphs_for(self, handle: Any) -> List[str]:
        return [glyph for h, glyph, _ in self.calls if h is handle]

    def clear(self) -> None:
        self.calls.clear()


class FakeSettingsStore:
    def __init__(self, fail_save: bool = False, fail_read: bool = False):
        self.saved: List[tuple] = []
        self.stored: Dict[Any, Dict[str, Any]] = {}
        self.fail_save = fail_save
        self.fail_read = fail_read

    async def save_settings(self, handle: Any, settings: Dict[str, Any]) -> None:
        if self.fail_save:
            raise ConnectionError("settings write failed")
        self.saved.append((handle, dict(settings)))
        self.stored[handle] = dict(settings)

    async def read_settings(self, handle: Any) -> Optional[Dict[str, Any]]:
        if self.fail_read:
            raise ConnectionError("settings read failed")
        return self.stored.get(handle)


@pytest.fixture
def logger() -> LoggingService:
    return LoggingService("big-clock-test", "DEBUG")
