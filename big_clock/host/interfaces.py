"""
Host Interfaces - Capabilities the scheduler borrows from the host
"""
from typing import Any, Dict, Optional, Protocol


class DisplayHandle(Protocol):
    """
    Opaque handle to one physical key. Owned by the host; the scheduler
    only borrows it while the key is visible.
    """

    async def set_image(self, image: str) -> None:
        """Show an image (data URL) on the key"""
        ...

    async def set_title(self, title: str) -> None:
        """Set the key's title text"""
        ...


class SettingsStore(Protocol):
    """
    Per-key settings persistence.
    """

    async def save_settings(self, handle: Any, settings: Dict[str, Any]) -> None:
        """Persist settings for a key"""
        ...

    async def read_settings(self, handle: Any) -> Optional[Dict[str, Any]]:
        """Latest known settings for a key, or None if unknown"""
        ...
