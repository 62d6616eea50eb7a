"""
Cell Registry - Live mapping of cell id to display handle and settings
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

from .cell_settings import CellSettings
from ..host.interfaces import DisplayHandle


@dataclass(frozen=True)
class Cell:
    """One registered key: its host context id, handle, and settings"""

    id: str
    handle: DisplayHandle
    settings: CellSettings


class CellRegistry:
    """
    Source of truth for which cells are currently visible.

    All access happens on the event loop thread, so no locking is needed;
    callers that iterate across an await must use snapshot().
    """

    def __init__(self):
        self._cells: Dict[str, Cell] = {}

    def upsert(self, cell_id: str, handle: DisplayHandle, settings: CellSettings) -> None:
        """Insert a cell or replace the entry already registered under its id"""
        self._cells[cell_id] = Cell(cell_id, handle, settings)

    def remove(self, cell_id: str) -> bool:
        """
        Remove a cell.

        Returns:
            True if an entry existed and was deleted
        """
        return self._cells.pop(cell_id, None) is not None

    def remove_if(self, cell_id: str, handle: DisplayHandle) -> bool:
        """
        Remove a cell only if its id is still bound to the given handle.
        Ids can be reused by a new key after removal.
        """
        cell = self._cells.get(cell_id)
        if cell is None or cell.handle is not handle:
            return False
        del self._cells[cell_id]
        return True

    def get(self, cell_id: str) -> Optional[Cell]:
        return self._cells.get(cell_id)

    def snapshot(self) -> List[Cell]:
        """Point-in-time copy, safe to iterate while handlers mutate the registry"""
        return list(self._cells.values())

    def size(self) -> int:
        return len(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def __contains__(self, cell_id: object) -> bool:
        return cell_id in self._cells
