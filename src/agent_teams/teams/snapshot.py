"""Snapshot persistence for the team registry.

Snapshots are plain JSON documents produced by ``RegistryStore.to_dict``.
They capture teams, members, tasks and messages; running work is not
recoverable from a snapshot.

Directory layout:
    base_path/
    └── snapshot.json
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable

import aiofiles
import aiofiles.os

from agent_teams.observability.logging import get_logger

logger = get_logger("agent_teams.snapshot")


@runtime_checkable
class SnapshotStore(Protocol):
    """Storage backend for registry snapshots."""

    async def save(self, snapshot: Dict[str, Any]) -> None:
        ...

    async def load(self) -> Optional[Dict[str, Any]]:
        ...

    async def delete(self) -> bool:
        ...


class FileSnapshotStore:
    """Snapshot store writing a single JSON file.

    Example:
        store = FileSnapshotStore(Path("./state"))
        await manager.save_snapshot(store)

        manager = await TeamManager.restore(store)
    """

    def __init__(self, base_path: Union[str, Path], filename: str = "snapshot.json") -> None:
        """Initialize the store.

        Args:
            base_path: Directory holding the snapshot file.
            filename: Name of the snapshot file.
        """
        self._base_path = Path(base_path)
        self._snapshot_file = self._base_path / filename

    @property
    def path(self) -> Path:
        return self._snapshot_file

    async def _ensure_directory(self) -> None:
        if not self._base_path.exists():
            await aiofiles.os.makedirs(str(self._base_path), exist_ok=True)

    async def save(self, snapshot: Dict[str, Any]) -> None:
        """Write the snapshot, replacing any previous one."""
        await self._ensure_directory()
        async with aiofiles.open(self._snapshot_file, "w", encoding="utf-8") as f:
            await f.write(json.dumps(snapshot, indent=2, ensure_ascii=False, default=str))
        logger.debug("Snapshot saved", path=str(self._snapshot_file))

    async def load(self) -> Optional[Dict[str, Any]]:
        """Read the snapshot.

        Returns:
            The snapshot, or None if no readable snapshot exists.
        """
        if not self._snapshot_file.exists():
            return None
        try:
            async with aiofiles.open(self._snapshot_file, "r", encoding="utf-8") as f:
                content = await f.read()
        except OSError as exc:
            logger.warning("Snapshot unreadable", path=str(self._snapshot_file), error=str(exc))
            return None
        if not content.strip():
            return None
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            logger.warning("Snapshot corrupt", path=str(self._snapshot_file), error=str(exc))
            return None

    async def delete(self) -> bool:
        """Delete the snapshot file if present."""
        if not self._snapshot_file.exists():
            return False
        await aiofiles.os.remove(str(self._snapshot_file))
        return True
