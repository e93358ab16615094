"""Ownership table for ephemeral in-memory handles of staged assets"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

logger = logging.getLogger("PropStage")

HANDLE_SCHEME = "blob:"

ROLE_SOURCE = "source"
ROLE_PREVIEW = "preview"
ROLE_THUMBNAIL = "thumbnail"


def is_ephemeral_locator(locator: Optional[str]) -> bool:
    return bool(locator) and locator.startswith(HANDLE_SCHEME)


@dataclass
class EphemeralHandle:
    """Session-local reference to bytes; invalid once released"""
    locator: str
    asset_id: str
    role: str
    mime_type: str
    data: Optional[bytes] = field(default=None, repr=False)
    created_at: datetime = field(default_factory=datetime.now)
    released_at: Optional[datetime] = None

    @property
    def released(self) -> bool:
        return self.released_at is not None


class HandleRegistry:
    """Tracks every ephemeral handle by the asset that owns it.

    Each handle is released exactly once: either explicitly per asset
    (removal or commit) or in bulk when the session is torn down.
    """

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._handles: Dict[str, EphemeralHandle] = {}
        self._by_asset: Dict[str, List[str]] = {}
        self.released_count = 0

    def acquire(self, asset_id: str, role: str, data: bytes, mime_type: str) -> EphemeralHandle:
        """Create a handle for asset_id and return it"""
        locator = f"{HANDLE_SCHEME}{self.session_id}/{uuid.uuid4()}"
        handle = EphemeralHandle(
            locator=locator,
            asset_id=asset_id,
            role=role,
            mime_type=mime_type,
            data=data,
        )
        self._handles[locator] = handle
        self._by_asset.setdefault(asset_id, []).append(locator)
        logger.debug(f"Acquired {role} handle {locator} for asset {asset_id}")
        return handle

    def resolve(self, locator: str) -> Optional[bytes]:
        """Bytes behind a live locator, None when unknown or released"""
        handle = self._handles.get(locator)
        if not handle:
            return None
        return handle.data

    def handles_for(self, asset_id: str) -> List[EphemeralHandle]:
        return [self._handles[loc] for loc in self._by_asset.get(asset_id, [])]

    def release(self, asset_id: str) -> int:
        """Release every handle owned by asset_id; returns how many were live"""
        locators = self._by_asset.pop(asset_id, [])
        released = 0
        now = datetime.now()
        for locator in locators:
            handle = self._handles.pop(locator, None)
            if handle is None or handle.released:
                continue
            handle.data = None
            handle.released_at = now
            released += 1
        if released:
            self.released_count += released
            logger.debug(f"Released {released} handles for asset {asset_id}")
        return released

    def release_all(self) -> int:
        """Release every outstanding handle (session teardown)"""
        total = 0
        for asset_id in list(self._by_asset):
            total += self.release(asset_id)
        if total:
            logger.info(f"Released {total} ephemeral handles for session {self.session_id}")
        return total

    @property
    def live_count(self) -> int:
        return len(self._handles)

    def __len__(self) -> int:
        return self.live_count

    def __contains__(self, locator: str) -> bool:
        return locator in self._handles
