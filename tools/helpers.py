"""Shared helper functions for tool implementations"""

import logging
from typing import Any, Dict, Optional

from crm_client import CrmClient
from managers.edit_session import EditSession
from managers.settings_manager import SettingsManager
from models.asset import AssetKind, StagedAsset, StagingSnapshot

logger = logging.getLogger("PropStage")


def asset_to_dict(asset: StagedAsset) -> Dict[str, Any]:
    data = {
        "asset_id": asset.asset_id,
        "kind": asset.kind.value,
        "state": asset.durable_state.value,
        "file_name": asset.file_name,
        "bytes_size": asset.source.size if asset.source else None,
        "remote_url": asset.remote_locator,
        "display_url": asset.display_locator,
    }
    if asset.kind is AssetKind.IMAGE:
        data.update({
            "is_main": asset.is_main,
            "alt_text": asset.metadata.alt_text,
            "title": asset.metadata.title,
            "has_thumbnail": asset.thumbnail_locator is not None,
        })
    else:
        data.update({
            "type_code": asset.metadata.type_code,
            "display_name": asset.metadata.display_name,
        })
    return data


def snapshot_to_dict(snapshot: StagingSnapshot) -> Dict[str, Any]:
    main = snapshot.main_image
    return {
        "version": snapshot.version,
        "is_project": snapshot.is_project,
        "main_image_id": main.asset_id if main else None,
        "images": [asset_to_dict(asset) for asset in snapshot.images],
        "documents": [asset_to_dict(asset) for asset in snapshot.documents],
        "pending_uploads": len(snapshot.pending_images) + len(snapshot.pending_documents),
    }


class SessionSlot:
    """Holds the single active edit session for the tool surface"""

    def __init__(self, settings: SettingsManager, client: Optional[CrmClient] = None):
        self.settings = settings
        self._client = client
        self.session: Optional[EditSession] = None

    def client(self) -> CrmClient:
        """Client for a new session, built from the api settings in effect now"""
        if self._client is not None:
            return self._client
        return CrmClient(
            base_url=self.settings.get_default("api", "base_url"),
            token=self.settings.api_token,
            timeout=self.settings.get_default("api", "timeout"),
        )

    def open(self, tenant_id: str, **kwargs) -> EditSession:
        if self.session is not None and not self.session.closed:
            logger.info(f"Abandoning edit session {self.session.session_id}")
            self.session.close()
        self.session = EditSession(self.client(), tenant_id, settings=self.settings, **kwargs)
        return self.session

    def require(self) -> EditSession:
        if self.session is None or self.session.closed:
            raise LookupError("No open edit session; call open_edit_session first")
        return self.session

    def close(self) -> bool:
        if self.session is None:
            return False
        self.session.close()
        self.session = None
        return True
