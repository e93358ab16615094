"""Drives one property save: reconcile images, then documents, then persist"""

import asyncio
import logging
from typing import Any, Dict, Optional

from crm_client import CrmClient
from errors import PersistenceError, ReconciliationError, SaveError, UploadError
from managers.handle_registry import is_ephemeral_locator
from managers.staging_store import StagingStore
from managers.upload_reconciler import (
    DocumentReconciliation,
    ImageReconciliation,
    UploadReconciler,
)
from models.document import records_to_payload

logger = logging.getLogger("PropStage")

MEDIA_FIELDS = ("mainImage", "images", "documents")


def build_property_payload(
    fields: Dict[str, Any],
    images: ImageReconciliation,
    documents: DocumentReconciliation,
) -> Dict[str, Any]:
    """Merge reconciled media into the form fields.

    Media keys already present in fields are overwritten; the staging store
    is the only source of media for a save.
    """
    payload = {key: value for key, value in fields.items() if key not in MEDIA_FIELDS}
    # The property API stores an empty string when the gallery is empty
    payload["mainImage"] = images.main_image or ""
    payload["images"] = list(images.images)
    payload["documents"] = records_to_payload(documents.records)

    leaked = [
        locator
        for locator in [images.main_image, *images.images, *(r.url for r in documents.records)]
        if is_ephemeral_locator(locator)
    ]
    if leaked:
        raise ReconciliationError("property", f"payload still references ephemeral handles: {leaked}")
    return payload


class SaveOrchestrator:
    """Sole writer of committed state during a save"""

    def __init__(
        self,
        store: StagingStore,
        reconciler: UploadReconciler,
        client: CrmClient,
        tenant_id: str,
        property_id: Optional[str] = None,
    ):
        self.store = store
        self.reconciler = reconciler
        self.client = client
        self.tenant_id = tenant_id
        self.property_id = property_id
        self.last_payload: Optional[Dict[str, Any]] = None

    async def save(self, fields: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Upload pending media, persist the property, and end the session.

        Any failure leaves staged state in place for a retry; media that was
        already committed is not uploaded again.
        """
        fields = fields or {}
        await self.store.wait_for_thumbnails()
        with self.store.reconciling() as snapshot:
            logger.info(
                f"Saving property {self.property_id or '<new>'} for tenant {self.tenant_id} "
                f"(snapshot v{snapshot.version}: {len(snapshot.images)} images, "
                f"{len(snapshot.documents)} documents)"
            )
            try:
                images = await self.reconciler.reconcile(snapshot)
                self.store.commit(images.committed)
                documents = await self.reconciler.reconcile_documents(snapshot)
                self.store.commit(documents.committed, documents.committed_at)
            except ReconciliationError as e:
                logger.error(f"protocol: {e} (tenant {self.tenant_id}, property {self.property_id})")
                raise
            except UploadError as e:
                logger.error(f"Save aborted: {e}")
                raise

            payload = build_property_payload(fields, images, documents)
            self.last_payload = payload
            try:
                result = await asyncio.to_thread(
                    self.client.save_property, self.tenant_id, self.property_id, payload
                )
            except PersistenceError as e:
                logger.error(f"Save aborted after media was committed: {e}")
                raise

        if isinstance(result, dict) and result.get("id"):
            self.property_id = str(result["id"])
        logger.info(f"Saved property {self.property_id} with {len(payload['images'])} images")
        self.store.close()
        return result


def describe_failure(error: SaveError) -> str:
    """Single user-facing line for a failed save"""
    if isinstance(error, PersistenceError):
        return f"{error.user_message}. Uploaded media is kept; retry the save."
    return f"{error.user_message}. Nothing was saved; retry the save."
