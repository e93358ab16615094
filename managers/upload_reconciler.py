"""Batch upload of staged media and positional merge with persisted locators"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from crm_client import DEFAULT_IMAGE_FOLDER, CrmClient
from errors import ReconciliationError
from models.asset import StagedAsset, StagingSnapshot
from models.document import DocumentRecord

logger = logging.getLogger("PropStage")

# Record lists the upload endpoints have been seen to answer with
RESPONSE_LIST_KEYS = ("images", "files")


@dataclass(frozen=True)
class ImageReconciliation:
    main_image: Optional[str]
    images: List[str]
    committed: Dict[str, str] = field(default_factory=dict)  # asset_id -> new durable locator


@dataclass(frozen=True)
class DocumentReconciliation:
    records: List[DocumentRecord]
    committed: Dict[str, str] = field(default_factory=dict)
    committed_at: Optional[datetime] = None


def partition(assets: Sequence[StagedAsset]) -> Tuple[List[StagedAsset], List[StagedAsset]]:
    """Split into (already committed, needs upload), each in original order"""
    committed, pending = [], []
    for asset in assets:
        if asset.remote_locator:
            committed.append(asset)
        elif asset.needs_upload:
            pending.append(asset)
        else:
            logger.warning(f"Asset {asset.asset_id} is staged without a live source; leaving it out")
    return committed, pending


def extract_locators(payload: Any, expected: int, population: str) -> List[str]:
    """Pull one url per submitted file out of an upload response.

    The response carries no asset ids, so correlation is purely positional;
    anything other than exactly `expected` well-formed records is a protocol
    violation.
    """
    if not isinstance(payload, dict):
        raise ReconciliationError(population, f"expected a JSON object, got {type(payload).__name__}")
    records = None
    for key in RESPONSE_LIST_KEYS:
        if key in payload:
            records = payload[key]
            break
    if not isinstance(records, list):
        raise ReconciliationError(population, "upload response has no record list")
    if len(records) != expected:
        raise ReconciliationError(
            population,
            f"submitted {expected} files but the server returned {len(records)} records",
        )

    locators = []
    for position, record in enumerate(records):
        url = record.get("url") if isinstance(record, dict) else None
        if not isinstance(url, str) or not url.strip():
            raise ReconciliationError(population, f"record {position} has no url")
        locators.append(url)
    return locators


class UploadReconciler:
    """Uploads a snapshot's pending files in one batch per population"""

    def __init__(self, client: CrmClient, tenant_id: str, image_folder: str = DEFAULT_IMAGE_FOLDER):
        self.client = client
        self.tenant_id = tenant_id
        self.image_folder = image_folder

    async def reconcile(self, snapshot: StagingSnapshot) -> ImageReconciliation:
        gallery = snapshot.images
        committed, pending = partition(gallery)
        logger.info(f"Reconciling images: {len(committed)} persisted, {len(pending)} to upload")

        uploaded: Dict[str, str] = {}
        if pending:
            payload = await asyncio.to_thread(
                self.client.upload_images,
                self.tenant_id,
                [asset.source for asset in pending],
                self.image_folder,
            )
            locators = extract_locators(payload, len(pending), "images")
            uploaded = {asset.asset_id: url for asset, url in zip(pending, locators)}

        ordered: List[str] = []
        main_image = None
        for asset in gallery:
            url = asset.remote_locator or uploaded.get(asset.asset_id)
            if url is None:
                continue
            ordered.append(url)
            if asset.is_main and main_image is None:
                main_image = url
        if main_image is None and ordered:
            logger.warning("No main image marked; falling back to the first image")
            main_image = ordered[0]

        return ImageReconciliation(main_image=main_image, images=ordered, committed=uploaded)

    async def reconcile_documents(self, snapshot: StagingSnapshot) -> DocumentReconciliation:
        documents = snapshot.documents
        committed, pending = partition(documents)
        logger.info(f"Reconciling documents: {len(committed)} persisted, {len(pending)} to upload")

        uploaded: Dict[str, str] = {}
        uploaded_at = None
        if pending:
            payload = await asyncio.to_thread(
                self.client.upload_documents,
                self.tenant_id,
                [asset.source for asset in pending],
            )
            locators = extract_locators(payload, len(pending), "documents")
            uploaded = {asset.asset_id: url for asset, url in zip(pending, locators)}
            uploaded_at = datetime.now(timezone.utc)

        records: List[DocumentRecord] = []
        for asset in documents:
            if asset.remote_locator:
                url, when = asset.remote_locator, asset.committed_at or uploaded_at or datetime.now(timezone.utc)
            elif asset.asset_id in uploaded:
                url, when = uploaded[asset.asset_id], uploaded_at
            else:
                continue
            records.append(DocumentRecord(
                id=asset.asset_id,
                type_code=asset.metadata.type_code,
                display_name=asset.metadata.display_name,
                url=url,
                committed_at=when,
            ))

        return DocumentReconciliation(records=records, committed=uploaded, committed_at=uploaded_at)
