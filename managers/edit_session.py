"""Property edit session: owns the staging store and tears it down"""

import logging
import uuid
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from crm_client import CrmClient
from managers.save_orchestrator import SaveOrchestrator
from managers.settings_manager import SettingsManager
from managers.staging_store import StagingStore
from managers.upload_reconciler import UploadReconciler
from models.document import DocumentRecord

logger = logging.getLogger("PropStage")


class EditSession:
    """One create/edit pass over a property.

    Use as a context manager so every staged handle is released when the
    session is left, whether the property was saved or abandoned.
    """

    def __init__(
        self,
        client: CrmClient,
        tenant_id: str,
        property_id: Optional[str] = None,
        *,
        is_project: bool = False,
        main_image: Optional[str] = None,
        images: Optional[Iterable[str]] = None,
        documents: Optional[Iterable[Union[DocumentRecord, Mapping[str, Any]]]] = None,
        property_title: str = "",
        property_code: str = "",
        settings: Optional[SettingsManager] = None,
    ):
        self.session_id = uuid.uuid4().hex[:12]
        self.tenant_id = tenant_id
        options = settings.store_options() if settings else {}
        image_folder = settings.get_default("api", "image_folder") if settings else None
        self.store = StagingStore.from_persisted(
            main_image=main_image,
            images=images,
            documents=documents,
            is_project=is_project,
            property_title=property_title,
            property_code=property_code,
            **options,
        )
        if image_folder:
            reconciler = UploadReconciler(client, tenant_id, image_folder=image_folder)
        else:
            reconciler = UploadReconciler(client, tenant_id)
        self.orchestrator = SaveOrchestrator(
            self.store, reconciler, client, tenant_id, property_id=property_id
        )
        logger.info(
            f"Opened edit session {self.session_id} for tenant {tenant_id}, "
            f"property {property_id or '<new>'}"
        )

    @property
    def property_id(self) -> Optional[str]:
        return self.orchestrator.property_id

    @property
    def closed(self) -> bool:
        return self.store.closed

    async def save(self, fields: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.orchestrator.save(fields)

    def close(self):
        if not self.store.closed:
            logger.info(f"Closing edit session {self.session_id}")
        self.store.close()

    def __enter__(self) -> "EditSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    async def __aenter__(self) -> "EditSession":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()
