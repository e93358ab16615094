"""Staging store: the single owner of one edit session's gallery and documents"""

import asyncio
import logging
import os
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from asset_processor import (
    DEFAULT_THUMBNAIL_DIM,
    DEFAULT_THUMBNAIL_QUALITY,
    DOCUMENT_POLICY,
    IMAGE_POLICY,
    ValidationPolicy,
    generate_image_metadata,
    render_thumbnail,
    validate_file,
)
from errors import (
    AssetNotFoundError,
    DecodeError,
    GalleryFullError,
    SessionBusyError,
    SessionClosedError,
    ValidationError,
)
from managers.handle_registry import ROLE_PREVIEW, ROLE_SOURCE, ROLE_THUMBNAIL, HandleRegistry
from models.asset import (
    AssetKind,
    DocumentMetadata,
    DurableState,
    LocalFile,
    StagedAsset,
    StagingSnapshot,
)
from models.document import (
    ADDITIONAL_TYPE_CODE,
    DocumentRecord,
    is_required_type,
    required_document_slots,
)

logger = logging.getLogger("PropStage")

DEFAULT_MAX_IMAGES = 50

Listener = Callable[[StagingSnapshot], None]


@dataclass
class StagingResult:
    """Outcome of one add_images call"""
    staged: List[StagedAsset] = field(default_factory=list)
    rejected: List[ValidationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.rejected

    @property
    def rejected_names(self) -> List[str]:
        return [error.file_name for error in self.rejected]

    @property
    def error_message(self) -> Optional[str]:
        if not self.rejected:
            return None
        details = "; ".join(str(error) for error in self.rejected)
        return f"Invalid files: {', '.join(self.rejected_names)} ({details})"


class StagingStore:
    """Holds the gallery (ordered images) and document set for one session.

    Only this class mutates staged state. Consumers read immutable snapshots
    and subscribe for change notifications; nobody keeps a parallel copy.
    """

    def __init__(
        self,
        *,
        is_project: bool = False,
        image_policy: ValidationPolicy = IMAGE_POLICY,
        document_policy: ValidationPolicy = DOCUMENT_POLICY,
        max_images: int = DEFAULT_MAX_IMAGES,
        thumbnail_max_dim: Optional[int] = DEFAULT_THUMBNAIL_DIM,
        thumbnail_quality: int = DEFAULT_THUMBNAIL_QUALITY,
        property_title: str = "",
        property_code: str = "",
        registry: Optional[HandleRegistry] = None,
    ):
        self.is_project = is_project
        self.image_policy = image_policy
        self.document_policy = document_policy
        self.max_images = max_images
        self.thumbnail_max_dim = thumbnail_max_dim
        self.thumbnail_quality = thumbnail_quality
        self.property_title = property_title
        self.property_code = property_code
        self.registry = registry or HandleRegistry()

        self._images: List[StagedAsset] = []
        self._documents: Dict[str, StagedAsset] = {}
        self._issued_ids: set = set()
        self._version = 0
        self._listeners: List[Listener] = []
        self._thumbnail_tasks: Dict[str, asyncio.Task] = {}
        self._deferred_thumbnails: Dict[str, Tuple[bytes, str]] = {}
        self._reconciling = False
        self._closed = False

    @classmethod
    def from_persisted(
        cls,
        main_image: Optional[str] = None,
        images: Optional[Iterable[str]] = None,
        documents: Optional[Iterable[Union[DocumentRecord, Mapping[str, Any]]]] = None,
        **kwargs,
    ) -> "StagingStore":
        """Open a session pre-populated with a property's persisted media"""
        store = cls(**kwargs)
        urls: List[str] = []
        if main_image:
            urls.append(main_image)
        # Only copies of the main image are dropped from the gallery list
        urls.extend(url for url in images or [] if url and url != main_image)

        for position, url in enumerate(urls):
            base_name = os.path.basename(url.split("?", 1)[0]) or f"imagen-{position + 1}"
            store._images.append(StagedAsset(
                asset_id=store._new_id("img"),
                kind=AssetKind.IMAGE,
                metadata=generate_image_metadata(
                    base_name, position + 1, store.property_title, store.property_code
                ),
                is_main=position == 0,
                durable_state=DurableState.COMMITTED,
                remote_locator=url,
            ))

        for raw in documents or []:
            record = raw if isinstance(raw, DocumentRecord) else DocumentRecord.from_payload(raw)
            if record.id in store._issued_ids:
                logger.warning(f"Skipping duplicate persisted document {record.id}")
                continue
            store._issued_ids.add(record.id)
            store._documents[record.id] = StagedAsset(
                asset_id=record.id,
                kind=AssetKind.DOCUMENT,
                metadata=DocumentMetadata(record.type_code, record.display_name),
                durable_state=DurableState.COMMITTED,
                remote_locator=record.url,
                committed_at=record.committed_at,
            )

        logger.info(
            f"Opened staging store with {len(store._images)} persisted images "
            f"and {len(store._documents)} persisted documents"
        )
        return store

    # -- read side ---------------------------------------------------------

    def snapshot(self) -> StagingSnapshot:
        return StagingSnapshot(
            version=self._version,
            images=tuple(self._images),
            documents=tuple(self._documents.values()),
            is_project=self.is_project,
        )

    @property
    def version(self) -> int:
        return self._version

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def busy(self) -> bool:
        return self._reconciling

    def get_image(self, asset_id: str) -> StagedAsset:
        return self._images[self._require_index(asset_id)]

    def get_document(self, asset_id: str) -> StagedAsset:
        asset = self._documents.get(asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)
        return asset

    def read_locator(self, locator: str) -> Optional[bytes]:
        """Bytes behind an ephemeral preview/thumbnail locator"""
        return self.registry.resolve(locator)

    def missing_required_documents(self) -> List[Tuple[str, str]]:
        present = {asset.metadata.type_code for asset in self._documents.values()}
        return [
            (code, name)
            for code, name in required_document_slots(self.is_project)
            if code not in present
        ]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unsubscribes it"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- image operations --------------------------------------------------

    def add_images(self, files: Iterable[LocalFile]) -> StagingResult:
        """Stage new images; invalid files are rejected individually"""
        self._guard_mutation()
        result = StagingResult()
        accepted: List[LocalFile] = []
        for local_file in files:
            error = validate_file(local_file.name, local_file.size, self.image_policy)
            if error is not None:
                logger.info(f"Rejected image {local_file.name}: {error}")
                result.rejected.append(error)
                continue
            accepted.append(local_file)

        if not accepted:
            return result
        if len(self._images) + len(accepted) > self.max_images:
            raise GalleryFullError(len(self._images), len(accepted), self.max_images)

        has_main = any(asset.is_main for asset in self._images)
        for local_file in accepted:
            asset_id = self._new_id("img")
            source = self.registry.acquire(asset_id, ROLE_SOURCE, local_file.data, local_file.mime_type)
            preview = self.registry.acquire(asset_id, ROLE_PREVIEW, local_file.data, local_file.mime_type)
            asset = StagedAsset(
                asset_id=asset_id,
                kind=AssetKind.IMAGE,
                metadata=generate_image_metadata(
                    local_file.name,
                    len(self._images) + 1,
                    self.property_title,
                    self.property_code,
                ),
                source=local_file,
                source_locator=source.locator,
                preview_locator=preview.locator,
                is_main=not has_main and not result.staged,
            )
            self._images.append(asset)
            result.staged.append(asset)

        logger.debug(
            f"Staged {len(result.staged)} images "
            f"(rejected {len(result.rejected)}, gallery size {len(self._images)})"
        )
        self._changed()
        self._schedule_thumbnails(result.staged)
        return result

    def add_image_paths(self, paths: Iterable[Union[str, Path]]) -> StagingResult:
        """Stage images from disk; files are read only once they pass validation"""
        self._guard_mutation()
        rejected: List[ValidationError] = []
        files: List[LocalFile] = []
        for path in map(Path, paths):
            error = validate_file(path.name, path.stat().st_size, self.image_policy)
            if error is not None:
                logger.info(f"Rejected image {path.name}: {error}")
                rejected.append(error)
                continue
            files.append(LocalFile.from_path(path))
        result = self.add_images(files)
        result.rejected[:0] = rejected
        return result

    def reorder(self, asset_id: str, new_index: int):
        """Move an image to new_index keeping everyone else's relative order"""
        self._guard_mutation()
        index = self._require_index(asset_id)
        new_index = max(0, min(new_index, len(self._images) - 1))
        if index == new_index:
            return
        asset = self._images.pop(index)
        self._images.insert(new_index, asset)
        logger.debug(f"Moved image {asset_id} from {index} to {new_index}")
        self._changed()

    def set_main(self, asset_id: str) -> bool:
        self._guard_mutation()
        if self._index_of(asset_id) is None:
            logger.debug(f"set_main ignored: image {asset_id} not staged")
            return False
        self._images = [
            asset if asset.is_main == (asset.asset_id == asset_id)
            else replace(asset, is_main=asset.asset_id == asset_id)
            for asset in self._images
        ]
        self._changed()
        return True

    def remove(self, asset_id: str) -> bool:
        self._guard_mutation()
        index = self._index_of(asset_id)
        if index is None:
            return False
        removed = self._images.pop(index)
        if removed.is_main and self._images:
            self._images[0] = replace(self._images[0], is_main=True)
        self._discard(removed)
        logger.debug(f"Removed image {asset_id} ({removed.durable_state.value})")
        self._changed()
        return True

    def update_image_metadata(
        self,
        asset_id: str,
        alt_text: Optional[str] = None,
        title: Optional[str] = None,
    ) -> StagedAsset:
        self._guard_mutation()
        index = self._require_index(asset_id)
        asset = self._images[index]
        metadata = replace(
            asset.metadata,
            alt_text=asset.metadata.alt_text if alt_text is None else alt_text,
            title=asset.metadata.title if title is None else title,
        )
        self._images[index] = replace(asset, metadata=metadata)
        self._changed()
        return self._images[index]

    async def wait_for_thumbnails(self):
        """Wait for every in-flight thumbnail render to settle"""
        tasks = list(self._thumbnail_tasks.values())
        if not tasks:
            return
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for outcome in results:
            if isinstance(outcome, Exception):
                logger.error(f"Thumbnail task failed unexpectedly: {outcome!r}")

    # -- document operations -----------------------------------------------

    def add_document(
        self,
        type_code: str,
        display_name: str,
        file: LocalFile,
        existing_id: Optional[str] = None,
    ) -> StagedAsset:
        """Stage a document; required slots and existing_id replace in place.

        Raises the ValidationError when the file is refused.
        """
        self._guard_mutation()
        error = validate_file(file.name, file.size, self.document_policy)
        if error is not None:
            logger.info(f"Rejected document {file.name}: {error}")
            raise error

        if existing_id is not None:
            if existing_id not in self._documents:
                raise AssetNotFoundError(existing_id)
            asset_id = existing_id
        elif is_required_type(type_code, self.is_project):
            occupant = self._find_document_by_type(type_code)
            asset_id = occupant.asset_id if occupant else self._new_id("doc")
        else:
            asset_id = self._new_id("doc")

        previous = self._documents.get(asset_id)
        if previous is not None:
            self._discard(previous)

        if not display_name:
            display_name = self._slot_name(type_code) or file.name

        source = self.registry.acquire(asset_id, ROLE_SOURCE, file.data, file.mime_type)
        asset = StagedAsset(
            asset_id=asset_id,
            kind=AssetKind.DOCUMENT,
            metadata=DocumentMetadata(type_code or ADDITIONAL_TYPE_CODE, display_name),
            source=file,
            source_locator=source.locator,
        )
        self._documents[asset_id] = asset
        logger.debug(
            f"{'Replaced' if previous else 'Staged'} document {asset_id} "
            f"({asset.metadata.type_code}: {file.name})"
        )
        self._changed()
        return asset

    def add_document_path(
        self,
        type_code: str,
        display_name: str,
        path: Union[str, Path],
        existing_id: Optional[str] = None,
    ) -> StagedAsset:
        """Stage a document from disk, validating its size before reading it"""
        self._guard_mutation()
        path = Path(path)
        error = validate_file(path.name, path.stat().st_size, self.document_policy)
        if error is not None:
            logger.info(f"Rejected document {path.name}: {error}")
            raise error
        return self.add_document(type_code, display_name, LocalFile.from_path(path), existing_id)

    def remove_document(self, id_or_type_code: str) -> bool:
        self._guard_mutation()
        matches = [
            asset for asset in self._documents.values()
            if asset.asset_id == id_or_type_code or asset.metadata.type_code == id_or_type_code
        ]
        if not matches:
            return False
        for asset in matches:
            del self._documents[asset.asset_id]
            self._discard(asset)
        logger.debug(f"Removed {len(matches)} document(s) matching {id_or_type_code}")
        self._changed()
        return True

    def set_project(self, is_project: bool):
        """Switch between project and ready-property required slots"""
        self._guard_mutation()
        if self.is_project == is_project:
            return
        self.is_project = is_project
        self._changed()

    # -- save-time operations (Save Orchestrator only) ----------------------

    @contextmanager
    def reconciling(self) -> Iterator[StagingSnapshot]:
        """Block staging mutations for the duration of a save"""
        if self._closed:
            raise SessionClosedError("Edit session is closed")
        if self._reconciling:
            raise SessionBusyError("A save is already in progress for this session")
        self._reconciling = True
        try:
            yield self.snapshot()
        finally:
            self._reconciling = False
            deferred, self._deferred_thumbnails = self._deferred_thumbnails, {}
            for asset_id, (data, mime_type) in deferred.items():
                self._attach_thumbnail(asset_id, data, mime_type)

    def commit(self, locators: Mapping[str, str], committed_at: Optional[datetime] = None) -> int:
        """Mark staged assets committed with their durable locators"""
        if self._closed:
            raise SessionClosedError("Edit session is closed")
        if not locators:
            return 0
        when = committed_at or datetime.now(timezone.utc)
        committed = 0

        for index, asset in enumerate(self._images):
            if asset.asset_id in locators and not asset.is_committed:
                self._images[index] = self._committed(asset, locators[asset.asset_id], when)
                committed += 1
        for asset_id, asset in list(self._documents.items()):
            if asset_id in locators and not asset.is_committed:
                self._documents[asset_id] = self._committed(asset, locators[asset_id], when)
                committed += 1

        if committed:
            logger.info(f"Committed {committed} staged assets")
            self._changed()
        return committed

    def close(self):
        """Tear down the session, releasing every staged handle"""
        if self._closed:
            return
        for task in self._thumbnail_tasks.values():
            task.cancel()
        self._thumbnail_tasks.clear()
        self._deferred_thumbnails.clear()
        released = self.registry.release_all()
        self._images = []
        self._documents = {}
        self._listeners = []
        self._closed = True
        logger.debug(f"Closed staging store (released {released} handles)")

    # -- internals ---------------------------------------------------------

    def _committed(self, asset: StagedAsset, locator: str, when: datetime) -> StagedAsset:
        self.registry.release(asset.asset_id)
        self._cancel_thumbnail(asset.asset_id)
        return replace(
            asset,
            source=None,
            source_locator=None,
            preview_locator=None,
            thumbnail_locator=None,
            durable_state=DurableState.COMMITTED,
            remote_locator=locator,
            committed_at=when,
        )

    def _discard(self, asset: StagedAsset):
        # Committed assets hold no session-owned handles
        if asset.is_committed:
            return
        self._cancel_thumbnail(asset.asset_id)
        self.registry.release(asset.asset_id)

    def _cancel_thumbnail(self, asset_id: str):
        task = self._thumbnail_tasks.pop(asset_id, None)
        if task is not None:
            task.cancel()

    def _schedule_thumbnails(self, assets: List[StagedAsset]):
        if self.thumbnail_max_dim is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; skipping thumbnail generation")
            return
        for asset in assets:
            self._thumbnail_tasks[asset.asset_id] = loop.create_task(
                self._render_and_attach(asset.asset_id, asset.source.data)
            )

    async def _render_and_attach(self, asset_id: str, data: bytes):
        try:
            thumbnail = await render_thumbnail(data, self.thumbnail_max_dim, self.thumbnail_quality)
        except DecodeError as e:
            logger.warning(f"Thumbnail unavailable for {asset_id}, using full preview: {e}")
            return
        finally:
            self._thumbnail_tasks.pop(asset_id, None)
        self._attach_thumbnail(asset_id, thumbnail.data, thumbnail.mime_type)

    def _attach_thumbnail(self, asset_id: str, data: bytes, mime_type: str):
        if self._closed:
            return
        if self._reconciling:
            # The save owns the store; attach once it lets go
            self._deferred_thumbnails[asset_id] = (data, mime_type)
            return
        index = self._index_of(asset_id)
        if index is None or self._images[index].is_committed:
            return
        handle = self.registry.acquire(asset_id, ROLE_THUMBNAIL, data, mime_type)
        self._images[index] = replace(self._images[index], thumbnail_locator=handle.locator)
        self._changed()

    def _guard_mutation(self):
        if self._closed:
            raise SessionClosedError("Edit session is closed")
        if self._reconciling:
            raise SessionBusyError("Cannot change staged media while a save is in progress")

    def _changed(self):
        self._version += 1
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    def _new_id(self, prefix: str) -> str:
        while True:
            asset_id = f"{prefix}-{uuid.uuid4().hex[:12]}"
            if asset_id not in self._issued_ids:
                self._issued_ids.add(asset_id)
                return asset_id

    def _index_of(self, asset_id: str) -> Optional[int]:
        for index, asset in enumerate(self._images):
            if asset.asset_id == asset_id:
                return index
        return None

    def _require_index(self, asset_id: str) -> int:
        index = self._index_of(asset_id)
        if index is None:
            raise AssetNotFoundError(asset_id)
        return index

    def _find_document_by_type(self, type_code: str) -> Optional[StagedAsset]:
        for asset in self._documents.values():
            if asset.metadata.type_code == type_code:
                return asset
        return None

    def _slot_name(self, type_code: str) -> Optional[str]:
        for code, name in required_document_slots(self.is_project):
            if code == type_code:
                return name
        return None
