"""Asset data models"""

import mimetypes
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union


class AssetKind(str, Enum):
    IMAGE = "image"
    DOCUMENT = "document"


class DurableState(str, Enum):
    STAGED = "staged"
    COMMITTED = "committed"


@dataclass(frozen=True)
class LocalFile:
    """A user-selected file held in memory until the property is saved"""
    name: str
    data: bytes = field(repr=False)
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        """Lower-cased extension without the dot ("" when there is none)"""
        _, ext = os.path.splitext(self.name)
        return ext[1:].lower()

    @property
    def mime_type(self) -> str:
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.name)
        return guessed or "application/octet-stream"

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "LocalFile":
        path = Path(path)
        return cls(name=path.name, data=path.read_bytes())


@dataclass(frozen=True)
class ImageMetadata:
    alt_text: str = ""
    title: str = ""


@dataclass(frozen=True)
class DocumentMetadata:
    type_code: str
    display_name: str


@dataclass(frozen=True)
class StagedAsset:
    """One image or document attached during an edit session.

    Instances are immutable; the staging store swaps in a new value on every
    change so snapshots handed out earlier never move under the reader.
    """
    asset_id: str
    kind: AssetKind
    metadata: Union[ImageMetadata, DocumentMetadata]
    source: Optional[LocalFile] = None  # None once committed or when pre-persisted
    source_locator: Optional[str] = None
    preview_locator: Optional[str] = None
    thumbnail_locator: Optional[str] = None
    is_main: bool = False
    durable_state: DurableState = DurableState.STAGED
    remote_locator: Optional[str] = None
    committed_at: Optional[datetime] = None

    @property
    def is_committed(self) -> bool:
        return self.durable_state is DurableState.COMMITTED

    @property
    def needs_upload(self) -> bool:
        return self.durable_state is DurableState.STAGED and self.source is not None

    @property
    def display_locator(self) -> Optional[str]:
        # Full-size preview stands in when the thumbnail could not be rendered
        return self.thumbnail_locator or self.preview_locator or self.remote_locator

    @property
    def file_name(self) -> Optional[str]:
        return self.source.name if self.source else None


@dataclass(frozen=True)
class StagingSnapshot:
    """Read-only view of a session's gallery and document set"""
    version: int
    images: Tuple[StagedAsset, ...]
    documents: Tuple[StagedAsset, ...]
    is_project: bool = False

    @property
    def main_image(self) -> Optional[StagedAsset]:
        for asset in self.images:
            if asset.is_main:
                return asset
        return None

    @property
    def pending_images(self) -> Tuple[StagedAsset, ...]:
        return tuple(asset for asset in self.images if asset.needs_upload)

    @property
    def pending_documents(self) -> Tuple[StagedAsset, ...]:
        return tuple(asset for asset in self.documents if asset.needs_upload)

    def find(self, asset_id: str) -> Optional[StagedAsset]:
        for asset in self.images + self.documents:
            if asset.asset_id == asset_id:
                return asset
        return None

    def image_ids(self) -> Tuple[str, ...]:
        return tuple(asset.asset_id for asset in self.images)
