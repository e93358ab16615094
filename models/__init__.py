"""Data models for the property media staging service"""

from models.asset import (
    AssetKind,
    DocumentMetadata,
    DurableState,
    ImageMetadata,
    LocalFile,
    StagedAsset,
    StagingSnapshot,
)
from models.document import DocumentRecord

__all__ = [
    "AssetKind",
    "DocumentMetadata",
    "DocumentRecord",
    "DurableState",
    "ImageMetadata",
    "LocalFile",
    "StagedAsset",
    "StagingSnapshot",
]
