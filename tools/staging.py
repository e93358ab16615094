"""Media staging tools for the property media staging server"""

import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from asset_processor import get_image_metadata
from errors import SaveError, StagingError
from managers.save_orchestrator import describe_failure
from tools.helpers import SessionSlot, asset_to_dict, snapshot_to_dict

logger = logging.getLogger("PropStage")


def register_staging_tools(mcp: FastMCP, slot: SessionSlot):
    """Register edit-session and staging tools with the MCP server"""

    @mcp.tool()
    def open_edit_session(
        tenant_id: str,
        property_id: Optional[str] = None,
        is_project: bool = False,
        main_image: Optional[str] = None,
        images: Optional[List[str]] = None,
        documents: Optional[List[Dict[str, Any]]] = None,
        property_title: str = "",
        property_code: str = "",
    ) -> dict:
        """Start editing a property, optionally pre-loaded with its persisted media.

        Any previously open session is abandoned and its staged files discarded.

        Args:
            tenant_id: Tenant that owns the property
            property_id: Existing property id (omit to create a new property)
            is_project: Whether the property is a project (changes required documents)
            main_image: Persisted main image URL
            images: Persisted gallery URLs
            documents: Persisted documents as {id, typeCode, displayName, url, committedAt}
            property_title: Used to generate image alt text
            property_code: Used to generate image alt text
        """
        try:
            session = slot.open(
                tenant_id,
                property_id=property_id,
                is_project=is_project,
                main_image=main_image,
                images=images,
                documents=documents,
                property_title=property_title,
                property_code=property_code,
            )
        except (KeyError, ValueError) as e:
            return {"error": f"Invalid persisted media: {e}"}
        return {
            "session_id": session.session_id,
            "snapshot": snapshot_to_dict(session.store.snapshot()),
        }

    @mcp.tool()
    async def stage_images(paths: List[str]) -> dict:
        """Attach local image files to the gallery without uploading them.

        Invalid files are reported individually and do not block the others.
        """
        try:
            session = slot.require()
            result = session.store.add_image_paths(paths)
        except (StagingError, LookupError, OSError) as e:
            return {"error": str(e)}
        response = {
            "staged": [
                {**asset_to_dict(asset), **get_image_metadata(asset.source.data)}
                for asset in result.staged
            ],
            "rejected": result.rejected_names,
        }
        if result.error_message:
            response["error"] = result.error_message
        return response

    @mcp.tool()
    def reorder_image(asset_id: str, new_index: int) -> dict:
        """Move an image to a new gallery position"""
        try:
            session = slot.require()
            session.store.reorder(asset_id, new_index)
        except (StagingError, LookupError) as e:
            return {"error": str(e)}
        return snapshot_to_dict(session.store.snapshot())

    @mcp.tool()
    def set_main_image(asset_id: str) -> dict:
        """Designate the main image of the property"""
        try:
            session = slot.require()
            found = session.store.set_main(asset_id)
        except (StagingError, LookupError) as e:
            return {"error": str(e)}
        if not found:
            return {"error": f"Image {asset_id} is not in the gallery"}
        return snapshot_to_dict(session.store.snapshot())

    @mcp.tool()
    def remove_image(asset_id: str) -> dict:
        """Remove an image from the gallery"""
        try:
            session = slot.require()
            removed = session.store.remove(asset_id)
        except (StagingError, LookupError) as e:
            return {"error": str(e)}
        return {"removed": removed, "snapshot": snapshot_to_dict(session.store.snapshot())}

    @mcp.tool()
    def update_image_metadata(
        asset_id: str,
        alt_text: Optional[str] = None,
        title: Optional[str] = None,
    ) -> dict:
        """Edit the alt text and/or title of a gallery image"""
        try:
            session = slot.require()
            asset = session.store.update_image_metadata(asset_id, alt_text=alt_text, title=title)
        except (StagingError, LookupError) as e:
            return {"error": str(e)}
        return asset_to_dict(asset)

    @mcp.tool()
    def stage_document(
        type_code: str,
        path: str,
        display_name: str = "",
        existing_id: Optional[str] = None,
    ) -> dict:
        """Attach a document to a required slot (by type code) or as an additional document.

        Args:
            type_code: Slot type code, or "adicional" for additional documents
            path: Local path of the document file
            display_name: Label shown for the document
            existing_id: Replace this document's file instead of adding a new entry
        """
        try:
            session = slot.require()
            asset = session.store.add_document_path(
                type_code, display_name, path, existing_id=existing_id
            )
        except (StagingError, LookupError, OSError) as e:
            return {"error": str(e)}
        return {
            "document": asset_to_dict(asset),
            "missing_required": [code for code, _ in session.store.missing_required_documents()],
        }

    @mcp.tool()
    def remove_document(id_or_type_code: str) -> dict:
        """Remove a document by id, or every document with the given type code"""
        try:
            session = slot.require()
            removed = session.store.remove_document(id_or_type_code)
        except (StagingError, LookupError) as e:
            return {"error": str(e)}
        return {"removed": removed}

    @mcp.tool()
    def get_staging_snapshot() -> dict:
        """Current gallery and documents of the open edit session"""
        try:
            session = slot.require()
        except LookupError as e:
            return {"error": str(e)}
        data = snapshot_to_dict(session.store.snapshot())
        data["missing_required"] = [code for code, _ in session.store.missing_required_documents()]
        return data

    @mcp.tool()
    async def save_property(fields: Optional[Dict[str, Any]] = None) -> dict:
        """Upload staged media and create/update the property.

        On failure the staged media stays in the session so the save can be retried.
        """
        try:
            session = slot.require()
            result = await session.save(fields or {})
        except SaveError as e:
            return {"error": describe_failure(e)}
        except (StagingError, LookupError) as e:
            return {"error": str(e)}
        payload = session.orchestrator.last_payload or {}
        slot.close()
        return {
            "success": True,
            "property_id": session.property_id,
            "main_image": payload.get("mainImage"),
            "images": payload.get("images", []),
            "documents": payload.get("documents", []),
            "result": result,
        }

    @mcp.tool()
    def close_edit_session() -> dict:
        """Abandon the open edit session, discarding anything not yet saved"""
        return {"closed": slot.close()}
