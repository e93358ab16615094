"""Configuration tools for the property media staging server"""

from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP


def register_configuration_tools(
    mcp: FastMCP,
    settings_manager
):
    """Register configuration tools with the MCP server"""

    @mcp.tool()
    def get_settings() -> dict:
        """Get current effective settings for image staging, document staging and the CRM API.

        Returns merged values from all sources (runtime, config, env, hardcoded).
        The API token is never included.
        """
        return settings_manager.get_all_defaults()

    @mcp.tool()
    def set_settings(
        image: Optional[Dict[str, Any]] = None,
        document: Optional[Dict[str, Any]] = None,
        api: Optional[Dict[str, Any]] = None,
        persist: bool = False
    ) -> dict:
        """Set runtime settings. New values apply to edit sessions opened afterwards.

        Args:
            image: e.g. {"max_images": 30, "allowed_extensions": ["jpg", "png"]}
            document: e.g. {"max_bytes": 5242880}
            api: e.g. {"base_url": "https://crm.example.com/api", "timeout": 30}
            persist: If True, write settings to ~/.config/propstage/config.json
        """
        results = {}
        errors = []

        for namespace, values in (("image", image), ("document", document), ("api", api)):
            if not values:
                continue
            result = settings_manager.set_defaults(namespace, values)
            if "error" in result or "errors" in result:
                errors.extend(result.get("errors", [result.get("error")]))
                continue
            results[namespace] = result
            if persist:
                persist_result = settings_manager.persist_defaults(namespace, values)
                if "error" in persist_result:
                    errors.append(f"Failed to persist {namespace} settings: {persist_result['error']}")

        if errors:
            return {"success": False, "errors": errors}

        return {"success": True, "updated": results}
