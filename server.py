import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from mcp.server.fastmcp import FastMCP

from managers.settings_manager import SettingsManager
from tools.configuration import register_configuration_tools
from tools.helpers import SessionSlot
from tools.staging import register_staging_tools

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("PropStage")

settings_manager = SettingsManager()
session_slot = SessionSlot(settings_manager)


class AppContext:
    def __init__(self, session_slot: SessionSlot):
        self.session_slot = session_slot


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Manage application lifecycle"""
    logger.info("Starting property media staging server...")
    try:
        yield AppContext(session_slot=session_slot)
    finally:
        # Abandoned sessions still own in-memory handles
        session_slot.close()
        logger.info("Shutting down property media staging server")


mcp = FastMCP("PropStage_MCP_Server", lifespan=app_lifespan)

register_staging_tools(mcp, session_slot)
register_configuration_tools(mcp, settings_manager)

if __name__ == "__main__":
    mcp.run(transport="streamable-http")
