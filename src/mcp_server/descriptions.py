"""Tool Description Refresher.

Each router tool keeps its name and schema forever, but its help text
follows the active domain. Descriptions live in text files:

    descriptions/<domain>/<tool>.txt    domain specific
    descriptions/default/<tool>.txt     shared by all domains

A missing file is not an error; the tool gets a generic description.
"""

from pathlib import Path
from typing import Optional

import aiofiles

from shared.logging import get_logger
from mcp_server.registry import ToolRegistry

logger = get_logger(__name__)

DEFAULT_DESCRIPTIONS_DIR = Path(__file__).parent / "descriptions"
SHARED_DIR_NAME = "default"


def fallback_description(tool_name: str, domain: str) -> str:
    return f"{tool_name} tool for the {domain} domain."


class DescriptionRefresher:
    """Loads per-domain descriptions and re-registers tools with them."""

    def __init__(
        self,
        registry: ToolRegistry,
        descriptions_dir: Optional[str | Path] = None
    ) -> None:
        self.registry = registry
        self.descriptions_dir = Path(descriptions_dir) if descriptions_dir else DEFAULT_DESCRIPTIONS_DIR

    async def _read(self, path: Path) -> Optional[str]:
        if not path.is_file():
            return None
        try:
            async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
                text = (await f.read()).strip()
        except OSError as e:
            logger.warning("Could not read tool description", path=str(path), error=str(e))
            return None
        return text or None

    async def load(self, domain: str, tool_name: str) -> str:
        """
        Description of a tool for a domain.

        Args:
            domain: Canonical domain name
            tool_name: Router tool name

        Returns:
            The domain file, else the shared file, else a generic fallback
        """
        for folder in (domain, SHARED_DIR_NAME):
            text = await self._read(self.descriptions_dir / folder / f"{tool_name}.txt")
            if text:
                return text

        logger.warning("No description found for tool, using fallback", tool=tool_name, domain=domain)
        return fallback_description(tool_name, domain)

    async def refresh(self, domain: str) -> dict[str, str]:
        """
        Re-register every tool with the description for ``domain``.

        Returns:
            Mapping of tool name to the description now registered
        """
        refreshed: dict[str, str] = {}
        for tool_name in self.registry.names():
            description = await self.load(domain, tool_name)
            self.registry.update_description(tool_name, description)
            refreshed[tool_name] = description

        logger.info("Tool descriptions refreshed", domain=domain, tools=len(refreshed))
        return refreshed
