"""
Layout persistence for AgentCanvas.

A layout store loads and saves one layout document per workspace: node
positions, combiner nodes, workflow connections and the viewport
transform. Two implementations share the same async interface:

- RemoteLayoutStore: the orchestration server (default)
- LocalLayoutStore: JSON files in the platformdirs user data directory
"""

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

from platformdirs import user_data_dir

logger = logging.getLogger(__name__)


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def _as_dict(layout: Any) -> Dict[str, Any]:
    if hasattr(layout, "model_dump"):
        return layout.model_dump()
    return dict(layout)


class LocalLayoutStore:
    """
    Stores layouts as <data_dir>/layouts/<workspace_id>.json.

    Writes go through a temp file and an atomic replace.
    """

    APP_NAME = "AgentCanvas"
    APP_AUTHOR = "AgentCanvas"

    def __init__(self, data_dir: Optional[Path] = None):
        if data_dir is None:
            data_dir = Path(user_data_dir(self.APP_NAME, self.APP_AUTHOR))
        self.layout_dir = Path(data_dir) / "layouts"
        self.layout_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, workspace_id: str) -> Path:
        safe = _UNSAFE_CHARS.sub("_", workspace_id) or "default"
        return self.layout_dir / f"{safe}.json"

    async def load(self, workspace_id: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self.read, workspace_id)

    async def save(self, layout: Any) -> bool:
        return await asyncio.to_thread(self.write, _as_dict(layout))

    def read(self, workspace_id: str) -> Optional[Dict[str, Any]]:
        """Blocking read; load() runs it off the event loop."""
        path = self.path_for(workspace_id)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt layout file {path}: {e}")
            return None

    def write(self, data: Dict[str, Any]) -> bool:
        path = self.path_for(data.get("workspace_id", ""))
        try:
            temp_file = path.with_suffix(".tmp")
            with temp_file.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            temp_file.replace(path)
        except OSError as e:
            logger.error(f"Failed to save layout to {path}: {e}")
            return False
        logger.info(f"Layout saved to {path}")
        return True


class RemoteLayoutStore:
    """
    Loads the layout embedded in the workspace document and saves through
    PUT /api/orchestration/workspace/layout.

    Args:
        client: ApiClient (anything with fetch_workspace / save_layout).
    """

    def __init__(self, client):
        self._client = client

    async def load(self, workspace_id: str) -> Optional[Dict[str, Any]]:
        snapshot = await self._client.fetch_workspace(workspace_id)
        return snapshot.layout

    async def save(self, layout: Any) -> bool:
        await self._client.save_layout(layout)
        logger.info("Layout saved to server")
        return True
