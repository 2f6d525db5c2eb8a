"""
Local state file for managed resources.

Maps resource addresses (``kubernetes_deployment.web``) to the last known
state document of each resource.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "k3sprovider.state.json"
STATE_VERSION = 1


class StateStore:
    """JSON-backed store of resource states."""

    def __init__(self, path: str = DEFAULT_STATE_FILE):
        self.path = Path(path)
        self._resources: Dict[str, Dict[str, Any]] = {}
        self.load()

    def load(self) -> None:
        """(Re)load the state file. A missing file is an empty state."""
        if not self.path.exists():
            self._resources = {}
            return

        with open(self.path) as f:
            data = json.load(f)

        version = data.get("version")
        if version != STATE_VERSION:
            raise ValueError(
                f"Unsupported state file version {version!r} in {self.path}"
            )
        self._resources = data.get("resources", {})
        logger.debug(f"Loaded state for {len(self._resources)} resources from {self.path}")

    def save(self) -> None:
        """Write the state file atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {"version": STATE_VERSION, "resources": self._resources}

        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent),
            prefix=f".{self.path.name}.",
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def get(self, address: str) -> Optional[Dict[str, Any]]:
        return self._resources.get(address)

    def put(self, address: str, state: Dict[str, Any]) -> None:
        self._resources[address] = state
        self.save()

    def remove(self, address: str) -> None:
        if self._resources.pop(address, None) is not None:
            self.save()

    def addresses(self) -> List[str]:
        return sorted(self._resources)
