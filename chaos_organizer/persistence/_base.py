"""Base JSON persistence store."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from ..log import logger


class JsonStore:
    """JSON file store with atomic write.

    Subclasses override ``_default()`` to provide the empty-state value
    (``{}`` for dicts, ``[]`` for lists).
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()

    # -- core I/O -------------------------------------------------------------

    def load_raw(self) -> Any:
        """Read and parse the JSON file, returning ``_default()`` on any error."""
        try:
            if self.path.exists():
                return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.debug("failed to load JSON store from %s", self.path, exc_info=True)
        return self._default()

    def save_raw(self, data: Any, *, sort_keys: bool = False) -> None:
        """Write *data* as pretty-printed JSON, creating parents as needed.

        The text goes to a sibling temp file first and is then renamed over
        the target, so readers never observe a half-written file.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(
            json.dumps(data, indent=2, ensure_ascii=False, sort_keys=sort_keys),
            encoding="utf-8",
        )
        os.replace(tmp, self.path)

    # -- override point -------------------------------------------------------

    def _default(self) -> Any:  # noqa: PLR6301
        """Return the empty-state value for this store (dict by default)."""
        return {}
