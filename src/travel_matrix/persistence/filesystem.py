"""File-based persistence helpers for matrix artifacts and the usage ledger."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from ..config import settings


class FileStorage:
    """Thin wrapper around the data root for reading and writing JSON documents."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or settings.data_root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def resolve(self, path: Path | str) -> Path:
        """Anchor relative paths at the data root; absolute paths pass through."""
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.root / candidate

    def exists(self, path: Path | str) -> bool:
        return self.resolve(path).exists()

    def read_json(self, path: Path | str) -> Any:
        with self.resolve(path).open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def write_json(self, path: Path | str, data: Any, *, indent: int = 2) -> Path:
        """Write ``data`` next to its target and move it into place in one step."""
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=indent)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return target
