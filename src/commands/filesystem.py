"""Local filesystem collaborator rooted at the project checkout."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from src.pipeline_shared.utils import atomic_write_json


class LocalFileSystem:
    """Resolves every relative path against *root*.

    Paths returned by :meth:`glob` are relative to *root* with forward
    slashes, so they can be handed straight back to a command spec.
    """

    def __init__(self, root: Path | str = ".") -> None:
        self.root = Path(root)

    def _resolve(self, path: str | Path) -> Path:
        p = Path(path)
        return p if p.is_absolute() else self.root / p

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def glob(self, base_dir: str, pattern: str) -> list[str]:
        base = self._resolve(base_dir)
        if not base.is_dir():
            return []
        matches = sorted(p for p in base.glob(pattern) if p.is_file())
        results: list[str] = []
        for match in matches:
            try:
                results.append(match.relative_to(self.root).as_posix())
            except ValueError:
                results.append(match.as_posix())
        return results

    def read_text(self, path: str) -> str:
        return self._resolve(path).read_text(encoding="utf-8")

    def write_text(self, path: str, content: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def read_json(self, path: str) -> Any:
        return json.loads(self.read_text(path))

    def write_json(self, path: str, data: Any) -> None:
        atomic_write_json(self._resolve(path), data)

    def file_size(self, path: str) -> int:
        target = self._resolve(path)
        return target.stat().st_size if target.is_file() else 0

    def remove(self, path: str) -> None:
        """Delete the file at *path*; a missing file is not an error."""
        self._resolve(path).unlink(missing_ok=True)
