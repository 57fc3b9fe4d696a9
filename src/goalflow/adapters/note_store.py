"""Markdown page store on the local filesystem."""

import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

from ..core.contracts import NoteStore
from ..utils.atomic_io import atomic_append_text, atomic_write_text

logger = logging.getLogger(__name__)


class NoteSearchHit(BaseModel):
    path: str
    line: int  # 1-based
    snippet: str


class MarkdownNoteStore(NoteStore):
    """Hierarchical ``.md`` pages under a root directory.

    Page paths are relative (``tasks/completed/log.md``); the ``.md`` suffix is
    added when missing. Paths that resolve outside the root are rejected.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def _resolve(self, page_path: str) -> Path:
        normalized = page_path.strip().lstrip("/")
        if not normalized:
            raise ValueError("Page path must not be empty")
        if not normalized.endswith(".md"):
            normalized += ".md"

        root = self.root.resolve()
        full = (root / normalized).resolve()
        if full != root and root not in full.parents:
            raise ValueError(f"Invalid page path (directory traversal): {page_path}")
        return full

    def read_page(self, path: str) -> Optional[str]:
        full = self._resolve(path)
        if not full.exists():
            return None
        return full.read_text(encoding="utf-8")

    def write_page(self, path: str, content: str) -> None:
        atomic_write_text(self._resolve(path), content)
        logger.debug(f"Wrote page {path}")

    def append_page(self, path: str, content: str) -> None:
        atomic_append_text(self._resolve(path), content)
        logger.debug(f"Appended to page {path}")

    def delete_page(self, path: str) -> bool:
        full = self._resolve(path)
        if not full.exists():
            return False
        full.unlink()
        return True

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def list_pages(self, directory: str = "") -> List[str]:
        """Relative paths of every page under ``directory``, sorted."""
        root = self.root.resolve()
        base = (root / directory).resolve() if directory else root
        if base != root and root not in base.parents:
            raise ValueError(f"Invalid directory (directory traversal): {directory}")
        if not base.is_dir():
            return []
        return sorted(p.relative_to(root).as_posix() for p in base.rglob("*.md") if p.is_file())

    def search(self, query: str, directory: str = "") -> List[NoteSearchHit]:
        """Case-insensitive line search across pages."""
        needle = query.lower()
        hits: List[NoteSearchHit] = []
        for page in self.list_pages(directory):
            text = self.read_page(page) or ""
            lines = text.splitlines()
            for i, line in enumerate(lines):
                if needle in line.lower():
                    snippet = "\n".join(lines[max(0, i - 1):i + 2])
                    hits.append(NoteSearchHit(path=page, line=i + 1, snippet=snippet))
        return hits
