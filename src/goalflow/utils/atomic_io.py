"""Atomic page writes for file-backed stores."""

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def atomic_write_text(file_path: Path, content: str) -> None:
    """Replace ``file_path`` with ``content`` via a sibling temp file and rename.

    Readers see either the old page or the new one, never a partial write.
    Parent directories are created as needed.

    Raises:
        OSError: If the temp file cannot be written or renamed.
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{file_path.name}.", suffix=".tmp", dir=file_path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, file_path)
    except OSError as e:
        logger.error(f"Failed to write {file_path}: {e}")
        Path(tmp_name).unlink(missing_ok=True)
        raise


def atomic_append_text(file_path: Path, content: str, separator: str = "\n\n") -> None:
    """Append ``content`` as a new block, rewriting the file atomically.

    Trailing whitespace of the existing text is dropped before ``separator``.
    A missing file is simply created with ``content``.
    """
    file_path = Path(file_path)
    if file_path.exists():
        existing = file_path.read_text(encoding="utf-8").rstrip()
        if existing:
            content = existing + separator + content
    atomic_write_text(file_path, content)
