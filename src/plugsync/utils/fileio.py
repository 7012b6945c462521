"""Atomic file replacement shared by the state file and the config writer."""
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

TMP_SUFFIX = ".tmp"


def temp_prefix(path: Path) -> str:
    """Prefix used for temporary siblings of ``path``."""
    return f".{path.name}."


def atomic_write_text(path: Path, content: str, mode: Optional[int] = None) -> None:
    """Write ``content`` to ``path`` atomically.

    Writes to a temporary file in the same directory, then renames
    (``os.replace``) it into place. The canonical path is never opened
    for writing, so readers see either the old or the new document.

    Args:
        path: Destination file
        content: Full text of the new document
        mode: Permission bits for the new file (default: mkstemp's 0600)

    Raises:
        OSError: If the temp file cannot be created, written or renamed.
            The temp file is removed and ``path`` is left untouched.
    """
    path = Path(path)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=temp_prefix(path),
        suffix=TMP_SUFFIX,
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise

    logger.debug(f"Atomically replaced {path}")
