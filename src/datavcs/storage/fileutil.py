"""Filesystem helpers shared by the storage layer."""

import os
import tempfile
from pathlib import Path
from typing import Union


def atomic_write_bytes(path: Union[str, Path], data: bytes) -> None:
    """Replace ``path`` with ``data`` via a temp file and an atomic rename.

    Readers see either the old content or the new content, never a partial
    write. The parent directory must exist.

    Raises:
        OSError: If the write or rename fails (the temp file is removed)
    """
    path = Path(path)
    fd, tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".tmp_{path.name}_",
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: Union[str, Path], text: str) -> None:
    atomic_write_bytes(path, text.encode("utf-8"))
