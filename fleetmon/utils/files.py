"""
Atomic file writes.

The new content goes to a temporary file in the target's directory, is
flushed to disk, and then replaces the target in one rename, so readers only
ever see the old or the new complete file.
"""

import os
import stat
import tempfile
from pathlib import Path
from typing import Union

PathLike = Union[str, os.PathLike]


def atomic_write_text(path: PathLike, content: str) -> None:
    """Replace ``path`` with ``content``, keeping an existing file's mode."""
    target = Path(path)
    directory = target.parent
    directory.mkdir(parents=True, exist_ok=True)

    mode = None
    if target.exists():
        mode = stat.S_IMODE(target.stat().st_mode)

    fd, tmp_path = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(directory))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, target)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
