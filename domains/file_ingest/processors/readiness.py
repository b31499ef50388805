"""
File readiness check.

A dropped file is ready once it can be opened and locked exclusively,
meaning no writer still holds it.

On Windows the file is opened for read/write: that open fails with a sharing
violation while another process still has it open for writing, whether or
not the writer locks it. On POSIX the check is an advisory ``flock``, so only
writers that lock the file themselves are detected.
"""

import os
from pathlib import Path
from typing import Union

if os.name == "nt":  # pragma: no cover - platform specific
    import msvcrt

    _OPEN_MODE = "r+b"

    def _try_lock(fh) -> None:
        msvcrt.locking(fh.fileno(), msvcrt.LK_NBLCK, 1)
        msvcrt.locking(fh.fileno(), msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    _OPEN_MODE = "rb"

    def _try_lock(fh) -> None:
        fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        fcntl.flock(fh.fileno(), fcntl.LOCK_UN)


def is_file_ready(path: Union[str, Path]) -> bool:
    """
    Check whether a file can be opened for exclusive access.

    Any OSError (lock held, sharing violation, missing file, permission
    denied) means "not ready"; a file that never appears is retried like a
    locked one.

    Args:
        path: File path

    Returns:
        True if the file was opened and locked, False otherwise
    """
    try:
        with open(path, _OPEN_MODE) as fh:
            _try_lock(fh)
    except OSError:
        return False
    return True
