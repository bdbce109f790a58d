"""
Temporary working directory management.

Every conversion run owns one working directory. It is created through
``temp_workspace()`` and removed on every exit path: normal completion,
errors, cancellation, and process termination (atexit / SIGTERM) for runs
that never got the chance to unwind.
"""

import atexit
import os
import shutil
import signal
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pdfebook.utils.exceptions import ConversionIOError
from pdfebook.utils.logger import logger

_DIR_PREFIX = "pdfebook_"

# ---------------------------------------------------------------------------
# Global registry (cleaned at process exit)
# ---------------------------------------------------------------------------
_tracked_dirs: set[str] = set()
_cleanup_registered = False


def _register_cleanup() -> None:
    """Register atexit and SIGTERM handlers exactly once."""
    global _cleanup_registered
    if _cleanup_registered:
        return
    _cleanup_registered = True

    atexit.register(cleanup_all)

    prev_handler = signal.getsignal(signal.SIGTERM)

    def _on_sigterm(signum, frame):
        cleanup_all()
        if callable(prev_handler):
            prev_handler(signum, frame)
        else:
            raise SystemExit(1)

    try:
        signal.signal(signal.SIGTERM, _on_sigterm)
    except ValueError:
        # signal handlers can only be installed from the main thread
        logger.debug("SIGTERM cleanup handler not installed (not in main thread)")


def check_writable(path: str | Path) -> tuple[bool, str]:
    """Check whether *path* (or its nearest existing parent) is writable."""
    p = Path(path).absolute()
    while not p.exists():
        p = p.parent
    if not os.access(str(p), os.W_OK):
        return False, f"No write permission for folder: {p}"
    return True, ""


def mkdtemp(prefix: str = _DIR_PREFIX, base_dir: str | Path | None = None) -> str:
    """Create a temp directory tracked for cleanup.

    Raises:
        ConversionIOError: If the directory cannot be created.
    """
    _register_cleanup()
    base = str(base_dir) if base_dir else tempfile.gettempdir()
    try:
        path = tempfile.mkdtemp(prefix=prefix, dir=base)
    except OSError as e:
        raise ConversionIOError(base, "create a temporary directory in", str(e)) from e
    _tracked_dirs.add(path)
    return path


def remove_dir(path: str) -> None:
    """Remove a tracked temp directory immediately."""
    _tracked_dirs.discard(path)
    shutil.rmtree(path, ignore_errors=True)


def is_tracked(path: str | Path) -> bool:
    """Return True while *path* is registered for cleanup."""
    return str(path) in _tracked_dirs


@contextmanager
def temp_workspace(prefix: str = _DIR_PREFIX, base_dir: str | Path | None = None) -> Iterator[Path]:
    """Yield a fresh working directory that is removed when the block exits."""
    path = mkdtemp(prefix=prefix, base_dir=base_dir)
    logger.debug(f"Created working directory: {path}")
    try:
        yield Path(path)
    finally:
        remove_dir(path)
        logger.debug(f"Removed working directory: {path}")


def cleanup_all() -> None:
    """Remove all tracked temp directories.

    Safe to call multiple times (idempotent).
    """
    for d in list(_tracked_dirs):
        if os.path.isdir(d):
            shutil.rmtree(d, ignore_errors=True)
            logger.debug(f"Cleaned temp dir: {d}")
    _tracked_dirs.clear()
