"""Per-root single-writer locking and cooperative cancellation."""

from __future__ import annotations

import hashlib
import logging
import os
import platform
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Set

from sorty.errors import RootBusyError

LOGGER = logging.getLogger(__name__)

LOCK_DIRNAME = "locks"


class CancelToken:
    """Thread-safe cancellation flag checked between primitive actions."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Return ``True`` once cancellation has been requested."""
        return self._event.is_set()


def _lock_descriptor(descriptor: int, *, blocking: bool) -> None:
    if platform.system() == "Windows":
        import msvcrt

        os.lseek(descriptor, 0, os.SEEK_SET)
        msvcrt.locking(descriptor, msvcrt.LK_LOCK if blocking else msvcrt.LK_NBLCK, 1)
    else:
        import fcntl

        fcntl.flock(descriptor, fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB)


def _unlock_descriptor(descriptor: int) -> None:
    try:
        if platform.system() == "Windows":
            import msvcrt

            os.lseek(descriptor, 0, os.SEEK_SET)
            msvcrt.locking(descriptor, msvcrt.LK_UNLCK, 1)
        else:
            import fcntl

            fcntl.flock(descriptor, fcntl.LOCK_UN)
    except OSError as exc:
        LOGGER.warning("Could not release lock: %s", exc)
    finally:
        os.close(descriptor)


class FileLock:
    """Blocking advisory lock on ``path`` shared by cooperating processes.

    The lock file is created on demand and left in place afterwards.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._descriptor: Optional[int] = None

    def __enter__(self) -> "FileLock":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        descriptor = os.open(self.path, os.O_CREAT | os.O_RDWR)
        try:
            _lock_descriptor(descriptor, blocking=True)
        except OSError:
            os.close(descriptor)
            raise
        self._descriptor = descriptor
        return self

    def __exit__(self, *_: object) -> None:
        if self._descriptor is not None:
            _unlock_descriptor(self._descriptor)
            self._descriptor = None


class RootLockRegistry:
    """Guarantee at most one writer per organized root.

    Within a process a registry of active roots provides a non-blocking
    single-flight guard. When ``lock_dir`` is given, an advisory lock file per
    root extends the guard across processes (``fcntl`` on Unix, ``msvcrt`` on
    Windows). Different roots never block each other.
    """

    def __init__(self, lock_dir: Optional[Path] = None) -> None:
        self.lock_dir = lock_dir
        self._guard = threading.Lock()
        self._active: Set[Path] = set()

    def is_locked(self, root: Path) -> bool:
        """Return whether ``root`` is held by this registry."""
        with self._guard:
            return self._key(root) in self._active

    @contextmanager
    def hold(self, root: Path) -> Iterator[Path]:
        """Hold the writer lock for ``root`` for the duration of the block.

        Args:
            root: Root directory to lock.

        Yields:
            Path: Resolved root path used as the lock key.

        Raises:
            RootBusyError: If another run already holds the lock.
        """
        key = self._key(root)
        with self._guard:
            if key in self._active:
                raise RootBusyError(f"Another run is already active for {key}")
            self._active.add(key)

        descriptor: Optional[int] = None
        try:
            descriptor = self._acquire_file(key)
            LOGGER.debug("Acquired root lock for %s", key)
            yield key
        finally:
            if descriptor is not None:
                _unlock_descriptor(descriptor)
            with self._guard:
                self._active.discard(key)
            LOGGER.debug("Released root lock for %s", key)

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _key(root: Path) -> Path:
        return root.expanduser().resolve()

    def _lock_path(self, key: Path) -> Path:
        assert self.lock_dir is not None
        digest = hashlib.sha1(str(key).encode("utf-8")).hexdigest()[:16]
        return self.lock_dir / f"{digest}.lock"

    def _acquire_file(self, key: Path) -> Optional[int]:
        if self.lock_dir is None:
            return None
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        descriptor = os.open(self._lock_path(key), os.O_CREAT | os.O_RDWR)
        try:
            _lock_descriptor(descriptor, blocking=False)
        except OSError as exc:
            os.close(descriptor)
            raise RootBusyError(f"Another process is organizing {key}") from exc
        os.ftruncate(descriptor, 0)
        os.write(descriptor, f"{os.getpid()}\n{key}\n".encode("utf-8"))
        return descriptor


__all__ = ["CancelToken", "FileLock", "LOCK_DIRNAME", "RootLockRegistry"]
