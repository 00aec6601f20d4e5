"""Tag storage backends used when applying and reversing tag actions."""

from __future__ import annotations

import errno
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Literal, Protocol, Sequence, runtime_checkable

from sorty.errors import SortyError
from sorty.state.errors import StateError

TagBackend = Literal["sidecar", "xattr"]

SIDECAR_FILENAME = "tags.json"
XATTR_NAME = "user.xdg.tags"

_MISSING_ATTRIBUTE = {
    code for code in (getattr(errno, "ENODATA", None), getattr(errno, "ENOATTR", None)) if code
}


@runtime_checkable
class TagStore(Protocol):
    """Read and modify the tags attached to a file."""

    def read(self, path: Path) -> List[str]: ...

    def add(self, path: Path, tags: Sequence[str]) -> List[str]: ...

    def remove(self, path: Path, tags: Sequence[str]) -> List[str]: ...


def _require_file(path: Path) -> None:
    if not os.path.lexists(path):
        raise FileNotFoundError(errno.ENOENT, "No such file", str(path))


class SidecarTagStore:
    """Keep tags in a JSON document keyed by absolute file path."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def read(self, path: Path) -> List[str]:
        """Return the tags recorded for ``path``."""
        with self._lock:
            return list(self._load().get(str(path), []))

    def add(self, path: Path, tags: Sequence[str]) -> List[str]:
        """Attach ``tags`` to ``path``.

        Args:
            path: File to tag; must exist.
            tags: Tags to attach.

        Returns:
            List[str]: Tags that were not present before the call.
        """
        _require_file(path)
        with self._lock:
            data = self._load()
            current = data.get(str(path), [])
            added = [tag for tag in dict.fromkeys(tags) if tag and tag not in current]
            if added:
                data[str(path)] = current + added
                self._save(data)
            return added

    def remove(self, path: Path, tags: Sequence[str]) -> List[str]:
        """Detach ``tags`` from ``path`` and return the ones that were present."""
        with self._lock:
            data = self._load()
            current = data.get(str(path), [])
            removed = [tag for tag in dict.fromkeys(tags) if tag in current]
            if removed:
                remaining = [tag for tag in current if tag not in removed]
                if remaining:
                    data[str(path)] = remaining
                else:
                    data.pop(str(path), None)
                self._save(data)
            return removed

    def _load(self) -> Dict[str, List[str]]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StateError(f"Invalid tag data in {self.path}: {exc}") from exc
        tags = payload.get("tags") if isinstance(payload, dict) else None
        if not isinstance(tags, dict):
            raise StateError(f"Invalid tag data in {self.path}: missing tags mapping")
        return {
            key: [tag for tag in value if isinstance(tag, str)]
            for key, value in tags.items()
            if isinstance(value, list)
        }

    def _save(self, data: Dict[str, List[str]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            delete=False,
        )
        try:
            with handle:
                json.dump({"version": 1, "tags": data}, handle, indent=2, sort_keys=True)
            os.replace(handle.name, self.path)
        except OSError:
            Path(handle.name).unlink(missing_ok=True)
            raise


class XattrTagStore:
    """Keep tags in the ``user.xdg.tags`` extended attribute (comma separated)."""

    def __init__(self, attribute: str = XATTR_NAME) -> None:
        if not hasattr(os, "setxattr"):
            raise SortyError("Extended attributes are not supported on this platform")
        self.attribute = attribute

    def read(self, path: Path) -> List[str]:
        """Return the tags stored on ``path``."""
        try:
            raw = os.getxattr(path, self.attribute)
        except OSError as exc:
            if exc.errno in _MISSING_ATTRIBUTE:
                return []
            raise
        return [tag.strip() for tag in raw.decode("utf-8").split(",") if tag.strip()]

    def add(self, path: Path, tags: Sequence[str]) -> List[str]:
        """Attach ``tags`` to ``path`` and return the ones that were new.

        Raises:
            SortyError: If a tag holds a comma or surrounding whitespace, which
                the comma-separated attribute cannot store exactly.
        """
        unstorable = [tag for tag in tags if "," in tag or tag != tag.strip()]
        if unstorable:
            raise SortyError(
                f"Tags {unstorable!r} cannot be stored in {self.attribute}: "
                "commas and surrounding whitespace are not allowed"
            )
        current = self.read(path)
        added = [tag for tag in dict.fromkeys(tags) if tag and tag not in current]
        if added:
            self._write(path, current + added)
        return added

    def remove(self, path: Path, tags: Sequence[str]) -> List[str]:
        """Detach ``tags`` from ``path`` and return the ones that were present."""
        current = self.read(path)
        removed = [tag for tag in dict.fromkeys(tags) if tag in current]
        if not removed:
            return []
        remaining = [tag for tag in current if tag not in removed]
        if remaining:
            self._write(path, remaining)
        else:
            os.removexattr(path, self.attribute)
        return removed

    def _write(self, path: Path, tags: List[str]) -> None:
        os.setxattr(path, self.attribute, ",".join(tags).encode("utf-8"))


def tag_store_for(backend: TagBackend, state_dir: Path) -> TagStore:
    """Build the tag store selected by ``backend``.

    Args:
        backend: ``sidecar`` or ``xattr``.
        state_dir: Directory holding the sidecar document.

    Returns:
        TagStore: Configured tag store.
    """
    if backend == "xattr":
        return XattrTagStore()
    return SidecarTagStore(state_dir / SIDECAR_FILENAME)


__all__ = [
    "SIDECAR_FILENAME",
    "XATTR_NAME",
    "SidecarTagStore",
    "TagBackend",
    "TagStore",
    "XattrTagStore",
    "tag_store_for",
]
