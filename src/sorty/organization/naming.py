"""Name sanitization and collision-suffix helpers."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime
from typing import Iterator, Optional, Tuple

MAX_NAME_BYTES = 255
FOLDER_FALLBACK = "Untitled"
DEFAULT_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
MAX_SUFFIX_ATTEMPTS = 99

_UNSAFE = re.compile(r"[\x00-\x1f\x7f/\\]")
_WHITESPACE = re.compile(r"\s+")
_IDENTIFIER = re.compile(r"[A-Za-z0-9_.-]{1,32}")


def split_name(name: str) -> Tuple[str, str]:
    """Split ``name`` into stem and extension (without the dot).

    Leading dots belong to the stem, so ``.bashrc`` has no extension.
    """
    position = name.rfind(".")
    if position <= 0 or position == len(name) - 1 or not name[:position].strip("."):
        return name, ""
    return name[:position], name[position + 1 :]


def join_name(stem: str, extension: str) -> str:
    """Join ``stem`` and ``extension`` with a dot when an extension exists."""
    return f"{stem}.{extension}" if extension else stem


def truncate_name(name: str, limit: int = MAX_NAME_BYTES) -> str:
    """Cap ``name`` at ``limit`` UTF-8 bytes, keeping the extension when it fits."""
    if len(name.encode("utf-8")) <= limit:
        return name
    stem, extension = split_name(name)
    tail = f".{extension}" if extension else ""
    budget = limit - len(tail.encode("utf-8"))
    if budget <= 0:
        stem, tail, budget = name, "", limit
    clipped = stem.encode("utf-8")[:budget].decode("utf-8", errors="ignore").rstrip()
    return f"{clipped or '_'}{tail}"


def sanitize_component(value: str, *, fallback: str = FOLDER_FALLBACK) -> str:
    """Turn an arbitrary proposed name into a single safe path component.

    Path separators, NUL and control characters become ``_``, runs of
    whitespace collapse to a single space, and names made only of dots become
    ``_``. The result never contains a separator and never equals ``.`` or
    ``..``.

    Args:
        value: Proposed folder or file name.
        fallback: Name used when nothing usable remains.

    Returns:
        str: Sanitized component of at most ``MAX_NAME_BYTES`` bytes.
    """
    cleaned = _UNSAFE.sub("_", value if isinstance(value, str) else "")
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    if cleaned and not cleaned.strip("."):
        cleaned = "_"
    if not cleaned:
        cleaned = _UNSAFE.sub("_", fallback).strip() or "_"
        if not cleaned.strip("."):
            cleaned = "_"
    return truncate_name(cleaned)


def with_extension(suggested: str, extension: str) -> str:
    """Append ``extension`` to ``suggested`` when it has none of its own."""
    _, existing = split_name(suggested.strip())
    if existing or not extension:
        return suggested
    return f"{suggested.strip()}.{extension}"


def timestamp_label(moment: datetime, fmt: str = DEFAULT_TIMESTAMP_FORMAT) -> str:
    """Format the run timestamp used in collision suffixes."""
    return _UNSAFE.sub("_", moment.strftime(fmt))


def identifier_token(identifier: str) -> str:
    """Return ``identifier`` when it is short and filename-safe, else a 12-character digest."""
    if _IDENTIFIER.fullmatch(identifier) and identifier.strip("."):
        return identifier
    return hashlib.sha1(identifier.encode("utf-8")).hexdigest()[:12]


def _fit(stem: str, suffix: str, extension: str) -> str:
    tail = f"{suffix}.{extension}" if extension else suffix
    budget = MAX_NAME_BYTES - len(tail.encode("utf-8"))
    clipped = stem.encode("utf-8")[: max(budget, 1)].decode("utf-8", errors="ignore")
    return truncate_name(f"{clipped}{tail}")


def suffix_candidates(
    name: str,
    label: str,
    identifier: Optional[str] = None,
    *,
    max_attempts: int = MAX_SUFFIX_ATTEMPTS,
) -> Iterator[str]:
    """Yield disambiguated variants of ``name`` in a fixed order.

    The sequence is ``stem_<label>``, then ``stem_<label>_<identifier>`` and
    ``stem_<label>_<identifier>-<n>`` for ``n`` from 2 to ``max_attempts``.
    Without an identifier the numbered form is ``stem_<label>-<n>``. The stem
    is shortened when needed so the suffix always survives the length cap.

    Args:
        name: Name that collided.
        label: Formatted run timestamp.
        identifier: Optional identifier of the file being placed; ids that are
            long or unsafe in a file name are replaced by ``identifier_token``.
        max_attempts: Highest counter used before giving up.

    Yields:
        str: Candidate names, each at most ``MAX_NAME_BYTES`` bytes.
    """
    stem, extension = split_name(name)
    suffix = f"_{label}"
    yield _fit(stem, suffix, extension)
    if identifier:
        suffix = f"{suffix}_{identifier_token(identifier)}"
        yield _fit(stem, suffix, extension)
    for counter in range(2, max_attempts + 1):
        yield _fit(stem, f"{suffix}-{counter}", extension)


__all__ = [
    "DEFAULT_TIMESTAMP_FORMAT",
    "FOLDER_FALLBACK",
    "MAX_NAME_BYTES",
    "MAX_SUFFIX_ATTEMPTS",
    "identifier_token",
    "join_name",
    "sanitize_component",
    "split_name",
    "suffix_candidates",
    "timestamp_label",
    "truncate_name",
    "with_extension",
]
