"""Parse raw model output into organization plans.

The parser accepts text that may be wrapped in markdown fences or prose, may
use the full or the compact response schema, and may be truncated. When the
text cannot be decoded it falls back to a regex-driven partial extraction that
recovers folder names and their file lists.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterator, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from sorty.catalog.models import FileRecord
from sorty.errors import ParseError

from .matching import FileMatcher
from .models import GenerationStats, OrganizationPlan, PlanBuilder
from .schema import CompactPlanResponse, FolderPayload, PlanResponse

LOGGER = logging.getLogger(__name__)

UNPLACED_REASON = "not placed by plan"
MISSING_NAME_REASON = "folder name missing"
PARTIAL_REASON = "not recovered from partial response"
UNDECODABLE_REASON = "response could not be decoded"

MAX_OBJECT_CANDIDATES = 64
MAX_REPORTED_REFERENCES = 10

_FENCE_OPEN = re.compile(r"^```[\w+-]*[ \t]*\r?\n?")
_FENCE_CLOSE = re.compile(r"\r?\n?```\s*$")
_NAME_PATTERN = re.compile(r'"(?:name|n)"\s*:\s*"((?:[^"\\]|\\.)*)"')
_FILES_PATTERN = re.compile(r'"files"\s*:\s*\[')

DecodedResponse = Union[PlanResponse, CompactPlanResponse]


def strip_fences(text: str) -> str:
    """Remove a surrounding markdown code fence from ``text``.

    Args:
        text: Raw response text.

    Returns:
        str: Text without a leading ```` ```lang ```` line or trailing fence.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
    if cleaned.endswith("```"):
        cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned.strip()


def _matching_brace(text: str, start: int) -> Optional[int]:
    depth = 0
    in_string = False
    escaped = False
    for position in range(start, len(text)):
        char = text[position]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return position
    return None


def _object_candidates(text: str) -> Iterator[str]:
    """Yield balanced ``{...}`` spans in order of their opening brace."""
    start = text.find("{")
    attempts = 0
    while start != -1 and attempts < MAX_OBJECT_CANDIDATES:
        attempts += 1
        end = _matching_brace(text, start)
        if end is not None:
            yield text[start : end + 1]
        start = text.find("{", start + 1)

    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last > first:
        yield text[first : last + 1]


def _decode_schema(payload: Any) -> Optional[DecodedResponse]:
    if not isinstance(payload, dict):
        return None
    if "folders" in payload:
        try:
            return PlanResponse.model_validate(payload)
        except ValidationError as exc:
            LOGGER.debug("Full schema rejected response: %s", exc)
    if "f" in payload:
        try:
            return CompactPlanResponse.model_validate(payload)
        except ValidationError as exc:
            LOGGER.debug("Compact schema rejected response: %s", exc)
    return None


def decode_response(text: str) -> Tuple[Optional[DecodedResponse], bool]:
    """Decode the first JSON object in ``text`` that matches a known schema.

    Args:
        text: Response text with fences already removed.

    Returns:
        Tuple[Optional[DecodedResponse], bool]: Decoded response (or ``None``) and
            whether any JSON object boundary was found.
    """
    found_boundary = False
    for candidate in _object_candidates(text):
        found_boundary = True
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        decoded = _decode_schema(payload)
        if decoded is not None:
            return decoded, True
    return None, found_boundary


def validate_structure(raw_text: str) -> bool:
    """Return whether ``raw_text`` decodes against the full or compact schema."""
    if not raw_text or not raw_text.strip():
        return False
    decoded, _ = decode_response(strip_fences(raw_text))
    return decoded is not None


def _unescape(value: str) -> str:
    try:
        decoded = json.loads(f'"{value}"')
    except json.JSONDecodeError:
        return value
    return decoded if isinstance(decoded, str) else value


def _list_file_references(text: str, open_index: int) -> List[str]:
    """Collect file names from the ``files`` list starting at ``open_index``.

    Bare strings directly inside the list and ``filename`` values of objects
    inside the list are collected. Nested lists (such as tags) are ignored and
    an unterminated trailing string is discarded.
    """
    references: List[str] = []
    bracket_depth = 0
    brace_depth = 0
    last_key: Optional[str] = None
    position = open_index
    length = len(text)

    while position < length:
        char = text[position]
        if char == '"':
            cursor = position + 1
            while cursor < length and text[cursor] != '"':
                cursor += 2 if text[cursor] == "\\" else 1
            if cursor >= length:
                break
            value = _unescape(text[position + 1 : cursor])
            lookahead = cursor + 1
            while lookahead < length and text[lookahead].isspace():
                lookahead += 1
            if lookahead < length and text[lookahead] == ":":
                last_key = value
            else:
                if bracket_depth == 1 and brace_depth == 0:
                    references.append(value)
                elif bracket_depth == 1 and brace_depth == 1 and last_key == "filename":
                    references.append(value)
                last_key = None
            position = cursor + 1
            continue
        if char == "[":
            bracket_depth += 1
        elif char == "]":
            bracket_depth -= 1
            if bracket_depth <= 0:
                break
        elif char == "{":
            brace_depth += 1
        elif char == "}":
            brace_depth -= 1
        position += 1

    return references


def _summarize(values: Sequence[str]) -> str:
    shown = ", ".join(values[:MAX_REPORTED_REFERENCES])
    hidden = len(values) - MAX_REPORTED_REFERENCES
    return f"{shown} (+{hidden} more)" if hidden > 0 else shown


class PlanParser:
    """Convert raw model responses into ``OrganizationPlan`` objects."""

    def parse(
        self,
        raw_text: Optional[str],
        known_files: Sequence[FileRecord],
        *,
        stats: Optional[GenerationStats] = None,
    ) -> OrganizationPlan:
        """Parse ``raw_text`` into a plan referencing ``known_files``.

        Args:
            raw_text: Raw response text from the model client.
            known_files: Catalog the response refers to.
            stats: Optional generation statistics to attach to the plan.

        Returns:
            OrganizationPlan: Parsed plan; every catalog file is either placed or unassigned.

        Raises:
            ParseError: ``empty_response`` for blank input, or ``invalid_json`` when
                no JSON object is present and partial extraction recovers nothing.
        """
        if raw_text is None or not raw_text.strip():
            raise ParseError("empty_response", "Empty response from model")

        matcher = FileMatcher(known_files)
        cleaned = strip_fences(raw_text)
        decoded, found_boundary = decode_response(cleaned)

        if isinstance(decoded, PlanResponse):
            return self._from_full(decoded, matcher, stats)
        if isinstance(decoded, CompactPlanResponse):
            return self._from_compact(decoded, matcher, stats)

        LOGGER.info("Plan response did not match a known schema; attempting partial extraction.")
        partial = self._from_partial(cleaned, matcher, stats)
        if partial is not None:
            return partial

        if not found_boundary:
            raise ParseError("invalid_json", "Invalid JSON response from model")

        LOGGER.warning("No folders could be recovered from the plan response.")
        builder = PlanBuilder()
        for record in matcher.files:
            builder.mark_unassigned(record.id, UNDECODABLE_REASON)
        return builder.build(
            notes="Response could not be decoded; no folders were recovered.",
            stats=stats,
            source_format="partial",
        )

    # ------------------------------------------------------------------ #
    # Schema conversions                                                 #
    # ------------------------------------------------------------------ #

    def _from_full(
        self,
        response: PlanResponse,
        matcher: FileMatcher,
        stats: Optional[GenerationStats],
    ) -> OrganizationPlan:
        builder = PlanBuilder()
        unmatched: List[str] = []
        duplicates: List[str] = []

        for folder in response.folders:
            self._add_folder(builder, folder, None, matcher, unmatched, duplicates)

        for item in response.unorganized:
            record = matcher.find(item.filename)
            if record is None:
                unmatched.append(item.filename)
                continue
            builder.mark_unassigned(record.id, item.reason or None)

        self._mark_remaining(builder, matcher, UNPLACED_REASON)

        notes = self._notes(response.notes, None, unmatched, duplicates)
        return builder.build(notes=notes, stats=stats, source_format="full")

    def _add_folder(
        self,
        builder: PlanBuilder,
        folder: FolderPayload,
        parent: Optional[int],
        matcher: FileMatcher,
        unmatched: List[str],
        duplicates: List[str],
    ) -> None:
        if not folder.name.strip():
            for entry in folder.files:
                record = matcher.find(entry.filename)
                if record is None:
                    unmatched.append(entry.filename)
                else:
                    builder.mark_unassigned(record.id, MISSING_NAME_REASON)
            for subfolder in folder.subfolders:
                self._add_folder(builder, subfolder, parent, matcher, unmatched, duplicates)
            return

        index = builder.add_folder(
            folder.name,
            parent=parent,
            description=folder.description or "",
            reasoning=folder.reasoning or folder.description or "",
            semantic_tags=folder.semantic_tags,
            confidence=folder.confidence,
        )

        for entry in folder.files:
            record = matcher.find(entry.filename)
            if record is None:
                unmatched.append(entry.filename)
                continue
            if not builder.place_file(index, record.id):
                duplicates.append(entry.filename)
                continue
            suggested = (entry.suggested_name or "").strip()
            if suggested and suggested != record.display_name:
                builder.set_rename(record.id, suggested, entry.rename_reason)
            if entry.tags:
                builder.add_tags(record.id, entry.tags)

        for subfolder in folder.subfolders:
            self._add_folder(builder, subfolder, index, matcher, unmatched, duplicates)

    def _from_compact(
        self,
        response: CompactPlanResponse,
        matcher: FileMatcher,
        stats: Optional[GenerationStats],
    ) -> OrganizationPlan:
        builder = PlanBuilder()
        unmatched: List[str] = []
        duplicates: List[str] = []

        for folder in response.f:
            records = []
            for filename in folder.files:
                record = matcher.find(filename)
                if record is None:
                    unmatched.append(filename)
                else:
                    records.append((filename, record))
            if not folder.n.strip():
                for _, record in records:
                    builder.mark_unassigned(record.id, MISSING_NAME_REASON)
                continue
            index = builder.add_folder(folder.n, reasoning="Generated from compact format")
            for filename, record in records:
                if not builder.place_file(index, record.id):
                    duplicates.append(filename)

        self._mark_remaining(builder, matcher, UNPLACED_REASON)
        notes = self._notes(None, "Processed via compact format.", unmatched, duplicates)
        return builder.build(notes=notes, stats=stats, source_format="compact")

    def _from_partial(
        self,
        text: str,
        matcher: FileMatcher,
        stats: Optional[GenerationStats],
    ) -> Optional[OrganizationPlan]:
        builder = PlanBuilder()
        unmatched: List[str] = []
        name_matches = list(_NAME_PATTERN.finditer(text))

        for position, match in enumerate(name_matches):
            name = _unescape(match.group(1)).strip()
            limit = (
                name_matches[position + 1].start()
                if position + 1 < len(name_matches)
                else len(text)
            )
            files_match = _FILES_PATTERN.search(text, match.end(), limit)
            if not name or files_match is None:
                continue

            records: List[FileRecord] = []
            for reference in _list_file_references(text, files_match.end() - 1):
                record = matcher.find(reference)
                if record is None:
                    unmatched.append(reference)
                elif not builder.is_placed(record.id) and record not in records:
                    records.append(record)
            if not records:
                continue

            index = builder.add_folder(name, reasoning="Extracted from partial response")
            for record in records:
                builder.place_file(index, record.id)

        if builder.folder_count == 0:
            return None

        self._mark_remaining(builder, matcher, PARTIAL_REASON)
        notes = self._notes(
            None,
            "Partial extraction - some organization data may be missing.",
            unmatched,
            [],
        )
        LOGGER.info("Recovered %d folder(s) via partial extraction.", builder.folder_count)
        return builder.build(notes=notes, stats=stats, source_format="partial")

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    def _mark_remaining(self, builder: PlanBuilder, matcher: FileMatcher, reason: str) -> None:
        for record in matcher.files:
            if not builder.is_placed(record.id):
                builder.mark_unassigned(record.id, reason)

    def _notes(
        self,
        response_notes: Optional[str],
        format_note: Optional[str],
        unmatched: List[str],
        duplicates: List[str],
    ) -> str:
        parts: List[str] = []
        if response_notes and response_notes.strip():
            parts.append(response_notes.strip())
        if format_note:
            parts.append(format_note)
        if unmatched:
            unique = list(dict.fromkeys(unmatched))
            LOGGER.info("Ignored %d file reference(s) not present in the catalog.", len(unique))
            parts.append(f"Ignored unknown file references: {_summarize(unique)}")
        if duplicates:
            unique = list(dict.fromkeys(duplicates))
            parts.append(f"Kept first placement for repeated files: {_summarize(unique)}")
        return "\n".join(parts)


def parse(
    raw_text: Optional[str],
    known_files: Sequence[FileRecord],
    *,
    stats: Optional[GenerationStats] = None,
) -> OrganizationPlan:
    """Parse ``raw_text`` with a default ``PlanParser``."""
    return PlanParser().parse(raw_text, known_files, stats=stats)


__all__ = [
    "PlanParser",
    "parse",
    "strip_fences",
    "decode_response",
    "validate_structure",
    "UNPLACED_REASON",
    "MISSING_NAME_REASON",
    "PARTIAL_REASON",
]
