"""Organization plan data models.

Folder suggestions are stored in a flat arena (``OrganizationPlan.nodes``) and
reference their children by index. Plans are immutable once built; use
``PlanBuilder`` to assemble one.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

SCHEMA_VERSION = 1

PlanFormat = Literal["full", "compact", "partial"]


class PlanBaseModel(BaseModel):
    """Shared configuration for immutable plan models."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class PlanNode(PlanBaseModel):
    """A folder suggestion within the plan tree.

    Attributes:
        index: Position of the node in the plan arena.
        name: Folder name as proposed (never blank).
        description: Optional description from the model.
        reasoning: Optional reasoning from the model.
        parent: Arena index of the parent node, ``None`` for roots.
        children: Ordered arena indices of child folders.
        file_ids: Ordered identifiers of files placed directly in this folder.
        semantic_tags: Folder-level tags proposed by the model.
        confidence: Model confidence in [0, 1] when supplied.
    """

    index: int
    name: str
    description: str = ""
    reasoning: str = ""
    parent: Optional[int] = None
    children: Tuple[int, ...] = ()
    file_ids: Tuple[str, ...] = ()
    semantic_tags: Tuple[str, ...] = ()
    confidence: Optional[float] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("folder name must not be blank")
        return value.strip()

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: Optional[float]) -> Optional[float]:
        if value is None:
            return None
        return min(1.0, max(0.0, float(value)))


class RenameMapping(PlanBaseModel):
    """Suggested new base name for a file."""

    file_id: str
    suggested_name: str
    reason: Optional[str] = None


class TagMapping(PlanBaseModel):
    """Tags proposed for a file, deduplicated in first-seen order."""

    file_id: str
    tags: Tuple[str, ...] = ()


class UnassignedFile(PlanBaseModel):
    """A catalog file the plan did not place in any folder."""

    file_id: str
    reason: Optional[str] = None


class GenerationStats(PlanBaseModel):
    """Timing and token statistics reported by the model client."""

    duration_seconds: float = 0.0
    tokens_per_second: float = 0.0
    time_to_first_token: float = 0.0
    total_tokens: int = 0
    model: str = ""


class OrganizationPlan(PlanBaseModel):
    """Complete organization proposal for one model response."""

    nodes: Tuple[PlanNode, ...] = ()
    roots: Tuple[int, ...] = ()
    renames: Tuple[RenameMapping, ...] = ()
    tags: Tuple[TagMapping, ...] = ()
    unassigned: Tuple[UnassignedFile, ...] = ()
    notes: str = ""
    stats: Optional[GenerationStats] = None
    schema_version: int = SCHEMA_VERSION
    source_format: PlanFormat = "full"

    def node(self, index: int) -> PlanNode:
        """Return the node stored at ``index``."""
        return self.nodes[index]

    def children(self, node: PlanNode) -> List[PlanNode]:
        """Return the child folders of ``node`` in order."""
        return [self.nodes[index] for index in node.children]

    def root_nodes(self) -> List[PlanNode]:
        """Return the top-level folders in order."""
        return [self.nodes[index] for index in self.roots]

    def walk(self) -> Iterator[Tuple[PlanNode, Tuple[str, ...]]]:
        """Yield every node with its folder-name chain in stable pre-order.

        Yields:
            Tuple[PlanNode, Tuple[str, ...]]: Node and the names from the root to it.
        """
        stack: List[Tuple[int, Tuple[str, ...]]] = [
            (index, ()) for index in reversed(self.roots)
        ]
        while stack:
            index, prefix = stack.pop()
            node = self.nodes[index]
            chain = prefix + (node.name,)
            yield node, chain
            for child in reversed(node.children):
                stack.append((child, chain))

    def rename_for(self, file_id: str) -> Optional[RenameMapping]:
        """Return the rename mapping for ``file_id`` if one exists."""
        return next((mapping for mapping in self.renames if mapping.file_id == file_id), None)

    def tags_for(self, file_id: str) -> Tuple[str, ...]:
        """Return the tags proposed for ``file_id``."""
        mapping = next((entry for entry in self.tags if entry.file_id == file_id), None)
        return mapping.tags if mapping is not None else ()

    def assigned_file_ids(self) -> List[str]:
        """Return file identifiers placed in folders, in pre-order."""
        return [file_id for node, _ in self.walk() for file_id in node.file_ids]

    @property
    def total_folders(self) -> int:
        """Number of folder suggestions in the plan."""
        return len(self.nodes)

    @property
    def total_files(self) -> int:
        """Number of placed files plus unassigned files."""
        return sum(len(node.file_ids) for node in self.nodes) + len(self.unassigned)

    @property
    def rename_count(self) -> int:
        """Number of rename suggestions in the plan."""
        return len(self.renames)


class PlanBuilder:
    """Mutable accumulator used to assemble an ``OrganizationPlan``.

    The builder enforces the plan invariants: a file is placed at most once,
    at most one rename exists per file, and tag lists are deduplicated.
    """

    def __init__(self) -> None:
        self._nodes: List[Dict[str, object]] = []
        self._roots: List[int] = []
        self._placed: Dict[str, int] = {}
        self._renames: Dict[str, RenameMapping] = {}
        self._tags: Dict[str, List[str]] = {}
        self._unassigned: Dict[str, UnassignedFile] = {}

    def add_folder(
        self,
        name: str,
        *,
        parent: Optional[int] = None,
        description: str = "",
        reasoning: str = "",
        semantic_tags: Optional[List[str]] = None,
        confidence: Optional[float] = None,
    ) -> int:
        """Register a folder and return its arena index.

        Args:
            name: Folder name; must be non-blank.
            parent: Arena index of the parent folder, ``None`` for a root folder.
            description: Optional description.
            reasoning: Optional reasoning.
            semantic_tags: Optional folder-level tags.
            confidence: Optional confidence score (clamped to [0, 1]).

        Returns:
            int: Arena index of the new folder.

        Raises:
            ValueError: If ``name`` is blank.
        """
        if not name.strip():
            raise ValueError("folder name must not be blank")
        index = len(self._nodes)
        self._nodes.append(
            {
                "index": index,
                "name": name.strip(),
                "description": description,
                "reasoning": reasoning,
                "parent": parent,
                "children": [],
                "file_ids": [],
                "semantic_tags": _dedupe(semantic_tags or []),
                "confidence": confidence,
            }
        )
        if parent is None:
            self._roots.append(index)
        else:
            self._nodes[parent]["children"].append(index)  # type: ignore[attr-defined]
        return index

    def place_file(self, folder: int, file_id: str) -> bool:
        """Place ``file_id`` in ``folder`` unless it is already placed.

        Returns:
            bool: ``True`` when the file was placed, ``False`` if it was already placed.
        """
        if file_id in self._placed:
            return False
        self._placed[file_id] = folder
        self._nodes[folder]["file_ids"].append(file_id)  # type: ignore[attr-defined]
        self._unassigned.pop(file_id, None)
        return True

    def is_placed(self, file_id: str) -> bool:
        """Return whether ``file_id`` has been placed in a folder."""
        return file_id in self._placed

    def set_rename(self, file_id: str, suggested_name: str, reason: Optional[str] = None) -> bool:
        """Record a rename suggestion; the first suggestion for a file wins."""
        if file_id in self._renames or not suggested_name.strip():
            return False
        self._renames[file_id] = RenameMapping(
            file_id=file_id, suggested_name=suggested_name.strip(), reason=reason
        )
        return True

    def add_tags(self, file_id: str, tags: List[str]) -> None:
        """Merge ``tags`` into the tag list for ``file_id``."""
        merged = _dedupe(self._tags.get(file_id, []) + list(tags))
        if merged:
            self._tags[file_id] = merged

    def mark_unassigned(self, file_id: str, reason: Optional[str] = None) -> None:
        """Record ``file_id`` as unassigned unless it is placed."""
        if file_id in self._placed:
            return
        existing = self._unassigned.get(file_id)
        if existing is not None and existing.reason:
            return
        self._unassigned[file_id] = UnassignedFile(file_id=file_id, reason=reason)

    @property
    def folder_count(self) -> int:
        """Number of folders registered so far."""
        return len(self._nodes)

    def build(
        self,
        *,
        notes: str = "",
        stats: Optional[GenerationStats] = None,
        source_format: PlanFormat = "full",
    ) -> OrganizationPlan:
        """Freeze the accumulated state into an ``OrganizationPlan``."""
        nodes = tuple(
            PlanNode(
                index=raw["index"],  # type: ignore[arg-type]
                name=raw["name"],  # type: ignore[arg-type]
                description=raw["description"],  # type: ignore[arg-type]
                reasoning=raw["reasoning"],  # type: ignore[arg-type]
                parent=raw["parent"],  # type: ignore[arg-type]
                children=tuple(raw["children"]),  # type: ignore[arg-type]
                file_ids=tuple(raw["file_ids"]),  # type: ignore[arg-type]
                semantic_tags=tuple(raw["semantic_tags"]),  # type: ignore[arg-type]
                confidence=raw["confidence"],  # type: ignore[arg-type]
            )
            for raw in self._nodes
        )
        placed = set(self._placed)
        return OrganizationPlan(
            nodes=nodes,
            roots=tuple(self._roots),
            renames=tuple(
                mapping for file_id, mapping in self._renames.items() if file_id in placed
            ),
            tags=tuple(
                TagMapping(file_id=file_id, tags=tuple(tags))
                for file_id, tags in self._tags.items()
                if file_id in placed
            ),
            unassigned=tuple(
                entry for file_id, entry in self._unassigned.items() if file_id not in placed
            ),
            notes=notes,
            stats=stats,
            source_format=source_format,
        )


def _dedupe(values: List[str]) -> List[str]:
    cleaned = [value.strip() for value in values if isinstance(value, str) and value.strip()]
    return list(dict.fromkeys(cleaned))


__all__ = [
    "SCHEMA_VERSION",
    "PlanFormat",
    "PlanNode",
    "RenameMapping",
    "TagMapping",
    "UnassignedFile",
    "GenerationStats",
    "OrganizationPlan",
    "PlanBuilder",
]
