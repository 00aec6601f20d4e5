"""Resolution, execution, and undo of organization plans."""

from .executor import OperationExecutor
from .models import ExecutionResult, ResolvedFile, ResolvedPlan, UndoOutcome, UndoReport
from .resolver import DestinationResolver, resolve
from .tags import SidecarTagStore, TagStore, XattrTagStore, tag_store_for
from .undo import UndoEngine

__all__ = [
    "DestinationResolver",
    "ExecutionResult",
    "OperationExecutor",
    "ResolvedFile",
    "ResolvedPlan",
    "SidecarTagStore",
    "TagStore",
    "UndoEngine",
    "UndoOutcome",
    "UndoReport",
    "XattrTagStore",
    "resolve",
    "tag_store_for",
]
