"""Organization plan models and the parser that produces them."""

from .matching import FileMatcher
from .models import (
    SCHEMA_VERSION,
    GenerationStats,
    OrganizationPlan,
    PlanBuilder,
    PlanNode,
    RenameMapping,
    TagMapping,
    UnassignedFile,
)
from .parser import PlanParser, parse, validate_structure

__all__ = [
    "SCHEMA_VERSION",
    "FileMatcher",
    "GenerationStats",
    "OrganizationPlan",
    "PlanBuilder",
    "PlanNode",
    "PlanParser",
    "RenameMapping",
    "TagMapping",
    "UnassignedFile",
    "parse",
    "validate_structure",
]
