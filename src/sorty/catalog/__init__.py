"""File catalog models and collaborator interfaces."""

from .discovery import DirectoryScanner, record_id_for
from .interfaces import ModelClient, Scanner
from .models import ContentMetadata, FileRecord

__all__ = [
    "ContentMetadata",
    "DirectoryScanner",
    "FileRecord",
    "ModelClient",
    "Scanner",
    "record_id_for",
]
