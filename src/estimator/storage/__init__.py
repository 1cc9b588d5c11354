"""Storage layer for documents and analysis results."""

from .base import (
    AnalysisStore,
    DocumentSource,
    FileSystemDocumentSource,
    InMemoryAnalysisStore,
    InMemoryDocumentSource,
)
from .database import DatabaseClient
from .documents import S3Client

__all__ = [
    "AnalysisStore",
    "DocumentSource",
    "FileSystemDocumentSource",
    "InMemoryAnalysisStore",
    "InMemoryDocumentSource",
    "DatabaseClient",
    "S3Client",
]
