"""Service layer for the manuscript ingestion pipeline."""

from __future__ import annotations

from .analysis import IngestionAnalysis, analyze_project  # noqa: F401
from .classification import ClassifiedFile, classify_file, classify_files  # noqa: F401
from .consolidation import ClarifyingQuestion, consolidate  # noqa: F401
from .dialogue import ClarificationDialogue, DialogueError  # noqa: F401
from .ingestion import IngestionError  # noqa: F401
from .materialize import MaterializationError, materialize_project  # noqa: F401

__all__ = [
    "ClarificationDialogue",
    "ClarifyingQuestion",
    "ClassifiedFile",
    "DialogueError",
    "IngestionAnalysis",
    "IngestionError",
    "MaterializationError",
    "analyze_project",
    "classify_file",
    "classify_files",
    "consolidate",
    "materialize_project",
]
