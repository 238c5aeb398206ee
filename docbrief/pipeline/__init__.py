"""Pipeline orchestration components for the docbrief document pipeline."""

from docbrief.pipeline.orchestrator import DocumentPipeline
from docbrief.pipeline.progress_tracker import ProgressTracker
from docbrief.pipeline.validation_gate import ValidationGate

__all__ = [
    "DocumentPipeline",
    "ProgressTracker",
    "ValidationGate",
]
