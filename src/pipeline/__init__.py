"""Progress reporting for batch indexing and storage maintenance runs."""

from src.pipeline.progress_tracker import ProgressCallback, ProgressReporter

__all__ = [
    "ProgressCallback",
    "ProgressReporter",
]
