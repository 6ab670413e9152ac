"""Batch progress reporting with callback-based listener notification.

Indexing and storage maintenance runs report their progress through a
:class:`ProgressReporter`, which forwards each update to a single
caller-supplied sink.

# ─── HOW PROGRESS REPORTING WORKS ─────────────────────────────────────
#
# This implements the Observer pattern with one listener:
#
#   VectorizationService ──report()──→ ProgressReporter ──on_progress()──→ CLI
#   StorageService       ──report()──→                                 ──→ (any sink)
#
# Sink contract: on_progress(message, is_overall_progress=False)
#   - May be sync or async (asyncio.iscoroutine check)
#   - Its return value is ignored
#   - Its exceptions are logged and skipped, never propagated
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from src.utils.logging import get_logger

ProgressCallback = Callable[..., object]


class ProgressReporter:
    """Formats and forwards progress updates to an optional sink.

    Parameters
    ----------
    on_progress:
        A sync or async callable accepting ``(message, is_overall_progress)``.
        ``None`` makes every report a logged no-op.
    """

    def __init__(self, on_progress: ProgressCallback | None = None) -> None:
        self._callback = on_progress
        self._last_message = ""
        self._percent = 0.0
        self._logger = get_logger(__name__)

    @property
    def last_message(self) -> str:
        return self._last_message

    @property
    def percent(self) -> float:
        return self._percent

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def report(self, message: str, is_overall_progress: bool = False) -> None:
        """Record *message* and deliver it to the sink."""
        self._last_message = message
        self._logger.debug(
            "progress_update",
            message=message,
            is_overall_progress=is_overall_progress,
        )
        await self._notify(message, is_overall_progress)

    async def report_document(self, completed: int, total: int, file_path: str) -> None:
        """Report per-document completion as a percentage of *total*.

        Parameters
        ----------
        completed:
            Number of documents finished so far, including this one.
        total:
            Number of documents in the run.
        file_path:
            The document that just finished.
        """
        self._percent = 100.0 if total <= 0 else max(0.0, min(100.0, completed * 100.0 / total))
        await self.report(
            f"Vectorizing notes: {self._percent:.1f}% ({completed}/{total}) {file_path}"
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify(self, message: str, is_overall_progress: bool) -> None:
        """Invoke the sink, logging and skipping any error it raises."""
        if self._callback is None:
            return
        try:
            result = self._callback(message, is_overall_progress)
            if asyncio.iscoroutine(result):
                await result
        except Exception as exc:
            self._logger.warning(
                "progress_callback_error",
                error=str(exc),
                callback=getattr(self._callback, "__name__", repr(self._callback)),
            )
