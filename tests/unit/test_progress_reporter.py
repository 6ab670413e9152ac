"""Unit tests for ProgressReporter - sink delivery, percentages and error isolation."""

from __future__ import annotations

import pytest

from src.pipeline.progress_tracker import ProgressReporter


class TestProgressReporter:
    @pytest.mark.asyncio
    async def test_report_reaches_sync_sink(self) -> None:
        received: list[tuple[str, bool]] = []
        reporter = ProgressReporter(lambda m, overall: received.append((m, overall)))

        await reporter.report("Working...", is_overall_progress=True)
        await reporter.report("detail")

        assert received == [("Working...", True), ("detail", False)]
        assert reporter.last_message == "detail"

    @pytest.mark.asyncio
    async def test_report_reaches_async_sink(self) -> None:
        received: list[str] = []

        async def sink(message: str, is_overall_progress: bool = False) -> None:
            received.append(message)

        await ProgressReporter(sink).report("hello")
        assert received == ["hello"]

    @pytest.mark.asyncio
    async def test_no_sink_is_a_no_op(self) -> None:
        reporter = ProgressReporter()
        await reporter.report("nobody listens")
        assert reporter.last_message == "nobody listens"

    @pytest.mark.asyncio
    async def test_sink_errors_are_swallowed(self) -> None:
        def broken(message: str, is_overall_progress: bool = False) -> None:
            raise RuntimeError("sink broke")

        reporter = ProgressReporter(broken)
        await reporter.report("first")
        await reporter.report("second")
        assert reporter.last_message == "second"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("completed", "total", "expected_percent", "expected_message"),
        [
            (1, 4, 25.0, "Vectorizing notes: 25.0% (1/4) a.md"),
            (3, 3, 100.0, "Vectorizing notes: 100.0% (3/3) a.md"),
            (1, 3, 100 / 3, "Vectorizing notes: 33.3% (1/3) a.md"),
            (0, 0, 100.0, "Vectorizing notes: 100.0% (0/0) a.md"),
        ],
    )
    async def test_report_document(
        self, completed: int, total: int, expected_percent: float, expected_message: str
    ) -> None:
        received: list[str] = []
        reporter = ProgressReporter(lambda m, overall: received.append(m))

        await reporter.report_document(completed, total, "a.md")

        assert reporter.percent == pytest.approx(expected_percent)
        assert received == [expected_message]
