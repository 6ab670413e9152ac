"""Integration tests for the subprocess worker transport.

Spawns a child Python process running a WorkerServer over stdin/stdout
with the mock embedding provider and in-memory store, so JSON-line
framing and process lifecycle are exercised without loading a model.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from src.models.rag import ChunkRecord
from src.utils.errors import WorkerCancelledError, WorkerError
from src.worker.channels import SubprocessWorkerChannel
from src.worker.proxy import WorkerProxy

_REPO_ROOT = Path(__file__).resolve().parents[2]

_CHILD_SCRIPT = """
import asyncio
import sys

sys.path.insert(0, {root!r})

from src.utils.logging import configure_logging
from src.worker.channels import StdioChannel
from src.worker.server import WorkerServer
from tests.conftest import MockEmbeddingProvider, MockVectorStore


async def main():
    configure_logging("WARNING", stream=sys.stderr)
    server = WorkerServer(
        embedding_provider=MockEmbeddingProvider(),
        vector_store=MockVectorStore(),
        dimension=16,
    )
    channel = StdioChannel()
    await channel.open()
    await server.serve(channel)


asyncio.run(main())
"""


@pytest.fixture()
def child_command(tmp_path: Path) -> list[str]:
    script = tmp_path / "mock_worker.py"
    script.write_text(_CHILD_SCRIPT.format(root=str(_REPO_ROOT)), encoding="utf-8")
    return [sys.executable, str(script)]


class TestSubprocessWorker:
    @pytest.mark.asyncio
    async def test_round_trip_over_pipes(self, child_command: list[str]) -> None:
        channel = SubprocessWorkerChannel(command=child_command)
        await channel.start()
        proxy = WorkerProxy(channel, call_timeout=30.0, init_timeout=30.0)
        try:
            init = await proxy.initialize()
            assert init.success
            assert init.dimension == 16

            vectors = await proxy.vectorize_sentences(["first sentence", "second sentence"])
            assert [len(v) for v in vectors] == [16, 16]

            stored = await proxy.vectorize_and_store(
                [
                    ChunkRecord(
                        file_path="a.md", chunk_offset_start=0, chunk_offset_end=14,
                        text="first sentence",
                    ),
                    ChunkRecord(
                        file_path="b.md", chunk_offset_start=0, chunk_offset_end=15,
                        text="second sentence",
                    ),
                ]
            )
            assert stored == 2

            hits = await proxy.search_similar_by_vector(vectors[0], 5, exclude_file_paths=["b.md"])
            assert [h.file_path for h in hits] == ["a.md"]
            assert hits[0].distance == pytest.approx(0.0, abs=1e-9)
        finally:
            await proxy.terminate()
        assert channel.is_closed

    @pytest.mark.asyncio
    async def test_worker_exiting_cancels_initialize(self) -> None:
        channel = SubprocessWorkerChannel(
            command=[sys.executable, "-c", "import sys; sys.stdin.readline()"]
        )
        await channel.start()
        proxy = WorkerProxy(channel, call_timeout=30.0, init_timeout=30.0)
        try:
            with pytest.raises(WorkerCancelledError, match="closed"):
                await proxy.initialize()
            assert not proxy.is_initialized
        finally:
            await proxy.terminate()

    @pytest.mark.asyncio
    async def test_unstartable_command(self, tmp_path: Path) -> None:
        channel = SubprocessWorkerChannel(command=[str(tmp_path / "no-such-binary")])
        with pytest.raises(WorkerError, match="Could not start worker process"):
            await channel.start()
