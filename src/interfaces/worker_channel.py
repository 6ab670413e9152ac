"""Abstract base class for the duplex message channel to the worker.

The worker proxy only ever sees this interface, so the transport under it
(an in-process task, a subprocess over pipes) is swappable without
touching the correlation logic.

Messages are plain JSON-compatible dicts shaped ``{id, type, payload}``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any


# Concrete implementations (src/worker/channels.py):
#   InProcessWorkerChannel  - worker server runs as a task in the same loop
#   SubprocessWorkerChannel - `python -m src.worker`, JSON lines over pipes
#   StdioChannel            - worker-side end of the subprocess transport
class IWorkerChannel(ABC):
    """Contract for a message-passing link between caller and worker."""

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> None:
        """Deliver one message to the other side.

        Raises
        ------
        src.utils.errors.WorkerError
            If the channel is closed.
        """

    @abstractmethod
    def receive(self) -> AsyncIterator[dict[str, Any]]:
        """Yield messages from the other side until the channel closes."""

    @abstractmethod
    async def close(self) -> None:
        """Close the channel and release the transport.  Idempotent."""

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """Whether :meth:`close` has been called or the peer went away."""
