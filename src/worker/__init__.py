"""Isolated embedding worker and its caller-side proxy.

The worker owns the CPU-heavy pieces (the embedding model and the vector
store) and is reached only through ``{id, type, payload}`` messages:

- **protocol.py** -- message types, the envelope, and payload models.
- **proxy.py** -- WorkerProxy, the caller-side correlation layer.
- **server.py** -- WorkerServer, which executes requests.
- **channels.py** -- in-process, subprocess, and stdio transports.
- **__main__.py** -- ``python -m src.worker`` entry point for subprocess mode.
"""

from src.worker.channels import InProcessWorkerChannel, StdioChannel, SubprocessWorkerChannel
from src.worker.protocol import RequestType, WorkerMessage
from src.worker.proxy import PendingCall, WorkerProxy
from src.worker.server import WorkerServer

__all__ = [
    "InProcessWorkerChannel",
    "PendingCall",
    "RequestType",
    "StdioChannel",
    "SubprocessWorkerChannel",
    "WorkerMessage",
    "WorkerProxy",
    "WorkerServer",
]
