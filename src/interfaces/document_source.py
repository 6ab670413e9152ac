"""Abstract base class for the read-only document corpus.

The indexing pipeline never writes documents; it lists them, reads them,
and asks about the links between them (to exclude linked neighbours from
"related" results).  Paths are always relative, forward-slash strings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: FileSystemDocumentSource (src/providers/documents/)
class IDocumentSource(ABC):
    """Contract for a corpus of Markdown documents."""

    @abstractmethod
    async def list_documents(self) -> list[str]:
        """Return every document path in a stable order."""

    @abstractmethod
    async def read_document(self, path: str) -> str:
        """Return the full text of *path*.

        Raises
        ------
        src.utils.errors.DocumentReadError
            If the document does not exist or cannot be decoded.
        """

    @abstractmethod
    async def outgoing_links(self, path: str) -> set[str]:
        """Return the existing documents that *path* links to."""

    @abstractmethod
    async def backlinks(self, path: str) -> set[str]:
        """Return the documents that link to *path*."""
