"""Document source implementations.

FileSystemDocumentSource reads a vault of Markdown notes from disk and
answers link queries (outgoing links and backlinks) by parsing the notes.
"""

from src.providers.documents.filesystem_source import FileSystemDocumentSource

__all__ = ["FileSystemDocumentSource"]
