"""Document source backed by a folder of Markdown notes on disk.

Implements :class:`IDocumentSource` over a vault directory.  Document
paths are relative to the vault root and always use forward slashes, so
the same note has the same key on every platform (and in the vector
store).

Links between notes are read straight from the Markdown:

    [[Other note]]            wikilink, resolved by path or by file name
    [[folder/Other|alias]]    alias and heading parts are dropped
    ![[Embedded note]]        embeds count as links
    [text](../Other%20note.md) relative Markdown link, URL-decoded

Only links that resolve to an existing document are reported.
"""

from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Iterable
from pathlib import Path, PurePosixPath
from typing import NamedTuple
from urllib.parse import unquote

import structlog

from src.interfaces.document_source import IDocumentSource
from src.utils.errors import DocumentReadError
from src.utils.text_positions import is_path_ignored

logger = structlog.get_logger(logger_name=__name__)

_WIKILINK_RE = re.compile(r"!?\[\[([^\[\]]+?)\]\]")
_MARKDOWN_LINK_RE = re.compile(r"!?\[[^\]]*\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


class _LinkIndex(NamedTuple):
    """Lookups for resolving links, built once per vault listing."""

    known: frozenset[str]
    by_name: dict[str, str]


class FileSystemDocumentSource(IDocumentSource):
    """Read-only view of a vault of Markdown files.

    Parameters
    ----------
    root:
        Vault directory.  Must exist.
    extensions:
        File suffixes treated as documents (case-insensitive).
    ignore_filters:
        Path prefixes (relative to *root*) that are never listed.
    """

    def __init__(
        self,
        root: str | Path,
        extensions: Iterable[str] = (".md",),
        ignore_filters: Iterable[str] = (),
    ) -> None:
        self._root = Path(root).expanduser().resolve()
        if not self._root.is_dir():
            raise DocumentReadError(
                message=f"Vault directory does not exist: {self._root}",
                provider_name=self.get_provider_name(),
            )
        self._extensions = tuple(ext.lower() for ext in extensions)
        self._ignore_filters = [f for f in ignore_filters if f.strip()]

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # IDocumentSource implementation
    # ------------------------------------------------------------------

    async def list_documents(self) -> list[str]:
        """Return every Markdown document under the root, sorted by path."""
        documents = await asyncio.to_thread(self._scan)
        logger.debug("documents_listed", root=str(self._root), count=len(documents))
        return documents

    async def read_document(self, path: str) -> str:
        return await asyncio.to_thread(self._read_blocking, path)

    async def outgoing_links(self, path: str) -> set[str]:
        text = await self.read_document(path)
        documents = await self.list_documents()
        return self._resolve_links(path, text, self._link_index(documents))

    async def backlinks(self, path: str) -> set[str]:
        """Return every document that links to *path*.

        Scans the whole vault; documents that fail to read are skipped.
        """
        documents = await self.list_documents()
        index = self._link_index(documents)
        linking: set[str] = set()
        for candidate in documents:
            if candidate == path:
                continue
            try:
                text = await self.read_document(candidate)
            except DocumentReadError as exc:
                logger.warning("backlink_scan_skipped", file_path=candidate, error=str(exc))
                continue
            if path in self._resolve_links(candidate, text, index):
                linking.add(candidate)
        return linking

    def get_provider_name(self) -> str:
        return "filesystem"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _scan(self) -> list[str]:
        documents: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self._root):
            # Hidden folders (.obsidian, .git, .trash) never hold notes.
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in filenames:
                if not filename.lower().endswith(self._extensions):
                    continue
                relative = (Path(dirpath) / filename).relative_to(self._root).as_posix()
                if is_path_ignored(relative, self._ignore_filters):
                    continue
                documents.append(relative)
        documents.sort()
        return documents

    def _absolute(self, path: str) -> Path:
        candidate = (self._root / PurePosixPath(path)).resolve()
        if self._root not in candidate.parents:
            raise DocumentReadError(
                message=f"Path escapes the vault: {path}",
                provider_name=self.get_provider_name(),
            )
        return candidate

    def _read_blocking(self, path: str) -> str:
        absolute = self._absolute(path)
        try:
            return absolute.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise DocumentReadError(
                message=f"Cannot read {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    @staticmethod
    def _link_index(documents: list[str]) -> _LinkIndex:
        by_name: dict[str, str] = {}
        for doc in documents:
            # First in sorted order wins, like a vault's shortest-path rule.
            by_name.setdefault(PurePosixPath(doc).stem.lower(), doc)
        return _LinkIndex(known=frozenset(documents), by_name=by_name)

    def _resolve_links(self, source: str, text: str, index: _LinkIndex) -> set[str]:
        known, by_name = index.known, index.by_name
        resolved: set[str] = set()
        for match in _WIKILINK_RE.finditer(text):
            target = match.group(1).split("|", 1)[0].split("#", 1)[0].strip()
            hit = self._resolve_wikilink(target, known, by_name)
            if hit and hit != source:
                resolved.add(hit)

        source_dir = PurePosixPath(source).parent
        for match in _MARKDOWN_LINK_RE.finditer(text):
            href = match.group(1).strip("<>")
            if _SCHEME_RE.match(href):
                continue
            href = unquote(href.split("#", 1)[0])
            if not href:
                continue
            hit = self._resolve_relative(source_dir, href, known)
            if hit and hit != source:
                resolved.add(hit)
        return resolved

    def _resolve_wikilink(
        self, target: str, known: frozenset[str], by_name: dict[str, str]
    ) -> str | None:
        if not target:
            return None
        target = target.lstrip("/")
        for candidate in (target, *(target + ext for ext in self._extensions)):
            if candidate in known:
                return candidate
        return by_name.get(PurePosixPath(target).stem.lower())

    def _resolve_relative(
        self, source_dir: PurePosixPath, href: str, known: frozenset[str]
    ) -> str | None:
        if href.startswith("/"):
            base = PurePosixPath(href.lstrip("/"))
        else:
            base = source_dir / href
        normalized = os.path.normpath(str(base)).replace("\\", "/")
        if normalized.startswith(".."):
            return None
        for candidate in (normalized, *(normalized + ext for ext in self._extensions)):
            if candidate in known:
                return candidate
        return None
