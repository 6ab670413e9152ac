"""Similarity retrieval over stored note chunks.

:class:`RetrievalService` answers "which chunks are related to this
note?" and free-text queries.  Vectors come from the worker; ranking
comes from the vector store and is never re-sorted here.

A note never shows up as related to itself: its own path is always in
the exclusion set, and (depending on settings) so are the notes it links
to and the notes linking back to it.  Exclusions are applied inside the
store query, so they do not eat into the result limit.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Final

import structlog

from src.models.rag import SimilarityResultItem
from src.utils.errors import DocumentReadError
from src.utils.text_positions import is_path_ignored

if TYPE_CHECKING:
    from src.interfaces.document_source import IDocumentSource
    from src.services.vectorization_service import VectorizationService
    from src.worker.proxy import WorkerProxy

logger = structlog.get_logger(logger_name=__name__)


class _NotFound:
    """Marker for "no stored vectors", distinct from an empty vector."""

    _instance: _NotFound | None = None

    def __new__(cls) -> _NotFound:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND: Final = _NotFound()

DocumentVector = list[float] | _NotFound


class RetrievalService:
    """Finds chunks similar to a note or to a text query.

    Parameters
    ----------
    worker:
        An initialized :class:`~src.worker.proxy.WorkerProxy`.
    document_source:
        Used to look up a note's outgoing links and backlinks.
    search_result_limit:
        Default limit for :meth:`search_text`.
    related_chunks_result_limit:
        Default limit for :meth:`related_chunks_for`.
    exclude_outgoing_links:
        Drop notes the source note links to from related results.
    exclude_backlinks:
        Drop notes linking to the source note from related results.
    enable_user_ignore_filters:
        Apply *user_ignore_filters* to related results.
    user_ignore_filters:
        Path prefixes hidden from related results.
    """

    def __init__(
        self,
        worker: WorkerProxy,
        document_source: IDocumentSource,
        search_result_limit: int = 100,
        related_chunks_result_limit: int = 30,
        exclude_outgoing_links: bool = True,
        exclude_backlinks: bool = True,
        enable_user_ignore_filters: bool = False,
        user_ignore_filters: Iterable[str] = (),
    ) -> None:
        self._worker = worker
        self._source = document_source
        self._search_limit = search_result_limit
        self._related_limit = related_chunks_result_limit
        self._exclude_outgoing = exclude_outgoing_links
        self._exclude_backlinks = exclude_backlinks
        self._filters_enabled = enable_user_ignore_filters
        self._ignore_filters = list(user_ignore_filters)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def similar_to(
        self,
        vector: list[float],
        limit: int,
        exclude_paths: Iterable[str] = (),
    ) -> list[SimilarityResultItem]:
        """Return up to *limit* chunks nearest to *vector*, nearest first.

        An empty *vector* or a non-positive *limit* returns ``[]`` without
        asking the worker.
        """
        if not vector or limit <= 0:
            return []
        excluded = sorted(set(exclude_paths))
        results = await self._worker.search_similar_by_vector(
            vector, limit, exclude_file_paths=excluded
        )
        logger.debug(
            "similar_chunks_found",
            results=len(results),
            limit=limit,
            excluded=len(excluded),
        )
        return results

    async def document_vector_for(self, file_path: str) -> DocumentVector:
        """Average the stored chunk vectors of *file_path*.

        Returns :data:`NOT_FOUND` when the store holds nothing for the
        note, so callers can suggest re-indexing it.
        """
        vectors = await self._worker.get_vectors_by_file_path(file_path)
        if not vectors:
            logger.warning(
                "document_vectors_missing",
                file_path=file_path,
                hint="The note needs to be vectorized; run `reindex --file` for it.",
            )
            return NOT_FOUND
        logger.debug("document_vectors_found", file_path=file_path, count=len(vectors))
        return await self._worker.average_vectors(vectors)

    async def build_exclusion_set(self, file_path: str) -> set[str]:
        """Return *file_path* plus the linked notes configured for exclusion.

        A note whose links cannot be read only excludes itself.
        """
        excluded = {file_path}
        try:
            if self._exclude_outgoing:
                excluded |= await self._source.outgoing_links(file_path)
            if self._exclude_backlinks:
                excluded |= await self._source.backlinks(file_path)
        except DocumentReadError as exc:
            logger.warning("link_lookup_failed", file_path=file_path, error=str(exc))
        return excluded

    async def related_chunks_for(
        self,
        file_path: str,
        limit: int | None = None,
    ) -> list[SimilarityResultItem] | _NotFound:
        """Return chunks of other notes related to *file_path*.

        Uses the note's stored vectors (not its current text).  When user
        ignore filters are on, results under ignored prefixes are dropped,
        unless the source note is itself ignored, in which case the
        filters are not applied at all.
        """
        vector = await self.document_vector_for(file_path)
        if vector is NOT_FOUND:
            return NOT_FOUND

        source_ignored = self._filters_enabled and is_path_ignored(
            file_path, self._ignore_filters
        )
        excluded = await self.build_exclusion_set(file_path)
        if limit is None:
            limit = self._related_limit
        results = await self.similar_to(vector, limit, excluded)

        if self._filters_enabled and not source_ignored:
            before = len(results)
            results = [r for r in results if not is_path_ignored(r.file_path, self._ignore_filters)]
            if len(results) != before:
                logger.debug("related_chunks_filtered", removed=before - len(results))
        return results

    async def search_text(
        self,
        query: str,
        limit: int | None = None,
        exclude_paths: Iterable[str] = (),
    ) -> list[SimilarityResultItem]:
        """Embed a free-text *query* and return the nearest chunks."""
        if limit is None:
            limit = self._search_limit
        if not query.strip() or limit <= 0:
            return []
        vectors = await self._worker.vectorize_sentences([query])
        if not vectors:
            return []
        return await self.similar_to(vectors[0], limit, exclude_paths)


async def related_chunks_for_text(
    vectorization: VectorizationService,
    retrieval: RetrievalService,
    file_path: str,
    text: str,
    limit: int,
) -> list[SimilarityResultItem]:
    """Find chunks related to *text*, which need not be indexed yet.

    The note is chunked and embedded on the fly; nothing is stored.
    """
    vector = await vectorization.index_one(file_path, text)
    if vector is None:
        return []
    excluded = await retrieval.build_exclusion_set(file_path)
    return await retrieval.similar_to(vector, limit, excluded)
