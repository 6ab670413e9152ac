"""Offset-preserving document chunking.

Pipeline stages overview:

1. **Segment** (segmenter.py / SentenceSegmenter) -- Splits text into
   trimmed sentence-like spans whose offsets index the untrimmed text.
   Over-long sentences are subdivided at the nearest preferred boundary.

2. **Assemble** (chunker.py / ChunkAssembler) -- Strips front matter,
   blanks URLs, and greedily packs spans into bounded chunks whose offsets
   refer to the original document.

3. **Memoize** (chunk_cache.py / ChunkCache) -- Content-addressed cache of
   assembler results, bounded by age and entry count.
"""

from src.services.chunking.chunk_cache import CacheEntry, ChunkCache
from src.services.chunking.chunker import ChunkAssembler
from src.services.chunking.segmenter import SentenceSegmenter

__all__ = [
    "CacheEntry",
    "ChunkAssembler",
    "ChunkCache",
    "SentenceSegmenter",
]
