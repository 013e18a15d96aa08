"""Splits extracted document text into bounded, overlapping chunks."""

import re
from abc import ABC, abstractmethod

from shared.helper.HelperConfig import HelperConfig

_SENTENCE_BOUNDARY = re.compile(r"[.!?]+")
SENTENCE_JOINER = ". "


def split_sentences(text: str) -> list[str]:
    """Split text on runs of '.', '!' and '?' and drop fragments that are empty after trimming."""
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]


class ChunkingStrategy(ABC):
    @abstractmethod
    def chunk(self, text: str) -> list[str]:
        """Split text into an ordered list of chunks. Empty input yields an empty list."""
        pass


class SentenceChunker(ChunkingStrategy):
    """Character-budgeted chunking on sentence boundaries.

    Sentences are accumulated until adding the next one would push the joined
    chunk text past max_chunk_size. The chunk is then closed and the next one
    starts with the last overlap_sentences sentences of the closed chunk,
    followed by the sentence that did not fit. A single sentence longer than
    max_chunk_size is kept whole; sizes are characters, not model tokens.

    Chunk text is the chunk's sentences joined with ". ".
    """

    def __init__(self, max_chunk_size: int = 1000, overlap_sentences: int = 2) -> None:
        if max_chunk_size <= 0:
            raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
        if overlap_sentences < 0:
            raise ValueError(f"overlap_sentences must not be negative, got {overlap_sentences}")
        self.max_chunk_size = max_chunk_size
        self.overlap_sentences = overlap_sentences

    def chunk(self, text: str) -> list[str]:
        chunks: list[str] = []
        current: list[str] = []

        for sentence in split_sentences(text):
            candidate_size = len(SENTENCE_JOINER.join(current + [sentence]))
            if current and candidate_size > self.max_chunk_size:
                chunks.append(SENTENCE_JOINER.join(current))
                overlap = current[-self.overlap_sentences:] if self.overlap_sentences else []
                current = overlap + [sentence]
            else:
                current.append(sentence)

        if current:
            chunks.append(SENTENCE_JOINER.join(current))
        return chunks


class ChunkingEngine:
    """Entry point used by the upload pipeline; delegates to a ChunkingStrategy.

    Without an explicit strategy a SentenceChunker is built from
    CHUNK_MAX_SIZE (default 1000) and CHUNK_OVERLAP_SENTENCES (default 2).
    """

    def __init__(self, helper_config: HelperConfig, strategy: ChunkingStrategy | None = None) -> None:
        self.logging = helper_config.get_logger()
        if strategy is None:
            strategy = SentenceChunker(
                max_chunk_size=int(helper_config.get_number_val("CHUNK_MAX_SIZE", default=1000)),
                overlap_sentences=int(helper_config.get_number_val("CHUNK_OVERLAP_SENTENCES", default=2)),
            )
        self.strategy = strategy

    def chunk(self, text: str) -> list[str]:
        chunks = self.strategy.chunk(text)
        self.logging.debug("Chunked %d characters into %d chunk(s).", len(text), len(chunks))
        return chunks
