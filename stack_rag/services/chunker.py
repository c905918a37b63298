"""Text chunking for embedding long documents.

Splits source text into :class:`~stack_rag.models.embedding.TextChunk`
objects sized for embedding models.  Every chunk is an exact slice of the
source (``text[chunk.start:chunk.end] == chunk.text``), so callers can map
a search hit back to the passage it came from.

Strategies
----------
``none``
    One chunk spanning the whole text.
``recursive`` (default)
    Split on the highest-priority separator (paragraph, line, sentence,
    word), greedily pack the pieces up to ``chunk_size`` characters and
    start the next chunk with up to ``chunk_overlap`` characters of
    trailing pieces.  Pieces that are still too long are split with the
    next separator; once separators run out they are cut into characters.
``sentence``
    Abbreviation-aware sentence splitting ("Dr.", "vs." do not end a
    sentence); whole sentences are packed and overlap by whole sentences.
``sliding-window``
    Fixed windows of ``chunk_size`` characters advancing by
    ``chunk_size - chunk_overlap``.
``token-aware``
    The recursive strategy with the window measured in estimated tokens
    (four characters per token).
"""

from __future__ import annotations

import math
import re
from typing import Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from stack_rag.models.config import ChunkingConfig
from stack_rag.models.embedding import TextChunk

logger = structlog.get_logger(logger_name=__name__)

CHARS_PER_TOKEN = 4

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ", "")

# Common abbreviations that should NOT trigger a sentence split.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "Ave",
        "Vol",
        "No",
        "vs",
        "etc",
        "approx",
        "dept",
        "est",
        "inc",
        "ltd",
        "co",
        "e.g",
        "i.e",
    }
)

_ABBREVIATION_RE = re.compile(
    r"\b(" + "|".join(re.escape(a) for a in sorted(_ABBREVIATIONS, key=len, reverse=True)) + r")\."
)
_SENTENCE_END_RE = re.compile(r"[.!?]+(?:\s+|$)")

_Span = tuple[int, int]


class ChunkingOptions(BaseModel):
    """Character-denominated chunking options.

    ``chunk_overlap`` must be smaller than ``chunk_size``; violating that
    raises ``ValueError`` (pydantic's ``ValidationError`` subclasses it).
    """

    model_config = ConfigDict(frozen=True)

    strategy: Literal["none", "recursive", "sentence", "sliding-window", "token-aware"] = (
        "recursive"
    )
    chunk_size: int = Field(default=1000, ge=1, description="Maximum characters per chunk.")
    chunk_overlap: int = Field(default=200, ge=0, description="Characters shared by neighbours.")
    separators: tuple[str, ...] = DEFAULT_SEPARATORS
    token_limit: int | None = Field(
        default=None, ge=1, description="Tokens per chunk for the token-aware strategy."
    )

    @model_validator(mode="after")
    def _overlap_below_size(self) -> ChunkingOptions:
        if self.chunk_overlap >= self.effective_chunk_size:
            raise ValueError("chunk_overlap must be less than chunk_size")
        return self

    @property
    def effective_chunk_size(self) -> int:
        if self.strategy == "token-aware" and self.token_limit is not None:
            return self.token_limit * CHARS_PER_TOKEN
        return self.chunk_size

    @classmethod
    def from_config(cls, config: ChunkingConfig) -> ChunkingOptions:
        """Convert token-denominated :class:`ChunkingConfig` into characters."""
        return cls(
            strategy=config.strategy,
            chunk_size=config.max_tokens * CHARS_PER_TOKEN,
            chunk_overlap=config.overlap * CHARS_PER_TOKEN,
        )


class TextChunker:
    """Splits text into ordered, overlapping chunks.

    The chunker holds no state between calls; every :meth:`chunk` call
    returns a fresh list.

    Parameters
    ----------
    options:
        Strategy and sizes.  Defaults to recursive chunking with 1000
        characters per chunk and 200 characters of overlap.
    """

    def __init__(self, options: ChunkingOptions | None = None) -> None:
        self._options = options or ChunkingOptions()

    @property
    def options(self) -> ChunkingOptions:
        return self._options

    def chunk(self, text: str) -> list[TextChunk]:
        """Split *text* according to the configured strategy.

        Returns
        -------
        list[TextChunk]
            Chunks with strictly increasing ``index`` and non-decreasing
            ``start`` offsets.  Empty or blank input returns ``[]``.
        """
        if not text or not text.strip():
            return []

        opts = self._options
        size = opts.effective_chunk_size
        overlap = opts.chunk_overlap

        if opts.strategy == "none":
            spans = [(0, len(text))]
        elif opts.strategy in ("recursive", "token-aware"):
            separators = opts.separators if opts.strategy == "recursive" else DEFAULT_SEPARATORS
            pieces = self._split_pieces(text, 0, len(text), size, list(separators))
            spans = self._pack(pieces, size, overlap)
        elif opts.strategy == "sentence":
            spans = self._pack(self._sentence_spans(text), size, overlap)
        elif opts.strategy == "sliding-window":
            spans = self._sliding_spans(len(text), size, overlap)
        else:  # pragma: no cover - guarded by the Literal type
            raise ValueError(f"Unknown chunking strategy: {opts.strategy}")

        chunks: list[TextChunk] = []
        for start, end in spans:
            piece = text[start:end]
            if not piece.strip():
                continue
            chunks.append(TextChunk(text=piece, start=start, end=end, index=len(chunks)))

        logger.debug(
            "chunking_complete",
            strategy=opts.strategy,
            num_chunks=len(chunks),
            text_length=len(text),
        )
        return chunks

    # ------------------------------------------------------------------
    # Splitting into atomic pieces
    # ------------------------------------------------------------------

    def _split_pieces(
        self, text: str, start: int, end: int, size: int, separators: list[str]
    ) -> list[_Span]:
        """Cut ``text[start:end]`` into contiguous spans no longer than *size*.

        Each span keeps its trailing separator so the spans tile the region.
        """
        if end - start <= size:
            return [(start, end)]

        region = text[start:end]
        for position, separator in enumerate(separators):
            if separator == "":
                break
            if separator not in region:
                continue

            remaining = separators[position + 1 :]
            pieces: list[_Span] = []
            cursor = start
            while cursor < end:
                found = text.find(separator, cursor, end)
                piece_end = end if found == -1 else found + len(separator)
                if piece_end - cursor > size:
                    pieces.extend(self._split_pieces(text, cursor, piece_end, size, remaining))
                else:
                    pieces.append((cursor, piece_end))
                cursor = piece_end
            return pieces

        # Separators exhausted: fall back to single characters.
        return [(i, i + 1) for i in range(start, end)]

    @staticmethod
    def _pack(pieces: list[_Span], size: int, overlap: int) -> list[_Span]:
        """Greedily pack contiguous pieces into windows of at most *size* characters.

        A new window begins with the longest proper suffix of the previous
        window's pieces that fits in *overlap* characters and still leaves
        room for the next piece.  A single piece longer than *size* (a long
        sentence) becomes a window of its own.
        """
        windows: list[_Span] = []
        current: list[_Span] = []

        for piece in pieces:
            if current and (piece[1] - current[0][0]) > size:
                windows.append((current[0][0], current[-1][1]))

                tail: list[_Span] = []
                for candidate in reversed(current[1:]):
                    if current[-1][1] - candidate[0] > overlap:
                        break
                    tail.insert(0, candidate)
                while tail and (piece[1] - tail[0][0]) > size:
                    tail.pop(0)
                current = tail

            current.append(piece)

        if current:
            windows.append((current[0][0], current[-1][1]))
        return windows

    @staticmethod
    def _sliding_spans(length: int, size: int, overlap: int) -> list[_Span]:
        step = size - overlap
        spans: list[_Span] = []
        start = 0
        while start < length:
            end = min(start + size, length)
            spans.append((start, end))
            if end == length:
                break
            start += step
        return spans

    @staticmethod
    def _sentence_spans(text: str) -> list[_Span]:
        """Split *text* into contiguous sentence spans, respecting abbreviations.

        Periods following a known abbreviation are masked with ``\\x00``
        (same length, so indices stay aligned with *text*) before matching
        sentence terminators.  Trailing text without terminal punctuation
        becomes the final sentence.
        """
        masked = _ABBREVIATION_RE.sub(lambda m: m.group(1) + "\x00", text)

        spans: list[_Span] = []
        last = 0
        for match in _SENTENCE_END_RE.finditer(masked):
            end = match.end()
            if end > last:
                spans.append((last, end))
            last = end

        if last < len(text):
            spans.append((last, len(text)))
        return spans


def chunk_text(text: str, options: ChunkingOptions | None = None) -> list[TextChunk]:
    """Split *text* into chunks; convenience wrapper around :class:`TextChunker`."""
    return TextChunker(options).chunk(text)


def estimate_token_count(text: str) -> int:
    """Rough token estimate at four characters per token."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def merge_small_chunks(chunks: list[TextChunk], min_size: int) -> list[TextChunk]:
    """Merge chunks shorter than *min_size* characters into their successor.

    Overlapping text between merged neighbours is kept once, so chunks
    that were contiguous or overlapping merge into an exact slice of the
    source.  Indices are renumbered.
    """
    if not chunks:
        return []

    merged: list[TextChunk] = []
    current = chunks[0]
    for nxt in chunks[1:]:
        if len(current.text) < min_size:
            shared = max(0, current.end - nxt.start)
            current = TextChunk(
                text=current.text + nxt.text[shared:],
                start=current.start,
                end=max(current.end, nxt.end),
                index=len(merged),
                is_title=current.is_title,
                metadata={**current.metadata, **nxt.metadata},
            )
        else:
            merged.append(current.model_copy(update={"index": len(merged)}))
            current = nxt
    merged.append(current.model_copy(update={"index": len(merged)}))
    return merged
