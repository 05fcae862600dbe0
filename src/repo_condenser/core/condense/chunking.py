"""Boundary-preserving text chunking.

Splits long text into ordered chunks that each fit a token ceiling,
preferring structural boundaries: fenced code blocks are never split
unless they alone exceed the ceiling, other text is split between
paragraphs, and oversized pieces are cut at the last sentence boundary,
then the last word boundary, then at a character position.

Consecutive chunks share an overlap window (the trailing words of the
previous chunk) so a summarizer working on one chunk at a time keeps some
cross-chunk context.
"""

from dataclasses import dataclass
from typing import Optional, Sequence
import logging
import math
import re

from repo_condenser.core.condense.token_management import CounterLike, resolve_counter
from repo_condenser.core.condense.truncation import longest_fitting_prefix

logger = logging.getLogger(__name__)

CODE_BLOCK_PATTERN = re.compile(r"```[\s\S]*?```")
PARAGRAPH_BREAK = re.compile(r"\n\n+")
SENTENCE_END = re.compile(r"[.!?]\s+")
WHITESPACE = re.compile(r"\s+")

# Rough characters-per-token ratio for the last-resort character cut
CHARS_PER_TOKEN_ESTIMATE = 3.5

SEGMENT_SEPARATOR = "\n\n"
FRAGMENT_SEPARATOR = " "


@dataclass(frozen=True)
class ChunkingOptions:
    """Chunker settings.

    Attributes:
        max_chunk_tokens: Hard ceiling on tokens per chunk
        overlap_tokens: Budget for the overlap carried into the next chunk
        preserve_code_blocks: Keep fenced code blocks intact
        preserve_paragraphs: Split between paragraphs (blank lines)
    """

    max_chunk_tokens: int = 3000
    overlap_tokens: int = 200
    preserve_code_blocks: bool = True
    preserve_paragraphs: bool = True

    def __post_init__(self) -> None:
        if self.max_chunk_tokens <= 0:
            raise ValueError(f"max_chunk_tokens must be positive, got {self.max_chunk_tokens}")
        if not 0 <= self.overlap_tokens < self.max_chunk_tokens:
            raise ValueError(
                "overlap_tokens must be non-negative and smaller than max_chunk_tokens, "
                f"got {self.overlap_tokens}"
            )


@dataclass(frozen=True)
class Chunk:
    """One chunk of a larger text.

    Attributes:
        text: Chunk text, including the leading overlap
        token_count: Tokens in ``text``
        index: Position in the chunk sequence
        overlap: Leading text repeated from the previous chunk ("" if none)
    """

    text: str
    token_count: int
    index: int
    overlap: str = ""

    @property
    def body(self) -> str:
        """The chunk text without the repeated overlap."""
        return self.text[len(self.overlap):]


class TextChunker:
    """Splits text into token-bounded chunks.

    Example:
        chunker = TextChunker(ChunkingOptions(max_chunk_tokens=3000, overlap_tokens=200))
        for chunk in chunker.chunk_with_metadata(readme):
            print(chunk.index, chunk.token_count)
    """

    def __init__(
        self,
        options: Optional[ChunkingOptions] = None,
        counter: Optional[CounterLike] = None,
    ):
        self.options = options or ChunkingOptions()
        self._count = resolve_counter(counter)

    def chunk(self, text: str) -> list[str]:
        """Split ``text`` into chunk strings.

        Returns ``[text]`` unchanged when it already fits and ``[]`` for
        empty text.
        """
        return [c.text for c in self.chunk_with_metadata(text)]

    def chunk_with_metadata(self, text: str) -> list[Chunk]:
        """Split ``text`` into Chunk records."""
        if not text:
            return []

        max_tokens = self.options.max_chunk_tokens
        total_tokens = self._count(text)
        if total_tokens <= max_tokens:
            return [Chunk(text=text, token_count=total_tokens, index=0)]

        segments = self._split_by_boundaries(text)
        # A text without any structure still gets overlap between its pieces
        unstructured = len(segments) <= 1

        packer = _ChunkPacker(self._count, max_tokens, self.options.overlap_tokens)
        for segment in segments:
            if self._count(segment) <= max_tokens:
                packer.add(segment)
            elif unstructured:
                limit = max_tokens - self.options.overlap_tokens
                for fragment in self._force_split(segment, limit):
                    packer.add(fragment + FRAGMENT_SEPARATOR)
            else:
                packer.close()
                for fragment in self._force_split(segment, max_tokens):
                    packer.emit(fragment)
        packer.close()

        chunks = packer.chunks
        logger.debug(
            f"Split {total_tokens} tokens into {len(chunks)} chunks "
            f"(max {max_tokens}, overlap {self.options.overlap_tokens})"
        )
        return chunks

    # -------------------------------------------------------------------------
    # Segmentation
    # -------------------------------------------------------------------------

    def _split_by_boundaries(self, text: str) -> list[str]:
        """Split into atomic code blocks and paragraph segments."""
        if not self.options.preserve_code_blocks:
            return self._split_by_paragraphs(text)

        segments: list[str] = []
        last_index = 0
        for match in CODE_BLOCK_PATTERN.finditer(text):
            if match.start() > last_index:
                segments.extend(self._split_by_paragraphs(text[last_index:match.start()]))
            segments.append(match.group(0) + SEGMENT_SEPARATOR)
            last_index = match.end()
        if last_index < len(text):
            segments.extend(self._split_by_paragraphs(text[last_index:]))
        return segments

    def _split_by_paragraphs(self, text: str) -> list[str]:
        if not text.strip():
            return []
        if not self.options.preserve_paragraphs:
            return [text]
        return [p + SEGMENT_SEPARATOR for p in PARAGRAPH_BREAK.split(text) if p.strip()]

    # -------------------------------------------------------------------------
    # Forced splitting
    # -------------------------------------------------------------------------

    def _force_split(self, text: str, max_tokens: int) -> list[str]:
        """Cut an oversized segment into pieces of at most ``max_tokens``.

        Each cut prefers the last sentence boundary within the limit, then
        the last word boundary, then a character position.
        """
        fragments: list[str] = []
        remaining = text.strip()
        while remaining:
            if self._count(remaining) <= max_tokens:
                fragments.append(remaining)
                break
            split_point = (
                self._last_fitting_boundary(remaining, _sentence_boundaries(remaining), max_tokens)
                or self._last_fitting_boundary(remaining, _word_boundaries(remaining), max_tokens)
                or self._character_cut(remaining, max_tokens)
            )
            piece = remaining[:split_point].strip()
            if piece:
                fragments.append(piece)
            remaining = remaining[split_point:].strip()
        return fragments

    def _last_fitting_boundary(self, text: str, positions: Sequence[int], max_tokens: int) -> int:
        """Largest position whose prefix fits ``max_tokens`` (0 if none)."""
        low, high = 0, len(positions) - 1
        best = 0
        while low <= high:
            mid = (low + high) // 2
            if self._count(text[: positions[mid]]) <= max_tokens:
                best = positions[mid]
                low = mid + 1
            else:
                high = mid - 1
        return best

    def _character_cut(self, text: str, max_tokens: int) -> int:
        cut = min(len(text), math.floor(max_tokens * CHARS_PER_TOKEN_ESTIMATE))
        if self._count(text[:cut]) > max_tokens:
            cut = len(longest_fitting_prefix(text[:cut], max_tokens, self._count))
        # A single character over the limit is unsplittable; take it anyway
        return max(cut, 1)


def _sentence_boundaries(text: str) -> list[int]:
    return [m.end() for m in SENTENCE_END.finditer(text)]


def _word_boundaries(text: str) -> list[int]:
    return [m.start() for m in WHITESPACE.finditer(text) if m.start() > 0]


class _ChunkPacker:
    """Greedy packing of segments into chunks with overlap seeding."""

    def __init__(self, count: CounterLike, max_tokens: int, overlap_tokens: int):
        self._count = count
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens
        self.chunks: list[Chunk] = []
        self._current = ""
        self._current_overlap = ""

    def add(self, segment: str) -> None:
        candidate = self._current + segment
        if not self._current or self._count(candidate) <= self.max_tokens:
            self._current = candidate
            return

        previous = self._current
        self.close()
        overlap = self._fit_overlap(_tail_words(previous, self.overlap_tokens, self._count), segment)
        self._current = overlap + segment
        self._current_overlap = overlap

    def close(self) -> None:
        """Emit the chunk being built, if any."""
        text = self._current.strip()
        if text:
            overlap = self._current_overlap if text.startswith(self._current_overlap) else ""
            self._append(text, overlap)
        self._current = ""
        self._current_overlap = ""

    def emit(self, text: str) -> None:
        """Emit a finished chunk with no overlap."""
        self._append(text, "")

    def _append(self, text: str, overlap: str) -> None:
        self.chunks.append(
            Chunk(text=text, token_count=self._count(text), index=len(self.chunks), overlap=overlap)
        )

    def _fit_overlap(self, overlap: str, segment: str) -> str:
        """Drop leading overlap words until overlap + segment fits."""
        words = overlap.split()
        while words and self._count(" ".join(words) + " " + segment) > self.max_tokens:
            words.pop(0)
        return " ".join(words) + " " if words else ""


def _tail_words(text: str, overlap_tokens: int, count: CounterLike) -> str:
    """Trailing words of ``text`` within ``overlap_tokens``, plus a space."""
    if not text or overlap_tokens <= 0:
        return ""
    words = text.split()
    overlap = ""
    for word in reversed(words):
        candidate = word + (" " + overlap if overlap else "")
        if count(candidate) > overlap_tokens:
            break
        overlap = candidate
    return overlap + " " if overlap else ""


def chunk_text(
    text: str,
    options: Optional[ChunkingOptions] = None,
    *,
    counter: Optional[CounterLike] = None,
) -> list[str]:
    """Split ``text`` into chunks; see ``TextChunker.chunk``."""
    return TextChunker(options, counter).chunk(text)
