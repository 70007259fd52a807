"""
Chunking utilities for chunk-relay.

Provides:
- Character-based token estimation (1 token ~ 4 chars)
- The chunking trigger policy (80% of the model's context)
- Deterministic, boundary-aware splitting of text and SRT subtitles
"""

import re
from dataclasses import dataclass


# Rough estimate: 1 token ≈ 4 chars
CHARS_PER_TOKEN = 4

# Share of the context window given to content; the rest is left for
# the prompt and the response.
CHUNK_SAFETY_RATIO = 0.8

SRT_CUE_PATTERN = re.compile(
    r'^\d+[ \t]*\r?\n\d{2}:\d{2}:\d{2}[,.]\d{3}[ \t]*-->[ \t]*\d{2}:\d{2}:\d{2}[,.]\d{3}',
    re.MULTILINE,
)

# Blank line(s) followed by a cue number: end of one subtitle block
SRT_BLOCK_BOUNDARY = re.compile(r'\r?\n[ \t]*\r?\n(?=\d+[ \t]*\r?\n)')
PARAGRAPH_BOUNDARY = re.compile(r'\r?\n[ \t]*\r?\n')
LINE_BOUNDARY = re.compile(r'\n')


@dataclass(frozen=True)
class Chunk:
    """An ordered, 1-indexed slice of the original content."""
    index: int
    total: int
    text: str

    @property
    def estimated_tokens(self) -> float:
        return estimate_tokens(self.text)

    def label(self) -> str:
        return f"chunk {self.index} of {self.total}"


def estimate_tokens(text: str) -> float:
    """Approximate token count of text."""
    return len(text) / CHARS_PER_TOKEN


def max_tokens_per_chunk(token_limit: int, safety_ratio: float = CHUNK_SAFETY_RATIO) -> int:
    """Token budget for one chunk of content sent to a model with token_limit."""
    return int(token_limit * safety_ratio)


def needs_chunking(content: str, max_tokens: int) -> bool:
    return estimate_tokens(content) > max_tokens


def is_srt(content: str) -> bool:
    """True if content looks like SubRip subtitles."""
    return SRT_CUE_PATTERN.search(content[:2000]) is not None


def _last_boundary(pattern: re.Pattern, window: str) -> int:
    """End offset of the last boundary match inside window, or 0."""
    end = 0
    for match in pattern.finditer(window):
        end = match.end()
    return end


def split_content(content: str, max_tokens: int) -> list[str]:
    """
    Split content into pieces of at most max_tokens * 4 characters.

    Breaks prefer subtitle block boundaries (SRT), then blank lines, then
    line ends; a boundary kind is only used if it fills at least half of
    the budget. A hard cut is used when no boundary falls inside the budget.
    Pieces are exact slices, so "".join(result) == content.
    """
    if max_tokens < 1:
        raise ValueError(f"max_tokens must be positive, got {max_tokens}")

    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(content) <= max_chars:
        return [content]

    boundaries = [PARAGRAPH_BOUNDARY, LINE_BOUNDARY]
    if is_srt(content):
        boundaries.insert(0, SRT_BLOCK_BOUNDARY)

    min_fill = max_chars // 2
    chunks = []
    pos = 0
    while len(content) - pos > max_chars:
        window = content[pos:pos + max_chars]
        found = [_last_boundary(pattern, window) for pattern in boundaries]

        # First boundary kind that fills at least half the window, then any
        # boundary at all, then a hard cut.
        cut = next((c for c in found if c >= min_fill), 0) or next((c for c in found if c > 0), 0)
        if cut <= 0:
            cut = max_chars

        chunks.append(content[pos:pos + cut])
        pos += cut

    chunks.append(content[pos:])
    return chunks


def build_chunks(content: str, max_tokens: int) -> list[Chunk]:
    """Split content and number the pieces."""
    pieces = split_content(content, max_tokens)
    total = len(pieces)
    return [Chunk(index=i, total=total, text=piece) for i, piece in enumerate(pieces, 1)]
