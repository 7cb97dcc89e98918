"""Chunk data models."""
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple

# Chunking strategies
PARAGRAPH = "paragraph"
SEMANTIC = "semantic"
FIXED = "fixed"
STRATEGIES = (PARAGRAPH, SEMANTIC, FIXED)


@dataclass(frozen=True)
class HeadingInfo:
    """A markdown heading and its depth (1-6)."""
    level: int
    text: str


@dataclass(frozen=True)
class ChunkingOptions:
    """Options controlling one chunking pass."""
    strategy: str = PARAGRAPH
    max_chunk_size: int = 512  # body tokens, cascade excluded
    chunk_overlap: int = 50  # tokens carried into the next chunk on a split
    cascade_headings: bool = True


@dataclass(frozen=True)
class Chunk:
    """Represents a document chunk produced by one chunking pass."""
    id: str  # Format: "chunk-{index}"
    index: int
    text: str  # cascade + body when has_cascade, otherwise the body
    text_without_cascade: str
    heading_path: Tuple[str, ...] = ()
    heading_levels: Tuple[int, ...] = ()
    source_line_range: Tuple[int, int] = (0, 0)
    token_estimate: int = 0  # body tokens only
    word_count: int = 0
    char_count: int = 0
    has_cascade: bool = False
    cascade_tokens: int = 0

    @property
    def heading(self) -> Optional[str]:
        """Nearest heading, if any."""
        return self.heading_path[-1] if self.heading_path else None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
