"""Document structure models used while chunking."""
from dataclasses import dataclass, field
from typing import List

from .chunk import HeadingInfo


@dataclass
class BodyElement:
    """A block of body content: paragraph, list, table, blockquote or code."""
    type: str
    content: str
    tokens: int
    line_start: int
    line_end: int


@dataclass
class Section:
    """All body content under one heading stack until the next heading."""
    headings: List[HeadingInfo]
    body_elements: List[BodyElement] = field(default_factory=list)
    body_tokens: int = 0
    line_start: int = 0
    line_end: int = 0


@dataclass
class DocumentStats:
    """Summary counts for a markdown document."""
    char_count: int
    word_count: int
    paragraph_count: int
    heading_count: int
    h1_count: int = 0
    h2_count: int = 0
    h3_count: int = 0
    h4_count: int = 0
    h5_count: int = 0
    h6_count: int = 0
