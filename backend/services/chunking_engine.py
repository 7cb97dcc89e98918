"""Layout-aware chunking engine with cascaded heading context."""
import logging
import math
import re
from dataclasses import dataclass
from typing import Callable, List, Optional
import tiktoken

from models.chunk import Chunk, ChunkingOptions, HeadingInfo, STRATEGIES, PARAGRAPH, SEMANTIC, FIXED
from models.document import BodyElement, DocumentStats, Section
from config import (
    CHUNKING_STRATEGY,
    MAX_CHUNK_SIZE,
    CHUNK_OVERLAP,
    CASCADE_HEADINGS,
    TOKEN_ESTIMATOR,
    TIKTOKEN_ENCODING,
)

logger = logging.getLogger(__name__)

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$")
FENCE_PATTERN = re.compile(r"^(```|~~~)")
LIST_ITEM_PATTERN = re.compile(r"^([-*+]|\d+\.)\s+")
INDENTED_PATTERN = re.compile(r"^\s+\S")
TABLE_PATTERN = re.compile(r"^\|")
BLOCKQUOTE_PATTERN = re.compile(r"^>\s?")
SENTENCE_PATTERN = re.compile(r"[^.!?]+(?:[.!?]+|$)")


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text) / 4)


class TiktokenCounter:
    """Token counter backed by a tiktoken encoding."""

    def __init__(self, encoding_name: str = TIKTOKEN_ENCODING):
        self.encoding = tiktoken.get_encoding(encoding_name)
        logger.info(f"Initialized tiktoken encoder ({encoding_name})")

    def __call__(self, text: str) -> int:
        return len(self.encoding.encode(text))


def build_token_counter(name: str = TOKEN_ESTIMATOR) -> Callable[[str], int]:
    """Return the configured token counter ("heuristic" or "tiktoken")."""
    if name == "tiktoken":
        return TiktokenCounter()
    if name != "heuristic":
        logger.warning(f"Unknown token estimator '{name}', falling back to heuristic")
    return estimate_tokens


@dataclass
class _Unit:
    """Smallest piece of body text the packer may place on either side of a boundary."""
    content: str
    element: int  # index of the source body element within its section
    line_start: int
    line_end: int


class ChunkingEngine:
    """Segments markdown documents into retrievable chunks along heading and size boundaries."""

    def __init__(
        self,
        strategy: str = CHUNKING_STRATEGY,
        max_chunk_size: int = MAX_CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        cascade_headings: bool = CASCADE_HEADINGS,
        token_counter: Optional[Callable[[str], int]] = None
    ):
        """
        Initialize ChunkingEngine.

        Args:
            strategy: Default strategy (paragraph, semantic or fixed)
            max_chunk_size: Default body token budget per chunk
            chunk_overlap: Default tokens carried across a split
            cascade_headings: Whether to prepend ancestor headings by default
            token_counter: Callable returning the token count of a string
        """
        self.default_options = ChunkingOptions(
            strategy=strategy,
            max_chunk_size=max_chunk_size,
            chunk_overlap=chunk_overlap,
            cascade_headings=cascade_headings,
        )
        self.count_tokens = token_counter or build_token_counter()

    def chunk(self, document: Optional[str], options: Optional[ChunkingOptions] = None) -> List[Chunk]:
        """
        Chunk a markdown document.

        Every heading opens a new section; a section's body accumulates into
        the current chunk until the next unit would exceed the token budget.
        Splits inside a section carry the tail of the previous chunk forward
        as overlap.

        Args:
            document: Raw markdown text
            options: Chunking options (engine defaults when omitted)

        Returns:
            Ordered list of chunks; empty for an empty document

        Raises:
            ValueError: If the options are invalid
        """
        opts = options or self.default_options
        self._validate(opts)

        if not document or not document.strip():
            logger.info("Empty document, no chunks produced")
            return []

        sections = self.parse_sections(document)
        chunks: List[Chunk] = []

        for section in sections:
            cascade = self._build_cascade(section.headings) if opts.cascade_headings else ""
            units = self._units_for(section, opts)
            for body_units in self._pack(units, opts):
                chunks.append(self._create_chunk(len(chunks), cascade, body_units, section))

        logger.info(
            f"Created {len(chunks)} chunks from {len(sections)} sections "
            f"(strategy={opts.strategy}, max={opts.max_chunk_size}, overlap={opts.chunk_overlap})"
        )
        return chunks

    def parse_sections(self, document: str) -> List[Section]:
        """
        Parse markdown into sections.

        A section is all body content under a heading until the next heading.
        Content before the first heading forms a section with no headings.
        Sections without body content are dropped but their headings stay on
        the stack for nested sections.
        """
        lines = document.replace("\r\n", "\n").split("\n")
        sections: List[Section] = []
        heading_stack: List[HeadingInfo] = []
        current: Optional[Section] = None
        i = 0

        while i < len(lines):
            line = lines[i]

            heading_match = HEADING_PATTERN.match(line)
            if heading_match:
                if current and current.body_elements:
                    sections.append(current)

                level = len(heading_match.group(1))
                while heading_stack and heading_stack[-1].level >= level:
                    heading_stack.pop()
                heading_stack.append(HeadingInfo(level=level, text=heading_match.group(2).strip()))

                current = Section(headings=list(heading_stack), line_start=i, line_end=i)
                i += 1
                continue

            if not line.strip():
                i += 1
                continue

            if current is None:
                current = Section(headings=[], line_start=i, line_end=i)

            element = self._parse_body_element(lines, i)
            current.body_elements.append(element)
            current.body_tokens += element.tokens
            current.line_end = element.line_end
            i = element.line_end + 1

        if current and current.body_elements:
            sections.append(current)

        return sections

    def get_document_stats(self, document: str) -> DocumentStats:
        """Count characters, words, body blocks and headings per level."""
        document = document or ""
        heading_counts = [0] * 6
        for line in document.replace("\r\n", "\n").split("\n"):
            match = HEADING_PATTERN.match(line)
            if match:
                heading_counts[len(match.group(1)) - 1] += 1

        sections = self.parse_sections(document) if document.strip() else []
        return DocumentStats(
            char_count=len(document),
            word_count=len(document.split()),
            paragraph_count=sum(len(s.body_elements) for s in sections),
            heading_count=sum(heading_counts),
            h1_count=heading_counts[0],
            h2_count=heading_counts[1],
            h3_count=heading_counts[2],
            h4_count=heading_counts[3],
            h5_count=heading_counts[4],
            h6_count=heading_counts[5],
        )

    # ---------------------------------------------------------------- parsing

    def _parse_body_element(self, lines: List[str], start: int) -> BodyElement:
        line = lines[start]
        if FENCE_PATTERN.match(line):
            return self._parse_code_block(lines, start)
        if TABLE_PATTERN.match(line):
            return self._collect(lines, start, "table", lambda ln: bool(TABLE_PATTERN.match(ln)))
        if BLOCKQUOTE_PATTERN.match(line):
            return self._parse_blockquote(lines, start)
        if LIST_ITEM_PATTERN.match(line):
            return self._parse_list(lines, start)
        return self._collect(lines, start, "paragraph", self._continues_paragraph)

    def _element(self, kind: str, block: List[str], start: int, end: int) -> BodyElement:
        content = "\n".join(block)
        return BodyElement(
            type=kind,
            content=content,
            tokens=self.count_tokens(content),
            line_start=start,
            line_end=end,
        )

    def _collect(self, lines: List[str], start: int, kind: str, accepts) -> BodyElement:
        i = start
        while i < len(lines) and accepts(lines[i]):
            i += 1
        return self._element(kind, lines[start:i], start, i - 1)

    @staticmethod
    def _continues_paragraph(line: str) -> bool:
        return bool(
            line.strip()
            and not HEADING_PATTERN.match(line)
            and not LIST_ITEM_PATTERN.match(line)
            and not TABLE_PATTERN.match(line)
            and not FENCE_PATTERN.match(line)
            and not BLOCKQUOTE_PATTERN.match(line)
        )

    def _parse_code_block(self, lines: List[str], start: int) -> BodyElement:
        fence = FENCE_PATTERN.match(lines[start]).group(1)
        i = start + 1
        while i < len(lines) and not lines[i].startswith(fence):
            i += 1
        end = min(i, len(lines) - 1)
        return self._element("code", lines[start:end + 1], start, end)

    def _parse_blockquote(self, lines: List[str], start: int) -> BodyElement:
        i = start
        while i < len(lines):
            if BLOCKQUOTE_PATTERN.match(lines[i]):
                i += 1
            elif not lines[i].strip() and i + 1 < len(lines) and BLOCKQUOTE_PATTERN.match(lines[i + 1]):
                i += 1
            else:
                break
        return self._element("blockquote", lines[start:i], start, i - 1)

    def _parse_list(self, lines: List[str], start: int) -> BodyElement:
        i = start
        while i < len(lines):
            line = lines[i]
            if LIST_ITEM_PATTERN.match(line) or INDENTED_PATTERN.match(line):
                i += 1
                continue
            # A blank line only continues the list when more items follow
            if not line.strip() and i + 1 < len(lines):
                following = lines[i + 1]
                if LIST_ITEM_PATTERN.match(following) or INDENTED_PATTERN.match(following):
                    i += 1
                    continue
            break
        return self._element("list", lines[start:i], start, i - 1)

    # ---------------------------------------------------------------- packing

    def _units_for(self, section: Section, opts: ChunkingOptions) -> List[_Unit]:
        """Break a section's body into the units the chosen strategy packs."""
        units: List[_Unit] = []
        for idx, element in enumerate(section.body_elements):
            if opts.strategy == FIXED:
                pieces = element.content.split()
            elif element.type in ("paragraph", "blockquote") and (
                opts.strategy == SEMANTIC or element.tokens > opts.max_chunk_size
            ):
                pieces = [s.strip() for s in SENTENCE_PATTERN.findall(element.content) if s.strip()]
            else:
                pieces = [element.content]

            for piece in pieces or [element.content]:
                units.extend(
                    _Unit(content=part, element=idx, line_start=element.line_start, line_end=element.line_end)
                    for part in self._wrap(piece, opts.max_chunk_size)
                )
        return units

    def _wrap(self, text: str, budget: int) -> List[str]:
        """Hard-wrap text on word boundaries so every part fits the budget."""
        if self.count_tokens(text) <= budget:
            return [text]

        parts: List[str] = []
        current: List[str] = []
        for word in text.split():
            if current and self.count_tokens(" ".join(current + [word])) > budget:
                parts.append(" ".join(current))
                current = []
            current.append(word)
        if current:
            parts.append(" ".join(current))
        return parts

    @staticmethod
    def _join(units: List[_Unit]) -> str:
        text = ""
        previous: Optional[_Unit] = None
        for unit in units:
            if previous is None:
                text = unit.content
            else:
                separator = " " if unit.element == previous.element else "\n\n"
                text = f"{text}{separator}{unit.content}"
            previous = unit
        return text

    def _pack(self, units: List[_Unit], opts: ChunkingOptions) -> List[List[_Unit]]:
        """Greedily fill chunks with units, carrying overlap across splits."""
        packed: List[List[_Unit]] = []
        current: List[_Unit] = []
        carried = 0  # leading units of `current` that are overlap from the previous chunk

        for unit in units:
            if current and self.count_tokens(self._join(current + [unit])) > opts.max_chunk_size:
                if carried == len(current):
                    # Only overlap so far; drop it rather than emit an overlap-only chunk
                    current = []
                else:
                    packed.append(current)
                    current = self._overlap_tail(current, opts.chunk_overlap)
                    if current and self.count_tokens(self._join(current + [unit])) > opts.max_chunk_size:
                        current = []
                carried = len(current)
            current.append(unit)

        if current and carried < len(current):
            packed.append(current)
        return packed

    def _overlap_tail(self, units: List[_Unit], overlap: int) -> List[_Unit]:
        """Return the trailing units (or words) worth at most `overlap` tokens."""
        if overlap <= 0:
            return []

        tail: List[_Unit] = []
        for unit in reversed(units):
            if self.count_tokens(self._join([unit] + tail)) > overlap:
                break
            tail.insert(0, unit)
        if tail:
            return tail

        last = units[-1]
        words: List[str] = []
        for word in reversed(last.content.split()):
            if self.count_tokens(" ".join([word] + words)) > overlap:
                break
            words.insert(0, word)
        if not words:
            return []
        return [_Unit(content=" ".join(words), element=last.element,
                      line_start=last.line_start, line_end=last.line_end)]

    # ---------------------------------------------------------------- assembly

    @staticmethod
    def _build_cascade(headings: List[HeadingInfo]) -> str:
        return "\n\n".join(f"{'#' * h.level} {h.text}" for h in headings)

    def _create_chunk(self, index: int, cascade: str, units: List[_Unit], section: Section) -> Chunk:
        body = self._join(units)
        text = f"{cascade}\n\n{body}" if cascade else body
        return Chunk(
            id=f"chunk-{index}",
            index=index,
            text=text,
            text_without_cascade=body,
            heading_path=tuple(h.text for h in section.headings),
            heading_levels=tuple(h.level for h in section.headings),
            source_line_range=(min(u.line_start for u in units), max(u.line_end for u in units)),
            token_estimate=self.count_tokens(body),
            word_count=len(body.split()),
            char_count=len(body),
            has_cascade=bool(cascade),
            cascade_tokens=self.count_tokens(cascade) if cascade else 0,
        )

    @staticmethod
    def _validate(opts: ChunkingOptions) -> None:
        if opts.strategy not in STRATEGIES:
            raise ValueError(f"Unknown chunking strategy '{opts.strategy}'; expected one of {STRATEGIES}")
        if opts.max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")
        if opts.chunk_overlap < 0:
            raise ValueError("chunk_overlap cannot be negative")
        if opts.chunk_overlap >= opts.max_chunk_size:
            raise ValueError("chunk_overlap must be smaller than max_chunk_size")
