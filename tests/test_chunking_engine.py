"""Unit tests for ChunkingEngine."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import patch
from models.chunk import ChunkingOptions
from services.chunking_engine import ChunkingEngine, TiktokenCounter, estimate_tokens, build_token_counter


GUIDE = """Intro text before any heading sits here.

# Guide

## Setup

Install the package first. Then run the setup command.

- first step
- second step
  continued detail

## Usage

| Column | Value |
| ------ | ----- |
| a      | 1     |

```python
print("hello")

print("world")
```
"""


def sentences(*words):
    return " ".join(f"Sentence {w} is written here." for w in words)


@pytest.fixture
def engine():
    return ChunkingEngine(token_counter=estimate_tokens)


class TestTokenEstimation:
    """Test suite for token counting."""

    def test_heuristic_is_ceil_of_quarter_length(self):
        """Test the heuristic counts one token per four characters, rounded up."""
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_unknown_counter_falls_back_to_heuristic(self):
        """Test an unknown estimator name yields the heuristic counter."""
        assert build_token_counter("bogus") is estimate_tokens

    @patch('services.chunking_engine.tiktoken.get_encoding')
    def test_tiktoken_counter(self, mock_get_encoding):
        """Test the tiktoken counter counts encoded tokens."""
        mock_get_encoding.return_value.encode.return_value = [1, 2, 3]

        counter = build_token_counter("tiktoken")

        assert isinstance(counter, TiktokenCounter)
        assert counter("any text") == 3
        mock_get_encoding.assert_called_once_with("o200k_base")

    @patch('services.chunking_engine.tiktoken.get_encoding')
    def test_engine_uses_counter(self, mock_get_encoding):
        """Test chunk token estimates come from the configured counter."""
        mock_get_encoding.return_value.encode.side_effect = lambda text: text.split()
        engine = ChunkingEngine(token_counter=TiktokenCounter())

        chunk = engine.chunk("one two three four")[0]
        assert chunk.token_estimate == 4


class TestChunking:
    """Test suite for ChunkingEngine.chunk."""

    def test_empty_document(self, engine):
        """Test empty and whitespace-only documents produce no chunks."""
        assert engine.chunk("") == []
        assert engine.chunk("   \n\n  ") == []
        assert engine.chunk(None) == []

    def test_deterministic(self, engine):
        """Test identical input yields identical chunks."""
        assert engine.chunk(GUIDE) == engine.chunk(GUIDE)

    def test_ids_and_indices_are_sequential(self, engine):
        """Test chunks are numbered in document order."""
        chunks = engine.chunk(GUIDE)
        assert [c.index for c in chunks] == list(range(len(chunks)))
        assert [c.id for c in chunks] == [f"chunk-{i}" for i in range(len(chunks))]

    def test_preamble_has_no_headings(self, engine):
        """Test content before the first heading forms a heading-less chunk."""
        first = engine.chunk(GUIDE)[0]
        assert first.heading_path == ()
        assert first.heading is None
        assert first.has_cascade is False
        assert first.text == "Intro text before any heading sits here."

    def test_cascade_prepends_ancestor_headings(self, engine):
        """Test the cascade renders every ancestor heading with its level."""
        setup = engine.chunk(GUIDE)[1]
        assert setup.heading_path == ("Guide", "Setup")
        assert setup.heading_levels == (1, 2)
        assert setup.heading == "Setup"
        assert setup.has_cascade is True
        assert setup.text == f"# Guide\n\n## Setup\n\n{setup.text_without_cascade}"
        assert setup.cascade_tokens == estimate_tokens("# Guide\n\n## Setup")

    def test_cascade_disabled(self, engine):
        """Test chunks carry only their body when cascading is off."""
        chunks = engine.chunk(GUIDE, ChunkingOptions(cascade_headings=False))
        for chunk in chunks:
            assert chunk.text == chunk.text_without_cascade
            assert chunk.has_cascade is False
            assert chunk.cascade_tokens == 0

    def test_headings_always_split(self, engine):
        """Test no chunk mixes content from two sections."""
        chunks = engine.chunk(GUIDE)
        assert [c.heading_path for c in chunks] == [(), ("Guide", "Setup"), ("Guide", "Usage")]

    def test_paragraph_strategy_keeps_blocks_together(self, engine):
        """Test short blocks of one section share a chunk, separated by blank lines."""
        setup = engine.chunk(GUIDE)[1]
        assert setup.text_without_cascade == (
            "Install the package first. Then run the setup command.\n\n"
            "- first step\n- second step\n  continued detail"
        )

    def test_code_block_is_atomic(self, engine):
        """Test a fenced code block keeps its inner blank line."""
        usage = engine.chunk(GUIDE)[2]
        assert 'print("hello")\n\nprint("world")' in usage.text_without_cascade
        assert "| a      | 1     |" in usage.text_without_cascade

    def test_line_ranges_are_zero_based(self, engine):
        """Test the source line range points at the body lines."""
        chunks = engine.chunk(GUIDE)
        assert chunks[0].source_line_range == (0, 0)
        assert chunks[1].source_line_range == (6, 10)

    def test_token_estimate_counts_body_only(self, engine):
        """Test token estimate, word and char counts describe the body."""
        for chunk in engine.chunk(GUIDE):
            assert chunk.token_estimate == estimate_tokens(chunk.text_without_cascade)
            assert chunk.word_count == len(chunk.text_without_cascade.split())
            assert chunk.char_count == len(chunk.text_without_cascade)

    def test_max_chunk_size_respected(self, engine):
        """Test a long paragraph is split into chunks within the budget."""
        document = "# Long\n\n" + sentences(*[f"w{i:02d}" for i in range(40)])
        options = ChunkingOptions(max_chunk_size=30, chunk_overlap=5)
        chunks = engine.chunk(document, options)

        assert len(chunks) > 1
        assert all(c.token_estimate <= 30 for c in chunks)
        assert all(c.heading_path == ("Long",) for c in chunks)

    def test_single_oversized_word_run_is_hard_wrapped(self, engine):
        """Test text with no sentence edges is wrapped on word boundaries."""
        document = " ".join(["word"] * 200)
        chunks = engine.chunk(document, ChunkingOptions(max_chunk_size=20, chunk_overlap=0))

        assert all(c.token_estimate <= 20 for c in chunks)
        assert sum(c.word_count for c in chunks) == 200

    def test_overlap_carries_previous_sentence(self, engine):
        """Test a split inside a section repeats the trailing sentence."""
        document = sentences("alpha", "bravo", "delta", "gamma")
        options = ChunkingOptions(strategy="semantic", max_chunk_size=16, chunk_overlap=8)
        bodies = [c.text_without_cascade for c in engine.chunk(document, options)]

        assert bodies == [
            sentences("alpha", "bravo"),
            sentences("bravo", "delta"),
            sentences("delta", "gamma"),
        ]

    def test_no_overlap_across_sections(self, engine):
        """Test overlap never leaks into the next section."""
        document = "# One\n\n" + sentences("alpha", "bravo", "delta") + "\n\n# Two\n\n" + sentences("gamma")
        options = ChunkingOptions(strategy="semantic", max_chunk_size=16, chunk_overlap=8)
        chunks = engine.chunk(document, options)

        assert chunks[-1].heading_path == ("Two",)
        assert chunks[-1].text_without_cascade == sentences("gamma")

    def test_semantic_strategy_splits_on_sentences(self, engine):
        """Test semantic chunks end on sentence boundaries."""
        document = sentences("alpha", "bravo", "delta", "gamma", "kappa")
        options = ChunkingOptions(strategy="semantic", max_chunk_size=16, chunk_overlap=0)
        for chunk in engine.chunk(document, options):
            assert chunk.text_without_cascade.endswith("here.")

    def test_fixed_strategy_fills_word_windows(self, engine):
        """Test fixed chunks are word windows within the budget."""
        document = sentences(*[f"w{i:02d}" for i in range(10)])
        options = ChunkingOptions(strategy="fixed", max_chunk_size=10, chunk_overlap=0)
        chunks = engine.chunk(document, options)

        assert len(chunks) > 1
        assert all(c.token_estimate <= 10 for c in chunks)
        assert " ".join(c.text_without_cascade for c in chunks) == document

    @pytest.mark.parametrize("options", [
        ChunkingOptions(strategy="sliding"),
        ChunkingOptions(max_chunk_size=0, chunk_overlap=0),
        ChunkingOptions(chunk_overlap=-1),
        ChunkingOptions(max_chunk_size=50, chunk_overlap=50),
    ])
    def test_invalid_options(self, engine, options):
        """Test invalid options raise ValueError."""
        with pytest.raises(ValueError):
            engine.chunk(GUIDE, options)


class TestDocumentStats:
    """Test suite for get_document_stats."""

    def test_counts(self, engine):
        """Test character, word, block and heading counts."""
        stats = engine.get_document_stats(GUIDE)
        assert stats.char_count == len(GUIDE)
        assert stats.word_count == len(GUIDE.split())
        assert stats.heading_count == 3
        assert stats.h1_count == 1
        assert stats.h2_count == 2
        assert stats.h3_count == 0
        # preamble, paragraph, list, table, code block
        assert stats.paragraph_count == 5

    def test_empty_document(self, engine):
        """Test stats for an empty document are all zero."""
        stats = engine.get_document_stats("")
        assert stats.char_count == 0
        assert stats.heading_count == 0
        assert stats.paragraph_count == 0
