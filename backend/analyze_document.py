"""
Command-line analysis of one markdown document.

This script:
1. Reads a markdown file
2. Chunks it with the requested options
3. Embeds the document, chunks and queries in one call
4. Scores, assigns and positions every query
5. Writes the result as JSON

Usage:
    python analyze_document.py guide.md -q "how to reset a password" -q "password policy"
"""
import sys
import json
import logging
import argparse
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from models.chunk import ChunkingOptions, STRATEGIES
from services.analysis_pipeline import AnalysisPipeline, AnalysisError
from services.embedding_model import EmbeddingModel
from logger import setup_logging
from config import (
    CHUNKING_STRATEGY,
    MAX_CHUNK_SIZE,
    CHUNK_OVERLAP,
    CASCADE_HEADINGS,
    LOG_FORMAT,
    LOG_LEVEL,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Score how retrievable a document's chunks are for a set of queries"
    )
    parser.add_argument("file", help="Markdown document to analyze")
    parser.add_argument(
        "-q", "--query",
        dest="queries",
        action="append",
        required=True,
        help="Target query; repeat for several (the first is the primary query)"
    )
    parser.add_argument(
        "--strategy",
        choices=STRATEGIES,
        default=CHUNKING_STRATEGY,
        help=f"Chunking strategy (default: {CHUNKING_STRATEGY})"
    )
    parser.add_argument(
        "--max-chunk-size",
        type=int,
        default=MAX_CHUNK_SIZE,
        help=f"Body token budget per chunk (default: {MAX_CHUNK_SIZE})"
    )
    parser.add_argument(
        "--overlap",
        type=int,
        default=CHUNK_OVERLAP,
        help=f"Tokens carried across a split (default: {CHUNK_OVERLAP})"
    )
    parser.add_argument(
        "--no-cascade",
        action="store_true",
        default=not CASCADE_HEADINGS,
        help="Do not prepend ancestor headings to chunks"
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Minimum passage score for an assignment"
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Write the JSON result here instead of stdout"
    )
    return parser


def main(argv=None) -> int:
    """Main entry point for document analysis."""
    args = build_parser().parse_args(argv)

    if LOG_FORMAT == "json":
        setup_logging(LOG_LEVEL)

    path = Path(args.file)
    if not path.is_file():
        logger.error(f"File not found: {path}")
        return 1
    document = path.read_text(encoding="utf-8")

    options = ChunkingOptions(
        strategy=args.strategy,
        max_chunk_size=args.max_chunk_size,
        chunk_overlap=args.overlap,
        cascade_headings=not args.no_cascade,
    )

    try:
        pipeline = AnalysisPipeline(EmbeddingModel())
        result = pipeline.analyze(document, args.queries, options, min_score_threshold=args.threshold)
    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        return 2
    except AnalysisError as e:
        logger.error(f"Analysis failed [{e.code}]: {e.message}")
        return 1

    output = json.dumps(result.to_dict(), indent=2, default=str)
    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        logger.info(f"Result saved to: {args.output}")
    else:
        print(output)

    assignments = result.assignment_map.assignments
    logger.info(
        f"{len(result.chunks)} chunks, {len(assignments)} of "
        f"{len(result.assignment_map.queries)} queries assigned"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
