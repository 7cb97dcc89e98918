"""Analysis run result models."""
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple

from .assignment import QueryAssignmentMap
from .categorization import CategorizationResult
from .chunk import Chunk
from .position import PositionAnalysis
from .scores import PassageScoreResult, SimilarityScores


@dataclass(frozen=True)
class QueryScore:
    """All scores of one chunk against one query."""
    query: str
    scores: SimilarityScores
    passage: PassageScoreResult


@dataclass(frozen=True)
class ChunkAnalysis:
    chunk: Chunk
    query_scores: Tuple[QueryScore, ...]


@dataclass(frozen=True)
class DocumentScore:
    """Whole-document similarity against one query."""
    query: str
    scores: SimilarityScores


@dataclass(frozen=True)
class AnalysisResult:
    """Everything one analysis run produces; plain data only."""
    chunks: Tuple[ChunkAnalysis, ...]
    document_scores: Tuple[DocumentScore, ...]
    assignment_map: QueryAssignmentMap
    positions: Tuple[PositionAnalysis, ...]
    document_chamfer: float = 0.0
    categorization: Optional[CategorizationResult] = None

    def score_for(self, query: str, chunk_index: int) -> Optional[QueryScore]:
        if not 0 <= chunk_index < len(self.chunks):
            return None
        for query_score in self.chunks[chunk_index].query_scores:
            if query_score.query == query:
                return query_score
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RewriteOutcome:
    """Re-scored rewrite of a chunk for its assigned query."""
    query: str
    original_text: str
    new_text: str
    original: PassageScoreResult
    rewritten: PassageScoreResult
    improvement: float  # percent change in passage score

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
