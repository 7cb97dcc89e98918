"""Similarity and passage score models."""
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class SimilarityScores:
    """Vector similarity metrics for one (chunk, query) pair."""
    cosine: float
    euclidean: float
    manhattan: float
    dot_product: float
    chamfer: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ScoreComponents:
    """Heuristic sub-scores behind the rerank and citation scores (0-100 each)."""
    entity_prominence: int = 0
    direct_answer_score: int = 0
    structural_clarity: int = 0
    query_restatement: int = 0
    quotability: int = 0
    specificity: int = 0
    authority_signals: int = 0
    sentence_structure: int = 0


@dataclass(frozen=True)
class PassageScoreResult:
    """Composite retrieval likelihood for one (chunk, query) pair."""
    passage_score: int  # 0-100
    retrieval_score: int
    rerank_score: int
    citation_score: int
    semantic_similarity: float = 0.0  # normalized to 0-100
    lexical_score: int = 0
    entity_overlap: int = 0
    components: ScoreComponents = field(default_factory=ScoreComponents)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ChunkScoreData:
    """Passage scores of one chunk against every query, keyed by query text."""
    chunk_index: int
    text: str
    scores: Dict[str, float]
    heading: Optional[str] = None
