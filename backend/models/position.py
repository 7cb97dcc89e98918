"""Context window position models."""
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class PositionStrategy:
    description: str
    recommendations: Tuple[str, ...]


@dataclass(frozen=True)
class PositionAnalysis:
    """Estimated place of a chunk in an LLM's context window."""
    query: str
    chunk_index: int
    hybrid_score: float
    rerank_score: float
    effective_score: float
    estimated_position: int
    position_category: str  # lead | supporting | middle | trailing
    attention_level: str  # high | medium | low
    retrieval_rerank_gap: float
    flagged_reason: Optional[str]
    strategy: PositionStrategy

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PositionDistribution:
    lead: int = 0
    supporting: int = 0
    middle: int = 0
    trailing: int = 0
    flagged_count: int = 0
    avg_effective_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
