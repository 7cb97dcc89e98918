"""Estimate where a chunk lands in an LLM's context window."""
import logging
import math
from typing import Iterable, List, Mapping, Optional, Sequence

from models.position import PositionAnalysis, PositionDistribution, PositionStrategy

logger = logging.getLogger(__name__)

POSITION_STRATEGIES = {
    "lead": PositionStrategy(
        description="Positions 1-5. High LLM attention.",
        recommendations=(
            "Provide comprehensive answer (LLM may cite primarily from you)",
            "Include nuanced details (you have attention budget)",
            "Add caveats and edge cases",
        ),
    ),
    "supporting": PositionStrategy(
        description="Positions 5-10. Moderate attention.",
        recommendations=(
            "Focus on unique angle not covered by lead chunks",
            "Provide specific data points (numbers, dates, names)",
            "Be quotable: include one strong, citable sentence",
        ),
    ),
    "middle": PositionStrategy(
        description="Positions 10-15. LOW attention (lost in middle problem).",
        recommendations=(
            "Unlikely to be cited unless highly unique",
            "Consider restructuring to improve rerank score",
            "Or accept supporting role for niche queries",
        ),
    ),
    "trailing": PositionStrategy(
        description="Positions 15-20. Some attention (recency effect).",
        recommendations=(
            "Include strong closing statement",
            "Make final sentence highly quotable",
            "Add clear call-to-action or conclusion",
        ),
    ),
}

FLAG_REASONS = {
    "high_retrieval_low_rerank": (
        "Chunk retrieves well but gets buried in reranking. "
        "Fix: improve entity prominence, add direct answer upfront."
    ),
    "high_rerank_low_retrieval": (
        "Chunk would rank well but may not be retrieved. "
        "Fix: add semantic/lexical alignment with query terms."
    ),
    "both_scores_low": (
        "Chunk scores poorly on both retrieval and rerank. "
        "Consider major restructuring or query reassignment."
    ),
}

GAP_THRESHOLD = 15
LOW_SCORE_THRESHOLD = 40


def get_flag_explanation(flag_reason: Optional[str]) -> Optional[str]:
    if not flag_reason:
        return None
    return FLAG_REASONS.get(flag_reason, flag_reason)


class ContextPositionEstimator:
    """
    Maps (hybrid retrieval, rerank) score pairs to a context position.

    The weaker of the two scores decides the band, since either a poor
    retrieval or a poor rerank can keep a chunk out of the lead positions.
    """

    def estimate(
        self,
        hybrid_score: float,
        rerank_score: float,
        query: str = "",
        chunk_index: int = 0
    ) -> PositionAnalysis:
        """
        Estimate the position of one chunk.

        Args:
            hybrid_score: Retrieval score (0-100)
            rerank_score: Rerank score (0-100)
            query: Query the scores were computed for
            chunk_index: Index of the chunk in the document

        Returns:
            PositionAnalysis with band, attention level, flag and strategy
        """
        effective = min(hybrid_score, rerank_score)

        if effective >= 85:
            position = max(1, min(5, math.ceil((100 - effective) / 3)))
            category, attention = "lead", "high"
        elif effective >= 75:
            position = max(5, min(10, 5 + math.ceil((85 - effective) / 2)))
            category, attention = "supporting", "medium"
        elif effective >= 60:
            # Lost in the middle
            position = max(10, min(15, 10 + math.ceil((75 - effective) / 3)))
            category, attention = "middle", "low"
        else:
            position = max(15, 15 + math.ceil((60 - effective) / 5))
            category, attention = "trailing", "low"

        gap = hybrid_score - rerank_score
        flagged_reason = None
        if gap > GAP_THRESHOLD:
            flagged_reason = "high_retrieval_low_rerank"
        elif gap < -GAP_THRESHOLD:
            flagged_reason = "high_rerank_low_retrieval"
        elif hybrid_score < LOW_SCORE_THRESHOLD and rerank_score < LOW_SCORE_THRESHOLD:
            flagged_reason = "both_scores_low"

        if flagged_reason:
            logger.debug(f"Chunk {chunk_index} flagged for '{query}': {flagged_reason}")

        return PositionAnalysis(
            query=query,
            chunk_index=chunk_index,
            hybrid_score=hybrid_score,
            rerank_score=rerank_score,
            effective_score=effective,
            estimated_position=position,
            position_category=category,
            attention_level=attention,
            retrieval_rerank_gap=gap,
            flagged_reason=flagged_reason,
            strategy=POSITION_STRATEGIES[category],
        )

    def estimate_chunk_positions(
        self,
        scores: Sequence[Mapping[str, float]],
        query: str
    ) -> List[PositionAnalysis]:
        """Estimate positions for a list of {"hybrid_score", "rerank_score"} entries, indexed by position."""
        return [
            self.estimate(entry["hybrid_score"], entry["rerank_score"], query, index)
            for index, entry in enumerate(scores)
        ]


def get_position_distribution(analyses: Iterable[PositionAnalysis]) -> PositionDistribution:
    """Count analyses per band; all zeros for no analyses."""
    analyses = list(analyses)
    if not analyses:
        return PositionDistribution()

    counts = {"lead": 0, "supporting": 0, "middle": 0, "trailing": 0}
    for analysis in analyses:
        counts[analysis.position_category] += 1

    total = sum(a.effective_score for a in analyses)
    return PositionDistribution(
        lead=counts["lead"],
        supporting=counts["supporting"],
        middle=counts["middle"],
        trailing=counts["trailing"],
        flagged_count=sum(1 for a in analyses if a.flagged_reason),
        avg_effective_score=int(math.floor(total / len(analyses) + 0.5)),
    )
