"""Four-bucket categorization of query variants."""
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Union

from models.categorization import (
    Actionable,
    ActionType,
    AssignedChunk,
    CategorizationResult,
    CategorizationSummary,
    CategorizedVariant,
    CategoryBreakdown,
    DriftDetails,
    EntityAnalysis,
    GapDetails,
    IntentAnalysis,
    QueryVariant,
    VariantCategory,
)
from models.chunk import Chunk
from config import DRIFT_THRESHOLD, SIMILARITY_THRESHOLD, PASSAGE_SCORE_THRESHOLD

logger = logging.getLogger(__name__)

ChunkRef = Union[Chunk, str, None]


def build_variant(
    query: str,
    passage_scores: Mapping[int, float],
    content_similarity: float,
    chunk_similarities: Optional[Mapping[int, float]] = None,
    variant_type: str = "",
    intent_analysis: Optional[IntentAnalysis] = None,
    entity_analysis: Optional[EntityAnalysis] = None
) -> QueryVariant:
    """
    Build a QueryVariant from one query's row of the indexed score maps.

    The best chunk is the one with the highest passage score, the lowest
    index winning ties; it is None when the query has no scores.
    """
    best_index: Optional[int] = None
    best_score = 0.0
    for chunk_index in sorted(passage_scores):
        score = passage_scores[chunk_index]
        if best_index is None or score > best_score:
            best_index, best_score = chunk_index, score

    best_similarity = 0.0
    if best_index is not None and chunk_similarities:
        best_similarity = chunk_similarities.get(best_index, 0.0)

    return QueryVariant(
        query=query,
        content_similarity=content_similarity,
        passage_score=best_score,
        best_chunk_index=best_index,
        best_chunk_similarity=best_similarity,
        variant_type=variant_type,
        intent_analysis=intent_analysis or IntentAnalysis(),
        entity_analysis=entity_analysis or EntityAnalysis(),
    )


class VariantCategorizer:
    """
    Ordered decision tree over query variants.

    Checks run drift, then scope, then passage score; a high-drift variant
    is reported as drift even when it would also be out of scope.
    """

    def __init__(
        self,
        drift_threshold: float = DRIFT_THRESHOLD,
        similarity_threshold: float = SIMILARITY_THRESHOLD,
        passage_score_threshold: float = PASSAGE_SCORE_THRESHOLD
    ):
        self.drift_threshold = drift_threshold
        self.similarity_threshold = similarity_threshold
        self.passage_score_threshold = passage_score_threshold

    def categorize(self, variant: QueryVariant, chunks: Sequence[ChunkRef] = ()) -> CategorizedVariant:
        """
        Categorize one variant.

        Args:
            variant: Scored variant
            chunks: Chunks (or their headings) indexed by chunk index

        Returns:
            CategorizedVariant with reasoning and the recommended action
        """
        intent = variant.intent_analysis
        drift = intent.drift_score

        if drift > self.drift_threshold:
            category = VariantCategory.INTENT_DRIFT
            explanation = intent.drift_reasoning or "This query serves a different user need than the primary query."
            reasoning = (
                f"Drift score {drift:g} exceeds threshold ({self.drift_threshold:g}). "
                f"{intent.drift_reasoning or 'Different user intent detected.'}"
            )
            actionable = Actionable(
                primary_action=ActionType.REPORT_DRIFT,
                drift_details=DriftDetails(
                    explanation=explanation,
                    primary_intent=f"{intent.stage or 'primary'} stage",
                    variant_intent="Different stage detected",
                ),
            )
        elif variant.content_similarity < self.similarity_threshold:
            category = VariantCategory.OUT_OF_SCOPE
            reasoning = (
                f"Content similarity {variant.content_similarity * 100:.0f}% is below threshold "
                f"({self.similarity_threshold * 100:.0f}%). Query is too tangential to content topic."
            )
            actionable = Actionable(primary_action=ActionType.DELETE)
        elif variant.passage_score >= self.passage_score_threshold and variant.best_chunk_index is not None:
            category = VariantCategory.OPTIMIZATION_OPPORTUNITY
            index = variant.best_chunk_index
            reasoning = (
                f"Passage score {variant.passage_score:.0f} meets threshold "
                f"({self.passage_score_threshold:g}). Chunk {index + 1} can answer this query."
            )
            actionable = Actionable(
                primary_action=ActionType.ASSIGN_TO_CHUNK,
                assigned_chunk=AssignedChunk(
                    index=index,
                    heading=self._heading_for(chunks, index),
                    current_score=variant.passage_score,
                ),
            )
        else:
            category = VariantCategory.CONTENT_GAP
            reasoning = (
                f"Related to content (similarity {variant.content_similarity * 100:.0f}%) but no chunk "
                f"scores above threshold (best: {variant.passage_score:.0f}). This is a coverage gap."
            )
            actionable = Actionable(
                primary_action=ActionType.GENERATE_CONTENT_BRIEF,
                gap_details=GapDetails(
                    missing_concepts=tuple(variant.entity_analysis.missing_entities),
                    recommended_section=f"New section addressing: {variant.query}",
                ),
            )

        logger.debug(f"Categorized '{variant.query}' as {category.value}")
        return CategorizedVariant(
            variant=variant,
            category=category,
            category_reasoning=reasoning,
            actionable=actionable,
        )

    def categorize_all(self, variants: Sequence[QueryVariant], chunks: Sequence[ChunkRef] = ()) -> CategorizationResult:
        """Categorize every variant and summarise the buckets."""
        categorized = [self.categorize(v, chunks) for v in variants]

        buckets: Dict[VariantCategory, List[CategorizedVariant]] = {c: [] for c in VariantCategory}
        for item in categorized:
            buckets[item.category].append(item)

        breakdown = CategoryBreakdown(
            optimization_opportunities=tuple(buckets[VariantCategory.OPTIMIZATION_OPPORTUNITY]),
            content_gaps=tuple(buckets[VariantCategory.CONTENT_GAP]),
            intent_drift=tuple(buckets[VariantCategory.INTENT_DRIFT]),
            out_of_scope=tuple(buckets[VariantCategory.OUT_OF_SCOPE]),
        )

        total = len(categorized)
        if total:
            avg_similarity = sum(c.variant.content_similarity for c in categorized) / total
            avg_passage = sum(c.variant.passage_score for c in categorized) / total
            avg_drift = sum(c.variant.intent_analysis.drift_score for c in categorized) / total
        else:
            avg_similarity = avg_passage = avg_drift = 0.0

        summary = CategorizationSummary(
            total=total,
            optimization=len(breakdown.optimization_opportunities),
            gaps=len(breakdown.content_gaps),
            drift=len(breakdown.intent_drift),
            out_of_scope=len(breakdown.out_of_scope),
            average_content_similarity=avg_similarity,
            average_passage_score=avg_passage,
            average_drift_score=avg_drift,
        )

        logger.info(
            f"Categorized {total} variants: {summary.optimization} optimization, {summary.gaps} gaps, "
            f"{summary.drift} drift, {summary.out_of_scope} out of scope"
        )
        return CategorizationResult(categorized=tuple(categorized), breakdown=breakdown, summary=summary)

    @staticmethod
    def _heading_for(chunks: Sequence[ChunkRef], index: int) -> str:
        heading = None
        if 0 <= index < len(chunks):
            ref = chunks[index]
            heading = ref.heading if isinstance(ref, Chunk) else ref
        return heading or f"Chunk {index + 1}"


def actionable_count(breakdown: CategoryBreakdown) -> int:
    """Variants that lead to work on the document (optimization and gaps)."""
    return len(breakdown.optimization_opportunities) + len(breakdown.content_gaps)


def review_count(breakdown: CategoryBreakdown) -> int:
    return len(breakdown.intent_drift)


def ignorable_count(breakdown: CategoryBreakdown) -> int:
    return len(breakdown.out_of_scope)


def health_score(summary: CategorizationSummary) -> float:
    """Distribution health: optimization counts fully, gaps half, drift against; 100 when empty."""
    if summary.total == 0:
        return 100.0
    score = (
        summary.optimization / summary.total * 100
        + summary.gaps / summary.total * 50
        - summary.drift / summary.total * 30
    )
    return max(0.0, min(100.0, score))
