"""Query variant categorization models."""
from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


def drift_level(drift_score: float) -> str:
    """Label a 0-100 drift score."""
    if drift_score < 20:
        return "none"
    if drift_score < 40:
        return "slight"
    if drift_score <= 60:
        return "moderate"
    return "high"


class VariantCategory(str, Enum):
    """Actionability buckets for a query variant."""
    OPTIMIZATION_OPPORTUNITY = "OPTIMIZATION_OPPORTUNITY"
    CONTENT_GAP = "CONTENT_GAP"
    INTENT_DRIFT = "INTENT_DRIFT"
    OUT_OF_SCOPE = "OUT_OF_SCOPE"


class ActionType(str, Enum):
    """Recommended next step for a categorized variant."""
    ASSIGN_TO_CHUNK = "ASSIGN_TO_CHUNK"
    GENERATE_CONTENT_BRIEF = "GENERATE_CONTENT_BRIEF"
    REPORT_DRIFT = "REPORT_DRIFT"
    DELETE = "DELETE"


@dataclass(frozen=True)
class IntentAnalysis:
    """Intent signal of a variant relative to the primary query it was fanned out from."""
    drift_score: float = 0.0  # 0-100
    drift_level: Optional[str] = None  # none | slight | moderate | high, derived from drift_score when unset
    drift_reasoning: Optional[str] = None
    category: str = ""
    stage: str = ""
    query_type: str = ""

    def __post_init__(self):
        if self.drift_level is None:
            object.__setattr__(self, "drift_level", drift_level(self.drift_score))


@dataclass(frozen=True)
class EntityAnalysis:
    """Overlap between the variant's entities and the content's."""
    variant_entities: Tuple[str, ...] = ()
    shared_entities: Tuple[str, ...] = ()
    missing_entities: Tuple[str, ...] = ()
    overlap_percent: float = 0.0


@dataclass(frozen=True)
class QueryVariant:
    """Scored query variant, input to categorization."""
    query: str
    content_similarity: float  # 0-1, similarity to the whole document
    passage_score: float  # 0-100, best passage score across chunks
    best_chunk_index: Optional[int] = None
    best_chunk_similarity: float = 0.0
    variant_type: str = ""
    intent_analysis: IntentAnalysis = field(default_factory=IntentAnalysis)
    entity_analysis: EntityAnalysis = field(default_factory=EntityAnalysis)


@dataclass(frozen=True)
class AssignedChunk:
    index: int
    heading: str
    current_score: float


@dataclass(frozen=True)
class GapDetails:
    missing_concepts: Tuple[str, ...]
    recommended_section: str
    estimated_length: str = "400-600 words"


@dataclass(frozen=True)
class DriftDetails:
    explanation: str
    primary_intent: str
    variant_intent: str


@dataclass(frozen=True)
class Actionable:
    """Primary action plus the details that action needs."""
    primary_action: ActionType
    assigned_chunk: Optional[AssignedChunk] = None
    gap_details: Optional[GapDetails] = None
    drift_details: Optional[DriftDetails] = None


@dataclass(frozen=True)
class CategorizedVariant:
    """A query variant together with its bucket and recommended action."""
    variant: QueryVariant
    category: VariantCategory
    category_reasoning: str
    actionable: Actionable

    @property
    def query(self) -> str:
        return self.variant.query

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CategoryBreakdown:
    optimization_opportunities: Tuple[CategorizedVariant, ...] = ()
    content_gaps: Tuple[CategorizedVariant, ...] = ()
    intent_drift: Tuple[CategorizedVariant, ...] = ()
    out_of_scope: Tuple[CategorizedVariant, ...] = ()


@dataclass(frozen=True)
class CategorizationSummary:
    """Per-bucket counts and mean scores over one categorization run."""
    total: int = 0
    optimization: int = 0
    gaps: int = 0
    drift: int = 0
    out_of_scope: int = 0
    average_content_similarity: float = 0.0
    average_passage_score: float = 0.0
    average_drift_score: float = 0.0


@dataclass(frozen=True)
class CategorizationResult:
    categorized: Tuple[CategorizedVariant, ...]
    breakdown: CategoryBreakdown
    summary: CategorizationSummary

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class VariantSpec:
    """A query variant to categorize during an analysis run, before it is scored."""
    query: str
    variant_type: str = ""
    intent_analysis: IntentAnalysis = field(default_factory=IntentAnalysis)
    entity_analysis: Optional[EntityAnalysis] = None
