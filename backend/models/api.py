"""Request and response schemas for the HTTP API."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from config import CHUNKING_STRATEGY, MAX_CHUNK_SIZE, CHUNK_OVERLAP, CASCADE_HEADINGS
from .categorization import EntityAnalysis, IntentAnalysis, QueryVariant, VariantSpec
from .chunk import ChunkingOptions
from .scores import ChunkScoreData


class ChunkingOptionsPayload(BaseModel):
    strategy: str = Field(default=CHUNKING_STRATEGY, description="paragraph, semantic or fixed")
    max_chunk_size: int = Field(default=MAX_CHUNK_SIZE, description="Body token budget per chunk")
    chunk_overlap: int = Field(default=CHUNK_OVERLAP, description="Tokens carried across a split")
    cascade_headings: bool = CASCADE_HEADINGS

    def to_options(self) -> ChunkingOptions:
        return ChunkingOptions(
            strategy=self.strategy,
            max_chunk_size=self.max_chunk_size,
            chunk_overlap=self.chunk_overlap,
            cascade_headings=self.cascade_headings,
        )


class ChunkRequest(BaseModel):
    document: str
    options: ChunkingOptionsPayload = Field(default_factory=ChunkingOptionsPayload)


class ChunkResponse(BaseModel):
    chunks: List[Dict[str, Any]]
    stats: Dict[str, Any]


class IntentPayload(BaseModel):
    drift_score: float = 0.0
    drift_level: Optional[str] = None
    drift_reasoning: Optional[str] = None
    category: str = ""
    stage: str = ""
    query_type: str = ""

    def to_intent(self) -> IntentAnalysis:
        return IntentAnalysis(
            drift_score=self.drift_score,
            drift_level=self.drift_level,
            drift_reasoning=self.drift_reasoning,
            category=self.category,
            stage=self.stage,
            query_type=self.query_type,
        )


class EntityPayload(BaseModel):
    variant_entities: List[str] = Field(default_factory=list)
    shared_entities: List[str] = Field(default_factory=list)
    missing_entities: List[str] = Field(default_factory=list)
    overlap_percent: float = 0.0

    def to_entities(self) -> EntityAnalysis:
        return EntityAnalysis(
            variant_entities=tuple(self.variant_entities),
            shared_entities=tuple(self.shared_entities),
            missing_entities=tuple(self.missing_entities),
            overlap_percent=self.overlap_percent,
        )


class VariantSpecPayload(BaseModel):
    """A variant to score and categorize inside an analysis run."""
    query: str
    variant_type: str = ""
    intent: IntentPayload = Field(default_factory=IntentPayload)

    def to_spec(self) -> VariantSpec:
        return VariantSpec(query=self.query, variant_type=self.variant_type, intent_analysis=self.intent.to_intent())


class AnalyzeRequest(BaseModel):
    document: str
    queries: List[str]
    options: ChunkingOptionsPayload = Field(default_factory=ChunkingOptionsPayload)
    min_score_threshold: Optional[float] = None
    variants: List[VariantSpecPayload] = Field(default_factory=list)


class ChunkScorePayload(BaseModel):
    chunk_index: int
    text: str = ""
    heading: Optional[str] = None
    scores: Dict[str, float] = Field(default_factory=dict, description="Passage score keyed by query")

    def to_score_data(self) -> ChunkScoreData:
        return ChunkScoreData(
            chunk_index=self.chunk_index, text=self.text, scores=dict(self.scores), heading=self.heading
        )


class ReassignRequest(BaseModel):
    chunk_scores: List[ChunkScorePayload]
    queries: List[str]
    query: str
    new_chunk_index: int
    min_score_threshold: Optional[float] = None
    current_assignments: Optional[Dict[str, int]] = Field(
        default=None, description="Current query -> chunk index pairs; greedy assignment when omitted"
    )


class VariantPayload(BaseModel):
    """A variant that has already been scored."""
    query: str
    content_similarity: float
    passage_score: float
    best_chunk_index: Optional[int] = None
    best_chunk_similarity: float = 0.0
    variant_type: str = ""
    intent: IntentPayload = Field(default_factory=IntentPayload)
    entities: EntityPayload = Field(default_factory=EntityPayload)

    def to_variant(self) -> QueryVariant:
        return QueryVariant(
            query=self.query,
            content_similarity=self.content_similarity,
            passage_score=self.passage_score,
            best_chunk_index=self.best_chunk_index,
            best_chunk_similarity=self.best_chunk_similarity,
            variant_type=self.variant_type,
            intent_analysis=self.intent.to_intent(),
            entity_analysis=self.entities.to_entities(),
        )


class CategorizeRequest(BaseModel):
    variants: List[VariantPayload]
    chunk_headings: List[Optional[str]] = Field(default_factory=list)


class PositionRequest(BaseModel):
    hybrid_score: float
    rerank_score: float
    query: str = ""
    chunk_index: int = 0


class OptimizeRequest(BaseModel):
    document: str
    chunk_index: int
    query: str
    options: ChunkingOptionsPayload = Field(default_factory=ChunkingOptionsPayload)
    new_text: Optional[str] = Field(
        default=None, description="Rewritten chunk body; requested from the rewrite client when omitted"
    )
