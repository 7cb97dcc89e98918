"""Data models for the Chunk Retrievability Analyzer."""
from .chunk import Chunk, ChunkingOptions, HeadingInfo
from .document import BodyElement, Section, DocumentStats
from .scores import SimilarityScores, ScoreComponents, PassageScoreResult, ChunkScoreData
from .assignment import QueryAssignment, ChunkSlot, QueryAssignmentMap, ReassignmentResult
from .categorization import (
    VariantCategory,
    ActionType,
    IntentAnalysis,
    EntityAnalysis,
    QueryVariant,
    VariantSpec,
    CategorizedVariant,
    CategorizationResult,
    CategorizationSummary,
)
from .position import PositionStrategy, PositionAnalysis, PositionDistribution
from .analysis import AnalysisResult, ChunkAnalysis, DocumentScore, QueryScore, RewriteOutcome

__all__ = [
    "Chunk",
    "ChunkingOptions",
    "HeadingInfo",
    "BodyElement",
    "Section",
    "DocumentStats",
    "SimilarityScores",
    "ScoreComponents",
    "PassageScoreResult",
    "ChunkScoreData",
    "QueryAssignment",
    "ChunkSlot",
    "QueryAssignmentMap",
    "ReassignmentResult",
    "VariantCategory",
    "ActionType",
    "IntentAnalysis",
    "EntityAnalysis",
    "QueryVariant",
    "VariantSpec",
    "CategorizedVariant",
    "CategorizationResult",
    "CategorizationSummary",
    "PositionStrategy",
    "PositionAnalysis",
    "PositionDistribution",
    "AnalysisResult",
    "ChunkAnalysis",
    "DocumentScore",
    "QueryScore",
    "RewriteOutcome",
]
