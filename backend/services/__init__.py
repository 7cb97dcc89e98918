"""Services for the Chunk Retrievability Analyzer."""
from .chunking_engine import ChunkingEngine
from .embedding_model import EmbeddingModel, EmbeddingError
from .passage_scorer import PassageScorer
from .assignment_engine import AssignmentEngine
from .variant_categorizer import VariantCategorizer
from .context_position import ContextPositionEstimator
from .rewrite_client import RewriteClient, RewriteError, RewriteClientError
from .analysis_pipeline import AnalysisPipeline, AnalysisError

__all__ = ['ChunkingEngine', 'EmbeddingModel', 'EmbeddingError', 'PassageScorer', 'AssignmentEngine', 'VariantCategorizer', 'ContextPositionEstimator', 'RewriteClient', 'RewriteError', 'RewriteClientError', 'AnalysisPipeline', 'AnalysisError']
