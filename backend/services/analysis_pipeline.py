"""Analysis run: chunk, embed once, score every pair, assign, position and categorize."""
import logging
import time
from typing import Dict, List, Optional, Sequence, Tuple

from models.analysis import AnalysisResult, ChunkAnalysis, DocumentScore, QueryScore, RewriteOutcome
from models.assignment import QueryAssignmentMap
from models.categorization import VariantSpec
from models.chunk import Chunk, ChunkingOptions
from models.position import PositionAnalysis
from models.scores import ChunkScoreData, PassageScoreResult
from services.assignment_engine import AssignmentEngine, dedupe_queries
from services.chunking_engine import ChunkingEngine
from services.context_position import ContextPositionEstimator
from services.embedding_model import EmbeddingError
from services.passage_scorer import PassageScorer, analyze_entities
from services.sentence_utils import split_into_sentences, split_query_into_clauses
from services.variant_categorizer import VariantCategorizer, build_variant
from services.vector_metrics import calculate_all_metrics, calculate_improvement, chamfer_similarity, cosine_similarity
from config import USE_SENTENCE_CHAMFER, MAX_SENTENCES_PER_CHUNK

logger = logging.getLogger(__name__)


class AnalysisError(RuntimeError):
    """An analysis run failed as a unit; no partial result exists."""

    def __init__(self, message: str, code: str = "ANALYSIS_ERROR", details: Optional[dict] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @classmethod
    def from_embedding_error(cls, error: EmbeddingError) -> "AnalysisError":
        return cls(f"Embedding failed: {error.message}", code=error.code, details=error.details)


class _EmbeddingLayout:
    """Records where each group of texts sits in the single embedding batch."""

    def __init__(self):
        self.texts: List[str] = []
        self.spans: Dict[str, Tuple[int, int]] = {}

    def add(self, name: str, texts: Sequence[str]) -> None:
        start = len(self.texts)
        self.texts.extend(texts)
        self.spans[name] = (start, len(self.texts))

    def slice(self, vectors: List[List[float]], name: str) -> List[List[float]]:
        start, end = self.spans[name]
        return vectors[start:end]


class AnalysisPipeline:
    """
    Orchestrates one analysis run.

    All embedding happens in a single call before any scoring, so every
    vector shares one space and a failed call leaves nothing half-scored.
    """

    def __init__(
        self,
        embedder,
        chunker: Optional[ChunkingEngine] = None,
        scorer: Optional[PassageScorer] = None,
        assignment_engine: Optional[AssignmentEngine] = None,
        categorizer: Optional[VariantCategorizer] = None,
        position_estimator: Optional[ContextPositionEstimator] = None,
        rewriter=None,
        use_sentence_chamfer: bool = USE_SENTENCE_CHAMFER,
        max_sentences_per_chunk: int = MAX_SENTENCES_PER_CHUNK
    ):
        """
        Initialize the pipeline.

        Args:
            embedder: Object with embed(texts) -> vectors (e.g. EmbeddingModel)
            chunker: Chunking engine
            scorer: Passage scorer
            assignment_engine: Query assignment engine
            categorizer: Variant categorizer
            position_estimator: Context position estimator
            rewriter: Object with rewrite(chunk_text, query) -> str (e.g. RewriteClient)
            use_sentence_chamfer: Compute chamfer over chunk sentences and query clauses
            max_sentences_per_chunk: Cap on sentences embedded per chunk
        """
        self.embedder = embedder
        self.chunker = chunker or ChunkingEngine()
        self.scorer = scorer or PassageScorer()
        self.assignment_engine = assignment_engine or AssignmentEngine()
        self.categorizer = categorizer or VariantCategorizer()
        self.position_estimator = position_estimator or ContextPositionEstimator()
        self.rewriter = rewriter
        self.use_sentence_chamfer = use_sentence_chamfer
        self.max_sentences_per_chunk = max_sentences_per_chunk

    def analyze(
        self,
        document: str,
        queries: Sequence[str],
        options: Optional[ChunkingOptions] = None,
        variants: Optional[Sequence[VariantSpec]] = None,
        min_score_threshold: Optional[float] = None
    ) -> AnalysisResult:
        """
        Run a full analysis.

        Args:
            document: Markdown document
            queries: Target queries, primary first
            options: Chunking options (chunker defaults when omitted)
            variants: Query variants to categorize, if any
            min_score_threshold: Assignment threshold override

        Returns:
            AnalysisResult

        Raises:
            ValueError: If the chunking options are invalid
            AnalysisError: If embedding fails
        """
        start_time = time.time()
        chunks = self.chunker.chunk(document, options)
        query_list = dedupe_queries(queries)
        variant_list = list(variants or [])
        scored_queries = dedupe_queries(query_list + [v.query for v in variant_list])

        if not chunks or not scored_queries:
            logger.info("Nothing to score (no chunks or no queries)")
            empty_map = self.assignment_engine.compute_query_assignments(
                self._chunk_score_data(chunks, {}), query_list, min_score_threshold
            )
            categorization = None
            if variant_list:
                categorization = self.categorizer.categorize_all(
                    [build_variant(v.query, {}, 0.0, variant_type=v.variant_type,
                                   intent_analysis=v.intent_analysis,
                                   entity_analysis=v.entity_analysis or analyze_entities(v.query, document or ""))
                     for v in variant_list],
                    chunks,
                )
            return AnalysisResult(
                chunks=tuple(ChunkAnalysis(chunk=c, query_scores=()) for c in chunks),
                document_scores=(),
                assignment_map=empty_map,
                positions=(),
                categorization=categorization,
            )

        layout = _EmbeddingLayout()
        layout.add("document", [document])
        layout.add("chunks", [c.text for c in chunks])
        layout.add("queries", scored_queries)

        sentence_groups: List[List[str]] = []
        clause_groups: List[List[str]] = []
        if self.use_sentence_chamfer:
            for chunk in chunks:
                sentences = split_into_sentences(chunk.text_without_cascade)[:self.max_sentences_per_chunk]
                sentence_groups.append(sentences)
                layout.add(f"sentences:{chunk.index}", sentences)
            for query_index, query in enumerate(scored_queries):
                clauses = split_query_into_clauses(query)
                clause_groups.append(clauses)
                layout.add(f"clauses:{query_index}", clauses)

        vectors = self._embed(layout.texts)

        document_vector = layout.slice(vectors, "document")[0]
        chunk_vectors = layout.slice(vectors, "chunks")
        query_vectors = layout.slice(vectors, "queries")

        # query -> chunk index -> score
        passage_index: Dict[str, Dict[int, PassageScoreResult]] = {q: {} for q in scored_queries}
        similarity_index: Dict[str, Dict[int, float]] = {q: {} for q in scored_queries}

        chunk_analyses: List[ChunkAnalysis] = []
        for chunk, chunk_vector in zip(chunks, chunk_vectors):
            sentence_vectors = (
                layout.slice(vectors, f"sentences:{chunk.index}") if self.use_sentence_chamfer else None
            )
            query_scores: List[QueryScore] = []
            for query_index, (query, query_vector) in enumerate(zip(scored_queries, query_vectors)):
                clause_vectors = (
                    layout.slice(vectors, f"clauses:{query_index}") if self.use_sentence_chamfer else None
                )
                scores = calculate_all_metrics(chunk_vector, query_vector, sentence_vectors, clause_vectors)
                passage = self.scorer.score_chunk(chunk, query, scores.cosine)
                passage_index[query][chunk.index] = passage
                similarity_index[query][chunk.index] = scores.cosine
                query_scores.append(QueryScore(query=query, scores=scores, passage=passage))
                logger.debug(f"chunk {chunk.index} x '{query}': passage={passage.passage_score}")
            chunk_analyses.append(ChunkAnalysis(chunk=chunk, query_scores=tuple(query_scores)))

        document_scores = tuple(
            DocumentScore(query=q, scores=calculate_all_metrics(document_vector, v, chunk_vectors, [v]))
            for q, v in zip(scored_queries, query_vectors)
        )

        chunk_score_data = self._chunk_score_data(
            chunks, {q: {i: float(p.passage_score) for i, p in row.items()} for q, row in passage_index.items()}
        )
        assignment_map = self.assignment_engine.compute_query_assignments(
            chunk_score_data, query_list, min_score_threshold
        )

        positions = self._positions(assignment_map, query_list, passage_index)

        categorization = None
        if variant_list:
            content_similarity = {d.query: d.scores.cosine for d in document_scores}
            built = [
                build_variant(
                    v.query.strip(),
                    {i: float(p.passage_score) for i, p in passage_index.get(v.query.strip(), {}).items()},
                    content_similarity.get(v.query.strip(), 0.0),
                    similarity_index.get(v.query.strip()),
                    variant_type=v.variant_type,
                    intent_analysis=v.intent_analysis,
                    entity_analysis=v.entity_analysis or analyze_entities(v.query, document),
                )
                for v in variant_list
                if isinstance(v.query, str) and v.query.strip()
            ]
            categorization = self.categorizer.categorize_all(built, chunks)

        logger.info(
            f"Analysis complete: {len(chunks)} chunks, {len(scored_queries)} queries, "
            f"{len(layout.texts)} texts embedded in {time.time() - start_time:.2f}s",
            extra={"extra": {"chunks": len(chunks), "queries": len(scored_queries)}}
        )

        return AnalysisResult(
            chunks=tuple(chunk_analyses),
            document_scores=document_scores,
            assignment_map=assignment_map,
            positions=tuple(positions),
            document_chamfer=chamfer_similarity(chunk_vectors, query_vectors),
            categorization=categorization,
        )

    def rescore_rewrite(self, chunk: Chunk, query: str, new_text: str) -> RewriteOutcome:
        """
        Re-score a rewritten chunk body against its query.

        The original and rewritten chunk (with the same cascade) and the
        query are embedded together in one call.

        Raises:
            ValueError: If the rewrite is not a non-empty string
            AnalysisError: If embedding fails
        """
        if not isinstance(new_text, str) or not new_text.strip():
            raise ValueError("Rewrite output must be a non-empty string")

        cascade_prefix = chunk.text[:len(chunk.text) - len(chunk.text_without_cascade)] if chunk.has_cascade else ""
        new_full_text = f"{cascade_prefix}{new_text}"

        original_vector, new_vector, query_vector = self._embed([chunk.text, new_full_text, query])

        original = self.scorer.score(
            chunk.text_without_cascade, query, cosine_similarity(original_vector, query_vector), chunk.heading_path
        )
        rewritten = self.scorer.score(
            new_text, query, cosine_similarity(new_vector, query_vector), chunk.heading_path
        )
        improvement = calculate_improvement(original.passage_score, rewritten.passage_score)

        logger.info(
            f"Rescored chunk {chunk.index} for '{query}': "
            f"{original.passage_score} -> {rewritten.passage_score} ({improvement:+.1f}%)"
        )
        return RewriteOutcome(
            query=query,
            original_text=chunk.text_without_cascade,
            new_text=new_text,
            original=original,
            rewritten=rewritten,
            improvement=improvement,
        )

    def optimize_chunk(self, chunk: Chunk, query: str) -> RewriteOutcome:
        """Rewrite a chunk through the rewrite collaborator and re-score the result."""
        if self.rewriter is None:
            raise ValueError("No rewrite client configured")
        new_text = self.rewriter.rewrite(chunk.text_without_cascade, query)
        return self.rescore_rewrite(chunk, query, new_text)

    def _embed(self, texts: List[str]) -> List[List[float]]:
        try:
            vectors = self.embedder.embed(texts)
        except EmbeddingError as e:
            logger.error(f"Embedding failed [{e.code}]: {e.message}")
            raise AnalysisError.from_embedding_error(e) from e

        if len(vectors) != len(texts):
            raise AnalysisError(
                f"Embedder returned {len(vectors)} vectors for {len(texts)} texts",
                code="BAD_RESPONSE",
            )
        return vectors

    @staticmethod
    def _chunk_score_data(chunks: Sequence[Chunk], scores: Dict[str, Dict[int, float]]) -> List[ChunkScoreData]:
        return [
            ChunkScoreData(
                chunk_index=chunk.index,
                text=chunk.text_without_cascade,
                scores={q: row[chunk.index] for q, row in scores.items() if chunk.index in row},
                heading=chunk.heading,
            )
            for chunk in chunks
        ]

    def _positions(
        self,
        assignment_map: QueryAssignmentMap,
        queries: Sequence[str],
        passage_index: Dict[str, Dict[int, PassageScoreResult]]
    ) -> List[PositionAnalysis]:
        """Position of each query's assigned chunk, or its best chunk when unassigned."""
        positions: List[PositionAnalysis] = []
        for query in queries:
            row = passage_index.get(query)
            if not row:
                continue
            assignment = assignment_map.assignment_for(query)
            if assignment is not None:
                chunk_index = assignment.assigned_chunk_index
            else:
                chunk_index = min(row, key=lambda i: (-row[i].passage_score, i))
            passage = row[chunk_index]
            positions.append(
                self.position_estimator.estimate(passage.retrieval_score, passage.rerank_score, query, chunk_index)
            )
        return positions
