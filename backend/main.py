"""Main entry point for the Chunk Retrievability Analyzer API."""
import logging
import time
from typing import Any, Dict
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from config import PORT, CORS_ORIGINS, LOG_FORMAT, LOG_LEVEL
from logger import setup_logging
from models.categorization import CategorizationResult
from models.api import (
    AnalyzeRequest,
    CategorizeRequest,
    ChunkRequest,
    ChunkResponse,
    OptimizeRequest,
    PositionRequest,
    ReassignRequest,
)
from services.analysis_pipeline import AnalysisPipeline, AnalysisError
from services.assignment_engine import AssignmentEngine
from services.chunking_engine import ChunkingEngine
from services.context_position import ContextPositionEstimator, get_flag_explanation, get_position_distribution
from services.embedding_model import EmbeddingModel, EmbeddingError
from services.rewrite_client import RewriteClient, RewriteClientError
from services.variant_categorizer import (
    VariantCategorizer,
    actionable_count,
    health_score,
    ignorable_count,
    review_count,
)

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Chunk Retrievability Analyzer",
    description="Scores how retrievable a document's chunks are for a set of search queries",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (will be done on startup)
chunking_engine: ChunkingEngine = None
assignment_engine: AssignmentEngine = None
variant_categorizer: VariantCategorizer = None
position_estimator: ContextPositionEstimator = None
analysis_pipeline: AnalysisPipeline = None


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global chunking_engine, assignment_engine, variant_categorizer, position_estimator, analysis_pipeline

    if LOG_FORMAT == "json":
        setup_logging(LOG_LEVEL)

    logger.info("Initializing Chunk Retrievability Analyzer services...")

    try:
        chunking_engine = ChunkingEngine()
        assignment_engine = AssignmentEngine()
        variant_categorizer = VariantCategorizer()
        position_estimator = ContextPositionEstimator()
        logger.info("Initialized scoring services")

        try:
            embedding_model = EmbeddingModel()
        except ValueError as e:
            logger.warning(f"Embedding model unavailable, /analyze and /optimize disabled: {e}")
            embedding_model = None

        try:
            rewrite_client = RewriteClient()
        except ValueError as e:
            logger.warning(f"Rewrite client unavailable, /optimize needs new_text: {e}")
            rewrite_client = None

        if embedding_model is not None:
            analysis_pipeline = AnalysisPipeline(
                embedding_model,
                chunker=chunking_engine,
                assignment_engine=assignment_engine,
                categorizer=variant_categorizer,
                position_estimator=position_estimator,
                rewriter=rewrite_client,
            )
            logger.info("Initialized AnalysisPipeline")

        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


def _to_http_exception(e: Exception) -> HTTPException:
    """Map a service exception to the HTTP error returned to the client."""
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (AnalysisError, EmbeddingError)):
        logger.error(f"Embedding failure: [{e.code}] {e.message}")
        return HTTPException(
            status_code=502,
            detail={"error": {"code": e.code, "message": e.message, "details": e.details}}
        )
    if isinstance(e, RewriteClientError):
        logger.error(f"Rewrite client error: {e.error.message}")
        return HTTPException(
            status_code=503,
            detail={"error": {"code": e.error.code, "message": e.error.message, "details": e.error.details}}
        )
    logger.error(f"Unexpected error: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


def _require_pipeline() -> AnalysisPipeline:
    if analysis_pipeline is None:
        raise HTTPException(status_code=503, detail="Embedding service is not configured")
    return analysis_pipeline


def _categorization_report(result: CategorizationResult) -> Dict[str, Any]:
    """Headline numbers shown next to a categorization."""
    return {
        "health_score": health_score(result.summary),
        "actionable_count": actionable_count(result.breakdown),
        "review_count": review_count(result.breakdown),
        "ignorable_count": ignorable_count(result.breakdown),
    }


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Chunk Retrievability Analyzer API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "chunk-retrievability-analyzer",
        "version": "1.0.0",
        "embedding_configured": analysis_pipeline is not None
    }


@app.post("/chunk", response_model=ChunkResponse)
async def chunk_endpoint(request: ChunkRequest) -> ChunkResponse:
    """Chunk a markdown document and report its structure."""
    try:
        chunks = chunking_engine.chunk(request.document, request.options.to_options())
        stats = chunking_engine.get_document_stats(request.document)
        return ChunkResponse(
            chunks=[c.to_dict() for c in chunks],
            stats=stats.__dict__.copy()
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e)


@app.post("/analyze")
async def analyze_endpoint(request: AnalyzeRequest) -> Dict[str, Any]:
    """
    Run a full analysis of a document against its target queries.

    Chunks the document, embeds everything in one call, scores every
    (chunk, query) pair, assigns queries to chunks, estimates context
    positions and, when variants are supplied, categorizes them.
    """
    pipeline = _require_pipeline()
    start_time = time.time()

    try:
        result = pipeline.analyze(
            request.document,
            request.queries,
            options=request.options.to_options(),
            variants=[v.to_spec() for v in request.variants],
            min_score_threshold=request.min_score_threshold
        )
        body = result.to_dict()
        body["position_distribution"] = get_position_distribution(result.positions).to_dict()
        if result.categorization is not None:
            body["categorization"].update(_categorization_report(result.categorization))

        logger.info(f"Analysis request processed in {int((time.time() - start_time) * 1000)}ms")
        return body
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e)


@app.post("/assignments/reassign")
async def reassign_endpoint(request: ReassignRequest) -> Dict[str, Any]:
    """Move a query onto a chunk, evicting the chunk's previous occupant."""
    try:
        chunk_scores = [c.to_score_data() for c in request.chunk_scores]
        if request.current_assignments is not None:
            current = assignment_engine.from_pairs(
                chunk_scores, request.queries, request.current_assignments, request.min_score_threshold
            )
        else:
            current = assignment_engine.compute_query_assignments(
                chunk_scores, request.queries, request.min_score_threshold
            )

        result = assignment_engine.reassign_query(current, request.query, request.new_chunk_index, chunk_scores)
        return {
            "updated_map": result.updated_map.to_dict(),
            "evicted_query": result.evicted_query
        }
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e)


@app.post("/categorize")
async def categorize_endpoint(request: CategorizeRequest) -> Dict[str, Any]:
    """Categorize already-scored query variants into the four buckets."""
    try:
        result = variant_categorizer.categorize_all(
            [v.to_variant() for v in request.variants],
            request.chunk_headings
        )
        body = result.to_dict()
        body.update(_categorization_report(result))
        return body
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e)


@app.post("/position")
async def position_endpoint(request: PositionRequest) -> Dict[str, Any]:
    """Estimate the context-window position for a (hybrid, rerank) score pair."""
    try:
        analysis = position_estimator.estimate(
            request.hybrid_score, request.rerank_score, request.query, request.chunk_index
        )
        body = analysis.to_dict()
        body["flag_explanation"] = get_flag_explanation(analysis.flagged_reason)
        return body
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e)


@app.post("/optimize")
async def optimize_endpoint(request: OptimizeRequest) -> Dict[str, Any]:
    """
    Re-score a rewritten chunk for its query.

    Uses `new_text` when supplied; otherwise asks the rewrite client for
    a rewrite first.
    """
    pipeline = _require_pipeline()

    try:
        chunks = chunking_engine.chunk(request.document, request.options.to_options())
        if not 0 <= request.chunk_index < len(chunks):
            raise ValueError(f"Chunk index {request.chunk_index} out of range (0-{len(chunks) - 1})")
        chunk = chunks[request.chunk_index]

        if request.new_text is not None:
            outcome = pipeline.rescore_rewrite(chunk, request.query, request.new_text)
        elif pipeline.rewriter is None:
            raise HTTPException(status_code=503, detail="Rewrite service is not configured")
        else:
            outcome = pipeline.optimize_chunk(chunk, request.query)
        return outcome.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http_exception(e)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
