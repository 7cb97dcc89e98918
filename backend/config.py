"""Configuration management for the Chunk Retrievability Analyzer."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# API Keys
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")
GROQ_API_KEY = os.getenv("GROQ_API_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173"
).split(",")

# Model Configuration
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-mpnet-base-v2")
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "120"))
EMBEDDING_MAX_RETRIES = int(os.getenv("EMBEDDING_MAX_RETRIES", "5"))
REWRITE_MODEL = os.getenv("REWRITE_MODEL", "llama-3.3-70b-versatile")

# Chunking Configuration
CHUNKING_STRATEGY = os.getenv("CHUNKING_STRATEGY", "paragraph")
MAX_CHUNK_SIZE = int(os.getenv("MAX_CHUNK_SIZE", "512"))  # body tokens, cascade excluded
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "50"))  # tokens
CASCADE_HEADINGS = _env_bool("CASCADE_HEADINGS", True)
TOKEN_ESTIMATOR = os.getenv("TOKEN_ESTIMATOR", "heuristic")  # "heuristic" or "tiktoken"
TIKTOKEN_ENCODING = os.getenv("TIKTOKEN_ENCODING", "o200k_base")

# Scoring Configuration
MIN_SCORE_THRESHOLD = float(os.getenv("MIN_SCORE_THRESHOLD", "45"))  # passage score, 0-100
USE_SENTENCE_CHAMFER = _env_bool("USE_SENTENCE_CHAMFER", True)
MAX_SENTENCES_PER_CHUNK = int(os.getenv("MAX_SENTENCES_PER_CHUNK", "10"))

# Categorization Configuration
DRIFT_THRESHOLD = float(os.getenv("DRIFT_THRESHOLD", "40"))
SIMILARITY_THRESHOLD = float(os.getenv("SIMILARITY_THRESHOLD", "0.40"))
PASSAGE_SCORE_THRESHOLD = float(os.getenv("PASSAGE_SCORE_THRESHOLD", "40"))

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
