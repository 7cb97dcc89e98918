"""Embedding model integration with Hugging Face Inference API."""
import time
import logging
from typing import Any, Dict, List, Optional
import httpx
from config import HUGGINGFACE_API_KEY, EMBEDDING_MODEL, EMBEDDING_MAX_RETRIES, EMBEDDING_TIMEOUT

logger = logging.getLogger(__name__)


class EmbeddingError(RuntimeError):
    """Embedding request failed as a whole; no vectors are returned."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class EmbeddingModel:
    """Wrapper for Hugging Face Inference API embedding model."""

    def __init__(
        self,
        api_key: str = HUGGINGFACE_API_KEY,
        model_name: str = EMBEDDING_MODEL,
        max_retries: int = EMBEDDING_MAX_RETRIES,
        initial_delay: float = 5.0,
        timeout: float = EMBEDDING_TIMEOUT
    ):
        """
        Initialize the embedding model client.

        Args:
            api_key: Hugging Face API key
            model_name: Model identifier (default: sentence-transformers/all-mpnet-base-v2)
            max_retries: Maximum number of attempts for 503, timeout and network errors
            initial_delay: Initial delay in seconds for exponential backoff
            timeout: Request timeout in seconds
        """
        if not api_key:
            raise ValueError("HUGGINGFACE_API_KEY environment variable is required")

        self.api_key = api_key
        self.model_name = model_name
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.timeout = timeout
        self.api_url = f"https://api-inference.huggingface.co/models/{model_name}"

        logger.info(f"Initialized EmbeddingModel with model: {model_name}")

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Embed texts in one request, preserving order.

        Either every text gets a vector or an EmbeddingError is raised;
        there is no partial result.

        Args:
            texts: Ordered, non-empty texts

        Returns:
            One vector per input text, in input order

        Raises:
            ValueError: If the list is empty or contains an empty text
            EmbeddingError: If the request fails or the response has the wrong shape
        """
        if not texts:
            raise ValueError("Texts list cannot be empty")
        if any(not isinstance(t, str) or not t.strip() for t in texts):
            raise ValueError("Texts cannot contain empty strings")

        embeddings = self._embed_with_retry(texts)
        return self._validate(embeddings, len(texts))

    def _validate(self, embeddings: Any, expected: int) -> List[List[float]]:
        """Check the response holds one equal-length numeric vector per input."""
        if not isinstance(embeddings, list) or len(embeddings) != expected:
            got = len(embeddings) if isinstance(embeddings, list) else type(embeddings).__name__
            raise EmbeddingError(
                "BAD_RESPONSE",
                f"Expected {expected} embeddings, got {got}",
                {"model": self.model_name},
            )

        dimension = None
        vectors: List[List[float]] = []
        for vector in embeddings:
            if not isinstance(vector, list) or not vector or not all(
                isinstance(v, (int, float)) and not isinstance(v, bool) for v in vector
            ):
                raise EmbeddingError("BAD_RESPONSE", "Embedding response is not a list of vectors",
                                     {"model": self.model_name})
            if dimension is None:
                dimension = len(vector)
            elif len(vector) != dimension:
                raise EmbeddingError("BAD_RESPONSE", "Embedding vectors have inconsistent dimensions",
                                     {"model": self.model_name})
            vectors.append([float(v) for v in vector])
        return vectors

    def _embed_with_retry(self, texts: List[str]) -> Any:
        """
        Call the HF API with exponential backoff.

        HF free tier models "sleep" and take 15-20s to load on first query,
        so 503s, timeouts and network errors are retried; rate limit, auth,
        quota and other HTTP errors fail immediately.
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        payload = {
            "inputs": texts,
            "options": {
                "wait_for_model": True  # Wait for model to load if sleeping
            }
        }

        delay = self.initial_delay
        last_code = "NETWORK"
        last_error = None

        for attempt in range(self.max_retries):
            try:
                start_time = time.time()

                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(
                        self.api_url,
                        headers=headers,
                        json=payload
                    )

                elapsed = time.time() - start_time

                # Model loading
                if response.status_code == 503:
                    last_code = "HTTP_ERROR"
                    last_error = f"Model unavailable (503) on attempt {attempt + 1}"
                    logger.warning(
                        f"Model loading (503) on attempt {attempt + 1}/{self.max_retries}. "
                        f"Retrying in {delay}s..."
                    )
                    if attempt < self.max_retries - 1:
                        time.sleep(delay)
                        delay = min(delay * 2, 60.0)
                    continue

                if response.status_code == 429:
                    logger.error("Rate limit exceeded for Hugging Face API")
                    raise EmbeddingError("RATE_LIMIT", "Rate limit exceeded. Please try again later.",
                                         {"status_code": 429, "model": self.model_name})

                if response.status_code in (401, 403):
                    logger.error("Authentication failed for Hugging Face API")
                    raise EmbeddingError("AUTH", "Invalid API key",
                                         {"status_code": response.status_code, "model": self.model_name})

                if response.status_code == 402:
                    logger.error("Hugging Face API quota exhausted")
                    raise EmbeddingError("QUOTA", "Embedding quota exhausted",
                                         {"status_code": 402, "model": self.model_name})

                if response.status_code != 200:
                    error_msg = f"API request failed with status {response.status_code}: {response.text}"
                    logger.error(error_msg)
                    raise EmbeddingError("HTTP_ERROR", error_msg,
                                         {"status_code": response.status_code, "model": self.model_name})

                try:
                    embeddings = response.json()
                except ValueError as e:
                    raise EmbeddingError("BAD_RESPONSE", f"Embedding response is not JSON: {e}",
                                         {"model": self.model_name}) from e

                if elapsed > 10.0:
                    logger.info(
                        f"Model loading delay detected: {elapsed:.1f}s for {len(texts)} texts "
                        f"(attempt {attempt + 1})"
                    )
                else:
                    logger.debug(f"Generated embeddings for {len(texts)} texts in {elapsed:.2f}s")

                return embeddings

            except httpx.TimeoutException:
                last_code = "TIMEOUT"
                last_error = f"Request timeout after {self.timeout}s"
                logger.error(f"{last_error} on attempt {attempt + 1}/{self.max_retries}")

            except httpx.RequestError as e:
                last_code = "NETWORK"
                last_error = f"Network error: {str(e)}"
                logger.error(f"{last_error} on attempt {attempt + 1}/{self.max_retries}")

            if attempt < self.max_retries - 1:
                time.sleep(delay)
                delay = min(delay * 2, 60.0)

        error_msg = f"Failed to generate embeddings after {self.max_retries} attempts. Last error: {last_error}"
        logger.error(error_msg)
        raise EmbeddingError(last_code, error_msg, {"attempts": self.max_retries, "model": self.model_name})
