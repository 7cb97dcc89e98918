"""Rewrite client: Groq chat completions that rework a chunk toward its assigned query."""
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from groq import Groq
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError
import logging

from config import GROQ_API_KEY, REWRITE_MODEL

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You rewrite content to improve RAG retrieval while maintaining:
- Natural, readable prose
- Original meaning and facts
- Professional tone
- Minimal repetition

The rewritten chunk should:
1. Focus on one main topic
2. Be self-contained (no external dependencies)
3. Front-load key entities
4. Include relevant semantic signals

Return only the rewritten chunk text, with no commentary."""


@dataclass
class RewriteError:
    """Structured error response from rewrite operations."""
    code: str
    message: str
    details: Dict[str, Any]


class RewriteClientError(Exception):
    """Custom exception for rewrite client errors with structured error information."""

    def __init__(self, error: RewriteError):
        self.error = error
        super().__init__(error.message)


class RewriteClient:
    """Client for rewriting chunk text through the Groq API."""

    def __init__(self, api_key: Optional[str] = None, model: str = REWRITE_MODEL):
        """
        Initialize rewrite client with Groq API key.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            model: Chat model used for rewrites
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        self.model = model
        self.client = Groq(api_key=self.api_key)
        logger.info(f"RewriteClient initialized with model: {model}")

    @staticmethod
    def build_prompt(chunk_text: str, query: str) -> str:
        return f"""Original Content:
\"\"\"
{chunk_text}
\"\"\"

Target Query: {query}

Rewrite the content so it answers the target query directly.
Maintain readability - don't make it robotic."""

    def rewrite(self, chunk_text: str, query: str, max_tokens: int = 1024) -> str:
        """
        Rewrite a chunk for its assigned query.

        Args:
            chunk_text: Chunk body to rewrite
            query: Query the chunk is assigned to
            max_tokens: Maximum tokens to generate

        Returns:
            Rewritten text as returned by the model (may be empty; callers validate)

        Raises:
            RewriteClientError: Structured error with code, message, and details
        """
        start_time = time.time()

        try:
            logger.debug(f"Rewriting chunk with model: {self.model}")

            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self.build_prompt(chunk_text, query)}
                ],
                max_tokens=max_tokens,
                temperature=0.3
            )

            latency_ms = int((time.time() - start_time) * 1000)
            text = response.choices[0].message.content

            logger.info(
                f"Rewrote chunk: model={self.model}, "
                f"output_tokens={response.usage.completion_tokens}, latency={latency_ms}ms"
            )
            return text

        except RateLimitError as e:
            raise self._failure(
                "RATE_LIMIT_ERROR", "Rate limit exceeded. Please try again in a few moments.", e, start_time,
                retry_after=60
            )
        except AuthenticationError as e:
            raise self._failure(
                "AUTHENTICATION_ERROR", "Authentication failed. Please check your API key.", e, start_time
            )
        except APITimeoutError as e:
            raise self._failure("TIMEOUT_ERROR", "Request timed out. Please try again.", e, start_time)
        except APIError as e:
            raise self._failure("API_ERROR", f"Groq API error: {str(e)}", e, start_time)
        except Exception as e:
            raise self._failure(
                "UNKNOWN_ERROR", f"Unexpected error during rewrite: {str(e)}", e, start_time,
                error_type=type(e).__name__
            )

    def _failure(self, code: str, message: str, exc: Exception, start_time: float, **extra) -> RewriteClientError:
        latency_ms = int((time.time() - start_time) * 1000)
        error = RewriteError(
            code=code,
            message=message,
            details={
                "model": self.model,
                "latency_ms": latency_ms,
                "original_error": str(exc),
                **extra
            }
        )
        logger.error(
            f"{code}: model={self.model}, latency={latency_ms}ms, error={exc}",
            exc_info=True,
            extra={"extra": {"error_code": error.code, "error_details": error.details}}
        )
        return RewriteClientError(error)
