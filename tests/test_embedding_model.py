"""Unit tests for EmbeddingModel class."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import Mock, patch, MagicMock
import httpx
from services.embedding_model import EmbeddingModel, EmbeddingError


def mock_client_returning(*responses):
    """Build a mocked httpx.Client whose post() yields the given responses or raises them."""
    mock_client = MagicMock()
    mock_client.__enter__.return_value.post.side_effect = list(responses)
    return mock_client


def response(status_code=200, payload=None, text=""):
    mock_response = Mock()
    mock_response.status_code = status_code
    mock_response.json.return_value = payload
    mock_response.text = text
    return mock_response


class TestEmbeddingModel:
    """Test suite for EmbeddingModel."""

    def test_initialization_success(self):
        """Test successful initialization with API key."""
        model = EmbeddingModel(api_key="test_key", max_retries=5)
        assert model.api_key == "test_key"
        assert model.model_name == "sentence-transformers/all-mpnet-base-v2"
        assert model.max_retries == 5
        assert model.api_url.endswith("/models/sentence-transformers/all-mpnet-base-v2")

    def test_initialization_without_api_key(self):
        """Test initialization fails without API key."""
        with pytest.raises(ValueError, match="HUGGINGFACE_API_KEY"):
            EmbeddingModel(api_key=None)

    def test_embed_empty_list(self):
        """Test embed raises error for an empty list."""
        model = EmbeddingModel(api_key="test_key")
        with pytest.raises(ValueError, match="cannot be empty"):
            model.embed([])

    def test_embed_empty_string(self):
        """Test embed raises error when any text is empty."""
        model = EmbeddingModel(api_key="test_key")
        with pytest.raises(ValueError, match="empty strings"):
            model.embed(["fine", "   "])

    @patch('httpx.Client')
    def test_embed_success(self, mock_client_class):
        """Test one request returns one vector per text in order."""
        mock_client = mock_client_returning(response(payload=[[0.1, 0.2], [0.3, 0.4]]))
        mock_client_class.return_value = mock_client

        model = EmbeddingModel(api_key="test_key")
        result = model.embed(["first", "second"])

        assert result == [[0.1, 0.2], [0.3, 0.4]]
        post = mock_client.__enter__.return_value.post
        assert post.call_count == 1
        assert post.call_args.kwargs["json"]["inputs"] == ["first", "second"]
        assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer test_key"

    @patch('services.embedding_model.time.sleep')
    @patch('httpx.Client')
    def test_retry_on_503(self, mock_client_class, mock_sleep):
        """Test a loading model (503) is retried with backoff."""
        mock_client_class.return_value = mock_client_returning(
            response(status_code=503),
            response(payload=[[1.0, 0.0]]),
        )

        model = EmbeddingModel(api_key="test_key", initial_delay=2.0)
        assert model.embed(["text"]) == [[1.0, 0.0]]
        mock_sleep.assert_called_once_with(2.0)

    @patch('services.embedding_model.time.sleep')
    @patch('httpx.Client')
    def test_backoff_doubles(self, mock_client_class, mock_sleep):
        """Test delays double between attempts and no sleep follows the last one."""
        mock_client_class.return_value = mock_client_returning(
            *[response(status_code=503) for _ in range(3)]
        )

        model = EmbeddingModel(api_key="test_key", max_retries=3, initial_delay=1.0)
        with pytest.raises(EmbeddingError) as exc_info:
            model.embed(["text"])

        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]
        assert exc_info.value.details["attempts"] == 3

    @patch('services.embedding_model.time.sleep')
    @patch('httpx.Client')
    def test_timeout_exhausts_retries(self, mock_client_class, mock_sleep):
        """Test repeated timeouts raise a TIMEOUT error."""
        mock_client_class.return_value = mock_client_returning(
            httpx.TimeoutException("timed out"),
            httpx.TimeoutException("timed out"),
        )

        model = EmbeddingModel(api_key="test_key", max_retries=2)
        with pytest.raises(EmbeddingError) as exc_info:
            model.embed(["text"])
        assert exc_info.value.code == "TIMEOUT"

    @patch('services.embedding_model.time.sleep')
    @patch('httpx.Client')
    def test_network_error_then_success(self, mock_client_class, mock_sleep):
        """Test network errors are retried."""
        mock_client_class.return_value = mock_client_returning(
            httpx.ConnectError("connection refused"),
            response(payload=[[0.5, 0.5]]),
        )

        model = EmbeddingModel(api_key="test_key")
        assert model.embed(["text"]) == [[0.5, 0.5]]

    @pytest.mark.parametrize("status_code,code", [
        (429, "RATE_LIMIT"),
        (401, "AUTH"),
        (403, "AUTH"),
        (402, "QUOTA"),
        (500, "HTTP_ERROR"),
    ])
    @patch('services.embedding_model.time.sleep')
    @patch('httpx.Client')
    def test_non_retryable_errors(self, mock_client_class, mock_sleep, status_code, code):
        """Test rate limit, auth, quota and other HTTP errors fail immediately."""
        mock_client = mock_client_returning(response(status_code=status_code, text="error"))
        mock_client_class.return_value = mock_client

        model = EmbeddingModel(api_key="test_key")
        with pytest.raises(EmbeddingError) as exc_info:
            model.embed(["text"])

        assert exc_info.value.code == code
        assert exc_info.value.details["status_code"] == status_code
        assert mock_client.__enter__.return_value.post.call_count == 1
        mock_sleep.assert_not_called()

    @pytest.mark.parametrize("payload", [
        [[0.1, 0.2]],  # too few vectors
        {"error": "bad"},  # not a list
        [[0.1, 0.2], [0.3]],  # inconsistent dimension
        [[0.1, "x"], [0.3, 0.4]],  # non-numeric
        [[], []],  # empty vectors
    ])
    @patch('httpx.Client')
    def test_bad_response_shape(self, mock_client_class, payload):
        """Test malformed responses raise BAD_RESPONSE."""
        mock_client_class.return_value = mock_client_returning(response(payload=payload))

        model = EmbeddingModel(api_key="test_key")
        with pytest.raises(EmbeddingError) as exc_info:
            model.embed(["first", "second"])
        assert exc_info.value.code == "BAD_RESPONSE"

    @patch('httpx.Client')
    def test_non_json_response(self, mock_client_class):
        """Test a non-JSON body raises BAD_RESPONSE."""
        bad = response()
        bad.json.side_effect = ValueError("not json")
        mock_client_class.return_value = mock_client_returning(bad)

        model = EmbeddingModel(api_key="test_key")
        with pytest.raises(EmbeddingError) as exc_info:
            model.embed(["text"])
        assert exc_info.value.code == "BAD_RESPONSE"

    def test_error_is_runtime_error(self):
        """Test EmbeddingError carries its code and is a RuntimeError."""
        error = EmbeddingError("QUOTA", "Embedding quota exhausted")
        assert isinstance(error, RuntimeError)
        assert error.details == {}
        assert str(error) == "Embedding quota exhausted"
