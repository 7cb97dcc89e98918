"""Unit tests for vector similarity metrics."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import math
import pytest
from services.vector_metrics import (
    calculate_all_metrics,
    calculate_improvement,
    chamfer_similarity,
    cosine_distance,
    cosine_similarity,
    dot_product,
    euclidean_distance,
    manhattan_distance,
)


class TestPairMetrics:
    """Test suite for single-pair metrics."""

    def test_cosine_identical_and_orthogonal(self):
        """Test cosine of identical, orthogonal and opposite vectors."""
        assert cosine_similarity([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)

    def test_cosine_is_symmetric(self):
        """Test cosine(a, b) == cosine(b, a)."""
        a, b = [0.3, -1.2, 4.0], [2.0, 0.5, -0.7]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_cosine_zero_vector(self):
        """Test a zero vector yields 0 instead of NaN."""
        assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0
        assert cosine_distance([0, 0, 0], [1, 2, 3]) == 1.0

    def test_distances(self):
        """Test euclidean, manhattan and dot product."""
        assert euclidean_distance([0, 0], [3, 4]) == pytest.approx(5.0)
        assert manhattan_distance([0, 0], [3, -4]) == pytest.approx(7.0)
        assert dot_product([1, 2, 3], [4, 5, 6]) == pytest.approx(32.0)

    @pytest.mark.parametrize("metric", [
        cosine_similarity, euclidean_distance, manhattan_distance, dot_product,
    ])
    def test_dimension_mismatch(self, metric):
        """Test vectors of different length raise ValueError."""
        with pytest.raises(ValueError, match="dimension mismatch"):
            metric([1, 2, 3], [1, 2])


class TestChamfer:
    """Test suite for chamfer similarity."""

    def test_empty_sets(self):
        """Test an empty set on either side yields 0."""
        assert chamfer_similarity([], [[1, 0]]) == 0.0
        assert chamfer_similarity([[1, 0]], []) == 0.0

    def test_singletons_equal_cosine(self):
        """Test chamfer of two singleton sets is plain cosine."""
        a, b = [0.2, 0.9, -0.1], [0.5, 0.1, 0.4]
        assert chamfer_similarity([a], [b]) == pytest.approx(cosine_similarity(a, b))

    def test_symmetric(self):
        """Test chamfer(A, B) == chamfer(B, A)."""
        set_a = [[1, 0, 0], [0, 1, 0]]
        set_b = [[1, 1, 0], [0, 0, 1], [0.5, 0.2, 0.1]]
        assert chamfer_similarity(set_a, set_b) == pytest.approx(chamfer_similarity(set_b, set_a))

    def test_bidirectional_average(self):
        """Test the result averages best matches in both directions."""
        set_a = [[1, 0], [0, 1]]
        set_b = [[1, 0]]
        # A -> B: (1 + 0) / 2; B -> A: 1
        assert chamfer_similarity(set_a, set_b) == pytest.approx(0.75)

    def test_zero_vector_in_set(self):
        """Test zero vectors contribute 0 instead of NaN."""
        result = chamfer_similarity([[0, 0], [1, 0]], [[1, 0]])
        assert not math.isnan(result)
        assert result == pytest.approx(0.75)

    def test_dimension_mismatch(self):
        """Test sets of different dimension raise ValueError."""
        with pytest.raises(ValueError):
            chamfer_similarity([[1, 0]], [[1, 0, 0]])


class TestCalculateAllMetrics:
    """Test suite for calculate_all_metrics."""

    def test_singleton_fallback(self):
        """Test chamfer falls back to cosine without decomposed sets."""
        scores = calculate_all_metrics([1, 0], [1, 1])
        assert scores.chamfer == pytest.approx(scores.cosine)
        assert scores.euclidean == pytest.approx(1.0)
        assert scores.manhattan == pytest.approx(1.0)
        assert scores.dot_product == pytest.approx(1.0)

    def test_uses_decomposed_sets(self):
        """Test chamfer uses the sentence and clause sets when both are given."""
        scores = calculate_all_metrics([1, 0], [1, 0], [[1, 0], [0, 1]], [[1, 0]])
        assert scores.cosine == pytest.approx(1.0)
        assert scores.chamfer == pytest.approx(0.75)

    def test_empty_set_falls_back(self):
        """Test an empty decomposed set falls back to the singleton sets."""
        scores = calculate_all_metrics([1, 0], [0, 1], [], [[1, 0]])
        assert scores.chamfer == pytest.approx(0.0)


class TestImprovement:
    """Test suite for calculate_improvement."""

    def test_percentage_change(self):
        """Test relative change in percent."""
        assert calculate_improvement(50, 75) == pytest.approx(50.0)
        assert calculate_improvement(80, 60) == pytest.approx(-25.0)

    def test_zero_original(self):
        """Test a zero baseline yields 100 for a gain and 0 otherwise."""
        assert calculate_improvement(0, 10) == 100.0
        assert calculate_improvement(0, 0) == 0.0
