"""Tests for synaptic.core.nodes.batch module."""

import threading
import time

import pytest

from synaptic.core.nodes.batch import BatchNode, as_items
from synaptic.core.nodes.errors import BatchElementError
from synaptic.core.nodes.policies import RetryPolicy


class Square(BatchNode):
    def prepare(self, shared, params):
        return shared["numbers"]

    def execute(self, n):
        if n < 0:
            raise ValueError(f"negative: {n}")
        return n * n

    def finalize(self, shared, params, squares):
        shared["squares"] = squares


class TestAsItems:
    """Tests for as_items."""

    def test_none_is_empty(self):
        """Test None means an empty batch."""
        assert as_items(None) == []

    def test_materializes_iterables(self):
        """Test generators and tuples become lists."""
        assert as_items(n for n in range(3)) == [0, 1, 2]
        assert as_items((1, 2)) == [1, 2]

    @pytest.mark.parametrize("value", ["abc", b"abc", 42, {"a": 1}])
    def test_rejects_non_element_collections(self, value):
        """Test strings, scalars and dicts are rejected."""
        with pytest.raises(TypeError):
            as_items(value)


class TestBatchNode:
    """Tests for BatchNode."""

    def test_results_in_input_order(self):
        """Test execute runs per element and results keep input order."""
        shared = {"numbers": [3, 1, 2]}
        Square().run(shared)
        assert shared["squares"] == [9, 1, 4]

    def test_empty_batch(self):
        """Test an empty batch runs finalize with no results."""
        shared = {"numbers": []}
        Square().run(shared)
        assert shared["squares"] == []

    def test_parallel_results_in_input_order(self):
        """Test a worker pool still returns results in input order."""

        class SlowFirst(Square):
            def execute(self, n):
                time.sleep(0.05 if n == 0 else 0)
                return n

        shared = {"numbers": list(range(6))}
        SlowFirst(max_workers=4).run(shared)
        assert shared["squares"] == list(range(6))

    def test_parallel_uses_threads(self):
        """Test elements run on worker threads with max_workers > 1."""
        seen = set()

        class Record(Square):
            def execute(self, n):
                seen.add(threading.current_thread().name)
                time.sleep(0.01)
                return n

        Record(max_workers=3).run({"numbers": list(range(6))})
        assert all(name.startswith("synaptic-") for name in seen)

    def test_retry_is_per_element(self):
        """Test each element gets its own attempts."""
        attempts = {}

        class FlakyElements(Square):
            def execute(self, n):
                attempts[n] = attempts.get(n, 0) + 1
                if attempts[n] < 2:
                    raise RuntimeError("transient")
                return n

        shared = {"numbers": [1, 2, 3]}
        FlakyElements(RetryPolicy(max_attempts=2)).run(shared)

        assert attempts == {1: 2, 2: 2, 3: 2}
        assert shared["squares"] == [1, 2, 3]

    def test_fallback_is_per_element(self):
        """Test fallback replaces only the failing element's result."""

        class WithFallback(Square):
            def fallback(self, n, error):
                return 0

        shared = {"numbers": [2, -1, 3]}
        WithFallback().run(shared)
        assert shared["squares"] == [4, 0, 9]

    def test_element_failure(self):
        """Test an exhausted element fails the batch with its index."""
        with pytest.raises(BatchElementError) as exc_info:
            Square(RetryPolicy(max_attempts=2)).run({"numbers": [1, -2, 3]})

        error = exc_info.value
        assert error.index == 1
        assert isinstance(error.cause, ValueError)
        assert error.node_id == "Square"
        assert "element 1" in str(error)

    def test_parallel_reports_lowest_failing_index(self):
        """Test the lowest failing index wins regardless of completion order."""

        class SlowLowFailure(Square):
            def execute(self, n):
                if n == -1:
                    time.sleep(0.05)
                return super().execute(n)

        with pytest.raises(BatchElementError) as exc_info:
            SlowLowFailure(max_workers=4).run({"numbers": [0, -1, 2, -3]})

        assert exc_info.value.index == 1

    def test_prepare_must_return_elements(self):
        """Test a string prepare result is rejected."""
        with pytest.raises(BatchElementError, match="iterable") as exc_info:
            Square().run({"numbers": "123"})
        assert exc_info.value.phase == "prepare"

    def test_invalid_max_workers(self):
        """Test max_workers must be positive."""
        with pytest.raises(ValueError, match="max_workers must be >= 1"):
            BatchNode(max_workers=0)

    def test_parallel_property(self):
        """Test parallel is only set for pools larger than one."""
        assert BatchNode().parallel is False
        assert BatchNode(max_workers=1).parallel is False
        assert BatchNode(max_workers=2).parallel is True
