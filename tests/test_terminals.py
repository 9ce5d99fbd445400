import itertools

import pytest
from sequencer import AggregateResult, Sequence, Signal


def counting_source(data, pulled):
    def produce(visit):
        for item in data:
            pulled.append(item)
            if not visit(item):
                return Signal.STOP
        return Signal.CONTINUE
    return Sequence.from_producer(produce, restartable=True)


class TestCount:
    """Test the count terminal"""

    def test_count(self):
        assert Sequence.of([1, 2, 3, 4, 5]).count() == 5

    def test_count_with_filtering(self):
        result = Sequence.of(range(20)).filter(lambda x: x % 3 == 0).count()
        # Numbers divisible by 3: 0,3,6,9,12,15,18
        assert result == 7, f"Expected 7, got {result}"

    def test_count_empty(self):
        assert Sequence.empty().count() == 0

    def test_count_drains_fully(self):
        pulled = []
        counting_source(range(10), pulled).count()
        assert pulled == list(range(10))


class TestIsEmpty:
    """Test the emptiness check"""

    def test_is_empty(self):
        assert Sequence.of([]).is_empty()
        assert not Sequence.of([1]).is_empty()

    def test_is_empty_after_filter(self):
        assert Sequence.of([1, 2, 3]).filter(lambda x: x > 10).is_empty()

    def test_is_empty_consumes_one_element(self):
        pulled = []
        assert not counting_source([1, 2, 3], pulled).is_empty()
        assert pulled == [1], f"is_empty() pulled {pulled}"


class TestSum:
    """Test the sorted sum terminal"""

    def test_sum(self):
        assert Sequence.of([3, 1, 2]).sum() == 6

    def test_sum_empty(self):
        assert Sequence.empty().sum() == 0

    def test_sum_start(self):
        assert Sequence.of([1, 2]).sum(start=10) == 13

    def test_sum_is_independent_of_arrival_order(self):
        """Test float sums agree for every permutation of the input"""
        data = [1e16, 1.0, -1e16, 3.5]
        results = {Sequence.of(list(p)).sum() for p in itertools.permutations(data)}
        assert len(results) == 1, f"Sums differ by arrival order: {results}"

    def test_sum_with_transformations(self):
        result = Sequence.of(range(5)).replace(lambda x: x * 2).sum()  # 0+2+4+6+8
        assert result == 20, f"Expected 20, got {result}"

    def test_sum_unorderable_raises(self):
        with pytest.raises(TypeError):
            Sequence.of([1, "a"]).sum()

    def test_sum_strings_concatenate_in_sorted_order(self):
        result = Sequence.of(["b", "c", "a"]).sum()
        assert result == "abc", f"Expected 'abc', got {result!r}"

    def test_sum_floats(self):
        result = Sequence.of([0.5, 2.25, 1.25]).sum()
        assert result == 4.0
        assert isinstance(result, float)

    def test_sum_single_element(self):
        assert Sequence.of(["only"]).sum() == "only"

    def test_sum_start_with_strings(self):
        assert Sequence.of(["b", "a"]).sum(start=">") == ">ab"


class TestAggregate:
    """Test the fail-fast aggregate terminal"""

    def test_aggregate_success(self):
        result = Sequence.of(["1", "2", "3"]).aggregate(int)
        assert result == AggregateResult(6, None)
        assert result.ok
        assert result.unwrap() == 6

    def test_aggregate_unpacks(self):
        value, error = Sequence.of([1, 2]).aggregate(lambda v: v * 1.5, zero=0.0)
        assert value == 4.5
        assert error is None

    def test_aggregate_returns_zero_and_error(self):
        """Test an error on the second of three elements yields the zero value and that error"""
        boom = ValueError("invalid number")
        visited = []

        def parse(s):
            visited.append(s)
            if s == "a":
                raise boom
            return int(s)

        result = Sequence.of(["1", "a", "3"]).aggregate(parse)
        assert result.value == 0, f"Partial total leaked: {result.value}"
        assert result.error is boom
        assert not result.ok
        assert visited == ["1", "a"], "Aggregate should stop at the first error"

    def test_aggregate_stops_pulling_on_error(self):
        pulled = []
        counting_source(range(10), pulled).aggregate(lambda v: 1 / (v - 2))
        assert pulled == [0, 1, 2]

    def test_aggregate_custom_zero(self):
        result = Sequence.of(["x"]).aggregate(int, zero=-1)
        assert result.value == -1
        assert isinstance(result.error, ValueError)

    def test_unwrap_raises(self):
        result = Sequence.of(["x"]).aggregate(int)
        with pytest.raises(ValueError):
            result.unwrap()

    def test_aggregate_empty(self):
        assert Sequence.empty().aggregate(int) == AggregateResult(0, None)


class TestCollection:
    """Test collecting terminals"""

    def test_to_list(self):
        assert Sequence.of((1, 2)).to_list() == [1, 2]

    def test_first(self):
        assert Sequence.of([7, 8]).first() == 7
        assert Sequence.empty().first(default="none") == "none"

    def test_contains(self):
        pulled = []
        assert counting_source([1, 2, 3, 4], pulled).contains(2)
        assert pulled == [1, 2], "contains() should stop at the first match"
        assert not Sequence.of([1, 2]).contains(5)

    def test_multiple_terminals_on_same_sequence(self):
        seq = Sequence.of(range(1, 6))
        assert seq.sum() == 15
        assert seq.count() == 5
