from datetime import datetime

import pytest

from bitlytics.core.exceptions import InvalidOperationError
from bitlytics.domain.operation import Operation, and_, minus, not_, or_, xor

NOW = datetime(2024, 5, 15, 12, 30)


@pytest.fixture
def queries(analytics):
    for id in (1, 3, 5):
        analytics.track("a", id, past=NOW)
    for id in (3, 4, 5):
        analytics.track("b", id, past=NOW)
    for id in (5, 9):
        analytics.track("c", id, past=NOW)
    return (
        analytics.analyze("a", "today"),
        analytics.analyze("b", "today"),
        analytics.analyze("c", "today"),
    )


class TestAlgebra:
    def test_and(self, queries):
        a, b, _ = queries
        assert (a & b).tracks() == 2

    def test_or(self, queries):
        a, b, _ = queries
        assert (a | b).tracks() == 4
        assert (a + b).tracks() == 4

    def test_xor(self, queries):
        a, b, _ = queries
        op = a ^ b
        assert op.tracks() == 2
        assert op.exists(1) and op.exists(4)
        assert not op.exists(3)

    def test_minus(self, queries):
        a, b, _ = queries
        op = a - b
        assert op.tracks() == 1
        assert op.exists(1) is True
        assert op.exists(3) is False

    def test_minus_keeps_bits_past_right_operand(self, analytics, queries):
        a, _, _ = queries
        analytics.track("wide", 20, past=NOW)
        wide = analytics.analyze("wide", "today")
        op = minus(wide, a)
        assert op.tracks() == 1
        assert op.exists(20)

    def test_not_complements_over_operand_length(self, queries):
        a, _, _ = queries
        # {1, 3, 5} fits in one byte; its complement is {0, 2, 4, 6, 7}
        op = ~a
        assert op.tracks() == 5
        assert (-a).tracks() == 5
        assert op.exists(0) and not op.exists(1)

    def test_named_builders_match_operators(self, queries):
        a, b, c = queries
        assert and_(a, b).tracks() == 2
        assert or_(a, b, c).tracks() == 5
        assert xor(a, b).tracks() == 2
        assert not_(a).tracks() == 5
        assert minus(a, b).tracks() == 1

    def test_nested_tree(self, queries):
        a, b, c = queries
        # ({1,3,5} | {3,4,5}) - {5,9} = {1,3,4}
        op = (a | b) - c
        assert op.tracks() == 3
        assert op.exists(4)
        assert not op.exists(5)


class TestEvaluation:
    def test_children_materialize_before_parent(self, analytics, queries):
        a, b, c = queries
        inner = a & b
        outer = inner | c
        assert inner.is_leaf
        outer.track_bits()
        assert not inner.is_leaf
        assert not outer.is_leaf
        operators = [
            params["operator"] for kind, _, params in analytics.dispatch.calls
            if kind == "operation"
        ]
        # a, b, AND, then c and the outer OR
        assert operators == ["OR", "OR", "AND", "OR", "OR"]

    def test_materialized_once(self, analytics, queries):
        a, b, _ = queries
        op = a & b
        first = op.track_bits()
        calls = len(analytics.dispatch.calls)
        assert op.track_bits() == first
        op.tracks()
        assert len(analytics.dispatch.calls) == calls

    def test_shared_operand_is_reused(self, analytics, queries):
        a, b, c = queries
        left, right = a & b, a | c
        left.tracks()
        right.tracks()
        or_calls = [
            keys for kind, keys, params in analytics.dispatch.calls
            if kind == "operation" and params["operator"] == "OR" and keys[0].startswith("rl:t:")
        ]
        # a, b and c each unioned once
        assert len(or_calls) == 3


class TestReset:
    def test_reset_tree_removes_every_temporary_key(self, queries, redis_client):
        a, b, c = queries
        op = (a & b) ^ ~c
        op.tracks()
        owned = [key for node in (a, b, c, op, op.children[0], op.children[1]) for key in node.namespaces]
        assert len(owned) == 6
        assert all(redis_client.exists(key) for key in owned)

        op.reset("tree")
        assert not any(redis_client.exists(key) for key in owned)
        assert redis_client.keys("rl:o:*") == []

    def test_plain_reset_keeps_children(self, queries, redis_client):
        a, b, _ = queries
        op = a & b
        own = op.track_bits()
        child = a.track_bits()
        op.reset()
        assert not redis_client.exists(own)
        assert redis_client.exists(child)
        assert op.is_leaf

    def test_context_manager_releases_tree(self, queries, redis_client):
        a, b, _ = queries
        with a | b as op:
            assert op.tracks() == 4
        assert redis_client.keys("rl:o:*") == []

    def test_unknown_scope(self, queries):
        a, b, _ = queries
        with pytest.raises(ValueError):
            (a & b).reset("counter")


class TestConstruction:
    def test_operator_is_uppercased(self, queries):
        a, b, _ = queries
        assert Operation("and", [a, b]).operator == "AND"

    @pytest.mark.parametrize(
        "operator,count",
        [("NOT", 2), ("NOT", 0), ("MINUS", 1), ("MINUS", 3), ("AND", 0), ("NAND", 2)],
    )
    def test_arity_and_operator_are_checked(self, queries, operator, count):
        with pytest.raises(InvalidOperationError):
            Operation(operator, list(queries)[:count])

    def test_single_operand_or(self, queries):
        a, _, _ = queries
        assert Operation("OR", [a]).tracks() == 3
