"""Bitmap algebra over tracker queries.

`Query` leaves and `Operation` nodes share the `Node` capabilities
(`track_bits`, `tracks`, `exists`, `reset`) and combine with the builders
below or the equivalent operators::

    and_(a, b)  a & b
    or_(a, b)   a | b, a + b
    xor(a, b)   a ^ b
    not_(a)     ~a, -a
    minus(a, b) a - b

Operands are shared, not copied: one query may feed several operations.
Every node owns the temporary Redis keys it materialized and deletes them on
`reset()` / `close()` or when leaving a `with` block (if `auto_clean`).
"""

from typing import TYPE_CHECKING, Iterable, List, Optional, Tuple

from bitlytics.core import metrics
from bitlytics.core.exceptions import InvalidOperationError
from bitlytics.core.logger import get_logger
from bitlytics.infrastructure.redis.constants import OPERATORS

if TYPE_CHECKING:
    from bitlytics.services.analytics import Analytics

logger = get_logger("bitlytics.operation")


class Node:
    """Common base of query leaves and operations."""

    def __init__(self, engine: "Analytics"):
        self.engine = engine
        self._namespaces: List[str] = []

    @property
    def namespaces(self) -> Tuple[str, ...]:
        """Temporary keys currently owned by this node."""
        return tuple(self._namespaces)

    @property
    def is_leaf(self) -> bool:
        raise NotImplementedError

    def track_bits(self) -> str:
        raise NotImplementedError

    def tracks(self) -> int:
        raise NotImplementedError

    def reset(self, scope: Optional[str] = None) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        self.reset()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.engine.config.auto_clean:
            self.close()
        return False

    # Operators
    def __and__(self, other: "Node") -> "Operation":
        return and_(self, other)

    def __or__(self, other: "Node") -> "Operation":
        return or_(self, other)

    __add__ = __or__

    def __xor__(self, other: "Node") -> "Operation":
        return xor(self, other)

    def __invert__(self) -> "Operation":
        return not_(self)

    __neg__ = __invert__

    def __sub__(self, other: "Node") -> "Operation":
        return minus(self, other)

    # Temporary keys
    def _combine(self, operator: str, keys: List[str]) -> str:
        """Materialize `operator` over `keys` into a freshly claimed key."""
        dest = self._allocate()
        self.engine.dispatch.invoke(
            "operation", keys, {"operator": operator, "dest": dest}
        )
        # BITOP replaces the destination, dropping its TTL
        ttl = self.engine.config.operation_expiration
        self.engine.connection.execute(lambda r: r.expire(dest, ttl))
        return dest

    def _allocate(self) -> str:
        key = self.engine.codec.unique_namespace()
        self._namespaces.append(key)
        return key

    def _release(self, keys: Iterable[Optional[str]]) -> None:
        keys = [key for key in keys if key]
        if not keys:
            return
        self.engine.connection.delete(*keys)
        metrics.TEMP_KEYS_RELEASED_TOTAL.inc(len(keys))
        logger.debug("Released operation keys", extra={"count": len(keys)})
        self._namespaces = [key for key in self._namespaces if key not in keys]


class Operation(Node):
    """Internal node applying one set operator to its children."""

    def __init__(self, operator: str, children: Iterable[Node]):
        operator = str(operator).upper()
        children = tuple(children)
        if operator not in OPERATORS:
            raise InvalidOperationError(f"Unknown operator: {operator}")
        if operator == "NOT" and len(children) != 1:
            raise InvalidOperationError("NOT takes exactly one operand")
        if operator == "MINUS" and len(children) != 2:
            raise InvalidOperationError("MINUS takes exactly two operands")
        if not children:
            raise InvalidOperationError(f"{operator} needs at least one operand")
        super().__init__(children[0].engine)
        self.operator = operator
        self.children = children
        self._track_bits: Optional[str] = None
        self._tracks: Optional[int] = None

    def __repr__(self) -> str:
        return f"Operation({self.operator!r}, {list(self.children)!r})"

    @property
    def is_leaf(self) -> bool:
        # Until materialized the node still has to be evaluated; afterwards
        # its result key is reused like a leaf's.
        return self._track_bits is None

    def track_bits(self) -> str:
        if self._track_bits is None:
            self._traverse()
        return self._track_bits

    def tracks(self) -> int:
        if self._tracks is None:
            key = self.track_bits()
            self._tracks = self.engine.connection.execute(lambda r: r.bitcount(key)) or 0
        return self._tracks

    def exists(self, id: int) -> bool:
        key = self.track_bits()
        return self.engine.connection.execute(lambda r: r.getbit(key, int(id))) == 1

    def reset(self, scope: Optional[str] = None) -> bool:
        if scope == "tree":
            for child in self.children:
                child.reset("tree")
            return self.reset()
        if scope is not None:
            raise ValueError(f"Unknown reset scope: {scope}")
        self._tracks = None
        self._track_bits = None
        self._release(list(self._namespaces))
        return True

    def close(self) -> None:
        self.reset("tree")

    def _traverse(self) -> str:
        # Post-order: materialize pending sub-operations before this node
        for child in self.children:
            if isinstance(child, Operation) and child.is_leaf:
                child._traverse()
        keys = [child.track_bits() for child in self.children]
        self._track_bits = self._combine(self.operator, keys)
        return self._track_bits


def and_(*nodes: Node) -> Operation:
    return Operation("AND", nodes)


def or_(*nodes: Node) -> Operation:
    return Operation("OR", nodes)


def xor(*nodes: Node) -> Operation:
    return Operation("XOR", nodes)


def not_(node: Node) -> Operation:
    return Operation("NOT", [node])


def minus(left: Node, right: Node) -> Operation:
    return Operation("MINUS", [left, right])
