import inspect
from collections.abc import Callable, Sequence
from typing import Union

from .types import SelectionAlgorithm, TokenRecord

# Defaults used when inspect.signature cannot determine argument counts
DEFAULT_ALGORITHM_ARGC = 2  # algorithm(records, cursor)

# Algorithms receive the cursor at 2+ args
ALGORITHM_WITH_CURSOR_ARGC = 2


def _count_positional_args(fn, default: int) -> int:
    """Return count of positional params for fn; fall back to default on failure."""
    try:
        sig = inspect.signature(fn)
        if any(p.kind == p.VAR_POSITIONAL for p in sig.parameters.values()):
            return default
        return len(
            [
                p
                for p in sig.parameters.values()
                if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
            ]
        )
    except (TypeError, ValueError):
        return default


def round_robin(records: Sequence[TokenRecord], cursor: int) -> Union[TokenRecord, None]:
    """Round-robin with limit skip.

    A record is eligible when the cursor is still 0, when it sits past the
    cursor position, when it has no limit, when nothing was charged to it yet,
    or when its usage is under its limit. The pick is
    ``available[cursor % len(available)]``; the caller advances the cursor.

    Because of the first two clauses an exhausted record becomes eligible
    again while the cursor is behind it. Use strict_round_robin to keep
    exhausted records out entirely.
    """
    available = [
        rec
        for i, rec in enumerate(records)
        if cursor == 0
        or i > cursor
        or rec.limit is None
        or rec.usage is None
        or rec.usage < rec.limit
    ]
    if not available:
        return None
    return available[cursor % len(available)]


def strict_round_robin(records: Sequence[TokenRecord], cursor: int) -> Union[TokenRecord, None]:
    """Round-robin over records that are not exhausted."""
    available = [rec for rec in records if not rec.exhausted]
    if not available:
        return None
    return available[cursor % len(available)]


class _RecordsOnlyAlgorithm:
    """Adapt a user-supplied ``fn(records)`` to the (records, cursor) shape."""

    def __init__(self, fn: Callable):
        self.fn = fn

    def __call__(self, records, cursor):
        return self.fn(records)


def coerce_algorithm(algorithm: Union[object, None]) -> SelectionAlgorithm:
    """Turn None | str | callable into a selection algorithm.

    Accepted inputs:
      - None           -> round_robin
      - "round_robin" -> round_robin
      - "strict"      -> strict_round_robin
      - callable: either fn(records, cursor) or fn(records)
    """
    if algorithm is None:
        return round_robin
    if isinstance(algorithm, str):
        name = algorithm.lower()
        if name == "round_robin":
            return round_robin
        if name == "strict":
            return strict_round_robin
        raise ValueError(
            "Unknown algorithm string. Use 'round_robin' or 'strict', or pass a callable."
        )
    if callable(algorithm):
        argc = _count_positional_args(algorithm, DEFAULT_ALGORITHM_ARGC)
        if argc >= ALGORITHM_WITH_CURSOR_ARGC:
            return algorithm
        return _RecordsOnlyAlgorithm(algorithm)
    raise TypeError("algorithm must be None, 'round_robin'|'strict', or a callable")
