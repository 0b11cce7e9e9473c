"""Snapshot, apply and restore-on-failure updates of in-memory records."""

from contextlib import contextmanager
from typing import Any, Iterator


@contextmanager
def optimistic(target: Any, **changes: Any) -> Iterator[Any]:
    """
    Apply attribute changes to ``target`` for the duration of a block.

    If the block raises, only the attributes named in ``changes`` are put back
    to their snapshot values and the exception propagates. Attributes the block
    itself modified are left as they are.
    """
    snapshot = {name: getattr(target, name) for name in changes}
    for name, value in changes.items():
        setattr(target, name, value)
    try:
        yield target
    except BaseException:
        for name, value in snapshot.items():
            setattr(target, name, value)
        raise
