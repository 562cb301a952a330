"""Drive a never-suspending coroutine to completion without an event loop."""

from __future__ import annotations

import typing

_T = typing.TypeVar("_T")


def iter_coroutine(coro: typing.Coroutine[None, None, _T]) -> _T:
    """Run ``coro`` to completion with a single ``send(None)``.

    The blocking client builds its operations on the shared async core but
    only ever awaits blocking I/O and blocking sleeps, so each coroutine
    finishes on its first step. A coroutine that does suspend is a bug in
    that wiring and raises ``RuntimeError``; it is closed either way.
    """
    try:
        coro.send(None)
    except StopIteration as stop:
        return stop.value  # type: ignore [no-any-return]
    else:
        raise RuntimeError(f"coroutine {coro!r} did not stop after one iteration!")
    finally:
        coro.close()


__all__ = ["iter_coroutine"]
