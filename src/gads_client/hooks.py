"""Observer callbacks around query and mutation calls."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

Hook = Callable[..., Any]


@dataclass(frozen=True)
class Hooks:
    """Optional callables invoked with keyword context.

    Start hooks receive ``credentials`` and ``query`` or ``mutations``; end
    hooks also get ``response``; error hooks get ``error`` (already
    translated). Return values are ignored.
    """

    on_query_start: Optional[Hook] = None
    on_query_end: Optional[Hook] = None
    on_query_error: Optional[Hook] = None
    on_mutation_start: Optional[Hook] = None
    on_mutation_end: Optional[Hook] = None
    on_mutation_error: Optional[Hook] = None

    def fire(self, name: str, **context: Any) -> None:
        hook = getattr(self, name)
        if hook is not None:
            hook(**context)


__all__ = ["Hooks"]
