"""Memoization of printed expression text."""

from typing import Dict, Optional

from pydantic import BaseModel, Field

from sqloflow.syntax.models import Expression


class CacheStats(BaseModel):
    """Hit/miss counters of an ExpressionCache."""

    hits: int = 0
    misses: int = 0
    size: int = Field(0, description="Number of cached entries")

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class ExpressionCache:
    """Caches printed SQL text keyed by an expression's structural fingerprint.

    The fingerprint is the expression's JSON dump, so two structurally equal
    expressions share an entry regardless of object identity. Expressions
    containing subqueries must not be cached: their text depends on the
    placeholders assigned by the current conversion context.
    """

    def __init__(self, max_size: int = 10_000):
        self.max_size = max_size
        self._entries: Dict[str, str] = {}
        self._hits = 0
        self._misses = 0

    @staticmethod
    def fingerprint(expr: Expression) -> str:
        return expr.model_dump_json()

    def get(self, expr: Expression) -> Optional[str]:
        """Return the cached text for an expression, or None on a miss."""
        text = self._entries.get(self.fingerprint(expr))
        if text is None:
            self._misses += 1
        else:
            self._hits += 1
        return text

    def set(self, expr: Expression, text: str) -> None:
        if len(self._entries) >= self.max_size:
            # Evict the oldest entry
            self._entries.pop(next(iter(self._entries)))
        self._entries[self.fingerprint(expr)] = text

    def stats(self) -> CacheStats:
        return CacheStats(hits=self._hits, misses=self._misses, size=len(self._entries))

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0
