"""RateLimitDecision — the one contract every limiter strategy returns.

A decision is pure data. Denial is an ordinary outcome, never an exception.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one admission check.

    allowed:   True if the request was admitted (and its window counter consumed).
    remaining: Admissions left in the current window after this one. Never negative.
    reset_in:  Seconds until the next clock-aligned window boundary.
    limit:     Configured per-window ceiling.
    """

    allowed: bool
    remaining: int
    reset_in: int
    limit: int

    @classmethod
    def denied(cls, limit: int, reset_in: int) -> "RateLimitDecision":
        return cls(allowed=False, remaining=0, reset_in=reset_in, limit=limit)

    def to_dict(self) -> dict[str, int | bool]:
        """camelCase wire form used in response bodies."""
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "resetIn": self.reset_in,
            "limit": self.limit,
        }

    def headers(self) -> dict[str, str]:
        """Diagnostic response headers. Retry-After only accompanies a denial."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_in),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_in)
        return headers
