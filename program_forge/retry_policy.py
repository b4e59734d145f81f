"""
Bounded exponential backoff with jitter for generation attempts.
"""

import random


class RetryPolicy:
    """Attempt budget and delay schedule for model calls."""

    def __init__(
        self,
        max_attempts=3,
        initial_delay=0.5,
        max_delay=5.0,
        multiplier=2.0,
        jitter_ratio=0.25,
        min_delay=0.1,
        rng=None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_ratio = jitter_ratio
        self.min_delay = min_delay
        self._rng = rng or random.Random()

    @classmethod
    def from_config(cls, config, rng=None):
        settings = (config or {}).get("generation") or {}
        return cls(
            max_attempts=int(settings.get("max_attempts", 3)),
            initial_delay=float(settings.get("initial_delay_seconds", 0.5)),
            max_delay=float(settings.get("max_delay_seconds", 5.0)),
            multiplier=float(settings.get("backoff_multiplier", 2.0)),
            jitter_ratio=float(settings.get("jitter_ratio", 0.25)),
            min_delay=float(settings.get("min_delay_seconds", 0.1)),
            rng=rng,
        )

    def delay_for(self, attempt):
        """
        Seconds to wait after the given (1-based) failed attempt.

        The exponential delay is capped at max_delay, jittered by
        +/- jitter_ratio and never drops below min_delay.
        """
        base = min(self.initial_delay * (self.multiplier ** (attempt - 1)), self.max_delay)
        jitter = base * self.jitter_ratio * (self._rng.random() * 2 - 1)
        return max(self.min_delay, base + jitter)

    def should_retry(self, attempt):
        return attempt < self.max_attempts
