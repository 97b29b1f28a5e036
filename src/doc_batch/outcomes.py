"""
Generation outcomes.

Every call to :meth:`GenerationClient.submit` returns exactly one of these
variants; callers branch with ``isinstance``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class Produced:
    """The provider returned usable text."""

    text: str
    latency_seconds: Optional[float] = None


@dataclass(frozen=True)
class QuotaExhausted:
    """The active key is out of quota (HTTP 429 / RESOURCE_EXHAUSTED)."""

    detail: str = ""
    latency_seconds: Optional[float] = None


@dataclass(frozen=True)
class Empty:
    """A successful response with no candidates or no text."""

    detail: str = ""
    latency_seconds: Optional[float] = None


@dataclass(frozen=True)
class TransientError:
    """Transport failure or unrecognized error response."""

    detail: str
    category: str = "other"
    latency_seconds: Optional[float] = None


GenerationOutcome = Union[Produced, QuotaExhausted, Empty, TransientError]


def outcome_name(outcome: GenerationOutcome) -> str:
    """Short label used in logs (``produced``, ``quota_exhausted`` ...)."""
    return {
        Produced: "produced",
        QuotaExhausted: "quota_exhausted",
        Empty: "empty",
        TransientError: "transient_error",
    }[type(outcome)]
