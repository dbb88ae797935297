"""
Pipeline error taxonomy.

Only sequencing errors terminate a run:

- StartInFutureError: the requested start is ahead of the source head
- SubscriptionTransportError: the live subscription was lost
- GapFillError: a missed block could not be fetched (FAIL policy only)

Transient fetch failures are retried by the fetcher and never surface here.
Sink write failures are logged by the drain and never surface here.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors that end a pipeline run."""


class ConfigurationConflictError(PipelineError, ValueError):
    """
    Mutually exclusive options were combined.

    Subclasses ValueError so pydantic reports it as a validation error.
    """


class StartInFutureError(PipelineError):
    """The start block is ahead of the source head and future starts are disallowed."""

    def __init__(self, start: int, head: int) -> None:
        super().__init__(
            f"start block {start} is in the future (latest block: {head}) "
            f"and allow_future_start is false"
        )
        self.start = start
        self.head = head


class SubscriptionTransportError(PipelineError):
    """The new-head subscription failed or its transport was lost."""


class GapFillError(PipelineError):
    """A block missed between two notices could not be fetched."""

    def __init__(self, number: int | str, cause: Exception) -> None:
        super().__init__(f"failed to fetch missed block {number}: {cause}")
        self.number = number
        self.cause = cause


class ChannelClosedError(PipelineError):
    """A record was pushed onto a closed handoff channel."""


class StopRequested(PipelineError):
    """
    A graceful stop interrupted the producer.

    Used internally to unwind the producer. The orchestrator treats it as a
    clean termination, not a failure.
    """
