"""Pipeline state machine."""

from __future__ import annotations

from enum import Enum, auto


class PipelineState(Enum):
    """
    Lifecycle states of one pipeline run.

    State Machine Diagram
    ---------------------
    ::

        IDLE --> READINESS_CHECK --> BACKFILLING ---------------> DRAINING --> TERMINATED
                       |                 |                         ^     \\
                       |                 +--> CATCHING_UP ---------+      +--> FAILED
                       +--> TERMINATED / FAILED

    A run is single-use. Once TERMINATED or FAILED it never restarts.

    Transitions
    -----------
    IDLE -> READINESS_CHECK
        - Triggered when: `run()` is called
    READINESS_CHECK -> BACKFILLING
        - Triggered when: start block is not ahead of the source head
    READINESS_CHECK -> FAILED / TERMINATED
        - Triggered when: start is in the future, or a stop was requested
    BACKFILLING -> CATCHING_UP
        - Triggered when: historical range done in subscription mode
    BACKFILLING / CATCHING_UP -> DRAINING
        - Triggered when: producer returned; channel closed
    DRAINING -> TERMINATED / FAILED
        - Triggered when: drain emptied the channel; FAILED if the
          producer ended on a fatal error
    """

    IDLE = auto()
    """Constructed, not started."""

    READINESS_CHECK = auto()
    """Waiting for the start block to exist at the source."""

    BACKFILLING = auto()
    """Fetching the historical range by number."""

    CATCHING_UP = auto()
    """Following live notices, filling gaps between them."""

    DRAINING = auto()
    """Producer finished; drain is persisting what is left in the channel."""

    TERMINATED = auto()
    """Both tasks joined cleanly."""

    FAILED = auto()
    """Run ended on a fatal error."""

    def can_transition_to(self, target: PipelineState) -> bool:
        """
        Check if transition to target state is valid.

        Args:
            target: The proposed target state.

        Returns:
            True if the transition is allowed by the state machine rules.
        """
        return target in _VALID_TRANSITIONS.get(self, set())

    @property
    def is_producing(self) -> bool:
        """Whether the producer task is advancing the cursor."""
        return self in {PipelineState.BACKFILLING, PipelineState.CATCHING_UP}

    @property
    def is_final(self) -> bool:
        """Whether the run has ended."""
        return self in {PipelineState.TERMINATED, PipelineState.FAILED}


_VALID_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.IDLE: {PipelineState.READINESS_CHECK},
    PipelineState.READINESS_CHECK: {
        PipelineState.BACKFILLING,
        PipelineState.TERMINATED,
        PipelineState.FAILED,
    },
    PipelineState.BACKFILLING: {PipelineState.CATCHING_UP, PipelineState.DRAINING},
    PipelineState.CATCHING_UP: {PipelineState.DRAINING},
    PipelineState.DRAINING: {PipelineState.TERMINATED, PipelineState.FAILED},
}
"""Valid state transitions for the pipeline state machine."""
