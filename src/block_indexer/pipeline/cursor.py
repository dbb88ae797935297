"""Cursor over the last block handed to persistence."""

from __future__ import annotations

from dataclasses import dataclass, field

from block_indexer import metrics


@dataclass(slots=True)
class Cursor:
    """
    Single source of truth for the last block queued for persistence.

    Owned by the producer task for its whole lifetime and passed from the
    backfill stage to the reconciler by plain hand-over. Never shared with
    the drain, so no locking is needed.

    Invariant: `last_processed` never decreases.
    """

    last_processed: int
    """Number of the last block pushed onto the handoff channel."""

    advanced: int = field(default=0)
    """How many blocks this cursor has moved over."""

    @classmethod
    def before(cls, start: int) -> Cursor:
        """Create a cursor positioned just before `start`."""
        return cls(last_processed=start - 1)

    @property
    def next_number(self) -> int:
        """The block number that extends the sequence without a gap."""
        return self.last_processed + 1

    def advance_to(self, number: int) -> None:
        """
        Move the cursor to `number`.

        Raises:
            ValueError: If `number` is behind the cursor.
        """
        if number < self.last_processed:
            raise ValueError(
                f"cursor cannot move backwards from {self.last_processed} to {number}"
            )
        self.last_processed = number
        self.advanced += 1
        metrics.cursor_block.set(number)
