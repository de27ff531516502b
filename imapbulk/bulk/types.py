"""Types for the bulk operation pipeline."""

from dataclasses import dataclass, field
from enum import Enum

#: A non-empty, order-preserving slice of a UID list, bounded by the chunk size.
Chunk = list[int]


class OperationKind(str, Enum):
    """The mutation programs the executor can run over a UID list.

    MOVE is COPY + flag \\Deleted + expunge; DELETE is flag \\Deleted +
    expunge with no copy; MARK/UNMARK add or remove a named flag.
    """

    COPY = "copy"
    MOVE = "move"
    DELETE = "delete"
    MARK = "mark"
    UNMARK = "unmark"

    @property
    def needs_destination(self) -> bool:
        return self in (OperationKind.COPY, OperationKind.MOVE)

    @property
    def needs_flag(self) -> bool:
        return self in (OperationKind.MARK, OperationKind.UNMARK)

    @property
    def read_only(self) -> bool:
        """Whether the source can be opened with EXAMINE instead of SELECT."""
        return self is OperationKind.COPY


@dataclass(frozen=True)
class OperationReport:
    """Outcome and timing of one bulk call.

    ``failed_chunks`` lists the chunks whose program stopped early; the call
    itself still succeeded.  Derived rates are 0.0 rather than undefined when
    no UIDs were processed or no time elapsed.
    """

    operation: str
    total: int
    chunks_attempted: int
    elapsed_seconds: float
    failed_chunks: list[Chunk] = field(default_factory=list)

    @property
    def messages_per_second(self) -> float:
        if self.total == 0 or self.elapsed_seconds <= 0:
            return 0.0
        return self.total / self.elapsed_seconds

    @property
    def ms_per_message(self) -> float:
        if self.total == 0:
            return 0.0
        return self.elapsed_seconds * 1000 / self.total

    def summary(self) -> str:
        """One-line human summary, e.g. for logs or CLI output."""
        return (
            f"Finished {self.operation} of {self.total} message(s) in "
            f"{self.elapsed_seconds:.2f}s ({self.ms_per_message:.1f}ms per message; "
            f"{self.messages_per_second:.1f} messages per second)"
        )
