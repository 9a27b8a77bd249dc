"""Session phase lattice and the transition validity table."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class PhaseKind(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    WAITING_FOR_APPROVAL = "waitingForApproval"
    WAITING_FOR_INPUT = "waitingForInput"
    COMPACTING = "compacting"
    ENDED = "ended"


@dataclass(frozen=True)
class PermissionContext:
    """The approval request currently shown as active for a session."""
    tool_use_id: str
    tool_name: str
    tool_input: Optional[dict[str, Any]] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def formatted_input(self) -> Optional[str]:
        if not self.tool_input:
            return None
        lines = []
        for key, value in self.tool_input.items():
            if isinstance(value, str):
                lines.append(f"{key}: {value}")
            elif isinstance(value, bool):
                lines.append(f"{key}: {'true' if value else 'false'}")
            elif isinstance(value, (int, float)):
                lines.append(f"{key}: {value}")
        return "\n".join(lines) if lines else None


# Allowed targets per source phase. Same-kind moves are handled separately.
_TRANSITIONS: dict[PhaseKind, frozenset[PhaseKind]] = {
    PhaseKind.IDLE: frozenset({
        PhaseKind.PROCESSING,
        PhaseKind.WAITING_FOR_APPROVAL,
        PhaseKind.WAITING_FOR_INPUT,
        PhaseKind.COMPACTING,
        PhaseKind.ENDED,
    }),
    PhaseKind.PROCESSING: frozenset({
        PhaseKind.IDLE,
        PhaseKind.WAITING_FOR_APPROVAL,
        PhaseKind.WAITING_FOR_INPUT,
        PhaseKind.COMPACTING,
        PhaseKind.ENDED,
    }),
    PhaseKind.WAITING_FOR_APPROVAL: frozenset({
        PhaseKind.IDLE,
        PhaseKind.PROCESSING,
        PhaseKind.WAITING_FOR_INPUT,
        PhaseKind.ENDED,
    }),
    PhaseKind.WAITING_FOR_INPUT: frozenset({
        PhaseKind.IDLE,
        PhaseKind.PROCESSING,
        PhaseKind.WAITING_FOR_APPROVAL,
        PhaseKind.COMPACTING,
        PhaseKind.ENDED,
    }),
    PhaseKind.COMPACTING: frozenset({
        PhaseKind.IDLE,
        PhaseKind.PROCESSING,
        PhaseKind.WAITING_FOR_INPUT,
        PhaseKind.ENDED,
    }),
    PhaseKind.ENDED: frozenset(),
}


@dataclass(frozen=True)
class Phase:
    kind: PhaseKind
    permission: Optional[PermissionContext] = None

    @classmethod
    def idle(cls) -> "Phase":
        return cls(PhaseKind.IDLE)

    @classmethod
    def processing(cls) -> "Phase":
        return cls(PhaseKind.PROCESSING)

    @classmethod
    def waiting_for_approval(cls, context: PermissionContext) -> "Phase":
        return cls(PhaseKind.WAITING_FOR_APPROVAL, context)

    @classmethod
    def waiting_for_input(cls) -> "Phase":
        return cls(PhaseKind.WAITING_FOR_INPUT)

    @classmethod
    def compacting(cls) -> "Phase":
        return cls(PhaseKind.COMPACTING)

    @classmethod
    def ended(cls) -> "Phase":
        return cls(PhaseKind.ENDED)

    @property
    def needs_attention(self) -> bool:
        return self.kind in (PhaseKind.WAITING_FOR_APPROVAL, PhaseKind.WAITING_FOR_INPUT)

    def can_transition_to(self, other: "Phase") -> bool:
        """Check the transition table.

        Same-kind moves are legal (a waitingForApproval move with another
        context advances to the next queued approval); nothing leaves ended.
        """
        if self.kind == PhaseKind.ENDED:
            return False
        if self.kind == other.kind:
            return True
        return other.kind in _TRANSITIONS[self.kind]

    def __str__(self) -> str:
        if self.permission is not None:
            return f"{self.kind.value}({self.permission.tool_name}:{self.permission.tool_use_id[:12]})"
        return self.kind.value
