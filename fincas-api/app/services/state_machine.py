from enum import Enum


class ConversationStatus(str, Enum):
    AUTOMATED = "automated"
    HUMAN = "human"
    RESOLVED = "resolved"


ACTIVE_STATUSES = {ConversationStatus.AUTOMATED, ConversationStatus.HUMAN}

# Same-status entries make operator actions idempotent.
# RESOLVED -> AUTOMATED is reserved for reactivation on inbound contact.
VALID_TRANSITIONS = {
    ConversationStatus.AUTOMATED: [ConversationStatus.AUTOMATED, ConversationStatus.HUMAN, ConversationStatus.RESOLVED],
    ConversationStatus.HUMAN: [ConversationStatus.HUMAN, ConversationStatus.AUTOMATED, ConversationStatus.RESOLVED],
    ConversationStatus.RESOLVED: [ConversationStatus.RESOLVED, ConversationStatus.AUTOMATED],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_status: ConversationStatus, to_status: ConversationStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition: {from_status.value} -> {to_status.value}")


def is_active(status: ConversationStatus) -> bool:
    return status in ACTIVE_STATUSES


def can_transition(from_status: ConversationStatus, to_status: ConversationStatus) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_status, [])
    return to_status in allowed


def transition(from_status: ConversationStatus, to_status: ConversationStatus) -> ConversationStatus:
    """Perform status transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status)
    return to_status


def escalate(current: ConversationStatus) -> ConversationStatus:
    """A human takes the conversation; the agent stops replying."""
    return transition(current, ConversationStatus.HUMAN)


def release(current: ConversationStatus) -> ConversationStatus:
    """Hand the conversation back to the automated agent."""
    if current == ConversationStatus.RESOLVED:
        raise InvalidTransitionError(current, ConversationStatus.AUTOMATED)
    return transition(current, ConversationStatus.AUTOMATED)


def resolve(current: ConversationStatus) -> ConversationStatus:
    """Close the conversation."""
    return transition(current, ConversationStatus.RESOLVED)


def reactivate(current: ConversationStatus) -> ConversationStatus:
    """Reopen a resolved conversation on fresh inbound contact."""
    if current != ConversationStatus.RESOLVED:
        raise InvalidTransitionError(current, ConversationStatus.AUTOMATED)
    return transition(current, ConversationStatus.AUTOMATED)
