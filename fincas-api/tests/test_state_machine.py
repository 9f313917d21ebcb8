import pytest

from app.services.state_machine import (
    ConversationStatus,
    InvalidTransitionError,
    can_transition,
    escalate,
    is_active,
    reactivate,
    release,
    resolve,
    transition,
)


class TestValidTransitions:
    def test_automated_to_human(self):
        assert transition(ConversationStatus.AUTOMATED, ConversationStatus.HUMAN) == ConversationStatus.HUMAN

    def test_human_to_automated(self):
        assert transition(ConversationStatus.HUMAN, ConversationStatus.AUTOMATED) == ConversationStatus.AUTOMATED

    def test_any_to_resolved(self):
        for status in ConversationStatus:
            assert transition(status, ConversationStatus.RESOLVED) == ConversationStatus.RESOLVED

    def test_same_status_is_allowed(self):
        for status in ConversationStatus:
            assert can_transition(status, status)


class TestInvalidTransitions:
    def test_resolved_to_human(self):
        with pytest.raises(InvalidTransitionError):
            transition(ConversationStatus.RESOLVED, ConversationStatus.HUMAN)

    def test_error_carries_statuses(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            escalate(ConversationStatus.RESOLVED)
        assert exc_info.value.from_status == ConversationStatus.RESOLVED
        assert exc_info.value.to_status == ConversationStatus.HUMAN
        assert "resolved -> human" in str(exc_info.value)


class TestHelperFunctions:
    def test_escalate_from_automated(self):
        assert escalate(ConversationStatus.AUTOMATED) == ConversationStatus.HUMAN

    def test_escalate_is_noop_when_already_human(self):
        assert escalate(ConversationStatus.HUMAN) == ConversationStatus.HUMAN

    def test_release_from_human(self):
        assert release(ConversationStatus.HUMAN) == ConversationStatus.AUTOMATED

    def test_release_from_resolved_fails(self):
        with pytest.raises(InvalidTransitionError):
            release(ConversationStatus.RESOLVED)

    def test_resolve(self):
        assert resolve(ConversationStatus.HUMAN) == ConversationStatus.RESOLVED

    def test_reactivate_only_from_resolved(self):
        assert reactivate(ConversationStatus.RESOLVED) == ConversationStatus.AUTOMATED
        with pytest.raises(InvalidTransitionError):
            reactivate(ConversationStatus.HUMAN)

    def test_is_active(self):
        assert is_active(ConversationStatus.AUTOMATED)
        assert is_active(ConversationStatus.HUMAN)
        assert not is_active(ConversationStatus.RESOLVED)
