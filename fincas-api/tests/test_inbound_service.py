from unittest.mock import Mock, patch
from uuid import uuid4

import pytest

from app.services.catalog_service import SingleListingOutcome
from app.services.consultant_prompt import get_welcome_message
from app.services.inbound_service import handle_inbound_event
from app.services.intent_service import MoreOptionsIntent, NoIntent, SearchIntent, SingleListingIntent
from app.services.result import Result

PHONE = "+573001112233"


@pytest.fixture
def pipeline(make_conversation):
    """Patch every collaborator of the inbound pipeline; tests tune the mocks they care about."""
    conversation = make_conversation()
    targets = {
        "record_if_new": False,
        "get_or_create_contact": Mock(id=uuid4(), phone=PHONE),
        "get_or_create_conversation": (conversation, False),
        "save_message": None,
        "touch_last_message_at": None,
        "classify_catalog_intent": NoIntent(),
        "maybe_send_single_listing": SingleListingOutcome(sent=False),
        "maybe_send_catalog": Result.success([]),
        "generate_reply": Result.success("¡Hola! ¿Para qué fechas buscas?"),
        "send_whatsapp_message": {},
    }
    patchers = {name: patch(f"app.services.inbound_service.{name}") for name in targets}
    mocks = {name: p.start() for name, p in patchers.items()}
    for name, value in targets.items():
        mocks[name].return_value = value
    mocks["conversation"] = conversation
    yield mocks
    for p in patchers.values():
        p.stop()


class TestDuplicates:
    def test_duplicate_event_does_nothing(self, pipeline):
        pipeline["record_if_new"].return_value = True
        db = Mock()

        outcome = handle_inbound_event(db, "evt-1", PHONE, "Ana", "hola")

        assert outcome.status == "duplicate"
        pipeline["get_or_create_contact"].assert_not_called()
        pipeline["save_message"].assert_not_called()
        pipeline["send_whatsapp_message"].assert_not_called()


class TestNewConversation:
    def test_first_message_gets_only_the_welcome(self, pipeline):
        conversation = pipeline["conversation"]
        pipeline["get_or_create_conversation"].return_value = (conversation, True)
        db = Mock()

        outcome = handle_inbound_event(db, "evt-1", PHONE, "Ana", "Hola, busco finca en Melgar", wamid="wamid.1")

        assert outcome.status == "welcomed"
        pipeline["save_message"].assert_called_once_with(db, conversation.id, "user", "Hola, busco finca en Melgar")
        pipeline["send_whatsapp_message"].assert_called_once_with(PHONE, get_welcome_message(), wamid="wamid.1")
        pipeline["classify_catalog_intent"].assert_not_called()
        pipeline["maybe_send_catalog"].assert_not_called()
        pipeline["generate_reply"].assert_not_called()
        pipeline["touch_last_message_at"].assert_called_once_with(db, conversation.id)


class TestNotAutomated:
    @pytest.mark.parametrize("status", ["human", "resolved"])
    def test_stores_message_without_reply(self, pipeline, status):
        pipeline["conversation"].status = status
        db = Mock()

        outcome = handle_inbound_event(db, "evt-1", PHONE, None, "¿sigue disponible?")

        assert outcome.status == "not_automated"
        pipeline["save_message"].assert_called_once()
        pipeline["classify_catalog_intent"].assert_not_called()
        pipeline["send_whatsapp_message"].assert_not_called()
        pipeline["touch_last_message_at"].assert_called_once()
        db.refresh.assert_called_once_with(pipeline["conversation"])


class TestAutomatedTurn:
    def test_search_intent_sends_catalog_then_reply(self, pipeline, wednesday_morning):
        intent = SearchIntent(location="melgar", has_weekend=True, min_capacity=12, sort_by_price=True)
        pipeline["classify_catalog_intent"].return_value = intent
        pipeline["maybe_send_catalog"].return_value = Result.success(["p1", "p2", "p3"])
        conversation = pipeline["conversation"]
        db = Mock()
        text = "Estoy buscando en Melgar una finca para 12 personas este fin de semana con buen precio"

        outcome = handle_inbound_event(db, "evt-1", PHONE, "Ana", text, wamid="wamid.1", now=wednesday_morning)

        assert outcome.status == "replied"
        assert outcome.catalog_sent is True
        assert outcome.single_listing_sent is False
        pipeline["maybe_send_single_listing"].assert_not_called()
        pipeline["maybe_send_catalog"].assert_called_once_with(
            db, conversation.id, PHONE, text, wamid="wamid.1", intent=intent, now=wednesday_morning
        )
        pipeline["send_whatsapp_message"].assert_called_once_with(
            PHONE, "¡Hola! ¿Para qué fechas buscas?", wamid="wamid.1"
        )
        reply_kwargs = pipeline["generate_reply"].call_args[1]
        assert reply_kwargs["catalog_sent"] is False
        assert reply_kwargs["search_override"] is None

    def test_classifier_failure_falls_back_to_regex_path(self, pipeline, wednesday_morning):
        # classifier timed out: NoIntent, catalog dispatch decides from the raw text
        pipeline["maybe_send_catalog"].return_value = Result.success(["p1"])
        db = Mock()

        outcome = handle_inbound_event(db, "evt-1", PHONE, "Ana", "finca en melgar este fin de semana")

        assert outcome.catalog_sent is True
        pipeline["maybe_send_single_listing"].assert_called_once()
        assert pipeline["maybe_send_catalog"].call_args[1]["intent"] is None

    def test_more_options_without_memory_still_replies(self, pipeline):
        pipeline["classify_catalog_intent"].return_value = MoreOptionsIntent()

        outcome = handle_inbound_event(Mock(), "evt-1", PHONE, "Ana", "otras opciones")

        assert outcome.status == "replied"
        assert outcome.catalog_sent is False
        pipeline["maybe_send_single_listing"].assert_not_called()
        pipeline["send_whatsapp_message"].assert_called_once()

    def test_single_listing_named_by_classifier(self, pipeline):
        pipeline["classify_catalog_intent"].return_value = SingleListingIntent(name="villa green")
        pipeline["maybe_send_single_listing"].return_value = SingleListingOutcome(sent=True, title="Villa Green")
        db = Mock()

        outcome = handle_inbound_event(db, "evt-1", PHONE, "Ana", "quiero ver villa green", wamid="wamid.7")

        assert outcome.single_listing_sent is True
        pipeline["maybe_send_single_listing"].assert_called_once_with(
            db, PHONE, "quiero ver villa green", wamid="wamid.7", listing_name="villa green"
        )
        pipeline["maybe_send_catalog"].assert_not_called()
        reply_kwargs = pipeline["generate_reply"].call_args[1]
        assert reply_kwargs["catalog_sent"] is True
        assert reply_kwargs["listing_title"] == "Villa Green"
        assert reply_kwargs["search_override"] == "villa green"

    def test_regex_single_listing_steers_retrieval_to_title(self, pipeline):
        pipeline["maybe_send_single_listing"].return_value = SingleListingOutcome(sent=True, title="Villa Green")

        handle_inbound_event(Mock(), "evt-1", PHONE, "Ana", "quiero ver villa green")

        assert pipeline["generate_reply"].call_args[1]["search_override"] == "Villa Green"

    def test_catalog_exception_is_isolated(self, pipeline):
        pipeline["classify_catalog_intent"].return_value = SearchIntent(location="melgar")
        pipeline["maybe_send_catalog"].side_effect = Exception("db gone")
        db = Mock()

        outcome = handle_inbound_event(db, "evt-1", PHONE, "Ana", "finca en melgar")

        assert outcome.status == "replied"
        assert outcome.catalog_sent is False
        db.rollback.assert_called_once()

    def test_single_listing_exception_is_isolated(self, pipeline):
        pipeline["maybe_send_single_listing"].side_effect = Exception("YCloud API error: 500")

        outcome = handle_inbound_event(Mock(), "evt-1", PHONE, "Ana", "quiero ver villa green")

        assert outcome.status == "replied"
        assert outcome.single_listing_sent is False

    def test_no_reply_when_generation_fails(self, pipeline):
        pipeline["generate_reply"].return_value = Result.failure("timeout", code="llm_error")
        db = Mock()

        outcome = handle_inbound_event(db, "evt-1", PHONE, "Ana", "hola de nuevo")

        assert outcome.status == "no_reply"
        pipeline["send_whatsapp_message"].assert_not_called()
        pipeline["touch_last_message_at"].assert_called_once()

    def test_reply_send_failure_is_logged_not_raised(self, pipeline):
        pipeline["send_whatsapp_message"].side_effect = Exception("YCloud API error: 503")

        outcome = handle_inbound_event(Mock(), "evt-1", PHONE, "Ana", "hola de nuevo")

        assert outcome.status == "replied"
        pipeline["touch_last_message_at"].assert_called_once()
