"""
Unit tests for the LangGraph orchestrator.
"""

from datetime import datetime
from unittest.mock import Mock

import pytest

from sales_insights.core.models import Message, NO_DATA_MESSAGE
from sales_insights.core.orchestrator import (
    GENERATION_FAILED_MESSAGE,
    Orchestrator,
    RATE_LIMITED_MESSAGE,
    normalize_conversation,
)
from sales_insights.llm.llm_provider import GenerationOutcome, LLMProvider, LLMResponse


@pytest.fixture
def records(make_record):
    return [
        make_record("Latte", "Downtown", datetime(2024, 12, 2, 9, 0), 30.0, "T1"),
        make_record("Latte", "Airport", datetime(2024, 12, 15, 14, 0), 40.0, "T2"),
        make_record("Latte", "Downtown", datetime(2024, 11, 20, 9, 0), 100.0, "T3"),
        make_record("Mocha", "Downtown", datetime(2024, 12, 3, 9, 0), 50.0, "T4"),
    ]


@pytest.fixture
def mock_llm_provider():
    provider = Mock(spec=LLMProvider)
    provider.generate_with_retry.return_value = GenerationOutcome(
        succeeded=True,
        response=LLMResponse(content="Latte sales fell from November to December."),
        attempts=1,
    )
    return provider


@pytest.fixture
def orchestrator(mock_llm_provider):
    return Orchestrator(llm_provider=mock_llm_provider)


class TestDeterministicPath:
    """Questions answered from fixed templates."""

    def test_scalar_answer_without_provider_call(self, orchestrator, mock_llm_provider, records):
        response = orchestrator.answer("What were the sales for Latte in December 2024?", records)

        assert response.answer == "Sales for Latte in December 2024 were $70.00."
        assert response.metadata["path"] == "deterministic"
        assert response.metadata["intent"] == "product_month_total"
        assert response.metadata["matched_by"] == "product_month"
        mock_llm_provider.generate_with_retry.assert_not_called()

    def test_ranked_answer(self, orchestrator, records):
        response = orchestrator.answer("What are the top 2 products in December 2024?", records)

        assert response.answer.startswith("Top 2 performing products in December 2024:")
        assert "1. Latte: $70.00" in response.answer
        assert "2. Mocha: $50.00" in response.answer

    def test_no_data_message(self, orchestrator, mock_llm_provider, records):
        response = orchestrator.answer("What were the sales for Latte in January 2025?", records)

        assert response.answer == NO_DATA_MESSAGE
        assert response.metadata["path"] == "no_data"
        mock_llm_provider.generate_with_retry.assert_not_called()

    def test_empty_record_set(self, orchestrator, mock_llm_provider):
        response = orchestrator.answer("How can I improve sales?", [])

        assert response.answer == NO_DATA_MESSAGE
        assert response.metadata["intent"] is None
        mock_llm_provider.generate_with_retry.assert_not_called()


class TestDelegatedPath:
    """Questions answered by narrative generation."""

    def test_breakdown_goes_to_provider(self, orchestrator, mock_llm_provider, records):
        response = orchestrator.answer(
            "Compare Latte sales in November 2024 and December 2024", records
        )

        assert response.answer == "Latte sales fell from November to December."
        assert response.metadata["path"] == "delegated"
        assert response.metadata["attempts"] == 1

        system_prompt, messages = mock_llm_provider.generate_with_retry.call_args.args
        assert "SALES DATA:" in system_prompt
        assert "ANALYSIS: Latte sales for November 2024 and December 2024" in system_prompt
        assert messages[-1] == {
            "role": "user", "content": "Compare Latte sales in November 2024 and December 2024"
        }

    def test_advice_uses_advice_prompt(self, orchestrator, mock_llm_provider, records):
        orchestrator.answer("How can I improve sales?", records)

        system_prompt = mock_llm_provider.generate_with_retry.call_args.args[0]
        assert "business advice" in system_prompt
        assert "Business overview" in system_prompt

    def test_history_is_trimmed(self, mock_llm_provider, records):
        orchestrator = Orchestrator(llm_provider=mock_llm_provider, history_turns=2)
        conversation = [
            Message(role="user", content="First question"),
            Message(role="assistant", content="First answer"),
            Message(role="user", content="Second question"),
            Message(role="assistant", content="Second answer"),
        ]

        orchestrator.answer("How can I improve sales?", records, conversation)

        messages = mock_llm_provider.generate_with_retry.call_args.args[1]
        assert [m["content"] for m in messages] == [
            "Second question", "Second answer", "How can I improve sales?"
        ]

    def test_rate_limited_fallback(self, orchestrator, mock_llm_provider, records):
        mock_llm_provider.generate_with_retry.return_value = GenerationOutcome(
            succeeded=False, attempts=3, error="429", rate_limited=True
        )

        response = orchestrator.answer("How can I improve sales?", records)

        assert response.answer == RATE_LIMITED_MESSAGE
        assert response.metadata["path"] == "fallback"
        assert response.metadata["attempts"] == 3

    def test_generic_fallback(self, orchestrator, mock_llm_provider, records):
        mock_llm_provider.generate_with_retry.return_value = GenerationOutcome(
            succeeded=False, attempts=1, error="bad request"
        )

        response = orchestrator.answer("How can I improve sales?", records)

        assert response.answer == GENERATION_FAILED_MESSAGE

    def test_no_provider_configured(self, records):
        orchestrator = Orchestrator()

        response = orchestrator.answer("How can I improve sales?", records)

        assert response.answer == GENERATION_FAILED_MESSAGE
        assert response.metadata["path"] == "fallback"


class TestAdvise:
    """Advice on a single recommendation target."""

    def test_product_advice(self, orchestrator, mock_llm_provider, records):
        response = orchestrator.advise(
            "Latte", records, target_type="product", status="Revenue declining 30.0%"
        )

        assert response.answer == "Latte sales fell from November to December."
        assert response.metadata["path"] == "delegated"
        assert response.metadata["matched_by"] == "advice"

        call = mock_llm_provider.generate_with_retry.call_args
        system_prompt, messages = call.args
        assert "Target: Latte" in system_prompt
        assert "Current Status: Revenue declining 30.0%" in system_prompt
        assert "ANALYSIS: Performance profile for Latte" in system_prompt
        assert "1. Promotion Strategy" in system_prompt
        assert messages == [{
            "role": "user",
            "content": "Please provide detailed recommendations for Latte based on the analysis.",
        }]
        assert call.kwargs["max_tokens"] == 1000

    def test_store_advice_uses_location_profile(self, orchestrator, mock_llm_provider, records):
        orchestrator.advise("Downtown", records, target_type="store")

        system_prompt = mock_llm_provider.generate_with_retry.call_args.args[0]
        assert "ANALYSIS: Performance profile for the Downtown location" in system_prompt
        assert "Current Status: No trend recorded" in system_prompt

    def test_discount_advice_uses_overview(self, orchestrator, mock_llm_provider, records):
        orchestrator.advise("SAVE10", records, target_type="discount")

        system_prompt = mock_llm_provider.generate_with_retry.call_args.args[0]
        assert "ANALYSIS: Business overview" in system_prompt

    def test_unknown_target_is_no_data(self, orchestrator, mock_llm_provider, records):
        response = orchestrator.advise("Espresso", records)

        assert response.answer == NO_DATA_MESSAGE
        assert response.metadata["path"] == "no_data"
        mock_llm_provider.generate_with_retry.assert_not_called()

    def test_empty_record_set(self, orchestrator, mock_llm_provider):
        response = orchestrator.advise("Latte", [])

        assert response.answer == NO_DATA_MESSAGE
        mock_llm_provider.generate_with_retry.assert_not_called()

    def test_rate_limited_fallback(self, orchestrator, mock_llm_provider, records):
        mock_llm_provider.generate_with_retry.return_value = GenerationOutcome(
            succeeded=False, attempts=3, error="429", rate_limited=True
        )

        response = orchestrator.advise("Latte", records)

        assert response.answer == RATE_LIMITED_MESSAGE
        assert response.metadata["path"] == "fallback"
        assert response.metadata["attempts"] == 3


class TestCommunicationLogging:
    """Test inter-component communication logging."""

    def test_log_contains_component_interactions(self, orchestrator, records):
        orchestrator.answer("What were the sales for Latte in December 2024?", records)

        log = orchestrator.get_communication_log()
        senders = {entry["sender"] for entry in log}
        assert {"Orchestrator", "IntentResolver", "AggregationEngine"} <= senders
        assert all({"timestamp", "sender", "receiver", "message"} <= set(e) for e in log)

    def test_log_stays_bounded_across_requests(self, mock_llm_provider, records):
        orchestrator = Orchestrator(llm_provider=mock_llm_provider, log_size=10)

        for _ in range(100):
            orchestrator.answer("What were the sales for Latte in December 2024?", records)

        log = orchestrator.get_communication_log()
        assert len(log) == 10
        assert log[-1]["sender"] == "AggregationEngine"

    def test_clear_communication_log(self, orchestrator, records):
        orchestrator.answer("What were the sales for Latte in December 2024?", records)

        orchestrator.clear_communication_log()

        assert orchestrator.get_communication_log() == []


class TestNormalizeConversation:
    """Test conversation normalization."""

    def test_accepts_messages_and_dicts(self):
        turns = normalize_conversation([
            Message(role="user", content="Hi"),
            {"role": "assistant", "content": "Hello"},
            {"role": "user", "content": ""},
        ])

        assert turns == [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
        ]

    def test_none(self):
        assert normalize_conversation(None) == []
