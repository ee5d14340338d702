"""
Orchestrator module using LangGraph for the question-answering pipeline.

This module implements the Narrative Orchestrator as a LangGraph StateGraph
that indexes the records, resolves the question into an Intent, runs the
aggregation and then either formats the answer from a fixed template or
delegates the narrative to the LLM provider.
"""

import logging
import time
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple, TypedDict

from langgraph.graph import StateGraph, END

from sales_insights.agents.aggregation_engine import AggregationEngine
from sales_insights.agents.intent_resolver import IntentResolver
from sales_insights.agents.recommendation_engine import RecommendationEngine
from sales_insights.core.models import (
    AggregationKind, AggregationResult, DatasetMetadata, Intent, NoDataResult,
    RankedResult, Response, ScalarResult, TransactionRecord
)
from sales_insights.data.metadata import build_metadata
from sales_insights.llm.context_builder import ContextBuilder
from sales_insights.llm.llm_provider import GenerationOutcome, LLMProvider
from sales_insights.llm.prompt_templates import PromptTemplates
from sales_insights.utils.formatters import format_result

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = (
    "I'm currently experiencing high demand. Please try again in a few minutes "
    "or simplify your question."
)
GENERATION_FAILED_MESSAGE = (
    "I'm having trouble analyzing the data right now. Please try again with a more "
    "specific question about products, locations, or time periods."
)


# ---------------------------------------------------------------------------
# LangGraph state definition
# ---------------------------------------------------------------------------

class PipelineState(TypedDict, total=False):
    """Shared state flowing through the LangGraph pipeline."""
    question: str
    records: Sequence[TransactionRecord]
    conversation: List[Dict[str, str]]
    metadata: DatasetMetadata
    intent: Intent
    result: AggregationResult
    system_prompt: str
    messages: List[Dict[str, str]]
    outcome: GenerationOutcome
    start_time: float
    response: Response


def normalize_conversation(conversation: Optional[Sequence[Any]]) -> List[Dict[str, str]]:
    """Accept Message objects or {"role", "content"} dicts; return dicts."""
    turns = []
    for turn in conversation or []:
        if isinstance(turn, dict):
            role, content = turn.get("role", ""), turn.get("content", "")
        else:
            role, content = getattr(turn, "role", ""), getattr(turn, "content", "")
        if role and content:
            turns.append({"role": str(role), "content": str(content)})
    return turns


class Orchestrator:
    """
    Orchestrator runs the question pipeline via a LangGraph StateGraph.

    The graph has the following nodes:
        index_metadata -> resolve_intent -> aggregate -> (route)
                                                          |- no data       -> no_data -> END
                                                          |- scalar/ranked -> format_answer -> END
                                                          |- otherwise     -> assemble_context -> generate_narrative -> END

    Empty record sets short-circuit from index_metadata to no_data. The
    deterministic and no-data paths never call the LLM provider.
    """

    def __init__(
        self,
        llm_provider: Optional[LLMProvider] = None,
        intent_resolver: Optional[IntentResolver] = None,
        aggregation_engine: Optional[AggregationEngine] = None,
        recommendation_engine: Optional[RecommendationEngine] = None,
        context_builder: Optional[ContextBuilder] = None,
        history_turns: int = 4,
        temperature: float = 0.7,
        max_tokens: Optional[int] = 500,
        advice_max_tokens: Optional[int] = 1000,
        log_size: int = 200
    ):
        """
        Initialize the Orchestrator.

        Args:
            llm_provider: Provider for narrative answers; without one the
                          delegated path answers with the fallback message
            intent_resolver: Question to Intent resolver
            aggregation_engine: Intent executor
            recommendation_engine: Trend recommendations for the context bundle
            context_builder: Context bundle builder
            history_turns: Trailing conversation turns sent to the provider
            temperature: Sampling temperature for generation
            max_tokens: Maximum tokens to generate
            advice_max_tokens: Maximum tokens for advice on a recommendation target
            log_size: Most recent communication log entries kept
        """
        self.llm_provider = llm_provider
        self.intent_resolver = intent_resolver or IntentResolver()
        self.aggregation_engine = aggregation_engine or AggregationEngine()
        self.recommendation_engine = recommendation_engine or RecommendationEngine()
        self.context_builder = context_builder or ContextBuilder()
        self.history_turns = history_turns
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.advice_max_tokens = advice_max_tokens

        # Communication log for debugging and monitoring
        self.communication_log: Deque[dict] = deque(maxlen=log_size)

        # Build the LangGraph workflow once
        self._graph = self._build_graph()

        logger.info(f"Orchestrator initialized with LangGraph, history_turns={history_turns}")

    # ------------------------------------------------------------------
    # LangGraph construction
    # ------------------------------------------------------------------

    def _build_graph(self):
        """Build and compile the LangGraph StateGraph."""

        graph = StateGraph(PipelineState)

        # Register nodes
        graph.add_node("index_metadata", self._node_index_metadata)
        graph.add_node("resolve_intent", self._node_resolve_intent)
        graph.add_node("aggregate", self._node_aggregate)
        graph.add_node("no_data", self._node_no_data)
        graph.add_node("format_answer", self._node_format_answer)
        graph.add_node("assemble_context", self._node_assemble_context)
        graph.add_node("generate_narrative", self._node_generate_narrative)

        # Edges
        graph.set_entry_point("index_metadata")
        graph.add_conditional_edges(
            "index_metadata",
            self._route_after_indexing,
            {
                "resolve_intent": "resolve_intent",
                "no_data": "no_data",
            },
        )
        graph.add_edge("resolve_intent", "aggregate")
        graph.add_conditional_edges(
            "aggregate",
            self._route_after_aggregation,
            {
                "no_data": "no_data",
                "format_answer": "format_answer",
                "assemble_context": "assemble_context",
            },
        )
        graph.add_edge("assemble_context", "generate_narrative")
        graph.add_edge("no_data", END)
        graph.add_edge("format_answer", END)
        graph.add_edge("generate_narrative", END)

        return graph.compile()

    # ------------------------------------------------------------------
    # Routing logic
    # ------------------------------------------------------------------

    @staticmethod
    def _route_after_indexing(state: PipelineState) -> str:
        if state["metadata"].is_empty:
            return "no_data"
        return "resolve_intent"

    @staticmethod
    def _route_after_aggregation(state: PipelineState) -> str:
        """Decide between the no-data, deterministic and delegated paths."""
        result = state.get("result")
        if isinstance(result, NoDataResult):
            return "no_data"
        if isinstance(result, (ScalarResult, RankedResult)):
            return "format_answer"
        return "assemble_context"

    # ------------------------------------------------------------------
    # Graph node implementations
    # ------------------------------------------------------------------

    def _node_index_metadata(self, state: PipelineState) -> dict:
        metadata = build_metadata(state["records"])
        return {"metadata": metadata}

    def _node_resolve_intent(self, state: PipelineState) -> dict:
        self._log_communication("Orchestrator", "IntentResolver", f"Resolve: {state['question']}")
        intent = self.intent_resolver.resolve(
            state["question"], state["metadata"], state.get("conversation")
        )
        self._log_communication(
            "IntentResolver", "Orchestrator",
            f"Intent: {intent.aggregation_kind.value} (matched_by={intent.matched_by})"
        )
        return {"intent": intent}

    def _node_aggregate(self, state: PipelineState) -> dict:
        intent = state["intent"]
        self._log_communication(
            "Orchestrator", "AggregationEngine", f"Execute: {intent.aggregation_kind.value}"
        )
        result = self.aggregation_engine.execute(intent, state["records"])
        self._log_communication(
            "AggregationEngine", "Orchestrator", f"Result: {type(result).__name__} - {result.title}"
        )
        return {"result": result}

    def _node_no_data(self, state: PipelineState) -> dict:
        result = state.get("result")
        if not isinstance(result, NoDataResult):
            result = NoDataResult(title="No records")
        return {"response": self._response(state, result.message, "no_data")}

    def _node_format_answer(self, state: PipelineState) -> dict:
        answer = format_result(state["result"])
        return {"response": self._response(state, answer, "deterministic")}

    def _node_assemble_context(self, state: PipelineState) -> dict:
        intent = state["intent"]
        recommendations = self.recommendation_engine.recommend(state["records"])
        context = self.context_builder.build(state["metadata"], state["result"], recommendations)
        system_prompt = PromptTemplates.format_system_prompt(
            context, advice=intent.aggregation_kind == AggregationKind.GENERAL_ADVICE
        )
        messages = PromptTemplates.format_messages(
            state["question"], state.get("conversation"), max_turns=self.history_turns
        )
        return {"system_prompt": system_prompt, "messages": messages}

    def _node_generate_narrative(self, state: PipelineState) -> dict:
        outcome, answer, path = self._generate(
            state["system_prompt"], state["messages"], self.max_tokens
        )
        response = self._response(state, answer, path)
        response.metadata["attempts"] = outcome.attempts
        return {"outcome": outcome, "response": response}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def answer(self, question: str, records: Sequence[TransactionRecord],
               conversation: Optional[Sequence[Any]] = None) -> Response:
        """
        Answer a question over the record set.

        Args:
            question: Natural language question from the user
            records: Full record set for this request
            conversation: Prior turns, oldest first (Message objects or dicts)

        Returns:
            Response object containing answer and metadata
        """
        logger.info(f"Processing question: {question}")

        initial_state: PipelineState = {
            "question": question,
            "records": records,
            "conversation": normalize_conversation(conversation),
            "start_time": time.time(),
        }

        # Run the LangGraph workflow
        final_state = self._graph.invoke(initial_state)
        return final_state["response"]

    def advise(self, target: str, records: Sequence[TransactionRecord],
               target_type: str = "product", status: str = "") -> Response:
        """
        Ask the model for advice on one recommendation target.

        Products are profiled with the product profile, store locations with
        the location profile and discount codes with the business overview.

        Args:
            target: Product name, store location or discount code
            records: Full record set for this request
            target_type: product, store or discount
            status: Impact text of the recommendation, quoted in the prompt

        Returns:
            Response object containing the advice and metadata
        """
        logger.info(f"Generating advice for {target_type} {target}")
        start_time = time.time()

        intent = Intent(
            aggregation_kind=AggregationKind.GENERAL_ADVICE,
            product_focus=target if target_type == "product" else None,
            location_focus=target if target_type == "store" else None,
            matched_by="advice",
        )
        state: PipelineState = {"intent": intent, "start_time": start_time}

        metadata = build_metadata(records)
        if metadata.is_empty:
            return self._response(state, NoDataResult(title="No records").message, "no_data")

        self._log_communication("Orchestrator", "AggregationEngine", f"Profile: {target}")
        result = self.aggregation_engine.execute(intent, records)
        if isinstance(result, NoDataResult):
            return self._response(state, result.message, "no_data")

        context = self.context_builder.build(metadata, result)
        system_prompt = PromptTemplates.format_target_advice_prompt(context, target, status)
        messages = [{
            "role": "user",
            "content": PromptTemplates.TARGET_ADVICE_REQUEST.format(target=target),
        }]

        outcome, answer, path = self._generate(system_prompt, messages, self.advice_max_tokens)
        response = self._response(state, answer, path)
        response.metadata["attempts"] = outcome.attempts
        return response

    # ------------------------------------------------------------------
    # Helper methods
    # ------------------------------------------------------------------

    def _generate(self, system_prompt: str, messages: List[Dict[str, str]],
                  max_tokens: Optional[int]) -> Tuple[GenerationOutcome, str, str]:
        """Run generation with retries; returns (outcome, answer, path)."""
        if self.llm_provider is None:
            logger.warning("No LLM provider configured, answering with fallback message")
            outcome = GenerationOutcome(succeeded=False, error="No LLM provider configured")
        else:
            self._log_communication("Orchestrator", "LLMProvider", "Generate narrative answer")
            outcome = self.llm_provider.generate_with_retry(
                system_prompt,
                messages,
                temperature=self.temperature,
                max_tokens=max_tokens,
            )

        if outcome.succeeded:
            return outcome, outcome.response.content, "delegated"

        logger.error(f"Narrative generation failed after {outcome.attempts} attempts: {outcome.error}")
        answer = RATE_LIMITED_MESSAGE if outcome.rate_limited else GENERATION_FAILED_MESSAGE
        return outcome, answer, "fallback"

    @staticmethod
    def _response(state: PipelineState, answer: str, path: str) -> Response:
        intent = state.get("intent")
        return Response(
            answer=answer,
            metadata={
                "path": path,
                "intent": intent.aggregation_kind.value if intent else None,
                "matched_by": intent.matched_by if intent else None,
                "confidence": intent.confidence if intent else None,
                "attempts": 0,
                "execution_time": time.time() - state["start_time"],
            },
        )

    def _log_communication(self, sender: str, receiver: str, message: str) -> None:
        """
        Log inter-component communication.
        """
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "sender": sender,
            "receiver": receiver,
            "message": message,
        }
        self.communication_log.append(log_entry)
        logger.info(f"[{sender} -> {receiver}] {message}")

    def get_communication_log(self) -> List[dict]:
        """
        Get inter-component communication log.
        """
        return list(self.communication_log)

    def clear_communication_log(self) -> None:
        """Clear the communication log."""
        self.communication_log.clear()
        logger.info("Communication log cleared")
