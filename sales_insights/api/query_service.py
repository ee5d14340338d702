"""
Query, recommendations, advice and forecast endpoint contracts.

QueryService takes a raw request payload and a client address and returns a
status code with a JSON-ready body: {"answer": ...} on success or
{"error": ...} on failure. It owns rate limiting, request validation, the
response cache and the mapping of failures onto status codes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import ValidationError

from sales_insights.agents.aggregation_engine import AggregationEngine
from sales_insights.agents.recommendation_engine import RecommendationEngine
from sales_insights.api.schemas import AdviceRequest, ForecastRequest, QueryRequest
from sales_insights.core.error_handler import ErrorHandler, ErrorType
from sales_insights.core.exceptions import SalesInsightsError
from sales_insights.core.models import NoDataResult
from sales_insights.core.orchestrator import Orchestrator
from sales_insights.data.cache import InMemoryStore, RateLimiter, ResponseCache
from sales_insights.data.sources import RecordSource
from sales_insights.utils.formatters import format_result

logger = logging.getLogger(__name__)


@dataclass
class ServiceResponse:
    """Status code and JSON-ready body."""
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


class QueryService:
    """
    Service behind the query, recommendations, advice and forecast endpoints.

    Records are fetched from the record source on every cache miss, so answers
    always reflect the current data.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        record_source: RecordSource,
        cache: Optional[ResponseCache] = None,
        rate_limiter: Optional[RateLimiter] = None,
        recommendation_engine: Optional[RecommendationEngine] = None,
        aggregation_engine: Optional[AggregationEngine] = None,
        error_handler: Optional[ErrorHandler] = None
    ):
        """
        Initialize QueryService.

        Args:
            orchestrator: Question pipeline
            record_source: Source of the transaction records
            cache: Response cache (in-memory, one hour TTL when None)
            rate_limiter: Per-client limiter (in-memory, 10 per hour when None)
            recommendation_engine: Engine for the recommendations endpoint
            aggregation_engine: Engine for the forecast endpoint
            error_handler: Error formatter and log
        """
        store = InMemoryStore()
        self.orchestrator = orchestrator
        self.record_source = record_source
        self.cache = cache or ResponseCache(store)
        self.rate_limiter = rate_limiter or RateLimiter(store)
        self.recommendation_engine = recommendation_engine or RecommendationEngine()
        self.aggregation_engine = aggregation_engine or AggregationEngine()
        self.error_handler = error_handler or ErrorHandler()
        logger.info("QueryService initialized")

    def handle(self, payload: Any, client_address: Optional[str] = None) -> ServiceResponse:
        """
        Handle one query request.

        Args:
            payload: Decoded request body, expected {"question", "conversation"?}
            client_address: Caller identity used for rate limiting

        Returns:
            200 {"answer"}; 400, 429, 500 or 502 {"error"}
        """
        if not self.rate_limiter.allow(client_address):
            return ServiceResponse(
                status_code=429,
                body={"error": self.error_handler.format_rate_limited_error()},
            )

        try:
            request = QueryRequest.model_validate(payload)
        except ValidationError as e:
            return self._error_response(e, ErrorType.INVALID_REQUEST)

        conversation = request.conversation_dicts()
        cached = self.cache.get(request.question, conversation)
        if cached is not None:
            return ServiceResponse(status_code=200, body={"answer": cached})

        try:
            records = self.record_source.fetch_records()
            self.error_handler.create_data_quality_warning(self.record_source.last_warnings)
            response = self.orchestrator.answer(request.question, records, conversation)
        except SalesInsightsError as e:
            return self._error_response(e, user_query=request.question)
        except Exception as e:
            logger.exception("Unexpected failure while answering question")
            return self._error_response(e, ErrorType.UNKNOWN_ERROR, request.question)

        # Fallback answers are not cached so the next attempt can reach the provider
        if response.metadata.get("path") != "fallback":
            self.cache.set(request.question, conversation, response.answer)

        logger.info(
            f"Answered question via {response.metadata.get('path')} path "
            f"in {response.metadata.get('execution_time', 0):.2f}s"
        )
        return ServiceResponse(status_code=200, body={"answer": response.answer})

    def recommendations(self) -> ServiceResponse:
        """
        List the current trend-based recommendations.

        Returns:
            200 {"recommendations": [...]}; 500 or 502 {"error"}
        """
        try:
            records = self.record_source.fetch_records()
            recommendations = self.recommendation_engine.recommend(records)
        except SalesInsightsError as e:
            return self._error_response(e)

        return ServiceResponse(
            status_code=200,
            body={"recommendations": [rec.to_dict() for rec in recommendations]},
        )

    def advice(self, payload: Any, client_address: Optional[str] = None) -> ServiceResponse:
        """
        Handle one advice request for a recommendation target.

        Args:
            payload: Decoded request body, expected {"recommendation": {"type", "target", "impact"?}}
            client_address: Caller identity used for rate limiting

        Returns:
            200 {"answer"}; 400, 429, 500 or 502 {"error"}
        """
        if not self.rate_limiter.allow(client_address):
            return ServiceResponse(
                status_code=429,
                body={"error": self.error_handler.format_rate_limited_error()},
            )

        try:
            request = AdviceRequest.model_validate(payload)
        except ValidationError as e:
            return self._error_response(e, ErrorType.INVALID_REQUEST)

        target = request.recommendation
        try:
            records = self.record_source.fetch_records()
            response = self.orchestrator.advise(
                target.target, records, target_type=target.type, status=target.impact
            )
        except SalesInsightsError as e:
            return self._error_response(e, user_query=f"advice: {target.target}")
        except Exception as e:
            logger.exception("Unexpected failure while generating advice")
            return self._error_response(e, ErrorType.UNKNOWN_ERROR, f"advice: {target.target}")

        logger.info(f"Advice for {target.type} {target.target} via {response.metadata.get('path')} path")
        return ServiceResponse(status_code=200, body={"answer": response.answer})

    def forecast(self, payload: Any) -> ServiceResponse:
        """
        Project a month's revenue and top products.

        Args:
            payload: Decoded request body, expected {"month", "year"}

        Returns:
            200 {"forecast"}; 400, 500 or 502 {"error"}
        """
        try:
            request = ForecastRequest.model_validate(payload)
        except ValidationError as e:
            return self._error_response(e, ErrorType.INVALID_REQUEST)

        try:
            records = self.record_source.fetch_records()
            result = self.aggregation_engine.forecast_month(request.month_ref(), records)
        except SalesInsightsError as e:
            return self._error_response(e)

        if isinstance(result, NoDataResult):
            return ServiceResponse(status_code=200, body={"forecast": result.message})
        return ServiceResponse(status_code=200, body={"forecast": format_result(result)})

    def _error_response(
self, error: Exception, error_type: Optional[ErrorType] = None,
                        user_query: Optional[str] = None) -> ServiceResponse:
        error_type = error_type or self.error_handler.classify(error)
        message = self.error_handler.format_user_friendly_error(error, error_type, user_query)
        return ServiceResponse(
            status_code=self.error_handler.status_code(error_type),
            body={"error": message},
        )
