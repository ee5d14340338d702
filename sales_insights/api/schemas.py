"""
Pydantic models for query, advice and forecast endpoint payloads.
"""

from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator

from sales_insights.core.models import MONTH_NAMES, MonthRef

MAX_QUESTION_LENGTH = 1000
ALLOWED_ROLES = ("user", "assistant", "system")
RECOMMENDATION_TYPES = ("product", "store", "discount")


class ChatTurn(BaseModel):
    """One prior turn of the conversation."""

    role: str = Field(..., description="Sender of the turn: user, assistant or system")
    content: str = Field(..., description="Text of the turn")

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        role = v.strip().lower()
        if role not in ALLOWED_ROLES:
            raise ValueError(f"role must be one of {', '.join(ALLOWED_ROLES)}")
        return role


class QueryRequest(BaseModel):
    """Body of a query request."""

    question: str = Field(..., description="Natural language question")
    conversation: List[ChatTurn] = Field(default_factory=list, description="Prior turns, oldest first")

    @field_validator("question")
    @classmethod
    def validate_question(cls, v: str) -> str:
        question = v.strip()
        if not question:
            raise ValueError("question must not be empty")
        if len(question) > MAX_QUESTION_LENGTH:
            raise ValueError(f"question must be at most {MAX_QUESTION_LENGTH} characters")
        return question

    def conversation_dicts(self) -> List[Dict[str, Any]]:
        return [turn.model_dump() for turn in self.conversation]


class RecommendationTarget(BaseModel):
    """The recommendation advice is requested for."""

    type: str = Field(..., description="Recommendation type: product, store or discount")
    target: str = Field(..., description="Product name, store location or discount code")
    impact: str = Field("", description="Impact text shown with the recommendation")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        kind = v.strip().lower()
        if kind not in RECOMMENDATION_TYPES:
            raise ValueError(f"type must be one of {', '.join(RECOMMENDATION_TYPES)}")
        return kind

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        target = v.strip()
        if not target:
            raise ValueError("target must not be empty")
        return target


class AdviceRequest(BaseModel):
    """Body of an advice request."""

    recommendation: RecommendationTarget


class ForecastRequest(BaseModel):
    """Body of a forecast request: month name (or abbreviation) and year."""

    month: str = Field(..., description="Month name, e.g. March or Mar")
    year: int = Field(..., ge=1900, le=9999, description="Four-digit year")

    @field_validator("month")
    @classmethod
    def validate_month(cls, v: str) -> str:
        name = v.strip().rstrip(".").lower()
        for month in MONTH_NAMES:
            if len(name) >= 3 and month.lower().startswith(name):
                return month
        raise ValueError("month must be a month name")

    def month_ref(self) -> MonthRef:
        return MonthRef(year=self.year, month_index=MONTH_NAMES.index(self.month))
