"""Request and response schemas for the AI endpoints."""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, field_validator


class DateRange(BaseModel):
    start: str
    end: str


class Budget(BaseModel):
    min: float = Field(ge=0)
    max: float = Field(ge=0)
    currency: str = "GBP"


class ResearchRequest(BaseModel):
    query: str = Field(min_length=1)
    type: Literal["hotel", "activity", "restaurant", "transport", "general"]
    trip_id: Optional[str] = None
    location: Optional[str] = None
    date_range: Optional[DateRange] = None
    budget: Optional[Budget] = None
    preferences: Optional[List[str]] = None


class PlanSummary(BaseModel):
    """A plan version already flattened by the CRUD layer."""
    id: str
    name: str
    description: Optional[str] = None
    currency: str = "GBP"
    total_cost: float = 0
    # Preformatted breakdown of accommodations, transport and costs
    details: str = ""


class CompareRequest(BaseModel):
    trip_id: str
    plans: List[PlanSummary]


class OptimiseRequest(BaseModel):
    trip_id: str
    plan: PlanSummary


class ConversationMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class PlanChangeRequest(BaseModel):
    trip_id: str
    plan_version_id: str
    item_type: str
    current_item: Dict[str, Any]
    change_request: str = Field(min_length=1)
    conversation_history: List[ConversationMessage] = Field(default_factory=list)
    destination: Optional[str] = None


class SuggestionsRequest(BaseModel):
    trip_id: str
    plan_version_id: str
    request: str = Field(min_length=1)
    itinerary: str = ""


class PackingRequest(BaseModel):
    destination: str = Field(min_length=1)
    start_date: str
    end_date: str
    traveller_count: int = Field(default=2, ge=1)
    activities: List[str] = Field(default_factory=list)
    trip_id: Optional[str] = None
    itinerary: Optional[str] = None

    @field_validator("activities")
    @classmethod
    def strip_activities(cls, v):
        return [a.strip() for a in v if a.strip()]


class AIResponse(BaseModel):
    result: Any
    cached: bool = False
