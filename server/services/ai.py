"""Cached AI operations for trip planning.

Every operation follows the same path: derive a structured cache key, look it
up, and on a miss call the LLM and store the result with its usage metadata.
The cache never calls the LLM itself.
"""

import json
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage, SystemMessage

from core.cache import AICacheService, generate_cache_key
from core.config import Settings
from core.logging import get_logger, log_api_call
from models.ai import (
    CompareRequest, OptimiseRequest, PackingRequest, PlanChangeRequest,
    ResearchRequest, SuggestionsRequest,
)
from models.cache import QueryType

logger = get_logger(__name__)


@dataclass
class Completion:
    """Text returned by the LLM plus what it cost."""
    text: str
    model: str
    tokens_used: Optional[int] = None


CompletionFn = Callable[[str, str, int], Awaitable[Completion]]


class InvalidAIRequest(Exception):
    """The request cannot be answered as given. Reported to the client as 400."""


RESEARCH_SYSTEM_PROMPT = """You are a travel research assistant for a family holiday planner.
Give specific, named recommendations with approximate prices, locations, pros and cons."""

COMPARE_SYSTEM_PROMPT = """You are comparing holiday plan options. Cover total cost, value for money,
logistics and practical trade-offs, then recommend one option."""

SUGGESTIONS_SYSTEM_PROMPT = """You are a travel planning assistant. Based on the current itinerary,
give specific, actionable suggestions."""

OPTIMISE_SYSTEM_PROMPT = """You are a travel budget optimisation expert. Analyse the cost breakdown and
list concrete savings in {currency}, ranked by savings potential."""

PLAN_CHANGE_SYSTEM_PROMPT = """You are helping modify a holiday plan. Suggest 2-4 alternatives.
Respond with JSON: {"text": "...", "options": [{"name", "type", "cost", "currency",
"location", "description", "pros", "cons", "applyData"}]}"""

PACKING_SYSTEM_PROMPT = """You are a packing list expert. Respond with a JSON array of
{"category", "name", "quantity", "linkedTo"?} items. Categories: Clothes, Toiletries,
Electronics, Documents, Kids, Beach/Pool, Medications, Misc."""


def _message_text(content: Any) -> str:
    """Flatten AIMessage content, which may be a list of content blocks."""
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def _extract_json(text: str, opener: str, closer: str) -> Optional[Any]:
    match = re.search(re.escape(opener) + r"[\s\S]*" + re.escape(closer), text)
    if not match:
        return None
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError:
        return None


class AnthropicCompleter:
    """Default CompletionFn backed by langchain-anthropic."""

    provider = "anthropic"

    def __init__(self, settings: Settings):
        self.settings = settings

    async def __call__(self, system_prompt: str, prompt: str, max_tokens: int) -> Completion:
        if not self.settings.anthropic_api_key:
            raise RuntimeError("Anthropic API key is not configured")

        model_name = self.settings.ai_model
        chat_model = ChatAnthropic(
            model=model_name,
            anthropic_api_key=self.settings.anthropic_api_key,
            max_tokens=min(max_tokens, self.settings.ai_max_tokens),
            default_request_timeout=self.settings.ai_timeout,
            max_retries=self.settings.ai_max_retries,
        )

        start_time = time.time()
        try:
            response = await chat_model.ainvoke([
                SystemMessage(content=system_prompt),
                HumanMessage(content=prompt),
            ])
        except Exception as e:
            log_api_call(logger, self.provider, model_name, "complete", False, error=str(e))
            raise

        usage = getattr(response, "usage_metadata", None) or {}
        tokens_used = usage.get("total_tokens")
        log_api_call(logger, self.provider, model_name, "complete", True,
                     tokens_used=tokens_used,
                     execution_time_seconds=round(time.time() - start_time, 4))
        return Completion(text=_message_text(response.content), model=model_name,
                          tokens_used=tokens_used)


class TripAIService:
    """AI operations for a trip, deduplicated through AICacheService."""

    def __init__(self, cache: AICacheService, complete: CompletionFn):
        self.cache = cache
        self.complete = complete

    async def _cached(self, scope: Optional[str], query_type: QueryType,
                      key_params: Dict[str, Any],
                      compute: Callable[[], Awaitable[Completion]],
                      transform: Callable[[str], Any] = lambda text: text,
                      use_cache: bool = True) -> Dict[str, Any]:
        cache_key = generate_cache_key(key_params)

        if use_cache:
            cached = await self.cache.lookup(scope, cache_key, query_type)
            if cached is not None:
                return cached.model_dump()

        completion = await compute()
        result = transform(completion.text)

        if use_cache:
            await self.cache.store(scope, cache_key, query_type, result,
                                   model=completion.model,
                                   tokens_used=completion.tokens_used)
        return {"result": result, "cached": False}

    async def research(self, request: ResearchRequest) -> Dict[str, Any]:
        prompt = f"Research request type: {request.type}\n\nQuery: {request.query}"
        if request.location:
            prompt += f"\n\nLocation: {request.location}"
        if request.date_range:
            prompt += f"\n\nDates: {request.date_range.start} to {request.date_range.end}"
        if request.budget:
            b = request.budget
            prompt += f"\n\nBudget: {b.currency} {b.min} - {b.max}"
        if request.preferences:
            prompt += f"\n\nPreferences: {', '.join(request.preferences)}"

        key_params = {
            "query": request.query,
            "type": request.type,
            "location": request.location,
            "date_range": request.date_range.model_dump() if request.date_range else None,
            "budget": request.budget.model_dump() if request.budget else None,
            "preferences": request.preferences,
        }
        return await self._cached(
            request.trip_id, QueryType.RESEARCH, key_params,
            lambda: self.complete(RESEARCH_SYSTEM_PROMPT, prompt, 2000),
            transform=lambda text: {"text": text},
        )

    async def compare_plans(self, request: CompareRequest) -> Dict[str, Any]:
        if len(request.plans) < 2:
            raise InvalidAIRequest("At least 2 plan versions required for comparison")

        plans_data = "\n---\n".join(
            f"## {p.name}\n{p.description or ''}\n\n"
            f"Total Cost: {p.currency} {p.total_cost}\n\n{p.details}"
            for p in request.plans
        )
        plan_ids = ",".join(sorted(p.id for p in request.plans))
        return await self._cached(
            request.trip_id, QueryType.COMPARISON,
            {"trip_id": request.trip_id, "plan_ids": plan_ids},
            lambda: self.complete(COMPARE_SYSTEM_PROMPT,
                                  f"Please compare these holiday plan options:\n\n{plans_data}", 1500),
        )

    async def optimise_costs(self, request: OptimiseRequest) -> Dict[str, Any]:
        plan = request.plan
        cost_data = f"## {plan.name}\nTotal Cost: {plan.currency} {plan.total_cost}\n\n{plan.details}"
        return await self._cached(
            request.trip_id, QueryType.OPTIMIZATION,
            {"trip_id": request.trip_id, "plan_version_id": plan.id},
            lambda: self.complete(
                OPTIMISE_SYSTEM_PROMPT.format(currency=plan.currency),
                f"Please analyze this cost breakdown and provide optimization tips:\n\n{cost_data}",
                1500,
            ),
        )

    async def plan_change(self, request: PlanChangeRequest) -> Dict[str, Any]:
        """Suggest alternatives for one plan item.

        Follow-up turns depend on the whole conversation, so only the opening
        request is cached.
        """
        history = "\n".join(f"{m.role}: {m.content}" for m in request.conversation_history)
        prompt = (
            f"Destination: {request.destination or 'Unknown'}\n"
            f"Item type: {request.item_type}\n"
            f"Current item: {json.dumps(request.current_item, default=str)}\n\n"
        )
        if history:
            prompt += f"Conversation so far:\n{history}\n\n"
        prompt += f"Change request: {request.change_request}"

        def parse(text: str) -> Any:
            parsed = _extract_json(text, "{", "}")
            if isinstance(parsed, dict):
                parsed.setdefault("options", [])
                return parsed
            return {"text": text, "options": []}

        return await self._cached(
            request.trip_id, QueryType.PLAN_CHANGE,
            {
                "item_type": request.item_type,
                "change_request": request.change_request,
                "current_item_id": request.current_item.get("id"),
            },
            lambda: self.complete(PLAN_CHANGE_SYSTEM_PROMPT, prompt, 2000),
            transform=parse,
            use_cache=not request.conversation_history,
        )

    async def suggestions(self, request: SuggestionsRequest) -> Dict[str, Any]:
        prompt = f"Current itinerary:\n{request.itinerary}\n\nUser request: {request.request}"
        return await self._cached(
            request.trip_id, QueryType.SUGGESTIONS,
            {
                "trip_id": request.trip_id,
                "plan_version_id": request.plan_version_id,
                "request": request.request,
            },
            lambda: self.complete(SUGGESTIONS_SYSTEM_PROMPT, prompt, 1000),
        )

    async def packing_list(self, request: PackingRequest) -> Dict[str, Any]:
        prompt = (
            f"Generate a packing list:\n\n"
            f"Destination: {request.destination}\n"
            f"Dates: {request.start_date} to {request.end_date}\n"
            f"Travellers: {request.traveller_count}\n"
            f"Activities: {', '.join(request.activities)}"
        )
        if request.itinerary:
            prompt += f"\n\nDetailed Itinerary:\n{request.itinerary}"

        def parse(text: str) -> Any:
            items = _extract_json(text, "[", "]")
            return {"items": items if isinstance(items, list) else []}

        return await self._cached(
            request.trip_id, QueryType.SUGGESTIONS,
            {
                "kind": "packing",
                "destination": request.destination,
                "start_date": request.start_date,
                "end_date": request.end_date,
                "traveller_count": request.traveller_count,
                "activities": sorted(request.activities),
                "itinerary": request.itinerary,
            },
            lambda: self.complete(PACKING_SYSTEM_PROMPT, prompt, 3000),
            transform=parse,
        )
