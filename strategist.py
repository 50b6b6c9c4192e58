from __future__ import annotations
import asyncio
import json
import logging
import math
import re
from abc import ABC, abstractmethod
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Sequence

from openrouter_client import OpenRouterClient
from models import (
    AssistantMessage, ChatMessage, ClientCounterOffer, CounterOfferAnalysis,
    ProjectData, Quote, QuoteLineItem,
)
from prompts import ANALYSIS_SYSTEM_PROMPT, CHAT_SYSTEM_PROMPT, QUOTE_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

RECOMMENDATIONS = {"accept", "counter", "decline"}

class StrategistError(RuntimeError):
    """The model answered, but not with something we can use."""

class Strategist(ABC):
    """
    Remote collaborator behind every negotiation workflow.
    Any exception raised here is treated by the engine as a remote failure.
    """
    @abstractmethod
    async def generate_quote(self, project: ProjectData) -> Quote:
        raise NotImplementedError

    @abstractmethod
    async def analyze_counter_offer(
        self, project: ProjectData, quote: Quote, offer: ClientCounterOffer
    ) -> CounterOfferAnalysis:
        raise NotImplementedError

    @abstractmethod
    async def get_chat_response(
        self, project: ProjectData, quote: Quote, transcript: Sequence[ChatMessage]
    ) -> str:
        raise NotImplementedError

class OpenRouterStrategist(Strategist):
    """
    Strategist backed by an OpenRouter chat model.
    - Quotes and analyses: the model returns a JSON object, validated into our dataclasses.
    - Chat: plain text reply, given the brief, the quote and the whole transcript.
    """
    def __init__(self, client: OpenRouterClient, temperature: float = 0.4):
        self.client = client
        self.temperature = temperature

    async def generate_quote(self, project: ProjectData) -> Quote:
        messages = [
            {"role": "system", "content": QUOTE_SYSTEM_PROMPT},
            {"role": "user", "content": f"Project brief:\n{_describe_project(project)}"},
        ]
        content = await self._chat(messages, json_mode=True)
        return quote_from_payload(_require_json(content), default_currency=project.currency)

    async def analyze_counter_offer(
        self, project: ProjectData, quote: Quote, offer: ClientCounterOffer
    ) -> CounterOfferAnalysis:
        messages = [
            {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
            {"role": "user", "content": f"Project brief:\n{_describe_project(project)}"},
            {"role": "user", "content": f"Quote sent to the client:\n{_describe_quote(quote)}"},
            {"role": "user", "content": (
                f"Client counter-offer: {offer.proposed_price:,.2f} {quote.currency}. "
                f"Client message: {offer.message or '(none)'}"
            )},
        ]
        content = await self._chat(messages, json_mode=True)
        return analysis_from_payload(_require_json(content))

    async def get_chat_response(
        self, project: ProjectData, quote: Quote, transcript: Sequence[ChatMessage]
    ) -> str:
        system = CHAT_SYSTEM_PROMPT.format(
            project=_describe_project(project),
            quote=_describe_quote(quote),
        )
        messages = [{"role": "system", "content": system}]
        for msg in transcript:
            role = "assistant" if isinstance(msg, AssistantMessage) else "user"
            messages.append({"role": role, "content": msg.text})
        content = (await self._chat(messages)).strip()
        if not content:
            raise StrategistError("Empty chat reply")
        return content

    async def _chat(self, messages: List[Dict[str, str]], json_mode: bool = False) -> str:
        extra = {"response_format": {"type": "json_object"}} if json_mode else None
        # requests is blocking; keep the event loop free while the model thinks
        return await asyncio.to_thread(
            self.client.chat, messages=messages, temperature=self.temperature, extra=extra
        )

# ---------- prompt context ----------
def _describe_project(project: ProjectData) -> str:
    lines = [f"- {k}: {v}" for k, v in asdict(project).items() if v not in (None, "")]
    return "\n".join(lines)

def _describe_quote(quote: Quote) -> str:
    return json.dumps(asdict(quote), ensure_ascii=False, indent=2)

# ---------- response parsing ----------
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

def _extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Parse the first JSON object in a model reply, tolerating prose or fences around it."""
    t = (text or "").strip()
    if not t:
        return None
    if t.startswith("{") and t.endswith("}"):
        try:
            data = json.loads(t)
            return data if isinstance(data, dict) else None
        except json.JSONDecodeError:
            pass
    m = _JSON_OBJECT_RE.search(t)
    if not m:
        return None
    try:
        data = json.loads(m.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None

def _require_json(content: str) -> Dict[str, Any]:
    data = _extract_json_object(content)
    if data is None:
        logger.warning("Model reply without a JSON object: %.200s", content)
        raise StrategistError("Model reply did not contain a JSON object")
    return data

def _as_amount(value: Any, name: str) -> float:
    try:
        f = float(value)
    except (TypeError, ValueError):
        raise StrategistError(f"Invalid number for {name}: {value!r}")
    if not math.isfinite(f) or f < 0:
        raise StrategistError(f"Invalid number for {name}: {value!r}")
    return f

def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None

def quote_from_payload(data: Dict[str, Any], default_currency: str = "BRL") -> Quote:
    raw_items = data.get("line_items") or []
    if not isinstance(raw_items, list):
        raise StrategistError("line_items must be a list")
    items: List[QuoteLineItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict) or not str(raw.get("description") or "").strip():
            raise StrategistError(f"Invalid line item: {raw!r}")
        hours = raw.get("hours")
        items.append(QuoteLineItem(
            description=str(raw["description"]).strip(),
            amount=_as_amount(raw.get("amount"), "line item amount"),
            hours=_as_amount(hours, "line item hours") if hours is not None else None,
        ))

    if data.get("total_price") is not None:
        total = _as_amount(data["total_price"], "total_price")
    elif items:
        total = sum(i.amount for i in items)
    else:
        raise StrategistError("Quote has neither total_price nor line_items")

    narrative = _optional_text(data.get("narrative"))
    if not narrative:
        raise StrategistError("Quote narrative is empty")

    return Quote(
        total_price=total,
        currency=_optional_text(data.get("currency")) or default_currency,
        narrative=narrative,
        line_items=items,
        timeline=_optional_text(data.get("timeline")),
        payment_terms=_optional_text(data.get("payment_terms")),
    )

def analysis_from_payload(data: Dict[str, Any]) -> CounterOfferAnalysis:
    recommendation = str(data.get("recommendation") or "").strip().lower()
    if recommendation not in RECOMMENDATIONS:
        raise StrategistError(f"Unknown recommendation: {data.get('recommendation')!r}")

    rationale = _optional_text(data.get("rationale"))
    if not rationale:
        raise StrategistError("Analysis rationale is empty")

    suggested = data.get("suggested_price")
    risks = data.get("risk_notes") or []
    if isinstance(risks, str):
        risks = [risks]

    return CounterOfferAnalysis(
        recommendation=recommendation,
        rationale=rationale,
        suggested_price=_as_amount(suggested, "suggested_price") if suggested is not None else None,
        risk_notes=[str(r).strip() for r in risks if str(r).strip()],
        reply_draft=_optional_text(data.get("reply_draft")),
    )
