from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Literal, Optional, Union

@dataclass
class ProjectData:
    project_type: str
    description: str
    client_segment: Optional[str] = None
    deadline: Optional[str] = None
    complexity: Optional[str] = None
    hourly_rate: Optional[float] = None
    currency: str = "BRL"
    notes: Optional[str] = None

@dataclass
class QuoteLineItem:
    description: str
    amount: float
    hours: Optional[float] = None

@dataclass
class Quote:
    total_price: float
    currency: str
    narrative: str
    line_items: List[QuoteLineItem] = field(default_factory=list)
    timeline: Optional[str] = None
    payment_terms: Optional[str] = None

@dataclass
class ClientCounterOffer:
    proposed_price: float
    message: Optional[str] = None

@dataclass
class CounterOfferAnalysis:
    recommendation: str  # accept | counter | decline
    rationale: str
    suggested_price: Optional[float] = None
    risk_notes: List[str] = field(default_factory=list)
    reply_draft: Optional[str] = None

@dataclass(frozen=True)
class UserMessage:
    text: str
    sender: Literal["user"] = field(default="user", init=False)

@dataclass(frozen=True)
class AssistantMessage:
    text: str
    sender: Literal["ai"] = field(default="ai", init=False)

ChatMessage = Union[UserMessage, AssistantMessage]

@dataclass
class ExportMetadata:
    company_name: str
    contact_name: str
    email: str
    phone: Optional[str] = None
    client_name: Optional[str] = None
    validity_days: int = 15

@dataclass(frozen=True)
class ExportSnapshot:
    # Deep copy taken when the export was opened; never the live session quote.
    quote: Quote
    captured_at: datetime

@dataclass
class NegotiationSession:
    """
    All state of one negotiation. Slots are read and replaced directly by the
    engine; `reset` returns every slot to its initial value.
    """
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    project: Optional[ProjectData] = None
    quote: Optional[Quote] = None
    analysis: Optional[CounterOfferAnalysis] = None
    transcript: List[ChatMessage] = field(default_factory=list)
    is_loading_quote: bool = False
    is_loading_analysis: bool = False
    is_chat_loading: bool = False
    error: Optional[str] = None
    # UI excursions
    is_chat_open: bool = False
    is_export_open: bool = False
    export_snapshot: Optional[ExportSnapshot] = None
    # Bumped whenever in-flight completions must be discarded (reset, new quote request).
    epoch: int = 0

    @property
    def has_quote(self) -> bool:
        return self.project is not None and self.quote is not None

    @property
    def phase(self) -> str:
        if self.is_loading_quote:
            return "quote_loading"
        if self.quote is not None:
            return "quote_ready"
        if self.error:
            return "error"
        return "empty"

    def reset(self) -> None:
        self.project = None
        self.quote = None
        self.analysis = None
        self.transcript = []
        self.is_loading_quote = False
        self.is_loading_analysis = False
        self.is_chat_loading = False
        self.error = None
        self.is_chat_open = False
        self.is_export_open = False
        self.export_snapshot = None
        self.epoch += 1
