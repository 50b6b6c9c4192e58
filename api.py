from __future__ import annotations
import logging
import os
from dataclasses import asdict
from functools import lru_cache
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Response
from pydantic import BaseModel, Field

from openrouter_client import OpenRouterClient
from engine import ExportUnavailableError, NegotiationEngine
from models import (
    ClientCounterOffer, CounterOfferAnalysis, ExportMetadata, NegotiationSession,
    ProjectData, Quote, QuoteLineItem,
)
from strategist import OpenRouterStrategist

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- Pydantic IO models ----------
class ProjectIn(BaseModel):
    project_type: str = Field(..., examples=["Website institucional"])
    description: str = Field(..., examples=["Site de 5 páginas com blog e formulário de contato para uma clínica."])
    client_segment: Optional[str] = Field(None, examples=["Saúde / pequena empresa"])
    deadline: Optional[str] = Field(None, examples=["30 dias"])
    complexity: Optional[str] = Field(None, examples=["média"])
    hourly_rate: Optional[float] = Field(None, gt=0)
    currency: str = "BRL"
    notes: Optional[str] = None

class LineItemIO(BaseModel):
    description: str
    amount: float
    hours: Optional[float] = None

class QuoteIO(BaseModel):
    total_price: float
    currency: str
    narrative: str
    line_items: List[LineItemIO] = []
    timeline: Optional[str] = None
    payment_terms: Optional[str] = None

class CounterOfferIn(BaseModel):
    proposed_price: float = Field(..., gt=0, examples=[3500.0])
    message: Optional[str] = Field(None, examples=["Nosso orçamento máximo é R$ 3.500."])

class AnalysisOut(BaseModel):
    recommendation: str
    rationale: str
    suggested_price: Optional[float] = None
    risk_notes: List[str] = []
    reply_draft: Optional[str] = None

class ChatMessageIn(BaseModel):
    text: str = Field(..., min_length=1, examples=["Você consegue baixar o preço?"])

class ChatMessageOut(BaseModel):
    sender: Literal["user", "ai"]
    text: str

class ExportIn(BaseModel):
    # Omitted: freeze the session's current quote.
    quote: Optional[QuoteIO] = None

class ExportMetadataIn(BaseModel):
    company_name: str = Field(..., examples=["Estúdio Aurora"])
    contact_name: str = Field(..., examples=["Ana Souza"])
    email: str = Field(..., examples=["ana@estudioaurora.com.br"])
    phone: Optional[str] = None
    client_name: Optional[str] = None
    validity_days: int = Field(15, ge=1, le=365)

class StartSessionOut(BaseModel):
    session_id: str

class SessionStateOut(BaseModel):
    session_id: str
    phase: str
    project: Optional[ProjectIn] = None
    quote: Optional[QuoteIO] = None
    analysis: Optional[AnalysisOut] = None
    transcript: List[ChatMessageOut]
    is_loading_quote: bool
    is_loading_analysis: bool
    is_chat_loading: bool
    error: Optional[str] = None
    is_chat_open: bool
    is_export_open: bool
    export_quote: Optional[QuoteIO] = None

# ---------- App ----------
app = FastAPI(title="Negotiation Strategist API", version="1.0.0")

@lru_cache(maxsize=1)
def get_engine() -> NegotiationEngine:
    client = OpenRouterClient()
    return NegotiationEngine(strategist=OpenRouterStrategist(client))

def _to_quote_io(q: Optional[Quote]) -> Optional[QuoteIO]:
    return QuoteIO(**asdict(q)) if q is not None else None

def _from_quote_io(q: QuoteIO) -> Quote:
    data = q.model_dump()
    data["line_items"] = [QuoteLineItem(**li) for li in data["line_items"]]
    return Quote(**data)

def _to_analysis_out(a: Optional[CounterOfferAnalysis]) -> Optional[AnalysisOut]:
    return AnalysisOut(**asdict(a)) if a is not None else None

def _to_state_out(st: NegotiationSession) -> SessionStateOut:
    return SessionStateOut(
        session_id=st.session_id,
        phase=st.phase,
        project=ProjectIn(**asdict(st.project)) if st.project is not None else None,
        quote=_to_quote_io(st.quote),
        analysis=_to_analysis_out(st.analysis),
        transcript=[ChatMessageOut(sender=m.sender, text=m.text) for m in st.transcript],
        is_loading_quote=st.is_loading_quote,
        is_loading_analysis=st.is_loading_analysis,
        is_chat_loading=st.is_chat_loading,
        error=st.error,
        is_chat_open=st.is_chat_open,
        is_export_open=st.is_export_open,
        export_quote=_to_quote_io(st.export_snapshot.quote) if st.export_snapshot else None,
    )

def _require(engine: NegotiationEngine, session_id: str) -> NegotiationSession:
    st = engine.get_state(session_id)
    if not st:
        raise HTTPException(404, "Session not found")
    return st

@app.post("/v1/negotiation/sessions", response_model=StartSessionOut)
def start_session(engine: NegotiationEngine = Depends(get_engine)):
    st = engine.start_session()
    return StartSessionOut(session_id=st.session_id)

@app.get("/v1/negotiation/sessions/{session_id}", response_model=SessionStateOut)
def get_state(session_id: str, engine: NegotiationEngine = Depends(get_engine)):
    return _to_state_out(_require(engine, session_id))

@app.post("/v1/negotiation/sessions/{session_id}/quote", response_model=SessionStateOut)
async def request_quote(session_id: str, payload: ProjectIn, engine: NegotiationEngine = Depends(get_engine)):
    st = _require(engine, session_id)
    await engine.request_quote(session_id, ProjectData(**payload.model_dump()))
    return _to_state_out(st)

@app.post("/v1/negotiation/sessions/{session_id}/counter-offer", response_model=SessionStateOut)
async def analyze_counter_offer(session_id: str, payload: CounterOfferIn, engine: NegotiationEngine = Depends(get_engine)):
    st = _require(engine, session_id)
    await engine.analyze_counter_offer(session_id, ClientCounterOffer(**payload.model_dump()))
    return _to_state_out(st)

@app.post("/v1/negotiation/sessions/{session_id}/chat/open", response_model=SessionStateOut)
def open_chat(session_id: str, engine: NegotiationEngine = Depends(get_engine)):
    st = _require(engine, session_id)
    engine.open_chat(session_id)
    return _to_state_out(st)

@app.post("/v1/negotiation/sessions/{session_id}/chat/close", response_model=SessionStateOut)
def close_chat(session_id: str, engine: NegotiationEngine = Depends(get_engine)):
    st = _require(engine, session_id)
    engine.close_chat(session_id)
    return _to_state_out(st)

@app.post("/v1/negotiation/sessions/{session_id}/chat/messages", response_model=SessionStateOut)
async def send_chat_message(session_id: str, payload: ChatMessageIn, engine: NegotiationEngine = Depends(get_engine)):
    st = _require(engine, session_id)
    await engine.send_chat_message(session_id, payload.text)
    return _to_state_out(st)

@app.post("/v1/negotiation/sessions/{session_id}/export", response_model=SessionStateOut)
def open_export(session_id: str, payload: Optional[ExportIn] = None, engine: NegotiationEngine = Depends(get_engine)):
    st = _require(engine, session_id)
    quote = _from_quote_io(payload.quote) if payload and payload.quote else st.quote
    try:
        engine.open_export(session_id, quote)
    except ExportUnavailableError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _to_state_out(st)

@app.post("/v1/negotiation/sessions/{session_id}/export/complete")
async def complete_export(session_id: str, payload: ExportMetadataIn, engine: NegotiationEngine = Depends(get_engine)):
    _require(engine, session_id)
    try:
        pdf = await engine.complete_export(session_id, ExportMetadata(**payload.model_dump()))
    except Exception:
        logger.error("Proposal generation failed for session %s", session_id, exc_info=True)
        raise HTTPException(status_code=502, detail="Proposal document generation failed")
    if pdf is None:
        raise HTTPException(status_code=409, detail="No export in progress")
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="proposta.pdf"'},
    )

@app.post("/v1/negotiation/sessions/{session_id}/export/cancel", response_model=SessionStateOut)
def cancel_export(session_id: str, engine: NegotiationEngine = Depends(get_engine)):
    st = _require(engine, session_id)
    engine.cancel_export(session_id)
    return _to_state_out(st)

@app.post("/v1/negotiation/sessions/{session_id}/reset", response_model=SessionStateOut)
def reset(session_id: str, engine: NegotiationEngine = Depends(get_engine)):
    _require(engine, session_id)
    return _to_state_out(engine.reset(session_id))
