import asyncio
from typing import List, Optional

import pytest

from engine import NegotiationEngine
from models import CounterOfferAnalysis, ProjectData, Quote, QuoteLineItem
from strategist import Strategist

def make_quote(total: float = 5000.0, narrative: str = "Site completo com blog e SEO básico.") -> Quote:
    return Quote(
        total_price=total,
        currency="BRL",
        narrative=narrative,
        line_items=[
            QuoteLineItem(description="Design", amount=total * 0.4, hours=20),
            QuoteLineItem(description="Desenvolvimento", amount=total * 0.6, hours=30),
        ],
        timeline="4 semanas",
        payment_terms="50% na assinatura, 50% na entrega",
    )

class DummyStrategist(Strategist):
    """
    Scripted strategist. Set `fail_*` to raise, or `gate` to an asyncio.Event
    to hold every call until the test releases it.
    """
    def __init__(self):
        self.quote = make_quote()
        self.analysis = CounterOfferAnalysis(
            recommendation="counter",
            rationale="A contraproposta cobre só o desenvolvimento.",
            suggested_price=4200.0,
            risk_notes=["Escopo pode crescer"],
            reply_draft="Podemos chegar a R$ 4.200 removendo o blog.",
        )
        self.reply = "Ofereça remover o blog em troca de um desconto."
        self.fail_quote = False
        self.fail_analysis = False
        self.fail_chat = False
        self.gate: Optional[asyncio.Event] = None
        self.chat_transcripts: List[list] = []
        self.analysis_calls: list = []

    async def _wait(self):
        if self.gate is not None:
            await self.gate.wait()

    async def generate_quote(self, project):
        await self._wait()
        if self.fail_quote:
            raise RuntimeError("OpenRouter error 500: upstream exploded")
        return self.quote

    async def analyze_counter_offer(self, project, quote, offer):
        self.analysis_calls.append((project, quote, offer))
        await self._wait()
        if self.fail_analysis:
            raise RuntimeError("OpenRouter error 503: unavailable")
        return self.analysis

    async def get_chat_response(self, project, quote, transcript):
        self.chat_transcripts.append(list(transcript))
        await self._wait()
        if self.fail_chat:
            raise RuntimeError("timeout")
        return self.reply

@pytest.fixture
def strategist():
    return DummyStrategist()

@pytest.fixture
def rendered_documents():
    return []

@pytest.fixture
def engine(strategist, rendered_documents):
    def fake_document(metadata, quote):
        rendered_documents.append((metadata, quote))
        return b"%PDF-fake"
    return NegotiationEngine(strategist=strategist, document_generator=fake_document)

@pytest.fixture
def project():
    return ProjectData(project_type="Website", description="website", deadline="30 dias")

@pytest.fixture
def quote_factory():
    return make_quote
