import asyncio
import json

import pytest

from models import AssistantMessage, ClientCounterOffer, ProjectData, UserMessage
from openrouter_client import OpenRouterClient
from strategist import OpenRouterStrategist, Strategist, StrategistError

class DummyClient(OpenRouterClient):
    def __init__(self, reply):
        self.reply = reply
        self.calls = []
    def chat(self, messages, **kwargs):
        self.calls.append((messages, kwargs))
        return self.reply

QUOTE_JSON = {
    "total_price": 6000,
    "currency": "BRL",
    "line_items": [
        {"description": "Design", "hours": 20, "amount": 2000},
        {"description": "Desenvolvimento", "hours": 40, "amount": 4000},
    ],
    "timeline": "5 semanas",
    "payment_terms": "50/50",
    "narrative": "Entrega completa com foco em conversão.",
}

PROJECT = ProjectData(project_type="Website", description="Site para clínica", hourly_rate=100.0)

def test_generate_quote_parses_json_reply():
    client = DummyClient(json.dumps(QUOTE_JSON))
    quote = asyncio.run(OpenRouterStrategist(client).generate_quote(PROJECT))

    assert quote.total_price == 6000.0
    assert [i.description for i in quote.line_items] == ["Design", "Desenvolvimento"]
    assert quote.line_items[0].hours == 20.0
    assert quote.timeline == "5 semanas"

    messages, kwargs = client.calls[0]
    assert messages[0]["role"] == "system"
    assert "Site para clínica" in messages[1]["content"]
    assert "hourly_rate: 100.0" in messages[1]["content"]
    assert kwargs["extra"] == {"response_format": {"type": "json_object"}}

def test_generate_quote_tolerates_prose_around_json():
    payload = dict(QUOTE_JSON)
    del payload["total_price"]
    del payload["currency"]
    reply = "Claro! Segue o orçamento:\n```json\n" + json.dumps(payload) + "\n```"
    quote = asyncio.run(OpenRouterStrategist(DummyClient(reply)).generate_quote(PROJECT))
    assert quote.total_price == 6000.0  # summed from line items
    assert quote.currency == "BRL"

@pytest.mark.parametrize("reply", [
    "Desculpe, não posso ajudar.",
    json.dumps({**QUOTE_JSON, "narrative": ""}),
    json.dumps({**QUOTE_JSON, "total_price": "caro"}),
    json.dumps({**QUOTE_JSON, "line_items": [{"amount": 10}]}),
    json.dumps({**QUOTE_JSON, "total_price": float("inf")}),
    json.dumps({**QUOTE_JSON, "line_items": [{"description": "Design", "amount": float("nan")}]}),
])
def test_generate_quote_rejects_unusable_replies(reply):
    with pytest.raises(StrategistError):
        asyncio.run(OpenRouterStrategist(DummyClient(reply)).generate_quote(PROJECT))

def test_analyze_counter_offer(quote_factory):
    reply = json.dumps({
        "recommendation": "Counter",
        "suggested_price": 4500,
        "rationale": "Dá para remover o blog.",
        "risk_notes": "Cliente sensível a preço",
        "reply_draft": "Podemos fechar em R$ 4.500 sem o blog.",
    })
    client = DummyClient(reply)
    offer = ClientCounterOffer(proposed_price=3500, message="Só temos 3.500")
    analysis = asyncio.run(OpenRouterStrategist(client).analyze_counter_offer(PROJECT, quote_factory(), offer))

    assert analysis.recommendation == "counter"
    assert analysis.suggested_price == 4500.0
    assert analysis.risk_notes == ["Cliente sensível a preço"]
    prompt = client.calls[0][0][-1]["content"]
    assert "3,500.00 BRL" in prompt
    assert "Só temos 3.500" in prompt

def test_analyze_counter_offer_rejects_unknown_recommendation(quote_factory):
    reply = json.dumps({"recommendation": "maybe", "rationale": "hmm"})
    with pytest.raises(StrategistError):
        asyncio.run(OpenRouterStrategist(DummyClient(reply)).analyze_counter_offer(
            PROJECT, quote_factory(), ClientCounterOffer(proposed_price=1)))

def test_chat_maps_transcript_roles(quote_factory):
    client = DummyClient("  Mostre o valor do SEO.  ")
    transcript = [
        AssistantMessage(text="Orçamento gerado."),
        UserMessage(text="Como justifico o preço?"),
    ]
    reply = asyncio.run(OpenRouterStrategist(client).get_chat_response(PROJECT, quote_factory(), transcript))

    assert reply == "Mostre o valor do SEO."
    messages, kwargs = client.calls[0]
    assert [m["role"] for m in messages] == ["system", "assistant", "user"]
    assert messages[-1]["content"] == "Como justifico o preço?"
    assert "Site para clínica" in messages[0]["content"]
    assert kwargs["extra"] is None

def test_chat_rejects_empty_reply(quote_factory):
    with pytest.raises(StrategistError):
        asyncio.run(OpenRouterStrategist(DummyClient("   ")).get_chat_response(
            PROJECT, quote_factory(), [UserMessage(text="oi")]))

def test_strategist_requires_every_workflow():
    class QuoteOnly(Strategist):
        async def generate_quote(self, project):
            return None

    with pytest.raises(TypeError):
        QuoteOnly()
