import pytest
from fastapi.testclient import TestClient

from api import app, get_engine
from engine import ANALYSIS_ERROR, GREETING

PROJECT = {"project_type": "Website", "description": "website", "deadline": "30 dias"}
METADATA = {"company_name": "Studio Aurora", "contact_name": "Ana", "email": "ana@example.com"}

@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()

def _start(client) -> str:
    resp = client.post("/v1/negotiation/sessions")
    assert resp.status_code == 200
    return resp.json()["session_id"]

def test_start_session(client):
    sid = _start(client)
    data = client.get(f"/v1/negotiation/sessions/{sid}").json()
    assert data["phase"] == "empty"
    assert data["quote"] is None
    assert data["transcript"] == []

def test_unknown_session_is_404(client):
    assert client.get("/v1/negotiation/sessions/missing").status_code == 404
    assert client.post("/v1/negotiation/sessions/missing/quote", json=PROJECT).status_code == 404

def test_negotiation_flow(client, strategist):
    sid = _start(client)
    base = f"/v1/negotiation/sessions/{sid}"

    data = client.post(f"{base}/quote", json=PROJECT).json()
    assert data["phase"] == "quote_ready"
    assert data["quote"]["total_price"] == 5000.0
    assert data["project"]["description"] == "website"
    assert data["transcript"] == [{"sender": "ai", "text": GREETING}]

    data = client.post(f"{base}/chat/open").json()
    assert data["is_chat_open"] is True

    data = client.post(f"{base}/chat/messages", json={"text": "can you lower the price?"}).json()
    assert [m["sender"] for m in data["transcript"]] == ["ai", "user", "ai"]
    assert data["transcript"][-1]["text"] == strategist.reply

    data = client.post(f"{base}/counter-offer", json={"proposed_price": 3500}).json()
    assert data["analysis"]["recommendation"] == "counter"
    assert data["error"] is None

    strategist.fail_analysis = True
    data = client.post(f"{base}/counter-offer", json={"proposed_price": 500}).json()
    assert data["analysis"] is None
    assert data["error"] == ANALYSIS_ERROR
    assert len(data["transcript"]) == 3

def test_failed_quote_reports_generic_error(client, strategist):
    strategist.fail_quote = True
    sid = _start(client)
    resp = client.post(f"/v1/negotiation/sessions/{sid}/quote", json=PROJECT)
    assert resp.status_code == 200
    data = resp.json()
    assert data["phase"] == "error"
    assert data["quote"] is None
    assert "500" not in data["error"]

def test_counter_offer_without_quote_changes_nothing(client, strategist):
    sid = _start(client)
    data = client.post(f"/v1/negotiation/sessions/{sid}/counter-offer", json={"proposed_price": 10}).json()
    assert data["analysis"] is None
    assert data["error"] is None
    assert strategist.analysis_calls == []

def test_export_uses_current_quote_when_body_omitted(client, rendered_documents):
    sid = _start(client)
    base = f"/v1/negotiation/sessions/{sid}"
    client.post(f"{base}/quote", json=PROJECT)

    data = client.post(f"{base}/export").json()
    assert data["is_export_open"] is True
    assert data["export_quote"]["total_price"] == 5000.0

    resp = client.post(f"{base}/export/complete", json=METADATA)
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.content == b"%PDF-fake"
    assert rendered_documents[0][0].company_name == "Studio Aurora"
    assert client.get(base).json()["is_export_open"] is False

def test_export_freezes_supplied_quote(client, rendered_documents):
    sid = _start(client)
    base = f"/v1/negotiation/sessions/{sid}"
    client.post(f"{base}/quote", json=PROJECT)
    edited = {
        "total_price": 4200.0,
        "currency": "BRL",
        "narrative": "Versão negociada.",
        "line_items": [{"description": "Site", "amount": 4200.0}],
    }
    client.post(f"{base}/export", json={"quote": edited})
    client.post(f"{base}/quote", json=PROJECT)

    client.post(f"{base}/export/complete", json=METADATA)
    _, quote = rendered_documents[0]
    assert quote.total_price == 4200.0
    assert quote.line_items[0].description == "Site"

def test_export_without_quote_is_409(client):
    sid = _start(client)
    assert client.post(f"/v1/negotiation/sessions/{sid}/export").status_code == 409
    assert client.post(f"/v1/negotiation/sessions/{sid}/export/complete", json=METADATA).status_code == 409

def test_cancel_export_and_reset(client):
    sid = _start(client)
    base = f"/v1/negotiation/sessions/{sid}"
    client.post(f"{base}/quote", json=PROJECT)
    client.post(f"{base}/export")
    assert client.post(f"{base}/export/cancel").json()["is_export_open"] is False

    data = client.post(f"{base}/reset").json()
    assert data["phase"] == "empty"
    assert data["project"] is None
    assert data["transcript"] == []
