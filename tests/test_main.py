import pytest

import main

QUOTE = {"total_price": 5000.0, "currency": "BRL", "line_items": [], "narrative": "Site completo."}

def _feed(monkeypatch, answers):
    it = iter(answers)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(it))

@pytest.mark.parametrize("text,expected", [
    ("120", 120.0),
    ("95.5", 95.5),
    ("0", 0.0),
    ("abc", None),
    ("4.500,00", None),
    ("-10", None),
    ("inf", None),
    ("nan", None),
])
def test_parse_amount(text, expected):
    assert main._parse_amount(text) == expected

def test_ask_project_reasks_bad_hourly_rate(monkeypatch, capsys):
    _feed(monkeypatch, ["Website", "Site para clínica", "", "", "", "cem", "100"])
    project = main._ask_project()
    assert project["hourly_rate"] == 100.0
    assert "Hourly rate must be a number" in capsys.readouterr().out

def test_ask_project_hourly_rate_is_optional(monkeypatch):
    _feed(monkeypatch, ["Website", "Site para clínica", "", "", "", ""])
    assert "hourly_rate" not in main._ask_project()

def test_interactive_offer_with_bad_price_prints_help(monkeypatch, capsys):
    offers = []
    monkeypatch.setattr(main, "start_session", lambda base_url: "s1")
    monkeypatch.setattr(main, "request_quote", lambda base_url, sid, project: {"quote": QUOTE, "transcript": []})
    monkeypatch.setattr(main, "analyze_counter_offer", lambda *args: offers.append(args) or {"error": None, "analysis": {
        "recommendation": "accept", "rationale": "Ok.",
    }})
    _feed(monkeypatch, [
        "Website", "Site", "", "", "", "",  # project brief
        "offer barato", "offer 4000 pode ser?", "quit",
    ])

    main.interactive_play("http://test")

    out = capsys.readouterr().out
    assert "Invalid price: 'barato'" in out
    assert out.count("Commands:") == 2  # once after the quote, once for the bad offer
    assert offers == [("http://test", "s1", 4000.0, "pode ser?")]
