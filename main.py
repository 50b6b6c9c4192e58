from __future__ import annotations
import argparse
import json
import logging
import math
import os
import sys
import time
from pathlib import Path
from typing import Optional, Dict, Any, List

import requests
from dotenv import load_dotenv
load_dotenv()

logger = logging.getLogger(__name__)

# -----------------------------
# Config defaults
# -----------------------------
DEFAULT_BASE_URL = os.getenv("NEGOTIATION_BOT_BASE_URL", "http://127.0.0.1:8000")
SESSIONS_PATH = "/v1/negotiation/sessions"

# -----------------------------
# Simple HTTP client helpers
# -----------------------------
def _post(base_url: str, path: str, payload: Optional[Dict[str, Any]] = None) -> requests.Response:
    url = f"{base_url.rstrip('/')}{path}"
    r = requests.post(url, json=payload, timeout=120)
    if r.status_code >= 400:
        print(f"\n[CLIENT] HTTP {r.status_code} from {url}")
        try:
            print("[CLIENT] Body:", r.json())
        except ValueError:
            print("[CLIENT] Body:", r.text[:1000])
        r.raise_for_status()
    return r

def _get(base_url: str, path: str) -> Dict[str, Any]:
    url = f"{base_url.rstrip('/')}{path}"
    r = requests.get(url, timeout=60)
    r.raise_for_status()
    return r.json()

# -----------------------------
# API wrappers
# -----------------------------
def start_session(base_url: str) -> str:
    return _post(base_url, SESSIONS_PATH).json()["session_id"]

def request_quote(base_url: str, session_id: str, project: Dict[str, Any]) -> Dict[str, Any]:
    return _post(base_url, f"{SESSIONS_PATH}/{session_id}/quote", project).json()

def analyze_counter_offer(base_url: str, session_id: str, price: float, message: Optional[str]) -> Dict[str, Any]:
    payload = {"proposed_price": price, "message": message}
    return _post(base_url, f"{SESSIONS_PATH}/{session_id}/counter-offer", payload).json()

def send_chat_message(base_url: str, session_id: str, text: str) -> Dict[str, Any]:
    return _post(base_url, f"{SESSIONS_PATH}/{session_id}/chat/messages", {"text": text}).json()

def export_proposal(base_url: str, session_id: str, metadata: Dict[str, Any], out_path: Path) -> Path:
    _post(base_url, f"{SESSIONS_PATH}/{session_id}/export")
    r = _post(base_url, f"{SESSIONS_PATH}/{session_id}/export/complete", metadata)
    out_path.write_bytes(r.content)
    return out_path

def reset_session(base_url: str, session_id: str) -> Dict[str, Any]:
    return _post(base_url, f"{SESSIONS_PATH}/{session_id}/reset").json()

def get_state(base_url: str, session_id: str) -> Dict[str, Any]:
    return _get(base_url, f"{SESSIONS_PATH}/{session_id}")

# -----------------------------
# Pretty printers
# -----------------------------
def print_quote(quote: Dict[str, Any]) -> None:
    print("\n===== QUOTE =====")
    for item in quote.get("line_items") or []:
        hours = f" ({item['hours']:g}h)" if item.get("hours") is not None else ""
        print(f"- {item['description']}{hours}: {item['amount']:,.2f} {quote['currency']}")
    print(f"\nTotal:     {quote['total_price']:,.2f} {quote['currency']}")
    if quote.get("timeline"):
        print(f"Timeline:  {quote['timeline']}")
    if quote.get("payment_terms"):
        print(f"Payment:   {quote['payment_terms']}")
    print(f"\n{quote['narrative']}")
    print("=" * 17)

def print_analysis(analysis: Dict[str, Any]) -> None:
    print("\n===== COUNTER-OFFER ANALYSIS =====")
    print(f"Recommendation:  {analysis['recommendation']}")
    if analysis.get("suggested_price") is not None:
        print(f"Suggested price: {analysis['suggested_price']:,.2f}")
    print(f"\n{analysis['rationale']}")
    for note in analysis.get("risk_notes") or []:
        print(f"  ! {note}")
    if analysis.get("reply_draft"):
        print(f"\n--- Reply draft ---\n{analysis['reply_draft']}")
    print("=" * 34)

def print_last_reply(state: Dict[str, Any]) -> None:
    transcript: List[Dict[str, str]] = state.get("transcript") or []
    if transcript and transcript[-1]["sender"] == "ai":
        print(f"\n[Strategist] {transcript[-1]['text']}")

def print_state(state: Dict[str, Any]) -> None:
    print("\n===== SESSION STATE =====")
    print(json.dumps(state, indent=2, ensure_ascii=False))
    print("=" * 25)

def _report(state: Dict[str, Any]) -> bool:
    if state.get("error"):
        print(f"\n⚠️  {state['error']}")
        return False
    return True

# -----------------------------
# Interactive play loop
# -----------------------------
HELP = """Commands:
  chat <message>            ask the strategist
  offer <price> [message]   analyze a client counter-offer
  export <out.pdf>          export the proposal PDF
  state                     print the whole session
  reset                     start over with a new project
  quit"""

def _parse_amount(text: str) -> Optional[float]:
    """Non-negative number typed by the user, or None if it isn't one."""
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return value

def _ask_project() -> Dict[str, Any]:
    print("\n--- Describe the project ---")
    project: Dict[str, Any] = {
        "project_type": input("Project type: ").strip(),
        "description": input("Description: ").strip(),
        "client_segment": input("Client segment (optional): ").strip() or None,
        "deadline": input("Deadline (optional): ").strip() or None,
        "complexity": input("Complexity (optional): ").strip() or None,
    }
    while True:
        rate = input("Hourly rate (optional): ").strip()
        if not rate:
            break
        amount = _parse_amount(rate)
        if amount is not None:
            project["hourly_rate"] = amount
            break
        print("Hourly rate must be a number, e.g. 120 or 95.5")
    return project

def _ask_metadata() -> Dict[str, Any]:
    return {
        "company_name": input("Your company: ").strip() or os.getenv("PROPOSAL_COMPANY_NAME", "-"),
        "contact_name": input("Contact name: ").strip() or "-",
        "email": input("Email: ").strip() or "-",
        "client_name": input("Client name (optional): ").strip() or None,
    }

def interactive_play(base_url: str) -> None:
    sess_id = start_session(base_url)
    print(f"\n✅ Session started: {sess_id}")

    state = request_quote(base_url, sess_id, _ask_project())
    while not _report(state):
        state = request_quote(base_url, sess_id, _ask_project())
    print_quote(state["quote"])
    print_last_reply(state)
    print(f"\n{HELP}")

    while True:
        line = input("\n> ").strip()
        cmd, _, rest = line.partition(" ")
        if cmd == "quit":
            return
        if cmd == "chat" and rest:
            print_last_reply(send_chat_message(base_url, sess_id, rest))
        elif cmd == "offer" and rest:
            price, _, message = rest.partition(" ")
            amount = _parse_amount(price)
            if amount is None:
                print(f"Invalid price: {price!r}\n{HELP}")
                continue
            state = analyze_counter_offer(base_url, sess_id, amount, message or None)
            if _report(state):
                print_analysis(state["analysis"])
        elif cmd == "export" and rest:
            path = export_proposal(base_url, sess_id, _ask_metadata(), Path(rest))
            print(f"\n📄 Proposal written to {path}")
        elif cmd == "state":
            print_state(get_state(base_url, sess_id))
        elif cmd == "reset":
            reset_session(base_url, sess_id)
            state = request_quote(base_url, sess_id, _ask_project())
            if _report(state):
                print_quote(state["quote"])
                print_last_reply(state)
        else:
            print(HELP)

# -----------------------------
# Auto-demo play loop
# -----------------------------
def auto_demo_play(base_url: str, out_path: Path) -> None:
    """
    Runs a canned negotiation for quick verification.
    """
    print("\n🤖 Running auto-demo...")
    sess_id = start_session(base_url)
    print(f"✅ Session started: {sess_id}")

    project = {
        "project_type": "Website institucional",
        "description": "Site de 5 páginas com blog e formulário de contato para uma clínica odontológica.",
        "client_segment": "Saúde / pequena empresa",
        "deadline": "30 dias",
        "complexity": "média",
    }
    state = request_quote(base_url, sess_id, project)
    if not _report(state):
        sys.exit(1)
    print_quote(state["quote"])
    print_last_reply(state)

    for question in ("O cliente achou caro. Como justifico o valor?",
                     "Que itens posso tirar para baixar o preço?"):
        print(f"\n[You] {question}")
        print_last_reply(send_chat_message(base_url, sess_id, question))
        time.sleep(0.5)

    offer = round(state["quote"]["total_price"] * 0.7, 2)
    state = analyze_counter_offer(base_url, sess_id, offer, "Nosso orçamento é limitado.")
    if _report(state):
        print_analysis(state["analysis"])

    metadata = {
        "company_name": os.getenv("PROPOSAL_COMPANY_NAME", "Demo Studio"),
        "contact_name": "Demo",
        "email": "demo@example.com",
        "client_name": "Clínica Sorriso",
    }
    path = export_proposal(base_url, sess_id, metadata, out_path)
    print(f"\n📄 Proposal written to {path}")

# -----------------------------
# Run server (programmatically)
# -----------------------------
def run_server(port: int, host: str = "127.0.0.1", reload: bool = True) -> None:
    try:
        import uvicorn
    except ImportError:
        print("❌ uvicorn not installed. Run: pip install -e .")
        sys.exit(1)
    uvicorn.run("api:app", host=host, port=port, reload=reload)

# -----------------------------
# Health checker
# -----------------------------
def health_check(base_url: str) -> None:
    print(f"🔎 Checking server at {base_url} ...")
    try:
        r = requests.get(f"{base_url.rstrip('/')}/docs", timeout=10)
        r.raise_for_status()
        print("✅ /docs reachable")

        sess_id = start_session(base_url)
        print(f"✅ JSON API ok (session_id={sess_id})")
    except requests.RequestException as e:
        print(f"❌ Health check failed: {e}")
        sys.exit(1)

# -----------------------------
# CLI
# -----------------------------
def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Negotiation Strategist: server + client in one file")

    sub = p.add_subparsers(dest="cmd", required=True)

    ps = sub.add_parser("serve", help="Start the FastAPI server (uvicorn)")
    ps.add_argument("--port", type=int, default=8000, help="Port to bind")
    ps.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind")
    ps.add_argument("--no-reload", action="store_true", help="Disable auto-reload")

    pp = sub.add_parser("play", help="Negotiate a project quote (interactive or auto)")
    pp.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API base URL")
    pp.add_argument("--auto-demo", action="store_true", help="Run a canned demo instead of prompting")
    pp.add_argument("--out", type=Path, default=Path("proposta.pdf"), help="Where the auto-demo writes the PDF")

    ph = sub.add_parser("health", help="Check server availability")
    ph.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API base URL")

    return p.parse_args()

def main() -> None:
    args = parse_args()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING").upper())

    if args.cmd == "serve":
        run_server(port=args.port, host=args.host, reload=(not args.no_reload))
        return

    if args.cmd == "play":
        try:
            requests.get(f"{args.base_url.rstrip('/')}/docs", timeout=5).raise_for_status()
        except requests.RequestException:
            logger.debug("Server check failed", exc_info=True)
            print("⚠️  Could not reach the server. Is it running?\n"
                  "    Start it in another terminal:\n"
                  "    python main.py serve")
            sys.exit(1)

        if args.auto_demo:
            auto_demo_play(args.base_url, args.out)
        else:
            interactive_play(args.base_url)
        return

    if args.cmd == "health":
        health_check(args.base_url)
        return

    print("Unknown command. Try: python main.py --help")
    sys.exit(2)

if __name__ == "__main__":
    main()
