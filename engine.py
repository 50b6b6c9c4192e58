from __future__ import annotations
import asyncio
import copy
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from models import (
    AssistantMessage, ClientCounterOffer, CounterOfferAnalysis, ExportMetadata,
    ExportSnapshot, NegotiationSession, ProjectData, Quote, UserMessage,
)
from proposal_pdf import make_proposal_pdf_bytes
from strategist import Strategist

logger = logging.getLogger(__name__)

# User-facing strings. Collaborator error details never reach the user.
GREETING = "Orçamento gerado. Estou à disposição para discutir a estratégia de negociação. Faça sua pergunta."
QUOTE_ERROR = "Ocorreu um erro ao gerar o orçamento. Por favor, tente novamente."
ANALYSIS_ERROR = "Ocorreu um erro ao analisar a contraproposta. Por favor, tente novamente."
CHAT_FALLBACK = "Desculpe, não consegui processar sua pergunta. Tente novamente."

DocumentGenerator = Callable[[ExportMetadata, Quote], bytes]

class ExportUnavailableError(ValueError):
    pass

class NegotiationEngine:
    """
    Orchestrates one negotiation per session:
    - Quote workflow: project brief -> quote, wiping the previous analysis and chat.
    - Negotiation workflow: counter-offer analysis and strategist chat on top of a quote.
    - Export handoff: freeze a quote, then render the proposal document from the frozen copy.

    Workflow operations are coroutines that suspend only while awaiting a collaborator.
    Each one captures the session epoch first; if a reset or a newer quote request moved
    the epoch in the meantime, the late completion is dropped instead of applied.
    Only the quote loading flag is handed over to the newer request; analysis and chat
    always clear their own flag when they settle.
    """
    def __init__(self, strategist: Strategist, document_generator: DocumentGenerator = make_proposal_pdf_bytes):
        self.strategist = strategist
        self.document_generator = document_generator
        self._sessions: Dict[str, NegotiationSession] = {}

    # ---------- Session lifecycle ----------
    def start_session(self) -> NegotiationSession:
        state = NegotiationSession()
        self._sessions[state.session_id] = state
        return state

    def get_state(self, session_id: str) -> Optional[NegotiationSession]:
        return self._sessions.get(session_id)

    def reset(self, session_id: str) -> NegotiationSession:
        state = self._require_session(session_id)
        state.reset()
        return state

    # ---------- Quote workflow ----------
    async def request_quote(self, session_id: str, project: ProjectData) -> Optional[Quote]:
        state = self._require_session(session_id)
        state.epoch += 1
        epoch = state.epoch

        state.is_loading_quote = True
        state.error = None
        state.quote = None
        state.analysis = None
        # Kept even if generation fails: the stored brief is always the latest attempt.
        state.project = project
        state.transcript = []

        try:
            quote = await self.strategist.generate_quote(project)
            if _is_stale(state, epoch):
                logger.info("Dropping superseded quote for session %s", state.session_id)
                return None
            state.quote = quote
            state.transcript = [AssistantMessage(text=GREETING)]
            return quote
        except Exception:
            logger.error("Quote generation failed for session %s", state.session_id, exc_info=True)
            if not _is_stale(state, epoch):
                state.error = QUOTE_ERROR
            return None
        finally:
            if not _is_stale(state, epoch):
                state.is_loading_quote = False

    # ---------- Negotiation workflow ----------
    async def analyze_counter_offer(
        self, session_id: str, offer: ClientCounterOffer
    ) -> Optional[CounterOfferAnalysis]:
        state = self._require_session(session_id)
        if not state.has_quote:
            return None
        project, quote, epoch = state.project, state.quote, state.epoch

        state.is_loading_analysis = True
        state.error = None
        state.analysis = None

        try:
            analysis = await self.strategist.analyze_counter_offer(project, quote, offer)
            if _is_stale(state, epoch):
                logger.info("Dropping superseded analysis for session %s", state.session_id)
                return None
            state.analysis = analysis
            return analysis
        except Exception:
            logger.error("Counter-offer analysis failed for session %s", state.session_id, exc_info=True)
            if not _is_stale(state, epoch):
                state.error = ANALYSIS_ERROR
            return None
        finally:
            state.is_loading_analysis = False

    async def send_chat_message(self, session_id: str, text: str) -> Optional[AssistantMessage]:
        """
        Append the user's message right away, then the strategist's reply.
        A failed reply becomes an in-transcript apology; the session error slot is untouched.
        """
        state = self._require_session(session_id)
        if not state.has_quote:
            return None
        project, quote, epoch = state.project, state.quote, state.epoch

        state.transcript.append(UserMessage(text=text))
        history = list(state.transcript)
        state.is_chat_loading = True

        try:
            reply = await self.strategist.get_chat_response(project, quote, history)
            message = AssistantMessage(text=reply)
        except Exception:
            logger.error("Chat reply failed for session %s", state.session_id, exc_info=True)
            message = AssistantMessage(text=CHAT_FALLBACK)
        finally:
            state.is_chat_loading = False

        if _is_stale(state, epoch):
            logger.info("Dropping superseded chat reply for session %s", state.session_id)
            return None
        state.transcript.append(message)
        return message

    def open_chat(self, session_id: str) -> bool:
        state = self._require_session(session_id)
        if state.quote is None:
            return False
        state.is_chat_open = True
        return True

    def close_chat(self, session_id: str) -> None:
        self._require_session(session_id).is_chat_open = False

    # ---------- Export handoff ----------
    def open_export(self, session_id: str, quote: Optional[Quote]) -> ExportSnapshot:
        """Freeze `quote` (the one the caller is looking at) for the document."""
        state = self._require_session(session_id)
        if quote is None:
            raise ExportUnavailableError("No quote to export")
        snapshot = ExportSnapshot(quote=copy.deepcopy(quote), captured_at=datetime.now(timezone.utc))
        state.export_snapshot = snapshot
        state.is_export_open = True
        return snapshot

    async def complete_export(self, session_id: str, metadata: ExportMetadata) -> Optional[bytes]:
        state = self._require_session(session_id)
        snapshot = state.export_snapshot
        if snapshot is None:
            state.is_export_open = False
            return None
        try:
            return await asyncio.to_thread(self.document_generator, metadata, snapshot.quote)
        finally:
            # Only close the export we rendered; a reset or a newer open_export owns the slot now.
            if state.export_snapshot is snapshot:
                state.export_snapshot = None
                state.is_export_open = False

    def cancel_export(self, session_id: str) -> None:
        state = self._require_session(session_id)
        state.export_snapshot = None
        state.is_export_open = False

    # ---------- helpers ----------
    def _require_session(self, session_id: str) -> NegotiationSession:
        st = self._sessions.get(session_id)
        if not st:
            raise ValueError("Unknown session_id")
        return st

def _is_stale(state: NegotiationSession, epoch: int) -> bool:
    return state.epoch != epoch
