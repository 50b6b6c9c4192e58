from __future__ import annotations
import logging
import os
import requests
from typing import List, Optional, Dict, Any
from dotenv import load_dotenv
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"

class OpenRouterClient:
    """
    Minimal OpenRouter chat client.
    Docs: https://openrouter.ai/docs/api-reference/chat-completion
    """
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        api_url: Optional[str] = None,
        referer: Optional[str] = None,
        title: Optional[str] = None,
        timeout: float = 60.0,
    ):
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        if not self.api_key:
            raise RuntimeError("Missing OPENROUTER_API_KEY")

        self.api_url = api_url or os.getenv("OPENROUTER_URL", DEFAULT_OPENROUTER_URL)

        # "openrouter/auto" works when unsure about model access
        self.model = model or os.getenv("OPENROUTER_MODEL", "openai/gpt-4o-mini")

        # Optional attribution headers recommended by OpenRouter
        self.referer = referer or os.getenv("APP_REFERER")
        self.title = title or os.getenv("APP_TITLE", "Negotiation Strategist")
        self.timeout = timeout

        masked = (self.api_key[:6] + "..." + self.api_key[-4:]) if len(self.api_key) > 10 else "***"
        logger.info(
            "OpenRouter client ready (key=%s, model=%s, url=%s, referer=%s, title=%s)",
            masked, self.model, self.api_url, self.referer, self.title,
        )

    def _headers(self) -> Dict[str, str]:
        h = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.referer:
            h["HTTP-Referer"] = self.referer
        if self.title:
            h["X-Title"] = self.title
        return h

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.2,
        extra: Optional[Dict[str, Any]] = None,
    ) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if extra:
            payload.update(extra)

        resp = requests.post(self.api_url, json=payload, headers=self._headers(), timeout=self.timeout)

        if resp.status_code != 200:
            raise RuntimeError(f"OpenRouter error {resp.status_code}: {resp.text}")

        data = resp.json()
        return data["choices"][0]["message"]["content"]
