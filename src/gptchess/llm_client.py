from __future__ import annotations
"""
LLM client facade over an OpenAI-compatible chat completions endpoint.

The rest of the code should not care which SDK is in use. Callers hand over
`model` + role-tagged `messages` and get back the raw text plus token usage.
Failures surface as TransportError; nothing here retries.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol
import logging

import openai
from openai import OpenAI

from .config import SETTINGS
from .errors import TransportError

log = logging.getLogger("llm_client")


@dataclass(frozen=True)
class Completion:
    text: str
    tokens_used: int = 0


class CompletionClient(Protocol):
    def complete(self, model: str, messages: List[Dict[str, str]], max_tokens: int, temperature: float) -> Completion:
        ...


class OpenAICompletionClient:
    """Chat completions over the OpenAI SDK (base_url configurable)."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, timeout_s: Optional[float] = None):
        api_key = api_key or SETTINGS.llm_api_key
        if not api_key:
            raise TransportError("An API key is required; set GPTCHESS_API_KEY or pass one with the request.")
        self.timeout_s = timeout_s or SETTINGS.timeout_s
        self._client = OpenAI(api_key=api_key, base_url=base_url or SETTINGS.api_base or None, max_retries=0)

    def complete(self, model: str, messages: List[Dict[str, str]], max_tokens: int, temperature: float) -> Completion:
        if not model:
            raise TransportError("Model is required; set GPTCHESS_MODEL or pass one with the request.")
        log.info("Calling completion API model=%s messages=%d", model, len(messages))
        try:
            rsp = self._client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
                timeout=self.timeout_s,
            )
        except openai.OpenAIError as e:
            log.exception("Completion request failed")
            raise TransportError(str(e)) from e
        if not rsp.choices:
            raise TransportError("No choices returned from the completion API")
        text = _extract_text(rsp)
        if not text:
            raise TransportError("No message returned from the completion API")
        usage = getattr(rsp, "usage", None)
        return Completion(text=text, tokens_used=getattr(usage, "total_tokens", 0) or 0)


def _extract_text(rsp) -> str:
    msg = rsp.choices[0].message
    content = getattr(msg, "content", None)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for c in content:
            if isinstance(c, dict):
                if c.get("type") == "text" and isinstance(c.get("text"), str):
                    parts.append(c["text"])
                continue
            t = getattr(c, "text", None)
            if isinstance(t, str):
                parts.append(t)
        return "\n".join(parts)
    return ""
