from __future__ import annotations
"""
LLM-backed opponent session.

- Keeps a short conversation history (oldest pairs evicted first) so the model
  sees its own recent moves.
- One request per call: build prompt, send, parse, check the proposal against
  the legal move list.
- Illegal proposals are remembered for the rest of the turn and fed back into
  the next prompt; the caller decides whether to ask again.
"""
import enum
import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional

from .config import SETTINGS
from .errors import RequestInFlightError
from .llm_client import CompletionClient
from .prompting import PromptConfig, PromptContext, build_user_prompt, estimate_tokens
from .reply_parser import parse_reply

log = logging.getLogger("opponent")


class SessionState(enum.Enum):
    IDLE = "idle"
    AWAITING_REPLY = "awaiting_reply"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class HistoryEntry:
    user: str
    assistant: str


@dataclass(frozen=True)
class MoveOutcome:
    accepted: bool
    san: str
    reason: str
    prompt: str
    raw: str
    tokens_used: int = 0


class OpponentSession:
    def __init__(
        self,
        client: CompletionClient,
        model: Optional[str] = None,
        prompt_cfg: Optional[PromptConfig] = None,
        history_limit: Optional[int] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        self.client = client
        self.model = model or SETTINGS.model
        self.prompt_cfg = prompt_cfg or PromptConfig()
        self.history_limit = history_limit if history_limit is not None else SETTINGS.history_limit
        self.temperature = SETTINGS.temperature if temperature is None else temperature
        self.max_tokens = max_tokens or SETTINGS.max_tokens
        self.history: Deque[HistoryEntry] = deque(maxlen=self.history_limit)
        self.invalid_attempts: List[str] = []
        self.state = SessionState.IDLE

    # -- lifecycle ---------------------------------------------------------
    def clear(self) -> None:
        """Forget everything; called when a new game starts."""
        self.history.clear()
        self.invalid_attempts = []
        self.state = SessionState.IDLE

    def begin_turn(self) -> None:
        self.invalid_attempts = []
        if self.state is not SessionState.AWAITING_REPLY:
            self.state = SessionState.IDLE

    # -- prompt ------------------------------------------------------------
    def user_prompt(self, ctx: PromptContext) -> str:
        return build_user_prompt(ctx, self.invalid_attempts, self.prompt_cfg)

    def messages(self, user_prompt: str) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": self.prompt_cfg.system_instructions}]
        for entry in self.history:
            messages.append({"role": "user", "content": entry.user})
            messages.append({"role": "assistant", "content": entry.assistant})
        messages.append({"role": "user", "content": user_prompt})
        return messages

    def estimated_tokens(self, ctx: PromptContext) -> int:
        text = "\n".join(m["content"] for m in self.messages(self.user_prompt(ctx)))
        return estimate_tokens(text)

    # -- interaction -------------------------------------------------------
    def request_move(self, ctx: PromptContext) -> MoveOutcome:
        """Ask the model for one move. Raises ReplyParseError / TransportError."""
        if self.state is SessionState.AWAITING_REPLY:
            raise RequestInFlightError()
        prompt = self.user_prompt(ctx)
        messages = self.messages(prompt)
        log.debug("Prompt for %s:\n%s", ctx.ai_color, prompt)
        self.state = SessionState.AWAITING_REPLY
        try:
            completion = self.client.complete(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            reply = parse_reply(completion.text)
        except Exception:
            self.state = SessionState.IDLE
            raise
        san = reply.san if isinstance(reply.san, str) else str(reply.san)
        reason = reply.reason if isinstance(reply.reason, str) else str(reply.reason)

        if san not in ctx.legal_moves:
            self.invalid_attempts.append(san)
            self.state = SessionState.REJECTED
            log.info("Model proposed illegal move %s (attempts this turn: %s)", san, ", ".join(self.invalid_attempts))
            return MoveOutcome(False, san, reason, prompt, completion.text, completion.tokens_used)

        self.history.append(HistoryEntry(user=prompt, assistant=reply.to_json()))
        self.invalid_attempts = []
        self.state = SessionState.ACCEPTED
        log.info("Model plays %s", san)
        return MoveOutcome(True, san, reason, prompt, completion.text, completion.tokens_used)
