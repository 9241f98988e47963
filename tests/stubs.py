import json

from src.gptchess.llm_client import Completion


def reply(san: str, reason: str = "Controls the centre.") -> str:
    return json.dumps({"san": san, "reason": reason})


class StubClient:
    """Completion client that replays canned replies (or raises queued exceptions)."""

    def __init__(self, replies=(), tokens_used: int = 120):
        self.replies = list(replies)
        self.tokens_used = tokens_used
        self.calls = []

    def queue(self, *replies):
        self.replies.extend(replies)

    def complete(self, model, messages, max_tokens, temperature):
        self.calls.append({"model": model, "messages": messages, "max_tokens": max_tokens, "temperature": temperature})
        if not self.replies:
            raise AssertionError("StubClient ran out of replies")
        nxt = self.replies.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return Completion(text=nxt, tokens_used=self.tokens_used)
