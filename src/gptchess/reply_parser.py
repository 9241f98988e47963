"""
Reply parsing for opponent responses.

The model is asked for a single JSON object {"san": ..., "reason": ...}. Replies
often wrap it in prose or code fences, so the object is taken as the span from
the first "{" to the last "}". Legality is not checked here.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from .errors import ReplyParseError

log = logging.getLogger("reply_parser")


@dataclass(frozen=True)
class MoveReply:
    san: str
    reason: str

    def to_json(self) -> str:
        return json.dumps({"san": self.san, "reason": self.reason}, separators=(",", ":"), ensure_ascii=False)


def parse_reply(raw: str) -> MoveReply:
    text = raw or ""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise ReplyParseError("No JSON object found in reply", raw=text)
    blob = text[start:end + 1]
    log.debug("JSON: %s", blob)
    try:
        data = json.loads(blob)
    except json.JSONDecodeError as e:
        raise ReplyParseError(f"Reply is not valid JSON: {e.msg}", raw=text) from e
    except RecursionError as e:
        raise ReplyParseError("Reply JSON is nested too deeply", raw=text) from e
    if not isinstance(data, dict):
        raise ReplyParseError("Reply JSON is not an object", raw=text)
    if "san" not in data or "reason" not in data:
        raise ReplyParseError("Reply JSON must contain 'san' and 'reason'", raw=text)
    return MoveReply(san=data["san"], reason=data["reason"])
