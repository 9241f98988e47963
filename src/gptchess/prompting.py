"""
Prompt builders and config for opponent move requests using a modular template.

The user prompt is rendered from a template with placeholders that are
substituted per turn; optional sections (board diagram, piece listing, legal
move list, rejected attempts) are inserted through {EXTRA_SECTIONS}.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

DEFAULT_SYSTEM = """You are an expert at playing chess.
Given the FEN of the board and the moves played so far, suggest the best move to make next from the current position.
Use SAN for the move syntax. For example, e4, Nf3, Bb5, etc.

Output your results using the following single blob of JSON. Do not include any other information.

{
"san": "The move in SAN format",
"reason": "Why this is a good move"
}"""

JSON_REQUEST = """Output the best move to follow this position using the following single blob of JSON. Do not include any other information.

{
  "san": "The move in SAN format",
  "reason": "Why this is a good move"
}"""

DEFAULT_TEMPLATE = """You are playing {SIDE} and it is your turn.

This is the current state of the game:

FEN: {FEN}
PGN: {PGN}
{EXTRA_SECTIONS}
{JSON_REQUEST}"""

_PUNCT_RE = re.compile(r"[\s.,!?;]")


@dataclass
class PromptConfig:
    """Configuration for shaping move prompts."""

    system_instructions: str = DEFAULT_SYSTEM
    template: str = DEFAULT_TEMPLATE
    include_board_diagram: bool = False
    include_board_description: bool = False
    always_list_legal_moves: bool = False


@dataclass(frozen=True)
class PromptContext:
    """Everything the prompt needs about the position for one opponent turn."""

    fen: str
    pgn: str
    legal_moves: Sequence[str]
    ai_color: str  # "white" | "black"
    ascii: Optional[str] = None
    board_description: Optional[str] = None


def render_custom_prompt(template: str, values: Dict[str, str]) -> str:
    """Replace known placeholders in the template. Unknown tokens are left intact."""
    rendered = template or ""
    for key, val in values.items():
        rendered = rendered.replace(f"{{{key}}}", val)
    return rendered


def build_user_prompt(ctx: PromptContext, invalid_attempts: Sequence[str] = (), cfg: PromptConfig | None = None) -> str:
    """Build the per-turn instruction string. Pure; identical inputs give identical text."""
    cfg = cfg or PromptConfig()
    sections: List[str] = []
    if cfg.include_board_diagram and ctx.ascii:
        sections.append(f"Board:\n{ctx.ascii}")
    if cfg.include_board_description and ctx.board_description:
        sections.append(ctx.board_description)
    if invalid_attempts or cfg.always_list_legal_moves:
        sections.append(f"Only use the moves in this list: {', '.join(ctx.legal_moves)}")
    if invalid_attempts:
        sections.append(
            "You have already suggested these moves, which are not legal in this position: "
            f"{', '.join(invalid_attempts)}. Do not suggest them again."
        )
    extra = "".join(f"\n{s}\n" for s in sections)
    values = {
        "SIDE": ctx.ai_color,
        "FEN": ctx.fen,
        "PGN": ctx.pgn,
        "EXTRA_SECTIONS": extra,
        "JSON_REQUEST": JSON_REQUEST,
    }
    return render_custom_prompt(cfg.template, values)


def estimate_tokens(text: str) -> int:
    """Rough token count for the assembled request: max of a word-based and a char-based guess."""
    word_est = len(text.split(" ")) / 0.75
    char_est = len(text) / 4.0
    extra = len(_PUNCT_RE.findall(text))
    return int(math.floor(max(word_est, char_est) + extra + 0.5))


# Dollars per 1K tokens; anything unlisted uses the default.
MODEL_PRICES_PER_1K = {"gpt-4": 0.03}
DEFAULT_PRICE_PER_1K = 0.002


def estimate_cost(model: str, tokens_used: int) -> float:
    return MODEL_PRICES_PER_1K.get(model, DEFAULT_PRICE_PER_1K) * (tokens_used / 1000)
