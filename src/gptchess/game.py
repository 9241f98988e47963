"""
Game controller: one human against the model, one board.

- TurnState: explicit turn enum consumed by the board view, the web layer and the CLI.
- GameController: starts/resigns games, applies human and opponent moves, drives the
  OpponentSession and classifies finished games into Outcome messages.
- Notifications queue up as toast-style messages for the front-end to drain.

"""
from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional

import chess

from .errors import GameStateError, IllegalMoveError, ReplyParseError, TransportError
from .opponent import MoveOutcome, OpponentSession, SessionState
from .prompting import PromptContext, estimate_cost
from .rules import RulesEngine, color_name, parse_color

log = logging.getLogger("GameController")


class TurnState(enum.Enum):
    NOT_STARTED = "not_started"
    AWAITING_HUMAN_MOVE = "awaiting_human_move"
    AWAITING_OPPONENT_MOVE = "awaiting_opponent_move"
    GAME_OVER = "game_over"
    RESIGNED = "resigned"


_CAN_START = (TurnState.NOT_STARTED, TurnState.GAME_OVER, TurnState.RESIGNED)
_IN_PROGRESS = (TurnState.AWAITING_HUMAN_MOVE, TurnState.AWAITING_OPPONENT_MOVE)


class Outcome(enum.Enum):
    HUMAN_LOST = "human_lost"
    HUMAN_WON = "human_won"
    DRAW = "draw"
    STALEMATE = "stalemate"
    THREEFOLD_REPETITION = "threefold_repetition"
    INSUFFICIENT_MATERIAL = "insufficient_material"
    UNKNOWN = "unknown"


OUTCOME_MESSAGES = {
    Outcome.HUMAN_LOST: ("error", "You lost to Checkmate!"),
    Outcome.HUMAN_WON: ("success", "You won by Checkmate!"),
    Outcome.DRAW: ("info", "Game ended in a draw!"),
    Outcome.STALEMATE: ("info", "Game ended in a stalemate!"),
    Outcome.THREEFOLD_REPETITION: ("info", "Game ended in a threefold repetition!"),
    Outcome.INSUFFICIENT_MATERIAL: ("info", "Game ended in insufficient material (K vs. K, K vs. KB, or K vs. KN)"),
    Outcome.UNKNOWN: ("info", "Game ended in an unknown way!"),
}


@dataclass(frozen=True)
class Notification:
    level: str  # "success" | "error" | "info"
    message: str

    def to_dict(self) -> dict:
        return {"level": self.level, "message": self.message}


@dataclass
class Snapshot:
    fen: str = chess.STARTING_FEN
    pgn: str = ""
    ascii: str = ""
    board_description: str = ""
    valid_moves: List[str] = field(default_factory=list)


def classify_outcome(rules: RulesEngine, human_color: chess.Color) -> Outcome:
    """Map a finished board to an Outcome from the human's point of view."""
    if rules.is_checkmate():
        # the side to move is the one that got mated
        return Outcome.HUMAN_LOST if rules.turn() == human_color else Outcome.HUMAN_WON
    if rules.is_stalemate():
        return Outcome.STALEMATE
    if rules.is_threefold_repetition():
        return Outcome.THREEFOLD_REPETITION
    if rules.is_insufficient_material():
        return Outcome.INSUFFICIENT_MATERIAL
    if rules.is_draw():
        return Outcome.DRAW
    return Outcome.UNKNOWN


class GameController:
    def __init__(self, opponent: OpponentSession, rules: RulesEngine | None = None):
        self.log = log
        self.opponent = opponent
        self.rules = rules or RulesEngine()
        self.state = TurnState.NOT_STARTED
        self.human_color: chess.Color = chess.WHITE
        self.outcome: Optional[Outcome] = None
        self.ai_message = ""
        self.snapshot = Snapshot()
        self.notifications: List[Notification] = []
        self._refresh()

    # ---------------- Helpers -----------------
    @property
    def ai_color(self) -> chess.Color:
        return not self.human_color

    def is_human_turn(self) -> bool:
        return self.state is TurnState.AWAITING_HUMAN_MOVE

    def is_finished(self) -> bool:
        return self.state in (TurnState.GAME_OVER, TurnState.RESIGNED)

    def notify(self, level: str, message: str) -> None:
        self.notifications.append(Notification(level, message))

    def drain_notifications(self) -> List[Notification]:
        out, self.notifications = self.notifications, []
        return out

    def _require(self, *states: TurnState) -> None:
        if self.state not in states:
            raise GameStateError(f"Not allowed while {self.state.value}")

    def _refresh(self) -> None:
        r = self.rules
        self.snapshot = Snapshot(
            fen=r.fen(),
            pgn=r.move_history(),
            ascii=r.ascii(),
            board_description=r.describe(),
            valid_moves=r.legal_sans(),
        )

    def _after_move(self) -> None:
        """Refresh snapshots, then either finish the game or hand the turn over."""
        self._refresh()
        if self.rules.is_game_over():
            self._game_over()
        elif self.rules.turn() == self.human_color:
            self.state = TurnState.AWAITING_HUMAN_MOVE
        else:
            self.state = TurnState.AWAITING_OPPONENT_MOVE
            self.opponent.begin_turn()

    def _game_over(self) -> None:
        self.state = TurnState.GAME_OVER
        self.outcome = classify_outcome(self.rules, self.human_color)
        level, message = OUTCOME_MESSAGES[self.outcome]
        self.notify(level, message)
        self.log.info("Game finished outcome=%s result=%s", self.outcome.value, self.rules.result())

    # ---------------- Lifecycle -----------------
    def start_game(self, color: str = "white") -> None:
        """Start a new game with the human playing `color` ('white', 'black' or 'random')."""
        self._require(*_CAN_START)
        if str(color).lower() == "random":
            color = random.choice(["white", "black"])
        self.human_color = parse_color(color)
        self.rules.reset()
        human, model = "Human", self.opponent.model
        if self.human_color == chess.WHITE:
            self.rules.set_headers(white=human, black=model)
        else:
            self.rules.set_headers(white=model, black=human)
        self.opponent.clear()
        self.outcome = None
        self.ai_message = ""
        self.notifications = []
        self.log.info("New game: human plays %s against %s", color_name(self.human_color), self.opponent.model)
        self.state = TurnState.AWAITING_HUMAN_MOVE
        self._after_move()

    def resign(self) -> None:
        self._require(*_IN_PROGRESS)
        self.state = TurnState.RESIGNED
        self.notify("info", "You resigned.")
        self.log.info("Human resigned after %d plies", len(self.rules.board.move_stack))

    # ---------------- Human Moves -----------------
    def human_move(self, from_square: str, to_square: str, promotion: str | None = None) -> None:
        self._require(TurnState.AWAITING_HUMAN_MOVE)
        if not self.rules.apply_move(from_square, to_square, promotion):
            raise IllegalMoveError(f"{from_square}{to_square}{promotion or ''}")
        self.log.info("Human plays %s%s%s", from_square, to_square, promotion or "")
        self._after_move()

    def human_move_text(self, text: str) -> str:
        """Apply a typed SAN/UCI move for the human; returns SAN."""
        self._require(TurnState.AWAITING_HUMAN_MOVE)
        san = self.rules.apply_text(text)
        self.log.info("Human plays %s", san)
        self._after_move()
        return san

    # ---------------- Opponent Moves -----------------
    def prompt_context(self) -> PromptContext:
        s = self.snapshot
        return PromptContext(
            fen=s.fen,
            pgn=s.pgn,
            legal_moves=tuple(s.valid_moves),
            ai_color=color_name(self.ai_color),
            ascii=s.ascii,
            board_description=s.board_description,
        )

    def current_prompt(self) -> str:
        return self.opponent.user_prompt(self.prompt_context())

    def estimated_tokens(self) -> int:
        return self.opponent.estimated_tokens(self.prompt_context())

    def request_opponent_move(self) -> MoveOutcome:
        """Ask the model once. Accepted moves are applied; rejected ones are fed back next time."""
        self._require(TurnState.AWAITING_OPPONENT_MOVE)
        try:
            outcome = self.opponent.request_move(self.prompt_context())
        except (ReplyParseError, TransportError) as e:
            self.log.warning("Opponent request failed: %s", e)
            self.notify("error", f"Something went wrong, please try again later: {e}")
            raise
        cost = estimate_cost(self.opponent.model, outcome.tokens_used)
        usage = f"Tokens Used: {outcome.tokens_used} (${cost:.4f})"
        if not outcome.accepted:
            self.notify("error", f"The AI tried to make the invalid move {outcome.san}\nUpdating prompt to help it.\n{usage}")
            return outcome
        self.notify("success", f"The AI makes the move: {outcome.san}\n{usage}")
        self._apply_opponent_san(outcome.san, outcome.reason)
        return outcome

    def submit_opponent_move(self, san: str, reason: str = "") -> str:
        """Copy-prompt mode: the user pastes the move the model gave them."""
        self._require(TurnState.AWAITING_OPPONENT_MOVE)
        san = (san or "").strip()
        if san not in self.snapshot.valid_moves:
            raise IllegalMoveError(san)
        return self._apply_opponent_san(san, reason)

    def _apply_opponent_san(self, san: str, reason: str) -> str:
        applied = self.rules.apply_san(san)
        self.opponent.begin_turn()
        self.ai_message = reason
        self.log.info("Opponent plays %s", applied)
        self._after_move()
        return applied

    # ---------------- Export -----------------
    def pgn(self) -> str:
        result = None
        if self.state is TurnState.RESIGNED:
            result = "0-1" if self.human_color == chess.WHITE else "1-0"
        return self.rules.pgn(result=result)

    def to_dict(self) -> dict:
        s = self.snapshot
        return {
            "state": self.state.value,
            "human_color": color_name(self.human_color),
            "ai_color": color_name(self.ai_color),
            "side_to_move": color_name(self.rules.turn()),
            "fen": s.fen,
            "pgn": s.pgn,
            "ascii": s.ascii,
            "board_description": s.board_description,
            "valid_moves": s.valid_moves,
            "ai_message": self.ai_message,
            "invalid_attempts": list(self.opponent.invalid_attempts),
            "opponent_request_in_flight": self.opponent.state is SessionState.AWAITING_REPLY,
            "outcome": self.outcome.value if self.outcome else None,
            "model": self.opponent.model,
        }
