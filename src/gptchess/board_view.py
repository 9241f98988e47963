"""
Board view: the drag-and-drop rules of the board, independent of any widget.

The front-end reports drag-start / drag-move / drop events with square names;
this class answers which squares to highlight, whether a drop is legal, and
holds a pending pawn promotion until a piece kind is chosen.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import chess

from .errors import GptChessError
from .game import GameController, TurnState
from .rules import PROMOTION_PIECES

log = logging.getLogger("board_view")

WHITE_SQUARE_GREY = "#a9a9a9"
BLACK_SQUARE_GREY = "#696969"


class DropAction(enum.Enum):
    SNAPBACK = "snapback"
    MOVED = "moved"
    PROMOTION = "promotion"  # waiting on the promotion dialog


@dataclass(frozen=True)
class DropResult:
    action: DropAction
    source: str
    target: str
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"action": self.action.value, "source": self.source, "target": self.target, "error": self.error}


@dataclass(frozen=True)
class Highlight:
    source: str
    targets: List[str] = field(default_factory=list)

    def colors(self) -> dict:
        return {sq: highlight_color(sq) for sq in [self.source, *self.targets]}


def highlight_color(square: str) -> str:
    """Grey shade for a highlighted square, lighter on light squares."""
    sq = chess.parse_square(square)
    light = (chess.square_file(sq) + chess.square_rank(sq)) % 2 == 1
    return WHITE_SQUARE_GREY if light else BLACK_SQUARE_GREY


def _valid_square(square: str) -> bool:
    return square in chess.SQUARE_NAMES


class BoardView:
    def __init__(self, controller: GameController):
        self.controller = controller
        self.pending_promotion: Optional[tuple[str, str]] = None

    @property
    def promotion_dialog_open(self) -> bool:
        return self.pending_promotion is not None

    # -- drag ----------------------------------------------------------
    def can_drag(self, square: str) -> bool:
        ctl = self.controller
        if ctl.state is not TurnState.AWAITING_HUMAN_MOVE or ctl.rules.is_game_over():
            return False
        if self.promotion_dialog_open or not _valid_square(square):
            return False
        piece = ctl.rules.piece_at(square)
        if piece is None or piece.color != ctl.rules.turn():
            return False
        return bool(ctl.rules.legal_moves(square))

    def legal_targets(self, square: str) -> List[str]:
        if not self.can_drag(square):
            return []
        targets: List[str] = []
        for mv in self.controller.rules.legal_moves(square):
            if mv.to_square not in targets:
                targets.append(mv.to_square)
        return targets

    def drag_start(self, square: str) -> Optional[Highlight]:
        """Squares to grey out for a drag from `square`; None means the drag is refused."""
        if not self.can_drag(square):
            return None
        return Highlight(source=square, targets=self.legal_targets(square))

    def drag_move(self, source: str, target: str) -> bool:
        """True when hovering `target` would be a legal drop (green edge); False for red."""
        return target in self.legal_targets(source)

    # -- drop ----------------------------------------------------------
    def is_promotion(self, source: str, target: str) -> bool:
        piece = self.controller.rules.piece_at(source)
        if piece is None or piece.piece_type != chess.PAWN:
            return False
        last_rank = "8" if piece.color == chess.WHITE else "1"
        return target.endswith(last_rank)

    def drop(self, source: str, target: str) -> DropResult:
        if source == target or target not in self.legal_targets(source):
            return DropResult(DropAction.SNAPBACK, source, target)
        if self.is_promotion(source, target):
            self.pending_promotion = (source, target)
            log.debug("Promotion pending %s-%s", source, target)
            return DropResult(DropAction.PROMOTION, source, target)
        return self._complete(source, target, None)

    def choose_promotion(self, piece: str) -> DropResult:
        if self.pending_promotion is None:
            raise GptChessError("No promotion is pending")
        kind = (piece or "").strip().lower()
        if kind not in PROMOTION_PIECES:
            raise ValueError(f"Promotion piece must be one of {', '.join(PROMOTION_PIECES)}")
        source, target = self.pending_promotion
        self.pending_promotion = None
        return self._complete(source, target, kind)

    def cancel_promotion(self) -> Optional[DropResult]:
        if self.pending_promotion is None:
            return None
        source, target = self.pending_promotion
        self.pending_promotion = None
        return DropResult(DropAction.SNAPBACK, source, target)

    def _complete(self, source: str, target: str, promotion: Optional[str]) -> DropResult:
        try:
            self.controller.human_move(source, target, promotion)
        except GptChessError as e:
            log.info("Drop %s-%s rejected: %s", source, target, e)
            return DropResult(DropAction.SNAPBACK, source, target, error=str(e))
        return DropResult(DropAction.MOVED, source, target)
