"""
Rules: the python-chess board behind a small adapter.

- Owns a python-chess Board; applies moves given as squares, SAN or UCI.
- Enumerates legal moves (optionally from one square) with origin, destination and SAN.
- Serializes the position (FEN, move history, ASCII, piece listing) and exports PGN.

The controller and board view only talk to the board through this class.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Optional

import chess
import chess.pgn

from .errors import IllegalMoveError

PROMOTION_PIECES = ("q", "r", "b", "n")


def color_name(color: chess.Color) -> str:
    return "white" if color == chess.WHITE else "black"


def parse_color(name: str) -> chess.Color:
    name = str(name or "").strip().lower()
    if name in ("white", "w"):
        return chess.WHITE
    if name in ("black", "b"):
        return chess.BLACK
    raise ValueError(f"Unknown color: {name!r}")


@dataclass(frozen=True)
class LegalMove:
    from_square: str
    to_square: str
    san: str
    promotion: Optional[str] = None

    def uci(self) -> str:
        return f"{self.from_square}{self.to_square}{self.promotion or ''}"


class RulesEngine:
    """Thin wrapper around python-chess Board plus snapshot/PGN helpers."""

    def __init__(self, starting_fen: str | None = None):
        self._starting_fen = starting_fen
        self.board = chess.Board(fen=starting_fen) if starting_fen else chess.Board()
        self._headers: dict[str, str] = {}

    # ---------------- Lifecycle -----------------
    def reset(self, starting_fen: str | None = None) -> None:
        if starting_fen is not None:
            self._starting_fen = starting_fen
        self.board = chess.Board(fen=self._starting_fen) if self._starting_fen else chess.Board()
        self._headers = {}

    def set_headers(self, white: str = "?", black: str = "?", event: str = "GPT Chess", date: Optional[str] = None) -> None:
        date = date or datetime.date.today().strftime("%Y.%m.%d")
        self._headers.update({"Event": event, "Site": "?", "Date": date, "White": white, "Black": black})

    # ---------------- Move Application -----------------
    def apply_move(self, from_square: str, to_square: str, promotion: str | None = None) -> bool:
        """Apply a square-pair move. Returns False (board untouched) when it is not legal."""
        try:
            mv = chess.Move(
                chess.parse_square(from_square),
                chess.parse_square(to_square),
                promotion=chess.Piece.from_symbol(promotion).piece_type if promotion else None,
            )
        except ValueError:
            return False
        if mv not in self.board.legal_moves:
            return False
        self.board.push(mv)
        return True

    def apply_san(self, san: str) -> str:
        """Apply a SAN move and return its canonical SAN; raises IllegalMoveError."""
        try:
            mv = self.board.parse_san(san)
        except ValueError:
            raise IllegalMoveError(san, "bad_san") from None
        # parse_san accepts null moves ("--", "0000")
        if mv not in self.board.legal_moves:
            raise IllegalMoveError(san)
        canonical = self.board.san(mv)
        self.board.push(mv)
        return canonical

    def apply_text(self, text: str) -> str:
        """Apply a typed move in UCI or SAN; returns SAN. Raises IllegalMoveError."""
        raw = (text or "").strip()
        if not raw:
            raise IllegalMoveError(raw, "missing_move")
        mv = None
        try:
            candidate = chess.Move.from_uci(raw.lower())
            if candidate in self.board.legal_moves:
                mv = candidate
        except ValueError:
            mv = None
        if mv is None:
            try:
                mv = self.board.parse_san(raw)
            except ValueError:
                raise IllegalMoveError(raw) from None
        if mv not in self.board.legal_moves:
            raise IllegalMoveError(raw)
        san = self.board.san(mv)
        self.board.push(mv)
        return san

    # ---------------- Queries -----------------
    def legal_moves(self, square: str | None = None) -> list[LegalMove]:
        origin = chess.parse_square(square) if square else None
        moves = []
        for mv in self.board.legal_moves:
            if origin is not None and mv.from_square != origin:
                continue
            moves.append(LegalMove(
                from_square=chess.square_name(mv.from_square),
                to_square=chess.square_name(mv.to_square),
                san=self.board.san(mv),
                promotion=chess.piece_symbol(mv.promotion) if mv.promotion else None,
            ))
        return moves

    def legal_sans(self) -> list[str]:
        return [m.san for m in self.legal_moves()]

    def turn(self) -> chess.Color:
        return self.board.turn

    def piece_at(self, square: str) -> Optional[chess.Piece]:
        return self.board.piece_at(chess.parse_square(square))

    def is_checkmate(self) -> bool:
        return self.board.is_checkmate()

    def is_stalemate(self) -> bool:
        return self.board.is_stalemate()

    def is_threefold_repetition(self) -> bool:
        return self.board.is_repetition(3)

    def is_insufficient_material(self) -> bool:
        return self.board.is_insufficient_material()

    def is_draw(self) -> bool:
        """Draws not covered by the specific predicates above (move-count rules, fivefold)."""
        return (
            self.board.is_fifty_moves()
            or self.board.is_seventyfive_moves()
            or self.board.is_fivefold_repetition()
        )

    def is_game_over(self) -> bool:
        return (
            self.is_checkmate()
            or self.is_stalemate()
            or self.is_insufficient_material()
            or self.is_threefold_repetition()
            or self.is_draw()
        )

    # ---------------- Snapshots -----------------
    def fen(self) -> str:
        return self.board.fen()

    def move_history(self) -> str:
        """SAN move list with move numbers, no headers or result: '1. e4 e5 2. Nf3'."""
        replay = self.board.root()
        parts: list[str] = []
        for mv in self.board.move_stack:
            san = replay.san(mv)
            if replay.turn == chess.WHITE:
                parts.append(f"{replay.fullmove_number}. {san}")
            elif not parts:
                parts.append(f"{replay.fullmove_number}... {san}")
            else:
                parts.append(san)
            replay.push(mv)
        return " ".join(parts)

    def ascii(self) -> str:
        return str(self.board).replace(" ", "")

    def describe(self) -> str:
        """Plain-language piece listing, one sentence per side."""
        sides = {chess.WHITE: [], chess.BLACK: []}
        for rank in range(7, -1, -1):
            for file in range(8):
                sq = chess.square(file, rank)
                piece = self.board.piece_at(sq)
                if piece:
                    sides[piece.color].append(f"{chess.piece_name(piece.piece_type)} at {chess.square_name(sq)}")
        return f"White pieces: {', '.join(sides[chess.WHITE])}.\nBlack pieces: {', '.join(sides[chess.BLACK])}."

    def result(self) -> str:
        if self.is_checkmate():
            return "0-1" if self.board.turn == chess.WHITE else "1-0"
        if self.is_game_over():
            return "1/2-1/2"
        return "*"

    def pgn(self, result: str | None = None) -> str:
        game = chess.pgn.Game.from_board(self.board)
        for k, v in self._headers.items():
            game.headers[k] = v
        game.headers["Result"] = result or self.result()
        exporter = chess.pgn.StringExporter(headers=True, variations=False, comments=False)
        return game.accept(exporter)
