"""
Minimal Flask API that exposes a human vs AI chess game to the browser UI.

Endpoints:
- POST   /api/games                          -> start a game (human_plays: white|black|random)
- GET    /api/games/<id>                     -> current snapshot
- POST   /api/games/<id>/resign              -> resign the game
- POST   /api/games/<id>/drag-start          -> highlight squares for a drag (or refuse it)
- POST   /api/games/<id>/drag-move           -> whether hovering a square is a legal drop
- POST   /api/games/<id>/drop                -> apply a drop (snapback / moved / promotion)
- POST   /api/games/<id>/promotion           -> choose the promotion piece (DELETE cancels)
- POST   /api/games/<id>/move                -> typed human move (SAN or UCI)
- GET    /api/games/<id>/prompt              -> the prompt that will be sent to the AI
- POST   /api/games/<id>/opponent            -> ask the AI for its move (model, api_key optional)
- POST   /api/games/<id>/opponent/manual     -> paste the AI's move (copy-prompt mode)
- GET    /api/games/<id>/pgn                 -> PGN export with headers

Games live in memory only; every response carries the drained toast notifications.
"""
from __future__ import annotations

import argparse
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Callable, Dict, Optional

from flask import Flask, jsonify, request

from src.gptchess.board_view import BoardView
from src.gptchess.config import SETTINGS
from src.gptchess.errors import (
    GameStateError,
    GptChessError,
    IllegalMoveError,
    ReplyParseError,
    RequestInFlightError,
    TransportError,
)
from src.gptchess.game import GameController
from src.gptchess.llm_client import CompletionClient, OpenAICompletionClient
from src.gptchess.opponent import OpponentSession

log = logging.getLogger("server")

app = Flask(__name__)
games_lock = threading.Lock()
GAMES: Dict[str, dict] = {}

# Tests swap this for a stub; signature is (api_key) -> CompletionClient.
app.config.setdefault("COMPLETION_CLIENT_FACTORY", lambda api_key: OpenAICompletionClient(api_key=api_key))


class _LazyClient:
    """Builds the real completion client on first use so a game can start without an API key."""

    def __init__(self, factory: Callable[[Optional[str]], CompletionClient]):
        self.factory = factory
        self.api_key: Optional[str] = None
        self._client: Optional[CompletionClient] = None

    def set_api_key(self, api_key: Optional[str]) -> None:
        if api_key and api_key != self.api_key:
            self.api_key = api_key
            self._client = None

    def complete(self, model, messages, max_tokens, temperature):
        if self._client is None:
            self._client = self.factory(self.api_key)
        return self._client.complete(model=model, messages=messages, max_tokens=max_tokens, temperature=temperature)


def _cleanup_stale_games(max_age_s: int | None = None):
    max_age_s = SETTINGS.game_ttl_s if max_age_s is None else max_age_s
    now = time.time()
    with games_lock:
        expired = [gid for gid, g in GAMES.items() if now - g.get("updated_at", now) > max_age_s]
        for gid in expired:
            GAMES.pop(gid, None)


def _get_game(game_id: str) -> Optional[dict]:
    _cleanup_stale_games()
    with games_lock:
        game = GAMES.get(game_id)
    if game:
        game["updated_at"] = time.time()
    return game


def _serialize(game: dict, drain: bool = True, **extra) -> dict:
    ctl: GameController = game["controller"]
    view: BoardView = game["view"]
    body = {"game_id": game["id"], **ctl.to_dict(), "promotion_pending": view.promotion_dialog_open}
    body.update(extra)
    body["notifications"] = [n.to_dict() for n in ctl.drain_notifications()] if drain else []
    return body


def _error(game: Optional[dict], exc: Exception):
    if isinstance(exc, RequestInFlightError):
        status, code = 409, "request_in_flight"
    elif isinstance(exc, GameStateError):
        status, code = 409, "invalid_state"
    elif isinstance(exc, IllegalMoveError):
        status, code = 400, exc.reason
    elif isinstance(exc, (ReplyParseError, TransportError)):
        status, code = 502, "opponent_failed"
    else:
        status, code = 400, "bad_request"
    body = {"error": code, "message": str(exc)}
    if game:
        body["notifications"] = [n.to_dict() for n in game["controller"].drain_notifications()]
    return jsonify(body), status


@contextmanager
def _reading(game: dict):
    """Take the game lock only if it is free; yields whether it was taken.

    An opponent request holds the lock for the whole network call, so readers
    must not queue behind it.
    """
    acquired = game["lock"].acquire(blocking=False)
    try:
        yield acquired
    finally:
        if acquired:
            game["lock"].release()


def _busy():
    return jsonify({"error": "request_in_flight", "message": "Another request for this game is still running."}), 409


def _not_found():
    return jsonify({"error": "not found"}), 404


@app.route("/api/games", methods=["POST"])
def create_game():
    _cleanup_stale_games()
    data = request.get_json(silent=True) or {}
    model = data.get("model") or SETTINGS.model
    client = _LazyClient(app.config["COMPLETION_CLIENT_FACTORY"])
    client.set_api_key(data.get("api_key"))
    controller = GameController(OpponentSession(client, model=model))
    try:
        controller.start_game(data.get("human_plays", "white"))
    except ValueError as e:
        return jsonify({"error": "bad_color", "message": str(e)}), 400
    game_id = f"game_{int(time.time())}_{uuid.uuid4().hex[:6]}"
    game = {
        "id": game_id,
        "controller": controller,
        "view": BoardView(controller),
        "client": client,
        "lock": threading.Lock(),
        "created_at": time.time(),
        "updated_at": time.time(),
    }
    with games_lock:
        GAMES[game_id] = game
    return jsonify(_serialize(game))


@app.route("/api/games/<game_id>", methods=["GET"])
def get_game(game_id: str):
    game = _get_game(game_id)
    if not game:
        return _not_found()
    with _reading(game) as locked:
        # notifications stay queued for the request that owns the lock
        return jsonify(_serialize(game, drain=locked))


@app.route("/api/games/<game_id>/resign", methods=["POST"])
def resign_game(game_id: str):
    game = _get_game(game_id)
    if not game:
        return _not_found()
    if not game["lock"].acquire(blocking=False):
        return _busy()
    try:
        try:
            game["controller"].resign()
        except GptChessError as e:
            return _error(game, e)
        return jsonify(_serialize(game))
    finally:
        game["lock"].release()


@app.route("/api/games/<game_id>/drag-start", methods=["POST"])
def drag_start(game_id: str):
    game = _get_game(game_id)
    if not game:
        return _not_found()
    square = (request.get_json(silent=True) or {}).get("square", "")
    with _reading(game) as locked:
        hl = game["view"].drag_start(square) if locked else None
    if hl is None:
        return jsonify({"allowed": False, "square": square})
    return jsonify({"allowed": True, "square": square, "targets": hl.targets, "colors": hl.colors()})


@app.route("/api/games/<game_id>/drag-move", methods=["POST"])
def drag_move(game_id: str):
    game = _get_game(game_id)
    if not game:
        return _not_found()
    data = request.get_json(silent=True) or {}
    with _reading(game) as locked:
        valid = locked and game["view"].drag_move(data.get("source", ""), data.get("target", ""))
    return jsonify({"valid": valid})


@app.route("/api/games/<game_id>/drop", methods=["POST"])
def drop(game_id: str):
    game = _get_game(game_id)
    if not game:
        return _not_found()
    data = request.get_json(silent=True) or {}
    if not game["lock"].acquire(blocking=False):
        return _busy()
    try:
        result = game["view"].drop(data.get("source", ""), data.get("target", ""))
        return jsonify(_serialize(game, drop=result.to_dict()))
    finally:
        game["lock"].release()


@app.route("/api/games/<game_id>/promotion", methods=["POST", "DELETE"])
def promotion(game_id: str):
    game = _get_game(game_id)
    if not game:
        return _not_found()
    if not game["lock"].acquire(blocking=False):
        return _busy()
    try:
        view: BoardView = game["view"]
        if request.method == "DELETE":
            result = view.cancel_promotion()
        else:
            piece = (request.get_json(silent=True) or {}).get("piece", "")
            try:
                result = view.choose_promotion(piece)
            except (GptChessError, ValueError) as e:
                return _error(game, e)
        return jsonify(_serialize(game, drop=result.to_dict() if result else None))
    finally:
        game["lock"].release()


@app.route("/api/games/<game_id>/move", methods=["POST"])
def human_move(game_id: str):
    game = _get_game(game_id)
    if not game:
        return _not_found()
    raw_move = (request.get_json(silent=True) or {}).get("move")
    if raw_move is None:
        return jsonify({"error": "move is required"}), 400
    if not game["lock"].acquire(blocking=False):
        return _busy()
    try:
        try:
            san = game["controller"].human_move_text(str(raw_move))
        except GptChessError as e:
            return _error(game, e)
        return jsonify(_serialize(game, human_move=san))
    finally:
        game["lock"].release()


@app.route("/api/games/<game_id>/prompt", methods=["GET"])
def prompt(game_id: str):
    game = _get_game(game_id)
    if not game:
        return _not_found()
    with _reading(game) as locked:
        if not locked:
            return _busy()
        ctl: GameController = game["controller"]
        return jsonify({"prompt": ctl.current_prompt(), "estimated_tokens": ctl.estimated_tokens()})


@app.route("/api/games/<game_id>/opponent", methods=["POST"])
def opponent_move(game_id: str):
    game = _get_game(game_id)
    if not game:
        return _not_found()
    data = request.get_json(silent=True) or {}
    if not game["lock"].acquire(blocking=False):
        return _busy()
    try:
        ctl: GameController = game["controller"]
        if data.get("model"):
            ctl.opponent.model = data["model"]
        game["client"].set_api_key(data.get("api_key"))
        try:
            outcome = ctl.request_opponent_move()
        except GptChessError as e:
            return _error(game, e)
        ai_move = {"san": outcome.san, "reason": outcome.reason, "accepted": outcome.accepted, "tokens_used": outcome.tokens_used}
        return jsonify(_serialize(game, ai_move=ai_move, ai_reply_raw=outcome.raw))
    finally:
        game["lock"].release()


@app.route("/api/games/<game_id>/opponent/manual", methods=["POST"])
def opponent_manual(game_id: str):
    game = _get_game(game_id)
    if not game:
        return _not_found()
    raw_move = (request.get_json(silent=True) or {}).get("move")
    if not raw_move:
        return jsonify({"error": "move is required"}), 400
    if not game["lock"].acquire(blocking=False):
        return _busy()
    try:
        try:
            san = game["controller"].submit_opponent_move(raw_move)
        except GptChessError as e:
            return _error(game, e)
        return jsonify(_serialize(game, ai_move={"san": san, "reason": "", "accepted": True}))
    finally:
        game["lock"].release()


@app.route("/api/games/<game_id>/pgn", methods=["GET"])
def pgn(game_id: str):
    game = _get_game(game_id)
    if not game:
        return _not_found()
    with _reading(game) as locked:
        if not locked:
            return _busy()
        return jsonify({"pgn": game["controller"].pgn()})


@app.after_request
def add_cors_headers(response):
    response.headers["Access-Control-Allow-Origin"] = request.headers.get("Origin", "*")
    response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
    response.headers["Cache-Control"] = "no-store, max-age=0"
    return response


@app.route("/api/<path:path>", methods=["OPTIONS"])
def cors_preflight(path: str):
    resp = app.make_response(("", 204))
    resp.headers["Access-Control-Allow-Origin"] = request.headers.get("Origin", "*")
    resp.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
    resp.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
    return resp


if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Serve the GPT Chess API")
    ap.add_argument("--host", default="0.0.0.0")
    ap.add_argument("--port", type=int, default=8000)
    ap.add_argument("--debug", action="store_true")
    ap.add_argument("--log-level", default="INFO", help="Python logging level (e.g., INFO, DEBUG)")
    args = ap.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run(host=args.host, port=args.port, debug=args.debug)
