import argparse
import json
import logging
from typing import Callable

from src.gptchess.config import SETTINGS
from src.gptchess.errors import GptChessError, IllegalMoveError
from src.gptchess.game import GameController, TurnState
from src.gptchess.llm_client import OpenAICompletionClient
from src.gptchess.opponent import OpponentSession
from src.gptchess.prompting import PromptConfig


def load_json_config(path: str) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logging.getLogger("play_one").error("Failed to read config %s: %s", path, e)
        return {}


def _print_toasts(ctl: GameController, out: Callable[[str], None]) -> None:
    for n in ctl.drain_notifications():
        out(f"[{n.level}] {n.message}")


def human_turn(ctl: GameController, ask: Callable[[str], str], out: Callable[[str], None]) -> bool:
    """Prompt for a legal human move; repeat until valid. Returns False if the human resigned."""
    while True:
        out(f"\nYour turn. FEN: {ctl.snapshot.fen}")
        out(ctl.snapshot.ascii)
        raw = ask("Enter your move in SAN or UCI (e.g., e4 or e2e4), or 'resign': ").strip()
        if not raw:
            continue
        if raw.lower() == "resign":
            ctl.resign()
            return False
        try:
            ctl.human_move_text(raw)
            return True
        except IllegalMoveError:
            out("Illegal move. Please try again with a legal move.")


def opponent_turn(ctl: GameController, ask: Callable[[str], str], out: Callable[[str], None], copy_prompt: bool, max_attempts: int) -> bool:
    """Let the model move. Returns False if it never produced a legal move."""
    if copy_prompt:
        out("\nCopy this prompt into your chat window:\n")
        out(ctl.current_prompt())
        while True:
            raw = ask("Paste the AI's move (SAN): ").strip()
            try:
                ctl.submit_opponent_move(raw)
                return True
            except IllegalMoveError:
                out(f"'{raw}' is not legal here. Legal moves: {', '.join(ctl.snapshot.valid_moves)}")

    out(f"\nThinking... (approx {ctl.estimated_tokens()} tokens)")
    for _ in range(max_attempts):
        try:
            outcome = ctl.request_opponent_move()
        except GptChessError:
            _print_toasts(ctl, out)
            return False
        _print_toasts(ctl, out)
        if outcome.accepted:
            if outcome.reason:
                out(f"AI: {outcome.reason}")
            return True
    out(f"The AI failed to find a legal move after {max_attempts} attempts.")
    return False


def run_game(ctl: GameController, color: str, ask: Callable[[str], str] = input, out: Callable[[str], None] = print,
             copy_prompt: bool = False, max_attempts: int = 5) -> TurnState:
    ctl.start_game(color)
    out(f"You are playing {'white' if ctl.human_color else 'black'}.")
    while ctl.state in (TurnState.AWAITING_HUMAN_MOVE, TurnState.AWAITING_OPPONENT_MOVE):
        if ctl.state is TurnState.AWAITING_HUMAN_MOVE:
            human_turn(ctl, ask, out)
        elif not opponent_turn(ctl, ask, out, copy_prompt, max_attempts):
            break
        _print_toasts(ctl, out)
    out(f"\nPGN: {ctl.snapshot.pgn}")
    return ctl.state


if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", default=None, help="Optional JSON config file to load defaults from.")
    ap.add_argument("--model", default=None, help="Model name (overrides config)")
    ap.add_argument("--color", choices=["white", "black", "random"], default=None, help="Which side you play")
    ap.add_argument("--copy-prompt", action="store_true", help="Print prompts and paste the AI's moves instead of calling the API")
    ap.add_argument("--max-attempts", type=int, default=None, help="Give up after this many illegal AI proposals in one turn")
    ap.add_argument("--board-diagram", action="store_true", help="Include an ASCII board in the prompt")
    ap.add_argument("--describe-board", action="store_true", help="Include a plain-language piece listing in the prompt")
    ap.add_argument("--pgn-out", default=None, help="Optional path to write PGN at end")
    ap.add_argument("--log-level", default=None, help="Python logging level (e.g., INFO, DEBUG)")
    args = ap.parse_args()

    cfg_dict = load_json_config(args.config) if args.config else {}

    # Resolve values with precedence: CLI arg if provided -> config -> default
    def pick(*keys, default=None):
        for k in keys:
            v = getattr(args, k, None)
            if v is not None:
                return v
            if k in cfg_dict and cfg_dict[k] is not None:
                return cfg_dict[k]
        return default

    log_level = pick("log_level", default="WARNING").upper()
    logging.basicConfig(level=getattr(logging, log_level, logging.WARNING), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    log = logging.getLogger("play_one")

    copy_prompt = args.copy_prompt or bool(cfg_dict.get("copy_prompt", False))
    prompt_cfg = PromptConfig(
        include_board_diagram=args.board_diagram or bool(cfg_dict.get("board_diagram", False)),
        include_board_description=args.describe_board or bool(cfg_dict.get("describe_board", False)),
    )

    class _Offline:
        def complete(self, *a, **kw):
            raise GptChessError("copy-prompt mode does not call the API")

    client = _Offline() if copy_prompt else OpenAICompletionClient()
    session = OpponentSession(client, model=pick("model", default=SETTINGS.model), prompt_cfg=prompt_cfg)
    controller = GameController(session)
    final = run_game(
        controller,
        pick("color", default="white"),
        copy_prompt=copy_prompt,
        max_attempts=int(pick("max_attempts", default=5)),
    )
    log.info("Game ended in state %s", final.value)

    pgn_out = pick("pgn_out", default=None)
    if pgn_out:
        with open(pgn_out, "w", encoding="utf-8") as f:
            f.write(controller.pgn())
        print(f"Wrote PGN to {pgn_out}")
