import unittest
from unittest.mock import patch

import chess

from src.gptchess.errors import GameStateError, IllegalMoveError, ReplyParseError, TransportError
from src.gptchess.game import GameController, Outcome, TurnState, classify_outcome
from src.gptchess.opponent import OpponentSession, SessionState
from src.gptchess.rules import RulesEngine
from tests.stubs import StubClient, reply

FOOLS_MATE = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"


class GameControllerTests(unittest.TestCase):
    def setUp(self):
        self.client = StubClient()
        self.session = OpponentSession(self.client, model="gpt-4o", history_limit=5)
        self.ctl = GameController(self.session)

    def _levels(self):
        return [(n.level, n.message) for n in self.ctl.drain_notifications()]

    def test_new_game_as_white_waits_for_human(self):
        self.assertEqual(self.ctl.state, TurnState.NOT_STARTED)
        self.ctl.start_game("white")
        self.assertEqual(self.ctl.state, TurnState.AWAITING_HUMAN_MOVE)
        self.assertEqual(self.client.calls, [])

        self.ctl.human_move("e2", "e4")
        self.assertEqual(self.ctl.state, TurnState.AWAITING_OPPONENT_MOVE)
        self.assertEqual(self.ctl.snapshot.pgn, "1. e4")
        self.assertEqual(self.client.calls, [])
        self.assertIn("e5", self.ctl.snapshot.valid_moves)

    def test_new_game_as_black_hands_turn_to_opponent(self):
        self.ctl.start_game("black")
        self.assertEqual(self.ctl.state, TurnState.AWAITING_OPPONENT_MOVE)
        self.assertEqual(self.ctl.ai_color, chess.WHITE)
        self.assertIn("You are playing white", self.ctl.current_prompt())

    def test_random_color(self):
        with patch("src.gptchess.game.random.choice", return_value="black"):
            self.ctl.start_game("random")
        self.assertEqual(self.ctl.human_color, chess.BLACK)

    def test_illegal_human_move_changes_nothing(self):
        self.ctl.start_game("white")
        fen = self.ctl.snapshot.fen
        with self.assertRaises(IllegalMoveError):
            self.ctl.human_move("e2", "e5")
        with self.assertRaises(IllegalMoveError):
            self.ctl.human_move_text("Nf9")
        self.assertEqual(self.ctl.snapshot.fen, fen)
        self.assertEqual(self.ctl.state, TurnState.AWAITING_HUMAN_MOVE)

    def test_moves_out_of_turn_are_refused(self):
        self.ctl.start_game("white")
        with self.assertRaises(GameStateError):
            self.ctl.request_opponent_move()
        self.ctl.human_move("e2", "e4")
        with self.assertRaises(GameStateError):
            self.ctl.human_move("d2", "d4")

    def test_rejected_opponent_move_is_fed_back(self):
        self.ctl.start_game("white")
        self.ctl.human_move("e2", "e4")
        self.ctl.drain_notifications()
        self.client.queue(reply("Nf9"), reply("e5", "Mirror the centre."))

        outcome = self.ctl.request_opponent_move()
        self.assertFalse(outcome.accepted)
        self.assertEqual(self.session.state, SessionState.REJECTED)
        self.assertEqual(self.session.invalid_attempts, ["Nf9"])
        self.assertEqual(self.ctl.state, TurnState.AWAITING_OPPONENT_MOVE)
        self.assertIn("Nf9", self.ctl.current_prompt())
        level, message = self._levels()[0]
        self.assertEqual(level, "error")
        self.assertIn("Nf9", message)

        outcome = self.ctl.request_opponent_move()
        self.assertTrue(outcome.accepted)
        self.assertIn("Nf9", self.client.calls[1]["messages"][-1]["content"])
        self.assertEqual(self.ctl.state, TurnState.AWAITING_HUMAN_MOVE)
        self.assertEqual(self.ctl.snapshot.pgn, "1. e4 e5")
        self.assertEqual(self.ctl.ai_message, "Mirror the centre.")
        self.assertEqual(self.session.invalid_attempts, [])
        self.assertEqual(self._levels()[0][0], "success")

    def test_invalid_attempts_reset_on_new_turn(self):
        self.ctl.start_game("black")
        self.client.queue(reply("Nf9"))
        self.ctl.request_opponent_move()
        self.ctl.submit_opponent_move("e4")
        self.assertEqual(self.session.invalid_attempts, [])
        self.ctl.human_move("e7", "e5")
        self.assertEqual(self.session.invalid_attempts, [])
        self.assertNotIn("Nf9", self.ctl.current_prompt())

    def test_opponent_failures_surface_without_state_change(self):
        self.ctl.start_game("black")
        self.client.queue("not json at all", TransportError("Incorrect API key"))
        with self.assertRaises(ReplyParseError):
            self.ctl.request_opponent_move()
        with self.assertRaises(TransportError):
            self.ctl.request_opponent_move()
        msgs = self._levels()
        self.assertEqual([lvl for lvl, _ in msgs], ["error", "error"])
        self.assertIn("Incorrect API key", msgs[1][1])
        self.assertEqual(self.ctl.state, TurnState.AWAITING_OPPONENT_MOVE)
        self.assertEqual(self.ctl.snapshot.pgn, "")

    def test_manual_opponent_move_must_be_legal(self):
        self.ctl.start_game("black")
        with self.assertRaises(IllegalMoveError):
            self.ctl.submit_opponent_move("e5")
        self.assertEqual(self.ctl.submit_opponent_move("Nf3"), "Nf3")
        self.assertEqual(self.ctl.state, TurnState.AWAITING_HUMAN_MOVE)

    def test_checkmate_with_human_to_move_is_a_loss(self):
        self.ctl.start_game("white")
        self.client.queue(reply("e5"), reply("Qh4#", "Fool's mate."))
        self.ctl.human_move("f2", "f3")
        self.ctl.request_opponent_move()
        self.ctl.human_move("g2", "g4")
        self.ctl.request_opponent_move()
        self.assertEqual(self.ctl.state, TurnState.GAME_OVER)
        self.assertEqual(self.ctl.outcome, Outcome.HUMAN_LOST)
        self.assertIn(("error", "You lost to Checkmate!"), self._levels())

    def test_checkmate_with_opponent_to_move_is_a_win(self):
        self.ctl.start_game("black")
        self.ctl.submit_opponent_move("f3")
        self.ctl.human_move("e7", "e5")
        self.ctl.submit_opponent_move("g4")
        self.ctl.human_move("d8", "h4")
        self.assertEqual(self.ctl.state, TurnState.GAME_OVER)
        self.assertEqual(self.ctl.outcome, Outcome.HUMAN_WON)
        self.assertIn(("success", "You won by Checkmate!"), self._levels())

    def test_classification_depends_on_side_to_move_not_color_choice(self):
        rules = RulesEngine(FOOLS_MATE)
        self.assertEqual(classify_outcome(rules, chess.WHITE), Outcome.HUMAN_LOST)
        self.assertEqual(classify_outcome(rules, chess.BLACK), Outcome.HUMAN_WON)

    def test_draw_classifications(self):
        cases = {
            "7k/5Q2/6K1/8/8/8/8/8 b - - 0 1": Outcome.STALEMATE,
            "8/8/8/8/8/8/8/K6k w - - 0 1": Outcome.INSUFFICIENT_MATERIAL,
            "7k/8/8/8/8/8/8/R6K w - - 100 80": Outcome.DRAW,
        }
        for fen, expected in cases.items():
            with self.subTest(fen=fen):
                self.assertEqual(classify_outcome(RulesEngine(fen), chess.WHITE), expected)
        self.assertEqual(classify_outcome(RulesEngine(), chess.WHITE), Outcome.UNKNOWN)

    def test_threefold_repetition_ends_game(self):
        self.ctl.start_game("white")
        for human, ai in [("g1f3", "Nf6"), ("f3g1", "Ng8"), ("g1f3", "Nf6"), ("f3g1", "Ng8")]:
            self.ctl.human_move(human[:2], human[2:])
            self.ctl.submit_opponent_move(ai)
        self.assertEqual(self.ctl.state, TurnState.GAME_OVER)
        self.assertEqual(self.ctl.outcome, Outcome.THREEFOLD_REPETITION)

    def test_resign_and_restart(self):
        with self.assertRaises(GameStateError):
            self.ctl.resign()
        self.ctl.start_game("white")
        with self.assertRaises(GameStateError):
            self.ctl.start_game("black")
        self.ctl.human_move("e2", "e4")
        self.ctl.resign()
        self.assertEqual(self.ctl.state, TurnState.RESIGNED)
        self.assertIn("0-1", self.ctl.pgn())
        with self.assertRaises(GameStateError):
            self.ctl.human_move("d2", "d4")

        self.client.queue(reply("e4"))
        self.ctl.start_game("black")
        self.assertEqual(self.ctl.snapshot.pgn, "")
        self.ctl.request_opponent_move()
        self.assertEqual(len(self.session.history), 1)
        self.ctl.resign()
        self.ctl.start_game("white")
        self.assertEqual(len(self.session.history), 0)

    def test_to_dict(self):
        self.ctl.start_game("black")
        data = self.ctl.to_dict()
        self.assertEqual(data["state"], "awaiting_opponent_move")
        self.assertEqual(data["human_color"], "black")
        self.assertEqual(data["side_to_move"], "white")
        self.assertEqual(len(data["valid_moves"]), 20)
        self.assertIsNone(data["outcome"])
        self.assertFalse(data["opponent_request_in_flight"])
        self.session.state = SessionState.AWAITING_REPLY
        self.assertTrue(self.ctl.to_dict()["opponent_request_in_flight"])


if __name__ == "__main__":
    unittest.main()
