import unittest

import play_one
from src.gptchess.game import GameController, TurnState
from src.gptchess.opponent import OpponentSession
from tests.stubs import StubClient, reply


class PlayOneTests(unittest.TestCase):
    def setUp(self):
        self.client = StubClient()
        self.ctl = GameController(OpponentSession(self.client, model="gpt-4o"))
        self.lines = []

    def _run(self, color, inputs, **kw):
        answers = iter(inputs)
        return play_one.run_game(self.ctl, color, ask=lambda _prompt: next(answers), out=self.lines.append, **kw)

    def test_game_against_api_until_checkmate(self):
        self.client.queue(reply("e5"), "Thinking... " + reply("Qh4#", "Mate."))
        final = self._run("white", ["f3", "", "g2g4"])
        self.assertEqual(final, TurnState.GAME_OVER)
        self.assertIn("[error] You lost to Checkmate!", self.lines)
        self.assertIn("AI: Mate.", self.lines)
        self.assertEqual(self.lines[-1], "\nPGN: 1. f3 e5 2. g4 Qh4#")

    def test_illegal_human_input_is_retried(self):
        self.client.queue(reply("e5"))
        final = self._run("white", ["e5", "e4", "resign"])
        self.assertEqual(final, TurnState.RESIGNED)
        self.assertIn("Illegal move. Please try again with a legal move.", self.lines)

    def test_copy_prompt_mode(self):
        final = self._run("black", ["Nf9", "e4", "resign"], copy_prompt=True)
        self.assertEqual(final, TurnState.RESIGNED)
        self.assertTrue(any("'Nf9' is not legal here" in line for line in self.lines))
        self.assertTrue(any('"san"' in line for line in self.lines))
        self.assertEqual(self.client.calls, [])

    def test_gives_up_after_max_attempts(self):
        self.client.queue(reply("Nf9"), reply("Nf9"))
        final = self._run("black", [], max_attempts=2)
        self.assertEqual(final, TurnState.AWAITING_OPPONENT_MOVE)
        self.assertIn("The AI failed to find a legal move after 2 attempts.", self.lines)
        self.assertEqual(self.ctl.opponent.invalid_attempts, ["Nf9", "Nf9"])

    def test_load_json_config_missing_file(self):
        self.assertEqual(play_one.load_json_config("/nonexistent/config.json"), {})


if __name__ == "__main__":
    unittest.main()
