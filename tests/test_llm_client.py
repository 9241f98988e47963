import unittest
from types import SimpleNamespace
from unittest.mock import patch

import openai

from src.gptchess.errors import TransportError
from src.gptchess.llm_client import OpenAICompletionClient


def _response(content, total_tokens=42):
    msg = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=msg)], usage=SimpleNamespace(total_tokens=total_tokens))


class OpenAICompletionClientTests(unittest.TestCase):
    def setUp(self):
        self.client = OpenAICompletionClient(api_key="sk-test", base_url="http://localhost:9/v1", timeout_s=5)
        self.messages = [{"role": "user", "content": "Your move."}]

    def test_missing_model_is_a_transport_error(self):
        with patch.object(self.client._client.chat.completions, "create") as create:
            with self.assertRaises(TransportError):
                self.client.complete(model="", messages=self.messages, max_tokens=50, temperature=0.2)
            create.assert_not_called()

    def test_sdk_errors_become_transport_errors(self):
        with patch.object(self.client._client.chat.completions, "create", side_effect=openai.OpenAIError("quota")):
            with self.assertRaises(TransportError) as ctx:
                self.client.complete(model="gpt-4o", messages=self.messages, max_tokens=50, temperature=0.2)
        self.assertIn("quota", str(ctx.exception))

    def test_returns_text_and_usage(self):
        with patch.object(self.client._client.chat.completions, "create", return_value=_response('{"san":"e5","reason":"x"}')) as create:
            out = self.client.complete(model="gpt-4o", messages=self.messages, max_tokens=50, temperature=0.2)
        self.assertEqual(out.text, '{"san":"e5","reason":"x"}')
        self.assertEqual(out.tokens_used, 42)
        self.assertEqual(create.call_args.kwargs["timeout"], 5)

    def test_empty_message_is_a_transport_error(self):
        with patch.object(self.client._client.chat.completions, "create", return_value=_response("")):
            with self.assertRaises(TransportError):
                self.client.complete(model="gpt-4o", messages=self.messages, max_tokens=50, temperature=0.2)


if __name__ == "__main__":
    unittest.main()
