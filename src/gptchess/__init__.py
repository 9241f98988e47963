"""
GPT Chess package: play chess against a chat-completion model.

Components:
- rules: python-chess adapter (board, legal moves, snapshots, PGN)
- prompting/reply_parser: prompt build and JSON move extraction
- llm_client: OpenAI-compatible completion transport
- opponent: conversation history and retry-with-feedback loop
- game/board_view: turn state, outcomes, drag-and-drop model
"""
# Package exports are intentionally minimal; import modules directly as needed.
