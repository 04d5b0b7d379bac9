"""
Test Package Initialization

This package contains all unit and integration tests for the Victor
assistant.

Test Structure:
- test_config.py: Configuration tests
- test_timeline.py: Timeline Store tests
- test_arbiter.py: Turn Arbiter tests
- test_events.py: Event bus tests
- test_accumulator.py: Streaming reply tests
- test_llm_stream.py: Chat session and Azure collaborator tests
- test_voice.py: Voice I/O and voice selection tests
- test_tictactoe.py / test_chess.py: Game rules tests
- test_game_controller.py: Game Session Controller tests
- test_conversation_controller.py: End-to-end session tests
- test_cli.py: Terminal rendering and argument parsing tests

Run tests with:
    pytest tests/ -v
"""
