"""
Conversational layer.

This package contains:
- intents: split "<general>.<sub>" intents and normalize extracted parameters
- answers: reply templates for each intent
- no_api: download / plot / greetings / link intents (no remote call)
- orchestrator: main entry point used by the UI to handle each message
"""
