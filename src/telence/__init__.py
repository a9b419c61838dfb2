"""Discord chat bot that gives an LLM a bounded, time-aware view of the conversation."""

__version__ = "0.1.0"
