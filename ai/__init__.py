"""LLM extraction backends, prompts and structured-output schemas."""
