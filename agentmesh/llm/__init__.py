"""LLM layer — provider adapters, conversation history and the chat manager."""
