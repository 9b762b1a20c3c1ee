"""
LLM Emulator

Deterministic emulator for LLM provider HTTP APIs (OpenAI chat, responses
and embeddings, Gemini) with case matching, scripted scenarios, and latency
and fault injection.
"""

__version__ = '1.0.0'
