"""Optional semantic second opinion: LLM transports, prompt building and response parsing."""
