"""Plant Identifier API: Gemini-backed plant identification with resilient response parsing."""
