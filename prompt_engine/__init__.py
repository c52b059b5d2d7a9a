"""Prompt Engine - template execution service.

This service resolves and executes parameterised prompt templates:
- Variable resolution (typed {{placeholders}}, defaults, validation)
- Provider routing (OpenRouter, Anthropic, fal.ai)
- Execution records (audit trail of every attempt)
- Tag groups (ordered multi-template workflows)
"""

__version__ = "0.1.0"
