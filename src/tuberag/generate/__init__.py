"""Generation providers."""

from __future__ import annotations


def __getattr__(name: str):
    """Lazy import with clear error messages for missing dependencies."""
    if name == "OpenAIGenerator":
        try:
            from tuberag.generate.openai import OpenAIGenerator

            return OpenAIGenerator
        except ImportError:
            raise ImportError(
                "OpenAIGenerator requires 'openai'. Install with: pip install openai"
            ) from None
    if name == "AnthropicGenerator":
        try:
            from tuberag.generate.anthropic import AnthropicGenerator

            return AnthropicGenerator
        except ImportError:
            raise ImportError(
                "AnthropicGenerator requires 'anthropic'. "
                "Install with: pip install tuberag[anthropic]"
            ) from None
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "AnthropicGenerator",
    "OpenAIGenerator",
]
