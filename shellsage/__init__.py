"""shellsage: natural-language shell assistant backed by local or remote LLMs."""

__version__ = "0.4.0"
