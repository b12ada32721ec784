"""Model backends and the factory that builds one from a provider config."""

from enum import Enum

from ..config import ProviderConfig
from ..errors import ConfigurationError
from .anthropic import AnthropicBackend
from .base import Backend, ModelInfo, TokenSink, estimate_param_billions
from .ollama import OllamaBackend
from .openai_compat import OpenAICompatBackend

__all__ = [
    "Backend", "BackendKind", "ModelInfo", "TokenSink",
    "AnthropicBackend", "OllamaBackend", "OpenAICompatBackend",
    "create_backend", "estimate_param_billions",
]


class BackendKind(Enum):
    OLLAMA = "ollama"
    OPENAI_COMPAT = "openai_compat"
    ANTHROPIC = "anthropic"


def create_backend(provider: ProviderConfig, timeout: int = 120) -> Backend:
    """Build the adapter for ``provider.kind``. No network activity happens here."""
    if not provider.kind:
        raise ConfigurationError(
            f"Provider '{provider.name}' has no kind set.\n"
            f"Supported: {', '.join(k.value for k in BackendKind)}"
        )
    try:
        kind = BackendKind(provider.kind)
    except ValueError:
        raise ConfigurationError(
            f"Unknown provider kind: '{provider.kind}'\n"
            f"Supported: {', '.join(k.value for k in BackendKind)}"
        ) from None

    if kind is BackendKind.OLLAMA:
        # Local models can take minutes to load on first use.
        return OllamaBackend(
            provider.name, base_url=provider.base_url, model=provider.model,
            options=provider.options, timeout=max(timeout, 300),
        )
    if kind is BackendKind.OPENAI_COMPAT:
        return OpenAICompatBackend(
            provider.name, api_key=provider.resolve_api_key(),
            base_url=provider.base_url, model=provider.model, timeout=timeout,
        )
    return AnthropicBackend(
        provider.name, api_key=provider.resolve_api_key(),
        base_url=provider.base_url, model=provider.model, timeout=timeout,
    )
