"""Anthropic Messages API backend via litellm."""

import json
from typing import Any, Dict, List

import requests

from ..errors import BackendError, ConfigurationError
from .base import ModelInfo, estimate_param_billions
from .openai_compat import OpenAICompatBackend

DEFAULT_BASE_URL = "https://api.anthropic.com"
API_VERSION = "2023-06-01"


class AnthropicBackend(OpenAICompatBackend):
    """Claude models through the Messages API.

    Completions go through litellm's ``anthropic/`` route, which maps
    ``stop_reason: max_tokens`` to ``finish_reason: length`` and stream
    deltas to ``delta.content``. Model listing is a plain GET.
    """

    def __init__(self, name: str, api_key: str = "", base_url: str = "",
                 model: str = "", timeout: int = 120):
        super().__init__(name, api_key=api_key, base_url=base_url or DEFAULT_BASE_URL,
                         model=model, timeout=timeout)

    @property
    def litellm_model(self) -> str:
        if self.model.startswith("anthropic/"):
            return self.model
        return f"anthropic/{self.model}"

    def _validate(self):
        if not self.api_key:
            raise ConfigurationError(
                f"API key not configured for '{self._name}'.\n"
                f"Set 'api-key' or 'api-key-env' (default ANTHROPIC_API_KEY)."
            )
        if not self.model:
            raise ConfigurationError(
                f"No model selected for '{self._name}'.\n"
                f"Run 'shellsage models -p {self._name}' and set 'model:' in the config."
            )

    def _completion_kwargs(self, system_prompt: str, user_prompt: str,
                           max_tokens: int, stream: bool) -> Dict[str, Any]:
        kwargs = super()._completion_kwargs(system_prompt, user_prompt, max_tokens, stream)
        kwargs["api_base"] = f"{self.base_url}/v1/messages"
        return kwargs

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": API_VERSION,
        }

    def _raise_for_status(self, resp: requests.Response):
        if resp.ok:
            return
        text = resp.text
        try:
            body = json.loads(text)
        except ValueError:
            body = None
        err = body.get("error") if isinstance(body, dict) else None
        if isinstance(err, dict):
            raise BackendError(
                f"Claude API error ({resp.status_code} {err.get('type', '')}): {err.get('message', '')}",
                resp.status_code,
            )
        raise BackendError(f"Claude API error ({resp.status_code}): {text}", resp.status_code)

    def list_models(self) -> List[ModelInfo]:
        if not self.api_key:
            raise ConfigurationError(f"API key required to list models for '{self._name}'.")
        try:
            resp = requests.get(f"{self.base_url}/v1/models", headers=self._headers(), timeout=15)
        except requests.RequestException as e:
            raise BackendError(f"Connection to Claude API failed: {e}") from e
        self._raise_for_status(resp)

        return [
            ModelInfo(
                id=m["id"], name=m.get("display_name") or m["id"],
                param_billions=estimate_param_billions(m["id"]),
            )
            for m in (resp.json().get("data") or [])
            if m.get("id")
        ]
