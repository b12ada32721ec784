"""OpenAI-compatible chat-completion backend via litellm."""

from typing import Any, Dict, List

import litellm
import requests

from ..errors import BackendError, ConfigurationError, EmptyResponseError
from .base import (
    Backend, ModelInfo, TokenSink, estimate_param_billions,
    salvage_partial_stream, warn_truncated,
)

litellm.suppress_debug_info = True

DEFAULT_BASE_URL = "https://api.openai.com/v1"
TEMPERATURE = 0.1


class OpenAICompatBackend(Backend):
    """Any server speaking the OpenAI chat-completions protocol.

    Passes api_key/api_base straight to litellm so switching providers never
    touches environment variables.
    """

    def __init__(self, name: str, api_key: str = "", base_url: str = "",
                 model: str = "", timeout: int = 120):
        self._name = name
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.model = model
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self._name

    @property
    def litellm_model(self) -> str:
        if self.model.startswith("openai/"):
            return self.model
        return f"openai/{self.model}"

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _validate(self):
        if not self.api_key:
            raise ConfigurationError(
                f"API key not configured for '{self._name}'.\n"
                f"Set 'api-key' or 'api-key-env' for this provider."
            )
        if not self.model:
            raise ConfigurationError(
                f"No model selected for '{self._name}'.\n"
                f"Run 'shellsage models -p {self._name}' and set 'model:' in the config."
            )

    def _completion_kwargs(self, system_prompt: str, user_prompt: str,
                           max_tokens: int, stream: bool) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.litellm_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": TEMPERATURE,
            "max_tokens": max_tokens,
            "api_base": self.base_url,
            "api_key": self.api_key,
            "timeout": self.timeout,
        }
        if stream:
            kwargs["stream"] = True
        return kwargs

    def _call(self, kwargs: Dict[str, Any]):
        try:
            return litellm.completion(**kwargs)
        except litellm.exceptions.AuthenticationError as e:
            raise BackendError(f"{self._name} API error (401): auth failed, check API key.\n{e}", 401) from e
        except litellm.exceptions.Timeout as e:
            raise BackendError(f"{self._name} request timed out after {self.timeout}s") from e
        except litellm.exceptions.APIConnectionError as e:
            raise BackendError(
                f"Connection to {self._name} failed: model={self.model}, base={self.base_url}\n{e}"
            ) from e
        except Exception as e:
            status = getattr(e, "status_code", None)
            if status:
                raise BackendError(f"{self._name} API error ({status}): {e}", status) from e
            raise BackendError(f"{self._name} API error: {type(e).__name__}: {e}") from e

    def generate(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        self._validate()
        response = self._call(self._completion_kwargs(system_prompt, user_prompt, max_tokens, stream=False))

        if not response.choices:
            raise BackendError(f"{self._name} returned no choices")
        choice = response.choices[0]
        if getattr(choice, "finish_reason", None) == "length":
            warn_truncated(self._name)

        content = (getattr(choice.message, "content", None) or "").strip()
        if not content:
            raise EmptyResponseError(f"{self._name} returned empty response")
        return content

    def generate_stream(self, system_prompt: str, user_prompt: str, max_tokens: int,
                        on_token: TokenSink) -> str:
        self._validate()
        response_stream = self._call(self._completion_kwargs(system_prompt, user_prompt, max_tokens, stream=True))

        accumulated = ""
        chunks = iter(response_stream)
        while True:
            # Only transport failures are salvaged; errors raised by on_token propagate.
            try:
                chunk = next(chunks)
            except StopIteration:
                break
            except Exception as e:
                return salvage_partial_stream(self._name, accumulated, e)

            if not chunk.choices:
                continue  # usage-only trailer
            choice = chunk.choices[0]
            token = getattr(choice.delta, "content", None) or ""
            if token:
                on_token(token)
                accumulated += token
            if getattr(choice, "finish_reason", None) == "length":
                warn_truncated(self._name)

        if not accumulated.strip():
            raise EmptyResponseError(f"{self._name} returned empty streaming response")
        return accumulated

    def list_models(self) -> List[ModelInfo]:
        if not self.api_key:
            raise ConfigurationError(
                f"API key required to list models for '{self._name}'."
            )
        try:
            resp = requests.get(
                f"{self.base_url}/models",
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=15,
            )
        except requests.RequestException as e:
            raise BackendError(f"Connection to {self._name} failed: {e}") from e
        if not resp.ok:
            raise BackendError(
                f"Failed to list models ({resp.status_code}): {resp.text}", resp.status_code
            )

        return [
            ModelInfo(id=m["id"], name=m["id"], param_billions=estimate_param_billions(m["id"]))
            for m in (resp.json().get("data") or [])
            if m.get("id")
        ]
