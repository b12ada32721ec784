"""Local Ollama daemon backend (JSON chat API, newline-delimited JSON streaming)."""

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from ..errors import BackendError, ConfigurationError, EmptyResponseError
from .base import (
    Backend, ModelInfo, TokenSink, estimate_param_billions,
    salvage_partial_stream, warn_truncated,
)

_log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:11434"
DEFAULT_OPTIONS: Dict[str, Any] = {
    "temperature": 0.1,
    "top_p": 0.7,
    "top_k": 20,
    "repeat_penalty": 1.2,
}


def _coerce_option(value: str) -> Any:
    text = str(value).strip()
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


class OllamaBackend(Backend):
    """Talks to ``ollama serve`` over its HTTP API."""

    def __init__(self, name: str, base_url: str = "", model: str = "",
                 options: Optional[Dict[str, str]] = None, timeout: int = 300):
        self._name = name
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.model = model
        self.options = {k: _coerce_option(v) for k, v in (options or {}).items()}
        self.timeout = timeout
        self._session = requests.Session()

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        try:
            resp = self._session.get(f"{self.base_url}/api/tags", timeout=3)
        except requests.RequestException:
            return False
        return resp.ok

    def list_models(self) -> List[ModelInfo]:
        try:
            resp = self._session.get(f"{self.base_url}/api/tags", timeout=5)
        except requests.RequestException as e:
            raise BackendError(
                f"Connection to Ollama at {self.base_url} failed: {e}\n"
                "Start it with: ollama serve"
            ) from e
        if not resp.ok:
            raise BackendError(f"Ollama API returned status {resp.status_code}", resp.status_code)

        models = []
        for entry in (resp.json().get("models") or []):
            model_name = entry.get("name", "")
            size = int(entry.get("size") or 0)
            models.append(ModelInfo(
                id=model_name, name=model_name, size=size,
                param_billions=estimate_param_billions(model_name, size),
            ))
        return models

    def _payload(self, system_prompt: str, user_prompt: str, max_tokens: int, stream: bool) -> dict:
        if not self.model:
            raise ConfigurationError(
                f"No model selected for '{self._name}'.\n"
                f"Set one with: shellsage models, then add 'model:' to the provider config."
            )
        options = dict(DEFAULT_OPTIONS)
        options["num_predict"] = max_tokens
        options.update(self.options)
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "stream": stream,
            "options": options,
        }

    def _post(self, payload: dict, stream: bool) -> requests.Response:
        try:
            resp = self._session.post(
                f"{self.base_url}/api/chat", json=payload,
                timeout=self.timeout, stream=stream,
            )
        except requests.Timeout as e:
            raise BackendError(f"Ollama request timed out after {self.timeout}s") from e
        except requests.ConnectionError as e:
            raise BackendError(
                f"Connection to Ollama at {self.base_url} failed: {e}\n"
                "Start it with: ollama serve"
            ) from e
        except requests.RequestException as e:
            raise BackendError(f"Ollama request failed: {e}") from e

        if not resp.ok:
            raise BackendError(f"Ollama error ({resp.status_code}): {resp.text}", resp.status_code)
        return resp

    def generate(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        payload = self._payload(system_prompt, user_prompt, max_tokens, stream=False)
        resp = self._post(payload, stream=False)

        try:
            data = resp.json()
        except ValueError as e:
            raise BackendError(f"Failed to parse Ollama response: {e}") from e
        if data.get("error"):
            raise BackendError(f"Ollama error: {data['error']}")
        if data.get("done_reason") == "length":
            warn_truncated(self._name)

        content = ((data.get("message") or {}).get("content") or "").strip()
        if not content:
            raise EmptyResponseError(f"{self._name} returned empty response")
        return content

    def generate_stream(self, system_prompt: str, user_prompt: str, max_tokens: int,
                        on_token: TokenSink) -> str:
        payload = self._payload(system_prompt, user_prompt, max_tokens, stream=True)
        resp = self._post(payload, stream=True)

        accumulated = ""
        try:
            for raw_line in resp.iter_lines(decode_unicode=True):
                if not raw_line:
                    continue
                try:
                    event = json.loads(raw_line)
                except json.JSONDecodeError:
                    _log.debug("Skipping malformed stream line: %r", raw_line[:120])
                    continue
                if event.get("error"):
                    raise BackendError(f"Ollama error: {event['error']}")

                token = (event.get("message") or {}).get("content") or ""
                if token:
                    on_token(token)
                    accumulated += token
                if event.get("done"):
                    if event.get("done_reason") == "length":
                        warn_truncated(self._name)
                    break
        except requests.RequestException as e:
            return salvage_partial_stream(self._name, accumulated, e)
        finally:
            resp.close()

        if not accumulated.strip():
            raise EmptyResponseError(f"{self._name} returned empty streaming response")
        return accumulated
