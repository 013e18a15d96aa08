import json
from typing import Tuple

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig

# Commonly used models, served when the OpenRouter catalog is unreachable
FALLBACK_MODELS: dict[str, str] = {
    "gpt-4-turbo": "openai/gpt-4-turbo-preview",
    "gpt-4": "openai/gpt-4",
    "gpt-3.5": "openai/gpt-3.5-turbo",
    "claude-3-opus": "anthropic/claude-3-opus",
    "claude-3-sonnet": "anthropic/claude-3-sonnet",
    "claude-3-haiku": "anthropic/claude-3-haiku",
    "gemini-pro": "google/gemini-pro",
    "mixtral-8x7b": "mistralai/mixtral-8x7b",
    "llama-3-70b": "meta-llama/llama-3-70b",
    "embedding-3-small": "openai/text-embedding-3-small",
    "embedding-3-large": "openai/text-embedding-3-large",
}


class LLMClientOpenrouter(LLMClientInterface):
    """OpenAI-compatible chat completions served by OpenRouter."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="https://openrouter.ai/api/v1", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._site_url = self.get_config_val("SITE_URL", default="http://localhost:3001", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Openrouter"

    def _get_default_chat_model(self) -> str | None:
        return FALLBACK_MODELS["gpt-3.5"]

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://openrouter.ai/api/v1"),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="SITE_URL", val_type="string", default="http://localhost:3001"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "HTTP-Referer": self._site_url,
            "X-Title": "Bento RAG System",
        }

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/models"

    def _get_endpoint_models(self) -> str:
        return "/models"

    def _get_endpoint_chat(self) -> str:
        return "/chat/completions"

    ################ PAYLOAD BUILDER ##################
    def get_chat_payload(self, messages: list[dict], model: str, stream: bool) -> dict:
        return {
            "model": model,
            "messages": messages,
            "stream": stream,
            "temperature": self.temperature,
        }

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_chat_response(self, response_data: dict) -> str:
        choices = response_data.get("choices") or []
        content = (choices[0].get("message") or {}).get("content") if choices else None
        if content is None:
            raise ValueError(
                "OpenRouter chat response does not contain a valid message. "
                "Response keys: %s" % list(response_data.keys())
            )
        return content

    def extract_stream_token(self, line: str) -> Tuple[str | None, bool]:
        # server-sent events; lines starting with ":" are keep-alive comments
        line = line.strip()
        if not line.startswith("data:"):
            return None, False
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return None, True
        chunk = json.loads(data)
        if "error" in chunk:
            error = chunk["error"]
            raise ValueError(f"OpenRouter error: {error.get('message', error) if isinstance(error, dict) else error}")
        choices = chunk.get("choices") or []
        if not choices:
            return None, False
        content = (choices[0].get("delta") or {}).get("content")
        return content or None, False

    def extract_models(self, response_data: dict) -> list[dict]:
        return response_data.get("data", [])

    def get_fallback_models(self) -> list[dict]:
        return [{"id": model_id, "name": name} for name, model_id in FALLBACK_MODELS.items()]
