import logging
from typing import Any, Dict, List, Optional, Sequence

import openai
import requests
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from openai import OpenAI

from storylab.config import PROVIDER_OLLAMA, PROVIDER_OPENAI, StoryLabConfig
from storylab.errors import LlmUnavailableError, UnconfiguredError, UpstreamError

logger = logging.getLogger("storylab_backend")

HEALTH_TIMEOUT = 5.0


class BaseLlmClient:
    """
    Common contract for both backends:

        text = llm.generate("some prompt", images=[b64_png, ...])
        ok = llm.is_healthy()

    One request, one complete text. No retries.
    """

    provider: str = ""
    model_name: str = ""
    last_usage: Optional[Dict[str, int]]

    @property
    def url(self) -> str:
        raise NotImplementedError

    def generate(self, prompt: str, images: Optional[Sequence[str]] = None) -> str:
        raise NotImplementedError

    def is_healthy(self) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> "BaseLlmClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _merge_usage(self, inc: Dict[str, int]) -> None:
        if not inc:
            return
        if self.last_usage is None:
            self.last_usage = dict(inc)
            return
        for k, v in inc.items():
            self.last_usage[k] = (self.last_usage.get(k, 0) or 0) + (v or 0)


class OllamaLlmClient(BaseLlmClient):
    """
    Local model served by Ollama (`/api/generate`, non-streaming).
    Image requests go to the vision model, plain prompts to the text model.
    """

    provider = PROVIDER_OLLAMA

    def __init__(self, config: StoryLabConfig, session: Optional[requests.Session] = None):
        self.base_url = config.llm_base_url.rstrip("/")
        self.model_name = config.ollama_model
        self.vision_model_name = config.ollama_vision_model
        self._timeout = config.llm_timeout
        self._owns_session = session is None
        self._session = session or requests.Session()
        self.last_usage: Optional[Dict[str, int]] = None

    @property
    def url(self) -> str:
        return self.base_url

    def generate(self, prompt: str, images: Optional[Sequence[str]] = None) -> str:
        body: Dict[str, Any] = {
            "model": self.vision_model_name if images else self.model_name,
            "prompt": prompt,
            "stream": False,
        }
        if images:
            body["images"] = list(images)

        try:
            with self._session.post(f"{self.base_url}/api/generate", json=body, timeout=self._timeout) as resp:
                if not 200 <= resp.status_code < 300:
                    raise UpstreamError(resp.status_code, f"Ollama API error: {resp.reason or resp.status_code}")
                data = resp.json()
        except requests.Timeout as e:
            raise LlmUnavailableError("AI provider timed out", details=str(e)) from e
        except requests.ConnectionError as e:
            raise LlmUnavailableError(
                "AI provider unreachable. Start Ollama on port 11434 or set AI_PROVIDER=openai",
                details=str(e),
            ) from e
        except requests.RequestException as e:
            raise UpstreamError(502, f"Ollama request failed: {e}") from e

        self._merge_usage({
            "prompt_token_count": int(data.get("prompt_eval_count") or 0),
            "candidates_token_count": int(data.get("eval_count") or 0),
        })
        return (data.get("response") or "").strip()

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def is_healthy(self) -> bool:
        try:
            with self._session.get(f"{self.base_url}/api/tags", timeout=HEALTH_TIMEOUT) as resp:
                return 200 <= resp.status_code < 300
        except requests.RequestException as e:
            logger.info(f"Ollama health check failed: {e}")
            return False


class OpenAiLlmClient(BaseLlmClient):
    """
    Cloud chat-completion backend. Messages are built as langchain-core
    HumanMessage content blocks and converted to the OpenAI wire shape.
    """

    provider = PROVIDER_OPENAI

    def __init__(self, config: StoryLabConfig, client: Optional[OpenAI] = None):
        self.config = config
        self.model_name = config.openai_model
        self.last_usage: Optional[Dict[str, int]] = None
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self.config.openai_api_key:
                raise UnconfiguredError("OPENAI_API_KEY is not configured while AI_PROVIDER=openai")
            self._client = OpenAI(api_key=self.config.openai_api_key, timeout=self.config.llm_timeout, max_retries=0)
        return self._client

    @property
    def url(self) -> str:
        if self._client is None:
            return "https://api.openai.com/v1"
        return str(getattr(self._client, "base_url", "") or "https://api.openai.com/v1")

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def build_messages(self, prompt: str, images: Optional[Sequence[str]] = None) -> List[BaseMessage]:
        if not images:
            return [HumanMessage(content=prompt)]
        content: List[Any] = [{"type": "text", "text": prompt}]
        for b64 in images:
            content.append({"type": "image_url", "image_url": {"url": f"data:image/png;base64,{b64}"}})
        return [HumanMessage(content=content)]

    def _to_openai_messages(self, messages: List[BaseMessage]) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for m in messages:
            if isinstance(m, SystemMessage):
                role = "system"
            elif isinstance(m, AIMessage):
                role = "assistant"
            else:
                role = "user"
            out.append({"role": role, "content": m.content})
        return out

    def generate(self, prompt: str, images: Optional[Sequence[str]] = None) -> str:
        messages = self._to_openai_messages(self.build_messages(prompt, images))
        try:
            resp = self.client.chat.completions.create(model=self.model_name, messages=messages)
        except openai.APIConnectionError as e:
            raise LlmUnavailableError("AI provider unreachable", details=str(e)) from e
        except openai.APIStatusError as e:
            raise UpstreamError(e.status_code, f"AI provider error ({e.status_code})", details=str(e)) from e

        usage = getattr(resp, "usage", None)
        if usage is not None:
            self._merge_usage({
                "prompt_token_count": getattr(usage, "prompt_tokens", 0) or 0,
                "candidates_token_count": getattr(usage, "completion_tokens", 0) or 0,
            })
        if not resp.choices:
            return ""
        return (resp.choices[0].message.content or "").strip()

    def is_healthy(self) -> bool:
        if self._client is None and not self.config.openai_api_key:
            return False
        try:
            self.client.models.list()
            return True
        except openai.OpenAIError as e:
            logger.info(f"OpenAI health check failed: {e}")
            return False


def build_llm_client(config: StoryLabConfig) -> BaseLlmClient:
    if config.llm_provider == PROVIDER_OPENAI:
        return OpenAiLlmClient(config)
    if config.llm_provider == PROVIDER_OLLAMA:
        return OllamaLlmClient(config)
    raise ValueError(f"Unknown LLM provider: {config.llm_provider}")
