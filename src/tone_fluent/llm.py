from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
import os
import json
import threading
import logging
from dataclasses import dataclass

import requests
import openai
from openai import OpenAI, AzureOpenAI
from tenacity import Retrying, stop_after_attempt, wait_fixed, retry_if_exception

from .cancellation import CancelToken, check_cancelled
from .errors import BackendError, get_backend_error_message
from .utils import strip_thinking

logger = logging.getLogger(__name__)

# Bounds how long a cancelled scope can wait on an in-flight request
DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass
class GenerationResult:
    text: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    calls: int = 0

    def add(self, result: GenerationResult):
        self.prompt_tokens += result.prompt_tokens
        self.completion_tokens += result.completion_tokens
        self.total_tokens += result.total_tokens
        self.calls += 1


class LLMBase(ABC):
    model: str = ""

    @abstractmethod
    def generate(self, prompt: str, system_prompt: Optional[str] = None, temperature: float = 0.3,
                 max_tokens: Optional[int] = None, model: Optional[str] = None) -> GenerationResult:
        pass


class MockLLM(LLMBase):
    """Offline provider. Answers every request with a small, well-formed JSON payload."""

    def __init__(self, model: str = "mock"):
        self.model = model

    def generate(self, prompt: str, system_prompt: Optional[str] = None, temperature: float = 0.3,
                 max_tokens: Optional[int] = None, model: Optional[str] = None) -> GenerationResult:
        logger.info(f"MockLLM generating for prompt: {prompt[:50]}...")
        system_prompt = system_prompt or ""
        if "translation quality checker" in system_prompt:
            text = json.dumps({"pass": True, "issues": []})
        elif "define the meaning" in system_prompt:
            text = json.dumps({"definitions": {}})
        elif "explain" in system_prompt.lower() or "解説" in system_prompt:
            text = json.dumps({"point": "Mock", "explanation": "Mock explanation."})
        elif "translat" in system_prompt.lower() or "tone" in system_prompt.lower():
            text = json.dumps({
                "translation": "Mock Translation",
                "reverse_translation": "Mock Reverse Translation",
                "risk": "low",
                "detected_language": "English",
            })
        else:
            text = "Mock response."
        return GenerationResult(text=text, prompt_tokens=10, completion_tokens=10, total_tokens=20)


def _messages(prompt: str, system_prompt: Optional[str]):
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


def _translate_openai_error(e: Exception) -> BackendError:
    if isinstance(e, openai.APIStatusError):
        return BackendError(e.status_code, get_backend_error_message(e.status_code), getattr(e, "body", None))
    return BackendError(0, get_backend_error_message(0), str(e))


class OpenAILLM(LLMBase):
    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, model: str = "gpt-4o-mini",
                 timeout: float = DEFAULT_REQUEST_TIMEOUT):
        self.client = OpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url or os.getenv("OPENAI_BASE_URL"),
            timeout=timeout,
            # retries belong to CompletionClient
            max_retries=0,
        )
        self.model = model

    def generate(self, prompt: str, system_prompt: Optional[str] = None, temperature: float = 0.3,
                 max_tokens: Optional[int] = None, model: Optional[str] = None) -> GenerationResult:
        kwargs: Dict[str, Any] = {
            "model": model or self.model,
            "messages": _messages(prompt, system_prompt),
            "temperature": temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        try:
            response = self.client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            logger.error(f"Error calling OpenAI: {e}")
            raise _translate_openai_error(e) from e
        usage = response.usage
        return GenerationResult(
            text=(response.choices[0].message.content or "").strip(),
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            total_tokens=usage.total_tokens if usage else 0,
        )


class AzureOpenAILLM(OpenAILLM):
    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, api_version: Optional[str] = None,
                 model: str = "gpt-4o-mini", timeout: float = DEFAULT_REQUEST_TIMEOUT):
        # AzureOpenAI uses 'azure_endpoint' which corresponds to base_url
        self.client = AzureOpenAI(
            api_key=api_key or os.getenv("AZURE_OPENAI_API_KEY"),
            azure_endpoint=base_url or os.getenv("AZURE_OPENAI_ENDPOINT"),
            api_version=api_version or os.getenv("AZURE_OPENAI_API_VERSION", "2024-06-01"),
            timeout=timeout,
            max_retries=0,
        )
        self.model = model


class ProxyLLM(LLMBase):
    """
    Completion proxy that takes {model, systemPrompt, userPrompt, temperature, maxTokens?}
    and answers {content}. Errors come back as {error?, details?}.
    """

    def __init__(self, base_url: Optional[str] = None, model: str = "qwen/qwen3-32b",
                 timeout: float = DEFAULT_REQUEST_TIMEOUT, api_key: Optional[str] = None):
        self.base_url = (base_url or os.getenv("TONE_FLUENT_PROXY_URL", "http://localhost:3000")).rstrip("/")
        self.model = model
        self.timeout = timeout
        self.api_key = api_key

    def generate(self, prompt: str, system_prompt: Optional[str] = None, temperature: float = 0.3,
                 max_tokens: Optional[int] = None, model: Optional[str] = None) -> GenerationResult:
        payload: Dict[str, Any] = {
            "model": model or self.model,
            "systemPrompt": system_prompt or "",
            "userPrompt": prompt,
            "temperature": temperature,
        }
        if max_tokens:
            payload["maxTokens"] = max_tokens
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = requests.post(f"{self.base_url}/api/openai", json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Error calling completion proxy: {e}")
            raise BackendError(0, get_backend_error_message(0), str(e)) from e

        if not response.ok:
            try:
                error = response.json()
            except ValueError:
                error = {}
            raise BackendError(
                response.status_code,
                error.get("error") or get_backend_error_message(response.status_code),
                error.get("details"),
            )
        return GenerationResult(text=response.json().get("content") or "")


class LLMFactory:
    @staticmethod
    def create(provider: str, **kwargs) -> LLMBase:
        kwargs.pop("system_prefix", None)
        if provider == "openai":
            kwargs.pop("api_version", None)
            return OpenAILLM(**kwargs)
        elif provider == "azure":
            return AzureOpenAILLM(**kwargs)
        elif provider == "proxy":
            kwargs.pop("api_version", None)
            return ProxyLLM(**kwargs)
        elif provider == "mock":
            return MockLLM(model=kwargs.get("model", "mock"))
        else:
            raise ValueError(f"Unknown provider: {provider}")


def _is_retryable(e: BaseException) -> bool:
    return isinstance(e, BackendError) and e.retryable


class CompletionClient:
    """
    complete(system, user, temperature, cancel_token, max_output_tokens) -> text.

    Checks the cancellation token before and after the backend call, retries transient
    backend failures and strips reasoning tags from the answer.
    """

    def __init__(self, llm: LLMBase, system_prefix: str = "", attempts: int = 3, retry_wait: float = 2.0):
        self.llm = llm
        self.system_prefix = system_prefix
        self.usage = TokenUsage()
        self._usage_lock = threading.Lock()
        self._retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(retry_wait),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )

    @property
    def model(self) -> str:
        return getattr(self.llm, "model", "unknown")

    def complete(self, system_prompt: str, user_prompt: str, temperature: float = 0.3,
                 cancel_token: Optional[CancelToken] = None, max_output_tokens: Optional[int] = None,
                 model: Optional[str] = None) -> str:
        check_cancelled(cancel_token)
        if self.system_prefix:
            system_prompt = f"{self.system_prefix}\n{system_prompt}"
        logger.debug(f"[{model or self.model}] system prompt:\n{system_prompt}")
        logger.debug(f"[{model or self.model}] user prompt:\n{user_prompt}")

        def attempt() -> GenerationResult:
            check_cancelled(cancel_token)
            return self.llm.generate(user_prompt, system_prompt=system_prompt, temperature=temperature,
                                     max_tokens=max_output_tokens, model=model)

        try:
            result = self._retrying(attempt)
        finally:
            # A response that arrives after cancellation is dropped before anyone can use it
            check_cancelled(cancel_token)

        with self._usage_lock:
            self.usage.add(result)
        logger.debug(f"[{model or self.model}] response: {result.text}")
        return strip_thinking(result.text).strip()

    def usage_report(self) -> Dict[str, int]:
        with self._usage_lock:
            return dict(vars(self.usage))
