# mailgate/llm_wrapper.py
"""
LLM client for email replies. Supports Azure OpenAI, OpenAI and Anthropic backends.

Each backend returns a standardized dict:
{
  "text": "<assistant text>",
  "model": "<model or deployment used>",
  "response_id": "<provider response id if available>",
  "raw": <raw response object>
}

Provider selection and credentials come from Settings (LLM_PROVIDER, MOCK_LLM, ...).
Provider failures are raised as LLMCommunicationError; timeouts and connection
errors are flagged as `unavailable`.

Usage:
  client = LLMClient(settings)
  text = client.process_email(system_prompt, email_body)
"""

import time
from typing import Dict, Any, List, Optional
from urllib.parse import urlparse

import anthropic
import openai

from mailgate import monitoring
from mailgate.config import Settings
from mailgate.errors import ConfigurationError, LLMCommunicationError

_ANTHROPIC_DEFAULT = "claude-sonnet-4-20250514"
_OPENAI_DEFAULT = "gpt-4o-mini"


# ---------------------------------------------------------------------------
# Azure OpenAI backend
# ---------------------------------------------------------------------------
def _real_azure_chat_completion(messages: List[Dict[str, str]], settings: Settings,
                                max_tokens: int, temperature: float,
                                timeout: int) -> Dict[str, Any]:
    client = openai.AzureOpenAI(
        azure_endpoint=settings.azure_openai_endpoint,
        api_key=settings.azure_openai_api_key,
        api_version=settings.azure_openai_api_version,
        timeout=timeout,
    )
    resp = client.chat.completions.create(
        model=settings.azure_openai_deployment,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
    )
    choices = getattr(resp, "choices", [])
    text = choices[0].message.content if choices else ""
    return {"text": text, "model": settings.azure_openai_deployment,
            "response_id": getattr(resp, "id", None), "raw": resp}


# ---------------------------------------------------------------------------
# OpenAI backend
# ---------------------------------------------------------------------------
def _real_openai_chat_completion(messages: List[Dict[str, str]], api_key: str, model: str,
                                 max_tokens: int, temperature: float,
                                 timeout: int) -> Dict[str, Any]:
    client = openai.OpenAI(api_key=api_key, timeout=timeout)
    resp = client.chat.completions.create(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
    )
    choices = getattr(resp, "choices", [])
    text = choices[0].message.content if choices else ""
    return {"text": text, "model": model, "response_id": getattr(resp, "id", None), "raw": resp}


# ---------------------------------------------------------------------------
# Anthropic backend
# ---------------------------------------------------------------------------
def _real_anthropic_chat(messages: List[Dict[str, str]], api_key: str, model: str,
                         max_tokens: int, temperature: float,
                         timeout: int) -> Dict[str, Any]:
    client = anthropic.Anthropic(api_key=api_key, timeout=timeout)

    # Anthropic uses a separate system param, not a system message in messages list
    system_text = ""
    chat_messages = []
    for m in messages:
        if m["role"] == "system":
            system_text += m["content"] + "\n"
        else:
            chat_messages.append({"role": m["role"], "content": m["content"]})

    kwargs = {
        "model": model,
        "max_tokens": max_tokens,
        "temperature": temperature,
        "messages": chat_messages,
    }
    if system_text.strip():
        kwargs["system"] = system_text.strip()

    resp = client.messages.create(**kwargs)

    text = ""
    for block in resp.content:
        if hasattr(block, "text"):
            text += block.text

    return {"text": text, "model": model, "response_id": getattr(resp, "id", None), "raw": resp}


# ---------------------------------------------------------------------------
# Mock backend
# ---------------------------------------------------------------------------
def _mock_llm(messages: List[Dict[str, str]], model: str, **kwargs) -> Dict[str, Any]:
    """
    Deterministic mock used in dev/tests. Echoes the user message back inside a
    short reply so callers can see the email made it through.
    """
    user_texts = [m["content"] for m in messages if m["role"] == "user"]
    text = "Thank you for your message.\n\n" + ("\n\n").join(user_texts)[:1000]
    rid = f"mock-{model}-{int(time.time() * 1000)}"
    return {"text": text, "model": model, "response_id": rid, "raw": {"mock": True}}


def _translate_provider_error(provider: str, e: Exception) -> LLMCommunicationError:
    if isinstance(e, (openai.APITimeoutError, anthropic.APITimeoutError)):
        return LLMCommunicationError(f"Timeout talking to {provider}", unavailable=True)
    if isinstance(e, (openai.APIConnectionError, anthropic.APIConnectionError)):
        return LLMCommunicationError(f"Could not connect to {provider}", unavailable=True)
    if isinstance(e, (openai.APIStatusError, anthropic.APIStatusError)):
        return LLMCommunicationError(
            f"Error from {provider}. Status: {e.status_code}.",
            status_code=e.status_code,
            error_content=str(e),
        )
    return LLMCommunicationError(f"Unexpected error talking to {provider}: {e}")


class LLMClient:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.provider = settings.llm_provider
        if self.provider == "azure":
            self.model = settings.azure_openai_deployment or settings.llm_model or _OPENAI_DEFAULT
        elif self.provider == "anthropic":
            self.model = settings.llm_model or _ANTHROPIC_DEFAULT
        else:
            self.model = settings.llm_model or _OPENAI_DEFAULT
        if not settings.mock_llm:
            self._check_credentials()

    def _check_credentials(self):
        s = self.settings
        if self.provider == "azure":
            parsed = urlparse(s.azure_openai_endpoint or "")
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ConfigurationError("Azure OpenAI endpoint is missing or not a valid URL")
            if not s.azure_openai_api_key:
                raise ConfigurationError("Azure OpenAI API key is not configured")
            if not s.azure_openai_deployment:
                raise ConfigurationError("Azure OpenAI deployment name is not configured")
        elif self.provider == "openai" and not s.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is not configured")
        elif self.provider == "anthropic" and not s.anthropic_api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not configured")

    def call_llm(self, messages: List[Dict[str, str]], max_tokens: Optional[int] = None,
                 temperature: Optional[float] = None) -> Dict[str, Any]:
        """
        messages: list of {role, content}
        Returns: dict with keys 'text','model','response_id','raw'
        """
        s = self.settings
        max_tokens = max_tokens or s.llm_max_tokens
        temperature = s.llm_temperature if temperature is None else temperature
        if s.mock_llm:
            return _mock_llm(messages, model=self.model)
        if self.provider == "azure":
            return _real_azure_chat_completion(messages, s, max_tokens=max_tokens,
                                               temperature=temperature, timeout=s.llm_timeout)
        if self.provider == "anthropic":
            return _real_anthropic_chat(messages, s.anthropic_api_key, self.model,
                                        max_tokens=max_tokens, temperature=temperature,
                                        timeout=s.llm_timeout)
        return _real_openai_chat_completion(messages, s.openai_api_key, self.model,
                                            max_tokens=max_tokens, temperature=temperature,
                                            timeout=s.llm_timeout)

    def process_email(self, system_prompt: str, email_content: str) -> str:
        """Send the email with the given system prompt and return the reply text."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": email_content},
        ]
        start = time.time()
        try:
            resp = self.call_llm(messages)
        except LLMCommunicationError:
            monitoring.observe_llm_call(start, self.provider, "error")
            raise
        except Exception as e:
            monitoring.observe_llm_call(start, self.provider, "error")
            monitoring.logger.exception("LLM call failed", extra={"provider": self.provider})
            raise _translate_provider_error(self.provider, e) from e

        text = resp.get("text")
        if not text:
            monitoring.observe_llm_call(start, self.provider, "empty")
            monitoring.logger.warning("LLM call succeeded without content", extra={"provider": self.provider})
            raise LLMCommunicationError("LLM response did not contain any content")

        monitoring.observe_llm_call(start, self.provider, "success")
        monitoring.logger.info("LLM call completed",
                               extra={"provider": self.provider, "model": resp.get("model"),
                                      "response_id": resp.get("response_id")})
        return text
