"""
Provider-agnostic LLM client for the Taskbot pipeline.

Supports Anthropic, OpenAI, and Google Gemini with a shared text-generation
interface. One client is built at startup and handed to every component
that needs it.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional

logger = logging.getLogger("taskbot.common.llm_client")


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self.timeout = timeout
        self._client = None

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import OpenAI

                self._client = OpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # Store the module, not a model instance
                self._google_models = {}  # Cache models by system prompt hash
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @classmethod
    def from_config(cls, llm_config) -> "LLMClient":
        """Build the client for the configured provider."""
        return cls(
            provider=llm_config.provider,
            model=llm_config.model,
            anthropic_api_key=llm_config.anthropic_api_key or None,
            openai_api_key=llm_config.openai_api_key or None,
            google_api_key=llm_config.google_api_key or None,
            timeout=llm_config.timeout,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        timeout: Optional[float] = None,
        temperature: Optional[float] = None,
        json_mode: bool = False,
    ) -> str:
        """Blocking single-turn generation.

        ``json_mode`` asks the provider for a JSON object where it supports
        that natively; callers still parse defensively.
        """
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        timeout = timeout if timeout is not None else self.timeout

        if self.provider == "anthropic":
            kwargs = {}
            if temperature is not None:
                kwargs["temperature"] = temperature
            if system:
                kwargs["system"] = system
            response = self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
                **kwargs,
            )
            return response.content[0].text.strip()

        if self.provider == "openai":
            messages = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt})
            kwargs = {}
            if temperature is not None:
                kwargs["temperature"] = temperature
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=messages,
                timeout=timeout,
                **kwargs,
            )
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            cache_key = hashlib.md5((system or "").encode()).hexdigest()
            if cache_key not in self._google_models:
                kwargs = {"model_name": self.model}
                if system:
                    kwargs["system_instruction"] = system
                self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
            model = self._google_models[cache_key]
            generation_config = {"max_output_tokens": max_tokens}
            if temperature is not None:
                generation_config["temperature"] = temperature
            if json_mode:
                generation_config["response_mime_type"] = "application/json"
            response = model.generate_content(
                prompt,
                generation_config=generation_config,
                request_options={"timeout": timeout},
            )
            return response.text.strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")
