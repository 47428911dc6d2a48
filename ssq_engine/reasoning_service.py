"""
External Reasoning Services
===========================

Text-generation backends used by the "ai" predictor:
- GeminiReasoningService: Google Gemini via google-generativeai
- DeepSeekReasoningService: OpenAI-compatible chat completions over requests

Both implement ReasoningService.generate(prompt, temperature, max_tokens, timeout)
and raise ExternalReasoningError on any failure. Retries are left to callers.
"""

import configparser
import os
from typing import Optional, Protocol

import google.generativeai as genai
import requests
from loguru import logger

from ssq_engine.config import get_reasoning_provider, load_config
from ssq_engine.exceptions import ExternalReasoningError

DEFAULT_GEMINI_MODEL = 'gemini-2.5-flash-lite'
DEFAULT_DEEPSEEK_MODEL = 'deepseek-chat'
DEFAULT_DEEPSEEK_URL = 'https://api.deepseek.com/v1/chat/completions'

SYSTEM_PROMPT = ("You are a professional lottery data analyst who finds patterns "
                 "in historical draws and produces well-reasoned predictions.")


class ReasoningService(Protocol):
    def generate(self, prompt: str, temperature: float, max_tokens: int, timeout: float) -> str:
        ...


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json / ``` markdown block, if any."""
    json_text = text.strip()
    if json_text.startswith('```json'):
        json_text = json_text[7:]
    if json_text.startswith('```'):
        json_text = json_text[3:]
    if json_text.endswith('```'):
        json_text = json_text[:-3]
    return json_text.strip()


class GeminiReasoningService:
    """Google Gemini text generation."""

    def __init__(self, api_key: Optional[str] = None, model_name: str = DEFAULT_GEMINI_MODEL):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not self.api_key:
            raise ExternalReasoningError("GEMINI_API_KEY environment variable is required")

        genai.configure(api_key=self.api_key)
        self.model_name = model_name
        self.model = genai.GenerativeModel(model_name, system_instruction=SYSTEM_PROMPT)
        logger.info(f"Gemini reasoning service initialized (model={model_name})")

    def generate(self, prompt: str, temperature: float, max_tokens: int, timeout: float) -> str:
        logger.debug("Sending request to Gemini API")
        try:
            response = self.model.generate_content(
                prompt,
                generation_config=genai.GenerationConfig(
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
                request_options={'timeout': timeout},
            )
            text = response.text
        except Exception as e:
            # The SDK raises google.api_core and ValueError subclasses alike
            logger.error(f"Gemini API error: {e}")
            raise ExternalReasoningError(f"Gemini API error: {e}", cause=e) from e

        if not text:
            logger.error("Empty response from Gemini API")
            raise ExternalReasoningError("Empty response from Gemini API")
        return text


class DeepSeekReasoningService:
    """DeepSeek (OpenAI-compatible) chat completions."""

    def __init__(self, api_key: Optional[str] = None, api_url: str = DEFAULT_DEEPSEEK_URL,
                 model_name: str = DEFAULT_DEEPSEEK_MODEL, session: Optional[requests.Session] = None):
        self.api_key = api_key or os.getenv("DEEPSEEK_API_KEY")
        if not self.api_key:
            raise ExternalReasoningError("DEEPSEEK_API_KEY environment variable is required")
        self.api_url = api_url
        self.model_name = model_name
        self.session = session or requests.Session()
        logger.info(f"DeepSeek reasoning service initialized (model={model_name})")

    def generate(self, prompt: str, temperature: float, max_tokens: int, timeout: float) -> str:
        headers = {
            'Content-Type': 'application/json',
            'Authorization': f'Bearer {self.api_key}',
        }
        payload = {
            'model': self.model_name,
            'messages': [
                {'role': 'system', 'content': SYSTEM_PROMPT},
                {'role': 'user', 'content': prompt},
            ],
            'temperature': temperature,
            'max_tokens': max_tokens,
        }

        logger.debug(f"Sending request to {self.api_url}")
        try:
            response = self.session.post(self.api_url, headers=headers, json=payload, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"DeepSeek API request failed: {e}")
            raise ExternalReasoningError(f"DeepSeek API request failed: {e}", cause=e) from e
        except ValueError as e:
            logger.error(f"DeepSeek API returned invalid JSON: {e}")
            raise ExternalReasoningError("DeepSeek API returned invalid JSON", cause=e) from e

        choices = data.get('choices') or []
        content = choices[0].get('message', {}).get('content') if choices else None
        if not content:
            logger.error("DeepSeek API returned empty content")
            raise ExternalReasoningError("DeepSeek API returned empty content")
        return content


def create_reasoning_service(config: Optional[configparser.ConfigParser] = None) -> Optional[ReasoningService]:
    """
    Build the configured reasoning backend.

    Returns:
        A ReasoningService, or None when the provider is unknown or its API key
        is missing (the ai predictor then uses its fallback)
    """
    config = config or load_config()
    provider = get_reasoning_provider(config)

    try:
        if provider == 'gemini':
            return GeminiReasoningService(
                model_name=config.get("ai", "gemini_model", fallback=DEFAULT_GEMINI_MODEL))
        if provider == 'deepseek':
            return DeepSeekReasoningService(
                api_url=config.get("ai", "deepseek_api_url", fallback=DEFAULT_DEEPSEEK_URL),
                model_name=config.get("ai", "deepseek_model", fallback=DEFAULT_DEEPSEEK_MODEL))
    except ExternalReasoningError as e:
        logger.warning(f"Reasoning service '{provider}' unavailable: {e.message}")
        return None

    logger.warning(f"Unknown reasoning provider '{provider}', AI predictions will use the fallback")
    return None
