"""
Tests for the reasoning service clients (Gemini SDK and HTTP calls are mocked)
"""

import configparser
from unittest.mock import MagicMock, patch

import pytest
import requests

from ssq_engine.exceptions import ExternalReasoningError
from ssq_engine.reasoning_service import (
    DeepSeekReasoningService,
    GeminiReasoningService,
    create_reasoning_service,
    strip_code_fences,
)


class TestStripCodeFences:

    @pytest.mark.parametrize("text", [
        '```json\n{"a": 1}\n```',
        '```\n{"a": 1}\n```',
        '  {"a": 1}  ',
    ])
    def test_strip(self, text):
        assert strip_code_fences(text) == '{"a": 1}'


class TestGeminiReasoningService:

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(ExternalReasoningError) as exc_info:
            GeminiReasoningService()
        assert exc_info.value.retryable is True

    @patch('ssq_engine.reasoning_service.genai')
    def test_generate_returns_text(self, mock_genai):
        model = mock_genai.GenerativeModel.return_value
        model.generate_content.return_value.text = '{"predictions": []}'

        service = GeminiReasoningService(api_key='test-key', model_name='gemini-test')
        text = service.generate("prompt", temperature=0.5, max_tokens=100, timeout=7)

        assert text == '{"predictions": []}'
        mock_genai.configure.assert_called_once_with(api_key='test-key')
        assert mock_genai.GenerativeModel.call_args[0][0] == 'gemini-test'
        kwargs = model.generate_content.call_args[1]
        assert kwargs['request_options'] == {'timeout': 7}
        mock_genai.GenerationConfig.assert_called_once_with(temperature=0.5, max_output_tokens=100)

    @patch('ssq_engine.reasoning_service.genai')
    def test_sdk_error_is_wrapped(self, mock_genai):
        mock_genai.GenerativeModel.return_value.generate_content.side_effect = RuntimeError("quota")
        service = GeminiReasoningService(api_key='test-key')
        with pytest.raises(ExternalReasoningError) as exc_info:
            service.generate("prompt", 0.7, 100, 5)
        assert isinstance(exc_info.value.cause, RuntimeError)

    @patch('ssq_engine.reasoning_service.genai')
    def test_empty_text_is_an_error(self, mock_genai):
        mock_genai.GenerativeModel.return_value.generate_content.return_value.text = ''
        service = GeminiReasoningService(api_key='test-key')
        with pytest.raises(ExternalReasoningError):
            service.generate("prompt", 0.7, 100, 5)


class TestDeepSeekReasoningService:

    def _session(self, payload=None, side_effect=None):
        session = MagicMock()
        if side_effect is not None:
            session.post.side_effect = side_effect
        else:
            session.post.return_value.json.return_value = payload
        return session

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
        with pytest.raises(ExternalReasoningError):
            DeepSeekReasoningService()

    def test_generate_posts_chat_completion(self):
        session = self._session({'choices': [{'message': {'content': 'answer'}}]})
        service = DeepSeekReasoningService(api_key='k', api_url='https://example.test/chat', session=session)

        assert service.generate("prompt", 0.2, 300, 9) == 'answer'

        args, kwargs = session.post.call_args
        assert args[0] == 'https://example.test/chat'
        assert kwargs['timeout'] == 9
        assert kwargs['headers']['Authorization'] == 'Bearer k'
        assert kwargs['json']['messages'][-1] == {'role': 'user', 'content': 'prompt'}
        assert kwargs['json']['max_tokens'] == 300

    def test_transport_error_is_wrapped(self):
        session = self._session(side_effect=requests.exceptions.Timeout("read timeout"))
        service = DeepSeekReasoningService(api_key='k', session=session)
        with pytest.raises(ExternalReasoningError) as exc_info:
            service.generate("prompt", 0.7, 100, 5)
        assert exc_info.value.retryable is True

    def test_http_error_is_wrapped(self):
        session = self._session()
        session.post.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError("503")
        service = DeepSeekReasoningService(api_key='k', session=session)
        with pytest.raises(ExternalReasoningError):
            service.generate("prompt", 0.7, 100, 5)

    def test_invalid_json_is_wrapped(self):
        session = self._session()
        session.post.return_value.json.side_effect = ValueError("no json")
        service = DeepSeekReasoningService(api_key='k', session=session)
        with pytest.raises(ExternalReasoningError):
            service.generate("prompt", 0.7, 100, 5)

    def test_empty_choices_is_an_error(self):
        service = DeepSeekReasoningService(api_key='k', session=self._session({'choices': []}))
        with pytest.raises(ExternalReasoningError):
            service.generate("prompt", 0.7, 100, 5)


class TestCreateReasoningService:

    def _config(self, provider):
        config = configparser.ConfigParser()
        config.read_dict({'ai': {'provider': provider}})
        return config

    def test_unknown_provider(self, monkeypatch):
        monkeypatch.delenv("REASONING_PROVIDER", raising=False)
        assert create_reasoning_service(self._config('oracle')) is None

    def test_missing_key_returns_none(self, monkeypatch):
        monkeypatch.delenv("REASONING_PROVIDER", raising=False)
        monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
        assert create_reasoning_service(self._config('deepseek')) is None

    def test_environment_overrides_provider(self, monkeypatch):
        monkeypatch.setenv("REASONING_PROVIDER", "DeepSeek")
        monkeypatch.setenv("DEEPSEEK_API_KEY", "k")
        service = create_reasoning_service(self._config('gemini'))
        assert isinstance(service, DeepSeekReasoningService)

    @patch('ssq_engine.reasoning_service.genai')
    def test_gemini_provider(self, mock_genai, monkeypatch):
        monkeypatch.delenv("REASONING_PROVIDER", raising=False)
        monkeypatch.setenv("GEMINI_API_KEY", "g")
        service = create_reasoning_service(self._config('gemini'))
        assert isinstance(service, GeminiReasoningService)
        mock_genai.configure.assert_called_once_with(api_key='g')
