"""Tests for analysis backend implementations.

Shared behaviour (prompt building, _call_with_retry, empty-reply handling)
lives in BaseAnalyzer and is tested once via a lightweight stub, not
duplicated per provider. Provider-specific tests cover only what differs:
the SDK client setup and _call_api.
"""

from unittest.mock import MagicMock, patch

import pytest

from reviewdeck_core.providers.anthropic import AnthropicAnalyzer
from reviewdeck_core.providers.base import AnalysisRequest, BaseAnalyzer
from reviewdeck_core.providers.openai import OpenAIAnalyzer
from reviewdeck_store.errors import UpstreamAnalysisError

REPLY = "Código bem estruturado, mas a senha está hardcoded na linha 12."


class _StubAnalyzer(BaseAnalyzer):
    """Minimal concrete subclass used to test BaseAnalyzer shared methods."""

    MODEL = "stub-model"

    def __init__(self, reply=REPLY):
        self.reply = reply
        self.calls = []

    def _call_api(self, system_prompt: str, user_prompt: str, model: str) -> str:
        self.calls.append((system_prompt, user_prompt, model))
        return self.reply


def _request(**overrides):
    fields = {"code": "class Foo {}", "file_name": "Foo.java"}
    fields.update(overrides)
    return AnalysisRequest(**fields)


# ---------------------------------------------------------------------------
# Shared behaviour — tested once through the stub, not per provider
# ---------------------------------------------------------------------------


class TestBaseAnalyzerAnalyze:
    def test_returns_raw_reply_verbatim(self):
        assert _StubAnalyzer().analyze(_request()) == REPLY

    def test_uses_class_model_when_request_has_none(self):
        analyzer = _StubAnalyzer()
        analyzer.analyze(_request())
        assert analyzer.calls[0][2] == "stub-model"

    def test_request_model_overrides_default(self):
        analyzer = _StubAnalyzer()
        analyzer.analyze(_request(model_id="custom-model"))
        assert analyzer.calls[0][2] == "custom-model"

    @pytest.mark.parametrize("reply", ["", "   \n", None])
    def test_blank_reply_raises_upstream_error(self, reply):
        with pytest.raises(UpstreamAnalysisError, match="empty response"):
            _StubAnalyzer(reply=reply).analyze(_request())


class TestBaseAnalyzerPrompts:
    def test_system_prompt_contains_review_prompt(self):
        analyzer = _StubAnalyzer()
        analyzer.analyze(_request(prompt="## Check connection handling"))
        assert "## Check connection handling" in analyzer.calls[0][0]

    def test_user_prompt_contains_filename_and_code(self):
        prompt = _StubAnalyzer()._build_user_prompt("src/Foo.java", "class Foo {}")
        assert "src/Foo.java" in prompt
        assert "class Foo {}" in prompt


class TestBaseAnalyzerRetry:
    def test_raises_after_max_retries(self):
        """When _call_api raises on every attempt, analyze() raises UpstreamAnalysisError."""

        class _AlwaysFail(BaseAnalyzer):
            def _call_api(self, system_prompt: str, user_prompt: str, model: str) -> str:
                raise RuntimeError("network error")

        # Patch time.sleep so the test doesn't actually wait.
        with patch("reviewdeck_core.providers.base.time.sleep") as sleep:
            with pytest.raises(UpstreamAnalysisError, match="network error"):
                _AlwaysFail().analyze(_request())
        assert sleep.call_count == BaseAnalyzer.MAX_RETRIES - 1

    def test_retries_on_transient_failure(self):
        call_count = 0

        class _FailOnceThenSucceed(BaseAnalyzer):
            def _call_api(self, system_prompt: str, user_prompt: str, model: str) -> str:
                nonlocal call_count
                call_count += 1
                if call_count == 1:
                    raise RuntimeError("transient")
                return REPLY

        with patch("reviewdeck_core.providers.base.time.sleep"):
            result = _FailOnceThenSucceed().analyze(_request())
        assert result == REPLY
        assert call_count == 2


# ---------------------------------------------------------------------------
# Provider-specific — only what differs between Anthropic and OpenAI
# ---------------------------------------------------------------------------


class TestAnthropicAnalyzer:
    def test_raises_import_error_without_sdk(self):
        with patch.dict("sys.modules", {"anthropic": None}):
            with pytest.raises(ImportError):
                AnthropicAnalyzer(api_key="key")

    def test_model_is_claude(self):
        assert "claude" in AnthropicAnalyzer.MODEL

    def test_call_api_joins_text_blocks(self):
        from anthropic.types import TextBlock

        analyzer = AnthropicAnalyzer(api_key="key")
        analyzer.client = MagicMock()
        analyzer.client.messages.create.return_value.content = [
            TextBlock(type="text", text="Bom código. "),
            TextBlock(type="text", text="Sem problemas."),
        ]
        assert analyzer._call_api("sys", "user", "claude-x") == "Bom código. Sem problemas."
        assert analyzer.client.messages.create.call_args.kwargs["model"] == "claude-x"


class TestOpenAIAnalyzer:
    def test_raises_import_error_without_sdk(self):
        import reviewdeck_core.providers.openai as openai_mod

        real_openai = openai_mod._OpenAI
        openai_mod._OpenAI = None
        try:
            with pytest.raises(ImportError):
                OpenAIAnalyzer(api_key="key")
        finally:
            openai_mod._OpenAI = real_openai

    def test_model_is_gpt(self):
        assert "gpt" in OpenAIAnalyzer.MODEL

    def test_none_content_becomes_empty_string(self):
        analyzer = OpenAIAnalyzer(api_key="key")
        analyzer.client = MagicMock()
        analyzer.client.chat.completions.create.return_value.choices = [MagicMock(message=MagicMock(content=None))]
        assert analyzer._call_api("sys", "user", "gpt-4o") == ""
