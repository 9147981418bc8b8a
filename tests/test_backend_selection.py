"""
Tests for configuration-driven backend selection and embedding validation.
"""
import math
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from ai.backend import BackendUnavailableError, EmbeddingError, as_embedding, create_backend
from ai.gemini_backend import GeminiBackend
from ai.openai_backend import OpenAIBackend
from rxparse.config import EMBEDDING_DIM, EmbeddingSettings, GeminiSettings, OpenAISettings, ParserBackend, Settings


def make_settings(parser_backend=None, openai_key=None, gemini_key=None):
    return Settings(
        parser_backend=parser_backend,
        openai=OpenAISettings(api_key=openai_key),
        gemini=GeminiSettings(api_key=gemini_key),
    )


class TestResolvedBackend:

    def test_explicit_choice(self):
        settings = make_settings("gemini", openai_key="sk", gemini_key="g")
        assert settings.resolved_backend() is ParserBackend.GEMINI

    def test_choice_is_case_insensitive(self):
        assert make_settings(" OpenAI ").parser_backend is ParserBackend.OPENAI

    def test_empty_choice_means_unset(self):
        assert make_settings("").parser_backend is None

    def test_openai_key_wins_when_unset(self):
        assert make_settings(openai_key="sk", gemini_key="g").resolved_backend() is ParserBackend.OPENAI

    def test_gemini_key_fallback(self):
        assert make_settings(gemini_key="g").resolved_backend() is ParserBackend.GEMINI

    def test_nothing_configured(self):
        assert make_settings().resolved_backend() is None

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            make_settings("claude")


class TestCreateBackend:

    def test_openai(self):
        backend = create_backend(make_settings(openai_key="sk-test"))
        assert isinstance(backend, OpenAIBackend)
        assert backend.name == "openai"

    def test_gemini(self):
        with patch("ai.gemini_backend.genai"):
            backend = create_backend(make_settings("gemini", gemini_key="g-test"))
        assert isinstance(backend, GeminiBackend)

    def test_none_configured(self):
        assert create_backend(make_settings()) is None

    def test_selected_backend_without_key(self):
        with pytest.raises(BackendUnavailableError, match="OPENAI_API_KEY"):
            create_backend(make_settings("openai", gemini_key="g"))


class TestEmbeddingValidation:

    def test_accepts_correct_dimension(self):
        vector = as_embedding([0.1] * EMBEDDING_DIM)
        assert len(vector) == EMBEDDING_DIM
        assert all(isinstance(v, float) for v in vector)

    def test_rejects_wrong_dimension(self):
        with pytest.raises(EmbeddingError):
            as_embedding([0.1] * 768)

    def test_rejects_non_finite(self):
        values = [0.1] * EMBEDDING_DIM
        values[10] = math.nan
        with pytest.raises(EmbeddingError, match="non-finite"):
            as_embedding(values)

    def test_dimension_setting_is_fixed(self):
        with pytest.raises(ValidationError):
            EmbeddingSettings(dim=768)
