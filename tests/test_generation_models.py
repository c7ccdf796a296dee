"""
Tests for the generation model wrappers.

This test module verifies API key resolution, failure classification, and
the Gemini wrapper's request building and response handling against a
mocked GenAI client.
"""

import asyncio
import os
from unittest.mock import AsyncMock, Mock, patch

import pytest
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from langchain_core.messages import AIMessage, HumanMessage

from conftest import FakePager
from exceptions import ErrorKind, GenerationError
from generation.models.base import BaseGenerationModel
from generation.models.gemini import GeminiGenerationModel, to_gemini_contents
from generation.types import GenerationParameters, SafetySetting


def make_response(text="Hello from Gemini"):
    return genai_types.GenerateContentResponse(
        candidates=[
            genai_types.Candidate(
                content=genai_types.Content(role="model", parts=[genai_types.Part(text=text)])
            )
        ]
    )


def make_api_error(code, message="boom", status="UNKNOWN", details=None):
    error = {"code": code, "message": message, "status": status}
    if details is not None:
        error["details"] = details
    error_class = genai_errors.ClientError if code < 500 else genai_errors.ServerError
    return error_class(code, {"error": error})


def make_model(response=None, side_effect=None, timeout=5.0):
    client = Mock()
    client.aio.models.generate_content = AsyncMock(return_value=response, side_effect=side_effect)
    model = GeminiGenerationModel(
        model_name="gemini-test",
        api_key="test_key",
        timeout=timeout,
        client=client,
    )
    return model, client


class TestGetApiKey:
    """Test the _get_api_key method."""

    @patch.dict(os.environ, {"TEST_API_KEY": "env_key_value"}, clear=False)
    def test_get_api_key_from_environment(self):
        model = Mock(spec=BaseGenerationModel)
        model.api_key = None
        model.provider_name = "TestProvider"
        model._get_api_key = BaseGenerationModel._get_api_key.__get__(model, BaseGenerationModel)

        assert model._get_api_key("TEST_API_KEY") == "env_key_value"

    def test_get_api_key_from_instance(self):
        """Instance API key takes precedence over environment."""
        model = Mock(spec=BaseGenerationModel)
        model.api_key = "instance_key_value"
        model._get_api_key = BaseGenerationModel._get_api_key.__get__(model, BaseGenerationModel)

        with patch.dict(os.environ, {"TEST_API_KEY": "env_key_value"}, clear=False):
            assert model._get_api_key("TEST_API_KEY") == "instance_key_value"

    def test_missing_key_is_unauthorized(self):
        model = Mock(spec=BaseGenerationModel)
        model.api_key = None
        model.provider_name = "TestProvider"
        model._get_api_key = BaseGenerationModel._get_api_key.__get__(model, BaseGenerationModel)

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(GenerationError, match="MISSING_KEY is not configured") as exc_info:
                model._get_api_key("MISSING_KEY")

        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED


class TestHandleApiError:
    """Test the shared _handle_api_error classification."""

    @pytest.fixture
    def model(self):
        return GeminiGenerationModel(api_key="k", timeout=30.0, client=Mock())

    def test_generation_error_returned_unchanged(self, model):
        original = GenerationError(ErrorKind.EMPTY_RESPONSE, "nothing")
        assert model._handle_api_error(original) is original

    @pytest.mark.parametrize("error", [asyncio.TimeoutError(), TimeoutError("slow")])
    def test_timeouts(self, model, error):
        result = model._handle_api_error(error)
        assert result.kind is ErrorKind.TIMEOUT
        assert "timed out after 30s" in str(result)

    def test_generic_exception_is_upstream_error(self, model):
        result = model._handle_api_error(Exception("Some API error"))
        assert result.kind is ErrorKind.UPSTREAM_ERROR
        assert "Gemini API call failed: Exception: Some API error" in str(result)

    @pytest.mark.parametrize(
        "code,kind",
        [
            (429, ErrorKind.RATE_LIMITED),
            (401, ErrorKind.UNAUTHORIZED),
            (403, ErrorKind.UNAUTHORIZED),
            (404, ErrorKind.MODEL_UNAVAILABLE),
            (400, ErrorKind.UPSTREAM_ERROR),
            (500, ErrorKind.UPSTREAM_ERROR),
            (503, ErrorKind.UPSTREAM_ERROR),
        ],
    )
    def test_api_errors_by_status(self, model, code, kind):
        result = model._handle_api_error(make_api_error(code, message="upstream said no"))
        assert result.kind is kind
        assert result.status_code == code
        assert result.details == "upstream said no"

    def test_invalid_api_key_400_is_unauthorized(self, model):
        error = make_api_error(
            400,
            message="API key not valid. Please pass a valid API key.",
            status="INVALID_ARGUMENT",
            details=[{"reason": "API_KEY_INVALID"}],
        )
        assert model._handle_api_error(error).kind is ErrorKind.UNAUTHORIZED


class TestGeminiRequestBuilding:
    """Test conversion of messages and parameters into SDK types."""

    def test_contents_use_user_and_model_roles(self):
        contents = to_gemini_contents(
            [HumanMessage(content="Hi"), AIMessage(content="Hello"), HumanMessage(content="Bye")]
        )

        assert [c.role for c in contents] == ["user", "model", "user"]
        assert [c.parts[0].text for c in contents] == ["Hi", "Hello", "Bye"]

    def test_default_generation_config(self):
        model = GeminiGenerationModel(api_key="k", client=Mock())
        config = model._build_generation_config(GenerationParameters())

        assert config.temperature == 0.7
        assert config.max_output_tokens == 2048
        assert config.top_p == 0.8
        assert config.top_k == 40
        assert len(config.safety_settings) == 2

    def test_optional_fields_are_omitted(self):
        model = GeminiGenerationModel(api_key="k", client=Mock())
        params = GenerationParameters(top_p=None, top_k=None, safety_settings=[])
        config = model._build_generation_config(params)

        assert config.top_p is None
        assert config.top_k is None
        assert config.safety_settings is None

    def test_parameter_overrides_are_validated(self):
        params = GenerationParameters().with_overrides(max_output_tokens=50)

        assert params.max_output_tokens == 50
        assert params.safety_settings[0] == SafetySetting(
            category="HARM_CATEGORY_HARASSMENT", threshold="BLOCK_MEDIUM_AND_ABOVE"
        )
        with pytest.raises(ValueError):
            GenerationParameters().with_overrides(temperature=5.0)


class TestGeminiGenerate:
    """Test GeminiGenerationModel.generate()."""

    async def test_returns_first_candidate_text(self):
        model, client = make_model(response=make_response("Hi there"))

        text = await model.generate([HumanMessage(content="Hello")])

        assert text == "Hi there"
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-test"
        assert kwargs["contents"][0].parts[0].text == "Hello"
        assert kwargs["config"].max_output_tokens == 2048

    async def test_model_override(self):
        model, client = make_model(response=make_response())

        await model.generate([HumanMessage(content="Hello")], model="gemini-other")

        assert client.aio.models.generate_content.call_args.kwargs["model"] == "gemini-other"

    async def test_no_candidates_is_empty_response(self):
        model, _ = make_model(response=genai_types.GenerateContentResponse(candidates=[]))

        with pytest.raises(GenerationError) as exc_info:
            await model.generate([HumanMessage(content="Hello")])

        assert exc_info.value.kind is ErrorKind.EMPTY_RESPONSE

    async def test_candidate_without_parts_is_empty_response(self):
        response = genai_types.GenerateContentResponse(
            candidates=[genai_types.Candidate(content=genai_types.Content(role="model", parts=[]))]
        )
        model, _ = make_model(response=response)

        with pytest.raises(GenerationError) as exc_info:
            await model.generate([HumanMessage(content="Hello")])

        assert exc_info.value.kind is ErrorKind.EMPTY_RESPONSE

    async def test_rate_limit_is_classified(self):
        model, _ = make_model(side_effect=make_api_error(429, status="RESOURCE_EXHAUSTED"))

        with pytest.raises(GenerationError) as exc_info:
            await model.generate([HumanMessage(content="Hello")])

        assert exc_info.value.kind is ErrorKind.RATE_LIMITED
        assert isinstance(exc_info.value.__cause__, genai_errors.APIError)

    async def test_stalled_call_times_out(self):
        async def stall(**kwargs):
            await asyncio.sleep(5)

        model, _ = make_model(side_effect=stall, timeout=0.05)

        with pytest.raises(GenerationError) as exc_info:
            await model.generate([HumanMessage(content="Hello")])

        assert exc_info.value.kind is ErrorKind.TIMEOUT

    async def test_unexpected_exception_is_upstream_error(self):
        model, _ = make_model(side_effect=ConnectionError("Network unreachable"))

        with pytest.raises(GenerationError) as exc_info:
            await model.generate([HumanMessage(content="Hello")])

        assert exc_info.value.kind is ErrorKind.UPSTREAM_ERROR
        assert "Network unreachable" in exc_info.value.details

    @patch.dict(os.environ, {}, clear=True)
    async def test_missing_key_fails_at_call_time(self):
        model = GeminiGenerationModel()

        with pytest.raises(GenerationError) as exc_info:
            await model.generate([HumanMessage(content="Hello")])

        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED

    def test_client_built_lazily_with_key(self):
        with patch("generation.models.gemini.genai.Client") as mock_genai_client:
            model = GeminiGenerationModel(api_key="test_google_key")
            mock_genai_client.assert_not_called()

            model._get_client()

            mock_genai_client.assert_called_once_with(api_key="test_google_key")


class TestGeminiListModels:
    """Test GeminiGenerationModel.list_models()."""

    async def test_filters_generation_models(self):
        client = Mock()
        client.aio.models.list = AsyncMock(
            return_value=FakePager(
                [
                    genai_types.Model(
                        name="models/gemini-2.0-flash-001",
                        display_name="Gemini 2.0 Flash",
                        description="Fast multimodal model",
                        supported_actions=["generateContent", "countTokens"],
                    ),
                    genai_types.Model(
                        name="models/text-embedding-004",
                        display_name="Text Embedding 004",
                        supported_actions=["embedContent"],
                    ),
                ]
            )
        )
        model = GeminiGenerationModel(api_key="k", client=client)

        models = await model.list_models()

        assert [m.to_dict() for m in models] == [
            {
                "name": "gemini-2.0-flash-001",
                "displayName": "Gemini 2.0 Flash",
                "description": "Fast multimodal model",
            }
        ]

    async def test_listing_failure_is_classified(self):
        client = Mock()
        client.aio.models.list = AsyncMock(side_effect=make_api_error(401))
        model = GeminiGenerationModel(api_key="k", client=client)

        with pytest.raises(GenerationError) as exc_info:
            await model.list_models()

        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
