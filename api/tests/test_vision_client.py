"""
Tests for the Gemini vision client.

The genai client is replaced with a MagicMock; responses are SimpleNamespace
objects shaped like google-genai responses.
"""
import base64
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
from google.genai import errors as genai_errors

from core.exceptions import ServiceError, ServiceUnavailable
from services.image_codec import ImagePayload
from services.vision_client import GENERIC_REFUSAL_MESSAGE, GeminiVisionClient, GeneratedImage, Refusal


def image_response(data: bytes, mime_type="image/png", text=None):
    parts = []
    if text:
        parts.append(SimpleNamespace(text=text, inline_data=None))
    parts.append(SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type=mime_type)))
    return SimpleNamespace(parts=parts, candidates=[])


def text_response(text):
    return SimpleNamespace(parts=[SimpleNamespace(text=text, inline_data=None)], candidates=[])


@pytest.fixture
def genai_client():
    return MagicMock()


@pytest.fixture
def client(genai_client):
    return GeminiVisionClient(api_key="test-key", model="test-model", timeout_seconds=5, genai_client=genai_client)


@pytest.fixture
def photo(png_factory):
    return ImagePayload(data=png_factory())


class TestRequestValidation:
    @pytest.mark.asyncio
    async def test_requires_an_image(self, client, genai_client):
        with pytest.raises(ValueError):
            await client.generate(["only text"])
        genai_client.models.generate_content.assert_not_called()

    @pytest.mark.asyncio
    async def test_requires_exactly_one_instruction(self, client, photo, genai_client):
        with pytest.raises(ValueError):
            await client.generate([photo])
        with pytest.raises(ValueError):
            await client.generate([photo, "one", "two"])
        genai_client.models.generate_content.assert_not_called()

    @pytest.mark.asyncio
    async def test_unconfigured_client_is_unavailable(self, photo):
        client = GeminiVisionClient(api_key="")
        assert client.configured is False
        with pytest.raises(ServiceUnavailable):
            await client.generate([photo, "instruction"])


class TestGenerate:
    @pytest.mark.asyncio
    async def test_returns_generated_image(self, client, photo, genai_client, png_factory):
        output = png_factory(color="navy")
        genai_client.models.generate_content.return_value = image_response(output, text="Here you go")

        result = await client.generate([photo, "recolor it"])

        assert isinstance(result, GeneratedImage)
        assert result.image.data == output
        assert result.image.mime_type == "image/png"
        assert result.text == "Here you go"
        assert client.usage_stats["successful_requests"] == 1

    @pytest.mark.asyncio
    async def test_sends_parts_in_order(self, client, photo, genai_client, png_factory):
        genai_client.models.generate_content.return_value = image_response(png_factory())
        mask = ImagePayload(data=png_factory(color="white"))

        await client.generate([photo, mask, "instruction"])

        kwargs = genai_client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "test-model"
        contents = kwargs["contents"]
        assert len(contents) == 3
        assert contents[0].inline_data.data == photo.data
        assert contents[1].inline_data.data == mask.data
        assert contents[2].text == "instruction"
        assert kwargs["config"].response_modalities == ["IMAGE", "TEXT"]

    @pytest.mark.asyncio
    async def test_base64_inline_data_is_decoded(self, client, photo, genai_client, png_factory):
        output = png_factory()
        genai_client.models.generate_content.return_value = image_response(base64.b64encode(output))

        result = await client.generate([photo, "instruction"])
        assert result.image.data == output

    @pytest.mark.asyncio
    async def test_candidate_parts_are_read(self, client, photo, genai_client, png_factory):
        output = png_factory()
        part = SimpleNamespace(text=None, inline_data=SimpleNamespace(data=output, mime_type="image/png"))
        genai_client.models.generate_content.return_value = SimpleNamespace(
            parts=None, candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))]
        )

        result = await client.generate([photo, "instruction"])
        assert result.image.data == output


class TestRefusals:
    @pytest.mark.asyncio
    async def test_text_only_answer_is_refusal(self, client, photo, genai_client):
        genai_client.models.generate_content.return_value = text_response("I cannot edit this image.")

        result = await client.generate([photo, "instruction"])

        assert isinstance(result, Refusal)
        assert result.message == "I cannot edit this image."
        assert client.usage_stats["refusals"] == 1

    @pytest.mark.asyncio
    async def test_blocked_prompt_is_refusal(self, client, photo, genai_client):
        genai_client.models.generate_content.return_value = SimpleNamespace(
            parts=None,
            candidates=[],
            prompt_feedback=SimpleNamespace(block_reason=SimpleNamespace(name="SAFETY"), block_reason_message=None),
        )

        result = await client.generate([photo, "instruction"])
        assert isinstance(result, Refusal)
        assert "SAFETY" in result.message

    @pytest.mark.asyncio
    async def test_empty_candidate_is_refusal(self, client, photo, genai_client):
        genai_client.models.generate_content.return_value = SimpleNamespace(
            parts=None, candidates=[SimpleNamespace(content=None, finish_reason=None)]
        )

        result = await client.generate([photo, "instruction"])
        assert isinstance(result, Refusal)
        assert result.message == GENERIC_REFUSAL_MESSAGE


class TestFailures:
    @pytest.mark.asyncio
    async def test_no_candidates_is_service_error(self, client, photo, genai_client):
        genai_client.models.generate_content.return_value = SimpleNamespace(parts=None, candidates=[], prompt_feedback=None)
        with pytest.raises(ServiceError):
            await client.generate([photo, "instruction"])
        assert client.usage_stats["failed_requests"] == 1

    @pytest.mark.asyncio
    async def test_api_error_is_service_error(self, client, photo, genai_client):
        genai_client.models.generate_content.side_effect = genai_errors.APIError(
            500, {"error": {"message": "internal", "status": "INTERNAL"}}
        )
        with pytest.raises(ServiceError) as exc_info:
            await client.generate([photo, "instruction"])
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_unreadable_response_is_service_error(self, client, photo, genai_client):
        genai_client.models.generate_content.side_effect = genai_errors.UnknownApiResponseError("not json")

        with pytest.raises(ServiceError) as exc_info:
            await client.generate([photo, "instruction"])

        assert isinstance(exc_info.value.__cause__, genai_errors.UnknownApiResponseError)
        assert client.usage_stats["failed_requests"] == 1

    @pytest.mark.asyncio
    async def test_unexpected_sdk_error_is_service_error(self, client, photo, genai_client):
        genai_client.models.generate_content.side_effect = KeyError("candidates")
        with pytest.raises(ServiceError):
            await client.generate([photo, "instruction"])

    @pytest.mark.asyncio
    async def test_network_error_is_unavailable(self, client, photo, genai_client):
        genai_client.models.generate_content.side_effect = httpx.ConnectError("connection refused")
        with pytest.raises(ServiceUnavailable):
            await client.generate([photo, "instruction"])

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self, photo, genai_client):
        client = GeminiVisionClient(api_key="test-key", timeout_seconds=0.05, genai_client=genai_client)
        genai_client.models.generate_content.side_effect = lambda **kwargs: time.sleep(0.3)

        with pytest.raises(ServiceUnavailable):
            await client.generate([photo, "instruction"])
        assert client.usage_stats["failed_requests"] == 1


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_check_reports_configuration(self, client):
        health = await client.health_check()
        assert health["status"] == "healthy"
        assert health["model"] == "test-model"
        assert health["usage_stats"]["total_requests"] == 0
