"""
Client for the external vision service (Gemini image models).

One operation: given an ordered list of image parts and exactly one
instruction, return a new image or a refusal. The client is stateless apart
from usage counters and never retries; retry policy belongs to the callers.
"""
import asyncio
import base64
import binascii
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from core.config import settings
from core.exceptions import ServiceError, ServiceUnavailable
from services.image_codec import DEFAULT_MIME_TYPE, ImagePayload, sniff_mime_type

logger = logging.getLogger(__name__)

GENERIC_REFUSAL_MESSAGE = "The AI service did not return an image."

VisionPart = Union[ImagePayload, str]


@dataclass
class GeneratedImage:
    """Successful generation: the returned image and any accompanying text"""

    image: ImagePayload
    text: Optional[str] = None


@dataclass
class Refusal:
    """The service answered without an image"""

    message: str = GENERIC_REFUSAL_MESSAGE


VisionResult = Union[GeneratedImage, Refusal]


def _validate_parts(parts: Sequence[VisionPart]) -> None:
    images = [p for p in parts if isinstance(p, ImagePayload)]
    texts = [p for p in parts if isinstance(p, str)]
    if len(images) + len(texts) != len(parts):
        raise ValueError("Vision request parts must be ImagePayload or str")
    if not images:
        raise ValueError("Vision request needs at least one image")
    if len(texts) != 1:
        raise ValueError(f"Vision request needs exactly one instruction, got {len(texts)}")


def _coerce_image_bytes(data: Any) -> bytes:
    """
    Inline data normally arrives as raw bytes, but some SDK versions hand back
    the base64 text as bytes or str.
    """
    if isinstance(data, str):
        data = data.encode("ascii")
    if not isinstance(data, (bytes, bytearray)):
        raise ServiceError(f"Unexpected inline image data type: {type(data).__name__}")
    data = bytes(data)
    if sniff_mime_type(data):
        return data
    try:
        decoded = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return data
    return decoded if sniff_mime_type(decoded) else data


class GeminiVisionClient:
    """Request/response wrapper around Gemini image generation and editing"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        temperature: Optional[float] = None,
        genai_client: Optional[Any] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.google_ai_api_key
        self.model = model or settings.gemini_image_model
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.vision_timeout_seconds
        self.temperature = temperature if temperature is not None else settings.vision_temperature
        self.usage_stats = {
            "total_requests": 0,
            "successful_requests": 0,
            "refusals": 0,
            "failed_requests": 0,
            "total_processing_time": 0.0,
            "last_reset": datetime.now(),
        }

        if genai_client is not None:
            self.genai_client = genai_client
        elif self.api_key:
            self.genai_client = genai.Client(api_key=self.api_key)
            if len(self.api_key) > 12:
                masked_key = f"{self.api_key[:8]}...{self.api_key[-4:]}"
                logger.info(f"Google AI API Key loaded: {masked_key}")
        else:
            self.genai_client = None
            logger.warning("Google AI API key not configured - image generation will not be available")

        logger.info(f"[VisionClient] Initialized for model {self.model} (timeout {self.timeout_seconds}s)")

    @property
    def configured(self) -> bool:
        return self.genai_client is not None

    def _build_contents(self, parts: Sequence[VisionPart]) -> List[types.Part]:
        contents = []
        for part in parts:
            if isinstance(part, ImagePayload):
                contents.append(types.Part.from_bytes(data=part.data, mime_type=part.mime_type))
            else:
                contents.append(types.Part.from_text(text=part))
        return contents

    def _parse_response(self, response: Any) -> VisionResult:
        if response is None:
            raise ServiceError("Empty response from vision service")

        parts = None
        candidates = getattr(response, "candidates", None)
        if getattr(response, "parts", None):
            parts = response.parts
        elif candidates:
            candidate = candidates[0]
            content = getattr(candidate, "content", None)
            if content is not None and getattr(content, "parts", None):
                parts = content.parts
            else:
                finish_reason = getattr(candidate, "finish_reason", None)
                reason = getattr(finish_reason, "name", finish_reason)
                return Refusal(f"The AI service returned no content (finish reason: {reason})." if reason else GENERIC_REFUSAL_MESSAGE)
        else:
            feedback = getattr(response, "prompt_feedback", None)
            block_reason = getattr(feedback, "block_reason", None) if feedback is not None else None
            if block_reason:
                reason = getattr(block_reason, "name", block_reason)
                message = getattr(feedback, "block_reason_message", None) or f"Request blocked by the AI service ({reason})."
                return Refusal(message)
            raise ServiceError("Malformed response from vision service: no candidates")

        texts = []
        for part in parts:
            inline_data = getattr(part, "inline_data", None)
            if inline_data is not None and getattr(inline_data, "data", None):
                mime_type = getattr(inline_data, "mime_type", None) or DEFAULT_MIME_TYPE
                image = ImagePayload(data=_coerce_image_bytes(inline_data.data), mime_type=mime_type)
                return GeneratedImage(image=image, text=" ".join(texts) or None)
            text = getattr(part, "text", None)
            if text:
                texts.append(text.strip())

        return Refusal(" ".join(texts) if texts else GENERIC_REFUSAL_MESSAGE)

    async def generate(self, parts: Sequence[VisionPart]) -> VisionResult:
        """
        Issue one generation request.

        Args:
            parts: ordered image parts (subject first) and exactly one instruction

        Returns:
            GeneratedImage, or Refusal when the service answered without an image

        Raises:
            ServiceUnavailable: transport failure, timeout, or client not configured
            ServiceError: API error status or malformed response
        """
        _validate_parts(parts)
        if not self.configured:
            raise ServiceUnavailable("Google AI API key not configured")

        contents = self._build_contents(parts)
        config = types.GenerateContentConfig(
            response_modalities=["IMAGE", "TEXT"],
            temperature=self.temperature,
        )

        def _run_generate():
            """Run the blocking generate_content call in a separate thread"""
            return self.genai_client.models.generate_content(model=self.model, contents=contents, config=config)

        start_time = time.time()
        self.usage_stats["total_requests"] += 1
        try:
            loop = asyncio.get_event_loop()
            response = await asyncio.wait_for(loop.run_in_executor(None, _run_generate), timeout=self.timeout_seconds)
            result = self._parse_response(response)
        except asyncio.TimeoutError as e:
            self.usage_stats["failed_requests"] += 1
            logger.error(f"[VisionClient] Request timed out after {self.timeout_seconds}s")
            raise ServiceUnavailable(f"Vision service timed out after {self.timeout_seconds} seconds") from e
        except genai_errors.APIError as e:
            self.usage_stats["failed_requests"] += 1
            logger.error(f"[VisionClient] API error {e.code}: {e.message}")
            raise ServiceError(f"Vision service error {e.code}: {e.message}", status_code=e.code) from e
        except (httpx.TransportError, ConnectionError) as e:
            self.usage_stats["failed_requests"] += 1
            logger.error(f"[VisionClient] Network error: {e}")
            raise ServiceUnavailable(f"Could not reach vision service: {e}") from e
        except genai_errors.UnknownApiResponseError as e:
            self.usage_stats["failed_requests"] += 1
            logger.error(f"[VisionClient] Unreadable response: {e}")
            raise ServiceError(f"Malformed response from vision service: {e}") from e
        except ServiceError:
            self.usage_stats["failed_requests"] += 1
            raise
        except Exception as e:
            self.usage_stats["failed_requests"] += 1
            logger.error(f"[VisionClient] Unexpected error: {type(e).__name__}: {e}", exc_info=True)
            raise ServiceError(f"Vision service request failed: {e}") from e

        processing_time = time.time() - start_time
        if isinstance(result, GeneratedImage):
            self.usage_stats["successful_requests"] += 1
            self.usage_stats["total_processing_time"] += processing_time
            logger.info(
                f"[VisionClient] Image generated in {processing_time:.2f}s "
                f"({len(result.image.data)} bytes, {result.image.mime_type})"
            )
        else:
            self.usage_stats["refusals"] += 1
            logger.warning(f"[VisionClient] No image returned: {result.message[:200]}")
        return result

    async def get_usage_statistics(self) -> Dict[str, Any]:
        """Get API usage statistics"""
        return {
            **self.usage_stats,
            "success_rate": (self.usage_stats["successful_requests"] / max(self.usage_stats["total_requests"], 1) * 100),
            "average_processing_time": (
                self.usage_stats["total_processing_time"] / max(self.usage_stats["successful_requests"], 1)
            ),
        }

    async def health_check(self) -> Dict[str, Any]:
        """Report configuration state without spending a generation request"""
        return {
            "status": "healthy" if self.configured else "unconfigured",
            "model": self.model,
            "api_key_valid": bool(self.api_key),
            "usage_stats": await self.get_usage_statistics(),
        }
