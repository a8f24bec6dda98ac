"""
AI enrichment gateway backed by Google Gemini.

Two advisory capabilities:

- ``generate_learning_outcomes`` asks for a short JSON list of outcome
  strings. It never fails: provider errors, timeouts and unparseable output
  all produce the canned fallback list for the title.
- ``generate_thumbnail`` asks for a square illustration and returns the raw
  image bytes, or None when the provider produced no image in time.

Neither method writes anywhere; persisting a thumbnail is the caller's job.
"""

import asyncio
import base64
import json
import re
from typing import Any, List, Optional

from google import genai
from google.genai import types

from .errors import AIUnavailable, ConfigurationError
from .settings import Settings
from .shared.logger import get_logger

logger = get_logger(__name__)

MAX_OUTCOMES = 3
PROMPT_FIELD_LIMIT = 300

OUTCOMES_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(type=types.Type.STRING),
)


def fallback_outcomes(title: str) -> List[str]:
    """Deterministic outcomes used whenever the provider cannot help."""
    return [
        f"Understand the core concepts of {title}",
        "Analyze physics properties",
        "Solve practical problems",
    ]


def clean_json_response(text: str) -> str:
    """Remove markdown code fences and surrounding chatter around a JSON list."""
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```\w*\s*", "", text)
        text = re.sub(r"\s*```$", "", text)

    first_bracket = text.find("[")
    last_bracket = text.rfind("]")
    if first_bracket != -1 and last_bracket > first_bracket:
        text = text[first_bracket : last_bracket + 1]

    return text.strip()


def parse_outcomes(text: Optional[str]) -> List[str]:
    """Parse provider output into at most three non-empty strings.

    Raises ValueError when nothing usable is found.
    """
    if not text or not text.strip():
        raise ValueError("empty response")

    data: Any = json.loads(clean_json_response(text))
    if isinstance(data, dict):
        data = data.get("outcomes") or data.get("learningOutcomes") or []
    if not isinstance(data, list):
        raise ValueError(f"expected a JSON list, got {type(data).__name__}")

    outcomes = [str(item).strip() for item in data if isinstance(item, (str, int, float))]
    outcomes = [item for item in outcomes if item]
    if not outcomes:
        raise ValueError("no outcomes in response")
    return outcomes[:MAX_OUTCOMES]


def sanitize_prompt_text(text: str, limit: int = PROMPT_FIELD_LIMIT) -> str:
    """Strip markup and control characters from user text before prompting."""
    text = re.sub(r"<[^>]*>", " ", text or "")
    text = re.sub(r"[\x00-\x1f\x7f]", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text[:limit]


def _first_image(response: Any) -> Optional[bytes]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    for part in getattr(content, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None) if inline else None
        if data:
            if isinstance(data, str):
                return base64.b64decode(data)
            return bytes(data)
    return None


class EnrichmentGateway:
    """Thin adapter over the Gemini async API."""

    def __init__(
        self,
        client: Optional[Any] = None,
        text_model: str = "gemini-2.5-flash",
        image_model: str = "gemini-2.5-flash-image",
        outcomes_timeout: float = 15.0,
        thumbnail_timeout: float = 20.0,
    ):
        self._client = client
        self.text_model = text_model
        self.image_model = image_model
        self.outcomes_timeout = outcomes_timeout
        self.thumbnail_timeout = thumbnail_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "EnrichmentGateway":
        client = genai.Client(api_key=settings.ai_api_key) if settings.ai_api_key else None
        return cls(
            client=client,
            text_model=settings.text_model,
            image_model=settings.image_model,
            outcomes_timeout=settings.outcomes_timeout,
            thumbnail_timeout=settings.thumbnail_timeout,
        )

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def generate_learning_outcomes(self, title: str, category: str, description: str) -> List[str]:
        """Return up to three learning outcomes; falls back instead of raising."""
        if self._client is None:
            logger.warning("AI provider not configured, using fallback outcomes")
            return fallback_outcomes(title)

        prompt = (
            f"List exactly {MAX_OUTCOMES} short learning outcomes (under 12 words each) "
            f"for a physics learning resource.\n"
            f"Title: {sanitize_prompt_text(title)}\n"
            f"Category: {sanitize_prompt_text(category)}\n"
            f"Description: {sanitize_prompt_text(description)}\n"
            f"Respond with a JSON array of strings only."
        )
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self.text_model,
                    contents=prompt,
                    config=types.GenerateContentConfig(
                        temperature=0.4,
                        response_mime_type="application/json",
                        response_schema=OUTCOMES_SCHEMA,
                    ),
                ),
                timeout=self.outcomes_timeout,
            )
            return parse_outcomes(getattr(response, "text", None))
        except asyncio.TimeoutError:
            logger.warning("Learning outcome generation timed out after %.0fs", self.outcomes_timeout)
        except ValueError as e:
            logger.warning("Unparseable learning outcomes from provider: %s", e)
        except Exception as e:
            logger.warning("Learning outcome generation failed: %s", e)
        return fallback_outcomes(title)

    async def generate_thumbnail(self, title: str, description: str, category: str = "") -> Optional[bytes]:
        """Return PNG/JPEG bytes for a square illustration, or None.

        Raises ``ConfigurationError`` without an API key and ``AIUnavailable``
        when the provider errors; a timeout counts as "no image".
        """
        if self._client is None:
            raise ConfigurationError("Config error", hint="Set GEMINI_API_KEY to enable AI thumbnails.")

        subject = sanitize_prompt_text(title, 120)
        context = sanitize_prompt_text(category or description, 120)
        prompt = (
            f"A clean, professional 3D scientific illustration: {subject}"
            f"{' in the context of ' + context if context else ''}. "
            f"High-tech laboratory style, cinematic lighting, 1:1 ratio, no text."
        )
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self.image_model,
                    contents=prompt,
                    config=types.GenerateContentConfig(
                        response_modalities=["IMAGE"],
                        image_config=types.ImageConfig(aspect_ratio="1:1"),
                    ),
                ),
                timeout=self.thumbnail_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Thumbnail generation timed out after %.0fs", self.thumbnail_timeout)
            return None
        except Exception as e:
            logger.error("Thumbnail generation failed: %s", e)
            raise AIUnavailable("AI Busy", hint="Try again later or upload a thumbnail image.") from e

        image = _first_image(response)
        if image is None:
            logger.info("Provider returned no image candidate for %r", subject)
        return image
