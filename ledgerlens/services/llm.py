"""Gemini client used for report generation and Q&A."""

from __future__ import annotations

import logging
from functools import lru_cache

import google.generativeai as genai
from google.generativeai.types import HarmBlockThreshold, HarmCategory

from ..core import config

logger = logging.getLogger(__name__)

SAFETY_SETTINGS = {
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
}


class GeminiClient:
    """Thin async wrapper around ``google.generativeai``.

    ``generate(prompt, json_output=True)`` asks the model for a JSON document
    (``response_mime_type=application/json``); plain text otherwise.
    """

    def __init__(self, api_key: str, model_name: str):
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self._json_model = genai.GenerativeModel(
            model_name,
            generation_config={"response_mime_type": "application/json"},
            safety_settings=SAFETY_SETTINGS,
        )
        self._text_model = genai.GenerativeModel(model_name, safety_settings=SAFETY_SETTINGS)

    async def generate(self, prompt: str, *, json_output: bool = False) -> str:
        model = self._json_model if json_output else self._text_model
        logger.info(
            "Sending %s request to Gemini model %s",
            "JSON" if json_output else "text",
            self.model_name,
        )
        response = await model.generate_content_async(prompt)
        text = response.text
        logger.debug("Raw Gemini response: %s", text)
        return text


@lru_cache(maxsize=1)
def get_llm() -> GeminiClient:
    """Process-wide LLM client; a FastAPI dependency."""

    return GeminiClient(config.GOOGLE_API_KEY, config.GEMINI_MODEL)


__all__ = ["GeminiClient", "SAFETY_SETTINGS", "get_llm"]
