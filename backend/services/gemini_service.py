"""
Gemini LLM Service for Smart Locator
Provides unified interface for Google Gemini AI interactions
"""

import os
import json
import logging
from typing import Optional, Dict
from dotenv import load_dotenv

from utils.errors import ExternalServiceError

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"


class GeminiChat:
    """
    Thin wrapper over google.generativeai. Each message is a standalone request.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        system_message: str = "",
        model: str = DEFAULT_MODEL
    ):
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY")
        self.system_message = system_message
        self.model_name = model
        self._model = None

    def _get_model(self):
        """Initialize and return the Gemini model"""
        if self._model is None:
            if not self.api_key:
                raise ExternalServiceError("GEMINI_API_KEY is not configured")
            import google.generativeai as genai
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(
                model_name=self.model_name,
                system_instruction=self.system_message if self.system_message else None
            )
        return self._model

    async def send_message(self, message: str) -> str:
        """
        Send a message and get a response from Gemini

        Raises:
            ExternalServiceError: on any API failure or an empty response
        """
        model = self._get_model()
        try:
            response = await model.generate_content_async(message)
            text = response.text
        except Exception as e:
            logger.error(f"Gemini API error: {e}")
            raise ExternalServiceError(f"Gemini API error: {e}") from e

        if not text or not text.strip():
            raise ExternalServiceError("Gemini returned an empty response")

        return text


def strip_code_fences(text: str) -> str:
    """Remove the ```json ... ``` wrapping Gemini sometimes puts around JSON."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = [line for line in cleaned.split("\n") if not line.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return cleaned.strip()


# Convenience function for simple one-off requests
async def generate_response(
    prompt: str,
    system_message: str = "",
    model: str = DEFAULT_MODEL
) -> str:
    chat = GeminiChat(system_message=system_message, model=model)
    return await chat.send_message(prompt)


def parse_json_response(text: str) -> Dict:
    """Parse model output as a single JSON object, tolerating markdown fences."""
    try:
        parsed = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse Gemini response as JSON: {e}")
        raise ExternalServiceError("Gemini returned malformed JSON") from e

    if not isinstance(parsed, dict):
        raise ExternalServiceError("Gemini returned JSON that is not an object")
    return parsed
