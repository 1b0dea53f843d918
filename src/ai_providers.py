"""AI provider abstraction for viral segment selection.

The transcript of a video is sent to either Gemini or OpenAI, which answers
with a JSON list of candidate segments. The provider is selected via the
AI_PROVIDER environment variable.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from dotenv import load_dotenv

load_dotenv()

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(message)s")

MAX_SEGMENTS = 5


class OracleResponseError(ValueError):
    """Raised when the model's answer does not contain a JSON array."""


class OracleUnavailableError(RuntimeError):
    """Raised when the selected provider is not configured."""


def get_segment_prompt(
    transcript: str,
    max_segments: int = MAX_SEGMENTS,
    min_duration: float = 30,
    max_duration: float = 50,
) -> str:
    return f"""
Analyze the following video transcript and find the segments with the highest
potential to go viral because of their emotional content.

Each transcript line has the format "[time in seconds] text".

Identify up to {max_segments} viral segments and return ONLY a JSON list with this structure:
[
  {{
    "start": 0,
    "end": 35,
    "text": "segment text",
    "label": "emotion type"
  }}
]

Each segment must last at least {min_duration:g} seconds and at most {max_duration:g} seconds (end - start).
Do not include any other text in your answer, only the JSON.

Transcript:
{transcript}
"""


def extract_json_array(response_text: str) -> str:
    """Cut the JSON array out of a response that may be wrapped in prose.

    Takes everything from the first ``[`` to the last ``]``.
    """
    start = response_text.find("[")
    end = response_text.rfind("]")
    if start == -1 or end < start:
        raise OracleResponseError(
            f"No JSON array in model response: {response_text[:200]!r}"
        )
    return response_text[start:end + 1]


def parse_oracle_response(response_text: str) -> List[Dict[str, Any]]:
    """Parse the candidate segment list from a raw model response."""
    json_text = extract_json_array(response_text)
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise OracleResponseError(f"Model response is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise OracleResponseError("Model response is not a JSON list")
    return data


class SegmentOracle(ABC):
    """Abstract base class for segment-selection providers."""

    name = ""

    @abstractmethod
    def generate(self, prompt: str) -> str:
        """Send a prompt and return the raw response text."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is properly configured."""

    def find_segments(
        self,
        transcript: str,
        min_duration: float = 30,
        max_duration: float = 50,
    ) -> List[Dict[str, Any]]:
        """Ask the model for viral segments of a timestamped transcript.

        Returns:
            The raw candidate dicts; validation is left to the caller.

        Raises:
            OracleResponseError: If no JSON list can be parsed from the answer.
        """
        prompt = get_segment_prompt(
            transcript,
            min_duration=min_duration,
            max_duration=max_duration,
        )
        logging.info(f"Sending transcript to {self.name} for analysis...")
        response_text = self.generate(prompt)
        logging.debug(f"{self.name} response: {response_text}")

        segments = parse_oracle_response(response_text)
        logging.info(f"Viral segments identified: {len(segments)}")
        return segments


class GeminiOracle(SegmentOracle):
    """Segment selection using Google Gemini API."""

    name = "gemini"

    def __init__(self, api_key: str = None, model_name: str = None, client=None):
        self.api_key = api_key if api_key is not None else os.getenv("GEMINI_API_KEY", "")
        self.model_name = model_name or os.getenv("GEMINI_MODEL", "gemini-2.5-pro")
        self._client = client

    def is_available(self) -> bool:
        return bool(self.api_key) or self._client is not None

    def _get_client(self):
        if self._client is None:
            try:
                from google import genai
                self._client = genai.Client(api_key=self.api_key)
            except ImportError:
                logging.error("google-genai package not installed. Run: pip install google-genai")
                raise
        return self._client

    def generate(self, prompt: str) -> str:
        response = self._get_client().models.generate_content(
            model=self.model_name,
            contents=prompt,
        )
        return response.text or ""


class OpenAIOracle(SegmentOracle):
    """Segment selection using OpenAI API."""

    name = "openai"

    def __init__(self, api_key: str = None, model_name: str = None, client=None):
        self.api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY", "")
        self.model_name = model_name or os.getenv("OPENAI_MODEL", "gpt-4o")
        self._client = client

    def is_available(self) -> bool:
        return bool(self.api_key) or self._client is not None

    def _get_client(self):
        if self._client is None:
            try:
                from openai import OpenAI
                self._client = OpenAI(api_key=self.api_key)
            except ImportError:
                logging.error("openai package not installed. Run: pip install openai")
                raise
        return self._client

    def generate(self, prompt: str) -> str:
        response = self._get_client().chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": "You pick viral moments from video transcripts. Answer with JSON only."},
                {"role": "user", "content": prompt},
            ],
        )
        return response.choices[0].message.content or ""


def get_oracle() -> SegmentOracle:
    """Factory function to get the configured segment oracle.

    Selection is based on AI_PROVIDER environment variable:
    - "gemini" (default): Use Gemini API
    - "openai": Use OpenAI API

    Raises:
        OracleUnavailableError: If the selected provider has no API key.
    """
    provider = os.getenv("AI_PROVIDER", "gemini").lower()

    if provider == "openai":
        oracle = OpenAIOracle()
        key_name = "OPENAI_API_KEY"
    else:  # Default to Gemini
        oracle = GeminiOracle()
        key_name = "GEMINI_API_KEY"

    if not oracle.is_available():
        raise OracleUnavailableError(f"{key_name} is not set (check your .env file)")
    return oracle
