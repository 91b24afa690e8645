"""
Client for the external multimodal analyzer.

The analyzer is reached through the OpenAI SDK against an OpenAI-compatible
endpoint (Gemini by default). It has a single operation, analyze(prompt,
media) -> text; callers parse the JSON they asked for with extract_json().
"""
import base64
import json
import logging
import re
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import openai
from openai import OpenAI

from swingscore.core.config import settings
from swingscore.core.errors import AnalyzerTimeout, AnalyzerUnavailable, MalformedResponse

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class MediaRef:
    """A video handed to the analyzer: an external URL or inline bytes with a MIME type."""
    url: Optional[str] = None
    data: Optional[bytes] = None
    mime_type: Optional[str] = None

    @classmethod
    def from_url(cls, url: str) -> "MediaRef":
        return cls(url=url)

    @classmethod
    def inline(cls, data: bytes, mime_type: str) -> "MediaRef":
        return cls(data=data, mime_type=mime_type)

    def as_url(self) -> str:
        if self.url:
            return self.url
        if self.data is None or not self.mime_type:
            raise ValueError("MediaRef needs either a URL or inline data with a MIME type")
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


def extract_json(text: Optional[str]) -> Dict[str, Any]:
    """
    Parse the JSON object from an analyzer reply.

    Accepts either a bare JSON object or one wrapped in a fenced code block.

    Raises:
        MalformedResponse: no JSON object could be parsed
    """
    if not text or not text.strip():
        raise MalformedResponse("Analyzer returned an empty response")

    candidates = [text.strip()]
    match = _FENCED_JSON.search(text)
    if match:
        candidates.append(match.group(1))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    logger.error(f"No valid JSON object found in analyzer response: {text[:200]!r}")
    raise MalformedResponse("Analyzer response did not contain a JSON object")


class AnalyzerClient:
    def __init__(self, api_key: str, base_url: Optional[str] = None, model: Optional[str] = None):
        # Timeouts are bounded per call; retries would stretch them
        self.client = OpenAI(api_key=api_key, base_url=base_url or settings.analyzer_base_url, max_retries=0)
        self.model = model or settings.analyzer_model

    def analyze(
        self,
        prompt: str,
        media: Optional[MediaRef] = None,
        timeout: float = 120.0,
        model: Optional[str] = None,
    ) -> str:
        """
        Send a prompt (and optionally a video) to the analyzer.

        Returns:
            The text of the first choice

        Raises:
            AnalyzerTimeout: the call exceeded `timeout` seconds
            AnalyzerUnavailable: the endpoint could not be reached or rejected the call
            MalformedResponse: the reply had no text
        """
        content = [{"type": "text", "text": prompt}]
        if media is not None:
            content.append({"type": "image_url", "image_url": {"url": media.as_url()}})

        try:
            response = self.client.chat.completions.create(
                model=model or self.model,
                messages=[{"role": "user", "content": content}],
                temperature=0.1,
                max_tokens=2048,
                timeout=timeout,
            )
        except openai.APITimeoutError as e:
            logger.warning(f"Analyzer call timed out after {timeout}s")
            raise AnalyzerTimeout(f"Analyzer call exceeded {timeout}s") from e
        except openai.APIError as e:
            logger.error(f"Analyzer call failed: {e}")
            raise AnalyzerUnavailable(str(e)) from e

        if not response.choices or not response.choices[0].message.content:
            raise MalformedResponse("Analyzer response had no text content")
        return response.choices[0].message.content


_analyzer: Optional[AnalyzerClient] = None
_analyzer_lock = threading.Lock()


def get_analyzer() -> Optional[AnalyzerClient]:
    """
    Get or create the analyzer client singleton.

    Returns:
        The client, or None if no API key is configured
    """
    global _analyzer

    if _analyzer is not None:
        return _analyzer

    if not settings.analyzer_api_key:
        logger.warning("Analyzer API key not configured")
        return None

    with _analyzer_lock:
        # Double-check pattern
        if _analyzer is None:
            _analyzer = AnalyzerClient(api_key=settings.analyzer_api_key)
        return _analyzer
