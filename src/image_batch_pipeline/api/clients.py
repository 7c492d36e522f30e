"""
API client implementations for image analysis.

RemoteAnalysisClient talks to the hosted analysis function over HTTP. The
provider clients call Gemini, OpenAI and Claude directly with the same prompt
and return the raw response text for parsing.
"""

import asyncio
import base64
import os
from typing import Any, Dict, Optional

import aiohttp
import anthropic
import google.generativeai as genai
from openai import OpenAI
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import AnalysisError
from ..utils.log_utils import get_logger
from .base import AnalysisClient, AnalysisRequest
from .prompt import PromptBuilder

logger = get_logger(__name__)

MAX_OUTPUT_TOKENS = 1024


class RemoteAnalysisClient(AnalysisClient):
    """Client for the hosted analyze-image function."""

    endpoint = "analyze-image-gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        prompts: Optional[PromptBuilder] = None,
    ):
        """Initialize the remote client.

        Args:
            api_key: Bearer key. If None, uses ANALYSIS_SERVICE_KEY env var.
            base_url: Functions base URL. If None, uses ANALYSIS_SERVICE_URL env var.
            timeout: Total request timeout in seconds
        """
        self.base_url = (base_url or os.getenv("ANALYSIS_SERVICE_URL") or "").rstrip("/")
        self.timeout = timeout
        super().__init__(api_key, prompts)

    def _validate_api_key(self) -> None:
        key = self.api_key or os.getenv("ANALYSIS_SERVICE_KEY")
        if not key:
            raise ValueError("ANALYSIS_SERVICE_KEY environment variable not set")
        if not self.base_url:
            raise ValueError("ANALYSIS_SERVICE_URL environment variable not set")
        self.api_key = key

    def _get_model_name(self) -> str:
        return f"remote:{self.endpoint}"

    def _build_payload(self, request: AnalysisRequest, prompt: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "imageBase64": request.image_base64,
            "mimeType": request.mime_type,
        }
        if request.analysis_mode.is_collectible:
            payload["collectibleType"] = request.analysis_mode.value
            payload["enhancedPrompt"] = prompt
        return payload

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        retry=retry_if_exception_type((aiohttp.ClientConnectionError, asyncio.TimeoutError)),
        reraise=True,
    )
    async def _post(self, payload: Dict[str, Any]) -> str:
        url = f"{self.base_url}/{self.endpoint}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, json=payload, headers=headers) as response:
                body = await response.text()
                if response.status >= 300:
                    raise AnalysisError(f"API error: {response.status} {response.reason}: {body[:200]}")
                return body

    async def _send(self, request: AnalysisRequest, prompt: str) -> str:
        return await self._post(self._build_payload(request, prompt))


class GeminiClient(AnalysisClient):
    """Client for Google's Gemini API."""

    def __init__(self, api_key: Optional[str] = None, model: str = "gemini-2.0-flash",
                 prompts: Optional[PromptBuilder] = None):
        """Initialize Gemini client.

        Args:
            api_key: Google API key. If None, uses GOOGLE_API_KEY env var.
            model: Model name to use (default: gemini-2.0-flash)
        """
        self.model = model
        super().__init__(api_key, prompts)

    def _validate_api_key(self) -> None:
        key = self.api_key or os.getenv("GOOGLE_API_KEY")
        if not key:
            raise ValueError("GOOGLE_API_KEY environment variable not set")
        self.api_key = key
        genai.configure(api_key=key)

    def _get_model_name(self) -> str:
        return self.model

    def _call_api(self, request: AnalysisRequest, prompt: str) -> str:
        model = genai.GenerativeModel(
            self.model,
            generation_config={
                "temperature": 0.1,
                "candidate_count": 1,
                "max_output_tokens": MAX_OUTPUT_TOKENS,
                "response_mime_type": "application/json",
            },
        )
        response = model.generate_content([
            {
                "mime_type": request.mime_type,
                "data": base64.b64decode(request.image_base64),
            },
            prompt,
        ])
        return response.text.strip()


class OpenAIClient(AnalysisClient):
    """Client for OpenAI's GPT API."""

    def __init__(self, api_key: Optional[str] = None, model: str = "gpt-4o-mini",
                 prompts: Optional[PromptBuilder] = None):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key. If None, uses OPENAI_API_KEY env var.
            model: Model name to use (default: gpt-4o-mini)
        """
        self.model = model
        super().__init__(api_key, prompts)

    def _validate_api_key(self) -> None:
        key = self.api_key or os.getenv("OPENAI_API_KEY")
        if not key:
            raise ValueError("OPENAI_API_KEY environment variable not set")
        self.api_key = key
        self.client = OpenAI(api_key=key)

    def _get_model_name(self) -> str:
        return self.model

    def _call_api(self, request: AnalysisRequest, prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{request.mime_type};base64,{request.image_base64}",
                                "detail": "low",
                            },
                        },
                    ],
                }
            ],
            max_tokens=MAX_OUTPUT_TOKENS,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""


class ClaudeClient(AnalysisClient):
    """Client for Anthropic's Claude API."""

    def __init__(self, api_key: Optional[str] = None, model: str = "claude-3-5-haiku-latest",
                 prompts: Optional[PromptBuilder] = None):
        """Initialize Claude client.

        Args:
            api_key: Anthropic API key. If None, uses ANTHROPIC_API_KEY env var.
            model: Model name to use (default: claude-3-5-haiku-latest)
        """
        self.model = model
        super().__init__(api_key, prompts)

    def _validate_api_key(self) -> None:
        key = self.api_key or os.getenv("ANTHROPIC_API_KEY")
        if not key:
            raise ValueError("ANTHROPIC_API_KEY environment variable not set")
        self.api_key = key
        self.client = anthropic.Anthropic(api_key=key)

    def _get_model_name(self) -> str:
        return self.model

    def _call_api(self, request: AnalysisRequest, prompt: str) -> str:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=MAX_OUTPUT_TOKENS,
            temperature=0.1,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": request.mime_type,
                                "data": request.image_base64,
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        )
        return "".join(block.text for block in response.content if block.type == "text")


def get_client(api_name: str, **kwargs) -> AnalysisClient:
    """Factory function to create analysis client instances.

    Args:
        api_name: Name of the API ('remote', 'gemini', 'openai', 'claude')
        **kwargs: Additional arguments passed to the client constructor

    Returns:
        Configured analysis client instance
    """
    api_name = api_name.lower()
    if api_name == "remote":
        return RemoteAnalysisClient(**kwargs)
    elif api_name == "gemini":
        return GeminiClient(**kwargs)
    elif api_name == "openai":
        return OpenAIClient(**kwargs)
    elif api_name == "claude":
        return ClaudeClient(**kwargs)
    else:
        raise ValueError(f"Unsupported API: {api_name}")
