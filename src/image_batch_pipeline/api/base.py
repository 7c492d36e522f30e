"""
Base functionality for image analysis.

This module provides the request type and the abstract client shared by the
remote analysis service and the direct provider SDK clients.
"""

import asyncio
import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..errors import AnalysisError
from ..utils.log_utils import get_logger
from .models import Analysis, AnalysisMode, parse_analysis
from .prompt import PromptBuilder

logger = get_logger(__name__)


@dataclass(frozen=True)
class AnalysisRequest:
    """What the analysis collaborator receives for one image."""

    image_base64: str
    mime_type: str = "image/png"
    analysis_mode: AnalysisMode = AnalysisMode.GENERAL

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str = "image/png",
                   analysis_mode: AnalysisMode = AnalysisMode.GENERAL) -> "AnalysisRequest":
        encoded = base64.b64encode(data).decode("utf-8")
        return cls(image_base64=encoded, mime_type=mime_type, analysis_mode=AnalysisMode(analysis_mode))


class AnalysisClient(ABC):
    """Abstract base class for analysis clients."""

    def __init__(self, api_key: Optional[str] = None, prompts: Optional[PromptBuilder] = None):
        """Initialize the client.

        Args:
            api_key: API key for the service. If None, will try to get from environment.
            prompts: Prompt builder; a builder without knowledge is used if omitted.
        """
        self.api_key = api_key
        self.prompts = prompts or PromptBuilder()
        self._validate_api_key()

    @abstractmethod
    def _validate_api_key(self) -> None:
        """Validate that the API key is available and properly configured."""

    @abstractmethod
    def _get_model_name(self) -> str:
        """Return the model name to use for this API."""

    def _call_api(self, request: AnalysisRequest, prompt: str) -> str:
        """Make a blocking provider call and return the response text."""
        raise NotImplementedError

    async def _send(self, request: AnalysisRequest, prompt: str) -> str:
        """Run the blocking provider call in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._call_api, request, prompt)

    async def analyze(self, request: AnalysisRequest) -> Analysis:
        """Analyze one image.

        Returns:
            ParsedAnalysis, or RawTextAnalysis when the body was not usable JSON

        Raises:
            AnalysisError: If the call itself fails
        """
        prompt = self.prompts.build(request.analysis_mode)
        try:
            response_text = await self._send(request, prompt)
        except AnalysisError:
            raise
        except Exception as err:
            logger.error(f"{self._get_model_name()} request failed: {err}")
            raise AnalysisError(f"{self._get_model_name()} error: {err}") from err
        return parse_analysis(response_text)
