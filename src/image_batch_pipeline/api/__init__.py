"""
Analysis collaborators.

This module provides a unified interface to the hosted analysis function and
to the provider APIs, plus the result types and prompt construction.
"""

from .base import AnalysisClient, AnalysisRequest
from .clients import ClaudeClient, GeminiClient, OpenAIClient, RemoteAnalysisClient, get_client
from .knowledge import KnowledgeProvider
from .models import (
    Analysis,
    AnalysisMode,
    CollectibleDetails,
    ParsedAnalysis,
    RawTextAnalysis,
    ValueRange,
    parse_analysis,
)
from .prompt import PromptBuilder

__all__ = [
    # Clients
    "AnalysisClient",
    "AnalysisRequest",
    "RemoteAnalysisClient",
    "GeminiClient",
    "OpenAIClient",
    "ClaudeClient",
    "get_client",

    # Results
    "Analysis",
    "AnalysisMode",
    "CollectibleDetails",
    "ParsedAnalysis",
    "RawTextAnalysis",
    "ValueRange",
    "parse_analysis",

    # Prompts
    "KnowledgeProvider",
    "PromptBuilder",
]
