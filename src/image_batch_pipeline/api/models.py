"""
Analysis result types.

A response from the analysis service either parses into a ParsedAnalysis or,
when the body is not usable JSON, degrades to a RawTextAnalysis that keeps the
raw text as its description.
"""

import json
import re
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..utils.log_utils import get_logger

logger = get_logger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class AnalysisMode(str, Enum):
    GENERAL = "general"
    STAMP = "stamp"
    TRADING_CARD = "trading-card"
    POSTCARD = "postcard"
    WAR_LETTER = "war-letter"

    @property
    def is_collectible(self) -> bool:
        return self is not AnalysisMode.GENERAL


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ValueRange(_WireModel):
    min: float = 0
    max: float = 0


class CollectibleDetails(_WireModel):
    type: str = ""
    era: str = ""
    country: Optional[str] = None
    year: Optional[str] = None
    denomination: Optional[str] = None
    condition: str = ""
    rarity: str = ""
    estimated_value: float = 0
    authentication: List[str] = Field(default_factory=list)
    grading: Optional[str] = None
    historical_significance: Optional[str] = None
    special_features: Optional[List[str]] = None


class ParsedAnalysis(_WireModel):
    """Structured analysis returned by the service."""

    kind: Literal["parsed"] = Field("parsed", exclude=True)
    description: str = ""
    objects: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    confidence: float = Field(0, ge=0, le=100)
    collectible_details: Optional[CollectibleDetails] = None
    condition_assessment: Optional[str] = None
    authenticity_markers: Optional[List[str]] = None
    estimated_value_range: Optional[ValueRange] = None


class RawTextAnalysis(_WireModel):
    """Fallback for a response body that could not be parsed."""

    kind: Literal["raw"] = Field("raw", exclude=True)
    description: str = ""
    objects: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    confidence: float = 0
    collectible_details: None = None
    estimated_value_range: None = None


Analysis = Union[ParsedAnalysis, RawTextAnalysis]


def parse_analysis(text: Union[str, dict, None]) -> Analysis:
    """Parse a service response into an Analysis, never raising.

    The first {...} block of a text response is decoded; anything that fails to
    decode or validate becomes a RawTextAnalysis carrying the text.
    """
    if isinstance(text, dict):
        payload = dict(text)
        text = json.dumps(text)
    else:
        text = (text or "").strip()
        match = _JSON_OBJECT.search(text)
        if not match:
            logger.warning("Analysis response contained no JSON object; keeping raw text")
            return RawTextAnalysis(description=text)
        try:
            payload = json.loads(match.group(0))
        except json.JSONDecodeError:
            logger.warning("Failed to parse JSON analysis response; keeping raw text")
            return RawTextAnalysis(description=text)

    if not isinstance(payload, dict):
        return RawTextAnalysis(description=text)
    payload.pop("kind", None)
    try:
        return ParsedAnalysis.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Analysis response failed validation, keeping raw text: {e.error_count()} error(s)")
        return RawTextAnalysis(description=text)
