"""
Prompts for image analysis.
"""

from typing import Optional

from .knowledge import KnowledgeProvider
from .models import AnalysisMode

RESPONSE_FORMAT = (
    "Format your response as JSON with these keys: description, objects (array), "
    "categories (array), colors (array), confidence (number)."
)

GENERAL_PROMPT = f"""
Analyze this image and provide:
1. A detailed description (1-2 sentences)
2. List of identified objects/items
3. Categories the image belongs to
4. Dominant colors
5. Confidence level (0-100)

{RESPONSE_FORMAT}
""".strip()

COLLECTIBLE_LABELS = {
    AnalysisMode.STAMP: "postage stamp",
    AnalysisMode.TRADING_CARD: "trading card",
    AnalysisMode.POSTCARD: "postcard",
    AnalysisMode.WAR_LETTER: "wartime letter or envelope",
}

COLLECTIBLE_PROMPT = """
You are an expert appraiser. This image shows a {label}. Analyze it and provide:
1. A detailed description (1-2 sentences)
2. List of identified objects/items
3. Categories the item belongs to
4. Dominant colors
5. Confidence level (0-100)
6. collectibleDetails: type, era, country, year, denomination, condition,
   rarity, estimatedValue (USD number), authentication (array), grading,
   historicalSignificance, specialFeatures (array)
7. conditionAssessment (text) and authenticityMarkers (array)
8. estimatedValueRange: {{"min": number, "max": number}} in USD

Do not invent dates, countries or values you cannot see evidence for.
Format your response as a single JSON object with the keys above.
Return JSON only. No extra text or markdown.
""".strip()


class PromptBuilder:
    """Builds the prompt for an analysis mode.

    Stamp prompts are prefixed with the knowledge provider's reference text.
    """

    def __init__(self, knowledge: Optional[KnowledgeProvider] = None):
        self.knowledge = knowledge

    def build(self, mode: AnalysisMode = AnalysisMode.GENERAL) -> str:
        mode = AnalysisMode(mode)
        if not mode.is_collectible:
            return GENERAL_PROMPT

        prompt = COLLECTIBLE_PROMPT.format(label=COLLECTIBLE_LABELS[mode])
        if mode is AnalysisMode.STAMP and self.knowledge is not None:
            return (
                "Using the following knowledge about stamp identification:\n\n"
                f"{self.knowledge.knowledge()}\n\n{prompt}"
            )
        return prompt
