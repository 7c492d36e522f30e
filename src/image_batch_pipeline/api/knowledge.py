"""
Reference knowledge injected into collectible analysis prompts.

The provider is constructed explicitly and handed to the PromptBuilder; it has
to be initialized before its text can be read.
"""

from dataclasses import dataclass
from typing import List, Literal

from ..utils.log_utils import get_logger

logger = get_logger(__name__)

ResourceKind = Literal["pdf", "txt", "html"]


@dataclass(frozen=True)
class Resource:
    title: str
    kind: ResourceKind
    content: str


STAMP_IDENTIFICATION = """
Country of origin: look for the country name, often in the local language;
some issues use codes (USA, GB) or only symbols and coats of arms.
Perforations: measured in teeth per 2 cm (usually 8-14); note regular,
irregular or imperforate edges and whether sides differ.
Watermarks: crowns, letters or symbols visible against light.
Paper: wove or laid; specialised papers include India and chameleon paper.
Gum: mint (original gum), hinged, or regummed.
Printing: engraving (raised ink, sharp detail), lithography (flat), typography
(raised letters), photogravure (fine tonal detail).
Cancellations: dated or pictorial; cancel type affects value.
Catalogue numbers: Scott numbering is the common reference for US issues.
""".strip()

CONDITION_ASSESSMENT = """
Centering: margins even on all four sides rate highest.
Faults: thins, tears, creases, short or pulled perforations, toning, stains.
Grades from best to worst: superb, extremely fine, very fine, fine, very good,
good, poor.
""".strip()

RARITY_AND_VALUE = """
Value depends on print run, surviving population, errors and varieties
(inverts, missing colours, double prints), condition, and collector demand.
Common definitive issues in used condition are usually of nominal value.
""".strip()

DEFAULT_RESOURCES = (
    Resource("Stamp Identification Guidelines", "txt", STAMP_IDENTIFICATION),
    Resource("Condition Assessment", "txt", CONDITION_ASSESSMENT),
    Resource("Rarity and Value Factors", "txt", RARITY_AND_VALUE),
)


class KnowledgeProvider:
    """Holds reference texts for stamp identification."""

    def __init__(self) -> None:
        self._resources: List[Resource] = []
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    def initialize(self) -> None:
        """Load the built-in resources. Safe to call more than once."""
        if self._ready:
            return
        self._resources = list(DEFAULT_RESOURCES) + self._resources
        self._ready = True
        logger.debug(f"Knowledge provider ready with {len(self._resources)} resource(s)")

    def add_resource(self, title: str, kind: ResourceKind, content: str) -> None:
        self._resources.append(Resource(title, kind, content))

    def knowledge(self) -> str:
        """Return all resources as a single prompt section."""
        if not self._ready:
            raise RuntimeError("Knowledge provider not initialized. Call initialize() first.")
        return "\n".join(
            f"=== {r.title} ({r.kind}) ===\n\n{r.content}\n" for r in self._resources
        )
