"""Two-stage image analysis: a cheap furniture classification, then a rich description.

The classification reply is a line-anchored text format::

    FURNITURE
    Category: seating
    Type: bench
    Description: solid oak bench with ...

or ``NOT_FURNITURE: <reason>``. Parsing lives in :func:`parse_classification`
so it can be tested without a backend.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Any

from furniture_finder.errors import MalformedAnalysisError
from furniture_finder.providers import CapabilityProvider


_LOGGER = logging.getLogger(__name__)

FURNITURE_MARKER = "FURNITURE"
NOT_FURNITURE_MARKER = "NOT_FURNITURE"

CLASSIFICATION_PROMPT = (
    "Analyze this image and provide a structured analysis.\n\n"
    "First, decide whether it shows furniture (chairs, tables, sofas, desks, cabinets, "
    "shelves, beds, benches, stools, lamps, etc.).\n\n"
    "If it IS furniture, reply in this EXACT format:\n"
    "FURNITURE\n"
    "Category: [seating/tables/storage/beds/lighting/etc]\n"
    "Type: [specific type such as bench, chair, sofa, desk, table, cabinet]\n"
    "Description: [materials, color, style, dimensions]\n\n"
    "If it is NOT furniture, reply:\n"
    "NOT_FURNITURE: [brief reason]\n\n"
    "Be precise with category and type; they drive catalog matching."
)

DESCRIPTION_SYSTEM_PROMPT = (
    "You are an expert furniture analyst. Describe furniture items with extreme precision "
    "for product matching. Focus on exact category, specific type, materials, color, style, "
    "shape, dimensions, and usage context. Distinguish between similar types "
    "(for example bench vs chair vs stool vs sofa)."
)

DESCRIPTION_PROMPT = (
    "Provide a detailed description of this furniture item for precise product matching. "
    "Include: category, exact type, materials, color, style, approximate dimensions, "
    "and any distinctive features."
)

_DECORATION = "*#`_> \t"
_NOT_FURNITURE_PREFIX = re.compile(r"^NOT[\s_-]*FURNITURE\b[\s:.-]*", re.IGNORECASE)


@dataclass(frozen=True)
class ClassificationResult:
    is_furniture: bool
    category: str | None = None
    type: str | None = None
    description: str = ""
    rejection_reason: str | None = None


@dataclass(frozen=True)
class FurnitureAnalysis:
    is_furniture: bool
    description: str
    category: str | None = None
    type: str | None = None
    rejection_reason: str | None = None
    malformed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_furniture": self.is_furniture,
            "category": self.category,
            "type": self.type,
            "description": self.description,
            "rejection_reason": self.rejection_reason,
            "malformed": self.malformed,
        }


@dataclass(frozen=True)
class AnalysisOutcome:
    analysis: FurnitureAnalysis
    classification_content: str
    vision_description: str | None = None


def _field_value(lines: list[str], name: str) -> str | None:
    prefix = f"{name.lower()}:"
    for line in lines:
        stripped = line.strip().lstrip(_DECORATION)
        if stripped.lower().startswith(prefix):
            value = stripped[len(prefix):].strip().strip("*").strip()
            return value or None
    return None


def _description_value(lines: list[str]) -> str | None:
    prefix = "description:"
    for index, line in enumerate(lines):
        stripped = line.strip().lstrip(_DECORATION)
        if stripped.lower().startswith(prefix):
            head = stripped[len(prefix):].strip()
            body = "\n".join([head, *lines[index + 1:]]).strip()
            return body or None
    return None


def parse_classification_strict(text: str) -> ClassificationResult:
    """Parse a classification reply.

    Anything that does not open with the furniture marker is a rejection.
    Raises :class:`MalformedAnalysisError` only for a furniture reply with no
    recognisable fields.
    """
    content = (text or "").strip()
    if not content:
        return ClassificationResult(
            is_furniture=False,
            rejection_reason="The image could not be classified as furniture.",
        )

    lines = content.splitlines()
    first = lines[0].strip().strip(_DECORATION)

    not_furniture = _NOT_FURNITURE_PREFIX.match(first)
    if not_furniture:
        reason = first[not_furniture.end():].strip()
        if not reason:
            reason = "\n".join(lines[1:]).strip() or content
        return ClassificationResult(is_furniture=False, description=content, rejection_reason=reason)

    if not first.upper().startswith(FURNITURE_MARKER):
        return ClassificationResult(is_furniture=False, description=content, rejection_reason=content)

    rest = lines[1:]
    category = _field_value(rest, "Category")
    item_type = _field_value(rest, "Type")
    description = _description_value(rest)
    if category is None and item_type is None and description is None:
        raise MalformedAnalysisError("Classification reply has no Category/Type/Description fields.", raw_content=content)

    return ClassificationResult(
        is_furniture=True,
        category=category.lower() if category else None,
        type=item_type.lower() if item_type else None,
        description=description or content,
    )


def parse_classification(text: str) -> ClassificationResult | None:
    """Parse a classification reply; ``None`` for a furniture reply without fields."""
    try:
        return parse_classification_strict(text)
    except MalformedAnalysisError:
        return None


def build_description_prompt(user_text: str | None = None) -> str:
    cleaned = (user_text or "").strip()
    if not cleaned:
        return DESCRIPTION_PROMPT
    return f'{DESCRIPTION_PROMPT} Additional user requirements: "{cleaned}".'


def analyze_furniture_image(
    provider: CapabilityProvider,
    image: bytes,
    *,
    user_text: str | None = None,
    model: str | None = None,
) -> AnalysisOutcome:
    """Run the classification stage and, for furniture only, the description stage."""
    classification = provider.analyze_image(image, CLASSIFICATION_PROMPT, None, model)
    content = classification.content.strip()

    try:
        parsed = parse_classification_strict(content)
    except MalformedAnalysisError as exc:
        _LOGGER.warning("Classification reply was malformed; continuing in degraded mode: %s", exc)
        analysis = FurnitureAnalysis(is_furniture=True, description=content, malformed=True)
    else:
        if not parsed.is_furniture:
            _LOGGER.info("Image rejected as non-furniture: %s", parsed.rejection_reason)
            rejected = FurnitureAnalysis(
                is_furniture=False,
                description=parsed.description,
                rejection_reason=parsed.rejection_reason,
            )
            return AnalysisOutcome(analysis=rejected, classification_content=content)
        analysis = FurnitureAnalysis(
            is_furniture=True,
            description=parsed.description,
            category=parsed.category,
            type=parsed.type,
        )

    description = provider.analyze_image(
        image,
        build_description_prompt(user_text),
        DESCRIPTION_SYSTEM_PROMPT,
        model,
    )
    return AnalysisOutcome(
        analysis=analysis,
        classification_content=content,
        vision_description=description.content.strip(),
    )
