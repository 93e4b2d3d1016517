"""Builds the canonical search query from image analysis and shopper text."""

from __future__ import annotations

from furniture_finder.analysis import FurnitureAnalysis


QUERY_SEPARATOR = ". "


def compose_query(
    analysis: FurnitureAnalysis,
    vision_description: str | None,
    user_text: str | None = None,
) -> str:
    """Join type tag, category tag, description and user preferences, in that order.

    The order feeds the lexical signal and keeps the composed text reproducible.
    """
    parts: list[str] = []
    if analysis.type:
        parts.append(f"furniture type: {analysis.type}")
    if analysis.category:
        parts.append(f"category: {analysis.category}")

    description = (vision_description or "").strip() or analysis.description.strip()
    if description:
        parts.append(description)

    cleaned_user_text = (user_text or "").strip()
    if cleaned_user_text:
        parts.append(f"user preferences: {cleaned_user_text}")
    return QUERY_SEPARATOR.join(parts)
