"""AI-generated product insights (pros, cons, audience, feature scores)."""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import ValidationError

from ..catalog.schemas import Product
from ..sessions.schemas import ProductInsight

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class InsightUnavailableError(Exception):
    """The model output could not be turned into a product insight."""


def build_insight_prompt(product: Product) -> str:
    """Describe ``product`` to the insight model."""

    price = "Unknown"
    if product.price_range and product.price_range.min_variant_price:
        money = product.price_range.min_variant_price
        if money.amount:
            price = f"{money.amount} {money.currency_code or ''}".strip()
    tags = ", ".join(product.tags or []) or "None"
    return (
        f"Product: {product.title}\n"
        f"Description: {product.description or 'No description available'}\n"
        f"Price: {price}\n"
        f"Type: {product.product_type or 'Unknown'}\n"
        f"Tags: {tags}"
    )


def parse_insight(text: str) -> ProductInsight:
    """Parse the model's JSON reply, tolerating a fenced code block."""

    body = text.strip()
    match = _FENCE.match(body)
    if match:
        body = match.group(1)
    try:
        return ProductInsight.model_validate_json(body)
    except ValidationError as exc:
        raise InsightUnavailableError("Model returned a malformed analysis") from exc


async def generate_insight(product: Product, agent: Any) -> ProductInsight:
    """Run ``agent`` on ``product`` and return the parsed insight.

    Nothing is cached here; callers store the result once it parsed.
    """

    result = await agent.run(build_insight_prompt(product))
    output = result.output
    if not isinstance(output, str):
        raise InsightUnavailableError("Model returned no analysis text")
    insight = parse_insight(output)
    logger.debug("Generated insight for %s with %d features", product.handle, len(insight.features))
    return insight


__all__ = [
    "InsightUnavailableError",
    "build_insight_prompt",
    "generate_insight",
    "parse_insight",
]
