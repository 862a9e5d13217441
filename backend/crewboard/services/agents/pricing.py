"""Advisory per-model cost estimation.

Prices are USD per one million tokens. The table is configuration data: the
defaults below can be overridden or extended by a JSON file of the form
``{"model-id": {"input": 3, "output": 15}}``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import TYPE_CHECKING

from crewboard.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = get_logger(__name__)

_PER_MILLION = Decimal(1_000_000)


@dataclass(frozen=True)
class ModelPrice:
    input: Decimal
    output: Decimal


@dataclass(frozen=True)
class CostEstimate:
    model: str
    cost: float
    price: ModelPrice
    unknown_model: bool = False


DEFAULT_MODEL_PRICES: dict[str, ModelPrice] = {
    "claude-opus-4-5": ModelPrice(input=Decimal("15"), output=Decimal("75")),
    "claude-sonnet-4": ModelPrice(input=Decimal("3"), output=Decimal("15")),
    "claude-sonnet-4-20250514": ModelPrice(input=Decimal("3"), output=Decimal("15")),
    "gpt5.1.codex": ModelPrice(input=Decimal("5"), output=Decimal("15")),
    "gpt-4o": ModelPrice(input=Decimal("2.5"), output=Decimal("10")),
}
UNKNOWN_MODEL_PRICE = ModelPrice(input=Decimal("5"), output=Decimal("15"))


def _parse_price(raw: object) -> ModelPrice:
    if not isinstance(raw, dict):
        raise ValueError("price entry must be an object with input and output")
    try:
        return ModelPrice(
            input=Decimal(str(raw["input"])),
            output=Decimal(str(raw["output"])),
        )
    except (KeyError, InvalidOperation) as exc:
        raise ValueError(f"invalid price entry: {raw!r}") from exc


def load_price_overrides(path: str | Path) -> dict[str, ModelPrice]:
    """Parse a JSON price file into ``ModelPrice`` entries."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("pricing file must contain a JSON object")
    return {str(model): _parse_price(entry) for model, entry in data.items()}


class PricingTable:
    """Model id to price lookup with a logged fallback tier."""

    def __init__(
        self,
        prices: Mapping[str, ModelPrice] | None = None,
        *,
        unknown_price: ModelPrice = UNKNOWN_MODEL_PRICE,
    ) -> None:
        self.prices = dict(DEFAULT_MODEL_PRICES if prices is None else prices)
        self.unknown_price = unknown_price

    @classmethod
    def from_file(cls, path: str | Path | None) -> PricingTable:
        table = cls()
        if not path:
            return table
        try:
            table.prices.update(load_price_overrides(path))
        except (OSError, ValueError):
            logger.exception("agent.pricing.load_failed", extra={"path": str(path)})
        return table

    def price_for(self, model: str) -> tuple[ModelPrice, bool]:
        price = self.prices.get(model)
        if price is not None:
            return price, False
        logger.warning("agent.pricing.unknown_model", extra={"model": model})
        return self.unknown_price, True

    def estimate(self, model: str, input_tokens: int, output_tokens: int) -> CostEstimate:
        price, unknown = self.price_for(model)
        cost = (Decimal(input_tokens) / _PER_MILLION) * price.input + (
            Decimal(output_tokens) / _PER_MILLION
        ) * price.output
        return CostEstimate(model=model, cost=float(cost), price=price, unknown_model=unknown)
