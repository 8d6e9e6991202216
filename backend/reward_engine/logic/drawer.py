"""Weighted symbol drawer."""
from reward_engine.config import settings
from reward_engine.errors import InvalidConfiguration
from reward_engine.logic.models import Outcome, WeightTable
from reward_engine.logic.rng import ProductionRNG, RNGBase


def cumulative_distribution(weights: WeightTable) -> tuple[tuple[str, ...], list[int]]:
    """
    Return (symbols, cumulative weights) for weighted sampling.

    Raises InvalidConfiguration if the total weight is not positive.
    """
    symbols = weights.symbols
    cum_weights = weights.cumulative_weights()
    if not cum_weights or cum_weights[-1] <= 0:
        raise InvalidConfiguration(
            f"Weight config {weights.config_id} has non-positive total weight."
        )
    return symbols, cum_weights


class Drawer:
    """
    Draws outcomes of K i.i.d. weighted symbols (sampling with replacement).

    Pass a SeededRNG for deterministic draws.
    """

    def __init__(self, rng: RNGBase | None = None):
        self.rng = rng or ProductionRNG()

    def draw(self, weights: WeightTable, reel_count: int | None = None) -> Outcome:
        """Draw one outcome."""
        k = reel_count or settings.reel_count
        symbols, cum_weights = cumulative_distribution(weights)
        return tuple(self.rng.choices(symbols, cum_weights=cum_weights, k=k))

    def draw_many(
        self, weights: WeightTable, count: int, reel_count: int | None = None
    ) -> list[Outcome]:
        """Draw ``count`` independent outcomes in one batch."""
        k = reel_count or settings.reel_count
        symbols, cum_weights = cumulative_distribution(weights)
        flat = self.rng.choices(symbols, cum_weights=cum_weights, k=count * k)
        # Regroup the flat draw into consecutive K-tuples
        return list(zip(*[iter(flat)] * k))
