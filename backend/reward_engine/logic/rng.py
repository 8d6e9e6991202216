"""RNG sources for the drawer."""
import hashlib
import random
import secrets
from abc import ABC, abstractmethod
from collections.abc import Sequence


class RNGBase(ABC):
    """Abstract RNG interface."""

    @abstractmethod
    def choices(
        self, population: Sequence[str], cum_weights: Sequence[int], k: int
    ) -> list[str]:
        """Return k weighted samples with replacement."""
        pass


class ProductionRNG(RNGBase):
    """
    Live-play RNG.

    Draws from OS entropy, no fixed seed.
    """

    def __init__(self):
        self._rng = secrets.SystemRandom()

    def choices(
        self, population: Sequence[str], cum_weights: Sequence[int], k: int
    ) -> list[str]:
        return self._rng.choices(population, cum_weights=cum_weights, k=k)


class SeededRNG(RNGBase):
    """
    Test/simulation RNG.

    Deterministic, fully controlled by seed.
    """

    def __init__(self, seed: int):
        self._rng = random.Random(seed)
        self.seed = seed

    def choices(
        self, population: Sequence[str], cum_weights: Sequence[int], k: int
    ) -> list[str]:
        return self._rng.choices(population, cum_weights=cum_weights, k=k)


def seed_to_int(seed_str: str) -> int:
    """Convert string seed to integer deterministically."""
    return int(hashlib.sha256(seed_str.encode()).hexdigest(), 16) % (2**31)
