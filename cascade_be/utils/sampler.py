"""Weighted grid sampling and multiplier value tables."""

import itertools
import logging
import random
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


def make_rng(seed=None) -> random.Random:
    """
    Returns an independent random stream.

    A given seed produces a reproducible stream; without one the stream is seeded from
    the OS. Monte Carlo shards should each get their own stream.
    """
    return random.Random(seed)


class WeightedSampler:
    """Draws items independently with probability proportional to their weights."""

    def __init__(self, items: Sequence, weights: Sequence[float]):
        if len(items) != len(weights):
            raise ValueError("items and weights must have the same length")
        if not items:
            raise ValueError("Weight table is empty")
        if any(w < 0 for w in weights):
            raise ValueError(f"Weight table contains a negative weight: {list(weights)}")
        total = float(sum(weights))
        if total <= 0:
            raise ValueError("Weight table sums to zero")
        self.items = list(items)
        self.weights = [float(w) for w in weights]
        self.total_weight = total
        self.cum_weights = list(itertools.accumulate(self.weights))

    def probability(self, item) -> float:
        return sum(w for i, w in zip(self.items, self.weights) if i == item) / self.total_weight

    def draw(self, rng: random.Random):
        return rng.choices(self.items, cum_weights=self.cum_weights, k=1)[0]

    def draw_many(self, rng: random.Random, count: int) -> List:
        if count <= 0:
            return []
        return rng.choices(self.items, cum_weights=self.cum_weights, k=count)


def symbol_sampler(game_config, scatter_weight_factor: float = 1.0) -> WeightedSampler:
    """
    Builds the symbol sampler for a game, boosting the scatter weight by the given factor.

    Raises:
        ValueError: If the adjusted weights are negative or sum to zero.
    """
    game = game_config['game']
    scatter_id = game['scatter']['symbol_id']
    ids = []
    weights = []
    for sym in game['symbols']:
        weight = sym['weight']
        if sym['id'] == scatter_id:
            weight *= scatter_weight_factor
        ids.append(sym['id'])
        weights.append(weight)
    return WeightedSampler(ids, weights)


def multiplier_value_sampler(values: Sequence[int], weight_power: float,
                             min_value: Optional[int] = None) -> WeightedSampler:
    """
    Multiplier values weighted by ``1 / v ** weight_power``, optionally filtered to ``v >= min_value``.

    If the filter removes every value, the largest value is kept.
    """
    candidates = [v for v in values if min_value is None or v >= min_value]
    if not candidates:
        candidates = [max(values)]
    return WeightedSampler(candidates, [1.0 / (v ** weight_power) for v in candidates])


def sample_cells(sampler: WeightedSampler, positions: Sequence[int], grid: list, rng: random.Random):
    """Fills the given grid positions in place with independent draws."""
    for pos, symbol_id in zip(positions, sampler.draw_many(rng, len(positions))):
        grid[pos] = symbol_id
