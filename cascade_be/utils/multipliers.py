"""
Multiplier policies.

``EphemeralBombPolicy`` places multiplier bombs that live for one cascade sequence: they
occupy a grid cell (the symbol slot is empty), fall with the symbols and are summed once
on the final grid. ``PersistentSpotPolicy`` keeps a hit counter per grid index; a spot
hit twice or more is worth ``2 ** (hits - 1)`` (capped) and multiplies every cluster
that covers it.
"""

import logging
from typing import Dict, List, Optional

from .sampler import multiplier_value_sampler, sample_cells

logger = logging.getLogger(__name__)


class EphemeralBombPolicy:
    mode = 'ephemeral'
    persistent = False

    def __init__(self, values, weight_power=1.0, base_chance=0.0, free_spins_chance=0.0,
                 initial_placement='per_cell'):
        self.values = sorted(values)
        self.weight_power = weight_power
        self.base_chance = base_chance
        self.free_spins_chance = free_spins_chance
        self.initial_placement = initial_placement
        self._value_samplers = {}

    def value_sampler(self, min_value=None):
        sampler = self._value_samplers.get(min_value)
        if sampler is None:
            sampler = multiplier_value_sampler(self.values, self.weight_power, min_value)
            self._value_samplers[min_value] = sampler
        return sampler

    def spawn_chance(self, is_free_spins, profile) -> float:
        chance = self.free_spins_chance if is_free_spins else self.base_chance
        return min(1.0, chance * profile.multiplier_chance_factor)

    def fill_cells(self, grid, multipliers, positions, symbols, rng, chance, min_value=None):
        """Fills empty positions: each one becomes a bomb with ``chance``, otherwise a symbol draw."""
        symbol_positions = []
        values = self.value_sampler(min_value)
        for pos in positions:
            if chance > 0 and rng.random() < chance:
                grid[pos] = None
                multipliers[pos] = values.draw(rng)
            else:
                multipliers[pos] = None
                symbol_positions.append(pos)
        sample_cells(symbols, symbol_positions, grid, rng)

    def place_initial(self, grid, multipliers, symbols, rng, is_free_spins, profile, min_value=None):
        """
        Samples a full grid with its initial bombs.

        ``count_range`` games only seed bombs in free spins: ``k`` bombs, ``k`` uniform in
        the volatility range. ``per_cell`` games roll every cell against the spawn chance.
        """
        size = len(grid)
        if self.initial_placement == 'count_range':
            sample_cells(symbols, range(size), grid, rng)
            for pos in range(size):
                multipliers[pos] = None
            if is_free_spins:
                low, high = profile.initial_bomb_range
                count = min(size, rng.randint(low, high))
                values = self.value_sampler(min_value)
                for pos in rng.sample(range(size), count):
                    grid[pos] = None
                    multipliers[pos] = values.draw(rng)
        else:
            self.fill_cells(grid, multipliers, range(size), symbols, rng,
                            self.spawn_chance(is_free_spins, profile), min_value)

    def cell_layouts(self, size, is_free_spins, profile):
        """
        How a freshly placed grid splits between bombs and symbols, as a list of
        ``(weight, symbol_cells, symbol_probability)``.

        A symbol's count is then binomial over ``symbol_cells`` with its weight share scaled
        by ``symbol_probability``: per-cell bombs take each cell with the spawn chance,
        count-range bombs take ``k`` whole cells with ``k`` uniform in the volatility range.
        """
        if self.initial_placement == 'count_range':
            if not is_free_spins:
                return [(1.0, size, 1.0)]
            low, high = profile.initial_bomb_range
            counts = range(low, high + 1)
            return [(1.0 / len(counts), size - min(size, k), 1.0) for k in counts]
        return [(1.0, size, 1.0 - self.spawn_chance(is_free_spins, profile))]

    def guarantee(self, grid, multipliers, rng, min_value) -> bool:
        """Places one bomb of at least ``min_value`` if the grid has none. Returns True if placed."""
        if any(m is not None for m in multipliers):
            return False
        pos = rng.randrange(len(grid))
        grid[pos] = None
        multipliers[pos] = self.value_sampler(min_value).draw(rng)
        return True

    @staticmethod
    def total(multipliers) -> int:
        return sum(m for m in multipliers if m is not None)


class PersistentSpotPolicy:
    mode = 'persistent'
    persistent = True

    def __init__(self, max_hit_count=10, max_value=1024, super_initial_hits=2):
        self.max_hit_count = max_hit_count
        self.max_value = max_value
        self.super_initial_hits = super_initial_hits

    def spot_value(self, hits: int) -> int:
        if hits < 2:
            return 0
        return min(self.max_value, 2 ** (hits - 1))

    def cluster_multiplier(self, hit_counts: List[int]):
        """Returns a callable mapping cluster positions to their summed spot value (x1 if none)."""
        def multiplier(positions):
            total = sum(self.spot_value(hit_counts[pos]) for pos in positions)
            return total if total > 0 else 1
        return multiplier

    def record_hits(self, hit_counts: List[int], positions):
        for pos in positions:
            if hit_counts[pos] < self.max_hit_count:
                hit_counts[pos] += 1

    def floor(self, hit_counts: List[int], hits: Optional[int] = None):
        """Raises every counter to at least ``hits`` (super free spins start every spot at x2)."""
        hits = self.super_initial_hits if hits is None else hits
        for pos, count in enumerate(hit_counts):
            if count < hits:
                hit_counts[pos] = hits

    def cell_layouts(self, size, is_free_spins, profile):
        return [(1.0, size, 1.0)]

    def snapshot(self, hit_counts: List[int]) -> List[Optional[Dict[str, int]]]:
        return [
            {'value': self.spot_value(count), 'hitCount': count} if count > 0 else None
            for count in hit_counts
        ]

    def total(self, hit_counts: List[int]) -> int:
        return sum(self.spot_value(count) for count in hit_counts)


def build_multiplier_policy(game_config):
    settings = game_config['game']['multipliers']
    if settings['mode'] == 'persistent':
        return PersistentSpotPolicy(
            max_hit_count=settings.get('max_hit_count', 10),
            max_value=settings.get('max_value', 1024),
            super_initial_hits=settings.get('super_initial_hits', 2),
        )
    return EphemeralBombPolicy(
        values=settings['values'],
        weight_power=settings.get('weight_power', 1.0),
        base_chance=settings.get('base_chance', 0.0),
        free_spins_chance=settings.get('free_spins_chance', 0.0),
        initial_placement=settings.get('initial_placement', 'per_cell'),
    )
