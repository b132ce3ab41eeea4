"""
Win detection for cascading grids.

Two rules are supported: ``count_anywhere`` (a symbol pays on its total count across the
grid) and ``cluster`` (4-neighbour connected groups of identical symbols). The scatter is
never part of a win; it is evaluated separately by ``evaluate_scatter``.
"""

from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple


class WinDescriptor(NamedTuple):
    symbol_id: str
    count: int
    positions: Tuple[int, ...]
    payout: float


def tier_value(table: Dict[int, float], count: int) -> float:
    """Value of the highest tier key <= count, or 0 if count is below every key."""
    best_key = None
    for key in table:
        if key <= count and (best_key is None or key > best_key):
            best_key = key
    return table[best_key] if best_key is not None else 0


def round_payout(value: float, rounding: Optional[int]) -> float:
    if rounding is None:
        return value
    return round(value, rounding)


class PayoutContext(NamedTuple):
    """Everything needed to turn a raw tier value into a credited amount."""
    scale: float
    rounding: Optional[int]
    min_match: int

    def apply(self, raw: float, multiplier: float = 1) -> float:
        return round_payout(raw * self.scale * multiplier, self.rounding)


class CountAnywhereDetector:
    """Pays each symbol on its total count anywhere on the grid."""

    name = 'count_anywhere'

    def __init__(self, paytable: Dict[str, Dict[int, float]], scatter_id: str):
        self.paytable = paytable
        self.scatter_id = scatter_id

    def find_wins(self, grid: Sequence, columns: int, context: PayoutContext,
                  cell_multipliers=None) -> List[WinDescriptor]:
        positions_by_symbol: Dict[str, List[int]] = {}
        for pos, symbol_id in enumerate(grid):
            if symbol_id is None or symbol_id == self.scatter_id:
                continue
            positions_by_symbol.setdefault(symbol_id, []).append(pos)

        wins = []
        for symbol_id, positions in positions_by_symbol.items():
            count = len(positions)
            if count < context.min_match:
                continue
            raw = tier_value(self.paytable.get(symbol_id, {}), count)
            if raw <= 0:
                continue
            wins.append(WinDescriptor(symbol_id, count, tuple(positions), context.apply(raw)))
        return wins


class ClusterDetector:
    """Pays 4-neighbour connected groups of identical symbols."""

    name = 'cluster'

    def __init__(self, paytable: Dict[str, Dict[int, float]], scatter_id: str):
        self.paytable = paytable
        self.scatter_id = scatter_id

    def find_clusters(self, grid: Sequence, columns: int) -> List[Tuple[str, List[int]]]:
        """Returns every connected component of identical paying symbols as (symbol_id, positions)."""
        size = len(grid)
        rows = size // columns
        visited = [False] * size
        clusters = []
        for start in range(size):
            symbol_id = grid[start]
            if visited[start] or symbol_id is None or symbol_id == self.scatter_id:
                continue
            visited[start] = True
            stack = [start]
            component = []
            while stack:
                pos = stack.pop()
                component.append(pos)
                row, col = divmod(pos, columns)
                for n_row, n_col in ((row - 1, col), (row + 1, col), (row, col - 1), (row, col + 1)):
                    if 0 <= n_row < rows and 0 <= n_col < columns:
                        neighbour = n_row * columns + n_col
                        if not visited[neighbour] and grid[neighbour] == symbol_id:
                            visited[neighbour] = True
                            stack.append(neighbour)
            clusters.append((symbol_id, sorted(component)))
        return clusters

    def find_wins(self, grid: Sequence, columns: int, context: PayoutContext,
                  cell_multipliers=None) -> List[WinDescriptor]:
        """
        Args:
            cell_multipliers (callable, optional): Maps a list of positions to the multiplier
                applied to that cluster (persistent-spot games). Defaults to x1.
        """
        wins = []
        for symbol_id, positions in self.find_clusters(grid, columns):
            count = len(positions)
            if count < context.min_match:
                continue
            raw = tier_value(self.paytable.get(symbol_id, {}), count)
            if raw <= 0:
                continue
            multiplier = cell_multipliers(positions) if cell_multipliers else 1
            wins.append(WinDescriptor(symbol_id, count, tuple(positions), context.apply(raw, multiplier)))
        return wins


DETECTORS = {
    CountAnywhereDetector.name: CountAnywhereDetector,
    ClusterDetector.name: ClusterDetector,
}


def build_detector(game_config):
    game = game_config['game']
    scatter_id = game['scatter']['symbol_id']
    paytable = {
        sym['id']: sym['payouts']
        for sym in game['symbols'] if sym['id'] != scatter_id
    }
    return DETECTORS[game['win_rule']](paytable, scatter_id)


def evaluate_scatter(grid: Sequence, scatter_id: str, payouts: Dict[int, float],
                     scale: float, rounding: Optional[int]):
    """Returns (count, positions, payout) for the scatter on a grid."""
    positions = [pos for pos, symbol_id in enumerate(grid) if symbol_id == scatter_id]
    raw = tier_value(payouts, len(positions)) if payouts else 0
    payout = round_payout(raw * scale, rounding) if raw > 0 else 0
    return len(positions), positions, payout
