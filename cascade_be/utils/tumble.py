"""
Tumble (cascade) resolution.

A sequence repeats evaluate -> remove -> drop -> refill until an evaluation finds no win.
Each cleared-and-refilled state is recorded as a ``TumbleStep``. The sequence also stops
early once the projected win reaches the remaining max-win headroom.
"""

import logging
from typing import Callable, List, NamedTuple, Optional, Tuple

from .win_detector import WinDescriptor

logger = logging.getLogger(__name__)

class TumbleStep(NamedTuple):
    grid: Tuple
    multipliers: Tuple
    wins: Tuple[WinDescriptor, ...]
    payout: float
    multiplier_total: int
    new_positions: Tuple[int, ...]


def drop(grid: list, multipliers: list, columns: int) -> List[int]:
    """
    Applies gravity in place.

    Symbols and bombs fall to the bottom of their column keeping their relative order.
    Returns the emptied positions at the top of each column, column by column.
    """
    rows = len(grid) // columns
    empty_positions = []
    for col in range(columns):
        entities = []
        for row in range(rows - 1, -1, -1):
            pos = row * columns + col
            if grid[pos] is not None or multipliers[pos] is not None:
                entities.append((grid[pos], multipliers[pos]))
        row = rows - 1
        for symbol_id, value in entities:
            pos = row * columns + col
            grid[pos] = symbol_id
            multipliers[pos] = value
            row -= 1
        for empty_row in range(row + 1):
            pos = empty_row * columns + col
            grid[pos] = None
            multipliers[pos] = None
            empty_positions.append(pos)
    return empty_positions


def resolve_cascade(grid: list, multipliers: list, columns: int,
                    find_wins: Callable[[list], List[WinDescriptor]],
                    refill: Callable[[list, list, List[int]], None],
                    multiplier_total: Callable[[list], int],
                    on_clear: Optional[Callable[[List[int]], None]] = None,
                    headroom: Optional[float] = None,
                    project: Optional[Callable[[float, list], float]] = None,
                    snapshot: Optional[Callable[[list], tuple]] = None) -> List[TumbleStep]:
    """
    Runs a tumble sequence in place on ``grid`` and ``multipliers``.

    Args:
        grid (list): Symbol ids by index ``row * columns + col``; ``None`` for empty or bomb cells.
        multipliers (list): Bomb values by index, ``None`` where there is no bomb.
        columns (int): Grid width.
        find_wins (callable): Evaluates a grid and returns its wins (scatter excluded).
        refill (callable): Fills the given emptied positions of (grid, multipliers).
        multiplier_total (callable): Multiplier total to record with each step.
        on_clear (callable, optional): Called with the cleared positions after the step's
            payout is taken and before the drop (persistent spot hits).
        headroom (float, optional): Remaining win allowed for the spin.
        project (callable, optional): Maps (cumulative payout, multipliers) to the projected
            spin win compared against ``headroom``. Defaults to the cumulative payout.
        snapshot (callable, optional): Builds the multiplier snapshot stored with each step.
            Defaults to a copy of ``multipliers``.

    Returns:
        list[TumbleStep]: Steps in order; the tumble count is ``len(steps)``.
    """
    steps = []
    cumulative = 0.0
    while True:
        wins = find_wins(grid)
        if not wins:
            break
        step_payout = sum(win.payout for win in wins)
        cleared = sorted({pos for win in wins for pos in win.positions})
        for pos in cleared:
            grid[pos] = None
        if on_clear:
            on_clear(cleared)
        new_positions = drop(grid, multipliers, columns)
        refill(grid, multipliers, new_positions)
        cumulative += step_payout
        steps.append(TumbleStep(
            grid=tuple(grid),
            multipliers=snapshot(multipliers) if snapshot else tuple(multipliers),
            wins=tuple(wins),
            payout=step_payout,
            multiplier_total=multiplier_total(multipliers),
            new_positions=tuple(new_positions),
        ))
        if headroom is not None:
            projected = project(cumulative, multipliers) if project else cumulative
            if projected >= headroom:
                logger.debug("Cascade stopped at step %d: projected win %.2f reached headroom %.2f",
                             len(steps), projected, headroom)
                break
    return steps
