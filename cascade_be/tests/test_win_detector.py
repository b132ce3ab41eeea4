import pytest

from cascade_be.utils.engine import get_engine
from cascade_be.utils.scaling import ScalingState
from cascade_be.utils.win_detector import (
    ClusterDetector,
    CountAnywhereDetector,
    PayoutContext,
    evaluate_scatter,
    round_payout,
    tier_value,
)

BONANZA_FILLERS = ['purple', 'green', 'blue', 'apple', 'plum', 'watermelon', 'grape', 'banana']
CLUSTER_FILLERS = ['orange_bear', 'purple_bear', 'red_bear']


def bonanza_grid(symbol, count, extra=()):
    """30-cell grid with ``count`` copies of ``symbol`` and at most 3 of every filler."""
    cells = [symbol] * count + list(extra)
    i = 0
    while len(cells) < 30:
        cells.append(BONANZA_FILLERS[i % len(BONANZA_FILLERS)])
        i += 1
    return cells


def cluster_background(rows=7, columns=7):
    """Grid where no two orthogonal neighbours match."""
    return [CLUSTER_FILLERS[(row + col) % 3] for row in range(rows) for col in range(columns)]


def test_tier_value_uses_highest_key_not_above_count():
    table = {8: 1.0, 10: 2.0, 12: 5.0}
    assert tier_value(table, 7) == 0
    assert tier_value(table, 8) == 1.0
    assert tier_value(table, 9) == 1.0
    assert tier_value(table, 11) == 2.0
    assert tier_value(table, 30) == 5.0


def test_round_payout():
    assert round_payout(1.23456, 2) == 1.23
    assert round_payout(1.23456, None) == 1.23456


def test_count_anywhere_single_win():
    engine = get_engine('sweet-bonanza-1000')
    context = engine.payout_context(ScalingState())
    grid = bonanza_grid('heart', 8)
    wins = engine.win_detector.find_wins(grid, engine.columns, context)
    assert len(wins) == 1
    win = wins[0]
    assert win.symbol_id == 'heart'
    assert win.count == 8
    assert win.positions == tuple(range(8))
    assert win.payout == round(8 * context.scale, 2)


def test_count_anywhere_below_min_match_pays_nothing():
    engine = get_engine('sweet-bonanza-1000')
    context = engine.payout_context(ScalingState())
    assert engine.win_detector.find_wins(bonanza_grid('heart', 7), engine.columns, context) == []


def test_count_anywhere_ignores_scatter_and_empty_cells():
    detector = CountAnywhereDetector({'a': {3: 1}, 'scatter': {3: 100}}, 'scatter')
    context = PayoutContext(scale=1.0, rounding=2, min_match=3)
    grid = ['scatter'] * 5 + [None, None, 'a', 'a', 'b']
    assert detector.find_wins(grid, 5, context) == []


def test_low_volatility_lowers_min_match():
    engine = get_engine('sweet-bonanza-1000')
    context = engine.payout_context(ScalingState(volatility='low'))
    assert context.min_match == 6
    # heart pays nothing below its 8 tier even when the match threshold drops
    assert engine.win_detector.find_wins(bonanza_grid('heart', 7), engine.columns, context) == []


def test_two_clusters():
    engine = get_engine('sugar-rush-1000')
    context = engine.payout_context(ScalingState())
    grid = cluster_background()
    for col in range(5):
        grid[col] = 'pink_ball'
    for col in range(6):
        grid[3 * 7 + col] = 'green_star'
    wins = sorted(engine.win_detector.find_wins(grid, engine.columns, context), key=lambda w: w.count)
    assert [(w.symbol_id, w.count) for w in wins] == [('pink_ball', 5), ('green_star', 6)]
    assert wins[0].payout == context.apply(2)
    assert wins[1].payout == context.apply(1.5)
    assert wins[1].positions == tuple(range(21, 27))


def test_cluster_connectivity_is_orthogonal_only():
    detector = ClusterDetector({'a': {2: 1}}, 'scatter')
    grid = ['a', 'b',
            'b', 'a']
    clusters = detector.find_clusters(grid, 2)
    assert ('a', [0]) in clusters
    assert ('a', [3]) in clusters


def test_cluster_excludes_scatter():
    detector = ClusterDetector({'a': {3: 1}}, 'scatter')
    context = PayoutContext(scale=1.0, rounding=None, min_match=3)
    grid = ['scatter', 'scatter', 'scatter',
            'a', 'b', 'a',
            'b', 'a', 'b']
    assert detector.find_wins(grid, 3, context) == []


def test_cluster_cell_multipliers_apply():
    detector = ClusterDetector({'a': {3: 2.0}}, 'scatter')
    context = PayoutContext(scale=1.5, rounding=2, min_match=3)
    grid = ['a', 'a', 'a',
            'b', 'c', 'b',
            'c', 'b', 'c']
    wins = detector.find_wins(grid, 3, context, cell_multipliers=lambda positions: 4)
    assert len(wins) == 1
    assert wins[0].payout == 12.0


def test_evaluate_scatter():
    grid = ['scatter', 'a', 'scatter', 'b', 'scatter', 'scatter']
    count, positions, payout = evaluate_scatter(grid, 'scatter', {4: 3, 6: 100}, 2.0, 2)
    assert count == 4
    assert positions == [0, 2, 4, 5]
    assert payout == 6.0


def test_evaluate_scatter_without_payouts():
    count, _, payout = evaluate_scatter(['scatter'] * 5, 'scatter', {}, 1.0, None)
    assert count == 5
    assert payout == 0
