import pytest

from cascade_be.utils.engine import get_engine
from cascade_be.utils.sampler import (
    WeightedSampler,
    make_rng,
    multiplier_value_sampler,
    sample_cells,
    symbol_sampler,
)


def test_draw_frequencies_converge_to_weights():
    sampler = WeightedSampler(['a', 'b', 'c'], [1, 3, 6])
    draws = sampler.draw_many(make_rng(42), 100000)
    for item, expected in (('a', 0.1), ('b', 0.3), ('c', 0.6)):
        assert abs(draws.count(item) / len(draws) - expected) < 0.01


def test_single_draw_uses_same_table():
    sampler = WeightedSampler(['x', 'y'], [0, 5])
    rng = make_rng(1)
    assert {sampler.draw(rng) for _ in range(50)} == {'y'}


def test_probability():
    sampler = WeightedSampler(['a', 'b'], [1, 3])
    assert sampler.probability('b') == pytest.approx(0.75)
    assert sampler.probability('missing') == 0


@pytest.mark.parametrize('items, weights', [
    (['a', 'b'], [0, 0]),
    (['a', 'b'], [1, -1]),
    (['a'], [1, 2]),
    ([], []),
])
def test_invalid_weight_tables_raise(items, weights):
    with pytest.raises(ValueError):
        WeightedSampler(items, weights)


def test_seeded_streams_are_reproducible():
    sampler = WeightedSampler(['a', 'b', 'c'], [1, 1, 1])
    assert sampler.draw_many(make_rng(7), 200) == sampler.draw_many(make_rng(7), 200)
    assert sampler.draw_many(make_rng(7), 200) != sampler.draw_many(make_rng(8), 200)


def test_draw_many_zero_count():
    assert WeightedSampler(['a'], [1]).draw_many(make_rng(), 0) == []


def test_multiplier_values_weighted_towards_small():
    sampler = multiplier_value_sampler([2, 10, 100], weight_power=1.0)
    assert sampler.probability(2) > sampler.probability(10) > sampler.probability(100)
    assert sampler.probability(2) / sampler.probability(10) == pytest.approx(5.0)


def test_multiplier_min_value_filter():
    sampler = multiplier_value_sampler([2, 5, 10], weight_power=1.0, min_value=5)
    assert sampler.items == [5, 10]
    fallback = multiplier_value_sampler([2, 5, 10], weight_power=1.0, min_value=50)
    assert fallback.items == [10]


def test_symbol_sampler_scatter_factor():
    engine = get_engine('sweet-bonanza-1000')
    normal = symbol_sampler(engine.config)
    boosted = symbol_sampler(engine.config, scatter_weight_factor=2.0)
    assert boosted.probability('scatter') > normal.probability('scatter')
    assert normal.probability('scatter') == pytest.approx(1 / 49)


def test_sample_cells_fills_only_given_positions():
    grid = [None] * 6
    sample_cells(WeightedSampler(['a'], [1]), [1, 4], grid, make_rng(3))
    assert grid == [None, 'a', None, None, 'a', None]
