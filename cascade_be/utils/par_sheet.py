"""
PAR sheet generation.

For count-anywhere games the single-grid symbol statistics are exact: each symbol's count
on a fresh grid is binomial in the grid size with the symbol's weight share. Cluster games
have no closed form for cluster sizes, so only the scatter side is analytic there. Both
kinds get a Monte Carlo estimate of the first-evaluation hit frequency.
"""

import logging
import math
from typing import Dict, List, Optional

import numpy as np

from .free_spins import awarded_spins
from .sampler import make_rng
from .scaling import ScalingState, get_scaling_state
from .win_detector import evaluate_scatter

logger = logging.getLogger(__name__)

CONFIDENCE_SPIN_COUNTS = (100, 500, 1000, 5000, 10000, 50000, 100000)
CONFIDENCE_LEVELS = {'90': 1.645, '95': 1.96, '99': 2.576}


def binomial_pmf(n: int, k: int, p: float) -> float:
    if k < 0 or k > n:
        return 0.0
    return math.comb(n, k) * (p ** k) * ((1 - p) ** (n - k))


def binomial_range(n: int, low: int, high: int, p: float) -> float:
    """P(low <= X <= high) for X ~ Binomial(n, p)."""
    return sum(binomial_pmf(n, k, p) for k in range(max(0, low), min(n, high) + 1))


def tier_ranges(keys, min_count: int, grid_size: int):
    """Count ranges paid by each tier key: [max(key, min_count), next_key - 1], the last up to grid_size."""
    ordered = sorted(keys)
    ranges = []
    for i, key in enumerate(ordered):
        low = max(key, min_count)
        high = ordered[i + 1] - 1 if i + 1 < len(ordered) else grid_size
        if low <= high:
            ranges.append((key, low, high))
    return ranges


def _count_probability(layouts, p, low, high):
    """P(low <= count <= high) for a symbol of weight share ``p`` over the grid's cell layouts."""
    return sum(weight * binomial_range(cells, low, high, p * symbol_probability)
               for weight, cells, symbol_probability in layouts)


def _symbol_analysis(engine, context, scaling):
    sampler = engine.symbol_sampler(1.0)
    layouts = engine.cell_layouts(False, scaling)
    n = engine.grid_size
    symbols = []
    total_ev = 0.0
    total_variance = 0.0
    for sym in engine.game['symbols']:
        if sym['id'] == engine.scatter_id:
            continue
        p = sampler.probability(sym['id'])
        tiers = []
        ev = 0.0
        second_moment = 0.0
        hit = 0.0
        for key, low, high in tier_ranges(sym['payouts'], context.min_match, n):
            probability = _count_probability(layouts, p, low, high)
            payout = context.apply(sym['payouts'][key])
            ev += probability * payout
            second_moment += probability * payout ** 2
            hit += probability
            tiers.append({'tier': key, 'minCount': low, 'maxCount': high,
                          'probability': probability, 'payout': payout})
        variance = second_moment - ev ** 2
        total_ev += ev
        total_variance += variance
        symbols.append({'symbolId': sym['id'], 'name': sym.get('name', sym['id']), 'probability': p,
                        'tiers': tiers, 'expectedValue': ev, 'variance': variance, 'hitProbability': hit})
    return symbols, total_ev, total_variance


def _scatter_analysis(engine, context, scaling):
    share = engine.symbol_sampler(1.0).probability(engine.scatter_id)
    pmf = engine.scatter_count_distribution(scaling=scaling)
    n = engine.grid_size
    scatter = engine.scatter
    tiers = []
    ev = 0.0
    second_moment = 0.0
    for key, low, high in tier_ranges(scatter['payouts'], 1, n):
        probability = sum(pmf[low:high + 1])
        payout = context.apply(scatter['payouts'][key])
        ev += probability * payout
        second_moment += probability * payout ** 2
        tiers.append({'tier': key, 'minCount': low, 'maxCount': high,
                      'probability': probability, 'payout': payout})
    trigger_probability = engine.trigger_probability(scaling=scaling)
    return {
        'symbolId': engine.scatter_id,
        'probability': share,
        'tiers': tiers,
        'expectedValue': ev,
        'variance': second_moment - ev ** 2,
        'triggerCount': scatter['trigger_count'],
        'triggerProbability': trigger_probability,
        'spinsPerTrigger': (1.0 / trigger_probability) if trigger_probability > 0 else None,
    }


def expected_free_spins(engine, scaling: Optional[ScalingState] = None) -> Dict:
    """
    Expected feature length with retriggers.

    Each free spin retriggers with probability q for r extra spins, so the expected length
    solves E = base + E * q * r, i.e. E = base / (1 - q * r) while q * r < 1. Scatter counts
    come from the free-spins grid, where bombs occupy cells.
    """
    n = engine.grid_size
    scatter = engine.scatter
    pmf = engine.scatter_count_distribution(is_free_spins=True, scaling=scaling)
    base = awarded_spins(engine.config, scatter['trigger_count'])
    retrigger_probability = sum(pmf[scatter['retrigger_count']:])
    retrigger_spins = sum(
        pmf[k] * awarded_spins(engine.config, k, retrigger=True)
        for k in range(scatter['retrigger_count'], n + 1)
    )
    expected = base / (1 - retrigger_spins) if retrigger_spins < 1 else None
    return {
        'baseSpins': base,
        'retriggerProbability': retrigger_probability,
        'expectedExtraSpinsPerSpin': retrigger_spins,
        'expectedSpins': expected,
    }


def monte_carlo_hit_frequency(engine, context, iterations: int, rng=None) -> Dict:
    """Samples fresh grids and evaluates them once (no tumbles, no multipliers)."""
    rng = rng or make_rng()
    sampler = engine.symbol_sampler(1.0)
    payouts = np.zeros(iterations)
    hits = 0
    for i in range(iterations):
        grid = sampler.draw_many(rng, engine.grid_size)
        wins = engine.win_detector.find_wins(grid, engine.columns, context)
        _, _, scatter_payout = evaluate_scatter(grid, engine.scatter_id, engine.scatter['payouts'],
                                                context.scale, context.rounding)
        payout = sum(w.payout for w in wins) + scatter_payout
        payouts[i] = payout
        if payout > 0:
            hits += 1
    return {
        'iterations': iterations,
        'hitFrequency': hits / iterations if iterations else 0.0,
        'meanPayout': float(np.mean(payouts)) if iterations else 0.0,
        'stdPayout': float(np.std(payouts)) if iterations else 0.0,
    }


def confidence_intervals(rtp: float, std: float, spin_counts=CONFIDENCE_SPIN_COUNTS) -> List[Dict]:
    """RTP intervals (in percent) for a per-spin payout standard deviation ``std`` (bet multiples)."""
    rows = []
    for spins in spin_counts:
        half_width = std / math.sqrt(spins) * 100
        rows.append({
            'spins': spins,
            'intervals': {
                level: [rtp - z * half_width, rtp + z * half_width]
                for level, z in CONFIDENCE_LEVELS.items()
            },
        })
    return rows


def build_par_sheet(engine, scaling: Optional[ScalingState] = None, iterations: int = 20000, seed=None) -> Dict:
    """
    Builds the PAR sheet for a game.

    Args:
        engine (SlotEngine): Game to analyse.
        scaling (ScalingState, optional): Scaling to report under; defaults to the process-wide state.
        iterations (int): Monte Carlo grids for the hit frequency estimate.
        seed (optional): Seed for the Monte Carlo stream.

    Returns:
        dict: Sheet with ``game``, ``scaling``, ``scatter``, ``freeSpins``, ``monteCarlo`` and, for
        count-anywhere games, ``symbols`` and single-grid ``summary`` statistics.
    """
    scaling = scaling or get_scaling_state()
    context = engine.payout_context(scaling)
    sheet = {
        'game': engine.describe(),
        'scaling': {'targetRtp': scaling.target_rtp, 'volatility': scaling.volatility,
                    'rtpMultiplier': scaling.rtp_multiplier(engine.reference_rtp),
                    'effectiveMinMatch': context.min_match},
        'scatter': _scatter_analysis(engine, context, scaling),
        'freeSpins': expected_free_spins(engine, scaling),
    }
    monte_carlo = monte_carlo_hit_frequency(engine, context, iterations, make_rng(seed))
    sheet['monteCarlo'] = monte_carlo

    if engine.game['win_rule'] == 'count_anywhere':
        symbols, symbol_ev, symbol_variance = _symbol_analysis(engine, context, scaling)
        ev = symbol_ev + sheet['scatter']['expectedValue']
        variance = symbol_variance + sheet['scatter']['variance']
        std = math.sqrt(max(variance, 0.0))
        sheet['symbols'] = symbols
        sheet['summary'] = {
            'expectedValue': ev,
            'variance': variance,
            'standardDeviation': std,
            'volatilityIndex': 1.96 * std,
            'singleGridRtp': ev * 100,
        }
        sheet['confidenceIntervals'] = confidence_intervals(ev * 100, std)
    else:
        sheet['confidenceIntervals'] = confidence_intervals(monte_carlo['meanPayout'] * 100,
                                                            monte_carlo['stdPayout'])
    logger.debug("PAR sheet built for %s with %d Monte Carlo grids", engine.game_id, iterations)
    return sheet


def format_par_sheet(sheet: Dict) -> str:
    game = sheet['game']
    scaling = sheet['scaling']
    lines = [
        f"PAR SHEET - {game['name']} ({game['gameId']})",
        f"Grid {game['gridSize']['rows']}x{game['gridSize']['cols']}, {game['winRule']}, "
        f"min match {scaling['effectiveMinMatch']}, max win {game['maxWin']}x",
        f"Target RTP {scaling['targetRtp']:.2f}% (x{scaling['rtpMultiplier']:.4f}), volatility {scaling['volatility']}",
        "",
    ]
    for sym in sheet.get('symbols', []):
        lines.append(f"{sym['name']:<14} p={sym['probability']:.4f} EV={sym['expectedValue']:.6f}")
        for tier in sym['tiers']:
            lines.append(f"    {tier['minCount']:>2}-{tier['maxCount']:<2} P={tier['probability']:.6e} pays {tier['payout']:g}")
    scatter = sheet['scatter']
    lines.append(f"Scatter p={scatter['probability']:.4f} trigger({scatter['triggerCount']}+) "
                 f"P={scatter['triggerProbability']:.6e} 1 in {scatter['spinsPerTrigger'] or float('inf'):.1f}")
    fs = sheet['freeSpins']
    expected = f"{fs['expectedSpins']:.2f}" if fs['expectedSpins'] is not None else "unbounded"
    lines.append(f"Free spins: {fs['baseSpins']} base, retrigger P={fs['retriggerProbability']:.6e}, expected length {expected}")
    mc = sheet['monteCarlo']
    lines.append(f"Monte Carlo hit frequency: {mc['hitFrequency'] * 100:.2f}% over {mc['iterations']} grids")
    if 'summary' in sheet:
        summary = sheet['summary']
        lines.append(f"Single grid EV {summary['expectedValue']:.6f}, sigma {summary['standardDeviation']:.4f}, "
                     f"volatility index {summary['volatilityIndex']:.4f}")
    lines.append("")
    lines.append("Confidence intervals (RTP %):")
    for row in sheet['confidenceIntervals']:
        parts = ", ".join(f"{level}%: {lo:.2f}..{hi:.2f}" for level, (lo, hi) in row['intervals'].items())
        lines.append(f"  {row['spins']:>6} spins  {parts}")
    return "\n".join(lines)
