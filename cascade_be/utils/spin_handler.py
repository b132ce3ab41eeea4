"""
HTTP-facing spin handling.

Turns a validated spin request into an engine call and maps the ``SpinResult`` onto the
response DTO (``meta``, ``state``, ``sequence``, ``totals``, ``events``). Engine
configuration errors are translated into ``BadRequestException`` here so the routes stay thin.
"""

import logging
import math
import string
import time

from ..error_codes import ErrorCodes
from ..exceptions import BadRequestException
from .engine import UnsupportedGameError, get_engine
from .free_spins import awarded_spins
from .sampler import make_rng
from .scaling import get_scaling_state

logger = logging.getLogger(__name__)

SPIN_ID_ALPHABET = string.digits + string.ascii_lowercase

# Event timeline offsets in milliseconds
TUMBLE_WIN_DELAY = 100
TUMBLE_CLEAR_DELAY = 500
TUMBLE_DROP_DELAY = 350
TUMBLE_SETTLE_DELAY = 700
TRIGGER_DELAY = 100
SPIN_END_DELAY = 100


def generate_spin_id(rng=None, now_ms=None):
    """``<epoch ms>-<8 base36 chars>``."""
    rng = rng or make_rng()
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = ''.join(rng.choice(SPIN_ID_ALPHABET) for _ in range(8))
    return f"{now_ms}-{suffix}"


def resolve_scaling(override, base_state=None, rtp_bounds=(75.0, 200.0)):
    """
    Builds the per-request scaling state. The process-wide state is never modified.

    Args:
        override (dict, optional): ``{"targetRtp", "volatility"}`` from the request.
        base_state (ScalingState, optional): State the overrides apply to; defaults to the process-wide one.
        rtp_bounds (tuple): Clamp applied to an accepted ``targetRtp``.
    """
    state = base_state or get_scaling_state()
    if not override:
        return state
    return state.with_overrides(target_rtp=override.get('targetRtp'),
                                volatility=override.get('volatility'),
                                rtp_bounds=rtp_bounds)


def _money(value):
    return round(value, 2)


def _multiplier_cells(cells):
    out = []
    for cell in cells:
        if cell is None:
            out.append(None)
        elif isinstance(cell, dict):
            out.append(dict(cell))
        else:
            out.append({'value': cell})
    return out


def _wins_to_dto(wins):
    return [
        {'symbolId': win.symbol_id, 'count': win.count, 'positions': list(win.positions), 'payout': win.payout}
        for win in wins
    ]


def build_events(result):
    """Presentation timeline for a spin: offsets in ms from the start of the spin."""
    t = 0
    events = [{'type': 'spin_start', 'at': t}]
    for index, step in enumerate(result.steps):
        t += TUMBLE_WIN_DELAY
        events.append({'type': 'tumble_win', 'at': t, 'stepIndex': index,
                       'wins': _wins_to_dto(step.wins), 'payout': step.payout})
        t += TUMBLE_CLEAR_DELAY
        events.append({'type': 'tumble_clear', 'at': t, 'stepIndex': index})
        t += TUMBLE_DROP_DELAY
        events.append({'type': 'tumble_drop', 'at': t, 'stepIndex': index,
                       'newPositions': list(step.new_positions)})
        t += TUMBLE_SETTLE_DELAY
    if result.triggers_bonus:
        t += TRIGGER_DELAY
        events.append({'type': 'free_spins_trigger', 'at': t, 'scatterCount': result.scatter_count})
    t += SPIN_END_DELAY
    events.append({'type': 'spin_end', 'at': t})
    return events


def spin_result_to_dto(engine, result, bet, mode, scaling, spin_id, buy=None):
    """Maps an engine ``SpinResult`` onto the response DTO. Amounts in ``totals`` except
    ``totalWinAmount`` are multiples of the bet."""
    retrigger = result.is_free_spins
    free_spins_awarded = awarded_spins(engine.config, result.scatter_count, retrigger=retrigger) \
        if result.triggers_bonus else 0
    meta = {
        'spinId': spin_id,
        'gameId': engine.game_id,
        'bet': bet,
        'mode': dict(mode, betMode=result.bet_mode),
        'rtp': scaling.target_rtp,
        'volatility': scaling.volatility,
        'gridSize': {'rows': engine.rows, 'cols': engine.columns},
        'betCost': _money(bet * (engine.buy_features[buy.feature]['cost'] if buy else engine.bet_cost(result.bet_mode))),
    }
    if buy:
        meta['buyAttempts'] = buy.attempts
    return {
        'meta': meta,
        'state': {
            'initialGrid': list(result.initial_grid),
            'initialMultipliers': _multiplier_cells(result.initial_multipliers),
            'finalGrid': list(result.final_grid),
            'finalMultipliers': _multiplier_cells(result.final_multipliers),
        },
        'sequence': {
            'tumbleSteps': [
                {
                    'stepIndex': index,
                    'grid': list(step.grid),
                    'multipliers': _multiplier_cells(step.multipliers),
                    'wins': _wins_to_dto(step.wins),
                    'payout': step.payout,
                    'multiplierTotal': step.multiplier_total,
                    'newPositions': list(step.new_positions),
                }
                for index, step in enumerate(result.steps)
            ],
            'scatter': {
                'count': result.scatter_count,
                'positions': list(result.scatter_positions),
                'payout': result.scatter_payout,
                'triggersBonus': result.triggers_bonus,
                'freeSpinsAwarded': free_spins_awarded,
            },
        },
        'totals': {
            'basePayout': result.base_payout,
            'multiplierSum': result.multiplier_sum,
            'multipliedPayout': result.multiplied_payout,
            'scatterPayout': result.scatter_payout,
            'totalPayoutMultiplier': result.total_payout,
            'totalWinAmount': _money(result.total_payout * bet),
            'capped': result.capped,
        },
        'events': build_events(result),
    }


def load_engine(game_id):
    """Returns the engine for a game id, translating lookup failures into 400 responses."""
    try:
        return get_engine(game_id)
    except UnsupportedGameError as e:
        raise BadRequestException(status_message=str(e), details={'gameId': game_id},
                                  error_code=ErrorCodes.UNSUPPORTED_GAME)
    except ValueError as e:
        logger.warning("Game configuration error for '%s': %s", game_id, e)
        raise BadRequestException(status_message="Game configuration is invalid.",
                                  details={'gameId': game_id, 'error': str(e)},
                                  error_code=ErrorCodes.GAME_CONFIG_ERROR)


def handle_spin(data, default_game_id='sweet-bonanza-1000', rtp_bounds=(75.0, 200.0), base_state=None):
    """
    Runs one spin for a validated request.

    Args:
        data (dict): Request loaded by ``SpinRequestSchema``.
        default_game_id (str): Game used when the request carries no ``gameId``.
        rtp_bounds (tuple): Clamp for ``configOverride.targetRtp``.
        base_state (ScalingState, optional): Scaling the request overrides apply to.

    Returns:
        dict: The response DTO.

    Raises:
        BadRequestException: Unsupported game, invalid bet, unknown bet mode, unavailable buy
                             feature or a broken game configuration. Raised before any sampling.
    """
    game_id = data.get('gameId') or default_game_id
    engine = load_engine(game_id)

    bet = data.get('bet')
    if isinstance(bet, bool) or not isinstance(bet, (int, float)) or not math.isfinite(bet) or bet <= 0:
        raise BadRequestException(status_message="Bet must be a positive, finite number.",
                                  details={'bet': bet}, error_code=ErrorCodes.INVALID_BET)

    mode_in = data.get('mode') or {}
    mode = {
        'isFreeSpins': bool(mode_in.get('isFreeSpins', False)),
        'superFreeSpins': bool(mode_in.get('superFreeSpins', False)),
        'anteBet25x': bool(mode_in.get('anteBet25x', False)),
        'betMode': mode_in.get('betMode'),
        'buyFeature': mode_in.get('buyFeature'),
    }
    try:
        bet_mode = engine.resolve_bet_mode(mode['betMode'], mode['anteBet25x'])
    except ValueError as e:
        raise BadRequestException(status_message=str(e), details={'mode': mode},
                                  error_code=ErrorCodes.INVALID_BET_MODE)

    scaling = resolve_scaling(data.get('configOverride'), base_state, rtp_bounds)
    seed = data.get('seed')
    rng = make_rng(seed) if seed is not None else make_rng()

    buy = None
    if mode['buyFeature']:
        try:
            buy = engine.buy_free_spins(mode['buyFeature'], bet_mode=bet_mode, scaling=scaling, rng=rng)
        except ValueError as e:
            raise BadRequestException(status_message=str(e), details={'mode': mode},
                                      error_code=ErrorCodes.BUY_FEATURE_UNAVAILABLE)
        result = buy.result
    else:
        try:
            result = engine.spin(is_free_spins=mode['isFreeSpins'], super_free_spins=mode['superFreeSpins'],
                                 bet_mode=bet_mode, scaling=scaling, rng=rng)
        except ValueError as e:
            logger.warning("Spin rejected for '%s': %s", game_id, e)
            raise BadRequestException(status_message="Game configuration is invalid.",
                                      details={'gameId': game_id, 'error': str(e)},
                                      error_code=ErrorCodes.GAME_CONFIG_ERROR)

    spin_id = generate_spin_id(rng)
    logger.debug("Spin %s on %s: %d tumbles, %.2fx", spin_id, game_id, result.tumble_count, result.total_payout)
    return spin_result_to_dto(engine, result, bet, mode, scaling, spin_id, buy=buy)
