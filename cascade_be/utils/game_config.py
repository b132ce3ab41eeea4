"""
Game definition loading and validation.

Each cascading game ships a ``gameConfig.json`` under ``cascade_be/public/games/<game_id>/``.
The file holds the static paytable model (symbols, weights, payout tiers, scatter
rules, multiplier tables, bet modes and buy features). Configurations are validated
once on load and cached per process.
"""

import json
import logging
import os
import threading
from typing import Dict, Any, List, Optional

logger = logging.getLogger(__name__)

GAMES_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'public', 'games'))

WIN_RULES = ('count_anywhere', 'cluster')
MULTIPLIER_MODES = ('ephemeral', 'persistent')
FREE_SPINS_MODES = ('sequence', 'meter', 'persistent')
INITIAL_PLACEMENTS = ('count_range', 'per_cell')


def list_game_ids(games_dir: Optional[str] = None) -> List[str]:
    """Returns the ids of every game directory that carries a gameConfig.json."""
    base_dir = games_dir or GAMES_DIR
    if not os.path.isdir(base_dir):
        return []
    return sorted(
        name for name in os.listdir(base_dir)
        if os.path.isfile(os.path.join(base_dir, name, 'gameConfig.json'))
    )


def load_game_config(game_id: str, games_dir: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads the game configuration JSON file for a given game and validates its structure.

    Args:
        game_id (str): The short name of the game, used to find its configuration directory.
        games_dir (str, optional): Override for the directory holding the game folders.

    Returns:
        dict: The validated configuration with tier keys converted to integers.

    Raises:
        FileNotFoundError: If no configuration exists for the game.
        ValueError: If the JSON is malformed or the configuration is invalid
                    (as per `_validate_game_config`).
    """
    base_dir = games_dir or GAMES_DIR
    file_path = os.path.join(base_dir, game_id, 'gameConfig.json')
    if not os.path.isfile(file_path):
        raise FileNotFoundError(f"Configuration file not found for game '{game_id}' at {file_path}")

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in configuration file for game '{game_id}': {e}") from e

    _validate_game_config(config, game_id)
    logger.debug("Loaded game config for '%s' from %s", game_id, file_path)
    return _normalize_game_config(config)


def _tier_table(raw, game_id, where):
    if not isinstance(raw, dict):
        raise ValueError(f"Config validation error for game '{game_id}': {where} must be a dictionary.")
    table = {}
    for key, value in raw.items():
        try:
            count = int(key)
        except (TypeError, ValueError):
            raise ValueError(f"Config validation error for game '{game_id}': {where} key '{key}' must be an integer count.")
        if count <= 0:
            raise ValueError(f"Config validation error for game '{game_id}': {where} key '{key}' must be positive.")
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
            raise ValueError(f"Config validation error for game '{game_id}': {where}[{key}] must be a non-negative number.")
        table[count] = value
    return table


def _validate_game_config(config, game_id):
    """
    Validates the structure and essential content of a game configuration object.

    Args:
        config (dict): The game configuration object (typically loaded from JSON).
        game_id (str): The game's short name, used for clear error messaging.

    Raises:
        ValueError: If any validation check fails.
    """
    if not isinstance(config, dict):
        raise ValueError(f"Config validation error for game '{game_id}': Root must be a dictionary.")
    game = config.get('game')
    if not isinstance(game, dict):
        raise ValueError(f"Config validation error for game '{game_id}': 'game' key must be a dictionary.")

    for key in ('name', 'short_name'):
        value = game.get(key)
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"Config validation error for game '{game_id}': game.{key} must be a non-empty str.")

    layout = game.get('layout')
    if not isinstance(layout, dict):
        raise ValueError(f"Config validation error for game '{game_id}': game.layout must be a dictionary.")
    for key in ('rows', 'columns'):
        value = layout.get(key)
        if not isinstance(value, int) or value <= 0:
            raise ValueError(f"Config validation error for game '{game_id}': game.layout.{key} must be a positive integer.")
    grid_size = layout['rows'] * layout['columns']

    if game.get('win_rule') not in WIN_RULES:
        raise ValueError(f"Config validation error for game '{game_id}': game.win_rule must be one of {WIN_RULES}.")
    min_match = game.get('min_match')
    if not isinstance(min_match, int) or not (1 <= min_match <= grid_size):
        raise ValueError(f"Config validation error for game '{game_id}': game.min_match must be an integer in [1, {grid_size}].")

    symbols = game.get('symbols')
    if not isinstance(symbols, list) or not symbols:
        raise ValueError(f"Config validation error for game '{game_id}': game.symbols must be a non-empty list.")
    seen_ids = set()
    total_weight = 0.0
    for i, sym in enumerate(symbols):
        if not isinstance(sym, dict):
            raise ValueError(f"Config validation error for game '{game_id}': game.symbols[{i}] must be a dictionary.")
        sym_id = sym.get('id')
        if not isinstance(sym_id, str) or not sym_id.strip():
            raise ValueError(f"Config validation error for game '{game_id}': game.symbols[{i}].id must be a non-empty str.")
        if sym_id in seen_ids:
            raise ValueError(f"Config validation error for game '{game_id}': duplicate symbol id '{sym_id}'.")
        seen_ids.add(sym_id)
        weight = sym.get('weight')
        if not isinstance(weight, (int, float)) or isinstance(weight, bool) or weight < 0:
            raise ValueError(f"Config validation error for game '{game_id}': game.symbols[{i}].weight must be a non-negative number.")
        total_weight += weight
        if not sym.get('is_scatter'):
            _tier_table(sym.get('payouts', {}), game_id, f"game.symbols[{i}].payouts")
    if total_weight <= 0:
        raise ValueError(f"Config validation error for game '{game_id}': symbol weights sum to zero.")

    scatter = game.get('scatter')
    if not isinstance(scatter, dict):
        raise ValueError(f"Config validation error for game '{game_id}': game.scatter must be a dictionary.")
    scatter_id = scatter.get('symbol_id')
    scatter_symbols = [s['id'] for s in symbols if s.get('is_scatter')]
    if scatter_id not in seen_ids or scatter_symbols != [scatter_id]:
        raise ValueError(f"Config validation error for game '{game_id}': game.scatter.symbol_id must name the single is_scatter symbol.")
    for key in ('trigger_count', 'retrigger_count'):
        value = scatter.get(key)
        if not isinstance(value, int) or not (1 <= value <= grid_size):
            raise ValueError(f"Config validation error for game '{game_id}': game.scatter.{key} must be an integer in [1, {grid_size}].")
    _tier_table(scatter.get('payouts', {}), game_id, 'game.scatter.payouts')
    if not _tier_table(scatter.get('free_spin_awards'), game_id, 'game.scatter.free_spin_awards'):
        raise ValueError(f"Config validation error for game '{game_id}': game.scatter.free_spin_awards must not be empty.")
    _tier_table(scatter.get('retrigger_awards', {}), game_id, 'game.scatter.retrigger_awards')

    multipliers = game.get('multipliers')
    if not isinstance(multipliers, dict) or multipliers.get('mode') not in MULTIPLIER_MODES:
        raise ValueError(f"Config validation error for game '{game_id}': game.multipliers.mode must be one of {MULTIPLIER_MODES}.")
    if multipliers['mode'] == 'ephemeral':
        values = multipliers.get('values')
        if not isinstance(values, list) or not values or not all(isinstance(v, int) and v > 0 for v in values):
            raise ValueError(f"Config validation error for game '{game_id}': game.multipliers.values must be a non-empty list of positive integers.")
        for key in ('base_chance', 'free_spins_chance'):
            value = multipliers.get(key, 0.0)
            if not isinstance(value, (int, float)) or not (0.0 <= value <= 1.0):
                raise ValueError(f"Config validation error for game '{game_id}': game.multipliers.{key} must be a probability.")
        if multipliers.get('initial_placement', 'per_cell') not in INITIAL_PLACEMENTS:
            raise ValueError(f"Config validation error for game '{game_id}': game.multipliers.initial_placement must be one of {INITIAL_PLACEMENTS}.")
    else:
        for key in ('max_hit_count', 'max_value'):
            value = multipliers.get(key)
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f"Config validation error for game '{game_id}': game.multipliers.{key} must be a positive integer.")

    free_spins = game.get('free_spins')
    if not isinstance(free_spins, dict) or free_spins.get('mode') not in FREE_SPINS_MODES:
        raise ValueError(f"Config validation error for game '{game_id}': game.free_spins.mode must be one of {FREE_SPINS_MODES}.")
    if (free_spins['mode'] == 'persistent') != (multipliers['mode'] == 'persistent'):
        raise ValueError(f"Config validation error for game '{game_id}': persistent free spins require persistent multipliers.")

    payout = game.get('payout')
    if not isinstance(payout, dict):
        raise ValueError(f"Config validation error for game '{game_id}': game.payout must be a dictionary.")
    for key in ('reference_rtp', 'paytable_scale', 'max_win'):
        value = payout.get(key)
        if not isinstance(value, (int, float)) or value <= 0:
            raise ValueError(f"Config validation error for game '{game_id}': game.payout.{key} must be a positive number.")
    rounding = payout.get('rounding')
    if rounding is not None and (not isinstance(rounding, int) or rounding < 0):
        raise ValueError(f"Config validation error for game '{game_id}': game.payout.rounding must be null or a non-negative integer.")

    bet_modes = game.get('bet_modes')
    if not isinstance(bet_modes, dict) or 'normal' not in bet_modes:
        raise ValueError(f"Config validation error for game '{game_id}': game.bet_modes must define 'normal'.")
    for name, mode in bet_modes.items():
        if not isinstance(mode, dict):
            raise ValueError(f"Config validation error for game '{game_id}': game.bet_modes.{name} must be a dictionary.")
        for key in ('cost', 'scatter_weight_factor', 'payout_scale'):
            value = mode.get(key, 1.0)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f"Config validation error for game '{game_id}': game.bet_modes.{name}.{key} must be a positive number.")

    buy_features = game.get('buy_features', {})
    if not isinstance(buy_features, dict):
        raise ValueError(f"Config validation error for game '{game_id}': game.buy_features must be a dictionary.")
    for name, feature in buy_features.items():
        if not isinstance(feature, dict) or not isinstance(feature.get('cost'), (int, float)) or feature['cost'] <= 0:
            raise ValueError(f"Config validation error for game '{game_id}': game.buy_features.{name}.cost must be a positive number.")


def _normalize_game_config(config):
    """Converts JSON string tier keys into integers and fills optional defaults."""
    game = dict(config['game'])
    game['symbols'] = [
        dict(sym, payouts={int(k): v for k, v in sym.get('payouts', {}).items()})
        for sym in game['symbols']
    ]
    scatter = dict(game['scatter'])
    for key in ('payouts', 'free_spin_awards', 'retrigger_awards'):
        scatter[key] = {int(k): v for k, v in scatter.get(key, {}).items()}
    game['scatter'] = scatter
    game['multipliers'] = dict(game['multipliers'])
    game['buy_features'] = dict(game.get('buy_features', {}))
    game['bet_modes'] = {
        name: {
            'cost': mode.get('cost', 1.0),
            'scatter_weight_factor': mode.get('scatter_weight_factor', 1.0),
            'payout_scale': mode.get('payout_scale', 1.0),
            'min_multiplier_value': mode.get('min_multiplier_value'),
            'guaranteed_multiplier_min': mode.get('guaranteed_multiplier_min'),
            'can_trigger': mode.get('can_trigger', True),
        }
        for name, mode in game['bet_modes'].items()
    }
    return {'game': game}


class GameConfigManager:
    """Process-wide cache of validated game configurations."""

    _config_cache: Dict[str, Dict[str, Any]] = {}
    _lock = threading.Lock()

    @classmethod
    def get_game_config(cls, game_id: str) -> Dict[str, Any]:
        """Returns the cached configuration, loading it on first use."""
        with cls._lock:
            config = cls._config_cache.get(game_id)
            if config is None:
                config = load_game_config(game_id)
                cls._config_cache[game_id] = config
            return config

    @classmethod
    def clear_cache(cls):
        with cls._lock:
            cls._config_cache.clear()
