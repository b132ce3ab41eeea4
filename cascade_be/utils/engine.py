"""
Cascading slot engine.

``SlotEngine`` is one spin skeleton parameterised by the capability set chosen from the
game's JSON definition: a win detector, a multiplier policy and a free-spins policy.
All amounts it returns are multiples of the bet.
"""

import logging
import math
import threading
from typing import Dict, List, NamedTuple, Optional, Tuple

from .free_spins import awarded_spins, build_free_spins_policy, run_free_spins, FreeSpinsSession
from .game_config import GameConfigManager, list_game_ids
from .multipliers import build_multiplier_policy
from .sampler import make_rng, sample_cells, symbol_sampler
from .scaling import ScalingState, get_scaling_state
from .tumble import TumbleStep, resolve_cascade
from .win_detector import PayoutContext, WinDescriptor, build_detector, evaluate_scatter, round_payout

logger = logging.getLogger(__name__)


class UnsupportedGameError(ValueError):
    """Raised when a game id has no configuration."""


class SpinResult(NamedTuple):
    initial_grid: Tuple
    initial_multipliers: Tuple
    final_grid: Tuple
    final_multipliers: Tuple
    steps: Tuple[TumbleStep, ...]
    scatter_count: int
    scatter_positions: Tuple[int, ...]
    scatter_payout: float
    triggers_bonus: bool
    base_payout: float
    multiplier_sum: int
    multiplied_payout: float
    total_payout: float
    capped: bool
    final_hit_counts: Optional[Tuple[int, ...]] = None
    bet_mode: str = 'normal'
    is_free_spins: bool = False

    @property
    def tumble_count(self):
        return len(self.steps)

    @property
    def wins(self) -> List[WinDescriptor]:
        return [win for step in self.steps for win in step.wins]


class BuyResult(NamedTuple):
    result: SpinResult
    attempts: int
    feature: str
    trigger_probability: float


class RoundResult(NamedTuple):
    """A base spin (or bought trigger) plus the free-spins feature it started, if any."""
    base: SpinResult
    free_spins: Optional[FreeSpinsSession]
    total_win: float
    cost: float
    capped: bool
    buy_feature: Optional[str] = None
    buy_attempts: int = 0

    @property
    def base_win(self):
        return self.base.total_payout

    @property
    def bonus_win(self):
        return self.free_spins.total_win if self.free_spins else 0.0


class SlotEngine:
    """
    Spin engine for one game definition.

    Args:
        game_config (dict): A validated configuration from ``load_game_config``.
    """

    def __init__(self, game_config):
        self.config = game_config
        self.game = game_config['game']
        self.game_id = self.game['short_name']
        self.rows = self.game['layout']['rows']
        self.columns = self.game['layout']['columns']
        self.grid_size = self.rows * self.columns
        self.scatter = self.game['scatter']
        self.scatter_id = self.scatter['symbol_id']
        self.bet_modes = self.game['bet_modes']
        self.buy_features = self.game['buy_features']
        payout = self.game['payout']
        self.reference_rtp = payout['reference_rtp']
        self.paytable_scale = payout['paytable_scale']
        self.rounding = payout.get('rounding')
        self.max_win = payout['max_win']

        self.win_detector = build_detector(game_config)
        self.multiplier_policy = build_multiplier_policy(game_config)
        self.free_spins_policy = build_free_spins_policy(game_config)
        self._symbol_samplers = {}

    # --- configuration helpers ---

    def symbol_sampler(self, scatter_weight_factor=1.0):
        sampler = self._symbol_samplers.get(scatter_weight_factor)
        if sampler is None:
            sampler = symbol_sampler(self.config, scatter_weight_factor)
            self._symbol_samplers[scatter_weight_factor] = sampler
        return sampler

    def resolve_bet_mode(self, bet_mode=None, ante_bet=False) -> str:
        """
        Picks the bet mode name for a spin. ``ante_bet`` maps to the first ante mode.

        Raises:
            ValueError: If the named mode does not exist or the game has no ante mode.
        """
        if bet_mode:
            if bet_mode not in self.bet_modes:
                raise ValueError(f"Unknown bet mode '{bet_mode}' for game '{self.game_id}'")
            return bet_mode
        if ante_bet:
            for name in self.bet_modes:
                if name.startswith('ante'):
                    return name
            raise ValueError(f"Game '{self.game_id}' does not offer an ante bet")
        return 'normal'

    def bet_cost(self, bet_mode='normal') -> float:
        return self.bet_modes[bet_mode]['cost']

    def payout_context(self, scaling: ScalingState, bet_mode='normal') -> PayoutContext:
        scale = self.paytable_scale * scaling.rtp_multiplier(self.reference_rtp) * self.bet_modes[bet_mode]['payout_scale']
        min_match = max(1, self.game['min_match'] + scaling.profile.min_match_offset)
        return PayoutContext(scale=scale, rounding=self.rounding, min_match=min_match)

    def _min_multiplier(self, mode, is_free_spins, super_free_spins, min_multiplier):
        candidates = [min_multiplier]
        if is_free_spins:
            candidates.append(mode['min_multiplier_value'])
            if super_free_spins:
                candidates.append(self.buy_features.get('super_free_spins', {}).get('min_multiplier_value'))
        candidates = [c for c in candidates if c]
        return max(candidates) if candidates else None

    # --- spins ---

    def spin(self, is_free_spins=False, super_free_spins=False, ante_bet=False, bet_mode=None,
             scaling: Optional[ScalingState] = None, rng=None, hit_counts=None,
             min_multiplier=None, win_cap=None, meter=0) -> SpinResult:
        """
        Plays one spin: initial grid draw, scatter evaluation and the full tumble sequence.

        Args:
            is_free_spins (bool): Spin is part of a free-spins feature.
            super_free_spins (bool): Spin is part of a super free-spins feature.
            ante_bet (bool): Use the game's first ante mode (ignored when ``bet_mode`` is given).
            bet_mode (str, optional): Explicit bet mode name.
            scaling (ScalingState, optional): Scaling for this spin; defaults to the process-wide state.
            rng (random.Random, optional): Random stream; a fresh one is used when omitted.
            hit_counts (list, optional): Persistent spot counters carried in from a running feature.
            min_multiplier (int, optional): Minimum bomb value.
            win_cap (float, optional): Remaining win allowed for this spin; defaults to the max win.
            meter (int): Running meter of a free-spins feature, used to project the cap.

        Returns:
            SpinResult

        Raises:
            ValueError: For an unknown bet mode or an invalid weight table.
        """
        scaling = scaling or get_scaling_state()
        rng = rng or make_rng()
        mode_name = self.resolve_bet_mode(bet_mode, ante_bet)
        mode = self.bet_modes[mode_name]
        profile = scaling.profile
        context = self.payout_context(scaling, mode_name)
        policy = self.multiplier_policy
        symbols = self.symbol_sampler(1.0 if is_free_spins else mode['scatter_weight_factor'])
        headroom = self.max_win if win_cap is None else win_cap

        grid = [None] * self.grid_size
        multipliers = [None] * self.grid_size
        guaranteed_min = None if is_free_spins else mode['guaranteed_multiplier_min']

        if policy.persistent:
            counts = list(hit_counts) if hit_counts is not None else [0] * self.grid_size
            if is_free_spins and super_free_spins:
                policy.floor(counts)
            sample_cells(symbols, range(self.grid_size), grid, rng)

            def find_wins(g):
                return self.win_detector.find_wins(g, self.columns, context, policy.cluster_multiplier(counts))

            def refill(g, m, positions):
                sample_cells(symbols, positions, g, rng)

            def on_clear(positions):
                policy.record_hits(counts, positions)

            def multiplier_total(m):
                return policy.total(counts)

            def snapshot(m):
                return tuple(policy.snapshot(counts))
        else:
            counts = None
            min_value = self._min_multiplier(mode, is_free_spins, super_free_spins, min_multiplier)
            chance = policy.spawn_chance(is_free_spins, profile)
            policy.place_initial(grid, multipliers, symbols, rng, is_free_spins, profile, min_value)
            if guaranteed_min:
                policy.guarantee(grid, multipliers, rng, guaranteed_min)

            def find_wins(g):
                return self.win_detector.find_wins(g, self.columns, context)

            def refill(g, m, positions):
                policy.fill_cells(g, m, positions, symbols, rng, chance, min_value)

            on_clear = None
            multiplier_total = policy.total
            snapshot = None

        initial_grid = tuple(grid)
        initial_multipliers = tuple(policy.snapshot(counts)) if policy.persistent else tuple(multipliers)

        scatter_count, scatter_positions, scatter_payout = evaluate_scatter(
            grid, self.scatter_id, self.scatter['payouts'], context.scale, self.rounding)
        threshold = self.scatter['retrigger_count'] if is_free_spins else self.scatter['trigger_count']
        triggers_bonus = mode['can_trigger'] and scatter_count >= threshold

        def project(cumulative, m):
            if policy.persistent:
                return cumulative + scatter_payout
            total = policy.total(m) + meter
            return cumulative * (total if total > 0 else 1) + scatter_payout

        steps = resolve_cascade(grid, multipliers, self.columns, find_wins, refill, multiplier_total,
                                on_clear=on_clear, headroom=headroom, project=project, snapshot=snapshot)

        base_payout = round_payout(sum(step.payout for step in steps), self.rounding)
        if policy.persistent:
            multiplier_sum = policy.total(counts)
            multiplied_payout = base_payout
        else:
            multiplier_sum = policy.total(multipliers)
            multiplied_payout = base_payout
            if base_payout > 0 and multiplier_sum > 0:
                multiplied_payout = round_payout(base_payout * multiplier_sum, self.rounding)

        total_payout = multiplied_payout + scatter_payout
        capped = False
        if total_payout >= headroom:
            total_payout = max(0.0, headroom)
            capped = True

        if steps:
            logger.debug("%s spin: %d tumbles, base %.4f x%d, total %.4f", self.game_id, len(steps),
                         base_payout, multiplier_sum, total_payout)

        return SpinResult(
            initial_grid=initial_grid,
            initial_multipliers=initial_multipliers,
            final_grid=tuple(grid),
            final_multipliers=tuple(policy.snapshot(counts)) if policy.persistent else tuple(multipliers),
            steps=tuple(steps),
            scatter_count=scatter_count,
            scatter_positions=tuple(scatter_positions),
            scatter_payout=scatter_payout,
            triggers_bonus=triggers_bonus,
            base_payout=base_payout,
            multiplier_sum=multiplier_sum,
            multiplied_payout=multiplied_payout,
            total_payout=total_payout,
            capped=capped,
            final_hit_counts=tuple(counts) if counts is not None else None,
            bet_mode=mode_name,
            is_free_spins=is_free_spins,
        )

    def calculate_wins(self, grid, scaling: Optional[ScalingState] = None, bet_mode='normal', hit_counts=None):
        """
        Evaluates a single grid without tumbling.

        Returns:
            dict: ``wins``, ``scatter_count``, ``scatter_positions`` and ``scatter_payout``.
        """
        if len(grid) != self.grid_size:
            raise ValueError(f"Grid for '{self.game_id}' must have {self.grid_size} cells, got {len(grid)}")
        context = self.payout_context(scaling or get_scaling_state(), bet_mode)
        cell_multipliers = None
        if self.multiplier_policy.persistent and hit_counts is not None:
            cell_multipliers = self.multiplier_policy.cluster_multiplier(list(hit_counts))
        wins = self.win_detector.find_wins(list(grid), self.columns, context, cell_multipliers)
        scatter_count, scatter_positions, scatter_payout = evaluate_scatter(
            grid, self.scatter_id, self.scatter['payouts'], context.scale, self.rounding)
        return {
            'wins': wins,
            'scatter_count': scatter_count,
            'scatter_positions': scatter_positions,
            'scatter_payout': scatter_payout,
        }

    # --- buy feature ---

    def cell_layouts(self, is_free_spins=False, scaling: Optional[ScalingState] = None):
        profile = (scaling or get_scaling_state()).profile
        return self.multiplier_policy.cell_layouts(self.grid_size, is_free_spins, profile)

    def scatter_count_distribution(self, bet_mode='normal', is_free_spins=False,
                                   scaling: Optional[ScalingState] = None) -> List[float]:
        """P(k scatters) for k = 0..grid size on a freshly drawn grid. Cells holding a bomb cannot hold a scatter."""
        factor = 1.0 if is_free_spins else self.bet_modes[bet_mode]['scatter_weight_factor']
        share = self.symbol_sampler(factor).probability(self.scatter_id)
        pmf = [0.0] * (self.grid_size + 1)
        for weight, cells, symbol_probability in self.cell_layouts(is_free_spins, scaling):
            p = share * symbol_probability
            for k in range(cells + 1):
                pmf[k] += weight * math.comb(cells, k) * p ** k * (1 - p) ** (cells - k)
        return pmf

    def trigger_probability(self, bet_mode='normal', scaling: Optional[ScalingState] = None) -> float:
        """Natural probability that a base spin lands at least the trigger count of scatters."""
        if not self.bet_modes[bet_mode]['can_trigger']:
            return 0.0
        pmf = self.scatter_count_distribution(bet_mode, scaling=scaling)
        return sum(pmf[self.scatter['trigger_count']:])

    def buy_free_spins(self, feature='free_spins', bet_mode=None, scaling=None, rng=None) -> BuyResult:
        """
        Draws full base spins until one triggers the feature (rejection sampling).

        Raises:
            ValueError: If the feature is not offered, or the bet mode can never trigger it.
        """
        if feature not in self.buy_features:
            raise ValueError(f"Game '{self.game_id}' does not offer buy feature '{feature}'")
        mode_name = self.resolve_bet_mode(bet_mode)
        scaling = scaling or get_scaling_state()
        probability = self.trigger_probability(mode_name, scaling)
        if probability <= 0:
            raise ValueError(f"Bet mode '{mode_name}' of '{self.game_id}' cannot trigger free spins")
        rng = rng or make_rng()
        attempts = 0
        while True:
            attempts += 1
            result = self.spin(bet_mode=mode_name, scaling=scaling, rng=rng)
            if result.triggers_bonus:
                logger.debug("Buy '%s' on %s triggered after %d draws (p=%.6f)",
                             feature, self.game_id, attempts, probability)
                return BuyResult(result, attempts, feature, probability)

    # --- full rounds ---

    def play_round(self, bet_mode=None, ante_bet=False, buy_feature=None, scaling=None, rng=None) -> RoundResult:
        """Plays a base spin (or bought trigger) and the free-spins feature it starts, under one cap."""
        scaling = scaling or get_scaling_state()
        rng = rng or make_rng()
        mode_name = self.resolve_bet_mode(bet_mode, ante_bet)
        attempts = 0
        if buy_feature:
            bought = self.buy_free_spins(buy_feature, bet_mode=mode_name, scaling=scaling, rng=rng)
            base = bought.result
            attempts = bought.attempts
            cost = self.buy_features[buy_feature]['cost']
        else:
            base = self.spin(bet_mode=mode_name, scaling=scaling, rng=rng)
            cost = self.bet_cost(mode_name)

        total_win = base.total_payout
        session = None
        if base.triggers_bonus and not base.capped:
            super_fs = buy_feature == 'super_free_spins'
            min_multiplier = self.buy_features.get(buy_feature, {}).get('min_multiplier_value') if super_fs else None
            session = run_free_spins(self, awarded_spins(self.config, base.scatter_count),
                                     super_free_spins=super_fs, bet_mode=mode_name, scaling=scaling,
                                     rng=rng, already_won=total_win, min_multiplier=min_multiplier)
            total_win += session.total_win
        capped = base.capped or bool(session and session.capped)
        return RoundResult(base=base, free_spins=session, total_win=min(total_win, self.max_win), cost=cost,
                           capped=capped, buy_feature=buy_feature, buy_attempts=attempts)

    # --- presentation ---

    def get_paytable(self, scaling: Optional[ScalingState] = None, bet_mode='normal') -> List[Dict]:
        """Scaled payouts per symbol, tiers sorted by count descending. The scatter is listed last."""
        context = self.payout_context(scaling or get_scaling_state(), bet_mode)
        table = []
        for sym in self.game['symbols']:
            is_scatter = sym['id'] == self.scatter_id
            tiers = self.scatter['payouts'] if is_scatter else sym['payouts']
            table.append({
                'symbolId': sym['id'],
                'name': sym.get('name', sym['id']),
                'icon': sym.get('icon'),
                'isScatter': is_scatter,
                'payouts': [
                    {'count': count, 'payout': context.apply(tiers[count])}
                    for count in sorted(tiers, reverse=True)
                ],
            })
        table.sort(key=lambda entry: entry['isScatter'])
        return table

    def describe(self) -> Dict:
        return {
            'gameId': self.game_id,
            'name': self.game['name'],
            'gridSize': {'rows': self.rows, 'cols': self.columns},
            'winRule': self.game['win_rule'],
            'minMatch': self.game['min_match'],
            'multiplierMode': self.multiplier_policy.mode,
            'freeSpinsMode': self.free_spins_policy.mode,
            'maxWin': self.max_win,
            'betModes': {name: {'cost': mode['cost'], 'canTrigger': mode['can_trigger']}
                         for name, mode in self.bet_modes.items()},
            'buyFeatures': {name: {'cost': feature['cost']} for name, feature in self.buy_features.items()},
        }


_engines: Dict[str, SlotEngine] = {}
_engines_lock = threading.Lock()


def get_engine(game_id: str) -> SlotEngine:
    """
    Returns the shared engine for a game id.

    Raises:
        UnsupportedGameError: If the game id is unknown.
        ValueError: If the game configuration is invalid.
    """
    with _engines_lock:
        engine = _engines.get(game_id)
        if engine is None:
            if game_id not in list_game_ids():
                raise UnsupportedGameError(f"Unsupported game '{game_id}'")
            config = GameConfigManager.get_game_config(game_id)
            engine = SlotEngine(config)
            _engines[game_id] = engine
        return engine
