"""
Free-spins state machine.

A feature moves through Inactive -> Triggered -> Running -> Ended. ``run_free_spins``
plays a triggered feature to the end on a ``SlotEngine``; the variant-specific parts
(how a spin's win is multiplied and what carries between spins) live in the policy
classes below.
"""

import logging
from typing import List, Optional

from .win_detector import tier_value, round_payout

logger = logging.getLogger(__name__)


class FreeSpinsSession:
    """Mutable state of one free-spins feature."""

    def __init__(self, spins, bet_mode='normal', super_free_spins=False, min_multiplier=None):
        self.remaining = spins
        self.total_spins = spins
        self.spins_played = 0
        self.total_win = 0.0
        self.meter = 0
        self.hit_counts: Optional[List[int]] = None
        self.bet_mode = bet_mode
        self.super_free_spins = super_free_spins
        self.min_multiplier = min_multiplier
        self.retriggers = 0
        self.capped = False
        self.spin_results = []
        self.spin_wins = []

    @property
    def active(self):
        return self.remaining > 0

    def award(self, spins):
        """Adds retriggered spins to both the remaining and the total count."""
        self.remaining += spins
        self.total_spins += spins
        self.retriggers += 1

    def to_dict(self):
        return {
            'totalSpins': self.total_spins,
            'spinsPlayed': self.spins_played,
            'retriggers': self.retriggers,
            'totalWin': self.total_win,
            'meter': self.meter,
            'capped': self.capped,
            'superFreeSpins': self.super_free_spins,
        }


class SequenceFreeSpins:
    """Each spin pays its own bomb-multiplied win."""

    mode = 'sequence'

    def start(self, session, engine):
        pass

    def before_spin(self, session, engine):
        pass

    def spin_kwargs(self, session):
        return {}

    def settle(self, session, result, engine):
        return result.total_payout

    def finish(self, session, engine):
        pass


class MeterFreeSpins(SequenceFreeSpins):
    """Multipliers landing on a winning spin accumulate into a meter that multiplies that win."""

    mode = 'meter'

    def spin_kwargs(self, session):
        return {'meter': session.meter}

    def settle(self, session, result, engine):
        win = result.base_payout
        if result.base_payout > 0 and result.multiplier_sum > 0:
            session.meter += result.multiplier_sum
            win = result.base_payout * session.meter
        return round_payout(win, engine.rounding) + result.scatter_payout


class PersistentFreeSpins(SequenceFreeSpins):
    """Spot hit counters carry over between spins and reset when the feature ends."""

    mode = 'persistent'

    def start(self, session, engine):
        session.hit_counts = [0] * engine.grid_size

    def before_spin(self, session, engine):
        if session.super_free_spins:
            engine.multiplier_policy.floor(session.hit_counts)

    def spin_kwargs(self, session):
        return {'hit_counts': session.hit_counts}

    def settle(self, session, result, engine):
        session.hit_counts = list(result.final_hit_counts)
        return result.total_payout

    def finish(self, session, engine):
        session.hit_counts = [0] * engine.grid_size


FREE_SPINS_POLICIES = {
    'sequence': SequenceFreeSpins,
    'meter': MeterFreeSpins,
    'persistent': PersistentFreeSpins,
}


def build_free_spins_policy(game_config):
    return FREE_SPINS_POLICIES[game_config['game']['free_spins']['mode']]()


def awarded_spins(game_config, scatter_count, retrigger=False) -> int:
    """Spins awarded for a scatter count; 0 below the trigger (or retrigger) count."""
    scatter = game_config['game']['scatter']
    if retrigger:
        if scatter_count < scatter['retrigger_count']:
            return 0
        return int(tier_value(scatter['retrigger_awards'], scatter_count))
    if scatter_count < scatter['trigger_count']:
        return 0
    return int(tier_value(scatter['free_spin_awards'], scatter_count))


def run_free_spins(engine, spins, super_free_spins=False, bet_mode=None, scaling=None, rng=None,
                   already_won=0.0, min_multiplier=None) -> FreeSpinsSession:
    """
    Plays a free-spins feature until no spins remain or the round reaches the max-win cap.

    Args:
        engine (SlotEngine): The game engine to spin on.
        spins (int): Spins awarded by the trigger.
        super_free_spins (bool): Play the super tier of the feature.
        bet_mode (str, optional): Bet mode of the triggering round; its payout scale applies here too.
        scaling (ScalingState, optional): Scaling for every spin in the feature.
        rng (random.Random, optional): Random stream shared by every spin.
        already_won (float): Win of the triggering base spin, counted against the cap.
        min_multiplier (int, optional): Minimum bomb value for bought super features.

    Returns:
        FreeSpinsSession: The ended session; ``total_win`` excludes ``already_won``.
    """
    policy = engine.free_spins_policy
    cap = engine.max_win
    session = FreeSpinsSession(spins, bet_mode=bet_mode or 'normal',
                               super_free_spins=super_free_spins, min_multiplier=min_multiplier)
    policy.start(session, engine)
    logger.debug("Free spins started on %s: %d spins (super=%s)", engine.game_id, spins, super_free_spins)

    while session.active:
        session.remaining -= 1
        session.spins_played += 1
        policy.before_spin(session, engine)
        headroom = cap - (already_won + session.total_win)
        result = engine.spin(is_free_spins=True, super_free_spins=super_free_spins, bet_mode=bet_mode,
                             scaling=scaling, rng=rng, win_cap=headroom, min_multiplier=min_multiplier,
                             **policy.spin_kwargs(session))
        spin_win = policy.settle(session, result, engine)

        extra = awarded_spins(engine.config, result.scatter_count, retrigger=True)
        if extra:
            session.award(extra)
            logger.debug("Retrigger on spin %d: +%d spins", session.spins_played, extra)

        session.total_win += spin_win
        session.spin_results.append(result)
        session.spin_wins.append(spin_win)

        if already_won + session.total_win >= cap:
            session.total_win = cap - already_won
            session.remaining = 0
            session.capped = True
            logger.debug("Free spins on %s ended at the max-win cap", engine.game_id)

    policy.finish(session, engine)
    return session
