"""
RTP and volatility scaling.

Every payout the engine computes is multiplied by ``target_rtp / reference_rtp`` of the
game being played, and the volatility tier shifts the minimum match, the multiplier spawn
chance and the initial bomb count range. Spins accept an explicit ``ScalingState``; when
none is given they read the process-wide default held here.
"""

import logging
import math
import threading
from contextlib import contextmanager
from typing import NamedTuple, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TARGET_RTP = 96.5
DEFAULT_VOLATILITY = 'medium'


class VolatilityProfile(NamedTuple):
    min_match_offset: int
    multiplier_chance_factor: float
    initial_bomb_range: Tuple[int, int]


VOLATILITY_PROFILES = {
    'low': VolatilityProfile(-2, 0.5, (1, 2)),
    'medium': VolatilityProfile(0, 1.0, (1, 4)),
    'high': VolatilityProfile(1, 1.5, (2, 5)),
    'extreme': VolatilityProfile(2, 2.25, (3, 7)),
}
VOLATILITY_LEVELS = tuple(VOLATILITY_PROFILES)


def is_valid_target_rtp(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def is_valid_volatility(value) -> bool:
    return isinstance(value, str) and value in VOLATILITY_PROFILES


class ScalingState(NamedTuple):
    """Immutable (target_rtp, volatility) pair read by every payout computation."""
    target_rtp: float = DEFAULT_TARGET_RTP
    volatility: str = DEFAULT_VOLATILITY

    @property
    def profile(self) -> VolatilityProfile:
        return VOLATILITY_PROFILES[self.volatility]

    def rtp_multiplier(self, reference_rtp: float) -> float:
        return self.target_rtp / reference_rtp

    def with_overrides(self, target_rtp=None, volatility=None, rtp_bounds=None) -> 'ScalingState':
        """
        Returns a copy with the valid overrides applied. Invalid values are ignored.

        Args:
            target_rtp: New target RTP in percent. Non-numeric or non-positive values are dropped.
            volatility: One of ``VOLATILITY_LEVELS``. Unknown names are dropped.
            rtp_bounds (tuple, optional): (min, max) clamp applied to an accepted target RTP.
        """
        new_rtp = self.target_rtp
        new_volatility = self.volatility
        if target_rtp is not None:
            if is_valid_target_rtp(target_rtp):
                new_rtp = float(target_rtp)
                if rtp_bounds:
                    new_rtp = min(max(new_rtp, rtp_bounds[0]), rtp_bounds[1])
            else:
                logger.info("Ignoring invalid target RTP override: %r", target_rtp)
        if volatility is not None:
            if is_valid_volatility(volatility):
                new_volatility = volatility
            else:
                logger.info("Ignoring invalid volatility override: %r", volatility)
        return ScalingState(new_rtp, new_volatility)


_state = ScalingState()
_state_lock = threading.RLock()


def get_scaling_state() -> ScalingState:
    return _state


def set_scaling_state(state: ScalingState):
    global _state
    if not isinstance(state, ScalingState):
        raise TypeError("state must be a ScalingState")
    _state = state


def get_target_rtp() -> float:
    return _state.target_rtp


def set_target_rtp(value) -> bool:
    """Sets the process-wide target RTP. Returns False and leaves it unchanged if invalid."""
    global _state
    if not is_valid_target_rtp(value):
        logger.info("Ignoring invalid target RTP: %r", value)
        return False
    _state = _state._replace(target_rtp=float(value))
    logger.info("Target RTP set to %s", _state.target_rtp)
    return True


def get_volatility() -> str:
    return _state.volatility


def set_volatility(value) -> bool:
    """Sets the process-wide volatility tier. Returns False and leaves it unchanged if invalid."""
    global _state
    if not is_valid_volatility(value):
        logger.info("Ignoring invalid volatility: %r", value)
        return False
    _state = _state._replace(volatility=value)
    logger.info("Volatility set to %s", value)
    return True


def get_rtp_multiplier(game_config, state: Optional[ScalingState] = None) -> float:
    """Scaling factor for a game: target RTP over the game's reference RTP."""
    reference_rtp = game_config['game']['payout']['reference_rtp']
    return (state or _state).rtp_multiplier(reference_rtp)


@contextmanager
def scaling_override(target_rtp=None, volatility=None):
    """
    Temporarily replaces the process-wide scaling state.

    The previous state is restored on exit, including when the body raises. The module
    lock is held for the whole window so concurrent overrides cannot interleave.
    """
    global _state
    with _state_lock:
        previous = _state
        _state = previous.with_overrides(target_rtp=target_rtp, volatility=volatility)
        try:
            yield _state
        finally:
            _state = previous
