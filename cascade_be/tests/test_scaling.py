import math
import unittest

from cascade_be.utils.engine import get_engine
from cascade_be.utils.scaling import (
    ScalingState,
    get_rtp_multiplier,
    get_scaling_state,
    get_target_rtp,
    get_volatility,
    scaling_override,
    set_scaling_state,
    set_target_rtp,
    set_volatility,
)


class TestScaling(unittest.TestCase):

    def setUp(self):
        set_scaling_state(ScalingState())

    def tearDown(self):
        set_scaling_state(ScalingState())

    def test_defaults(self):
        self.assertEqual(get_target_rtp(), 96.5)
        self.assertEqual(get_volatility(), 'medium')

    def test_invalid_values_are_ignored(self):
        for bad in ('abc', -5, 0, float('nan'), float('inf'), True, None):
            self.assertFalse(set_target_rtp(bad), bad)
        self.assertEqual(get_target_rtp(), 96.5)
        for bad in ('wild', 3, None, 'MEDIUM'):
            self.assertFalse(set_volatility(bad), bad)
        self.assertEqual(get_volatility(), 'medium')

    def test_valid_values_are_applied(self):
        self.assertTrue(set_target_rtp(90))
        self.assertTrue(set_volatility('high'))
        self.assertEqual(get_scaling_state(), ScalingState(90.0, 'high'))

    def test_set_scaling_state_type_check(self):
        with self.assertRaises(TypeError):
            set_scaling_state((90.0, 'high'))

    def test_override_restores_on_exception(self):
        with self.assertRaises(RuntimeError):
            with scaling_override(target_rtp=120, volatility='extreme') as state:
                self.assertEqual(state, ScalingState(120.0, 'extreme'))
                self.assertEqual(get_scaling_state(), state)
                raise RuntimeError("boom")
        self.assertEqual(get_scaling_state(), ScalingState())

    def test_override_ignores_invalid_values(self):
        with scaling_override(target_rtp='fast', volatility='wild') as state:
            self.assertEqual(state, ScalingState())

    def test_with_overrides_clamps(self):
        state = ScalingState().with_overrides(target_rtp=500, rtp_bounds=(75.0, 200.0))
        self.assertEqual(state.target_rtp, 200.0)
        state = ScalingState().with_overrides(target_rtp=10, rtp_bounds=(75.0, 200.0))
        self.assertEqual(state.target_rtp, 75.0)

    def test_rtp_multiplier_uses_reference(self):
        engine = get_engine('sweet-bonanza-1000')
        self.assertAlmostEqual(get_rtp_multiplier(engine.config), 96.5 / engine.reference_rtp)
        self.assertAlmostEqual(get_rtp_multiplier(engine.config, ScalingState(26.13)), 26.13 / engine.reference_rtp)

    def test_payouts_scale_linearly_with_target_rtp(self):
        engine = get_engine('fortune-of-olympus')
        low = engine.get_paytable(ScalingState(50.0))
        high = engine.get_paytable(ScalingState(100.0))
        for low_entry, high_entry in zip(low, high):
            for low_tier, high_tier in zip(low_entry['payouts'], high_entry['payouts']):
                self.assertTrue(math.isclose(high_tier['payout'], 2 * low_tier['payout'], rel_tol=1e-9))

    def test_volatility_shifts_min_match(self):
        engine = get_engine('sweet-bonanza-1000')
        expected = {'low': 6, 'medium': 8, 'high': 9, 'extreme': 10}
        for level, min_match in expected.items():
            self.assertEqual(engine.payout_context(ScalingState(volatility=level)).min_match, min_match)


if __name__ == '__main__':
    unittest.main()
