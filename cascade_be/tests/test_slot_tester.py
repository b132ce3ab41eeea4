import os
import tempfile
import unittest
from unittest.mock import patch

from cascade_be.utils.scaling import ScalingState, get_scaling_state, set_scaling_state
from cascade_be.utils.slot_tester import SlotTester


class TestSlotTester(unittest.TestCase):

    def setUp(self):
        set_scaling_state(ScalingState())

    def tearDown(self):
        set_scaling_state(ScalingState())

    def test_small_run_summary(self):
        tester = SlotTester('gates-of-olympus', 300, bet=2.0, seed=42)
        summary = tester.run_simulation()

        self.assertEqual(summary['rounds'], 300)
        self.assertAlmostEqual(summary['totalBet'], 600.0)
        self.assertGreaterEqual(summary['totalWin'], 0)
        self.assertAlmostEqual(summary['rtp'], summary['totalWin'] / summary['totalBet'] * 100)
        self.assertAlmostEqual(summary['rtp'], summary['baseGameRtp'] + summary['bonusRtp'])
        self.assertTrue(0 <= summary['hitFrequency'] <= 100)
        self.assertEqual(summary['targetRtp'], 96.5)
        self.assertEqual(summary['rtpOverTime'][-1]['round_count'], 300)
        self.assertAlmostEqual(summary['rtpOverTime'][-1]['rtp'], summary['rtp'])
        self.assertEqual(sum(summary['winDistribution'].values()), 300)
        self.assertIsNone(summary['avgBuyAttempts'])

    def test_seeded_runs_repeat(self):
        first = SlotTester('sweet-bonanza-1000', 200, seed=5).run_simulation()
        second = SlotTester('sweet-bonanza-1000', 200, seed=5).run_simulation()
        self.assertEqual(first['totalWin'], second['totalWin'])
        self.assertEqual(first['winDistribution'], second['winDistribution'])

    def test_overrides_apply_only_during_run(self):
        tester = SlotTester('fortune-of-olympus', 50, target_rtp=90.0, volatility='high', seed=1)
        summary = tester.run_simulation()
        self.assertEqual(summary['targetRtp'], 90.0)
        self.assertEqual(summary['volatility'], 'high')
        self.assertEqual(get_scaling_state(), ScalingState())

    def test_scaling_restored_when_round_fails(self):
        tester = SlotTester('gates-of-olympus', 10, target_rtp=120.0, seed=1)
        with patch.object(tester, '_simulate_one_round', side_effect=RuntimeError("boom")):
            with self.assertRaises(RuntimeError):
                tester.run_simulation()
        self.assertEqual(get_scaling_state(), ScalingState())

    def test_buy_feature_run(self):
        tester = SlotTester('sugar-rush-1000', 3, buy_feature='free_spins', seed=2)
        summary = tester.run_simulation()
        self.assertEqual(summary['bonusTriggers'], 3)
        self.assertAlmostEqual(summary['totalBet'], 300.0)
        self.assertGreaterEqual(summary['avgBuyAttempts'], 1)
        self.assertGreaterEqual(summary['avgBonusSpins'], 10)

    def test_rejects_non_positive_rounds(self):
        with self.assertRaises(ValueError):
            SlotTester('gates-of-olympus', 0).run_simulation()

    def test_generate_graphs(self):
        tester = SlotTester('gates-of-olympus', 100, seed=3)
        tester.run_simulation()
        with tempfile.TemporaryDirectory() as output_dir:
            paths = tester.generate_graphs(output_dir)
            self.assertTrue(paths)
            for path in paths:
                self.assertTrue(os.path.isfile(path))


if __name__ == '__main__':
    unittest.main()
