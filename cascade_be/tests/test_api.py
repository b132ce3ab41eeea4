import unittest

from cascade_be.app import create_app
from cascade_be.config import TestingConfig
from cascade_be.error_codes import ErrorCodes
from cascade_be.utils.scaling import ScalingState, get_scaling_state, set_scaling_state


class BaseTestCase(unittest.TestCase):
    """
    Base test case to set up a fresh app for each test method, with the process-wide
    scaling state reset before and after.
    """

    def setUp(self):
        self.app = create_app(TestingConfig)
        set_scaling_state(ScalingState())
        self.app_context = self.app.app_context()
        self.app_context.push()
        self.client = self.app.test_client()

    def tearDown(self):
        self.app_context.pop()
        set_scaling_state(ScalingState())

    def _spin(self, payload):
        return self.client.post('/api/v1/spin', json=payload)


class TestSpinEndpoint(BaseTestCase):

    def test_spin_success(self):
        response = self._spin({'gameId': 'gates-of-olympus', 'bet': 1.0, 'seed': 12})
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data['meta']['gameId'], 'gates-of-olympus')
        self.assertIn('tumbleSteps', data['sequence'])
        self.assertIn('totalWinAmount', data['totals'])
        self.assertTrue(response.headers.get('X-Request-ID'))

    def test_spin_defaults_to_configured_game(self):
        response = self._spin({'bet': 0.2})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['meta']['gameId'], self.app.config['DEFAULT_GAME_ID'])

    def test_seeded_spins_match(self):
        first = self._spin({'gameId': 'fortune-of-olympus', 'bet': 1.0, 'seed': 77}).get_json()
        second = self._spin({'gameId': 'fortune-of-olympus', 'bet': 1.0, 'seed': 77}).get_json()
        self.assertEqual(first['state'], second['state'])
        self.assertEqual(first['totals'], second['totals'])

    def test_rtp_override_is_clamped_and_transient(self):
        response = self._spin({'bet': 1.0, 'configOverride': {'targetRtp': 500}})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['meta']['rtp'], 200.0)
        config = self.client.get('/api/v1/config').get_json()
        self.assertEqual(config['rtp'], 96.5)
        self.assertEqual(get_scaling_state(), ScalingState())

    def test_invalid_override_values_are_ignored(self):
        response = self._spin({'bet': 1.0, 'configOverride': {'targetRtp': 'fast', 'volatility': 'wild'}})
        self.assertEqual(response.status_code, 200)
        meta = response.get_json()['meta']
        self.assertEqual(meta['rtp'], 96.5)
        self.assertEqual(meta['volatility'], 'medium')

    def test_invalid_bet(self):
        for bet in (-1, 0, 'lots'):
            response = self._spin({'bet': bet})
            self.assertEqual(response.status_code, 400, bet)
            self.assertEqual(response.get_json()['error_code'], ErrorCodes.INVALID_BET)

    def test_missing_bet(self):
        response = self._spin({'gameId': 'gates-of-olympus'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error_code'], ErrorCodes.INVALID_BET)

    def test_non_json_body(self):
        response = self.client.post('/api/v1/spin', data='bet=1', content_type='text/plain')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error_code'], ErrorCodes.BAD_REQUEST)

    def test_unsupported_game(self):
        response = self._spin({'gameId': 'book-of-nothing', 'bet': 1.0})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error_code'], ErrorCodes.UNSUPPORTED_GAME)

    def test_unknown_buy_feature(self):
        response = self._spin({'bet': 1.0, 'mode': {'buyFeature': 'mega_free_spins'}})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error_code'], ErrorCodes.BAD_REQUEST)

    def test_invalid_bet_mode(self):
        response = self._spin({'gameId': 'sugar-rush-1000', 'bet': 1.0, 'mode': {'anteBet25x': True}})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error_code'], ErrorCodes.INVALID_BET_MODE)

    def test_bad_seed(self):
        response = self._spin({'bet': 1.0, 'seed': [1, 2]})
        self.assertEqual(response.status_code, 400)
        self.assertIn('seed', response.get_json()['details']['errors'])


class TestConfigEndpoints(BaseTestCase):

    def test_get_config(self):
        data = self.client.get('/api/v1/config').get_json()
        self.assertEqual(data['rtp'], 96.5)
        self.assertEqual(data['volatility'], 'medium')
        self.assertTrue(data['status'])

    def test_update_config(self):
        response = self.client.post('/api/v1/config', json={'rtp': 90, 'volatility': 'high'})
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data['applied'], {'rtp': True, 'volatility': True})
        self.assertEqual(self.client.get('/api/v1/config').get_json()['rtp'], 90.0)
        self.assertEqual(get_scaling_state(), ScalingState(90.0, 'high'))

    def test_update_config_ignores_invalid_values(self):
        response = self.client.post('/api/v1/config', json={'rtp': 'abc', 'volatility': 'wild'})
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data['applied'], {'rtp': False, 'volatility': False})
        self.assertEqual(data['rtp'], 96.5)
        self.assertEqual(data['volatility'], 'medium')

    def test_update_config_clamps_rtp(self):
        data = self.client.post('/api/v1/config', json={'rtp': 1000}).get_json()
        self.assertEqual(data['rtp'], 200.0)

    def test_update_config_requires_object(self):
        response = self.client.post('/api/v1/config', json=[1, 2])
        self.assertEqual(response.status_code, 400)


class TestGameEndpoints(BaseTestCase):

    def test_list_games(self):
        data = self.client.get('/api/v1/games').get_json()
        self.assertTrue(data['status'])
        self.assertEqual(sorted(g['gameId'] for g in data['games']),
                         ['fortune-of-olympus', 'gates-of-olympus', 'sugar-rush-1000', 'sweet-bonanza-1000'])

    def test_paytable(self):
        response = self.client.get('/api/v1/paytable?gameId=gates-of-olympus')
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data['gameId'], 'gates-of-olympus')
        self.assertTrue(data['paytable'][-1]['isScatter'])

    def test_paytable_follows_global_rtp(self):
        before = self.client.get('/api/v1/paytable?gameId=fortune-of-olympus').get_json()['paytable'][0]
        self.client.post('/api/v1/config', json={'rtp': 193.0})
        after = self.client.get('/api/v1/paytable?gameId=fortune-of-olympus').get_json()['paytable'][0]
        self.assertAlmostEqual(after['payouts'][0]['payout'], 2 * before['payouts'][0]['payout'])

    def test_paytable_unknown_bet_mode(self):
        response = self.client.get('/api/v1/paytable?gameId=sugar-rush-1000&betMode=ante')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error_code'], ErrorCodes.INVALID_BET_MODE)

    def test_paytable_unknown_game(self):
        response = self.client.get('/api/v1/paytable?gameId=book-of-nothing')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error_code'], ErrorCodes.UNSUPPORTED_GAME)

    def test_par_sheet(self):
        response = self.client.get('/api/v1/par-sheet?gameId=sweet-bonanza-1000&iterations=200&seed=1')
        self.assertEqual(response.status_code, 200)
        sheet = response.get_json()['parSheet']
        self.assertEqual(sheet['monteCarlo']['iterations'], 200)
        self.assertIn('summary', sheet)
        self.assertIn('confidenceIntervals', sheet)

    def test_par_sheet_iteration_limit(self):
        self.app.config['MAX_SIMULATION_ROUNDS'] = 100
        response = self.client.get('/api/v1/par-sheet?gameId=sweet-bonanza-1000&iterations=1000')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error_code'], ErrorCodes.SIMULATION_LIMIT_EXCEEDED)

    def test_par_sheet_bad_iterations(self):
        response = self.client.get('/api/v1/par-sheet?iterations=0')
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.get_json()['error_code'], ErrorCodes.VALIDATION_ERROR)

    def test_game_detail(self):
        response = self.client.get('/api/v1/games/sugar-rush-1000')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['game']['gameId'], 'sugar-rush-1000')

    def test_game_detail_unknown_game(self):
        response = self.client.get('/api/v1/games/book-of-nothing')
        self.assertEqual(response.status_code, 404)
        data = response.get_json()
        self.assertEqual(data['error_code'], ErrorCodes.GAME_NOT_FOUND)
        self.assertEqual(data['details'], {'gameId': 'book-of-nothing'})
        self.assertFalse(data['status'])

    def test_par_sheet_bad_query_reports_field_errors(self):
        response = self.client.get('/api/v1/par-sheet?iterations=lots')
        self.assertEqual(response.status_code, 422)
        data = response.get_json()
        self.assertEqual(data['status_message'], 'Invalid PAR sheet query.')
        self.assertIn('iterations', data['details']['errors'])

    def test_health(self):
        response = self.client.get('/api/health')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.get_json()['status'])


if __name__ == '__main__':
    unittest.main()
