import json
import os
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from cascade_be.admin_cli import cli
from cascade_be.utils.scaling import ScalingState, set_scaling_state


@pytest.fixture
def runner():
    set_scaling_state(ScalingState())
    yield CliRunner()
    set_scaling_state(ScalingState())


def test_games_lists_every_game(runner):
    result = runner.invoke(cli, ['games'])
    assert result.exit_code == 0
    for game_id in ('sweet-bonanza-1000', 'gates-of-olympus', 'sugar-rush-1000', 'fortune-of-olympus'):
        assert game_id in result.output


def test_simulate_json(runner):
    result = runner.invoke(cli, ['simulate', 'gates-of-olympus', '--rounds', '50', '--seed', '1',
                                 '--rtp', '90', '--as-json'])
    assert result.exit_code == 0, result.output
    summary = json.loads(result.output)
    assert summary['rounds'] == 50
    assert summary['targetRtp'] == 90.0


def test_simulate_unknown_game(runner):
    result = runner.invoke(cli, ['simulate', 'book-of-nothing', '--rounds', '5'])
    assert result.exit_code == 1
    assert 'Unsupported game' in result.output


def test_simulate_rejects_zero_rounds(runner):
    result = runner.invoke(cli, ['simulate', 'gates-of-olympus', '--rounds', '0'])
    assert result.exit_code == 1


def test_par_sheet_text(runner):
    result = runner.invoke(cli, ['par-sheet', 'sweet-bonanza-1000', '--iterations', '50', '--seed', '2'])
    assert result.exit_code == 0, result.output
    assert 'PAR SHEET - Sweet Bonanza 1000' in result.output


def test_paytable(runner):
    result = runner.invoke(cli, ['paytable', 'fortune-of-olympus', '--bet-mode', 'ante1'])
    assert result.exit_code == 0, result.output
    assert 'Fortune of Olympus paytable' in result.output
    bad = runner.invoke(cli, ['paytable', 'sugar-rush-1000', '--bet-mode', 'ante'])
    assert bad.exit_code == 1


def test_spin(runner):
    result = runner.invoke(cli, ['spin', 'sugar-rush-1000', '--seed', '3'])
    assert result.exit_code == 0, result.output
    assert 'Scatters:' in result.output


def test_config_validate(runner):
    with patch.dict(os.environ, {'TESTING': 'true'}, clear=True):
        result = runner.invoke(cli, ['config', 'validate'])
    assert result.exit_code == 0, result.output
    assert 'Configuration OK' in result.output

    with patch.dict(os.environ, {'DEFAULT_VOLATILITY': 'wild'}, clear=True):
        result = runner.invoke(cli, ['config', 'validate'])
    assert result.exit_code == 1


def test_config_show(runner):
    result = runner.invoke(cli, ['config', 'show'])
    assert result.exit_code == 0
    assert 'rtp=96.5 volatility=medium' in result.output
