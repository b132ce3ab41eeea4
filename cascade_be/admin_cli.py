#!/usr/bin/env python3
"""
Cascade Admin CLI Tool

A command-line interface for game math tasks:
- Monte Carlo simulation of full rounds
- PAR sheets and paytables
- Single spins for inspection
- Environment configuration checks

Usage:
    python -m cascade_be.admin_cli --help
    python -m cascade_be.admin_cli simulate sweet-bonanza-1000 --rounds 100000 --rtp 96.5
    python -m cascade_be.admin_cli par-sheet gates-of-olympus --iterations 50000
    python -m cascade_be.admin_cli config validate
"""

import json
import logging
import sys

import click

from cascade_be.config_validator import ConfigValidator, ConfigValidationError
from cascade_be.utils.engine import get_engine
from cascade_be.utils.game_config import list_game_ids
from cascade_be.utils.par_sheet import build_par_sheet, format_par_sheet
from cascade_be.utils.sampler import make_rng
from cascade_be.utils.scaling import VOLATILITY_LEVELS, get_scaling_state, scaling_override
from cascade_be.utils.slot_tester import SlotTester


def _engine_or_exit(game_id):
    try:
        return get_engine(game_id)
    except ValueError as e:
        click.echo(f"Error: {e}. Available games: {', '.join(list_game_ids())}", err=True)
        sys.exit(1)


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.pass_context
def cli(ctx, verbose):
    """Cascade Admin CLI - math and configuration tools for the cascading slot engine."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


@cli.command('games')
def games():
    """List available games."""
    for game_id in list_game_ids():
        info = _engine_or_exit(game_id).describe()
        click.echo(f"{game_id:<22} {info['gridSize']['cols']}x{info['gridSize']['rows']} {info['winRule']:<15} "
                   f"modes: {', '.join(info['betModes'])}  buys: {', '.join(info['buyFeatures']) or '-'}")


@cli.command('simulate')
@click.argument('game_id')
@click.option('--rounds', default=10000, show_default=True, help='Number of rounds to simulate')
@click.option('--bet', default=1.0, show_default=True, help='Bet per round')
@click.option('--bet-mode', default=None, help='Bet mode (e.g. ante)')
@click.option('--buy', type=click.Choice(['free_spins', 'super_free_spins']), default=None, help='Buy a feature every round')
@click.option('--rtp', type=float, default=None, help='Target RTP for the run')
@click.option('--volatility', type=click.Choice(VOLATILITY_LEVELS), default=None)
@click.option('--seed', type=int, default=None, help='Seed for a reproducible run')
@click.option('--graphs', type=click.Path(file_okay=False), default=None, help='Directory to write graphs to')
@click.option('--as-json', 'as_json', is_flag=True, help='Print the summary as JSON')
def simulate(game_id, rounds, bet, bet_mode, buy, rtp, volatility, seed, graphs, as_json):
    """Run a Monte Carlo simulation of full rounds."""
    if rounds <= 0:
        click.echo("Error: --rounds must be positive", err=True)
        sys.exit(1)
    engine = _engine_or_exit(game_id)
    tester = SlotTester(game_id, rounds, bet=bet, bet_mode=bet_mode, buy_feature=buy,
                        target_rtp=rtp, volatility=volatility, seed=seed, engine=engine)
    try:
        summary = tester.run_simulation()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(summary, indent=2))
    else:
        tester.print_summary_statistics()
    if graphs:
        for path in tester.generate_graphs(graphs):
            click.echo(f"Wrote {path}")


@cli.command('par-sheet')
@click.argument('game_id')
@click.option('--iterations', default=20000, show_default=True, help='Monte Carlo grids for the hit frequency')
@click.option('--rtp', type=float, default=None, help='Target RTP to report under')
@click.option('--volatility', type=click.Choice(VOLATILITY_LEVELS), default=None)
@click.option('--seed', type=int, default=None)
@click.option('--as-json', 'as_json', is_flag=True, help='Print the sheet as JSON')
def par_sheet(game_id, iterations, rtp, volatility, seed, as_json):
    """Print the PAR sheet for a game."""
    engine = _engine_or_exit(game_id)
    state = get_scaling_state().with_overrides(target_rtp=rtp, volatility=volatility)
    sheet = build_par_sheet(engine, state, iterations=iterations, seed=seed)
    click.echo(json.dumps(sheet, indent=2) if as_json else format_par_sheet(sheet))


@cli.command('paytable')
@click.argument('game_id')
@click.option('--bet-mode', default='normal', show_default=True)
@click.option('--rtp', type=float, default=None, help='Target RTP to scale payouts for')
def paytable(game_id, bet_mode, rtp):
    """Print scaled payouts per symbol."""
    engine = _engine_or_exit(game_id)
    if bet_mode not in engine.bet_modes:
        click.echo(f"Error: unknown bet mode '{bet_mode}'", err=True)
        sys.exit(1)
    state = get_scaling_state().with_overrides(target_rtp=rtp)
    click.echo(f"\n{engine.game['name']} paytable (RTP {state.target_rtp:.2f}%, mode {bet_mode})")
    click.echo("=" * 50)
    for entry in engine.get_paytable(state, bet_mode):
        tiers = ", ".join(f"{p['count']}+: {p['payout']:g}x" for p in entry['payouts']) or 'triggers only'
        click.echo(f"{entry['name']:<14} {tiers}")


@cli.command('spin')
@click.argument('game_id')
@click.option('--seed', type=int, default=None)
@click.option('--bet-mode', default=None)
@click.option('--free-spin', is_flag=True, help='Play a free-spins spin')
@click.option('--rtp', type=float, default=None)
@click.option('--volatility', type=click.Choice(VOLATILITY_LEVELS), default=None)
def spin(game_id, seed, bet_mode, free_spin, rtp, volatility):
    """Play one spin and print its tumble sequence."""
    engine = _engine_or_exit(game_id)
    with scaling_override(target_rtp=rtp, volatility=volatility) as state:
        try:
            result = engine.spin(is_free_spins=free_spin, bet_mode=bet_mode, scaling=state, rng=make_rng(seed))
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    for index, step in enumerate(result.steps):
        wins = ", ".join(f"{w.symbol_id} x{w.count} = {w.payout:g}" for w in step.wins)
        click.echo(f"Tumble {index + 1}: {wins} (step {step.payout:g}, multipliers {step.multiplier_total})")
    click.echo(f"Scatters: {result.scatter_count} (pays {result.scatter_payout:g}, trigger: {result.triggers_bonus})")
    click.echo(f"Base {result.base_payout:g} x{result.multiplier_sum or 1} -> total {result.total_payout:g}"
               f"{' (capped)' if result.capped else ''}")


@cli.group()
def config():
    """Environment configuration commands."""
    pass


@config.command('validate')
@click.option('--production', is_flag=True, help='Validate with production rules')
def config_validate(production):
    """Validate environment configuration without starting the server."""
    validator = ConfigValidator(is_production=True if production else None)
    try:
        values = validator.validate_all()
    except ConfigValidationError as e:
        click.echo(str(e), err=True)
        sys.exit(1)
    click.echo("Configuration OK")
    for key, value in sorted(values.items()):
        click.echo(f"  {key} = {value}")


@config.command('show')
def config_show():
    """Show the process-wide scaling defaults."""
    state = get_scaling_state()
    click.echo(f"rtp={state.target_rtp} volatility={state.volatility}")


if __name__ == '__main__':
    cli()
