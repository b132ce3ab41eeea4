import argparse
import json
import logging
import os

import numpy as np
import matplotlib
matplotlib.use('Agg')  # Non-interactive backend, graphs are only written to files
import matplotlib.pyplot as plt

from cascade_be.utils.engine import get_engine
from cascade_be.utils.sampler import make_rng
from cascade_be.utils.scaling import scaling_override

logger = logging.getLogger(__name__)


class SlotTester:
    """
    Monte Carlo harness: plays full rounds (base spin plus any free-spins feature) and
    aggregates RTP, hit frequency, bonus statistics and volatility.

    Args:
        game_id (str): Game to simulate.
        num_rounds (int): Number of paid rounds.
        bet (float): Stake per round; wins are reported in the same unit.
        bet_mode (str, optional): Bet mode name (e.g. ``ante``).
        buy_feature (str, optional): Buy this feature every round instead of spinning.
        target_rtp (float, optional): Target RTP applied for the duration of the run.
        volatility (str, optional): Volatility tier applied for the duration of the run.
        seed (optional): Seed for a reproducible run.
    """

    def __init__(self, game_id, num_rounds, bet=1.0, bet_mode=None, buy_feature=None,
                 target_rtp=None, volatility=None, seed=None, engine=None):
        self.game_id = game_id
        self.num_rounds = num_rounds
        self.bet = bet
        self.bet_mode = bet_mode
        self.buy_feature = buy_feature
        self.target_rtp = target_rtp
        self.volatility = volatility
        self.seed = seed
        self.engine = engine or get_engine(game_id)
        self.scaling = None

        # Statistics to be collected
        self.rounds_played = 0
        self.total_bet = 0.0
        self.total_win = 0.0
        self.hit_count = 0
        self.bonus_triggers = 0
        self.total_bonus_win = 0.0
        self.capped_rounds = 0
        self.biggest_win = 0.0
        self.round_wins = []
        self.tumble_counts = []
        self.bonus_data = []
        self.wins_by_multiplier = {}
        self.buy_attempts = []

        # Derived statistics
        self.overall_rtp = 0.0
        self.hit_frequency = 0.0
        self.bonus_frequency = 0.0
        self.avg_bonus_win = 0.0
        self.avg_bonus_spins = 0.0
        self.base_game_rtp_contribution = 0.0
        self.bonus_rtp_contribution = 0.0
        self.volatility_index = 0.0
        self.avg_tumbles = 0.0
        self.rtp_over_time = []

    def run_simulation(self):
        if self.num_rounds <= 0:
            raise ValueError("num_rounds must be positive")
        rng = make_rng(self.seed)
        logger.info("Starting simulation for %s: %d rounds at %s per round",
                    self.game_id, self.num_rounds, self.bet)
        progress_every = self.num_rounds // 20 or 1

        with scaling_override(target_rtp=self.target_rtp, volatility=self.volatility) as state:
            self.scaling = state
            for i in range(self.num_rounds):
                round_result = self._simulate_one_round(rng, state)
                self._collect_round_statistics(round_result)
                if (i + 1) % progress_every == 0:
                    logger.debug("Completed %d/%d rounds", i + 1, self.num_rounds)

        self.calculate_derived_statistics()
        logger.info("Simulation finished for %s: RTP %.2f%%", self.game_id, self.overall_rtp)
        return self.summary()

    def _simulate_one_round(self, rng, state):
        return self.engine.play_round(bet_mode=self.bet_mode, buy_feature=self.buy_feature,
                                      scaling=state, rng=rng)

    def _collect_round_statistics(self, round_result):
        stake = round_result.cost * self.bet
        win = round_result.total_win * self.bet
        self.rounds_played += 1
        self.total_bet += stake
        self.total_win += win
        self.round_wins.append(win)
        self.tumble_counts.append(round_result.base.tumble_count)
        self.biggest_win = max(self.biggest_win, win)

        if win > 0:
            self.hit_count += 1
        if round_result.capped:
            self.capped_rounds += 1
        if round_result.buy_feature:
            self.buy_attempts.append(round_result.buy_attempts)

        session = round_result.free_spins
        if session is not None:
            self.bonus_triggers += 1
            bonus_win = session.total_win * self.bet
            self.total_bonus_win += bonus_win
            self.bonus_data.append({
                'total_win': bonus_win,
                'num_spins': session.spins_played,
                'retriggers': session.retriggers,
                'round_number': self.rounds_played,
            })

        multiplier_category = int(round(round_result.total_win / round_result.cost)) if win > 0 else 0
        self.wins_by_multiplier[multiplier_category] = self.wins_by_multiplier.get(multiplier_category, 0) + 1

    def calculate_derived_statistics(self):
        if self.rounds_played == 0:
            return

        self.overall_rtp = (self.total_win / self.total_bet) * 100 if self.total_bet > 0 else 0
        self.hit_frequency = (self.hit_count / self.rounds_played) * 100
        self.bonus_frequency = (self.bonus_triggers / self.rounds_played) * 100
        self.avg_bonus_win = (self.total_bonus_win / self.bonus_triggers) if self.bonus_triggers > 0 else 0
        self.avg_bonus_spins = float(np.mean([b['num_spins'] for b in self.bonus_data])) if self.bonus_data else 0

        base_game_win = self.total_win - self.total_bonus_win
        self.base_game_rtp_contribution = (base_game_win / self.total_bet) * 100 if self.total_bet > 0 else 0
        self.bonus_rtp_contribution = (self.total_bonus_win / self.total_bet) * 100 if self.total_bet > 0 else 0

        wins = np.asarray(self.round_wins, dtype=float)
        self.volatility_index = float(np.std(wins) / self.bet) if self.bet > 0 else 0.0
        self.avg_tumbles = float(np.mean(self.tumble_counts))

        # RTP Over Time
        cumulative_win = np.cumsum(wins)
        stake = self.total_bet / self.rounds_played
        interval = self.rounds_played // 20 or 1
        self.rtp_over_time = []
        for i in range(self.rounds_played):
            if (i + 1) % interval == 0 or (i + 1) == self.rounds_played:
                current_rtp = cumulative_win[i] / (stake * (i + 1)) * 100 if stake > 0 else 0
                self.rtp_over_time.append({'round_count': i + 1, 'rtp': float(current_rtp)})

    def summary(self):
        return {
            'gameId': self.game_id,
            'rounds': self.rounds_played,
            'bet': self.bet,
            'betMode': self.bet_mode or 'normal',
            'buyFeature': self.buy_feature,
            'targetRtp': self.scaling.target_rtp if self.scaling else None,
            'volatility': self.scaling.volatility if self.scaling else None,
            'totalBet': self.total_bet,
            'totalWin': self.total_win,
            'rtp': self.overall_rtp,
            'hitFrequency': self.hit_frequency,
            'bonusFrequency': self.bonus_frequency,
            'bonusTriggers': self.bonus_triggers,
            'avgBonusWin': self.avg_bonus_win,
            'avgBonusSpins': self.avg_bonus_spins,
            'baseGameRtp': self.base_game_rtp_contribution,
            'bonusRtp': self.bonus_rtp_contribution,
            'biggestWin': self.biggest_win,
            'cappedRounds': self.capped_rounds,
            'avgTumbles': self.avg_tumbles,
            'volatilityIndex': self.volatility_index,
            'avgBuyAttempts': float(np.mean(self.buy_attempts)) if self.buy_attempts else None,
            'winDistribution': {str(k): v for k, v in sorted(self.wins_by_multiplier.items())},
            'rtpOverTime': self.rtp_over_time,
        }

    def print_summary_statistics(self):
        print("\n--- Simulation Summary ---")
        print(f"Game: {self.engine.game['name']} ({self.game_id})")
        print(f"Rounds Simulated: {self.rounds_played}")
        print(f"Bet Per Round: {self.bet} (mode: {self.bet_mode or 'normal'}, buy: {self.buy_feature or 'none'})")
        print(f"Total Wagered: {self.total_bet:.2f}")
        print(f"Total Won: {self.total_win:.2f}")

        print("\n--- Detailed Metrics ---")
        target = f"{self.scaling.target_rtp:.2f}%" if self.scaling else "N/A"
        print(f"Overall RTP: {self.overall_rtp:.2f}% (Target: {target}, volatility: {self.scaling.volatility if self.scaling else 'N/A'})")
        print(f"Hit Frequency: {self.hit_frequency:.2f}% ({self.hit_count} wins out of {self.rounds_played} rounds)")
        print(f"Bonus Trigger Frequency: {self.bonus_frequency:.2f}% ({self.bonus_triggers} triggers)")
        print(f"Average Bonus Win: {self.avg_bonus_win:.2f} over {self.avg_bonus_spins:.2f} spins")
        print(f"Base Game RTP Contribution: {self.base_game_rtp_contribution:.2f}%")
        print(f"Bonus Game RTP Contribution: {self.bonus_rtp_contribution:.2f}%")
        print(f"Biggest Win: {self.biggest_win:.2f} ({self.capped_rounds} rounds hit the max-win cap)")
        print(f"Average Tumbles per Base Spin: {self.avg_tumbles:.2f}")
        print(f"Volatility Index (Win StdDev / Bet): {self.volatility_index:.2f}")

        print("\nWin Distribution (by Bet Multiplier):")
        for mult, count in sorted(self.wins_by_multiplier.items()):
            print(f"  {mult}x Bet: {count} times ({count / self.rounds_played * 100:.2f}%)")

    def generate_graphs(self, output_dir='simulation_graphs'):
        """Writes distribution, convergence and contribution charts as PNG files. Returns their paths."""
        os.makedirs(output_dir, exist_ok=True)
        display_name = self.engine.game['name']
        written = []

        if self.wins_by_multiplier:
            multipliers = sorted(self.wins_by_multiplier)
            counts = [self.wins_by_multiplier[m] for m in multipliers]
            plt.figure(figsize=(12, 7))
            plt.bar([f"{m}x" for m in multipliers], counts, color='skyblue', width=0.8)
            plt.title(f"Win Multiplier Distribution for {display_name}", fontsize=16)
            plt.xlabel("Bet Multiplier", fontsize=12)
            plt.ylabel("Frequency", fontsize=12)
            plt.yscale('log')
            plt.xticks(rotation=45, ha="right", fontsize=10)
            plt.grid(axis='y', linestyle='--', alpha=0.7)
            plt.tight_layout()
            path = os.path.join(output_dir, f"{self.game_id}_win_distribution.png")
            plt.savefig(path)
            written.append(path)
            plt.clf()

        if self.rtp_over_time:
            plt.figure(figsize=(10, 6))
            plt.plot([p['round_count'] for p in self.rtp_over_time], [p['rtp'] for p in self.rtp_over_time],
                     label="Simulated RTP", marker='.', linestyle='-')
            if self.scaling:
                plt.axhline(y=self.scaling.target_rtp, color='r', linestyle='--',
                            label=f"Target RTP ({self.scaling.target_rtp:.2f}%)")
            plt.title(f"RTP Convergence for {display_name}", fontsize=16)
            plt.xlabel("Number of Rounds", fontsize=12)
            plt.ylabel("RTP (%)", fontsize=12)
            plt.legend(fontsize=10)
            plt.grid(True, linestyle='--', alpha=0.7)
            plt.tight_layout()
            path = os.path.join(output_dir, f"{self.game_id}_rtp_convergence.png")
            plt.savefig(path)
            written.append(path)
            plt.clf()

        if self.total_win > 0:
            sizes = [max(0.0, self.total_win - self.total_bonus_win), self.total_bonus_win]
            plt.figure(figsize=(8, 8))
            plt.pie(sizes, labels=['Base Game', 'Free Spins'], colors=['lightcoral', 'gold'],
                    autopct='%1.1f%%', startangle=90)
            plt.title(f"Win Contribution (Base vs Bonus)\nfor {display_name}", fontsize=16)
            plt.axis('equal')
            plt.tight_layout()
            path = os.path.join(output_dir, f"{self.game_id}_win_contribution.png")
            plt.savefig(path)
            written.append(path)
            plt.clf()

        plt.close('all')
        return written


def main():
    parser = argparse.ArgumentParser(description="Cascade Slot Tester - Simulates rounds to analyze RTP and other metrics.")
    parser.add_argument("game_id", type=str, help="Game id (a directory under cascade_be/public/games).")
    parser.add_argument("--rounds", type=int, default=10000, help="Number of rounds to simulate.")
    parser.add_argument("--bet", type=float, default=1.0, help="Bet per round.")
    parser.add_argument("--bet-mode", type=str, default=None, help="Bet mode, e.g. ante.")
    parser.add_argument("--buy", type=str, default=None, choices=['free_spins', 'super_free_spins'])
    parser.add_argument("--rtp", type=float, default=None, help="Target RTP for the run.")
    parser.add_argument("--volatility", type=str, default=None, choices=['low', 'medium', 'high', 'extreme'])
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--graphs", type=str, default=None, help="Directory to write graphs to.")
    parser.add_argument("--json", action='store_true', help="Print the summary as JSON.")
    args = parser.parse_args()

    tester = SlotTester(args.game_id, args.rounds, bet=args.bet, bet_mode=args.bet_mode,
                        buy_feature=args.buy, target_rtp=args.rtp, volatility=args.volatility, seed=args.seed)
    summary = tester.run_simulation()
    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        tester.print_summary_statistics()
    if args.graphs:
        tester.generate_graphs(args.graphs)


if __name__ == "__main__":
    main()
