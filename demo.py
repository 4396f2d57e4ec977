#!/usr/bin/env python3
"""
Demo script showing how to use the historical simulation modules programmatically.
Runs a backtest over every historical start year and prints a summary.
"""

import logging
from dataclasses import replace

from config_utils import create_state_pension, ensure_valid_config
from historical import create_histogram_bins, get_success_rate_label, run_historical_simulations
from historical_returns import get_available_simulation_count, get_data_range
from io_utils import create_summary_report, export_summary_report_json, format_currency, format_percent
from simulation import WithdrawalStrategy, get_default_simulation_config, run_single_simulation


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    print("🔥 Historical FIRE Simulation Demo")
    print("=" * 50)

    # 1. Build a configuration
    print("\n📊 Setting up simulation config...")
    config = get_default_simulation_config(initial_portfolio=1_000_000, current_age=55)
    config.extra_income = [create_state_pension()]
    ensure_valid_config(config)

    first_year, last_year = get_data_range()
    print(f"   Portfolio: {format_currency(config.initial_portfolio)}")
    print(f"   Allocation: {config.stock_allocation:.0f}% stocks, {config.bond_allocation:.0f}% bonds")
    print(f"   Withdrawal: {format_percent(config.initial_withdrawal_rate)} ({config.withdrawal_strategy.value})")
    print(f"   Data: {first_year}-{last_year}, "
          f"{get_available_simulation_count(config.retirement_duration)} {config.retirement_duration}-year windows")

    # 2. Run every historical start year
    print("\n⏳ Running historical simulations...")
    results = run_historical_simulations(config)

    print(f"\n📈 Results Summary:")
    print(f"   Success Rate: {format_percent(results.success_rate)} ({get_success_rate_label(results.success_rate)})")
    print(f"   Final Portfolio (P10/P50/P90): {format_currency(results.final_portfolio_percentiles.p10)} / "
          f"{format_currency(results.final_portfolio_percentiles.p50)} / "
          f"{format_currency(results.final_portfolio_percentiles.p90)}")
    print(f"   Worst start year: {results.worst_case.start_year} "
          f"(lasted {results.worst_case.years_lasted} years)")
    print(f"   Best start year: {results.best_case.start_year} "
          f"({format_currency(results.best_case.final_value)})")

    if results.failures:
        print(f"\n❌ Failures:")
        for failure in results.failures:
            print(f"   Started {failure.start_year}, depleted {failure.failure_year}")

    # 3. Ending portfolio distribution
    print(f"\n📊 Ending Portfolio Distribution:")
    for histogram_bin in create_histogram_bins(results):
        print(f"   {histogram_bin.range:<22} {histogram_bin.count:>3} ({format_percent(histogram_bin.percentage)})")

    # 4. Compare withdrawal strategies for one start year
    print(f"\n📋 Constant Dollar vs Percent of Portfolio (start 1966):")
    for strategy in WithdrawalStrategy:
        single = run_single_simulation(1966, replace(config, withdrawal_strategy=strategy))
        outcome = "survived" if single.success else f"failed in {single.failure_year}"
        print(f"   {strategy.value:<22} {outcome:<16} final {format_currency(single.final_portfolio_value)}")

    # 5. Report export
    report_json = export_summary_report_json(create_summary_report(results))
    print(f"\n💾 Summary report exported to JSON ({len(report_json)} characters)")

    print(f"\n✅ Demo completed successfully!")
    print(f"   To run tests: python3 -m pytest tests/ -v")


if __name__ == "__main__":
    main()
