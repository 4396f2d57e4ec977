"""
Historical backtest across every usable starting year.
Runs the single-path simulator per start year and reduces the population
into success rate, nearest-rank percentiles and fan-chart series.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from historical_returns import get_default_provider
from simulation import SimulationConfig, SimulationResult, run_single_simulation

logger = logging.getLogger(__name__)

PERCENTILES = (10, 25, 50, 75, 90)


@dataclass(frozen=True)
class PercentileValues:
    p10: float = 0.0
    p25: float = 0.0
    p50: float = 0.0
    p75: float = 0.0
    p90: float = 0.0


@dataclass(frozen=True)
class PercentileChartPoint:
    """Fan-chart percentiles of end-of-year portfolio at one year index"""
    year_index: int
    p10: float
    p25: float
    p50: float
    p75: float
    p90: float


@dataclass(frozen=True)
class WorstCase:
    start_year: int = 0
    years_lasted: int = 0
    final_value: float = 0.0


@dataclass(frozen=True)
class CaseSummary:
    start_year: int = 0
    final_value: float = 0.0


@dataclass(frozen=True)
class FailureRecord:
    start_year: int
    failure_year: int
    years_lasted: int


@dataclass
class HistoricalSimulationResults:
    """Aggregate results of a historical backtest"""
    config: SimulationConfig
    simulations: List[SimulationResult]
    total_simulations: int
    successful_simulations: int
    failed_simulations: int
    success_rate: float  # percent
    median_final_portfolio: float
    mean_final_portfolio: float
    final_portfolio_percentiles: PercentileValues
    median_annual_withdrawal: float
    withdrawal_percentiles: PercentileValues
    failures: List[FailureRecord]
    worst_case: WorstCase
    best_case: CaseSummary
    smallest_final_portfolio: CaseSummary
    percentiles_by_year: List[PercentileChartPoint] = field(default_factory=list)


@dataclass(frozen=True)
class HistogramBin:
    label: str
    range: str
    count: int
    percentage: float
    is_failed: bool
    min_value: float
    max_value: float


def get_percentile(sorted_values: Sequence[float], percentile: float) -> float:
    """
    Nearest-rank percentile of an ascending sequence.

    Index is ceil(p/100 * n) - 1 clamped into [0, n-1]; no interpolation.
    Returns 0 for an empty sequence.
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0
    index = math.ceil((percentile / 100) * n) - 1
    return float(sorted_values[max(0, min(index, n - 1))])


def calculate_percentiles(values: Sequence[float]) -> PercentileValues:
    """P10/P25/P50/P75/P90 of an unsorted sequence"""
    sorted_values = np.sort(np.asarray(values, dtype=float))
    p10, p25, p50, p75, p90 = (get_percentile(sorted_values, p) for p in PERCENTILES)
    return PercentileValues(p10=p10, p25=p25, p50=p50, p75=p75, p90=p90)


def calculate_percentiles_by_year(simulations: List[SimulationResult],
                                  duration: int) -> List[PercentileChartPoint]:
    """
    Percentile bands of end-of-year portfolio value per year index.

    Simulations that failed before a year index contribute nothing to it;
    year indices with no contributing values are omitted.
    """
    points = []
    for year_index in range(duration):
        portfolio_values = [
            sim.yearly_data[year_index].portfolio_end
            for sim in simulations
            if year_index < len(sim.yearly_data)
        ]
        if not portfolio_values:
            continue

        percentiles = calculate_percentiles(portfolio_values)
        points.append(PercentileChartPoint(
            year_index=year_index,
            p10=percentiles.p10,
            p25=percentiles.p25,
            p50=percentiles.p50,
            p75=percentiles.p75,
            p90=percentiles.p90
        ))
    return points


def find_worst_case(simulations: List[SimulationResult]) -> WorstCase:
    """Shortest survival first, then smallest final value"""
    if not simulations:
        return WorstCase()
    worst = min(simulations, key=lambda s: (s.years_lasted, s.final_portfolio_value))
    return WorstCase(
        start_year=worst.start_year,
        years_lasted=worst.years_lasted,
        final_value=worst.final_portfolio_value
    )


def find_best_case(simulations: List[SimulationResult]) -> CaseSummary:
    if not simulations:
        return CaseSummary()
    best = max(simulations, key=lambda s: s.final_portfolio_value)
    return CaseSummary(start_year=best.start_year, final_value=best.final_portfolio_value)


def find_smallest_final_portfolio(simulations: List[SimulationResult]) -> CaseSummary:
    if not simulations:
        return CaseSummary()
    smallest = min(simulations, key=lambda s: s.final_portfolio_value)
    return CaseSummary(start_year=smallest.start_year, final_value=smallest.final_portfolio_value)


def summarize_simulations(config: SimulationConfig,
                          simulations: List[SimulationResult]) -> HistoricalSimulationResults:
    """
    Reduce a population of single-start-year results.

    Args:
        config: Configuration the population was simulated with
        simulations: Results in start-year order

    Returns:
        HistoricalSimulationResults
    """
    successful = [s for s in simulations if s.success]
    failed = [s for s in simulations if not s.success]

    total = len(simulations)
    success_rate = (len(successful) / total) * 100 if total > 0 else 0.0

    # Final-portfolio statistics only over successes; failures all end at 0
    final_portfolios = np.array([s.final_portfolio_value for s in successful], dtype=float)
    median_final = get_percentile(np.sort(final_portfolios), 50)
    mean_final = float(np.mean(final_portfolios)) if len(final_portfolios) > 0 else 0.0

    # Withdrawal statistics over every run
    avg_withdrawals = np.array([s.average_annual_withdrawal for s in simulations], dtype=float)
    median_withdrawal = get_percentile(np.sort(avg_withdrawals), 50)

    failures = [
        FailureRecord(start_year=s.start_year, failure_year=s.failure_year, years_lasted=s.years_lasted)
        for s in failed
    ]

    return HistoricalSimulationResults(
        config=config,
        simulations=simulations,
        total_simulations=total,
        successful_simulations=len(successful),
        failed_simulations=len(failed),
        success_rate=success_rate,
        median_final_portfolio=median_final,
        mean_final_portfolio=mean_final,
        final_portfolio_percentiles=calculate_percentiles(final_portfolios),
        median_annual_withdrawal=median_withdrawal,
        withdrawal_percentiles=calculate_percentiles(avg_withdrawals),
        failures=failures,
        worst_case=find_worst_case(simulations),
        best_case=find_best_case(simulations),
        smallest_final_portfolio=find_smallest_final_portfolio(simulations),
        percentiles_by_year=calculate_percentiles_by_year(simulations, config.retirement_duration)
    )


def run_historical_simulations(config: SimulationConfig,
                               provider=None) -> HistoricalSimulationResults:
    """
    Run a simulation for every valid historical start year.

    Args:
        config: Simulation configuration
        provider: Returns source; defaults to the bundled dataset

    Returns:
        HistoricalSimulationResults (empty population if no window fits)
    """
    if provider is None:
        provider = get_default_provider()

    start_years = provider.get_valid_start_years(config.retirement_duration)
    logger.debug("Running %d historical simulations of %d years",
                 len(start_years), config.retirement_duration)

    simulations = []
    for start_year in start_years:
        result = run_single_simulation(start_year, config, provider)
        if result is not None:
            simulations.append(result)

    results = summarize_simulations(config, simulations)
    logger.info("Historical backtest complete: %d simulations, %.1f%% success",
                results.total_simulations, results.success_rate)
    return results


def create_histogram_bins(results: HistoricalSimulationResults,
                          num_bins: int = 8,
                          currency_symbol: str = "£") -> List[HistogramBin]:
    """
    Bucket final portfolio values for an ending-portfolio histogram.

    Failed runs get their own bin; successful final values are split into up
    to `num_bins` equal-width bins, empty bins dropped. If the width would be
    under 10% of the initial portfolio a single bin is used.
    """
    if num_bins < 1:
        raise ValueError(f"num_bins must be at least 1, got {num_bins}")

    from io_utils import format_compact_currency

    def fmt(amount: float) -> str:
        return format_compact_currency(amount, currency_symbol)

    # A run that ends at exactly 0 succeeded and belongs with the value bins
    failed_count = sum(1 for s in results.simulations if not s.success)
    successful_values = np.array(
        [s.final_portfolio_value for s in results.simulations if s.success], dtype=float
    )
    total = results.total_simulations

    bins: List[HistogramBin] = []
    if failed_count == 0 and len(successful_values) == 0:
        return bins

    if failed_count > 0:
        bins.append(HistogramBin(
            label="Failed",
            range=f"{currency_symbol}0",
            count=failed_count,
            percentage=(failed_count / total) * 100,
            is_failed=True,
            min_value=0.0,
            max_value=0.0
        ))

    if len(successful_values) == 0:
        return bins

    min_value = float(successful_values.min())
    max_value = float(successful_values.max())
    bin_size = (max_value - min_value) / num_bins

    if bin_size < results.config.initial_portfolio * 0.1:
        count = len(successful_values)
        bins.append(HistogramBin(
            label=fmt(min_value),
            range=f"{fmt(min_value)} - {fmt(max_value)}",
            count=count,
            percentage=(count / total) * 100,
            is_failed=False,
            min_value=min_value,
            max_value=max_value
        ))
        return bins

    for i in range(num_bins):
        bin_min = min_value + i * bin_size
        bin_max = max_value + 1 if i == num_bins - 1 else min_value + (i + 1) * bin_size
        count = int(np.sum((successful_values >= bin_min) & (successful_values < bin_max)))
        if count == 0:
            continue
        bins.append(HistogramBin(
            label=fmt(bin_min + bin_size / 2),
            range=f"{fmt(bin_min)} - {fmt(bin_max)}",
            count=count,
            percentage=(count / total) * 100,
            is_failed=False,
            min_value=bin_min,
            max_value=bin_max
        ))
    return bins


def get_success_rate_label(success_rate: float) -> str:
    """Qualitative rating of a success rate (percent)"""
    if success_rate >= 95:
        return "Excellent"
    elif success_rate >= 80:
        return "Good"
    elif success_rate >= 70:
        return "Moderate Risk"
    elif success_rate >= 50:
        return "High Risk"
    return "Very High Risk"
