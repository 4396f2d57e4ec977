"""
IO utilities for simulation configs and historical backtest results.
Handles dict/JSON conversion of configurations, JSON-ready result payloads,
CSV exports and display formatting.
"""
import json
import math
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from config_utils import DEFAULT_CONFIG, ensure_valid_config
from historical import HistoricalSimulationResults, get_success_rate_label
from simulation import ExtraIncomeSource, SimulationConfig, SimulationResult, WithdrawalStrategy


# camelCase keys accepted from the JSON API
_CONFIG_KEY_ALIASES = {
    'retirementDuration': 'retirement_duration',
    'stockAllocation': 'stock_allocation',
    'bondAllocation': 'bond_allocation',
    'withdrawalStrategy': 'withdrawal_strategy',
    'initialWithdrawalRate': 'initial_withdrawal_rate',
    'initialWithdrawalAmount': 'initial_withdrawal_amount',
    'initialPortfolio': 'initial_portfolio',
    'extraIncome': 'extra_income',
    'currentAge': 'current_age',
}

_INCOME_KEY_ALIASES = {
    'annualAmount': 'annual_amount',
    'startAge': 'start_age',
    'endAge': 'end_age',
    'adjustForInflation': 'adjust_for_inflation',
}

_REQUIRED_FIELDS = ['initial_portfolio', 'current_age']

CURRENCY_COLUMNS = [
    'portfolio_start', 'withdrawal', 'extra_income',
    'net_withdrawal', 'portfolio_end'
]


def _normalize_keys(raw: Dict[str, Any], aliases: Dict[str, str]) -> Dict[str, Any]:
    return {aliases.get(key, key): value for key, value in raw.items()}


def dict_to_extra_income(raw: Dict[str, Any]) -> ExtraIncomeSource:
    """Build an ExtraIncomeSource from a dictionary"""
    if not isinstance(raw, dict):
        raise ValueError(f"Extra income source must be an object, got {type(raw).__name__}")
    data = _normalize_keys(raw, _INCOME_KEY_ALIASES)
    end_age = data.get('end_age')
    return ExtraIncomeSource(
        annual_amount=float(data['annual_amount']),
        start_age=int(data['start_age']),
        end_age=int(end_age) if end_age is not None else None,
        adjust_for_inflation=bool(data.get('adjust_for_inflation', True)),
        name=data.get('name', '') or ''
    )


def config_to_dict(config: SimulationConfig) -> Dict[str, Any]:
    """
    Convert SimulationConfig to dictionary for JSON serialization.

    Args:
        config: SimulationConfig object

    Returns:
        Dictionary representation (snake_case keys)
    """
    config_dict = asdict(config)
    config_dict['withdrawal_strategy'] = WithdrawalStrategy(config.withdrawal_strategy).value
    return config_dict


def dict_to_config(config_dict: Dict[str, Any], validate: bool = True) -> SimulationConfig:
    """
    Convert dictionary to SimulationConfig, filling defaults.

    Args:
        config_dict: Parameter values (snake_case or camelCase keys)
        validate: Reject out-of-range values with ValueError

    Returns:
        SimulationConfig object
    """
    data = dict(DEFAULT_CONFIG)
    data.update(_normalize_keys(config_dict, _CONFIG_KEY_ALIASES))

    missing = [name for name in _REQUIRED_FIELDS if data.get(name) is None]
    if missing:
        raise ValueError(f"Missing required field(s): {', '.join(missing)}")

    try:
        strategy = WithdrawalStrategy(data['withdrawal_strategy'])
    except ValueError:
        raise ValueError(f"Unknown withdrawal strategy: {data['withdrawal_strategy']}")

    amount = data.get('initial_withdrawal_amount')
    try:
        config = SimulationConfig(
            initial_portfolio=float(data['initial_portfolio']),
            current_age=int(data['current_age']),
            retirement_duration=int(data['retirement_duration']),
            stock_allocation=float(data['stock_allocation']),
            bond_allocation=float(data['bond_allocation']),
            withdrawal_strategy=strategy,
            initial_withdrawal_rate=float(data['initial_withdrawal_rate']),
            initial_withdrawal_amount=float(amount) if amount is not None else None,
            extra_income=[dict_to_extra_income(source) for source in data.get('extra_income') or []]
        )
    except (KeyError, TypeError, OverflowError) as e:
        raise ValueError(f"Malformed simulation config: {e}") from e

    if validate:
        ensure_valid_config(config)
    return config


def parse_config_json(json_string: str, validate: bool = True) -> SimulationConfig:
    """
    Parse a JSON string to SimulationConfig.

    Accepts either a bare config object or a request body of the form
    {"config": {...}}.
    """
    try:
        payload = json.loads(json_string)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}") from e

    if isinstance(payload, dict) and isinstance(payload.get('config'), dict):
        payload = payload['config']
    if not isinstance(payload, dict):
        raise ValueError("Simulation config must be a JSON object")

    return dict_to_config(payload, validate=validate)


def simulation_to_dict(simulation: SimulationResult, include_yearly_data: bool = False) -> Dict[str, Any]:
    """Single-start-year result as a JSON-ready dictionary"""
    sim_dict = asdict(simulation)
    if not include_yearly_data:
        sim_dict.pop('yearly_data')
    return sim_dict


def results_to_dict(results: HistoricalSimulationResults,
                    include_yearly_data: bool = False) -> Dict[str, Any]:
    """
    Convert backtest results to a JSON-ready dictionary.

    Args:
        results: HistoricalSimulationResults
        include_yearly_data: Keep each simulation's year-by-year rows

    Returns:
        Dictionary with config, statistics and per-start-year results
    """
    return {
        'config': config_to_dict(results.config),
        'simulations': [simulation_to_dict(sim, include_yearly_data) for sim in results.simulations],
        'total_simulations': results.total_simulations,
        'successful_simulations': results.successful_simulations,
        'failed_simulations': results.failed_simulations,
        'success_rate': results.success_rate,
        'median_final_portfolio': results.median_final_portfolio,
        'mean_final_portfolio': results.mean_final_portfolio,
        'final_portfolio_percentiles': asdict(results.final_portfolio_percentiles),
        'median_annual_withdrawal': results.median_annual_withdrawal,
        'withdrawal_percentiles': asdict(results.withdrawal_percentiles),
        'failures': [asdict(failure) for failure in results.failures],
        'worst_case': asdict(results.worst_case),
        'best_case': asdict(results.best_case),
        'smallest_final_portfolio': asdict(results.smallest_final_portfolio),
        'percentiles_by_year': [asdict(point) for point in results.percentiles_by_year],
    }


def export_results_json(results: HistoricalSimulationResults, include_yearly_data: bool = False) -> str:
    return json.dumps(results_to_dict(results, include_yearly_data), indent=2)


def export_simulations_csv(results: HistoricalSimulationResults) -> str:
    """
    Export one row per starting year to CSV string.

    Args:
        results: HistoricalSimulationResults

    Returns:
        CSV string
    """
    rows = [simulation_to_dict(sim) for sim in results.simulations]
    columns = [
        'start_year', 'end_year', 'success', 'failure_year', 'years_lasted',
        'final_portfolio_value', 'final_portfolio_real', 'minimum_portfolio_value',
        'minimum_portfolio_year', 'total_withdrawals', 'average_annual_withdrawal'
    ]
    df = pd.DataFrame(rows, columns=columns)
    # Nullable integer keeps successful runs' failure_year empty, not NaN floats
    df['failure_year'] = df['failure_year'].astype('Int64')
    return df.to_csv(index=False)


def export_percentiles_by_year_csv(results: HistoricalSimulationResults) -> str:
    """Export fan-chart percentile bands to CSV string"""
    df = pd.DataFrame(
        [asdict(point) for point in results.percentiles_by_year],
        columns=['year_index', 'p10', 'p25', 'p50', 'p75', 'p90']
    )
    return df.to_csv(index=False)


def export_yearly_data_csv(simulation: SimulationResult, currency_format: str = "real") -> str:
    """
    Export one simulation's year-by-year rows to CSV string.

    Args:
        simulation: SimulationResult
        currency_format: Suffix for currency column names

    Returns:
        CSV string
    """
    df = pd.DataFrame([asdict(row) for row in simulation.yearly_data])
    rename_dict = {col: f'{col}_{currency_format}' for col in CURRENCY_COLUMNS if col in df.columns}
    df = df.rename(columns=rename_dict)
    return df.to_csv(index=False)


def create_summary_report(results: HistoricalSimulationResults) -> Dict[str, Any]:
    """
    Create summary report of a historical backtest.

    Args:
        results: HistoricalSimulationResults

    Returns:
        Dictionary with summary information
    """
    years_lasted = np.array([s.years_lasted for s in results.simulations], dtype=float)
    failed_years = np.array([f.years_lasted for f in results.failures], dtype=float)
    config = results.config

    return {
        'simulation_info': {
            'num_simulations': results.total_simulations,
            'retirement_duration': config.retirement_duration,
            'initial_portfolio': config.initial_portfolio,
            'withdrawal_strategy': WithdrawalStrategy(config.withdrawal_strategy).value,
            'initial_withdrawal_rate': config.initial_withdrawal_rate,
        },
        'allocation': {
            'stocks': config.stock_allocation,
            'bonds': config.bond_allocation,
        },
        'outcome': {
            'success_rate': results.success_rate,
            'rating': get_success_rate_label(results.success_rate),
            'failed_simulations': results.failed_simulations,
            'mean_years_lasted': float(np.mean(years_lasted)) if len(years_lasted) else None,
            'avg_years_to_depletion': float(np.mean(failed_years)) if len(failed_years) else None,
        },
        'final_portfolio_stats': {
            'median': results.median_final_portfolio,
            'mean': results.mean_final_portfolio,
            **asdict(results.final_portfolio_percentiles),
        },
        'withdrawal_stats': {
            'median': results.median_annual_withdrawal,
            **asdict(results.withdrawal_percentiles),
        },
        'worst_case': asdict(results.worst_case),
        'best_case': asdict(results.best_case),
        'smallest_final_portfolio': asdict(results.smallest_final_portfolio),
    }


def export_summary_report_json(report: Dict[str, Any]) -> str:
    """
    Export summary report as JSON string.

    Args:
        report: Summary report dictionary

    Returns:
        JSON string
    """
    return json.dumps(report, indent=2, default=str)


def format_currency(amount: float, currency_symbol: str = "£") -> str:
    """Whole-unit currency with thousands separators; '---' if not finite"""
    if not math.isfinite(amount):
        return '---'
    sign = '-' if amount < 0 else ''
    return f"{sign}{currency_symbol}{abs(amount):,.0f}"


def format_compact_currency(amount: float, currency_symbol: str = "£") -> str:
    """
    Format currency values for chart labels.

    Args:
        amount: Numeric value to format
        currency_symbol: Prefix symbol

    Returns:
        e.g. '£1.2M', '£350K', '£900'
    """
    if not math.isfinite(amount):
        return '---'
    if abs(amount) >= 1_000_000:
        return f"{currency_symbol}{amount / 1_000_000:.1f}M"
    elif abs(amount) >= 1_000:
        return f"{currency_symbol}{amount / 1_000:.0f}K"
    return f"{currency_symbol}{amount:.0f}"


def format_percent(value: float, decimals: int = 1) -> str:
    if not math.isfinite(value):
        return '---'
    return f"{value:.{decimals}f}%"
