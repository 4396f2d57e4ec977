"""
Configuration utilities for historical retirement simulations.
Default values, allowed ranges and JSON persistence for SimulationConfig.
"""

import json
import logging
import math
import os
from typing import Any, Dict, List

from simulation import ExtraIncomeSource, SimulationConfig, WithdrawalStrategy

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "retirement_duration": 30,
    "stock_allocation": 75.0,
    "bond_allocation": 25.0,
    "withdrawal_strategy": WithdrawalStrategy.CONSTANT_DOLLAR.value,
    "initial_withdrawal_rate": 4.0,
    "initial_withdrawal_amount": None,
    "extra_income": [],
}

# Inclusive (min, max) bounds; None means unbounded
CONFIG_LIMITS: Dict[str, tuple] = {
    "retirement_duration": (1, 60),
    "stock_allocation": (0, 100),
    "bond_allocation": (0, 100),
    "initial_withdrawal_rate": (0.5, 15),
    "initial_portfolio": (0, None),
    "current_age": (18, 100),
}

# UK state pension defaults
STATE_PENSION_DEFAULTS = {
    "name": "State Pension",
    "annual_amount": 11_500,
    "start_age": 67,
    "adjust_for_inflation": True,
}

ALLOCATION_TOLERANCE = 1e-6


def create_state_pension(annual_amount: float = None, start_age: int = None) -> ExtraIncomeSource:
    """Inflation-linked state pension income, open-ended"""
    return ExtraIncomeSource(
        annual_amount=STATE_PENSION_DEFAULTS["annual_amount"] if annual_amount is None else annual_amount,
        start_age=STATE_PENSION_DEFAULTS["start_age"] if start_age is None else start_age,
        end_age=None,
        adjust_for_inflation=STATE_PENSION_DEFAULTS["adjust_for_inflation"],
        name=STATE_PENSION_DEFAULTS["name"]
    )


def validate_simulation_config(config: SimulationConfig) -> List[str]:
    """
    Check a configuration against the allowed ranges.

    Args:
        config: SimulationConfig to check

    Returns:
        List of error messages (empty when valid)
    """
    errors = []

    for name, (low, high) in CONFIG_LIMITS.items():
        value = getattr(config, name)
        if not math.isfinite(value):
            errors.append(f"{name} must be a finite number, got {value}")
            continue
        if low is not None and value < low:
            errors.append(f"{name} must be at least {low}, got {value}")
        if high is not None and value > high:
            errors.append(f"{name} must be at most {high}, got {value}")

    allocation_total = config.stock_allocation + config.bond_allocation
    if math.isfinite(allocation_total) and abs(allocation_total - 100) > ALLOCATION_TOLERANCE:
        errors.append(f"Allocations must sum to 100, got {allocation_total:.6f}")

    try:
        WithdrawalStrategy(config.withdrawal_strategy)
    except ValueError:
        errors.append(f"Unknown withdrawal strategy: {config.withdrawal_strategy}")

    amount = config.initial_withdrawal_amount
    if amount is not None and not math.isfinite(amount):
        errors.append(f"initial_withdrawal_amount must be a finite number, got {amount}")
    elif amount is not None and amount < 0:
        errors.append("initial_withdrawal_amount must not be negative")

    for i, source in enumerate(config.extra_income):
        label = source.name or f"extra_income[{i}]"
        if not math.isfinite(source.annual_amount):
            errors.append(f"{label}: annual_amount must be a finite number")
        elif source.annual_amount < 0:
            errors.append(f"{label}: annual_amount must not be negative")
        if source.end_age is not None and source.end_age < source.start_age:
            errors.append(f"{label}: end_age must not be before start_age")

    return errors


def ensure_valid_config(config: SimulationConfig) -> SimulationConfig:
    """Raise ValueError listing every problem if the configuration is invalid"""
    errors = validate_simulation_config(config)
    if errors:
        raise ValueError("Invalid simulation config: " + "; ".join(errors))
    return config


def load_simulation_config(filepath: str) -> SimulationConfig:
    """
    Load and validate a configuration from a JSON file.

    Args:
        filepath: Path to JSON file (snake_case or camelCase keys)

    Returns:
        SimulationConfig
    """
    from io_utils import parse_config_json

    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Simulation config not found: {filepath}")

    with open(filepath, 'r') as f:
        config = parse_config_json(f.read())
    logger.info("Loaded simulation config from %s", filepath)
    return config


def save_simulation_config(config: SimulationConfig, filepath: str) -> None:
    """Save a configuration to a JSON file"""
    from io_utils import config_to_dict

    with open(filepath, 'w') as f:
        json.dump(config_to_dict(config), f, indent=2)
    logger.info("Saved simulation config to %s", filepath)
