"""
Historical retirement simulation engine for a single starting year.
Pure functions for simulation logic, decoupled from UI and storage.
All amounts are in real (start-year) terms because the returns are real.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from historical_returns import get_default_provider


class WithdrawalStrategy(str, Enum):
    """Rule governing each year's withdrawal"""
    CONSTANT_DOLLAR = "constant_dollar"
    PERCENT_OF_PORTFOLIO = "percent_of_portfolio"


@dataclass(frozen=True)
class ExtraIncomeSource:
    """Recurring income (e.g. state pension) active over an age range"""
    annual_amount: float
    start_age: int
    end_age: Optional[int] = None  # None means indefinite
    adjust_for_inflation: bool = True
    name: str = ""


@dataclass
class SimulationConfig:
    """Parameters for a historical backtest"""
    initial_portfolio: float
    current_age: int
    retirement_duration: int = 30

    # Allocation, in percent (should sum to 100)
    stock_allocation: float = 75.0
    bond_allocation: float = 25.0

    # Withdrawals
    withdrawal_strategy: WithdrawalStrategy = WithdrawalStrategy.CONSTANT_DOLLAR
    initial_withdrawal_rate: float = 4.0  # percent
    initial_withdrawal_amount: Optional[float] = None  # overrides the rate for constant_dollar

    extra_income: List[ExtraIncomeSource] = field(default_factory=list)


@dataclass(frozen=True)
class YearlySimulationData:
    """One simulated year"""
    year: int
    year_index: int
    age: int
    portfolio_start: float
    withdrawal: float
    extra_income: float
    net_withdrawal: float
    stock_return: float
    bond_return: float
    portfolio_return: float
    portfolio_end: float
    cumulative_inflation: float


@dataclass(frozen=True)
class SimulationResult:
    """Outcome of one starting year"""
    start_year: int
    end_year: int
    success: bool
    failure_year: Optional[int]
    years_lasted: int
    final_portfolio_value: float
    final_portfolio_real: float
    minimum_portfolio_value: float
    minimum_portfolio_year: int
    total_withdrawals: float
    average_annual_withdrawal: float
    yearly_data: List[YearlySimulationData]


def calculate_portfolio_return(stock_allocation: float,
                               bond_allocation: float,
                               stock_return: float,
                               bond_return: float) -> float:
    """Blend stock and bond returns by percentage allocation"""
    return (stock_allocation / 100) * stock_return + (bond_allocation / 100) * bond_return


def calculate_initial_withdrawal(config: SimulationConfig) -> float:
    """First-year withdrawal: explicit amount if given, else rate x portfolio"""
    if config.initial_withdrawal_amount is not None:
        return config.initial_withdrawal_amount
    return config.initial_portfolio * (config.initial_withdrawal_rate / 100)


def calculate_withdrawal(strategy: WithdrawalStrategy,
                         current_portfolio: float,
                         initial_withdrawal: float,
                         withdrawal_rate: float) -> float:
    """
    Withdrawal for the current year.

    Args:
        strategy: Withdrawal strategy
        current_portfolio: Portfolio value at the start of the year
        initial_withdrawal: Fixed real amount used by constant_dollar
        withdrawal_rate: Percentage used by percent_of_portfolio

    Returns:
        Gross withdrawal (real)
    """
    if strategy == WithdrawalStrategy.PERCENT_OF_PORTFOLIO:
        return current_portfolio * (withdrawal_rate / 100)
    # constant_dollar: returns are real, so the amount needs no inflation step-up
    return initial_withdrawal


def calculate_extra_income(sources: List[ExtraIncomeSource],
                           age: int,
                           cumulative_inflation: float) -> float:
    """Total extra income active at `age`, in real terms"""
    total = 0.0
    for source in sources:
        if age < source.start_age:
            continue
        if source.end_age is not None and age > source.end_age:
            continue

        if source.adjust_for_inflation:
            total += source.annual_amount
        else:
            # Fixed nominal income loses purchasing power
            total += source.annual_amount / (1 + cumulative_inflation)
    return total


def run_single_simulation(start_year: int,
                          config: SimulationConfig,
                          provider=None) -> Optional[SimulationResult]:
    """
    Simulate one retirement beginning in `start_year`.

    Args:
        start_year: First calendar year of retirement
        config: Simulation configuration (not validated here)
        provider: Returns source exposing get_returns_for_range; defaults to
            the bundled historical dataset

    Returns:
        SimulationResult, or None when fewer than retirement_duration years
        of data are available from start_year
    """
    if provider is None:
        provider = get_default_provider()

    duration = config.retirement_duration
    returns = provider.get_returns_for_range(start_year, duration)
    if len(returns) < duration:
        return None

    initial_withdrawal = calculate_initial_withdrawal(config)

    portfolio = config.initial_portfolio
    cumulative_inflation = 0.0
    minimum_portfolio = config.initial_portfolio
    minimum_year = start_year
    total_withdrawals = 0.0
    failure_year = None
    yearly_data: List[YearlySimulationData] = []

    for year_index in range(duration):
        year = start_year + year_index
        age = config.current_age + year_index
        year_returns = returns[year_index]
        portfolio_start = portfolio

        withdrawal = calculate_withdrawal(
            config.withdrawal_strategy,
            portfolio,
            initial_withdrawal,
            config.initial_withdrawal_rate
        )
        extra_income = calculate_extra_income(config.extra_income, age, cumulative_inflation)

        # Extra income offsets the draw but is never banked
        net_withdrawal = max(0.0, withdrawal - extra_income)

        # Withdraw at the start of the year, before growth
        portfolio = portfolio - net_withdrawal

        if portfolio < 0:
            portfolio = 0.0
            failure_year = year
            yearly_data.append(YearlySimulationData(
                year=year,
                year_index=year_index,
                age=age,
                portfolio_start=portfolio_start,
                withdrawal=withdrawal,
                extra_income=extra_income,
                net_withdrawal=net_withdrawal,
                stock_return=year_returns.real_stocks,
                bond_return=year_returns.real_bonds,
                portfolio_return=0.0,
                portfolio_end=0.0,
                cumulative_inflation=cumulative_inflation
            ))
            break

        portfolio_return = calculate_portfolio_return(
            config.stock_allocation,
            config.bond_allocation,
            year_returns.real_stocks,
            year_returns.real_bonds
        )
        portfolio = portfolio * (1 + portfolio_return)
        total_withdrawals += withdrawal

        cumulative_inflation = (1 + cumulative_inflation) * (1 + year_returns.inflation) - 1

        if portfolio < minimum_portfolio:
            minimum_portfolio = portfolio
            minimum_year = year

        yearly_data.append(YearlySimulationData(
            year=year,
            year_index=year_index,
            age=age,
            portfolio_start=portfolio_start,
            withdrawal=withdrawal,
            extra_income=extra_income,
            net_withdrawal=net_withdrawal,
            stock_return=year_returns.real_stocks,
            bond_return=year_returns.real_bonds,
            portfolio_return=portfolio_return,
            portfolio_end=portfolio,
            cumulative_inflation=cumulative_inflation
        ))

    years_lasted = len(yearly_data) if failure_year is not None else duration

    final_inflation_factor = 1 + yearly_data[-1].cumulative_inflation if yearly_data else 1.0

    return SimulationResult(
        start_year=start_year,
        end_year=start_year + duration - 1,
        success=failure_year is None,
        failure_year=failure_year,
        years_lasted=years_lasted,
        final_portfolio_value=portfolio,
        final_portfolio_real=portfolio / final_inflation_factor,
        minimum_portfolio_value=minimum_portfolio,
        minimum_portfolio_year=minimum_year,
        total_withdrawals=total_withdrawals,
        average_annual_withdrawal=total_withdrawals / years_lasted if years_lasted > 0 else 0.0,
        yearly_data=yearly_data
    )


def get_default_simulation_config(initial_portfolio: float, current_age: int) -> SimulationConfig:
    """30 years, 75/25 stocks/bonds, constant-dollar 4%, no extra income"""
    return SimulationConfig(
        initial_portfolio=initial_portfolio,
        current_age=current_age,
        retirement_duration=30,
        stock_allocation=75.0,
        bond_allocation=25.0,
        withdrawal_strategy=WithdrawalStrategy.CONSTANT_DOLLAR,
        initial_withdrawal_rate=4.0,
        extra_income=[]
    )
