"""
Unit tests for the single-start-year historical simulation engine.
"""
import pytest
import pandas as pd
from dataclasses import replace
from historical_returns import HistoricalReturnsProvider, get_valid_start_years
from simulation import (
    SimulationConfig, ExtraIncomeSource, WithdrawalStrategy,
    calculate_portfolio_return, calculate_withdrawal, calculate_extra_income,
    calculate_initial_withdrawal, run_single_simulation, get_default_simulation_config
)


def make_provider(first_year=2000, years=10, stocks=0.0, bonds=0.0, inflation=0.0):
    """Provider with constant returns for exact expectations"""
    frame = pd.DataFrame({
        'year': list(range(first_year, first_year + years)),
        'stocks': [stocks] * years,
        'bonds': [bonds] * years,
        'inflation': [inflation] * years
    })
    return HistoricalReturnsProvider(frame)


@pytest.fixture
def base_config():
    return SimulationConfig(
        initial_portfolio=1_000_000,
        current_age=65,
        retirement_duration=30,
        stock_allocation=75,
        bond_allocation=25,
        withdrawal_strategy=WithdrawalStrategy.CONSTANT_DOLLAR,
        initial_withdrawal_rate=4,
    )


class TestPortfolioReturn:
    """Test blended portfolio return"""

    def test_all_stocks(self):
        assert calculate_portfolio_return(100, 0, 0.10, 0.05) == pytest.approx(0.10)

    def test_all_bonds(self):
        assert calculate_portfolio_return(0, 100, 0.10, 0.05) == pytest.approx(0.05)

    def test_sixty_forty(self):
        # 0.6 * 0.10 + 0.4 * 0.05
        assert calculate_portfolio_return(60, 40, 0.10, 0.05) == pytest.approx(0.08)


class TestWithdrawalCalculation:
    """Test withdrawal strategies"""

    def test_constant_dollar(self):
        """Constant dollar ignores current portfolio"""
        withdrawal = calculate_withdrawal(WithdrawalStrategy.CONSTANT_DOLLAR, 1_000_000, 40_000, 4)
        assert withdrawal == 40_000

    def test_percent_of_portfolio(self):
        """Percent of portfolio tracks current value"""
        withdrawal = calculate_withdrawal(WithdrawalStrategy.PERCENT_OF_PORTFOLIO, 1_200_000, 40_000, 4)
        assert withdrawal == pytest.approx(48_000)

    def test_strategy_accepts_string_value(self):
        withdrawal = calculate_withdrawal("percent_of_portfolio", 500_000, 40_000, 4)
        assert withdrawal == pytest.approx(20_000)

    def test_initial_withdrawal_from_rate(self, base_config):
        assert calculate_initial_withdrawal(base_config) == pytest.approx(40_000)

    def test_initial_withdrawal_amount_overrides_rate(self, base_config):
        config = replace(base_config, initial_withdrawal_amount=55_000)
        assert calculate_initial_withdrawal(config) == 55_000


class TestExtraIncome:
    """Test extra income activation and deflation"""

    def test_before_start_age(self):
        sources = [ExtraIncomeSource(annual_amount=10_000, start_age=67)]
        assert calculate_extra_income(sources, 66, 0.0) == 0

    def test_open_ended(self):
        sources = [ExtraIncomeSource(annual_amount=10_000, start_age=67)]
        assert calculate_extra_income(sources, 67, 0.0) == 10_000
        assert calculate_extra_income(sources, 95, 0.0) == 10_000

    def test_end_age_inclusive(self):
        sources = [ExtraIncomeSource(annual_amount=5_000, start_age=60, end_age=64)]
        assert calculate_extra_income(sources, 64, 0.0) == 5_000
        assert calculate_extra_income(sources, 65, 0.0) == 0

    def test_multiple_sources_summed(self):
        sources = [
            ExtraIncomeSource(annual_amount=10_000, start_age=67, name="State Pension"),
            ExtraIncomeSource(annual_amount=6_000, start_age=60, end_age=70, name="Annuity"),
        ]
        assert calculate_extra_income(sources, 65, 0.0) == 6_000
        assert calculate_extra_income(sources, 68, 0.0) == 16_000
        assert calculate_extra_income(sources, 71, 0.0) == 10_000

    def test_inflation_adjusted_used_as_is(self):
        sources = [ExtraIncomeSource(annual_amount=10_000, start_age=60, adjust_for_inflation=True)]
        assert calculate_extra_income(sources, 65, 0.5) == 10_000

    def test_nominal_income_deflated(self):
        """Fixed nominal income is expressed in real terms"""
        sources = [ExtraIncomeSource(annual_amount=10_000, start_age=60, adjust_for_inflation=False)]
        assert calculate_extra_income(sources, 65, 0.25) == pytest.approx(8_000)


class TestSingleSimulationSynthetic:
    """Exact expectations using constant synthetic returns"""

    def test_flat_returns_exact_depletion_is_success(self):
        """Drawing the portfolio to exactly zero is not a failure"""
        provider = make_provider(years=10)
        config = SimulationConfig(initial_portfolio=1_000, current_age=60, retirement_duration=10,
                                  initial_withdrawal_amount=100)
        result = run_single_simulation(2000, config, provider)

        assert result.success
        assert result.failure_year is None
        assert result.years_lasted == 10
        assert result.final_portfolio_value == pytest.approx(0)
        assert [row.portfolio_end for row in result.yearly_data] == pytest.approx(
            [900, 800, 700, 600, 500, 400, 300, 200, 100, 0])
        assert result.total_withdrawals == pytest.approx(1_000)
        assert result.average_annual_withdrawal == pytest.approx(100)

    def test_flat_returns_failure_truncates(self):
        """Shortfall stops the simulation and zeroes the last row"""
        provider = make_provider(years=12)
        config = SimulationConfig(initial_portfolio=1_000, current_age=60, retirement_duration=12,
                                  initial_withdrawal_amount=300)
        result = run_single_simulation(2000, config, provider)

        # 1000 -> 700 -> 400 -> 100 -> shortfall in the fourth year
        assert not result.success
        assert result.failure_year == 2003
        assert result.years_lasted == 4
        assert len(result.yearly_data) == 4
        assert result.end_year == 2011

        last = result.yearly_data[-1]
        assert last.portfolio_start == pytest.approx(100)
        assert last.withdrawal == 300
        assert last.portfolio_end == 0
        assert last.portfolio_return == 0
        assert result.final_portfolio_value == 0
        # Only the three funded withdrawals count
        assert result.total_withdrawals == pytest.approx(900)
        assert result.average_annual_withdrawal == pytest.approx(225)

    def test_growth_applied_after_withdrawal(self):
        provider = make_provider(years=2, stocks=0.10, bonds=0.10)
        config = SimulationConfig(initial_portfolio=1_000, current_age=60, retirement_duration=2,
                                  initial_withdrawal_amount=100)
        result = run_single_simulation(2000, config, provider)

        # (1000 - 100) * 1.1 = 990; (990 - 100) * 1.1 = 979
        assert result.yearly_data[0].portfolio_end == pytest.approx(990)
        assert result.yearly_data[1].portfolio_end == pytest.approx(979)
        assert result.yearly_data[0].portfolio_return == pytest.approx(0.10)

    def test_cumulative_inflation_compounds(self):
        provider = make_provider(years=3, inflation=0.10)
        config = SimulationConfig(initial_portfolio=1_000, current_age=60, retirement_duration=3,
                                  initial_withdrawal_amount=0)
        result = run_single_simulation(2000, config, provider)

        inflation = [row.cumulative_inflation for row in result.yearly_data]
        assert inflation == pytest.approx([0.10, 0.21, 0.331])
        assert result.final_portfolio_real == pytest.approx(result.final_portfolio_value / 1.331)

    def test_nominal_income_uses_prior_year_inflation(self):
        """Deflation uses cumulative inflation carried from previous years"""
        provider = make_provider(years=3, inflation=0.10)
        income = ExtraIncomeSource(annual_amount=110, start_age=60, adjust_for_inflation=False)
        config = SimulationConfig(initial_portfolio=1_000, current_age=60, retirement_duration=3,
                                  initial_withdrawal_amount=200, extra_income=[income])
        result = run_single_simulation(2000, config, provider)

        assert result.yearly_data[0].extra_income == pytest.approx(110)
        assert result.yearly_data[1].extra_income == pytest.approx(100)
        assert result.yearly_data[2].extra_income == pytest.approx(110 / 1.21)

    def test_minimum_portfolio_tracking(self):
        provider = make_provider(years=3, stocks=-0.5, bonds=-0.5)
        config = SimulationConfig(initial_portfolio=1_000, current_age=60, retirement_duration=3,
                                  initial_withdrawal_amount=0)
        result = run_single_simulation(2000, config, provider)

        assert result.minimum_portfolio_value == pytest.approx(125)
        assert result.minimum_portfolio_year == 2002

    def test_minimum_starts_at_initial_portfolio(self):
        provider = make_provider(years=3, stocks=0.5, bonds=0.5)
        config = SimulationConfig(initial_portfolio=1_000, current_age=60, retirement_duration=3,
                                  initial_withdrawal_amount=0)
        result = run_single_simulation(2000, config, provider)

        assert result.minimum_portfolio_value == 1_000
        assert result.minimum_portfolio_year == 2000

    def test_insufficient_data_returns_none(self):
        provider = make_provider(years=5)
        config = SimulationConfig(initial_portfolio=1_000, current_age=60, retirement_duration=10)
        assert run_single_simulation(2000, config, provider) is None
        assert run_single_simulation(1990, config, provider) is None


class TestSingleSimulationHistorical:
    """Tests against the bundled historical dataset"""

    def test_runs_successfully(self, base_config):
        result = run_single_simulation(1950, base_config)
        assert result is not None
        assert result.start_year == 1950
        assert result.end_year == 1979
        assert result.years_lasted <= 30
        assert len(result.yearly_data) <= 30

    def test_insufficient_trailing_data(self, base_config):
        assert run_single_simulation(2010, base_config) is None

    def test_tracks_portfolio(self, base_config):
        result = run_single_simulation(1950, base_config)
        assert result.yearly_data[0].portfolio_start == 1_000_000

        for index, year in enumerate(result.yearly_data):
            assert year.year_index == index
            assert year.year == 1950 + index
            assert year.age == 65 + index
            assert year.portfolio_end >= 0

    def test_deterministic(self, base_config):
        """Repeated runs are identical"""
        first = run_single_simulation(1966, base_config)
        second = run_single_simulation(1966, base_config)
        assert first == second

    def test_includes_extra_income(self, base_config):
        config = replace(base_config, extra_income=[
            ExtraIncomeSource(annual_amount=10_000, start_age=67, adjust_for_inflation=True,
                              name="State Pension")
        ])
        result = run_single_simulation(1950, config)

        # Age 65: no pension
        assert result.yearly_data[0].extra_income == 0
        assert result.yearly_data[0].net_withdrawal == pytest.approx(40_000)

        # Age 67: pension starts
        assert result.yearly_data[2].extra_income == 10_000
        assert result.yearly_data[2].net_withdrawal == pytest.approx(30_000)

    def test_failure_truncation_properties(self, base_config):
        """Failed runs stop early and end at zero"""
        config = replace(base_config, initial_withdrawal_rate=7)
        for start_year in get_valid_start_years(30):
            result = run_single_simulation(start_year, config)
            if result.success:
                assert len(result.yearly_data) == 30
                assert result.years_lasted == 30
                assert result.failure_year is None
            else:
                assert len(result.yearly_data) == result.years_lasted
                assert result.years_lasted <= 30
                assert result.yearly_data[-1].portfolio_end == 0
                assert result.failure_year == start_year + result.years_lasted - 1

    def test_net_withdrawal_never_negative(self, base_config):
        config = replace(base_config, extra_income=[
            ExtraIncomeSource(annual_amount=500_000, start_age=66, adjust_for_inflation=False)
        ])
        result = run_single_simulation(1970, config)
        assert all(row.net_withdrawal >= 0 for row in result.yearly_data)
        assert result.yearly_data[1].extra_income > result.yearly_data[1].withdrawal
        assert result.yearly_data[1].net_withdrawal == 0

    def test_large_portfolio_low_rate_always_succeeds(self):
        config = SimulationConfig(initial_portfolio=10_000_000, current_age=50, retirement_duration=30,
                                  stock_allocation=100, bond_allocation=0, initial_withdrawal_rate=1)
        for start_year in get_valid_start_years(30):
            assert run_single_simulation(start_year, config).success

    def test_tiny_portfolio_high_rate_always_fails(self):
        config = SimulationConfig(initial_portfolio=100, current_age=50, retirement_duration=30,
                                  initial_withdrawal_rate=50)
        for start_year in get_valid_start_years(30):
            result = run_single_simulation(start_year, config)
            assert not result.success
            assert result.years_lasted <= 3

    def test_withdrawal_above_portfolio_fails_in_first_year(self):
        config = SimulationConfig(initial_portfolio=100, current_age=50, retirement_duration=30,
                                  initial_withdrawal_amount=150)
        for start_year in get_valid_start_years(30):
            result = run_single_simulation(start_year, config)
            assert not result.success
            assert result.failure_year == start_year
            assert result.years_lasted == 1
            assert len(result.yearly_data) == 1
            assert result.average_annual_withdrawal == 0

    def test_percent_of_portfolio_never_depletes(self, base_config):
        """A fractional withdrawal cannot exhaust a positive balance"""
        config = replace(base_config, withdrawal_strategy=WithdrawalStrategy.PERCENT_OF_PORTFOLIO,
                         initial_withdrawal_rate=8)
        for start_year in get_valid_start_years(30):
            result = run_single_simulation(start_year, config)
            assert result.success
            assert all(row.portfolio_end > 0 for row in result.yearly_data)

    def test_constant_dollar_can_deplete_where_percent_does_not(self, base_config):
        constant = replace(base_config, initial_withdrawal_rate=8)
        percent = replace(constant, withdrawal_strategy=WithdrawalStrategy.PERCENT_OF_PORTFOLIO)

        constant_failures = [y for y in get_valid_start_years(30)
                             if not run_single_simulation(y, constant).success]
        percent_failures = [y for y in get_valid_start_years(30)
                            if not run_single_simulation(y, percent).success]

        assert len(constant_failures) > 0
        assert percent_failures == []

    def test_extra_income_fully_offsets_withdrawal(self, base_config):
        """Portfolio changes only by growth when income covers spending"""
        config = replace(base_config, extra_income=[
            ExtraIncomeSource(annual_amount=40_000, start_age=65, adjust_for_inflation=True)
        ])
        for start_year in (1929, 1966, 1970):
            result = run_single_simulation(start_year, config)
            assert result.success
            for row in result.yearly_data:
                assert row.net_withdrawal == 0
                assert row.portfolio_end == pytest.approx(row.portfolio_start * (1 + row.portfolio_return))


class TestDefaultConfig:
    """Test default configuration"""

    def test_default_config(self):
        config = get_default_simulation_config(1_000_000, 65)

        assert config.initial_portfolio == 1_000_000
        assert config.current_age == 65
        assert config.retirement_duration == 30
        assert config.stock_allocation == 75
        assert config.bond_allocation == 25
        assert config.stock_allocation + config.bond_allocation == 100
        assert config.withdrawal_strategy == WithdrawalStrategy.CONSTANT_DOLLAR
        assert config.initial_withdrawal_rate == 4
        assert config.initial_withdrawal_amount is None
        assert config.extra_income == []

    def test_default_configs_do_not_share_income_list(self):
        first = get_default_simulation_config(1_000_000, 65)
        second = get_default_simulation_config(1_000_000, 65)
        first.extra_income.append(ExtraIncomeSource(annual_amount=1, start_age=65))
        assert second.extra_income == []
