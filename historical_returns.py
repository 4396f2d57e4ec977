"""
Historical annual returns dataset and lookup helpers for backtesting.
Nominal S&P 500 total returns, 10-year US Treasury bond returns and CPI
inflation (Damodaran / US Inflation Calculator), 1928-2024.
Real returns are derived as (1 + nominal) / (1 + inflation) - 1.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

# (year, stocks, bonds, inflation) - nominal, as decimal fractions
_RAW_RETURNS = [
    (1928, 0.4381, 0.0084, -0.0116),
    (1929, -0.0830, 0.0420, 0.0058),
    (1930, -0.2512, 0.0454, -0.0640),
    (1931, -0.4384, -0.0256, -0.0932),
    (1932, -0.0864, 0.0879, -0.1027),
    (1933, 0.4998, 0.0186, 0.0076),
    (1934, -0.0119, 0.0796, 0.0152),
    (1935, 0.4674, 0.0447, 0.0299),
    (1936, 0.3194, 0.0502, 0.0145),
    (1937, -0.3534, 0.0138, 0.0286),
    (1938, 0.2928, 0.0421, -0.0278),
    (1939, -0.0110, 0.0441, 0.0000),
    (1940, -0.1067, 0.0540, 0.0071),
    (1941, -0.1277, -0.0202, 0.0993),
    (1942, 0.1917, 0.0229, 0.0903),
    (1943, 0.2506, 0.0249, 0.0296),
    (1944, 0.1903, 0.0258, 0.0230),
    (1945, 0.3582, 0.0380, 0.0225),
    (1946, -0.0843, 0.0313, 0.1813),
    (1947, 0.0520, 0.0092, 0.0884),
    (1948, 0.0570, 0.0195, 0.0299),
    (1949, 0.1830, 0.0466, -0.0207),
    (1950, 0.3081, 0.0043, 0.0593),
    (1951, 0.2368, -0.0030, 0.0600),
    (1952, 0.1815, 0.0227, 0.0075),
    (1953, -0.0121, 0.0414, 0.0075),
    (1954, 0.5256, 0.0329, -0.0074),
    (1955, 0.3260, -0.0134, 0.0037),
    (1956, 0.0744, -0.0226, 0.0299),
    (1957, -0.1046, 0.0680, 0.0290),
    (1958, 0.4372, -0.0210, 0.0176),
    (1959, 0.1206, -0.0265, 0.0173),
    (1960, 0.0034, 0.1164, 0.0136),
    (1961, 0.2664, 0.0206, 0.0067),
    (1962, -0.0881, 0.0569, 0.0133),
    (1963, 0.2261, 0.0168, 0.0164),
    (1964, 0.1642, 0.0373, 0.0097),
    (1965, 0.1240, 0.0072, 0.0192),
    (1966, -0.0997, 0.0291, 0.0346),
    (1967, 0.2380, -0.0158, 0.0304),
    (1968, 0.1081, 0.0327, 0.0472),
    (1969, -0.0824, -0.0501, 0.0620),
    (1970, 0.0356, 0.1675, 0.0557),
    (1971, 0.1422, 0.0979, 0.0327),
    (1972, 0.1876, 0.0282, 0.0341),
    (1973, -0.1431, 0.0366, 0.0871),
    (1974, -0.2590, 0.0199, 0.1234),
    (1975, 0.3700, 0.0361, 0.0694),
    (1976, 0.2383, 0.1598, 0.0486),
    (1977, -0.0698, 0.0129, 0.0670),
    (1978, 0.0651, -0.0078, 0.0902),
    (1979, 0.1852, 0.0067, 0.1329),
    (1980, 0.3174, -0.0299, 0.1252),
    (1981, -0.0470, 0.0820, 0.0892),
    (1982, 0.2042, 0.3281, 0.0383),
    (1983, 0.2234, 0.0320, 0.0379),
    (1984, 0.0615, 0.1373, 0.0395),
    (1985, 0.3124, 0.2571, 0.0380),
    (1986, 0.1849, 0.2428, 0.0110),
    (1987, 0.0581, -0.0496, 0.0443),
    (1988, 0.1654, 0.0822, 0.0442),
    (1989, 0.3148, 0.1769, 0.0465),
    (1990, -0.0306, 0.0624, 0.0611),
    (1991, 0.3023, 0.1500, 0.0306),
    (1992, 0.0749, 0.0936, 0.0290),
    (1993, 0.0997, 0.1421, 0.0275),
    (1994, 0.0133, -0.0804, 0.0267),
    (1995, 0.3720, 0.2348, 0.0254),
    (1996, 0.2268, 0.0143, 0.0332),
    (1997, 0.3310, 0.0994, 0.0170),
    (1998, 0.2834, 0.1492, 0.0161),
    (1999, 0.2089, -0.0825, 0.0268),
    (2000, -0.0903, 0.1666, 0.0339),
    (2001, -0.1185, 0.0557, 0.0155),
    (2002, -0.2197, 0.1512, 0.0238),
    (2003, 0.2836, 0.0038, 0.0188),
    (2004, 0.1074, 0.0449, 0.0326),
    (2005, 0.0483, 0.0287, 0.0342),
    (2006, 0.1561, 0.0196, 0.0254),
    (2007, 0.0548, 0.1021, 0.0408),
    (2008, -0.3655, 0.2010, 0.0009),
    (2009, 0.2594, -0.1112, 0.0272),
    (2010, 0.1482, 0.0846, 0.0150),
    (2011, 0.0210, 0.1604, 0.0296),
    (2012, 0.1589, 0.0297, 0.0174),
    (2013, 0.3215, -0.0910, 0.0150),
    (2014, 0.1352, 0.1075, 0.0076),
    (2015, 0.0138, 0.0128, 0.0073),
    (2016, 0.1177, 0.0069, 0.0207),
    (2017, 0.2161, 0.0280, 0.0211),
    (2018, -0.0423, -0.0002, 0.0191),
    (2019, 0.3121, 0.0964, 0.0229),
    (2020, 0.1802, 0.1133, 0.0136),
    (2021, 0.2847, -0.0442, 0.0704),
    (2022, -0.1801, -0.1783, 0.0645),
    (2023, 0.2606, 0.0388, 0.0335),
    (2024, 0.2488, -0.0164, 0.0289),
]

REQUIRED_COLUMNS = ['year', 'stocks', 'bonds', 'inflation']


@dataclass(frozen=True)
class YearlyReturn:
    """One calendar year of market data (nominal and real)"""
    year: int
    stocks: float
    bonds: float
    inflation: float
    real_stocks: float
    real_bonds: float


class HistoricalReturnsProvider:
    """In-memory lookup over an annual returns table"""

    def __init__(self, frame: pd.DataFrame):
        missing = [col for col in REQUIRED_COLUMNS if col not in frame.columns]
        if missing:
            raise ValueError(f"Returns table is missing required columns: {', '.join(missing)}")

        table = frame[REQUIRED_COLUMNS].copy()
        table['year'] = table['year'].astype(int)
        table = table.sort_values('year').drop_duplicates('year').reset_index(drop=True)

        inflation_factor = 1 + table['inflation']
        table['real_stocks'] = (1 + table['stocks']) / inflation_factor - 1
        table['real_bonds'] = (1 + table['bonds']) / inflation_factor - 1

        self._table = table
        self._records = [
            YearlyReturn(
                year=int(row.year),
                stocks=float(row.stocks),
                bonds=float(row.bonds),
                inflation=float(row.inflation),
                real_stocks=float(row.real_stocks),
                real_bonds=float(row.real_bonds),
            )
            for row in table.itertuples(index=False)
        ]
        self._index = {record.year: i for i, record in enumerate(self._records)}

    @classmethod
    def from_csv(cls, filepath: str) -> 'HistoricalReturnsProvider':
        """
        Load a returns table from CSV.

        Args:
            filepath: CSV with columns year, stocks, bonds, inflation
                (nominal decimal fractions)

        Returns:
            HistoricalReturnsProvider over the file's rows
        """
        frame = pd.read_csv(filepath)
        logger.info("Loaded %d years of returns from %s", len(frame), filepath)
        return cls(frame)

    @property
    def table(self) -> pd.DataFrame:
        return self._table.copy()

    @property
    def records(self) -> List[YearlyReturn]:
        return list(self._records)

    def get_data_range(self) -> Tuple[int, int]:
        """First and last calendar year in the dataset"""
        if not self._records:
            return 0, 0
        return self._records[0].year, self._records[-1].year

    def get_valid_start_years(self, duration: int) -> List[int]:
        """Start years with at least `duration` consecutive years of data, ascending"""
        if duration <= 0 or not self._records:
            return []

        years = np.array([record.year for record in self._records])
        positions = np.arange(len(years))
        # Row index where each gap-free run of years starts, after the first
        run_starts = np.flatnonzero(np.diff(years) != 1) + 1
        run_ends = np.append(run_starts, len(years))
        # Length of the gap-free run remaining from each row
        run_lengths = run_ends[np.searchsorted(run_starts, positions, side='right')] - positions

        return [int(year) for year in years[run_lengths >= duration]]

    def get_available_simulation_count(self, duration: int) -> int:
        return len(self.get_valid_start_years(duration))

    def get_returns_for_range(self, start_year: int, duration: int) -> List[YearlyReturn]:
        """
        Consecutive yearly returns beginning at start_year.

        The result is shorter than `duration` when the data runs out or a
        year is missing; callers treat that as insufficient data.
        """
        start = self._index.get(start_year)
        if start is None or duration <= 0:
            return []

        returns = []
        expected_year = start_year
        for record in self._records[start:start + duration]:
            if record.year != expected_year:
                break
            returns.append(record)
            expected_year += 1
        return returns


_default_provider: Optional[HistoricalReturnsProvider] = None


def load_default_returns() -> pd.DataFrame:
    """Bundled dataset as a DataFrame with nominal columns"""
    return pd.DataFrame(_RAW_RETURNS, columns=REQUIRED_COLUMNS)


def get_default_provider() -> HistoricalReturnsProvider:
    global _default_provider
    if _default_provider is None:
        _default_provider = HistoricalReturnsProvider(load_default_returns())
        first_year, last_year = _default_provider.get_data_range()
        logger.debug("Built default returns provider for %d-%d", first_year, last_year)
    return _default_provider


def get_data_range() -> Tuple[int, int]:
    return get_default_provider().get_data_range()


def get_valid_start_years(duration: int) -> List[int]:
    return get_default_provider().get_valid_start_years(duration)


def get_available_simulation_count(duration: int) -> int:
    return get_default_provider().get_available_simulation_count(duration)


def get_returns_for_range(start_year: int, duration: int) -> List[YearlyReturn]:
    return get_default_provider().get_returns_for_range(start_year, duration)
