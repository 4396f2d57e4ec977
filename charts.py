"""
Plotly chart builders for historical backtest visualizations.
Creates figures for the percentile fan chart, ending-portfolio distribution,
per-start-year outcomes and single-path detail.
"""
import plotly.graph_objects as go
import plotly.express as px
from plotly.subplots import make_subplots
import numpy as np
from typing import Dict

from historical import HistoricalSimulationResults, create_histogram_bins
from simulation import SimulationResult


def create_percentile_fan_chart(results: HistoricalSimulationResults,
                                title: str = "Portfolio Value Percentile Bands",
                                currency_symbol: str = "£") -> go.Figure:
    """
    Create filled area chart showing P10-P90 and P25-P75 bands with the median.

    Args:
        results: HistoricalSimulationResults
        title: Chart title
        currency_symbol: Prefix for axis and hover labels

    Returns:
        Plotly figure
    """
    points = results.percentiles_by_year
    years = np.array([point.year_index + 1 for point in points])
    bands = {
        key: np.array([getattr(point, key) for point in points]) / 1_000_000
        for key in ('p10', 'p25', 'p50', 'p75', 'p90')
    }

    fig = go.Figure()

    # Outer band: invisible upper edge, then fill down to the lower edge
    for upper, lower, fillcolor, name in (
            ('p90', 'p10', 'rgba(173,216,230,0.3)', 'P10-P90 Range'),
            ('p75', 'p25', 'rgba(70,130,180,0.3)', 'P25-P75 Range')):
        fig.add_trace(go.Scatter(
            x=years, y=bands[upper],
            mode='lines',
            line=dict(color='rgba(0,0,0,0)'),
            showlegend=False,
            hoverinfo='skip'
        ))
        fig.add_trace(go.Scatter(
            x=years, y=bands[lower],
            fill='tonexty',
            mode='lines',
            line=dict(color='lightblue'),
            name=name,
            fillcolor=fillcolor,
            customdata=np.column_stack([bands[lower], bands[upper]]),
            hovertemplate="<b>Year:</b> %{x}<br>" +
                         f"<b>{lower.upper()}:</b> {currency_symbol}" + "%{customdata[0]:.2f}M<br>" +
                         f"<b>{upper.upper()}:</b> {currency_symbol}" + "%{customdata[1]:.2f}M<br>" +
                         "<extra></extra>"
        ))

    fig.add_trace(go.Scatter(
        x=years, y=bands['p50'],
        mode='lines',
        line=dict(color='darkblue', width=3),
        name='P50 (Median)',
        hovertemplate="<b>Year:</b> %{x}<br>" +
                     f"<b>Median:</b> {currency_symbol}" + "%{y:.2f}M<br>" +
                     "<extra></extra>"
    ))

    fig.add_hline(y=results.config.initial_portfolio / 1_000_000, line_dash="dash",
                  line_color="gray", annotation_text="Initial Portfolio")

    fig.update_layout(
        title=f"{title} ({results.total_simulations} Historical Periods)",
        xaxis_title="Year of Retirement",
        yaxis_title=f"Portfolio Value ({currency_symbol} Millions, Real)",
        template="plotly_white",
        hovermode="x unified",
        legend=dict(x=0.02, y=0.98)
    )

    return fig


def create_ending_portfolio_histogram(results: HistoricalSimulationResults,
                                      num_bins: int = 8,
                                      title: str = "Ending Portfolio Distribution",
                                      currency_symbol: str = "£") -> go.Figure:
    """
    Create bar chart of ending portfolio values, with depleted runs as their own bar.

    Args:
        results: HistoricalSimulationResults
        num_bins: Number of value bins for successful runs
        title: Chart title
        currency_symbol: Prefix for bin labels

    Returns:
        Plotly figure
    """
    bins = create_histogram_bins(results, num_bins=num_bins, currency_symbol=currency_symbol)

    fig = go.Figure()

    fig.add_trace(go.Bar(
        x=[histogram_bin.label if histogram_bin.is_failed else histogram_bin.range for histogram_bin in bins],
        y=[histogram_bin.count for histogram_bin in bins],
        marker_color=['indianred' if histogram_bin.is_failed else 'lightblue' for histogram_bin in bins],
        marker_line_color='darkblue',
        marker_line_width=1,
        customdata=[histogram_bin.percentage for histogram_bin in bins],
        hovertemplate="<b>%{x}</b><br>" +
                     "<b>Periods:</b> %{y}<br>" +
                     "<b>Share:</b> %{customdata:.1f}%<br>" +
                     "<extra></extra>"
    ))

    stats_text = (
        f"Success: {results.success_rate:.1f}% • "
        f"{results.total_simulations} Periods"
    )

    fig.update_layout(
        title=dict(
            text=f"{title}<br><sub>{stats_text}</sub>",
            x=0.5,
            xanchor='center'
        ),
        xaxis_title="Ending Portfolio Value",
        yaxis_title="Number of Historical Periods",
        template="plotly_white",
        showlegend=False,
        margin=dict(t=100, b=50, l=50, r=50)
    )

    return fig


def create_start_year_outcomes_chart(results: HistoricalSimulationResults,
                                     title: str = "Outcome by Retirement Start Year",
                                     currency_symbol: str = "£") -> go.Figure:
    """
    Create bar chart of inflation-adjusted ending value for every start year.

    Depleted periods are drawn in red at zero height with the failure year
    in the hover text.
    """
    simulations = results.simulations
    start_years = [sim.start_year for sim in simulations]
    final_real_millions = [sim.final_portfolio_real / 1_000_000 for sim in simulations]
    hover_detail = [
        f"Lasted all {sim.years_lasted} years" if sim.success
        else f"Depleted in {sim.failure_year} after {sim.years_lasted} years"
        for sim in simulations
    ]

    fig = go.Figure()

    fig.add_trace(go.Bar(
        x=start_years,
        y=final_real_millions,
        marker_color=['green' if sim.success else 'red' for sim in simulations],
        customdata=hover_detail,
        hovertemplate="<b>Start Year:</b> %{x}<br>" +
                     f"<b>Ending Value (Real):</b> {currency_symbol}" + "%{y:.2f}M<br>" +
                     "%{customdata}<br>" +
                     "<extra></extra>"
    ))

    fig.update_layout(
        title=title,
        xaxis_title="Retirement Start Year",
        yaxis_title=f"Ending Portfolio ({currency_symbol} Millions, Real)",
        template="plotly_white",
        showlegend=False
    )

    return fig


def create_simulation_path_chart(simulation: SimulationResult,
                                 title: str = "Portfolio Path",
                                 currency_symbol: str = "£") -> go.Figure:
    """
    Create two-panel chart for one start year: portfolio value and annual cash flows.

    Args:
        simulation: SimulationResult with yearly data
        title: Chart title
        currency_symbol: Prefix for axis labels

    Returns:
        Plotly figure
    """
    rows = simulation.yearly_data
    years = [row.year for row in rows]

    fig = make_subplots(
        rows=2, cols=1,
        subplot_titles=('Portfolio Value', 'Annual Cash Flows'),
        vertical_spacing=0.08
    )

    fig.add_trace(
        go.Scatter(x=years, y=[row.portfolio_end / 1_000_000 for row in rows],
                   name='Portfolio (End of Year)',
                   line=dict(color='darkblue', width=2),
                   hovertemplate="<b>Year:</b> %{x}<br>" +
                                f"<b>Portfolio:</b> {currency_symbol}" + "%{y:.2f}M<br>" +
                                "<extra></extra>"),
        row=1, col=1
    )

    fig.add_trace(
        go.Bar(x=years, y=[row.withdrawal / 1000 for row in rows], name='Withdrawal',
               marker_color='lightcoral',
               hovertemplate="<b>Year:</b> %{x}<br>" +
                            f"<b>Withdrawal:</b> {currency_symbol}" + "%{y:.0f}K<br>" +
                            "<extra></extra>"),
        row=2, col=1
    )

    fig.add_trace(
        go.Bar(x=years, y=[row.extra_income / 1000 for row in rows], name='Extra Income',
               marker_color='lightgreen',
               hovertemplate="<b>Year:</b> %{x}<br>" +
                            f"<b>Extra Income:</b> {currency_symbol}" + "%{y:.0f}K<br>" +
                            "<extra></extra>"),
        row=2, col=1
    )

    if not simulation.success:
        fig.add_vline(x=simulation.failure_year, line_dash="solid", line_color="darkred",
                      annotation_text=f"Depleted {simulation.failure_year}")

    fig.update_layout(
        title=f"{title} (Start {simulation.start_year})",
        template="plotly_white",
        hovermode="x unified",
        barmode='group',
        height=600
    )

    fig.update_xaxes(title_text="Year", row=2, col=1)
    fig.update_yaxes(title_text=f"Value ({currency_symbol} Millions)", row=1, col=1)
    fig.update_yaxes(title_text=f"Amount ({currency_symbol}000s)", row=2, col=1)

    return fig


def create_success_rate_comparison(scenarios: Dict[str, HistoricalSimulationResults],
                                   title: str = "Success Rate Comparison") -> go.Figure:
    """Create bar chart comparing success rates across scenarios"""
    scenario_names = list(scenarios.keys())
    success_rates = [results.success_rate for results in scenarios.values()]
    colors = px.colors.qualitative.Set1

    fig = go.Figure()

    fig.add_trace(go.Bar(
        x=scenario_names,
        y=success_rates,
        marker_color=[colors[i % len(colors)] for i in range(len(scenario_names))],
        marker_line_color='darkblue',
        marker_line_width=1,
        hovertemplate="<b>%{x}</b><br>" +
                     "<b>Success Rate:</b> %{y:.1f}%<br>" +
                     "<extra></extra>"
    ))

    fig.update_layout(
        title=title,
        xaxis_title="Scenario",
        yaxis_title="Success Rate (%)",
        yaxis=dict(range=[0, 105]),
        template="plotly_white",
        showlegend=False
    )

    # Add percentage labels on bars
    for i, rate in enumerate(success_rates):
        fig.add_annotation(
            x=i,
            y=rate + 1,
            text=f"{rate:.1f}%",
            showarrow=False,
            font=dict(size=12)
        )

    return fig
