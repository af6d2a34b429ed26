"""Interactive Plotly strategy lookup tool.

Two public functions:

    build_lookup_figure(chart)
        — One interactive heatmap per chart section (hard, soft, pairs).
    save_lookup_html(fig, path)
        — Export any figure to a self-contained HTML file.

Hover over any cell to see the hand, the dealer up-card, the best action and
its EV.  Figures open in a browser via ``fig.show()`` or embed in Jupyter
notebooks.
"""

from __future__ import annotations

import numpy as np
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from bjsolver.analysis.heat_maps import build_action_heatmap_data
from bjsolver.analysis.strategy_chart import ChartSection, StrategyChart
from bjsolver.solvers.composition_dp import ACTION_ORDER

# ─── Constants ────────────────────────────────────────────────────────────────

_ACTION_COLORS: list[str] = ["#d62728", "#2ca02c", "#1f77b4", "#ff7f0e", "#7f7f7f"]


def _discrete_colorscale(colors: list[str]) -> list[list]:
    """Step colorscale with one flat band per colour over [0, 1]."""
    n = len(colors)
    scale: list[list] = []
    for i, color in enumerate(colors):
        scale.append([i / n, color])
        scale.append([(i + 1) / n, color])
    return scale


_ACTION_COLORSCALE: list[list] = _discrete_colorscale(_ACTION_COLORS)


# ─── Hover text builder ───────────────────────────────────────────────────────


def _build_hover(section: ChartSection, col_labels: list[str]) -> list[list[str]]:
    """Return a rows×cols list of hover strings for one chart section.

    Each cell shows the hand, the up-card, the best action and its EV.
    """
    rows: list[list[str]] = []
    for r, row_label in enumerate(section.row_labels):
        row: list[str] = []
        for c, up_label in enumerate(col_labels):
            lines = [
                f"Hand: <b>{row_label}</b>",
                f"Dealer: {up_label}",
                f"Action: <b>{section.action_at(r, c).value}</b>",
                f"EV: {section.ev[r, c]:+.4f}",
            ]
            row.append("<br>".join(lines))
        rows.append(row)
    return rows


# ─── Trace builder ────────────────────────────────────────────────────────────


def _make_heatmap_trace(
    data: np.ndarray,
    hover_text: list[list[str]],
    row_labels: list[str],
    col_labels: list[str],
    *,
    name: str,
    showscale: bool = True,
) -> go.Heatmap:
    """Build one go.Heatmap trace for a strategy panel.

    NaN values in *data* are converted to None so Plotly renders them as
    blank (transparent) cells.
    """
    z = [[None if np.isnan(v) else v for v in row] for row in data.tolist()]
    n = len(ACTION_ORDER)
    return go.Heatmap(
        z=z,
        x=col_labels,
        y=row_labels,
        colorscale=_ACTION_COLORSCALE,
        zmin=-0.5,
        zmax=n - 0.5,
        text=hover_text,
        hovertemplate="%{text}<extra></extra>",
        showscale=showscale,
        colorbar={
            "title": "Action",
            "tickvals": list(range(n)),
            "ticktext": [a.value for a in ACTION_ORDER],
        },
        name=name,
    )


# ─── Public figure builder ────────────────────────────────────────────────────


def build_lookup_figure(chart: StrategyChart, title: str = "Strategy Lookup") -> go.Figure:
    """Build an interactive Plotly figure with one heatmap per chart section.

    Args:
        chart: StrategyChart from build_strategy_chart().
        title: Figure title.

    Returns:
        go.Figure with one heatmap trace per section in a 1×N subplot layout.

    Raises:
        ValueError: If the chart has no sections.
    """
    names = list(chart.sections)
    if not names:
        raise ValueError("Chart has no sections to plot.")

    fig = make_subplots(
        rows=1,
        cols=len(names),
        subplot_titles=[f"{name.capitalize()} hands" for name in names],
        horizontal_spacing=0.08,
    )

    for i, name in enumerate(names, start=1):
        section = chart.sections[name]
        fig.add_trace(
            _make_heatmap_trace(
                build_action_heatmap_data(chart, name),
                _build_hover(section, chart.col_labels),
                section.row_labels,
                chart.col_labels,
                name=name,
                showscale=(i == len(names)),
            ),
            row=1,
            col=i,
        )
        fig.update_yaxes(autorange="reversed", row=1, col=i)

    fig.update_layout(
        title_text=title,
        title_font_size=15,
        height=520,
        width=380 * len(names) + 120,
    )
    fig.update_yaxes(title_text="Player hand", col=1)
    fig.update_xaxes(title_text="Dealer up-card")
    return fig


# ─── HTML export ──────────────────────────────────────────────────────────────


def save_lookup_html(fig: go.Figure, path: str) -> None:
    """Save a Plotly figure to a self-contained HTML file.

    Plotly JS is loaded from the CDN so the file itself remains compact.
    """
    fig.write_html(path, include_plotlyjs="cdn")


# ─── Entry point ──────────────────────────────────────────────────────────────

if __name__ == "__main__":
    from bjsolver.analysis.strategy_chart import build_strategy_chart

    print("Solving single-deck S17 chart (hard and soft) …")
    chart = build_strategy_chart(sections=("hard", "soft"))
    save_lookup_html(build_lookup_figure(chart), "strategy_lookup.html")
    print("Saved: strategy_lookup.html")
