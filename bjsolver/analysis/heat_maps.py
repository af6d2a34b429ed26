"""Strategy heat maps for the composition-dependent solver.

Two public data-builder functions return NumPy matrices that can be used
programmatically or passed to the plot helpers:

    build_action_heatmap_data(chart, section)  — float matrix of action codes
    build_ev_heatmap_data(chart, section)      — float matrix of best-action EVs

Two public plot functions render matplotlib figures:

    plot_strategy_heatmaps(chart, title, ...)  — one action panel per section
    plot_ev_heatmaps(chart, title, ...)        — one EV panel per section

Matrix convention (both builders):
    Shape  : (rows, cols) — rows = hands of the section,
                            cols = dealer up-cards of the chart
    Values : action code in [0, 4] (index into ACTION_ORDER), or EV
"""

from __future__ import annotations

import matplotlib
import matplotlib.axes
import matplotlib.colors
import matplotlib.figure
import matplotlib.image
import matplotlib.pyplot as plt
import numpy as np

from bjsolver.analysis.strategy_chart import ACTION_SYMBOLS, StrategyChart
from bjsolver.solvers.composition_dp import ACTION_ORDER

# ─── Colormaps ────────────────────────────────────────────────────────────────

# One colour per action, in ACTION_ORDER: stand, hit, double, split, surrender.
_ACTION_COLORS: list[str] = ["#d62728", "#2ca02c", "#1f77b4", "#ff7f0e", "#7f7f7f"]
_NAN_COLOR: str = "#cccccc"


def _make_action_cmap() -> matplotlib.colors.ListedColormap:
    cmap = matplotlib.colors.ListedColormap(_ACTION_COLORS)
    cmap.set_bad(color=_NAN_COLOR)
    return cmap


def _make_ev_cmap() -> matplotlib.colors.Colormap:
    """RdYlGn gradient: red = losing, green = winning."""
    cmap = matplotlib.colormaps["RdYlGn"].copy()
    cmap.set_bad(color=_NAN_COLOR)
    return cmap


_ACTION_CMAP: matplotlib.colors.Colormap = _make_action_cmap()
_EV_CMAP: matplotlib.colors.Colormap = _make_ev_cmap()


# ─── Data builders ────────────────────────────────────────────────────────────


def build_action_heatmap_data(chart: StrategyChart, section: str) -> np.ndarray:
    """Return the action-code matrix of one chart section as float64.

    Raises:
        KeyError: If the chart was built without that section.
    """
    return chart.sections[section].actions.astype(np.float64)


def build_ev_heatmap_data(chart: StrategyChart, section: str) -> np.ndarray:
    return chart.sections[section].ev.copy()


# ─── Rendering helper ─────────────────────────────────────────────────────────


def _render_panel(
    ax: matplotlib.axes.Axes,
    data: np.ndarray,
    row_labels: list[str],
    col_labels: list[str],
    *,
    actions: bool,
    ev_limit: float = 1.0,
) -> matplotlib.image.AxesImage:
    """Render one heat-map panel onto *ax* and return the AxesImage.

    Sets axis ticks, tick labels, and cell annotations.  The caller is
    responsible for setting title, xlabel, and ylabel.
    """
    masked = np.ma.masked_invalid(data)
    if actions:
        im = ax.imshow(
            masked,
            cmap=_ACTION_CMAP,
            vmin=-0.5,
            vmax=len(ACTION_ORDER) - 0.5,
            aspect="auto",
        )
    else:
        im = ax.imshow(masked, cmap=_EV_CMAP, vmin=-ev_limit, vmax=ev_limit, aspect="auto")

    ax.set_xticks(range(len(col_labels)))
    ax.set_xticklabels(col_labels, fontsize=9)
    ax.set_yticks(range(len(row_labels)))
    ax.set_yticklabels(row_labels, fontsize=9)

    for r in range(data.shape[0]):
        for c in range(data.shape[1]):
            val = data[r, c]
            if np.isnan(val):
                continue
            if actions:
                text = ACTION_SYMBOLS[ACTION_ORDER[int(val)]]
                text_color = "white"
            else:
                text = f"{val:+.2f}"
                text_color = "black" if abs(val) < 0.5 * ev_limit else "white"
            ax.text(
                c,
                r,
                text,
                ha="center",
                va="center",
                fontsize=8,
                color=text_color,
                fontweight="bold",
            )

    return im


def _plot_sections(
    chart: StrategyChart,
    title: str,
    *,
    actions: bool,
    show: bool,
    save_path: str | None,
) -> matplotlib.figure.Figure:
    names = list(chart.sections)
    if not names:
        raise ValueError("Chart has no sections to plot.")

    fig, axes = plt.subplots(1, len(names), figsize=(5 * len(names), 6), squeeze=False)
    fig.suptitle(title, fontsize=13, fontweight="bold")

    ev_limit = max(1.0, max(float(np.nanmax(np.abs(s.ev))) for s in chart.sections.values()))
    for ax, name in zip(axes[0], names):
        section = chart.sections[name]
        data = build_action_heatmap_data(chart, name) if actions else build_ev_heatmap_data(chart, name)
        im = _render_panel(
            ax,
            data,
            section.row_labels,
            chart.col_labels,
            actions=actions,
            ev_limit=ev_limit,
        )
        ax.set_title(f"{name.capitalize()} hands", fontsize=10)
        ax.set_xlabel("Dealer up-card", fontsize=9)
        ax.set_ylabel("Player hand", fontsize=9)
        if not actions:
            plt.colorbar(im, ax=ax, label="EV", fraction=0.046, pad=0.04)

    plt.tight_layout()

    if save_path is not None:
        fig.savefig(save_path, bbox_inches="tight", dpi=120)
    if show:
        plt.show()

    return fig


# ─── Public plot functions ────────────────────────────────────────────────────


def plot_strategy_heatmaps(
    chart: StrategyChart,
    title: str,
    *,
    show: bool = True,
    save_path: str | None = None,
) -> matplotlib.figure.Figure:
    """Plot one best-action panel per chart section in a single row.

    Cells are coloured by action (red=STAND, green=HIT, blue=DOUBLE,
    orange=SPLIT, grey=SURRENDER) and annotated with the action symbol.

    Args:
        chart:     StrategyChart from build_strategy_chart().
        title:     Figure suptitle.
        show:      If True, call plt.show() after rendering.
        save_path: If not None, save the figure to this path before showing.

    Returns:
        matplotlib.figure.Figure.
    """
    return _plot_sections(chart, title, actions=True, show=show, save_path=save_path)


def plot_ev_heatmaps(
    chart: StrategyChart,
    title: str,
    *,
    show: bool = True,
    save_path: str | None = None,
) -> matplotlib.figure.Figure:
    """Plot best-action EV panels (RdYlGn, symmetric around zero) with colorbars."""
    return _plot_sections(chart, title, actions=False, show=show, save_path=save_path)


# ─── Entry point ──────────────────────────────────────────────────────────────

if __name__ == "__main__":
    from bjsolver.analysis.strategy_chart import build_strategy_chart

    print("Solving single-deck S17 chart (hard and soft) …")
    chart = build_strategy_chart(sections=("hard", "soft"))
    plot_strategy_heatmaps(chart, "Single deck, S17", show=False, save_path="strategy_actions.png")
    plot_ev_heatmaps(chart, "Single deck, S17", show=False, save_path="strategy_ev.png")
    print("Saved: strategy_actions.png, strategy_ev.png")
