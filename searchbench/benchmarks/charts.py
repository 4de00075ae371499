from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from .aggregator import LatencySnapshot

LOGGER = logging.getLogger("searchbench.benchmark.charts")

CHART_DPI = 200

PERCENTILE_COLORS = {
    "p50": "#2E86AB",  # Blue
    "p95": "#F18F01",  # Orange
    "p99": "#C73E1D",  # Red
    "p999": "#A23B72",  # Purple
}

PERCENTILE_LABELS = {
    "p50": "P50",
    "p95": "P95",
    "p99": "P99",
    "p999": "P99.9",
}


def render_latency_histogram(
    samples: pd.DataFrame,
    snapshot: LatencySnapshot,
    chart_path: Path,
    title: str = "Query Latency Distribution",
) -> Path | None:
    """Render the retained latency samples with percentile markers.

    Returns ``None`` without writing anything when there are no samples.
    """
    if samples.empty or "latency_ms" not in samples.columns or snapshot.empty:
        LOGGER.warning("No latency data available for latency chart")
        return None

    with sns.axes_style("whitegrid"):
        fig, ax = plt.subplots(figsize=(12, 6))
    sns.histplot(
        data=samples,
        x="latency_ms",
        bins=min(100, max(10, len(samples) // 50)),
        color="#6A994E",
        edgecolor="white",
        linewidth=0.5,
        ax=ax,
    )

    for name, color in PERCENTILE_COLORS.items():
        value = getattr(snapshot, name)
        if value is None:
            continue
        ax.axvline(
            value,
            color=color,
            linestyle="--",
            linewidth=1.5,
            label=f"{PERCENTILE_LABELS[name]} = {value:.2f} ms",
        )

    ax.set_xlabel("Latency (ms)", fontweight="semibold", labelpad=10)
    ax.set_ylabel("Queries", fontweight="semibold", labelpad=10)
    ax.set_title(
        f"{title} (n={snapshot.count}, observed={snapshot.observed})",
        fontweight="bold",
        pad=15,
    )
    ax.set_xlim(left=0)
    ax.legend(loc="upper right", frameon=True, fancybox=True, shadow=True)
    ax.grid(True, alpha=0.3, linestyle="--", linewidth=0.5, axis="y")
    ax.set_axisbelow(True)
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)

    fig.tight_layout()
    fig.savefig(chart_path, dpi=CHART_DPI, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path
