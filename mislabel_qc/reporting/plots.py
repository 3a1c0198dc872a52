"""
Plotting functions for cluster/label QC results.

All functions draw into a supplied Axes (or a new figure) and return the
Figure; saving and closing is left to the caller.
"""
import logging
from typing import Dict, List, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.colors import ListedColormap, to_rgb
from matplotlib.patches import Patch
from scipy.cluster.hierarchy import dendrogram
from scipy.spatial import cKDTree

from mislabel_qc.analysis.misclassification import MisclassificationReport
from mislabel_qc.clustering.linkage import MergeTree

logger = logging.getLogger(__name__)

# Colour-blind friendly palette (Okabe-Ito), repeated when there are more classes
CB_PALETTE = [
    "#000000", "#E69F00", "#56B4E9", "#009E73", "#F0E442", "#0072B2", "#D55E00",
    "#CC79A7", "#999999",
]
MARKERS = ["^", "o", "s", "D", "v", "P", "X", "*", "<", ">", "h", "p"]
MATCH_COLOR = "lightyellow"
MISMATCH_COLOR = "salmon"


def _sorted_levels(values: Sequence) -> List:
    levels = pd.unique(pd.Series(list(values), dtype=object)).tolist()
    try:
        return sorted(levels)
    except TypeError:
        return sorted(levels, key=str)


def class_colors(levels: Sequence) -> Dict:
    """Map each class/cluster level to a palette colour."""
    return {level: CB_PALETTE[i % len(CB_PALETTE)] for i, level in enumerate(levels)}


def plot_projection_with_voronoi(coordinates, targets: Sequence,
                                 labels: Optional[Sequence] = None,
                                 label_points: bool = False,
                                 ax: Optional[plt.Axes] = None,
                                 resolution: int = 400,
                                 axis_labels=("UMAP 1", "UMAP 2")) -> plt.Figure:
    """
    Scatter the first two projection dimensions over Voronoi cells.

    Each cell (the region closest to one sample) is tinted with that sample's
    class colour; points are coloured and shaped by class.
    """
    coords = np.asarray(coordinates, dtype=float)
    if coords.ndim != 2 or coords.shape[1] < 2:
        raise ValueError("The projection data must have at least two columns.")
    targets = list(targets)
    if len(targets) != coords.shape[0]:
        raise ValueError("The length of 'targets' must match the number of rows in the projection data.")
    if labels is None:
        labels = [str(i + 1) for i in range(coords.shape[0])]

    xy = coords[:, :2]
    levels = _sorted_levels(targets)
    colors = class_colors(levels)
    level_index = {level: i for i, level in enumerate(levels)}
    target_codes = np.array([level_index[t] for t in targets])

    if ax is None:
        fig, ax = plt.subplots(figsize=(7.2, 9))
    else:
        fig = ax.figure

    # Voronoi tessellation rendered as a nearest-sample raster
    span = np.ptp(xy, axis=0)
    span = np.where(span > 0, span, 1.0)
    lo, hi = xy.min(axis=0) - 0.05 * span, xy.max(axis=0) + 0.05 * span
    gx, gy = np.meshgrid(np.linspace(lo[0], hi[0], resolution), np.linspace(lo[1], hi[1], resolution))
    _, nearest = cKDTree(xy).query(np.column_stack([gx.ravel(), gy.ravel()]))
    cell_codes = target_codes[nearest].reshape(gx.shape)
    cmap = ListedColormap([to_rgb(colors[level]) for level in levels])
    ax.imshow(cell_codes, origin="lower", extent=(lo[0], hi[0], lo[1], hi[1]),
              cmap=cmap, vmin=-0.5, vmax=len(levels) - 0.5, alpha=0.3,
              interpolation="nearest", aspect="auto")

    for level in levels:
        mask = target_codes == level_index[level]
        ax.scatter(xy[mask, 0], xy[mask, 1], c=colors[level],
                   marker=MARKERS[level_index[level] % len(MARKERS)],
                   edgecolors="none", s=28, label=str(level))

    if label_points:
        for (x, y), text, code in zip(xy, labels, target_codes):
            ax.annotate(str(text), (x, y), xytext=(0, 5), textcoords="offset points",
                        ha="center", fontsize=7, fontweight="bold", color=colors[levels[code]])

    ax.set_xlim(lo[0], hi[0])
    ax.set_ylim(lo[1], hi[1])
    ax.set_xlabel(axis_labels[0])
    ax.set_ylabel(axis_labels[1])
    ax.legend(title="Target", loc="lower center", ncol=min(len(levels), 6),
              framealpha=0.2, fontsize=8)
    ax.grid(True, linestyle="--", linewidth=0.5, alpha=0.5)
    return fig


def plot_misclassification_heatmap(report: MisclassificationReport,
                                   title: str = "Cluster Assignments and Misclassifications",
                                   row_font_size: float = 6,
                                   ax: Optional[plt.Axes] = None) -> plt.Figure:
    """
    Tile plot with one row per sample and the columns Prior Class, Cluster,
    Misclassified. The subtitle states the misclassification rate.
    """
    frame = report.to_frame()
    prior = frame["prior_class"].astype(str).tolist()
    cluster = frame["cluster"].astype(str).tolist()
    levels = _sorted_levels(prior + cluster)
    colors = class_colors(levels)

    value_levels = levels + ["Not misclassified", "Misclassified"]
    fill = [colors[level] for level in levels] + [MATCH_COLOR, MISMATCH_COLOR]
    index = {value: i for i, value in enumerate(value_levels)}

    flags = ["Misclassified" if m else "Not misclassified" for m in frame["misclassified"]]
    codes = np.array([[index[p], index[c], index[f]] for p, c, f in zip(prior, cluster, flags)])

    if ax is None:
        fig, ax = plt.subplots(figsize=(4.8, 9))
    else:
        fig = ax.figure

    sns.heatmap(codes, cmap=ListedColormap(fill), vmin=-0.5, vmax=len(value_levels) - 0.5,
                cbar=False, linewidths=0.5, linecolor="white", ax=ax,
                xticklabels=["Prior Class", "Cluster", "Misclassified"],
                yticklabels=frame["sample_id"].astype(str).tolist())
    ax.tick_params(axis="y", labelsize=row_font_size, length=0)
    ax.tick_params(axis="x", rotation=90, length=0)

    handles = [Patch(facecolor=colors[level], label=f"Class/cluster {level}") for level in levels]
    handles += [Patch(facecolor=MATCH_COLOR, label="Not misclassified"),
                Patch(facecolor=MISMATCH_COLOR, label="Misclassified")]
    ax.legend(handles=handles, title="Assignment", loc="lower center", bbox_to_anchor=(0.5, 1.04),
              ncol=2, fontsize=7, framealpha=0.5)
    ax.set_title(f"{title}\nMisclassification rate: {report.rate_percent}%", fontsize=11, pad=70)
    return fig


def plot_dendrogram(tree: MergeTree, labels: Optional[Sequence] = None,
                    n_clusters: Optional[int] = None,
                    ax: Optional[plt.Axes] = None) -> plt.Figure:
    """Draw the Ward tree; with `n_clusters` the cut height is marked."""
    if ax is None:
        fig, ax = plt.subplots(figsize=(12, 5))
    else:
        fig = ax.figure

    threshold = tree.cut_height(n_clusters) if n_clusters else None
    dendrogram(
        tree.linkage_matrix(),
        labels=None if labels is None else [str(label) for label in labels],
        color_threshold=threshold,
        above_threshold_color="#999999",
        leaf_font_size=6,
        ax=ax,
    )
    if threshold is not None:
        ax.axhline(threshold, color=MISMATCH_COLOR, linestyle="--", linewidth=1,
                   label=f"cut for k={n_clusters}")
        ax.legend(loc="upper right")
    ax.set_ylabel(f"Height ({tree.method})")
    ax.set_title("Ward hierarchical clustering")
    return fig


def plot_combined(coordinates, targets: Sequence, report: MisclassificationReport,
                  labels: Optional[Sequence] = None, label_points: bool = False,
                  row_font_size: float = 6, figsize=(12, 9)) -> plt.Figure:
    """Projection/Voronoi plot and misclassification heatmap side by side."""
    fig, (ax_left, ax_right) = plt.subplots(
        1, 2, figsize=figsize, gridspec_kw={"width_ratios": [1.5, 1]}
    )
    plot_projection_with_voronoi(coordinates, targets, labels=labels,
                                 label_points=label_points, ax=ax_left)
    plot_misclassification_heatmap(report, row_font_size=row_font_size, ax=ax_right)
    fig.tight_layout()
    return fig
