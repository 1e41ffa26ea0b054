"""Matplotlib styling for hydrograph figures."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
from typing import Iterator

import matplotlib as mpl


@dataclass
class StyleConfig:
    font_family: str = "DejaVu Sans"
    figure_dpi: int = 200
    line_width: float = 1.2
    axis_label_size: int = 14
    tick_label_size: int = 10


HYDROGRAPH_STYLE = StyleConfig()


def apply_style(config: StyleConfig | None = None) -> None:
    cfg = config or HYDROGRAPH_STYLE
    mpl.rcParams.update(
        {
            "figure.dpi": cfg.figure_dpi,
            "font.family": cfg.font_family,
            "lines.linewidth": cfg.line_width,
            "axes.labelsize": cfg.axis_label_size,
            "xtick.labelsize": cfg.tick_label_size,
            "ytick.labelsize": cfg.tick_label_size,
            "axes.grid": True,
            "grid.color": "#dddddd",
            "grid.linewidth": 0.6,
        }
    )


@contextlib.contextmanager
def temporary_style(config: StyleConfig | None = None) -> Iterator[None]:
    prev = mpl.rcParams.copy()
    apply_style(config)
    try:
        yield
    finally:
        mpl.rcParams.update(prev)
