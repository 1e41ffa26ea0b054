"""Palette for observed vs. modelled hydrographs."""

COLORS = {
    "obs": "#1f4e9c",
    "nwm": "#c0392b",
    "missing": "#aaaaaa",
}
