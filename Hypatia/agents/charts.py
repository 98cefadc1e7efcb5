"""Chart.js configuration checks and default styling."""

from __future__ import annotations

import copy
import numbers
from typing import Any

CHART_TYPES = ("bar", "line", "scatter")

THEME_COLORS = [
    "rgba(0, 242, 254, 0.7)",
    "rgba(166, 74, 255, 0.7)",
    "rgba(255, 205, 86, 0.7)",
    "rgba(75, 192, 192, 0.7)",
    "rgba(255, 99, 132, 0.7)",
    "rgba(54, 162, 235, 0.7)",
]
BORDER_COLORS = [c.replace("0.7", "1") for c in THEME_COLORS]

AXIS_STYLE = {
    "ticks": {"color": "rgba(255, 255, 255, 0.7)"},
    "grid": {"color": "rgba(255, 255, 255, 0.1)"},
}


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid coordinate
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _mapping(value: Any) -> dict[str, Any]:
    """Dict values are merged into; anything else (true, "linear", None) is replaced."""
    return value if isinstance(value, dict) else {}


def validate_chart_config(config: Any, expected_type: str) -> list[str]:
    """
    Statically check a Chart.js config against the planned chart type.

    Returns:
        Problems found; an empty list means the config is renderable.
    """
    if not isinstance(config, dict):
        return ["Chart configuration must be a JSON object"]

    problems = []
    if config.get("type") != expected_type:
        problems.append(f'"type" must be "{expected_type}", got {config.get("type")!r}')

    data = config.get("data")
    if not isinstance(data, dict):
        problems.append('"data" must be an object')
        return problems

    datasets = data.get("datasets")
    if not isinstance(datasets, list) or not datasets:
        problems.append('"data.datasets" must be a non-empty array')
        return problems

    labels = data.get("labels")
    if expected_type in ("bar", "line"):
        if not isinstance(labels, list) or not labels:
            problems.append(f'"data.labels" must be a non-empty array for a {expected_type} chart')
            labels = None

    for i, dataset in enumerate(datasets):
        if not isinstance(dataset, dict):
            problems.append(f"Dataset {i} must be an object")
            continue
        points = dataset.get("data")
        if not isinstance(points, list) or not points:
            problems.append(f'Dataset {i} must have a non-empty "data" array')
            continue

        if expected_type == "scatter":
            bad = [
                j for j, p in enumerate(points)
                if not (isinstance(p, dict) and _is_number(p.get("x")) and _is_number(p.get("y")))
            ]
            if bad:
                problems.append(
                    f"Dataset {i} has {len(bad)} scatter point(s) that are not objects with numeric x and y "
                    f"(first at index {bad[0]})"
                )
        elif labels is not None and len(points) != len(labels):
            problems.append(
                f"Dataset {i} has {len(points)} values but there are {len(labels)} labels"
            )

    return problems


def ensure_chart_styling(config: dict[str, Any]) -> dict[str, Any]:
    """
    Return a copy with colors, borders and dark-theme axes filled in.

    Option blocks that are not objects are replaced by the defaults.
    """
    styled = copy.deepcopy(config)

    for index, dataset in enumerate(styled.get("data", {}).get("datasets", [])):
        if not dataset.get("backgroundColor"):
            if styled.get("type") in ("pie", "doughnut"):
                dataset["backgroundColor"] = list(THEME_COLORS)
            else:
                dataset["backgroundColor"] = THEME_COLORS[index % len(THEME_COLORS)]
        if not dataset.get("borderColor"):
            dataset["borderColor"] = BORDER_COLORS[index % len(BORDER_COLORS)]
        dataset.setdefault("borderWidth", 1)

    options = _mapping(styled.get("options"))
    scales = _mapping(options.get("scales"))
    plugins = _mapping(options.get("plugins"))
    legend = _mapping(plugins.get("legend"))

    styled["options"] = {
        "responsive": True,
        "maintainAspectRatio": False,
        **options,
        "scales": {
            **scales,
            "x": {**_mapping(scales.get("x")), **copy.deepcopy(AXIS_STYLE)},
            "y": {**_mapping(scales.get("y")), **copy.deepcopy(AXIS_STYLE)},
        },
        "plugins": {
            **plugins,
            "legend": {**legend, "labels": {"color": "rgba(255, 255, 255, 0.8)"}},
        },
    }
    return styled
