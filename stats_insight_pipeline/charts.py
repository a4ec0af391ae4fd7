"""
Chart request synthesizer.

Flow:
1. Classify columns and find mentioned columns (shared classifier in intent.py)
2. Map chart keywords in the instructions to ChartConfig requests
3. Materialize each request into plot-ready rows (binning, aggregation, point sampling)
4. With no request and no mentioned column, fall back to a default chart set
5. DETERMINISTICALLY convert any GeneratedChart to a Chart.js configuration
"""

import logging
import math
from collections import OrderedDict
from typing import Any, Dict, List, Optional

import numpy as np

from .intent import ColumnClasses, chart_classifier, classify_columns, find_mentioned_columns
from .schemas import ChartConfig, Dataset, GeneratedChart
from .stats import calculate_descriptive_stats
from .utils import to_number

logger = logging.getLogger(__name__)

REQUESTED_HISTOGRAM_BINS = 20
DEFAULT_HISTOGRAM_BINS = 15
MAX_CATEGORIES = 20
MAX_CHART_POINTS = 1000
MAX_DEFAULT_SCATTER_POINTS = 500


def category_label(value: Any) -> Optional[str]:
    """String form used for grouping; missing values have no category."""
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))
    label = str(value).strip()
    return label or None


def _finite_values(rows: List[Dict[str, Any]], column: str) -> np.ndarray:
    values = np.array([to_number(row.get(column)) for row in rows], dtype=float)
    return values[np.isfinite(values)]


def generate_histogram_data(rows: List[Dict[str, Any]], column: str, bins: int = DEFAULT_HISTOGRAM_BINS) -> List[Dict[str, Any]]:
    """
    Equal-width bins over [min, max]; each bin is [start, end) except the last,
    which also holds the maximum, so every finite value lands in exactly one bin.
    """
    values = _finite_values(rows, column)
    if len(values) == 0 or bins < 1:
        return []

    low = float(values.min())
    high = float(values.max())
    width = (high - low) / bins

    if width > 0:
        index = np.floor((values - low) / width).astype(int)
        index = np.clip(index, 0, bins - 1)
    else:
        index = np.zeros(len(values), dtype=int)
    counts = np.bincount(index, minlength=bins)

    histogram = []
    for i in range(bins):
        start = low + i * width
        end = low + (i + 1) * width
        histogram.append({
            "bin": f"{start:.1f}-{end:.1f}",
            "count": int(counts[i]),
            "range": f"{start:.2f} - {end:.2f}",
            "bin_start": start,
            "bin_end": end,
        })
    return histogram


def aggregate_by_category(
    rows: List[Dict[str, Any]],
    category_column: str,
    value_column: str,
    aggregation: str = "mean",
) -> List[Dict[str, Any]]:
    """
    Group by the category's string form (first-occurrence order), first 20 groups.
    Each row carries the group size under "n".
    """
    groups: "OrderedDict[str, List[float]]" = OrderedDict()
    for row in rows:
        category = category_label(row.get(category_column))
        value = to_number(row.get(value_column))
        if category is None or not math.isfinite(value):
            continue
        groups.setdefault(category, []).append(value)

    aggregated = []
    for category, values in list(groups.items())[:MAX_CATEGORIES]:
        if aggregation == "sum":
            result = sum(values)
        elif aggregation == "count":
            result = len(values)
        else:
            result = sum(values) / len(values)
        aggregated.append({
            category_column: category,
            value_column: round(float(result), 3),
            "n": len(values),
        })
    return aggregated


def pair_points(rows: List[Dict[str, Any]], x_column: str, y_column: str, limit: int) -> List[Dict[str, float]]:
    """Project two columns pairwise, keep rows where both are finite, cap to `limit`."""
    points = []
    for row in rows:
        x = to_number(row.get(x_column))
        y = to_number(row.get(y_column))
        if not (math.isfinite(x) and math.isfinite(y)):
            continue
        points.append({x_column: x, y_column: y})
        if len(points) >= limit:
            break
    return points


def _five_numbers(label_key: str, label: str, values: List[float]) -> Dict[str, Any]:
    summary = calculate_descriptive_stats(values)
    return {
        label_key: label,
        "min": round(summary.min, 3),
        "q1": round(summary.q1, 3),
        "median": round(summary.median, 3),
        "q3": round(summary.q3, 3),
        "max": round(summary.max, 3),
        "n": summary.count,
    }


def generate_boxplot_data(rows: List[Dict[str, Any]], value_column: str, category_column: Optional[str] = None) -> List[Dict[str, Any]]:
    """Five-number summary per category (first 20), or one box for the whole column."""
    if category_column is None:
        values = _finite_values(rows, value_column).tolist()
        return [_five_numbers("group", value_column, values)] if values else []

    groups: "OrderedDict[str, List[float]]" = OrderedDict()
    for row in rows:
        category = category_label(row.get(category_column))
        value = to_number(row.get(value_column))
        if category is None or not math.isfinite(value):
            continue
        groups.setdefault(category, []).append(value)

    return [
        _five_numbers(category_column, category, values)
        for category, values in list(groups.items())[:MAX_CATEGORIES]
    ]


def parse_chart_requests(instructions: str, classes: ColumnClasses, mentioned: List[str]) -> List[ChartConfig]:
    """Chart keywords -> ChartConfig list, preferring mentioned columns of the right type."""
    numeric, categorical = classes
    mentioned_numeric = [c for c in mentioned if c in numeric]
    mentioned_categorical = [c for c in mentioned if c in categorical]
    requested = chart_classifier.detect(instructions)
    requests: List[ChartConfig] = []

    if "histogram" in requested:
        for column in mentioned_numeric or numeric[:1]:
            requests.append(ChartConfig(
                type="histogram",
                title=f"Distribution of {column}",
                x_axis=column,
                bins=REQUESTED_HISTOGRAM_BINS,
            ))

    if "bar" in requested:
        for cat in mentioned_categorical or categorical[:1]:
            for num in mentioned_numeric or numeric[:1]:
                requests.append(ChartConfig(
                    type="bar",
                    title=f"Mean {num} by {cat}",
                    x_axis=cat,
                    y_axis=num,
                    aggregation="mean",
                ))

    pair = mentioned_numeric[:2] if len(mentioned_numeric) >= 2 else numeric[:2]

    if "scatter" in requested and len(pair) == 2:
        requests.append(ChartConfig(
            type="scatter",
            title=f"{pair[0]} vs {pair[1]}",
            x_axis=pair[0],
            y_axis=pair[1],
        ))

    if "line" in requested and len(pair) == 2:
        requests.append(ChartConfig(
            type="line",
            title=f"Trend: {pair[1]} over {pair[0]}",
            x_axis=pair[0],
            y_axis=pair[1],
        ))

    if "boxplot" in requested:
        value_column = (mentioned_numeric or numeric[:1] or [None])[0]
        category_column = (mentioned_categorical or categorical[:1] or [None])[0]
        if value_column is not None:
            title = f"Boxplot: {value_column}" + (f" by {category_column}" if category_column else "")
            requests.append(ChartConfig(
                type="boxplot",
                title=title,
                x_axis=category_column or value_column,
                y_axis=value_column,
            ))

    logger.info(f"Chart requests: {[r.type for r in requests]}")
    return requests


def process_data_for_chart(rows: List[Dict[str, Any]], config: ChartConfig) -> List[Dict[str, Any]]:
    if config.type == "histogram":
        return generate_histogram_data(rows, config.x_axis, config.bins or DEFAULT_HISTOGRAM_BINS)
    if config.type == "bar":
        return aggregate_by_category(rows, config.x_axis, config.y_axis, config.aggregation or "mean")
    if config.type in ("scatter", "line"):
        return pair_points(rows, config.x_axis, config.y_axis, MAX_CHART_POINTS)
    if config.type == "boxplot":
        category = config.x_axis if config.x_axis != config.y_axis else None
        return generate_boxplot_data(rows, config.y_axis, category)
    return []


def generate_default_charts(dataset: Dataset, classes: ColumnClasses) -> List[GeneratedChart]:
    """Histogram, mean bar and scatter, each only when its columns exist."""
    numeric, categorical = classes
    rows = dataset.rows
    charts: List[GeneratedChart] = []

    if numeric:
        column = numeric[0]
        config = ChartConfig(
            type="histogram",
            title=f"Distribution of {column}",
            x_axis=column,
            bins=DEFAULT_HISTOGRAM_BINS,
        )
        charts.append(GeneratedChart(
            id="default_histogram",
            config=config,
            data=generate_histogram_data(rows, column, DEFAULT_HISTOGRAM_BINS),
            title=config.title,
            download_name=f"histogram_{column}",
        ))

    if categorical and numeric:
        cat, num = categorical[0], numeric[0]
        config = ChartConfig(
            type="bar",
            title=f"Mean {num} by {cat}",
            x_axis=cat,
            y_axis=num,
            aggregation="mean",
        )
        charts.append(GeneratedChart(
            id="default_bar",
            config=config,
            data=aggregate_by_category(rows, cat, num, "mean"),
            title=config.title,
            download_name=f"bar_{num}_by_{cat}",
        ))

    if len(numeric) >= 2:
        x, y = numeric[0], numeric[1]
        config = ChartConfig(type="scatter", title=f"{x} vs {y}", x_axis=x, y_axis=y)
        charts.append(GeneratedChart(
            id="default_scatter",
            config=config,
            data=pair_points(rows, x, y, MAX_DEFAULT_SCATTER_POINTS),
            title=config.title,
            download_name=f"scatter_{x}_vs_{y}",
        ))

    return [chart for chart in charts if chart.data]


def generate_charts(dataset: Dataset, instructions: str) -> List[GeneratedChart]:
    """
    Produce the materialized charts for one analysis pass.
    Charts whose materialized data comes out empty are dropped.
    """
    classes = classify_columns(dataset)
    mentioned = find_mentioned_columns(instructions, dataset.columns)
    requests = parse_chart_requests(instructions, classes, mentioned)

    if not requests and not mentioned:
        return generate_default_charts(dataset, classes)

    charts = []
    for index, request in enumerate(requests):
        data = process_data_for_chart(dataset.rows, request)
        if not data:
            logger.info(f"Skipping {request.type} chart '{request.title}': no plottable data")
            continue
        charts.append(GeneratedChart(
            id=f"chart_{index + 1}",
            config=request,
            data=data,
            title=request.title,
            download_name=f"{request.type}_chart_{index + 1}",
        ))
    return charts


def chart_to_chartjs(chart: GeneratedChart) -> Dict[str, Any]:
    """
    DETERMINISTICALLY convert a GeneratedChart to a Chart.js configuration.
    Histograms render as bar charts over bin labels; boxplots target the
    chartjs-chart-boxplot plugin's "boxplot" type.
    """
    config = chart.config
    chart_type = config.type
    data = chart.data

    chartjs_config: Dict[str, Any] = {
        "type": chart_type,
        "data": {
            "labels": [],
            "datasets": []
        }
    }

    if chart_type == "histogram":
        chartjs_config["type"] = "bar"
        chartjs_config["data"]["labels"] = [row["bin"] for row in data]
        chartjs_config["data"]["datasets"].append({
            "label": config.x_axis,
            "data": [row["count"] for row in data]
        })

    elif chart_type == "bar":
        chartjs_config["data"]["labels"] = [row[config.x_axis] for row in data]
        chartjs_config["data"]["datasets"].append({
            "label": f"{config.aggregation or 'mean'} of {config.y_axis}",
            "data": [row[config.y_axis] for row in data]
        })

    elif chart_type in ("scatter", "line"):
        chartjs_config["data"]["datasets"].append({
            "label": chart.title,
            "data": [{"x": row[config.x_axis], "y": row[config.y_axis]} for row in data]
        })
        if chart_type == "line":
            chartjs_config["options"] = {"scales": {"x": {"type": "linear"}}}

    elif chart_type == "boxplot":
        label_key = config.x_axis if config.x_axis != config.y_axis else "group"
        chartjs_config["data"]["labels"] = [row[label_key] for row in data]
        chartjs_config["data"]["datasets"].append({
            "label": config.y_axis,
            "data": [
                {key: row[key] for key in ("min", "q1", "median", "q3", "max")}
                for row in data
            ]
        })

    # Add minimal options for certain chart types
    if chartjs_config["type"] == "bar":
        chartjs_config["options"] = {
            "scales": {
                "y": {
                    "beginAtZero": True
                }
            }
        }

    return chartjs_config
