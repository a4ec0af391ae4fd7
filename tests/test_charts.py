import math

import pytest

from stats_insight_pipeline.charts import (
    MAX_CATEGORIES,
    aggregate_by_category,
    chart_to_chartjs,
    generate_boxplot_data,
    generate_charts,
    generate_histogram_data,
    pair_points,
)


@pytest.mark.parametrize("bins", [1, 3, 7, 15, 20])
def test_histogram_keeps_every_finite_value(bins):
    values = [0, 1, 2.5, 3.3, 7, 9.99, 10, 10, None, "abc", math.inf]
    rows = [{"v": v} for v in values]
    histogram = generate_histogram_data(rows, "v", bins)
    assert len(histogram) == bins
    assert sum(b["count"] for b in histogram) == 8


def test_histogram_maximum_lands_in_last_bin():
    rows = [{"v": v} for v in [0, 5, 10]]
    histogram = generate_histogram_data(rows, "v", 2)
    assert [b["count"] for b in histogram] == [1, 2]
    assert histogram[0]["bin"] == "0.0-5.0"
    assert histogram[-1]["bin_end"] == pytest.approx(10)


def test_histogram_constant_column():
    rows = [{"v": 4}] * 6
    histogram = generate_histogram_data(rows, "v", 5)
    assert histogram[0]["count"] == 6
    assert sum(b["count"] for b in histogram) == 6


def test_histogram_without_values_is_empty():
    assert generate_histogram_data([{"v": "x"}], "v", 10) == []


def test_aggregate_mean_in_first_occurrence_order():
    rows = [
        {"c": "b", "v": 3},
        {"c": "a", "v": 1},
        {"c": "b", "v": 4},
        {"c": None, "v": 100},
        {"c": "a", "v": "n/a"},
    ]
    assert aggregate_by_category(rows, "c", "v") == [
        {"c": "b", "v": 3.5, "n": 2},
        {"c": "a", "v": 1.0, "n": 1},
    ]


def test_aggregate_sum_count_and_rounding():
    rows = [{"c": 1.0, "v": 1 / 3}, {"c": 1, "v": 1 / 3}]
    assert aggregate_by_category(rows, "c", "v", "sum") == [{"c": "1", "v": 0.667, "n": 2}]
    assert aggregate_by_category(rows, "c", "v", "count")[0]["v"] == 2


def test_aggregate_value_column_named_count():
    rows = [{"shop": "a", "count": 10}, {"shop": "a", "count": 20}, {"shop": "b", "count": 5}]
    assert aggregate_by_category(rows, "shop", "count") == [
        {"shop": "a", "count": 15.0, "n": 2},
        {"shop": "b", "count": 5.0, "n": 1},
    ]


def test_aggregate_caps_categories():
    rows = [{"c": f"cat{i}", "v": i} for i in range(MAX_CATEGORIES + 5)]
    result = aggregate_by_category(rows, "c", "v")
    assert len(result) == MAX_CATEGORIES
    assert result[0]["c"] == "cat0"


def test_pair_points_skips_incomplete_rows_and_caps():
    rows = [{"x": i, "y": None if i == 1 else i * 2} for i in range(10)]
    points = pair_points(rows, "x", "y", 3)
    assert points == [{"x": 0.0, "y": 0.0}, {"x": 2.0, "y": 4.0}, {"x": 3.0, "y": 6.0}]


def test_boxplot_per_category():
    rows = [{"g": "a", "v": v} for v in [1, 2, 3, 4, 5]] + [{"g": "b", "v": 10}]
    boxes = generate_boxplot_data(rows, "v", "g")
    assert boxes[0] == {"g": "a", "min": 1, "q1": 2, "median": 3, "q3": 4, "max": 5, "n": 5}
    assert boxes[1]["median"] == 10


def test_boxplot_whole_column():
    boxes = generate_boxplot_data([{"v": v} for v in [1, 2, 3]], "v")
    assert boxes == [{"group": "v", "min": 1, "q1": 1.5, "median": 2, "q3": 2.5, "max": 3, "n": 3}]


def test_default_charts(sales_dataset):
    charts = generate_charts(sales_dataset, "")
    assert [c.id for c in charts] == ["default_histogram", "default_bar", "default_scatter"]
    histogram = charts[0]
    assert histogram.config.x_axis == "Price"
    assert histogram.config.bins == 15
    assert sum(b["count"] for b in histogram.data) == 5
    assert charts[1].config.x_axis == "Name"
    assert (charts[2].config.x_axis, charts[2].config.y_axis) == ("Price", "Qty")


def test_no_default_charts_when_a_column_is_mentioned(sales_dataset):
    assert generate_charts(sales_dataset, "tell me about Qty") == []


def test_requested_histogram(sales_dataset):
    charts = generate_charts(sales_dataset, "histogram of Qty")
    assert len(charts) == 1
    chart = charts[0]
    assert chart.id == "chart_1"
    assert chart.download_name == "histogram_chart_1"
    assert chart.config.x_axis == "Qty"
    assert len(chart.data) == 20


def test_bar_chart_falls_back_per_side(sales_dataset):
    charts = generate_charts(sales_dataset, "bar chart for Team")
    assert len(charts) == 1
    config = charts[0].config
    assert (config.x_axis, config.y_axis) == ("Team", "Price")
    assert [row["Team"] for row in charts[0].data] == ["north", "south"]


def test_bar_chart_cross_product(sales_dataset):
    charts = generate_charts(sales_dataset, "bar of Price and Qty by Team")
    assert [(c.config.x_axis, c.config.y_axis) for c in charts] == [("Team", "Price"), ("Team", "Qty")]


def test_scatter_and_line(sales_dataset):
    charts = generate_charts(sales_dataset, "scatter and line of Qty vs Price")
    assert [c.config.type for c in charts] == ["scatter", "line"]
    assert (charts[0].config.x_axis, charts[0].config.y_axis) == ("Price", "Qty")
    assert len(charts[0].data) == 5


def test_boxplot_request(sales_dataset):
    charts = generate_charts(sales_dataset, "boxplot of Qty by Team")
    assert len(charts) == 1
    assert [box["Team"] for box in charts[0].data] == ["north", "south"]


def test_chartjs_histogram_and_bar(sales_dataset):
    histogram, bar, scatter = generate_charts(sales_dataset, "")
    config = chart_to_chartjs(histogram)
    assert config["type"] == "bar"
    assert config["data"]["labels"] == [b["bin"] for b in histogram.data]
    assert config["options"]["scales"]["y"]["beginAtZero"] is True

    config = chart_to_chartjs(bar)
    assert config["data"]["labels"] == [row["Name"] for row in bar.data]

    config = chart_to_chartjs(scatter)
    assert config["type"] == "scatter"
    assert config["data"]["datasets"][0]["data"][0] == {"x": 10.0, "y": 1.0}


def test_generation_is_deterministic(sales_dataset):
    assert generate_charts(sales_dataset, "histogram bar scatter") == generate_charts(
        sales_dataset, "histogram bar scatter"
    )


def test_default_scatter_is_capped_at_500(large_dataset):
    scatter = next(c for c in generate_charts(large_dataset, "") if c.id == "default_scatter")
    assert len(scatter.data) == 500


def test_requested_scatter_and_line_are_capped_at_1000(large_dataset):
    charts = generate_charts(large_dataset, "scatter and line")
    assert [c.config.type for c in charts] == ["scatter", "line"]
    assert [len(c.data) for c in charts] == [1000, 1000]
