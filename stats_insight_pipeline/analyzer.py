"""
Core orchestration / pipeline.

Flow:
1. Receive inputs (dataset, instructions)
2. Parse instructions and synthesize charts independently (no shared state)
3. Classify columns and pick targets for each requested analysis family
4. Run the statistics primitives and wrap each outcome as an AnalysisResult
5. Append every chart as a "chart" result and return

An analysis family without qualifying columns or groups is skipped (logged, no result).
Rounding below is presentation only; nothing rounded is fed back into a computation.
"""

import logging
import math
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from .charts import category_label, chart_to_chartjs, generate_charts, pair_points
from .intent import ColumnClasses, classify_columns, parse_instructions
from .schemas import (
    AnalysisResponse,
    AnalysisResult,
    ChartPayload,
    Dataset,
    GeneratedChart,
    ParsedInstructions,
    ResultChart,
)
from .stats import (
    calculate_descriptive_stats,
    calculate_pearson_correlation,
    cohens_d_strength,
    correlation_strength,
    independent_t_test,
)
from .utils import numeric_column, round_value, to_number

logger = logging.getLogger(__name__)

EMPTY_DATASET_ERROR = "The uploaded file has no header row; nothing to analyze."

RAW_SAMPLE_ROWS = 50
MAX_SCATTER_POINTS = 500
MAX_AUTO_DESCRIPTIVE = 3

DESCRIPTIVE_DIGITS = 6
STATISTIC_DIGITS = 6
P_VALUE_DIGITS = 8


class AnalysisRun(NamedTuple):
    dataset: Dataset
    parsed: ParsedInstructions
    results: List[AnalysisResult]
    charts: List[GeneratedChart]


def _raw_sample(dataset: Dataset, columns: List[str]) -> List[Dict[str, Any]]:
    return [{column: row.get(column) for column in columns} for row in dataset.rows[:RAW_SAMPLE_ROWS]]


def _select_descriptive_targets(parsed: ParsedInstructions, numeric: List[str]) -> List[str]:
    explicit = [c for c in parsed.specific_requests.descriptive_for or [] if c in numeric]
    if explicit:
        return explicit
    targets = [c for c in parsed.target_columns if c in numeric]
    if targets:
        return targets
    return numeric[:MAX_AUTO_DESCRIPTIVE]


def _select_correlation_pairs(parsed: ParsedInstructions, numeric: List[str]) -> List[Tuple[str, str]]:
    explicit = [
        (pair.x, pair.y)
        for pair in parsed.specific_requests.correlation_pairs or []
        if pair.x in numeric and pair.y in numeric
    ]
    if explicit:
        return explicit
    targets = [c for c in parsed.target_columns if c in numeric]
    if len(targets) >= 2:
        return [(targets[0], targets[1])]
    if len(numeric) >= 2:
        return [(numeric[0], numeric[1])]
    return []


def _select_group_comparison(parsed: ParsedInstructions, classes: ColumnClasses) -> Optional[Tuple[str, str]]:
    numeric, categorical = classes
    compare = parsed.specific_requests.compare_groups
    if compare and compare.variable in numeric and compare.group_by in categorical:
        return compare.variable, compare.group_by

    target_numeric = [c for c in parsed.target_columns if c in numeric]
    target_categorical = [c for c in parsed.target_columns if c in categorical]
    if target_numeric and target_categorical:
        return target_numeric[0], target_categorical[0]

    if numeric and categorical:
        return numeric[0], categorical[0]
    return None


def descriptive_result(dataset: Dataset, column: str) -> AnalysisResult:
    summary = calculate_descriptive_stats(numeric_column(dataset.rows, column))
    data = {
        key: (value if isinstance(value, int) else round_value(value, DESCRIPTIVE_DIGITS))
        for key, value in summary.as_dict().items()
    }
    if summary.valid:
        text = (
            f"Mean = {summary.mean:.4f}, SD = {summary.std:.4f}, median = {summary.median:.4f} "
            f"(n = {summary.count}, missing = {summary.missing})"
        )
    else:
        text = f"No numeric values in {column} ({summary.missing} missing)"

    return AnalysisResult(
        type="descriptive",
        title=f"Descriptive Statistics - {column}",
        data=data,
        summary=text,
        variables=[column],
        sample_size=summary.count,
        raw_data=_raw_sample(dataset, [column]),
    )


def correlation_result(dataset: Dataset, x: str, y: str) -> AnalysisResult:
    result = calculate_pearson_correlation(
        numeric_column(dataset.rows, x), numeric_column(dataset.rows, y)
    )
    r = result.coefficient

    if result.valid:
        direction = "positive" if r > 0 else "negative" if r < 0 else "no"
        verdict = "significant" if result.significant else "not significant"
        text = (
            f"r = {r:.4f} ({correlation_strength(r)}, {direction}), p = {result.p_value:.6f}, "
            f"{verdict} at 0.05; R² = {r * r:.4f} (n = {result.n})"
        )
    else:
        text = f"Not enough paired values to estimate a correlation (n = {result.n})"

    return AnalysisResult(
        type="correlation",
        title=f"Correlation Analysis: {x} vs {y}",
        data={
            "r": round_value(r, STATISTIC_DIGITS),
            "r_squared": round_value(r * r, STATISTIC_DIGITS),
            "strength": correlation_strength(r),
            "n": result.n,
        },
        chart=ResultChart(
            type="scatter",
            data=pair_points(dataset.rows, x, y, MAX_SCATTER_POINTS),
            x_key=x,
            y_key=y,
        ),
        summary=text,
        coefficient=round_value(r, STATISTIC_DIGITS),
        p_value=round_value(result.p_value, P_VALUE_DIGITS),
        significant=result.significant,
        variables=[x, y],
        sample_size=result.n,
        raw_data=_raw_sample(dataset, [x, y]),
    )


def _group_values(dataset: Dataset, variable: str, group_by: str) -> Dict[str, List[float]]:
    """Finite variable values per group, groups in first-occurrence order."""
    groups: Dict[str, List[float]] = {}
    for row in dataset.rows:
        label = category_label(row.get(group_by))
        if label is None:
            continue
        values = groups.setdefault(label, [])
        value = to_number(row.get(variable))
        if math.isfinite(value):
            values.append(value)
    return groups


def ttest_result(dataset: Dataset, variable: str, group_by: str) -> Optional[AnalysisResult]:
    """Welch's t-test on the first two groups of `group_by`; None when it cannot run."""
    groups = _group_values(dataset, variable, group_by)
    if len(groups) < 2:
        logger.info(f"Skipping t-test: '{group_by}' has fewer than 2 groups")
        return None

    (label1, values1), (label2, values2) = list(groups.items())[:2]
    if len(values1) < 2 or len(values2) < 2:
        logger.info(f"Skipping t-test: groups '{label1}'/'{label2}' need at least 2 values each")
        return None

    result = independent_t_test(values1, values2)
    low, high = result.confidence95

    if result.valid:
        verdict = "significant" if result.significant else "not significant"
        text = (
            f"Mean {variable}: {label1} = {result.mean1:.4f}, {label2} = {result.mean2:.4f}; "
            f"difference = {result.mean_diff:.4f}, t({result.df:.2f}) = {result.statistic:.4f}, "
            f"p = {result.p_value:.6f} ({verdict}), Cohen's d = {result.cohens_d:.4f} "
            f"({cohens_d_strength(result.cohens_d)} effect)"
        )
    else:
        text = f"t-test not computed: {result.reason}"

    return AnalysisResult(
        type="ttest",
        title=f"T-Test: {variable} by {group_by} ({label1} vs {label2})",
        data={
            "statistic": round_value(result.statistic, STATISTIC_DIGITS),
            "df": round_value(result.df, STATISTIC_DIGITS),
            "mean_diff": round_value(result.mean_diff, STATISTIC_DIGITS),
            "cohens_d": round_value(result.cohens_d, STATISTIC_DIGITS),
            "effect_size": cohens_d_strength(result.cohens_d),
            "mean_group1": round_value(result.mean1, STATISTIC_DIGITS),
            "mean_group2": round_value(result.mean2, STATISTIC_DIGITS),
            "n_group1": result.n1,
            "n_group2": result.n2,
        },
        summary=text,
        p_value=round_value(result.p_value, P_VALUE_DIGITS),
        confidence=(round_value(low, STATISTIC_DIGITS), round_value(high, STATISTIC_DIGITS)),
        significant=result.significant,
        variables=[variable, group_by],
        groups=[label1, label2],
        sample_size=result.n1 + result.n2,
        raw_data=_raw_sample(dataset, [variable, group_by]),
    )


def chart_result(chart: GeneratedChart) -> AnalysisResult:
    config = chart.config
    return AnalysisResult(
        type="chart",
        title=chart.title,
        data={"chart_id": chart.id, "download_name": chart.download_name},
        chart=ResultChart(
            type=config.type,
            data=chart.data,
            x_key=config.x_axis,
            y_key=config.y_axis or "count",
        ),
        variables=[c for c in (config.x_axis, config.y_axis) if c],
    )


def run_analysis(dataset: Dataset, instructions: str) -> AnalysisRun:
    """
    Single synchronous pass over an immutable Dataset.
    Same (dataset, instructions) always yields the same results.
    """
    parsed = parse_instructions(instructions, dataset.columns)
    charts = generate_charts(dataset, instructions)
    classes = classify_columns(dataset)
    numeric, _ = classes
    results: List[AnalysisResult] = []

    if "descriptive" in parsed.analyses:
        for column in _select_descriptive_targets(parsed, numeric):
            results.append(descriptive_result(dataset, column))

    if "correlation" in parsed.analyses:
        pairs = _select_correlation_pairs(parsed, numeric)
        if not pairs:
            logger.info("Skipping correlation: fewer than 2 numeric columns")
        for x, y in pairs:
            results.append(correlation_result(dataset, x, y))

    if "ttest" in parsed.analyses:
        target = _select_group_comparison(parsed, classes)
        if target is None:
            logger.info("Skipping t-test: need a numeric and a categorical column")
        else:
            result = ttest_result(dataset, *target)
            if result is not None:
                results.append(result)

    if "anova" in parsed.analyses:
        logger.info("ANOVA requested; not supported, no result emitted")

    results.extend(chart_result(chart) for chart in charts)
    logger.info(f"Analysis produced {len(results)} results and {len(charts)} charts")
    return AnalysisRun(dataset, parsed, results, charts)


def response_from_run(run: AnalysisRun) -> AnalysisResponse:
    """Response for the Dataset the run actually analyzed."""
    if run.dataset.is_empty:
        return AnalysisResponse(file_name=run.dataset.file_name, error=EMPTY_DATASET_ERROR)

    return AnalysisResponse(
        file_name=run.dataset.file_name,
        parsed=run.parsed,
        results=run.results,
        charts=[
            ChartPayload(**chart.model_dump(), chartjs=chart_to_chartjs(chart))
            for chart in run.charts
        ],
    )


def analyze(dataset: Dataset, instructions: str) -> AnalysisResponse:
    """
    Main analysis pipeline used by the API.

    Returns:
        AnalysisResponse with parsed instructions, results and Chart.js-ready charts
    """
    if dataset.is_empty:
        return AnalysisResponse(file_name=dataset.file_name, error=EMPTY_DATASET_ERROR)

    return response_from_run(run_analysis(dataset, instructions))
