"""
Export artifacts built from analysis results.

- results_to_csv: sectioned CSV (UTF-8 BOM so Excel opens Hebrew text correctly)
- generate_script: a re-runnable Python (pandas/scipy/matplotlib) or R script that
  recomputes every emitted result from the original file
"""

import csv
import io
import json
import os
from datetime import datetime
from typing import List, Optional

from .schemas import AnalysisResult
from .utils import file_stem

BOM = "\ufeff"
SEPARATOR = "-" * 40


def _format_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, (list, tuple)):
        return ", ".join(_format_value(v) for v in value)
    return str(value)


def results_to_csv(results: List[AnalysisResult], file_name: str, generated_at: Optional[datetime] = None) -> str:
    """Title line, separator line, then "key","value" pairs per result; metadata footer last."""
    generated_at = generated_at or datetime.now()
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")

    writer.writerow(["Analysis Results"])
    writer.writerow([])

    for result in results:
        writer.writerow([result.title])
        writer.writerow([SEPARATOR])
        for key, value in (result.data or {}).items():
            writer.writerow([key, _format_value(value)])
        if result.coefficient is not None:
            writer.writerow(["Coefficient", _format_value(result.coefficient)])
        if result.p_value is not None:
            writer.writerow(["P-Value", _format_value(result.p_value)])
        if result.confidence is not None:
            low, high = result.confidence
            writer.writerow(["95% CI", f"[{_format_value(low)}, {_format_value(high)}]"])
        if result.summary:
            writer.writerow(["Summary", result.summary])
        if result.variables:
            writer.writerow(["Variables", ", ".join(result.variables)])
        if result.sample_size is not None:
            writer.writerow(["Sample Size", str(result.sample_size)])
        writer.writerow([])

    writer.writerow(["Metadata"])
    writer.writerow([SEPARATOR])
    writer.writerow(["Date", generated_at.strftime("%Y-%m-%d")])
    writer.writerow(["Time", generated_at.strftime("%H:%M:%S")])
    writer.writerow(["Source File", file_name])
    writer.writerow(["Result Count", str(len(results))])

    return BOM + buffer.getvalue()


def results_filename(file_name: str) -> str:
    return f"{file_stem(file_name)}_results.csv"


def script_filename(file_name: str, language: str = "python") -> str:
    extension = "R" if language == "r" else "py"
    return f"{file_stem(file_name)}_analysis.{extension}"


def _comment_block(text: str) -> str:
    lines = (text or "").strip().splitlines() or ["(none)"]
    return "\n".join(f"#   {line}" for line in lines)


def _is_spreadsheet(file_name: str) -> bool:
    return os.path.splitext(file_name)[1].lower() in (".xlsx", ".xls")


def _python_section(result: AnalysisResult) -> str:
    variables = result.variables or []

    if result.type == "descriptive":
        return f"describe({variables[0]!r})\n"

    if result.type == "correlation":
        return f"correlate({variables[0]!r}, {variables[1]!r})\n"

    if result.type == "ttest" and result.groups:
        return (
            f"welch_t_test({variables[0]!r}, {variables[1]!r}, "
            f"{result.groups[0]!r}, {result.groups[1]!r})\n"
        )

    if result.type == "chart" and result.chart:
        chart = result.chart
        name = (result.data or {}).get("download_name", chart.type)
        if chart.type == "histogram":
            return f"histogram({chart.x_key!r}, {len(chart.data)}, {name!r})\n"
        if chart.type == "bar":
            return f"bar_means({chart.x_key!r}, {chart.y_key!r}, {name!r})\n"
        if chart.type in ("scatter", "line"):
            return f"xy_plot({chart.type!r}, {chart.x_key!r}, {chart.y_key!r}, {name!r})\n"
        if chart.type == "boxplot":
            by = chart.x_key if chart.x_key != chart.y_key else None
            return f"boxplot({chart.y_key!r}, {by!r}, {name!r})\n"
    return ""


PYTHON_TEMPLATE = '''#!/usr/bin/env python3
# Data analysis script
# Source file: {file_name}
# Generated on: {generated_at}
# Instructions:
{instructions}

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from scipy import stats

{loader}


def numeric(column):
    return pd.to_numeric(df[column], errors="coerce")


def describe(column):
    values = numeric(column)
    valid = values.dropna()
    print(f"\\n=== Descriptive statistics: {{column}} ===")
    print(f"count={{valid.count()}} missing={{values.isna().sum()}}")
    print(f"mean={{valid.mean():.6f}} std={{valid.std(ddof=1):.6f}}")
    print(f"min={{valid.min():.6f}} q1={{valid.quantile(0.25):.6f}} "
          f"median={{valid.median():.6f}} q3={{valid.quantile(0.75):.6f}} max={{valid.max():.6f}}")


def correlate(x, y):
    pair = pd.DataFrame({{"x": numeric(x), "y": numeric(y)}}).dropna()
    r, p = stats.pearsonr(pair["x"], pair["y"])
    print(f"\\n=== Pearson correlation: {{x}} vs {{y}} ===")
    print(f"r={{r:.6f}} p={{p:.8f}} n={{len(pair)}}")


def welch_t_test(variable, group_by, first, second):
    labels = df[group_by].astype(str).str.strip()
    a = numeric(variable)[labels == first].dropna()
    b = numeric(variable)[labels == second].dropna()
    t, p = stats.ttest_ind(a, b, equal_var=False)
    print(f"\\n=== Welch t-test: {{variable}} by {{group_by}} ({{first}} vs {{second}}) ===")
    print(f"t={{t:.6f}} p={{p:.8f}} mean_diff={{a.mean() - b.mean():.6f}}")


def histogram(column, bins, name):
    plt.figure(figsize=(10, 6))
    plt.hist(numeric(column).dropna(), bins=bins)
    plt.title(f"Distribution of {{column}}")
    plt.savefig(f"{{name}}.png", dpi=300, bbox_inches="tight")
    plt.close()


def bar_means(category, value, name):
    means = numeric(value).groupby(df[category].astype(str), sort=False).mean().head(20)
    plt.figure(figsize=(12, 6))
    means.plot(kind="bar")
    plt.title(f"Mean {{value}} by {{category}}")
    plt.tight_layout()
    plt.savefig(f"{{name}}.png", dpi=300, bbox_inches="tight")
    plt.close()


def xy_plot(kind, x, y, name):
    pair = pd.DataFrame({{"x": numeric(x), "y": numeric(y)}}).dropna()
    plt.figure(figsize=(10, 6))
    if kind == "line":
        plt.plot(pair["x"], pair["y"])
    else:
        plt.scatter(pair["x"], pair["y"], alpha=0.6)
    plt.xlabel(x)
    plt.ylabel(y)
    plt.savefig(f"{{name}}.png", dpi=300, bbox_inches="tight")
    plt.close()


def boxplot(value, by, name):
    plt.figure(figsize=(10, 6))
    if by is None:
        plt.boxplot(numeric(value).dropna())
    else:
        groups = numeric(value).groupby(df[by].astype(str), sort=False)
        labels, data = zip(*[(label, values.dropna()) for label, values in groups][:20])
        plt.boxplot(data, labels=labels)
    plt.title(f"Boxplot: {{value}}")
    plt.savefig(f"{{name}}.png", dpi=300, bbox_inches="tight")
    plt.close()


print(f"Data shape: {{df.shape}}")
{sections}
print("\\nAnalysis completed successfully!")
'''


def _r_string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _r_section(result: AnalysisResult) -> str:
    variables = result.variables or []

    if result.type == "descriptive":
        column = _r_string(variables[0])
        return f"print(summary(num({column})))\ncat('sd =', sd(num({column}), na.rm = TRUE), '\\n')\n"

    if result.type == "correlation":
        return f"print(cor.test(num({_r_string(variables[0])}), num({_r_string(variables[1])})))\n"

    if result.type == "ttest" and result.groups:
        value, group_by = _r_string(variables[0]), _r_string(variables[1])
        first, second = _r_string(result.groups[0]), _r_string(result.groups[1])
        return (
            f"labels <- trimws(as.character(df[[{group_by}]]))\n"
            f"print(t.test(num({value})[labels == {first}], num({value})[labels == {second}], var.equal = FALSE))\n"
        )

    if result.type == "chart" and result.chart:
        chart = result.chart
        x, y = _r_string(chart.x_key), _r_string(chart.y_key)
        if chart.type == "histogram":
            return f"hist(num({x}), breaks = {len(chart.data)}, main = {_r_string(result.title)})\n"
        if chart.type == "bar":
            return f"barplot(tapply(num({y}), df[[{x}]], mean, na.rm = TRUE), main = {_r_string(result.title)})\n"
        if chart.type in ("scatter", "line"):
            kind = "l" if chart.type == "line" else "p"
            return f"plot(num({x}), num({y}), type = '{kind}', xlab = {x}, ylab = {y})\n"
        if chart.type == "boxplot":
            if chart.x_key == chart.y_key:
                return f"boxplot(num({y}), main = {_r_string(result.title)})\n"
            return f"boxplot(num({y}) ~ df[[{x}]], main = {_r_string(result.title)})\n"
    return ""


R_TEMPLATE = '''# Data analysis script
# Source file: {file_name}
# Generated on: {generated_at}
# Instructions:
{instructions}

{loader}
num <- function(column) suppressWarnings(as.numeric(df[[column]]))

cat("Data shape:", nrow(df), "x", ncol(df), "\\n")
{sections}'''


def generate_script(
    results: List[AnalysisResult],
    file_name: str,
    instructions: str,
    language: str = "python",
    generated_at: Optional[datetime] = None,
) -> str:
    """Script text documenting the instructions and recomputing each result."""
    generated_at = (generated_at or datetime.now()).isoformat(timespec="seconds")

    if language == "r":
        if _is_spreadsheet(file_name):
            loader = f"library(readxl)\ndf <- as.data.frame(read_excel({_r_string(file_name)}))"
        else:
            loader = f"df <- read.csv({_r_string(file_name)}, check.names = FALSE, fileEncoding = \"UTF-8-BOM\")"
        return R_TEMPLATE.format(
            file_name=file_name,
            generated_at=generated_at,
            instructions=_comment_block(instructions),
            loader=loader,
            sections="".join(_r_section(r) for r in results),
        )

    if _is_spreadsheet(file_name):
        loader = f"df = pd.read_excel({file_name!r})"
    else:
        loader = f'df = pd.read_csv({file_name!r}, sep=None, engine="python", encoding="utf-8-sig")'
    return PYTHON_TEMPLATE.format(
        file_name=file_name,
        generated_at=generated_at,
        instructions=_comment_block(instructions),
        loader=loader,
        sections="".join(_python_section(r) for r in results),
    )
