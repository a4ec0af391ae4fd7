"""
Intent detection module using keyword patterns.

Rationale:
- Use regex keyword tables (Hebrew + English) to extract what the user asked for
- Fast and deterministic - no LLM call needed
- One classifier serves the instruction parser, the chart synthesizer and the
  orchestrator; each caller keeps its own fallback policy
"""

import logging
import math
import re
from typing import Dict, List, NamedTuple, Sequence

from .schemas import (
    ColumnPair,
    CompareGroups,
    Dataset,
    ParsedInstructions,
    SpecificRequests,
)
from .utils import is_missing, to_number

logger = logging.getLogger(__name__)

# Substring semantics on purpose: 'סטטיסטיק' must also match 'סטטיסטיקה'.
ANALYSIS_PATTERNS = {
    "descriptive": r"סטטיסטיק|תיאור|descriptive|mean|ממוצע|חציון|describe|summary",
    "correlation": r"מתאם|correlation|קורלצי|corr",
    "ttest": r"t-test|השווה|קבוצות|compare|group|בין|difference",
    "anova": r"anova|אנובה",
}

CHART_PATTERNS = {
    "histogram": r"היסטוגרמה|histogram",
    "bar": r"עמודות|bar",
    "scatter": r"פיזור|scatter",
    "line": r"קו|line",
    "boxplot": r"boxplot|תיבה",
}

# A standalone "R" (not part of a word or of "t-test"-like tokens)
R_LANGUAGE_PATTERN = re.compile(r"(?<![\w-])r(?![\w-])")


class KeywordIntentClassifier:
    """Maps free text to the kinds whose keyword pattern occurs in it (table order)."""

    def __init__(self, patterns: Dict[str, str]):
        self.patterns = {kind: re.compile(pattern) for kind, pattern in patterns.items()}

    def detect(self, text: str) -> List[str]:
        text_lower = (text or "").lower()
        return [kind for kind, pattern in self.patterns.items() if pattern.search(text_lower)]

    def mentions(self, text: str, kind: str) -> bool:
        return bool(self.patterns[kind].search((text or "").lower()))


analysis_classifier = KeywordIntentClassifier(ANALYSIS_PATTERNS)
chart_classifier = KeywordIntentClassifier(CHART_PATTERNS)


class ColumnClasses(NamedTuple):
    numeric: List[str]
    categorical: List[str]


def find_mentioned_columns(text: str, columns: Sequence[str]) -> List[str]:
    """
    Columns whose (lowercased) name occurs in the text, in column-definition order.
    A quoted mention ("Price" / 'Price') contains the bare name, so one check covers both.
    """
    text_lower = (text or "").lower()
    mentioned = []
    for column in columns:
        name = column.lower()
        if name and name in text_lower and column not in mentioned:
            mentioned.append(column)
    return mentioned


def classify_columns(dataset: Dataset) -> ColumnClasses:
    """
    numeric: at least one non-null value parses as a number.
    categorical: not numeric, but has at least one non-null value.
    """
    numeric: List[str] = []
    categorical: List[str] = []
    for column in dataset.columns:
        present = [v for v in dataset.column_values(column) if not is_missing(v)]
        if any(not math.isnan(to_number(v)) for v in present):
            numeric.append(column)
        elif present:
            categorical.append(column)
    return ColumnClasses(numeric, categorical)


def detect_language(text: str) -> str:
    text_lower = (text or "").lower()
    if "python" in text_lower:
        return "python"
    if R_LANGUAGE_PATTERN.search(text_lower):
        return "r"
    return "python"


def parse_instructions(instructions: str, columns: Sequence[str]) -> ParsedInstructions:
    """
    Turn free-text instructions plus the known column names into a ParsedInstructions.

    Args:
        instructions: user text, Hebrew and/or English
        columns: Dataset column names in file order

    Returns:
        ParsedInstructions with requested analyses, mentioned columns and refinements
    """
    mentioned = find_mentioned_columns(instructions, columns)
    analyses = analysis_classifier.detect(instructions)
    logger.info(f"Mentioned columns found: {mentioned}")

    specific = SpecificRequests()

    if "descriptive" in analyses and mentioned:
        specific.descriptive_for = list(mentioned)

    if "correlation" in analyses and len(mentioned) >= 2:
        # consecutive pairs: [a, b, c] -> (a, b), (b, c)
        specific.correlation_pairs = [
            ColumnPair(x=mentioned[i], y=mentioned[i + 1]) for i in range(len(mentioned) - 1)
        ]

    if "ttest" in analyses and len(mentioned) >= 2:
        # first mentioned is the measured variable, second the grouping one
        specific.compare_groups = CompareGroups(variable=mentioned[0], group_by=mentioned[1])

    if not analyses and not mentioned:
        analyses = ["descriptive", "correlation"]

    result = ParsedInstructions(
        analyses=analyses,
        target_columns=mentioned,
        language=detect_language(instructions),
        specific_requests=specific,
    )
    logger.info(f"Intent detection result: {result.model_dump()}")
    return result
