import pytest

from stats_insight_pipeline.intent import (
    KeywordIntentClassifier,
    analysis_classifier,
    chart_classifier,
    classify_columns,
    detect_language,
    find_mentioned_columns,
    parse_instructions,
)
from stats_insight_pipeline.schemas import Dataset


def test_default_fallback_without_keywords_or_columns():
    parsed = parse_instructions("please look at this file", ["Name", "Price"])
    assert parsed.analyses == ["descriptive", "correlation"]
    assert parsed.target_columns == []


def test_no_fallback_when_a_column_is_mentioned():
    parsed = parse_instructions("what about Price", ["Name", "Price"])
    assert parsed.analyses == []
    assert parsed.target_columns == ["Price"]


def test_columns_in_definition_order():
    parsed = parse_instructions("summary for Price and Name", ["Name", "Price", "Date"])
    assert parsed.target_columns == ["Name", "Price"]
    assert parsed.specific_requests.descriptive_for == ["Name", "Price"]


def test_mentions_are_case_insensitive_and_quoted():
    assert find_mentioned_columns('look at "PRICE"', ["Price", "Qty"]) == ["Price"]


def test_correlation_uses_consecutive_pairs():
    parsed = parse_instructions("correlation of height, weight and age", ["height", "weight", "age"])
    pairs = [(p.x, p.y) for p in parsed.specific_requests.correlation_pairs]
    assert pairs == [("height", "weight"), ("weight", "age")]
    assert "correlation" in parsed.analyses


def test_compare_groups_from_first_two_mentions():
    parsed = parse_instructions("compare salary by dept", ["salary", "dept"])
    assert "ttest" in parsed.analyses
    compare = parsed.specific_requests.compare_groups
    assert (compare.variable, compare.group_by) == ("salary", "dept")


def test_refinements_need_enough_mentions():
    parsed = parse_instructions("correlation please", ["a", "b"])
    assert parsed.specific_requests.correlation_pairs is None
    assert parsed.specific_requests.compare_groups is None


@pytest.mark.parametrize("text,kind", [
    ("סטטיסטיקה תיאורית", "descriptive"),
    ("מה הממוצע", "descriptive"),
    ("בדוק מתאם", "correlation"),
    ("Run a T-TEST", "ttest"),
    ("השווה בין הקבוצות", "ttest"),
    ("one-way ANOVA", "anova"),
])
def test_bilingual_analysis_keywords(text, kind):
    assert kind in analysis_classifier.detect(text)


def test_detect_keeps_table_order():
    assert analysis_classifier.detect("correlation and descriptive") == ["descriptive", "correlation"]


@pytest.mark.parametrize("text,kind", [
    ("show a histogram", "histogram"),
    ("היסטוגרמה של מחיר", "histogram"),
    ("bar chart", "bar"),
    ("גרף פיזור", "scatter"),
    ("line over time", "line"),
    ("boxplot please", "boxplot"),
])
def test_chart_keywords(text, kind):
    assert chart_classifier.mentions(text, kind)


def test_custom_classifier():
    classifier = KeywordIntentClassifier({"greeting": r"hello|שלום"})
    assert classifier.detect("Hello there") == ["greeting"]
    assert classifier.detect("") == []


@pytest.mark.parametrize("text,language", [
    ("write the code in R", "r"),
    ("R please", "r"),
    ("python, not r", "python"),
    ("run a t-test", "python"),
    ("correlation report", "python"),
    ("", "python"),
])
def test_detect_language(text, language):
    assert detect_language(text) == language


def test_parsed_language_field():
    assert parse_instructions("descriptive stats in R", ["x"]).language == "r"


def test_classify_columns():
    dataset = Dataset(
        rows=[
            {"id": 1, "name": "a", "score": "12", "flag": True, "empty": None},
            {"id": 2, "name": "b", "score": "n/a", "flag": False, "empty": ""},
        ],
        columns=["id", "name", "score", "flag", "empty"],
    )
    numeric, categorical = classify_columns(dataset)
    assert numeric == ["id", "score"]
    assert categorical == ["name", "flag"]
