import pytest

from stats_insight_pipeline.ingestion import (
    UnreadableFileError,
    coerce_value,
    column_type,
    decode_bytes,
    detect_delimiter,
    load_dataset,
    parse_line,
)


def test_semicolon_wins_over_quoted_commas():
    lines = [
        'name;city;price;qty',
        '"Smith, John";"Tel Aviv, IL";10;2',
        '"Cohen, Dana";"Haifa, IL";12;1',
    ]
    assert detect_delimiter(lines) == ";"


def test_detect_delimiter_defaults_to_comma():
    assert detect_delimiter(["single column", "value"]) == ","


def test_tab_delimiter():
    assert detect_delimiter(["a\tb\tc", "1\t2\t3"]) == "\t"


def test_quoted_comma_stays_in_field():
    assert parse_line('a,"b,c",d', ",") == ["a", "b,c", "d"]


def test_doubled_quote_is_literal():
    assert parse_line('x,"say ""hi""",y', ",") == ["x", 'say "hi"', "y"]


@pytest.mark.parametrize("raw,delimiter,expected", [
    ("42", ",", 42),
    ("-3", ",", -3),
    ("1,234.5", ",", 1234.5),
    ("1.234,5", ";", 1234.5),
    ("3,5", ";", 3.5),
    ("abc", ",", "abc"),
    ("12abc", ",", "12abc"),
    ("", ",", None),
    ("   ", ",", None),
])
def test_coerce_value(raw, delimiter, expected):
    assert coerce_value(raw, delimiter) == expected


def test_coerce_value_int_vs_float_types():
    assert isinstance(coerce_value("7", ","), int)
    assert isinstance(coerce_value("7.0", ","), float)


def test_load_csv():
    dataset = load_dataset(b"Name,Price\nA,10\nB,12.5\n", "sales.csv")
    assert dataset.columns == ["Name", "Price"]
    assert dataset.rows == [{"Name": "A", "Price": 10}, {"Name": "B", "Price": 12.5}]
    assert dataset.file_name == "sales.csv"


def test_crlf_and_blank_lines():
    dataset = load_dataset(b"a,b\r\n1,2\r\n\r\n3,4\r\n", "x.csv")
    assert dataset.rows == [{"a": 1, "b": 2}, {"a": 3, "b": 4}]


def test_bom_is_stripped():
    dataset = load_dataset("\ufeffName,Price\nA,1\n".encode("utf-8"), "bom.csv")
    assert dataset.columns == ["Name", "Price"]


def test_hebrew_cp1255_fallback():
    raw = "שם,מחיר\nתפוח,5\n".encode("cp1255")
    dataset = load_dataset(raw, "hebrew.csv")
    assert dataset.columns == ["שם", "מחיר"]
    assert dataset.rows == [{"שם": "תפוח", "מחיר": 5}]


def test_utf8_hebrew_untouched():
    assert decode_bytes("שלום,world".encode("utf-8")) == "שלום,world"


def test_blank_and_duplicate_headers():
    dataset = load_dataset(b",Price,Price\nA,1,2\n", "x.csv")
    assert dataset.columns == ["Column_1", "Price", "Price_2"]


def test_duplicate_suffix_skips_existing_header():
    dataset = load_dataset(b"a,a_2,a,a\n1,2,3,4\n", "x.csv")
    assert dataset.columns == ["a", "a_2", "a_3", "a_4"]
    assert dataset.rows == [{"a": 1, "a_2": 2, "a_3": 3, "a_4": 4}]


def test_duplicate_suffix_skips_existing_header_in_excel(make_xlsx):
    raw = make_xlsx([["a", "a_2", "a"], [1, 2, 3]])
    dataset = load_dataset(raw, "dupes.xlsx")
    assert dataset.columns == ["a", "a_2", "a_3"]
    assert dataset.rows == [{"a": 1, "a_2": 2, "a_3": 3}]


def test_short_rows_get_missing_values():
    dataset = load_dataset(b"a,b,c\n1,2\n", "x.csv")
    assert dataset.rows == [{"a": 1, "b": 2, "c": None}]


def test_semicolon_file_european_numbers():
    dataset = load_dataset("item;price\nA;1.234,50\nB;3,5\n".encode("utf-8"), "eu.csv")
    assert [row["price"] for row in dataset.rows] == [1234.5, 3.5]


def test_empty_input_gives_empty_dataset():
    dataset = load_dataset(b"", "empty.csv")
    assert dataset.is_empty
    assert dataset.rows == []
    assert dataset.file_name == "empty.csv"


def test_binary_content_is_unreadable():
    with pytest.raises(UnreadableFileError):
        load_dataset(b"PK\x03\x04\x00\x00binary", "archive.csv")


def test_excel_first_sheet(make_xlsx):
    raw = make_xlsx([
        ["Name", "Score", None],
        ["Ann", 90, "1,200"],
        [None, None, None],
        ["Ben", 85.5, None],
    ])
    dataset = load_dataset(raw, "scores.xlsx")
    assert dataset.columns == ["Name", "Score", "Column_3"]
    assert dataset.rows == [
        {"Name": "Ann", "Score": 90, "Column_3": 1200},
        {"Name": "Ben", "Score": 85.5, "Column_3": None},
    ]


def test_corrupt_excel_is_unreadable():
    with pytest.raises(UnreadableFileError):
        load_dataset(b"definitely not a workbook", "broken.xlsx")


@pytest.mark.parametrize("values,expected", [
    ([1, 2.5, None], "numeric"),
    (["a", "b"], "text"),
    ([1, "a"], "mixed"),
    ([None, None], "unknown"),
    ([], "unknown"),
])
def test_column_type(values, expected):
    assert column_type(values) == expected
