import io

import pytest
from openpyxl import Workbook

from stats_insight_pipeline.schemas import Dataset


@pytest.fixture
def sales_dataset():
    rows = [
        {"Name": "A", "Price": 10, "Qty": 1, "Team": "north"},
        {"Name": "B", "Price": 12.5, "Qty": 3, "Team": "north"},
        {"Name": "C", "Price": 9, "Qty": 2, "Team": "south"},
        {"Name": "D", "Price": None, "Qty": 5, "Team": "south"},
        {"Name": "E", "Price": 15, "Qty": 4, "Team": "north"},
        {"Name": "F", "Price": 11, "Qty": 6, "Team": "south"},
    ]
    return Dataset(rows=rows, columns=["Name", "Price", "Qty", "Team"], file_name="sales.csv")


@pytest.fixture
def groups_dataset():
    rows = [{"team": "A", "score": v} for v in [1, 2, 3, 4, 5]]
    rows += [{"team": "B", "score": v} for v in [6, 7, 8, 9, 10]]
    return Dataset(rows=rows, columns=["team", "score"], file_name="groups.csv")


@pytest.fixture
def make_xlsx():
    def _make(records):
        workbook = Workbook()
        sheet = workbook.active
        for record in records:
            sheet.append(record)
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()
    return _make


@pytest.fixture
def large_dataset():
    rows = [{"x": i, "y": 2 * i + (i % 7)} for i in range(1200)]
    return Dataset(rows=rows, columns=["x", "y"], file_name="large.csv")
