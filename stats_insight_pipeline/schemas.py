"""
Pydantic models shared by the pipeline and the API.

Rationale:
- Define simple, explicit input/output contracts so the frontend knows exactly what to expect.
- Dataset and results are created once per run and never mutated afterwards.
"""

from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

AnalysisKind = Literal["descriptive", "correlation", "ttest", "anova"]
ChartType = Literal["histogram", "bar", "scatter", "line", "boxplot"]
ResultType = Literal["descriptive", "correlation", "ttest", "chart"]


class Dataset(BaseModel):
    """Parsed tabular data: rows keyed by column name, columns in file order."""

    model_config = ConfigDict(frozen=True)

    rows: List[Dict[str, Any]] = Field(default_factory=list)
    columns: List[str] = Field(default_factory=list)
    file_name: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.columns

    def column_values(self, column: str) -> List[Any]:
        return [row.get(column) for row in self.rows]


class ColumnPair(BaseModel):
    x: str
    y: str


class CompareGroups(BaseModel):
    variable: str
    group_by: str


class SpecificRequests(BaseModel):
    descriptive_for: Optional[List[str]] = None
    correlation_pairs: Optional[List[ColumnPair]] = None
    compare_groups: Optional[CompareGroups] = None


class ParsedInstructions(BaseModel):
    analyses: List[AnalysisKind] = Field(default_factory=list)
    target_columns: List[str] = Field(default_factory=list)
    language: Literal["python", "r"] = "python"
    specific_requests: SpecificRequests = Field(default_factory=SpecificRequests)


class ChartConfig(BaseModel):
    type: ChartType
    title: str
    x_axis: str
    y_axis: Optional[str] = None
    aggregation: Optional[Literal["mean", "sum", "count"]] = None
    bins: Optional[int] = None


class GeneratedChart(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    config: ChartConfig
    data: List[Dict[str, Any]]
    title: str
    download_name: str


class ResultChart(BaseModel):
    type: ChartType
    data: List[Dict[str, Any]]
    x_key: str
    y_key: str


class AnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ResultType
    title: str
    data: Optional[Dict[str, Any]] = None
    chart: Optional[ResultChart] = None
    summary: Optional[str] = None
    p_value: Optional[float] = None
    coefficient: Optional[float] = None
    confidence: Optional[Tuple[Optional[float], Optional[float]]] = None
    significant: Optional[bool] = None
    variables: Optional[List[str]] = None
    groups: Optional[List[str]] = None
    sample_size: Optional[int] = None
    raw_data: Optional[List[Dict[str, Any]]] = None


class ChartPayload(GeneratedChart):
    chartjs: Dict[str, Any]


class PreviewResponse(BaseModel):
    file_name: str
    row_count: int
    columns: List[str]
    column_types: Dict[str, str]
    missing: Dict[str, int]
    rows: List[Dict[str, Any]]


class AnalysisResponse(BaseModel):
    file_name: Optional[str] = None
    parsed: Optional[ParsedInstructions] = None
    results: List[AnalysisResult] = Field(default_factory=list)
    charts: List[ChartPayload] = Field(default_factory=list)
    error: Optional[str] = None


class SessionResponse(BaseModel):
    session_id: str
    generation: int
    preview: PreviewResponse
