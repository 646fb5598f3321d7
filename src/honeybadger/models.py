"""Honeycomb API resource records.

Fields left as ``None`` are omitted from request bodies, mirroring the API's
own "omit when empty" behaviour.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Record(BaseModel):
    """Base for every API record."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_body(self) -> bytes:
        """Serialize for use as a request body."""
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class AuthAPIKeyAccess(Record):
    events: bool | None = None
    markers: bool | None = None
    triggers: bool | None = None
    boards: bool | None = None
    queries: bool | None = None
    columns: bool | None = None
    create_datasets: bool | None = Field(default=None, alias="createDatasets")
    slos: bool | None = None
    recipients: bool | None = None
    private_boards: bool | None = Field(default=None, alias="privateBoards")


class AuthEnvironment(Record):
    name: str | None = None
    slug: str | None = None


class AuthTeam(Record):
    name: str | None = None
    slug: str | None = None


class Auth(Record):
    api_key_access: AuthAPIKeyAccess | None = None
    environment: AuthEnvironment | None = None
    team: AuthTeam | None = None


# ---------------------------------------------------------------------------
# Boards
# ---------------------------------------------------------------------------


class BoardGraphSettings(Record):
    hide_markers: bool = False
    log_scale: bool = False
    omit_missing_values: bool = False
    stacked_graphs: bool = False
    utc_xaxis: bool = False
    overlaid_charts: bool = False


class BoardQuery(Record):
    caption: str | None = None
    graph_settings: BoardGraphSettings | None = None
    # Enum: "graph" "table" "combo"
    query_style: str | None = None
    # Either the dataset name or its slug; responses always carry the name.
    dataset: str | None = None
    query_id: str | None = None
    query_annotation_id: str | None = None


class BoardLinks(Record):
    board_url: str | None = None


class Board(Record):
    name: str | None = None
    description: str | None = None
    style: str | None = None
    column_layout: str | None = None
    queries: list[BoardQuery] | None = None
    links: BoardLinks | None = None
    id: str | None = None


# ---------------------------------------------------------------------------
# Datasets
# ---------------------------------------------------------------------------


class Dataset(Record):
    name: str | None = None
    description: str | None = None
    # Maximum unpacking depth of nested JSON fields.
    expand_json_depth: int | None = None
    slug: str | None = None
    regular_columns_count: int | None = None
    last_written_at: str | None = None
    created_at: str | None = None


class DatasetDefinitionColumn(Record):
    # An empty name clears the mapping, possibly reverting to a default one.
    name: str | None = None
    # "column" or "derived_column"; ignored by the API on update.
    column_type: str | None = None


class DatasetDefinitions(Record):
    span_id: DatasetDefinitionColumn | None = None
    trace_id: DatasetDefinitionColumn | None = None
    parent_id: DatasetDefinitionColumn | None = None
    name: DatasetDefinitionColumn | None = None
    service_name: DatasetDefinitionColumn | None = None
    duration_ms: DatasetDefinitionColumn | None = None
    span_kind: DatasetDefinitionColumn | None = None
    annotation_type: DatasetDefinitionColumn | None = None
    link_span_id: DatasetDefinitionColumn | None = None
    link_trace_id: DatasetDefinitionColumn | None = None
    error: DatasetDefinitionColumn | None = None
    status: DatasetDefinitionColumn | None = None
    route: DatasetDefinitionColumn | None = None
    user: DatasetDefinitionColumn | None = None

    @classmethod
    def from_column_names(cls, **names: str | None) -> "DatasetDefinitions":
        """Build definitions from ``field=column name`` pairs, skipping unset ones."""
        columns = {
            field: DatasetDefinitionColumn(name=column)
            for field, column in names.items()
            if column is not None
        }
        return cls(**columns)


# ---------------------------------------------------------------------------
# Markers
# ---------------------------------------------------------------------------


class Marker(Record):
    # Unix time; defaults server side to the time the request arrives.
    start_time: int | None = None
    end_time: int | None = None
    message: str | None = None
    # Groups similar markers, e.g. "deploys".
    type: str | None = None
    url: str | None = None
    id: str | None = None
    # Populated from marker settings when listing.
    color: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class MarkerSetting(Record):
    type: str | None = None
    # Hexadecimal RGB, e.g. "#F96E11".
    color: str | None = None
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class QueryCalculation(Record):
    # COUNT, CONCURRENCY, SUM, AVG, COUNT_DISTINCT, HEATMAP, MAX, MIN,
    # P001 ... P999, RATE_AVG, RATE_SUM, RATE_MAX
    op: str | None = None
    column: str | None = None


class QueryFilter(Record):
    op: str | None = None
    column: str | None = None
    value: Any = None


class QueryOrder(Record):
    column: str | None = None
    op: str | None = None
    order: str | None = None


class QueryHaving(Record):
    calculate_op: str | None = None
    column: str | None = None
    op: str | None = None
    value: int | float | None = None


class Query(Record):
    id: str | None = None
    breakdowns: list[str] | None = None
    calculations: list[QueryCalculation] | None = None
    filters: list[QueryFilter] | None = None
    # "OR" matches any filter; the API default is "AND".
    filter_combination: str | None = None
    granularity: int | None = None
    orders: list[QueryOrder] | None = None
    limit: int | None = None
    start_time: int | None = None
    end_time: int | None = None
    time_range: int | None = None
    havings: list[QueryHaving] | None = None


class QueryResultRequest(Record):
    query_id: str | None = None
    disable_series: bool | None = None
    limit: int | None = None


class QueryResultLinks(Record):
    query_url: str | None = None
    graph_image_url: str | None = None


class QueryResultSeries(Record):
    time: str | None = None
    data: dict[str, Any] | None = None


class QueryResultRow(Record):
    data: dict[str, Any] | None = None


class QueryResultData(Record):
    series: list[QueryResultSeries] | None = None
    results: list[QueryResultRow] | None = None


class QueryResult(Record):
    query: Query | None = None
    id: str | None = None
    complete: bool = False
    data: QueryResultData | None = None
    links: QueryResultLinks | None = None
