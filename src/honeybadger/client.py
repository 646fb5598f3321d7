"""Honeycomb API client."""

import os
from typing import Any, Mapping, TypeVar

import click
import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from .formatters import format_dry_run
from .models import (
    Auth,
    Board,
    BoardQuery,
    Dataset,
    DatasetDefinitions,
    Marker,
    MarkerSetting,
    Query,
    QueryResult,
    QueryResultRequest,
    Record,
)

APP_NAME = "honeybadger"

# Set by CI.
BUILD_ID = os.environ.get("HONEYBADGER_BUILD_ID") or "dev"

USER_AGENT = f"{APP_NAME}/{BUILD_ID}"

TEAM_HEADER = "X-Honeycomb-Team"

DEFAULT_API_HOST = "https://api.honeycomb.io/"
DEFAULT_TIMEOUT = 10.0

# Datasets segment used for environment-wide markers, marker settings and queries.
ALL_DATASETS = "__all__"

VALID_METHODS = frozenset(
    {"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "CONNECT", "OPTIONS", "TRACE"}
)

SUCCESS_STATUS_CODES = frozenset({200, 201, 202, 203, 204, 205, 206, 207, 208, 226})

T = TypeVar("T")

logger = structlog.get_logger(__name__)


class HoneybadgerError(Exception):
    """API error with code, message and the request that caused it."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 0,
        body: str | None = None,
        request: dict | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.body = body
        self.request = request
        super().__init__(f"{code}: {message}")


def parse_api_host(api_host: str) -> httpx.URL:
    """Parse the configured base host, rejecting anything but absolute http(s) URLs."""
    try:
        url = httpx.URL(api_host)
    except (httpx.InvalidURL, TypeError) as exc:
        raise HoneybadgerError("CONFIG", f"Failed to parse URL {api_host}") from exc
    if url.scheme not in {"http", "https"} or not url.host:
        raise HoneybadgerError("CONFIG", f"Failed to parse URL {api_host}")
    return url


class HoneybadgerClient:
    """Thin wrapper around the Honeycomb REST API.

    Every call is a single round trip through :meth:`dispatch`. With
    ``dry_run`` set, requests are rendered to stdout instead of being sent.
    """

    def __init__(
        self,
        api_key: str,
        api_host: str = DEFAULT_API_HOST,
        timeout: float = DEFAULT_TIMEOUT,
        dry_run: bool = False,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key
        self.api_host = api_host
        self.timeout = timeout
        self.dry_run = dry_run
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _headers(self, extra: Mapping[str, str] | None) -> httpx.Headers:
        items = [
            ("User-Agent", USER_AGENT),
            ("Content-Type", "application/json"),
            (TEAM_HEADER, self.api_key),
        ]
        # Additive: extra values sit beside the mandatory ones, never replace them.
        if extra:
            items.extend(extra.items())
        return httpx.Headers(items)

    def dispatch(
        self,
        method: str,
        path: str,
        *,
        body: bytes | None = None,
        headers: Mapping[str, str] | None = None,
        response_type: Any = None,
    ) -> Any:
        """Send one request and decode the response into ``response_type``.

        ``response_type`` may be a record class or a generic alias such as
        ``list[Board]``. Returns ``None`` on dry runs, when no response type
        is given, and for empty response bodies.
        """
        context = {
            "method": method,
            "path": path,
            "body": body.decode("utf-8", errors="replace") if body else None,
        }
        if method not in VALID_METHODS:
            raise HoneybadgerError("VALIDATION", f"Invalid method {method}", request=context)

        try:
            url = parse_api_host(self.api_host).copy_with(path=path)
        except HoneybadgerError as exc:
            exc.request = context
            raise

        try:
            request = self._client.build_request(method, url, content=body, headers=self._headers(headers))
        except (httpx.HTTPError, httpx.InvalidURL, TypeError, ValueError) as exc:
            raise HoneybadgerError("REQUEST", str(exc), request=context) from exc

        if self.dry_run:
            click.echo(format_dry_run(request))
            return None

        try:
            resp = self._client.send(request)
        except httpx.TimeoutException as exc:
            raise HoneybadgerError("TIMEOUT", "Request timed out", request=context) from exc
        except httpx.RequestError as exc:
            raise HoneybadgerError("NETWORK", str(exc), request=context) from exc

        logger.info("request completed", method=method, url=str(url), status=resp.status_code)

        if resp.status_code not in SUCCESS_STATUS_CODES:
            raise HoneybadgerError(
                "HTTP",
                f"Failed with {resp.status_code} and message: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
                request=context,
            )

        if response_type is None or not resp.content:
            return None
        try:
            return TypeAdapter(response_type).validate_json(resp.content)
        except ValidationError as exc:
            raise HoneybadgerError(
                "SERIALIZATION",
                f"Unable to decode response: {exc}",
                status_code=resp.status_code,
                body=resp.text,
                request=context,
            ) from exc

    def _send(self, method: str, path: str, record: Record | None = None, response_type: Any = None) -> Any:
        body = None
        if record is not None:
            try:
                body = record.to_body()
            except (ValueError, TypeError) as exc:
                raise HoneybadgerError(
                    "SERIALIZATION",
                    f"Unable to encode {type(record).__name__}: {exc}",
                    request={"method": method, "path": path, "body": None},
                ) from exc
        return self.dispatch(method, path, body=body, response_type=response_type)

    # Auth

    def get_auth(self) -> Auth:
        return self._send("GET", "/1/auth", response_type=Auth)

    # Boards

    def create_board(self, board: Board) -> Board:
        return self._send("POST", "/1/boards", board, Board)

    def list_boards(self) -> list[Board]:
        return self._send("GET", "/1/boards", response_type=list[Board])

    def get_board(self, board_id: str) -> Board:
        return self._send("GET", f"/1/boards/{board_id}", response_type=Board)

    def update_board(self, board_id: str, board: Board) -> Board:
        """Replace a board's details, carrying over its existing queries.

        Read-modify-write with no concurrency guard: a change made between
        the GET and the PUT is overwritten.
        """
        existing = self.get_board(board_id) or Board()
        updated = board.model_copy(update={"queries": existing.queries})
        return self._send("PUT", f"/1/boards/{board_id}", updated, Board)

    def add_board_query(self, board_id: str, query: BoardQuery) -> Board:
        """Append a query to a board (read-modify-write, last writer wins)."""
        existing = self.get_board(board_id) or Board()
        queries = list(existing.queries or [])
        queries.append(query)
        updated = existing.model_copy(update={"queries": queries})
        return self._send("PUT", f"/1/boards/{board_id}", updated, Board)

    def delete_board(self, board_id: str) -> None:
        return self._send("DELETE", f"/1/boards/{board_id}")

    # Datasets

    def create_dataset(self, dataset: Dataset) -> Dataset:
        return self._send("POST", "/1/datasets", dataset, Dataset)

    def list_datasets(self) -> list[Dataset]:
        return self._send("GET", "/1/datasets", response_type=list[Dataset])

    def get_dataset(self, slug: str) -> Dataset:
        return self._send("GET", f"/1/datasets/{slug}", response_type=Dataset)

    def update_dataset(self, slug: str, dataset: Dataset) -> Dataset:
        return self._send("PUT", f"/1/datasets/{slug}", dataset, Dataset)

    def delete_dataset(self, slug: str) -> None:
        return self._send("DELETE", f"/1/datasets/{slug}")

    # Dataset definitions

    def get_dataset_definitions(self, slug: str) -> DatasetDefinitions:
        return self._send("GET", f"/1/dataset_definitions/{slug}", response_type=DatasetDefinitions)

    def update_dataset_definitions(self, slug: str, definitions: DatasetDefinitions) -> DatasetDefinitions:
        return self._send("PATCH", f"/1/dataset_definitions/{slug}", definitions, DatasetDefinitions)

    # Markers

    def create_marker(self, dataset: str, marker: Marker) -> Marker:
        return self._send("POST", f"/1/markers/{dataset}", marker, Marker)

    def list_markers(self, dataset: str = ALL_DATASETS) -> list[Marker]:
        return self._send("GET", f"/1/markers/{dataset}", response_type=list[Marker])

    def update_marker(self, dataset: str, marker: Marker) -> Marker:
        return self._send("PUT", f"/1/markers/{dataset}/{marker.id}", marker, Marker)

    def delete_marker(self, dataset: str, marker_id: str) -> Marker:
        return self._send("DELETE", f"/1/markers/{dataset}/{marker_id}", response_type=Marker)

    # Marker settings

    def create_marker_setting(self, dataset: str, setting: MarkerSetting) -> MarkerSetting:
        return self._send("POST", f"/1/marker_settings/{dataset}", setting, MarkerSetting)

    def list_marker_settings(self, dataset: str = ALL_DATASETS) -> list[MarkerSetting]:
        return self._send("GET", f"/1/marker_settings/{dataset}", response_type=list[MarkerSetting])

    def update_marker_setting(self, dataset: str, setting: MarkerSetting) -> MarkerSetting:
        return self._send("PUT", f"/1/marker_settings/{dataset}/{setting.id}", setting, MarkerSetting)

    def delete_marker_setting(self, dataset: str, setting_id: str) -> None:
        return self._send("DELETE", f"/1/marker_settings/{dataset}/{setting_id}")

    # Queries

    def create_query(self, dataset: str, query: Query) -> Query:
        return self._send("POST", f"/1/queries/{dataset}", query, Query)

    def get_query(self, dataset: str, query_id: str) -> Query:
        return self._send("GET", f"/1/queries/{dataset}/{query_id}", response_type=Query)

    def create_query_result(self, dataset: str, request: QueryResultRequest) -> QueryResult:
        return self._send("POST", f"/1/query_results/{dataset}", request, QueryResult)

    def get_query_result(self, dataset: str, query_result_id: str) -> QueryResult:
        return self._send("GET", f"/1/query_results/{dataset}/{query_result_id}", response_type=QueryResult)

    def close(self):
        self._client.close()
