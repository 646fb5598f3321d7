"""Honeybadger CLI - manage Honeycomb boards, datasets, markers and queries from the terminal."""

from __future__ import annotations

import json
import sys

import click
import structlog

from .client import ALL_DATASETS, DEFAULT_API_HOST, DEFAULT_TIMEOUT, HoneybadgerClient, HoneybadgerError
from .config import Settings, env_var_for, lookup_config_value, read_config_file, setup_logging
from .formatters import format_record
from .models import (
    Board,
    BoardGraphSettings,
    BoardQuery,
    Dataset,
    DatasetDefinitions,
    Marker,
    MarkerSetting,
    Query,
    QueryCalculation,
    QueryFilter,
    QueryResultRequest,
)

logger = structlog.get_logger(__name__)

_FILE_CONFIG_KEY = "honeybadger.file_config"

_SECTIONS = [
    ("Authorization Commands", ["auth"]),
    ("Board Commands", ["boards"]),
    ("Dataset Commands", ["datasets", "dataset_definitions"]),
    ("Marker Commands", ["markers", "marker_settings"]),
    ("Query Commands", ["queries"]),
]


def _file_config(ctx: click.Context) -> dict:
    root = ctx.find_root()
    if _FILE_CONFIG_KEY not in root.meta:
        try:
            root.meta[_FILE_CONFIG_KEY] = read_config_file()
        except HoneybadgerError as e:
            raise click.UsageError(e.message, ctx=ctx) from e
    return root.meta[_FILE_CONFIG_KEY][0]


class HoneybadgerContext(click.Context):
    """Context whose unset flags fall back to the config file."""

    def lookup_default(self, name: str, call: bool = True):
        value = super().lookup_default(name, call=call)
        if value is not None:
            return value

        param = next((p for p in self.command.params if p.name == name), None)
        if param is None:
            return lookup_config_value(_file_config(self), name)

        # Files are keyed by flag name (--id, --type), like the env vars.
        keys = [opt.lstrip("-") for opt in param.opts if opt.startswith("--")]
        for key in [*keys, name]:
            value = lookup_config_value(_file_config(self), key)
            if value is not None:
                break
        if value is not None and getattr(param, "multiple", False) and isinstance(value, str):
            return [value]
        return value


class HoneybadgerCommand(click.Command):
    context_class = HoneybadgerContext

    def __init__(self, *args, aliases=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.aliases = tuple(aliases)


class HoneybadgerGroup(click.Group):
    """Group with command aliases and optional sectioned help."""

    context_class = HoneybadgerContext
    command_class = HoneybadgerCommand
    group_class = type

    def __init__(self, *args, aliases=(), sections=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.aliases = tuple(aliases)
        self.sections = sections

    def get_command(self, ctx: click.Context, cmd_name: str):
        command = super().get_command(ctx, cmd_name)
        if command is not None:
            return command
        for candidate in self.commands.values():
            if cmd_name in getattr(candidate, "aliases", ()):
                return candidate
        return None

    def format_commands(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        if not self.sections:
            super().format_commands(ctx, formatter)
            return
        for title, names in self.sections:
            rows = []
            for name in names:
                command = self.commands.get(name)
                if command is None or command.hidden:
                    continue
                rows.append((name, command.get_short_help_str(formatter.width - 6 - len(name))))
            if rows:
                with formatter.section(title):
                    formatter.write_dl(rows)


def _option(*param_decls: str, **attrs):
    """``click.option`` bound to its HONEYBADGER_* environment variable."""
    long_name = next(decl for decl in param_decls if decl.startswith("--"))
    attrs.setdefault("envvar", env_var_for(long_name))
    return click.option(*param_decls, **attrs)


_dataset_option = _option(
    "--dataset",
    "-d",
    default=ALL_DATASETS,
    show_default=True,
    help="The dataset slug or use __all__ (or omit) for endpoints that support environment-wide operations.",
)


def _get_client(ctx: click.Context) -> HoneybadgerClient:
    client = ctx.obj.get("client")
    if client is not None:
        return client

    settings: Settings = ctx.obj["settings"]
    try:
        settings.validate()
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Invalid configuration.")
    client = HoneybadgerClient(
        settings.api_key,
        settings.api_host,
        timeout=settings.timeout,
        dry_run=settings.dry_run,
    )
    ctx.obj["client"] = client
    ctx.find_root().call_on_close(client.close)
    return client


def _emit_data(data: object) -> None:
    """Print a decoded response; empty responses and dry runs print nothing."""
    if data is None:
        return
    click.echo(format_record(data))


def _exit_code_for_error(err: HoneybadgerError) -> int:
    """Map failures to deterministic process exit codes."""
    if err.code in {"VALIDATION", "CONFIG"}:
        return 2
    if err.code in {"TIMEOUT", "NETWORK", "REQUEST"}:
        return 13
    if err.code == "SERIALIZATION":
        return 14
    if err.status_code in {401, 403}:
        return 10
    if err.status_code == 429:
        return 11
    if err.status_code == 404:
        return 12
    if err.status_code >= 500:
        return 15
    return 16


def _exit_with_error(ctx: click.Context, err: HoneybadgerError, message: str) -> None:
    callback = ctx.command.callback
    logger.error(
        message,
        _function=getattr(callback, "__name__", ctx.info_name),
        err=str(err),
        code=err.code,
        status=err.status_code,
        payload=err.request,
        response=err.body,
    )
    sys.exit(_exit_code_for_error(err))


@click.group(cls=HoneybadgerGroup, sections=_SECTIONS)
@_option(
    "--configkey",
    "-k",
    default=None,
    help="Honeycomb configuration key from https://ui.honeycomb.io/<team>/environments/<environment>/api_keys",
)
@_option(
    "--api_host",
    default=DEFAULT_API_HOST,
    hidden=True,
    help="The host to query, don't change it unless it's a hosted Honeycomb environment.",
)
@_option("--dry-run", is_flag=True, default=False, help="Print the request that would be sent without actually sending it.")
@_option("--timeout", type=float, default=DEFAULT_TIMEOUT, show_default=True, help="HTTP request timeout in seconds.")
@_option("--verbose", "-v", is_flag=True, default=False, help="Log every completed request to stderr.")
@click.pass_context
def main(ctx, configkey: str | None, api_host: str, dry_run: bool, timeout: float, verbose: bool):
    """Honeybadger - Tearing Into Honeycomb.

    Every flag can also be set with a HONEYBADGER_<FLAG> environment variable
    or in a honeybadger.json/.toml/.yaml file in the working directory.
    """
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = Settings(
        api_key=configkey,
        api_host=api_host,
        dry_run=dry_run,
        timeout=timeout,
        verbose=verbose,
    )


# ---------------------------------------------------------------------------
# auth
# ---------------------------------------------------------------------------


@main.group(aliases=["a"])
def auth():
    """Manage API keys.

    API keys can have various permissions and belong to a specific Environment.
    This command can be used to validate authentication for a key, to determine
    what authorizations have been granted to a key, and to determine the Team
    and Environment that a key belongs to.
    """


@auth.command(name="list", aliases=["ls", "get"])
@click.pass_context
def auth_list(ctx):
    """List authorizations granted for an API key.

    Note: a Honeycomb Classic API key returns an empty string for both of the
    environment values.
    """
    client = _get_client(ctx)
    try:
        _emit_data(client.get_auth())
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to list authorizations.")


# ---------------------------------------------------------------------------
# boards
# ---------------------------------------------------------------------------


@main.group(aliases=["b"])
def boards():
    """Manage Boards.

    Boards are a place to pin and save useful queries and graphs you want to
    retain for later reuse and reference.
    """


@boards.command(name="create", aliases=["add", "new"])
@_option("--name", "-n", required=True, help="The name of the Board.")
@_option("--description", "-d", default=None, help="A description of the Board.")
@_option("--column_layout", "-c", default=None, help="The number of columns to layout on the board.")
@click.pass_context
def boards_create(ctx, name, description, column_layout):
    """Create a Board without any Queries; these can be added after creation."""
    client = _get_client(ctx)
    board = Board(name=name, description=description, column_layout=column_layout)
    try:
        _emit_data(client.create_board(board))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to create a new board.")


@boards.command(name="list", aliases=["ls"])
@click.pass_context
def boards_list(ctx):
    """Retrieve all non-secret Boards within an environment."""
    client = _get_client(ctx)
    try:
        _emit_data(client.list_boards())
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to list boards.")


@boards.command(name="get")
@_option("--id", "-i", "board_id", required=True, help="The unique identifier (ID) of a Board.")
@click.pass_context
def boards_get(ctx, board_id):
    """Get a single Board by ID."""
    client = _get_client(ctx)
    try:
        _emit_data(client.get_board(board_id))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to get a single board.")


@boards.command(name="update", aliases=["up", "edit", "modify", "change", "set"])
@_option("--id", "-i", "board_id", required=True, help="The unique identifier (ID) of a Board.")
@_option("--name", "-n", required=True, help="The name of the Board.")
@_option("--description", "-d", default=None, help="A description of the Board.")
@_option("--column_layout", "-c", default=None, help="The number of columns to layout on the board.")
@click.pass_context
def boards_update(ctx, board_id, name, description, column_layout):
    """Update a Board by ID, leaving existing queries as-is."""
    client = _get_client(ctx)
    board = Board(name=name, description=description, column_layout=column_layout)
    try:
        _emit_data(client.update_board(board_id, board))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to update an existing board.")


@boards.command(name="delete", aliases=["rm", "remove", "del"])
@_option("--id", "-i", "board_id", required=True, help="The unique identifier (ID) of a Board.")
@click.pass_context
def boards_delete(ctx, board_id):
    """Delete a single Board by ID."""
    client = _get_client(ctx)
    try:
        _emit_data(client.delete_board(board_id))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to delete an existing board.")


@boards.command(name="add_query", aliases=["aq"])
@_option("--id", "-i", "board_id", required=True, help="The unique identifier (ID) of a Board.")
@_option("--caption", "-c", default=None, help="Descriptive text to contextualize the Query within the Board.")
@_option("--hide_markers", "-H", is_flag=True, default=False, help="Hide markers on the graph.")
@_option("--log_scale", "-L", is_flag=True, default=False, help="Use a log scale, rather than a linear scale.")
@_option("--omit_missing", "-O", is_flag=True, default=False, help="Omit missing values from the graph.")
@_option(
    "--stacked_graphs",
    "-S",
    is_flag=True,
    default=False,
    help="Display groups as stacked colored areas under their line graphs.",
)
@_option("--utc_xaxis", "-U", is_flag=True, default=False, help="Display the X axis in UTC.")
@_option(
    "--overlaid_charts",
    "-V",
    is_flag=True,
    default=False,
    help="Combine any visualized AVG, MIN, MAX, and PERCENTILE clauses into a single chart.",
)
@_option(
    "--style",
    "-s",
    default=None,
    type=click.Choice(["graph", "table", "combo"]),
    help="How the query should be displayed on the board.",
)
@_option("--dataset", "-d", default=None, help="The Dataset to Query, by name or slug.")
@_option("--query_id", "-q", default=None, help="The ID of a Query object.")
@_option(
    "--annotation_id",
    "-a",
    default=None,
    help="The ID of a Query Annotation that provides a name and description for the Query.",
)
@click.pass_context
def boards_add_query(
    ctx,
    board_id,
    caption,
    hide_markers,
    log_scale,
    omit_missing,
    stacked_graphs,
    utc_xaxis,
    overlaid_charts,
    style,
    dataset,
    query_id,
    annotation_id,
):
    """Add a Query to a Board."""
    client = _get_client(ctx)
    query = BoardQuery(
        caption=caption,
        graph_settings=BoardGraphSettings(
            hide_markers=hide_markers,
            log_scale=log_scale,
            omit_missing_values=omit_missing,
            stacked_graphs=stacked_graphs,
            utc_xaxis=utc_xaxis,
            overlaid_charts=overlaid_charts,
        ),
        query_style=style,
        dataset=dataset,
        query_id=query_id,
        query_annotation_id=annotation_id,
    )
    try:
        _emit_data(client.add_board_query(board_id, query))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to add a new query to a board.")


# ---------------------------------------------------------------------------
# datasets
# ---------------------------------------------------------------------------


@main.group(aliases=["d"])
def datasets():
    """Manage Datasets.

    A Dataset represents a collection of related events that come from the
    same source, or are related to the same source.
    """


@datasets.command(name="create", aliases=["add", "new"])
@_option("--name", "-n", required=True, help="The name of the dataset.")
@_option("--description", "-d", default=None, help="A description for the dataset.")
@_option("--expand_json_depth", "-e", type=int, default=None, help="The maximum unpacking depth of nested JSON fields.")
@click.pass_context
def datasets_create(ctx, name, description, expand_json_depth):
    """Create a Dataset.

    If a Dataset already exists by that name (or slug), the existing dataset
    is returned.
    """
    client = _get_client(ctx)
    dataset = Dataset(name=name, description=description, expand_json_depth=expand_json_depth)
    try:
        _emit_data(client.create_dataset(dataset))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to create a new dataset.")


@datasets.command(name="list", aliases=["ls"])
@click.pass_context
def datasets_list(ctx):
    """List all Datasets in an environment."""
    client = _get_client(ctx)
    try:
        _emit_data(client.list_datasets())
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to list datasets.")


@datasets.command(name="get")
@_option("--slug", "-s", required=True, help="The dataset slug.")
@click.pass_context
def datasets_get(ctx, slug):
    """Get a single Dataset by slug."""
    client = _get_client(ctx)
    try:
        _emit_data(client.get_dataset(slug))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to get a single dataset.")


@datasets.command(name="update", aliases=["up", "edit", "modify", "change", "set"])
@_option("--slug", "-s", required=True, help="The dataset slug.")
@_option("--description", "-d", default=None, help="A description for the dataset.")
@_option("--expand_json_depth", "-e", type=int, default=None, help="The maximum unpacking depth of nested JSON fields.")
@click.pass_context
def datasets_update(ctx, slug, description, expand_json_depth):
    """Update a Dataset's description or expand_json_depth setting.

    An omitted setting reverts to its default.
    """
    client = _get_client(ctx)
    dataset = Dataset(description=description, expand_json_depth=expand_json_depth)
    try:
        _emit_data(client.update_dataset(slug, dataset))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to update a dataset.")


@datasets.command(name="delete", aliases=["rm", "remove", "del"])
@_option("--slug", "-s", required=True, help="The dataset slug.")
@click.pass_context
def datasets_delete(ctx, slug):
    """Delete a Dataset by slug."""
    client = _get_client(ctx)
    try:
        _emit_data(client.delete_dataset(slug))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to delete a dataset.")


# ---------------------------------------------------------------------------
# dataset_definitions
# ---------------------------------------------------------------------------


_DEFINITION_FLAGS = [
    ("--span-id", "span_id", "The unique identifier (ID) for each span."),
    ("--trace-id", "trace_id", "The ID of the trace this span belongs to."),
    ("--parent-id", "parent_id", "The ID of this span's parent span."),
    ("--name", "name", "The name of the function or method where the span was created."),
    ("--service-name", "service_name", "The name of the instrumented service."),
    ("--duration-ms", "duration_ms", "How much time the span took, in milliseconds."),
    ("--span-kind", "span_kind", "The kind of Span, for example client or server."),
    ("--annotation-type", "annotation_type", "The type of span annotation, for example span_event or link."),
    ("--link-span-id", "link_span_id", "Links: the span to link to (with --link-trace-id)."),
    ("--link-trace-id", "link_trace_id", "Links: the trace to link to (with --link-span-id)."),
    ("--error", "error", "Use a Boolean or String to indicate error."),
    ("--status", "status", "Indicates the success, failure, or other status of a request."),
    ("--route", "route", "The HTTP URL or equivalent route processed by the request."),
    ("--user", "user", "The user making the request in the system."),
]


def _definition_options(f):
    for flag, field, help_text in reversed(_DEFINITION_FLAGS):
        f = _option(flag, field, default=None, help=f"{help_text} An empty value clears the mapping.")(f)
    return f


@main.group(name="dataset_definitions", aliases=["dd"])
def dataset_definitions():
    """Manage Dataset Definitions.

    Dataset definitions describe the fields with special meaning in the
    Dataset. Honeycomb creates them automatically when the Dataset is created.
    """


@dataset_definitions.command(name="update", aliases=["up", "edit", "modify", "change", "set"])
@_option("--slug", required=True, help="The dataset slug.")
@_definition_options
@click.pass_context
def dataset_definitions_update(ctx, slug, **columns):
    """Set or update one or more definitions for a Dataset.

    Only the definitions passed as flags are sent.
    """
    client = _get_client(ctx)
    definitions = DatasetDefinitions.from_column_names(**columns)
    try:
        _emit_data(client.update_dataset_definitions(slug, definitions))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to update a dataset definition.")


@dataset_definitions.command(name="get", aliases=["ls", "list"])
@_option("--slug", required=True, help="The dataset slug.")
@click.pass_context
def dataset_definitions_get(ctx, slug):
    """Get all Dataset Definitions for a Dataset."""
    client = _get_client(ctx)
    try:
        _emit_data(client.get_dataset_definitions(slug))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to get dataset definitions.")


# ---------------------------------------------------------------------------
# markers
# ---------------------------------------------------------------------------


def _marker_options(f):
    f = _option("--url", "-u", default=None, help="A target for the marker. Clicking the marker text opens this URL.")(f)
    f = _option("--type", "-t", "marker_type", default=None, help="Groups similar Markers, for example 'deploys'.")(f)
    f = _option("--msg", "-m", default=None, help="A message to describe this specific Marker.")(f)
    f = _option("--end_time", "-e", type=int, default=None, help="End time in Unix Time, for markers spanning a range.")(f)
    f = _option(
        "--start_time",
        "-s",
        type=int,
        default=None,
        help="Unix Time to place the Marker at. Defaults to the time the request arrives.",
    )(f)
    return f


@main.group(aliases=["m"])
def markers():
    """Manage Markers.

    Markers indicate points in time on graphs where interesting things happen,
    such as deploys or outages.
    """


@markers.command(name="create", aliases=["add", "new"])
@_dataset_option
@_marker_options
@click.pass_context
def markers_create(ctx, dataset, start_time, end_time, msg, marker_type, url):
    """Create a Marker in the specified dataset.

    To create an environment marker, use the __all__ dataset (or omit the
    dataset) and an API key associated with the desired environment.
    """
    client = _get_client(ctx)
    marker = Marker(start_time=start_time, end_time=end_time, message=msg, type=marker_type, url=url)
    try:
        _emit_data(client.create_marker(dataset, marker))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to create a new marker.")


@markers.command(name="list", aliases=["ls", "get"])
@_dataset_option
@click.pass_context
def markers_list(ctx, dataset):
    """List all Markers for a dataset."""
    client = _get_client(ctx)
    try:
        _emit_data(client.list_markers(dataset))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to list all markers.")


@markers.command(name="update", aliases=["up", "edit", "modify", "change", "set"])
@_dataset_option
@_option("--id", "-i", "marker_id", required=True, help="The unique identifier (ID) of a Marker.")
@_marker_options
@click.pass_context
def markers_update(ctx, dataset, marker_id, start_time, end_time, msg, marker_type, url):
    """Update a Marker in the specified dataset."""
    client = _get_client(ctx)
    marker = Marker(
        id=marker_id,
        start_time=start_time,
        end_time=end_time,
        message=msg,
        type=marker_type,
        url=url,
    )
    try:
        _emit_data(client.update_marker(dataset, marker))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to update an existing marker.")


@markers.command(name="delete", aliases=["rm", "remove", "del"])
@_dataset_option
@_option("--id", "-i", "marker_id", required=True, help="The unique identifier (ID) of a Marker.")
@click.pass_context
def markers_delete(ctx, dataset, marker_id):
    """Delete a Marker in the specified dataset."""
    client = _get_client(ctx)
    try:
        _emit_data(client.delete_marker(dataset, marker_id))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to delete an existing marker.")


# ---------------------------------------------------------------------------
# marker_settings
# ---------------------------------------------------------------------------


_marker_setting_type_option = _option(
    "--type",
    "-t",
    "setting_type",
    required=True,
    help="Groups similar Markers. All Markers of the same type appear with the same color on the graph.",
)
_marker_setting_color_option = _option(
    "--color",
    "-c",
    required=True,
    help='Color for this marker type as hexadecimal RGB, for example "#F96E11".',
)


@main.group(name="marker_settings", aliases=["ms"])
def marker_settings():
    """Manage Marker Settings.

    Marker Settings apply to groups of similar Markers. For example, `deploys`
    markers appear with the same color on a graph.
    """


@marker_settings.command(name="create", aliases=["add", "new", "insert", "put"])
@_dataset_option
@_marker_setting_type_option
@_marker_setting_color_option
@click.pass_context
def marker_settings_create(ctx, dataset, setting_type, color):
    """Create a Marker Setting in the specified dataset."""
    client = _get_client(ctx)
    setting = MarkerSetting(type=setting_type, color=color)
    try:
        _emit_data(client.create_marker_setting(dataset, setting))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to create a new marker setting.")


@marker_settings.command(name="get", aliases=["ls", "list"])
@_dataset_option
@click.pass_context
def marker_settings_get(ctx, dataset):
    """List all Marker Settings in the specified dataset."""
    client = _get_client(ctx)
    try:
        _emit_data(client.list_marker_settings(dataset))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to list all marker settings.")


@marker_settings.command(name="update", aliases=["up", "edit", "modify", "change", "set"])
@_dataset_option
@_option("--id", "-i", "setting_id", required=True, help="The ID of the marker setting to update.")
@_marker_setting_type_option
@_marker_setting_color_option
@click.pass_context
def marker_settings_update(ctx, dataset, setting_id, setting_type, color):
    """Update a Marker Setting in the specified dataset."""
    client = _get_client(ctx)
    setting = MarkerSetting(id=setting_id, type=setting_type, color=color)
    try:
        _emit_data(client.update_marker_setting(dataset, setting))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to update a marker setting.")


@marker_settings.command(name="delete", aliases=["rm", "remove", "del"])
@_dataset_option
@_option("--id", "-i", "setting_id", required=True, help="The ID of the marker setting to delete.")
@click.pass_context
def marker_settings_delete(ctx, dataset, setting_id):
    """Delete a Marker Setting in the specified dataset."""
    client = _get_client(ctx)
    try:
        _emit_data(client.delete_marker_setting(dataset, setting_id))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to delete a marker setting.")


# ---------------------------------------------------------------------------
# queries
# ---------------------------------------------------------------------------


class _LinesType(click.types.StringParamType):
    """Text whose environment variable holds one value per line."""

    def split_envvar_value(self, rv: str) -> list[str]:
        return [line.strip() for line in (rv or "").splitlines() if line.strip()]


LINES = _LinesType()


def _parse_calculations(ctx, param, values):
    """Parse ``OP`` or ``OP(column)`` terms, e.g. ``COUNT`` or ``P99(duration_ms)``."""
    calculations = []
    for raw in values:
        term = raw.strip()
        if "(" in term:
            if not term.endswith(")"):
                raise click.BadParameter(f"expected OP or OP(column), got: {raw}")
            op, column = term[:-1].split("(", 1)
            calculations.append(QueryCalculation(op=op.strip().upper(), column=column.strip() or None))
        else:
            calculations.append(QueryCalculation(op=term.upper()))
    return calculations


def _filter_value(raw: str):
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _parse_filters(ctx, param, values):
    """Parse ``column op [value]`` terms, e.g. ``status_code >= 500``."""
    filters = []
    for raw in values:
        parts = raw.split(None, 2)
        if len(parts) < 2:
            raise click.BadParameter(f"expected 'column op [value]', got: {raw}")
        value = _filter_value(parts[2]) if len(parts) == 3 else None
        filters.append(QueryFilter(column=parts[0], op=parts[1], value=value))
    return filters


def _parse_query_json(ctx, param, value):
    if value is None:
        return None
    try:
        return Query.model_validate_json(value)
    except ValueError as exc:
        raise click.BadParameter(f"invalid query JSON: {exc}") from exc


@main.group(aliases=["q"])
def queries():
    """Manage Queries and Query Results.

    Queries are run asynchronously: create a Query, create a Query Result for
    it, then fetch the Query Result once it is complete. Only the last 7 days
    of data can be queried.
    """


@queries.command(name="create", aliases=["add", "new"])
@_dataset_option
@_option("--json", "query_json", default=None, callback=_parse_query_json, help="A full query definition as JSON.")
@_option("--breakdown", "-b", "breakdowns", type=LINES, multiple=True, help="A column to break events down by (repeatable).")
@_option(
    "--calculation",
    "-c",
    "calculations",
    type=LINES,
    multiple=True,
    callback=_parse_calculations,
    help="A calculation as OP or OP(column), e.g. P99(duration_ms) (repeatable).",
)
@_option(
    "--filter",
    "-f",
    "filters",
    type=LINES,
    multiple=True,
    callback=_parse_filters,
    help="A filter as 'column op [value]', e.g. 'status_code >= 500' (repeatable).",
)
@_option("--filter-combination", type=click.Choice(["AND", "OR"]), default=None, help="How filters are combined.")
@_option("--granularity", type=int, default=None, help="The time resolution of the query's graph, in seconds.")
@_option("--limit", type=int, default=None, help="The maximum number of unique groups returned.")
@_option("--start-time", type=int, default=None, help="Absolute start time, in seconds since the UNIX epoch.")
@_option("--end-time", type=int, default=None, help="Absolute end time, in seconds since the UNIX epoch.")
@_option("--time-range", type=int, default=None, help="Time range of the query in seconds.")
@click.pass_context
def queries_create(
    ctx,
    dataset,
    query_json,
    breakdowns,
    calculations,
    filters,
    filter_combination,
    granularity,
    limit,
    start_time,
    end_time,
    time_range,
):
    """Create a Query in the specified dataset.

    Flags override the matching fields of --json.
    """
    client = _get_client(ctx)
    overrides = {
        "breakdowns": list(breakdowns) or None,
        "calculations": calculations or None,
        "filters": filters or None,
        "filter_combination": filter_combination,
        "granularity": granularity,
        "limit": limit,
        "start_time": start_time,
        "end_time": end_time,
        "time_range": time_range,
    }
    base = query_json or Query()
    query = base.model_copy(update={k: v for k, v in overrides.items() if v is not None})
    try:
        _emit_data(client.create_query(dataset, query))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to create a query.")


@queries.command(name="get")
@_dataset_option
@_option("--id", "-i", "query_id", required=True, help="The unique identifier (ID) of a Query.")
@click.pass_context
def queries_get(ctx, dataset, query_id):
    """Get a Query by ID."""
    client = _get_client(ctx)
    try:
        _emit_data(client.get_query(dataset, query_id))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to get a query.")


@queries.command(name="create-query-result", aliases=["cqr"])
@_dataset_option
@_option("--query-id", "-q", required=True, help="The ID of a query returned from the Queries endpoint.")
@_option(
    "--disable-series",
    is_flag=True,
    default=False,
    help="Only return the summarized results, not the full time-series data.",
)
@_option("--limit", type=int, default=None, help="The maximum number of unique groups returned.")
@click.pass_context
def queries_create_result(ctx, dataset, query_id, disable_series, limit):
    """Kick off processing of a Query to then get back the Query Results."""
    client = _get_client(ctx)
    request = QueryResultRequest(query_id=query_id, disable_series=disable_series or None, limit=limit)
    try:
        _emit_data(client.create_query_result(dataset, request))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to create a query result.")


@queries.command(name="get-query-result", aliases=["gqr"])
@_dataset_option
@_option("--query-result-id", "-q", required=True, help="The unique identifier (ID) of the query result.")
@click.pass_context
def queries_get_result(ctx, dataset, query_result_id):
    """Get the Query Result details for a specific Query Result ID."""
    client = _get_client(ctx)
    try:
        _emit_data(client.get_query_result(dataset, query_result_id))
    except HoneybadgerError as e:
        _exit_with_error(ctx, e, "Error received when attempting to get a query result.")


if __name__ == "__main__":
    main()
