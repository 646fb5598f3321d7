import json
from pathlib import Path
import unittest
from unittest.mock import patch

from click.testing import CliRunner
import httpx

import honeybadger.cli as cli_mod
from honeybadger.client import TEAM_HEADER, HoneybadgerClient, HoneybadgerError


def _parse_first_json_blob(text: str):
    decoder = json.JSONDecoder()
    payload, _ = decoder.raw_decode(text.lstrip())
    return payload


class StubAPI:
    def __init__(self, status: int = 200, payload=None):
        self.status = status
        self.payload = payload
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.payload is None:
            return httpx.Response(self.status)
        return httpx.Response(self.status, json=self.payload)

    @property
    def last_body(self):
        return json.loads(self.requests[-1].content)


class FakeBoardsAPI(StubAPI):
    def __init__(self, board: dict):
        super().__init__(payload=board)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "PUT":
            self.payload = dict(json.loads(request.content), id=self.payload["id"])
        return httpx.Response(200, json=self.payload)


def _stubbed_client(api):
    class StubbedClient(HoneybadgerClient):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, transport=httpx.MockTransport(api), **kwargs)

    return StubbedClient


class CliCommandTests(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()

    def invoke(self, api, args, env=None):
        with patch.object(cli_mod, "HoneybadgerClient", _stubbed_client(api)):
            return self.runner.invoke(cli_mod.main, args, env=env or {"HONEYBADGER_CONFIGKEY": "k"})

    def test_create_board_prints_decoded_response(self):
        api = StubAPI(status=201, payload={"id": "abc123", "name": "Deploys"})
        result = self.invoke(api, ["boards", "create", "--name", "Deploys"])

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(_parse_first_json_blob(result.output), {"id": "abc123", "name": "Deploys"})
        request = api.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/1/boards")
        self.assertEqual(api.last_body, {"name": "Deploys"})
        self.assertEqual(request.headers[TEAM_HEADER], "k")

    def test_list_marker_settings_for_all_datasets(self):
        api = StubAPI(payload=[{"id": "s1", "type": "deploys", "color": "#F96E11"}])
        result = self.invoke(api, ["marker_settings", "get", "-d", "__all__"])

        self.assertEqual(result.exit_code, 0, msg=result.output)
        request = api.requests[0]
        self.assertEqual(request.method, "GET")
        self.assertEqual(request.url.path, "/1/marker_settings/__all__")
        self.assertEqual(request.content, b"")
        self.assertEqual(_parse_first_json_blob(result.output)[0]["type"], "deploys")

    def test_aliases_resolve_to_commands(self):
        cases = [
            (["b", "ls"], "/1/boards", []),
            (["ms", "ls"], "/1/marker_settings/__all__", []),
            (["m", "get", "-d", "prod"], "/1/markers/prod", []),
            (["a", "get"], "/1/auth", {}),
            (["dd", "ls", "--slug", "web"], "/1/dataset_definitions/web", {}),
        ]
        for args, path, payload in cases:
            with self.subTest(args=args):
                api = StubAPI(payload=payload)
                result = self.invoke(api, args)
                self.assertEqual(result.exit_code, 0, msg=result.output)
                self.assertEqual(api.requests[0].url.path, path)

    def test_every_operation_sends_expected_request(self):
        board = {"id": "b1", "name": "Old", "queries": [{"query_id": "q1"}]}
        cases = [
            (["auth", "list"], {}, ["GET"], "/1/auth", None),
            (
                ["boards", "create", "-n", "Deploys", "-d", "ship it", "-c", "multi"],
                {"id": "b1"},
                ["POST"],
                "/1/boards",
                {"name": "Deploys", "description": "ship it", "column_layout": "multi"},
            ),
            (["boards", "list"], [], ["GET"], "/1/boards", None),
            (["boards", "get", "-i", "b1"], board, ["GET"], "/1/boards/b1", None),
            (
                ["boards", "update", "-i", "b1", "-n", "New"],
                board,
                ["GET", "PUT"],
                "/1/boards/b1",
                {"name": "New", "queries": [{"query_id": "q1"}]},
            ),
            (["boards", "delete", "-i", "b1"], None, ["DELETE"], "/1/boards/b1", None),
            (
                ["datasets", "create", "-n", "web", "-d", "frontend", "-e", "3"],
                {"slug": "web"},
                ["POST"],
                "/1/datasets",
                {"name": "web", "description": "frontend", "expand_json_depth": 3},
            ),
            (["datasets", "list"], [], ["GET"], "/1/datasets", None),
            (["datasets", "get", "-s", "web"], {"slug": "web"}, ["GET"], "/1/datasets/web", None),
            (
                ["datasets", "update", "-s", "web", "-e", "2"],
                {"slug": "web"},
                ["PUT"],
                "/1/datasets/web",
                {"expand_json_depth": 2},
            ),
            (["datasets", "delete", "-s", "web"], None, ["DELETE"], "/1/datasets/web", None),
            (["dataset_definitions", "get", "--slug", "web"], {}, ["GET"], "/1/dataset_definitions/web", None),
            (
                ["dataset_definitions", "update", "--slug", "web", "--route", "http.route"],
                {},
                ["PATCH"],
                "/1/dataset_definitions/web",
                {"route": {"name": "http.route"}},
            ),
            (
                ["markers", "create", "-d", "prod", "-m", "deploy"],
                {"id": "m1"},
                ["POST"],
                "/1/markers/prod",
                {"message": "deploy"},
            ),
            (["markers", "list"], [], ["GET"], "/1/markers/__all__", None),
            (
                ["markers", "update", "-d", "prod", "-i", "m1", "-u", "https://ci.example.com/1"],
                {"id": "m1"},
                ["PUT"],
                "/1/markers/prod/m1",
                {"url": "https://ci.example.com/1", "id": "m1"},
            ),
            (["markers", "delete", "-d", "prod", "-i", "m1"], {"id": "m1"}, ["DELETE"], "/1/markers/prod/m1", None),
            (
                ["marker_settings", "create", "-d", "prod", "-t", "deploys", "-c", "#F96E11"],
                {"id": "s1"},
                ["POST"],
                "/1/marker_settings/prod",
                {"type": "deploys", "color": "#F96E11"},
            ),
            (["marker_settings", "get", "-d", "prod"], [], ["GET"], "/1/marker_settings/prod", None),
            (
                ["marker_settings", "update", "-d", "prod", "-i", "s1", "-t", "deploys", "-c", "#000000"],
                {"id": "s1"},
                ["PUT"],
                "/1/marker_settings/prod/s1",
                {"type": "deploys", "color": "#000000", "id": "s1"},
            ),
            (
                ["marker_settings", "delete", "-d", "prod", "-i", "s1"],
                None,
                ["DELETE"],
                "/1/marker_settings/prod/s1",
                None,
            ),
            (
                ["queries", "create", "-d", "web", "-c", "COUNT"],
                {"id": "q1"},
                ["POST"],
                "/1/queries/web",
                {"calculations": [{"op": "COUNT"}]},
            ),
            (["queries", "get", "-d", "web", "-i", "q1"], {"id": "q1"}, ["GET"], "/1/queries/web/q1", None),
            (
                ["queries", "create-query-result", "-d", "web", "-q", "q1", "--limit", "5"],
                {"id": "r1"},
                ["POST"],
                "/1/query_results/web",
                {"query_id": "q1", "limit": 5},
            ),
            (
                ["queries", "get-query-result", "-d", "web", "-q", "r1"],
                {"id": "r1", "complete": True},
                ["GET"],
                "/1/query_results/web/r1",
                None,
            ),
        ]
        for args, payload, methods, path, body in cases:
            with self.subTest(args=args):
                api = StubAPI(payload=payload)
                result = self.invoke(api, args)

                self.assertEqual(result.exit_code, 0, msg=result.output)
                self.assertEqual([r.method for r in api.requests], methods)
                self.assertEqual(api.requests[-1].url.path, path)
                if body is None:
                    self.assertEqual(api.requests[-1].content, b"")
                else:
                    self.assertEqual(api.last_body, body)

    def test_query_flags_from_environment_keep_spaces(self):
        api = StubAPI(payload={"id": "q1"})
        result = self.invoke(
            api,
            ["queries", "create", "-d", "web"],
            env={
                "HONEYBADGER_CONFIGKEY": "k",
                "HONEYBADGER_FILTER": "status_code >= 500",
                "HONEYBADGER_CALCULATION": "COUNT\nP99(duration_ms)",
                "HONEYBADGER_BREAKDOWN": "service.name",
            },
        )

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(
            api.last_body,
            {
                "breakdowns": ["service.name"],
                "calculations": [{"op": "COUNT"}, {"op": "P99", "column": "duration_ms"}],
                "filters": [{"op": ">=", "column": "status_code", "value": 500}],
            },
        )

    def test_delete_marker_not_found_exits_with_structured_error(self):
        api = StubAPI(status=404, payload={"error": "marker not found"})
        result = self.invoke(api, ["markers", "delete", "-i", "m1", "-d", "prod"])

        self.assertEqual(result.exit_code, 12)
        request = api.requests[0]
        self.assertEqual(request.method, "DELETE")
        self.assertEqual(request.url.path, "/1/markers/prod/m1")
        payload = _parse_first_json_blob(result.output)
        self.assertEqual(payload["level"], "error")
        self.assertEqual(payload["_function"], "markers_delete")
        self.assertEqual(payload["code"], "HTTP")
        self.assertEqual(payload["status"], 404)
        self.assertIn("404", payload["err"])
        self.assertEqual(payload["payload"]["path"], "/1/markers/prod/m1")

    def test_server_error_maps_to_exit_code(self):
        api = StubAPI(status=503, payload={"error": "unavailable"})
        result = self.invoke(api, ["datasets", "list"])
        self.assertEqual(result.exit_code, 15)

    def test_dry_run_prints_request_without_sending(self):
        api = StubAPI(payload={})
        result = self.invoke(api, ["--dry-run", "datasets", "update", "--slug", "web", "--description", "x"])

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(api.requests, [])
        self.assertIn("Would have sent the following request:", result.output)
        self.assertIn("PUT https://api.honeycomb.io/1/datasets/web HTTP/1.1", result.output)
        self.assertIn('{"description":"x"}', result.output)

    def test_dry_run_from_environment(self):
        api = StubAPI(payload={})
        result = self.invoke(
            api,
            ["boards", "delete", "-i", "b1"],
            env={"HONEYBADGER_CONFIGKEY": "k", "HONEYBADGER_DRY_RUN": "1"},
        )

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(api.requests, [])
        self.assertIn("DELETE https://api.honeycomb.io/1/boards/b1 HTTP/1.1", result.output)

    def test_add_query_appends_graph_settings(self):
        api = FakeBoardsAPI({"id": "b1", "name": "Ops", "queries": [{"query_id": "q1"}]})
        result = self.invoke(api, ["boards", "aq", "-i", "b1", "-q", "q9", "-s", "table", "-L"])

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual([r.method for r in api.requests], ["GET", "PUT"])
        self.assertEqual(
            api.last_body["queries"],
            [
                {"query_id": "q1"},
                {
                    "graph_settings": {
                        "hide_markers": False,
                        "log_scale": True,
                        "omit_missing_values": False,
                        "stacked_graphs": False,
                        "utc_xaxis": False,
                        "overlaid_charts": False,
                    },
                    "query_style": "table",
                    "query_id": "q9",
                },
            ],
        )

    def test_create_marker_body(self):
        api = StubAPI(status=201, payload={"id": "m1"})
        result = self.invoke(
            api,
            ["markers", "create", "-d", "prod", "-m", "deploy 42", "-t", "deploys", "-s", "1700000000"],
        )

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(api.requests[0].url.path, "/1/markers/prod")
        self.assertEqual(api.last_body, {"start_time": 1700000000, "message": "deploy 42", "type": "deploys"})

    def test_update_marker_setting_uses_marker_settings_path(self):
        api = StubAPI(payload={"id": "s1", "type": "deploys", "color": "#000000"})
        result = self.invoke(
            api,
            ["marker_settings", "update", "-d", "prod", "-i", "s1", "-t", "deploys", "-c", "#000000"],
        )

        self.assertEqual(result.exit_code, 0, msg=result.output)
        request = api.requests[0]
        self.assertEqual(request.method, "PUT")
        self.assertEqual(request.url.path, "/1/marker_settings/prod/s1")

    def test_dataset_definitions_update_sends_only_given_columns(self):
        api = StubAPI(payload={})
        result = self.invoke(
            api,
            ["dataset_definitions", "update", "--slug", "web", "--name", "", "--duration-ms", "duration"],
        )

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(api.requests[0].method, "PATCH")
        self.assertEqual(api.requests[0].url.path, "/1/dataset_definitions/web")
        self.assertEqual(api.last_body, {"name": {"name": ""}, "duration_ms": {"name": "duration"}})

    def test_create_query_from_flags(self):
        api = StubAPI(payload={"id": "q1"})
        result = self.invoke(
            api,
            [
                "queries",
                "create",
                "-d",
                "web",
                "-c",
                "COUNT",
                "-c",
                "p99(duration_ms)",
                "-b",
                "service.name",
                "-f",
                "status_code >= 500",
                "-f",
                "error exists",
                "--time-range",
                "7200",
            ],
        )

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(api.requests[0].url.path, "/1/queries/web")
        self.assertEqual(
            api.last_body,
            {
                "breakdowns": ["service.name"],
                "calculations": [{"op": "COUNT"}, {"op": "P99", "column": "duration_ms"}],
                "filters": [
                    {"op": ">=", "column": "status_code", "value": 500},
                    {"op": "exists", "column": "error"},
                ],
                "time_range": 7200,
            },
        )

    def test_create_query_flags_override_json(self):
        api = StubAPI(payload={"id": "q1"})
        query_json = json.dumps({"calculations": [{"op": "COUNT"}], "time_range": 3600})
        result = self.invoke(api, ["queries", "create", "--json", query_json, "--time-range", "60"])

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(api.requests[0].url.path, "/1/queries/__all__")
        self.assertEqual(api.last_body, {"calculations": [{"op": "COUNT"}], "time_range": 60})

    def test_create_query_rejects_bad_calculation(self):
        api = StubAPI(payload={})
        result = self.invoke(api, ["queries", "create", "-c", "P99(duration_ms"])
        self.assertEqual(result.exit_code, 2)
        self.assertEqual(api.requests, [])

    def test_query_result_lifecycle(self):
        api = StubAPI(payload={"id": "r1", "complete": False})
        result = self.invoke(api, ["queries", "cqr", "-d", "web", "-q", "q1", "--disable-series"])
        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(api.requests[0].url.path, "/1/query_results/web")
        self.assertEqual(api.last_body, {"query_id": "q1", "disable_series": True})

        api = StubAPI(payload={"id": "r1", "complete": True, "data": {"results": [{"data": {"COUNT": 3}}]}})
        result = self.invoke(api, ["queries", "gqr", "-d", "web", "-q", "r1"])
        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(api.requests[0].url.path, "/1/query_results/web/r1")
        self.assertEqual(_parse_first_json_blob(result.output)["data"]["results"][0]["data"], {"COUNT": 3})

    def test_verbose_logs_completed_requests(self):
        api = StubAPI(payload={})
        result = self.invoke(api, ["-v", "auth", "list"])
        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertIn("request completed", result.output)


class CliConfigurationTests(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()

    def invoke(self, api, args, env):
        with patch.object(cli_mod, "HoneybadgerClient", _stubbed_client(api)):
            return self.runner.invoke(cli_mod.main, args, env=env)

    def test_missing_api_key_returns_structured_error(self):
        api = StubAPI(payload={})
        with self.runner.isolated_filesystem():
            result = self.invoke(api, ["auth", "list"], env={"HONEYBADGER_CONFIGKEY": ""})

        self.assertEqual(result.exit_code, 2)
        self.assertEqual(api.requests, [])
        payload = _parse_first_json_blob(result.output)
        self.assertEqual(payload["code"], "CONFIG")
        self.assertEqual(payload["_function"], "auth_list")
        self.assertIn("HONEYBADGER_CONFIGKEY", payload["err"])

    def test_help_works_without_api_key(self):
        result = self.runner.invoke(cli_mod.main, ["--help"], env={"HONEYBADGER_CONFIGKEY": ""})
        self.assertEqual(result.exit_code, 0)
        for section in ["Authorization Commands", "Board Commands", "Dataset Commands", "Marker Commands"]:
            self.assertIn(section, result.output)

        result = self.runner.invoke(cli_mod.main, ["boards", "--help"], env={"HONEYBADGER_CONFIGKEY": ""})
        self.assertEqual(result.exit_code, 0)
        self.assertIn("add_query", result.output)

    def test_invalid_api_host_fails_before_any_request(self):
        api = StubAPI(payload=[])
        result = self.invoke(
            api,
            ["boards", "list"],
            env={"HONEYBADGER_CONFIGKEY": "k", "HONEYBADGER_API_HOST": "ftp://example.com/"},
        )

        self.assertEqual(result.exit_code, 2)
        self.assertEqual(api.requests, [])
        self.assertEqual(_parse_first_json_blob(result.output)["code"], "CONFIG")

    def test_api_host_override(self):
        api = StubAPI(payload=[])
        result = self.invoke(
            api,
            ["--api_host", "https://honeycomb.example.com/", "boards", "list"],
            env={"HONEYBADGER_CONFIGKEY": "k"},
        )

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(str(api.requests[0].url), "https://honeycomb.example.com/1/boards")

    def test_timeout_out_of_range_is_config_error(self):
        for timeout in ["0", "301", "nan"]:
            with self.subTest(timeout=timeout):
                api = StubAPI(payload={})
                result = self.invoke(api, ["--timeout", timeout, "auth", "list"], env={"HONEYBADGER_CONFIGKEY": "k"})
                self.assertEqual(result.exit_code, 2)
                self.assertEqual(api.requests, [])

    def test_reads_api_key_from_config_file(self):
        api = StubAPI(payload={})
        with self.runner.isolated_filesystem():
            Path("honeybadger.yaml").write_text("configkey: file-key\ntimeout: 5\n", encoding="utf-8")
            result = self.invoke(api, ["auth", "list"], env={"HONEYBADGER_CONFIGKEY": ""})

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(api.requests[0].headers[TEAM_HEADER], "file-key")

    def test_env_overrides_config_file_and_flag_overrides_env(self):
        with self.runner.isolated_filesystem():
            Path("honeybadger.json").write_text(json.dumps({"configkey": "file-key"}), encoding="utf-8")

            api = StubAPI(payload={})
            result = self.invoke(api, ["auth", "list"], env={"HONEYBADGER_CONFIGKEY": "env-key"})
            self.assertEqual(result.exit_code, 0, msg=result.output)
            self.assertEqual(api.requests[0].headers[TEAM_HEADER], "env-key")

            api = StubAPI(payload={})
            result = self.invoke(api, ["-k", "flag-key", "auth", "list"], env={"HONEYBADGER_CONFIGKEY": "env-key"})
            self.assertEqual(result.exit_code, 0, msg=result.output)
            self.assertEqual(api.requests[0].headers[TEAM_HEADER], "flag-key")

    def test_command_flags_read_from_config_file(self):
        api = StubAPI(payload={"slug": "web"})
        with self.runner.isolated_filesystem():
            Path("honeybadger.toml").write_text('configkey = "k"\nslug = "web"\n', encoding="utf-8")
            result = self.invoke(api, ["datasets", "get"], env={"HONEYBADGER_CONFIGKEY": ""})

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(api.requests[0].url.path, "/1/datasets/web")

    def test_renamed_flags_read_from_config_file_by_flag_name(self):
        with self.runner.isolated_filesystem():
            Path("honeybadger.yaml").write_text("configkey: k\nid: b1\ntype: deploys\n", encoding="utf-8")

            api = StubAPI(payload={"id": "b1"})
            result = self.invoke(api, ["boards", "get"], env={"HONEYBADGER_CONFIGKEY": ""})
            self.assertEqual(result.exit_code, 0, msg=result.output)
            self.assertEqual(api.requests[0].url.path, "/1/boards/b1")

            api = StubAPI(payload={"id": "m1"})
            result = self.invoke(api, ["markers", "create", "-d", "prod"], env={"HONEYBADGER_CONFIGKEY": ""})
            self.assertEqual(result.exit_code, 0, msg=result.output)
            self.assertEqual(api.last_body, {"type": "deploys"})

    def test_repeatable_flags_read_from_config_file(self):
        api = StubAPI(payload={"id": "q1"})
        with self.runner.isolated_filesystem():
            Path("honeybadger.yaml").write_text(
                "configkey: k\nbreakdown: [service.name, http.route]\nfilter: status_code >= 500\n",
                encoding="utf-8",
            )
            result = self.invoke(api, ["queries", "create"], env={"HONEYBADGER_CONFIGKEY": ""})

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(
            api.last_body,
            {
                "breakdowns": ["service.name", "http.route"],
                "filters": [{"op": ">=", "column": "status_code", "value": 500}],
            },
        )

    def test_malformed_config_file_is_usage_error(self):
        api = StubAPI(payload={})
        with self.runner.isolated_filesystem():
            Path("honeybadger.json").write_text("{not json", encoding="utf-8")
            result = self.invoke(api, ["auth", "list"], env={"HONEYBADGER_CONFIGKEY": "k"})

        self.assertEqual(result.exit_code, 2)
        self.assertIn("Invalid config file", result.output)
        self.assertEqual(api.requests, [])


class ExitCodeTests(unittest.TestCase):
    def test_exit_codes_are_deterministic(self):
        cases = [
            (HoneybadgerError("VALIDATION", "bad"), 2),
            (HoneybadgerError("CONFIG", "bad"), 2),
            (HoneybadgerError("TIMEOUT", "slow"), 13),
            (HoneybadgerError("NETWORK", "down"), 13),
            (HoneybadgerError("SERIALIZATION", "garbled"), 14),
            (HoneybadgerError("HTTP", "denied", 401), 10),
            (HoneybadgerError("HTTP", "denied", 403), 10),
            (HoneybadgerError("HTTP", "slow down", 429), 11),
            (HoneybadgerError("HTTP", "missing", 404), 12),
            (HoneybadgerError("HTTP", "broken", 500), 15),
            (HoneybadgerError("HTTP", "teapot", 418), 16),
        ]
        for err, code in cases:
            with self.subTest(code=err.code, status=err.status_code):
                self.assertEqual(cli_mod._exit_code_for_error(err), code)


if __name__ == "__main__":
    unittest.main()
