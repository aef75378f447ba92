"""
Tests for the command-line interface: argument parsing, dispatch and exit codes.
"""

import functools
import json
import logging
import tempfile
from unittest.mock import patch

import pytest

from pbi_provisioner.cli import create_argument_parser, load_config
from pbi_provisioner.cli.helpers import load_json_argument, setup_logging
from pbi_provisioner.constants import ExitCode
from pbi_provisioner.main import COMMAND_MAP, run
from pbi_provisioner.provisioner import WorkspaceProvisioner

from fixtures.fake_powerbi import FakePowerBIService
from fixtures.powerbi_responses import (
    SAMPLE_TEMPLATE_GROUP_ID,
    create_folder_response,
    create_mock_response,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def identity_env(monkeypatch):
    monkeypatch.setenv("AZURE_PB_TENANT_ID", "72f988bf-86f1-41af-91ab-2d7cd011db47")
    monkeypatch.setenv("AZURE_PB_CLIENT_ID", "11111111-2222-3333-4444-555555555555")
    monkeypatch.setenv("AZURE_PB_CLIENT_SECRET", "test-secret")
    monkeypatch.setenv("POWER_BI_GROUP_PREFIX", "DEV-")


@pytest.fixture
def fake():
    return FakePowerBIService()


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch('pbi_provisioner.cli.commands.setup_logging'):
        yield


@pytest.fixture
def instant_provisioner(recording_sleep):
    """Provisioner factory that never really sleeps while polling."""
    factory = functools.partial(WorkspaceProvisioner, sleep=recording_sleep)
    with patch('pbi_provisioner.cli.commands.WorkspaceProvisioner', factory):
        yield


@pytest.fixture
def provision_args(tmp_path):
    template = tmp_path / "sales.pbix"
    template.write_bytes(b"PK\x03\x04template")
    source_system = {"path_to_template_file": str(template), "template_group_id": SAMPLE_TEMPLATE_GROUP_ID}
    credentials_file = tmp_path / "tenant.json"
    credentials_file.write_text(json.dumps({"saJson": "{\"type\": \"service_account\"}"}))
    return [
        "--name", "Sales",
        "--source-system", json.dumps(source_system),
        "--credentials", f"@{credentials_file}",
    ]


class TestArgumentParser:

    def test_every_subcommand_is_dispatched(self):
        parser = create_argument_parser()
        subcommands = parser._subparsers._group_actions[0].choices
        assert set(subcommands) == set(COMMAND_MAP)

    def test_schedule_options_repeatable(self):
        args = create_argument_parser().parse_args([
            "provision", "--name", "Sales", "--source-system", "{}", "--credentials", "{}",
            "--schedule-time", "06:00", "--schedule-time", "18:00", "--schedule-day", "Monday",
        ])
        assert args.schedule_time == ["06:00", "18:00"]
        assert args.schedule_day == ["Monday"]
        assert args.timeout is None

    def test_no_command_prints_help(self, capsys):
        assert run([]) == ExitCode.ERROR
        assert "usage" in capsys.readouterr().out.lower()


class TestHelpers:

    def test_load_json_argument_inline_and_file(self, tmp_path):
        path = tmp_path / "value.json"
        path.write_text('{"a": 1}')
        assert load_json_argument('{"a": 1}') == {"a": 1}
        assert load_json_argument(f"@{path}") == {"a": 1}
        assert load_json_argument(None) is None

    def test_load_config_rejects_non_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            load_config(str(path))

    def test_load_config_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.json"))


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:

    def test_requested_log_file_used(self, tmp_path, restore_root_logging):
        log_file = tmp_path / "logs" / "run.log"
        used = setup_logging("DEBUG", str(log_file))

        assert used == str(log_file)
        assert logging.getLogger().level == logging.DEBUG

    def test_unwritable_location_falls_back_to_temp_dir(self, tmp_path, monkeypatch, restore_root_logging):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        temp_dir = tmp_path / "tmp"
        temp_dir.mkdir()
        monkeypatch.setattr(tempfile, "gettempdir", lambda: str(temp_dir))

        used = setup_logging("INFO", str(blocker / "run.log"))

        assert used == str(temp_dir / "run.log")

    def test_console_only_without_log_file(self, restore_root_logging):
        assert setup_logging("WARNING") is None
        assert logging.getLogger().level == logging.WARNING


class TestExitCodes:

    def test_list_workspaces(self, identity_env, patched_credential, fake, capsys):
        with patch('requests.request', side_effect=fake.request):
            code = run(["list-workspaces"])

        assert code == ExitCode.SUCCESS
        assert "Template" in capsys.readouterr().out

    def test_missing_identity_is_configuration_error(self, monkeypatch):
        for name in ("AZURE_PB_TENANT_ID", "AZURE_PB_CLIENT_ID", "AZURE_PB_CLIENT_SECRET"):
            monkeypatch.delenv(name, raising=False)
        with patch('requests.request') as mock_request:
            code = run(["list-workspaces"])

        assert code == ExitCode.CONFIGURATION_ERROR
        mock_request.assert_not_called()

    def test_missing_config_file_is_configuration_error(self, identity_env, tmp_path):
        assert run(["list-workspaces", "--config", str(tmp_path / "nope.json")]) == ExitCode.CONFIGURATION_ERROR

    def test_config_file_values_used(self, identity_env, patched_credential, fake, tmp_path):
        config_path = tmp_path / "settings.json"
        config_path.write_text(json.dumps({"group_prefix": "PROD-"}))

        with patch('requests.request', side_effect=fake.request):
            code = run(["list-workspaces", "--config", str(config_path)])
        assert code == ExitCode.SUCCESS

    def test_provision_success(self, identity_env, patched_credential, instant_provisioner, fake,
                               provision_args, capsys):
        with patch('requests.request', side_effect=fake.request):
            code = run(["provision", *provision_args])

        output = capsys.readouterr().out
        assert code == ExitCode.SUCCESS
        assert "DEV-Sales" in output
        assert '"refreshCompleted": true' in output

    def test_provision_failure_exits_with_error(self, identity_env, patched_credential, instant_provisioner,
                                                fake, provision_args, capsys):
        fake.import_states = ["Failed"]
        with patch('requests.request', side_effect=fake.request):
            code = run(["provision", *provision_args])

        assert code == ExitCode.ERROR
        assert "Cause:" in capsys.readouterr().out
        assert "delete_group" in fake.routes()

    def test_invalid_credentials_json_is_configuration_error(self, identity_env, patched_credential,
                                                             provision_args):
        args = list(provision_args)
        args[args.index("--credentials") + 1] = "{not json"
        with patch('requests.request') as mock_request:
            code = run(["provision", *args])

        assert code == ExitCode.CONFIGURATION_ERROR
        mock_request.assert_not_called()

    def test_malformed_template_item_is_configuration_error(self, identity_env, patched_credential,
                                                            provision_args):
        args = list(provision_args)
        source_system = json.loads(args[args.index("--source-system") + 1])
        source_system["credentials_template"] = [{"name": "x"}]
        args[args.index("--source-system") + 1] = json.dumps(source_system)
        with patch('requests.request') as mock_request:
            code = run(["provision", *args])

        assert code == ExitCode.CONFIGURATION_ERROR
        mock_request.assert_not_called()

    def test_refresh_status(self, identity_env, patched_credential, fake, capsys):
        fake.refresh_snapshots = [["Failed", "Completed"]]
        with patch('requests.request', side_effect=fake.request):
            code = run(["refresh-status", "g1", "d1"])

        output = capsys.readouterr().out
        assert code == ExitCode.SUCCESS
        assert "All refreshes final: True" in output
        assert "Last refresh successful: True" in output

    def test_embed_token(self, identity_env, patched_credential, fake, capsys):
        with patch('requests.request', side_effect=fake.request):
            code = run(["embed-token", "g1", "r1"])

        assert code == ExitCode.SUCCESS
        assert json.loads(capsys.readouterr().out)["tokenId"] == "49ae3742-54c0-4c29-af52-619ff93b5c80"

    def test_ensure_folder_existing_root(self, identity_env, patched_credential, capsys):
        listing = create_mock_response(200, {"value": [create_folder_response("f1", "Clients", "ws1")]})
        with patch('requests.request', return_value=listing) as mock_request:
            code = run(["ensure-folder", "ws1", "Clients"])

        assert code == ExitCode.SUCCESS
        assert mock_request.call_count == 1
        assert "Clients -> f1" in capsys.readouterr().out
