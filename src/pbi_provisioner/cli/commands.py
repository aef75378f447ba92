"""
CLI command implementations.

Each command is a thin orchestration layer over the library: it loads
settings, builds the clients it needs, runs one operation and maps the
outcome to a process exit code.
"""

import argparse
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from ..cancellation import (
    CancellationToken,
    OperationCancelledException,
    restore_default_handler,
    setup_cancellation_handler,
)
from ..config import (
    ClientSettings,
    DatasetSchedule,
    SourceSystemConfig,
    WorkspaceProvisioningConfig,
)
from ..constants import ExitCode
from ..errors import ConfigurationError, PowerBIError, UnexpectedCreationError
from ..fabric_client import FabricFolderClient
from ..powerbi_client import PowerBIClient
from ..provisioner import WorkspaceProvisioner
from ..templating import TenantCredentials
from .helpers import (
    load_config,
    load_json_argument,
    print_footer,
    print_header,
    print_json,
    setup_logging,
)

logger = logging.getLogger(__name__)


def read_template_file(path: str) -> bytes:
    return Path(path).read_bytes()


class BaseCommand(ABC):
    """Base class for CLI commands."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path

    def load_settings(self) -> ClientSettings:
        """
        Build validated settings from the JSON file (if any) and the environment.

        Raises:
            ConfigurationError: If identity settings are missing
        """
        data = load_config(self.config_path) if self.config_path else {}
        settings = ClientSettings.from_dict(data).merged_with_env()
        settings.validate()
        return settings

    def execute(self, args: argparse.Namespace) -> int:
        """Configure logging, run the command and map errors to exit codes."""
        setup_logging(getattr(args, 'log_level', 'INFO'), getattr(args, 'log_file', None))
        try:
            return self.run(args)
        except (ConfigurationError, FileNotFoundError, ValueError) as e:
            print(f"✗ Configuration error: {e}")
            return ExitCode.CONFIGURATION_ERROR
        except OperationCancelledException:
            print("\n✗ Operation cancelled.")
            return ExitCode.CANCELLED
        except UnexpectedCreationError as e:
            if isinstance(e.original, OperationCancelledException):
                print("\n✗ Provisioning cancelled, the workspace was rolled back.")
                return ExitCode.CANCELLED
            print(f"✗ {e}")
            if e.original is not None:
                print(f"  Cause: {e.original}")
            return ExitCode.ERROR
        except PowerBIError as e:
            print(f"✗ {e}")
            return ExitCode.ERROR

    @abstractmethod
    def run(self, args: argparse.Namespace) -> int:
        """Execute the command body."""


class _ProvisioningCommand(BaseCommand):
    """Shared argument handling of the provision and import commands."""

    def build_config(self, args: argparse.Namespace, capacity_id: Optional[str] = None) -> WorkspaceProvisioningConfig:
        source_system = SourceSystemConfig.from_dict(load_json_argument(args.source_system))
        credentials = TenantCredentials.from_dict(load_json_argument(args.credentials))
        schedule = None
        if args.schedule_time:
            schedule = DatasetSchedule(times=list(args.schedule_time), days=list(args.schedule_day) or None)

        return WorkspaceProvisioningConfig.create(
            name=args.name,
            tenant_credentials=credentials,
            source_system=source_system,
            template_loader=read_template_file,
            schedule=schedule,
            capacity_id=capacity_id,
        )

    def build_token(self, args: argparse.Namespace) -> CancellationToken:
        return setup_cancellation_handler(
            message="\n⚠️  Cancellation requested, rolling back...",
            timeout=args.timeout,
        )

    def print_result(self, result) -> None:
        print_header("PROVISIONING RESULT")
        print(f"  Workspace: {result.workspace_name} ({result.workspace_id})")
        print(f"  Dataset: {result.dataset_id}")
        print(f"  Datasource: {result.datasource_id}")
        refresh_text = "completed" if result.refresh_completed else "still running"
        print(f"  Refresh: {refresh_text}")
        for report in result.reports:
            print(f"  Report: {report.name} ({report.id}) - {len(report.pages)} page(s)")
        print_footer()
        print_json(result.to_dict())


class ProvisionCommand(_ProvisioningCommand):
    """Create a new workspace and provision the template into it."""

    def run(self, args: argparse.Namespace) -> int:
        settings = self.load_settings()
        config = self.build_config(args, capacity_id=args.capacity_id)
        provisioner = WorkspaceProvisioner(PowerBIClient(settings), show_progress=args.progress)

        token = self.build_token(args)
        try:
            result = provisioner.initialize_from_template(config, cancellation_token=token)
        finally:
            restore_default_handler()

        self.print_result(result)
        return ExitCode.SUCCESS


class ImportCommand(_ProvisioningCommand):
    """Provision the template into an existing workspace."""

    def run(self, args: argparse.Namespace) -> int:
        settings = self.load_settings()
        config = self.build_config(args)
        provisioner = WorkspaceProvisioner(PowerBIClient(settings), show_progress=args.progress)

        token = self.build_token(args)
        try:
            result = provisioner.import_to_workspace(args.workspace_id, config, cancellation_token=token)
        finally:
            restore_default_handler()

        self.print_result(result)
        return ExitCode.SUCCESS


class RefreshStatusCommand(BaseCommand):

    def run(self, args: argparse.Namespace) -> int:
        provisioner = WorkspaceProvisioner(PowerBIClient(self.load_settings()))

        if args.trigger:
            last = provisioner.refresh_dataset(args.workspace_id, args.dataset_id)
        else:
            last = provisioner.get_last_dataset_refresh(args.workspace_id, args.dataset_id)
        info = provisioner.group_dataset_refreshed(args.workspace_id, args.dataset_id)

        print(f"All refreshes final: {info.all_in_final_state}")
        print(f"Last refresh successful: {info.last_refresh_successful}")
        if last is None:
            print("No refresh recorded for this dataset")
        else:
            print(f"Latest refresh: {last.status} (started {last.start_time}, ended {last.end_time})")
        return ExitCode.SUCCESS


class EmbedTokenCommand(BaseCommand):

    def run(self, args: argparse.Namespace) -> int:
        client = PowerBIClient(self.load_settings())
        token = client.generate_embed_token(args.workspace_id, args.report_id)
        print_json(token.to_dict())
        return ExitCode.SUCCESS


class EnsureFolderCommand(BaseCommand):

    def run(self, args: argparse.Namespace) -> int:
        client = FabricFolderClient(self.load_settings())
        folder = client.get_or_create_folder_by_path(args.workspace_id, args.path)
        print(f"✓ {args.path} -> {folder.id}")
        return ExitCode.SUCCESS


class ListWorkspacesCommand(BaseCommand):

    def run(self, args: argparse.Namespace) -> int:
        client = PowerBIClient(self.load_settings())
        workspaces = client.list_groups()
        if not workspaces:
            print("No workspaces found")
            return ExitCode.SUCCESS

        print_header(f"WORKSPACES ({len(workspaces)})")
        for workspace in workspaces:
            capacity = workspace.capacity_id or "shared"
            print(f"  {workspace.id}  {workspace.name}  [{capacity}]")
        print_footer()
        return ExitCode.SUCCESS
