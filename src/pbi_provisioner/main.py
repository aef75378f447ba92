"""
Entry point of the ``pbi-provisioner`` console script.

Usage:
    pbi-provisioner provision --name <name> --source-system <json> --credentials <json>
    pbi-provisioner import <workspace_id> --name <name> --source-system <json> --credentials <json>
    pbi-provisioner refresh-status <workspace_id> <dataset_id> [--trigger]
    pbi-provisioner embed-token <workspace_id> <report_id>
    pbi-provisioner ensure-folder <workspace_id> <path>
    pbi-provisioner list-workspaces
"""

import sys
from typing import List, Optional

from .cli import (
    EmbedTokenCommand,
    EnsureFolderCommand,
    ImportCommand,
    ListWorkspacesCommand,
    ProvisionCommand,
    RefreshStatusCommand,
    create_argument_parser,
)
from .constants import ExitCode

COMMAND_MAP = {
    'provision': ProvisionCommand,
    'import': ImportCommand,
    'refresh-status': RefreshStatusCommand,
    'embed-token': EmbedTokenCommand,
    'ensure-folder': EnsureFolderCommand,
    'list-workspaces': ListWorkspacesCommand,
}


def run(argv: Optional[List[str]] = None) -> int:
    """Parse ``argv`` and dispatch to the matching command; returns the exit code."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    command_class = COMMAND_MAP.get(args.command)
    if command_class is None:
        parser.print_help()
        return ExitCode.ERROR

    command = command_class(config_path=getattr(args, 'config', None))
    return int(command.execute(args))


def main() -> None:
    sys.exit(run())


if __name__ == '__main__':
    main()
