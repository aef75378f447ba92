"""
Argument parsing configuration for the pbi-provisioner CLI.
"""

import argparse


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--config',
        help='JSON settings file (identity, endpoints, group prefix). '
             'Missing identity values are read from AZURE_PB_* variables.'
    )
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging level (default: INFO)'
    )
    parser.add_argument('--log-file', help='Also write logs to this file')


def _add_provisioning_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--name', required=True, help='Report and dataset display name')
    parser.add_argument(
        '--source-system',
        required=True,
        help='Source system config as JSON or @file.json '
             '(path_to_template_file, template_group_id, credentials_template, datasource_params_template)'
    )
    parser.add_argument(
        '--credentials',
        required=True,
        help='Tenant warehouse credentials as JSON or @file.json'
    )
    parser.add_argument('--schedule-time', action='append', default=[], help='Refresh time HH:MM (repeatable)')
    parser.add_argument('--schedule-day', action='append', default=[], help='Refresh week day (repeatable)')
    parser.add_argument(
        '--timeout',
        type=float,
        help='Give up polling after this many seconds (default: no deadline)'
    )
    parser.add_argument('--progress', action='store_true', help='Show progress bars while polling')


def create_argument_parser() -> argparse.ArgumentParser:
    """Create the top-level parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog='pbi-provisioner',
        description='Provision Power BI workspaces from report templates',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pbi-provisioner provision --name Sales --source-system @bigquery.json --credentials @tenant.json
  pbi-provisioner import <workspace_id> --name Sales --source-system @bigquery.json --credentials @tenant.json
  pbi-provisioner refresh-status <workspace_id> <dataset_id>
  pbi-provisioner embed-token <workspace_id> <report_id>
  pbi-provisioner ensure-folder <workspace_id> "Clients/Acme"
  pbi-provisioner list-workspaces
"""
    )
    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    provision = subparsers.add_parser('provision', help='Create a workspace and provision a template into it')
    _add_common_options(provision)
    _add_provisioning_options(provision)
    provision.add_argument('--capacity-id', help='Assign the new workspace to this capacity')

    import_parser = subparsers.add_parser('import', help='Provision a template into an existing workspace')
    _add_common_options(import_parser)
    import_parser.add_argument('workspace_id', help='Target workspace id')
    _add_provisioning_options(import_parser)

    refresh = subparsers.add_parser('refresh-status', help='Show the refresh state of a dataset')
    _add_common_options(refresh)
    refresh.add_argument('workspace_id', help='Workspace id')
    refresh.add_argument('dataset_id', help='Dataset id')
    refresh.add_argument('--trigger', action='store_true', help='Trigger a refresh first')

    embed = subparsers.add_parser('embed-token', help='Generate a view embed token for a report')
    _add_common_options(embed)
    embed.add_argument('workspace_id', help='Workspace id')
    embed.add_argument('report_id', help='Report id')

    folder = subparsers.add_parser('ensure-folder', help='Resolve a folder path, creating missing folders')
    _add_common_options(folder)
    folder.add_argument('workspace_id', help='Workspace id')
    folder.add_argument('path', help='Slash-separated folder path, e.g. "Clients/Acme"')

    workspaces = subparsers.add_parser('list-workspaces', help='List workspaces visible to the identity')
    _add_common_options(workspaces)

    return parser
