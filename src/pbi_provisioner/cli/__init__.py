"""
CLI module for the Power BI provisioning client.

- commands.py: Command implementations (one class per subcommand)
- parsers.py: Argument parsing configuration
- helpers.py: Shared CLI utilities (logging, config loading, output)
"""

from .commands import (
    BaseCommand,
    EmbedTokenCommand,
    EnsureFolderCommand,
    ImportCommand,
    ListWorkspacesCommand,
    ProvisionCommand,
    RefreshStatusCommand,
)
from .helpers import load_config, setup_logging
from .parsers import create_argument_parser

__all__ = [
    'BaseCommand',
    'ProvisionCommand',
    'ImportCommand',
    'RefreshStatusCommand',
    'EmbedTokenCommand',
    'EnsureFolderCommand',
    'ListWorkspacesCommand',
    'create_argument_parser',
    'load_config',
    'setup_logging',
]
