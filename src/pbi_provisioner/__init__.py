"""
Provisioning client for Power BI report workspaces.

Creates a workspace, imports a report template, rewires its datasource to a
tenant's warehouse, refreshes it and returns ready-to-embed report metadata.

Example:
    >>> from pbi_provisioner import (
    ...     ClientSettings, PowerBIClient, WorkspaceProvisioner,
    ...     WorkspaceProvisioningConfig, SourceSystemConfig, TenantCredentials,
    ... )
    >>> provisioner = WorkspaceProvisioner(PowerBIClient(ClientSettings.from_env()))
    >>> config = WorkspaceProvisioningConfig.create(
    ...     name="Sales",
    ...     tenant_credentials=TenantCredentials(sa_json=sa_document),
    ...     source_system=SourceSystemConfig("templates/sales.pbix", template_group_id),
    ...     template_loader=lambda path: open(path, "rb").read(),
    ... )
    >>> result = provisioner.initialize_from_template(config)
"""

__version__ = "1.0.0"

from .auth import AccessToken, Audience, TokenManager
from .cancellation import CancellationToken, OperationCancelledException
from .config import (
    ClientSettings,
    DatasetSchedule,
    SourceSystemConfig,
    WorkspaceProvisioningConfig,
)
from .errors import (
    AmbiguousDatasetError,
    AuthenticationError,
    CommunicationError,
    ConfigurationError,
    DatasetNotFoundError,
    DomainError,
    FailedImportError,
    MissingParameterError,
    PowerBIError,
    UnexpectedCreationError,
    UnknownResourceError,
)
from .fabric_client import FabricFolderClient
from .models import (
    DatasetRefreshInfo,
    EmbedToken,
    ProvisioningResult,
    RefreshRecord,
    ReportSummary,
)
from .powerbi_client import PowerBIClient
from .provisioner import WorkspaceProvisioner
from .templating import (
    CredentialTemplateItem,
    CredentialTemplateItemType,
    DatasourceParamTemplateItem,
    DatasourceParamTemplateItemType,
    TenantCredentials,
    build_credentials,
    build_datasource_params,
)

__all__ = [
    "__version__",
    "AccessToken",
    "Audience",
    "TokenManager",
    "CancellationToken",
    "OperationCancelledException",
    "ClientSettings",
    "DatasetSchedule",
    "SourceSystemConfig",
    "WorkspaceProvisioningConfig",
    "AmbiguousDatasetError",
    "AuthenticationError",
    "CommunicationError",
    "ConfigurationError",
    "DatasetNotFoundError",
    "DomainError",
    "FailedImportError",
    "MissingParameterError",
    "PowerBIError",
    "UnexpectedCreationError",
    "UnknownResourceError",
    "FabricFolderClient",
    "DatasetRefreshInfo",
    "EmbedToken",
    "ProvisioningResult",
    "RefreshRecord",
    "ReportSummary",
    "PowerBIClient",
    "WorkspaceProvisioner",
    "CredentialTemplateItem",
    "CredentialTemplateItemType",
    "DatasourceParamTemplateItem",
    "DatasourceParamTemplateItemType",
    "TenantCredentials",
    "build_credentials",
    "build_datasource_params",
]
