"""
Constants for the Power BI provisioning client.

Groups the remote API path templates, status vocabularies, polling budgets
and CLI exit codes in one place.
"""

from enum import Enum, IntEnum


class ExitCode(IntEnum):
    """Process exit codes returned by the CLI."""
    SUCCESS = 0
    ERROR = 1
    CONFIGURATION_ERROR = 2
    CANCELLED = 130


class APIConfig:
    """Remote endpoints, identity defaults and transport defaults."""
    AUTHORITY = "https://login.microsoftonline.com"
    POWERBI_RESOURCE = "https://analysis.windows.net/powerbi/api"
    FABRIC_RESOURCE = "https://api.fabric.microsoft.com"
    POWERBI_API_URL = "https://api.powerbi.com/v1.0/myorg"
    FABRIC_API_URL = "https://api.fabric.microsoft.com/v1"

    DEFAULT_TIMEOUT = 60
    # Tokens are refreshed this long before they expire
    TOKEN_SAFETY_MARGIN_SECONDS = 5 * 60
    # Used when a 429 response carries no Retry-After header
    DEFAULT_RETRY_AFTER_SECONDS = 60
    RATE_LIMIT_ATTEMPTS = 2


class PollingConfig:
    """Budgets of the two long-running-operation poll loops."""
    IMPORT_POLL_INTERVAL = 2
    # None means the import poll runs until the import leaves "Publishing"
    IMPORT_MAX_ATTEMPTS = None
    REFRESH_POLL_INTERVAL = 10
    REFRESH_MAX_ATTEMPTS = 72


class PowerBIPaths:
    """Path templates relative to the Power BI REST root. ``:name`` tokens are path params."""
    GROUPS = "/groups"
    GROUP = "/groups/:groupId"
    GROUP_USERS = "/groups/:groupId/users"
    DATASETS_IN_GROUP = "/groups/:groupId/datasets"
    DATASET_TAKE_OVER = "/groups/:groupId/datasets/:datasetId/Default.TakeOver"
    DATASET_UPDATE_PARAMETERS = "/groups/:groupId/datasets/:datasetId/Default.UpdateParameters"
    DATASET_REFRESHES = "/groups/:groupId/datasets/:datasetId/refreshes"
    DATASET_REFRESH_SCHEDULE = "/groups/:groupId/datasets/:datasetId/refreshSchedule"
    DATASOURCES_IN_GROUP = "/groups/:groupId/datasets/:datasetId/datasources"
    REPORTS_IN_GROUP = "/groups/:groupId/reports"
    REPORT_EXPORT = "/groups/:groupId/reports/:reportId/Export"
    REPORT_CLONE = "/groups/:groupId/reports/:reportId/Clone"
    REPORT_PAGES = "/groups/:groupId/reports/:reportId/pages"
    REPORT_GENERATE_TOKEN = "/groups/:groupId/reports/:reportId/GenerateToken"
    GATEWAYS = "/gateways"
    GATEWAY_DATASOURCES = "/gateways/:gatewayId/datasources"
    GATEWAY_DATASOURCE = "/gateways/:gatewayId/datasources/:datasourceId"
    IMPORTS_IN_GROUP = "/groups/:groupId/imports"
    IMPORT_IN_GROUP = "/groups/:groupId/imports/:importId"
    CAPACITIES = "/capacities"
    GROUP_ASSIGN_TO_CAPACITY = "/groups/:groupId/AssignToCapacity"


class FabricPaths:
    """Path templates relative to the Fabric REST root."""
    WORKSPACES = "/workspaces"
    WORKSPACE = "/workspaces/:workspaceId"
    FOLDERS = "/workspaces/:workspaceId/folders"
    FOLDER = "/workspaces/:workspaceId/folders/:folderId"
    ITEMS = "/workspaces/:workspaceId/items"
    ITEM = "/workspaces/:workspaceId/items/:itemId"


class RefreshStatus(str, Enum):
    UNKNOWN = "Unknown"
    COMPLETED = "Completed"
    FAILED = "Failed"
    DISABLED = "Disabled"


# Unknown is reported by the platform while a refresh is still running,
# so it is never treated as final.
REFRESH_FINAL_STATUSES = frozenset({
    RefreshStatus.COMPLETED.value,
    RefreshStatus.FAILED.value,
    RefreshStatus.DISABLED.value,
})


class ImportState(str, Enum):
    PUBLISHING = "Publishing"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class ScheduleNotifyOption(str, Enum):
    MAIL_ON_FAILURE = "MailOnFailure"
    NO_NOTIFICATION = "NoNotification"


SCHEDULE_TIME_ZONE = "UTC"


class CredentialType(str, Enum):
    ANONYMOUS = "Anonymous"
    BASIC = "Basic"
    KEY = "Key"
    OAUTH2 = "OAuth2"
    WINDOWS = "Windows"


class EncryptedConnection(str, Enum):
    ENCRYPTED = "Encrypted"
    NOT_ENCRYPTED = "NotEncrypted"


class EncryptionAlgorithm(str, Enum):
    NONE = "None"
    RSA_OAEP = "RSA-OAEP"


class PrivacyLevel(str, Enum):
    NONE = "None"
    ORGANIZATIONAL = "Organizational"
    PRIVATE = "Private"
    PUBLIC = "Public"


class EnvVars:
    """Environment variables read by ClientSettings.from_env()."""
    TENANT_ID = "AZURE_PB_TENANT_ID"
    CLIENT_ID = "AZURE_PB_CLIENT_ID"
    CLIENT_SECRET = "AZURE_PB_CLIENT_SECRET"
    AUTHORITY = "AZURE_PB_AUTHORITY"
    GROUP_PREFIX = "POWER_BI_GROUP_PREFIX"
