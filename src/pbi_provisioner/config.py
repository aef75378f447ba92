"""
Configuration objects for the provisioning client.

- ClientSettings: identity and endpoint settings of one client instance
- SourceSystemConfig: where a source system's template lives and how its
  datasource is templated
- DatasetSchedule: optional refresh schedule
- WorkspaceProvisioningConfig: one fully resolved provisioning request
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from .constants import APIConfig, EnvVars
from .errors import (
    ConfigurationError,
    ErrorMessages,
    ParamNames,
)
from .templating import (
    CredentialTemplateItem,
    DatasourceParamTemplateItem,
    TenantCredentials,
    build_credentials,
    build_datasource_params,
)

logger = logging.getLogger(__name__)

TemplateLoader = Callable[[str], bytes]

_PLACEHOLDER_VALUES = {
    "tenant_id": "YOUR_TENANT_ID",
    "client_id": "YOUR_CLIENT_ID",
    "client_secret": "YOUR_CLIENT_SECRET",
}


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [scope for scope in value.split() if scope]
    return list(value)


@dataclass
class ClientSettings:
    """
    Identity and endpoint settings.

    Attributes:
        tenant_id: Directory (tenant) id of the app registration
        client_id: Application (client) id
        client_secret: Client secret of the app registration
        authority: Identity authority host
        powerbi_resource: Resource for Power BI tokens
        powerbi_scopes: Explicit Power BI scopes (default ``<resource>/.default``)
        fabric_resource: Resource for Fabric tokens
        fabric_scopes: Explicit Fabric scopes
        group_prefix: Prefix prepended to every created workspace name
        powerbi_api_url: Power BI REST root
        fabric_api_url: Fabric REST root
        request_timeout: Per-request timeout in seconds
    """
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    authority: str = APIConfig.AUTHORITY
    powerbi_resource: str = APIConfig.POWERBI_RESOURCE
    powerbi_scopes: List[str] = field(default_factory=list)
    fabric_resource: str = APIConfig.FABRIC_RESOURCE
    fabric_scopes: List[str] = field(default_factory=list)
    group_prefix: str = ""
    powerbi_api_url: str = APIConfig.POWERBI_API_URL
    fabric_api_url: str = APIConfig.FABRIC_API_URL
    request_timeout: int = APIConfig.DEFAULT_TIMEOUT

    @classmethod
    def from_dict(cls, config_dict: Optional[Mapping[str, Any]]) -> "ClientSettings":
        """Create settings from a mapping with snake_case keys (e.g. a JSON config file)."""
        if not config_dict:
            return cls()

        return cls(
            tenant_id=config_dict.get("tenant_id", ""),
            client_id=config_dict.get("client_id", ""),
            client_secret=config_dict.get("client_secret", ""),
            authority=config_dict.get("authority") or APIConfig.AUTHORITY,
            powerbi_resource=config_dict.get("powerbi_resource") or APIConfig.POWERBI_RESOURCE,
            powerbi_scopes=_as_list(config_dict.get("powerbi_scopes")),
            fabric_resource=config_dict.get("fabric_resource") or APIConfig.FABRIC_RESOURCE,
            fabric_scopes=_as_list(config_dict.get("fabric_scopes")),
            group_prefix=config_dict.get("group_prefix", ""),
            powerbi_api_url=config_dict.get("powerbi_api_url") or APIConfig.POWERBI_API_URL,
            fabric_api_url=config_dict.get("fabric_api_url") or APIConfig.FABRIC_API_URL,
            request_timeout=int(config_dict.get("request_timeout", APIConfig.DEFAULT_TIMEOUT)),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientSettings":
        """Create settings from ``AZURE_PB_*`` and ``POWER_BI_GROUP_PREFIX`` variables."""
        env = os.environ if environ is None else environ
        return cls(
            tenant_id=env.get(EnvVars.TENANT_ID, ""),
            client_id=env.get(EnvVars.CLIENT_ID, ""),
            client_secret=env.get(EnvVars.CLIENT_SECRET, ""),
            authority=env.get(EnvVars.AUTHORITY) or APIConfig.AUTHORITY,
            group_prefix=env.get(EnvVars.GROUP_PREFIX, ""),
        )

    def merged_with_env(self, environ: Optional[Mapping[str, str]] = None) -> "ClientSettings":
        """Fill empty identity fields and the group prefix from the environment."""
        from_env = ClientSettings.from_env(environ)
        return ClientSettings(
            tenant_id=self.tenant_id or from_env.tenant_id,
            client_id=self.client_id or from_env.client_id,
            client_secret=self.client_secret or from_env.client_secret,
            authority=self.authority,
            powerbi_resource=self.powerbi_resource,
            powerbi_scopes=list(self.powerbi_scopes),
            fabric_resource=self.fabric_resource,
            fabric_scopes=list(self.fabric_scopes),
            group_prefix=self.group_prefix or from_env.group_prefix,
            powerbi_api_url=self.powerbi_api_url,
            fabric_api_url=self.fabric_api_url,
            request_timeout=self.request_timeout,
        )

    def validate(self) -> None:
        """
        Check that the identity settings are present and not placeholders.

        Raises:
            ConfigurationError: Naming every missing or placeholder field
        """
        problems = []
        for name, placeholder in _PLACEHOLDER_VALUES.items():
            value = getattr(self, name)
            if not value:
                problems.append(f"{name} is missing")
            elif value == placeholder:
                problems.append(f"{name} is still set to {placeholder}")
        if self.request_timeout <= 0:
            problems.append("request_timeout must be > 0")

        if problems:
            raise ConfigurationError(params={ParamNames.PARAMS: "; ".join(problems)})


@dataclass(frozen=True)
class SourceSystemConfig:
    """Template location and datasource templating of one source system."""
    path_to_template_file: str
    template_group_id: str
    credentials_template: List[CredentialTemplateItem] = field(default_factory=list)
    datasource_params_template: List[DatasourceParamTemplateItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SourceSystemConfig":
        try:
            path = data.get("path_to_template_file") or data["pathToTemplateFile"]
            group = data.get("template_group_id") or data["templateGroupId"]
        except KeyError as e:
            raise ConfigurationError(
                ErrorMessages.MISSING_INIT_CONFIGURATION, {ParamNames.PARAMS: e.args[0]}
            ) from e

        credentials = data.get("credentials_template", data.get("credentialsTemplate")) or []
        params = data.get("datasource_params_template", data.get("datasourceParamsTemplate")) or []
        return cls(
            path_to_template_file=path,
            template_group_id=group,
            credentials_template=[CredentialTemplateItem.from_dict(item) for item in credentials],
            datasource_params_template=[DatasourceParamTemplateItem.from_dict(item) for item in params],
        )


@dataclass(frozen=True)
class DatasetSchedule:
    """
    Refresh schedule of a dataset.

    Attributes:
        times: Times of day in 24h "HH:MM" format, e.g. ["14:00"]
        days: Week day names; None or empty means every day
    """
    times: List[str] = field(default_factory=list)
    days: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["DatasetSchedule"]:
        if not data:
            return None
        return cls(times=list(data.get("times") or []), days=list(data.get("days") or []) or None)


class WorkspaceProvisioningConfig:
    """
    One provisioning request with credentials and parameters resolved.

    Read-only after construction except for the memoized template bytes,
    which are loaded at most once per instance.

    Example:
        >>> config = WorkspaceProvisioningConfig.create(
        ...     name="Sales",
        ...     tenant_credentials=TenantCredentials(sa_json=sa_document),
        ...     source_system=SourceSystemConfig("templates/sales.pbix", "T1"),
        ...     template_loader=lambda path: Path(path).read_bytes(),
        ... )
    """

    def __init__(
        self,
        name: str,
        template_group_id: str,
        path_to_template_file: str,
        template_loader: TemplateLoader,
        datasource_credentials: Optional[Dict[str, Any]],
        datasource_params: Optional[List[Dict[str, str]]] = None,
        scheduled_times: Optional[List[str]] = None,
        scheduled_days: Optional[List[str]] = None,
        capacity_id: Optional[str] = None,
        import_folder_id: Optional[str] = None,
    ):
        self._name = name
        self._template_group_id = template_group_id
        self._path_to_template_file = path_to_template_file
        self._template_loader = template_loader
        self._datasource_credentials = datasource_credentials
        self._datasource_params = tuple(datasource_params or ())
        self._scheduled_times = tuple(scheduled_times) if scheduled_times else None
        self._scheduled_days = tuple(scheduled_days) if scheduled_days else None
        self._capacity_id = capacity_id
        self._import_folder_id = import_folder_id

        self._template: Optional[bytes] = None
        self._template_lock = threading.Lock()

    @classmethod
    def create(
        cls,
        name: str,
        tenant_credentials: TenantCredentials,
        source_system: SourceSystemConfig,
        template_loader: TemplateLoader,
        import_folder_id: Optional[str] = None,
        schedule: Optional[DatasetSchedule] = None,
        capacity_id: Optional[str] = None,
    ) -> "WorkspaceProvisioningConfig":
        """
        Resolve templates against tenant credentials and build a config.

        Raises:
            ConfigurationError: If a template item cannot be resolved
        """
        credentials = build_credentials(tenant_credentials, source_system.credentials_template)
        params = build_datasource_params(tenant_credentials, source_system.datasource_params_template)

        return cls(
            name=name,
            template_group_id=source_system.template_group_id,
            path_to_template_file=source_system.path_to_template_file,
            template_loader=template_loader,
            datasource_credentials=credentials,
            datasource_params=params,
            scheduled_times=schedule.times if schedule else None,
            scheduled_days=schedule.days if schedule else None,
            capacity_id=capacity_id,
            import_folder_id=import_folder_id,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def template_group_id(self) -> str:
        return self._template_group_id

    @property
    def path_to_template_file(self) -> str:
        return self._path_to_template_file

    @property
    def datasource_credentials(self) -> Optional[Dict[str, Any]]:
        if self._datasource_credentials is None:
            return None
        return dict(self._datasource_credentials)

    @property
    def datasource_params(self) -> List[Dict[str, str]]:
        return [dict(param) for param in self._datasource_params]

    @property
    def scheduled_times(self) -> Optional[List[str]]:
        return list(self._scheduled_times) if self._scheduled_times else None

    @property
    def scheduled_days(self) -> Optional[List[str]]:
        return list(self._scheduled_days) if self._scheduled_days else None

    @property
    def capacity_id(self) -> Optional[str]:
        return self._capacity_id

    @property
    def import_folder_id(self) -> Optional[str]:
        return self._import_folder_id

    def get_template(self) -> bytes:
        """Return the template package bytes, invoking the loader only on first use."""
        with self._template_lock:
            if self._template is None:
                logger.info(f"Loading template package from {self._path_to_template_file}")
                self._template = self._template_loader(self._path_to_template_file)
            return self._template

    def __repr__(self) -> str:
        return (
            f"WorkspaceProvisioningConfig(name={self._name!r}, "
            f"template_group_id={self._template_group_id!r}, "
            f"capacity_id={self._capacity_id!r})"
        )
