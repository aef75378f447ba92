"""
Datasource credential and parameter templating.

A source system declares which tenant warehouse fields fill which datasource
credential entries and query parameters. This module resolves such a
declaration against one tenant's credentials into the wire payloads the
Power BI gateway and UpdateParameters endpoints accept.

Resolution happens once, when a provisioning config is built, so an
unmapped item type or a missing tenant value fails before any remote call.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .constants import (
    CredentialType,
    EncryptedConnection,
    EncryptionAlgorithm,
    PrivacyLevel,
)
from .errors import ConfigurationError, ErrorMessages, ParamNames

logger = logging.getLogger(__name__)


def _item_fields(data: Dict[str, Any], kind: str) -> Dict[str, Any]:
    try:
        return {
            "type": data["type"],
            "name": data["name"],
            "override_value": data.get("override_value", data.get("overrideValue")),
        }
    except (KeyError, TypeError) as e:
        missing = e.args[0] if isinstance(e, KeyError) else "type, name"
        raise ConfigurationError(
            ErrorMessages.MISSING_INIT_CONFIGURATION, {ParamNames.PARAMS: f"{kind} {missing}"}
        ) from e


class CredentialTemplateItemType(str, Enum):
    USERNAME = "USERNAME"
    PASSWORD = "PASSWORD"
    # Service account JSON document, used for Google BigQuery
    SA_JSON = "SA_JSON"


class DatasourceParamTemplateItemType(str, Enum):
    DATABASE_NAME = "DATABASE_NAME"
    HOSTNAME = "HOSTNAME"
    WAREHOUSE = "WAREHOUSE"
    SCHEMA = "SCHEMA"


@dataclass(frozen=True)
class TenantCredentials:
    """
    Warehouse connection details of one tenant.

    Snowflake-style tenants fill the username/password/host fields,
    BigQuery-style tenants fill ``sa_json`` only.
    """
    username: Optional[str] = None
    password: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    warehouse: Optional[str] = None
    schema: Optional[str] = None
    database: Optional[str] = None
    sa_json: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TenantCredentials":
        return cls(
            username=data.get("username") or data.get("user"),
            password=data.get("password"),
            host=data.get("host"),
            port=data.get("port"),
            warehouse=data.get("warehouse"),
            schema=data.get("schema"),
            database=data.get("database"),
            sa_json=data.get("sa_json") or data.get("saJson"),
        )


@dataclass(frozen=True)
class CredentialTemplateItem:
    """
    One credential entry of a datasource.

    Attributes:
        type: Which tenant field supplies the value
        name: Name of the entry in the credential payload (e.g. "password")
        override_value: Used verbatim instead of the tenant field when set
    """
    type: Union[CredentialTemplateItemType, str]
    name: str
    override_value: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CredentialTemplateItem":
        return cls(**_item_fields(data, "credentials_template"))


@dataclass(frozen=True)
class DatasourceParamTemplateItem:
    """One query parameter of the template report, e.g. ``Database``."""
    type: Union[DatasourceParamTemplateItemType, str]
    name: str
    override_value: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatasourceParamTemplateItem":
        return cls(**_item_fields(data, "datasource_params_template"))


_CREDENTIAL_FIELDS: Dict[CredentialTemplateItemType, Callable[[TenantCredentials], Any]] = {
    CredentialTemplateItemType.USERNAME: lambda creds: creds.username,
    CredentialTemplateItemType.PASSWORD: lambda creds: creds.password,
    CredentialTemplateItemType.SA_JSON: lambda creds: creds.sa_json,
}

_PARAM_FIELDS: Dict[DatasourceParamTemplateItemType, Callable[[TenantCredentials], Any]] = {
    DatasourceParamTemplateItemType.DATABASE_NAME: lambda creds: creds.database,
    DatasourceParamTemplateItemType.HOSTNAME: lambda creds: creds.host,
    DatasourceParamTemplateItemType.WAREHOUSE: lambda creds: creds.warehouse,
    DatasourceParamTemplateItemType.SCHEMA: lambda creds: creds.schema,
}


def _coerce_type(value: Any, enum_cls: type) -> Enum:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value))
    except ValueError:
        raise ConfigurationError(
            params={ParamNames.PARAMS: f"unknown {enum_cls.__name__} {value!r}"}
        ) from None


def _resolve(item: Any, enum_cls: type, fields: Dict[Any, Callable], creds: TenantCredentials) -> str:
    if item.override_value is not None:
        return str(item.override_value)

    item_type = _coerce_type(item.type, enum_cls)

    getter = fields.get(item_type)
    if getter is None:
        raise ConfigurationError(
            params={ParamNames.PARAMS: f"no tenant field mapped to {item_type.value}"}
        )

    value = getter(creds)
    if value is None or value == "":
        raise ConfigurationError(
            params={ParamNames.PARAMS: f"tenant credentials have no value for {item_type.value} ({item.name})"}
        )
    return str(value)


def build_credential_data(
    tenant_credentials: TenantCredentials,
    template_items: Iterable[CredentialTemplateItem],
) -> List[Dict[str, str]]:
    """Resolve credential template items into ``[{name, value}]`` entries, in template order."""
    return [
        {"name": item.name, "value": _resolve(item, CredentialTemplateItemType, _CREDENTIAL_FIELDS, tenant_credentials)}
        for item in template_items
    ]


def wrap_credential_data(credential_data: List[Dict[str, str]]) -> Dict[str, Any]:
    """Wrap resolved entries in the gateway ``credentialDetails`` payload."""
    return {
        "credentialType": CredentialType.BASIC.value,
        "credentials": json.dumps({"credentialData": credential_data}),
        "encryptedConnection": EncryptedConnection.ENCRYPTED.value,
        "encryptionAlgorithm": EncryptionAlgorithm.NONE.value,
        "privacyLevel": PrivacyLevel.ORGANIZATIONAL.value,
        "useEndUserOAuth2Credentials": False,
    }


def build_credentials(
    tenant_credentials: TenantCredentials,
    template_items: Optional[Iterable[CredentialTemplateItem]] = None,
) -> Dict[str, Any]:
    """
    Build the wire credential payload for a gateway datasource update.

    Without a template the tenant's service account document is sent as a
    single ``key`` entry.

    Args:
        tenant_credentials: Tenant warehouse credentials
        template_items: Credential template of the source system

    Returns:
        Dict accepted as ``credentialDetails`` by the gateway endpoint

    Raises:
        ConfigurationError: On an unknown item type or a missing tenant value
    """
    items = list(template_items or [])
    if not items:
        items = [CredentialTemplateItem(type=CredentialTemplateItemType.SA_JSON, name="key")]

    payload = wrap_credential_data(build_credential_data(tenant_credentials, items))
    logger.debug(f"Resolved {len(items)} credential entries: {[item.name for item in items]}")
    return payload


def build_datasource_params(
    tenant_credentials: TenantCredentials,
    template_items: Optional[Iterable[DatasourceParamTemplateItem]] = None,
) -> List[Dict[str, str]]:
    """
    Build the ``updateDetails`` list for Default.UpdateParameters.

    Returns:
        ``[{"name": ..., "newValue": ...}]`` in template order; empty when no
        template is configured

    Raises:
        ConfigurationError: On an unknown item type or a missing tenant value
    """
    params = [
        {"name": item.name, "newValue": _resolve(item, DatasourceParamTemplateItemType, _PARAM_FIELDS, tenant_credentials)}
        for item in (template_items or [])
    ]
    logger.debug(f"Resolved datasource params: {[param['name'] for param in params]}")
    return params
