"""
Typed views over Power BI and Fabric API payloads.

Each model is built from the camelCase JSON the platform returns with
``from_dict`` and keeps the raw payload for fields it does not model.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .constants import REFRESH_FINAL_STATUSES, RefreshStatus


@dataclass
class Workspace:
    """A Power BI group (workspace)."""
    id: str
    name: str
    is_on_dedicated_capacity: bool = False
    capacity_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Workspace":
        return cls(
            id=data["id"],
            name=data.get("name") or data.get("displayName", ""),
            is_on_dedicated_capacity=bool(data.get("isOnDedicatedCapacity", False)),
            capacity_id=data.get("capacityId"),
            raw=data,
        )


@dataclass
class GroupUser:
    """
    A member of a workspace.

    ``to_dict`` produces the body accepted by the add-group-user endpoint.
    """
    identifier: str
    group_user_access_right: str = "Viewer"
    principal_type: str = "User"
    display_name: Optional[str] = None
    email_address: Optional[str] = None
    graph_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GroupUser":
        return cls(
            identifier=data["identifier"],
            group_user_access_right=data.get("groupUserAccessRight", "Viewer"),
            principal_type=data.get("principalType", "User"),
            display_name=data.get("displayName"),
            email_address=data.get("emailAddress"),
            graph_id=data.get("graphId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "identifier": self.identifier,
            "groupUserAccessRight": self.group_user_access_right,
            "principalType": self.principal_type,
        }
        if self.display_name:
            body["displayName"] = self.display_name
        if self.email_address:
            body["emailAddress"] = self.email_address
        if self.graph_id:
            body["graphId"] = self.graph_id
        return body


@dataclass
class Dataset:
    id: str
    name: str
    configured_by: Optional[str] = None
    is_refreshable: bool = True
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Dataset":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            configured_by=data.get("configuredBy"),
            is_refreshable=bool(data.get("isRefreshable", True)),
            raw=data,
        )


@dataclass
class Datasource:
    """A connection bound to a dataset, reachable through a gateway."""
    datasource_id: str
    gateway_id: str
    datasource_type: Optional[str] = None
    connection_details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Datasource":
        return cls(
            datasource_id=data.get("datasourceId", ""),
            gateway_id=data.get("gatewayId", ""),
            datasource_type=data.get("datasourceType"),
            connection_details=data.get("connectionDetails") or {},
        )


@dataclass
class ImportStatus:
    id: str
    import_state: str
    name: Optional[str] = None
    datasets: List[Dict[str, Any]] = field(default_factory=list)
    reports: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportStatus":
        return cls(
            id=data["id"],
            import_state=data.get("importState", ""),
            name=data.get("name"),
            datasets=data.get("datasets") or [],
            reports=data.get("reports") or [],
        )


@dataclass
class RefreshRecord:
    """A read-only snapshot of one dataset refresh."""
    status: str
    request_id: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    refresh_type: Optional[str] = None
    service_exception_json: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RefreshRecord":
        return cls(
            status=data.get("status", RefreshStatus.UNKNOWN.value),
            request_id=data.get("requestId"),
            start_time=data.get("startTime"),
            end_time=data.get("endTime"),
            refresh_type=data.get("refreshType"),
            service_exception_json=data.get("serviceExceptionJson"),
        )

    @property
    def is_final(self) -> bool:
        return self.status in REFRESH_FINAL_STATUSES


@dataclass
class RefreshSchedule:
    times: List[str] = field(default_factory=list)
    days: Optional[List[str]] = None
    enabled: bool = True
    local_time_zone_id: str = "UTC"
    notify_option: str = "NoNotification"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RefreshSchedule":
        return cls(
            times=data.get("times") or [],
            days=data.get("days"),
            enabled=bool(data.get("enabled", False)),
            local_time_zone_id=data.get("localTimeZoneId", "UTC"),
            notify_option=data.get("notifyOption", "NoNotification"),
        )

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "enabled": self.enabled,
            "times": list(self.times),
            "localTimeZoneId": self.local_time_zone_id,
            "notifyOption": self.notify_option,
        }
        if self.days:
            body["days"] = list(self.days)
        return body


@dataclass
class Report:
    id: str
    name: str
    dataset_id: Optional[str] = None
    embed_url: Optional[str] = None
    web_url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Report":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            dataset_id=data.get("datasetId"),
            embed_url=data.get("embedUrl"),
            web_url=data.get("webUrl"),
            raw=data,
        )


@dataclass
class ReportPage:
    name: str
    display_name: str
    order: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportPage":
        return cls(
            name=data.get("name", ""),
            display_name=data.get("displayName", ""),
            order=int(data.get("order", 0) or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "displayName": self.display_name, "order": self.order}


@dataclass
class ReportSummary:
    """Public shape of a provisioned report, ready for embedding."""
    id: str
    name: str
    embed_url: Optional[str]
    web_url: Optional[str]
    pages: List[ReportPage] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "embedUrl": self.embed_url,
            "webUrl": self.web_url,
            "pages": [page.to_dict() for page in self.pages],
        }


@dataclass
class ProvisioningResult:
    """
    Outcome of a successful provisioning run.

    Attributes:
        workspace_id: Id of the workspace that now holds the report
        workspace_name: Display name of that workspace
        dataset_id: Id of the imported dataset
        datasource_id: Id of the datasource whose credentials were updated
        refresh_completed: False when the refresh poll ran out of attempts
            while the dataset was still refreshing
        reports: Reports bound to the dataset, with their pages
    """
    workspace_id: str
    workspace_name: str
    dataset_id: str
    datasource_id: str
    refresh_completed: bool
    reports: List[ReportSummary] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workspaceId": self.workspace_id,
            "workspaceName": self.workspace_name,
            "datasetId": self.dataset_id,
            "datasourceId": self.datasource_id,
            "refreshCompleted": self.refresh_completed,
            "reports": [report.to_dict() for report in self.reports],
        }


@dataclass
class Capacity:
    id: str
    display_name: str = ""
    sku: Optional[str] = None
    state: Optional[str] = None
    region: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Capacity":
        return cls(
            id=data["id"],
            display_name=data.get("displayName", ""),
            sku=data.get("sku"),
            state=data.get("state"),
            region=data.get("region"),
        )


@dataclass
class EmbedToken:
    token: str
    token_id: str
    expiration: str

    def to_dict(self) -> Dict[str, str]:
        return {"token": self.token, "tokenId": self.token_id, "expiration": self.expiration}


@dataclass
class DatasetRefreshInfo:
    all_in_final_state: bool
    last_refresh_successful: bool


@dataclass
class Folder:
    """A Fabric workspace folder."""
    id: str
    display_name: str
    workspace_id: str
    parent_folder_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Folder":
        return cls(
            id=data["id"],
            display_name=data.get("displayName", ""),
            workspace_id=data.get("workspaceId", ""),
            parent_folder_id=data.get("parentFolderId"),
        )


@dataclass
class FabricItem:
    id: str
    display_name: str
    type: str
    workspace_id: str = ""
    folder_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FabricItem":
        return cls(
            id=data["id"],
            display_name=data.get("displayName", ""),
            type=data.get("type", ""),
            workspace_id=data.get("workspaceId", ""),
            folder_id=data.get("folderId"),
        )


@dataclass
class FabricWorkspace:
    id: str
    display_name: str
    type: Optional[str] = None
    capacity_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FabricWorkspace":
        return cls(
            id=data["id"],
            display_name=data.get("displayName", ""),
            type=data.get("type"),
            capacity_id=data.get("capacityId"),
        )
