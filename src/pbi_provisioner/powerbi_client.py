"""
Power BI REST API facade.

One method per remote operation. Every method checks its required
identifiers before building a request and raises MissingParameterError
naming whatever is absent, so invalid calls never reach the network.
Listing methods unwrap the ``value`` envelope and always return a list.

Classes:
    PowerBIClient: Typed access to groups, datasets, reports, imports,
        gateways, capacities and embed tokens
"""

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from .auth import Audience, TokenManager
from .config import ClientSettings
from .constants import (
    REFRESH_FINAL_STATUSES,
    SCHEDULE_TIME_ZONE,
    ImportState,
    PowerBIPaths,
    ScheduleNotifyOption,
)
from .errors import (
    FailedImportError,
    MissingParameterError,
    ResourceNames,
    UnknownResourceError,
)
from .http_client import HttpTransport
from .models import (
    Capacity,
    Dataset,
    Datasource,
    EmbedToken,
    GroupUser,
    ImportStatus,
    RefreshRecord,
    RefreshSchedule,
    Report,
    ReportPage,
    Workspace,
)

logger = logging.getLogger(__name__)


def require_params(**params: Any) -> None:
    """Raise MissingParameterError naming every empty keyword argument."""
    missing = [name for name, value in params.items() if not value]
    if missing:
        logger.error(f"Missing required param(s): {', '.join(missing)}")
        raise MissingParameterError(", ".join(missing))


def unwrap_values(body: Any) -> List[Dict[str, Any]]:
    """Return the ``value`` array of a list envelope, or [] when absent."""
    if isinstance(body, dict):
        return list(body.get("value") or [])
    return []


def _status_of(refresh: Any) -> Optional[str]:
    if isinstance(refresh, dict):
        return refresh.get("status")
    return getattr(refresh, "status", None)


class PowerBIClient:
    """
    Client for the Power BI REST API (``/v1.0/myorg``).

    Example:
        >>> client = PowerBIClient(ClientSettings.from_env())
        >>> for workspace in client.list_groups():
        ...     print(workspace.id, workspace.name)
    """

    def __init__(
        self,
        settings: ClientSettings,
        token_manager: Optional[TokenManager] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            settings: Identity and endpoint settings
            token_manager: Power BI token manager; built from settings when omitted
            sleep: Suspension primitive used while waiting out a 429
        """
        self.settings = settings
        self.token_manager = token_manager or TokenManager(
            Audience.powerbi(settings.authority, settings.powerbi_scopes),
            tenant_id=settings.tenant_id,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
        )
        self.transport = HttpTransport(
            settings.powerbi_api_url,
            self.token_manager,
            timeout=settings.request_timeout,
            sleep=sleep,
        )

    def _call(self, method: str, path: str, **kwargs: Any) -> Any:
        return self.transport.call(method, path, **kwargs)

    # Groups and users

    def list_groups(self) -> List[Workspace]:
        body = self._call("GET", PowerBIPaths.GROUPS, operation_name="List groups")
        return [Workspace.from_dict(item) for item in unwrap_values(body)]

    def get_group(self, group_id: str) -> Optional[Workspace]:
        """Find a workspace by id among all visible groups; None if absent."""
        require_params(group_id=group_id)
        for group in self.list_groups():
            if group.id == group_id:
                return group
        logger.warning(f"Workspace {group_id} not found among visible groups")
        return None

    def create_group(self, name: str) -> Workspace:
        require_params(name=name)
        body = self._call(
            "POST", PowerBIPaths.GROUPS,
            json_body={"name": name},
            operation_name=f"Create workspace '{name}'",
        )
        workspace = Workspace.from_dict(body)
        logger.info(f"Created workspace '{workspace.name}' ({workspace.id})")
        return workspace

    def delete_group(self, group_id: str) -> None:
        require_params(group_id=group_id)
        self._call(
            "DELETE", PowerBIPaths.GROUP,
            path_params={"groupId": group_id},
            operation_name="Delete workspace",
        )
        logger.info(f"Deleted workspace {group_id}")

    def get_group_users(self, group_id: str) -> List[GroupUser]:
        require_params(group_id=group_id)
        body = self._call(
            "GET", PowerBIPaths.GROUP_USERS,
            path_params={"groupId": group_id},
            operation_name="List workspace users",
        )
        return [GroupUser.from_dict(item) for item in unwrap_values(body)]

    def add_group_user(self, group_id: str, user: GroupUser) -> None:
        require_params(group_id=group_id, user=user)
        self._call(
            "POST", PowerBIPaths.GROUP_USERS,
            path_params={"groupId": group_id},
            json_body=user.to_dict(),
            operation_name="Add workspace user",
        )

    def copy_users_from_group(self, source_group_id: str, target_group_id: str) -> Set[str]:
        """
        Add every user of the source workspace to the target workspace.

        Membership of the target is read once up front; users already in
        that snapshot are skipped.

        Returns:
            Identifiers of all users now in the target workspace
        """
        require_params(source_group_id=source_group_id, target_group_id=target_group_id)
        users = self.get_group_users(source_group_id)
        present = {user.identifier for user in self.get_group_users(target_group_id)}

        added = 0
        for user in users:
            if user.identifier in present:
                logger.warning(f"User {user.identifier} already in workspace {target_group_id}")
                continue
            self.add_group_user(target_group_id, user)
            present.add(user.identifier)
            added += 1

        logger.info(f"Copied {added} user(s) from {source_group_id} to {target_group_id}")
        return present

    # Reports

    def list_reports_in_group(self, group_id: str) -> List[Report]:
        require_params(group_id=group_id)
        body = self._call(
            "GET", PowerBIPaths.REPORTS_IN_GROUP,
            path_params={"groupId": group_id},
            operation_name="List reports",
        )
        return [Report.from_dict(item) for item in unwrap_values(body)]

    def list_reports_in_group_for_dataset(self, group_id: str, dataset_id: str) -> List[Report]:
        require_params(group_id=group_id, dataset_id=dataset_id)
        return [report for report in self.list_reports_in_group(group_id) if report.dataset_id == dataset_id]

    def list_report_pages_in_group(self, group_id: str, report_id: str) -> List[ReportPage]:
        require_params(group_id=group_id, report_id=report_id)
        body = self._call(
            "GET", PowerBIPaths.REPORT_PAGES,
            path_params={"groupId": group_id, "reportId": report_id},
            operation_name="List report pages",
        )
        return [ReportPage.from_dict(item) for item in unwrap_values(body)]

    def clone_report_in_group(
        self,
        group_id: str,
        report_id: str,
        report_name: str,
        target_group_id: str,
        target_dataset_id: Optional[str] = None,
    ) -> Report:
        require_params(
            group_id=group_id,
            report_id=report_id,
            report_name=report_name,
            target_group_id=target_group_id,
        )
        body: Dict[str, Any] = {"name": report_name, "targetWorkspaceId": target_group_id}
        if target_dataset_id:
            body["targetModelId"] = target_dataset_id

        result = self._call(
            "POST", PowerBIPaths.REPORT_CLONE,
            path_params={"groupId": group_id, "reportId": report_id},
            json_body=body,
            operation_name=f"Clone report '{report_name}'",
        )
        return Report.from_dict(result)

    def export_report(self, group_id: str, report_id: str) -> Any:
        """Export a report file. The body is returned as decoded by the transport."""
        require_params(group_id=group_id, report_id=report_id)
        return self._call(
            "GET", PowerBIPaths.REPORT_EXPORT,
            path_params={"groupId": group_id, "reportId": report_id},
            operation_name="Export report",
        )

    def generate_embed_token(self, group_id: str, report_id: str) -> EmbedToken:
        require_params(group_id=group_id, report_id=report_id)
        body = self._call(
            "POST", PowerBIPaths.REPORT_GENERATE_TOKEN,
            path_params={"groupId": group_id, "reportId": report_id},
            json_body={"accessLevel": "view"},
            operation_name="Generate embed token",
        ) or {}
        return EmbedToken(
            token=body.get("token", ""),
            token_id=body.get("tokenId", ""),
            expiration=body.get("expiration", ""),
        )

    # Datasets

    def list_datasets_in_group(self, group_id: str) -> List[Dataset]:
        require_params(group_id=group_id)
        body = self._call(
            "GET", PowerBIPaths.DATASETS_IN_GROUP,
            path_params={"groupId": group_id},
            operation_name="List datasets",
        )
        return [Dataset.from_dict(item) for item in unwrap_values(body)]

    def list_datasources_in_group(self, group_id: str, dataset_id: str) -> List[Datasource]:
        require_params(group_id=group_id, dataset_id=dataset_id)
        body = self._call(
            "GET", PowerBIPaths.DATASOURCES_IN_GROUP,
            path_params={"groupId": group_id, "datasetId": dataset_id},
            operation_name="List datasources",
        )
        return [Datasource.from_dict(item) for item in unwrap_values(body)]

    def dataset_take_over(self, group_id: str, dataset_id: str) -> None:
        """Make the calling identity the owner of the dataset."""
        require_params(group_id=group_id, dataset_id=dataset_id)
        self._call(
            "POST", PowerBIPaths.DATASET_TAKE_OVER,
            path_params={"groupId": group_id, "datasetId": dataset_id},
            operation_name="Take over dataset",
        )

    def dataset_update_parameters(
        self,
        group_id: str,
        dataset_id: str,
        params: Optional[List[Dict[str, Any]]],
    ) -> None:
        """Apply ``[{name, newValue}]`` parameter overrides; an empty list sends nothing."""
        require_params(group_id=group_id, dataset_id=dataset_id)
        if not params:
            logger.debug("No dataset parameters to update")
            return

        logger.info(f"Updating dataset parameters: {[param.get('name') for param in params]}")
        self._call(
            "POST", PowerBIPaths.DATASET_UPDATE_PARAMETERS,
            path_params={"groupId": group_id, "datasetId": dataset_id},
            json_body={"updateDetails": list(params)},
            operation_name="Update dataset parameters",
        )

    def dataset_refresh(self, group_id: str, dataset_id: str) -> None:
        require_params(group_id=group_id, dataset_id=dataset_id)
        self._call(
            "POST", PowerBIPaths.DATASET_REFRESHES,
            path_params={"groupId": group_id, "datasetId": dataset_id},
            operation_name="Trigger dataset refresh",
        )

    def get_dataset_refreshes(self, group_id: str, dataset_id: str) -> List[RefreshRecord]:
        require_params(group_id=group_id, dataset_id=dataset_id)
        body = self._call(
            "GET", PowerBIPaths.DATASET_REFRESHES,
            path_params={"groupId": group_id, "datasetId": dataset_id},
            operation_name="List dataset refreshes",
        )
        return [RefreshRecord.from_dict(item) for item in unwrap_values(body)]

    def dataset_create_refresh_schedule(
        self,
        group_id: str,
        dataset_id: str,
        times: List[str],
        days: Optional[List[str]] = None,
    ) -> RefreshSchedule:
        """Install an enabled UTC refresh schedule without notifications."""
        require_params(group_id=group_id, dataset_id=dataset_id, times=times)
        schedule = RefreshSchedule(
            times=list(times),
            days=list(days) if days else None,
            enabled=True,
            local_time_zone_id=SCHEDULE_TIME_ZONE,
            notify_option=ScheduleNotifyOption.NO_NOTIFICATION.value,
        )
        self._call(
            "PATCH", PowerBIPaths.DATASET_REFRESH_SCHEDULE,
            path_params={"groupId": group_id, "datasetId": dataset_id},
            json_body={"value": schedule.to_dict()},
            operation_name="Create refresh schedule",
        )
        logger.info(f"Refresh schedule installed for dataset {dataset_id}: {schedule.times}")
        return schedule

    def get_dataset_refresh_schedule(self, group_id: str, dataset_id: str) -> Optional[RefreshSchedule]:
        require_params(group_id=group_id, dataset_id=dataset_id)
        body = self._call(
            "GET", PowerBIPaths.DATASET_REFRESH_SCHEDULE,
            path_params={"groupId": group_id, "datasetId": dataset_id},
            operation_name="Get refresh schedule",
        )
        return RefreshSchedule.from_dict(body) if body else None

    @staticmethod
    def all_refreshes_in_final_state(refreshes: Optional[Iterable[Any]]) -> bool:
        """
        True when every refresh is Completed, Failed or Disabled.

        An empty collection is final; a missing one (None) is not.
        """
        if refreshes is None:
            return False
        return all(_status_of(refresh) in REFRESH_FINAL_STATUSES for refresh in refreshes)

    # Gateways

    def get_gateways(self) -> List[Dict[str, Any]]:
        body = self._call("GET", PowerBIPaths.GATEWAYS, operation_name="List gateways")
        return unwrap_values(body)

    def create_datasource(self, gateway_id: str, connection_data: Dict[str, Any]) -> Any:
        require_params(gateway_id=gateway_id, connection_data=connection_data)
        return self._call(
            "POST", PowerBIPaths.GATEWAY_DATASOURCES,
            path_params={"gatewayId": gateway_id},
            json_body=connection_data,
            operation_name="Create gateway datasource",
        )

    def gateway_datasource_update(
        self,
        gateway_id: str,
        datasource_id: str,
        credential_details: Dict[str, Any],
    ) -> None:
        """Replace the credentials of a gateway datasource."""
        require_params(
            gateway_id=gateway_id,
            datasource_id=datasource_id,
            credential_details=credential_details,
        )
        self._call(
            "PATCH", PowerBIPaths.GATEWAY_DATASOURCE,
            path_params={"gatewayId": gateway_id, "datasourceId": datasource_id},
            json_body={"credentialDetails": credential_details},
            operation_name="Update datasource credentials",
        )

    # Imports

    def import_in_group(
        self,
        group_id: str,
        file: bytes,
        dataset_name: Optional[str] = None,
    ) -> ImportStatus:
        """
        Upload a .pbix package into a workspace.

        Args:
            group_id: Target workspace
            file: Package bytes
            dataset_name: Display name of the resulting dataset; defaults to
                the current epoch time in milliseconds

        Returns:
            The import handle as first reported by the service
        """
        require_params(group_id=group_id, file=file)
        dataset_name = dataset_name or str(int(time.time() * 1000))

        body = self._call(
            "POST", PowerBIPaths.IMPORTS_IN_GROUP,
            path_params={"groupId": group_id},
            query_params={"datasetDisplayName": dataset_name},
            files={"file0": (f"{dataset_name}.pbix", file)},
            operation_name=f"Import '{dataset_name}'",
        )
        status = ImportStatus.from_dict(body)
        logger.info(f"Import {status.id} submitted to workspace {group_id}")
        return status

    def get_import_in_group(self, group_id: str, import_id: str) -> ImportStatus:
        """
        Raises:
            FailedImportError: If the import reports state "Failed"
        """
        require_params(group_id=group_id, import_id=import_id)
        body = self._call(
            "GET", PowerBIPaths.IMPORT_IN_GROUP,
            path_params={"groupId": group_id, "importId": import_id},
            operation_name="Get import",
        )
        status = ImportStatus.from_dict(body)
        if status.import_state == ImportState.FAILED.value:
            logger.error(f"Import {import_id} in workspace {group_id} failed")
            raise FailedImportError(import_id)
        return status

    # Capacities

    def get_capacities(self) -> List[Capacity]:
        body = self._call("GET", PowerBIPaths.CAPACITIES, operation_name="List capacities")
        return [Capacity.from_dict(item) for item in unwrap_values(body)]

    def validate_capacity_id(self, capacity_id: str) -> Capacity:
        """
        Raises:
            UnknownResourceError: If the capacity is not visible to the caller
        """
        require_params(capacity_id=capacity_id)
        for capacity in self.get_capacities():
            if capacity.id == capacity_id:
                return capacity
        raise UnknownResourceError(ResourceNames.CAPACITY, capacity_id)

    def assign_capacity_to_group(self, group_id: str, capacity_id: str) -> str:
        require_params(group_id=group_id, capacity_id=capacity_id)
        self.validate_capacity_id(capacity_id)
        self._call(
            "POST", PowerBIPaths.GROUP_ASSIGN_TO_CAPACITY,
            path_params={"groupId": group_id},
            json_body={"capacityId": capacity_id},
            operation_name="Assign capacity",
        )
        logger.info(f"Workspace {group_id} assigned to capacity {capacity_id}")
        return capacity_id
