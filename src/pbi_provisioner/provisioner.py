"""
Workspace provisioning workflow.

Takes a template package plus tenant credentials and produces a workspace
holding a refreshed, ready-to-embed report:

    create workspace -> copy users -> import package -> wait for publishing
    -> take over dataset -> update parameters -> update credentials
    -> refresh and wait -> install schedule -> collect reports

Steps run strictly in this order since each consumes the id produced by
the previous one. A failure after the workspace was created deletes it
again before the error is raised.
"""

import logging
import time
from typing import Callable, List, Optional

from .cancellation import CancellationToken
from .config import WorkspaceProvisioningConfig
from .constants import ImportState, PollingConfig, RefreshStatus
from .errors import (
    AmbiguousDatasetError,
    ConfigurationError,
    DatasetNotFoundError,
    ErrorMessages,
    FailedImportError,
    ParamNames,
    ResourceNames,
    UnexpectedCreationError,
    UnknownResourceError,
)
from .lro import Poller
from .models import (
    Dataset,
    DatasetRefreshInfo,
    EmbedToken,
    ImportStatus,
    ProvisioningResult,
    RefreshRecord,
    ReportSummary,
    Workspace,
)
from .powerbi_client import PowerBIClient

logger = logging.getLogger(__name__)


class WorkspaceProvisioner:
    """
    Runs the provisioning workflow on top of a PowerBIClient.

    Example:
        >>> client = PowerBIClient(ClientSettings.from_env())
        >>> provisioner = WorkspaceProvisioner(client)
        >>> result = provisioner.initialize_from_template(config)
        >>> result.reports[0].embed_url
    """

    def __init__(
        self,
        client: PowerBIClient,
        group_prefix: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
        show_progress: bool = False,
        import_poll_interval: float = PollingConfig.IMPORT_POLL_INTERVAL,
        import_max_attempts: Optional[int] = PollingConfig.IMPORT_MAX_ATTEMPTS,
        refresh_poll_interval: float = PollingConfig.REFRESH_POLL_INTERVAL,
        refresh_max_attempts: int = PollingConfig.REFRESH_MAX_ATTEMPTS,
    ):
        """
        Args:
            client: Power BI facade
            group_prefix: Prefix for created workspace names; defaults to the
                client's configured prefix
            sleep: Suspension primitive of both poll loops
            show_progress: Render tqdm progress bars while polling
            import_poll_interval: Seconds between import status checks
            import_max_attempts: Import status check cap, None for unbounded
            refresh_poll_interval: Seconds between refresh status checks
            refresh_max_attempts: Refresh status check cap
        """
        self.client = client
        self.group_prefix = client.settings.group_prefix if group_prefix is None else group_prefix
        self._poller = Poller(sleep=sleep, show_progress=show_progress)
        self._import_poll_interval = import_poll_interval
        self._import_max_attempts = import_max_attempts
        self._refresh_poll_interval = refresh_poll_interval
        self._refresh_max_attempts = refresh_max_attempts

    def initialize_from_template(
        self,
        config: WorkspaceProvisioningConfig,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> ProvisioningResult:
        """
        Create a new workspace and provision the template into it.

        Capacity assignment, when configured, runs only after a fully
        successful import.

        Args:
            config: Resolved provisioning request
            cancellation_token: Optional token bounding both poll loops

        Returns:
            ProvisioningResult of the new workspace

        Raises:
            ConfigurationError: If the config has no name or no resolved
                credentials (nothing is created)
            UnexpectedCreationError: If any later step fails; the created
                workspace has been deleted and the failure is the ``__cause__``
        """
        if config is None or not config.name:
            raise ConfigurationError(ErrorMessages.MISSING_INIT_CONFIGURATION, {ParamNames.PARAMS: "name"})
        if not config.datasource_credentials:
            raise ConfigurationError(
                ErrorMessages.MISSING_INIT_CONFIGURATION, {ParamNames.PARAMS: "datasource credentials"},
            )

        logger.info(f"Workspace initialization starts for '{config.name}'")
        group: Optional[Workspace] = None
        try:
            group = self.client.create_group(f"{self.group_prefix}{config.name}")
            result = self.import_to_workspace(group.id, config, cancellation_token)

            if config.capacity_id:
                self.client.assign_capacity_to_group(group.id, config.capacity_id)

            logger.info(f"Workspace initialization finished for workspace {group.id}")
            return result

        except Exception as e:
            logger.error(f"Workspace initialization failed for '{config.name}': {e}")
            if group is not None:
                self._delete_created_workspace(group.id)
            if isinstance(e, UnexpectedCreationError):
                raise
            raise UnexpectedCreationError(e) from e

    def _delete_created_workspace(self, group_id: str) -> None:
        try:
            self.client.delete_group(group_id)
            logger.info(f"Removed partially provisioned workspace {group_id}")
        except Exception as cleanup_error:
            logger.error(f"Failed to delete workspace {group_id} after a failed initialization: {cleanup_error}")

    def import_to_workspace(
        self,
        workspace_id: str,
        config: WorkspaceProvisioningConfig,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> ProvisioningResult:
        """
        Import the template into an existing workspace and wire it up.

        Args:
            workspace_id: Target workspace
            config: Resolved provisioning request
            cancellation_token: Optional token bounding both poll loops

        Returns:
            ProvisioningResult; ``refresh_completed`` is False when the refresh
            poll ran out of attempts

        Raises:
            ConfigurationError: If the workspace id or resolved credentials are
                missing (no remote call is made)
            UnexpectedCreationError: If any workflow step fails
        """
        if not workspace_id or config is None or not config.datasource_credentials:
            raise ConfigurationError(
                ErrorMessages.MISSING_INIT_CONFIGURATION,
                {ParamNames.PARAMS: "workspace id or datasource credentials"},
            )

        logger.info(f"Import to workspace {workspace_id} starts")
        try:
            return self._run_import(workspace_id, config, cancellation_token)
        except Exception as e:
            logger.error(f"Import to workspace {workspace_id} failed: {e}")
            raise UnexpectedCreationError(e) from e

    def _run_import(
        self,
        workspace_id: str,
        config: WorkspaceProvisioningConfig,
        token: Optional[CancellationToken],
    ) -> ProvisioningResult:
        group = self.client.get_group(workspace_id)
        if group is None:
            raise UnknownResourceError(ResourceNames.WORKSPACE, workspace_id)

        members = self.client.copy_users_from_group(config.template_group_id, group.id)

        dataset_name = config.name
        submitted = self.client.import_in_group(group.id, config.get_template(), dataset_name)
        self._wait_for_import(group.id, submitted, token)

        dataset = self._find_dataset(group.id, dataset_name)
        self.client.dataset_take_over(group.id, dataset.id)
        self.client.dataset_update_parameters(group.id, dataset.id, config.datasource_params)

        datasources = self.client.list_datasources_in_group(group.id, dataset.id)
        if not datasources:
            raise UnknownResourceError(ResourceNames.DATASOURCE, dataset.id)
        # Only the first datasource is rewired
        datasource = datasources[0]
        if len(datasources) > 1:
            logger.warning(
                f"Dataset {dataset.id} has {len(datasources)} datasources, "
                f"updating credentials of {datasource.datasource_id} only"
            )
        self.client.gateway_datasource_update(
            datasource.gateway_id, datasource.datasource_id, config.datasource_credentials,
        )

        self.client.dataset_refresh(group.id, dataset.id)
        refreshed = self._wait_for_refresh(group.id, dataset.id, token)

        if config.scheduled_times:
            self.client.dataset_create_refresh_schedule(
                group.id, dataset.id, config.scheduled_times, config.scheduled_days,
            )

        reports = [
            ReportSummary(
                id=report.id,
                name=report.name,
                embed_url=report.embed_url,
                web_url=report.web_url,
                pages=self.client.list_report_pages_in_group(group.id, report.id),
            )
            for report in self.client.list_reports_in_group_for_dataset(group.id, dataset.id)
        ]

        logger.info(
            f"Import to workspace finished: workspace={group.id} name='{group.name}' "
            f"dataset={dataset.id} gateway={datasource.gateway_id} "
            f"datasource={datasource.datasource_id} members={len(members)} "
            f"reports={len(reports)} refreshed={refreshed}"
        )
        return ProvisioningResult(
            workspace_id=group.id,
            workspace_name=group.name,
            dataset_id=dataset.id,
            datasource_id=datasource.datasource_id,
            refresh_completed=refreshed,
            reports=reports,
        )

    def _wait_for_import(
        self,
        group_id: str,
        submitted: ImportStatus,
        token: Optional[CancellationToken],
    ) -> ImportStatus:
        outcome = self._poller.poll(
            fetch=lambda: self.client.get_import_in_group(group_id, submitted.id),
            is_done=lambda status: status.import_state != ImportState.PUBLISHING.value,
            interval=self._import_poll_interval,
            max_attempts=self._import_max_attempts,
            description=f"Import {submitted.id} publishing",
            status_of=lambda status: status.import_state,
            cancellation_token=token,
        )
        if not outcome.completed:
            logger.error(f"Import {submitted.id} still publishing after {outcome.attempts} checks")
            raise FailedImportError(submitted.id)
        return outcome.last

    def _find_dataset(self, group_id: str, dataset_name: str) -> Dataset:
        matches = [dataset for dataset in self.client.list_datasets_in_group(group_id) if dataset.name == dataset_name]
        if not matches:
            raise DatasetNotFoundError(dataset_name)
        if len(matches) > 1:
            raise AmbiguousDatasetError(dataset_name, len(matches))
        return matches[0]

    def _wait_for_refresh(self, group_id: str, dataset_id: str, token: Optional[CancellationToken]) -> bool:
        outcome = self._poller.poll(
            fetch=lambda: self.client.get_dataset_refreshes(group_id, dataset_id),
            is_done=self.client.all_refreshes_in_final_state,
            interval=self._refresh_poll_interval,
            max_attempts=self._refresh_max_attempts,
            description=f"Dataset {dataset_id} refreshing",
            status_of=lambda refreshes: ",".join(refresh.status for refresh in refreshes) or "none",
            cancellation_token=token,
        )
        return outcome.completed

    def group_dataset_refreshed(self, group_id: str, dataset_id: str) -> DatasetRefreshInfo:
        """Report whether all refreshes are final and whether the latest finished one completed."""
        refreshes = self.client.get_dataset_refreshes(group_id, dataset_id)
        all_final = self.client.all_refreshes_in_final_state(refreshes)

        last_successful = False
        if all_final and refreshes:
            last = max(refreshes, key=lambda refresh: refresh.end_time or "")
            last_successful = last.status == RefreshStatus.COMPLETED.value

        return DatasetRefreshInfo(all_in_final_state=all_final, last_refresh_successful=last_successful)

    def get_last_dataset_refresh(self, group_id: str, dataset_id: str) -> Optional[RefreshRecord]:
        """Latest refresh by start time, or None when the dataset was never refreshed."""
        refreshes: List[RefreshRecord] = self.client.get_dataset_refreshes(group_id, dataset_id)
        if not refreshes:
            return None
        return max(refreshes, key=lambda refresh: refresh.start_time or "")

    def refresh_dataset(self, group_id: str, dataset_id: str) -> Optional[RefreshRecord]:
        self.client.dataset_refresh(group_id, dataset_id)
        return self.get_last_dataset_refresh(group_id, dataset_id)

    def generate_embed_token(self, group_id: str, report_id: str) -> EmbedToken:
        return self.client.generate_embed_token(group_id, report_id)
