"""
Fabric REST API client for workspace folders.

Used to resolve the destination folder of an import before provisioning and
to clean folder trees up afterwards. Folder paths are slash separated, e.g.
``"Clients/Acme/Reports"``; segment names are matched exactly after trimming.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .auth import Audience, TokenManager
from .config import ClientSettings
from .constants import FabricPaths
from .errors import ConfigurationError, ErrorMessages, ParamNames
from .http_client import HttpTransport
from .models import FabricItem, FabricWorkspace, Folder
from .powerbi_client import require_params

logger = logging.getLogger(__name__)


def split_folder_path(folder_path: str) -> List[str]:
    """Split ``"A/B/C"`` into trimmed segment names."""
    names = [name.strip() for name in (folder_path or "").split("/")]
    if not names or any(not name for name in names):
        raise ConfigurationError(
            ErrorMessages.INVALID_CONFIGURATION,
            {ParamNames.PARAMS: f"folder path {folder_path!r} contains an empty segment"},
        )
    return names


class FabricFolderClient:
    """
    Folder operations against the Fabric API (``/v1``).

    Holds its own TokenManager for the Fabric audience; tokens are never
    shared with the Power BI client.
    """

    def __init__(
        self,
        settings: ClientSettings,
        token_manager: Optional[TokenManager] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.token_manager = token_manager or TokenManager(
            Audience.fabric(settings.authority, settings.fabric_scopes),
            tenant_id=settings.tenant_id,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
        )
        self.transport = HttpTransport(
            settings.fabric_api_url,
            self.token_manager,
            timeout=settings.request_timeout,
            sleep=sleep,
        )

    def _list_paged(
        self,
        path: str,
        path_params: Dict[str, Any],
        query_params: Dict[str, Any],
        operation_name: str,
    ) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        continuation_token = None
        while True:
            query = dict(query_params)
            if continuation_token:
                query["continuationToken"] = continuation_token

            body = self.transport.call(
                "GET", path,
                path_params=path_params,
                query_params=query,
                operation_name=operation_name,
            ) or {}
            results.extend(body.get("value") or [])
            continuation_token = body.get("continuationToken")
            if not continuation_token:
                return results

    # Folders

    def list_folders(
        self,
        workspace_id: str,
        recursive: bool = False,
        root_folder_id: Optional[str] = None,
    ) -> List[Folder]:
        """
        List folders of a workspace, following continuation tokens.

        Args:
            workspace_id: Workspace to list
            recursive: Include nested folders
            root_folder_id: Only list below this folder
        """
        require_params(workspace_id=workspace_id)
        query: Dict[str, Any] = {"recursive": str(recursive).lower()}
        if root_folder_id:
            query["rootFolderId"] = root_folder_id

        folders = self._list_paged(
            FabricPaths.FOLDERS, {"workspaceId": workspace_id}, query, "List folders",
        )
        return [Folder.from_dict(item) for item in folders]

    def create_folder(
        self,
        workspace_id: str,
        display_name: str,
        parent_folder_id: Optional[str] = None,
    ) -> Folder:
        require_params(workspace_id=workspace_id, display_name=display_name)
        body: Dict[str, Any] = {"displayName": display_name}
        if parent_folder_id:
            body["parentFolderId"] = parent_folder_id

        logger.info(
            f"Creating folder '{display_name}' in workspace {workspace_id} "
            f"under {parent_folder_id or 'root'}"
        )
        result = self.transport.call(
            "POST", FabricPaths.FOLDERS,
            path_params={"workspaceId": workspace_id},
            json_body=body,
            operation_name="Create folder",
        )
        folder = Folder.from_dict(result)
        logger.info(f"Folder created: {folder.id}")
        return folder

    def get_folder(self, workspace_id: str, folder_id: str) -> Folder:
        require_params(workspace_id=workspace_id, folder_id=folder_id)
        result = self.transport.call(
            "GET", FabricPaths.FOLDER,
            path_params={"workspaceId": workspace_id, "folderId": folder_id},
            operation_name="Get folder",
        )
        return Folder.from_dict(result)

    def delete_folder(self, workspace_id: str, folder_id: str) -> None:
        """Delete a folder. The platform only deletes empty folders."""
        require_params(workspace_id=workspace_id, folder_id=folder_id)
        self.transport.call(
            "DELETE", FabricPaths.FOLDER,
            path_params={"workspaceId": workspace_id, "folderId": folder_id},
            operation_name="Delete folder",
        )
        logger.info(f"Folder deleted: {folder_id}")

    def _find_child(
        self,
        folders: List[Folder],
        workspace_id: str,
        name: str,
        parent_folder_id: Optional[str],
    ) -> Optional[Folder]:
        for folder in folders:
            if (
                folder.display_name == name
                and folder.workspace_id == workspace_id
                and folder.parent_folder_id == parent_folder_id
            ):
                return folder
        return None

    def get_or_create_folder_by_path(self, workspace_id: str, folder_path: str) -> Folder:
        """
        Resolve a folder path, creating whatever part of it is missing.

        Issues one root listing and one recursive listing below the root
        folder, then creates the missing tail of the path in parent-chain
        order.

        Returns:
            The last folder of the path
        """
        require_params(workspace_id=workspace_id, folder_path=folder_path)
        root_name, *sub_names = split_folder_path(folder_path)

        root = self._find_child(self.list_folders(workspace_id), workspace_id, root_name, None)
        if root is None:
            logger.info(f"Root folder '{root_name}' not found, creating it")
            root = self.create_folder(workspace_id, root_name)

        current = root
        missing: List[str] = []
        if sub_names:
            descendants = self.list_folders(workspace_id, recursive=True, root_folder_id=root.id)
            for index, name in enumerate(sub_names):
                child = self._find_child(descendants, workspace_id, name, current.id)
                if child is None:
                    missing = sub_names[index:]
                    break
                current = child

        for name in missing:
            current = self.create_folder(workspace_id, name, parent_folder_id=current.id)

        logger.info(f"Folder path '{folder_path}' resolved to {current.id}")
        return current

    def _resolve_existing(self, workspace_id: str, folder_path: str) -> Optional[Folder]:
        root_name, *sub_names = split_folder_path(folder_path)
        current = self._find_child(self.list_folders(workspace_id), workspace_id, root_name, None)
        if current is None or not sub_names:
            return current

        descendants = self.list_folders(workspace_id, recursive=True, root_folder_id=current.id)
        for name in sub_names:
            current = self._find_child(descendants, workspace_id, name, current.id)
            if current is None:
                return None
        return current

    def delete_recursive(self, workspace_id: str, folder_path: str, delete_self: bool = False) -> None:
        """
        Delete everything inside a folder, deepest folders first.

        A path that does not resolve is a no-op.

        Args:
            workspace_id: Workspace holding the folder
            folder_path: Slash-separated path of the target folder
            delete_self: Also delete the target folder once it is empty
        """
        require_params(workspace_id=workspace_id, folder_path=folder_path)
        logger.info(
            f"Recursively deleting contents of '{folder_path}' in workspace {workspace_id} "
            f"(delete_self={delete_self})"
        )

        target = self._resolve_existing(workspace_id, folder_path)
        if target is None:
            logger.info(f"Folder '{folder_path}' not found in workspace {workspace_id}, nothing to delete")
            return

        descendants = self.list_folders(workspace_id, recursive=True, root_folder_id=target.id)
        by_id = {folder.id: folder for folder in [target, *descendants]}

        def depth(folder: Folder) -> int:
            level = 0
            current = folder
            while current.parent_folder_id and current.parent_folder_id in by_id:
                level += 1
                current = by_id[current.parent_folder_id]
            return level

        for folder in sorted(descendants, key=depth, reverse=True) + [target]:
            for item in self.list_folder_items(workspace_id, folder.id):
                logger.info(f"Deleting item '{item.display_name}' ({item.type}, {item.id}) from folder {folder.id}")
                self.delete_item(workspace_id, item.id)
            if folder.id != target.id:
                self.delete_folder(workspace_id, folder.id)

        if delete_self:
            self.delete_folder(workspace_id, target.id)
            logger.info(f"Folder '{folder_path}' ({target.id}) deleted")
        else:
            logger.info(f"Contents of folder '{folder_path}' deleted, folder kept")

    # Items

    def list_folder_items(self, workspace_id: str, folder_id: str) -> List[FabricItem]:
        require_params(workspace_id=workspace_id, folder_id=folder_id)
        items = self._list_paged(
            FabricPaths.ITEMS,
            {"workspaceId": workspace_id},
            {"rootFolderId": folder_id},
            "List folder items",
        )
        logger.info(f"Found {len(items)} item(s) in folder {folder_id}")
        return [FabricItem.from_dict(item) for item in items]

    def delete_item(self, workspace_id: str, item_id: str) -> None:
        require_params(workspace_id=workspace_id, item_id=item_id)
        self.transport.call(
            "DELETE", FabricPaths.ITEM,
            path_params={"workspaceId": workspace_id, "itemId": item_id},
            operation_name="Delete item",
        )

    # Workspaces

    def list_workspaces(self) -> List[FabricWorkspace]:
        body = self.transport.call("GET", FabricPaths.WORKSPACES, operation_name="List workspaces") or {}
        workspaces = [FabricWorkspace.from_dict(item) for item in body.get("value") or []]
        logger.info(f"Found {len(workspaces)} workspace(s)")
        return workspaces

    def get_workspace(self, workspace_id: str) -> FabricWorkspace:
        require_params(workspace_id=workspace_id)
        body = self.transport.call(
            "GET", FabricPaths.WORKSPACE,
            path_params={"workspaceId": workspace_id},
            operation_name="Get workspace",
        )
        return FabricWorkspace.from_dict(body)

    def delete_workspace(self, workspace_id: str) -> None:
        require_params(workspace_id=workspace_id)
        self.transport.call(
            "DELETE", FabricPaths.WORKSPACE,
            path_params={"workspaceId": workspace_id},
            operation_name="Delete workspace",
        )
        logger.info(f"Workspace deleted: {workspace_id}")
