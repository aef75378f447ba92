"""
Tests for the Power BI REST facade.

Requests are intercepted at ``requests.request``; the credential is mocked
so no identity provider is contacted.
"""

import json
from unittest.mock import patch

import pytest

from pbi_provisioner.errors import (
    CommunicationError,
    FailedImportError,
    MissingParameterError,
    UnknownResourceError,
)
from pbi_provisioner.models import GroupUser, RefreshRecord
from pbi_provisioner.powerbi_client import PowerBIClient, unwrap_values

from fixtures.powerbi_responses import (
    POWERBI_API_URL,
    SAMPLE_CAPACITY_ID,
    SAMPLE_DATASET_ID,
    SAMPLE_GROUP_ID,
    SAMPLE_IMPORT_ID,
    create_capacity_response,
    create_group_response,
    create_import_response,
    create_mock_response,
    create_refresh_response,
    create_report_response,
    create_user_response,
    value_envelope,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def client(client_settings, patched_credential, recording_sleep):
    return PowerBIClient(client_settings, sleep=recording_sleep)


def sent_body(mock_request, index=-1):
    data = mock_request.call_args_list[index][1].get("data")
    return json.loads(data) if data else None


def sent_url(mock_request, index=-1):
    return mock_request.call_args_list[index][0][1]


# =============================================================================
# Parameter checks
# =============================================================================

class TestRequiredParams:
    """Invalid calls never reach the network."""

    @pytest.mark.parametrize("call", [
        lambda c: c.get_group(""),
        lambda c: c.delete_group(None),
        lambda c: c.get_group_users(""),
        lambda c: c.list_datasets_in_group(""),
        lambda c: c.dataset_refresh(SAMPLE_GROUP_ID, ""),
        lambda c: c.get_import_in_group("", SAMPLE_IMPORT_ID),
        lambda c: c.import_in_group(SAMPLE_GROUP_ID, b""),
        lambda c: c.gateway_datasource_update("gw", "", {"credentialType": "Basic"}),
        lambda c: c.generate_embed_token(SAMPLE_GROUP_ID, None),
    ])
    def test_missing_identifier_raises_without_request(self, client, call):
        with patch('requests.request') as mock_request:
            with pytest.raises(MissingParameterError):
                call(client)
        mock_request.assert_not_called()

    def test_error_names_every_missing_param(self, client):
        with pytest.raises(MissingParameterError) as exc_info:
            client.list_datasources_in_group("", None)
        assert exc_info.value.names == "group_id, dataset_id"


# =============================================================================
# Listings
# =============================================================================

class TestListings:

    def test_unwrap_values(self):
        assert unwrap_values({"value": [{"id": 1}]}) == [{"id": 1}]
        assert unwrap_values({"@odata.context": "x"}) == []
        assert unwrap_values(None) == []

    def test_list_without_value_gives_empty_list(self, client):
        with patch('requests.request', return_value=create_mock_response(200, {})):
            assert client.list_reports_in_group(SAMPLE_GROUP_ID) == []

    def test_get_group_found_among_visible_groups(self, client):
        groups = value_envelope([create_group_response("g0", "Other"), create_group_response(SAMPLE_GROUP_ID, "Sales")])
        with patch('requests.request', return_value=create_mock_response(200, groups)):
            group = client.get_group(SAMPLE_GROUP_ID)
        assert group.name == "Sales"

    def test_get_group_absent_returns_none(self, client):
        with patch('requests.request', return_value=create_mock_response(200, value_envelope([]))):
            assert client.get_group(SAMPLE_GROUP_ID) is None

    def test_reports_filtered_by_dataset(self, client):
        reports = value_envelope([
            create_report_response("r1", dataset_id=SAMPLE_DATASET_ID),
            create_report_response("r2", dataset_id="other-dataset"),
        ])
        with patch('requests.request', return_value=create_mock_response(200, reports)):
            result = client.list_reports_in_group_for_dataset(SAMPLE_GROUP_ID, SAMPLE_DATASET_ID)
        assert [report.id for report in result] == ["r1"]


# =============================================================================
# Groups and users
# =============================================================================

class TestGroups:

    def test_create_group_posts_name(self, client):
        with patch('requests.request', return_value=create_mock_response(200, create_group_response())) as mock_request:
            group = client.create_group("DEV-Sales")

        assert group.id == SAMPLE_GROUP_ID
        assert sent_url(mock_request) == f"{POWERBI_API_URL}/groups"
        assert sent_body(mock_request) == {"name": "DEV-Sales"}

    def test_copy_users_skips_present_members(self, client):
        responses = [
            create_mock_response(200, value_envelope([
                create_user_response("a@contoso.com", "Admin"),
                create_user_response("b@contoso.com"),
            ])),
            create_mock_response(200, value_envelope([create_user_response("a@contoso.com", "Admin")])),
            create_mock_response(200),
        ]
        with patch('requests.request', side_effect=responses) as mock_request:
            present = client.copy_users_from_group("T1", SAMPLE_GROUP_ID)

        assert present == {"a@contoso.com", "b@contoso.com"}
        assert mock_request.call_count == 3
        assert sent_body(mock_request)["identifier"] == "b@contoso.com"
        assert sent_body(mock_request)["groupUserAccessRight"] == "Viewer"

    def test_add_group_user_body(self, client):
        user = GroupUser(identifier="c@contoso.com", group_user_access_right="Member")
        with patch('requests.request', return_value=create_mock_response(200)) as mock_request:
            client.add_group_user(SAMPLE_GROUP_ID, user)
        assert sent_url(mock_request) == f"{POWERBI_API_URL}/groups/{SAMPLE_GROUP_ID}/users"
        assert sent_body(mock_request)["groupUserAccessRight"] == "Member"


# =============================================================================
# Imports
# =============================================================================

class TestImports:

    def test_import_uploads_multipart_with_display_name(self, client):
        with patch('requests.request', return_value=create_mock_response(202, create_import_response())) as mock_request:
            status = client.import_in_group(SAMPLE_GROUP_ID, b"PK\x03\x04", "Sales")

        assert status.id == SAMPLE_IMPORT_ID
        assert sent_url(mock_request) == f"{POWERBI_API_URL}/groups/{SAMPLE_GROUP_ID}/imports?datasetDisplayName=Sales"
        assert mock_request.call_args[1]["files"] == {"file0": ("Sales.pbix", b"PK\x03\x04")}

    def test_import_default_name_is_epoch_millis(self, client):
        with patch('requests.request', return_value=create_mock_response(202, create_import_response())) as mock_request:
            with patch('pbi_provisioner.powerbi_client.time.time', return_value=1709287200.5):
                client.import_in_group(SAMPLE_GROUP_ID, b"PK")
        assert sent_url(mock_request).endswith("datasetDisplayName=1709287200500")

    def test_failed_import_state_raises(self, client):
        response = create_mock_response(200, create_import_response(state="Failed"))
        with patch('requests.request', return_value=response):
            with pytest.raises(FailedImportError) as exc_info:
                client.get_import_in_group(SAMPLE_GROUP_ID, SAMPLE_IMPORT_ID)
        assert exc_info.value.import_id == SAMPLE_IMPORT_ID

    def test_publishing_state_returned(self, client):
        with patch('requests.request', return_value=create_mock_response(200, create_import_response())):
            status = client.get_import_in_group(SAMPLE_GROUP_ID, SAMPLE_IMPORT_ID)
        assert status.import_state == "Publishing"


# =============================================================================
# Datasets and refreshes
# =============================================================================

class TestDatasets:

    def test_update_parameters_with_empty_list_sends_nothing(self, client):
        with patch('requests.request') as mock_request:
            client.dataset_update_parameters(SAMPLE_GROUP_ID, SAMPLE_DATASET_ID, [])
        mock_request.assert_not_called()

    def test_update_parameters_body(self, client):
        params = [{"name": "Database", "newValue": "ANALYTICS"}]
        with patch('requests.request', return_value=create_mock_response(200)) as mock_request:
            client.dataset_update_parameters(SAMPLE_GROUP_ID, SAMPLE_DATASET_ID, params)
        assert sent_url(mock_request).endswith(f"/datasets/{SAMPLE_DATASET_ID}/Default.UpdateParameters")
        assert sent_body(mock_request) == {"updateDetails": params}

    def test_refresh_schedule_body(self, client):
        with patch('requests.request', return_value=create_mock_response(200)) as mock_request:
            schedule = client.dataset_create_refresh_schedule(SAMPLE_GROUP_ID, SAMPLE_DATASET_ID, ["14:00"])

        assert mock_request.call_args[0][0] == "PATCH"
        assert sent_body(mock_request) == {
            "value": {
                "enabled": True,
                "times": ["14:00"],
                "localTimeZoneId": "UTC",
                "notifyOption": "NoNotification",
            }
        }
        assert schedule.days is None

    def test_refresh_schedule_includes_days_when_given(self, client):
        with patch('requests.request', return_value=create_mock_response(200)) as mock_request:
            client.dataset_create_refresh_schedule(SAMPLE_GROUP_ID, SAMPLE_DATASET_ID, ["06:00"], ["Monday"])
        assert sent_body(mock_request)["value"]["days"] == ["Monday"]

    def test_refresh_history_parsed(self, client):
        history = value_envelope([create_refresh_response("Completed"), create_refresh_response("Unknown", end_time=None)])
        with patch('requests.request', return_value=create_mock_response(200, history)):
            refreshes = client.get_dataset_refreshes(SAMPLE_GROUP_ID, SAMPLE_DATASET_ID)
        assert [refresh.status for refresh in refreshes] == ["Completed", "Unknown"]
        assert refreshes[1].end_time is None

    def test_refresh_schedule_read_back(self, client):
        body = {"enabled": True, "times": ["06:00"], "days": ["Monday"], "localTimeZoneId": "UTC"}
        with patch('requests.request', return_value=create_mock_response(200, body)) as mock_request:
            schedule = client.get_dataset_refresh_schedule(SAMPLE_GROUP_ID, SAMPLE_DATASET_ID)

        assert mock_request.call_args[0][0] == "GET"
        assert sent_url(mock_request) == (
            f"{POWERBI_API_URL}/groups/{SAMPLE_GROUP_ID}/datasets/{SAMPLE_DATASET_ID}/refreshSchedule"
        )
        assert schedule.times == ["06:00"]
        assert schedule.days == ["Monday"]

    def test_refresh_schedule_empty_body_is_none(self, client):
        with patch('requests.request', return_value=create_mock_response(200)):
            assert client.get_dataset_refresh_schedule(SAMPLE_GROUP_ID, SAMPLE_DATASET_ID) is None


class TestAllRefreshesInFinalState:

    @pytest.mark.parametrize("refreshes,expected", [
        (None, False),
        ([], True),
        ([{"status": "Completed"}, {"status": "Failed"}, {"status": "Disabled"}], True),
        ([{"status": "Completed"}, {"status": "Unknown"}], False),
        ([RefreshRecord(status="Completed")], True),
        ([RefreshRecord(status="Unknown")], False),
    ])
    def test_final_state(self, refreshes, expected):
        assert PowerBIClient.all_refreshes_in_final_state(refreshes) is expected


# =============================================================================
# Gateways, capacities, embedding
# =============================================================================

class TestGatewaysAndCapacities:

    def test_datasource_update_wraps_credential_details(self, client):
        details = {"credentialType": "Basic", "credentials": "{}"}
        with patch('requests.request', return_value=create_mock_response(200)) as mock_request:
            client.gateway_datasource_update("gw-1", "ds-1", details)
        assert sent_url(mock_request) == f"{POWERBI_API_URL}/gateways/gw-1/datasources/ds-1"
        assert sent_body(mock_request) == {"credentialDetails": details}

    def test_validate_capacity_id_unknown_raises(self, client):
        capacities = value_envelope([create_capacity_response()])
        with patch('requests.request', return_value=create_mock_response(200, capacities)):
            with pytest.raises(UnknownResourceError) as exc_info:
                client.validate_capacity_id("missing-capacity")
        assert exc_info.value.resource_name == "Capacity"

    def test_assign_capacity_validates_first(self, client):
        responses = [
            create_mock_response(200, value_envelope([create_capacity_response()])),
            create_mock_response(202),
        ]
        with patch('requests.request', side_effect=responses) as mock_request:
            assigned = client.assign_capacity_to_group(SAMPLE_GROUP_ID, SAMPLE_CAPACITY_ID)

        assert assigned == SAMPLE_CAPACITY_ID
        assert sent_url(mock_request) == f"{POWERBI_API_URL}/groups/{SAMPLE_GROUP_ID}/AssignToCapacity"
        assert sent_body(mock_request) == {"capacityId": SAMPLE_CAPACITY_ID}

    def test_embed_token_requests_view_access(self, client):
        response = create_mock_response(200, {"token": "t", "tokenId": "id", "expiration": "2024-03-01T11:00:00Z"})
        with patch('requests.request', return_value=response) as mock_request:
            token = client.generate_embed_token(SAMPLE_GROUP_ID, "r1")
        assert sent_body(mock_request) == {"accessLevel": "view"}
        assert token.to_dict() == {"token": "t", "tokenId": "id", "expiration": "2024-03-01T11:00:00Z"}

    def test_http_failure_surfaces(self, client):
        with patch('requests.request', return_value=create_mock_response(403, reason="Forbidden")):
            with pytest.raises(CommunicationError) as exc_info:
                client.list_groups()
        assert exc_info.value.status_code == 403

    def test_get_gateways_unwraps_value(self, client):
        gateways = [{"id": "gw-1", "name": "Warehouse gateway", "type": "Resource"}]
        with patch('requests.request', return_value=create_mock_response(200, value_envelope(gateways))) as mock_request:
            assert client.get_gateways() == gateways

        assert mock_request.call_args[0][0] == "GET"
        assert sent_url(mock_request) == f"{POWERBI_API_URL}/gateways"


class TestReports:

    def test_clone_into_other_workspace_rebinds_dataset(self, client):
        cloned = create_report_response("r-2", "Sales copy", dataset_id="d-2", group_id="g-2")
        with patch('requests.request', return_value=create_mock_response(200, cloned)) as mock_request:
            report = client.clone_report_in_group(SAMPLE_GROUP_ID, "r-1", "Sales copy", "g-2", target_dataset_id="d-2")

        assert mock_request.call_args[0][0] == "POST"
        assert sent_url(mock_request) == f"{POWERBI_API_URL}/groups/{SAMPLE_GROUP_ID}/reports/r-1/Clone"
        assert sent_body(mock_request) == {"name": "Sales copy", "targetWorkspaceId": "g-2", "targetModelId": "d-2"}
        assert report.id == "r-2"
        assert report.dataset_id == "d-2"

    def test_clone_without_dataset_keeps_binding(self, client):
        cloned = create_report_response("r-2", "Sales copy")
        with patch('requests.request', return_value=create_mock_response(200, cloned)) as mock_request:
            client.clone_report_in_group(SAMPLE_GROUP_ID, "r-1", "Sales copy", "g-2")

        assert "targetModelId" not in sent_body(mock_request)

    def test_export_returns_zip_body(self, client):
        response = create_mock_response(200, text="PK\x03\x04report", headers={"Content-Type": "application/zip"})
        with patch('requests.request', return_value=response) as mock_request:
            exported = client.export_report(SAMPLE_GROUP_ID, "r-1")

        assert mock_request.call_args[0][0] == "GET"
        assert sent_url(mock_request) == f"{POWERBI_API_URL}/groups/{SAMPLE_GROUP_ID}/reports/r-1/Export"
        assert sent_body(mock_request) is None
        assert exported == "PK\x03\x04report"
