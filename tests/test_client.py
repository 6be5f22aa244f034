"""Tests for the REST client and the catalog's error mapping (mocked session)."""

from unittest import mock

import pytest
import requests

from ds_fleet.catalog import CatalogError, TargetCatalog
from ds_fleet.client import DataSafeClient
from ds_fleet.models import AUDIT_TRAIL, SECURITY_POLICY, Target

REGION = "eu-zurich-1"
BASE = f"https://datasafe.{REGION}.oci.oraclecloud.com/20181201"


def _response(json_data=None, headers=None, status=200):
    resp = mock.Mock(spec=requests.Response)
    resp.status_code = status
    resp.headers = headers or {}
    resp.json.return_value = json_data
    resp.reason = "OK" if status < 400 else "Error"
    resp.text = ""
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status}", response=resp)
    return resp


@pytest.fixture
def client():
    c = DataSafeClient(REGION)
    c.session = mock.Mock()
    return c


class TestDataSafeClient:

    def test_list_follows_next_page(self, client):
        client.session.get.side_effect = [
            _response({"items": [{"id": "t1"}, {"id": "t2"}]}, {"opc-next-page": "p2"}),
            _response({"items": [{"id": "t3"}]}),
        ]

        items = client.list_target_databases("ocid1.compartment.oc1..c", "ACTIVE")

        assert [i["id"] for i in items] == ["t1", "t2", "t3"]
        first, second = client.session.get.call_args_list
        assert first.kwargs["params"]["lifecycleState"] == "ACTIVE"
        assert first.kwargs["params"]["compartmentIdInSubtree"] == "true"
        assert "page" not in first.kwargs["params"]
        assert second.kwargs["params"]["page"] == "p2"

    def test_bare_array_response(self, client):
        client.session.get.return_value = _response([{"id": "a1"}])
        assert client.list_dependents(AUDIT_TRAIL, "t1", "c1") == [{"id": "a1"}]
        url = client.session.get.call_args.args[0]
        assert url == f"{BASE}/auditTrails"

    def test_change_compartment_posts_destination(self, client):
        client.session.post.return_value = _response({}, {"opc-work-request-id": "wr1"})

        wr = client.change_dependent_compartment(SECURITY_POLICY, "p1", "dest")

        assert wr == "wr1"
        url = client.session.post.call_args.args[0]
        assert url == f"{BASE}/securityPolicies/p1/actions/changeCompartment"
        assert client.session.post.call_args.kwargs["json"] == {"compartmentId": "dest"}

    def test_start_audit_trail_body(self, client):
        client.session.post.return_value = _response({})
        client.start_audit_trail("a1", "2026-01-01T00:00:00Z", True)
        assert client.session.post.call_args.kwargs["json"] == {
            "auditCollectionStartTime": "2026-01-01T00:00:00Z",
            "isAutoPurgeEnabled": True,
        }

    def test_update_tags_uses_put(self, client):
        client.session.put.return_value = _response({})
        client.update_target_database_tags("t1", {"DBSec": {"Environment": "prod"}})
        assert client.session.put.call_args.args[0] == f"{BASE}/targetDatabases/t1"
        assert client.session.put.call_args.kwargs["json"] == {"definedTags": {"DBSec": {"Environment": "prod"}}}


class TestTargetCatalog:

    def test_multi_state_listing_merges_without_duplicates(self, client):
        client.session.get.side_effect = [
            _response({"items": [{"id": "t1", "displayName": "db01", "lifecycleState": "ACTIVE"}]}),
            _response({"items": [
                {"id": "t2", "displayName": "db02", "lifecycleState": "NEEDS_ATTENTION"},
                {"id": "t1", "displayName": "db01", "lifecycleState": "ACTIVE"},
            ]}),
        ]

        targets = TargetCatalog(client).list_targets("c1", ["ACTIVE", "NEEDS_ATTENTION"])

        assert [t.identifier for t in targets] == ["t1", "t2"]
        assert client.session.get.call_count == 2

    def test_http_error_becomes_catalog_error(self, client):
        resp = _response({"code": "NotAuthorizedOrNotFound", "message": "not found"}, status=404)
        client.session.get.return_value = resp

        with pytest.raises(CatalogError, match="not found") as excinfo:
            TargetCatalog(client).get_target("t1")
        assert excinfo.value.status == 404

    def test_connection_error_becomes_catalog_error(self, client):
        client.session.post.side_effect = requests.ConnectionError("connection reset")
        with pytest.raises(CatalogError, match="connection reset") as excinfo:
            TargetCatalog(client).refresh_target("t1")
        assert excinfo.value.status is None

    def test_dependents_are_typed(self, client):
        client.session.get.return_value = _response({"items": [
            {"id": "a1", "displayName": "trail", "status": "COLLECTING", "trailLocation": "UNIFIED_AUDIT_TRAIL"},
        ]})

        resources = TargetCatalog(client).list_dependents(AUDIT_TRAIL, Target("t1", compartment_id="c1"))

        assert resources[0].kind == AUDIT_TRAIL
        assert resources[0].status == "COLLECTING"
        assert resources[0].trail_location == "UNIFIED_AUDIT_TRAIL"
        assert resources[0].compartment_id == "c1"
