"""
OCI Data Safe / Identity REST client for listing, reading, relocating
and updating target databases and their dependent objects.

Requests are signed with the ``oci`` SDK signer (a ``requests`` auth
object) built from the OCI CLI config file; everything else is plain
``requests``.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import ConfigError
from .models import AUDIT_TRAIL, SECURITY_ASSESSMENT, SECURITY_POLICY

__all__ = ["DataSafeClient", "DEPENDENCY_COLLECTIONS"]

logger = logging.getLogger(__name__)

DATASAFE_API_VERSION = "20181201"
IDENTITY_API_VERSION = "20160918"

# Collection path per dependency kind.  Each collection supports
# ``GET ?compartmentId=&targetId=`` and
# ``POST /{id}/actions/changeCompartment``.
DEPENDENCY_COLLECTIONS = {
    AUDIT_TRAIL: "auditTrails",
    SECURITY_ASSESSMENT: "securityAssessments",
    SECURITY_POLICY: "securityPolicies",
}


class DataSafeClient:
    """Client for the OCI Data Safe API (targets, dependents, compartments)."""

    # Default timeout for all HTTP requests: (connect, read) in seconds.
    DEFAULT_TIMEOUT = (10, 60)

    def __init__(
        self,
        region: str,
        auth: requests.auth.AuthBase | None = None,
        tenancy_id: str = "",
    ):
        self.region = region
        self.tenancy_id = tenancy_id
        self.datasafe_url = f"https://datasafe.{region}.oci.oraclecloud.com/{DATASAFE_API_VERSION}"
        self.identity_url = f"https://identity.{region}.oci.oraclecloud.com/{IDENTITY_API_VERSION}"

        self.session = requests.Session()
        self.session.auth = auth
        self.session.headers.update(
            {
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )
        # Retry on throttling, transient server errors and connection failures.
        retry = Retry(
            total=3,
            backoff_factor=0.5,
            status_forcelist=[429, 502, 503, 504],
            allowed_methods=["GET", "POST", "PUT"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    @classmethod
    def from_oci_config(cls, config_file: str, profile: str, region: str = "") -> "DataSafeClient":
        """Build a signed client from an OCI CLI config file/profile.

        Raises:
            ConfigError: If the profile is missing, incomplete or its
                key cannot be loaded, or no region is known.
        """
        import oci

        try:
            oci_cfg = oci.config.from_file(file_location=config_file, profile_name=profile)
            oci.config.validate_config(oci_cfg)
            signer = oci.signer.Signer(
                tenancy=oci_cfg["tenancy"],
                user=oci_cfg["user"],
                fingerprint=oci_cfg["fingerprint"],
                private_key_file_location=oci_cfg.get("key_file"),
                pass_phrase=oci_cfg.get("pass_phrase"),
            )
        except (oci.exceptions.ClientError, OSError) as exc:
            raise ConfigError(
                f"OCI profile '{profile}' in {config_file} is not usable: {exc}. "
                "Check oci.config_file / oci.profile (OCI_CLI_CONFIG_FILE, OCI_CLI_PROFILE)."
            ) from exc
        effective_region = region or oci_cfg.get("region", "")
        if not effective_region:
            raise ConfigError(
                f"No region for OCI profile '{profile}'. Set oci.region or OCI_CLI_REGION."
            )
        logger.debug("OCI profile '%s' loaded (region %s)", profile, effective_region)
        return cls(effective_region, auth=signer, tenancy_id=oci_cfg["tenancy"])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get(self, url: str, params: dict | None = None) -> requests.Response:
        """Send a GET request and return the raw response (status checked)."""
        logger.debug("GET %s %s", url, params or "")
        resp = self.session.get(url, params=params, timeout=self.DEFAULT_TIMEOUT)
        resp.raise_for_status()
        return resp

    def _post(self, url: str, body: dict | None = None) -> requests.Response:
        """Send a POST request with *body* and return the raw response."""
        logger.debug("POST %s", url)
        resp = self.session.post(url, json=body or {}, timeout=self.DEFAULT_TIMEOUT)
        resp.raise_for_status()
        return resp

    def _put(self, url: str, body: dict) -> requests.Response:
        """Send a PUT request with *body* and return the raw response."""
        logger.debug("PUT %s", url)
        resp = self.session.put(url, json=body, timeout=self.DEFAULT_TIMEOUT)
        resp.raise_for_status()
        return resp

    @staticmethod
    def _items(data: Any) -> list[dict]:
        """Normalise a list response: Data Safe returns either a bare array
        or a collection object ``{"items": [...]}``."""
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return data.get("items") or []
        return []

    def _paginate(self, url: str, params: dict) -> Iterator[dict]:
        """Yield all items across pages (``opc-next-page`` header)."""
        params = dict(params)
        while True:
            resp = self._get(url, dict(params))
            for item in self._items(resp.json()):
                yield item
            next_page = resp.headers.get("opc-next-page")
            if not next_page:
                return
            params["page"] = next_page

    # ------------------------------------------------------------------
    # Compartments (Identity)
    # ------------------------------------------------------------------

    def get_compartment(self, compartment_id: str) -> dict:
        """GET /compartments/{id}"""
        return self._get(f"{self.identity_url}/compartments/{compartment_id}").json()

    def list_compartments_by_name(self, name: str) -> list[dict]:
        """Search the whole tenancy for compartments named *name*."""
        params = {
            "compartmentId": self.tenancy_id,
            "compartmentIdInSubtree": "true",
            "accessLevel": "ANY",
            "name": name,
            "lifecycleState": "ACTIVE",
        }
        return list(self._paginate(f"{self.identity_url}/compartments", params))

    # ------------------------------------------------------------------
    # Target databases
    # ------------------------------------------------------------------

    def list_target_databases(
        self,
        compartment_id: str,
        lifecycle_state: str | None = None,
    ) -> list[dict]:
        """List target databases in a compartment and its sub-tree."""
        params = {
            "compartmentId": compartment_id,
            "compartmentIdInSubtree": "true",
            "accessLevel": "ACCESSIBLE",
        }
        if lifecycle_state:
            params["lifecycleState"] = lifecycle_state
        items = list(self._paginate(f"{self.datasafe_url}/targetDatabases", params))
        logger.debug(
            "Listed %d target(s) in %s (state=%s)", len(items), compartment_id, lifecycle_state or "any",
        )
        return items

    def get_target_database(self, target_id: str) -> dict:
        """GET /targetDatabases/{id}"""
        return self._get(f"{self.datasafe_url}/targetDatabases/{target_id}").json()

    def change_target_database_compartment(self, target_id: str, compartment_id: str) -> str:
        """Relocate a target; returns the work request id (may be empty)."""
        resp = self._post(
            f"{self.datasafe_url}/targetDatabases/{target_id}/actions/changeCompartment",
            {"compartmentId": compartment_id},
        )
        return resp.headers.get("opc-work-request-id", "")

    def refresh_target_database(self, target_id: str) -> str:
        """Trigger a metadata refresh; returns the work request id."""
        resp = self._post(
            f"{self.datasafe_url}/targetDatabases/{target_id}/actions/refreshTargetDatabase",
        )
        return resp.headers.get("opc-work-request-id", "")

    def update_target_database_tags(self, target_id: str, defined_tags: dict) -> str:
        """Replace the defined tags of a target; returns the work request id."""
        resp = self._put(
            f"{self.datasafe_url}/targetDatabases/{target_id}",
            {"definedTags": defined_tags},
        )
        return resp.headers.get("opc-work-request-id", "")

    # ------------------------------------------------------------------
    # Dependent objects
    # ------------------------------------------------------------------

    def list_dependents(self, kind: str, target_id: str, compartment_id: str) -> list[dict]:
        """List dependent objects of *kind* owned by *target_id* in *compartment_id*."""
        collection = DEPENDENCY_COLLECTIONS[kind]
        params = {
            "compartmentId": compartment_id,
            "targetId": target_id,
        }
        return list(self._paginate(f"{self.datasafe_url}/{collection}", params))

    def change_dependent_compartment(self, kind: str, resource_id: str, compartment_id: str) -> str:
        """Relocate one dependent object; returns the work request id."""
        collection = DEPENDENCY_COLLECTIONS[kind]
        resp = self._post(
            f"{self.datasafe_url}/{collection}/{resource_id}/actions/changeCompartment",
            {"compartmentId": compartment_id},
        )
        return resp.headers.get("opc-work-request-id", "")

    def start_audit_trail(
        self,
        audit_trail_id: str,
        start_time: str,
        auto_purge: bool,
    ) -> str:
        """POST /auditTrails/{id}/actions/start"""
        resp = self._post(
            f"{self.datasafe_url}/auditTrails/{audit_trail_id}/actions/start",
            {
                "auditCollectionStartTime": start_time,
                "isAutoPurgeEnabled": auto_purge,
            },
        )
        return resp.headers.get("opc-work-request-id", "")
