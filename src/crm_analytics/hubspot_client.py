"""HubSpot CRM REST API client for record operations and analytics data retrieval."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import requests

from .config import Config
from .errors import AuthenticationError, FetchError
from .models import OwnerIdentity, Pipeline, PipelineStage, SearchPage

DEFAULT_CONTACT_PROPERTIES = ["email", "firstname", "lastname", "phone"]
DEFAULT_DEAL_PROPERTIES = ["dealname", "amount", "dealstage", "closedate"]
DEFAULT_COMPANY_PROPERTIES = ["name", "domain", "phone", "address"]


class HubSpotClient:
    """Small, typed client for the HubSpot CRM v3 APIs."""

    MAX_PAGE_SIZE = 100
    _MAX_RETRIES = 5
    _MAX_BACKOFF_SECONDS = 30

    def __init__(self, config: Config) -> None:
        """Initialize an authenticated HubSpot API client.

        Args:
            config: Validated runtime configuration including the access token.
        """
        self._config = config
        self._timeout_seconds = config.timeout_seconds
        self._base_url = config.base_url

        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {config.access_token}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )

    def _build_url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _extract_backoff_seconds(self, response: requests.Response, attempt: int) -> int:
        """Compute exponential backoff seconds, honoring Retry-After when available."""
        retry_after_header = response.headers.get("Retry-After")
        if retry_after_header:
            try:
                retry_after_seconds = int(retry_after_header)
                return min(self._MAX_BACKOFF_SECONDS, max(1, retry_after_seconds))
            except ValueError:
                pass

        return min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1))

    def _request_json(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Execute a request with retry logic for 429/5xx responses.

        Raises:
            AuthenticationError: If HubSpot rejects the access token (401/403).
            FetchError: If the request repeatedly fails, returns HTTP >= 400,
                or does not return a JSON object.
        """
        url = self._build_url(path)
        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = self._session.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    timeout=self._timeout_seconds,
                )
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise FetchError(f"HubSpot request failed after retries: {method} {url}") from exc
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code
            is_retryable = status_code == 429 or 500 <= status_code <= 599

            if is_retryable and attempt < self._MAX_RETRIES:
                time.sleep(self._extract_backoff_seconds(response, attempt))
                continue

            if status_code in (401, 403):
                raise AuthenticationError(
                    f"HubSpot rejected the access token: {method} {url} returned {status_code}"
                )

            if status_code >= 400:
                raise FetchError(
                    "HubSpot API request failed: "
                    f"{method} {url} returned {status_code} - {response.text}"
                )

            try:
                payload = response.json()
            except ValueError as exc:
                raise FetchError(f"HubSpot API returned invalid JSON: {method} {url}") from exc

            if not isinstance(payload, dict):
                raise FetchError(f"HubSpot API returned unexpected payload shape: {method} {url}")

            return payload

        raise FetchError(f"HubSpot request failed after retries: {method} {url}") from last_error

    def search(
        self,
        object_type: str,
        filter_groups: List[Dict[str, Any]],
        sorts: Optional[List[str]] = None,
        properties: Optional[List[str]] = None,
        limit: int = MAX_PAGE_SIZE,
        after: Optional[str] = None,
    ) -> SearchPage:
        """Run one search request and return a single page of results.

        The ``after`` cursor is opaque; it is passed through exactly as the
        previous page returned it.
        """
        body: Dict[str, Any] = {
            "filterGroups": filter_groups,
            "sorts": list(sorts or []),
            "properties": list(properties or []),
            "limit": min(limit, self.MAX_PAGE_SIZE),
        }
        if after is not None:
            body["after"] = after

        payload = self._request_json("POST", f"crm/v3/objects/{object_type}/search", json_body=body)

        next_page = (payload.get("paging") or {}).get("next") or {}
        next_after = next_page.get("after")
        return SearchPage(
            results=list(payload.get("results") or []),
            next_after=str(next_after) if next_after else None,
        )

    def get_by_id(
        self,
        object_type: str,
        object_id: str,
        properties: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Fetch a single CRM object by identifier."""
        params: Dict[str, Any] = {}
        if properties:
            params["properties"] = ",".join(properties)
        return self._request_json("GET", f"crm/v3/objects/{object_type}/{object_id}", params=params)

    def get_owner_by_id(self, owner_id: str) -> OwnerIdentity:
        """Fetch a deal owner's identity from the owners directory."""
        payload = self._request_json("GET", f"crm/v3/owners/{owner_id}")
        return OwnerIdentity(
            id=str(owner_id),
            first_name=payload.get("firstName"),
            last_name=payload.get("lastName"),
            email=payload.get("email"),
        )

    def get_pipeline(self, object_type: str, pipeline_id: str) -> Pipeline:
        """Fetch a pipeline definition with its stages ordered by display order."""
        payload = self._request_json("GET", f"crm/v3/pipelines/{object_type}/{pipeline_id}")

        stages: List[PipelineStage] = []
        for item in payload.get("stages") or []:
            stage_id = item.get("id")
            if not stage_id:
                continue
            stages.append(
                PipelineStage(
                    id=str(stage_id),
                    label=str(item.get("label") or stage_id),
                    display_order=int(item.get("displayOrder") or 0),
                )
            )

        stages.sort(key=lambda stage: stage.display_order)
        return Pipeline(
            id=str(payload.get("id") or pipeline_id),
            label=str(payload.get("label") or ""),
            stages=stages,
        )

    def _create(self, object_type: str, properties: Dict[str, Any]) -> Dict[str, Any]:
        return self._request_json(
            "POST", f"crm/v3/objects/{object_type}", json_body={"properties": properties}
        )

    def _update(self, object_type: str, object_id: str, properties: Dict[str, Any]) -> Dict[str, Any]:
        return self._request_json(
            "PATCH",
            f"crm/v3/objects/{object_type}/{object_id}",
            json_body={"properties": properties},
        )

    def _list_page(
        self,
        object_type: str,
        limit: int,
        after: Optional[str],
        properties: List[str],
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "limit": min(limit, self.MAX_PAGE_SIZE),
            "properties": ",".join(properties),
        }
        if after:
            params["after"] = after
        return self._request_json("GET", f"crm/v3/objects/{object_type}", params=params)

    def search_contacts(
        self,
        query: str,
        count: int = 10,
        properties: Optional[List[str]] = None,
    ) -> SearchPage:
        """Search contacts whose email contains ``query`` as a token."""
        filter_groups = [
            {
                "filters": [
                    {"propertyName": "email", "operator": "CONTAINS_TOKEN", "value": query},
                ]
            }
        ]
        return self.search(
            "contacts",
            filter_groups,
            sorts=["lastmodifieddate"],
            properties=properties or DEFAULT_CONTACT_PROPERTIES,
            limit=count,
        )

    def get_contact(self, contact_id: str, properties: Optional[List[str]] = None) -> Dict[str, Any]:
        return self.get_by_id("contacts", contact_id, properties or DEFAULT_CONTACT_PROPERTIES)

    def create_contact(self, properties: Dict[str, Any]) -> Dict[str, Any]:
        return self._create("contacts", properties)

    def update_contact(self, contact_id: str, properties: Dict[str, Any]) -> Dict[str, Any]:
        return self._update("contacts", contact_id, properties)

    def list_deals(
        self,
        limit: int = 10,
        after: Optional[str] = None,
        properties: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        return self._list_page("deals", limit, after, properties or DEFAULT_DEAL_PROPERTIES)

    def get_deal(self, deal_id: str, properties: Optional[List[str]] = None) -> Dict[str, Any]:
        return self.get_by_id("deals", deal_id, properties or DEFAULT_DEAL_PROPERTIES)

    def create_deal(self, properties: Dict[str, Any]) -> Dict[str, Any]:
        return self._create("deals", properties)

    def update_deal(self, deal_id: str, properties: Dict[str, Any]) -> Dict[str, Any]:
        return self._update("deals", deal_id, properties)

    def get_deal_history(self, deal_id: str) -> Dict[str, Any]:
        """Fetch a deal's last-modified marker."""
        return self.get_by_id("deals", deal_id, ["hs_lastmodifieddate"])

    def get_deal_notes(
        self,
        deal_id: str,
        limit: int = 20,
        after: Optional[str] = None,
    ) -> SearchPage:
        """Search notes attached to a deal.

        The deal is fetched first so that an unknown deal id surfaces as a
        ``FetchError`` instead of an empty result.
        """
        self.get_by_id("deals", deal_id, ["dealname"])

        filter_groups = [
            {
                "filters": [
                    {
                        "propertyName": "hs_attachment_ids",
                        "operator": "CONTAINS_TOKEN",
                        "value": deal_id,
                    }
                ]
            }
        ]
        return self.search(
            "notes",
            filter_groups,
            sorts=["hs_createdate"],
            properties=["hs_note_body", "hs_createdate", "hs_lastmodifieddate"],
            limit=limit,
            after=after,
        )

    def list_companies(
        self,
        limit: int = 10,
        after: Optional[str] = None,
        properties: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        return self._list_page("companies", limit, after, properties or DEFAULT_COMPANY_PROPERTIES)

    def get_company(self, company_id: str, properties: Optional[List[str]] = None) -> Dict[str, Any]:
        return self.get_by_id("companies", company_id, properties or DEFAULT_COMPANY_PROPERTIES)
