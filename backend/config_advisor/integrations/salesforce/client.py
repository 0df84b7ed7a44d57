"""Salesforce REST/Tooling metadata client with retries."""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol

import httpx

from config_advisor.core.config import settings
from config_advisor.core.exceptions import MetadataUnavailable

logger = logging.getLogger(__name__)

_LIST_METADATA_QUERIES = {
    "Flow": "SELECT Id, MasterLabel, ProcessType FROM Flow WHERE Status = 'Active' AND ProcessType = 'AutoLaunchedFlow'",
    "Process": "SELECT Id, MasterLabel, ProcessType FROM Flow WHERE Status = 'Active' AND ProcessType = 'Workflow'",
    "ApexTrigger": "SELECT Id, Name, TableEnumOrId FROM ApexTrigger",
}


class MetadataClient(Protocol):
    """Read-only metadata source; calls must be idempotent."""

    def describe_global(self, org_id: str) -> dict[str, Any]: ...

    def describe_object(self, org_id: str, name: str) -> dict[str, Any]: ...

    def list_metadata(self, org_id: str, metadata_type: str) -> list[dict[str, Any]]: ...


class SalesforceMetadataClient:
    def __init__(
        self,
        *,
        instance_url: str | None = None,
        access_token: str | None = None,
        api_version: str | None = None,
        transport: httpx.BaseTransport | None = None,
        backoff_seconds: float = 0.5,
    ) -> None:
        self.base_url = (instance_url or settings.SALESFORCE_INSTANCE_URL).strip().rstrip("/")
        self.access_token = (access_token or settings.SALESFORCE_ACCESS_TOKEN).strip()
        self.api_version = api_version or settings.SALESFORCE_API_VERSION
        self.timeout = settings.SALESFORCE_TIMEOUT_SECONDS
        self.max_retries = max(1, settings.SALESFORCE_MAX_RETRIES)
        self.backoff_seconds = backoff_seconds
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.access_token)

    def _request(self, org_id: str, path: str, **kwargs: Any) -> dict[str, Any]:
        if not self.configured:
            raise MetadataUnavailable(org_id, "Salesforce credentials are not configured")
        url = f"{self.base_url}/services/data/{self.api_version}{path}"
        backoff = self.backoff_seconds
        with httpx.Client(
            timeout=self.timeout,
            headers={"Accept": "application/json", "Authorization": f"Bearer {self.access_token}"},
            transport=self._transport,
        ) as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    response = client.get(url, **kwargs)
                    if response.status_code in {429, 500, 502, 503, 504} and attempt < self.max_retries:
                        time.sleep(backoff)
                        backoff *= 2
                        continue
                    response.raise_for_status()
                    data = response.json()
                    return data if isinstance(data, dict) else {}
                except httpx.HTTPError as exc:
                    if attempt >= self.max_retries:
                        logger.warning("Salesforce metadata request failed: org=%s path=%s error=%s", org_id, path, exc)
                        raise MetadataUnavailable(org_id, f"Salesforce request failed: {exc}") from exc
                    time.sleep(backoff)
                    backoff *= 2
        return {}

    def _tooling_query(self, org_id: str, soql: str) -> list[dict[str, Any]]:
        data = self._request(org_id, "/tooling/query", params={"q": soql})
        records = data.get("records")
        return records if isinstance(records, list) else []

    def describe_global(self, org_id: str) -> dict[str, Any]:
        data = self._request(org_id, "/sobjects")
        sobjects = data.get("sobjects")
        if not isinstance(sobjects, list):
            raise MetadataUnavailable(org_id, "describeGlobal returned no sobjects")
        return {"sobjects": sobjects}

    def describe_object(self, org_id: str, name: str) -> dict[str, Any]:
        try:
            data = self._request(org_id, f"/sobjects/{name}/describe")
        except MetadataUnavailable as exc:
            raise MetadataUnavailable(org_id, exc.message, object_name=name) from exc
        fields = [
            {
                "name": field.get("name"),
                "label": field.get("label"),
                "type": field.get("type"),
                "custom": bool(field.get("custom")),
                "referenceTo": field.get("referenceTo") or [],
                "cascadeDelete": bool(field.get("cascadeDelete")),
                "formula": field.get("calculatedFormula"),
                "unique": bool(field.get("unique")),
            }
            for field in data.get("fields") or []
            if isinstance(field, dict)
        ]
        rules = self._tooling_query(
            org_id,
            "SELECT ValidationName, ErrorMessage, Metadata FROM ValidationRule "
            f"WHERE EntityDefinition.QualifiedApiName = '{name}'",
        )
        validation_rules = [
            {
                "name": rule.get("ValidationName"),
                "errorMessage": rule.get("ErrorMessage") or "",
                "errorConditionFormula": (rule.get("Metadata") or {}).get("errorConditionFormula") or "",
            }
            for rule in rules
        ]
        return {"name": name, "fields": fields, "validationRules": validation_rules}

    def list_metadata(self, org_id: str, metadata_type: str) -> list[dict[str, Any]]:
        soql = _LIST_METADATA_QUERIES.get(metadata_type)
        if soql is None:
            logger.debug("Unsupported metadata type requested: %s", metadata_type)
            return []
        return self._tooling_query(org_id, soql)
