from __future__ import annotations

import httpx
import pytest

from config_advisor.core.exceptions import MetadataUnavailable
from config_advisor.integrations.salesforce.client import SalesforceMetadataClient

ORG_ID = "00D000000000001"


def _client(handler, **kwargs) -> SalesforceMetadataClient:
    return SalesforceMetadataClient(
        instance_url="https://acme.my.salesforce.com/",
        access_token="token-123",
        api_version="v59.0",
        transport=httpx.MockTransport(handler),
        backoff_seconds=0.0,
        **kwargs,
    )


def test_describe_global_retries_throttled_requests() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(429, json=[{"message": "slow down"}])
        return httpx.Response(200, json={"sobjects": [{"name": "Account", "custom": False}]})

    payload = _client(handler).describe_global(ORG_ID)

    assert payload == {"sobjects": [{"name": "Account", "custom": False}]}
    assert len(calls) == 2
    assert calls[0].url.path == "/services/data/v59.0/sobjects"
    assert calls[0].headers["Authorization"] == "Bearer token-123"


def test_describe_object_normalizes_fields_and_rules() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/tooling/query"):
            assert "Invoice__c" in request.url.params["q"]
            return httpx.Response(
                200,
                json={
                    "records": [
                        {
                            "ValidationName": "Due_Date_Required",
                            "ErrorMessage": "Due date is required",
                            "Metadata": {"errorConditionFormula": "ISBLANK(Due_Date__c)"},
                        }
                    ]
                },
            )
        return httpx.Response(
            200,
            json={
                "fields": [
                    {"name": "Total__c", "label": "Total", "type": "currency", "custom": True, "calculatedFormula": "Net__c + Tax__c"},
                    {"name": "Account__c", "type": "reference", "custom": True, "referenceTo": ["Account"]},
                    "not a field",
                ]
            },
        )

    described = _client(handler).describe_object(ORG_ID, "Invoice__c")

    assert described["name"] == "Invoice__c"
    total, account = described["fields"]
    assert total["formula"] == "Net__c + Tax__c"
    assert total["referenceTo"] == []
    assert account["referenceTo"] == ["Account"]
    assert described["validationRules"] == [
        {
            "name": "Due_Date_Required",
            "errorMessage": "Due date is required",
            "errorConditionFormula": "ISBLANK(Due_Date__c)",
        }
    ]


def test_describe_object_failure_names_the_object() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    with pytest.raises(MetadataUnavailable) as exc_info:
        _client(handler).describe_object(ORG_ID, "Invoice__c")

    assert exc_info.value.details == {"org_id": ORG_ID, "object_name": "Invoice__c"}
    assert exc_info.value.status_code == 502


def test_missing_credentials_fail_without_a_request() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    client = SalesforceMetadataClient(
        instance_url=" ", access_token=" ", transport=httpx.MockTransport(handler), backoff_seconds=0.0
    )

    with pytest.raises(MetadataUnavailable):
        client.describe_global(ORG_ID)
    assert calls == []


def test_list_metadata_queries_known_types_only() -> None:
    queries = []

    def handler(request: httpx.Request) -> httpx.Response:
        queries.append(request.url.params["q"])
        return httpx.Response(200, json={"records": [{"Id": "300"}, {"Id": "301"}]})

    client = _client(handler)

    assert len(client.list_metadata(ORG_ID, "Flow")) == 2
    assert client.list_metadata(ORG_ID, "Workflow") == []
    assert len(queries) == 1
    assert "FROM Flow" in queries[0]
