from __future__ import annotations

import sys
from pathlib import Path

import pytest


BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from config_advisor.db.base import Base  # noqa: E402
from config_advisor.db.session import build_engine, build_session_factory  # noqa: E402
from config_advisor.services.store import SqlRecommendationStore  # noqa: E402

import config_advisor.models  # noqa: E402,F401


ORG_ID = "00D000000000001"

ORG_DESCRIBE = {
    "sobjects": [
        {"name": "Account", "custom": False},
        {"name": "Invoice__c", "custom": True},
    ]
}

OBJECT_DESCRIBES = {
    "Account": {
        "name": "Account",
        "fields": [
            {"name": "Id", "type": "id", "custom": False},
            {"name": "Name", "type": "string", "custom": False},
            {"name": "Industry", "type": "picklist", "custom": False},
            {"name": "CreatedDate", "type": "datetime", "custom": False},
            {"name": "Customer_Tier__c", "type": "picklist", "custom": True},
        ],
        "validationRules": [],
    },
    "Invoice__c": {
        "name": "Invoice__c",
        "fields": [
            {"name": "Id", "type": "id", "custom": False},
            {"name": "Name", "type": "string", "custom": False},
            {"name": "Due_Date__c", "type": "date", "custom": True, "label": "Due Date"},
            {"name": "Invoice_Date__c", "type": "date", "custom": True, "label": "Invoice Date"},
            {"name": "Total_Amount__c", "type": "currency", "custom": True, "label": "Total Amount"},
            {
                "name": "Account__c",
                "type": "reference",
                "custom": True,
                "referenceTo": ["Account"],
                "cascadeDelete": False,
            },
            {"name": "Status__c", "type": "picklist", "custom": True, "label": "Status"},
        ],
        "validationRules": [
            {"errorConditionFormula": "ISBLANK(Due_Date__c)", "errorMessage": "Due date is required"},
            {"errorConditionFormula": "Total_Amount__c < 0", "errorMessage": "Amount cannot be negative"},
        ],
    },
}

AUTOMATION_LISTINGS = {
    "Flow": [{"fullName": "Invoice_Reminder"}, {"fullName": "Invoice_Approval"}],
    "ApexTrigger": [{"fullName": "InvoiceTrigger"}],
    "Process": [],
}


class FakeMetadataClient:
    def __init__(self, *, fail_on: str | None = None, automation_error: Exception | None = None) -> None:
        self.fail_on = fail_on
        self.automation_error = automation_error
        self.calls: list[tuple[str, str]] = []

    def describe_global(self, org_id: str) -> dict:
        self.calls.append(("describe_global", org_id))
        if self.fail_on == "describe_global":
            raise RuntimeError("connection reset")
        return ORG_DESCRIBE

    def describe_object(self, org_id: str, name: str) -> dict:
        self.calls.append(("describe_object", name))
        if self.fail_on == name:
            raise RuntimeError(f"cannot describe {name}")
        return OBJECT_DESCRIBES.get(name, {})

    def list_metadata(self, org_id: str, metadata_type: str) -> list[dict]:
        self.calls.append(("list_metadata", metadata_type))
        if self.automation_error is not None:
            raise self.automation_error
        return AUTOMATION_LISTINGS.get(metadata_type, [])


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    try:
        yield build_session_factory(engine)
    finally:
        engine.dispose()


@pytest.fixture
def store(session_factory) -> SqlRecommendationStore:
    return SqlRecommendationStore(session_factory)


@pytest.fixture
def metadata() -> FakeMetadataClient:
    return FakeMetadataClient()


@pytest.fixture
def make_metadata():
    return FakeMetadataClient
