"""Tests for the policy codec and validation rules."""

import dataclasses
from datetime import datetime

import pytest
import yaml
from src.policy.codec import (
    context_from_dict,
    environment_from_dict,
    policy_from_dict,
    policy_to_dict,
    resource_context_from_dict,
)
from src.policy.errors import PolicyError, PolicyValidationError
from src.policy.model import (
    ANY,
    DEFAULT_POLICY_PRIORITY,
    AccountResource,
    AccountType,
    ActionCondition,
    Effect,
    EntityResource,
    EnvironmentCondition,
    JournalEntryResource,
    PeriodStatus,
    ResourceType,
    TimeRange,
)
from src.policy.validation import validate_policy

POLICY_DOC = {
    "id": "p-1",
    "organizationId": "org-1",
    "name": "Controllers post asset entries",
    "subject": {"roles": ["member", "admin"], "functionalRoles": ["controller"]},
    "resource": {
        "type": "account",
        "attributes": {
            "accountNumber": {"range": [1000, 1999]},
            "accountType": ["Asset"],
            "isIntercompany": False,
        },
    },
    "action": {"actions": ["account:read", "account:update"]},
    "environment": {"daysOfWeek": [1, 2, 3, 4, 5], "ipAllowList": ["10.0.0.0/8"]},
    "effect": "allow",
    "priority": 300,
}


def test_policy_from_dict():
    policy = policy_from_dict(POLICY_DOC)
    assert policy.subject.roles == ("member", "admin")
    assert policy.subject.functional_roles == ("controller",)
    assert policy.resource.type is ResourceType.ACCOUNT
    assert policy.resource.attributes.account_number.range == (1000, 1999)
    assert policy.resource.attributes.account_type == (AccountType.ASSET,)
    assert policy.resource.attributes.is_intercompany is False
    assert policy.environment.days_of_week == (1, 2, 3, 4, 5)
    assert policy.effect is Effect.ALLOW
    assert policy.priority == 300
    assert policy.is_system_policy is False
    assert policy.is_active is True


def test_policy_to_dict_restores_document():
    out = policy_to_dict(policy_from_dict(POLICY_DOC))
    for key in ("subject", "resource", "action", "environment", "effect", "priority"):
        assert out[key] == POLICY_DOC[key]


def test_star_decodes_to_any():
    policy = policy_from_dict(
        {"id": "p", "organizationId": "o", "name": "All", "subject": {"roles": ["*"]},
         "resource": {"type": "*"}, "action": {"actions": ["*"]}, "effect": "deny"}
    )
    assert policy.subject.roles == (ANY,)
    assert policy.resource.type is ANY
    assert policy.action.actions == (ANY,)
    assert policy_to_dict(policy)["action"] == {"actions": ["*"]}


def test_defaults():
    policy = policy_from_dict({"id": "p", "organizationId": "o", "name": "N", "action": {"actions": ["*"]}, "effect": "allow"})
    assert policy.priority == DEFAULT_POLICY_PRIORITY
    assert policy.resource.type is ANY
    assert policy.environment is None


@pytest.mark.parametrize("missing", ["id", "organizationId", "name", "effect"])
def test_missing_required_key(missing):
    doc = {k: v for k, v in POLICY_DOC.items() if k != missing}
    with pytest.raises(PolicyValidationError, match=missing):
        policy_from_dict(doc)


@pytest.mark.parametrize(
    "patch",
    [
        {"effect": "maybe"},
        {"resource": {"type": "invoice"}},
        {"resource": {"type": "journal_entry", "attributes": {"periodStatus": ["Ajar"]}}},
        {"action": {"actions": []}},
    ],
)
def test_invalid_documents(patch):
    with pytest.raises(PolicyValidationError):
        policy_from_dict({**POLICY_DOC, **patch})


def test_validation_error_is_value_error():
    assert issubclass(PolicyValidationError, ValueError)
    assert issubclass(PolicyValidationError, PolicyError)
    with pytest.raises(ValueError):
        ActionCondition(actions=())


def test_yaml_times_survive_sexagesimal_parsing():
    doc = yaml.safe_load("timeOfDay: {start: 09:00, end: 17:30}")
    condition = environment_from_dict(doc)
    assert condition.time_of_day == TimeRange(start="09:00", end="17:30")


def test_resource_context_from_dict():
    account = resource_context_from_dict({"type": "account", "id": "a-1", "accountNumber": 1200, "accountType": "Asset"})
    assert account == AccountResource(id="a-1", account_number=1200, account_type=AccountType.ASSET)
    entry = resource_context_from_dict({"type": "journal_entry", "periodStatus": "SoftClose", "isOwnEntry": True})
    assert entry == JournalEntryResource(period_status=PeriodStatus.SOFT_CLOSE, is_own_entry=True)
    assert resource_context_from_dict({"type": "report", "id": "r-1"}) == EntityResource(type=ResourceType.REPORT, id="r-1")


def test_context_from_dict():
    ctx = context_from_dict(
        {
            "subject": {"userId": "u-1", "role": "member", "functionalRoles": ["controller"]},
            "resource": {"type": "fiscal_period", "periodStatus": "Open"},
            "action": "fiscal_period:manage",
            "environment": {"currentTime": "10:15", "currentDayOfWeek": 3, "ipAddress": "10.0.0.1"},
        }
    )
    assert ctx.subject.functional_roles == frozenset({"controller"})
    assert ctx.resource.type is ResourceType.FISCAL_PERIOD
    assert ctx.environment.current_day_of_week == 3
    assert context_from_dict({"subject": {}, "resource": {"type": "company"}, "action": "company:read"}).environment is None


# ---------- validation ----------


def test_valid_custom_policy():
    policy = policy_from_dict(POLICY_DOC)
    assert validate_policy(policy) is policy


@pytest.mark.parametrize(
    "changes, message",
    [
        ({"priority": 900}, "reserved"),
        ({"priority": -1}, "outside"),
        ({"priority": "high"}, "integer"),
        ({"name": "   "}, "name"),
        ({"organization_id": ""}, "organization"),
        ({"is_system_policy": True, "priority": 899}, "System policy priority"),
        ({"environment": EnvironmentCondition(time_of_day=TimeRange(start="22:00", end="06:00"))}, "midnight"),
        ({"environment": EnvironmentCondition(time_of_day=TimeRange(start="9:00", end="17:00"))}, "HH:MM"),
        ({"environment": EnvironmentCondition(days_of_week=(7,))}, "Day of week"),
        ({"environment": EnvironmentCondition(ip_deny_list=("10.0.0.0/33",))}, "CIDR"),
    ],
)
def test_invalid_policies(changes, message):
    policy = dataclasses.replace(policy_from_dict(POLICY_DOC), **changes)
    with pytest.raises(PolicyValidationError, match=message):
        validate_policy(policy)


def test_empty_account_range_rejected():
    doc = {**POLICY_DOC, "resource": {"type": "account", "attributes": {"accountNumber": {"range": [2000, 1000]}}}}
    with pytest.raises(PolicyValidationError, match="empty"):
        validate_policy(policy_from_dict(doc))


def test_system_policy_at_top_priority_is_valid():
    policy = dataclasses.replace(policy_from_dict(POLICY_DOC), is_system_policy=True, priority=1000)
    validate_policy(policy)


def test_timestamps_round_trip():
    stamped = dataclasses.replace(
        policy_from_dict(POLICY_DOC),
        created_at=datetime(2024, 1, 1),
        updated_at=datetime(2024, 2, 15, 9, 30, 5),
    )
    doc = policy_to_dict(stamped)
    assert doc["createdAt"] == "2024-01-01T00:00:00"
    back = policy_from_dict(doc)
    assert back.created_at == stamped.created_at
    assert back.updated_at == stamped.updated_at
    assert policy_to_dict(back) == doc


def test_invalid_timestamp():
    with pytest.raises(PolicyValidationError, match="timestamp"):
        policy_from_dict({**POLICY_DOC, "createdAt": "yesterday"})
