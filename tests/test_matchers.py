"""Tests for the subject, resource, action and environment matchers."""

from datetime import datetime

import pytest
from src.policy.matchers.action import filter_matching_actions, matches_action
from src.policy.matchers.environment import matches_environment, matches_ip_pattern, matches_time_of_day
from src.policy.matchers.resource import matches_resource
from src.policy.matchers.subject import matches_subject
from src.policy.model import (
    ANY,
    AccountNumberCondition,
    AccountResource,
    AccountType,
    ActionCondition,
    EntityResource,
    EnvironmentCondition,
    EnvironmentContext,
    FiscalPeriodResource,
    JournalEntryResource,
    JournalEntryType,
    PeriodStatus,
    ResourceAttributes,
    ResourceCondition,
    ResourceType,
    SubjectCondition,
    SubjectContext,
    TimeRange,
    create_environment_context,
)


def subject(role="member", functional_roles=(), user_id="user-1", is_platform_admin=False):
    return SubjectContext(
        user_id=user_id,
        role=role,
        functional_roles=frozenset(functional_roles),
        is_platform_admin=is_platform_admin,
    )


# ---------- subject ----------


def test_empty_subject_condition_matches_anyone():
    for ctx in (subject(), subject(role="owner"), subject(is_platform_admin=True)):
        assert matches_subject(SubjectCondition(), ctx) == (True, None)


def test_roles():
    condition = SubjectCondition(roles=("owner", "admin"))
    assert matches_subject(condition, subject(role="admin"))[0] is True
    matched, reason = matches_subject(condition, subject(role="member"))
    assert matched is False
    assert "role mismatch" in reason.lower()
    assert "member" in reason and "owner" in reason


def test_role_wildcard_matches_any_role():
    condition = SubjectCondition(roles=(ANY,))
    assert matches_subject(condition, subject(role="viewer"))[0] is True


def test_empty_roles_list_is_unconstrained():
    assert matches_subject(SubjectCondition(roles=()), subject(role="viewer"))[0] is True


def test_functional_roles_need_one_in_common():
    condition = SubjectCondition(functional_roles=("controller", "finance_manager"))
    assert matches_subject(condition, subject(functional_roles=("controller", "accountant")))[0] is True
    matched, reason = matches_subject(condition, subject(functional_roles=("accountant",)))
    assert matched is False
    assert "accountant" in reason and "controller" in reason


def test_functional_role_reason_with_no_roles():
    _, reason = matches_subject(SubjectCondition(functional_roles=("controller",)), subject())
    assert "none" in reason


def test_user_ids():
    condition = SubjectCondition(user_ids=("user-1", "user-2"))
    assert matches_subject(condition, subject(user_id="user-2"))[0] is True
    matched, reason = matches_subject(condition, subject(user_id="user-9"))
    assert matched is False
    assert "user-9" in reason
    assert "user-1" not in reason


def test_platform_admin_gate():
    required = SubjectCondition(is_platform_admin=True)
    assert matches_subject(required, subject(is_platform_admin=True))[0] is True
    matched, reason = matches_subject(required, subject())
    assert matched is False
    assert "non-platform admin" in reason


def test_platform_admin_false_matches_only_non_admins():
    condition = SubjectCondition(is_platform_admin=False)
    assert matches_subject(condition, subject())[0] is True
    assert matches_subject(condition, subject(is_platform_admin=True))[0] is False


def test_all_subject_dimensions_must_hold():
    condition = SubjectCondition(roles=("member",), functional_roles=("controller",))
    assert matches_subject(condition, subject(functional_roles=("controller",)))[0] is True
    assert matches_subject(condition, subject(role="admin", functional_roles=("controller",)))[0] is False
    assert matches_subject(condition, subject(functional_roles=("accountant",)))[0] is False


# ---------- resource ----------


def test_resource_type_wildcard_and_exact():
    company = EntityResource(type=ResourceType.COMPANY)
    assert matches_resource(ResourceCondition(type=ANY), company)[0] is True
    assert matches_resource(ResourceCondition(type=ResourceType.COMPANY), company)[0] is True
    matched, reason = matches_resource(ResourceCondition(type=ResourceType.ACCOUNT), company)
    assert matched is False
    assert "company" in reason and "account" in reason


def test_account_number_range():
    condition = ResourceCondition(
        type=ResourceType.ACCOUNT,
        attributes=ResourceAttributes(account_number=AccountNumberCondition(range=(1000, 1999))),
    )
    assert matches_resource(condition, AccountResource(account_number=1500))[0] is True
    assert matches_resource(condition, AccountResource(account_number=1000))[0] is True
    assert matches_resource(condition, AccountResource(account_number=1999))[0] is True
    matched, reason = matches_resource(condition, AccountResource(account_number=2500))
    assert matched is False
    assert "Account number" in reason
    assert "out of range" in reason


def test_account_number_in_list():
    condition = ResourceCondition(
        attributes=ResourceAttributes(account_number=AccountNumberCondition(in_=(1000, 1100))),
    )
    assert matches_resource(condition, AccountResource(account_number=1100))[0] is True
    assert matches_resource(condition, AccountResource(account_number=1050))[0] is False


def test_missing_attribute_fails_closed():
    condition = ResourceCondition(
        attributes=ResourceAttributes(account_number=AccountNumberCondition(range=(1000, 1999))),
    )
    matched, reason = matches_resource(condition, AccountResource())
    assert matched is False
    assert "account number" in reason
    # a company carries no account number at all
    assert matches_resource(condition, EntityResource(type=ResourceType.COMPANY))[0] is False


def test_account_type_set():
    condition = ResourceCondition(
        attributes=ResourceAttributes(account_type=(AccountType.ASSET, AccountType.LIABILITY)),
    )
    assert matches_resource(condition, AccountResource(account_type=AccountType.ASSET))[0] is True
    matched, reason = matches_resource(condition, AccountResource(account_type=AccountType.REVENUE))
    assert matched is False
    assert "Account type" in reason
    assert "not allowed" in reason


def test_empty_set_constraint_is_unconstrained():
    condition = ResourceCondition(attributes=ResourceAttributes(period_status=()))
    assert matches_resource(condition, EntityResource(type=ResourceType.REPORT))[0] is True


def test_entry_type_and_period_status():
    condition = ResourceCondition(
        type=ResourceType.JOURNAL_ENTRY,
        attributes=ResourceAttributes(
            entry_type=(JournalEntryType.ADJUSTING,),
            period_status=(PeriodStatus.OPEN, PeriodStatus.SOFT_CLOSE),
        ),
    )
    ok = JournalEntryResource(entry_type=JournalEntryType.ADJUSTING, period_status=PeriodStatus.SOFT_CLOSE)
    assert matches_resource(condition, ok)[0] is True
    closed = JournalEntryResource(entry_type=JournalEntryType.ADJUSTING, period_status=PeriodStatus.CLOSED)
    matched, reason = matches_resource(condition, closed)
    assert matched is False
    assert "Period status" in reason


def test_boolean_attributes_match_exactly():
    intercompany = ResourceCondition(attributes=ResourceAttributes(is_intercompany=True))
    assert matches_resource(intercompany, AccountResource(is_intercompany=True))[0] is True
    matched, reason = matches_resource(intercompany, AccountResource(is_intercompany=False))
    assert matched is False
    assert "non-intercompany" in reason

    own = ResourceCondition(attributes=ResourceAttributes(is_own_entry=False))
    assert matches_resource(own, JournalEntryResource(is_own_entry=False))[0] is True
    assert matches_resource(own, JournalEntryResource(is_own_entry=True))[0] is False

    adjustment = ResourceCondition(attributes=ResourceAttributes(is_adjustment_period=True))
    assert matches_resource(adjustment, FiscalPeriodResource(is_adjustment_period=True))[0] is True
    assert matches_resource(adjustment, FiscalPeriodResource())[0] is False


# ---------- action ----------


def test_action_exact_and_wildcard():
    condition = ActionCondition(actions=("journal_entry:create", "journal_entry:update"))
    assert matches_action(condition, "journal_entry:create") == (True, None)
    matched, reason = matches_action(condition, "journal_entry:post")
    assert matched is False
    assert "journal_entry:post" in reason
    assert matches_action(ActionCondition(actions=(ANY,)), "organization:delete")[0] is True


def test_action_has_no_prefix_wildcard():
    condition = ActionCondition(actions=("journal_entry:*",))
    assert matches_action(condition, "journal_entry:create")[0] is False


def test_filter_matching_actions():
    condition = ActionCondition(actions=("report:read", "report:export"))
    actions = ["company:read", "report:export", "report:read"]
    assert filter_matching_actions(condition, actions) == ["report:export", "report:read"]
    assert filter_matching_actions(ActionCondition(actions=(ANY,)), actions) == actions


# ---------- environment ----------


def test_no_environment_condition_always_matches():
    assert matches_environment(None, None) == (True, None)
    assert matches_environment(None, EnvironmentContext(ip_address="10.0.0.1"))[0] is True


def test_environment_condition_without_context_fails_closed():
    matched, reason = matches_environment(EnvironmentCondition(days_of_week=(1, 2, 3, 4, 5)), None)
    assert matched is False
    assert "environment" in reason


def test_days_of_week():
    condition = EnvironmentCondition(days_of_week=(1, 2, 3, 4, 5))
    assert matches_environment(condition, EnvironmentContext(current_day_of_week=3))[0] is True
    matched, reason = matches_environment(condition, EnvironmentContext(current_day_of_week=0))
    assert matched is False
    assert "Sunday" in reason


def test_time_of_day_inclusive_bounds():
    condition = EnvironmentCondition(time_of_day=TimeRange(start="09:00", end="17:00"))
    for t in ("09:00", "12:30", "17:00"):
        assert matches_environment(condition, EnvironmentContext(current_time=t))[0] is True
    for t in ("08:59", "17:01"):
        assert matches_environment(condition, EnvironmentContext(current_time=t))[0] is False


def test_time_range_does_not_wrap_midnight():
    overnight = TimeRange(start="22:00", end="06:00")
    assert matches_time_of_day(overnight, "23:00") is False
    assert matches_time_of_day(overnight, "05:00") is False


@pytest.mark.parametrize(
    "pattern, ip, expected",
    [
        ("10.0.0.5", "10.0.0.5", True),
        ("10.0.0.5", "10.0.0.6", False),
        ("10.0.0.0/24", "10.0.0.200", True),
        ("10.0.0.0/24", "10.0.1.1", False),
        ("0.0.0.0/0", "203.0.113.9", True),
        ("2001:db8::/32", "2001:db8::1", True),
        ("2001:db8::/32", "10.0.0.1", False),
        ("not-an-ip", "10.0.0.1", False),
        ("10.0.0.0/33", "10.0.0.1", False),
    ],
)
def test_ip_pattern(pattern, ip, expected):
    assert matches_ip_pattern(pattern, ip) is expected


def test_ip_allow_and_deny_lists():
    condition = EnvironmentCondition(ip_allow_list=("10.0.0.0/8",), ip_deny_list=("10.1.0.0/16",))
    assert matches_environment(condition, EnvironmentContext(ip_address="10.2.3.4"))[0] is True
    matched, reason = matches_environment(condition, EnvironmentContext(ip_address="10.1.2.3"))
    assert matched is False
    assert "deny list" in reason
    matched, reason = matches_environment(condition, EnvironmentContext(ip_address="192.168.1.1"))
    assert matched is False
    assert "allowed list" in reason


def test_malformed_allow_entry_never_matches():
    condition = EnvironmentCondition(ip_allow_list=("bogus", "192.168.0.0/16"))
    assert matches_environment(condition, EnvironmentContext(ip_address="192.168.4.4"))[0] is True
    assert matches_environment(condition, EnvironmentContext(ip_address="10.0.0.1"))[0] is False


def test_malformed_deny_entry_never_blocks():
    condition = EnvironmentCondition(ip_deny_list=("bogus",))
    assert matches_environment(condition, EnvironmentContext(ip_address="10.0.0.1")) == (True, None)
    mixed = EnvironmentCondition(ip_deny_list=("bogus", "10.0.0.0/8"))
    assert matches_environment(mixed, EnvironmentContext(ip_address="10.0.0.1"))[0] is False
    assert matches_environment(mixed, EnvironmentContext(ip_address="172.16.0.1"))[0] is True


def test_missing_or_malformed_context_ip_fails_closed():
    condition = EnvironmentCondition(ip_deny_list=("10.0.0.0/8",))
    assert matches_environment(condition, EnvironmentContext())[0] is False
    assert matches_environment(condition, EnvironmentContext(ip_address="999.1.1.1"))[0] is False
    assert matches_environment(condition, EnvironmentContext(ip_address="192.168.1.1"))[0] is True


def test_create_environment_context():
    sunday = create_environment_context(datetime(2024, 1, 7, 8, 5), ip_address="10.0.0.1")
    assert sunday.current_day_of_week == 0
    assert sunday.current_time == "08:05"
    assert sunday.ip_address == "10.0.0.1"
    assert create_environment_context(datetime(2024, 1, 8, 23, 59)).current_day_of_week == 1
