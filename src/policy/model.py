"""Policy model – typed ABAC policies, evaluation contexts and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from src.policy.errors import PolicyValidationError


class _AnyMarker:
    """Wildcard marker, serialised as ``"*"``."""

    _instance: _AnyMarker | None = None

    def __new__(cls) -> _AnyMarker:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ANY"

    def __str__(self) -> str:
        return "*"

    def __reduce__(self):
        return (_AnyMarker, ())


ANY = _AnyMarker()


class Effect(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class ResourceType(str, Enum):
    ORGANIZATION = "organization"
    COMPANY = "company"
    ACCOUNT = "account"
    JOURNAL_ENTRY = "journal_entry"
    FISCAL_PERIOD = "fiscal_period"
    CONSOLIDATION_GROUP = "consolidation_group"
    REPORT = "report"
    EXCHANGE_RATE = "exchange_rate"
    AUDIT_LOG = "audit_log"


class AccountType(str, Enum):
    ASSET = "Asset"
    LIABILITY = "Liability"
    EQUITY = "Equity"
    REVENUE = "Revenue"
    EXPENSE = "Expense"


class JournalEntryType(str, Enum):
    STANDARD = "Standard"
    ADJUSTING = "Adjusting"
    CLOSING = "Closing"
    OPENING = "Opening"
    REVERSING = "Reversing"
    RECURRING = "Recurring"
    INTERCOMPANY = "Intercompany"
    REVALUATION = "Revaluation"
    ELIMINATION = "Elimination"
    SYSTEM = "System"


class PeriodStatus(str, Enum):
    FUTURE = "Future"
    OPEN = "Open"
    SOFT_CLOSE = "SoftClose"
    CLOSED = "Closed"
    LOCKED = "Locked"


BASE_ROLES: tuple[str, ...] = ("owner", "admin", "member", "viewer")

FUNCTIONAL_ROLES: tuple[str, ...] = (
    "controller",
    "finance_manager",
    "accountant",
    "period_admin",
    "consolidation_manager",
)

# ---------- action catalog ----------

ACTIONS: tuple[str, ...] = (
    "organization:read",
    "organization:manage_settings",
    "organization:manage_members",
    "organization:transfer_ownership",
    "organization:delete",
    "company:create",
    "company:read",
    "company:update",
    "company:delete",
    "account:create",
    "account:read",
    "account:update",
    "account:deactivate",
    "journal_entry:create",
    "journal_entry:read",
    "journal_entry:update",
    "journal_entry:post",
    "journal_entry:reverse",
    "fiscal_period:read",
    "fiscal_period:manage",
    "consolidation_group:create",
    "consolidation_group:read",
    "consolidation_group:update",
    "consolidation_group:delete",
    "consolidation_group:run",
    "report:read",
    "report:export",
    "exchange_rate:read",
    "exchange_rate:manage",
    "audit_log:read",
)


def resource_type_for_action(action: str) -> ResourceType | None:
    """Return the resource type named by an action's prefix, if known."""
    prefix, _, _ = action.partition(":")
    try:
        return ResourceType(prefix)
    except ValueError:
        return None


# ---------- priorities ----------

DEFAULT_POLICY_PRIORITY = 500
MAX_CUSTOM_PRIORITY = 899
MIN_SYSTEM_PRIORITY = 900
MAX_PRIORITY = 1000

SYSTEM_POLICY_PRIORITIES: dict[str, int] = {
    "PLATFORM_ADMIN_OVERRIDE": 1000,
    "LOCKED_PERIOD_PROTECTION": 999,
    "CLOSED_PERIOD_PROTECTION": 998,
    "FUTURE_PERIOD_PROTECTION": 997,
    "SOFTCLOSE_CONTROLLER_ACCESS": 996,
    "SOFTCLOSE_DEFAULT_DENY": 995,
    "OWNER_FULL_ACCESS": 910,
    "VIEWER_READ_ONLY": 900,
}


# ---------- conditions ----------


@dataclass(frozen=True)
class SubjectCondition:
    """Who a policy applies to. ``None`` or an empty tuple leaves a dimension unconstrained."""

    roles: tuple[str | _AnyMarker, ...] | None = None
    functional_roles: tuple[str, ...] | None = None
    user_ids: tuple[str, ...] | None = None
    is_platform_admin: bool | None = None


@dataclass(frozen=True)
class AccountNumberCondition:
    range: tuple[int, int] | None = None
    in_: tuple[int, ...] | None = None


@dataclass(frozen=True)
class ResourceAttributes:
    account_number: AccountNumberCondition | None = None
    account_type: tuple[AccountType, ...] | None = None
    is_intercompany: bool | None = None
    entry_type: tuple[JournalEntryType, ...] | None = None
    is_own_entry: bool | None = None
    period_status: tuple[PeriodStatus, ...] | None = None
    is_adjustment_period: bool | None = None


@dataclass(frozen=True)
class ResourceCondition:
    type: ResourceType | _AnyMarker = ANY
    attributes: ResourceAttributes | None = None


@dataclass(frozen=True)
class ActionCondition:
    actions: tuple[str | _AnyMarker, ...]

    def __post_init__(self) -> None:
        if not self.actions:
            raise PolicyValidationError("Action condition requires at least one action")


@dataclass(frozen=True)
class TimeRange:
    start: str
    end: str


@dataclass(frozen=True)
class EnvironmentCondition:
    time_of_day: TimeRange | None = None
    days_of_week: tuple[int, ...] | None = None
    ip_allow_list: tuple[str, ...] | None = None
    ip_deny_list: tuple[str, ...] | None = None


@dataclass(frozen=True)
class Policy:
    id: str
    organization_id: str
    name: str
    subject: SubjectCondition
    resource: ResourceCondition
    action: ActionCondition
    effect: Effect
    priority: int = DEFAULT_POLICY_PRIORITY
    environment: EnvironmentCondition | None = None
    description: str | None = None
    is_system_policy: bool = False
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None

    def can_modify(self) -> bool:
        return not self.is_system_policy

    def can_delete(self) -> bool:
        return not self.is_system_policy

    def is_allow(self) -> bool:
        return self.effect is Effect.ALLOW

    def is_deny(self) -> bool:
        return self.effect is Effect.DENY


# ---------- evaluation context ----------


@dataclass(frozen=True)
class SubjectContext:
    user_id: str
    role: str
    functional_roles: frozenset[str] = frozenset()
    is_platform_admin: bool = False


@dataclass(frozen=True)
class AccountResource:
    id: str | None = None
    account_number: int | None = None
    account_type: AccountType | None = None
    is_intercompany: bool | None = None

    @property
    def type(self) -> ResourceType:
        return ResourceType.ACCOUNT


@dataclass(frozen=True)
class JournalEntryResource:
    id: str | None = None
    entry_type: JournalEntryType | None = None
    is_own_entry: bool | None = None
    period_status: PeriodStatus | None = None

    @property
    def type(self) -> ResourceType:
        return ResourceType.JOURNAL_ENTRY


@dataclass(frozen=True)
class FiscalPeriodResource:
    id: str | None = None
    period_status: PeriodStatus | None = None
    is_adjustment_period: bool | None = None

    @property
    def type(self) -> ResourceType:
        return ResourceType.FISCAL_PERIOD


@dataclass(frozen=True)
class EntityResource:
    """Resource without attribute dimensions (organization, company, report, ...)."""

    type: ResourceType
    id: str | None = None


ResourceContext = AccountResource | JournalEntryResource | FiscalPeriodResource | EntityResource


@dataclass(frozen=True)
class EnvironmentContext:
    current_time: str | None = None
    current_day_of_week: int | None = None
    ip_address: str | None = None


def create_environment_context(now: datetime | None = None, ip_address: str | None = None) -> EnvironmentContext:
    """Build an environment context from a timestamp (local time when omitted)."""
    now = now or datetime.now()
    # isoweekday(): Monday=1 .. Sunday=7, we want Sunday=0
    return EnvironmentContext(
        current_time=now.strftime("%H:%M"),
        current_day_of_week=now.isoweekday() % 7,
        ip_address=ip_address,
    )


@dataclass(frozen=True)
class EvaluationContext:
    subject: SubjectContext
    resource: ResourceContext
    action: str
    environment: EnvironmentContext | None = None


# ---------- results ----------


@dataclass(frozen=True)
class MatchResult:
    policy: Policy
    matched: bool
    mismatch_reason: str | None = None


@dataclass(frozen=True)
class Decision:
    decision: Effect
    default_deny: bool
    denied_by_policy: bool
    matched_policies: tuple[Policy, ...] = field(default_factory=tuple)
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.decision is Effect.ALLOW
