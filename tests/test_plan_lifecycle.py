from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from core.plan_constants import LinkIntentType, LinkRequestStatus, PlanType
from services.plan_lifecycle import OPEN_ENDED, as_utc, compute_lifecycle, get_plan_grace_days, is_enterprise_managed_synced

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_open_ended_term_is_never_expired() -> None:
    assert compute_lifecycle(PlanType.PRO, None, NOW) == OPEN_ENDED
    assert compute_lifecycle(PlanType.FREE, None, NOW).is_expired is False


def test_pro_term_ended_ten_days_ago_is_expired() -> None:
    state = compute_lifecycle(PlanType.PRO, NOW - timedelta(days=10), NOW)

    assert state.is_expired is True
    assert state.is_in_grace is False
    assert state.grace_days == 7


def test_pro_term_ended_three_days_ago_is_in_grace() -> None:
    end_at = NOW - timedelta(days=3)
    state = compute_lifecycle(PlanType.PRO, end_at, NOW)

    assert state.is_in_grace is True
    assert state.is_expired is False
    assert state.grace_ends_at == end_at + timedelta(days=7)


def test_active_term_reports_grace_end_without_being_in_grace() -> None:
    end_at = NOW + timedelta(days=5)
    state = compute_lifecycle(PlanType.ENTERPRISE, end_at, NOW)

    assert state.is_in_grace is False
    assert state.is_expired is False
    assert state.grace_days == 14
    assert state.grace_ends_at == end_at + timedelta(days=14)


@pytest.mark.parametrize("plan_type", [PlanType.BASIC, PlanType.PRO, PlanType.BUSINESS, PlanType.ENTERPRISE])
def test_suppressed_grace_expires_immediately(plan_type: PlanType) -> None:
    end_at = NOW - timedelta(seconds=1)
    state = compute_lifecycle(plan_type, end_at, NOW, grace_suppressed=True)

    assert state.grace_days == 0
    assert state.grace_ends_at is None
    assert state.is_expired is True


def test_grace_window_is_closed_on_the_right() -> None:
    end_at = NOW - timedelta(days=30)
    grace_end = end_at + timedelta(days=7)
    samples = [
        end_at,
        end_at + timedelta(microseconds=1),
        end_at + timedelta(days=3),
        grace_end,
        grace_end + timedelta(microseconds=1),
        grace_end + timedelta(days=1),
    ]

    observed = [compute_lifecycle(PlanType.BASIC, end_at, moment) for moment in samples]

    assert [state.is_in_grace for state in observed] == [False, True, True, True, False, False]
    assert [state.is_expired for state in observed] == [False, False, False, False, True, True]


def test_naive_datetimes_are_read_as_utc() -> None:
    naive = datetime(2026, 1, 1, 0, 0)
    assert as_utc(naive) == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert compute_lifecycle(PlanType.PRO, naive, NOW).is_expired is True


def test_free_and_unknown_plans_have_no_grace() -> None:
    assert get_plan_grace_days(PlanType.FREE) == 0
    assert get_plan_grace_days("legacy-gold") == 0
    assert get_plan_grace_days("pro") == 7


def test_enterprise_created_organisation_suppresses_grace(db_session: Session, make_org, make_link_request) -> None:
    enterprise = make_org(plan_type=PlanType.ENTERPRISE)
    created = make_org(plan_type=PlanType.BUSINESS)
    linked = make_org(plan_type=PlanType.PRO)
    make_link_request(
        enterprise,
        created,
        intent_type=LinkIntentType.CREATE_UNDER_ENTERPRISE,
        status=LinkRequestStatus.PENDING_APPROVAL,
    )
    make_link_request(enterprise, linked, status=LinkRequestStatus.APPROVED)

    assert is_enterprise_managed_synced(db_session, created.id) is True
    assert is_enterprise_managed_synced(db_session, linked.id) is False
    assert is_enterprise_managed_synced(db_session, None) is False


def test_denied_create_under_request_does_not_suppress_grace(db_session: Session, make_org, make_link_request) -> None:
    enterprise = make_org(plan_type=PlanType.ENTERPRISE)
    created = make_org(plan_type=PlanType.BUSINESS)
    make_link_request(
        enterprise,
        created,
        intent_type=LinkIntentType.CREATE_UNDER_ENTERPRISE,
        status=LinkRequestStatus.DENIED,
    )

    assert is_enterprise_managed_synced(db_session, created.id) is False
