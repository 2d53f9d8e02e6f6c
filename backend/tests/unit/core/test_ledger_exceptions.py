from __future__ import annotations

import pytest

from coachledger.core.exceptions import (
    AlreadyUsedException,
    BusinessRuleException,
    ConcurrentModificationException,
    ConflictException,
    DomainException,
    InsufficientBalanceException,
    InsufficientNoticeException,
    InvalidBookingTransitionException,
    InvalidSlotException,
    InvariantViolationException,
    NotFoundException,
    PackageExpiredException,
    ServiceException,
    SubscriptionNotMeteredException,
    ValidationException,
)


def test_insufficient_balance_carries_source_details() -> None:
    exc = InsufficientBalanceException(
        source="package", source_id="pkg1", requested=3, available=1
    )
    assert isinstance(exc, BusinessRuleException)
    assert exc.code == "INSUFFICIENT_BALANCE"
    assert exc.details == {
        "source": "package",
        "source_id": "pkg1",
        "requested": 3,
        "available": 1,
    }
    assert "requested 3, available 1" in exc.message

    http_exc = exc.to_http_exception()
    assert http_exc.status_code == 422
    assert http_exc.detail["code"] == "INSUFFICIENT_BALANCE"


def test_insufficient_balance_without_known_available() -> None:
    exc = InsufficientBalanceException(source="subscription", source_id="s1", requested=1)
    assert exc.details["available"] is None
    assert exc.message == "Not enough sessions remaining on subscription s1"


def test_already_used_is_conflict() -> None:
    exc = AlreadyUsedException("c1", "k1", "2026-03-01")
    assert isinstance(exc, ConflictException)
    assert exc.code == "CHECKIN_ALREADY_USED"
    assert exc.details["month"] == "2026-03-01"
    assert exc.to_http_exception().status_code == 409


@pytest.mark.parametrize(
    ("exc", "status_code"),
    [
        (ValidationException("bad"), 400),
        (InvalidSlotException("past"), 400),
        (NotFoundException("missing"), 404),
        (ConcurrentModificationException("SessionPackage", "p1"), 409),
        (PackageExpiredException("p1", "2026-01-01T00:00:00+00:00"), 422),
        (SubscriptionNotMeteredException("s1"), 422),
        (InvalidBookingTransitionException("b1", "cancelled", "completed"), 422),
        (InsufficientNoticeException(12, 3.5), 422),
        (InvariantViolationException("broken"), 500),
        (ServiceException("db down"), 500),
    ],
)
def test_http_status_mapping(exc: DomainException, status_code: int) -> None:
    assert exc.to_http_exception().status_code == status_code


def test_default_code_is_class_name() -> None:
    exc = NotFoundException("Booking not found")
    assert exc.code == "NotFoundException"
    assert exc.details == {}


def test_transition_exception_message_names_statuses() -> None:
    exc = InvalidBookingTransitionException("b1", "no_show", "cancelled")
    assert "cancelled" in exc.message
    assert "no_show" in exc.message
    assert exc.details["booking_id"] == "b1"
