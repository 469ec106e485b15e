"""
Tests for Expense Sync models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests against the in-memory store
3. No real Firestore calls in tests
"""

import pytest
from datetime import datetime, timezone

from pydantic import ValidationError

from expense_sync.models.expense import (
    Expense,
    ExpenseCategory,
    ExpenseCreate,
    ExpenseUpdate,
)
from expense_sync.models.activity import (
    ActivityAction,
    ActivityEvent,
    ActivityEventBuilder,
    ActivityLevel,
)


WHEN = datetime(2024, 2, 10, 8, 0, tzinfo=timezone.utc)


class TestExpenseModels:
    """Tests for expense-related Pydantic models."""

    def test_expense_is_frozen(self):
        """Test that validated expenses cannot be mutated in place."""
        expense = Expense(
            id="e1",
            user_id="u1",
            amount=5.0,
            date=WHEN,
            category=ExpenseCategory.FOOD,
            created_at=WHEN,
            updated_at=WHEN,
        )
        with pytest.raises(ValidationError):
            expense.amount = 6.0

    def test_expense_overlay_via_copy(self):
        """Test that model_copy overlays only the given fields."""
        expense = Expense(
            id="e1",
            user_id="u1",
            amount=5.0,
            date=WHEN,
            category=ExpenseCategory.FOOD,
            description="Lunch",
            created_at=WHEN,
            updated_at=WHEN,
        )
        updated = expense.model_copy(update={"amount": 8.0})
        assert updated.amount == 8.0
        assert updated.description == "Lunch"
        assert expense.amount == 5.0

    def test_expense_create_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        for amount in (0, -1):
            with pytest.raises(ValidationError):
                ExpenseCreate(amount=amount, date=WHEN, category="food")

    def test_expense_create_rejects_infinite_amount(self):
        with pytest.raises(ValidationError):
            ExpenseCreate(amount=float("inf"), date=WHEN, category="food")

    def test_expense_create_strips_whitespace(self):
        payload = ExpenseCreate(amount=1, date=WHEN, category="food", description="  Tea  ")
        assert payload.description == "Tea"

    def test_expense_create_rejects_unknown_category(self):
        with pytest.raises(ValidationError):
            ExpenseCreate(amount=1, date=WHEN, category="pets")

    def test_expense_update_changes(self):
        """Test that only set fields count as changes."""
        update = ExpenseUpdate(amount=3.0, location="Market")
        assert update.changes() == {"amount": 3.0, "location": "Market"}
        assert not update.is_empty
        assert ExpenseUpdate().is_empty

    def test_naive_dates_are_read_as_utc(self):
        naive = datetime(2024, 3, 1, 12, 0)
        assert ExpenseUpdate(date=naive).date == naive.replace(tzinfo=timezone.utc)
        created = ExpenseCreate(amount=1.0, date=naive, category="food")
        assert created.date.tzinfo is not None

    def test_aware_dates_are_kept(self):
        aware = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert ExpenseUpdate(date=aware).date == aware


class TestActivityModels:
    """Tests for activity log models."""

    def test_activity_event_creation(self):
        event = ActivityEvent(
            action=ActivityAction.EXPENSE_DELETED,
            user_id="u1",
            message="Expense deleted",
        )
        assert event.event_id is not None
        assert event.level == ActivityLevel.INFO

    def test_activity_event_to_log_dict(self):
        event = ActivityEventBuilder.expense_added("u1", "e1", 12.5, "food")
        log_dict = event.to_log_dict()
        assert log_dict["action"] == "expense_added"
        assert log_dict["details"]["amount"] == 12.5
        assert "12.50" in log_dict["message"]

    def test_activity_event_to_document(self):
        event = ActivityEventBuilder.categories_saved("u1", ["food", "pets"])
        doc = event.to_document()
        assert doc["userId"] == "u1"
        assert doc["eventId"] == str(event.event_id)
        assert doc["details"]["values"] == ["food", "pets"]

    def test_sync_failed_is_an_error(self):
        event = ActivityEventBuilder.sync_failed("u1", "load_first_page", "boom", kind="remote_failure")
        assert event.level == ActivityLevel.ERROR
        assert event.message == "load_first_page failed: boom"

    def test_sync_failed_message_is_truncated(self):
        event = ActivityEventBuilder.sync_failed("u1", "add_expense", "x" * 1000)
        assert len(event.message) == 500
