"""
Tests for the record validator.

Remote records are untrusted: every field is coerced on its own and a
record is only dropped when it cannot be an Expense at all.
"""

import math
from datetime import datetime, timezone

import pytest

from expense_sync.models.category import Category
from expense_sync.models.expense import Expense, ExpenseCategory
from expense_sync.services.storage import RawRecord
from expense_sync.validation import (
    is_expense_category,
    is_partial_expense_data,
    is_valid_expense,
    transform_activity_record,
    transform_category_entries,
    transform_expense_record,
    transform_expense_records,
)


WHEN = datetime(2024, 5, 17, 9, 30, tzinfo=timezone.utc)


class FakeTimestamp:
    """Store timestamp exposing a conversion method instead of being a datetime."""

    def __init__(self, value: datetime):
        self._value = value

    def to_datetime(self) -> datetime:
        return self._value


class TestTransformExpenseRecord:
    """Tests for transform_expense_record."""

    def test_well_formed_record(self):
        """A complete record maps field for field."""
        record = RawRecord(id="abc", fields={
            "amount": 42.5,
            "date": WHEN,
            "category": "housing",
            "description": "Rent",
            "tags": ["monthly"],
            "location": "Home",
            "createdAt": WHEN,
            "updatedAt": WHEN,
        })
        expense = transform_expense_record(record, "user-1")

        assert expense is not None
        assert expense.id == "abc"
        assert expense.user_id == "user-1"
        assert expense.amount == 42.5
        assert expense.category == ExpenseCategory.HOUSING
        assert expense.description == "Rent"
        assert expense.tags == ["monthly"]
        assert expense.location == "Home"
        assert expense.created_at == WHEN

    def test_unknown_category_becomes_other(self):
        """Category keys outside the fixed set normalize to 'other'."""
        record = RawRecord(id="x", fields={"amount": 5, "category": "pets"})
        expense = transform_expense_record(record, "user-1")
        assert expense.category == ExpenseCategory.OTHER

    @pytest.mark.parametrize("amount", ["12", None, True, float("nan"), float("inf"), [1]])
    def test_malformed_amount_becomes_zero(self, amount):
        """Non-numeric, boolean and non-finite amounts default to 0."""
        record = RawRecord(id="x", fields={"amount": amount})
        expense = transform_expense_record(record, "user-1")
        assert expense.amount == 0.0

    def test_integer_amount_is_kept(self):
        record = RawRecord(id="x", fields={"amount": 7})
        assert transform_expense_record(record, "user-1").amount == 7.0

    def test_oversized_integer_amount_keeps_the_record(self):
        """An int too large for a float defaults to 0 instead of dropping the record."""
        record = RawRecord(id="x", fields={"amount": 10**400, "category": "food"})
        expense = transform_expense_record(record, "user-1")
        assert expense is not None
        assert expense.amount == 0.0
        assert expense.category == ExpenseCategory.FOOD

    def test_one_bad_field_does_not_spoil_the_rest(self):
        """A malformed tags field defaults alone; other fields survive."""
        record = RawRecord(id="x", fields={
            "amount": 3.0,
            "category": "food",
            "tags": "not-a-list",
            "description": "Lunch",
        })
        expense = transform_expense_record(record, "user-1")
        assert expense.tags == []
        assert expense.amount == 3.0
        assert expense.description == "Lunch"
        assert expense.category == ExpenseCategory.FOOD

    def test_non_string_tags_are_filtered(self):
        record = RawRecord(id="x", fields={"tags": ["a", 1, None, "b"]})
        assert transform_expense_record(record, "user-1").tags == ["a", "b"]

    def test_timestamp_objects_are_converted(self):
        """Timestamps exposing to_datetime() are converted."""
        record = RawRecord(id="x", fields={"date": FakeTimestamp(WHEN)})
        assert transform_expense_record(record, "user-1").date == WHEN

    def test_naive_datetimes_are_treated_as_utc(self):
        naive = datetime(2024, 1, 2, 3, 4)
        record = RawRecord(id="x", fields={"createdAt": naive})
        created = transform_expense_record(record, "user-1").created_at
        assert created.tzinfo is not None
        assert created.replace(tzinfo=None) == naive

    def test_missing_timestamps_default_to_now(self):
        before = datetime.now(timezone.utc)
        expense = transform_expense_record(RawRecord(id="x", fields={}), "user-1")
        after = datetime.now(timezone.utc)
        assert before <= expense.date <= after
        assert before <= expense.created_at <= after
        assert before <= expense.updated_at <= after

    def test_stored_user_id_is_ignored(self):
        """Ownership comes from the caller, never from the record."""
        record = RawRecord(id="x", fields={"userId": "someone-else", "amount": 1})
        assert transform_expense_record(record, "user-1").user_id == "user-1"

    def test_missing_id_drops_record(self):
        assert transform_expense_record(RawRecord(id="", fields={"amount": 1}), "user-1") is None

    def test_missing_owner_drops_record(self):
        assert transform_expense_record(RawRecord(id="x", fields={"amount": 1}), "") is None

    def test_non_mapping_fields_drop_record(self):
        assert transform_expense_record(RawRecord(id="x", fields=["amount", 1]), "user-1") is None

    @pytest.mark.parametrize("fields", [
        {},
        {"amount": "abc", "category": 17, "date": "yesterday", "tags": {"a": 1}},
        {"amount": -1e308 * 10, "description": None, "location": 3},
    ])
    def test_result_is_always_structurally_valid(self, fields):
        """Any record with an id and an owner yields a valid expense."""
        expense = transform_expense_record(RawRecord(id="x", fields=fields), "user-1")
        assert expense is not None
        assert is_valid_expense(expense)
        assert math.isfinite(expense.amount)

    def test_mixed_amounts_keep_every_record(self):
        """Bad amounts default to 0 instead of dropping the record."""
        records = [
            RawRecord(id="a", fields={"amount": 12.50, "category": "food"}),
            RawRecord(id="b", fields={"amount": "bad", "category": "food"}),
            RawRecord(id="c", fields={"amount": None, "category": "other"}),
        ]
        expenses = transform_expense_records(records, "user-1")
        assert [e.amount for e in expenses] == [12.50, 0.0, 0.0]
        assert [e.category.value for e in expenses] == ["food", "food", "other"]

    def test_transform_records_drops_only_bad_ones(self):
        records = [
            RawRecord(id="a", fields={"amount": 1}),
            RawRecord(id="", fields={"amount": 2}),
            RawRecord(id="c", fields={"amount": 3}),
        ]
        expenses = transform_expense_records(records, "user-1")
        assert [e.id for e in expenses] == ["a", "c"]


class TestGuards:
    """Tests for the small type guards."""

    def test_is_expense_category(self):
        assert is_expense_category("food")
        assert not is_expense_category("Food")
        assert not is_expense_category(None)

    def test_is_valid_expense_rejects_other_objects(self):
        assert not is_valid_expense({"id": "x"})
        assert not is_valid_expense(None)

    def test_is_valid_expense_accepts_model(self):
        expense = Expense(
            id="x", user_id="u", amount=1.0, date=WHEN,
            category=ExpenseCategory.FOOD, created_at=WHEN, updated_at=WHEN,
        )
        assert is_valid_expense(expense)

    @pytest.mark.parametrize("partial", [
        {},
        {"amount": 3},
        {"description": "Coffee", "tags": ["x"]},
        {"category": "food", "date": WHEN},
    ])
    def test_partial_data_accepted(self, partial):
        assert is_partial_expense_data(partial)

    @pytest.mark.parametrize("partial", [
        None,
        "amount=3",
        {"amount": "3"},
        {"amount": True},
        {"category": "pets"},
        {"date": "2024-01-01"},
        {"tags": "x"},
        {"location": 5},
    ])
    def test_partial_data_rejected(self, partial):
        assert not is_partial_expense_data(partial)


class TestTransformCategoryEntries:
    """Tests for transform_category_entries."""

    def test_not_a_sequence(self):
        assert transform_category_entries(None) is None
        assert transform_category_entries({"value": "x"}) is None

    def test_empty_sequence_stays_empty(self):
        assert transform_category_entries([]) == []

    def test_malformed_entries_are_skipped(self):
        entries = [
            {"value": "food", "label": "Food"},
            "garbage",
            {"value": "", "label": "Blank"},
            {"value": 3, "label": "Three"},
            {"value": "pets", "label": "Pets"},
        ]
        assert transform_category_entries(entries) == [
            Category(value="food", label="Food"),
            Category(value="pets", label="Pets"),
        ]

    def test_first_duplicate_wins(self):
        entries = [
            {"value": "food", "label": "Food"},
            {"value": "food", "label": "Groceries"},
        ]
        assert transform_category_entries(entries) == [Category(value="food", label="Food")]


class TestTransformActivityRecord:

    def test_round_trip_of_stored_event(self):
        record = RawRecord(id="log1", fields={
            "eventId": "7d8c3a6e-8a43-4c61-9d8c-3e2b0b4f9a10",
            "timestamp": WHEN,
            "action": "expense_added",
            "level": "INFO",
            "category": "USER_ACTION",
            "userId": "user-1",
            "message": "Expense added",
            "details": {"amount": 3},
        })
        event = transform_activity_record(record)
        assert event.action.value == "expense_added"
        assert event.user_id == "user-1"
        assert event.timestamp == WHEN

    def test_unknown_action_is_skipped(self):
        record = RawRecord(id="log1", fields={"action": "teleported", "message": "?"})
        assert transform_activity_record(record) is None
