"""
Tests for the Firestore backend that need no network.

Only error translation and cursor checks are covered here; queries
against a live project are exercised manually.
"""

import pytest
from google.api_core import exceptions as google_exceptions

from expense_sync.expenses import expenses_path
from expense_sync.services.storage import NotFoundError, PageCursor, QuerySpec, StorageError
from expense_sync.services.storage.firestore import (
    FirestoreDocumentStore,
    translate_errors,
)


PATH = expenses_path("user-1")


class TestTranslateErrors:

    @pytest.mark.parametrize("exc_type,code", [
        (google_exceptions.PermissionDenied, "permission-denied"),
        (google_exceptions.ServiceUnavailable, "unavailable"),
        (google_exceptions.DeadlineExceeded, "deadline-exceeded"),
        (google_exceptions.InvalidArgument, "invalid-argument"),
    ])
    def test_google_errors_map_to_codes(self, exc_type, code):
        with pytest.raises(StorageError) as info:
            with translate_errors("query", PATH):
                raise exc_type("backend said no")
        assert info.value.code == code

    def test_not_found_becomes_not_found_error(self):
        with pytest.raises(NotFoundError):
            with translate_errors("update_document", PATH):
                raise google_exceptions.NotFound("gone")

    def test_unmapped_google_error_has_no_code(self):
        with pytest.raises(StorageError) as info:
            with translate_errors("query", PATH):
                raise google_exceptions.Conflict("conflict")
        assert info.value.code is None

    def test_other_exceptions_pass_through(self):
        with pytest.raises(KeyError):
            with translate_errors("query", PATH):
                raise KeyError("x")


class TestCursorCheck:

    @pytest.mark.asyncio
    async def test_foreign_cursor_rejected_before_any_call(self):
        # The client is never touched, so no credentials are needed
        store = FirestoreDocumentStore(client=object())
        cursor = PageCursor(
            token=None,
            path=expenses_path("user-2"),
            order_field="createdAt",
            direction=QuerySpec().direction,
        )
        with pytest.raises(StorageError) as info:
            await store.query(PATH, QuerySpec(limit=5), start_after=cursor)
        assert info.value.code == "invalid-argument"
