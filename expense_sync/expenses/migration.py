"""
Account migration: copy every expense of one user into another.

Copies are new documents. The stored amount, category, description and
date are carried over exactly as they are, without normalization, so a
custom category or an oddly typed amount survives the move. createdAt
and updatedAt are stamped fresh, so copies sort as the newest entries of
the target account. Running the copy twice produces two sets of
duplicates.
"""

from collections.abc import Mapping
from typing import Optional

import structlog

from expense_sync.activity import ActivityLogger
from expense_sync.errors import InvalidArgumentError
from expense_sync.expenses.repository import expenses_path
from expense_sync.models.activity import ActivityEventBuilder
from expense_sync.models.expense import utc_now
from expense_sync.services.storage.interface import DocumentStore


logger = structlog.get_logger(__name__)

# Stored fields carried over verbatim
COPIED_FIELDS = ("amount", "category", "description", "date")


async def copy_expenses_between_users(
    store: DocumentStore,
    source_user_id: str,
    target_user_id: str,
    activity_logger: Optional[ActivityLogger] = None,
) -> int:
    """
    Copy all of the source user's expenses to the target user.

    Every source document is copied, including ones the validator would
    normalize or that lack timestamps. Fields absent from a source
    document stay absent in its copy. All copies are written in one batch.

    Returns:
        Number of expenses written (0 when the source has none)

    Raises:
        InvalidArgumentError: If either user id is empty
        StorageError: If the read or the batch write fails
    """
    if not source_user_id or not target_user_id:
        raise InvalidArgumentError("Source and target user IDs are required")

    records = await store.list_documents(expenses_path(source_user_id))
    if not records:
        logger.info("expenses_copy_skipped", source_user_id=source_user_id, reason="empty")
        return 0

    now = utc_now()
    documents = []
    for record in records:
        fields = record.fields if isinstance(record.fields, Mapping) else {}
        document = {name: fields[name] for name in COPIED_FIELDS if name in fields}
        document["createdAt"] = now
        document["updatedAt"] = now
        documents.append(document)

    await store.batch_add(expenses_path(target_user_id), documents)

    logger.info(
        "expenses_copied",
        source_user_id=source_user_id,
        target_user_id=target_user_id,
        count=len(documents),
    )
    if activity_logger:
        await activity_logger.log(ActivityEventBuilder.expenses_copied(
            source_user_id=source_user_id,
            target_user_id=target_user_id,
            count=len(documents),
        ))
    return len(documents)
