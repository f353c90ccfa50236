"""Remote apply layer: turn queued mutations into remote writes.

``RemoteApplier`` is the seam the sync manager depends on.
``ClientApplier`` implements it on top of ``NotionClient`` and a
``FieldMapping``; tests substitute an in-memory fake.
"""

from __future__ import annotations

import logging
from typing import Protocol

from ..config_schema import FieldMapping
from ..core.async_utils import run_sync
from ..core.client import (
    NotionClient,
    checkbox_property,
    date_property,
    relation_property,
    select_property,
    status_property,
    title_property,
    url_property,
)
from ..errors import FieldNotConfiguredError, RemoteNotFoundError
from .mapper import page_to_task
from .models import MutationKind, PendingMutation, Task

logger = logging.getLogger(__name__)


class RemoteApplier(Protocol):
    """Protocol for reading records and applying mutations remotely."""

    async def fetch_task(self, task_id: str) -> Task | None:
        """Return the server's current record, or ``None`` if deleted.

        Raises:
            RemoteError: On any failure other than "not found".
        """
        ...  # pragma: no cover

    async def apply(self, mutation: PendingMutation) -> None:
        """Write the mutation's change to the server.

        Raises:
            RemoteError: If the write did not succeed.
        """
        ...  # pragma: no cover

    async def list_tasks(self) -> list[Task]:
        """Return every live task of the database."""
        ...  # pragma: no cover


class ClientApplier:
    """``RemoteApplier`` backed by the HTTP client.

    Args:
        client: Configured ``NotionClient``.
        mapping: Property ids of the task database.
        database_id: Database queried by ``list_tasks``.
    """

    def __init__(
        self,
        client: NotionClient,
        mapping: FieldMapping,
        database_id: str | None = None,
    ) -> None:
        self.client = client
        self.mapping = mapping
        self.database_id = database_id

    async def fetch_task(self, task_id: str) -> Task | None:
        try:
            page = await run_sync(self.client.retrieve_page, task_id)
        except RemoteNotFoundError:
            logger.info("Task %s no longer exists on the server", task_id)
            return None
        if page.get("archived") or page.get("in_trash"):
            logger.info("Task %s was archived on the server", task_id)
            return None
        return page_to_task(page, self.mapping)

    async def list_tasks(self) -> list[Task]:
        if not self.database_id:
            raise FieldNotConfiguredError("database_id")
        pages = await run_sync(self.client.query_database, self.database_id)
        tasks = [
            page_to_task(page, self.mapping)
            for page in pages
            if not (page.get("archived") or page.get("in_trash"))
        ]
        logger.info("Fetched %d tasks from database %s", len(tasks), self.database_id)
        return tasks

    async def apply(self, mutation: PendingMutation) -> None:
        property_id, value = self.build_property(mutation)
        await run_sync(
            self.client.update_page_properties,
            mutation.task_id,
            {property_id: value},
        )
        logger.debug(
            "Applied %s to task %s", mutation.kind.value, mutation.task_id
        )

    def build_property(self, mutation: PendingMutation) -> tuple[str, dict]:
        """Return ``(property_id, property_value)`` for a mutation.

        Raises:
            FieldNotConfiguredError: If the target field is unmapped.
        """
        payload = mutation.payload
        match mutation.kind:
            case MutationKind.UPDATE_STATUS:
                prop = self._require("status")
                if self.mapping.status_is_checkbox:
                    complete = payload.new_status.group == "complete"
                    return prop, checkbox_property(complete)
                return prop, status_property(payload.new_status.name)
            case MutationKind.UPDATE_CHECKBOX:
                return self._require("status"), checkbox_property(payload.checked)
            case MutationKind.UPDATE_TITLE:
                return self._require("task_name"), title_property(payload.new_title)
            case MutationKind.UPDATE_DO_DATE:
                return self._require("do_date"), date_property(payload.date)
            case MutationKind.UPDATE_DUE_DATE:
                return self._require("due_date"), date_property(payload.date)
            case MutationKind.UPDATE_COMPLETED_DATE:
                return (
                    self._require("completed_date"),
                    date_property(payload.date),
                )
            case MutationKind.UPDATE_TASK_TYPE | MutationKind.UPDATE_PROJECT:
                field_name = (
                    "task_type"
                    if mutation.kind == MutationKind.UPDATE_TASK_TYPE
                    else "project"
                )
                prop = self._require(field_name)
                if payload.is_relation:
                    return prop, relation_property(payload.page_ids)
                return prop, select_property(payload.option_name)
            case MutationKind.UPDATE_URL:
                return self._require("url"), url_property(payload.url)

    def _require(self, field_name: str) -> str:
        property_id = getattr(self.mapping, field_name)
        if not property_id:
            raise FieldNotConfiguredError(field_name)
        return property_id
