"""Convert raw database pages into ``Task`` records.

The remote API returns a page as a dict of typed properties keyed by
property *name*; each property also carries a stable ``id``.  A
``FieldMapping`` (from config) names, for each app field, the property
id to read.  ``page_to_task`` walks the mapping and reads each property
according to its declared ``type``.
"""

from __future__ import annotations

import logging
from typing import Any

from ..config_schema import FieldMapping
from .models import (
    CHECKED_STATUS,
    UNCHECKED_STATUS,
    StatusGroup,
    Task,
    TaskStatus,
)

logger = logging.getLogger(__name__)

# Maps status option names to internal groups.
STATUS_GROUP_MAP: dict[str, StatusGroup] = {
    "to-do": StatusGroup.TODO,
    "to do": StatusGroup.TODO,
    "not started": StatusGroup.TODO,
    "in progress": StatusGroup.IN_PROGRESS,
    "done": StatusGroup.COMPLETE,
    "complete": StatusGroup.COMPLETE,
    "completed": StatusGroup.COMPLETE,
}


def find_property(
    properties: dict[str, Any], property_id: str | None
) -> dict[str, Any] | None:
    """Return the property whose ``id`` (or name) is *property_id*."""
    if not property_id:
        return None
    for name, prop in properties.items():
        if prop.get("id") == property_id or name == property_id:
            return prop
    return None


def _plain_text(rich_text: list[dict] | None) -> str:
    return "".join(part.get("plain_text", "") for part in rich_text or [])


def read_property(prop: dict[str, Any] | None) -> str | None:
    """Read a scalar display value from a typed property.

    Relations become comma-joined page ids; multi-selects become
    comma-joined option names.
    """
    if prop is None:
        return None
    match prop.get("type"):
        case "title":
            return _plain_text(prop.get("title"))
        case "rich_text":
            return _plain_text(prop.get("rich_text")) or None
        case "select":
            option = prop.get("select")
            return option.get("name") if option else None
        case "multi_select":
            names = [o.get("name", "") for o in prop.get("multi_select") or []]
            return ",".join(names) or None
        case "relation":
            ids = [r.get("id", "") for r in prop.get("relation") or []]
            return ",".join(ids) or None
        case "date":
            value = prop.get("date")
            return value.get("start") if value else None
        case "url":
            return prop.get("url") or None
        case "created_time":
            return prop.get("created_time")
        case other:
            logger.debug("Unsupported property type %r", other)
            return None


def read_status(prop: dict[str, Any] | None) -> TaskStatus:
    """Read a status or checkbox property as a ``TaskStatus``."""
    if prop is None:
        return UNCHECKED_STATUS
    if prop.get("type") == "checkbox":
        return CHECKED_STATUS if prop.get("checkbox") else UNCHECKED_STATUS

    option = prop.get("status") or prop.get("select")
    if not option:
        return TaskStatus(id="", name="No status")
    name = option.get("name", "")
    return TaskStatus(
        id=option.get("id", ""),
        name=name,
        color=option.get("color", "default"),
        group=STATUS_GROUP_MAP.get(name.lower(), StatusGroup.TODO),
    )


def page_to_task(page: dict[str, Any], mapping: FieldMapping) -> Task:
    """Build a ``Task`` from a raw page using *mapping*.

    Args:
        page: Page object as returned by the remote API.
        mapping: Property ids per app field.

    Returns:
        The parsed task.  Unmapped or missing properties are ``None``.
    """
    properties = page.get("properties", {})

    def field(property_id: str | None) -> str | None:
        return read_property(find_property(properties, property_id))

    return Task(
        id=page["id"],
        title=field(mapping.task_name) or "",
        status=read_status(find_property(properties, mapping.status)),
        task_type=field(mapping.task_type),
        project=field(mapping.project),
        do_date=field(mapping.do_date),
        due_date=field(mapping.due_date),
        url=field(mapping.url),
        creation_date=field(mapping.creation_date) or page.get("created_time"),
        completed_date=field(mapping.completed_date),
        page_url=page.get("url", ""),
        last_edited_time=page.get("last_edited_time"),
    )
