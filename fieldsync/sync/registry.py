"""
fieldsync/sync/registry.py - Project Registry.

The registry is the only writer of project metadata. Supplied metadata
fields replace the stored ones wholesale (no deep merge); omitted fields
keep their stored value.
"""

import logging
from datetime import datetime
from typing import Optional

from fieldsync.errors import ValidationError
from fieldsync.models import Project, ProjectMetadata, utc_now
from fieldsync.storage.base import RecordStore

logger = logging.getLogger(__name__)


def ensure_project(
    store: RecordStore,
    name: str,
    metadata: Optional[ProjectMetadata] = None,
    timestamp: Optional[datetime] = None,
) -> Project:
    """
    Return the project called `name`, creating it on first use.

    Args:
        store:     Record Store. Runs inside store.transaction().
        name:      Project name (or layer key). Must be non-blank.
        metadata:  Optional partial metadata. None, or a metadata object with
                   every field omitted, makes this a pure read for an
                   existing project.
        timestamp: created_at / updated_at stamp (default: now).

    Raises:
        ValidationError: If name is blank.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("A project name or layer key is required.")
    timestamp = timestamp or utc_now()
    supplied = metadata.supplied_fields() if metadata is not None else {}

    with store.transaction():
        project = store.find_project_by_name(name)
        if project is None:
            project = store.create_project(
                name=name,
                color_assignments=supplied.get("color_assignments", {}),
                target_shares=supplied.get("target_shares", {}),
                session_info=supplied.get("session_info"),
                timestamp=timestamp,
            )
            logger.info("Created project '%s'.", name)
            return project

        if not supplied:
            return project

        project = store.update_project_metadata(project.id, supplied, timestamp)
        logger.info(
            "Replaced metadata of project '%s': %s.", name, ", ".join(sorted(supplied))
        )
        return project
