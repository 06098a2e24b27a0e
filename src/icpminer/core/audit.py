"""
Audit log for mining workflows.

Append-only, fire-and-forget: an audit write that fails is logged and
dropped, it never changes the outcome of the run that emitted it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import orjson

from icpminer.core.config.models import AuditStatus
from icpminer.persistence.repo import AuditRepository

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


logger = logging.getLogger(__name__)

MINING_WORKFLOW = "idealClientProfileMiningWorkflow"


def _sanitize(payload: dict[str, Any] | None) -> dict[str, Any] | None:
    """Coerce a payload into plain JSON types (enums, datetimes, dataclasses)."""
    if payload is None:
        return None
    return orjson.loads(orjson.dumps(payload, default=str))


class AuditLog:
    """Emits workflow execution events to the audit_events table."""

    def __init__(self, session: Session | None = None, *, enabled: bool = True):
        self.session = session
        self.enabled = enabled and session is not None

    def emit(
        self,
        workflow_id: str,
        status: AuditStatus | str,
        *,
        input: dict[str, Any] | None = None,
        output: dict[str, Any] | None = None,
        workflow_type: str = MINING_WORKFLOW,
    ) -> None:
        """Record one event. Never raises."""
        status_value = AuditStatus(status).value
        logger.debug("audit %s %s %s", workflow_id, status_value, output or "")

        if not self.enabled or self.session is None:
            return

        try:
            AuditRepository(self.session).add(
                workflow_id=workflow_id,
                workflow_type=workflow_type,
                status=status_value,
                input=_sanitize(input),
                output=_sanitize(output),
            )
        except Exception as e:
            logger.warning("Audit write failed for %s (%s): %s", workflow_id, status_value, e)
            self.session.rollback()

    def started(self, workflow_id: str, input: dict[str, Any] | None = None) -> None:
        self.emit(workflow_id, AuditStatus.STARTED, input=input)

    def info(self, workflow_id: str, output: dict[str, Any], input: dict[str, Any] | None = None) -> None:
        self.emit(workflow_id, AuditStatus.INFO, input=input, output=output)

    def completed(self, workflow_id: str, output: dict[str, Any], input: dict[str, Any] | None = None) -> None:
        self.emit(workflow_id, AuditStatus.COMPLETED, input=input, output=output)

    def failed(self, workflow_id: str, output: dict[str, Any], input: dict[str, Any] | None = None) -> None:
        self.emit(workflow_id, AuditStatus.FAILED, input=input, output=output)


class NullAuditLog(AuditLog):
    """Audit log that records nothing."""

    def __init__(self) -> None:
        super().__init__(None, enabled=False)
