"""Workflow execution state store adapters.

The execution engine owns workflow instances; this module only reads them.
A store returns None for unknown ids and lets I/O failures propagate.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from loguru import logger
from redis import asyncio as aioredis

from ..config import Config
from ..redis_client import get_redis_client
from .models import ActivityExecutionEntry


def to_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, datetime):
        text = str(value)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    return to_utc(value)


def _parse_incident_timestamp(incident: dict[str, Any]) -> datetime:
    timestamp = parse_datetime(incident.get("timestamp"))
    if timestamp is None:
        raise ValueError(
            f"Incident for activity '{incident.get('activity_id')}' has no timestamp"
        )
    return timestamp


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class IncidentRecord:
    """Incident as recorded by the execution engine (exception is raw state)."""

    activity_id: str
    activity_type: str
    message: str
    timestamp: datetime
    exception: Any = None


@dataclass
class WorkflowInstance:
    """Workflow instance state as exposed by the execution store."""

    id: str
    definition_id: str
    version: int
    status: str
    tenant_id: Optional[str] = None
    sub_status: Optional[str] = None
    definition_version_id: Optional[str] = None
    correlation_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    faulted_at: Optional[datetime] = None
    incidents: list[IncidentRecord] = field(default_factory=list)
    variables: dict[str, Any] = field(default_factory=dict)
    execution_history: list[ActivityExecutionEntry] = field(default_factory=list)
    bookmark_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON document for storage."""
        return {
            "id": self.id,
            "definition_id": self.definition_id,
            "version": self.version,
            "status": self.status,
            "tenant_id": self.tenant_id,
            "sub_status": self.sub_status,
            "definition_version_id": self.definition_version_id,
            "correlation_id": self.correlation_id,
            "created_at": _format_dt(self.created_at),
            "updated_at": _format_dt(self.updated_at),
            "finished_at": _format_dt(self.finished_at),
            "faulted_at": _format_dt(self.faulted_at),
            "incidents": [
                {
                    "activity_id": i.activity_id,
                    "activity_type": i.activity_type,
                    "message": i.message,
                    "timestamp": _format_dt(i.timestamp),
                    "exception": i.exception,
                }
                for i in self.incidents
            ],
            "variables": self.variables,
            "execution_history": [
                {
                    "activity_id": e.activity_id,
                    "activity_type": e.activity_type,
                    "activity_name": e.activity_name,
                    "status": e.status,
                    "started_at": _format_dt(e.started_at),
                    "completed_at": _format_dt(e.completed_at),
                }
                for e in self.execution_history
            ],
            "bookmark_count": self.bookmark_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkflowInstance":
        """
        Build an instance from a stored JSON document.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a timestamp is malformed
        """
        return cls(
            id=data["id"],
            definition_id=data["definition_id"],
            version=int(data.get("version", 0)),
            status=data["status"],
            tenant_id=data.get("tenant_id"),
            sub_status=data.get("sub_status"),
            definition_version_id=data.get("definition_version_id"),
            correlation_id=data.get("correlation_id"),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            finished_at=parse_datetime(data.get("finished_at")),
            faulted_at=parse_datetime(data.get("faulted_at")),
            incidents=[
                IncidentRecord(
                    activity_id=i["activity_id"],
                    activity_type=i["activity_type"],
                    message=i.get("message", ""),
                    timestamp=_parse_incident_timestamp(i),
                    exception=i.get("exception"),
                )
                for i in data.get("incidents", [])
            ],
            variables=dict(data.get("variables") or {}),
            execution_history=[
                ActivityExecutionEntry(
                    activity_id=e["activity_id"],
                    activity_type=e["activity_type"],
                    status=e.get("status", ""),
                    activity_name=e.get("activity_name"),
                    started_at=parse_datetime(e.get("started_at")),
                    completed_at=parse_datetime(e.get("completed_at")),
                )
                for e in data.get("execution_history", [])
            ],
            bookmark_count=int(data.get("bookmark_count", 0)),
        )


class WorkflowInstanceStore(Protocol):
    """Read access to workflow execution state."""

    async def find(self, instance_id: str) -> Optional[WorkflowInstance]:
        """Return the instance, or None if it does not exist."""


class InMemoryInstanceStore:
    """Dictionary-backed store for embedding and tests."""

    def __init__(self, instances: Optional[list[WorkflowInstance]] = None):
        self._instances: dict[str, WorkflowInstance] = {}
        for instance in instances or []:
            self.add(instance)

    def add(self, instance: WorkflowInstance) -> None:
        self._instances[instance.id] = instance

    async def find(self, instance_id: str) -> Optional[WorkflowInstance]:
        return self._instances.get(instance_id)


class RedisInstanceStore:
    """
    Redis-backed store: one JSON document per instance.

    Key layout: {Config.INSTANCE_KEY_PREFIX}{instance_id}
    """

    def __init__(
        self,
        redis_client: Optional[aioredis.Redis] = None,
        key_prefix: Optional[str] = None,
    ):
        self._redis_client = redis_client
        self._key_prefix = key_prefix or Config.INSTANCE_KEY_PREFIX

    async def _get_redis(self) -> aioredis.Redis:
        if self._redis_client is None:
            self._redis_client = await get_redis_client()
        return self._redis_client

    def _key(self, instance_id: str) -> str:
        return f"{self._key_prefix}{instance_id}"

    async def find(self, instance_id: str) -> Optional[WorkflowInstance]:
        redis = await self._get_redis()
        raw = await redis.get(self._key(instance_id))
        if raw is None:
            return None
        try:
            return WorkflowInstance.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
            logger.error(f"Corrupt workflow instance document for '{instance_id}': {e}")
            raise

    async def save(self, instance: WorkflowInstance) -> None:
        """Write an instance document (used by seeding and tests)."""
        redis = await self._get_redis()
        await redis.set(self._key(instance.id), json.dumps(instance.to_dict(), default=str))
