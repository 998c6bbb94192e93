"""Workflow definition store adapters and the activity catalog.

Definitions are tenant-scoped and looked up by definition id; only
published versions are visible to the orchestrator. The activity catalog
is global and loaded from YAML (config/activity_catalog.yaml).
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Iterable, Optional, Protocol

import yaml
from loguru import logger
from redis import asyncio as aioredis

from .config import Config
from .diagnostics.store import parse_datetime
from .redis_client import get_redis_client


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class WorkflowDefinition:
    """One stored version of a workflow definition."""

    id: str
    definition_id: str
    version: int
    name: Optional[str] = None
    description: Optional[str] = None
    is_published: bool = False
    is_latest: bool = False
    created_at: Optional[datetime] = None
    materializer: Optional[str] = None
    string_data: Optional[str] = None
    tenant_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Stored JSON document shape."""
        return {
            "id": self.id,
            "definition_id": self.definition_id,
            "version": self.version,
            "name": self.name,
            "description": self.description,
            "is_published": self.is_published,
            "is_latest": self.is_latest,
            "created_at": _iso(self.created_at),
            "materializer": self.materializer,
            "string_data": self.string_data,
            "tenant_id": self.tenant_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkflowDefinition":
        """
        Build a definition from a stored JSON document.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a timestamp is malformed
        """
        return cls(
            id=data["id"],
            definition_id=data["definition_id"],
            version=int(data.get("version", 0)),
            name=data.get("name"),
            description=data.get("description"),
            is_published=bool(data.get("is_published", False)),
            is_latest=bool(data.get("is_latest", False)),
            created_at=parse_datetime(data.get("created_at")),
            materializer=data.get("materializer"),
            string_data=data.get("string_data"),
            tenant_id=data.get("tenant_id"),
        )

    def to_response(self) -> dict[str, Any]:
        """Tool response shape (camelCase, no tenant)."""
        return {
            "id": self.id,
            "definitionId": self.definition_id,
            "version": self.version,
            "name": self.name,
            "description": self.description,
            "isPublished": self.is_published,
            "isLatest": self.is_latest,
            "createdAt": _iso(self.created_at),
            "materializer": self.materializer,
            "stringData": self.string_data,
        }


def _latest_published(versions: Iterable[WorkflowDefinition]) -> Optional[WorkflowDefinition]:
    published = [d for d in versions if d.is_published]
    if not published:
        return None
    return max(published, key=lambda d: d.version)


class WorkflowDefinitionStore(Protocol):
    """Read access to published workflow definitions."""

    async def find_published(self, definition_id: str) -> Optional[WorkflowDefinition]:
        """Return the highest published version, or None."""


class InMemoryDefinitionStore:
    """Dictionary-backed definition store for embedding and tests."""

    def __init__(self, definitions: Optional[list[WorkflowDefinition]] = None):
        self._versions: dict[str, list[WorkflowDefinition]] = {}
        for definition in definitions or []:
            self.add(definition)

    def add(self, definition: WorkflowDefinition) -> None:
        self._versions.setdefault(definition.definition_id, []).append(definition)

    async def find_published(self, definition_id: str) -> Optional[WorkflowDefinition]:
        return _latest_published(self._versions.get(definition_id, []))


class RedisDefinitionStore:
    """
    Redis-backed definition store: one hash per definition id, one field per version.

    Key layout: {Config.DEFINITION_KEY_PREFIX}{definition_id}
    """

    def __init__(
        self,
        redis_client: Optional[aioredis.Redis] = None,
        key_prefix: Optional[str] = None,
    ):
        self._redis_client = redis_client
        self._key_prefix = key_prefix or Config.DEFINITION_KEY_PREFIX

    async def _get_redis(self) -> aioredis.Redis:
        if self._redis_client is None:
            self._redis_client = await get_redis_client()
        return self._redis_client

    def _key(self, definition_id: str) -> str:
        return f"{self._key_prefix}{definition_id}"

    async def find_published(self, definition_id: str) -> Optional[WorkflowDefinition]:
        redis = await self._get_redis()
        documents = await redis.hgetall(self._key(definition_id))
        if not documents:
            return None
        try:
            versions = [WorkflowDefinition.from_dict(json.loads(raw)) for raw in documents.values()]
        except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
            logger.error(f"Corrupt workflow definition document for '{definition_id}': {e}")
            raise
        return _latest_published(versions)

    async def save(self, definition: WorkflowDefinition) -> None:
        """Write one definition version (used by seeding and tests)."""
        redis = await self._get_redis()
        await redis.hset(
            self._key(definition.definition_id),
            str(definition.version),
            json.dumps(definition.to_dict(), default=str),
        )


# ============================================================================
# ACTIVITY CATALOG
# ============================================================================


@dataclass(frozen=True)
class ActivityPort:
    """An input or output of an activity type."""

    name: str
    type: str
    display_name: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "description": self.description,
            "type": self.type,
        }


@dataclass(frozen=True)
class ActivityDescriptor:
    """An activity type available to workflow authors."""

    type: str
    name: str
    category: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    inputs: tuple[ActivityPort, ...] = field(default_factory=tuple)
    outputs: tuple[ActivityPort, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "displayName": self.display_name,
            "description": self.description,
            "category": self.category,
            "inputs": [port.to_dict() for port in self.inputs],
            "outputs": [port.to_dict() for port in self.outputs],
        }


def _parse_ports(activity_type: str, entries: Any) -> tuple[ActivityPort, ...]:
    if entries is None:
        return ()
    if not isinstance(entries, list):
        raise ValueError(f"Ports of activity '{activity_type}' must be a list")
    ports = []
    for entry in entries:
        if not isinstance(entry, dict) or "name" not in entry or "type" not in entry:
            raise ValueError(f"Invalid port of activity '{activity_type}': {entry!r}")
        ports.append(
            ActivityPort(
                name=str(entry["name"]),
                type=str(entry["type"]),
                display_name=entry.get("display_name"),
                description=entry.get("description"),
            )
        )
    return tuple(ports)


class ActivityRegistry:
    """
    Thread-safe catalog of activity types, keyed by activity type name.

    Registration order is listing order; re-registering a type replaces it
    in place.
    """

    def __init__(self, activities: Optional[Iterable[ActivityDescriptor]] = None):
        self._lock = Lock()
        self._activities: dict[str, ActivityDescriptor] = {}
        for activity in activities or []:
            self.register(activity)

    def register(self, activity: ActivityDescriptor) -> None:
        """
        Add an activity type, or replace one with the same type name.

        Raises:
            ValueError: If the activity has no type name
        """
        if not activity.type or not activity.type.strip():
            raise ValueError("Activity must have a non-empty type")
        with self._lock:
            self._activities[activity.type] = activity

    def list(self, category: Optional[str] = None) -> list[ActivityDescriptor]:
        """Activities in registration order, optionally filtered by category (case-insensitive)."""
        with self._lock:
            activities = list(self._activities.values())
        if not category:
            return activities
        wanted = category.strip().lower()
        return [a for a in activities if a.category.lower() == wanted]

    def __len__(self) -> int:
        with self._lock:
            return len(self._activities)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "ActivityRegistry":
        """
        Build a catalog from YAML.

        Expected structure:
            activities:
              - type: Elsa.HttpRequest
                name: HttpRequest
                category: HTTP
                inputs:
                  - name: url
                    type: Uri

        A missing or empty file yields an empty catalog.

        Raises:
            ValueError: If the YAML structure is invalid
            yaml.YAMLError: If YAML is malformed
        """
        yaml_file = Path(yaml_path)
        if not yaml_file.exists():
            logger.debug(f"Activity catalog not found at {yaml_path}, catalog is empty")
            return cls()

        with open(yaml_file) as f:
            data = yaml.safe_load(f)

        if not data:
            return cls()

        if not isinstance(data, dict):
            raise ValueError(f"Invalid YAML structure: expected dict, got {type(data).__name__}")

        entries = data.get("activities", [])
        if not isinstance(entries, list):
            raise ValueError("'activities' must be a list")

        registry = cls()
        for entry in entries:
            if not isinstance(entry, dict) or not all(k in entry for k in ("type", "name", "category")):
                raise ValueError(f"Invalid activity entry: {entry!r}")
            activity_type = str(entry["type"])
            registry.register(
                ActivityDescriptor(
                    type=activity_type,
                    name=str(entry["name"]),
                    category=str(entry["category"]),
                    display_name=entry.get("display_name"),
                    description=entry.get("description"),
                    inputs=_parse_ports(activity_type, entry.get("inputs")),
                    outputs=_parse_ports(activity_type, entry.get("outputs")),
                )
            )

        logger.info(f"Loaded {len(registry)} activity types from {yaml_path}")
        return registry
