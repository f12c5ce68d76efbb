"""Migration manifest: per-item status that survives across runs."""

import json
import os
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import UUID

from loguru import logger
from pydantic import BaseModel, Field, validator

from ..models.content import ContentReference, ContentType


class ManifestStatus(str, Enum):
    """Migration status of one item."""

    PENDING = 'pending'
    PULLING = 'pulling'
    TRANSFORMING = 'transforming'
    PUBLISHING = 'publishing'
    COMPLETED = 'completed'
    FAILED = 'failed'
    SKIPPED = 'skipped'


IN_PROGRESS_STATUSES = (
    ManifestStatus.PULLING,
    ManifestStatus.TRANSFORMING,
    ManifestStatus.PUBLISHING,
)

ALLOWED_TRANSITIONS = {
    ManifestStatus.PENDING: {ManifestStatus.PULLING, ManifestStatus.SKIPPED, ManifestStatus.FAILED},
    ManifestStatus.PULLING: {ManifestStatus.TRANSFORMING, ManifestStatus.FAILED},
    ManifestStatus.TRANSFORMING: {ManifestStatus.PUBLISHING, ManifestStatus.FAILED},
    ManifestStatus.PUBLISHING: {ManifestStatus.COMPLETED, ManifestStatus.FAILED},
    ManifestStatus.COMPLETED: set(),
    ManifestStatus.FAILED: {ManifestStatus.PENDING},
    ManifestStatus.SKIPPED: {ManifestStatus.PENDING},
}


class InvalidTransitionError(ValueError):
    """A manifest entry was moved to a status it cannot reach."""

    pass


class ManifestError(BaseModel):
    """Failure recorded against a manifest entry."""

    step: str = Field(..., description='Pipeline step that failed')
    error_type: str = Field(..., description='Exception class name')
    message: str = Field(..., description='Error message')

    @classmethod
    def from_exception(cls, step: str, error: BaseException) -> 'ManifestError':
        return cls(step=step, error_type=type(error).__name__, message=str(error))


class ManifestEntry(BaseModel):
    """Migration state of one source item."""

    content_type: ContentType = Field(..., description='Content type')
    source: ContentReference = Field(..., description='Source item')
    status: ManifestStatus = Field(default=ManifestStatus.PENDING, description='Status')
    destination: Optional[ContentReference] = Field(
        default=None, description='Destination item, set once completed'
    )
    error: Optional[ManifestError] = Field(default=None, description='Last failure')
    updated_at: datetime = Field(default_factory=datetime.now, description='Last change')

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}

    @validator('destination', always=True)
    def validate_destination(cls, v, values):
        """Destination is set exactly when the entry is completed."""
        completed = values.get('status') == ManifestStatus.COMPLETED
        if completed and v is None:
            raise ValueError('Completed entries require a destination')
        if not completed and v is not None:
            raise ValueError('Only completed entries have a destination')
        return v

    def transition(self, status: ManifestStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f'Cannot move {self.source} from {self.status.value} to {status.value}'
            )
        self.status = status
        self.updated_at = datetime.now()

    def reset(self) -> None:
        """Make a failed, skipped or interrupted entry eligible to run again."""
        if self.status in IN_PROGRESS_STATUSES:
            self.status = ManifestStatus.FAILED
        if self.status in (ManifestStatus.FAILED, ManifestStatus.SKIPPED):
            self.transition(ManifestStatus.PENDING)

    def complete(self, destination: ContentReference) -> None:
        self.transition(ManifestStatus.COMPLETED)
        self.destination = destination
        self.error = None

    def fail(self, step: str, error: BaseException) -> None:
        self.transition(ManifestStatus.FAILED)
        self.error = ManifestError.from_exception(step, error)

    def skip(self) -> None:
        self.transition(ManifestStatus.SKIPPED)


class Manifest:
    """Entries of one migration plan keyed by content type and source ID."""

    def __init__(
        self,
        plan_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        entries: Optional[List[ManifestEntry]] = None,
    ):
        self.plan_id = plan_id
        self.created_at = created_at or datetime.now()
        self.updated_at = updated_at or self.created_at
        self._entries: Dict[str, ManifestEntry] = {}
        for entry in entries or []:
            self._entries[_key(entry.content_type, entry.source.id)] = entry

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, content_type: ContentType, source_id: UUID) -> Optional[ManifestEntry]:
        return self._entries.get(_key(content_type, source_id))

    def get_or_create(
        self, content_type: ContentType, source: ContentReference
    ) -> ManifestEntry:
        """Return the entry for a source item, adding a pending one if new.

        The stored source reference is refreshed in case the item was renamed
        or moved since the last run.
        """
        key = _key(content_type, source.id)
        entry = self._entries.get(key)
        if entry is None:
            entry = ManifestEntry(content_type=content_type, source=source)
            self._entries[key] = entry
        elif entry.source != source:
            entry.source = source
        self.updated_at = datetime.now()
        return entry

    def entries(self, content_type: Optional[ContentType] = None) -> List[ManifestEntry]:
        return [
            e
            for e in self._entries.values()
            if content_type is None or e.content_type == content_type
        ]

    def find_destination(
        self, content_type: ContentType, source_id: UUID
    ) -> Optional[ContentReference]:
        entry = self.get(content_type, source_id)
        return entry.destination if entry else None

    def counts(self, content_type: Optional[ContentType] = None) -> Dict[str, int]:
        counts = {status.value: 0 for status in ManifestStatus}
        for entry in self.entries(content_type):
            counts[entry.status.value] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            'plan_id': self.plan_id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'entries': [json.loads(e.json()) for e in self._entries.values()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Manifest':
        return cls(
            plan_id=data.get('plan_id'),
            created_at=_parse_datetime(data.get('created_at')),
            updated_at=_parse_datetime(data.get('updated_at')),
            entries=[ManifestEntry(**e) for e in data.get('entries', [])],
        )


class JsonManifestStore:
    """Persists a manifest as a JSON file."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.logger = logger.bind(component='JsonManifestStore')

    def load(self, plan_id: Optional[str] = None) -> Manifest:
        """Load the manifest of a plan, or start a new one.

        A stored manifest that belongs to another plan is ignored. Entries a
        previous run left in progress are reset so they run again.

        Args:
            plan_id: Plan identity, None to accept any stored manifest

        Returns:
            Loaded or new manifest
        """
        if not self.path.exists():
            self.logger.info(f'No manifest at {self.path}, starting a new one')
            return Manifest(plan_id=plan_id)

        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        stored_plan = data.get('plan_id')
        if plan_id is not None and stored_plan != plan_id:
            self.logger.warning(
                f'Manifest {self.path} belongs to plan {stored_plan}, not {plan_id}; '
                'starting a new one'
            )
            return Manifest(plan_id=plan_id)

        manifest = Manifest.from_dict(data)
        interrupted = [e for e in manifest.entries() if e.status in IN_PROGRESS_STATUSES]
        for entry in interrupted:
            entry.reset()
        if interrupted:
            self.logger.warning(f'Reset {len(interrupted)} interrupted manifest entries')

        self.logger.info(f'Loaded manifest with {len(manifest)} entries from {self.path}')
        return manifest

    def save(self, manifest: Manifest) -> None:
        self.write(manifest.to_dict())

    def write(self, data: Dict[str, Any]) -> None:
        """Write serialized manifest data, replacing the file atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(self.path.name + '.tmp')
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
        os.replace(temp_path, self.path)


def _key(content_type: ContentType, source_id: UUID) -> str:
    return f'{ContentType(content_type).value}:{source_id}'


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None
