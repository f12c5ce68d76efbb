"""Tests for the migration manifest and its JSON store."""

import json
import uuid

import pytest

from tableau_migrate.migration.manifest import (
    InvalidTransitionError,
    JsonManifestStore,
    Manifest,
    ManifestEntry,
    ManifestStatus,
)
from tableau_migrate.models.content import ContentLocation, ContentReference, ContentType


def reference(name='Sales', *path):
    return ContentReference(
        id=uuid.uuid4(),
        name=name,
        location=ContentLocation.from_path(*(path or (name,))),
    )


class TestManifestEntry:
    """Test the entry state machine."""

    def test_happy_path(self):
        entry = ManifestEntry(content_type=ContentType.PROJECT, source=reference())
        destination = reference()

        for status in (
            ManifestStatus.PULLING,
            ManifestStatus.TRANSFORMING,
            ManifestStatus.PUBLISHING,
        ):
            entry.transition(status)
        entry.complete(destination)

        assert entry.status is ManifestStatus.COMPLETED
        assert entry.destination == destination

    def test_invalid_transition(self):
        entry = ManifestEntry(content_type=ContentType.PROJECT, source=reference())

        with pytest.raises(InvalidTransitionError):
            entry.transition(ManifestStatus.PUBLISHING)

    def test_completed_is_final(self):
        entry = ManifestEntry(
            content_type=ContentType.USER,
            source=reference(),
            status=ManifestStatus.COMPLETED,
            destination=reference(),
        )

        with pytest.raises(InvalidTransitionError):
            entry.transition(ManifestStatus.PENDING)

    def test_destination_only_when_completed(self):
        with pytest.raises(ValueError):
            ManifestEntry(
                content_type=ContentType.USER,
                source=reference(),
                status=ManifestStatus.FAILED,
                destination=reference(),
            )
        with pytest.raises(ValueError):
            ManifestEntry(
                content_type=ContentType.USER,
                source=reference(),
                status=ManifestStatus.COMPLETED,
            )

    def test_fail_records_step_and_error(self):
        entry = ManifestEntry(content_type=ContentType.WORKBOOK, source=reference())
        entry.transition(ManifestStatus.PULLING)

        entry.fail('pull', KeyError('workbook'))

        assert entry.status is ManifestStatus.FAILED
        assert entry.error.step == 'pull'
        assert entry.error.error_type == 'KeyError'

    def test_reset(self):
        entry = ManifestEntry(content_type=ContentType.WORKBOOK, source=reference())
        entry.transition(ManifestStatus.PULLING)

        entry.reset()
        assert entry.status is ManifestStatus.PENDING

        entry.skip()
        entry.reset()
        assert entry.status is ManifestStatus.PENDING


class TestManifest:
    """Test manifest lookups."""

    def test_get_or_create_refreshes_source(self):
        manifest = Manifest(plan_id='plan')
        source = reference('Sales')
        entry = manifest.get_or_create(ContentType.PROJECT, source)

        renamed = ContentReference(id=source.id, name='Revenue', location=ContentLocation.from_path('Revenue'))
        again = manifest.get_or_create(ContentType.PROJECT, renamed)

        assert again is entry
        assert entry.source.name == 'Revenue'
        assert len(manifest) == 1

    def test_same_id_different_types_are_separate(self):
        manifest = Manifest()
        source = reference()

        manifest.get_or_create(ContentType.USER, source)
        manifest.get_or_create(ContentType.GROUP, source)

        assert len(manifest) == 2
        assert len(manifest.entries(ContentType.USER)) == 1

    def test_find_destination_and_counts(self):
        manifest = Manifest()
        source, destination = reference(), reference()
        entry = manifest.get_or_create(ContentType.PROJECT, source)
        entry.transition(ManifestStatus.PULLING)
        entry.transition(ManifestStatus.TRANSFORMING)
        entry.transition(ManifestStatus.PUBLISHING)
        entry.complete(destination)
        manifest.get_or_create(ContentType.PROJECT, reference()).skip()

        assert manifest.find_destination(ContentType.PROJECT, source.id) == destination
        assert manifest.find_destination(ContentType.USER, source.id) is None
        counts = manifest.counts(ContentType.PROJECT)
        assert counts['completed'] == 1
        assert counts['skipped'] == 1
        assert counts['failed'] == 0


class TestJsonManifestStore:
    """Test manifest persistence."""

    def test_round_trip(self, tmp_path):
        store = JsonManifestStore(str(tmp_path / 'manifest.json'))
        manifest = Manifest(plan_id='plan-1')
        source = reference('Child', 'Parent', 'Child')
        entry = manifest.get_or_create(ContentType.PROJECT, source)
        entry.transition(ManifestStatus.PULLING)
        entry.fail('pull', RuntimeError('boom'))

        store.save(manifest)
        loaded = store.load('plan-1')

        restored = loaded.get(ContentType.PROJECT, source.id)
        assert restored.status is ManifestStatus.FAILED
        assert restored.source.location.path == 'Parent/Child'
        assert restored.error.message == 'boom'
        assert not (tmp_path / 'manifest.json.tmp').exists()

    def test_missing_file_starts_new(self, tmp_path):
        manifest = JsonManifestStore(str(tmp_path / 'none.json')).load('plan')

        assert manifest.plan_id == 'plan'
        assert len(manifest) == 0

    def test_other_plan_ignored(self, tmp_path):
        store = JsonManifestStore(str(tmp_path / 'manifest.json'))
        manifest = Manifest(plan_id='old')
        manifest.get_or_create(ContentType.USER, reference())
        store.save(manifest)

        loaded = store.load('new')

        assert loaded.plan_id == 'new'
        assert len(loaded) == 0

    def test_interrupted_entries_reset(self, tmp_path):
        path = tmp_path / 'manifest.json'
        manifest = Manifest(plan_id='plan')
        entry = manifest.get_or_create(ContentType.WORKBOOK, reference())
        entry.transition(ManifestStatus.PULLING)
        entry.transition(ManifestStatus.TRANSFORMING)
        JsonManifestStore(str(path)).save(manifest)

        data = json.loads(path.read_text())
        assert data['entries'][0]['status'] == 'transforming'

        loaded = JsonManifestStore(str(path)).load('plan')

        assert loaded.entries()[0].status is ManifestStatus.PENDING
