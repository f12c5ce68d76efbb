"""Tests for permission merging, transformation and the permissions client."""

import itertools
import uuid

from tableau_migrate.api.content import PermissionsApiClient
from tableau_migrate.migration.permissions import (
    PermissionsTransformer,
    is_migratable,
    merge_grantee_capabilities,
)
from tableau_migrate.models.content import ContentReference, ContentType
from tableau_migrate.models.permissions import (
    Capability,
    CapabilityMode,
    CapabilityNames,
    GranteeCapability,
    GranteeType,
    Permissions,
)

ALLOW = CapabilityMode.ALLOW
DENY = CapabilityMode.DENY


def grant(grantee_id, *capabilities, grantee_type=GranteeType.GROUP):
    return GranteeCapability(
        grantee_type=grantee_type,
        grantee_id=grantee_id,
        capabilities=frozenset(Capability(name=n, mode=m) for n, m in capabilities),
    )


class TestMergeGranteeCapabilities:
    """Test the merge rules."""

    def test_deny_wins_regardless_of_order(self):
        group = uuid.uuid4()
        records = [
            grant(group, ('Read', ALLOW), ('Write', ALLOW)),
            grant(group, ('Read', DENY)),
            grant(group, ('Write', ALLOW), ('Filter', ALLOW)),
        ]

        results = {
            tuple(merge_grantee_capabilities(order)) for order in itertools.permutations(records)
        }

        assert len(results) == 1
        merged = results.pop()
        assert len(merged) == 1
        assert merged[0].capabilities == frozenset(
            [
                Capability(name='Read', mode=DENY),
                Capability(name='Write', mode=ALLOW),
                Capability(name='Filter', mode=ALLOW),
            ]
        )

    def test_grantees_kept_apart(self):
        user, group = uuid.uuid4(), uuid.uuid4()
        merged = merge_grantee_capabilities(
            [
                grant(group, ('Read', ALLOW)),
                grant(user, ('Read', DENY), grantee_type=GranteeType.USER),
            ]
        )

        assert [g.grantee_type for g in merged] == [GranteeType.GROUP, GranteeType.USER]

    def test_project_leader_rules(self):
        group = uuid.uuid4()
        merged = merge_grantee_capabilities(
            [
                grant(
                    group,
                    (CapabilityNames.PROJECT_LEADER, DENY),
                    (CapabilityNames.INHERITED_PROJECT_LEADER, ALLOW),
                    ('Read', ALLOW),
                )
            ]
        )

        assert [c.name for c in merged[0].capabilities] == ['Read']

    def test_empty_grantees_dropped(self):
        merged = merge_grantee_capabilities(
            [grant(uuid.uuid4(), (CapabilityNames.INHERITED_PROJECT_LEADER, ALLOW))]
        )

        assert merged == []

    def test_is_migratable(self):
        assert is_migratable(Capability(name=CapabilityNames.PROJECT_LEADER, mode=ALLOW))
        assert not is_migratable(Capability(name=CapabilityNames.PROJECT_LEADER, mode=DENY))
        assert not is_migratable(
            Capability(name=CapabilityNames.INHERITED_PROJECT_LEADER, mode=ALLOW)
        )


class CountingFinder:
    def __init__(self, mapping):
        self.mapping = mapping
        self.lookups = []

    async def find_by_source_id(self, content_type, source_id):
        self.lookups.append((content_type, source_id))
        destination = self.mapping.get(source_id)
        if destination is None:
            return None
        return ContentReference(id=destination, name='mapped')


class TestPermissionsTransformer:
    """Test grantee mapping."""

    async def test_maps_merges_and_drops(self):
        source_a, source_b, missing = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        shared = uuid.uuid4()
        finder = CountingFinder({source_a: shared, source_b: shared})
        permissions = Permissions(
            parent_id=uuid.uuid4(),
            grantee_capabilities=[
                grant(source_a, ('Read', ALLOW)),
                grant(source_b, ('Read', DENY), ('Write', ALLOW)),
                grant(source_a, ('Filter', ALLOW)),
                grant(missing, ('Read', ALLOW)),
            ],
        )
        parent = uuid.uuid4()

        result = await PermissionsTransformer(finder).transform(permissions, parent_id=parent)

        assert result.parent_id == parent
        assert len(result.grantee_capabilities) == 1
        merged = result.grantee_capabilities[0]
        assert merged.grantee_id == shared
        assert Capability(name='Read', mode=DENY) in merged.capabilities
        assert Capability(name='Read', mode=ALLOW) not in merged.capabilities
        assert len(finder.lookups) == 3
        assert all(t is ContentType.GROUP for t, _ in finder.lookups)


class TestPermissionsApiClient:
    """Test replacing explicit permissions."""

    async def test_update_deletes_extras_then_adds(self, client, transport):
        content_id, group, user = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        current = {
            'permissions': {
                'project': {'id': str(content_id)},
                'granteeCapabilities': [
                    {
                        'group': {'id': str(group)},
                        'capabilities': {
                            'capability': [
                                {'name': 'Read', 'mode': 'Allow'},
                                {'name': 'Write', 'mode': 'Allow'},
                            ]
                        },
                    },
                    {
                        'user': {'id': str(user)},
                        'capabilities': {'capability': [{'name': 'Read', 'mode': 'Deny'}]},
                    },
                ],
            }
        }
        transport.add('GET', r'/projects/[^/]+/permissions', current)
        transport.add('DELETE', r'/permissions/.+', (204, None))
        transport.add('PUT', r'/projects/[^/]+/permissions', current)

        desired = Permissions(grantee_capabilities=[grant(group, ('Read', ALLOW))])
        result = await PermissionsApiClient(client, 'projects').update_permissions(
            content_id, desired
        )

        assert result.success
        deleted = sorted(r.url.split('/permissions/')[1] for r in transport.calls('DELETE'))
        assert deleted == [f'groups/{group}/Write/Allow', f'users/{user}/Read/Deny']
        put = transport.calls('PUT')[0]
        assert put.json_body == {
            'permissions': {
                'granteeCapabilities': [
                    {
                        'group': {'id': str(group)},
                        'capabilities': {'capability': [{'name': 'Read', 'mode': 'Allow'}]},
                    }
                ]
            }
        }

    async def test_get_failure_is_result(self, client, transport):
        transport.add('GET', r'/permissions', (403, None))

        result = await PermissionsApiClient(client, 'workbooks').get_permissions(uuid.uuid4())

        assert not result.success
        assert result.error.status_code == 403
