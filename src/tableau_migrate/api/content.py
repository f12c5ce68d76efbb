"""Content API clients for users, groups, projects, data sources, workbooks and views."""

import re
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar
from uuid import UUID

from loguru import logger
from pydantic import ValidationError

from ..files.store import ContentFileHandle, ContentFileStore
from ..models.content import (
    LOCAL_DOMAIN,
    Connection,
    ContentLocation,
    ContentReference,
    ContentType,
    Tag,
)
from ..models.data_source import (
    DataSource,
    PublishableDataSource,
    PublishDataSourceOptions,
)
from ..models.group import CreateGroupOptions, Group, PublishableGroup
from ..models.permissions import Permissions
from ..models.project import CreateProjectOptions, Project, PublishableProject
from ..models.user import AddUserOptions, User
from ..models.workbook import (
    PublishableWorkbook,
    PublishWorkbookOptions,
    View,
    Workbook,
)
from .client import TableauClient
from .exceptions import (
    TableauAPIError,
    TableauConflictError,
    TableauNotFoundError,
    TableauValidationError,
)
from .paging import ApiListPager, ApiPageAccessor, pagination_params, total_available
from .publishing import FilePublisher
from .references import (
    ContentReferenceFinder,
    RawListAccessor,
    list_items,
    principal_reference,
)
from .results import PagedResult, Result

T = TypeVar('T')

# Failures an API client operation reports as a failed result instead of raising
CLIENT_ERRORS = (TableauAPIError, KeyError, TypeError, ValueError, OSError)

FILENAME_PATTERN = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


def rest_fields(fields: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    """Translate keyword fields into a REST request body.

    Mapping values are REST attribute names; ``parent.id`` style names nest
    the value. Fields set to None are left out.

    Raises:
        TableauValidationError: For fields the endpoint cannot update
    """
    unknown = sorted(set(fields) - set(mapping))
    if unknown:
        raise TableauValidationError(f'Cannot update fields: {", ".join(unknown)}')

    body: Dict[str, Any] = {}
    for key, value in fields.items():
        if value is None:
            continue
        if isinstance(value, UUID):
            value = str(value)

        target = mapping[key]
        if '.' in target:
            outer, inner = target.split('.', 1)
            body.setdefault(outer, {})[inner] = value
        else:
            body[target] = value
    return body


def validated(factory: Callable[..., T], *args, **kwargs) -> T:
    """Build request options, reporting invalid ones as :class:`TableauValidationError`."""
    try:
        return factory(*args, **kwargs)
    except ValidationError as e:
        raise TableauValidationError(f'Invalid options: {e}') from e


def download_file_name(headers: Dict[str, str], default: str) -> str:
    disposition = headers.get('Content-Disposition') or headers.get('content-disposition') or ''
    match = FILENAME_PATTERN.search(disposition)
    return match.group(1).strip() if match else default


class PermissionsApiClient:
    """Reads and replaces the explicit permissions of one content endpoint."""

    def __init__(self, client: TableauClient, url_prefix: str):
        self.client = client
        self.url_prefix = url_prefix
        self.logger = logger.bind(component='PermissionsApiClient')

    async def get_permissions(self, content_id: UUID) -> Result[Permissions]:
        try:
            response = await self.client.get(f'{self.url_prefix}/{content_id}/permissions')
            return Result.succeeded(Permissions.from_rest(response.data or {}))
        except CLIENT_ERRORS as e:
            return Result.failed(e)

    async def update_permissions(
        self, content_id: UUID, permissions: Permissions
    ) -> Result[Permissions]:
        """Make the item's explicit permissions equal to ``permissions``.

        Capabilities that exist on the item but not in ``permissions`` are
        deleted first, then the full desired set is added.

        Args:
            content_id: Content item ID
            permissions: Desired permissions

        Returns:
            Result with the permissions the server reports after the update
        """
        current = await self.get_permissions(content_id)
        if not current:
            return current.cast_failure()

        desired = {g.grantee_key: g for g in permissions.grantee_capabilities}
        base = f'{self.url_prefix}/{content_id}/permissions'

        try:
            for existing in current.value.grantee_capabilities:
                wanted = desired.get(existing.grantee_key)
                keep = wanted.capabilities if wanted else frozenset()
                for capability in existing.capabilities - keep:
                    await self.client.delete(
                        f'{base}/{existing.grantee_type.url_segment}/{existing.grantee_id}'
                        f'/{capability.name}/{capability.mode.value}'
                    )

            if not permissions.grantee_capabilities:
                return Result.succeeded(Permissions(parent_id=content_id))

            response = await self.client.put(
                base,
                json={
                    'permissions': {
                        'granteeCapabilities': [
                            g.to_rest() for g in permissions.grantee_capabilities
                        ]
                    }
                },
            )
        except CLIENT_ERRORS as e:
            self.logger.warning(f'Failed to update permissions of {content_id}: {e}')
            return Result.failed(e)

        return Result.succeeded(Permissions.from_rest(response.data or {}))


class TagsApiClient:
    """Adds and removes tags on one content endpoint."""

    def __init__(self, client: TableauClient, url_prefix: str):
        self.client = client
        self.url_prefix = url_prefix

    async def add_tags(self, content_id: UUID, tags: List[Tag]) -> Result[List[Tag]]:
        if not tags:
            return Result.succeeded([])
        try:
            response = await self.client.put(
                f'{self.url_prefix}/{content_id}/tags',
                json={'tags': {'tag': [{'label': t.label} for t in tags]}},
            )
            return Result.succeeded(Tag.list_from_rest((response.data or {}).get('tags')))
        except CLIENT_ERRORS as e:
            return Result.failed(e)


class ConnectionsApiClient:
    """Lists the data connections of data sources or workbooks."""

    def __init__(self, client: TableauClient, url_prefix: str):
        self.client = client
        self.url_prefix = url_prefix

    async def list_connections(self, content_id: UUID) -> Result[List[Connection]]:
        try:
            response = await self.client.get(f'{self.url_prefix}/{content_id}/connections')
            return Result.succeeded(
                [
                    Connection.from_rest(c)
                    for c in list_items(response.data, 'connections', 'connection')
                ]
            )
        except CLIENT_ERRORS as e:
            return Result.failed(e)


class ContentApiClient(ApiPageAccessor[T]):
    """Base for the per-type content clients.

    Subclasses name their endpoint and convert raw REST items to models.
    Operations report failures as failed :class:`Result` objects; only
    programmer errors and cancellation propagate.
    """

    content_type: ContentType
    url_prefix: str = ''
    list_keys: Tuple[str, str] = ('', '')
    item_key: str = ''
    update_fields: Dict[str, str] = {}

    def __init__(self, client: TableauClient, finder: ContentReferenceFinder):
        self.client = client
        self.finder = finder
        self.logger = logger.bind(component=self.__class__.__name__)

    def list_params(self) -> Dict[str, Any]:
        return {}

    async def convert(self, item: Dict[str, Any]) -> Optional[T]:
        """Convert a raw REST item, returning None to exclude it."""
        raise NotImplementedError

    def get_pager(self, page_size: int) -> ApiListPager[T]:
        return ApiListPager(self, page_size)

    async def get_page(self, page_number: int, page_size: int) -> PagedResult[T]:
        try:
            response = await self.client.get(
                self.url_prefix,
                params={**self.list_params(), **pagination_params(page_number, page_size)},
            )
            raw = list_items(response.data, *self.list_keys)

            items = []
            for item in raw:
                converted = await self.convert(item)
                if converted is None:
                    self.logger.debug(f'Excluded {item.get("name")} ({item.get("id")})')
                    continue
                items.append(converted)
        except CLIENT_ERRORS as e:
            return PagedResult.failed(e)

        return PagedResult.page(
            items,
            page_number,
            page_size,
            total_available(response.data),
            received_count=len(raw),
        )

    async def get(self, content_id: UUID) -> Result[T]:
        try:
            response = await self.client.get(f'{self.url_prefix}/{content_id}')
            item = await self.convert((response.data or {})[self.item_key])
        except CLIENT_ERRORS as e:
            return Result.failed(e)

        if item is None:
            return Result.failed(
                TableauNotFoundError(f'{self.content_type.value} {content_id} is not accessible')
            )
        return Result.succeeded(item)

    async def update(self, content_id: UUID, **fields) -> Result[Dict[str, Any]]:
        """Partially update an item.

        Args:
            content_id: Item ID
            **fields: Fields to change, e.g. ``name`` or ``owner_id``

        Returns:
            Result with the raw updated item
        """
        try:
            body = rest_fields(fields, self.update_fields)
            response = await self.client.put(
                f'{self.url_prefix}/{content_id}', json={self.item_key: body}
            )
        except CLIENT_ERRORS as e:
            return Result.failed(e)
        return Result.succeeded((response.data or {}).get(self.item_key) or {})

    async def change_owner(self, content_id: UUID, owner_id: UUID) -> Result[Dict[str, Any]]:
        return await self.update(content_id, owner_id=owner_id)

    async def pull(self, item: T) -> Result[T]:
        return Result.succeeded(item)


class UsersApiClient(ContentApiClient[User]):
    """Site users."""

    content_type = ContentType.USER
    url_prefix = 'users'
    list_keys = ('users', 'user')
    item_key = 'user'
    update_fields = {
        'name': 'name',
        'full_name': 'fullName',
        'email': 'email',
        'site_role': 'siteRole',
        'auth_setting': 'authSetting',
    }

    def list_params(self) -> Dict[str, Any]:
        return {'fields': '_all_'}

    async def convert(self, item: Dict[str, Any]) -> Optional[User]:
        return User.from_rest(item)

    async def publish(self, user: User) -> Result[ContentReference]:
        """Add a user to the site and set their profile.

        Args:
            user: User to add, with its destination location

        Returns:
            Result with the new user's reference
        """
        try:
            options = validated(AddUserOptions.from_user, user)
            body = {'name': options.name, 'siteRole': options.site_role}
            if options.auth_setting:
                body['authSetting'] = options.auth_setting

            response = await self.client.post('users', json={'user': body})
            created = (response.data or {})['user']

            if options.full_name or options.email:
                await self.client.put(
                    f'users/{created["id"]}',
                    json={
                        'user': rest_fields(
                            {'full_name': options.full_name, 'email': options.email},
                            self.update_fields,
                        )
                    },
                )
        except CLIENT_ERRORS as e:
            return Result.failed(e)

        reference = ContentReference(
            id=created['id'], name=created.get('name', user.name), location=user.location
        )
        self.finder.add(ContentType.USER, reference)
        self.logger.info(f'Added user {options.name} as {options.site_role}')
        return Result.succeeded(reference)


class GroupsApiClient(ContentApiClient[Group]):
    """Site groups and their members."""

    content_type = ContentType.GROUP
    url_prefix = 'groups'
    list_keys = ('groups', 'group')
    item_key = 'group'
    update_fields = {
        'name': 'name',
        'minimum_site_role': 'minimumSiteRole',
        'grant_license_mode': 'grantLicenseMode',
    }

    def __init__(self, client: TableauClient, finder: ContentReferenceFinder, page_size: int = 100):
        super().__init__(client, finder)
        self.page_size = page_size

    async def convert(self, item: Dict[str, Any]) -> Optional[Group]:
        return Group.from_rest(item)

    async def list_users(self, group_id: UUID) -> Result[List[ContentReference]]:
        pager = ApiListPager(
            RawListAccessor(self.client, f'groups/{group_id}/users', 'users', 'user'),
            self.page_size,
        )
        try:
            items = await pager.to_list()
            return Result.succeeded([principal_reference(item) for item in items])
        except CLIENT_ERRORS as e:
            return Result.failed(e)

    async def add_user(self, group_id: UUID, user_id: UUID) -> Result:
        try:
            await self.client.post(f'groups/{group_id}/users', json={'user': {'id': str(user_id)}})
        except TableauConflictError:
            self.logger.debug(f'User {user_id} is already a member of group {group_id}')
        except CLIENT_ERRORS as e:
            return Result.failed(e)
        return Result.succeeded()

    async def pull(self, group: Group) -> Result[PublishableGroup]:
        members = await self.list_users(group.id)
        if not members:
            return members.cast_failure()
        return Result.succeeded(PublishableGroup(**group.dict(), users=members.value))

    async def publish(self, group: PublishableGroup) -> Result[ContentReference]:
        """Create a group and add its members.

        Groups outside the local domain are created as directory imports.
        """
        try:
            options = validated(
                CreateGroupOptions,
                name=group.name,
                minimum_site_role=group.minimum_site_role,
                grant_license_mode=group.grant_license_mode,
            )
            body: Dict[str, Any] = {'name': options.name}
            domain = group.location.parent().path or LOCAL_DOMAIN
            if domain != LOCAL_DOMAIN:
                body['import'] = rest_fields(
                    {
                        'grant_license_mode': options.grant_license_mode,
                        'minimum_site_role': options.minimum_site_role,
                    },
                    {'grant_license_mode': 'grantLicenseMode', 'minimum_site_role': 'siteRole'},
                )
                body['import'].update({'source': 'ActiveDirectory', 'domainName': domain})
            elif options.minimum_site_role:
                body['minimumSiteRole'] = options.minimum_site_role

            response = await self.client.post('groups', json={'group': body})
            created = (response.data or {})['group']
        except CLIENT_ERRORS as e:
            return Result.failed(e)

        reference = ContentReference(id=created['id'], name=options.name, location=group.location)
        self.finder.add(ContentType.GROUP, reference)

        errors = []
        for user in group.users:
            added = await self.add_user(reference.id, user.id)
            if not added:
                errors.extend(added.errors)

        if errors:
            return Result.failed(*errors)
        return Result.succeeded(reference)


class ProjectsApiClient(ContentApiClient[Project]):
    """Site projects."""

    content_type = ContentType.PROJECT
    url_prefix = 'projects'
    list_keys = ('projects', 'project')
    item_key = 'project'
    update_fields = {
        'name': 'name',
        'description': 'description',
        'parent_project_id': 'parentProjectId',
        'content_permissions': 'contentPermissions',
        'owner_id': 'owner.id',
    }

    def __init__(self, client: TableauClient, finder: ContentReferenceFinder):
        super().__init__(client, finder)
        self.permissions = PermissionsApiClient(client, self.url_prefix)

    async def convert(self, item: Dict[str, Any]) -> Optional[Project]:
        reference = await self.finder.find_project(item['id'])
        location = reference.location if reference else ContentLocation.from_path(item['name'])
        owner = await self.finder.find_user((item.get('owner') or {}).get('id'))
        return Project.from_rest(item, location=location, owner=owner)

    async def pull(self, project: Project) -> Result[PublishableProject]:
        try:
            parent = await self.finder.find_project(project.parent_project_id)
        except CLIENT_ERRORS as e:
            return Result.failed(e)
        return Result.succeeded(PublishableProject(**project.dict(), parent=parent))

    async def publish(self, project: PublishableProject) -> Result[ContentReference]:
        try:
            options = validated(
                CreateProjectOptions,
                name=project.name,
                description=project.description,
                parent_project_id=project.parent.id if project.parent else None,
                content_permissions=project.content_permissions,
            )
            response = await self.client.post(
                'projects',
                json={
                    'project': rest_fields(
                        options.dict(),
                        {
                            'name': 'name',
                            'description': 'description',
                            'parent_project_id': 'parentProjectId',
                            'content_permissions': 'contentPermissions',
                        },
                    )
                },
            )
            created = (response.data or {})['project']
        except CLIENT_ERRORS as e:
            return Result.failed(e)

        reference = ContentReference(id=created['id'], name=options.name, location=project.location)
        self.finder.add(ContentType.PROJECT, reference)
        return Result.succeeded(reference)


class ViewsApiClient(ContentApiClient[View]):
    """Workbook views."""

    content_type = ContentType.VIEW
    url_prefix = 'views'
    list_keys = ('views', 'view')
    item_key = 'view'

    def __init__(self, client: TableauClient, finder: ContentReferenceFinder):
        super().__init__(client, finder)
        self.permissions = PermissionsApiClient(client, self.url_prefix)
        self.tags = TagsApiClient(client, self.url_prefix)

    async def convert(self, item: Dict[str, Any]) -> Optional[View]:
        project_id = (item.get('project') or {}).get('id')
        project = await self.finder.find_project(project_id)
        if project is None:
            return None
        return View.from_rest(
            item,
            project=project,
            workbook_name=(item.get('workbook') or {}).get('name'),
            location=project.location.append(item['name']),
        )


class FileContentApiClient(ContentApiClient[T]):
    """Content published from a downloaded file: data sources and workbooks."""

    file_type_param: str = ''
    default_file_name: str = 'content'

    def __init__(
        self,
        client: TableauClient,
        finder: ContentReferenceFinder,
        file_store: ContentFileStore,
        chunk_size: int,
        include_extracts: bool = True,
    ):
        super().__init__(client, finder)
        self.file_store = file_store
        self.include_extracts = include_extracts
        self.permissions = PermissionsApiClient(client, self.url_prefix)
        self.tags = TagsApiClient(client, self.url_prefix)
        self.connections = ConnectionsApiClient(client, self.url_prefix)
        self.publisher = FilePublisher(client, self.url_prefix, self.file_type_param, chunk_size)

    def build_item(self, item: Dict[str, Any], **kwargs) -> T:
        raise NotImplementedError

    def build_publishable(
        self,
        item: T,
        raw: Dict[str, Any],
        connections: List[Connection],
        handle: ContentFileHandle,
        file_name: str,
    ) -> T:
        raise NotImplementedError

    def build_options(self, item: T):
        raise NotImplementedError

    def build_payload(self, options) -> Dict[str, Any]:
        raise NotImplementedError

    def commit_params(self, options) -> Dict[str, Any]:
        return {}

    async def convert(self, item: Dict[str, Any]) -> Optional[T]:
        # Items in a personal space have no project.
        project_id = (item.get('project') or {}).get('id')
        if project_id is None:
            return None

        project = await self.finder.find_project(project_id)
        if project is None:
            return None

        owner = await self.finder.find_user((item.get('owner') or {}).get('id'))
        return self.build_item(
            item,
            project=project,
            owner=owner,
            location=project.location.append(item['name']),
        )

    async def download(self, content_id: UUID):
        return await self.client.get(
            f'{self.url_prefix}/{content_id}/content',
            params={'includeExtract': str(self.include_extracts).lower()},
        )

    async def pull(self, item: T) -> Result[T]:
        """Download an item with its connections, ready to publish.

        The downloaded file is released if anything after its creation fails
        or is cancelled; on success the returned item owns it.
        """
        connections = await self.connections.list_connections(item.id)
        if not connections:
            return connections.cast_failure()

        try:
            response = await self.download(item.id)
        except CLIENT_ERRORS as e:
            return Result.failed(e)

        file_name = download_file_name(
            response.headers, f'{item.name}.{self.default_file_name.rsplit(".", 1)[-1]}'
        )
        handle = await self.file_store.create(item.reference, response.content, file_name)

        owned = False
        try:
            result = await self._get_publishable(item.id, connections.value, handle, file_name)
            owned = result.success
            return result
        finally:
            if not owned:
                handle.release()

    async def _get_publishable(
        self,
        content_id: UUID,
        connections: List[Connection],
        handle: ContentFileHandle,
        file_name: str,
    ) -> Result[T]:
        try:
            response = await self.client.get(f'{self.url_prefix}/{content_id}')
            raw = (response.data or {})[self.item_key]
            item = await self.convert(raw)
            if item is None:
                raise TableauNotFoundError(
                    f'{self.content_type.value} {content_id} is not in a project'
                )
            return Result.succeeded(
                self.build_publishable(item, raw, connections, handle, file_name)
            )
        except CLIENT_ERRORS as e:
            return Result.failed(e)

    async def publish(self, item: T) -> Result[ContentReference]:
        """Publish a pulled item through a chunked upload.

        Options are validated before any request is sent.
        """
        try:
            options = validated(self.build_options, item)
            if item.file is None or item.file.released:
                raise TableauValidationError(f'{item.name} has no content file to publish')
        except TableauValidationError as e:
            return Result.failed(e)

        return await self.publish_file(options, item.file, item.location)

    async def publish_file(
        self,
        options,
        handle: ContentFileHandle,
        location: Optional[ContentLocation] = None,
    ) -> Result[ContentReference]:
        try:
            with handle.open_read() as stream:
                data = await self.publisher.publish(
                    stream,
                    options.file_name,
                    options.file_type,
                    options.overwrite,
                    self.build_payload(options),
                    params=self.commit_params(options),
                )
            created = data[self.item_key]
        except CLIENT_ERRORS as e:
            return Result.failed(e)

        self.logger.info(f'Published {options.name} ({created["id"]})')
        return Result.succeeded(
            ContentReference(
                id=created['id'],
                name=created.get('name', options.name),
                location=location or ContentLocation.from_path(options.name),
                content_url=created.get('contentUrl'),
            )
        )


class DataSourcesApiClient(FileContentApiClient[DataSource]):
    """Published data sources."""

    content_type = ContentType.DATA_SOURCE
    url_prefix = 'datasources'
    list_keys = ('datasources', 'datasource')
    item_key = 'datasource'
    file_type_param = 'datasourceType'
    default_file_name = 'datasource.tdsx'
    update_fields = {
        'name': 'name',
        'description': 'description',
        'project_id': 'project.id',
        'owner_id': 'owner.id',
        'is_certified': 'isCertified',
        'certification_note': 'certificationNote',
        'encrypt_extracts': 'encryptExtracts',
        'use_remote_query_agent': 'useRemoteQueryAgent',
    }

    def build_item(self, item: Dict[str, Any], **kwargs) -> DataSource:
        return DataSource.from_rest(item, **kwargs)

    def build_publishable(self, item, raw, connections, handle, file_name):
        return PublishableDataSource(
            **item.dict(), connections=connections, file=handle, file_name=file_name
        )

    def build_options(self, item: PublishableDataSource) -> PublishDataSourceOptions:
        return PublishDataSourceOptions.from_publishable(item)

    def build_payload(self, options: PublishDataSourceOptions) -> Dict[str, Any]:
        return {
            'datasource': rest_fields(
                {
                    'name': options.name,
                    'description': options.description,
                    'use_remote_query_agent': options.use_remote_query_agent,
                    'encrypt_extracts': options.encrypt_extracts,
                    'project_id': options.project_id,
                },
                self.update_fields,
            )
        }


class WorkbooksApiClient(FileContentApiClient[Workbook]):
    """Workbooks and their views."""

    content_type = ContentType.WORKBOOK
    url_prefix = 'workbooks'
    list_keys = ('workbooks', 'workbook')
    item_key = 'workbook'
    file_type_param = 'workbookType'
    default_file_name = 'workbook.twbx'
    update_fields = {
        'name': 'name',
        'description': 'description',
        'project_id': 'project.id',
        'owner_id': 'owner.id',
        'show_tabs': 'showTabs',
        'encrypt_extracts': 'encryptExtracts',
    }

    def __init__(self, client, finder, file_store, chunk_size, include_extracts=True):
        super().__init__(client, finder, file_store, chunk_size, include_extracts)
        self.views = ViewsApiClient(client, finder)

    def list_params(self) -> Dict[str, Any]:
        return {'sort': 'size:asc'}

    def build_item(self, item: Dict[str, Any], **kwargs) -> Workbook:
        return Workbook.from_rest(item, **kwargs)

    def build_publishable(self, item, raw, connections, handle, file_name):
        views = [
            View.from_rest(
                v,
                project=item.project,
                workbook_name=item.name,
                location=item.location.append(v['name']),
            )
            for v in list_items(raw, 'views', 'view')
        ]
        return PublishableWorkbook(
            **item.dict(),
            connections=connections,
            views=views,
            file=handle,
            file_name=file_name,
        )

    def build_options(self, item: PublishableWorkbook) -> PublishWorkbookOptions:
        return PublishWorkbookOptions.from_publishable(item)

    def build_payload(self, options: PublishWorkbookOptions) -> Dict[str, Any]:
        payload = rest_fields(
            {
                'name': options.name,
                'description': options.description,
                'show_tabs': options.show_tabs,
                'encrypt_extracts': options.encrypt_extracts,
                'project_id': options.project_id,
            },
            self.update_fields,
        )
        if options.hidden_view_names:
            payload['views'] = {
                'view': [{'name': n, 'hidden': True} for n in options.hidden_view_names]
            }
        return {'workbook': payload}

    def commit_params(self, options: PublishWorkbookOptions) -> Dict[str, Any]:
        return {'skipConnectionCheck': str(options.skip_connection_check).lower()}
