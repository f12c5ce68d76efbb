"""Server session state shared by every API call against one site."""

import threading
from typing import Optional
from uuid import UUID

from loguru import logger
from pydantic import BaseModel, Field

# The first REST API version that exposes /serverinfo (Tableau Server 9.3).
MINIMUM_API_VERSION = '2.4'


class ServerVersion(BaseModel):
    """Version information reported by the server."""

    product_version: str = Field(..., description='Product version, e.g. 2023.1.0')
    build: Optional[str] = Field(default=None, description='Build number')
    rest_api_version: str = Field(..., description='REST API version, e.g. 3.19')

    class Config:
        """Pydantic configuration."""

        frozen = True


class SignInInfo(BaseModel):
    """Values returned by a successful sign-in."""

    token: str = Field(..., description='Session token')
    site_id: UUID = Field(..., description='Signed-in site ID')
    site_content_url: str = Field(default='', description='Signed-in site content URL')
    user_id: UUID = Field(..., description='Signed-in user ID')


class ServerSessionProvider:
    """Holds the server version, signed-in user, site and session token.

    Reads are lock-free attribute reads. Writes go through a lock so that the
    values set together are always observed together by the next write.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._version: Optional[ServerVersion] = None
        self._site_id: Optional[UUID] = None
        self._site_content_url: Optional[str] = None
        self._user_id: Optional[UUID] = None
        self._token: Optional[str] = None
        self.logger = logger.bind(component='ServerSessionProvider')

    @property
    def version(self) -> Optional[ServerVersion]:
        return self._version

    @property
    def api_version(self) -> str:
        """REST API version to use in version-qualified endpoints."""
        version = self._version
        return version.rest_api_version if version else MINIMUM_API_VERSION

    @property
    def site_id(self) -> Optional[UUID]:
        return self._site_id

    @property
    def site_content_url(self) -> Optional[str]:
        return self._site_content_url

    @property
    def user_id(self) -> Optional[UUID]:
        return self._user_id

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def is_signed_in(self) -> bool:
        return self._user_id is not None

    def set_version(self, version: ServerVersion) -> None:
        with self._lock:
            self._version = version
        self.logger.debug(
            f'Server version {version.product_version} '
            f'(REST API {version.rest_api_version})'
        )

    def set_token(self, token: Optional[str]) -> None:
        with self._lock:
            self._token = token

    def set_current_user_and_site(self, sign_in: SignInInfo) -> None:
        with self._lock:
            self._token = sign_in.token
            self._site_id = sign_in.site_id
            self._site_content_url = sign_in.site_content_url
            self._user_id = sign_in.user_id
        self.logger.info(
            f'Signed in as user {sign_in.user_id} on site {sign_in.site_id}'
        )

    def clear_current_user_and_site(self) -> None:
        with self._lock:
            self._token = None
            self._site_id = None
            self._site_content_url = None
            self._user_id = None
        self.logger.info('Session cleared')
