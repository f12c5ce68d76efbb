"""Chunked file upload and publish commit for workbooks and data sources."""

import asyncio
import json
import uuid
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

from loguru import logger

from .client import TableauClient
from .exceptions import TableauAPIError

REQUEST_PAYLOAD_PART = 'request_payload'
FILE_PART = 'tableau_file'


def build_multipart(
    payload: Optional[Dict[str, Any]],
    file_name: Optional[str] = None,
    file_content: Optional[bytes] = None,
) -> Tuple[bytes, str]:
    """Build a ``multipart/mixed`` body in the layout the publish endpoints expect.

    Args:
        payload: JSON request payload, empty when None
        file_name: Name of the file part
        file_content: File bytes, omitted when None

    Returns:
        Tuple of body bytes and the Content-Type header value
    """
    boundary = uuid.uuid4().hex
    parts: List[bytes] = []

    payload_bytes = json.dumps(payload).encode('utf-8') if payload else b''
    parts.append(
        _part_header(boundary, REQUEST_PAYLOAD_PART, 'application/json') + payload_bytes
    )

    if file_content is not None:
        parts.append(
            _part_header(
                boundary, FILE_PART, 'application/octet-stream', file_name or 'file'
            )
            + file_content
        )

    body = b'\r\n'.join(parts) + f'\r\n--{boundary}--\r\n'.encode('ascii')
    return body, f'multipart/mixed; boundary={boundary}'


def _part_header(
    boundary: str, name: str, content_type: str, file_name: Optional[str] = None
) -> bytes:
    disposition = f'form-data; name="{name}"'
    if file_name is not None:
        disposition += f'; filename="{file_name}"'
    return (
        f'--{boundary}\r\n'
        f'Content-Disposition: {disposition}\r\n'
        f'Content-Type: {content_type}\r\n\r\n'
    ).encode('utf-8')


class FilePublisher:
    """Publishes a content file through a chunked upload session.

    The upload is initiated with ``POST fileUploads``, every chunk is appended
    with ``PUT fileUploads/{id}`` and the publish is committed with a ``POST``
    to the content endpoint carrying the upload session ID.
    """

    def __init__(
        self,
        client: TableauClient,
        url_prefix: str,
        file_type_param: str,
        chunk_size: int,
    ):
        """Initialize publisher.

        Args:
            client: Destination site client
            url_prefix: Content endpoint, e.g. ``datasources``
            file_type_param: Query parameter naming the file type, e.g. ``datasourceType``
            chunk_size: Upload chunk size in bytes
        """
        self.client = client
        self.url_prefix = url_prefix
        self.file_type_param = file_type_param
        self.chunk_size = chunk_size
        self.logger = logger.bind(component='FilePublisher')

    async def initiate(self) -> str:
        response = await self.client.post('fileUploads')
        upload_id = ((response.data or {}).get('fileUpload') or {}).get('uploadSessionId')
        if not upload_id:
            raise TableauAPIError(
                'File upload initiation returned no upload session ID',
                status_code=response.status_code,
            )
        return upload_id

    async def upload(self, upload_id: str, stream: BinaryIO, file_name: str) -> int:
        """Append the stream to the upload session chunk by chunk.

        Returns:
            Number of chunks uploaded
        """
        chunks = 0
        while True:
            chunk = await asyncio.to_thread(stream.read, self.chunk_size)
            if not chunk and chunks:
                break

            body, content_type = build_multipart(None, file_name, chunk)
            await self.client.put(
                f'fileUploads/{upload_id}',
                data=body,
                headers={'Content-Type': content_type},
            )
            chunks += 1

            if not chunk:
                break

        self.logger.debug(f'Uploaded {file_name} in {chunks} chunk(s)')
        return chunks

    async def commit(
        self,
        upload_id: str,
        file_type: str,
        overwrite: bool,
        payload: Dict[str, Any],
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        body, content_type = build_multipart(payload)
        response = await self.client.request(
            'POST',
            self.url_prefix,
            params={
                'uploadSessionId': upload_id,
                self.file_type_param: file_type,
                'overwrite': str(overwrite).lower(),
                **(params or {}),
            },
            data=body,
            headers={'Content-Type': content_type},
        )
        return response.data or {}

    async def publish(
        self,
        stream: BinaryIO,
        file_name: str,
        file_type: str,
        overwrite: bool,
        payload: Dict[str, Any],
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Upload a file and commit the publish.

        Args:
            stream: Open binary file
            file_name: File name including extension
            file_type: Content file type, e.g. ``tdsx``
            overwrite: Replace existing content with the same name
            payload: Commit request payload
            params: Extra commit query parameters

        Returns:
            Parsed commit response

        Raises:
            TableauAPIError: If any step of the upload fails
        """
        upload_id = await self.initiate()
        await self.upload(upload_id, stream, file_name)
        return await self.commit(upload_id, file_type, overwrite, payload, params)
