from pathlib import Path
from typing import AsyncIterator, Dict, Optional, Tuple, Union

import aiofiles
import httpx

import config
from fsbucket.services.signature import build_signed_query
from logger_config import setup_logger

logger = setup_logger()


class FsBucketClientError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FsBucketClient:
    """Issues signed requests against an fsbucket server.

    Holds the shared secret, so it belongs on the trusted side that hands out URLs.
    """

    def __init__(
        self,
        base_url: str,
        secret_key: str,
        ttl_seconds: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key
        self.ttl_seconds = ttl_seconds
        self.transport = transport
        self.timeout = timeout

    def signed_query(self, method: str, path: str) -> Dict[str, str]:
        return build_signed_query(method, path, self.secret_key, self.ttl_seconds)

    def signed_url(self, method: str, path: str) -> str:
        query = self.signed_query(method, path)
        return f"{self.base_url}{path}?signature={query['signature']}&expires={query['expires']}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=self.timeout)

    async def put_bytes(self, path: str, content: Union[bytes, AsyncIterator[bytes]]) -> str:
        """Upload content to path. Returns the server's confirmation text."""
        try:
            async with self._client() as client:
                response = await client.put(self.signed_url("PUT", path), content=content)
        except httpx.RequestError as e:
            logger.error(f"PUT {path} request error: {str(e)}")
            raise FsBucketClientError(f"Error sending request: {str(e)}") from e

        self._raise_for_status("PUT", path, response)
        return response.text

    async def put_file(self, local_path: Union[str, Path], path: str) -> str:
        """Stream a local file to path."""
        async def file_chunks():
            async with aiofiles.open(local_path, 'rb') as file:
                while chunk := await file.read(config.CHUNK_SIZE):
                    yield chunk

        return await self.put_bytes(path, file_chunks())

    async def get_bytes(self, path: str, byte_range: Optional[Tuple[int, Optional[int]]] = None) -> bytes:
        """Download path, or the inclusive byte range (start, end) of it."""
        headers = {}
        if byte_range is not None:
            start, end = byte_range
            headers["Range"] = f"bytes={start}-{'' if end is None else end}"

        try:
            async with self._client() as client:
                response = await client.get(self.signed_url("GET", path), headers=headers)
        except httpx.RequestError as e:
            logger.error(f"GET {path} request error: {str(e)}")
            raise FsBucketClientError(f"Error sending request: {str(e)}") from e

        self._raise_for_status("GET", path, response)
        return response.content

    @staticmethod
    def _raise_for_status(method: str, path: str, response: httpx.Response):
        if response.status_code >= 400:
            raise FsBucketClientError(
                f"{method} {path} failed with {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
