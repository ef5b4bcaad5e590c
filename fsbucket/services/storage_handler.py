import asyncio
import errno
import re
import stat
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterable, AsyncIterator, Dict, Optional

import aiofiles
import aiofiles.os

import config
from config import BucketConfig
from fsbucket.errors import ConflictError, NotFoundError, RangeNotSatisfiableError, StorageIOError
from fsbucket.services.path_safety import split_segments
from fsbucket.services.transfer_monitor import TransferMonitor
from logger_config import setup_logger

logger = setup_logger()

# Positions over 20 digits make the header malformed
_RANGE_RE = re.compile(r"bytes=(\d{1,20})-(\d{0,20})")

# Filesystems without hard link support; publish falls back to rename
_NO_LINK_ERRNOS = {errno.EPERM, errno.EOPNOTSUPP, errno.ENOTSUP, errno.EXDEV, errno.EMLINK}


@dataclass(frozen=True)
class FileDownload:
    file_path: Path
    size: int
    start: int
    end: int
    partial: bool = False

    @property
    def length(self) -> int:
        return self.end - self.start + 1 if self.size else 0

    @property
    def status_code(self) -> int:
        return 206 if self.partial else 200

    @property
    def headers(self) -> Dict[str, str]:
        if self.partial:
            return {
                "Content-Range": f"bytes {self.start}-{self.end}/{self.size}",
                "Accept-Ranges": "bytes",
                "Content-Length": str(self.length),
            }
        return {"Content-Length": str(self.size)}


def parse_range(range_header: Optional[str], size: int):
    """Parse a single `bytes=<start>-[<end>]` range against a file size.

    Returns (start, end) with end clamped to the last byte, or None when the
    header is absent or not in that form, in which case the whole file is served.
    """
    if not range_header:
        return None
    match = _RANGE_RE.fullmatch(range_header.strip())
    if not match:
        return None

    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else size - 1
    end = min(end, size - 1)
    if start >= size or start > end:
        raise RangeNotSatisfiableError(size)
    return start, end


class StorageHandler:
    def __init__(self, bucket_config: BucketConfig, monitor: Optional[TransferMonitor] = None):
        self.base_dir = bucket_config.base_dir
        self.staging_dir = bucket_config.staging_dir
        self.monitor = monitor or TransferMonitor()

    async def initialize(self):
        """Create the storage directories and clear uploads left over from a previous run."""
        logger.info("Initializing storage handler...")

        await aiofiles.os.makedirs(self.staging_dir, exist_ok=True)
        logger.debug(f"Storage directories created/verified: {self.base_dir}, {self.staging_dir}")

        files_removed = 0
        for file in self.staging_dir.glob(f"*{config.TEMP_SUFFIX}"):
            if file.is_file():
                try:
                    await aiofiles.os.unlink(file)
                    files_removed += 1
                except OSError as e:
                    logger.error(f"Error removing stale upload {file}: {e}")
        logger.info(f"Cleaned staging directory, removed {files_removed} files")

    def resolve(self, path: str) -> Path:
        """Map an authorized request path to its location under the storage root."""
        return self.base_dir.joinpath(*split_segments(path))

    async def prepare_download(self, path: str, range_header: Optional[str] = None) -> FileDownload:
        file_path = self.resolve(path)
        try:
            st = await aiofiles.os.stat(file_path)
        except (FileNotFoundError, NotADirectoryError):
            raise NotFoundError()
        except OSError as e:
            logger.error(f"Error reading file {path}: {e}", exc_info=True)
            self.monitor.record_failure("GET", path, str(e))
            raise StorageIOError(f"Error reading file: {e}") from e

        if not stat.S_ISREG(st.st_mode):
            raise NotFoundError()

        size = st.st_size
        byte_range = parse_range(range_header, size)
        if byte_range is None:
            return FileDownload(file_path=file_path, size=size, start=0, end=max(size - 1, 0))

        start, end = byte_range
        return FileDownload(file_path=file_path, size=size, start=start, end=end, partial=True)

    async def iter_file(self, download: FileDownload) -> AsyncIterator[bytes]:
        """Stream the planned byte span of a file in chunks."""
        try:
            async with aiofiles.open(download.file_path, 'rb') as file:
                await file.seek(download.start)
                remaining = download.length
                while remaining > 0:
                    chunk = await file.read(min(config.CHUNK_SIZE, remaining))
                    if not chunk:
                        raise OSError(f"Unexpected end of file at byte {download.end - remaining + 1}")
                    remaining -= len(chunk)
                    yield chunk
        except OSError as e:
            # Headers are already sent, the best we can do is abort the body and report it
            logger.error(f"Error streaming {download.file_path}: {e}", exc_info=True)
            self.monitor.record_failure("GET", str(download.file_path), str(e))
            raise StorageIOError(f"Error reading file: {e}") from e

        self.monitor.record_success()

    async def store_upload(self, path: str, chunks: AsyncIterable[bytes]) -> int:
        """Stage the request body, then publish it at path unless the file already exists.

        Returns the number of bytes stored.
        """
        file_path = self.resolve(path)
        if await aiofiles.os.path.exists(file_path):
            raise ConflictError()

        temp_path = self.staging_dir / f"{uuid.uuid4().hex}{config.TEMP_SUFFIX}"
        logger.info(f"Receiving upload for {path}")

        cancelled = False
        try:
            try:
                await aiofiles.os.makedirs(self.staging_dir, exist_ok=True)
            except OSError as e:
                raise StorageIOError(f"Error creating staging directory: {e}") from e

            size = await self._write_temp(temp_path, chunks)

            if await aiofiles.os.path.exists(file_path):
                raise ConflictError("File already exists (2)")
            try:
                await aiofiles.os.makedirs(file_path.parent, exist_ok=True)
            except OSError as e:
                raise StorageIOError(f"Error creating directory: {e}") from e

            await self._publish(temp_path, file_path)
        except ConflictError:
            logger.info(f"Upload for {path} rejected, file already exists")
            raise
        except StorageIOError as e:
            logger.error(f"Error uploading {path}: {e.message}", exc_info=True)
            self.monitor.record_failure("PUT", path, e.message)
            raise
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            if cancelled:
                self._discard_now(temp_path)
            else:
                await self._discard(temp_path)

        logger.info(f"Stored {path} ({size} bytes)")
        self.monitor.record_success()
        return size

    async def _write_temp(self, temp_path: Path, chunks: AsyncIterable[bytes]) -> int:
        size = 0
        try:
            async with aiofiles.open(temp_path, 'wb') as file:
                async for chunk in chunks:
                    size += len(chunk)
                    await file.write(chunk)
        except OSError as e:
            raise StorageIOError(f"Error writing file: {e}") from e
        except Exception as e:
            # Anything raised by the body iterator, including client disconnects
            raise StorageIOError(f"Error reading request: {e!r}") from e
        return size

    async def _publish(self, temp_path: Path, file_path: Path):
        # link() refuses to replace an existing file, so at most one upload wins
        try:
            await aiofiles.os.link(temp_path, file_path)
            return
        except FileExistsError:
            raise ConflictError("File already exists (2)")
        except OSError as e:
            if e.errno not in _NO_LINK_ERRNOS:
                raise StorageIOError(f"Error publishing file: {e}") from e
            logger.debug(f"Hard links unavailable ({e}), publishing {file_path} by rename")

        try:
            await aiofiles.os.rename(temp_path, file_path)
        except OSError as e:
            raise StorageIOError(f"Error publishing file: {e}") from e

    async def _discard(self, temp_path: Path):
        try:
            await aiofiles.os.unlink(temp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Error removing temporary file {temp_path}: {e}")

    def _discard_now(self, temp_path: Path):
        # Must not await, the task is being cancelled
        try:
            temp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Error removing temporary file {temp_path}: {e}")
