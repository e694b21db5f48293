"""
BlobStore - Durable key/binary storage for image payloads.

Group and theme records only hold opaque blob ids; the image bytes live here.

Contract:
1. put() always mints a new id, even for identical bytes (no dedup)
2. get() returns exactly the stored bytes, or raises BlobNotFoundError
3. delete() is idempotent
4. get_many() reads concurrently and omits ids that fail

The store does no reference counting. Callers replacing an image must put the
new bytes, commit the owning record, and only then delete the old id
(see replace_blob).
"""

import asyncio
import logging
import re
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

import aiofiles
import aiofiles.os

from .errors import BlobNotFoundError, StoreError

logger = logging.getLogger(__name__)

_VALID_ID = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def new_blob_id() -> str:
    """Mint an opaque, unguessable blob id."""
    return uuid.uuid4().hex


def is_valid_blob_id(blob_id: str) -> bool:
    return isinstance(blob_id, str) and bool(_VALID_ID.match(blob_id))


def _as_bytes(data: Union[bytes, bytearray, memoryview]) -> bytes:
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(f"Blob data must be bytes, got {type(data).__name__}")
    return bytes(data)


class BlobStore(ABC):
    """
    Abstract base class for blob stores.

    Subclasses implement put/get/delete/list_ids; batching and existence
    checks are shared.
    """

    @abstractmethod
    async def put(self, data: bytes) -> str:
        """Store bytes under a freshly minted id and return it."""
        pass

    @abstractmethod
    async def get(self, blob_id: str) -> bytes:
        """Return the bytes stored under blob_id."""
        pass

    @abstractmethod
    async def delete(self, blob_id: str) -> None:
        """Remove blob_id. Absent ids are ignored."""
        pass

    @abstractmethod
    async def list_ids(self) -> List[str]:
        """All stored ids, sorted."""
        pass

    async def exists(self, blob_id: str) -> bool:
        try:
            await self.get(blob_id)
        except BlobNotFoundError:
            return False
        return True

    async def get_many(self, blob_ids: Iterable[str]) -> Dict[str, bytes]:
        """
        Read several blobs concurrently.

        Missing or unreadable ids are left out of the result; the batch
        itself never fails because of one bad id.
        """
        unique_ids = list(dict.fromkeys(blob_ids))
        if not unique_ids:
            return {}

        results = await asyncio.gather(
            *(self.get(blob_id) for blob_id in unique_ids),
            return_exceptions=True,
        )

        blobs = {}
        for blob_id, result in zip(unique_ids, results):
            if isinstance(result, BlobNotFoundError):
                logger.warning(f"Blob {blob_id} not found in store")
            elif isinstance(result, Exception):
                logger.error(f"Error reading blob {blob_id}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                blobs[blob_id] = result

        logger.debug(f"Loaded {len(blobs)}/{len(unique_ids)} blobs")
        return blobs


class FileBlobStore(BlobStore):
    """
    Stores each blob as one file named by its id under a root directory.

    Writes go to a hidden temp file first and are renamed into place, so a
    failed put never leaves a partial blob behind a valid id.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _path(self, blob_id: str) -> Optional[Path]:
        if not is_valid_blob_id(blob_id):
            return None
        return self.root / blob_id

    async def put(self, data: bytes) -> str:
        payload = _as_bytes(data)
        blob_id = new_blob_id()
        path = self.root / blob_id
        tmp_path = self.root / f".{blob_id}.tmp"

        try:
            await aiofiles.os.makedirs(self.root, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(payload)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            logger.error(f"Failed to store blob ({len(payload)} bytes): {e}")
            try:
                await aiofiles.os.remove(tmp_path)
            except OSError:
                pass
            raise StoreError(f"Failed to store blob: {e}", details={"size": len(payload)}) from e

        logger.debug(f"Stored blob {blob_id} ({len(payload)} bytes)")
        return blob_id

    async def get(self, blob_id: str) -> bytes:
        path = self._path(blob_id)
        if path is None:
            raise BlobNotFoundError(blob_id)

        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except FileNotFoundError:
            raise BlobNotFoundError(blob_id)
        except OSError as e:
            raise StoreError(f"Failed to read blob {blob_id}: {e}", details={"blob_id": blob_id}) from e

    async def delete(self, blob_id: str) -> None:
        path = self._path(blob_id)
        if path is None:
            return

        try:
            await aiofiles.os.remove(path)
            logger.debug(f"Deleted blob {blob_id}")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StoreError(f"Failed to delete blob {blob_id}: {e}", details={"blob_id": blob_id}) from e

    async def list_ids(self) -> List[str]:
        try:
            names = await aiofiles.os.listdir(self.root)
        except FileNotFoundError:
            return []
        return sorted(name for name in names if is_valid_blob_id(name))


class MemoryBlobStore(BlobStore):
    """In-process store. Not durable; used for tests and throwaway sessions."""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}

    async def put(self, data: bytes) -> str:
        payload = _as_bytes(data)
        blob_id = new_blob_id()
        self._blobs[blob_id] = payload
        return blob_id

    async def get(self, blob_id: str) -> bytes:
        try:
            return self._blobs[blob_id]
        except (KeyError, TypeError):
            raise BlobNotFoundError(blob_id)

    async def delete(self, blob_id: str) -> None:
        self._blobs.pop(blob_id, None)

    async def list_ids(self) -> List[str]:
        return sorted(self._blobs)


async def replace_blob(
    store: BlobStore,
    old_id: Optional[str],
    data: bytes,
    commit: Callable[[str], Awaitable[None]],
) -> str:
    """
    Swap the image behind a reference: put new, commit record, delete old.

    Args:
        store: Blob store holding both blobs
        old_id: Id currently referenced by the record (None if there is none)
        data: New image bytes
        commit: Coroutine that durably points the owning record at the new id

    Returns:
        The new blob id

    If put fails nothing has changed. If commit fails the new blob is left
    orphaned and the old reference stays valid. If deleting the old blob
    fails after the commit, the record already points at the new blob and the
    old one is reported as an orphan instead of failing the mutation.
    """
    new_id = await store.put(data)

    try:
        await commit(new_id)
    except Exception:
        logger.error(f"Record commit failed; new blob {new_id} left orphaned, {old_id} kept")
        raise

    if old_id and old_id != new_id:
        try:
            await store.delete(old_id)
        except StoreError as e:
            logger.warning(f"Replaced blob {old_id} could not be deleted and is now orphaned: {e}")

    return new_id
