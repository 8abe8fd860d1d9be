#!/usr/bin/env python3
"""
Document Store for FOLIO

Filesystem operations on the flat directory of documents. Every call
touches the disk directly; nothing is cached, so the store always reflects
the current directory contents.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import List, Union

import aiofiles
import aiofiles.os

from cms_errors import AlreadyExists, InvalidInput, NotFound, TooLarge
from doc_names import sanitize, split_extension

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_SIZE = 1_500_000
COPY_SUFFIX = "_copy"


class DocumentStore:
    """
    Documents stored as regular files directly under one data directory.

    Names are resolved strictly inside the data directory: no separators,
    no hidden files, no parent references.
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    def _path(self, name: str) -> Path:
        """Resolve a document name to its path inside the data directory"""
        if (
            not name
            or name.startswith('.')
            or '/' in name
            or '\\' in name
            or '\x00' in name
        ):
            raise InvalidInput(f"{name!r} is not a valid document name.")

        path = self.data_dir / name
        if path.resolve().parent != self.data_dir.resolve():
            raise InvalidInput(f"{name!r} is not a valid document name.")
        return path

    def list_documents(self) -> List[str]:
        """Scan the data directory and return document names in order"""
        if not self.data_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.data_dir.iterdir()
            if entry.is_file() and not entry.name.startswith('.')
        )

    def exists(self, name: str) -> bool:
        return self._path(name).is_file()

    async def read(self, name: str) -> bytes:
        path = self._path(name)
        if not path.is_file():
            raise NotFound(name)
        async with aiofiles.open(path, 'rb') as f:
            return await f.read()

    async def create(self, name: str, content: bytes = b"") -> str:
        """Create a new document under the sanitized name"""
        stored = sanitize(name)
        path = self._path(stored)
        if path.exists():
            raise AlreadyExists(stored)

        self.data_dir.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, 'xb') as f:
            await f.write(content)

        logger.info(f"Created document {stored} ({len(content)} bytes)")
        return stored

    async def write(self, name: str, content: bytes):
        """Overwrite a document's content, creating it if needed"""
        path = self._path(name)
        async with aiofiles.open(path, 'wb') as f:
            await f.write(content)
        logger.info(f"Wrote document {name} ({len(content)} bytes)")

    async def rename(self, old: str, new: str) -> str:
        """Move a document to the sanitized new name, keeping its content"""
        old_path = self._path(old)
        if not old_path.is_file():
            raise NotFound(old)

        stored = sanitize(new)
        new_path = self._path(stored)
        if new_path.exists():
            raise AlreadyExists(stored)

        await aiofiles.os.rename(old_path, new_path)
        logger.info(f"Renamed document {old} -> {stored}")
        return stored

    async def duplicate(self, name: str) -> str:
        """Copy a document to <base>_copy<ext>"""
        content = await self.read(name)
        base, extension = split_extension(name)
        copy_name = f"{base}{COPY_SUFFIX}{extension}"

        copy_path = self._path(copy_name)
        if copy_path.exists():
            raise AlreadyExists(copy_name)

        async with aiofiles.open(copy_path, 'xb') as f:
            await f.write(content)

        logger.info(f"Duplicated document {name} -> {copy_name}")
        return copy_name

    async def delete(self, name: str):
        path = self._path(name)
        if not path.is_file():
            raise NotFound(name)
        await aiofiles.os.remove(path)
        logger.info(f"Deleted document {name}")

    async def move_uploaded(
        self,
        temp_path: Union[str, Path],
        final_name: str,
        max_size: int = DEFAULT_MAX_UPLOAD_SIZE
    ) -> str:
        """
        Move an uploaded temporary file into the store.

        The size limit is checked before anything else; on any failure the
        temporary file is left where it is.

        Args:
            temp_path: Path of the received upload
            final_name: Requested document name (sanitized here)
            max_size: Uploads of this many bytes or more are rejected

        Returns:
            The stored document name
        """
        temp_path = Path(temp_path)
        size = (await aiofiles.os.stat(temp_path)).st_size
        if size >= max_size:
            raise TooLarge(size, max_size)

        stored = sanitize(final_name)
        target = self._path(stored)
        if target.exists():
            raise AlreadyExists(stored, "That file already exists.")

        self.data_dir.mkdir(parents=True, exist_ok=True)
        # shutil.move handles a temp directory on another filesystem
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, shutil.move, str(temp_path), str(target))

        logger.info(f"Stored upload {stored} ({size} bytes)")
        return stored
