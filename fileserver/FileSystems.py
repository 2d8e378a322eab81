#!/usr/bin/env python
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0
#
# FileServer - Browse, search and download directory trees over HTTP
# Copyright (C) 2025-2026 FileServer contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
FileSystem abstraction for the HTTP file server.

Provides a capability based interface over a directory tree:
- FileSystem: read capability (open, readDir)
- WriterFileSystem: adds mkdir, remove, rename and writeFile

Implementations:
- LocalFileSystem: a directory on the host (wraps os.* calls)
- MemoryFileSystem: an in-memory tree, deterministic for tests
- ReadOnlyFileSystem: wraps another FileSystem, every mutation fails

Every path handed to a FileSystem is root relative and must satisfy isValidPath(), the
top of the tree being ".". Invalid paths are rejected before reaching the storage.
"""

import io
import os
import time
import errno
import shutil
import threading
import stat as _stat

from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Callable, Dict, List, Optional, Protocol, Union

from fileserver.Kernel import getLogger
from fileserver.Paths import ROOT, isValidPath, joinPath

logger = getLogger(__name__)

DEFAULT_DIR_PERM = 0o755
DEFAULT_FILE_PERM = 0o644


class FileSystemError(Exception):
    """Base exception for FileSystem failures"""

    def __init__(self, message, op=None, path=None):
        super().__init__(message)
        self.op = op
        self.path = path


class InvalidPathError(FileSystemError):
    """Raised when a path does not satisfy isValidPath()"""
    pass


class NotFoundError(FileSystemError):
    """Raised when the requested path does not exist"""
    pass


class AlreadyExistsError(FileSystemError):
    """Raised when a non-clobbering mutation finds its destination already present"""
    pass


class NoWritableRootError(FileSystemError):
    """Raised when a mutation is attempted on a FileSystem without a writable root"""
    pass


def _checkPath(op, path):
    if not isValidPath(path):
        raise InvalidPathError(f'{op} {path}: invalid argument', op=op, path=path)


def _translateOSError(op, path, error: OSError) -> FileSystemError:
    """Map an OSError to the FileSystemError family, keeping host details out of the message"""
    logger.debug(f'{op} {path} failed: {error}')

    if isinstance(error, (FileNotFoundError, NotADirectoryError)):
        return NotFoundError(f'{op} {path}: file does not exist', op=op, path=path)
    if isinstance(error, FileExistsError):
        return AlreadyExistsError(f'{op} {path}: file already exists', op=op, path=path)
    return FileSystemError(f'{op} {path}: {errno.errorcode.get(error.errno, "error")}', op=op, path=path)


@dataclass
class Stat:
    """File/directory metadata"""
    name: str
    size: int
    mtime: Optional[float]
    mode: int

    @property
    def isDir(self) -> bool:
        return _stat.S_ISDIR(self.mode)

    @property
    def isRegular(self) -> bool:
        return _stat.S_ISREG(self.mode)

    @property
    def modTime(self) -> Optional[datetime]:
        if self.mtime is None:
            return None
        return datetime.fromtimestamp(self.mtime)


class DirEntry:
    """
    One child of a directory. The type is known up front, the full metadata is
    fetched lazily by info() and may fail.
    """

    def __init__(self, name: str, isDir: bool, infoFunc: Callable[[], Stat]):
        self.name = name
        self._isDir = isDir
        self._infoFunc = infoFunc

    def isDir(self) -> bool:
        return self._isDir

    def info(self) -> Stat:
        return self._infoFunc()

    def __repr__(self):
        return f'DirEntry({self.name!r}, isDir={self._isDir})'


class FileHandle:
    """
    An opened path. Directories have no stream; regular files are readable and seekable.
    Always use as a context manager so the underlying stream is released on every path.
    """

    def __init__(self, name: str, statFunc: Callable[[], Stat], stream: Optional[BinaryIO] = None):
        self.name = name
        self._statFunc = statFunc
        self._stream = stream
        self.closed = False

    def stat(self) -> Stat:
        return self._statFunc()

    def _requireStream(self, op):
        if self.closed:
            raise FileSystemError(f'{op} {self.name}: file already closed', op=op, path=self.name)
        if self._stream is None:
            raise FileSystemError(f'{op} {self.name}: is a directory', op=op, path=self.name)
        return self._stream

    def readable(self) -> bool:
        return self._stream is not None and not self.closed

    def seekable(self) -> bool:
        return self.readable()

    def read(self, size: int = -1) -> bytes:
        stream = self._requireStream('read')
        try:
            return stream.read(size)
        except OSError as e:
            raise _translateOSError('read', self.name, e)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        stream = self._requireStream('seek')
        try:
            return stream.seek(offset, whence)
        except OSError as e:
            raise _translateOSError('seek', self.name, e)

    def tell(self) -> int:
        return self._requireStream('tell').tell()

    def close(self):
        if self.closed:
            return
        self.closed = True
        if self._stream is not None:
            self._stream.close()

    def __enter__(self):
        return self

    def __exit__(self, excType, excValue, traceback):
        self.close()


class FileSystem(Protocol):
    """Read capability that every implementation must follow"""

    def rootName(self) -> str:
        ...

    def open(self, path: str) -> FileHandle:
        ...

    def readDir(self, path: str) -> List[DirEntry]:
        ...


class WriterFileSystem(FileSystem, Protocol):
    """FileSystem that can also change the underlying storage"""

    def mkdir(self, path: str, perm: int = DEFAULT_DIR_PERM) -> None:
        ...

    def remove(self, path: str) -> None:
        ...

    def rename(self, oldPath: str, newPath: str) -> None:
        ...

    def writeFile(self, path: str, data: bytes, perm: int = DEFAULT_FILE_PERM) -> None:
        ...


class LocalFileSystem:
    """
    Local filesystem backend.

    Wraps os.* calls to provide the WriterFileSystem interface for a host directory.
    Mutations follow the same path rules as open(), even though the os functions
    would accept more.
    """

    def __init__(self, root: str):
        """
        Initialize LocalFileSystem.

        Args:
            root: Absolute or relative path to root directory

        Raises:
            ValueError: If root is empty
        """
        if not root:
            raise ValueError('LocalFileSystem requires a root directory')

        self.root = os.path.abspath(root)

        logger.debug(f"LocalFileSystem initialized: {self.root}")

    def rootName(self) -> str:
        """Get root directory name"""
        return os.path.basename(self.root.rstrip(os.sep)) or "folder"

    def _fullPath(self, path: str) -> str:
        if path == ROOT:
            return self.root
        return os.path.join(self.root, *path.split('/'))

    def _statFunc(self, path: str, fullPath: str, follow: bool = True):

        def statFunc():
            try:
                st = os.stat(fullPath, follow_symlinks=follow)
            except OSError as e:
                raise _translateOSError('stat', path, e)
            name = self.rootName() if path == ROOT else path.rsplit('/', 1)[-1]
            return Stat(name=name, size=int(st.st_size), mtime=float(st.st_mtime), mode=st.st_mode)

        return statFunc

    def open(self, path: str) -> FileHandle:
        _checkPath('open', path)
        fullPath = self._fullPath(path)

        if os.path.isdir(fullPath):
            return FileHandle(path, self._statFunc(path, fullPath))

        try:
            stream = open(fullPath, 'rb')
        except OSError as e:
            raise _translateOSError('open', path, e)

        def statFunc():
            try:
                st = os.fstat(stream.fileno())
            except (OSError, ValueError) as e:
                raise FileSystemError(f'stat {path}: {e.__class__.__name__}', op='stat', path=path)
            return Stat(name=path.rsplit('/', 1)[-1], size=int(st.st_size), mtime=float(st.st_mtime), mode=st.st_mode)

        return FileHandle(path, statFunc, stream)

    def readDir(self, path: str) -> List[DirEntry]:
        _checkPath('readdir', path)
        fullPath = self._fullPath(path)

        entries = []
        try:
            with os.scandir(fullPath) as it:
                for entry in it:
                    entryPath = joinPath(path, entry.name)
                    isDir = entry.is_dir(follow_symlinks=False)
                    entries.append(DirEntry(entry.name, isDir, self._statFunc(entryPath, entry.path, follow=False)))
        except OSError as e:
            raise _translateOSError('readdir', path, e)

        entries.sort(key=lambda e: e.name)
        return entries

    def _exists(self, path: str) -> bool:
        return os.path.lexists(self._fullPath(path))

    def mkdir(self, path: str, perm: int = DEFAULT_DIR_PERM) -> None:
        _checkPath('mkdir', path)
        # The directory (or any of its parents) already existing is NOT an error
        try:
            os.makedirs(self._fullPath(path), perm, exist_ok=True)
        except OSError as e:
            raise _translateOSError('mkdir', path, e)

    def remove(self, path: str) -> None:
        _checkPath('remove', path)
        if path == ROOT:
            raise InvalidPathError('remove .: cannot remove the root', op='remove', path=path)

        # Removing a nonexistent path is NOT an error
        fullPath = self._fullPath(path)
        try:
            if os.path.isdir(fullPath) and not os.path.islink(fullPath):
                shutil.rmtree(fullPath)
            else:
                os.remove(fullPath)
        except FileNotFoundError:
            return
        except OSError as e:
            raise _translateOSError('remove', path, e)

    def rename(self, oldPath: str, newPath: str) -> None:
        """Move oldPath to newPath, unlike os.rename this never replaces an existing newPath"""
        _checkPath('rename', oldPath)
        _checkPath('rename', newPath)
        if ROOT in (oldPath, newPath):
            raise InvalidPathError('rename: cannot rename the root', op='rename', path=oldPath)

        if self._exists(newPath):
            raise AlreadyExistsError(
                f'rename {oldPath} {newPath}: file already exists', op='rename', path=newPath
            )
        if not self._exists(oldPath):
            raise NotFoundError(f'rename {oldPath}: file does not exist', op='rename', path=oldPath)

        try:
            os.rename(self._fullPath(oldPath), self._fullPath(newPath))
        except OSError as e:
            raise _translateOSError('rename', oldPath, e)

    def writeFile(self, path: str, data: bytes, perm: int = DEFAULT_FILE_PERM) -> None:
        """Create path holding data, unlike open(..., 'wb') this never truncates an existing file"""
        _checkPath('writefile', path)
        if self._exists(path):
            raise AlreadyExistsError(f'writefile {path}: file already exists', op='writefile', path=path)

        # O_EXCL fails if the file appeared after the check above
        flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, 'O_BINARY', 0)
        try:
            fd = os.open(self._fullPath(path), flags, perm)
        except OSError as e:
            raise _translateOSError('writefile', path, e)

        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
        except OSError as e:
            raise _translateOSError('writefile', path, e)


@dataclass
class MemoryEntry:
    """One node of a MemoryFileSystem"""
    data: bytes = b''
    mode: int = _stat.S_IFREG | DEFAULT_FILE_PERM
    mtime: float = field(default_factory=time.time)

    @classmethod
    def directory(cls, perm: int = DEFAULT_DIR_PERM, mtime: Optional[float] = None):
        return cls(mode=_stat.S_IFDIR | perm, mtime=time.time() if mtime is None else mtime)

    @property
    def isDir(self) -> bool:
        return _stat.S_ISDIR(self.mode)


class MemoryFileSystem:
    """
    In-memory WriterFileSystem.

    Built from a mapping of path to content. Values may be bytes (a regular file), a
    MemoryEntry, or None for a directory; a key ending with "/" is a directory as well.
    Missing parent directories are synthesized.

        MemoryFileSystem({'a': b'a', 'b/c': b'b/c', 'd/': None})
    """

    def __init__(self, files: Optional[Dict[str, Union[bytes, MemoryEntry, None]]] = None, name: str = 'folder'):
        self._name = name
        self._lock = threading.RLock()
        self._entries: Dict[str, MemoryEntry] = {ROOT: MemoryEntry.directory()}

        for path, value in (files or {}).items():
            isDir = path.endswith('/') or value is None
            path = path.rstrip('/')
            _checkPath('create', path)

            if isinstance(value, MemoryEntry):
                entry = value
            elif isDir:
                entry = MemoryEntry.directory()
            else:
                entry = MemoryEntry(data=bytes(value))

            existing = self._entries.get(path)
            if existing is not None and existing.isDir and not entry.isDir:
                raise FileSystemError(f'create {path}: is a directory', op='create', path=path)

            self._makeParents(path)
            self._entries[path] = entry

    def rootName(self) -> str:
        return self._name

    @staticmethod
    def _parentOf(path: str) -> str:
        return path.rsplit('/', 1)[0] if '/' in path else ROOT

    def _makeParents(self, path: str):
        parent = self._parentOf(path)
        while parent != ROOT:
            entry = self._entries.get(parent)
            if entry is None:
                self._entries[parent] = MemoryEntry.directory()
            elif not entry.isDir:
                raise FileSystemError(f'create {path}: {parent} is not a directory', op='create', path=path)
            parent = self._parentOf(parent)

    def _children(self, path: str) -> List[str]:
        prefix = '' if path == ROOT else path + '/'
        return [p for p in self._entries if p != ROOT and p.startswith(prefix) and '/' not in p[len(prefix):]]

    def _descendants(self, path: str) -> List[str]:
        prefix = path + '/'
        return [p for p in self._entries if p.startswith(prefix)]

    def _statFunc(self, path: str, entry: MemoryEntry):

        def statFunc():
            name = self._name if path == ROOT else path.rsplit('/', 1)[-1]
            size = 0 if entry.isDir else len(entry.data)
            return Stat(name=name, size=size, mtime=entry.mtime, mode=entry.mode)

        return statFunc

    def _lookup(self, op: str, path: str) -> MemoryEntry:
        entry = self._entries.get(path)
        if entry is None:
            raise NotFoundError(f'{op} {path}: file does not exist', op=op, path=path)
        return entry

    def open(self, path: str) -> FileHandle:
        _checkPath('open', path)
        with self._lock:
            entry = self._lookup('open', path)

        if entry.isDir:
            return FileHandle(path, self._statFunc(path, entry))
        return FileHandle(path, self._statFunc(path, entry), io.BytesIO(entry.data))

    def readDir(self, path: str) -> List[DirEntry]:
        _checkPath('readdir', path)
        with self._lock:
            entry = self._lookup('readdir', path)
            if not entry.isDir:
                raise FileSystemError(f'readdir {path}: not a directory', op='readdir', path=path)

            entries = []
            for childPath in sorted(self._children(path)):
                child = self._entries[childPath]
                name = childPath.rsplit('/', 1)[-1]
                entries.append(DirEntry(name, child.isDir, self._statFunc(childPath, child)))

        return entries

    def mkdir(self, path: str, perm: int = DEFAULT_DIR_PERM) -> None:
        _checkPath('mkdir', path)
        with self._lock:
            parts = [] if path == ROOT else path.split('/')
            current = ROOT
            for part in parts:
                current = joinPath(current, part)
                entry = self._entries.get(current)
                if entry is None:
                    self._entries[current] = MemoryEntry.directory(perm)
                elif not entry.isDir:
                    raise FileSystemError(f'mkdir {path}: not a directory', op='mkdir', path=path)

    def remove(self, path: str) -> None:
        _checkPath('remove', path)
        if path == ROOT:
            raise InvalidPathError('remove .: cannot remove the root', op='remove', path=path)

        with self._lock:
            for p in self._descendants(path) + [path]:
                self._entries.pop(p, None)

    def rename(self, oldPath: str, newPath: str) -> None:
        _checkPath('rename', oldPath)
        _checkPath('rename', newPath)
        if ROOT in (oldPath, newPath) or newPath.startswith(oldPath + '/'):
            raise InvalidPathError(f'rename {oldPath} {newPath}: invalid argument', op='rename', path=oldPath)

        with self._lock:
            if newPath in self._entries:
                raise AlreadyExistsError(
                    f'rename {oldPath} {newPath}: file already exists', op='rename', path=newPath
                )
            entry = self._lookup('rename', oldPath)
            parent = self._entries.get(self._parentOf(newPath))
            if parent is None or not parent.isDir:
                raise NotFoundError(f'rename {newPath}: parent does not exist', op='rename', path=newPath)

            for p in self._descendants(oldPath):
                self._entries[newPath + p[len(oldPath):]] = self._entries.pop(p)
            del self._entries[oldPath]
            self._entries[newPath] = entry

    def writeFile(self, path: str, data: bytes, perm: int = DEFAULT_FILE_PERM) -> None:
        _checkPath('writefile', path)
        with self._lock:
            if path in self._entries:
                raise AlreadyExistsError(f'writefile {path}: file already exists', op='writefile', path=path)
            parent = self._entries.get(self._parentOf(path))
            if parent is None or not parent.isDir:
                raise NotFoundError(f'writefile {path}: parent does not exist', op='writefile', path=path)

            self._entries[path] = MemoryEntry(data=bytes(data), mode=_stat.S_IFREG | perm)


class ReadOnlyFileSystem:
    """
    Exposes the read capability of another FileSystem. Every mutation fails with
    NoWritableRootError, so a read-only deployment needs no change in the server.
    """

    def __init__(self, fileSystem: FileSystem):
        self._fileSystem = fileSystem

    def rootName(self) -> str:
        return self._fileSystem.rootName()

    def open(self, path: str) -> FileHandle:
        return self._fileSystem.open(path)

    def readDir(self, path: str) -> List[DirEntry]:
        return self._fileSystem.readDir(path)

    def _denied(self, op, path):
        raise NoWritableRootError(f'{op} {path}: filesystem has no writable root', op=op, path=path)

    def mkdir(self, path: str, perm: int = DEFAULT_DIR_PERM) -> None:
        self._denied('mkdir', path)

    def remove(self, path: str) -> None:
        self._denied('remove', path)

    def rename(self, oldPath: str, newPath: str) -> None:
        self._denied('rename', oldPath)

    def writeFile(self, path: str, data: bytes, perm: int = DEFAULT_FILE_PERM) -> None:
        self._denied('writefile', path)
