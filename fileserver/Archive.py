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
Zip archives of a directory subtree, streamed straight onto a response body.

The subtree is scanned completely before anything is written, so an entry that cannot be
archived (a symlink, a device, an unreadable file or directory) is reported while the
response can still carry an error status. A failure once streaming has started leaves the
archive without its central directory, so the client gets a broken zip instead of a valid
one with files missing.
"""

import time
import zipfile

from datetime import datetime
from typing import BinaryIO, Callable, Dict, List, Optional, Tuple

from fileserver.Kernel import getLogger
from fileserver.Content import contentDisposition
from fileserver.FileSystems import FileSystem, FileSystemError, Stat
from fileserver.FileViews import WalkCancelled, walkDir
from fileserver.Paths import ROOT, displayText
from fileserver.Settings import TRANSFER_CHUNK_SIZE

logger = getLogger(__name__)

ZIP_CONTENT_TYPE = 'application/zip'

# Earliest timestamp a zip entry can carry
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


class ArchiveError(FileSystemError):
    """Raised when a subtree cannot be turned into an archive"""
    pass


class _AbortableStream:
    """
    Write-only wrapper handed to ZipFile. Once aborted every write is dropped, so closing
    the ZipFile cannot finish an archive that failed half way.
    """

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self.aborted = False

    def abort(self):
        self.aborted = True

    def write(self, data) -> int:
        if not self.aborted:
            self._stream.write(data)
        return len(data)

    def flush(self):
        if not self.aborted:
            self._stream.flush()


def _zipDateTime(mtime: Optional[float]) -> Tuple[int, int, int, int, int, int]:
    if mtime is None:
        mtime = time.time()
    dateTime = datetime.fromtimestamp(mtime).timetuple()[:6]
    return max(dateTime, ZIP_EPOCH)


class ArchiveStreamer:
    """
    Serializes the regular files below dirPath into a zip archive named "<name>.zip".

    Usage:
        streamer = ArchiveStreamer(fileSystem, 'b', 'b')
        streamer.prepare()            # may raise ArchiveError, nothing written yet
        streamer.writeTo(response)    # streams the archive
    """

    def __init__(self, fileSystem: FileSystem, dirPath: str, name: str, compression: int = zipfile.ZIP_DEFLATED):
        self.fileSystem = fileSystem
        self.dirPath = dirPath
        self.name = name
        self.compression = compression
        self.members: List[Tuple[str, str, Stat]] = []
        self._prepared = False

    @property
    def contentType(self) -> str:
        return ZIP_CONTENT_TYPE

    @property
    def fileName(self) -> str:
        return f'{self.name}.zip'

    def headers(self) -> Dict[str, str]:
        return {
            'Content-Type': self.contentType,
            'Content-Disposition': contentDisposition(self.fileName),
        }

    def prepare(self, shouldStop: Optional[Callable[[], bool]] = None):
        """Collect the files to archive. Raises ArchiveError on anything that cannot be archived."""
        members = []

        def visit(path, entry):
            if entry.isDir():
                return
            info = entry.info()
            if not info.isRegular:
                raise ArchiveError(f'archive: cannot add non-regular file {path}', op='archive', path=path)

            # Unreadable files fail here, while the response status is still open
            with self.fileSystem.open(path):
                pass

            arcname = displayText(path if self.dirPath == ROOT else path[len(self.dirPath) + 1:])
            members.append((path, arcname, info))

        try:
            walkDir(self.fileSystem, self.dirPath, visit, shouldStop)
        except ArchiveError:
            raise
        except (FileSystemError, WalkCancelled) as e:
            raise ArchiveError(f'archive {self.dirPath}: {e}', op='archive', path=self.dirPath) from e

        self.members = members
        self._prepared = True

        logger.debug(f'Archive {self.fileName}: {len(members)} files')

    def writeTo(self, stream: BinaryIO, shouldStop: Optional[Callable[[], bool]] = None) -> int:
        """
        Write the archive to stream, which does not need to be seekable. Returns the number
        of members written. The central directory is only written once every member is in.
        """
        if not self._prepared:
            self.prepare(shouldStop)

        written = 0
        target = _AbortableStream(stream)
        with zipfile.ZipFile(target, 'w', compression=self.compression) as archive:
            try:
                for path, arcname, info in self.members:
                    if shouldStop and shouldStop():
                        raise WalkCancelled(f'archive of {self.dirPath} cancelled')

                    self._writeMember(archive, path, arcname, info)
                    written += 1
            except Exception:
                target.abort()
                raise

        return written

    def _writeMember(self, archive: zipfile.ZipFile, path: str, arcname: str, info: Stat):
        zinfo = zipfile.ZipInfo(arcname, date_time=_zipDateTime(info.mtime))
        zinfo.compress_type = self.compression
        zinfo.external_attr = (info.mode & 0xFFFF) << 16
        zinfo.file_size = info.size

        with self.fileSystem.open(path) as source:
            with archive.open(zinfo, 'w', force_zip64=info.size >= zipfile.ZIP64_LIMIT) as dest:
                while True:
                    chunk = source.read(TRANSFER_CHUNK_SIZE)
                    if not chunk:
                        break
                    dest.write(chunk)
