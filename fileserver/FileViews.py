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
Directory entries formatted for display.

FileView wraps one DirEntry and computes, on demand, everything a listing row shows:
name, href, modification date, MIME type and size. listFiles() and searchFiles() build
the rows of a directory listing or of a recursive filename search.
"""

import mimetypes

from functools import cached_property
from typing import Callable, List, Optional, Tuple
from urllib.parse import quote

from fileserver.Kernel import getLogger
from fileserver.FileSystems import DirEntry, FileHandle, FileSystem, FileSystemError
from fileserver.Paths import ROOT, displayText, joinPath, urlBytes
from fileserver.Sniff import SNIFF_LENGTH, detectContentType
from fileserver.Utils import formatDateModified, formatSize

logger = getLogger(__name__)

DIRECTORY_MIME_TYPE = 'directory'

# Characters a URL path may keep as-is; "?", "#", "%" and spaces are escaped
HREF_SAFE_CHARS = "$&+,/:;=@"

# Built-in table only, so results do not depend on the host's mime.types files
_mimeTypes = mimetypes.MimeTypes()


class WalkCancelled(Exception):
    """Raised when a directory walk is aborted by its shouldStop callback"""
    pass


def fileExtension(name: str) -> str:
    """Return the suffix of the last path element starting at its final ".", or "" if there is none"""
    leaf = name.rsplit('/', 1)[-1]
    index = leaf.rfind('.')
    return leaf[index:] if index >= 0 else ''


def typeByExtension(ext: str) -> str:
    """
    Look ext up in the extension table, first as given and then lower-cased.
    Text types are reported with an explicit utf-8 charset.
    """
    if not ext:
        return ''

    for candidate in (ext, ext.lower()):
        for strict in (True, False):
            ctype = _mimeTypes.types_map[strict].get(candidate)
            if ctype:
                if ctype.startswith('text/') and 'charset=' not in ctype:
                    ctype += '; charset=utf-8'
                return ctype
    return ''


def resolveMimeType(name: str, handle: FileHandle) -> str:
    """
    Resolve the MIME type of an opened regular file: by extension first, otherwise by
    sniffing its first bytes. The handle is rewound to offset 0 afterwards.
    """
    ctype = typeByExtension(fileExtension(name))
    if ctype:
        return ctype

    data = handle.read(SNIFF_LENGTH)
    ctype = detectContentType(data)
    handle.seek(0)
    return ctype


class DeferredOpener:
    """Opens one path of a FileSystem, but only when called"""

    def __init__(self, fileSystem: FileSystem, path: str):
        self.fileSystem = fileSystem
        self.path = path

    def __call__(self) -> FileHandle:
        return self.fileSystem.open(self.path)

    def __repr__(self):
        return f'DeferredOpener({self.path!r})'


class FileView:
    """
    DirEntry wrapper describing a file in a formatted way.

    customName and customHref override the default Name and Href, which use the short
    name of the entry ("my-file" instead of "path/to/my-file").
    """

    def __init__(
        self,
        entry: DirEntry,
        opener: Callable[[], FileHandle],
        customName: Optional[str] = None,
        customHref: Optional[str] = None
    ):
        self.entry = entry
        self.opener = opener
        self.customName = customName
        self.customHref = customHref

    @property
    def isDir(self) -> bool:
        return self.entry.isDir()

    @property
    def name(self) -> str:
        """Canonical name: directories end with "/", regular files never do"""
        name = displayText(self.customName or self.entry.name)
        if self.isDir:
            name += '/'
        return name

    @property
    def href(self) -> str:
        """Relative href with "?", "#" and other URL-significant characters escaped"""
        href = self.customHref or self.entry.name
        if self.isDir:
            href += '/'

        href = quote(urlBytes(href), safe=HREF_SAFE_CHARS)

        # A colon in the first segment would read as a URL scheme
        colon = href.find(':')
        if colon >= 0 and '/' not in href[:colon]:
            href = './' + href
        return href

    @property
    def dateModified(self) -> str:
        """Modification time as 1/2/2006 3:04 PM, or "" if the metadata is unavailable"""
        try:
            modTime = self.entry.info().modTime
        except FileSystemError:
            return ''
        return formatDateModified(modTime) if modTime else ''

    @cached_property
    def mimeType(self) -> str:
        """
        MIME type following the same procedure as file serving: extension first, then
        the first 512 bytes of content. Failing to open or rewind the file gives "".
        """
        if self.isDir:
            return DIRECTORY_MIME_TYPE

        ctype = typeByExtension(fileExtension(self.entry.name))
        if ctype:
            return ctype

        try:
            with self.opener() as handle:
                return resolveMimeType(self.entry.name, handle)
        except FileSystemError as e:
            logger.debug(f'Unable to sniff {self.entry.name}: {e}')
            return ''

    @property
    def size(self) -> str:
        """Formatted size such as "5 B" or "167 MB". A directory has no size."""
        if self.isDir:
            return ''
        try:
            info = self.entry.info()
        except FileSystemError:
            return ''
        return formatSize(info.size)

    def highlight(self, query: str) -> Tuple[str, str, str]:
        """Split the display name around the first occurrence of query"""
        name = self.name
        if not query:
            return name, '', ''
        before, match, after = name.partition(query)
        if not match:
            return name, '', ''
        return before, match, after

    def toDict(self) -> dict:
        return {
            'name': self.name,
            'href': self.href,
            'isDir': self.isDir,
            'dateModified': self.dateModified,
            'mimeType': self.mimeType,
            'size': self.size,
        }

    def __repr__(self):
        return f'FileView({self.name!r})'


def walkDir(
    fileSystem: FileSystem,
    root: str,
    visit: Callable[[str, DirEntry], None],
    shouldStop: Optional[Callable[[], bool]] = None
):
    """
    Call visit(path, entry) for every entry below root (root itself excluded), in name
    order, each directory before its contents. Read errors propagate.
    """

    def walk(path):
        for entry in fileSystem.readDir(path):
            if shouldStop and shouldStop():
                raise WalkCancelled(f'walk of {root} cancelled')

            childPath = joinPath(path, entry.name)
            visit(childPath, entry)
            if entry.isDir():
                walk(childPath)

    walk(root)


def listFiles(fileSystem: FileSystem, dirPath: str) -> List[FileView]:
    """FileViews of the immediate children of dirPath"""
    return [
        FileView(entry, DeferredOpener(fileSystem, joinPath(dirPath, entry.name)))
        for entry in fileSystem.readDir(dirPath)
    ]


def searchFiles(
    fileSystem: FileSystem,
    dirPath: str,
    query: str,
    shouldStop: Optional[Callable[[], bool]] = None
) -> List[FileView]:
    """
    FileViews of every entry below dirPath whose path relative to dirPath contains query
    (case-sensitive). Names and hrefs show the relative path.
    """
    results = []

    def visit(path, entry):
        # Strip off the dirPath prefix unless searching from the root
        relPath = path if dirPath == ROOT else path[len(dirPath) + 1:]
        if query not in relPath:
            return

        results.append(FileView(entry, DeferredOpener(fileSystem, path), customName=relPath, customHref=relPath))

    walkDir(fileSystem, dirPath, visit, shouldStop)
    return results
