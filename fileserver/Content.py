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
HTTP helpers for serving the content of a regular file: byte ranges, conditional
requests, multipart/byteranges bodies and Content-Disposition values.
"""

import re
import uuid

from dataclasses import dataclass
from email.utils import formatdate, parsedate_to_datetime
from http import HTTPStatus
from typing import Iterator, List, Optional, Tuple
from urllib.parse import quote

from fileserver.Kernel import getLogger
from fileserver.Paths import displayText

logger = getLogger(__name__)

_DIGITS = re.compile(r'^[0-9]+$')
_UNSAFE_FILENAME_CHARS = re.compile(r'[\\"\x00-\x1f\x7f]')


class RangeError(ValueError):
    """Raised for a Range header that is malformed or does not overlap the content"""

    def __init__(self, message, noOverlap=False):
        super().__init__(message)
        self.noOverlap = noOverlap


@dataclass(frozen=True)
class ByteRange:
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length - 1

    def contentRange(self, size: int) -> str:
        return f'bytes {self.start}-{self.end}/{size}'


def httpDate(timestamp: float) -> str:
    return formatdate(int(timestamp), usegmt=True)


def parseHttpDate(value: str) -> Optional[int]:
    """Parse an HTTP date into a unix timestamp (seconds), or None if it is not a date"""
    try:
        return int(parsedate_to_datetime(value).timestamp())
    except (TypeError, ValueError, IndexError, OverflowError):
        return None


def parseRange(header: str, size: int) -> List[ByteRange]:
    """
    Parse a Range header ("bytes=0-4,10-", "bytes=-500") against content of size bytes.

    Ranges starting past the end are skipped; if that leaves nothing, RangeError is raised
    with noOverlap set. Malformed headers raise RangeError.
    """
    if not header:
        return []
    if not header.startswith('bytes='):
        raise RangeError('invalid range')

    ranges = []
    noOverlap = False

    for part in header[len('bytes='):].split(','):
        part = part.strip(' \t')
        if not part:
            continue

        start, sep, end = part.partition('-')
        if not sep:
            raise RangeError('invalid range')
        start, end = start.strip(' \t'), end.strip(' \t')

        if not start:
            # Suffix range: the last N bytes
            if not _DIGITS.match(end):
                raise RangeError('invalid range')
            length = min(int(end), size)
            ranges.append(ByteRange(size - length, length))
            continue

        if not _DIGITS.match(start):
            raise RangeError('invalid range')
        first = int(start)
        if first >= size:
            # The range begins after the end of the content
            noOverlap = True
            continue

        if not end:
            ranges.append(ByteRange(first, size - first))
            continue

        if not _DIGITS.match(end):
            raise RangeError('invalid range')
        last = int(end)
        if first > last:
            raise RangeError('invalid range')
        last = min(last, size - 1)
        ranges.append(ByteRange(first, last - first + 1))

    if noOverlap and not ranges:
        raise RangeError('invalid range: failed to overlap', noOverlap=True)
    return ranges


def _etagList(value: str) -> List[str]:
    return [tag.strip() for tag in value.split(',') if tag.strip()]


def checkPreconditions(method: str, headers, mtime: Optional[float]) -> Tuple[Optional[HTTPStatus], str]:
    """
    Evaluate the conditional request headers for content last modified at mtime.

    Returns (status, rangeHeader): status is NOT_MODIFIED or PRECONDITION_FAILED when the
    request must be answered without content, None otherwise. rangeHeader is the Range
    header still worth honoring ("" once If-Range rules it out).
    """
    modified = int(mtime) if mtime else None
    safeMethod = method in ('GET', 'HEAD')

    # Served content has no entity tag, so only "*" can match
    ifMatch = headers.get('If-Match')
    if ifMatch:
        if '*' not in _etagList(ifMatch):
            return HTTPStatus.PRECONDITION_FAILED, ''
    else:
        ifUnmodifiedSince = headers.get('If-Unmodified-Since')
        if ifUnmodifiedSince and modified is not None:
            since = parseHttpDate(ifUnmodifiedSince)
            if since is not None and modified > since:
                return HTTPStatus.PRECONDITION_FAILED, ''

    ifNoneMatch = headers.get('If-None-Match')
    if ifNoneMatch:
        if '*' in _etagList(ifNoneMatch):
            if safeMethod:
                return HTTPStatus.NOT_MODIFIED, ''
            return HTTPStatus.PRECONDITION_FAILED, ''
    else:
        ifModifiedSince = headers.get('If-Modified-Since')
        if safeMethod and ifModifiedSince and modified is not None:
            since = parseHttpDate(ifModifiedSince)
            if since is not None and modified <= since:
                return HTTPStatus.NOT_MODIFIED, ''

    rangeHeader = headers.get('Range') or ''
    ifRange = headers.get('If-Range')
    if rangeHeader and safeMethod and ifRange:
        if ifRange.startswith(('"', 'W/')):
            rangeHeader = ''
        else:
            since = parseHttpDate(ifRange)
            if since is None or modified != since:
                rangeHeader = ''

    return None, rangeHeader


class MultipartRanges:
    """Body of a multipart/byteranges response, with its exact length known up front"""

    def __init__(self, ranges: List[ByteRange], size: int, contentType: str):
        self.ranges = ranges
        self.size = size
        self.boundary = uuid.uuid4().hex
        self.parts = []

        for index, byteRange in enumerate(ranges):
            lead = b'' if index == 0 else b'\r\n'
            header = (
                f'--{self.boundary}\r\n'
                f'Content-Range: {byteRange.contentRange(size)}\r\n'
                f'Content-Type: {contentType}\r\n\r\n'
            )
            self.parts.append((lead + header.encode('latin-1'), byteRange))

        self.trailer = f'\r\n--{self.boundary}--\r\n'.encode('latin-1')

    @property
    def contentType(self) -> str:
        return f'multipart/byteranges; boundary={self.boundary}'

    @property
    def length(self) -> int:
        return sum(len(header) + byteRange.length for header, byteRange in self.parts) + len(self.trailer)

    def iterChunks(self, handle, chunkSize: int) -> Iterator[bytes]:
        for header, byteRange in self.parts:
            yield header
            handle.seek(byteRange.start)
            yield from iterRange(handle, byteRange.length, chunkSize)
        yield self.trailer


def iterRange(handle, length: int, chunkSize: int) -> Iterator[bytes]:
    """Read exactly length bytes from the current position of handle, in chunks"""
    remaining = length
    while remaining > 0:
        chunk = handle.read(min(chunkSize, remaining))
        if not chunk:
            break
        remaining -= len(chunk)
        yield chunk


def contentDisposition(filename: str) -> str:
    """
    attachment; filename="<name>", with an RFC 5987 filename* added when the name is not
    plain ASCII so the header stays encodable.
    """
    filename = displayText(filename)
    fallback = _UNSAFE_FILENAME_CHARS.sub('_', filename)
    try:
        fallback.encode('ascii')
    except UnicodeEncodeError:
        asciiName = fallback.encode('ascii', 'replace').decode('ascii')
        return f'attachment; filename="{asciiName}"; filename*=UTF-8\'\'{quote(filename, safe="")}'
    return f'attachment; filename="{fallback}"'
