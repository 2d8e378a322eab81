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
URL path handling.

Turns request paths into root-relative paths usable against a FileSystem and builds the
breadcrumb trail shown above a directory listing.
"""

from dataclasses import dataclass
from typing import List

ROOT = '.'


@dataclass(frozen=True)
class Breadcrumb:
    name: str
    href: str


def cleanPath(path: str) -> str:
    """
    Lexically clean a slash separated path.

    Collapses duplicate separators, drops "." elements and resolves ".." against the
    preceding element. A rooted path never climbs above "/", a relative one keeps its
    leading "..". An empty result becomes ".".
    """
    if not path:
        return ROOT

    rooted = path.startswith('/')
    parts = []

    for part in path.split('/'):
        if part in ('', '.'):
            continue
        if part == '..':
            if parts and parts[-1] != '..':
                parts.pop()
            elif not rooted:
                parts.append('..')
            continue
        parts.append(part)

    cleaned = '/'.join(parts)
    if rooted:
        return '/' + cleaned
    return cleaned or ROOT


def canonicalize(urlPath: str) -> str:
    """
    Turn a URL path such as "/path/to/file/" into "path/to/file" for use with a FileSystem.
    As a special case, the root path "/" becomes ".".
    """
    # Always re-root, so already canonical input (no leading "/") maps to itself
    cleaned = cleanPath('/' + urlPath)
    if cleaned == '/':
        return ROOT
    return cleaned[1:]


def isValidPath(path: str) -> bool:
    """
    Report whether path is acceptable to a FileSystem: unrooted, slash separated, no empty,
    "." or ".." elements, and "." alone for the root.
    """
    if not isinstance(path, str):
        return False
    if path == ROOT:
        return True
    if not path:
        return False
    return all(part not in ('', '.', '..') for part in path.split('/'))


def urlBytes(path: str) -> bytes:
    """
    UTF-8 bytes of path for percent-escaping. Bytes of a host file name that is not valid
    UTF-8 (surrogate escaped by the os module) come back unchanged.
    """
    return path.encode('utf-8', 'surrogateescape')


def displayText(text: str) -> str:
    """text with every undecodable file name byte shown as U+FFFD, safe to encode as UTF-8"""
    return urlBytes(text).decode('utf-8', 'replace')


def joinPath(parent: str, name: str) -> str:
    if parent == ROOT:
        return name
    return f'{parent}/{name}'


def baseName(path: str) -> str:
    cleaned = cleanPath(path).rstrip('/')
    if not cleaned:
        return '/'
    return cleaned.rsplit('/', 1)[-1]


def makeBreadcrumbs(urlPath: str) -> List[Breadcrumb]:
    """
    Build the navigation trail from "/" down to urlPath.

    Hrefs are relative ("." for the current directory, "./.." for its parent and so on) so the
    page works at any depth without absolute links.
    """
    # urlPath always has a leading / and no trailing / after cleaning
    urlPath = cleanPath(urlPath)
    if urlPath == '/':
        return [Breadcrumb(name='/', href=ROOT)]

    breadcrumbs = []
    href = ROOT
    for part in reversed(urlPath.split('/')):
        breadcrumbs.append(Breadcrumb(name=displayText(part) + '/', href=href))
        href += '/..'

    breadcrumbs.reverse()
    return breadcrumbs
