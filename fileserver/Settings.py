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

import os

from fileserver.Kernel import Singleton, getLogger
from fileserver.Utils import getEnv

DEFAULT_STATIC_ROOT = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'static')
DEFAULT_CONTENT_ROOT = os.getenv('FILESERVER_ROOT', './content')
DEFAULT_HOST = os.getenv('FILESERVER_HOST', '127.0.0.1')
DEFAULT_PORT = getEnv('FILESERVER_PORT', 8080)

# Transfer chunk size (256 KiB) - used for file bodies and archive members
TRANSFER_CHUNK_SIZE = getEnv('TRANSFER_CHUNK_SIZE', 256 * 1024)

DIRECTORY_TEMPLATE = 'dirlist.html'
STYLESHEET = 'styles.css'

logger = getLogger(__name__)


# Singleton
class SettingsGetter(Singleton):
    """
    Process-wide configuration. Initialized exactly once during bootstrap, before the
    server accepts requests, and treated as read-only afterwards.
    """

    @classmethod
    def getInstance(cls):
        if cls not in cls._instances:
            raise RuntimeError('Get SettingsGetter before initialized it.')
        return cls._instances[cls]

    def initialize(
        self,
        baseDir=DEFAULT_CONTENT_ROOT,
        staticRoot=DEFAULT_STATIC_ROOT,
        host=DEFAULT_HOST,
        port=DEFAULT_PORT,
        readOnly=False,
    ):
        """Initialize the SettingsGetter with content root, static root and listen address."""
        self._baseDir = baseDir
        self._staticRoot = staticRoot
        self._host = host
        self._port = port
        self._readOnly = readOnly

        logger.debug(f'Settings initialized: baseDir={baseDir}, staticRoot={staticRoot}, {host}:{port}')

    @property
    def baseDir(self):
        return self._baseDir

    @property
    def staticRoot(self):
        return self._staticRoot

    @property
    def host(self):
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def readOnly(self) -> bool:
        return self._readOnly

    def getTemplatePath(self):
        return os.path.join(self._staticRoot, DIRECTORY_TEMPLATE)
