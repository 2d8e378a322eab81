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
import sys
import signal

from fileserver.Kernel import getLogger
from fileserver.CLI import configureCLIParser, configureLogging, loadEnvFile, showVersion
from fileserver.FileSystems import FileSystemError, LocalFileSystem, ReadOnlyFileSystem
from fileserver.Server import createServer
from fileserver.Settings import DEFAULT_STATIC_ROOT, SettingsGetter
from fileserver.Utils import flushPrint

logger = getLogger(__name__)


def setupGracefulShutdown():
    """Setup signal handlers for graceful shutdown on multiple Ctrl+C"""
    context = {'shutdownInProgress': False}

    def signalHandler(signum, frame):
        if context['shutdownInProgress']:
            # Second Ctrl+C - force immediate exit without cleanup messages
            os._exit(0)
        else:
            # First Ctrl+C - set flag and raise KeyboardInterrupt normally
            context['shutdownInProgress'] = True
            raise KeyboardInterrupt()

    signal.signal(signal.SIGINT, signalHandler)


def prepareContentRoot(root):
    """Create the content root if needed. Returns True when it already existed."""
    try:
        os.mkdir(root, 0o750)
    except FileExistsError:
        logger.info(f'Using existing {root} dir')
        return True

    logger.info(f'Created new {root} dir')
    return False


def setupSettings(args):
    return SettingsGetter(
        baseDir=os.path.abspath(args.root),
        staticRoot=DEFAULT_STATIC_ROOT,
        host=args.host,
        port=args.port,
        readOnly=args.readOnly,
    )


def createFileSystem(settingsGetter):
    fileSystem = LocalFileSystem(settingsGetter.baseDir)
    if settingsGetter.readOnly:
        return ReadOnlyFileSystem(fileSystem)
    return fileSystem


def runServer(settingsGetter):
    prepareContentRoot(settingsGetter.baseDir)

    server = createServer(
        createFileSystem(settingsGetter),
        host=settingsGetter.host,
        port=settingsGetter.port,
        staticRoot=settingsGetter.staticRoot,
    )
    flushPrint(f'Serving {settingsGetter.baseDir} at {server.url}')

    try:
        server.start()
    except KeyboardInterrupt:
        flushPrint('\nExiting on user request (Ctrl+C)...')
    finally:
        server.stop = True
        server.server_close()

    return 0


def main(argv=None):
    # Load .env file early, before the parser reads its defaults from the environment
    loadEnvFile()

    parser = configureCLIParser()
    args = parser.parse_args(argv)

    configureLogging(args.logLevel)

    if args.version:
        showVersion()
        return 0

    setupGracefulShutdown()
    settingsGetter = setupSettings(args)

    try:
        return runServer(settingsGetter)
    except (OSError, FileSystemError) as e:
        logger.error(f'Unable to serve {settingsGetter.baseDir}: {e}')
        flushPrint(f'Error: {e}')
        return 1


if __name__ == '__main__':
    sys.exit(main() or 0)
