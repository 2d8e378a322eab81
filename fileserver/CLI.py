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

import argparse
import json
import os
import logging
import logging.config
import platform

from fileserver.Kernel import PUBLIC_VERSION, LOG_LEVEL_MAPPING, getLogger, configureGlobalLogLevel
from fileserver.Settings import DEFAULT_CONTENT_ROOT, DEFAULT_HOST, DEFAULT_PORT
from fileserver.Utils import flushPrint, getEnv

logger = getLogger(__name__)


def loadEnvFile(envFilePath=None):
    """
    Load environment variables from a .env file, by default the one in the working directory.
    Only sets variables that are not already defined in os.environ. Returns the number of
    variables loaded.
    """
    if envFilePath is None:
        envFilePath = os.path.join(os.getcwd(), '.env')

    if not os.path.isfile(envFilePath):
        return 0

    loadedCount = 0
    try:
        with open(envFilePath, 'r', encoding='utf-8') as f:
            for lineNum, line in enumerate(f, 1):
                line = line.strip()

                # Skip empty lines and comments
                if not line or line.startswith('#'):
                    continue

                if line.startswith('export '):
                    line = line[len('export '):].lstrip()

                key, sep, value = line.partition('=')
                key = key.strip()
                value = value.strip()

                if not sep or not key:
                    logger.warning(f'.env line {lineNum}: expected KEY=VALUE, got {line!r}')
                    continue

                if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                    value = value[1:-1]

                # Environment takes precedence
                if key in os.environ:
                    logger.debug(f'.env: Skipped {key} (already set in environment)')
                    continue

                os.environ[key] = value
                loadedCount += 1

    except (OSError, UnicodeDecodeError) as e:
        logger.error(f'Unable to load .env file {envFilePath}: {e}', exc_info=True)
        return loadedCount

    logger.debug(f'Loaded {loadedCount} environment variables from {envFilePath}')
    return loadedCount


def configureLogging(logLevel):
    """
    Configure logging from the --log-level argument, falling back to FILESERVER_LOGGING_LEVEL.

    The value is either a level name (DEBUG, INFO, WARNING, ERROR) or the path of a JSON
    logging.config.dictConfig file. Returns what was applied, or None when nothing was given.
    """

    def suppressNoisyLogger():
        logging.getLogger('sentry_sdk').setLevel(logging.INFO)

    if logLevel is None:
        logLevel = getEnv('FILESERVER_LOGGING_LEVEL', None)

    if logLevel is None:
        suppressNoisyLogger()
        return None

    if os.path.isfile(logLevel):
        try:
            with open(logLevel, 'r') as configFile:
                configDict = json.load(configFile)

            logging.config.dictConfig(configDict)
            logger.info(f"Logging configured from file: {logLevel}")
            suppressNoisyLogger()
            return logLevel

        except (json.JSONDecodeError, OSError, ValueError, KeyError) as e:
            flushPrint(f"Failed to load logging config from {logLevel}: {e}")
            flushPrint("Falling back to default logging level configuration")

    if logLevel.upper() in LOG_LEVEL_MAPPING:
        configureGlobalLogLevel(LOG_LEVEL_MAPPING[logLevel.upper()])
        logger.info(f"Logging level set to {logLevel.upper()}")
    else:
        logger.warning(f"Invalid logging level '{logLevel}', using WARNING as default")
        configureGlobalLogLevel(logging.WARNING)

    suppressNoisyLogger()
    return logLevel


def showVersion():
    flushPrint(f"FileServer v{PUBLIC_VERSION}")
    uname = platform.uname()
    flushPrint(f"Python {platform.python_version()} on {uname.system} {uname.release} {uname.machine}")


def validatePort(portStr):
    """Validate port number for argparse, 0 picks a free port"""
    try:
        port = int(portStr)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid port number: {portStr}")

    if not (0 <= port <= 65535):
        raise argparse.ArgumentTypeError(f"Port {port} is out of valid range (0-65535)")
    return port


def validateLogLevel(logLevel):
    """Validate log level for argparse"""
    # Allow file paths (they'll be validated later)
    if os.path.exists(logLevel):
        return logLevel

    if logLevel.upper() not in LOG_LEVEL_MAPPING:
        raise argparse.ArgumentTypeError(
            f"Invalid log level '{logLevel}'. Valid levels are: {', '.join(LOG_LEVEL_MAPPING)}"
        )
    return logLevel.upper()


def configureCLIParser():
    """
    Build the command line parser. Defaults come from the environment, so loadEnvFile()
    must run before this.
    """
    parser = argparse.ArgumentParser(
        prog='fileserver',
        description="Browse, search and download a directory tree over HTTP.",
    )
    parser.add_argument("--version", action="store_true", help="Show version information and exit")
    parser.add_argument(
        "--root",
        default=getEnv('FILESERVER_ROOT', DEFAULT_CONTENT_ROOT),
        help="Directory to serve, created if missing (default: %(default)s)",
        metavar="DIR",
        dest="root"
    )
    parser.add_argument(
        "--host",
        default=getEnv('FILESERVER_HOST', DEFAULT_HOST),
        help="Address to listen on (default: %(default)s)",
        metavar="HOST",
        dest="host"
    )
    parser.add_argument(
        "--port",
        type=validatePort,
        default=getEnv('FILESERVER_PORT', DEFAULT_PORT),
        help="Port to listen on (default: %(default)s)",
        metavar="PORT",
        dest="port"
    )
    parser.add_argument(
        "--log-level",
        type=validateLogLevel,
        help="Set logging level (DEBUG, INFO, WARNING, ERROR) or path to logging config JSON file",
        metavar="LEVEL_OR_FILE",
        dest="logLevel"
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Serve through a read-only view of the directory",
        dest="readOnly"
    )
    return parser
