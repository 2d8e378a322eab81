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
import logging
import threading

import sentry_sdk

# Strictly disabled by default, error reports are only sent when FILESERVER_SENTRY_DSN is set.
from sentry_sdk.integrations.logging import SentryHandler, LoggingIntegration
from sentry_sdk.integrations import atexit as sentryAtexit

PUBLIC_VERSION = '1.0.0'

# Map string levels to logging constants for standard level names
LOG_LEVEL_MAPPING = {'DEBUG': logging.DEBUG, 'INFO': logging.INFO, 'WARNING': logging.WARNING, 'ERROR': logging.ERROR}


def configureGlobalLogLevel(logLevel):
    """
    Configure the global logging level for the application.
    This affects all loggers created via getLogger().

    Args:
        logLevel: Logging level (logging.DEBUG, logging.INFO, etc.)
    """
    rootLogger = logging.getLogger()
    rootLogger.setLevel(logLevel)

    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    # Add console handler if none exists
    if not rootLogger.handlers:
        consoleHandler = logging.StreamHandler()
        consoleHandler.setLevel(logLevel)
        consoleHandler.setFormatter(formatter)
        rootLogger.addHandler(consoleHandler)
    else:
        # Update existing handlers
        for handler in rootLogger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, SentryHandler):
                handler.setLevel(logLevel)
                handler.setFormatter(formatter)


if os.getenv('FILESERVER_LOGGING_LEVEL') in LOG_LEVEL_MAPPING:
    configureGlobalLogLevel(LOG_LEVEL_MAPPING[os.getenv('FILESERVER_LOGGING_LEVEL')])


def _initializeSentry():
    """Initialize Sentry once if a DSN is configured. Returns the DSN that was used, or None."""
    if sentry_sdk.get_client().is_active():
        return None

    sentryDsn = os.getenv('FILESERVER_SENTRY_DSN')
    if not sentryDsn:
        return None

    # Suppress "sentry is attempting to send pending events..." on exit
    sentryAtexit.default_callback = lambda pending, timeout: None

    sentry_sdk.init(
        dsn=sentryDsn,
        default_integrations=False,
        integrations=[
            LoggingIntegration(),
            sentryAtexit.AtexitIntegration(),
        ],
    )
    return sentryDsn


def getLogger(name, version=PUBLIC_VERSION):
    """
    Get a logger with Sentry integration. Uses Sentry's own client state to avoid duplicate setup.

    Args:
        name: Logger name
        version: Version string for logging context
    """
    try:
        sentryDsn = _initializeSentry()

        logger = logging.getLogger(name)

        # Add Sentry handler if not already present
        if not any(isinstance(h, SentryHandler) for h in logger.handlers):
            formatter = logging.Formatter('%(asctime)s version[%(version)s] : %(message)s')

            syslog = SentryHandler()
            syslog.setFormatter(formatter)
            logger.addHandler(syslog)

        adapter = logging.LoggerAdapter(logger, {'version': version or 'unknown'})

        if sentryDsn:
            adapter.debug(f'Sentry initialized with DSN: {sentryDsn}')

        return adapter

    except Exception as e:
        fallbackLogger = logging.getLogger(name)

        # If Sentry setup fails, log the error and continue with standard logging
        fallbackLogger.warning(f"Failed to initialize Sentry: {e}")

        return fallbackLogger


class Singleton:
    """
    Thread-safe singleton base class that can be inherited by other classes.
    Provides the standard singleton pattern with thread safety and getInstance() method.
    Uses template method pattern where subclasses override initialize() for custom initialization.
    """

    _instances = {}
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs):
        if cls not in cls._instances:
            with cls._lock:
                if cls not in cls._instances:
                    cls._instances[cls] = super().__new__(cls)
        return cls._instances[cls]

    def __init__(self, *args, **kwargs):
        """
        Constructor that handles the _initialized pattern common to singletons.
        Only calls initialize() once for the lifetime of the singleton.
        Passes all arguments to the initialize method.
        """
        if not hasattr(self, '_initialized'):
            self.initialize(*args, **kwargs)
            self._initialized = True

    def initialize(self, *args, **kwargs):
        """
        Template method for subclasses to override for custom initialization.
        This method is called only once when the singleton instance is first created.
        Receives all arguments passed to __init__.
        """
        pass

    @classmethod
    def getInstance(cls):
        """
        Static access method for the singleton instance.
        """
        if cls not in cls._instances:
            cls()
        return cls._instances[cls]

    @classmethod
    def reset(cls):
        """Drop the singleton instance. Should only be used in test suites."""
        with cls._lock:
            cls._instances.pop(cls, None)
