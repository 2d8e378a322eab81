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

import bitmath

from fileserver.Kernel import getLogger

# Decimal (SI) units, not binary ones
ONE_KB = int(bitmath.kB(1).bytes)
ONE_MB = int(bitmath.MB(1).bytes)
ONE_GB = int(bitmath.GB(1).bytes)

SIZE_TIERS = (('B', 1), ('KB', ONE_KB), ('MB', ONE_MB), ('GB', ONE_GB))

logger = getLogger(__name__)


def formatSize(size):
    """
    Format a byte count such as "5 B", "167 MB" or "8156 GB".

    Each tier is an integer division by 1000; the first tier whose value is below 1000 wins,
    and GB is the last tier no matter how large the value gets.
    """
    size = int(size)
    for label, unit in SIZE_TIERS:
        value = size // unit
        if value < 1000 or unit == ONE_GB:
            return f'{value} {label}'


def formatDateModified(dt):
    """Format a datetime as 1/2/2006 3:04 PM (no leading zeros on month, day and hour)."""
    hour = dt.hour % 12 or 12
    meridiem = 'AM' if dt.hour < 12 else 'PM'
    return f'{dt.month}/{dt.day}/{dt.year} {hour}:{dt.minute:02d} {meridiem}'


# flush is required when stdout is not a terminal.
def flushPrint(text):
    try:
        print(text, flush=True)
    except UnicodeEncodeError as e:
        # Fallback for terminals that don't support certain characters
        logger.debug(f"UnicodeEncodeError during print, using fallback encoding: {e}, {sys.stdout.encoding=}")

        buf = getattr(sys.stdout, "buffer", None)
        if buf is not None:
            buf.write(text.encode("utf-8", errors="replace"))
            buf.write(b"\n")
            buf.flush()
            return

        print(text.encode(sys.stdout.encoding, errors='replace').decode(sys.stdout.encoding), flush=True)


def getEnv(envVar, default):
    """Safely get value from environment variable with automatic type detection based on default"""
    try:
        value = os.getenv(envVar)
        if value is not None:
            if default is None:
                return value

            # Automatically detect type based on default value
            if isinstance(default, bool):
                return value == "True"
            elif isinstance(default, int):
                return int(value)
            elif isinstance(default, float):
                return float(value)
            elif isinstance(default, str):
                return str(value)
            else:
                return type(default)(value)
        return default
    except (ValueError, TypeError):
        return default
