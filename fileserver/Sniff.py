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
Content sniffing.

Derives a MIME type from the first bytes of a file when its extension says nothing,
following the magic-byte tables browsers use (https://mimesniff.spec.whatwg.org/).
"""

import struct

# Only this many leading bytes are ever inspected
SNIFF_LENGTH = 512

DEFAULT_TYPE = 'application/octet-stream'
TEXT_TYPE = 'text/plain; charset=utf-8'
HTML_TYPE = 'text/html; charset=utf-8'

WHITESPACE = b'\t\n\x0c\r '
TAG_TERMINATORS = b' >'


class _Signature:

    def match(self, data: bytes, firstNonWS: int) -> str:
        raise NotImplementedError


class _ExactSignature(_Signature):

    def __init__(self, prefix: bytes, contentType: str):
        self.prefix = prefix
        self.contentType = contentType

    def match(self, data, firstNonWS):
        return self.contentType if data.startswith(self.prefix) else ''


class _MaskedSignature(_Signature):

    def __init__(self, mask: bytes, pattern: bytes, contentType: str, skipWhitespace: bool = False):
        self.mask = mask
        self.pattern = pattern
        self.contentType = contentType
        self.skipWhitespace = skipWhitespace

    def match(self, data, firstNonWS):
        if self.skipWhitespace:
            data = data[firstNonWS:]
        if len(data) < len(self.pattern):
            return ''
        for maskByte, patternByte, dataByte in zip(self.mask, self.pattern, data):
            if dataByte & maskByte != patternByte:
                return ''
        return self.contentType


class _HTMLSignature(_Signature):
    """Case-insensitive tag match that must be followed by a space or '>'"""

    def __init__(self, tag: bytes):
        self.tag = tag

    def match(self, data, firstNonWS):
        data = data[firstNonWS:]
        if len(data) < len(self.tag) + 1:
            return ''
        for tagByte, dataByte in zip(self.tag, data):
            if ord('A') <= tagByte <= ord('Z'):
                dataByte &= 0xDF
            if tagByte != dataByte:
                return ''
        if data[len(self.tag)] not in TAG_TERMINATORS:
            return ''
        return HTML_TYPE


class _MP4Signature(_Signature):

    def match(self, data, firstNonWS):
        if len(data) < 12:
            return ''
        boxSize = struct.unpack('>I', data[:4])[0]
        if len(data) < boxSize or boxSize % 4 != 0:
            return ''
        if data[4:8] != b'ftyp':
            return ''
        for start in range(8, boxSize, 4):
            if start == 12:
                # Skip the minor version
                continue
            if data[start:start + 3] == b'mp4':
                return 'video/mp4'
        return ''


class _TextSignature(_Signature):

    def match(self, data, firstNonWS):
        for b in data[firstNonWS:]:
            if b <= 0x08 or b == 0x0B or 0x0E <= b <= 0x1A or 0x1C <= b <= 0x1F:
                return ''
        return TEXT_TYPE


HTML_TAGS = (
    b'<!DOCTYPE HTML', b'<HTML', b'<HEAD', b'<SCRIPT', b'<IFRAME', b'<H1', b'<DIV', b'<FONT', b'<TABLE', b'<A',
    b'<STYLE', b'<TITLE', b'<B', b'<BODY', b'<BR', b'<P', b'<!--'
)

# Order matters: the first signature that matches wins
SIGNATURES = [_HTMLSignature(tag) for tag in HTML_TAGS] + [
    _MaskedSignature(b'\xFF\xFF\xFF\xFF\xFF', b'<?xml', 'text/xml; charset=utf-8', skipWhitespace=True),
    _ExactSignature(b'%PDF-', 'application/pdf'),
    _ExactSignature(b'%!PS-Adobe-', 'application/postscript'),

    # UTF BOMs
    _MaskedSignature(b'\xFF\xFF\x00\x00', b'\xFE\xFF\x00\x00', 'text/plain; charset=utf-16be'),
    _MaskedSignature(b'\xFF\xFF\x00\x00', b'\xFF\xFE\x00\x00', 'text/plain; charset=utf-16le'),
    _MaskedSignature(b'\xFF\xFF\xFF\x00', b'\xEF\xBB\xBF\x00', TEXT_TYPE),

    # Images
    _ExactSignature(b'\x00\x00\x01\x00', 'image/x-icon'),
    _ExactSignature(b'\x00\x00\x02\x00', 'image/x-icon'),
    _ExactSignature(b'BM', 'image/bmp'),
    _ExactSignature(b'GIF87a', 'image/gif'),
    _ExactSignature(b'GIF89a', 'image/gif'),
    _MaskedSignature(
        b'\xFF\xFF\xFF\xFF\x00\x00\x00\x00\xFF\xFF\xFF\xFF\xFF\xFF', b'RIFF\x00\x00\x00\x00WEBPVP', 'image/webp'
    ),
    _ExactSignature(b'\x89PNG\x0D\x0A\x1A\x0A', 'image/png'),
    _ExactSignature(b'\xFF\xD8\xFF', 'image/jpeg'),

    # Audio and video
    _MaskedSignature(b'\xFF\xFF\xFF\xFF\x00\x00\x00\x00\xFF\xFF\xFF\xFF', b'FORM\x00\x00\x00\x00AIFF', 'audio/aiff'),
    _MaskedSignature(b'\xFF\xFF\xFF', b'ID3', 'audio/mpeg'),
    _MaskedSignature(b'\xFF\xFF\xFF\xFF\xFF', b'OggS\x00', 'application/ogg'),
    _MaskedSignature(b'\xFF\xFF\xFF\xFF\xFF\xFF\xFF\xFF', b'MThd\x00\x00\x00\x06', 'audio/midi'),
    _MaskedSignature(b'\xFF\xFF\xFF\xFF\x00\x00\x00\x00\xFF\xFF\xFF\xFF', b'RIFF\x00\x00\x00\x00AVI ', 'video/avi'),
    _MaskedSignature(b'\xFF\xFF\xFF\xFF\x00\x00\x00\x00\xFF\xFF\xFF\xFF', b'RIFF\x00\x00\x00\x00WAVE', 'audio/wave'),
    _MP4Signature(),
    _ExactSignature(b'\x1A\x45\xDF\xA3', 'video/webm'),

    # Fonts
    _MaskedSignature(b'\x00' * 34 + b'\xFF\xFF', b'\x00' * 34 + b'LP', 'application/vnd.ms-fontobject'),
    _ExactSignature(b'\x00\x01\x00\x00', 'font/ttf'),
    _ExactSignature(b'OTTO', 'font/otf'),
    _ExactSignature(b'ttcf', 'font/collection'),
    _ExactSignature(b'wOFF', 'font/woff'),
    _ExactSignature(b'wOF2', 'font/woff2'),

    # Archives
    _ExactSignature(b'\x1F\x8B\x08', 'application/x-gzip'),
    _ExactSignature(b'PK\x03\x04', 'application/zip'),
    _ExactSignature(b'Rar!\x1A\x07\x00', 'application/x-rar-compressed'),
    _ExactSignature(b'Rar!\x1A\x07\x01\x00', 'application/x-rar-compressed'),
    _ExactSignature(b'7z\xBC\xAF\x27\x1C', 'application/x-7z-compressed'),
    _ExactSignature(b'\x00asm', 'application/wasm'),

    _TextSignature(),
]


def detectContentType(data: bytes) -> str:
    """
    Return the MIME type of data, considering at most the first SNIFF_LENGTH bytes.
    Always returns a valid type, "application/octet-stream" when nothing matches.
    """
    data = bytes(data[:SNIFF_LENGTH])

    firstNonWS = 0
    while firstNonWS < len(data) and data[firstNonWS] in WHITESPACE:
        firstNonWS += 1

    for signature in SIGNATURES:
        contentType = signature.match(data, firstNonWS)
        if contentType:
            return contentType

    return DEFAULT_TYPE
