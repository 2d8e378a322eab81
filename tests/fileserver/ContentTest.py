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

import io
import unittest

from http import HTTPStatus

from fileserver.Content import (
    ByteRange, MultipartRanges, RangeError, checkPreconditions, contentDisposition, httpDate, parseHttpDate, parseRange
)

MODIFIED = 1700000000 # Tue, 14 Nov 2023 22:13:20 GMT


class ParseRangeTest(unittest.TestCase):

    def testForms(self):
        cases = [
            ('', []),
            ('bytes=', []),
            ('bytes=0-4', [ByteRange(0, 5)]),
            ('bytes=5-', [ByteRange(5, 5)]),
            ('bytes=-3', [ByteRange(7, 3)]),
            ('bytes=-20', [ByteRange(0, 10)]),
            ('bytes=8-100', [ByteRange(8, 2)]),
            ('bytes=0-0, 9-9', [ByteRange(0, 1), ByteRange(9, 1)]),
            ('bytes=0-1,20-30', [ByteRange(0, 2)]),
        ]
        for header, expected in cases:
            with self.subTest(header=header):
                self.assertEqual(parseRange(header, 10), expected)

    def testInvalid(self):
        for header in ['items=0-1', 'bytes=abc', 'bytes=5', 'bytes=4-2', 'bytes=-', 'bytes=1-x']:
            with self.subTest(header=header):
                with self.assertRaises(RangeError) as context:
                    parseRange(header, 10)
                self.assertFalse(context.exception.noOverlap)

    def testNoOverlap(self):
        with self.assertRaises(RangeError) as context:
            parseRange('bytes=10-20', 10)
        self.assertTrue(context.exception.noOverlap)

    def testContentRange(self):
        self.assertEqual(ByteRange(2, 3).contentRange(10), 'bytes 2-4/10')


class CheckPreconditionsTest(unittest.TestCase):

    def testNoConditions(self):
        self.assertEqual(checkPreconditions('GET', {}, MODIFIED), (None, ''))
        self.assertEqual(checkPreconditions('GET', {'Range': 'bytes=0-1'}, MODIFIED), (None, 'bytes=0-1'))

    def testIfModifiedSince(self):
        cases = [
            (httpDate(MODIFIED), HTTPStatus.NOT_MODIFIED),
            (httpDate(MODIFIED + 60), HTTPStatus.NOT_MODIFIED),
            (httpDate(MODIFIED - 60), None),
            ('not a date', None),
        ]
        for value, expected in cases:
            with self.subTest(value=value):
                status, _ = checkPreconditions('GET', {'If-Modified-Since': value}, MODIFIED + 0.5)
                self.assertEqual(status, expected)

        # Only safe methods answer 304
        self.assertEqual(checkPreconditions('POST', {'If-Modified-Since': httpDate(MODIFIED)}, MODIFIED)[0], None)

    def testIfUnmodifiedSince(self):
        headers = {'If-Unmodified-Since': httpDate(MODIFIED - 60)}
        self.assertEqual(checkPreconditions('GET', headers, MODIFIED)[0], HTTPStatus.PRECONDITION_FAILED)
        headers = {'If-Unmodified-Since': httpDate(MODIFIED)}
        self.assertEqual(checkPreconditions('GET', headers, MODIFIED)[0], None)

    def testEntityTagConditions(self):
        self.assertEqual(checkPreconditions('GET', {'If-Match': '"abc"'}, MODIFIED)[0], HTTPStatus.PRECONDITION_FAILED)
        self.assertEqual(checkPreconditions('GET', {'If-Match': '*'}, MODIFIED)[0], None)
        self.assertEqual(checkPreconditions('GET', {'If-None-Match': '*'}, MODIFIED)[0], HTTPStatus.NOT_MODIFIED)
        self.assertEqual(checkPreconditions('GET', {'If-None-Match': '"abc"'}, MODIFIED)[0], None)

    def testIfRange(self):
        headers = {'Range': 'bytes=0-1', 'If-Range': httpDate(MODIFIED)}
        self.assertEqual(checkPreconditions('GET', headers, MODIFIED), (None, 'bytes=0-1'))

        headers['If-Range'] = httpDate(MODIFIED - 60)
        self.assertEqual(checkPreconditions('GET', headers, MODIFIED), (None, ''))

        headers['If-Range'] = '"some-etag"'
        self.assertEqual(checkPreconditions('GET', headers, MODIFIED), (None, ''))


class HttpDateTest(unittest.TestCase):

    def testFormatAndParse(self):
        self.assertEqual(httpDate(MODIFIED), 'Tue, 14 Nov 2023 22:13:20 GMT')
        self.assertEqual(parseHttpDate('Tue, 14 Nov 2023 22:13:20 GMT'), MODIFIED)
        self.assertIsNone(parseHttpDate('yesterday'))
        self.assertIsNone(parseHttpDate(''))


class MultipartRangesTest(unittest.TestCase):

    def testBody(self):
        data = b'0123456789'
        multipart = MultipartRanges([ByteRange(0, 2), ByteRange(8, 2)], len(data), 'text/plain')
        body = b''.join(multipart.iterChunks(io.BytesIO(data), 4))

        self.assertEqual(len(body), multipart.length)
        self.assertTrue(multipart.contentType.startswith('multipart/byteranges; boundary='))

        boundary = multipart.boundary.encode('ascii')
        expected = (
            b'--' + boundary + b'\r\nContent-Range: bytes 0-1/10\r\nContent-Type: text/plain\r\n\r\n01'
            b'\r\n--' + boundary + b'\r\nContent-Range: bytes 8-9/10\r\nContent-Type: text/plain\r\n\r\n89'
            b'\r\n--' + boundary + b'--\r\n'
        )
        self.assertEqual(body, expected)


class ContentDispositionTest(unittest.TestCase):

    def testNames(self):
        cases = [
            ('a.txt', 'attachment; filename="a.txt"'),
            ('b.zip', 'attachment; filename="b.zip"'),
            ('say "hi".txt', 'attachment; filename="say _hi_.txt"'),
            ('résumé.pdf', 'attachment; filename="r?sum?.pdf"; filename*=UTF-8\'\'r%C3%A9sum%C3%A9.pdf'),
        ]
        for name, expected in cases:
            with self.subTest(name=name):
                self.assertEqual(contentDisposition(name), expected)


if __name__ == '__main__':
    unittest.main()
