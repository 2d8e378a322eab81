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

import unittest

from fileserver.Paths import (
    ROOT, Breadcrumb, baseName, canonicalize, cleanPath, displayText, isValidPath, joinPath, makeBreadcrumbs, urlBytes
)


class PathsTest(unittest.TestCase):

    def testCleanPath(self):
        cases = [
            ('', '.'),
            ('/', '/'),
            ('//a//b/', '/a/b'),
            ('a/./b', 'a/b'),
            ('a/../b', 'b'),
            ('/../..', '/'),
            ('../x', '../x'),
            ('a/b/../../..', '..'),
        ]
        for path, expected in cases:
            with self.subTest(path=path):
                self.assertEqual(cleanPath(path), expected)

    def testCanonicalize(self):
        cases = [
            ('/', '.'),
            ('', '.'),
            ('/.', '.'),
            ('/a', 'a'),
            ('/a/', 'a'),
            ('/path/to/file/', 'path/to/file'),
            ('//a//b//', 'a/b'),
            ('/../../etc/passwd', 'etc/passwd'),
            ('/a/../../b', 'b'),
            ('/?thing', '?thing'),
        ]
        for urlPath, expected in cases:
            with self.subTest(urlPath=urlPath):
                self.assertEqual(canonicalize(urlPath), expected)

    def testCanonicalizeIsIdempotentAndValid(self):
        for urlPath in ['/', '/a/b/', '/../x', '//x/./y/..', 'already/canonical', '.', '..', '/a b/#c']:
            with self.subTest(urlPath=urlPath):
                canonical = canonicalize(urlPath)
                self.assertEqual(canonicalize(canonical), canonical)
                self.assertTrue(isValidPath(canonical))
                self.assertFalse(canonical.startswith('/'))

    def testIsValidPath(self):
        valid = ['.', 'a', 'a/b', 'a b/c.txt', '?thing', '#thing']
        invalid = ['', '/', '/a', 'a/', 'a//b', './a', 'a/.', '..', 'a/../b', None]
        for path in valid:
            with self.subTest(path=path):
                self.assertTrue(isValidPath(path))
        for path in invalid:
            with self.subTest(path=path):
                self.assertFalse(isValidPath(path))

    def testJoinAndBaseName(self):
        self.assertEqual(joinPath(ROOT, 'a'), 'a')
        self.assertEqual(joinPath('a', 'b'), 'a/b')
        self.assertEqual(baseName('/a/b/'), 'b')
        self.assertEqual(baseName('c'), 'c')
        self.assertEqual(baseName('/'), '/')

    def testMakeBreadcrumbsRoot(self):
        self.assertEqual(makeBreadcrumbs('/'), [Breadcrumb('/', '.')])

    def testMakeBreadcrumbs(self):
        self.assertEqual(makeBreadcrumbs('/b/'), [Breadcrumb('/', './..'), Breadcrumb('b/', '.')])
        self.assertEqual(
            makeBreadcrumbs('/a/b/c/'),
            [
                Breadcrumb('/', './../../..'),
                Breadcrumb('a/', './../..'),
                Breadcrumb('b/', './..'),
                Breadcrumb('c/', '.'),
            ]
        )

    def testUndecodableNames(self):
        self.assertEqual(urlBytes('bad\udcff'), b'bad\xff')
        self.assertEqual(urlBytes('café'), b'caf\xc3\xa9')
        self.assertEqual(displayText('bad\udcff'), 'bad\ufffd')
        self.assertEqual(displayText('café'), 'café')
        self.assertEqual(makeBreadcrumbs('/bad\udcff/')[-1], Breadcrumb('bad\ufffd/', '.'))


if __name__ == '__main__':
    unittest.main()
