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
import os
import shutil
import stat
import tempfile
import unittest
import zipfile

from fileserver.Archive import ArchiveError, ArchiveStreamer
from fileserver.FileSystems import FileSystemError, LocalFileSystem, MemoryEntry, MemoryFileSystem
from fileserver.FileViews import WalkCancelled


class UnseekableStream:
    """Write-only stream like a socket file: no tell(), no seek()"""

    def __init__(self):
        self.buffer = io.BytesIO()

    def write(self, data):
        return self.buffer.write(data)

    def flush(self):
        pass

    def getvalue(self):
        return self.buffer.getvalue()


class UnreadableFileSystem(MemoryFileSystem):
    """MemoryFileSystem where opening a path in unreadable fails once it was opened allowedOpens times"""

    def __init__(self, files, unreadable, allowedOpens=0):
        super().__init__(files)
        self.unreadable = unreadable
        self.allowedOpens = allowedOpens
        self.opens = {}

    def open(self, path):
        if path in self.unreadable:
            self.opens[path] = self.opens.get(path, 0) + 1
            if self.opens[path] > self.allowedOpens:
                raise FileSystemError(f'open {path}: permission denied', op='open', path=path)
        return super().open(path)


class ArchiveStreamerTest(unittest.TestCase):

    def setUp(self):
        self.fs = MemoryFileSystem({'a': b'a', 'b/c': b'b/c', 'b/d/e': b'eee', 'empty/': None})

    def archive(self, path, name):
        streamer = ArchiveStreamer(self.fs, path, name)
        streamer.prepare()
        stream = UnseekableStream()
        written = streamer.writeTo(stream)
        return written, zipfile.ZipFile(io.BytesIO(stream.getvalue()))

    def testSubdirectoryHoldsRelativePaths(self):
        fs = MemoryFileSystem({'a': b'a', 'b/c': b'b/c'})
        streamer = ArchiveStreamer(fs, 'b', 'b')
        stream = UnseekableStream()
        streamer.writeTo(stream)

        with zipfile.ZipFile(io.BytesIO(stream.getvalue())) as archive:
            self.assertEqual(archive.namelist(), ['c'])
            self.assertEqual(archive.read('c'), b'b/c')

    def testNestedDirectories(self):
        written, archive = self.archive('b', 'b')
        with archive:
            self.assertEqual(written, 2)
            self.assertEqual(sorted(archive.namelist()), ['c', 'd/e'])
            self.assertEqual(archive.read('d/e'), b'eee')
            self.assertIsNone(archive.testzip())

    def testRoot(self):
        written, archive = self.archive('.', 'folder')
        with archive:
            self.assertEqual(sorted(archive.namelist()), ['a', 'b/c', 'b/d/e'])

    def testEmptyDirectory(self):
        written, archive = self.archive('empty', 'empty')
        with archive:
            self.assertEqual(written, 0)
            self.assertEqual(archive.namelist(), [])

    def testHeaders(self):
        streamer = ArchiveStreamer(self.fs, 'b', 'b')
        self.assertEqual(streamer.fileName, 'b.zip')
        self.assertEqual(
            streamer.headers(), {
                'Content-Type': 'application/zip',
                'Content-Disposition': 'attachment; filename="b.zip"',
            }
        )

    def testNonRegularEntryFailsBeforeWriting(self):
        fs = MemoryFileSystem({'b/c': b'c', 'b/link': MemoryEntry(data=b'c', mode=stat.S_IFLNK | 0o777)})
        streamer = ArchiveStreamer(fs, 'b', 'b')
        with self.assertRaises(ArchiveError):
            streamer.prepare()

        stream = UnseekableStream()
        with self.assertRaises(ArchiveError):
            streamer.writeTo(stream)
        self.assertEqual(stream.getvalue(), b'')

    def testUnreadableFileFailsBeforeWriting(self):
        fs = UnreadableFileSystem({'b/a': b'a', 'b/c': b'c'}, unreadable={'b/c'})
        streamer = ArchiveStreamer(fs, 'b', 'b')
        with self.assertRaises(ArchiveError):
            streamer.prepare()

        stream = UnseekableStream()
        with self.assertRaises(ArchiveError):
            streamer.writeTo(stream)
        self.assertEqual(stream.getvalue(), b'')

    def testFailureWhileStreamingLeavesBrokenArchive(self):
        # Readable while preparing, gone by the time it is streamed
        fs = UnreadableFileSystem(
            {'b/c': b'b/c', 'b/d/e': b'eee'}, unreadable={'b/d/e'}, allowedOpens=1
        )
        streamer = ArchiveStreamer(fs, 'b', 'b')
        streamer.prepare()

        stream = UnseekableStream()
        with self.assertRaises(FileSystemError):
            streamer.writeTo(stream)

        data = stream.getvalue()
        print(f'{len(data)} bytes written before the failure')
        self.assertTrue(data.startswith(b'PK\x03\x04'))
        with self.assertRaises(zipfile.BadZipFile):
            zipfile.ZipFile(io.BytesIO(data))

    def testMissingDirectory(self):
        with self.assertRaises(ArchiveError):
            ArchiveStreamer(self.fs, 'missing', 'missing').prepare()

    def testCancelled(self):
        with self.assertRaises(ArchiveError):
            ArchiveStreamer(self.fs, 'b', 'b').prepare(shouldStop=lambda: True)

        streamer = ArchiveStreamer(self.fs, 'b', 'b')
        streamer.prepare()
        with self.assertRaises(WalkCancelled):
            streamer.writeTo(UnseekableStream(), shouldStop=lambda: True)


@unittest.skipUnless(hasattr(os, 'symlink'), 'symlinks not supported')
class LocalSymlinkArchiveTest(unittest.TestCase):

    def setUp(self):
        self.root = tempfile.mkdtemp(prefix='fileserver-')
        os.mkdir(os.path.join(self.root, 'b'))
        with open(os.path.join(self.root, 'b', 'c'), 'wb') as f:
            f.write(b'c')
        os.symlink(os.path.join(self.root, 'b', 'c'), os.path.join(self.root, 'b', 'link'))

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def testSymlinkIsRejected(self):
        with self.assertRaises(ArchiveError):
            ArchiveStreamer(LocalFileSystem(self.root), 'b', 'b').prepare()


if __name__ == '__main__':
    unittest.main()
