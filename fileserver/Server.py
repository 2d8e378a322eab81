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

import sys
import socket

from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, quote, unquote, urlsplit

from fileserver.Kernel import PUBLIC_VERSION, getLogger
from fileserver.Archive import ArchiveError, ArchiveStreamer
from fileserver.Content import (
    MultipartRanges, RangeError, checkPreconditions, contentDisposition, httpDate, iterRange, parseRange
)
from fileserver.FileSystems import FileHandle, FileSystem, FileSystemError, LocalFileSystem, Stat
from fileserver.FileViews import HREF_SAFE_CHARS, WalkCancelled, listFiles, resolveMimeType, searchFiles
from fileserver.Listing import DirectoryListing, ListingRenderer
from fileserver.Paths import ROOT, canonicalize, displayText, makeBreadcrumbs, urlBytes
from fileserver.Settings import (
    DEFAULT_HOST, DEFAULT_PORT, DIRECTORY_TEMPLATE, STYLESHEET, TRANSFER_CHUNK_SIZE, SettingsGetter
)
from fileserver.Sniff import DEFAULT_TYPE, TEXT_TYPE, detectContentType

STATIC_SUFFIX = f'/_static/{STYLESHEET}'
HTML_CONTENT_TYPE = 'text/html; charset=utf-8'

NOT_FOUND_MESSAGE = '404 page not found'
INTERNAL_ERROR_MESSAGE = 'Internal Server Error'

DISCONNECT_ERRORS = (BrokenPipeError, ConnectionResetError, ConnectionAbortedError)

logger = getLogger(__name__)


def _contentTypeOf(name, handle):
    try:
        return resolveMimeType(name, handle)
    except FileSystemError as e:
        logger.debug(f'Cannot resolve the type of {name}: {e}')
        return DEFAULT_TYPE


class FileServerHandler(BaseHTTPRequestHandler):

    protocol_version = 'HTTP/1.1'
    server_version = f'FileServer/{PUBLIC_VERSION}'

    def do_GET(self):
        self._handleRequest(sendBody=True)

    # Routed exactly like GET, only the body is left out
    def do_HEAD(self):
        self._handleRequest(sendBody=False)

    def _handleRequest(self, sendBody):
        self.sendBody = sendBody
        self.headersSent = False
        self.responseHeaders = {}

        logger.info(self.path)

        try:
            self._route()
        except DISCONNECT_ERRORS as e:
            logger.debug(f'Client {self.address_string()} disconnected: {e}')
            self.close_connection = True
        except WalkCancelled:
            logger.debug(f'Request for {self.path} cancelled')
            self.close_connection = True
        except Exception as e:
            logger.exception(e)
            if self.headersSent:
                self.close_connection = True
            else:
                self._sendError(HTTPStatus.INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)

    def _route(self):
        url = urlsplit(self.path)
        urlPath = unquote(url.path, errors='surrogateescape')
        if not urlPath.startswith('/'):
            urlPath = '/' + urlPath

        args = parse_qs(url.query, keep_blank_values=True)
        download = 'download' in args

        if urlPath.endswith(STATIC_SUFFIX):
            self._handleStatic()
            return

        path = canonicalize(urlPath)
        fileSystem = self.server.fileSystem

        try:
            handle = fileSystem.open(path)
        except FileSystemError as e:
            logger.debug(f'Open {path} failed: {e}')
            self._sendError(HTTPStatus.NOT_FOUND, NOT_FOUND_MESSAGE)
            return

        with handle:
            try:
                info = handle.stat()
            except FileSystemError as e:
                logger.debug(f'Stat {path} failed: {e}')
                self._sendError(HTTPStatus.INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)
                return

            trailingSlash = urlPath.endswith('/')

            if not info.isDir:
                if trailingSlash:
                    self._handleRedirect('/' + path, url.query)
                    return

                headers = {}
                if download:
                    headers['Content-Disposition'] = contentDisposition(info.name)
                self._serveContent(handle, info, _contentTypeOf(info.name, handle), headers)
                return

            if not trailingSlash:
                self._handleRedirect('/' if path == ROOT else f'/{path}/', url.query)
                return

        name = fileSystem.rootName() if path == ROOT else info.name
        if download:
            self._handleArchive(path, name)
        else:
            self._handleListing(path, urlPath, args.get('q', [''])[0])

    def clientDisconnected(self):
        """Whether the peer has closed its end, checked without consuming pending input"""
        timeout = self.connection.gettimeout()
        try:
            self.connection.settimeout(0)
            return self.connection.recv(1, socket.MSG_PEEK) == b''
        except (BlockingIOError, InterruptedError):
            # Nothing to read, the peer is still there
            return False
        except OSError:
            return True
        finally:
            self.connection.settimeout(timeout)

    def shouldStop(self):
        # Polled by searches and archives so they end with the server or with the client
        return self.server.shouldStop() or self.clientDisconnected()

    def _handleStatic(self):
        with self.server.staticFileSystem.open(STYLESHEET) as handle:
            info = handle.stat()
            self._serveContent(handle, info, _contentTypeOf(STYLESHEET, handle), {})

    def _handleRedirect(self, location, query):
        location = quote(urlBytes(location), safe=HREF_SAFE_CHARS)
        if query:
            location += '?' + query

        # Redirects carry no body, hence no Content-Type
        self.responseHeaders['Content-Type'] = None
        self.responseHeaders['Location'] = location
        self._sendResponse(HTTPStatus.MOVED_PERMANENTLY)

    def _handleListing(self, path, urlPath, searchQuery):
        try:
            if searchQuery:
                files = searchFiles(self.server.fileSystem, path, searchQuery, shouldStop=self.shouldStop)
            else:
                files = listFiles(self.server.fileSystem, path)
        except FileSystemError as e:
            logger.debug(f'Listing {path} failed: {e}')
            self._sendError(HTTPStatus.NOT_FOUND, NOT_FOUND_MESSAGE)
            return

        listing = DirectoryListing(
            title=displayText(path),
            searchQuery=searchQuery,
            breadcrumbs=makeBreadcrumbs(urlPath),
            files=files,
        )
        body = self.server.renderer.render(listing)

        self.responseHeaders['Content-Type'] = HTML_CONTENT_TYPE
        self._sendResponse(HTTPStatus.OK, body)

    def _handleArchive(self, path, name):
        streamer = ArchiveStreamer(self.server.fileSystem, path, name)
        try:
            streamer.prepare(self.shouldStop)
        except ArchiveError as e:
            logger.debug(f'Archive of {path} failed: {e}')
            self._sendError(HTTPStatus.NOT_FOUND, NOT_FOUND_MESSAGE)
            return

        # The archive length is unknown up front, so its end is the end of the connection
        self.responseHeaders.update(streamer.headers())
        self.responseHeaders['Connection'] = 'close'
        self.close_connection = True
        self._writeHead(HTTPStatus.OK)

        if self.sendBody:
            count = streamer.writeTo(self.wfile, self.shouldStop)
            logger.info(f'Sent {streamer.fileName} ({count} files)')

    def _serveContent(self, handle: FileHandle, info: Stat, contentType: str, headers):
        """Serve the content of a regular file, honoring conditional and range requests"""
        size = info.size
        self.responseHeaders.update(headers)
        if info.mtime:
            self.responseHeaders['Last-Modified'] = httpDate(info.mtime)

        status, rangeHeader = checkPreconditions(self.command, self.headers, info.mtime)
        if status is not None:
            self.responseHeaders['Content-Type'] = None
            self._sendResponse(status)
            return

        try:
            ranges = parseRange(rangeHeader, size)
        except RangeError as e:
            if not (e.noOverlap and size == 0):
                self.responseHeaders['Content-Range'] = f'bytes */{size}'
                self._sendError(HTTPStatus.REQUESTED_RANGE_NOT_SATISFIABLE, str(e))
                return
            ranges = []

        # A client asking for more than the whole file gets the whole file
        if sum(byteRange.length for byteRange in ranges) > size:
            ranges = []

        self.responseHeaders['Accept-Ranges'] = 'bytes'

        if len(ranges) == 1:
            byteRange = ranges[0]
            self.responseHeaders['Content-Type'] = contentType
            self.responseHeaders['Content-Range'] = byteRange.contentRange(size)
            self.responseHeaders['Content-Length'] = str(byteRange.length)
            self._writeHead(HTTPStatus.PARTIAL_CONTENT)
            if self.sendBody:
                handle.seek(byteRange.start)
                self._writeChunks(iterRange(handle, byteRange.length, TRANSFER_CHUNK_SIZE))
        elif ranges:
            multipart = MultipartRanges(ranges, size, contentType)
            self.responseHeaders['Content-Type'] = multipart.contentType
            self.responseHeaders['Content-Length'] = str(multipart.length)
            self._writeHead(HTTPStatus.PARTIAL_CONTENT)
            if self.sendBody:
                self._writeChunks(multipart.iterChunks(handle, TRANSFER_CHUNK_SIZE))
        else:
            self.responseHeaders['Content-Type'] = contentType
            self.responseHeaders['Content-Length'] = str(size)
            self._writeHead(HTTPStatus.OK)
            if self.sendBody:
                self._writeChunks(iterRange(handle, size, TRANSFER_CHUNK_SIZE))

    def _writeChunks(self, chunks):
        for chunk in chunks:
            self.wfile.write(chunk)

    def _sendError(self, status, message):
        self.responseHeaders['Content-Type'] = TEXT_TYPE
        self.responseHeaders['X-Content-Type-Options'] = 'nosniff'
        self._sendResponse(status, f'{message}\n'.encode('utf-8'))

    def _sendResponse(self, status, body: bytes = b''):
        """Send a complete response whose body is known up front"""
        # Like a standard response writer, bodies get a sniffed Content-Type unless one was set
        if body and 'Content-Type' not in self.responseHeaders:
            self.responseHeaders['Content-Type'] = detectContentType(body)
        if status != HTTPStatus.NOT_MODIFIED:
            self.responseHeaders['Content-Length'] = str(len(body))

        self._writeHead(status)
        if body and self.sendBody:
            self.wfile.write(body)

    def _writeHead(self, status):
        self.send_response(status)
        for key, value in self.responseHeaders.items():
            # None marks a header that must not be sent at all
            if value is not None:
                self.send_header(key, value)
        self.end_headers()
        self.headersSent = True

    def log_message(self, format, *args):
        logger.debug(f'{self.address_string()} - {format % args}')


class FileServer(ThreadingHTTPServer):

    request_queue_size = 16
    allow_reuse_address = True
    daemon_threads = True
    stop = False # The flag to let searches and archives in progress abort on shutdown

    def __init__(
        self,
        fileSystem: FileSystem,
        serverAddress,
        staticRoot,
        templatePath=None,
        requestHandlerClass=None,
    ):
        self.fileSystem = fileSystem
        self.staticFileSystem = LocalFileSystem(staticRoot)

        # Parsed once, shared read-only by every request thread
        self.renderer = ListingRenderer(templatePath or f'{staticRoot}/{DIRECTORY_TEMPLATE}')

        if requestHandlerClass is None:
            requestHandlerClass = FileServerHandler

        super().__init__(serverAddress, requestHandlerClass)

    @property
    def url(self):
        host, port = self.server_address[:2]
        return f'http://{host}:{port}/'

    def shouldStop(self):
        return self.stop

    def handle_error(self, request, client_address):
        excType, excValue = sys.exc_info()[:2]
        if excType is not None and issubclass(excType, DISCONNECT_ERRORS):
            logger.debug(f'Connection from {client_address} dropped: {excValue}')
            return
        logger.exception(excValue)

    def start(self):
        logger.info(f'Listening on {self.url}')
        self.serve_forever()

    def shutdown(self):
        self.stop = True
        super().shutdown()


def createServer(
    fileSystem: FileSystem,
    host=DEFAULT_HOST,
    port=DEFAULT_PORT,
    staticRoot=None,
    templatePath=None,
    handlerClass=None,
):
    # Factory function to create a FileServer serving fileSystem on host:port
    if staticRoot is None:
        settingsGetter = SettingsGetter.getInstance()
        staticRoot = settingsGetter.staticRoot
        templatePath = templatePath or settingsGetter.getTemplatePath()

    return FileServer(fileSystem, (host, port), staticRoot, templatePath, handlerClass)
