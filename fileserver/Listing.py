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
Directory listing page: the data handed to the template and the Jinja2 renderer.
"""

import os

from dataclasses import dataclass, field
from typing import List

import jinja2

from fileserver.Kernel import getLogger
from fileserver.FileViews import FileView
from fileserver.Paths import Breadcrumb

logger = getLogger(__name__)


@dataclass
class DirectoryListing:
    """Everything the listing template needs, and nothing else"""
    title: str
    searchQuery: str
    breadcrumbs: List[Breadcrumb] = field(default_factory=list)
    files: List[FileView] = field(default_factory=list)


class ListingRenderer:
    """
    Renders DirectoryListing objects with a Jinja2 template.

    The template is parsed once, when the renderer is built, and only read afterwards,
    so one renderer is shared by every request thread.
    """

    def __init__(self, templatePath: str):
        templateDir, templateName = os.path.split(os.path.abspath(templatePath))

        environment = jinja2.Environment(
            loader=jinja2.FileSystemLoader(templateDir),
            autoescape=True,
            undefined=jinja2.StrictUndefined,
        )
        self.template = environment.get_template(templateName)

        logger.debug(f'Listing template loaded: {templatePath}')

    def render(self, listing: DirectoryListing) -> bytes:
        html = self.template.render(
            title=listing.title,
            searchQuery=listing.searchQuery,
            breadcrumbs=listing.breadcrumbs,
            files=listing.files,
        )
        return html.encode('utf-8')
