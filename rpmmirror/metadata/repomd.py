#!/usr/bin/env python3

"""
Top-level repository index (repodata/repomd.xml).

The index is the trust root of a mirror run: it names every secondary
metadata file together with its checksum and size.
"""

import os
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from lxml import etree as ET

from ..config.manager import REPOMD_PATH
from ..errors import MetadataError
from ..transport.client import HttpClient, url_join
from ..verification.checker import validate_checksum_type

logger = logging.getLogger(__name__)

def local_name(element) -> str:
    return ET.QName(element).localname

def find_child(element, name: str):
    """First child named name, with or without a namespace"""
    for child in element:
        if isinstance(child.tag, str) and local_name(child) == name:
            return child
    return None

def child_text(element, name: str, default: Optional[str] = None) -> Optional[str]:
    child = find_child(element, name)
    if child is None or child.text is None:
        return default
    return child.text.strip()

def local_path(destination: str, href: str) -> str:
    """Join href under destination, refusing paths that escape it.

    Root-relative hrefs resolve against the host root rather than the
    repository, so they have no place under destination either.
    """
    if href.startswith("/"):
        raise MetadataError(f"Location {href!r} is not relative to the repository")
    path = os.path.normpath(os.path.join(destination, href))
    root = os.path.normpath(destination)
    if path != root and not path.startswith(root + os.sep):
        raise MetadataError(f"Location {href!r} escapes the destination {destination}")
    return path

def parse_int(value: Optional[str], default: Optional[int] = None) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise MetadataError(f"Expected an integer, got {value!r}")

def parse_float(value: Optional[str], default: Optional[float] = None) -> Optional[float]:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise MetadataError(f"Expected a number, got {value!r}")

@dataclass(frozen=True)
class Checksum:
    type: str
    value: str
    pkgid: Optional[str] = None

    @classmethod
    def from_element(cls, element) -> "Checksum":
        if element is None:
            raise MetadataError("Missing checksum element")
        checksum_type = element.get('type', '')
        validate_checksum_type(checksum_type)
        return cls(
            type=checksum_type,
            value=(element.text or '').strip(),
            pkgid=element.get('pkgid'),
        )

    def __str__(self) -> str:
        return f"{self.type}:{self.value}"

@dataclass(frozen=True)
class SecondaryResource:
    """A metadata file referenced by repomd.xml (primary, filelists, ...)"""
    origin: str
    destination: str
    type: str
    href: str
    checksum: Checksum
    size: int
    timestamp: Optional[float] = None
    open_checksum: Optional[Checksum] = None
    open_size: Optional[int] = None
    database_version: Optional[int] = None

    @property
    def url(self) -> str:
        return url_join(self.origin, self.href)

    @property
    def file_location(self) -> str:
        return local_path(self.destination, self.href)

    def fetch(self, client: HttpClient) -> bytes:
        """Return the raw (still compressed) content of this resource"""
        if not self.href:
            raise MetadataError("this element has no location href")
        if not self.origin:
            raise MetadataError("this element has no origin")
        return client.get(self.url)

@dataclass(frozen=True)
class RepositoryIndex:
    origin: str
    destination: str
    revision: Optional[str]
    resources: Tuple[SecondaryResource, ...]

    def find(self, data_type: str) -> Optional[SecondaryResource]:
        for resource in self.resources:
            if resource.type == data_type:
                return resource
        return None

    def primary(self) -> Optional[SecondaryResource]:
        return self.find('primary')

    def filelists(self) -> Optional[SecondaryResource]:
        return self.find('filelists')

    @property
    def repomd_url(self) -> str:
        return url_join(self.origin, REPOMD_PATH)

    @property
    def repomd_file_location(self) -> str:
        return local_path(self.destination, REPOMD_PATH)

def repomd_url(origin: str) -> str:
    return url_join(origin, REPOMD_PATH)

def _parse_resource(data, origin: str, destination: str) -> SecondaryResource:
    data_type = data.get('type')
    if not data_type:
        raise MetadataError("repomd.xml <data> element without a type")

    location = find_child(data, 'location')
    href = location.get('href') if location is not None else None
    if not href:
        raise MetadataError(f"repomd.xml entry '{data_type}' has no location href")

    open_checksum = find_child(data, 'open-checksum')
    return SecondaryResource(
        origin=origin,
        destination=destination,
        type=data_type,
        href=href,
        checksum=Checksum.from_element(find_child(data, 'checksum')),
        size=parse_int(child_text(data, 'size'), default=-1),
        timestamp=parse_float(child_text(data, 'timestamp')),
        open_checksum=Checksum.from_element(open_checksum) if open_checksum is not None else None,
        open_size=parse_int(child_text(data, 'open-size')),
        database_version=parse_int(child_text(data, 'database_version')),
    )

def parse_repomd(content: bytes, origin: str, destination: str) -> RepositoryIndex:
    """Parse repomd.xml, stamping origin and destination on every resource"""
    try:
        root = ET.fromstring(content)
    except ET.XMLSyntaxError as e:
        raise MetadataError(f"Failed to parse repomd.xml: {e}") from e

    if local_name(root) != 'repomd':
        raise MetadataError(f"Unexpected root element <{local_name(root)}> in repomd.xml")

    resources: List[SecondaryResource] = []
    for child in root:
        if isinstance(child.tag, str) and local_name(child) == 'data':
            resources.append(_parse_resource(child, origin, destination))

    return RepositoryIndex(
        origin=origin,
        destination=destination,
        revision=child_text(root, 'revision'),
        resources=tuple(resources),
    )

def fetch_index(client: HttpClient, origin: str, destination: str) -> RepositoryIndex:
    url = repomd_url(origin)
    logger.info(f"Fetching repomd url '{url}'")
    index = parse_repomd(client.get(url), origin, destination)
    logger.info(f"Repository revision {index.revision} lists {len(index.resources)} metadata files")
    return index
