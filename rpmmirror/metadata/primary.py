#!/usr/bin/env python3

"""
Package listing parsed from the "primary" metadata resource.
"""

import io
import logging
import posixpath
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from lxml import etree as ET

from ..errors import IntegrityError, MetadataError
from ..transport.client import HttpClient, url_join
from ..verification.checker import checksum_for_bytes
from .compression import decompress
from .repomd import (
    Checksum, RepositoryIndex, SecondaryResource,
    child_text, find_child, local_name, local_path, parse_int,
)

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class PackageVersion:
    epoch: str
    ver: str
    rel: str

    def __str__(self) -> str:
        if self.epoch and self.epoch != "0":
            return f"{self.epoch}:{self.ver}-{self.rel}"
        return f"{self.ver}-{self.rel}"

@dataclass(frozen=True)
class PackageSize:
    package: int
    installed: Optional[int] = None
    archive: Optional[int] = None

@dataclass(frozen=True)
class PackageTime:
    file: Optional[int] = None
    build: Optional[int] = None

@dataclass(frozen=True)
class PackageEntry:
    origin: str
    destination: str
    name: str
    arch: str
    version: PackageVersion
    checksum: Checksum
    size: PackageSize
    href: str
    summary: Optional[str] = None
    description: Optional[str] = None
    packager: Optional[str] = None
    project_url: Optional[str] = None
    time: PackageTime = PackageTime()

    @property
    def evr(self) -> str:
        return str(self.version)

    @property
    def nevra(self) -> str:
        return f"{self.name}-{self.evr}.{self.arch}"

    @property
    def url(self) -> str:
        return url_join(self.origin, self.href)

    @property
    def file_location(self) -> str:
        return local_path(self.destination, self.href)

@dataclass(frozen=True)
class PackageListing:
    origin: str
    destination: str
    packages: Tuple[PackageEntry, ...]

    def __len__(self) -> int:
        return len(self.packages)

    def __iter__(self) -> Iterator[PackageEntry]:
        return iter(self.packages)

    @property
    def total_size(self) -> int:
        return sum(p.size.package for p in self.packages)

def _parse_package(element, origin: str, destination: str) -> PackageEntry:
    name = child_text(element, 'name')
    if not name:
        raise MetadataError("Package entry without a name")

    location = find_child(element, 'location')
    href = location.get('href') if location is not None else None
    if not href:
        raise MetadataError(f"Package '{name}' has no location href")

    version = find_child(element, 'version')
    if version is None:
        raise MetadataError(f"Package '{name}' has no version")

    size = find_child(element, 'size')
    if size is None:
        raise MetadataError(f"Package '{name}' has no size")

    time = find_child(element, 'time')
    if time is not None:
        package_time = PackageTime(file=parse_int(time.get('file')), build=parse_int(time.get('build')))
    else:
        package_time = PackageTime()

    return PackageEntry(
        origin=origin,
        destination=destination,
        name=name,
        arch=child_text(element, 'arch', ''),
        version=PackageVersion(
            epoch=version.get('epoch', '0'),
            ver=version.get('ver', ''),
            rel=version.get('rel', ''),
        ),
        checksum=Checksum.from_element(find_child(element, 'checksum')),
        size=PackageSize(
            package=parse_int(size.get('package'), default=-1),
            installed=parse_int(size.get('installed')),
            archive=parse_int(size.get('archive')),
        ),
        href=href,
        summary=child_text(element, 'summary'),
        description=child_text(element, 'description'),
        packager=child_text(element, 'packager'),
        project_url=child_text(element, 'url'),
        time=package_time,
    )

def parse_primary(content: bytes, origin: str, destination: str) -> PackageListing:
    """Parse decompressed primary.xml into a PackageListing.

    Uses incremental parsing and discards each <package> element once read,
    since primary files for large repositories run to hundreds of megabytes.
    Two packages with the same location would race on the same file, so
    duplicates are rejected.
    """
    packages: List[PackageEntry] = []
    seen = set()
    declared = None

    try:
        for event, element in ET.iterparse(io.BytesIO(content), events=('start', 'end')):
            if not isinstance(element.tag, str):
                continue
            if event == 'start':
                if declared is None and local_name(element) == 'metadata':
                    declared = parse_int(element.get('packages'))
                continue
            if local_name(element) != 'package' or element.getparent() is None:
                continue
            if local_name(element.getparent()) != 'metadata':
                continue

            entry = _parse_package(element, origin, destination)
            location = posixpath.normpath(entry.href)
            if location in seen:
                raise MetadataError(f"Duplicate package location in primary metadata: {entry.href}")
            seen.add(location)
            packages.append(entry)

            element.clear()
            while element.getprevious() is not None:
                del element.getparent()[0]
    except ET.XMLSyntaxError as e:
        raise MetadataError(f"Failed to parse primary metadata: {e}") from e

    if declared is not None and declared != len(packages):
        logger.warning(f"Primary metadata declares {declared} packages but lists {len(packages)}")

    return PackageListing(origin=origin, destination=destination, packages=tuple(packages))

def _verify_content(resource: SecondaryResource, data: bytes, checksum: Checksum, label: str) -> None:
    actual = checksum_for_bytes(data, checksum.type)
    if actual != checksum.value:
        raise IntegrityError(f"{resource.href} ({label})", checksum.value, actual)

def fetch_package_listing(client: HttpClient, index: RepositoryIndex,
                          destination: Optional[str] = None) -> PackageListing:
    """Fetch, verify, decompress and parse the primary metadata of index.

    Packages are rooted at destination, which defaults to the index's own
    destination when metadata and data share a root.
    """
    primary = index.primary()
    if primary is None:
        raise MetadataError(f"Repository {index.origin} has no primary metadata")

    raw = primary.fetch(client)
    _verify_content(primary, raw, primary.checksum, "compressed")

    content = decompress(raw, primary.href)
    if primary.open_checksum is not None:
        _verify_content(primary, content, primary.open_checksum, "uncompressed")

    listing = parse_primary(content, index.origin, destination or index.destination)
    logger.info(f"We have {len(listing)} packages.")
    logger.debug(f"Listed packages declare {listing.total_size} bytes in total")
    return listing
