#!/usr/bin/env python3

"""
Pytest configuration and shared fixtures for rpm-mirror test suite.
"""

import os
import bz2
import gzip
import lzma
import hashlib
import tempfile
import pytest
import requests
from typing import Dict, List, Optional
from unittest.mock import Mock

from rpmmirror.config.manager import MirrorConfig
from rpmmirror.storage.manager import StorageManager
from rpmmirror.transport.client import HttpClient

ORIGIN = "https://example.org/repo/"

COMPRESSORS = {
    '.gz': gzip.compress,
    '.bz2': bz2.compress,
    '.xz': lzma.compress,
    '': lambda data: data,
}

def digest(data: bytes, checksum_type: str = "sha256") -> str:
    algorithm = "sha1" if checksum_type == "sha" else checksum_type
    return hashlib.new(algorithm, data).hexdigest()

def make_response(status_code: int, data: bytes = b"") -> Mock:
    """Build a requests.Response stand-in"""
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.reason = "OK" if status_code == 200 else "Not Found"
    response.content = data
    response.iter_content.side_effect = lambda chunk_size=1: (
        data[i:i + chunk_size] for i in range(0, len(data), chunk_size)
    )
    return response

class FakeRepository:
    """An in-memory RPM repository served through a mocked requests.Session"""

    def __init__(self, origin: str = ORIGIN, primary_extension: str = ".gz"):
        self.origin = origin
        self.primary_extension = primary_extension
        self.packages: List[Dict] = []
        self.extra_metadata: List[Dict] = []
        self.files: Dict[str, bytes] = {}
        self.revision = "1700000000"

        self.session = Mock(spec=requests.Session)
        self.session.get.side_effect = self._get

    def _get(self, url, timeout=None, stream=False):
        if url not in self.files:
            return make_response(404)
        return make_response(200, self.files[url])

    @property
    def requested_urls(self) -> List[str]:
        return [c.args[0] for c in self.session.get.call_args_list]

    def reset_calls(self):
        self.session.get.reset_mock()

    def add_package(self, name: str, content: Optional[bytes] = None, arch: str = "x86_64",
                    version: str = "1.0", release: str = "1.el9", epoch: str = "0",
                    checksum_type: str = "sha256", href: Optional[str] = None) -> Dict:
        content = content if content is not None else f"rpm payload of {name}".encode()
        package = {
            'name': name,
            'arch': arch,
            'epoch': epoch,
            'version': version,
            'release': release,
            'checksum_type': checksum_type,
            'checksum': digest(content, checksum_type),
            'content': content,
            'href': href or f"Packages/{name[0]}/{name}-{version}-{release}.{arch}.rpm",
        }
        self.packages.append(package)
        return package

    def add_metadata(self, data_type: str, content: bytes, href: Optional[str] = None,
                     checksum_type: str = "sha256") -> Dict:
        entry = {
            'type': data_type,
            'content': content,
            'href': href or f"repodata/{digest(content)[:12]}-{data_type}.xml",
            'checksum_type': checksum_type,
        }
        self.extra_metadata.append(entry)
        return entry

    def primary_xml(self) -> bytes:
        parts = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<metadata xmlns="http://linux.duke.edu/metadata/common" '
            'xmlns:rpm="http://linux.duke.edu/metadata/rpm" packages="%d">' % len(self.packages),
        ]
        for p in self.packages:
            parts.append(f"""<package type="rpm">
  <name>{p['name']}</name>
  <arch>{p['arch']}</arch>
  <version epoch="{p['epoch']}" ver="{p['version']}" rel="{p['release']}"/>
  <checksum type="{p['checksum_type']}" pkgid="YES">{p['checksum']}</checksum>
  <summary>Summary of {p['name']}</summary>
  <description>Description of {p['name']}</description>
  <packager>Example Packager</packager>
  <url>https://example.org/{p['name']}</url>
  <time file="1700000000" build="1690000000"/>
  <size package="{len(p['content'])}" installed="{len(p['content']) * 3}" archive="{len(p['content']) * 2}"/>
  <location href="{p['href']}"/>
  <format>
    <rpm:license>MIT</rpm:license>
  </format>
</package>""")
        parts.append('</metadata>')
        return "\n".join(parts).encode()

    def build(self) -> "FakeRepository":
        """Render primary and repomd.xml and publish every file"""
        self.files = {}
        for p in self.packages:
            self.files[self.origin + p['href']] = p['content']

        primary_open = self.primary_xml()
        primary = COMPRESSORS[self.primary_extension](primary_open)
        primary_href = f"repodata/{digest(primary)[:12]}-primary.xml{self.primary_extension}"
        self.primary_href = primary_href
        self.files[self.origin + primary_href] = primary

        data_entries = [f"""  <data type="primary">
    <checksum type="sha256">{digest(primary)}</checksum>
    <open-checksum type="sha256">{digest(primary_open)}</open-checksum>
    <location href="{primary_href}"/>
    <timestamp>{self.revision}</timestamp>
    <size>{len(primary)}</size>
    <open-size>{len(primary_open)}</open-size>
  </data>"""]
        for m in self.extra_metadata:
            self.files[self.origin + m['href']] = m['content']
            data_entries.append(f"""  <data type="{m['type']}">
    <checksum type="{m['checksum_type']}">{digest(m['content'], m['checksum_type'])}</checksum>
    <location href="{m['href']}"/>
    <timestamp>{self.revision}</timestamp>
    <size>{len(m['content'])}</size>
  </data>""")

        self.repomd = "\n".join([
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<repomd xmlns="http://linux.duke.edu/metadata/repo" xmlns:rpm="http://linux.duke.edu/metadata/rpm">',
            f'  <revision>{self.revision}</revision>',
            *data_entries,
            '</repomd>',
        ]).encode()
        self.files[self.origin + "repodata/repomd.xml"] = self.repomd
        return self

    def corrupt(self, href: str):
        """Flip one byte of a published file without touching the metadata"""
        url = self.origin + href
        data = bytearray(self.files[url])
        data[0] ^= 0xFF
        self.files[url] = bytes(data)

    def client(self) -> HttpClient:
        return HttpClient(self.session)


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that gets cleaned up after test"""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir

    # Cleanup
    import shutil
    if os.path.exists(temp_dir):
        shutil.rmtree(temp_dir)


@pytest.fixture
def fake_repo():
    """Provide a small repository with three packages and a filelists file"""
    repo = FakeRepository()
    repo.add_package("hello")
    repo.add_package("goodbye", version="2.0", release="3.el9")
    repo.add_package("noarch-tool", arch="noarch", checksum_type="sha1")
    repo.add_metadata("filelists", b"<filelists/>")
    return repo.build()


@pytest.fixture
def repository_factory():
    """Provide the FakeRepository class for tests that build their own repository"""
    return FakeRepository


@pytest.fixture
def mirror_config(temp_dir):
    """Provide a mirror configuration rooted in the temporary directory"""
    return MirrorConfig(
        repo_url=ORIGIN,
        destination=os.path.join(temp_dir, "mirror"),
        concurrent_downloads=2,
        check_disk_space=False,
    )


@pytest.fixture
def storage_manager(mirror_config):
    return StorageManager(mirror_config)


@pytest.fixture(autouse=True)
def setup_logging():
    """Set up logging for tests"""
    import logging

    # Set up basic logging for tests
    logging.basicConfig(
        level=logging.WARNING,  # Only show warnings and errors in tests
        format="%(name)s - %(levelname)s - %(message)s",
        force=True
    )


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test names"""
    for item in items:
        # Add integration marker to integration test classes
        if "Integration" in item.cls.__name__ if item.cls else False:
            item.add_marker(pytest.mark.integration)
