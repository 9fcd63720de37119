#!/usr/bin/env python3

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Union

from ..errors import IntegrityError
from ..metadata.primary import PackageEntry
from ..metadata.repomd import SecondaryResource
from ..storage.manager import StorageManager, partial_path
from ..transport.client import HttpClient
from ..verification.checker import checksum_for_file, verify_checksum, verify_size

logger = logging.getLogger(__name__)

class ActionOutcome(Enum):
    VERIFIED = "verified"
    DOWNLOADED = "downloaded"

@dataclass(frozen=True)
class VerificationRequest:
    """What one transfer needs to know, whether it mirrors metadata or a package"""
    name: str
    source: str
    destination: str
    checksum_type: str
    checksum: str
    size: int

    @classmethod
    def for_resource(cls, resource: SecondaryResource) -> "VerificationRequest":
        return cls(
            name=resource.href,
            source=resource.url,
            destination=resource.file_location,
            checksum_type=resource.checksum.type,
            checksum=resource.checksum.value,
            size=resource.size,
        )

    @classmethod
    def for_package(cls, package: PackageEntry) -> "VerificationRequest":
        return cls(
            name=package.href,
            source=package.url,
            destination=package.file_location,
            checksum_type=package.checksum.type,
            checksum=package.checksum.value,
            size=package.size.package,
        )

    def verify(self, size_check: bool = False) -> bool:
        if size_check:
            return verify_size(self.destination, self.size)
        return verify_checksum(self.destination, self.checksum_type, self.checksum)

class MirrorAction:
    """Verify a local file and replace it from the origin when it does not match.

    A downloaded file only reaches its final path after its checksum has been
    verified, so any file found at a final path was valid when it appeared.
    """

    def __init__(self, request: Union[VerificationRequest, SecondaryResource, PackageEntry],
                 client: HttpClient, storage: StorageManager):
        if isinstance(request, SecondaryResource):
            request = VerificationRequest.for_resource(request)
        elif isinstance(request, PackageEntry):
            request = VerificationRequest.for_package(request)
        self.request = request
        self.client = client
        self.storage = storage

    def run(self, size_check: bool = False) -> ActionOutcome:
        if self.request.verify(size_check):
            logger.debug(f"'{self.request.name}' is up to date")
            return ActionOutcome.VERIFIED

        logger.info(f"We don't have the correct version of '{self.request.name}'. Downloading it...")
        self.mirror()
        return ActionOutcome.DOWNLOADED

    def mirror(self) -> str:
        destination = self.request.destination
        temporary = partial_path(destination)

        self.storage.make_destination(temporary)
        try:
            self.client.download(self.request.source, temporary)
            actual = checksum_for_file(temporary, self.request.checksum_type)
            if actual != self.request.checksum:
                raise IntegrityError(destination, self.request.checksum, actual)
        except BaseException:
            self.storage.discard(temporary)
            raise

        self.storage.promote(temporary, destination)
        return destination
