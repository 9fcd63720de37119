#!/usr/bin/env python3

"""
Exception hierarchy for rpm-mirror.

Every fault the mirror engine can raise derives from MirrorError so the
command-line layer can map it to an exit code. A local file that does not
exist is not a fault and has no exception here.
"""

from typing import Optional


class MirrorError(Exception):
    """Base class for all mirror faults"""


class ConfigurationError(MirrorError):
    """Invalid run parameters, config file or client certificate"""


class UnknownChecksumError(ConfigurationError):
    """Checksum type outside the supported set"""

    def __init__(self, checksum_type: str):
        super().__init__(f"Unknown checksum: {checksum_type}")
        self.checksum_type = checksum_type


class FetchError(MirrorError):
    """Network fault: connection, TLS, timeout or a non-200 response"""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status_code = status_code


class IntegrityError(MirrorError):
    """Fetched content does not match the checksum published by the repository"""

    def __init__(self, path: str, expected: str, actual: Optional[str]):
        super().__init__(f"Checksum mismatch for {path}: expected {expected}, got {actual}")
        self.path = path
        self.expected = expected
        self.actual = actual


class MetadataError(MirrorError):
    """Repository metadata could not be parsed or is inconsistent"""


class DecompressionError(MirrorError):
    """A compressed metadata stream could not be opened or drained"""


class StorageError(MirrorError):
    """Local storage cannot hold the pending downloads"""
