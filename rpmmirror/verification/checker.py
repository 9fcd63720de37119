#!/usr/bin/env python3

import os
import logging
import hashlib
from typing import Optional

from ..errors import UnknownChecksumError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

# Checksum type names as they appear in repomd.xml and primary.xml
SUPPORTED_CHECKSUMS = {
    'sha': hashlib.sha1,
    'sha1': hashlib.sha1,
    'sha256': hashlib.sha256,
    'md5': hashlib.md5,
}

def validate_checksum_type(checksum_type: str) -> str:
    """Raise UnknownChecksumError unless checksum_type is supported (case-sensitive)"""
    if checksum_type not in SUPPORTED_CHECKSUMS:
        raise UnknownChecksumError(checksum_type)
    return checksum_type

def hash_by_type(checksum_type: str):
    """Return a fresh hashlib object for a repository checksum type"""
    return SUPPORTED_CHECKSUMS[validate_checksum_type(checksum_type)]()

def checksum_for_bytes(data: bytes, checksum_type: str) -> str:
    hasher = hash_by_type(checksum_type)
    hasher.update(data)
    return hasher.hexdigest()

def checksum_for_file(file_path: str, checksum_type: str) -> Optional[str]:
    """Calculate the hex digest of a file, or None if the file does not exist"""
    hasher = hash_by_type(checksum_type)
    try:
        with open(file_path, 'rb') as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                hasher.update(chunk)
    except FileNotFoundError:
        return None
    return hasher.hexdigest()

def size_for_file(file_path: str) -> int:
    """Return the file size in bytes, -1 if the file does not exist"""
    try:
        return os.stat(file_path).st_size
    except FileNotFoundError:
        return -1

def verify_size(file_path: str, expected_size: int) -> bool:
    local = size_for_file(file_path)
    if local < 0:
        logger.debug(f"{file_path} does not exist")
        return False
    return local == expected_size

def verify_checksum(file_path: str, checksum_type: str, expected: str) -> bool:
    local = checksum_for_file(file_path, checksum_type)
    if local is None:
        logger.debug(f"{file_path} does not exist")
        return False
    return local == expected
