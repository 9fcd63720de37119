#!/usr/bin/env python3

"""
Decompression of repository metadata.

The codec is chosen from the trailing file extension only; repositories
name their files after the compression they actually use.
"""

import io
import bz2
import gzip
import lzma
import logging
import posixpath
from urllib.parse import urlparse

from ..errors import DecompressionError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

CODECS = {
    '.gz': gzip.open,
    '.bz2': bz2.open,
    '.xz': lzma.open,
}

def extension_for(name: str) -> str:
    """Trailing extension of a file name or URL, query string ignored"""
    path = urlparse(name).path if "://" in name else name
    return posixpath.splitext(path)[1]

def decompress(data: bytes, name: str) -> bytes:
    """Return data decompressed according to the extension of name.

    Unknown extensions pass through unchanged.
    """
    extension = extension_for(name)
    codec = CODECS.get(extension)
    if codec is None:
        return data
    if not data:
        raise DecompressionError(f"Failed to decompress {name} as {extension}: empty stream")

    output = io.BytesIO()
    try:
        with codec(io.BytesIO(data), 'rb') as reader:
            for chunk in iter(lambda: reader.read(CHUNK_SIZE), b""):
                output.write(chunk)
    except (OSError, EOFError, lzma.LZMAError, ValueError) as e:
        raise DecompressionError(f"Failed to decompress {name} as {extension}: {e}") from e

    result = output.getvalue()
    logger.debug(f"Decompressed {name}: {len(data)} -> {len(result)} bytes")
    return result
