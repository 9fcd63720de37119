#!/usr/bin/env python3

import os
import logging
import psutil
from typing import Dict, Iterable, List, Optional, Any

from ..config.manager import MirrorConfig
from ..errors import StorageError

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"

def partial_path(destination: str) -> str:
    """Temporary sibling a download is written to before promotion"""
    return destination + PARTIAL_SUFFIX

class StorageManager:
    def __init__(self, config: MirrorConfig):
        self.config = config

    def roots(self) -> List[str]:
        """Distinct local roots used by this run"""
        roots = []
        for path in (self.config.metadata_path, self.config.data_path):
            if path and path not in roots:
                roots.append(path)
        return roots

    def ensure_directory_structure(self) -> Dict[str, bool]:
        """Create the metadata and data roots"""
        results = {}
        for directory in self.roots():
            try:
                os.makedirs(directory, mode=0o755, exist_ok=True)
                results[directory] = True
                logger.debug(f"Ensured directory exists: {directory}")
            except OSError as e:
                logger.error(f"Failed to create directory {directory}: {e}")
                results[directory] = False

        return results

    def make_destination(self, path: str) -> None:
        """Create the parent directories of path if they do not exist yet"""
        directory = os.path.dirname(path)
        if directory and not os.path.isdir(directory):
            os.makedirs(directory, mode=0o755, exist_ok=True)

    def promote(self, temporary: str, destination: str) -> None:
        """Atomically move a verified download into its final location"""
        os.replace(temporary, destination)

    def discard(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass

    def get_storage_info(self) -> Dict[str, Any]:
        """Disk usage information for each root"""
        storage_info = {
            'paths': []
        }

        for path_type, path in [
            ('metadata', self.config.metadata_path),
            ('data', self.config.data_path)
        ]:
            path_info = self._get_path_info(path, path_type)
            if path_info:
                storage_info['paths'].append(path_info)

        return storage_info

    def _get_path_info(self, path: str, path_type: str) -> Optional[Dict[str, Any]]:
        """Get detailed information about a specific path"""
        if not path or not os.path.exists(path):
            return None

        try:
            disk_usage = psutil.disk_usage(path)
        except OSError as e:
            logger.error(f"Failed to get info for path {path}: {e}")
            return None

        return {
            'path': path,
            'type': path_type,
            'total_size': disk_usage.total,
            'used_space': disk_usage.used,
            'free_space': disk_usage.free,
            'used_percent': (disk_usage.used / disk_usage.total) * 100 if disk_usage.total else 0.0,
            'directory_size': self._get_directory_size(path),
        }

    def _get_directory_size(self, path: str) -> int:
        """Calculate total size of a directory recursively"""
        total_size = 0
        for dirpath, dirnames, filenames in os.walk(path):
            for filename in filenames:
                file_path = os.path.join(dirpath, filename)
                try:
                    total_size += os.path.getsize(file_path)
                except OSError:
                    # Skip files that vanished or can't be accessed
                    continue

        return total_size

    def _existing_parent(self, path: str) -> str:
        while path and not os.path.exists(path):
            parent = os.path.dirname(path)
            if parent == path:
                break
            path = parent
        return path or "."

    def free_space(self, path: str) -> int:
        return psutil.disk_usage(self._existing_parent(path)).free

    def check_free_space(self, required_bytes: int, path: Optional[str] = None) -> None:
        """Raise StorageError if path cannot hold required_bytes more data"""
        path = path or self.config.data_path
        free = self.free_space(path)
        logger.debug(f"Need {required_bytes} bytes under {path}, {free} bytes free")
        if required_bytes > free:
            raise StorageError(
                f"Not enough free space under {path}: need {required_bytes / (1024**3):.2f} GB, "
                f"{free / (1024**3):.2f} GB available"
            )

    def find_partial_downloads(self) -> Iterable[str]:
        for root in self.roots():
            if not os.path.isdir(root):
                continue
            for dirpath, dirnames, filenames in os.walk(root):
                for filename in filenames:
                    if filename.endswith(PARTIAL_SUFFIX):
                        yield os.path.join(dirpath, filename)

    def cleanup_partial_downloads(self) -> Dict[str, Any]:
        """Remove *.part files left behind by an interrupted run"""
        cleanup_result = {
            'freed_space': 0,
            'deleted_files': 0,
            'errors': []
        }

        for file_path in list(self.find_partial_downloads()):
            try:
                file_size = os.path.getsize(file_path)
                os.remove(file_path)
                cleanup_result['freed_space'] += file_size
                cleanup_result['deleted_files'] += 1
                logger.debug(f"Deleted partial download: {file_path}")
            except OSError as e:
                error_msg = f"Failed to delete {file_path}: {e}"
                logger.warning(error_msg)
                cleanup_result['errors'].append(error_msg)

        if cleanup_result['deleted_files']:
            logger.info(f"Removed {cleanup_result['deleted_files']} stale partial downloads")

        return cleanup_result
