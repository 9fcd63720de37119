#!/usr/bin/env python3

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..config.manager import MirrorConfig
from ..metadata.primary import PackageListing, fetch_package_listing
from ..metadata.repomd import RepositoryIndex, fetch_index
from ..storage.manager import StorageManager, partial_path
from ..transport.client import HttpClient
from .action import ActionOutcome, MirrorAction, VerificationRequest
from .downloader import DownloadSummary, PackageDownloader
from .policy import FailedTransfer, FailurePolicy, create_policy

logger = logging.getLogger(__name__)

@dataclass
class MirrorReport:
    revision: Optional[str] = None
    packages: Optional[DownloadSummary] = None
    metadata_verified: int = 0
    metadata_downloaded: int = 0
    repomd_written: bool = False
    removed_partials: int = 0
    failures: List[FailedTransfer] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures

class RepositoryMirror:
    """Coordinates one mirror run of a repository.

    Metadata operations run sequentially on the calling thread; only the
    package set is handed to the worker pool.
    """

    def __init__(self, config: MirrorConfig, client: HttpClient,
                 storage: Optional[StorageManager] = None,
                 policy: Optional[FailurePolicy] = None):
        self.config = config
        self.client = client
        self.storage = storage or StorageManager(config)
        self.policy = policy or create_policy(config.continue_on_error)

    def fetch_index(self) -> RepositoryIndex:
        return fetch_index(self.client, self.config.repo_url, self.config.metadata_path)

    def fetch_package_listing(self, index: RepositoryIndex) -> PackageListing:
        return fetch_package_listing(self.client, index, self.config.data_path)

    def mirror_secondary_resources(self, index: RepositoryIndex, report: Optional[MirrorReport] = None) -> MirrorReport:
        """Verify or fetch every metadata file the index lists, one at a time"""
        report = report or MirrorReport(revision=index.revision)
        for resource in index.resources:
            request = VerificationRequest.for_resource(resource)
            try:
                outcome = MirrorAction(request, self.client, self.storage).run(self.config.size_check)
            except Exception as e:
                self.policy.handle(request, e)
                continue

            if outcome is ActionOutcome.VERIFIED:
                report.metadata_verified += 1
            else:
                report.metadata_downloaded += 1

        return report

    def mirror_index_file(self, index: RepositoryIndex) -> str:
        """Download repomd.xml itself.

        The index carries no checksum for itself, so it is always fetched
        again rather than verified.
        """
        destination = index.repomd_file_location
        temporary = partial_path(destination)

        self.storage.make_destination(temporary)
        try:
            self.client.download(index.repomd_url, temporary)
        except BaseException:
            self.storage.discard(temporary)
            raise
        self.storage.promote(temporary, destination)
        return destination

    def _pending_bytes(self, listing: PackageListing) -> int:
        pending = 0
        for package in listing:
            request = VerificationRequest.for_package(package)
            if package.size.package > 0 and not request.verify(size_check=True):
                pending += package.size.package
        return pending

    def mirror_packages(self, listing: PackageListing) -> DownloadSummary:
        if self.config.check_disk_space:
            self.storage.check_free_space(self._pending_bytes(listing), self.config.data_path)

        downloader = PackageDownloader(
            self.client,
            self.storage,
            concurrency=self.config.concurrent_downloads,
            size_check=self.config.size_check,
            policy=self.policy,
        )
        return downloader.mirror_packages(listing.packages)

    def run(self) -> MirrorReport:
        logger.info(f"Mirroring '{self.config.repo_url}' data to '{self.config.data_path}'.")
        logger.info(f"Mirroring '{self.config.repo_url}' metadata to '{self.config.metadata_path}'.")

        self.storage.ensure_directory_structure()
        cleanup = self.storage.cleanup_partial_downloads()

        index = self.fetch_index()
        report = MirrorReport(revision=index.revision, removed_partials=cleanup['deleted_files'])

        if not self.config.metadata_only:
            logger.info("Downloading packages...")
            listing = self.fetch_package_listing(index)
            report.packages = self.mirror_packages(listing)

        if not self.config.data_only:
            logger.info("Downloading metadata...")
            self.mirror_secondary_resources(index, report)
            if self.policy.failures:
                # A new repomd.xml must not reference files we failed to fetch
                logger.warning("Not updating repomd.xml because some files failed to mirror")
            else:
                logger.info("Downloading repomd.xml...")
                self.mirror_index_file(index)
                report.repomd_written = True

        report.failures = self.policy.failures
        if report.failures:
            logger.error(f"{len(report.failures)} files could not be mirrored")
        return report
