#!/usr/bin/env python3

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..metadata.primary import PackageEntry
from ..storage.manager import StorageManager
from ..transport.client import HttpClient
from .action import ActionOutcome, MirrorAction, VerificationRequest
from .policy import AbortOnFailure, FailedTransfer, FailurePolicy

logger = logging.getLogger(__name__)

@dataclass
class DownloadSummary:
    total: int = 0
    completed: int = 0
    verified: int = 0
    downloaded: int = 0
    failures: List[FailedTransfer] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

class PackageDownloader:
    """Mirror a package list with a fixed number of worker threads.

    At most `concurrency` transfers are in flight at any time and every
    package is counted exactly once when its transfer finishes, whatever
    order the workers finish in.
    """

    PROGRESS_INTERVAL = 1000

    def __init__(self, client: HttpClient, storage: StorageManager,
                 concurrency: int = 10, size_check: bool = False,
                 policy: Optional[FailurePolicy] = None):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.client = client
        self.storage = storage
        self.concurrency = concurrency
        self.size_check = size_check
        self.policy = policy or AbortOnFailure()

    def _mirror_one(self, request: VerificationRequest) -> Optional[ActionOutcome]:
        try:
            return MirrorAction(request, self.client, self.storage).run(self.size_check)
        except Exception as e:
            self.policy.handle(request, e)
            return None

    def mirror_packages(self, packages: Sequence[PackageEntry]) -> DownloadSummary:
        pending = [VerificationRequest.for_package(p) for p in packages]
        summary = DownloadSummary(total=len(pending))
        if not pending:
            logger.info("Received: 0/0")
            return summary

        logger.debug(f"Mirroring {summary.total} packages using {self.concurrency} workers")

        executor = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="mirror")
        try:
            futures = [executor.submit(self._mirror_one, request) for request in pending]

            for future in as_completed(futures):
                outcome = future.result()
                summary.completed += 1
                if outcome is ActionOutcome.VERIFIED:
                    summary.verified += 1
                elif outcome is ActionOutcome.DOWNLOADED:
                    summary.downloaded += 1

                if summary.completed % self.PROGRESS_INTERVAL == 0:
                    logger.info(f"Received packages: {summary.completed}/{summary.total}")
        except BaseException:
            # Drop queued work; transfers already running finish on their own
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        else:
            executor.shutdown(wait=True)

        destinations = {r.destination for r in pending}
        summary.failures = [f for f in self.policy.failures if f.destination in destinations]
        logger.info(f"Received: {summary.completed}/{summary.total}")
        return summary
