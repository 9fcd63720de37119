#!/usr/bin/env python3

"""
What to do when a single transfer fails.

AbortOnFailure keeps the all-or-nothing behaviour: the first fault stops
the run. ContinueOnFailure records network and integrity faults and lets
the remaining transfers go ahead.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

from ..errors import ConfigurationError, FetchError, IntegrityError
from .action import VerificationRequest

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class FailedTransfer:
    name: str
    destination: str
    error: Exception

class FailurePolicy(ABC):
    @abstractmethod
    def handle(self, request: VerificationRequest, error: Exception) -> None:
        """Re-raise error to abort the run, or return to carry on"""
        pass

    @property
    def failures(self) -> List[FailedTransfer]:
        return []

class AbortOnFailure(FailurePolicy):
    def handle(self, request: VerificationRequest, error: Exception) -> None:
        raise error

class ContinueOnFailure(FailurePolicy):
    # Configuration faults can never succeed on retry, so they always abort
    RECOVERABLE = (FetchError, IntegrityError)

    def __init__(self):
        self._failures: List[FailedTransfer] = []
        self._lock = threading.Lock()

    def handle(self, request: VerificationRequest, error: Exception) -> None:
        if isinstance(error, ConfigurationError) or not isinstance(error, self.RECOVERABLE):
            raise error

        logger.error(f"Failed to mirror '{request.name}': {error}")
        with self._lock:
            self._failures.append(FailedTransfer(request.name, request.destination, error))

    @property
    def failures(self) -> List[FailedTransfer]:
        with self._lock:
            return list(self._failures)

def create_policy(continue_on_error: bool) -> FailurePolicy:
    if continue_on_error:
        return ContinueOnFailure()
    return AbortOnFailure()
