"""
Error handling policies for lazytree.

Tree sources are never retried by the loader. When a fetch fails the
loader hands the error to an ErrorPolicy, which decides what, if
anything, becomes visible in the materialized tree.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from .core.node import LoadableSet

logger = logging.getLogger(__name__)


class TreeError(Exception):
    """Base class for lazytree errors."""


class UnknownNodeError(TreeError, KeyError):
    """Raised by sources asked about an id they do not know."""

    def __init__(self, node_id: Any):
        super().__init__(node_id)
        self.node_id = node_id

    def __str__(self) -> str:
        return f"Unknown node id: {self.node_id!r}"


class ErrorPolicy(ABC):
    """
    Base class for fetch failure policies.

    Subclasses implement different strategies for failed ``children``
    and ``trail`` calls.
    """

    @abstractmethod
    async def handle(self, error: Exception, method_name: str, node_id: Optional[str]) -> Optional[LoadableSet]:
        """
        Handle an error raised by a tree source.

        Args:
            error: The exception that was raised
            method_name: Source method that failed ('children' or 'trail')
            node_id: Id the call was made for (None for the root nodes)

        Returns:
            A LoadableSet to commit in place of the missing result, or
            None to leave the node loading. The return value is ignored
            for 'trail' failures.
        """
        pass

    @staticmethod
    def _record(error: Exception, method_name: str, node_id: Optional[str]) -> dict:
        return {
            'node_id': node_id,
            'method': method_name,
            'error': error,
            'error_type': type(error).__name__,
            'error_message': str(error),
        }


class StallPolicy(ErrorPolicy):
    """
    Policy that logs the failure and leaves the node loading.

    This is the default behavior: nothing in the view model changes, the
    loading flag simply never clears. Errors are kept for inspection.
    """

    def __init__(self, verbose: bool = True):
        """
        Initialize the policy.

        Args:
            verbose: If True, log a warning for every failure
        """
        self.errors: List[dict] = []
        self.verbose = verbose

    async def handle(self, error: Exception, method_name: str, node_id: Optional[str]) -> Optional[LoadableSet]:
        self.errors.append(self._record(error, method_name, node_id))
        if self.verbose:
            logger.warning("Tree source %s(%r) failed, node stays loading: %s", method_name, node_id, error)
        return None

    def get_statistics(self) -> dict:
        """
        Get statistics about errors encountered.

        Returns:
            Dictionary with error counts and details
        """
        return {
            'total_errors': len(self.errors),
            'children_errors': sum(1 for e in self.errors if e['method'] == 'children'),
            'trail_errors': sum(1 for e in self.errors if e['method'] == 'trail'),
            'errors': self.errors,
        }


class CollectErrorsPolicy(StallPolicy):
    """
    Policy that collects all errors without logging.

    Useful for collecting errors and presenting them at the end.
    """

    def __init__(self):
        super().__init__(verbose=False)


class MarkFailedPolicy(ErrorPolicy):
    """
    Policy that surfaces failed children fetches as a failed LoadableSet.

    The node stops loading and its children carry the error, so a
    renderer can show a distinguishable failed state.
    """

    def __init__(self):
        self.errors: List[dict] = []

    async def handle(self, error: Exception, method_name: str, node_id: Optional[str]) -> Optional[LoadableSet]:
        self.errors.append(self._record(error, method_name, node_id))
        logger.debug("Marking %s(%r) as failed: %s", method_name, node_id, error)
        if method_name == 'children':
            return LoadableSet.failed_with(error)
        return None


class ThresholdPolicy(ErrorPolicy):
    """
    Policy that tolerates errors up to a threshold, then fails loudly.

    Below the threshold failures stall like StallPolicy. Past it the
    error is re-raised inside the loader task, which logs it as an error.
    """

    def __init__(self, max_errors: int = 10, verbose: bool = True):
        """
        Initialize threshold policy.

        Args:
            max_errors: Maximum errors to tolerate before failing
            verbose: If True, log a warning for tolerated errors
        """
        self.max_errors = max_errors
        self.error_count = 0
        self.verbose = verbose
        self.errors: List[Exception] = []

    async def handle(self, error: Exception, method_name: str, node_id: Optional[str]) -> Optional[LoadableSet]:
        self.error_count += 1
        self.errors.append(error)

        if self.error_count > self.max_errors:
            raise TreeError(f"Error threshold exceeded ({self.max_errors} errors)") from error

        if self.verbose:
            logger.warning("[%d/%d] Tree source %s(%r) failed: %s",
                           self.error_count, self.max_errors, method_name, node_id, error)
        return None
