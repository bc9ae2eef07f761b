"""Deadline enforcement for external collaborator calls."""

from concurrent.futures import Executor, TimeoutError as FutureTimeoutError
from typing import Any, Callable, TypeVar

from ..errors import CollaboratorError, CollaboratorTimeoutError

T = TypeVar("T")


def call_with_timeout(
    executor: Executor,
    collaborator: str,
    timeout: float,
    fn: Callable[..., T],
    *args: Any,
    **kwargs: Any
) -> T:
    """
    Run a collaborator call on the executor and wait at most ``timeout`` seconds.

    Raises:
        CollaboratorTimeoutError: the call did not finish in time
        CollaboratorError: the call raised
    """
    future = executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as e:
        future.cancel()
        raise CollaboratorTimeoutError(
            f"{collaborator} timed out after {timeout}s",
            collaborator=collaborator,
            timeout_seconds=timeout
        ) from e
    except Exception as e:
        raise CollaboratorError(
            f"{collaborator} failed: {e}",
            collaborator=collaborator
        ) from e
