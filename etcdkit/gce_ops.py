"""Waiting for Google Compute Engine operations to complete."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Optional

from etcdkit.gce_url import parse_google_cloud_url

log = logging.getLogger(__name__)

OPERATION_POLL_INTERVAL = 3.0
OPERATION_POLL_TIMEOUT = 30 * 60.0


@dataclass
class Operation:
    """A compute API operation as returned by the service."""

    name: str = ""
    status: str = ""
    self_link: str = ""
    http_error_status_code: int = 0
    # Messages of the errors the operation reported.
    errors: list[str] = field(default_factory=list)


class OperationError(Exception):
    """An operation finished with an error."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"Error {code}: {message}")
        self.code = code
        self.message = message


class OperationsClient(ABC):
    """Fetches the current state of operations."""

    @abstractmethod
    def get_zone_operation(self, project: str, zone: str, name: str) -> Operation:
        """Return a zonal operation."""

    @abstractmethod
    def get_region_operation(self, project: str, region: str, name: str) -> Operation:
        """Return a regional operation."""

    @abstractmethod
    def get_global_operation(self, project: str, name: str) -> Operation:
        """Return a global operation."""


def op_is_done(op: Optional[Operation]) -> bool:
    """Tell whether the operation has finished."""
    return op is not None and op.status == "DONE"


def error_from_op(op: Optional[Operation]) -> Optional[OperationError]:
    """Return the error the operation reported, or None."""
    if op is not None and op.errors:
        err = OperationError(op.http_error_status_code, op.errors[0])
        log.error("GCE operation failed: %s", err)
        return err
    return None


def wait_for_op(
    op: Optional[Operation],
    get_operation: Callable[[str], Operation],
    interval: float = OPERATION_POLL_INTERVAL,
    timeout: float = OPERATION_POLL_TIMEOUT,
) -> None:
    """Poll the operation until it is done; raise its error or TimeoutError."""
    if op is None:
        raise ValueError("operation must not be nil")

    if op_is_done(op):
        err = error_from_op(op)
        if err is not None:
            raise err
        return

    start = time.monotonic()
    deadline = start + timeout
    name = op.name
    while True:
        time.sleep(interval)
        try:
            polled: Optional[Operation] = get_operation(name)
        except Exception as exc:
            log.warning("GCE poll operation %s failed: %s", name, exc)
            polled = None
        if op_is_done(polled):
            duration = time.monotonic() - start
            if duration > 60:
                log.info("wait_for_op: long operation (%.1fs): %s", duration, polled)
        err = error_from_op(polled)
        if err is not None:
            raise err
        if op_is_done(polled):
            return
        if time.monotonic() >= deadline:
            raise TimeoutError("timed out waiting for the condition")


def wait_for_scoped_op(client: OperationsClient, op: Operation) -> None:
    """Wait for an operation, polling the zonal, regional or global endpoint as its link says."""
    try:
        u = parse_google_cloud_url(op.self_link)
    except ValueError as err:
        raise ValueError(f"error parsing operation URL {op.self_link!r}: {err}") from err

    if u.zone:
        def getter(name: str) -> Operation:
            return client.get_zone_operation(u.project, u.zone, name)
    elif u.region:
        def getter(name: str) -> Operation:
            return client.get_region_operation(u.project, u.region, name)
    else:
        def getter(name: str) -> Operation:
            return client.get_global_operation(u.project, name)

    wait_for_op(op, getter)