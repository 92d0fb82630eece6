"""Background execution of profile scans and polar remaps.

The producer (caller thread) submits a magnitude field; the coordinator
dispatches an independent scan job and remap job to an executor. Workers only
return immutable payloads through a message queue tagged with the request id.
The producer applies them to the AnalysisCache in ``poll()`` / ``wait()``,
discarding anything that belongs to a superseded request.
"""

import itertools
import logging
import queue
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np

from spectral_screener.errors import BackgroundExecutionFailure, ConfigurationError
from spectral_screener.magnitude import MagnitudeField
from spectral_screener.polar import PolarImage, PolarRemapper
from spectral_screener.profiles import ScanResult, scan_profiles, smooth_azimuthal

logger = logging.getLogger(__name__)

__all__ = ['AnalysisCoordinator', 'AnalysisCache', 'CoordinatorState', 'JobMessage', 'SCAN', 'REMAP']

SCAN = "scan"
REMAP = "remap"


class CoordinatorState(str, Enum):
    """Lifecycle of the current request."""

    IDLE = "idle"
    DISPATCHED = "dispatched"  # Scan and remap both outstanding
    SCANNING = "scanning"  # Only the scan is outstanding
    REMAPPING = "remapping"  # Only the remap is outstanding
    CACHED = "cached"


@dataclass(frozen=True)
class JobMessage:
    """Result envelope posted by a job; exactly one of payload/error is set."""

    request_id: int
    ticket: int
    kind: str
    payload: Any = None
    error: Optional[BaseException] = None


@dataclass
class AnalysisCache:
    """Single-slot cache of the most recent analysis."""

    request_id: Optional[int] = None
    field: Optional[MagnitudeField] = None
    scan: Optional[ScanResult] = None
    smoothed_azimuthal: Optional[np.ndarray] = None
    polar: Optional[PolarImage] = None

    @property
    def azimuthal(self) -> Optional[np.ndarray]:
        return None if self.scan is None else self.scan.azimuthal

    @property
    def radial(self) -> Optional[np.ndarray]:
        return None if self.scan is None else self.scan.radial

    def reset(self, request_id: int, magnitude_field: MagnitudeField) -> None:
        self.request_id = request_id
        self.field = magnitude_field
        self.scan = None
        self.smoothed_azimuthal = None
        self.polar = None


def _handoff(array: np.ndarray) -> np.ndarray:
    """Private read-only copy for a worker."""
    copy = np.array(array, copy=True)
    copy.setflags(write=False)
    return copy


class AnalysisCoordinator:
    """
    Dispatches scan and remap jobs and applies their results.

    Args:
        remapper: PolarRemapper used for remap jobs
        executor: Executor for background jobs. If omitted, a two-worker
            ThreadPoolExecutor is created and owned by the coordinator.
        synchronous: Run every job inline on the calling thread
        on_result: Called on the producer thread as ``on_result(kind, cache)``
            after each applied result
    """

    def __init__(
        self,
        remapper: Optional[PolarRemapper] = None,
        executor: Optional[Executor] = None,
        synchronous: bool = False,
        on_result: Optional[Callable[[str, AnalysisCache], None]] = None,
    ):
        self.remapper = remapper if remapper is not None else PolarRemapper()
        self.on_result = on_result
        self.cache = AnalysisCache()

        self._owns_executor = False
        if synchronous:
            self._executor = None
        elif executor is not None:
            self._executor = executor
        else:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="spectral-worker")
            self._owns_executor = True

        self._messages: "queue.Queue[JobMessage]" = queue.Queue()
        self._request_ids = itertools.count(1)
        self._tickets = itertools.count(1)
        self._current_id: Optional[int] = None
        self._latest_ticket: Dict[str, int] = {}
        self._jobs: Dict[str, Callable[[], Any]] = {}
        self._outstanding = set()
        self.output_size: Optional[Tuple[int, int]] = None

        mode = "synchronous" if self._executor is None else type(self._executor).__name__
        logger.debug(f"AnalysisCoordinator initialized ({mode})")

    @property
    def current_request(self) -> Optional[int]:
        return self._current_id

    @property
    def state(self) -> CoordinatorState:
        if self._current_id is None:
            return CoordinatorState.IDLE
        if {SCAN, REMAP} <= self._outstanding:
            return CoordinatorState.DISPATCHED
        if SCAN in self._outstanding:
            return CoordinatorState.SCANNING
        if REMAP in self._outstanding:
            return CoordinatorState.REMAPPING
        return CoordinatorState.CACHED

    def submit(self, magnitude_field: MagnitudeField, output_width: int, output_height: int) -> int:
        """
        Start a new analysis, superseding any request still in flight.

        Args:
            magnitude_field: Field to scan (linear) and remap (visual)
            output_width: Polar output width
            output_height: Polar output height

        Returns:
            The new request id
        """
        if output_width <= 0 or output_height <= 0:
            raise ConfigurationError(
                f"Output dimensions must be positive, got {output_width}x{output_height}"
            )

        request_id = next(self._request_ids)
        if self._outstanding:
            logger.debug(f"Request {request_id} supersedes request {self._current_id}")
        self._current_id = request_id
        self._outstanding = set()
        self.cache.reset(request_id, magnitude_field)
        self.output_size = (output_width, output_height)

        w, h = magnitude_field.width, magnitude_field.height
        linear = _handoff(magnitude_field.linear)
        visual = _handoff(magnitude_field.visual)
        self._dispatch(request_id, SCAN, partial(scan_profiles, linear, w, h))
        self._dispatch(
            request_id,
            REMAP,
            partial(self.remapper.remap, visual, w, h, output_width, output_height),
        )
        logger.info(f"Dispatched request {request_id} ({w}x{h} field)")
        return request_id

    def rerender_polar(self, output_width: int, output_height: int) -> None:
        """Re-dispatch only the remap of the cached field at a new output size."""
        if self.cache.field is None:
            raise ConfigurationError("No analysis has been submitted yet")
        if output_width <= 0 or output_height <= 0:
            raise ConfigurationError(
                f"Output dimensions must be positive, got {output_width}x{output_height}"
            )

        magnitude_field = self.cache.field
        self.output_size = (output_width, output_height)
        visual = _handoff(magnitude_field.visual)
        self._dispatch(
            self._current_id,
            REMAP,
            partial(
                self.remapper.remap,
                visual,
                magnitude_field.width,
                magnitude_field.height,
                output_width,
                output_height,
            ),
        )

    def _dispatch(self, request_id: int, kind: str, job: Callable[[], Any]) -> None:
        ticket = next(self._tickets)
        self._latest_ticket[kind] = ticket
        self._jobs[kind] = job
        self._outstanding.add(kind)

        if self._executor is not None:
            try:
                future = self._executor.submit(job)
            except RuntimeError as e:
                logger.warning(f"Background execution unavailable ({e}); running {kind} inline")
            else:
                future.add_done_callback(partial(self._post, request_id, ticket, kind))
                return

        self._apply(self._run_inline(request_id, ticket, kind, job))

    @staticmethod
    def _run_inline(request_id: int, ticket: int, kind: str, job: Callable[[], Any]) -> JobMessage:
        return JobMessage(request_id=request_id, ticket=ticket, kind=kind, payload=job())

    def _post(self, request_id: int, ticket: int, kind: str, future: Future) -> None:
        # Runs on whichever thread completed the future; only enqueues
        if future.cancelled():
            error: Optional[BaseException] = RuntimeError(f"{kind} job was cancelled")
            payload = None
        else:
            error = future.exception()
            payload = None if error is not None else future.result()
        self._messages.put(
            JobMessage(request_id=request_id, ticket=ticket, kind=kind, payload=payload, error=error)
        )

    def _apply(self, message: JobMessage) -> bool:
        if message.request_id != self._current_id:
            logger.debug(
                f"Discarding stale {message.kind} result for request {message.request_id} "
                f"(current request {self._current_id})"
            )
            return False
        if message.ticket != self._latest_ticket.get(message.kind):
            logger.debug(f"Discarding superseded {message.kind} result (ticket {message.ticket})")
            return False

        payload = message.payload
        if message.error is not None:
            failure = BackgroundExecutionFailure(message.kind, message.request_id, message.error)
            logger.warning(f"{failure}; recomputing synchronously")
            try:
                payload = self._jobs[message.kind]()
            except Exception as e:
                # No further message will arrive for this kind
                self._outstanding.discard(message.kind)
                logger.error(
                    f"Synchronous {message.kind} recompute for request {message.request_id} failed: {e}"
                )
                raise BackgroundExecutionFailure(message.kind, message.request_id, e) from e

        if message.kind == SCAN:
            self.cache.scan = payload
            self.cache.smoothed_azimuthal = smooth_azimuthal(payload.azimuthal)
        else:
            self.cache.polar = payload

        self._outstanding.discard(message.kind)
        logger.debug(f"Applied {message.kind} result for request {message.request_id}")
        if self.on_result is not None:
            self.on_result(message.kind, self.cache)
        return True

    def poll(self) -> int:
        """
        Apply every result that has arrived, without blocking.

        Returns:
            Number of results applied to the cache

        Raises:
            BackgroundExecutionFailure: If a failed job also fails when re-run
                synchronously
        """
        applied = 0
        while True:
            try:
                message = self._messages.get_nowait()
            except queue.Empty:
                return applied
            if self._apply(message):
                applied += 1

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Apply results until the current request is fully cached.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely

        Returns:
            True if both results for the current request have been applied

        Raises:
            BackgroundExecutionFailure: If a failed job also fails when re-run
                synchronously. The job is no longer outstanding and its cache
                slot stays empty.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        self.poll()
        while self._outstanding:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            try:
                message = self._messages.get(timeout=remaining)
            except queue.Empty:
                return False
            self._apply(message)
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Shut down the executor if the coordinator created it."""
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def __enter__(self) -> "AnalysisCoordinator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
