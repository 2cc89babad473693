"""
Background auto-paint computation.

Requests run in a dedicated spawn-context process that owns one
FilamentOrderOptimizer (and its cache) for its whole lifetime. Every request
gets a correlation id; only the response to the most recent request is
handed back, older ones are discarded as stale.
"""

import asyncio
import logging
import multiprocessing as mp
import pickle
import threading
import time
from dataclasses import dataclass
from typing import FrozenSet, Optional, Tuple

from .cache import OptimizerCache
from .clustering import ColorCount
from .config import BACKLIT_TD_SCALE, CACHE_CAPACITY, FIRST_LAYER_HEIGHT, LAYER_HEIGHT
from .errors import WorkerError
from .models import AutoPaintResult, Filament
from .optimizer import FilamentOrderOptimizer, OptimizerOptions
from .pipeline import generate_auto_layers

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05

# Per-process optimizer, created by the pool initializer
_optimizer: Optional[FilamentOrderOptimizer] = None


@dataclass(frozen=True)
class AutoPaintRequest:
    filaments: Tuple[Filament, ...]
    swatches: Tuple[ColorCount, ...]
    layer_height: float = LAYER_HEIGHT
    first_layer_height: float = FIRST_LAYER_HEIGHT
    max_height: Optional[float] = None
    enhanced_color_match: bool = False
    allow_repeated_swaps: bool = False
    optimizer_options: Optional[OptimizerOptions] = None
    td_scale: float = BACKLIT_TD_SCALE


@dataclass(frozen=True)
class AutoPaintResponse:
    id: int
    result: Optional[AutoPaintResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class AutoPaintHandle:
    id: int
    async_result: object = None
    worker_pids: FrozenSet[int] = frozenset()
    # Set when the request never reached the worker
    response: Optional[AutoPaintResponse] = None


def _init_worker(cache_capacity: int):
    global _optimizer
    _optimizer = FilamentOrderOptimizer(OptimizerCache(cache_capacity))


def _error_response(request_id: int, e: BaseException) -> AutoPaintResponse:
    return AutoPaintResponse(request_id, error=f"{type(e).__name__}: {e}")


def _run_request(request_id: int, payload: bytes) -> AutoPaintResponse:
    """
    Worker function: compute one request, never raise.

    The request arrives pickled so that a request which fails to load is
    reported under its id instead of taking the pool process down.
    """
    try:
        request = pickle.loads(payload)
        result = generate_auto_layers(
            request.filaments,
            request.swatches,
            layer_height=request.layer_height,
            first_layer_height=request.first_layer_height,
            max_height=request.max_height,
            enhanced_color_match=request.enhanced_color_match,
            allow_repeated_swaps=request.allow_repeated_swaps,
            optimizer_options=request.optimizer_options,
            td_scale=request.td_scale,
            optimizer=_optimizer,
        )
        return AutoPaintResponse(request_id, result=result)
    except Exception as e:
        logger.exception("Auto-paint request %d failed", request_id)
        return _error_response(request_id, e)


class AutoPaintWorker:
    """
    Owns the background process and the request id counter.

    Usage:
        with AutoPaintWorker() as worker:
            handle = worker.submit(request)
            response = worker.wait(handle)
    """

    def __init__(self, cache_capacity: int = CACHE_CAPACITY):
        self.cache_capacity = cache_capacity
        self._ctx = mp.get_context('spawn')
        self._lock = threading.Lock()
        self._next_id = 0
        self._latest_id: Optional[int] = None
        self._pool = None
        self._start_pool()

    def _start_pool(self):
        self._pool = self._ctx.Pool(processes=1, initializer=_init_worker, initargs=(self.cache_capacity,))

    def _pool_processes(self):
        return list(getattr(self._pool, '_pool', None) or ())

    def _workers_alive(self, pids: FrozenSet[int]) -> bool:
        """True while every process that could hold the task is still running."""
        alive = {p.pid for p in self._pool_processes() if p.exitcode is None}
        return pids <= alive

    def _replace_pool(self, handle: AutoPaintHandle):
        # A pool holding a lost task never finishes joining
        with self._lock:
            if self._pool is None or self.is_stale(handle):
                return
            self._pool.terminate()
            self._pool.join()
            self._start_pool()

    @property
    def latest_id(self) -> Optional[int]:
        return self._latest_id

    def submit(self, request: AutoPaintRequest) -> AutoPaintHandle:
        with self._lock:
            if self._pool is None:
                raise RuntimeError("AutoPaintWorker is closed")
            self._next_id += 1
            request_id = self._next_id
            self._latest_id = request_id
            try:
                payload = pickle.dumps(request)
            except Exception as e:
                logger.warning("Auto-paint request %d cannot be sent to the worker: %s", request_id, e)
                return AutoPaintHandle(request_id, response=_error_response(request_id, e))
            pids = frozenset(p.pid for p in self._pool_processes() if p.exitcode is None)
            async_result = self._pool.apply_async(_run_request, (request_id, payload))
        logger.debug("Submitted auto-paint request %d", request_id)
        return AutoPaintHandle(request_id, async_result, pids)

    def is_stale(self, handle: AutoPaintHandle) -> bool:
        return handle.id != self._latest_id

    def wait(self, handle: AutoPaintHandle, timeout: Optional[float] = None) -> Optional[AutoPaintResponse]:
        """
        Block until the request finishes.

        Returns None as soon as a newer request has been submitted (or the
        worker restarted). Raises TimeoutError when `timeout` elapses first.
        A request the worker cannot deliver a result for (it could not be
        sent, or the process died while holding it) comes back as an error
        response carrying the request id.
        """
        if handle.response is not None:
            response = handle.response
        else:
            response = self._await_result(handle, timeout)
            if response is None:
                return None

        if self.is_stale(handle) or response.id != handle.id:
            logger.debug("Dropping stale auto-paint response %d", response.id)
            return None
        return response

    def _await_result(self, handle: AutoPaintHandle, timeout: Optional[float]) -> Optional[AutoPaintResponse]:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not handle.async_result.ready():
            if self.is_stale(handle):
                logger.debug("Dropping stale auto-paint request %d", handle.id)
                return None
            if not self._workers_alive(handle.worker_pids):
                # Give a result that raced the process exit a last chance
                handle.async_result.wait(POLL_INTERVAL)
                if handle.async_result.ready():
                    break
                logger.warning("Auto-paint worker process exited during request %d", handle.id)
                self._replace_pool(handle)
                return AutoPaintResponse(handle.id, error="WorkerLost: worker process exited")
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError(f"Auto-paint request {handle.id} timed out after {timeout}s")
            handle.async_result.wait(POLL_INTERVAL)

        try:
            return handle.async_result.get()
        except Exception as e:
            logger.warning("Auto-paint request %d failed in transport: %s", handle.id, e)
            return _error_response(handle.id, e)

    async def compute(self, request: AutoPaintRequest) -> Optional[AutoPaintResult]:
        """
        Submit and await a request without blocking the event loop.

        Returns None when a newer request superseded this one.
        Raises WorkerError when the computation failed.
        """
        handle = self.submit(request)
        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(None, self.wait, handle)
        if response is None:
            return None
        if not response.ok:
            raise WorkerError(response.id, response.error)
        return response.result

    def restart(self):
        """Abandon whatever is running and start a fresh process (cache included)."""
        with self._lock:
            if self._pool is not None:
                self._pool.terminate()
                self._pool.join()
            self._latest_id = None
            self._start_pool()
        logger.info("Auto-paint worker restarted")

    def close(self):
        with self._lock:
            if self._pool is None:
                return
            self._pool.close()
            self._pool.join()
            self._pool = None
            self._latest_id = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
