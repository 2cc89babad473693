"""Tests for worker.py — background computation with latest-request-wins."""
import asyncio
import os
import pickle
import threading

import pytest

from autopaint.errors import AutoPaintError, WorkerError
from autopaint.models import AutoPaintResult, Filament
from autopaint.optimizer import OptimizerOptions
from autopaint.worker import AutoPaintRequest, AutoPaintWorker, _run_request


@pytest.fixture
def request_bw(dark, white, bw_swatches):
    return AutoPaintRequest(filaments=(dark, white), swatches=tuple(bw_swatches))


@pytest.fixture
def bad_request(dark, bw_swatches):
    return AutoPaintRequest(filaments=(dark,), swatches=tuple(bw_swatches), first_layer_height=-1.0)


class FailsOnLoad:
    """Pickles fine, raises ValueError when loaded."""
    def __reduce__(self):
        return int, ('not-a-number',)


class ExitsOnLoad:
    """Kills the loading process."""
    def __reduce__(self):
        return os._exit, (3,)


def request_with_metadata(white, swatches, value):
    odd = Filament('odd', '#000000', 1.0, {'extra': value})
    return AutoPaintRequest(filaments=(odd, white), swatches=tuple(swatches))


@pytest.fixture(scope='module')
def worker():
    with AutoPaintWorker(cache_capacity=10) as w:
        yield w


class TestRunRequest:
    def test_success(self, request_bw):
        response = _run_request(3, pickle.dumps(request_bw))
        assert response.ok
        assert response.id == 3
        assert response.result.filament_order == ('dark', 'white')

    def test_failure_is_tagged_response(self, bad_request):
        response = _run_request(8, pickle.dumps(bad_request))
        assert not response.ok
        assert response.id == 8
        assert response.result is None
        assert 'ValueError' in response.error

    def test_unknown_algorithm_reported(self, request_bw):
        request = AutoPaintRequest(
            filaments=request_bw.filaments,
            swatches=request_bw.swatches,
            enhanced_color_match=True,
            optimizer_options=OptimizerOptions(algorithm='nope'),
        )
        response = _run_request(1, pickle.dumps(request))
        assert 'UnknownAlgorithmError' in response.error


    def test_payload_that_fails_to_load_is_tagged(self, white, bw_swatches):
        payload = pickle.dumps(request_with_metadata(white, bw_swatches, FailsOnLoad()))
        response = _run_request(5, payload)
        assert response.id == 5
        assert 'ValueError' in response.error


class TestAutoPaintWorker:
    def test_submit_and_wait(self, worker, request_bw):
        handle = worker.submit(request_bw)
        response = worker.wait(handle, timeout=60)
        assert response.id == handle.id
        assert isinstance(response.result, AutoPaintResult)
        assert response.result.filament_order == ('dark', 'white')

    def test_ids_increase(self, worker, request_bw):
        first = worker.submit(request_bw)
        second = worker.submit(request_bw)
        assert second.id > first.id
        assert worker.latest_id == second.id
        worker.wait(second, timeout=60)

    def test_stale_response_discarded(self, worker, request_bw):
        old = worker.submit(request_bw)
        new = worker.submit(request_bw)
        assert worker.wait(old, timeout=60) is None
        assert worker.wait(new, timeout=60).id == new.id

    def test_error_response_carries_id(self, worker, bad_request):
        handle = worker.submit(bad_request)
        response = worker.wait(handle, timeout=60)
        assert response.id == handle.id
        assert not response.ok

    def test_compute_async(self, worker, request_bw):
        result = asyncio.run(worker.compute(request_bw))
        assert result.filament_order == ('dark', 'white')

    def test_compute_raises_on_failure(self, worker, bad_request):
        with pytest.raises(WorkerError) as info:
            asyncio.run(worker.compute(bad_request))
        assert isinstance(info.value, AutoPaintError)
        assert info.value.request_id == worker.latest_id

    def test_seeded_requests_hit_worker_cache(self, worker, dark, white, red, bw_swatches):
        request = AutoPaintRequest(
            filaments=(dark, white, red),
            swatches=tuple(bw_swatches),
            enhanced_color_match=True,
            optimizer_options=OptimizerOptions(seed=77),
        )
        first = asyncio.run(worker.compute(request))
        second = asyncio.run(worker.compute(request))
        assert not first.optimizer.cache_hit
        assert second.optimizer.cache_hit

    def test_restart(self, worker, request_bw):
        pending = worker.submit(request_bw)
        worker.restart()
        assert worker.wait(pending, timeout=60) is None
        assert worker.wait(worker.submit(request_bw), timeout=60).ok


class TestTransportFailures:
    def test_unpicklable_request_fails_with_its_id(self, worker, white, bw_swatches):
        request = request_with_metadata(white, bw_swatches, threading.Lock())
        handle = worker.submit(request)
        response = worker.wait(handle, timeout=5)
        assert response.id == handle.id
        assert not response.ok
        assert 'TypeError' in response.error

    def test_compute_raises_for_unpicklable_request(self, worker, white, bw_swatches):
        request = request_with_metadata(white, bw_swatches, threading.Lock())
        with pytest.raises(WorkerError) as info:
            asyncio.run(worker.compute(request))
        assert info.value.request_id == worker.latest_id

    def test_request_that_fails_to_load_in_worker(self, worker, white, bw_swatches):
        handle = worker.submit(request_with_metadata(white, bw_swatches, FailsOnLoad()))
        response = worker.wait(handle, timeout=60)
        assert response.id == handle.id
        assert 'ValueError' in response.error
        # The worker keeps serving afterwards
        assert worker.wait(worker.submit(request_with_metadata(white, bw_swatches, 1)), timeout=60).ok

    def test_dead_worker_process_reported(self, white, bw_swatches):
        with AutoPaintWorker() as worker:
            handle = worker.submit(request_with_metadata(white, bw_swatches, ExitsOnLoad()))
            response = worker.wait(handle, timeout=60)
            assert response.id == handle.id
            assert 'WorkerLost' in response.error
            assert worker.wait(worker.submit(request_with_metadata(white, bw_swatches, 1)), timeout=60).ok


class TestLifecycle:
    def test_closed_worker_rejects_requests(self, request_bw):
        worker = AutoPaintWorker()
        worker.close()
        with pytest.raises(RuntimeError):
            worker.submit(request_bw)
