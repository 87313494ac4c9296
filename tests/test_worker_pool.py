"""Tests for the fixed-size worker pool."""

import logging
import threading
import time

import pytest

from podsync.workflow.pool import WorkerPool


class TestWorkerPool:
    """Tests for WorkerPool job execution and shutdown."""

    def test_runs_every_job(self):
        """Test all submitted jobs run before the context exits."""
        done = []
        lock = threading.Lock()

        def job(n):
            with lock:
                done.append(n)

        with WorkerPool(size=3) as pool:
            for n in range(20):
                pool.submit(lambda n=n: job(n))

        assert sorted(done) == list(range(20))

    def test_concurrency_is_bounded(self):
        """Test no more jobs run at once than there are workers."""
        active = 0
        peak = 0
        lock = threading.Lock()

        def job():
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.01)
            with lock:
                active -= 1

        with WorkerPool(size=2) as pool:
            for _ in range(10):
                pool.submit(job)

        assert 1 <= peak <= 2

    def test_shutdown_drains_pending_jobs(self):
        """Test shutdown lets queued jobs finish instead of dropping them."""
        started = threading.Event()
        release = threading.Event()
        done = []

        def blocker():
            started.set()
            release.wait(timeout=5)
            done.append("blocker")

        pool = WorkerPool(size=1)
        pool.submit(blocker)
        for n in range(3):
            pool.submit(lambda n=n: done.append(n))
        started.wait(timeout=5)

        release.set()
        pool.shutdown()

        assert done == ["blocker", 0, 1, 2]
        assert pool.is_shut_down is True

    def test_failing_job_does_not_stop_worker(self):
        """Test a job that raises is logged and the worker keeps going."""
        done = []

        def boom():
            raise RuntimeError("job failed")

        with WorkerPool(size=1) as pool:
            pool.submit(boom)
            pool.submit(lambda: done.append("after"))

        assert done == ["after"]

    def test_submit_after_shutdown_raises(self):
        """Test the pool rejects work once it is shut down."""
        pool = WorkerPool(size=1)
        pool.shutdown()

        with pytest.raises(RuntimeError):
            pool.submit(lambda: None)

    def test_shutdown_is_idempotent(self):
        """Test shutting down twice is harmless."""
        pool = WorkerPool(size=2)
        pool.shutdown()
        pool.shutdown()

        assert pool.is_shut_down is True

    def test_failing_job_is_logged(self, caplog):
        """Test a job exception is logged with its traceback."""

        def boom():
            raise RuntimeError("job failed")

        with caplog.at_level(logging.ERROR, logger="podsync.workflow.pool"):
            with WorkerPool(size=1) as pool:
                pool.submit(boom)

        assert "unhandled exception" in caplog.text
        assert "job failed" in caplog.text

    def test_workers_exit_on_shutdown(self):
        """Test jobs run on named worker threads that exit after shutdown."""
        threads = set()
        lock = threading.Lock()

        def job():
            with lock:
                threads.add(threading.current_thread())

        pool = WorkerPool(size=3, name="test-pool")
        for _ in range(6):
            pool.submit(job)
        pool.shutdown()

        assert threads
        assert all(t.name.startswith("test-pool") for t in threads)
        assert not any(t.is_alive() for t in threads)

    @pytest.mark.parametrize("size", [0, -1])
    def test_invalid_size(self, size):
        """Test the pool needs at least one worker."""
        with pytest.raises(ValueError):
            WorkerPool(size=size)
