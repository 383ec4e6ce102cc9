"""
=============================================================================
THREAD POOL
=============================================================================

Every accepted connection becomes one task. Workers pull tasks from a
bounded queue and run them in parallel; nothing per-request is shared
between them.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Thread Pool                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   submit() ──► [ task | task | task ]  bounded queue                 │
    │                     │                                                │
    │          ┌──────────┼──────────┐                                     │
    │          ▼          ▼          ▼                                     │
    │      Worker-0   Worker-1   Worker-2   ... up to max_workers          │
    │                                                                      │
    │   in_flight = queued + running        (guarded by a Condition)       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
DRAINING
=============================================================================

Graceful shutdown needs to know when the last request has finished. The
pool counts a task as in flight from submit() until it has run (or
failed). wait_for_idle(timeout) sleeps on a Condition that is notified
whenever that count reaches zero:

    True   → everything finished inside the timeout
    False  → the timeout won; count how many are left with .in_flight

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: ``func(*args, **kwargs)``."""

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread.

        1. Take a task from the queue (None is the poison pill → exit)
        2. Run it; anything it raises short of KeyboardInterrupt is
           logged, never fatal to the worker
        3. Report completion to the pool
    """

    def __init__(
        self,
        pool: "ThreadPool",
        worker_id: int,
        idle_timeout: float = 60.0
    ):
        super().__init__(name=f"wayline-worker-{worker_id}", daemon=True)

        self.pool = pool
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.pool._task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            if task is None:
                break

            try:
                self._execute_task(task)
            finally:
                self.pool._task_finished()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
            logger.debug(
                f"Worker {self.worker_id} completed task in {time.time() - start_time:.3f}s"
            )
        except KeyboardInterrupt:
            raise
        except BaseException as e:
            # SystemExit and friends from one task must not cost the pool a worker
            self.tasks_failed += 1
            logger.exception(
                f"Worker {self.worker_id} task failed after {time.time() - start_time:.3f}s: "
                f"{type(e).__name__}: {e}"
            )
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        self._shutdown.set()


class ThreadPool:
    """
    Thread pool with in-flight tracking.

        pool = ThreadPool(min_workers=4, max_workers=16)
        pool.start()
        pool.submit(handle_connection, args=(conn,))
        ...
        drained = pool.wait_for_idle(timeout=5.0)
        pool.shutdown(wait=False)

    Scales up by one worker whenever a task is queued while every worker
    is busy, until max_workers.
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 100,
        idle_timeout: float = 60.0
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()             # protects _workers
        self._idle = threading.Condition()        # protects _in_flight
        self._in_flight = 0
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers")
        for _ in range(self.min_workers):
            self._add_worker()

        self._started = True

    def _add_worker(self) -> Worker:
        with self._lock:
            if len(self._workers) >= self.max_workers:
                raise RuntimeError("Maximum workers reached")

            worker = Worker(
                pool=self,
                worker_id=self._next_worker_id,
                idle_timeout=self.idle_timeout
            )
            self._next_worker_id += 1
            self._workers.append(worker)
            worker.start()
            return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        block: bool = False,
        queue_timeout: Optional[float] = None
    ) -> bool:
        """
        Queue ``func(*args, **kwargs)``.

        Returns:
            True if queued, False if the queue was full.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        with self._idle:
            self._in_flight += 1
        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            self._task_finished()
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        with self._lock:
            busy_count = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            can_grow = len(self._workers) < self.max_workers
        if busy_count == len(self._workers) and can_grow and self._task_queue.qsize() > 0:
            logger.debug(f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers")
            try:
                self._add_worker()
            except RuntimeError:
                pass  # another submit() got there first

    def _task_finished(self):
        with self._idle:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.notify_all()

    def wait_for_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no task is queued or running.

        Returns:
            True if the pool went idle, False if ``timeout`` elapsed first.
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._in_flight == 0, timeout=timeout)

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> bool:
        """
        Stop accepting tasks and stop the workers.

        With ``wait`` the pool first drains (bounded by ``timeout``).
        Workers still stuck in a task afterwards are left to finish on
        their own; they are daemon threads.

        Returns:
            True if the pool was idle when the workers were told to stop.
        """
        if not self._started:
            return True

        logger.info("Shutting down thread pool...")
        self._shutdown = True

        drained = self.wait_for_idle(timeout) if wait else self.in_flight == 0

        # Drop queued work that never started
        while True:
            try:
                if self._task_queue.get_nowait() is not None:
                    self._task_finished()
            except queue.Empty:
                break

        for worker in self._workers:
            worker.shutdown()
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                pass

        for worker in self._workers:
            if worker.state != WorkerState.BUSY:
                worker.join(timeout=1.0)

        self._workers.clear()
        self._started = False

        logger.info("Thread pool shutdown complete")
        return drained

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def in_flight(self) -> int:
        with self._idle:
            return self._in_flight

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def stats(self) -> dict:
        """Worker and task counts, for health endpoints."""
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
                "idle": sum(1 for w in self._workers if w.state == WorkerState.IDLE),
            },
            "tasks": {
                "in_flight": self.in_flight,
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
