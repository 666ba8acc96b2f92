"""
Background task host for fire-and-forget resolution chains.

WHAT:
    Runs coroutines without making the caller wait on network I/O.

WHY:
    The store step (synchronous) has to kick off offer-code enrichment, and
    handle_deep_link_url is called from synchronous host code. Both need
    somewhere to run a coroutine:
    - Inside the host's running event loop -> schedule a task on it
    - Outside any loop -> run on a private loop in a daemon thread
    Work running on the private loop can spawn more work (a confirmed short
    code triggers its offer-code fetch); that lands on the private loop too.

HOW:
    Host-loop tasks and private-loop tasks live in separate sets, all
    guarded by one lock because private-loop callbacks fire on the daemon
    thread. drain() awaits the tasks belonging to the caller's loop.
    shutdown(wait=True) drains the private loop until nothing is left on it,
    then stops it.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Coroutine, List, Optional, Set, Union

logger = logging.getLogger(__name__)

SpawnHandle = Union["asyncio.Task[Any]", "concurrent.futures.Future[Any]"]


class BackgroundTaskRunner:
    """Schedules coroutines on the current loop or a private thread loop."""

    def __init__(self):
        # Tasks on a host loop (whatever loop the caller was running)
        self._tasks: Set["asyncio.Task[Any]"] = set()
        # Tasks created on the private loop from inside private-loop work
        self._thread_tasks: Set["asyncio.Task[Any]"] = set()
        # Submissions from sync code onto the private loop
        self._futures: Set["concurrent.futures.Future[Any]"] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> SpawnHandle:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(coro, name=name)
            with self._lock:
                if loop is self._loop:
                    self._thread_tasks.add(task)
                else:
                    self._tasks.add(task)
            task.add_done_callback(self._on_task_done)
            return task

        future = asyncio.run_coroutine_threadsafe(coro, self._ensure_thread_loop())
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._on_future_done)
        return future

    def _ensure_thread_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(
                    target=self._loop.run_forever,
                    name="affiliate-attribution-tasks",
                    daemon=True,
                )
                self._thread.start()
                logger.debug("[TASKS] Started background event loop thread")
            return self._loop

    def _on_task_done(self, task: "asyncio.Task[Any]") -> None:
        with self._lock:
            self._tasks.discard(task)
            self._thread_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[TASKS] Background task {task.get_name()} failed: {exc!r}")

    def _on_future_done(self, future: "concurrent.futures.Future[Any]") -> None:
        with self._lock:
            self._futures.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"[TASKS] Background task failed: {exc!r}")

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._tasks) + len(self._thread_tasks) + len(self._futures)

    def _tasks_on(self, loop: asyncio.AbstractEventLoop) -> List["asyncio.Task[Any]"]:
        with self._lock:
            tracked = list(self._tasks) + list(self._thread_tasks)
        return [task for task in tracked if task.get_loop() is loop]

    async def drain(self) -> None:
        """Wait until every task spawned on the current loop has finished.

        Tasks spawned while draining (enrichment after a store) are awaited too.
        Tasks on other loops are left alone.
        """
        loop = asyncio.get_running_loop()
        while True:
            tasks = self._tasks_on(loop)
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _drain_private_loop(self) -> None:
        # Everything on the private loop except this coroutine: submitted
        # work plus whatever that work spawned
        current = asyncio.current_task()
        while True:
            tasks = [task for task in asyncio.all_tasks() if task is not current]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Stop the private thread loop, optionally waiting for its work first.

        With wait=True, work spawned by private-loop work is waited on too.
        """
        with self._lock:
            loop = self._loop
            thread = self._thread

        if loop is None:
            return

        if wait:
            drained = asyncio.run_coroutine_threadsafe(self._drain_private_loop(), loop)
            try:
                drained.result(timeout=timeout)
            except concurrent.futures.TimeoutError:
                drained.cancel()
                logger.warning(f"[TASKS] Background work still pending after {timeout}s, stopping anyway")

        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("[TASKS] Background event loop thread did not stop in time")
                return
        loop.close()

        with self._lock:
            self._loop = None
            self._thread = None
            self._thread_tasks.clear()
