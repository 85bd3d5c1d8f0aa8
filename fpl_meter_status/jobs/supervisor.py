"""Background task ownership - keeps references to running tasks and reports crashes"""

import asyncio
import traceback


class TaskSupervisor:
    def __init__(self):
        self._tasks = set()

    @property
    def active(self):
        return len(self._tasks)

    def spawn(self, coro, name=None):
        """Schedule a coroutine on the running loop and track it until it finishes"""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task):
        self._tasks.discard(task)
        if task.cancelled():
            print(f"⚠️ Task '{task.get_name()}' was cancelled")
            return
        error = task.exception()
        if error is not None:
            print(f"❌ Task '{task.get_name()}' crashed: {error!r}")
            traceback.print_exception(type(error), error, error.__traceback__)

    async def shutdown(self):
        """Cancel every tracked task and wait for them to unwind"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
