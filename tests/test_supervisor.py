import asyncio

import pytest

from fpl_meter_status.jobs.supervisor import TaskSupervisor


def test_crashed_task_is_reported_and_released(capsys):
    supervisor = TaskSupervisor()

    async def boom():
        raise RuntimeError("portal exploded")

    async def scenario():
        task = supervisor.spawn(boom(), name="batch-test")
        with pytest.raises(RuntimeError):
            await task
        await asyncio.sleep(0)

    asyncio.run(scenario())

    assert supervisor.active == 0
    assert "Task 'batch-test' crashed" in capsys.readouterr().out


def test_shutdown_cancels_running_tasks():
    supervisor = TaskSupervisor()

    async def scenario():
        task = supervisor.spawn(asyncio.sleep(60), name="sleeper")
        await asyncio.sleep(0)
        assert supervisor.active == 1
        await supervisor.shutdown()
        return task

    task = asyncio.run(scenario())

    assert task.cancelled()
    assert supervisor.active == 0
