"""Tests for task handlers and exactly-once response waiting."""
import asyncio

import pytest

from agentlinkd.errors import TaskTimeoutError
from agentlinkd.models import TaskRequestBody, TaskResponseBody
from agentlinkd.tasks import TaskManager


@pytest.fixture
def tasks():
    return TaskManager()


async def echo(params):
    return {"echo": params}


async def explode(params):
    raise RuntimeError("disk on fire")


class TestHandlers:
    def test_success(self, tasks):
        tasks.register_handler("echo", echo)
        response = asyncio.run(tasks.handle_request(TaskRequestBody(task="echo", params={"q": 1})))
        assert response.status == "success"
        assert response.result == {"echo": {"q": 1}}

    def test_unknown_task_rejected(self, tasks):
        tasks.register_handler("echo", echo)
        tasks.register_handler("add", echo)
        request = TaskRequestBody(task="translate")
        response = asyncio.run(tasks.handle_request(request))
        assert response.task_id == request.task_id
        assert response.status == "rejected"
        assert response.result["available_tasks"] == ["add", "echo"]

    def test_handler_error(self, tasks):
        tasks.register_handler("boom", explode)
        response = asyncio.run(tasks.handle_request(TaskRequestBody(task="boom")))
        assert response.status == "error"
        assert response.result == {"error": "disk on fire"}

    def test_unserializable_result(self, tasks):
        async def opaque(params):
            return object()

        tasks.register_handler("opaque", opaque)
        response = asyncio.run(tasks.handle_request(TaskRequestBody(task="opaque")))
        assert response.status == "error"
        assert "not serializable" in response.result["error"]
        assert response.to_wire()["result"] == response.result

    def test_unregister(self, tasks):
        tasks.register_handler("echo", echo)
        tasks.unregister_handler("echo")
        tasks.unregister_handler("never-registered")
        assert tasks.list_handlers() == []

    def test_build_request(self, tasks):
        request = tasks.build_request("echo", timeout=5)
        assert request.params == {}
        assert request.timeout == 5
        assert request.task_id


class TestWaiting:
    def test_resolves_with_response(self, tasks):
        async def main():
            waiter = asyncio.create_task(tasks.wait_for_response("t1", timeout=1))
            await asyncio.sleep(0)
            assert tasks.resolve(TaskResponseBody(task_id="t1", status="success", result=42))
            return await waiter

        response = asyncio.run(main())
        assert response.result == 42
        assert tasks.pending() == []

    def test_response_before_wait_is_kept(self, tasks):
        async def main():
            tasks.expect("t1")
            tasks.resolve(TaskResponseBody(task_id="t1", status="success", result="early"))
            return await tasks.wait_for_response("t1", timeout=1)

        assert asyncio.run(main()).result == "early"

    def test_timeout(self, tasks):
        async def main():
            await tasks.wait_for_response("t1", timeout=0.01)

        with pytest.raises(TaskTimeoutError) as exc:
            asyncio.run(main())
        assert exc.value.task_id == "t1"
        assert tasks.pending() == []

    def test_late_response_ignored(self, tasks):
        async def main():
            with pytest.raises(TaskTimeoutError):
                await tasks.wait_for_response("t1", timeout=0.01)
            return tasks.resolve(TaskResponseBody(task_id="t1", status="success"))

        assert asyncio.run(main()) is False

    def test_duplicate_response_ignored(self, tasks):
        async def main():
            future = tasks.expect("t1")
            first = tasks.resolve(TaskResponseBody(task_id="t1", status="success", result=1))
            second = tasks.resolve(TaskResponseBody(task_id="t1", status="success", result=2))
            return first, second, future.result().result

        assert asyncio.run(main()) == (True, False, 1)

    def test_unknown_response_ignored(self, tasks):
        assert tasks.resolve(TaskResponseBody(task_id="nobody-asked", status="success")) is False

    def test_discard(self, tasks):
        async def main():
            future = tasks.expect("t1")
            tasks.discard("t1")
            return future.cancelled()

        assert asyncio.run(main()) is True
        assert tasks.pending() == []
