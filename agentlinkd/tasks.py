"""Task protocol: request/response delegation between agents.

A task request travels as a regular MSG envelope with a TaskRequestBody;
the worker answers with a TaskResponseBody that expects no reply. The
requester can block on wait_for_response(), which resolves exactly once:
either when the matching response arrives or when the timeout fires.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from pydantic_core import PydanticSerializationError

from .errors import TaskTimeoutError
from .models import TaskRequestBody, TaskResponseBody

logger = logging.getLogger(__name__)

TaskHandler = Callable[[dict], Awaitable[Any]]


class TaskManager:
    def __init__(self):
        self._handlers: dict[str, TaskHandler] = {}
        self._pending: dict[str, asyncio.Future] = {}

    # --- Handlers ---

    def register_handler(self, task: str, handler: TaskHandler):
        self._handlers[task] = handler

    def unregister_handler(self, task: str):
        self._handlers.pop(task, None)

    def list_handlers(self) -> list[str]:
        return sorted(self._handlers)

    async def handle_request(self, request: TaskRequestBody) -> TaskResponseBody:
        """Run the registered handler and build the response body."""
        handler = self._handlers.get(request.task)
        if handler is None:
            logger.info(f"Rejecting unknown task {request.task}")
            return TaskResponseBody(
                task_id=request.task_id,
                status="rejected",
                result={"error": f"Unknown task: {request.task}",
                        "available_tasks": self.list_handlers()},
            )
        try:
            result = await handler(request.params)
        except Exception as e:
            logger.error(f"Task {request.task} ({request.task_id}) failed: {e}")
            return TaskResponseBody(task_id=request.task_id, status="error",
                                    result={"error": str(e)})
        response = TaskResponseBody(task_id=request.task_id, status="success", result=result)
        try:
            response.to_wire()
        except PydanticSerializationError as e:
            logger.error(f"Task {request.task} ({request.task_id}) returned an unserializable result: {e}")
            return TaskResponseBody(task_id=request.task_id, status="error",
                                    result={"error": f"Result is not serializable: {type(result).__name__}"})
        return response

    # --- Waiting for responses ---

    def expect(self, task_id: str) -> asyncio.Future:
        """Register interest in a response before the request goes out."""
        if task_id not in self._pending:
            self._pending[task_id] = asyncio.get_running_loop().create_future()
        return self._pending[task_id]

    def resolve(self, response: TaskResponseBody) -> bool:
        """Deliver a response. Returns False for unknown, late, or duplicate ones."""
        future = self._pending.get(response.task_id)
        if future is None or future.done():
            return False
        future.set_result(response)
        return True

    async def wait_for_response(self, task_id: str, timeout: float = 30.0) -> TaskResponseBody:
        future = self.expect(task_id)
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise TaskTimeoutError(task_id, timeout) from None
        finally:
            self._pending.pop(task_id, None)

    def discard(self, task_id: str):
        future = self._pending.pop(task_id, None)
        if future is not None and not future.done():
            future.cancel()

    def pending(self) -> list[str]:
        return list(self._pending)

    def build_request(self, task: str, params: Optional[dict] = None,
                      timeout: float = 30.0) -> TaskRequestBody:
        return TaskRequestBody(task=task, params=params or {}, timeout=timeout)
