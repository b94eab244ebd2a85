"""
Task Dispatcher - routes operator tasks to page actions

Resolves a task to either a registered action handler or a raw expression,
runs it and turns the outcome into exactly one correlated Result.
"""

import logging
from typing import Any, Dict, Optional

from page_bridge.agents.actions import ActionRegistry, PageActions, UnsafeEvaluator
from page_bridge.protocol import Result, Task
from page_bridge.errors import ActionError, EvaluationDisabledError

logger = logging.getLogger("pagebridge.agent")


async def normalize_result(driver, value: Any) -> Any:
    """
    Serialize element handles in a handler's value.

    A single element becomes its outer markup; in a list, element members are
    serialized the same way and everything else is left as-is.
    """
    if driver.is_element(value):
        return await driver.outer_html(value)
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            if driver.is_element(item):
                items.append(await driver.outer_html(item))
            else:
                items.append(item)
        return items
    return value


class TaskDispatcher:
    """
    Runs tasks against one page.

    Tasks are independent: the dispatcher keeps no per-task state, so any
    number of ``dispatch`` calls may be in flight at once.
    """

    def __init__(self, driver, allow_eval: bool = True, registry: Optional[ActionRegistry] = None):
        self.driver = driver
        self.evaluator = UnsafeEvaluator(driver) if allow_eval else None
        self.registry = registry or ActionRegistry(PageActions(driver, self.evaluator))

    async def run(self, task: Task) -> Any:
        """Run one task and return its normalized value; handler failures raise."""
        if task.action is not None:
            if not isinstance(task.action, dict):
                raise ActionError("Malformed action")
            handler = self.registry.resolve(task.action.get("type"))
            value = await handler(task.action)
        elif task.code:
            if self.evaluator is None:
                raise EvaluationDisabledError()
            value = await self.evaluator.evaluate(task.code)
        else:
            return None

        return await normalize_result(self.driver, value)

    async def dispatch(self, frame: Dict[str, Any]) -> Result:
        task = Task.from_frame(frame)
        try:
            value = await self.run(task)
        except Exception as e:
            logger.debug(f"Task {task.task_id} failed: {e}")
            return Result(task.task_id, error=str(e) or e.__class__.__name__)

        logger.debug(f"Task {task.task_id} completed")
        return Result(task.task_id, value=value)
