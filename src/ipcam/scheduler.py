"""
Poll Scheduler - per camera countdown driven by a one second tick
"""
import asyncio
from typing import Awaitable, Callable, Dict, Set

from loguru import logger

from ipcam.nodes import ATTR_POLL_INTERVAL, DEFAULT_POLL_INTERVAL, Node

PollFunc = Callable[[Node], Awaitable]


class PollScheduler:
    """
    Decides on each tick which cameras are due and dispatches their polls.

    Each camera has a countdown of ticks until its next poll. When it reaches
    zero the poll is started as a separate task and the countdown is reset from
    the camera's current poll interval, so interval changes apply on the next
    reset. The tick never waits for a poll to finish.
    """

    def __init__(
        self,
        publisher,
        poll: PollFunc,
        default_interval: int = DEFAULT_POLL_INTERVAL,
        start_immediately: bool = True,
        allow_overlap: bool = False,
    ):
        self.pub = publisher
        self.poll = poll
        self.default_interval = default_interval
        self.start_immediately = start_immediately
        self.allow_overlap = allow_overlap
        self.countdown: Dict[str, int] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()

    def poll_interval(self, node_id: str) -> int:
        return self.pub.get_node_config_int(node_id, ATTR_POLL_INTERVAL, self.default_interval)

    def tick(self):
        """Advance all countdowns by one tick and dispatch polls that are due."""
        for node in self.pub.get_nodes():
            node_id = node.node_id
            if node_id not in self.countdown:
                self.countdown[node_id] = 0 if self.start_immediately else self.poll_interval(node_id)

            if self.countdown[node_id] <= 0:
                interval = self.poll_interval(node_id)
                self.countdown[node_id] = interval
                logger.debug(f"tick: Polling camera {node_id} at interval of {interval} seconds")
                self.dispatch(node)
            else:
                self.countdown[node_id] -= 1

    def dispatch(self, node: Node) -> bool:
        """Start a poll task for node without waiting for it. Returns False if skipped."""
        node_id = node.node_id
        running = self._in_flight.get(node_id)
        if running is not None and not running.done() and not self.allow_overlap:
            logger.warning(f"dispatch: Previous poll of camera {node_id} still running, skipping")
            return False

        task = asyncio.get_running_loop().create_task(self.poll(node), name=f"poll-{node_id}")
        self._in_flight[node_id] = task
        self._tasks.add(task)
        task.add_done_callback(self._on_poll_done)
        return True

    def _on_poll_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"{task.get_name()} failed: {exc!r}")

    def in_flight(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    async def drain(self):
        """Wait for dispatched polls to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
