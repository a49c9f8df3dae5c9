"""
In-process log pub/sub keyed by project id.

Every line produced by a project's build or runtime process, and every
lifecycle message from the supervisor, is published here. Publishing is
synchronous and never waits on a subscriber: each subscriber owns a bounded
queue that drops its oldest event when full, and persistence to the log store
happens on a background writer task.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from shipyard.core.config import settings

logger = logging.getLogger(__name__)


class LogType(str, Enum):
    """Category of a published log line."""
    STDOUT = "stdout"
    STDERR = "stderr"
    BUILD = "build"
    BUILD_ERROR = "build-error"
    SYSTEM = "system"
    ERROR = "error"


@dataclass
class LogEvent:
    """A single log line addressed to a project's subscribers."""
    project_id: int
    log_type: str
    message: str
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "log",
            "projectId": self.project_id,
            "logType": self.log_type,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


LogSink = Callable[[LogEvent], Awaitable[None]]


class LogSubscription:
    """
    A listener on one project's log stream.

    Iterate with ``async for`` or call ``get()``. Close it (or use it as an
    async context manager) to stop receiving events.
    """

    def __init__(self, broadcaster: "LogBroadcaster", project_id: int, maxsize: int):
        self.project_id = project_id
        self.dropped = 0
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, event: LogEvent) -> None:
        """Enqueue without blocking, discarding the oldest event when full."""
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self.dropped += 1
            self._queue.put_nowait(event)

    def pending(self) -> int:
        return self._queue.qsize()

    async def get(self) -> LogEvent:
        return await self._queue.get()

    def get_nowait(self) -> LogEvent:
        return self._queue.get_nowait()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._broadcaster.unsubscribe(self)

    def __aiter__(self) -> "LogSubscription":
        return self

    async def __anext__(self) -> LogEvent:
        if self._closed:
            raise StopAsyncIteration
        return await self._queue.get()

    async def __aenter__(self) -> "LogSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class LogBroadcaster:
    """
    Fan-out of log events to per-project subscribers.

    Args:
        sink: Optional coroutine function that persists each event
        queue_size: Capacity of each subscriber queue
    """

    def __init__(self, sink: Optional[LogSink] = None, queue_size: int = 1000):
        self._subscribers: Dict[int, List[LogSubscription]] = {}
        self._sink = sink
        self._queue_size = queue_size
        self._pending: asyncio.Queue = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None

    def set_sink(self, sink: Optional[LogSink]) -> None:
        self._sink = sink

    def subscribe(self, project_id: int) -> LogSubscription:
        """
        Register a new listener for a project.

        Args:
            project_id: Project whose logs should be delivered

        Returns:
            The subscription
        """
        subscription = LogSubscription(self, project_id, self._queue_size)
        self._subscribers.setdefault(project_id, []).append(subscription)
        logger.debug(f"Log subscriber added for project {project_id} ({self.subscriber_count(project_id)} total)")
        return subscription

    def unsubscribe(self, subscription: LogSubscription) -> None:
        subscribers = self._subscribers.get(subscription.project_id)
        if not subscribers:
            return
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            del self._subscribers[subscription.project_id]

    def subscriber_count(self, project_id: int) -> int:
        return len(self._subscribers.get(project_id, []))

    def publish(self, project_id: int, log_type: str, message: str) -> LogEvent:
        """
        Publish a log line to every subscriber of a project.

        Never blocks: delivery is a non-blocking enqueue per subscriber and
        persistence is deferred to the writer task.

        Args:
            project_id: Project the line belongs to
            log_type: One of the LogType values
            message: Line content

        Returns:
            The published event
        """
        if isinstance(log_type, LogType):
            log_type = log_type.value
        event = LogEvent(project_id=project_id, log_type=log_type, message=message)

        for subscription in list(self._subscribers.get(project_id, [])):
            subscription.offer(event)

        if self._sink is not None:
            self._pending.put_nowait(event)
            self._ensure_writer()

        return event

    def _ensure_writer(self) -> None:
        if self._writer is not None and not self._writer.done():
            return
        try:
            self._writer = asyncio.get_running_loop().create_task(self._write_pending())
        except RuntimeError:
            # No running loop; the next publish from async code picks the backlog up.
            self._writer = None

    async def _write_pending(self) -> None:
        while True:
            try:
                event = self._pending.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                if self._sink is not None:
                    await self._sink(event)
            except Exception as e:
                logger.error(f"Failed to persist log line for project {event.project_id}: {e}")
            finally:
                self._pending.task_done()

    async def flush(self) -> None:
        """Wait until every published event has been handed to the sink."""
        if not self._pending.empty():
            self._ensure_writer()
        await self._pending.join()


# Singleton instance
log_broadcaster = LogBroadcaster(queue_size=settings.LOG_SUBSCRIBER_QUEUE_SIZE)
