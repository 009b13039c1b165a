"""In-process progress channel for analysis runs.

Best effort pub/sub keyed by analysis id: no persistence, no replay. Events
published while nobody is subscribed are dropped, and a subscriber whose queue
is full misses events rather than slowing the pipeline down.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Literal

from futurecast.core.logging import get_logger

logger = get_logger(__name__)

EventType = Literal[
    "log",
    "partial_expert_analysis",
    "partial_year_scenario",
    "partial_phase_result",
    "status",
]

LogAction = Literal["api_request", "api_response", "phase_start", "phase_complete", "error"]


class ProgressChannel:
    """Fan published events out to every subscriber queue of an analysis."""

    def __init__(self, queue_size: int = 256):
        self.queue_size = queue_size
        self._subscribers: dict[str, set[asyncio.Queue]] = {}

    def subscribe(self, analysis_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.setdefault(analysis_id, set()).add(queue)
        logger.debug(f"Subscriber added for analysis {analysis_id}")
        return queue

    def unsubscribe(self, analysis_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(analysis_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[analysis_id]
        logger.debug(f"Subscriber removed for analysis {analysis_id}")

    def subscriber_count(self, analysis_id: str) -> int:
        return len(self._subscribers.get(analysis_id, ()))

    def publish(self, analysis_id: str, event_type: EventType, payload: dict[str, Any]) -> int:
        """
        Deliver an event to current subscribers.

        Returns:
            Number of subscribers the event reached
        """
        queues = self._subscribers.get(analysis_id)
        if not queues:
            return 0

        event = {"type": event_type, "data": payload}
        delivered = 0
        for queue in list(queues):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"Dropping {event_type} event for slow subscriber of {analysis_id}")
        return delivered


class AnalysisLogPublisher:
    """Publishes `log` events for one analysis in the analysis-log shape."""

    def __init__(self, channel: ProgressChannel, analysis_id: str):
        self.channel = channel
        self.analysis_id = analysis_id

    def send(
        self,
        phase: int,
        action: LogAction,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "analysis_id": self.analysis_id,
            "phase": phase,
            "action": action,
            "message": message,
        }
        if data is not None:
            payload["data"] = data
        self.channel.publish(self.analysis_id, "log", payload)

    def api_request(self, phase: int, endpoint: str, prompt_length: int, model: str) -> None:
        self.send(
            phase,
            "api_request",
            f"Generator request sent: {endpoint}",
            {"endpoint": endpoint, "prompt_length": prompt_length, "model": model},
        )

    def api_response(
        self,
        phase: int,
        endpoint: str,
        success: bool,
        response_length: int | None = None,
        error: str | None = None,
    ) -> None:
        message = (
            f"Generator response received: {endpoint} ({response_length} chars)"
            if success
            else f"Generator error: {endpoint} - {error}"
        )
        self.send(
            phase,
            "api_response",
            message,
            {"endpoint": endpoint, "success": success, "response_length": response_length, "error": error},
        )

    def phase_start(self, phase: int, title: str) -> None:
        self.send(phase, "phase_start", f"Phase {phase} started: {title}")

    def phase_complete(self, phase: int, title: str) -> None:
        self.send(phase, "phase_complete", f"Phase {phase} complete: {title}")

    def error(self, phase: int, message: str, data: dict[str, Any] | None = None) -> None:
        self.send(phase, "error", message, data)
