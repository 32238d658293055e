"""Live call event fan-out to dashboard observers."""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from outreach_voice.core.config import settings

logger = logging.getLogger(__name__)

SPEECH_RECOGNIZED = "speech-recognized"
GENERATION_REQUESTED = "generation-requested"
GENERATION_RESPONDED = "generation-responded"
SYNTHESIS_COMPLETED = "synthesis-completed"
ERROR = "error"
CALL_STARTED = "call-started"
CALL_ENDED = "call-ended"


class Observer(Protocol):
    async def send_json(self, data: Any) -> None: ...


class EventBroadcaster:
    """
    Publishes per-call events to every registered observer.

    publish() only enqueues; a slow or broken observer never delays the call
    pipeline. Each observer has one delivery task draining its own queue, so it
    receives events in publish order. An observer whose send fails or times out
    is dropped.
    """

    def __init__(self, send_timeout: Optional[float] = None):
        self.send_timeout = send_timeout if send_timeout is not None else settings.broadcast_send_timeout_seconds
        self._queues: Dict[Observer, asyncio.Queue] = {}
        self._workers: Dict[Observer, asyncio.Task] = {}

    def register(self, observer: Observer) -> None:
        self._queues.setdefault(observer, asyncio.Queue())
        logger.info(f"[EVENTS] Observer registered - Total: {len(self._queues)}")

    def unregister(self, observer: Observer) -> None:
        if observer in self._queues:
            self._remove(observer)
            worker = self._workers.pop(observer, None)
            if worker is not None:
                worker.cancel()
            logger.info(f"[EVENTS] Observer removed - Total: {len(self._queues)}")

    @property
    def observer_count(self) -> int:
        return len(self._queues)

    def publish(self, call_id: str, event_type: str, payload: Optional[Dict[str, Any]] = None) -> None:
        if not self._queues:
            return
        event = {
            "type": event_type,
            "callId": call_id,
            "timestamp": datetime.utcnow().isoformat(),
            "data": payload or {},
        }
        for observer, queue in list(self._queues.items()):
            queue.put_nowait(event)
            if observer not in self._workers:
                self._workers[observer] = asyncio.create_task(self._deliver(observer, queue))

    async def _deliver(self, observer: Observer, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            try:
                await asyncio.wait_for(observer.send_json(event), self.send_timeout)
            except Exception as e:
                logger.debug(f"[EVENTS] Dropping observer - Error: {type(e).__name__}: {str(e)}")
                self._remove(observer)
                self._workers.pop(observer, None)
                return
            finally:
                queue.task_done()

    def _remove(self, observer: Observer) -> None:
        queue = self._queues.pop(observer, None)
        # Discard undelivered events so drain() does not wait on them
        while queue is not None and not queue.empty():
            queue.get_nowait()
            queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been delivered or discarded."""
        for queue in list(self._queues.values()):
            await queue.join()

    async def close(self) -> None:
        """Stop all delivery tasks."""
        workers = list(self._workers.values())
        self._workers.clear()
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
