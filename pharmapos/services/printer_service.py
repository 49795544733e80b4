"""
Receipt printer and cash drawer front-end.

Bytes go out through an injected transport (anything with
``write(data: bytes, device_id=None)``); device discovery and drivers are
outside this package.
"""
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List, Optional, Union

logger = logging.getLogger(__name__)

# ESC p 0 25 250: pulse pin 2 for 50ms on, 500ms off
CASH_DRAWER_KICK = b'\x1bp\x00\x19\xfa'

JOB_PENDING = 'pending'
JOB_PRINTING = 'printing'
JOB_COMPLETED = 'completed'
JOB_FAILED = 'failed'

# Finished jobs beyond this are dropped, oldest first
MAX_QUEUE_SIZE = 100


@dataclass
class PrintJob:
    id: str
    content: str
    device_id: Optional[str] = None
    status: str = JOB_PENDING
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))
    error: Optional[str] = None


@dataclass
class CashDrawerEvent:
    action: str
    success: bool
    device_id: Optional[str] = None
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))


PrinterEvent = Union[PrintJob, CashDrawerEvent]


class StreamTransport:
    """Writes decoded output to a text stream (stdout, a file); used by the CLI."""

    def __init__(self, stream, encoding: str = 'utf-8'):
        self.stream = stream
        self.encoding = encoding

    def write(self, data: bytes, device_id: Optional[str] = None) -> None:
        self.stream.write(data.decode(self.encoding, errors='replace'))
        self.stream.flush()


class PrinterService:

    def __init__(self, transport, encoding: str = 'utf-8', queue_size: int = MAX_QUEUE_SIZE):
        self.transport = transport
        self.encoding = encoding
        self._queue: Deque[PrintJob] = deque(maxlen=queue_size)
        self._listeners: List[Callable[[PrinterEvent], None]] = []
        self._ids = itertools.count(1)

    def subscribe(self, listener: Callable[[PrinterEvent], None]) -> Callable[[], None]:
        """Register `listener` for job and drawer events; returns the unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: PrinterEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Printer listener failed")

    def _set_status(self, job: PrintJob, status: str) -> None:
        job.status = status
        self._notify(job)

    def print_receipt(self, content: str, device_id: Optional[str] = None) -> bool:
        """Send `content` to the printer; returns whether the transport accepted it."""
        job = PrintJob(id=f'print_{next(self._ids)}', content=content, device_id=device_id)
        self._queue.append(job)
        self._notify(job)

        self._set_status(job, JOB_PRINTING)
        try:
            self.transport.write(content.encode(self.encoding, errors='replace'), device_id)
        except OSError as e:
            logger.error("Print job %s failed: %s", job.id, e)
            job.error = str(e)
            self._set_status(job, JOB_FAILED)
            return False

        self._set_status(job, JOB_COMPLETED)
        return True

    def open_cash_drawer(self, device_id: Optional[str] = None) -> bool:
        event = CashDrawerEvent(action='open', success=False, device_id=device_id)
        try:
            self.transport.write(CASH_DRAWER_KICK, device_id)
            event.success = True
        except OSError as e:
            logger.error("Cash drawer kick failed: %s", e)
        self._notify(event)
        return event.success

    @property
    def queue(self) -> List[PrintJob]:
        return list(self._queue)

    def clear_queue(self) -> None:
        self._queue.clear()
