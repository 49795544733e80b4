"""
Keyboard-wedge barcode scanner.

Scanners type the code as fast keystrokes followed by Enter. Keys are
buffered while they arrive less than BARCODE_TIMEOUT_MS apart; a slower key
starts a new buffer, so normal typing never produces a scan.

The scanner is an explicit object with a start/stop lifecycle. The caller
owns it and feeds it key events; nothing is attached at import time.
"""
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

BARCODE_TIMEOUT_MS = 100
MIN_BARCODE_LENGTH = 3

SOURCE_KEYBOARD = 'keyboard'
SOURCE_USB = 'usb'

_VALID_CHARACTER = re.compile(r'^[0-9a-zA-Z\-_.]$')
_BARCODE_PATTERNS = (
    re.compile(r'^\d{8}$'),          # EAN-8
    re.compile(r'^\d{12}$'),         # UPC-A
    re.compile(r'^\d{13}$'),         # EAN-13
    re.compile(r'^[0-9A-Z\-_.]+$'),  # Code 128
)


@dataclass(frozen=True)
class BarcodeEvent:
    code: str
    timestamp: int
    source: str


def is_valid_character(key: str) -> bool:
    return bool(key) and bool(_VALID_CHARACTER.match(key))


def is_valid_barcode(code: str) -> bool:
    if not code or len(code) < MIN_BARCODE_LENGTH:
        return False
    return any(pattern.match(code) for pattern in _BARCODE_PATTERNS)


def _now_ms() -> int:
    return int(time.time() * 1000)


class BarcodeScanner:
    """Buffers keystrokes into barcode events for subscribed listeners."""

    def __init__(self, timeout_ms: int = BARCODE_TIMEOUT_MS, min_length: int = MIN_BARCODE_LENGTH):
        self.timeout_ms = timeout_ms
        self.min_length = min_length
        self._listeners: List[Callable[[BarcodeEvent], None]] = []
        self._buffer = ''
        self._last_key_time: Optional[int] = None
        self._listening = False

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def buffer(self) -> str:
        return self._buffer

    def start(self) -> None:
        self._listening = True
        self._reset()

    def stop(self) -> None:
        self._listening = False
        self._reset()

    def _reset(self) -> None:
        self._buffer = ''
        self._last_key_time = None

    def subscribe(self, listener: Callable[[BarcodeEvent], None]) -> Callable[[], None]:
        """Register `listener`; the returned function removes it again."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: BarcodeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Barcode listener failed for code %s", event.code)

    def feed(self, key: str, timestamp_ms: Optional[int] = None) -> Optional[BarcodeEvent]:
        """
        Process one key press.

        Returns the emitted event when `key` completed a valid code, None
        otherwise. Keys are ignored while the scanner is stopped.
        """
        if not self._listening:
            return None
        now = _now_ms() if timestamp_ms is None else timestamp_ms

        if self._last_key_time is not None and now - self._last_key_time > self.timeout_ms:
            self._buffer = ''

        if key == 'Enter':
            code = self._buffer
            self._reset()
            if len(code) >= self.min_length and is_valid_barcode(code):
                event = BarcodeEvent(code=code, timestamp=now, source=SOURCE_KEYBOARD)
                self._emit(event)
                return event
            return None

        if is_valid_character(key):
            self._buffer += key
            self._last_key_time = now
        return None

    def simulate(self, code: str) -> BarcodeEvent:
        """Emit `code` as if a USB scanner had read it."""
        event = BarcodeEvent(code=code, timestamp=_now_ms(), source=SOURCE_USB)
        self._emit(event)
        return event
