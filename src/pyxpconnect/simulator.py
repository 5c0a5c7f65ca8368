"""Minimal stand-in for the simulator side of the UDP protocol.

The stub answers ``RREF`` subscriptions by streaming values at the requested
frequency and records every write and command it receives. It is meant for
tests and for exercising the CLI without a running simulator.
"""
from __future__ import annotations

import contextlib
import logging
import socket
import threading
import time
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .protocol import (
    HEADER_CMND,
    HEADER_DREF,
    HEADER_FAIL,
    HEADER_QUIT,
    HEADER_RECO,
    HEADER_RREF,
    FrameDecodeError,
    InboundRequest,
    decode_request,
    encode_rref_response,
)

_LOGGER = logging.getLogger(__name__)

# (1472 - 5) // 8 pairs fit in a single frame
_MAX_PAIRS_PER_FRAME = 183

SimValue = Union[float, str]


@dataclass(slots=True)
class _StreamSubscription:
    address: Tuple[str, int]
    dataref_id: int
    path: str
    frequency: int
    last_sent: float = 0.0

    def due(self, now: float) -> bool:
        return now - self.last_sent >= 1.0 / self.frequency


class SimulatorStub:
    """UDP responder speaking the simulator side of the dataref protocol."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 0,
        *,
        stream_interval: float = 0.05,
        values: Optional[Mapping[str, SimValue]] = None,
    ) -> None:
        self._host = host
        self._port = port
        self._stream_interval = max(stream_interval, 0.01)
        self._values: Dict[str, SimValue] = dict(values or {})
        self._subscriptions: Dict[Tuple[Tuple[str, int], int], _StreamSubscription] = {}
        self._requests: List[InboundRequest] = []
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []
        self._sock: Optional[socket.socket] = None
        self.quit_requested = False

    # ------------------------------------------------------------------
    # Lifecycle management
    # ------------------------------------------------------------------
    @property
    def port(self) -> int:
        if self._sock is None:
            return self._port
        return self._sock.getsockname()[1]

    def start(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self._host, self._port))
        sock.settimeout(0.2)
        self._sock = sock
        self._stop_event.clear()
        _LOGGER.info("Simulator stub listening on %s:%s", self._host, self.port)
        for target, name in (
            (self._request_loop, "pyxpconnect-stub-requests"),
            (self._stream_loop, "pyxpconnect-stub-stream"),
        ):
            thread = threading.Thread(target=target, name=name, daemon=True)
            thread.start()
            self._threads.append(thread)

    def stop(self) -> None:
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=2.0)
        self._threads.clear()
        if self._sock is not None:
            with contextlib.suppress(OSError):
                self._sock.close()
            self._sock = None
        with self._lock:
            self._subscriptions.clear()
        _LOGGER.info("Simulator stub stopped.")

    @contextlib.contextmanager
    def running(self) -> Iterator["SimulatorStub"]:
        self.start()
        try:
            yield self
        finally:
            self.stop()

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------
    def set_value(self, path: str, value: SimValue) -> None:
        with self._lock:
            self._values[path] = value

    def get_value(self, path: str) -> Optional[SimValue]:
        with self._lock:
            return self._values.get(path)

    def requests(self, header: Optional[str] = None) -> List[InboundRequest]:
        """Return recorded requests, optionally filtered by header."""

        with self._lock:
            return [item for item in self._requests if header is None or item.header == header]

    def subscribed_paths(self) -> List[str]:
        with self._lock:
            return [item.path for item in self._subscriptions.values()]

    def _lookup(self, path: str) -> float:
        # "base[3]" resolves to the fourth character code of a string value
        with self._lock:
            if path in self._values:
                value = self._values[path]
                return float(value) if not isinstance(value, str) else 0.0
            base, bracket, rest = path.partition("[")
            if not bracket or not rest.endswith("]"):
                return 0.0
            try:
                index = int(rest[:-1])
            except ValueError:
                return 0.0
            value = self._values.get(base)
        if isinstance(value, str):
            return float(ord(value[index])) if 0 <= index < len(value) else 0.0
        return 0.0

    # ------------------------------------------------------------------
    # Internal loops
    # ------------------------------------------------------------------
    def _handle(self, request: InboundRequest, addr: Tuple[str, int]) -> None:
        with self._lock:
            self._requests.append(request)
            if request.header == HEADER_RREF:
                key = (addr, int(request.dataref_id or 0))
                if not request.frequency or request.frequency <= 0:
                    self._subscriptions.pop(key, None)
                    return
                self._subscriptions[key] = _StreamSubscription(
                    address=addr,
                    dataref_id=int(request.dataref_id or 0),
                    path=request.path or "",
                    frequency=request.frequency,
                )
            elif request.header == HEADER_DREF and request.path:
                self._values[request.path] = request.text if request.text is not None else float(request.value or 0.0)
            elif request.header == HEADER_QUIT:
                self.quit_requested = True
        if request.header in (HEADER_CMND, HEADER_FAIL, HEADER_RECO):
            _LOGGER.info("Simulator stub received %s %s", request.header, request.text)

    def _request_loop(self) -> None:
        assert self._sock is not None
        while not self._stop_event.is_set():
            try:
                data, addr = self._sock.recvfrom(4096)
            except socket.timeout:
                continue
            except OSError:
                break
            try:
                request = decode_request(data)
            except FrameDecodeError as exc:
                _LOGGER.debug("Invalid datagram from %s:%s: %s", addr[0], addr[1], exc)
                continue
            self._handle(request, addr)

    def _stream_loop(self) -> None:
        while not self._stop_event.wait(self._stream_interval):
            now = time.monotonic()
            batches: Dict[Tuple[str, int], List[Tuple[int, float]]] = {}
            with self._lock:
                for subscription in self._subscriptions.values():
                    if not subscription.due(now):
                        continue
                    subscription.last_sent = now
                    batches.setdefault(subscription.address, []).append(
                        (subscription.dataref_id, self._lookup(subscription.path))
                    )
            for address, pairs in batches.items():
                for start in range(0, len(pairs), _MAX_PAIRS_PER_FRAME):
                    frame = encode_rref_response(pairs[start : start + _MAX_PAIRS_PER_FRAME])
                    self._send_datagram(frame, address)

    def _send_datagram(self, payload: bytes, target: Tuple[str, int]) -> None:
        if self._sock is None:
            return
        try:
            self._sock.sendto(payload, target)
        except OSError as exc:
            _LOGGER.debug("Failed to send datagram to %s:%s: %s", target[0], target[1], exc)


__all__ = ["SimulatorStub"]
