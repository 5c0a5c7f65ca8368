"""UDP connector for the X-Plane dataref protocol."""
from __future__ import annotations

import contextlib
import dataclasses
import ipaddress
import itertools
import logging
import socket
import threading
import time
from datetime import UTC, datetime
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from .configuration import ConnectorConfig
from .datagram import Datagram, DatagramOverflowError
from .datarefs import DataRefElement, StringDataRefElement, StringListener, ValueListener, XPlaneCommand
from .protocol import (
    MAX_RREF_PATH_BYTES,
    FrameDecodeError,
    build_command,
    build_dref_write,
    build_fail,
    build_quit,
    build_recover,
    build_rref_request,
    decode_rref_response,
)

_LOGGER = logging.getLogger(__name__)
# per-tick subscription requests, kept on their own logger so they can be silenced
_REQUEST_LOGGER = logging.getLogger(f"{__name__}.requests")

# Ethernet MTU minus IP and UDP headers; the simulator never sends more
_MAX_DATAGRAM = 1472

RawListener = Callable[[str], None]
DataRefListener = Callable[[DataRefElement], None]
LogListener = Callable[[str], None]


class ConnectorError(RuntimeError):
    """Raised when the connector is used in an invalid state."""


class TransportError(ConnectorError):
    """Raised when a datagram cannot be sent."""


class ConnectorState(str, Enum):
    """Lifecycle states of an :class:`XPlaneConnector`."""

    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


def _check_path(path: str) -> None:
    size = len(path.encode("utf-8"))
    if size > MAX_RREF_PATH_BYTES:
        raise DatagramOverflowError(
            f"Dataref path is {size} bytes; at most {MAX_RREF_PATH_BYTES} fit in a request: {path[:60]}..."
        )


class XPlaneConnector:
    """Subscribe to simulator datarefs and send writes and commands over UDP.

    Subscribing only registers an element. A background refresh loop sends
    the ``RREF`` request for every element whose last update is older than
    ``max_dataref_age``; that covers both the first request and keep-alive
    refreshes. A second loop receives the streamed values and dispatches them
    to the matching elements.
    """

    def __init__(
        self,
        config: Optional[ConnectorConfig] = None,
        *,
        ip: Optional[str] = None,
        port: Optional[int] = None,
    ) -> None:
        resolved = config or ConnectorConfig()
        overrides = {}
        if ip is not None:
            overrides["ip"] = ip
        if port is not None:
            overrides["port"] = port
        self.config = dataclasses.replace(resolved, **overrides) if overrides else resolved
        self._state = ConnectorState.STOPPED
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []
        self._sock: Optional[socket.socket] = None
        self._send_lock = threading.Lock()
        self._lock = threading.RLock()
        self._subscriptions: List[DataRefElement] = []
        self._by_id: Dict[int, DataRefElement] = {}
        self._strings: List[StringDataRefElement] = []
        self._ids = itertools.count(1)
        self._raw_listeners: List[RawListener] = []
        self._dataref_listeners: List[DataRefListener] = []
        self._log_listeners: List[LogListener] = []
        self.last_receive: Optional[datetime] = None
        self.last_buffer: Optional[bytes] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def state(self) -> ConnectorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ConnectorState.RUNNING

    @property
    def local_endpoint(self) -> Optional[Tuple[str, int]]:
        sock = self._sock
        if sock is None:
            return None
        return sock.getsockname()[:2]

    @property
    def subscriptions(self) -> List[DataRefElement]:
        with self._lock:
            return list(self._subscriptions)

    @property
    def string_subscriptions(self) -> List[StringDataRefElement]:
        with self._lock:
            return list(self._strings)

    # ------------------------------------------------------------------
    # Listener registration
    # ------------------------------------------------------------------
    def register_raw_listener(self, callback: RawListener) -> None:
        """Receive every inbound datagram decoded as text."""

        self._raw_listeners.append(callback)

    def register_dataref_listener(self, callback: DataRefListener) -> None:
        """Receive every subscribed element whose value changed."""

        self._dataref_listeners.append(callback)

    def register_log_listener(self, callback: LogListener) -> None:
        """Receive the connector's diagnostic messages."""

        self._log_listeners.append(callback)

    def _dispatch(self, listeners: List[Callable], argument: object) -> None:
        for listener in list(listeners):
            try:
                listener(argument)
            except Exception:
                _LOGGER.exception("Connector listener %r failed", listener)

    def _record(
        self, level: int, message: str, *args: object, logger: logging.Logger = _LOGGER
    ) -> str:
        logger.log(level, message, *args)
        return message % args if args else message

    def _publish(self, messages: List[str]) -> None:
        # never called with self._lock held
        if not self._log_listeners:
            return
        for text in messages:
            self._dispatch(self._log_listeners, text)

    def _log(self, level: int, message: str, *args: object) -> None:
        self._publish([self._record(level, message, *args)])

    # ------------------------------------------------------------------
    # Lifecycle management
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Open the UDP socket and start the receive and refresh loops."""

        with self._state_lock:
            if self._state is not ConnectorState.STOPPED:
                raise ConnectorError(f"Connector cannot start while {self._state.value}.")
            family = socket.AF_INET
            if ipaddress.ip_address(self.config.ip).version == 6:
                family = socket.AF_INET6
            sock = socket.socket(family, socket.SOCK_DGRAM)
            try:
                sock.bind(("", self.config.local_port))
                sock.settimeout(max(self.config.receive_timeout, 0.05))
            except OSError:
                sock.close()
                raise
            self._sock = sock
            self._stop_event.clear()
            self._state = ConnectorState.RUNNING
            receive_thread = threading.Thread(
                target=self._receive_loop,
                name="pyxpconnect-receive",
                daemon=True,
            )
            refresh_thread = threading.Thread(
                target=self._refresh_loop,
                name="pyxpconnect-refresh",
                daemon=True,
            )
            self._threads = [receive_thread, refresh_thread]
            receive_thread.start()
            refresh_thread.start()
        local = self.local_endpoint
        self._log(
            logging.INFO,
            "Connector started on port %s targeting %s:%s",
            local[1] if local else "?",
            self.config.ip,
            self.config.port,
        )

    def stop(self, timeout: float = 5.0) -> None:
        """Unsubscribe everything, stop both loops and release the socket.

        Waits at most ``timeout`` seconds for the loops to finish. Does nothing
        when the connector is not running.
        """

        with self._state_lock:
            if self._state is not ConnectorState.RUNNING:
                return
            self._state = ConnectorState.STOPPING
        messages: List[str] = []
        try:
            with self._lock:
                for element in list(self._subscriptions):
                    try:
                        message = self._cancel(element)
                    except (TransportError, DatagramOverflowError) as exc:
                        _LOGGER.warning("Failed to unsubscribe %s during stop: %s", element.dataref, exc)
                        continue
                    if message:
                        messages.append(message)
                self._strings.clear()
            self._publish(messages)
        finally:
            self._stop_event.set()
            deadline = time.monotonic() + max(timeout, 0.0)
            for thread in self._threads:
                thread.join(timeout=max(deadline - time.monotonic(), 0.0))
                if thread.is_alive():
                    _LOGGER.warning("Thread %s did not stop within %.1fs", thread.name, timeout)
            self._threads = []
            if self._sock is not None:
                with contextlib.suppress(OSError):
                    self._sock.close()
                self._sock = None
            with self._state_lock:
                self._state = ConnectorState.STOPPED
        self._log(logging.INFO, "Connector stopped")

    @contextlib.contextmanager
    def lifecycle(self) -> Iterator["XPlaneConnector"]:
        """Context manager that starts and stops the connector."""

        self.start()
        try:
            yield self
        finally:
            self.stop()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def subscribe(
        self,
        element: DataRefElement,
        frequency: Optional[int] = None,
        on_change: Optional[ValueListener] = None,
    ) -> DataRefElement:
        """Register a dataref; the refresh loop sends the actual request.

        Raises :class:`DatagramOverflowError` (a ``ValueError``) when the path
        does not fit in an ``RREF`` request.
        """

        _check_path(element.dataref)
        if frequency is not None and frequency > 0:
            element.frequency = frequency
        if on_change is not None:
            element.add_change_listener(on_change)
        with self._lock:
            if any(existing is element for existing in self._subscriptions):
                _LOGGER.debug("%s is already subscribed with id %s", element.dataref, element.id)
                return element
            dataref_id = next(self._ids)
            element.assign_id(dataref_id)
            self._subscriptions.append(element)
            self._by_id[dataref_id] = element
        _LOGGER.debug("Subscribed %s with id %s", element.dataref, dataref_id)
        return element

    def subscribe_string(
        self,
        element: StringDataRefElement,
        frequency: Optional[int] = None,
        on_change: Optional[StringListener] = None,
    ) -> StringDataRefElement:
        """Subscribe each character slot of a string dataref."""

        # the last slot has the longest path
        _check_path(element.elements[-1].dataref)
        if on_change is not None:
            element.add_change_listener(on_change)
        with self._lock:
            if not any(existing is element for existing in self._strings):
                self._strings.append(element)
            for child in element.elements:
                self.subscribe(child, frequency)
        return element

    def unsubscribe(self, dataref: str) -> bool:
        """Cancel the first subscription with this exact path.

        String datarefs are matched by their base path and cancel every
        character slot. Unknown paths are ignored; returns whether anything
        was unsubscribed.
        """

        messages: List[Optional[str]] = []
        try:
            with self._lock:
                element = next((item for item in self._subscriptions if item.dataref == dataref), None)
                if element is not None:
                    messages.append(self._cancel(element))
                    return True
                composite = next((item for item in self._strings if item.dataref == dataref), None)
                if composite is None:
                    _LOGGER.debug("Ignoring unsubscribe for unknown dataref %s", dataref)
                    return False
                self._strings.remove(composite)
                for child in composite.elements:
                    if any(existing is child for existing in self._subscriptions):
                        messages.append(self._cancel(child))
                return True
        finally:
            self._publish([message for message in messages if message])

    def _cancel(self, element: DataRefElement) -> Optional[str]:
        # caller holds self._lock and publishes the returned message after releasing it
        dataref_id = element.id
        self._subscriptions.remove(element)
        if dataref_id is not None:
            self._by_id.pop(dataref_id, None)
        element.reset()
        if self._sock is None or dataref_id is None:
            return None
        self._send(build_rref_request(0, dataref_id, element.dataref))
        return self._record(logging.INFO, "Unsubscribed from %s", element.dataref)

    def _request(self, element: DataRefElement) -> str:
        frequency = element.frequency
        if frequency is None or frequency <= 0:
            frequency = self.config.default_frequency
        self._send(build_rref_request(frequency, element.id, element.dataref))
        return self._record(
            logging.DEBUG,
            "Requested %s@%sHz with Id:%s",
            element.dataref,
            frequency,
            element.id,
            logger=_REQUEST_LOGGER,
        )

    def refresh_stale(self, now: Optional[float] = None) -> List[DataRefElement]:
        """Re-request every subscription older than ``max_dataref_age``.

        Elements that never received a value are always stale, so this is
        also where the first request for a new subscription is sent. An
        element whose request cannot be built is logged and skipped.
        """

        checked_at = time.monotonic() if now is None else now
        requested: List[DataRefElement] = []
        messages: List[str] = []
        try:
            with self._lock:
                for element in self._subscriptions:
                    if element.age_at(checked_at) <= self.config.max_dataref_age:
                        continue
                    try:
                        messages.append(self._request(element))
                    except DatagramOverflowError as exc:
                        _LOGGER.error("Cannot request %s: %s", element.dataref, exc)
                        continue
                    requested.append(element)
        finally:
            self._publish(messages)
        return requested

    # ------------------------------------------------------------------
    # Outbound messages
    # ------------------------------------------------------------------
    def _send(self, datagram: Datagram) -> None:
        sock = self._sock
        if sock is None:
            raise TransportError("Connector is not running; call start() first.")
        payload = datagram.to_bytes()
        with self._send_lock:
            try:
                sock.sendto(payload, self.config.endpoint)
            except OSError as exc:
                raise TransportError(
                    f"Failed to send {len(payload)} bytes to {self.config.ip}:{self.config.port}: {exc}"
                ) from exc

    def set_dataref_value(self, dataref: Union[DataRefElement, str], value: Union[float, str]) -> None:
        """Write a float or string value to a dataref."""

        path = dataref.dataref if isinstance(dataref, DataRefElement) else dataref
        if not isinstance(value, str):
            value = float(value)
        self._send(build_dref_write(path, value))
        _LOGGER.debug("Set %s to %r", path, value)

    def send_command(self, command: Union[XPlaneCommand, str]) -> None:
        name = command.command if isinstance(command, XPlaneCommand) else command
        self._send(build_command(name))
        _LOGGER.debug("Sent command %s", name)

    def quit(self) -> None:
        """Ask the simulator to quit."""

        self._send(build_quit())

    def fail(self, system: Union[int, str]) -> None:
        self._send(build_fail(system))

    def recover(self, system: Union[int, str]) -> None:
        self._send(build_recover(system))

    # ------------------------------------------------------------------
    # Inbound handling
    # ------------------------------------------------------------------
    def parse_response(self, data: bytes) -> List[DataRefElement]:
        """Apply an inbound frame to the subscribed elements.

        Non-``RREF`` traffic is ignored. Returns the elements whose value
        changed; a malformed frame raises :class:`FrameDecodeError` without
        applying any of its values.
        """

        response = decode_rref_response(data)
        if not response.is_rref:
            return []
        changed: List[DataRefElement] = []
        received_at = time.monotonic()
        for dataref_id, value in response.values:
            with self._lock:
                element = self._by_id.get(dataref_id)
            if element is None:
                continue
            if element.update(dataref_id, value, now=received_at):
                changed.append(element)
                self._dispatch(self._dataref_listeners, element)
        return changed

    def _receive_loop(self) -> None:
        sock = self._sock
        assert sock is not None
        while not self._stop_event.is_set():
            try:
                data, addr = sock.recvfrom(_MAX_DATAGRAM)
            except socket.timeout:
                continue
            except OSError as exc:
                if not self._stop_event.is_set():
                    _LOGGER.error("Receive loop terminated: %s", exc)
                break
            self.last_receive = datetime.now(UTC)
            self.last_buffer = data
            if self._raw_listeners:
                self._dispatch(self._raw_listeners, data.decode("utf-8", errors="replace"))
            try:
                self.parse_response(data)
            except FrameDecodeError as exc:
                self._log(
                    logging.WARNING,
                    "Discarding malformed frame from %s:%s: %s",
                    addr[0],
                    addr[1],
                    exc,
                )
        self._log(logging.INFO, "Stopping server")

    def _refresh_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.refresh_stale()
            except TransportError as exc:
                if not self._stop_event.is_set():
                    _LOGGER.error("Refresh loop terminated: %s", exc)
                break
            self._stop_event.wait(self.config.check_interval)
        _LOGGER.debug("Refresh loop terminated.")


__all__ = [
    "ConnectorError",
    "ConnectorState",
    "TransportError",
    "XPlaneConnector",
]
