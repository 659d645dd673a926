"""
Process-wide registry of shared Pulse Pal connections.

Several configurators in one process may address the same serial port.
The registry makes sure that port is opened once, hands out reference
counted :class:`ConnectionLease` objects, and closes the device when the
last lease is released::

    with default_registry().reserve("/dev/ttyACM0") as lease:
        with lease.exclusive() as pulse_pal:
            pulse_pal.set_biphasic(1, True)

The table lock is never held across device I/O, so opening or closing one
port does not stall callers working with another.  Command dispatch on a
connection is serialised by that connection's own lock, taken through
:meth:`ConnectionLease.exclusive`.
"""

from __future__ import annotations

import atexit
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum

from .driver import PulsePal
from .exceptions import ConnectionError, LeaseError, PulsePalError, ValidationError

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Lifecycle of a :class:`PortConnection`."""

    UNOPENED = "unopened"
    OPEN = "open"
    CLOSING = "closing"
    REMOVED = "removed"


class PortConnection:
    """One open serial session, owned by a :class:`ConnectionRegistry`.

    Attributes:
        port: Port identifier the session was opened on.
        device: The Device Driver, set once the session is open.
        ref_count: Number of outstanding leases.
        lock: Guard that must be held while dispatching commands.
        state: Current :class:`ConnectionState`.
        open_error: Why the open failed, shared with callers that waited on it.
    """

    def __init__(self, port: str) -> None:
        self.port = port
        self.device: PulsePal | None = None
        self.ref_count = 0
        self.lock = threading.Lock()
        self.state = ConnectionState.UNOPENED
        self.open_error: ConnectionError | None = None

    def __repr__(self) -> str:
        return f"PortConnection({self.port!r}, state={self.state.value}, refs={self.ref_count})"


class ConnectionLease:
    """A single-use reservation of a shared :class:`PortConnection`.

    Release it exactly once, normally by using it as a context manager.
    """

    def __init__(self, registry: ConnectionRegistry, connection: PortConnection) -> None:
        self._registry = registry
        self._connection = connection
        self._released = False

    def __enter__(self) -> ConnectionLease:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    @property
    def port(self) -> str:
        return self._connection.port

    @property
    def released(self) -> bool:
        return self._released

    @property
    def device(self) -> PulsePal:
        """The shared Device Driver.  Only dispatch commands inside :meth:`exclusive`."""
        return self._require_active().device

    @contextmanager
    def exclusive(self) -> Iterator[PulsePal]:
        """Hold the connection guard and yield the Device Driver.

        Blocks while another caller is dispatching on the same connection.
        """
        connection = self._require_active()
        with connection.lock:
            yield connection.device

    def release(self) -> None:
        """Return the reservation to the registry.

        Raises:
            LeaseError: If the lease was already released.
        """
        self._registry._release(self)

    def _require_active(self) -> PortConnection:
        if self._released:
            raise LeaseError(f"Lease on {self.port} has already been released")
        return self._connection


class ConnectionRegistry:
    """Maps port identifiers to lazily opened, reference counted connections.

    Args:
        driver_factory: Callable returning an unopened Device Driver for a
            port identifier.  The registry calls ``open()`` and ``close()``
            on it.  Defaults to :class:`~pulsepal.driver.PulsePal`.
    """

    def __init__(self, driver_factory: Callable[[str], object] = PulsePal) -> None:
        self._factory = driver_factory
        self._connections: dict[str, PortConnection] = {}
        self._changed = threading.Condition(threading.Lock())

    # -- Reservation --------------------------------------------------------

    def reserve(self, port: str) -> ConnectionLease:
        """Reserve the connection for *port*, opening it if needed.

        Concurrent callers for a port that is being opened wait for that
        open and share its outcome: the connection if it succeeds, the
        :class:`ConnectionError` if it fails.  Callers for a port that is
        closing wait for the close to finish and then open a fresh connection.

        Raises:
            ValidationError: If *port* is not a non-empty string.
            ConnectionError: If the device cannot be opened.  Nothing is
                registered and no reference is counted.
        """
        if not isinstance(port, str) or not port:
            raise ValidationError(f"Port identifier must be a non-empty string, got {port!r}")

        waited_on: PortConnection | None = None
        with self._changed:
            while True:
                if waited_on is not None and waited_on.open_error is not None:
                    error = waited_on.open_error
                    raise ConnectionError(str(error)) from error
                connection = self._connections.get(port)
                if connection is None:
                    connection = PortConnection(port)
                    self._connections[port] = connection
                    break
                if connection.state is ConnectionState.OPEN:
                    connection.ref_count += 1
                    logger.debug("Reserved %s (refs=%d)", port, connection.ref_count)
                    return ConnectionLease(self, connection)
                waited_on = connection
                self._changed.wait()

        # This caller created the entry and is the only one opening it
        try:
            device = self._factory(port)
            device.open()
        except (PulsePalError, OSError) as exc:
            if isinstance(exc, ConnectionError):
                self._discard(connection, exc)
                raise
            error = ConnectionError(f"Cannot open Pulse Pal on {port}: {exc}")
            self._discard(connection, error)
            raise error from exc
        except BaseException:
            self._discard(connection)
            raise

        with self._changed:
            connection.device = device
            connection.state = ConnectionState.OPEN
            connection.ref_count += 1
            self._changed.notify_all()
        logger.info("Opened shared connection on %s", port)
        return ConnectionLease(self, connection)

    def _release(self, lease: ConnectionLease) -> None:
        connection = lease._connection
        with self._changed:
            if lease._released:
                raise LeaseError(f"Lease on {connection.port} released twice")
            lease._released = True
            if connection.state in (ConnectionState.CLOSING, ConnectionState.REMOVED):
                # Torn down by close_all() while the lease was out
                return
            connection.ref_count -= 1
            logger.debug("Released %s (refs=%d)", connection.port, connection.ref_count)
            if connection.ref_count > 0:
                return
            connection.state = ConnectionState.CLOSING
        self._close(connection)

    # -- Teardown -----------------------------------------------------------

    def close_all(self) -> None:
        """Close every open connection, regardless of outstanding leases."""
        with self._changed:
            closing = [c for c in self._connections.values() if c.state is ConnectionState.OPEN]
            for connection in closing:
                connection.state = ConnectionState.CLOSING
                connection.ref_count = 0
        for connection in closing:
            self._close(connection)

    def _close(self, connection: PortConnection) -> None:
        try:
            connection.device.close()
        except (PulsePalError, OSError):
            logger.warning("Error closing %s", connection.port, exc_info=True)
        finally:
            self._discard(connection)
        logger.info("Closed shared connection on %s", connection.port)

    def _discard(self, connection: PortConnection, error: ConnectionError | None = None) -> None:
        with self._changed:
            if self._connections.get(connection.port) is connection:
                del self._connections[connection.port]
            connection.state = ConnectionState.REMOVED
            connection.open_error = error
            self._changed.notify_all()

    # -- Introspection ------------------------------------------------------

    def ref_count(self, port: str) -> int:
        """Return the number of outstanding leases on *port* (0 if not open)."""
        with self._changed:
            connection = self._connections.get(port)
            return connection.ref_count if connection else 0

    def ports(self) -> list[str]:
        """Return the port identifiers that currently have a connection entry."""
        with self._changed:
            return sorted(self._connections)

    def __contains__(self, port: object) -> bool:
        with self._changed:
            return port in self._connections


# ---------------------------------------------------------------------------
# Process-wide registry
# ---------------------------------------------------------------------------

_default_registry = ConnectionRegistry()
atexit.register(_default_registry.close_all)


def default_registry() -> ConnectionRegistry:
    """Return the registry shared by every configurator in this process."""
    return _default_registry
