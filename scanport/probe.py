from __future__ import annotations

import enum
import errno
import logging
import math
import os
import select
import socket
import time
from dataclasses import dataclass

from scanport.targets import Target

logger = logging.getLogger("scanport.probe")

EMFILE_BACKOFF = 0.01
MAX_POLL_MS = 2**31 - 1


class ProbeError(RuntimeError):
    """A failure of the probing machinery itself; aborts the whole scan."""


class ProbeStatus(enum.Enum):
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"
    HOST_DOWN = "host_down"


@dataclass(frozen=True)
class ProbeOutcome:
    status: ProbeStatus
    address: str | None = None

    @classmethod
    def reachable(cls, address: str) -> ProbeOutcome:
        return cls(ProbeStatus.REACHABLE, address)

    @classmethod
    def unreachable(cls) -> ProbeOutcome:
        return cls(ProbeStatus.UNREACHABLE)

    @classmethod
    def host_down(cls) -> ProbeOutcome:
        return cls(ProbeStatus.HOST_DOWN)

    @property
    def is_reachable(self) -> bool:
        return self.status is ProbeStatus.REACHABLE


def _os_error_text(exc: OSError) -> str:
    return exc.strerror or str(exc)


def open_socket() -> socket.socket:
    while True:
        try:
            return socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as exc:
            if exc.errno != errno.EMFILE:
                raise ProbeError(f"socket: {_os_error_text(exc)}") from exc
        time.sleep(EMFILE_BACKOFF)


def _check_address(address: str, port: int) -> None:
    try:
        socket.inet_pton(socket.AF_INET, address)
    except OSError as exc:
        raise ProbeError(f"inet_pton: {address}: {_os_error_text(exc)}") from exc
    if not 0 <= port <= 65535:
        raise ProbeError(f"connect {address}: invalid port {port}")


def _wait_writable(sock: socket.socket, timeout: float) -> bool:
    if not math.isfinite(timeout):
        raise ProbeError(f"poll: invalid timeout {timeout}")
    # poll() takes an int of milliseconds; longer waits are split up.
    poller = select.poll()
    poller.register(sock, select.POLLOUT)
    deadline = time.monotonic() + timeout
    while True:
        remaining = max(0, math.ceil((deadline - time.monotonic()) * 1000))
        try:
            events = poller.poll(min(remaining, MAX_POLL_MS))
        except OSError as exc:
            raise ProbeError(f"poll: {_os_error_text(exc)}") from exc
        if events:
            return True
        if remaining <= MAX_POLL_MS:
            return False


def probe(target: Target, timeout: float) -> ProbeOutcome:
    """Try one non-blocking TCP connection to ``target`` and classify the result.

    A timeout, a pending socket error after the wait, or an immediate EHOSTDOWN
    is an outcome. Any other failure raises :class:`ProbeError`.
    """
    address = target.address
    with open_socket() as sock:
        _check_address(address, target.port)
        try:
            sock.setblocking(False)
        except OSError as exc:
            raise ProbeError(f"fcntl: {_os_error_text(exc)}") from exc

        err = sock.connect_ex((address, target.port))
        if err == 0:
            logger.debug("%s - connected immediately", address)
            return ProbeOutcome.reachable(address)
        if err == errno.EHOSTDOWN:
            logger.debug("%s - host down", address)
            return ProbeOutcome.host_down()
        if err != errno.EINPROGRESS:
            raise ProbeError(f"connect {address}: {os.strerror(err)}")

        if not _wait_writable(sock, timeout):
            logger.debug("%s - timeout", address)
            return ProbeOutcome.unreachable()

        try:
            err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        except OSError as exc:
            raise ProbeError(f"getsockopt: {_os_error_text(exc)}") from exc
        if err != 0:
            logger.debug("%s - not connected", address)
            return ProbeOutcome.unreachable()

        logger.debug("%s - connected, fd=%d", address, sock.fileno())
        return ProbeOutcome.reachable(address)
