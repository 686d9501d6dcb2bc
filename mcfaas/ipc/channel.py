import socket
import logging
import threading
from typing import Callable, Iterator, Optional, Tuple

from mcfaas.ipc.messages import MalformedMessage, ProtocolMessage, decode_message, encode_message

log = logging.getLogger(__name__)

MessageHandler = Callable[[ProtocolMessage], None]


class IpcChannel:
    """
    A structured duplex message link over a connected stream socket.

    Messages are newline-delimited JSON envelopes, so a single channel keeps
    send order. Inbound messages are consumed either by one subscribed handler
    (delivered from a reader thread) or by iterating `messages()`.
    """

    def __init__(self, sock: socket.socket, name: str = "ipc") -> None:
        self.name = name
        self._sock = sock
        self._reader = sock.makefile("rb")
        self._send_lock = threading.Lock()
        self._subscribe_lock = threading.Lock()
        self._handler: Optional[MessageHandler] = None
        self._on_close: Optional[Callable[[], None]] = None
        self._reader_thread: Optional[threading.Thread] = None
        self._closed = threading.Event()

    @classmethod
    def pair(cls, name: str = "ipc") -> Tuple["IpcChannel", socket.socket]:
        """
        Creates a channel plus the raw socket for the other end.

        The raw socket is meant to be inherited by a child process and closed
        in the parent once the child is running.
        """
        parent_sock, child_sock = socket.socketpair()
        return cls(parent_sock, name), child_sock

    @classmethod
    def from_fd(cls, fd: int, name: str = "ipc") -> "IpcChannel":
        """Wraps an inherited socket descriptor (worker side)."""
        return cls(socket.socket(fileno=fd), name)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, message: ProtocolMessage) -> None:
        """
        Writes one message to the peer.

        :raises OSError: If the peer has gone away.
        """
        data = encode_message(message)
        with self._send_lock:
            self._sock.sendall(data)
        log.debug(f"[{self.name}] sent '{message.type.value}' ({len(data)} bytes)")

    def messages(self) -> Iterator[ProtocolMessage]:
        """
        Yields inbound messages in arrival order until the peer closes.

        Unknown message types are skipped. Malformed messages are logged and
        dropped.
        """
        for line in self._reader:
            line = line.strip()
            if not line:
                continue
            try:
                message = decode_message(line)
            except MalformedMessage as e:
                log.warning(f"[{self.name}] dropping malformed message: {e}")
                continue
            if message is not None:
                yield message

    def subscribe(self, handler: MessageHandler, on_close: Optional[Callable[[], None]] = None) -> None:
        """
        Registers the channel's single inbound handler and starts delivery.

        :param handler: Called from the reader thread for every message.
        :param on_close: Called once when the peer closes the channel.
        :raises RuntimeError: If a handler is already registered.
        """
        with self._subscribe_lock:
            if self._handler is not None:
                raise RuntimeError(f"Channel '{self.name}' already has a subscriber.")
            self._handler = handler
            self._on_close = on_close
            self._reader_thread = threading.Thread(
                target=self._pump, daemon=True, name=f"IpcReader-{self.name}"
            )
            self._reader_thread.start()

    def _pump(self) -> None:
        """Target function for the reader thread."""
        try:
            for message in self.messages():
                try:
                    self._handler(message)
                except Exception as e:
                    log.error(f"[{self.name}] handler failed for '{message.type.value}': {e}", exc_info=True)
        except (OSError, ValueError) as e:
            # ValueError: the reader was closed under us.
            log.debug(f"[{self.name}] reader exited: {e}")
        finally:
            self._closed.set()
            if self._on_close:
                try:
                    self._on_close()
                except Exception as e:
                    log.error(f"[{self.name}] close callback failed: {e}", exc_info=True)

    def join(self, timeout: Optional[float] = None) -> None:
        """Waits for the reader thread to finish."""
        if self._reader_thread:
            self._reader_thread.join(timeout)

    def close(self) -> None:
        """Closes both directions. A running reader thread sees end-of-stream."""
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._reader.close()
        self._sock.close()
        if self._reader_thread is None:
            self._closed.set()
