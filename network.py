# network.py
import logging
import socket
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

from config import (
    BUFFER_SIZE,
    CHAT_PORT,
    ENCODING,
    LISTEN_HOST,
    MAX_DATAGRAM_SIZE,
    POLL_INTERVAL,
)
from logger import ChatLogger

log = logging.getLogger(__name__)

Endpoint = Tuple[str, int]
GuiCallbackType = Optional[Callable[[dict], None]]


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------
class ChannelError(Exception):
    """Base class for transport channel failures."""


class BindError(ChannelError):
    """The chat port could not be bound (usually already in use)."""


class SendError(ChannelError):
    """A datagram was rejected before or by the transport."""


class ReceiveError(ChannelError):
    """An I/O failure while receiving on an open channel."""


class ClosedError(ChannelError):
    """The channel is closed, or was closed while waiting."""


class PeerAddressError(ChannelError):
    """A peer address could not be parsed or resolved."""


@dataclass
class Datagram:
    """One received datagram. ``truncated`` is set when the sender exceeded BUFFER_SIZE."""

    payload: bytes
    source: Endpoint
    truncated: bool = False

    def text(self, encoding: str = ENCODING) -> str:
        return self.payload.decode(encoding, errors="replace")


# ----------------------------------------------------------------------
# Transport channel
# ----------------------------------------------------------------------
class TransportChannel:
    """
    One bound UDP endpoint shared by the send path and the receive loop.

    - open() binds the fixed chat port
    - send() is fire-and-forget, at most BUFFER_SIZE bytes per datagram
    - receive() blocks until a datagram arrives or close() is called
    - current_peer is the endpoint send() uses when no destination is given
    """

    def __init__(
        self,
        port: int = CHAT_PORT,
        host: str = LISTEN_HOST,
        peer_port: Optional[int] = None,
        buffer_size: int = BUFFER_SIZE,
        encoding: str = ENCODING,
    ):
        self.host = host
        self.port = port
        # Both peers listen on the same port, so that is where we send
        self.peer_port = peer_port if peer_port is not None else (port or CHAT_PORT)
        self.buffer_size = buffer_size
        self.encoding = encoding

        self._sock: Optional[socket.socket] = None
        self._closed = threading.Event()
        self._peer: Optional[Endpoint] = None
        self._peer_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self) -> "TransportChannel":
        """Bind the datagram socket. Raises BindError if the port is taken."""
        if self._closed.is_set():
            raise ClosedError("channel has been closed")
        if self._sock is not None:
            return self

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            # No SO_REUSEADDR: a second chat on the same port must fail here
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            raise BindError(f"cannot bind {self.host}:{self.port}: {e}") from e

        # Short timeout so a blocked receive can notice close()
        sock.settimeout(POLL_INTERVAL)
        self._sock = sock
        log.debug("Bound datagram socket on %s:%s", *self.local_endpoint)
        return self

    def close(self) -> None:
        """Release the socket. Any blocked receive() raises ClosedError."""
        if self._closed.is_set():
            return
        self._closed.set()
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
        log.debug("Channel closed")

    @property
    def is_open(self) -> bool:
        return self._sock is not None and not self._closed.is_set()

    @property
    def local_endpoint(self) -> Endpoint:
        if not self.is_open:
            raise ClosedError("channel is not open")
        host, port = self._sock.getsockname()[:2]
        return host, port

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ------------------------------------------------------------------
    # Current peer
    # ------------------------------------------------------------------
    @property
    def current_peer(self) -> Optional[Endpoint]:
        with self._peer_lock:
            return self._peer

    @current_peer.setter
    def current_peer(self, endpoint: Optional[Endpoint]) -> None:
        with self._peer_lock:
            self._peer = endpoint

    def update_peer(self, endpoint: Endpoint) -> bool:
        """Set the current peer; return True if it changed."""
        with self._peer_lock:
            changed = self._peer != endpoint
            self._peer = endpoint
            return changed

    def connect(self, address: str) -> Endpoint:
        """Resolve a typed host name or IP and make it the current peer."""
        address = (address or "").strip()
        if not address:
            raise PeerAddressError("empty address")
        try:
            resolved = socket.gethostbyname(address)
        except (OSError, UnicodeError) as e:
            raise PeerAddressError(f"invalid address {address!r}: {e}") from e

        endpoint = (resolved, self.peer_port)
        self.current_peer = endpoint
        return endpoint

    # ------------------------------------------------------------------
    # Send / receive
    # ------------------------------------------------------------------
    def send(self, payload: Union[bytes, str], destination: Optional[Endpoint] = None) -> Endpoint:
        """Send one datagram and return the endpoint it went to."""
        sock = self._sock
        if sock is None or self._closed.is_set():
            raise ClosedError("channel is not open")

        if isinstance(payload, str):
            payload = payload.encode(self.encoding)

        if destination is None:
            destination = self.current_peer
        if destination is None:
            raise SendError("no peer to send to")

        if len(payload) > self.buffer_size:
            raise SendError(f"message is {len(payload)} bytes, limit is {self.buffer_size}")

        try:
            sock.sendto(payload, destination)
        except OSError as e:
            if self._closed.is_set():
                raise ClosedError("channel closed while sending") from e
            raise SendError(str(e)) from e
        return destination

    def receive(self) -> Datagram:
        """Block until one datagram arrives. Raises ClosedError once closed."""
        sock = self._sock
        if sock is None or self._closed.is_set():
            raise ClosedError("channel is not open")

        while True:
            try:
                data, source = sock.recvfrom(MAX_DATAGRAM_SIZE)
            except socket.timeout:
                if self._closed.is_set():
                    raise ClosedError("channel closed while receiving")
                continue
            except OSError as e:
                if self._closed.is_set():
                    raise ClosedError("channel closed while receiving") from e
                raise ReceiveError(str(e)) from e

            truncated = len(data) > self.buffer_size
            if truncated:
                log.warning("Datagram from %s:%s is %d bytes, truncating", source[0], source[1], len(data))
            return Datagram(data[: self.buffer_size], (source[0], source[1]), truncated)


# ----------------------------------------------------------------------
# Receive loop
# ----------------------------------------------------------------------
class MessageLoop(threading.Thread):
    """
    Background thread draining a TransportChannel into an event sink.

    Shutdown is an explicit stop event plus closing the channel, which wakes
    the blocked receive().
    """

    def __init__(
        self,
        channel: TransportChannel,
        sink: GuiCallbackType,
        logger: Optional[ChatLogger] = None,
        name: str = "message-loop",
    ):
        super().__init__(name=name, daemon=True)
        self._stop_event = threading.Event()
        self.channel = channel
        self.sink = sink
        self.logger = logger

    def run(self) -> None:
        while not self.stopped():
            try:
                datagram = self.channel.receive()
            except ClosedError:
                break
            except ReceiveError as e:
                if self.logger:
                    self.logger.log_error("RECEIVE", str(e))
                self._emit({"type": "status", "level": "error", "message": f"Error: {e}"})
                continue

            message = datagram.text(self.channel.encoding)
            if self.logger:
                self.logger.log_message_received(datagram.source, message, datagram.truncated)

            # Reply goes to whoever spoke last
            if self.channel.update_peer(datagram.source):
                if self.logger:
                    self.logger.log_peer(datagram.source, "receive")
                self._emit({"type": "peer_changed", "peer": datagram.source})

            self._emit(
                {
                    "type": "chat_message",
                    "direction": "incoming",
                    "message": message,
                    "peer": datagram.source,
                    "truncated": datagram.truncated,
                }
            )
        log.debug("Message loop exited")

    def stop(self) -> None:
        """Raise the stop signal and close the channel to wake receive()."""
        self._stop_event.set()
        self.channel.close()

    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def _emit(self, event: dict) -> None:
        if self.sink:
            try:
                self.sink(event)
            except Exception as e:
                log.exception("Event sink failed")
                if self.logger:
                    self.logger.log_error("SINK", str(e))


# ----------------------------------------------------------------------
# Manager used by the GUI
# ----------------------------------------------------------------------
class NetworkManager:
    """
    Owns the channel and the receive loop for one chat window.

    Every failure is caught here and reported through gui_callback as a
    status event, so the window never sees an exception.
    """

    def __init__(
        self,
        gui_callback: GuiCallbackType = None,
        port: int = CHAT_PORT,
        host: str = LISTEN_HOST,
        peer_port: Optional[int] = None,
        session: str = "chat",
        log_dir: Optional[str] = None,
    ):
        self.gui_callback = gui_callback
        self.logger = ChatLogger(session=session, log_dir=log_dir)
        self.channel = TransportChannel(port=port, host=host, peer_port=peer_port)
        self.loop: Optional[MessageLoop] = None
        self._cleaned_up = False

    # ------------------------------------------------------------------
    # Socket setup and threads
    # ------------------------------------------------------------------
    def initialize_network(self) -> bool:
        """Bind the chat port. On failure the window stays up but cannot chat."""
        try:
            self.channel.open()
        except ChannelError as e:
            self.logger.log_error("BIND", str(e))
            self._emit_gui_event({"type": "status", "level": "error", "message": f"Socket error: {e}"})
            return False

        host, port = self.channel.local_endpoint
        self.logger.log_listening(host, port)
        self._emit_gui_event({"type": "status", "level": "info", "message": f"Listening on port: {port}"})
        return True

    def start_listener(self) -> None:
        """Start the background receive loop."""
        if self.loop is not None or not self.channel.is_open:
            return
        self.loop = MessageLoop(self.channel, self._emit_gui_event, logger=self.logger)
        self.loop.start()

    @property
    def current_peer(self) -> Optional[Endpoint]:
        return self.channel.current_peer

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------
    def connect_peer(self, address: str) -> bool:
        """Make the typed address the current peer."""
        try:
            peer = self.channel.connect(address)
        except PeerAddressError as e:
            self.logger.log_error("CALL", str(e))
            self._emit_gui_event({"type": "status", "level": "error", "message": "Invalid IP address"})
            return False

        notice = f"Connected to: {address.strip()}"
        self.logger.log_peer(peer, "call")
        self.logger.log_info("CALL", notice)
        self._emit_gui_event({"type": "peer_changed", "peer": peer})
        self._emit_gui_event({"type": "status", "level": "info", "message": notice})
        return True

    def send_chat_message(self, message: str) -> bool:
        """Send text to the current peer. Returns True if it left the socket."""
        if not message:
            return False

        try:
            peer = self.channel.send(message)
        except ChannelError as e:
            self.logger.log_error("SEND_MESSAGE", str(e))
            self._emit_gui_event({"type": "status", "level": "error", "message": f"Send error: {e}"})
            return False

        self.logger.log_message_sent(peer, message)
        self._emit_gui_event(
            {
                "type": "chat_message",
                "direction": "outgoing",
                "message": message,
                "peer": peer,
                "truncated": False,
            }
        )
        return True

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------
    def cleanup(self) -> None:
        """Stop the loop, release the socket and close the session log."""
        if self._cleaned_up:
            return
        self._cleaned_up = True

        if self.loop is not None:
            self.loop.stop()
            self.loop.join(timeout=POLL_INTERVAL * 5)
        self.channel.close()
        self.logger.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _emit_gui_event(self, event: dict) -> None:
        """Send event to GUI if callback is registered."""
        if self.gui_callback:
            try:
                self.gui_callback(event)
            except Exception as e:
                log.exception("GUI callback error")
                self.logger.log_error("GUI_CALLBACK", str(e))
