import enum
import threading

from banknode.logs import get_logger
from banknode.protocol.line_handler import LineReader, send_line, shutdown_quietly

logger = get_logger(__name__)


class SessionState(enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    CLOSING = "closing"
    CLOSED = "closed"


class Session:
    """
    One accepted connection: reads a line, dispatches it, writes the answer,
    until the client leaves, the socket faults or stop() is called.
    """

    def __init__(self, sock, addr, dispatcher, on_close=None):
        self.sock = sock
        self.addr = addr
        self.dispatcher = dispatcher
        self.on_close = on_close
        self.state = SessionState.CREATED
        self.reader = LineReader(sock)
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self.run, name=f"session-{addr[0]}:{addr[1]}", daemon=True)

    @property
    def name(self):
        return f"{self.addr[0]}:{self.addr[1]}"

    def start(self):
        self._thread.start()

    def send(self, message):
        send_line(self.sock, message)

    def run(self):
        with self._lock:
            if self.state is not SessionState.CREATED:
                return
            self.state = SessionState.RUNNING
        logger.debug(f"Connection thread started for client {self.name}")
        try:
            while not self._stop_event.is_set():
                line = self.reader.readline()
                if line is None:
                    logger.debug(f"Client {self.name} closed the stream")
                    break
                logger.debug(f"Received raw input from {self.name}: {line}")
                response = self.dispatcher.handle_line(line)
                if response is not None:
                    self.send(response)
        except OSError as e:
            if not self._stop_event.is_set():
                logger.error(f"Connection with {self.name} unexpectedly terminated: {e}")
        finally:
            logger.debug(f"Closing client connection {self.name}")
            self.stop()
            if self.on_close is not None:
                self.on_close(self)

    def stop(self):
        """Close the connection. Safe to call repeatedly and from any thread."""
        with self._lock:
            if self.state in (SessionState.CLOSING, SessionState.CLOSED):
                return
            self.state = SessionState.CLOSING
        self._stop_event.set()
        shutdown_quietly(self.sock)
        self.reader.close()
        try:
            self.sock.close()
        except OSError as e:
            logger.debug(f"Error closing socket of {self.name}: {e}")
        with self._lock:
            self.state = SessionState.CLOSED

    def join(self, timeout=None):
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    @property
    def closed(self):
        return self.state is SessionState.CLOSED
