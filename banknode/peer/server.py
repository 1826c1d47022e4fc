import socket
import threading

from banknode.logs import get_logger
from banknode.peer.session import Session
from banknode.protocol.line_handler import shutdown_quietly

logger = get_logger(__name__)

CAPACITY_MESSAGE = "ER Bank is at full capacity, try again later"
REJECT_GRACE_S = 5.0
JOIN_TIMEOUT_S = 1.0
ACCEPT_POLL_S = 0.5


def configure_keepalive(sock, timeout_ms):
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    idle = max(1, timeout_ms // 1000)
    options = (
        ("TCP_KEEPIDLE", idle),
        ("TCP_KEEPALIVE", idle),  # macOS name for the idle time
        ("TCP_KEEPINTVL", max(1, idle // 2)),
        ("TCP_KEEPCNT", 3),
    )
    for name, value in options:
        if hasattr(socket, name):
            try:
                sock.setsockopt(socket.IPPROTO_TCP, getattr(socket, name), value)
            except OSError as e:
                logger.debug(f"Could not set {name}: {e}")


class ConnectionServer:
    """
    Accept loop of the bank node. Every admitted connection gets its own
    Session thread; connections over max_connections are told so and closed
    after a grace delay without ever being registered.
    """

    def __init__(self, host, port, dispatcher, max_connections, timeout_ms,
                 reject_grace_s=REJECT_GRACE_S):
        self.host = host
        self.port = port
        self.dispatcher = dispatcher
        self.max_connections = max_connections
        self.timeout_ms = timeout_ms
        self.reject_grace_s = reject_grace_s
        self.running = False
        self._listener = None
        self._accept_thread = None
        self._sessions = []
        self._rejected = []
        self._lock = threading.Lock()
        self._observers = []

    def add_observer(self, callback):
        """callback(event, session) with event 'connected' or 'disconnected'."""
        self._observers.append(callback)

    def _notify(self, event, session):
        for callback in list(self._observers):
            try:
                callback(event, session)
            except Exception:
                logger.exception(f"Observer failed on {event} event")

    @property
    def active_count(self):
        with self._lock:
            return len(self._sessions)

    def sessions(self):
        with self._lock:
            return list(self._sessions)

    def start(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
            sock.listen()
            # lets the accept loop notice stop() where closing the listener does not wake accept()
            sock.settimeout(ACCEPT_POLL_S)
        except OSError:
            sock.close()
            logger.critical(f"Failed to start listener on {self.host}:{self.port}")
            raise
        self._listener = sock
        self.port = sock.getsockname()[1]
        self.running = True
        self._accept_thread = threading.Thread(target=self.accept_loop, name="accept", daemon=True)
        self._accept_thread.start()
        logger.info(f"Server started on {self.host}:{self.port}")

    def accept_loop(self):
        while self.running:
            try:
                conn, addr = self._listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self.running:
                    return
                logger.error(f"Socket error during client acceptance: {e}")
                continue
            try:
                configure_keepalive(conn, self.timeout_ms)
                self._admit(conn, addr)
            except OSError as e:
                logger.error(f"Failed to set up connection from {addr}: {e}")
                conn.close()

    def _admit(self, conn, addr):
        session = Session(conn, addr, self.dispatcher, on_close=self._session_closed)
        with self._lock:
            full = len(self._sessions) >= self.max_connections
            if not full:
                self._sessions.append(session)
        if full:
            self._reject(session)
            return
        session.start()
        logger.debug(f"Client connected - {session.name}")
        self._notify("connected", session)

    def _reject(self, session):
        logger.debug(f"Client ({session.name}) attempted to connect, but the connection was rejected "
                     f"because the bank's maximum capacity was exceeded.")
        try:
            session.send(CAPACITY_MESSAGE)
        except OSError as e:
            logger.debug(f"Could not notify rejected client {session.name}: {e}")
        timer = threading.Timer(self.reject_grace_s, self._close_rejected, args=(session,))
        timer.daemon = True
        with self._lock:
            self._rejected.append((session, timer))
        timer.start()

    def _close_rejected(self, session):
        session.stop()
        with self._lock:
            self._rejected = [(s, t) for s, t in self._rejected if s is not session]

    def _session_closed(self, session):
        with self._lock:
            if session not in self._sessions:
                return
            self._sessions.remove(session)
        logger.debug(f"Client disconnected - {session.name}")
        self._notify("disconnected", session)

    def stop(self):
        if not self.running:
            return
        logger.info("Stopping server")
        self.running = False
        if self._listener is not None:
            shutdown_quietly(self._listener)
            self._listener.close()
        if self._accept_thread is not None and self._accept_thread is not threading.current_thread():
            self._accept_thread.join(JOIN_TIMEOUT_S)

        with self._lock:
            rejected, self._rejected = self._rejected, []
            sessions = list(self._sessions)
        for session, timer in rejected:
            timer.cancel()
            session.stop()
        for session in sessions:
            session.stop()
        for session in sessions:
            session.join(JOIN_TIMEOUT_S)
        logger.info("Server stopped")
