import socket

from banknode.logs import get_logger
from banknode.peer.discovery import NO_PORT, PeerLocator
from banknode.protocol.errors import NetworkError
from banknode.protocol.line_handler import recv_line, send_line

logger = get_logger(__name__)


class PeerProxy:
    """
    Relays protocol lines to one remote bank node.

    The node's port is discovered once, when the proxy is built. Reuse one
    instance for every request of a single logical operation.
    """

    def __init__(self, ip, candidate_ports, timeout_ms, locator=None):
        self.ip = ip
        self.timeout_s = timeout_ms / 1000.0
        locator = locator or PeerLocator(timeout_ms)
        self.port = locator.find_port(ip, candidate_ports)

    def exchange(self, line):
        """Send one line and return the single-line answer. Raises NetworkError."""
        try:
            with socket.create_connection((self.ip, self.port), timeout=self.timeout_s) as sock:
                sock.settimeout(self.timeout_s)
                send_line(sock, line)
                return recv_line(sock)
        except OSError as e:
            raise NetworkError(f"{self.ip}:{self.port} - {e}") from e

    def forward_request(self, line):
        if self.port == NO_PORT:
            logger.error(f"Connection failure: no open port found for {self.ip}")
            return f"ER Unable to connect to {self.ip}: no open port found"

        logger.info(f"Sending request to {self.ip}:{self.port} | Content: {line}")
        try:
            response = self.exchange(line)
        except NetworkError as e:
            logger.error(f"Communication error with {e}")
            return f"ER Unable to connect to {e}"
        logger.info(f"Received response from {self.ip}:{self.port} | Content: {response}")
        return response


def proxy_factory(config):
    """Build a callable ip -> PeerProxy bound to the configured ports and timeout."""
    ports = config.candidate_ports()

    def create(ip):
        return PeerProxy(ip, ports, config.timeout_ms)
    return create
