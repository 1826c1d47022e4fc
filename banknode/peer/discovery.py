import socket
from concurrent.futures import ThreadPoolExecutor, as_completed

from banknode.logs import get_logger
from banknode.protocol.line_handler import recv_line, send_line

logger = get_logger(__name__)

NO_PORT = 0
MAX_WORKERS = 256


class PeerLocator:
    """
    Finds which of a set of candidate ports on an ip belongs to a bank node.

    A port only counts if the listener answers the BC handshake with the
    exact ip that was dialed, so unrelated services on scanned ports are
    never mistaken for peers.
    """

    def __init__(self, timeout_ms):
        self.timeout_s = timeout_ms / 1000.0

    def check_port(self, ip, port):
        try:
            with socket.create_connection((ip, port), timeout=self.timeout_s) as sock:
                sock.settimeout(self.timeout_s)
                send_line(sock, "BC")
                response = recv_line(sock)
        except OSError as e:
            logger.debug(f"Port {ip}:{port} rejected: {e}")
            return NO_PORT
        if response != f"BC {ip}":
            logger.debug(f"Port {ip}:{port} answered an unexpected handshake: {response!r}")
            return NO_PORT
        return port

    def find_port(self, ip, candidate_ports):
        ports = list(candidate_ports)
        if not ports:
            return NO_PORT
        executor = ThreadPoolExecutor(max_workers=min(len(ports), MAX_WORKERS),
                                      thread_name_prefix=f"locate-{ip}")
        try:
            futures = [executor.submit(self.check_port, ip, port) for port in ports]
            for future in as_completed(futures):
                port = future.result()
                if port != NO_PORT:
                    logger.debug(f"Found bank node at {ip}:{port}")
                    return port
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        logger.debug(f"No bank node port found on {ip}")
        return NO_PORT
