import platform
import subprocess
from concurrent.futures import ThreadPoolExecutor

from banknode.logs import get_logger

logger = get_logger(__name__)

MAX_WORKERS = 128


def ping_command(ip, timeout_ms):
    system = platform.system()
    if system == "Windows":
        return ["ping", "-n", "1", "-w", str(timeout_ms), ip]
    if system == "Darwin":
        return ["ping", "-c", "1", "-W", str(timeout_ms), ip]
    # iputils takes whole seconds
    return ["ping", "-c", "1", "-W", str(max(1, -(-timeout_ms // 1000))), ip]


def ping_host(ip, timeout_ms):
    """Send one ICMP echo via the system ping utility; True if it answered."""
    try:
        result = subprocess.run(
            ping_command(ip, timeout_ms),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=timeout_ms / 1000.0,
        )
    except subprocess.TimeoutExpired:
        logger.debug(f"Ping to {ip} timed out")
        return False
    except OSError as e:
        logger.warning(f"Ping to {ip} could not run: {e}")
        return False
    return result.returncode == 0


class HostScanner:
    """
    Best-effort liveness sweep over the configured ip ranges. Hosts that miss
    the probe window are simply absent from that cycle's result.
    """

    def __init__(self, ip_ranges, timeout_ms, probe=ping_host):
        self.ip_ranges = ip_ranges
        self.timeout_ms = timeout_ms
        self.probe = probe

    def addresses(self):
        seen = set()
        for ip_range in self.ip_ranges:
            for ip in ip_range.addresses():
                if ip not in seen:
                    seen.add(ip)
                    yield ip

    def _probe(self, ip):
        try:
            return self.probe(ip, self.timeout_ms)
        except Exception as e:
            logger.debug(f"Probe of {ip} failed: {e}")
            return False

    def scan_network(self):
        logger.info("Starting network scan")
        addresses = list(self.addresses())
        if not addresses:
            return []
        with ThreadPoolExecutor(max_workers=min(len(addresses), MAX_WORKERS),
                                thread_name_prefix="scan") as executor:
            answers = list(executor.map(self._probe, addresses))
        active = [ip for ip, alive in zip(addresses, answers) if alive]
        logger.info(f"Network scan finished. Found {len(active)} active devices.")
        return active
