import re
from concurrent.futures import ThreadPoolExecutor

from banknode.logs import get_logger
from banknode.robbery.knapsack import BankNodeSnapshot, plan_robbery

logger = get_logger(__name__)

UNKNOWN = -1
MAX_WORKERS = 32
STAT_RE = re.compile(r"^-?\d+$", re.ASCII)


def parse_stat(response, prefix):
    """Value of a two-token '<prefix> <number>' response, or -1."""
    if not response or response.startswith("ER"):
        return UNKNOWN
    parts = response.split(' ')
    if len(parts) != 2 or parts[0] != prefix:
        return UNKNOWN
    if not STAT_RE.match(parts[1]):
        logger.error(f"Error parsing protocol response: {response}")
        return UNKNOWN
    return int(parts[1])


class RobberyPlanner:
    """
    Scans the network for other bank nodes, asks each for its total amount
    (BA) and client count (BN), then picks the set of nodes that reaches the
    target while affecting the fewest clients.
    """

    def __init__(self, scanner, proxy_factory, self_ip):
        self.scanner = scanner
        self.proxy_factory = proxy_factory
        self.self_ip = self_ip

    def get_remote_bank_stats(self, ip):
        try:
            proxy = self.proxy_factory(ip)
            amount = parse_stat(proxy.forward_request("BA"), "BA")
            clients = parse_stat(proxy.forward_request("BN"), "BN")
        except Exception:
            logger.exception(f"Failed to retrieve bank stats from {ip}")
            return BankNodeSnapshot(ip, UNKNOWN, UNKNOWN)
        return BankNodeSnapshot(ip, amount, clients)

    def collect_network_data(self):
        remote_ips = [ip for ip in self.scanner.scan_network() if ip != self.self_ip]
        logger.debug(f"Network scan discovered {len(remote_ips)} remote hosts")
        if not remote_ips:
            return []
        with ThreadPoolExecutor(max_workers=min(len(remote_ips), MAX_WORKERS),
                                thread_name_prefix="bank-stats") as executor:
            snapshots = list(executor.map(self.get_remote_bank_stats, remote_ips))

        nodes = []
        for snapshot in snapshots:
            if snapshot.total_amount >= 0 and snapshot.client_count >= 0:
                nodes.append(snapshot)
            else:
                logger.warning(f"Skipping node {snapshot.ip}: invalid stats "
                               f"(amount: {snapshot.total_amount}, clients: {snapshot.client_count})")
        return nodes

    def execute_robbery_plan(self, target):
        nodes = self.collect_network_data()
        if not nodes:
            logger.warning("Robbery plan aborted: no other bank nodes were found on the network")
            return "ER no other bank nodes were found"

        logger.debug(f"Calculating optimal plan using {len(nodes)} available nodes")
        plan = plan_robbery(nodes, target)
        if plan is None:
            logger.error(f"Robbery plan failed: insufficient funds in the network for goal {target}")
            return "RP Plan will fail: Insufficient funds in the network"

        logger.info(f"Robbery plan for {target}: {plan.ips} affecting {plan.clients} clients")
        return f"RP To obtain {target} you will need to rob {','.join(plan.ips)} affecting {plan.clients} clients."
