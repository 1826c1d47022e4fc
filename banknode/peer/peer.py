from banknode.logs import get_logger
from banknode.peer.proxy import proxy_factory
from banknode.peer.scanner import HostScanner
from banknode.peer.server import ConnectionServer
from banknode.protocol.commands import BankCommands
from banknode.protocol.handler import CommandDispatcher
from banknode.robbery.planner import RobberyPlanner
from banknode.storage.account_store import AccountStore

logger = get_logger(__name__)

HELP = ("Commands:\n"
        "  status      Active connections, bank amount and number of clients\n"
        "  sessions    List connected clients\n"
        "  help        Show this help\n"
        "  exit        Stop the node and quit")


class BankNode:
    def __init__(self, config, store=None, scanner=None):
        self.config = config
        self.ip = config.ip_address
        self.port = config.app_port

        self.store = store or AccountStore(config.accounts_file)
        create_proxy = proxy_factory(config)
        self.scanner = scanner or HostScanner(config.scan_ip_ranges, config.timeout_ms)
        self.planner = RobberyPlanner(self.scanner, create_proxy, self.ip)
        self.commands = BankCommands(self.store, self.ip, create_proxy, self.planner)
        self.dispatcher = CommandDispatcher(self.commands)
        self.server = ConnectionServer(self.ip, self.port, self.dispatcher,
                                       config.max_connections, config.timeout_ms)
        self.server.add_observer(self.on_connection_event)
        logger.debug(f"Bank node initialized on {self.ip}:{self.port}")

    def on_connection_event(self, event, session):
        logger.info(f"Client {event}: {session.name} ({self.server.active_count} active)")

    def start_service(self):
        logger.debug("Starting connection server")
        self.server.start()

    def shutdown(self):
        self.server.stop()

    def status(self):
        return (f"Node {self.ip}:{self.server.port} | active connections: {self.server.active_count}"
                f"/{self.config.max_connections} | bank amount: {self.store.total_balance()}"
                f" | clients: {self.store.client_count()}")

    def run_cli(self):
        while True:
            try:
                cmd = input(">>> ").strip().lower()
            except (KeyboardInterrupt, EOFError):
                logger.debug("CLI interrupted by user")
                print("\nInterrupted. Exiting")
                break
            if cmd == "exit":
                logger.debug("Exiting CLI")
                print("Exiting")
                break
            elif cmd == "help":
                print(HELP)
            elif cmd == "status":
                print(self.status())
            elif cmd == "sessions":
                sessions = self.server.sessions()
                if not sessions:
                    print("No clients connected.")
                for number, session in enumerate(sessions, start=1):
                    print(f"{number} - Client: {session.name}")
            elif cmd:
                print("Unknown command. Type 'help'.")
        self.shutdown()
