import ipaddress
import re

from banknode.logs import get_logger
from banknode.protocol.errors import DomainError, ValidationError, failure
from banknode.storage.account_store import MAX_ACCOUNT, MIN_ACCOUNT

logger = get_logger(__name__)

NUMBER_RE = re.compile(r"^\d+$", re.ASCII)
MAX_AMOUNT = 2 ** 63 - 1


def parse_account_ref(token):
    """'12345/10.0.0.1' -> (12345, '10.0.0.1')"""
    parts = token.split('/')
    if len(parts) != 2 or not NUMBER_RE.match(parts[0]):
        raise ValidationError()
    number = int(parts[0])
    if not MIN_ACCOUNT <= number <= MAX_ACCOUNT:
        raise ValidationError()
    try:
        ipaddress.IPv4Address(parts[1])
    except ValueError:
        raise ValidationError() from None
    return number, parts[1]


def parse_amount(token):
    if not NUMBER_RE.match(token):
        raise ValidationError()
    amount = int(token)
    if amount <= 0 or amount > MAX_AMOUNT:
        raise ValidationError()
    return amount


class BankCommands:
    """
    One handler per protocol verb. Account verbs addressed to another node's
    ip are relayed through a PeerProxy without being executed here.
    """

    def __init__(self, store, self_ip, proxy_factory, planner):
        self.store = store
        self.self_ip = self_ip
        self.proxy_factory = proxy_factory
        self.planner = planner

    def handler_for(self, verb):
        return getattr(self, f"handle_{verb.lower()}")

    def forward(self, ip, command):
        logger.info(f"Forwarding {command.verb} to remote node {ip}")
        proxy = self.proxy_factory(ip)
        return proxy.forward_request(command.raw)

    def _account_command(self, command, with_amount, local):
        try:
            if len(command.args) < (2 if with_amount else 1):
                raise ValidationError()
            number, ip = parse_account_ref(command.args[0])
            amount = parse_amount(command.args[1]) if with_amount else None
        except ValidationError as e:
            logger.warning(f"{command.verb} command rejected: {e.reason}")
            return failure(command.verb, e.reason)

        if ip != self.self_ip:
            return self.forward(ip, command)
        try:
            return local(number, amount)
        except DomainError as e:
            return failure(command.verb, e.reason)

    def handle_bc(self, command):
        return f"BC {self.self_ip}"

    def handle_ac(self, command):
        number = self.store.create_account()
        return f"AC {number}/{self.self_ip}"

    def handle_ad(self, command):
        def local(number, amount):
            self.store.deposit(number, amount)
            return "AD"
        return self._account_command(command, True, local)

    def handle_aw(self, command):
        def local(number, amount):
            self.store.withdraw(number, amount)
            return "AW"
        return self._account_command(command, True, local)

    def handle_ab(self, command):
        return self._account_command(command, False, lambda number, _: f"AB {self.store.get_balance(number)}")

    def handle_ar(self, command):
        def local(number, _):
            self.store.delete_account(number)
            return "AR"
        return self._account_command(command, False, local)

    def handle_ba(self, command):
        return f"BA {self.store.total_balance()}"

    def handle_bn(self, command):
        return f"BN {self.store.client_count()}"

    def handle_rp(self, command):
        try:
            if not command.args:
                raise ValidationError()
            target = parse_amount(command.args[0])
        except ValidationError:
            logger.warning("RP command rejected: invalid target amount")
            return "ER RP Failed: Invalid target amount"
        logger.info(f"Starting robbery planning for target amount {target}")
        return self.planner.execute_robbery_plan(target)
