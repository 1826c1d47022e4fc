import json
import os
import random
import threading

from banknode.logs import get_logger
from banknode.protocol.errors import AccountNotFound, BalanceNotZero, InsufficientFunds, InternalError

logger = get_logger(__name__)

MIN_ACCOUNT = 10000
MAX_ACCOUNT = 99999


class AccountStore:
    """
    Thread-safe ledger of the accounts created on this node, persisted as a
    JSON list of {"AccountNumber", "Balance"} records after every mutation.

    One lock covers each read-modify-write-plus-persist operation.
    """

    def __init__(self, path, rng=None):
        self.path = path
        self._lock = threading.Lock()
        self._accounts = {}
        self._random = rng or random.Random()
        self._load()

    def _load(self):
        with self._lock:
            if not self.path or not os.path.exists(self.path):
                logger.debug("No account file found, starting with an empty ledger")
                return
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    content = f.read()
                if not content.strip():
                    return
                for record in json.loads(content):
                    number = int(record["AccountNumber"])
                    balance = int(record["Balance"])
                    if not MIN_ACCOUNT <= number <= MAX_ACCOUNT or balance < 0:
                        raise ValueError(f"invalid account record {record!r}")
                    self._accounts[number] = balance
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.error(f"Failed to load bank accounts from {self.path}: {e}")
                raise InternalError(f"Failed to load bank accounts: {e}") from e
            logger.info(f"Loaded {len(self._accounts)} accounts from {self.path}")

    def _save(self):
        if not self.path:
            return
        records = [{"AccountNumber": n, "Balance": b} for n, b in self._accounts.items()]
        tmp_path = self.path + ".tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to save accounts to {self.path}: {e}")
            raise InternalError(f"Failed to save accounts: {e}") from e
        logger.debug(f"Saved {len(records)} accounts to disk")

    def create_account(self):
        with self._lock:
            if len(self._accounts) > MAX_ACCOUNT - MIN_ACCOUNT:
                raise InternalError("No free account numbers left")
            while True:
                number = self._random.randint(MIN_ACCOUNT, MAX_ACCOUNT)
                if number not in self._accounts:
                    break
            self._accounts[number] = 0
            try:
                self._save()
            except InternalError:
                del self._accounts[number]
                raise
            logger.info(f"Account {number} created")
            return number

    def deposit(self, number, amount):
        with self._lock:
            if number not in self._accounts:
                logger.warning(f"Deposit failed: account {number} not found")
                raise AccountNotFound()
            previous = self._accounts[number]
            self._accounts[number] = previous + amount
            try:
                self._save()
            except InternalError:
                self._accounts[number] = previous
                raise
            logger.info(f"Deposited {amount} to account {number}")

    def withdraw(self, number, amount):
        with self._lock:
            if number not in self._accounts:
                logger.warning(f"Withdrawal failed: account {number} not found")
                raise AccountNotFound()
            previous = self._accounts[number]
            if previous < amount:
                logger.warning(f"Withdrawal failed: account {number} has insufficient funds ({previous})")
                raise InsufficientFunds()
            self._accounts[number] = previous - amount
            try:
                self._save()
            except InternalError:
                self._accounts[number] = previous
                raise
            logger.info(f"Withdrew {amount} from account {number}")

    def get_balance(self, number):
        with self._lock:
            if number not in self._accounts:
                raise AccountNotFound()
            return self._accounts[number]

    def delete_account(self, number):
        with self._lock:
            if number not in self._accounts:
                logger.warning(f"Deletion failed: account {number} not found")
                raise AccountNotFound()
            if self._accounts[number] != 0:
                raise BalanceNotZero()
            balance = self._accounts.pop(number)
            try:
                self._save()
            except InternalError:
                self._accounts[number] = balance
                raise
            logger.info(f"Account {number} removed")

    def list_all(self):
        with self._lock:
            return dict(self._accounts)

    def total_balance(self):
        with self._lock:
            return sum(self._accounts.values())

    def client_count(self):
        with self._lock:
            return len(self._accounts)
