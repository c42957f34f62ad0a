import threading
import unittest

from domain.errors import AccountNotFoundError, InsufficientFundsError
from domain.models import Account, User
from infrastructure.memory.identity_repository import InMemoryIdentityRepository
from infrastructure.memory.ledger_store import InMemoryLedgerStore, InMemoryRateSource


class InMemoryLedgerStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ledger = InMemoryLedgerStore()

    def test_seeded_roster(self):
        users = self.ledger.get_all_users()
        self.assertEqual([u.name for u in users], ["Alice", "Bob"])
        self.assertEqual(users[0].currencies(), ["AUD", "USD"])

    def test_reads_are_snapshots(self):
        alice = self.ledger.find_user("1")
        alice.accounts[0].balance = 0
        self.assertEqual(self.ledger.find_user("1").accounts[0].balance, 1000.0)

    def test_get_account(self):
        alice = self.ledger.find_user("1")
        self.assertEqual(self.ledger.get_account(alice, "USD").balance, 500.0)
        self.assertIsNone(self.ledger.get_account(alice, "EUR"))

    def test_apply_transfer_moves_both_legs(self):
        alice = self.ledger.find_user("1")
        accounts = self.ledger.apply_transfer(alice, "AUD", "USD", 100, 0.68)
        balances = {a.currency: a.balance for a in accounts}
        self.assertEqual(balances["AUD"], 900.0)
        self.assertAlmostEqual(balances["USD"], 568.0)

    def test_apply_transfer_rechecks_balance(self):
        alice = self.ledger.find_user("1")
        with self.assertRaises(InsufficientFundsError):
            self.ledger.apply_transfer(alice, "AUD", "USD", 1000.01, 0.68)
        self.assertEqual(self.ledger.find_user("1").accounts[0].balance, 1000.0)

    def test_apply_transfer_missing_account(self):
        ledger = InMemoryLedgerStore([User(id="7", name="Carol", accounts=[Account("AUD", 50.0)])])
        carol = ledger.find_user("7")
        with self.assertRaises(AccountNotFoundError):
            ledger.apply_transfer(carol, "AUD", "USD", 10, 0.68)
        self.assertEqual(ledger.find_user("7").accounts[0].balance, 50.0)

    def test_duplicate_currency_accounts_are_rejected(self):
        with self.assertRaises(ValueError):
            InMemoryLedgerStore([User(id="8", name="Dup", accounts=[Account("AUD", 1.0), Account("AUD", 2.0)])])

    def test_concurrent_transfers_never_overdraw(self):
        alice = self.ledger.find_user("1")
        outcomes = []
        lock = threading.Lock()

        def worker():
            try:
                self.ledger.apply_transfer(alice, "AUD", "USD", 100, 0.5)
                result = True
            except InsufficientFundsError:
                result = False
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=worker) for _ in range(25)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(outcomes.count(True), 10)
        balances = {a.currency: a.balance for a in self.ledger.find_user("1").accounts}
        self.assertEqual(balances["AUD"], 0.0)
        self.assertEqual(balances["USD"], 1000.0)


class InMemoryRateSourceTests(unittest.TestCase):
    def test_set_rate_accepts_any_value(self):
        rates = InMemoryRateSource()
        self.assertEqual(rates.get_rate(), 0.68)
        rates.set_rate(-1.0)
        self.assertEqual(rates.get_rate(), -1.0)


class InMemoryIdentityRepositoryTests(unittest.TestCase):
    def test_link_and_unlink(self):
        ledger = InMemoryLedgerStore()
        repo = InMemoryIdentityRepository(ledger)
        self.assertIsNone(repo.find_user_by_external("discord", "9"))

        repo.set_external_identity("discord", "9", "2")
        self.assertEqual(repo.find_user_by_external("discord", "9").name, "Bob")

        repo.clear_external_identity("discord", "9")
        self.assertIsNone(repo.find_user_by_external("discord", "9"))


if __name__ == "__main__":
    unittest.main()
