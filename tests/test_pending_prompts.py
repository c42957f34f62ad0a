import unittest

from interfaces.pending_prompts import PendingPrompts


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class PendingPromptsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.prompts = PendingPrompts(300, clock=self.clock)

    def test_entry_is_returned_until_popped(self):
        self.prompts.add(42, "token-a", "555", ["USD"])

        entry = self.prompts.get(42)
        self.assertEqual((entry.token, entry.requester_id, entry.values), ("token-a", "555", ["USD"]))
        self.assertIs(self.prompts.pop(42), entry)
        self.assertIsNone(self.prompts.get(42))
        self.assertIsNone(self.prompts.pop(42))

    def test_expired_entries_are_not_returned(self):
        self.prompts.add(42, "token-a", "555")
        self.clock.now += 301
        self.assertIsNone(self.prompts.get(42))
        self.assertEqual(len(self.prompts), 0)

    def test_unanswered_prompts_are_pruned_on_add(self):
        for message_id in range(5):
            self.prompts.add(message_id, f"token-{message_id}", "555")
        self.clock.now += 301

        self.prompts.add(99, "token-99", "555")

        self.assertEqual(len(self.prompts), 1)
        self.assertIsNotNone(self.prompts.get(99))

    def test_entry_at_the_limit_is_still_valid(self):
        self.prompts.add(42, "token-a", "555")
        self.clock.now += 300
        self.assertIsNotNone(self.prompts.pop(42))


if __name__ == "__main__":
    unittest.main()
