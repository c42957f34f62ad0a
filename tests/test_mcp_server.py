import asyncio
import unittest

import mcp.types as types
from mcp.shared.exceptions import McpError

from application.orchestrator import TransferOrchestrator
from infrastructure.memory.ledger_store import InMemoryLedgerStore, InMemoryRateSource
from interfaces.agent.mcp_server import call_tool_with_elicitation, create_mcp_server, tool_descriptors
from interfaces.agent.tools import AgentToolbox


class McpServerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ledger = InMemoryLedgerStore()
        self.rates = InMemoryRateSource(0.68)
        self.toolbox = AgentToolbox(TransferOrchestrator(self.ledger, self.rates), self.ledger, self.rates)

    def balances(self, user_id: str) -> dict:
        return {a.currency: a.balance for a in self.ledger.find_user(user_id).accounts}

    def test_tools_are_described_with_their_schemas(self):
        tools = {tool.name: tool for tool in tool_descriptors(self.toolbox)}
        self.assertEqual(
            set(tools),
            {"get-user-balance", "get-fx-rate", "check-transfer-eligibility", "transfer-funds"},
        )
        self.assertIn("fromCurrency", tools["transfer-funds"].inputSchema["properties"])

    def test_server_can_be_created(self):
        server = create_mcp_server(self.toolbox)
        self.assertIn(types.CallToolRequest, server.request_handlers)
        self.assertIn(types.ReadResourceRequest, server.request_handlers)
        self.assertIn(types.GetPromptRequest, server.request_handlers)

    def test_missing_fields_are_elicited_from_the_client(self):
        asked = []

        async def elicit(message, schema):
            asked.append(message)
            field_name = schema["required"][0]
            return "accept", {field_name: schema["properties"][field_name]["enum"][0]}

        result = asyncio.run(
            call_tool_with_elicitation(
                self.toolbox,
                "transfer-funds",
                {"amount": 100, "fromCurrency": "AUD"},
                elicit,
            )
        )

        self.assertEqual(result.structured["state"], "committed")
        self.assertEqual(
            asked,
            ["Please select the user for this transfer:", "Transfer 100 AUD to which currency account?"],
        )
        self.assertEqual(self.balances("1")["AUD"], 900.0)

    def test_declined_elicitation_cancels(self):
        async def elicit(message, schema):
            return "decline", None

        result = asyncio.run(
            call_tool_with_elicitation(
                self.toolbox,
                "transfer-funds",
                {"userId": "1", "amount": 100, "fromCurrency": "AUD"},
                elicit,
            )
        )
        self.assertFalse(result.is_error)
        self.assertEqual(result.text, "Transfer cancelled - no target currency selected")
        self.assertEqual(self.balances("1"), {"AUD": 1000.0, "USD": 500.0})

    def test_client_without_elicitation_cancels(self):
        async def elicit(message, schema):
            raise McpError(types.ErrorData(code=types.METHOD_NOT_FOUND, message="elicitation not supported"))

        result = asyncio.run(
            call_tool_with_elicitation(
                self.toolbox,
                "transfer-funds",
                {"userId": "1", "amount": 100, "fromCurrency": "AUD"},
                elicit,
            )
        )
        self.assertEqual(result.structured["reason"], "resolution_cancelled")
        self.assertEqual(self.balances("1"), {"AUD": 1000.0, "USD": 500.0})


if __name__ == "__main__":
    unittest.main()
