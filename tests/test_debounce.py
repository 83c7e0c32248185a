import asyncio
import unittest

from bookbrief.core.debounce import DebouncedQueryChannel

DELAY = 0.02


class TestDebouncedQueryChannel(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.searches: list[str] = []
        self.clears = 0

        async def on_search(query: str) -> None:
            self.searches.append(query)

        def on_clear() -> None:
            self.clears += 1

        self.channel = DebouncedQueryChannel(on_search, on_clear, delay=DELAY)

    async def test_burst_emits_once_with_last_value(self) -> None:
        for text in ["Sap", "Sapi", "Sapie", "Sapien", "Sapiens"]:
            self.channel.push(text)
            await asyncio.sleep(DELAY / 4)

        await self.channel.drain()
        await asyncio.sleep(DELAY * 2)

        self.assertEqual(self.searches, ["Sapiens"])

    async def test_short_input_clears_without_searching(self) -> None:
        self.channel.push("ab")
        self.channel.push("  ab  ")
        await asyncio.sleep(DELAY * 2)

        self.assertEqual(self.searches, [])
        self.assertEqual(self.clears, 2)
        self.assertFalse(self.channel.pending)

    async def test_whitespace_only_input_never_searches(self) -> None:
        self.channel.push("     ")
        await asyncio.sleep(DELAY * 2)

        self.assertEqual(self.searches, [])

    async def test_query_is_trimmed(self) -> None:
        self.channel.push("  Dune  ")
        await self.channel.drain()

        self.assertEqual(self.searches, ["Dune"])

    async def test_short_input_cancels_pending_search(self) -> None:
        self.channel.push("Sapiens")
        self.channel.push("Sa")
        await asyncio.sleep(DELAY * 2)

        self.assertEqual(self.searches, [])
        self.assertEqual(self.clears, 1)

    async def test_settled_inputs_each_emit(self) -> None:
        self.channel.push("Dune")
        await self.channel.drain()
        self.channel.push("Emma")
        await self.channel.drain()

        self.assertEqual(self.searches, ["Dune", "Emma"])

    async def test_close_drops_pending_and_future_input(self) -> None:
        self.channel.push("Sapiens")
        self.channel.close()
        self.channel.push("Dune")
        await asyncio.sleep(DELAY * 2)

        self.assertEqual(self.searches, [])
        self.assertFalse(self.channel.pending)


if __name__ == "__main__":
    unittest.main()
