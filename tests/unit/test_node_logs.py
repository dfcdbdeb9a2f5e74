"""Unit tests for node output classification and routing."""

from blocksmith.node_logs import LineKind, NodeOutputRouter, classify_line

TIME = "2024-08-02T19:38:31.399817Z"


def node_line(target: str, text: str, level: str = " INFO") -> str:
    return f"\x1b[2m{TIME}\x1b[0m \x1b[32m{level}\x1b[0m \x1b[2m{target}\x1b[0m\x1b[2m:\x1b[0m {text}"


class TestClassifyLine:
    """Test line classification."""

    def test_console_line(self):
        """Test that node::console lines are console output."""
        line = classify_line(node_line("node::console", "hello world"))

        assert line.kind is LineKind.CONSOLE
        assert line.text == "hello world"
        assert line.time == TIME
        assert line.level == "INFO"

    def test_diagnostic_line(self):
        """Test that node::user lines are diagnostics."""
        line = classify_line(node_line("node::user", "eth_sendRawTransaction"))

        assert line.kind is LineKind.DIAGNOSTIC
        assert line.text == "eth_sendRawTransaction"

    def test_other_lines(self):
        """Test that plain and other-target lines are OTHER."""
        assert classify_line("Listening on 127.0.0.1:8545").kind is LineKind.OTHER
        assert classify_line(node_line("node::miner", "Block 1")).kind is LineKind.OTHER


class TestNodeOutputRouter:
    """Test routing to sinks."""

    def make_router(self):
        console, diagnostics = [], []
        router = NodeOutputRouter(console.append, diagnostics.append)
        return router, console, diagnostics

    def test_routes_by_kind(self):
        """Test that console lines and everything else go to separate sinks."""
        router, console, diagnostics = self.make_router()

        router.feed(node_line("node::console", "a"))
        router.feed(node_line("node::user", "eth_call"))
        router.feed("plain text")

        assert [x.text for x in console] == ["a"]
        assert [x.text for x in diagnostics] == ["eth_call", "plain text"]

    def test_console_hidden_during_gas_estimation(self):
        """Test that console output following eth_estimateGas is dropped until the next call."""
        router, console, _ = self.make_router()

        router.feed(node_line("node::user", "eth_estimateGas"))
        router.feed(node_line("node::console", "replayed"))
        router.feed("plain text")
        router.feed(node_line("node::console", "replayed again"))
        router.feed(node_line("node::user", "eth_sendRawTransaction"))
        router.feed(node_line("node::console", "real"))

        assert [x.text for x in console] == ["real"]

    def test_sinks_optional(self):
        """Test that a router without sinks still classifies."""
        router = NodeOutputRouter(None, None)

        assert router.feed(node_line("node::console", "x")).kind is LineKind.CONSOLE
