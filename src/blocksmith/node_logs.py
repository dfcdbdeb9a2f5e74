"""Classification and routing of node stdout lines."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .constants import GAS_ESTIMATE_METHOD, NODE_CONSOLE_TARGET, NODE_LOG_PATTERN, NODE_USER_TARGET

node_logger = logging.getLogger("blocksmith.node")
console_logger = logging.getLogger("blocksmith.node.console")

LineSink = Callable[["NodeLine"], None]


class LineKind(Enum):
    """
    Kinds of node output lines.

    - CONSOLE: contract console.log output
    - DIAGNOSTIC: node RPC trace (node::user), e.g. the method being served
    - OTHER: anything else (banner, block summaries, plain text)
    """

    CONSOLE = "console"
    DIAGNOSTIC = "diagnostic"
    OTHER = "other"


@dataclass(frozen=True)
class NodeLine:
    kind: LineKind
    text: str
    raw: str
    time: Optional[str] = None
    level: Optional[str] = None


def classify_line(line: str) -> NodeLine:
    match = NODE_LOG_PATTERN.match(line)
    if match is None:
        return NodeLine(LineKind.OTHER, line, line)
    time, level, target, text = match.groups()
    if target == NODE_CONSOLE_TARGET:
        kind = LineKind.CONSOLE
    elif target == NODE_USER_TARGET:
        kind = LineKind.DIAGNOSTIC
    else:
        kind = LineKind.OTHER
    return NodeLine(kind, text, line, time, level.strip())


def log_console_line(line: NodeLine) -> None:
    console_logger.info("LOG %s %s", line.time, line.text)


def log_diagnostic_line(line: NodeLine) -> None:
    node_logger.debug("%s", line.raw)


class NodeOutputRouter:
    """
    Routes node lines to a console sink and a diagnostic sink.

    Console output produced while the node serves eth_estimateGas is dropped:
    gas estimation replays the call and would print every console line twice.
    """

    def __init__(
        self,
        console_sink: Optional[LineSink] = log_console_line,
        diagnostic_sink: Optional[LineSink] = log_diagnostic_line,
    ):
        self.console_sink = console_sink
        self.diagnostic_sink = diagnostic_sink
        self._show_console = True

    def feed(self, raw: str) -> NodeLine:
        line = classify_line(raw)
        if line.kind is LineKind.CONSOLE:
            if self._show_console and self.console_sink is not None:
                self.console_sink(line)
            return line
        if line.kind is LineKind.DIAGNOSTIC:
            self._show_console = line.text != GAS_ESTIMATE_METHOD
        if self.diagnostic_sink is not None:
            self.diagnostic_sink(line)
        return line
