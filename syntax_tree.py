# syntax_tree.py
# Token trace recorder and syntax tree reconstruction for complex field values
#
# =============================================================================
#  TRACE LAYOUT
# =============================================================================
#
# The matcher appends one Token per successful rule invocation, at the moment
# the rule completes. Completion order is a post-order walk of the syntax
# tree, so the flat list can be replayed left to right to drive semantic
# actions, or folded back into a tree with a single stack pass.
#
# Semantic actions are recorded as zero-width tokens. They take part in the
# replay but never appear in the reconstructed tree.
#
# Backtracking is a truncation: the matcher remembers len(trace) before an
# alternative and trims back to it when the alternative fails.
# =============================================================================

import json
import sys
from typing import Iterator, List, Optional, TextIO, Tuple

_BLUE  = "\x1b[34m"
_RESET = "\x1b[m"

# ---------------------------------------------------------------------------
# TOKEN RECORD
# ---------------------------------------------------------------------------
class Token(Tuple[str, int, int]):
    """
    Immutable span record: (rule, begin, end).

    begin/end are character offsets into the parsed buffer, end exclusive.
    """

    @property
    def rule(self) -> str:
        return self[0]

    @property
    def begin(self) -> int:
        return self[1]

    @property
    def end(self) -> int:
        return self[2]

    def describe(self, pretty: bool = False) -> str:
        rule = f"{_BLUE}{self.rule}{_RESET}" if pretty else self.rule
        return f"{rule} {self.begin} {self.end}"

# ---------------------------------------------------------------------------
# TREE NODE
# ---------------------------------------------------------------------------
class Node:
    """A syntax tree node: one non-empty token plus the tokens it encloses."""

    def __init__(self, token: Token):
        self.token = token
        self.children: List["Node"] = []

    @property
    def rule(self) -> str:
        return self.token.rule

    @property
    def begin(self) -> int:
        return self.token.begin

    @property
    def end(self) -> int:
        return self.token.end

    def walk(self, depth: int = 0) -> Iterator[Tuple[int, "Node"]]:
        """Pre-order traversal yielding (depth, node)."""
        yield depth, self
        for child in self.children:
            yield from child.walk(depth + 1)

    def print(self, buffer: str, file: Optional[TextIO] = None, pretty: bool = False):
        out = file if file is not None else sys.stdout
        for depth, node in self.walk():
            rule = f"{_BLUE}{node.rule}{_RESET}" if pretty else node.rule
            text = json.dumps(buffer[node.begin:node.end], ensure_ascii=False)
            print(f"{' ' * depth}{rule} {text}", file=out)

    def __repr__(self):
        return f"Node({self.rule!r}, {self.begin}, {self.end}, children={len(self.children)})"

# ---------------------------------------------------------------------------
# TRACE RECORDER
# ---------------------------------------------------------------------------
class TokenTrace:
    """
    Ordered, truncatable list of completed rule spans.
    """
    def __init__(self):
        self._tokens: List[Token] = []

    def __len__(self) -> int:
        return len(self._tokens)

    def __iter__(self) -> Iterator[Token]:
        return iter(self._tokens)

    def add(self, rule: str, begin: int, end: int) -> Token:
        token = Token((rule, begin, end))
        self._tokens.append(token)
        return token

    def trim(self, length: int):
        del self._tokens[length:]

    def tokens(self) -> List[Token]:
        return list(self._tokens)

    def ast(self) -> Optional[Node]:
        """
        Fold the post-order trace into a tree.

        Each token adopts every finished node on the stack that lies inside
        its span; those were the rules it invoked. Zero-width tokens are
        skipped. When the trace holds several roots the last one is returned.
        """
        stack: List[Node] = []
        for token in self._tokens:
            if token.begin == token.end:
                continue
            node = Node(token)
            while stack and stack[-1].begin >= token.begin and stack[-1].end <= token.end:
                node.children.insert(0, stack.pop())
            stack.append(node)
        return stack[-1] if stack else None

    def print(self, file: Optional[TextIO] = None, pretty: bool = False):
        out = file if file is not None else sys.stdout
        for token in self._tokens:
            print(token.describe(pretty), file=out)

    def print_syntax_tree(self, buffer: str, file: Optional[TextIO] = None, pretty: bool = False):
        root = self.ast()
        if root is not None:
            root.print(buffer, file=file, pretty=pretty)
