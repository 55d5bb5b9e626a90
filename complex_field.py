# complex_field.py
# Backtracking parser for array-encoded CSV cell values
#
# =============================================================================
#  PARSER IMPLEMENTATION: ORDERED CHOICE OVER A CURSOR
# =============================================================================
#
# Result files and primitive outputs often store a whole array in one CSV
# cell, e.g. [10, 20, [alpha, 'b c'], "forty &*"]. This module turns that text
# into nested Array / Leaf values.
#
# Grammar (PEG notation, "/" is ordered choice):
#
#   ComplexField  <- Array !.
#   Array         <- ws* '[' PushArray ws* ItemList? ']' PopArray
#                  / ws* '(' PushArray ws* ItemList? ')' PopArray
#   ItemList      <- Item ws* (',' ws* Item ws*)*
#   Item          <- Array / QuotedString / RawValue
#   QuotedString  <- DoubleQuoted / SingleQuoted
#   DoubleQuoted  <- '"' <(!'"' .)*> '"' AddElement
#   SingleQuoted  <- '\'' <("\\'" / !'\'' .)*> '\'' AddElement
#   RawValue      <- <'-'? Digit+ ('.' Digit+)?> AddElement
#   Digit         <- [a-zA-Z0-9]
#   ws            <- ' '
#
# Every rule is a method wrapped by @_rule. The wrapper saves the cursor and
# the trace length on entry, records a Token on success and restores both on
# failure, so any alternative can be retried from the same place.
#
# Double quotes have no escape: a backslash inside them is plain content.
# Single quotes recognise \' as a literal quote. Raw values are never
# converted to numbers; bare words such as [alpha, bravo] are accepted too.
#
# The furthest-ending non-empty span seen during matching is kept for error
# reporting only. It never influences which alternative wins.
# =============================================================================

import argparse
import functools
import json
import re
import string
import sys
from typing import Callable, Dict, Iterable, List, Optional, TextIO, Tuple, Union

from syntax_tree import Node, Token, TokenTrace

# ---------------------------------------------------------------------------
# CONSTANTS AND TUNABLES
# ---------------------------------------------------------------------------
DEPTH_LIMIT_DEFAULT = 32    # Array nesting guard; a deliberate tightening, the grammar itself has no limit
START_RULE          = "ComplexField"

_DIGITS     = frozenset(string.ascii_letters + string.digits)
_RAW_RE     = re.compile(r"-?[A-Za-z0-9]+(?:\.[A-Za-z0-9]+)?")
_ESC_SQUOTE = "\\'"
_BLUE       = "\x1b[34m"
_RESET      = "\x1b[m"

# ---------------------------------------------------------------------------
# VALUE TYPES
# ---------------------------------------------------------------------------
class Leaf(str):
    """Terminal text value. Compares equal to the plain string it holds."""

    def __repr__(self):
        return f"Leaf({str.__repr__(self)})"


class Array(list):
    """Ordered sequence of Leaf and nested Array values."""

    def __repr__(self):
        return f"Array({list.__repr__(self)})"


Value = Union[Leaf, Array]

# ---------------------------------------------------------------------------
# ERRORS
# ---------------------------------------------------------------------------
class ParseError(SyntaxError):
    """
    Input does not match the grammar.

    Carries the furthest-matched rule span, both as raw offsets and as
    1-based line/column pairs, plus the matched excerpt.
    """
    def __init__(self, message: str, *, rule: str = "Unknown",
                 span: Tuple[int, int] = (0, 0),
                 start: Tuple[int, int] = (1, 1),
                 end: Tuple[int, int] = (1, 1),
                 excerpt: str = ""):
        super().__init__(message)
        self.rule = rule
        self.offset_begin, self.offset_end = span
        self.line, self.column = start
        self.end_line, self.end_column = end
        self.excerpt = excerpt


class DepthLimitError(ParseError):
    """Array nesting went past the configured max_depth."""


class ArrayStackError(RuntimeError):
    """Array context stack misuse. Accepted input never triggers this."""

# ---------------------------------------------------------------------------
# ERROR REPORTER
# ---------------------------------------------------------------------------
def _translate_positions(buffer: str, positions: Iterable[int]) -> Dict[int, Tuple[int, int]]:
    """
    Map character offsets to 1-based (line, column) in one pass.

    A newline belongs to the line it terminates. The end-of-input offset maps
    to the column just past the last character.
    """
    wanted = set(positions)
    found: Dict[int, Tuple[int, int]] = {}
    line, column = 1, 1
    for i, ch in enumerate(buffer):
        if i in wanted:
            found[i] = (line, column)
        if ch == "\n":
            line, column = line + 1, 1
        else:
            column += 1
    for pos in wanted:
        if pos >= len(buffer):
            found[pos] = (line, column)
    return found


def report(token: Token, buffer: str, pretty: bool = False, *,
           reason: str = "parse error", error_cls=ParseError) -> ParseError:
    """
    Build the diagnostic for the furthest-matched span.
    """
    rule, begin, end = token
    positions = _translate_positions(buffer, (begin, end))
    start, stop = positions[begin], positions[end]
    excerpt = buffer[begin:end]
    shown = f"{_BLUE}{rule}{_RESET}" if pretty else rule
    message = (
        f"{reason} near {shown} "
        f"(line {start[0]} symbol {start[1]} - line {stop[0]} symbol {stop[1]}):\n"
        f"{json.dumps(excerpt, ensure_ascii=False)}"
    )
    return error_cls(message, rule=rule, span=(begin, end), start=start, end=stop, excerpt=excerpt)

# ---------------------------------------------------------------------------
# SEMANTIC BUILDER
# ---------------------------------------------------------------------------
class _ArrayContext:
    __slots__ = ("elements", "parent")

    def __init__(self, parent: Optional["_ArrayContext"]):
        self.elements = Array()
        self.parent = parent


class ArrayBuilder:
    """
    Stack of open arrays driven by PushArray / AddElement / PopArray.

    The active context is the top of the stack. Popping the last context
    produces the top-level result; exactly one result may be produced.
    """
    def __init__(self):
        self._top: Optional[_ArrayContext] = None
        self._result: Optional[Array] = None

    @property
    def depth(self) -> int:
        depth, ctx = 0, self._top
        while ctx is not None:
            depth, ctx = depth + 1, ctx.parent
        return depth

    def push(self):
        if self._result is not None:
            raise ArrayStackError("push after the top-level array was completed")
        self._top = _ArrayContext(self._top)

    def add(self, text: str):
        if self._top is None:
            raise ArrayStackError("element added outside of any array")
        self._top.elements.append(Leaf(text))

    def pop(self):
        if self._top is None:
            raise ArrayStackError("array stack underflow")
        done, self._top = self._top, self._top.parent
        if self._top is None:
            self._result = done.elements
        else:
            self._top.elements.append(done.elements)

    def result(self) -> Array:
        if self._top is not None:
            raise ArrayStackError(f"{self.depth} array context(s) left open")
        if self._result is None:
            raise ArrayStackError("no array was produced")
        return self._result

# ---------------------------------------------------------------------------
# RULE COMBINATORS
# ---------------------------------------------------------------------------
def _rule(name: str):
    """
    Turn a matching method into a grammar rule.

    On success the span is recorded; on failure the cursor and the trace are
    restored to where the rule started.
    """
    def decorator(fn: Callable[["ComplexField"], bool]):
        @functools.wraps(fn)
        def wrapper(self: "ComplexField") -> bool:
            begin, mark = self._pos, len(self._trace)
            if fn(self):
                self._add(name, begin)
                return True
            self._pos = begin
            self._trace.trim(mark)
            return False
        wrapper.rule_name = name
        return wrapper
    return decorator


def _literal(name: str, text: str):
    @_rule(name)
    def match(self: "ComplexField") -> bool:
        if self.buffer.startswith(text, self._pos):
            self._pos += len(text)
            return True
        return False
    return match


def _char_class(name: str, chars: frozenset):
    @_rule(name)
    def match(self: "ComplexField") -> bool:
        if self._pos < len(self.buffer) and self.buffer[self._pos] in chars:
            self._pos += 1
            return True
        return False
    return match


def _action(name: str):
    """Zero-width rule that only leaves a marker in the trace."""
    def match(self: "ComplexField") -> bool:
        self._add(name, self._pos)
        return True
    match.rule_name = name
    return match

# ---------------------------------------------------------------------------
# PARSER
# ---------------------------------------------------------------------------
class ComplexField:
    """
    Single-use parser for one field value.

    Construct with the raw text, call parse(), then execute() to build the
    value. Call reset() before parsing the same instance again.
    """
    RULES: Dict[str, Callable[["ComplexField"], bool]] = {}

    def __init__(self, buffer: str, *, pretty: bool = False,
                 max_depth: Optional[int] = DEPTH_LIMIT_DEFAULT):
        self.buffer = buffer
        self.pretty = pretty
        self.max_depth = max_depth
        self.reset()

    def reset(self):
        self._pos = 0
        self._depth = 0
        self._max = Token(("Unknown", 0, 0))
        self._trace = TokenTrace()
        self._state = "ready"

    # ---- bookkeeping -------------------------------------------------------
    def _add(self, rule: str, begin: int):
        self._trace.add(rule, begin, self._pos)
        if begin != self._pos and self._pos > self._max.end:
            self._max = Token((rule, begin, self._pos))

    def _attempt(self, match: Callable[[], bool]) -> bool:
        begin, mark = self._pos, len(self._trace)
        if match():
            return True
        self._pos = begin
        self._trace.trim(mark)
        return False

    @staticmethod
    def _many(match: Callable[[], bool]) -> bool:
        while match():
            pass
        return True

    def _many1(self, match: Callable[[], bool]) -> bool:
        if not match():
            return False
        return self._many(match)

    # ---- terminals ---------------------------------------------------------
    _ws         = _literal("ws", " ")
    _comma      = _literal("comma", ",")
    _obracket   = _literal("obracket", "[")
    _cbracket   = _literal("cbracket", "]")
    _oparen     = _literal("oparen", "(")
    _cparen     = _literal("cparen", ")")
    _dquote     = _literal("dquote", '"')
    _squote     = _literal("squote", "'")
    _esc_squote = _literal("escsquote", _ESC_SQUOTE)
    _negative   = _literal("negative", "-")
    _point      = _literal("point", ".")
    _digit      = _char_class("digit", _DIGITS)

    # ---- semantic actions --------------------------------------------------
    _push_array  = _action("PushArray")
    _pop_array   = _action("PopArray")
    _add_element = _action("AddElement")

    # ---- structure ---------------------------------------------------------
    @_rule("ComplexField")
    def _complex_field(self) -> bool:
        return self._array() and self._pos == len(self.buffer)

    @_rule("Array")
    def _array(self) -> bool:
        return (self._attempt(lambda: self._delimited(self._obracket, self._cbracket))
                or self._attempt(lambda: self._delimited(self._oparen, self._cparen)))

    def _delimited(self, open_rule, close_rule) -> bool:
        self._many(self._ws)
        begin = self._pos
        if not open_rule():
            return False
        self._depth += 1
        try:
            if self.max_depth is not None and self._depth > self.max_depth:
                raise report(Token(("Array", begin, self._pos)), self.buffer, self.pretty,
                             reason=f"depth limit {self.max_depth} exceeded",
                             error_cls=DepthLimitError)
            self._push_array()
            self._many(self._ws)
            self._item_list()
            return close_rule() and self._pop_array()
        finally:
            self._depth -= 1

    @_rule("ItemList")
    def _item_list(self) -> bool:
        if not self._item():
            return False
        self._many(self._ws)
        self._many(lambda: self._attempt(self._next_item))
        return True

    def _next_item(self) -> bool:
        if not (self._comma() and self._many(self._ws) and self._item()):
            return False
        return self._many(self._ws)

    @_rule("Item")
    def _item(self) -> bool:
        return self._array() or self._quoted_string() or self._raw_value()

    # ---- strings -----------------------------------------------------------
    @_rule("QuotedString")
    def _quoted_string(self) -> bool:
        return self._double_quoted() or self._single_quoted()

    @_rule("DoubleQuoted")
    def _double_quoted(self) -> bool:
        return (self._dquote() and self._double_quoted_text()
                and self._dquote() and self._add_element())

    @_rule("DoubleQuotedText")
    def _double_quoted_text(self) -> bool:
        end = self.buffer.find('"', self._pos)
        self._pos = len(self.buffer) if end < 0 else end
        return True

    @_rule("SingleQuoted")
    def _single_quoted(self) -> bool:
        return (self._squote() and self._single_quoted_text()
                and self._squote() and self._add_element())

    @_rule("SingleQuotedText")
    def _single_quoted_text(self) -> bool:
        while True:
            if self._esc_squote():
                continue
            if self._pos >= len(self.buffer) or self.buffer[self._pos] == "'":
                return True
            self._pos += 1

    # ---- raw values --------------------------------------------------------
    @_rule("RawValue")
    def _raw_value(self) -> bool:
        return self._raw_text() and self._add_element()

    @_rule("RawText")
    def _raw_text(self) -> bool:
        self._negative()
        if not self._many1(self._digit):
            return False
        self._attempt(lambda: self._point() and self._many1(self._digit))
        return True

    # ---- public ------------------------------------------------------------
    def parse(self, rule: str = START_RULE) -> None:
        """
        Match the buffer against `rule`. Raises ParseError on failure.

        Only the ComplexField rule insists on consuming the whole buffer.
        """
        if self._state != "ready":
            raise RuntimeError("parser already run - call reset() first")
        try:
            match = self.RULES[rule]
        except KeyError:
            raise ValueError(f"unknown rule {rule!r}") from None
        self._state = "failed"
        try:
            matched = match(self)
        except RecursionError:
            raise report(self._max, self.buffer, self.pretty,
                         reason=f"nesting exceeds recursion limit {sys.getrecursionlimit()}",
                         error_cls=DepthLimitError) from None
        if not matched:
            raise report(self._max, self.buffer, self.pretty)
        self._state = "matched"

    def execute(self) -> Value:
        """
        Replay the trace through an ArrayBuilder and return the result.
        """
        if self._state != "matched":
            raise RuntimeError("execute() needs a successful parse()")
        builder = ArrayBuilder()
        text = ""
        for rule, begin, end in self._trace:
            if rule in ("DoubleQuotedText", "RawText"):
                text = self.buffer[begin:end]
            elif rule == "SingleQuotedText":
                text = self.buffer[begin:end].replace(_ESC_SQUOTE, "'")
            elif rule == "PushArray":
                builder.push()
            elif rule == "PopArray":
                builder.pop()
            elif rule == "AddElement":
                builder.add(text)
        return builder.result()

    def tokens(self) -> List[Token]:
        return self._trace.tokens()

    def ast(self) -> Optional[Node]:
        return self._trace.ast()

    def print_tokens(self, file: Optional[TextIO] = None):
        self._trace.print(file=file, pretty=self.pretty)

    def print_syntax_tree(self, file: Optional[TextIO] = None):
        self._trace.print_syntax_tree(self.buffer, file=file, pretty=self.pretty)


ComplexField.RULES = {
    fn.rule_name: fn for fn in vars(ComplexField).values() if hasattr(fn, "rule_name")
}
RULE_NAMES = tuple(ComplexField.RULES)

# ---------------------------------------------------------------------------
# PUBLIC API
# ---------------------------------------------------------------------------
def parse(text: str, *, max_depth: Optional[int] = DEPTH_LIMIT_DEFAULT) -> Value:
    """
    Parse one field value into nested Array / Leaf values.

    The whole text must be a single bracketed or parenthesised array.
    """
    field = ComplexField(text, max_depth=max_depth)
    field.parse()
    return field.execute()


def parse_cell(text: str, *, max_depth: Optional[int] = DEPTH_LIMIT_DEFAULT) -> Value:
    """
    Parse a CSV cell if it looks like an array, otherwise pass it through.

    A cell that opens with [ or ( but does not parse raises ParseError.
    """
    if not text.lstrip(" ").startswith(("[", "(")):
        return Leaf(text)
    return parse(text, max_depth=max_depth)


def _quote(text: str) -> str:
    if _RAW_RE.fullmatch(text):
        return text
    if '"' not in text:
        return f'"{text}"'
    if not text.endswith("\\"):
        return "'" + text.replace("'", _ESC_SQUOTE) + "'"
    raise ValueError(f"leaf {text!r} cannot be quoted")


def dump(value: Value) -> str:
    """
    Serialize a value back to field text using [ ] and ", " separators.
    """
    if isinstance(value, list):
        return "[" + ", ".join(dump(item) for item in value) + "]"
    return _quote(str(value))

# ---------------------------------------------------------------------------
# CLI ENTRYPOINT
# ---------------------------------------------------------------------------
def _read_field(path: str) -> str:
    if path == "-":
        data = sys.stdin.read()
    else:
        with open(path, "r", encoding="utf-8") as fh:
            data = fh.read()
    # one line terminator from the file, not part of the field
    if data.endswith("\r\n"):
        return data[:-2]
    if data.endswith("\n"):
        return data[:-1]
    return data


def _depth_arg(text: str) -> int:
    depth = int(text)
    if depth < 0:
        raise argparse.ArgumentTypeError(f"must be 0 or more, got {depth}")
    return depth


def _cli(argv: List[str]) -> int:
    """
    Command-line validator: 0 on success, 1 on SyntaxError.
    """
    ap = argparse.ArgumentParser(description="Complex field parser")
    ap.add_argument("file", help="file holding one field value, - for stdin")
    ap.add_argument("--debug", action="store_true", help="dump token trace and exit")
    ap.add_argument("--tree", action="store_true", help="print the syntax tree before the value")
    ap.add_argument("--pretty", action="store_true", help="colour rule names")
    ap.add_argument("--max-depth", type=_depth_arg, default=DEPTH_LIMIT_DEFAULT,
                    help="array nesting limit, 0 disables")
    args = ap.parse_args(argv)

    field = ComplexField(_read_field(args.file), pretty=args.pretty,
                         max_depth=args.max_depth or None)
    try:
        field.parse()
    except SyntaxError as exc:
        print(f"SyntaxError: {exc}", file=sys.stderr)
        return 1

    if args.debug:
        field.print_tokens()
        return 0
    if args.tree:
        field.print_syntax_tree()
    print(json.dumps(field.execute(), ensure_ascii=False))
    return 0


def main() -> int:
    return _cli(sys.argv[1:])

# ---------------------------------------------------------------------------
# MAIN GUARD
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    sys.exit(main())
