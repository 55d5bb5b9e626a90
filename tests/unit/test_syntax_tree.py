import io

import complex_field as cf
from syntax_tree import Token, TokenTrace

def test_token_fields():
    tok = Token(("Array", 2, 7))
    assert (tok.rule, tok.begin, tok.end) == ("Array", 2, 7)
    assert tok.describe() == "Array 2 7"
    assert tok.describe(pretty=True) == "\x1b[34mArray\x1b[m 2 7"

def test_trim_drops_tail():
    trace = TokenTrace()
    trace.add("a", 0, 1)
    trace.add("b", 1, 2)
    trace.trim(1)
    assert trace.tokens() == [("a", 0, 1)]

def test_ast_folds_post_order_trace():
    trace = TokenTrace()
    trace.add("a", 0, 1)
    trace.add("Mark", 1, 1)
    trace.add("b", 1, 2)
    trace.add("root", 0, 2)
    root = trace.ast()
    assert root.rule == "root"
    assert [child.rule for child in root.children] == ["a", "b"]

def test_ast_of_empty_trace():
    assert TokenTrace().ast() is None

def test_field_ast_shape():
    field = cf.ComplexField("[a, [b]]")
    field.parse()
    root = field.ast()
    assert root.rule == "ComplexField"
    array = root.children[0]
    assert array.rule == "Array"
    assert [c.rule for c in array.children] == ["obracket", "ItemList", "cbracket"]
    items = [c for c in array.children[1].children if c.rule == "Item"]
    assert [(i.begin, i.end) for i in items] == [(1, 2), (4, 7)]
    assert items[1].children[0].rule == "Array"

def test_print_syntax_tree():
    field = cf.ComplexField("['x']")
    field.parse()
    out = io.StringIO()
    field.print_syntax_tree(file=out)
    lines = out.getvalue().splitlines()
    assert lines[0] == "ComplexField \"['x']\""
    assert "      SingleQuotedText \"x\"" in lines

def test_walk_depths():
    field = cf.ComplexField("[a]")
    field.parse()
    depths = {node.rule: depth for depth, node in field.ast().walk()}
    assert depths["ComplexField"] == 0
    assert depths["Array"] == 1
    assert depths["ItemList"] == 2
