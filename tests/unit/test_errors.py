import pytest
import complex_field as cf
from syntax_tree import Token

def test_parse_error_is_a_syntax_error():
    assert issubclass(cf.ParseError, SyntaxError)
    assert issubclass(cf.DepthLimitError, cf.ParseError)
    assert not issubclass(cf.ArrayStackError, SyntaxError)

def test_malformed_input_blames_furthest_span():
    with pytest.raises(cf.ParseError) as ei:
        cf.parse('[&*&, "car"  , "plane", "boat\'s"]')
    err = ei.value
    assert err.rule == "obracket"
    assert (err.line, err.column, err.end_line, err.end_column) == (1, 1, 1, 2)
    assert err.excerpt == "["
    assert str(err) == 'parse error near obracket (line 1 symbol 1 - line 1 symbol 2):\n"["'

def test_error_position_on_second_line():
    with pytest.raises(cf.ParseError) as ei:
        cf.parse('["a\nb", &]')
    err = ei.value
    assert err.rule == "ws"
    assert (err.offset_begin, err.offset_end) == (7, 8)
    assert (err.line, err.column) == (2, 4)
    assert (err.end_line, err.end_column) == (2, 5)

def test_trailing_content_reports_closing_delimiter():
    with pytest.raises(cf.ParseError) as ei:
        cf.parse("[1] 2")
    assert ei.value.rule == "cbracket"
    assert ei.value.column == 3

def test_nothing_matched_reports_unknown():
    with pytest.raises(cf.ParseError) as ei:
        cf.parse("&")
    err = ei.value
    assert err.rule == "Unknown"
    assert (err.line, err.column) == (1, 1)
    assert err.excerpt == ""

def test_report_end_of_input_column():
    err = cf.report(Token(("cbracket", 3, 4)), "[1]]")
    assert (err.end_line, err.end_column) == (1, 5)

def test_report_newline_belongs_to_its_line():
    err = cf.report(Token(("x", 1, 2)), "a\nb")
    assert (err.line, err.column) == (1, 2)
    assert (err.end_line, err.end_column) == (2, 1)

def test_pretty_report_colours_rule():
    field = cf.ComplexField("[1", pretty=True)
    with pytest.raises(cf.ParseError) as ei:
        field.parse()
    assert "\x1b[34m" in str(ei.value)
    assert ei.value.rule == "digit"
