import pytest

from caju.caju_syntax import Syntax, SyntaxPosition, DEFAULT_SYNTAX_PATH, _load_table


@pytest.fixture(scope="module")
def syntax():
    return Syntax()


@pytest.mark.parametrize("text, rule", [
    ("\\ a comment", "comment"),
    ("x < 3 @", "loop_open"),
    ("@", "loop_close"),
    ("x < 3 @ x = x + 1 @", "inline_loop"),
    ("add(a, b) #", "function_open"),
    ("add a, b #", "function_open"),
    ("#", "function_close"),
    ("add(a, b) # ~ a + b #", "inline_function"),
    ("x > 10 ?", "if_open"),
    ("? x > 5 ?", "else_if"),
    ("??", "else"),
    ("?", "if_close"),
    ('x > 1 ? r = "a" ?? r = "b" ?', "inline_if"),
    ("~ a + b", "return"),
    ("~", "return"),
    ("$math", "import"),
    ('$"lib/util.cj"', "import"),
    ("x = 1", "assignment"),
    ("root.total += 2", "assignment"),
    ("print x, 1", "bare_call"),
])
def test_root_context_statement_rules(syntax, text, rule):
    pos = syntax.find(text, "root")
    assert isinstance(pos, SyntaxPosition)
    assert pos.name == rule


@pytest.mark.parametrize("text", ["x + 1", "f(1, 2)", "x <= 3", "x", "$"])
def test_plain_expressions_match_no_statement_rule(syntax, text):
    assert syntax.find(text, "root") is None


def test_groups_are_sliced_from_original_text(syntax):
    pos = syntax.find('s = "x @ y ?"', "root")
    assert pos.name == "assignment"
    assert pos.groups["name"] == "s"
    assert pos.groups["expression"] == '"x @ y ?"'
    assert pos.groups["operator"] is None

    pos = syntax.find("x -= 4", "root")
    assert pos.groups["operator"] == "-"
    assert pos.groups["expression"] == "4"


def test_markers_inside_strings_are_ignored(syntax):
    # Without masking these would look like a loop header and a conditional.
    assert syntax.find('print "done @"', "root").name == "bare_call"
    assert syntax.find('"really?"', "root") is None


def test_function_header_params(syntax):
    pos = syntax.find("add(v1 v2) #", "root")
    assert pos.groups["name"] == "add"
    assert pos.groups["params"] == "v1 v2"

    pos = syntax.find("add v1, v2 #", "root")
    assert pos.groups["params"] is None
    assert pos.groups["bare"].strip() == "v1, v2"


def test_expression_context_is_longest_match_first(syntax):
    pos = syntax.find("x <= 3", "expression")
    assert pos.name == "less_equal"
    assert (pos.start, pos.end) == (2, 4)

    pos = syntax.find("a < b", "expression")
    assert pos.name == "less"

    pos = syntax.find('"a+b" * 2', "expression")
    assert pos.name == "multiply"
    assert pos.groups["family"] == "arithmetic"

    assert syntax.find("abc", "expression") is None


def test_unknown_context_raises(syntax):
    with pytest.raises(ValueError):
        syntax.find("x", "nowhere")


def test_global_position(syntax):
    assert syntax.global_position("root.x") == len("root.")
    assert syntax.global_position("x") == -1
    assert syntax.global_position("root.") == -1
    assert syntax.strip_global("root.total") == (True, "total")
    assert syntax.strip_global("total") == (False, "total")


def test_split_statements_respects_strings(syntax):
    assert syntax.split_statements('$math; x = "a;b"; y = 2') == ["$math", ' x = "a;b"', " y = 2"]
    assert syntax.split_statements("x = 1") == ["x = 1"]


def test_mask_keeps_offsets(syntax):
    text = 'say "a\\"b" now'
    masked = syntax.mask(text)
    assert len(masked) == len(text)
    assert masked.startswith('say "')
    assert masked.endswith('" now')
    assert "a" not in masked[5:9]


def test_operator_names(syntax):
    assert syntax.operator_name("%", "arithmetic") == "module"
    assert syntax.operator_name("=", "comparison") == "equal"
    assert syntax.operator_name("!") == "not_equal"
    assert syntax.operator_name("&") == "and"
    assert syntax.operator_name("??") is None


def test_custom_symbols_change_recognition():
    custom = Syntax({
        "loop": "while",
        "return": "return",
        "global_marker": "$$",
        "comparison": {"not_equal": "<>"},
    })
    assert custom.find("x < 3 while", "root").name == "loop_open"
    assert custom.find("x < 3 @", "root") is None
    assert custom.find("return 1", "root").name == "return"
    assert custom.global_position("$$x") == 2
    # Longest first: `<>` must not split into `<` and `>`.
    assert custom.find("a <> b", "expression").name == "not_equal"

    out = custom.expression_parser.parse("a <> b")
    assert out["status"] == "success"
    assert out["ast"]["op"]["text"] == "<>"


def test_from_file_merges_over_defaults(tmp_path):
    path = tmp_path / "syntax.yaml"
    path.write_text('comment: "//"\narithmetic:\n  module: "mod"\n', encoding="utf-8")
    custom = Syntax.from_file(path)
    assert custom.is_comment("// hello")
    assert not custom.is_comment("\\ hello")
    assert custom.operator_name("mod", "arithmetic") == "module"
    # Untouched entries keep their defaults.
    assert custom.operator_name("+", "arithmetic") == "plus"


def test_invalid_table_is_rejected():
    with pytest.raises(ValueError):
        Syntax({"loop": ""})
    with pytest.raises(ValueError):
        Syntax({"else": "?"})


def test_default_table_keys_are_strings():
    table = _load_table(DEFAULT_SYNTAX_PATH)
    assert all(isinstance(key, str) for key in table)
    assert table["null"] == "$"
    assert table["booleans"] == {"true": "true", "false": "false"}
    assert Syntax().symbol("null") == "$"
