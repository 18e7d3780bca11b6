from decimal import Decimal

from caju.caju_printer import Printer
from caju.caju_syntax import Syntax
from caju.caju_datatypes import Value, Context, ScriptFunction, NULL
from caju.caju_runtime import ScriptRunner


def test_primitives():
    p = Printer()
    assert p.pformat(3) == "3"
    assert p.pformat(True) == "true"
    assert p.pformat(False) == "false"
    assert p.pformat(None) == "$"
    assert p.pformat(Decimal("2.50")) == "2.50"
    assert p.pformat(Decimal("1E+3")) == "1000"


def test_strings_are_quoted_and_escaped():
    p = Printer()
    assert p.pformat("hi") == '"hi"'
    assert p.pformat('say "x"\n') == '"say \\"x\\"\\n"'


def test_values_format_their_payload():
    p = Printer()
    assert p.pformat(Value.integer(5)) == "5"
    assert p.pformat(NULL) == "$"
    assert p.pformat(Value.string("a")) == '"a"'


def test_functions_render_as_headers():
    p = Printer()
    fn = ScriptFunction("add", ["a", "b"], [], Context())
    assert p.pformat(fn) == "add(a, b) # ... #"
    assert p.pformat(Value.function(fn)) == "add(a, b) # ... #"

    runner = ScriptRunner()
    runner.eval("sq(n) # ~ n * n #")
    assert p.pformat(runner.get("sq")) == "sq(n) # ... #"


def test_printer_follows_custom_symbols():
    p = Printer(Syntax({"null": "nil", "function": "def", "booleans": {"true": "yes", "false": "no"}}))
    assert p.pformat(None) == "nil"
    assert p.pformat(True) == "yes"
    assert p.pformat(ScriptFunction("f", [], [], Context())) == "f() def ... def"


def test_host_objects_fall_back_to_repr():
    class Thing:
        def __repr__(self):
            return "<thing>"

    assert Printer().pformat(Thing()) == "<thing>"
    assert Printer().pformat(Value.host(Thing())) == "<thing>"
