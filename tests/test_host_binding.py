from decimal import Decimal
from types import SimpleNamespace

import pytest

from caju import ScriptRunner, ScriptCallable
from caju.caju_errors import (
    ScriptArithmeticError, ScriptSyntaxError, ScriptNameError, ArgumentError
)


def assert_ok(res, expected=None):
    assert res.status == "success", f"expected success, got {res}"
    if expected is not None:
        assert res.value == expected, f"expected {expected!r}, got {res.value!r}"


def assert_error(res, contains=None):
    assert res.status == "error", f"expected error, got {res.value!r}"
    if contains:
        assert contains in (res.error_message or ""), res.error_message


class Vector:
    def __init__(self, x, y):
        self.x, self.y = x, y

    def _other(self, other):
        if isinstance(other, Vector):
            return other.x, other.y
        return other, other

    def plus(self, other):
        ox, oy = self._other(other)
        return Vector(self.x + ox, self.y + oy)

    def subtract(self, other):
        ox, oy = self._other(other)
        return Vector(self.x - ox, self.y - oy)

    def multiply(self, other):
        ox, oy = self._other(other)
        return Vector(self.x * ox, self.y * oy)

    def divide(self, other):
        ox, oy = self._other(other)
        return Vector(self.x / ox, self.y / oy)

    def module(self, other):
        ox, oy = self._other(other)
        return Vector(self.x % ox, self.y % oy)

    def __eq__(self, other):
        return isinstance(other, Vector) and (self.x, self.y) == (other.x, other.y)


class Counter:
    def __init__(self):
        self.total = 0

    def inc(self, n):
        self.total += n
        return self.total


# --- set / get ---

def test_set_binds_host_values_in_root_scope():
    runner = ScriptRunner()
    runner.set("hp", 100)
    runner.set("rate", 0.5)
    runner.set("title", "Caju")
    assert_ok(runner.handle_script("hp - 5"), 95)
    assert_ok(runner.handle_script("rate * 4"), Decimal("2.0"))
    assert_ok(runner.handle_script('title + "!"'), "Caju!")


def test_get_reads_back_host_forms():
    runner = ScriptRunner()
    runner.handle_script('hp = 100 - 5\nname = "x"\nnothing = $\nflag = 1 < 2')
    assert runner.get("hp") == 95
    assert runner.get("name") == "x"
    assert runner.get("nothing") is None
    assert runner.get("flag") is True
    assert runner.get("never_bound") is None


def test_get_returns_script_functions_as_callables():
    runner = ScriptRunner()
    runner.handle_script("sq(n) #\n  ~ n * n\n#")
    sq = runner.get("sq")
    assert isinstance(sq, ScriptCallable)
    assert callable(sq)
    assert sq(5) == 25
    assert sq.__name__ == "sq"


def test_set_python_callable():
    runner = ScriptRunner()
    runner.set("double", lambda x: x * 2)
    assert_ok(runner.handle_script("double(21)"), 42)
    assert_ok(runner.handle_script("double 4"), 8)


# --- eval / invoke_function / get_interface ---

def test_eval_returns_host_value():
    runner = ScriptRunner()
    assert runner.eval("1 + 2") == 3
    assert runner.eval('"a" + "b"') == "ab"
    assert runner.eval("x = 4") == 4
    assert runner.eval("x * x") == 16


def test_eval_propagates_script_errors():
    runner = ScriptRunner()
    with pytest.raises(ScriptArithmeticError) as excinfo:
        runner.eval("x = 1\ny = x / 0")
    assert excinfo.value.line == 2
    with pytest.raises(ZeroDivisionError):
        runner.eval("1 % 0")
    with pytest.raises(ScriptSyntaxError):
        runner.eval("x < 1 @")


def test_invoke_function_by_name():
    runner = ScriptRunner()
    runner.eval("area(w, h) #\n  ~ w * h\n#")
    assert runner.invoke_function("area", 3, 4) == 12
    assert runner.invoke_function("area", 1.5, 2) == Decimal("3.0")
    with pytest.raises(ScriptNameError):
        runner.invoke_function("volume", 1, 2, 3)
    with pytest.raises(ArgumentError):
        runner.invoke_function("area", 1)


def test_invoke_function_rejects_non_functions():
    runner = ScriptRunner()
    runner.eval("area = 5")
    with pytest.raises(ScriptNameError):
        runner.invoke_function("area", 1, 2)


def test_get_interface_forwards_calls():
    runner = ScriptRunner()
    runner.eval("area(w, h) #\n  ~ w * h\n#\nperimeter(w, h) #\n  ~ 2 * (w + h)\n#")
    shapes = runner.get_interface("area", "perimeter")
    assert shapes.area(2, 5) == 10
    assert shapes.perimeter(2, 5) == 14
    with pytest.raises(AttributeError):
        shapes.volume

    anything = runner.get_interface()
    assert anything.area(3, 3) == 9


def test_host_call_into_script_sees_updated_state():
    runner = ScriptRunner()
    runner.eval("total = 0\nadd(n) #\n  root.total = root.total + n\n  ~ root.total\n#")
    runner.invoke_function("add", 5)
    assert runner.invoke_function("add", 7) == 12
    assert runner.get("total") == 12


def test_host_callables_receive_script_functions():
    runner = ScriptRunner()
    runner.set("apply", lambda fn, v: fn(v))
    runner.set("pick", lambda fn: fn)
    src = "inc(n) #\n  ~ n + 1\n#\n"
    assert_ok(runner.handle_script(src + "apply(inc, 4)"), 5)
    # Handed back to the script, the callable is a script function again.
    assert_ok(runner.handle_script("f = pick(inc)\nf(9)"), 10)


def test_nested_call_keeps_the_outer_stacktrace():
    runner = ScriptRunner()
    runner.eval("bad(n) #\n  ~ n / 0\n#")
    bad = runner.get("bad")
    runner.set("relay", lambda v: bad(v))
    res = runner.handle_script("outer(x) #\n  ~ relay(x)\n#\nouter(2)")
    assert_error(res, "ArithmeticError: Division by zero")
    trace = res.error_message.split("Caju stacktrace:\n", 1)[1].splitlines()
    assert trace == ["  bad(2)", "  relay(2) at line 2", "  outer(2) at line 4"]
    assert runner.evaluator.call_stack == []


# --- Host objects ---

def test_operable_host_objects_use_script_operators():
    runner = ScriptRunner()
    runner.set("v", Vector(1, 2))
    assert_ok(runner.handle_script("v + v"), Vector(2, 4))
    assert_ok(runner.handle_script("v * 3"), Vector(3, 6))
    assert_ok(runner.handle_script("w = v - 1; w"), Vector(0, 1))


def test_operable_host_objects_receive_script_functions():
    class Bag:
        def __init__(self, items):
            self.items = items

        def multiply(self, fn):
            return Bag([fn(x) for x in self.items])

        plus = subtract = divide = module = multiply

    runner = ScriptRunner()
    runner.set("bag", Bag([1, 2, 3]))
    res = runner.handle_script("sq(n) #\n  ~ n * n\n#\nbag * sq")
    assert_ok(res)
    assert res.value.items == [1, 4, 9]


def test_plain_host_objects_reject_operators():
    runner = ScriptRunner()
    runner.set("o", object())
    assert_error(runner.handle_script("o + 1"), "UnsupportedOperationError: object does not support 'plus'")


def test_member_access_and_method_calls():
    runner = ScriptRunner()
    runner.set("player", SimpleNamespace(hp=10, name="Ana"))
    counter = Counter()
    runner.set("c", counter)
    assert_ok(runner.handle_script("player.hp + 1"), 11)
    assert_ok(runner.handle_script('"hi " + player.name'), "hi Ana")
    assert_ok(runner.handle_script("c.inc(2)\nc.inc(3)"), 5)
    assert counter.total == 5
    assert_error(runner.handle_script("player.mp"), "NameError: 'SimpleNamespace' has no member 'mp'")


def test_host_exceptions_are_translated():
    def boom():
        raise ValueError("bad")

    runner = ScriptRunner()
    runner.set("boom", boom)
    runner.set("crash", lambda: 1 / 0)
    runner.set("needs_two", lambda a, b: a)
    assert_error(runner.handle_script("boom()"), "HostError: ValueError: bad")
    assert_error(runner.handle_script("crash()"), "ArithmeticError:")
    assert_error(runner.handle_script("needs_two(1)"), "TypeError:")


# --- Namespace imports ---

def test_import_module_namespace():
    runner = ScriptRunner()
    assert_ok(runner.handle_script("$math\nsqrt(16)"), 4)
    assert_ok(runner.handle_script("math.floor(2.7)"), 2)
    assert_ok(runner.handle_script("math.pi > 3"), True)


def test_import_attribute_path():
    runner = ScriptRunner()
    assert_ok(runner.handle_script('$os.path\njoin("a", "b")'), "a/b")


def test_script_names_take_precedence_over_imports():
    runner = ScriptRunner()
    assert_ok(runner.handle_script("$math\nsqrt(n) #\n  ~ n\n#\nsqrt(16)"), 16)


def test_failed_import():
    res = ScriptRunner().handle_script("$no_such_module_xyz")
    assert_error(res, "NameError: Cannot import namespace 'no_such_module_xyz'")
    assert res.error_token["line"] == 1
