"""Tests for Derivation."""

import pytest

from rxgraph import CyclicDependency, Engine, EvaluationFailure


def _counting(fn):
    calls = [0]

    def wrapped():
        calls[0] += 1
        return fn()

    return wrapped, calls


class TestDerivation:
    def test_lazy_eval(self):
        engine = Engine()
        o = engine.declare("o", 5)
        fn, calls = _counting(lambda: o.get() * 2)
        d = engine.declare_derivation(fn)
        assert calls[0] == 0  # not yet evaluated
        assert d.get() == 10
        assert calls[0] == 1

    def test_caches_until_stale(self):
        engine = Engine()
        o = engine.declare("o", 5)
        fn, calls = _counting(lambda: o.get() * 2)
        d = engine.declare_derivation(fn)
        d.get()
        d.get()
        assert calls[0] == 1
        assert d.is_valid()

    def test_invalidation(self):
        engine = Engine()
        o = engine.declare("o", 5)
        d = engine.declare_derivation(lambda: o.get() * 2)
        assert d.get() == 10
        o.set(10)
        assert not d.is_valid()
        assert d.get() == 20
        assert d.revision == 2

    def test_unrelated_write_keeps_cache(self):
        engine = Engine()
        a = engine.declare("a", 1)
        b = engine.declare("b", 1)
        fn, calls = _counting(lambda: a.get() + 1)
        d = engine.declare_derivation(fn)
        d.get()
        b.set(2)
        assert engine.get(d) == 2
        assert calls[0] == 1

    def test_coalesces_writes(self):
        engine = Engine()
        a = engine.declare("a", 0)
        fn, calls = _counting(lambda: a.get())
        d = engine.declare_derivation(fn)
        d.get()
        for value in range(1, 6):
            a.set(value)
        assert d.get() == 5
        assert calls[0] == 2

    def test_dynamic_dependencies(self):
        """Dependencies are re-tracked on every evaluation."""
        engine = Engine()
        use_a = engine.declare("use_a", True)
        a = engine.declare("a", 1)
        b = engine.declare("b", 2)
        fn, calls = _counting(lambda: a.get() if use_a.get() else b.get())
        d = engine.declare_derivation(fn)
        assert d.get() == 1
        assert a._id in d.dependencies

        use_a.set(False)
        assert d.get() == 2
        assert a._id not in d.dependencies
        assert calls[0] == 2

        a.set(100)  # no longer a dependency
        assert d.is_valid()
        assert d.get() == 2
        assert calls[0] == 2

    def test_chained(self):
        engine = Engine()
        o = engine.declare("o", 3)
        doubled = engine.declare_derivation(lambda: o.get() * 2)
        quadrupled = engine.declare_derivation(lambda: doubled.get() * 2)
        assert quadrupled.get() == 12
        o.set(5)
        assert quadrupled.get() == 20

    def test_shared_by_two_readers(self):
        engine = Engine()
        o = engine.declare("o", 1)
        fn, calls = _counting(lambda: o.get() + 1)
        shared = engine.declare_derivation(fn)
        left = engine.declare_derivation(lambda: shared.get() * 10)
        right = engine.declare_derivation(lambda: shared.get() * 100)
        assert (left.get(), right.get()) == (20, 200)
        o.set(2)
        assert (left.get(), right.get()) == (30, 300)
        assert calls[0] == 2

    def test_propagates_to_observers(self):
        engine = Engine()
        o = engine.declare("o", 5)
        d = engine.declare_derivation(lambda: o.get() * 2)
        log = []
        engine.declare_observer(lambda: log.append(d.get()))
        assert log == [10]
        o.set(10)
        assert log == [10, 20]

    def test_repr(self):
        engine = Engine()
        o = engine.declare("o", 5)

        @engine.declare_derivation
        def doubled():
            return o.get() * 2

        assert repr(doubled) == "Derivation(doubled, stale)"
        doubled.get()
        assert repr(doubled) == "Derivation(doubled, cached=10)"

    def test_decorator_with_name(self):
        engine = Engine()
        o = engine.declare("o", 7)

        @engine.declare_derivation(name="double_o")
        def doubled():
            return o.get() * 2

        assert doubled.name == "double_o"
        assert engine.get(doubled) == 14

    def test_get_from_other_engine(self):
        one = Engine()
        two = Engine()
        d = one.declare_derivation(lambda: 1)
        with pytest.raises(ValueError):
            two.get(d)


class TestDerivationFailure:
    def test_failure_propagates_to_get(self):
        engine = Engine()
        o = engine.declare("o", 0)
        d = engine.declare_derivation(lambda: 10 // o.get(), name="ratio")
        with pytest.raises(EvaluationFailure) as info:
            d.get()
        assert info.value.node == "ratio"
        assert isinstance(info.value.__cause__, ZeroDivisionError)

    def test_failure_keeps_previous_value(self):
        engine = Engine()
        o = engine.declare("o", 2)
        d = engine.declare_derivation(lambda: 10 // o.get())
        assert d.get() == 5
        o.set(0)
        with pytest.raises(EvaluationFailure):
            d.get()
        assert d.revision == 1
        assert d.dependencies == frozenset({o._id})
        o.set(5)
        assert d.get() == 2

    def test_failure_wrapped_once(self):
        engine = Engine()
        inner = engine.declare_derivation(lambda: 1 / 0, name="inner")
        outer = engine.declare_derivation(lambda: inner.get() + 1, name="outer")
        with pytest.raises(EvaluationFailure) as info:
            outer.get()
        assert info.value.node == "inner"

    def test_first_failure_recovers_when_input_fixed(self):
        engine = Engine()
        o = engine.declare("o", 0)
        d = engine.declare_derivation(lambda: 10 // o.get())
        log = []

        def render():
            try:
                log.append(d.get())
            except EvaluationFailure:
                log.append("error")

        engine.declare_observer(render)
        assert log == ["error"]
        o.set(2)
        assert log == ["error", 5]

    def test_self_dependency(self):
        engine = Engine()
        box = {}
        box["d"] = engine.declare_derivation(lambda: box["d"].get() + 1, name="loop")
        with pytest.raises(CyclicDependency) as info:
            box["d"].get()
        assert info.value.node == "loop"

    def test_transitive_self_dependency(self):
        engine = Engine()
        box = {}
        box["a"] = engine.declare_derivation(lambda: box["b"].get())
        box["b"] = engine.declare_derivation(lambda: box["a"].get())
        with pytest.raises(CyclicDependency):
            box["a"].get()
        assert not engine._anchor.evaluating

    def test_dropped_input_is_not_evaluated(self):
        """A derivation no longer read is not refreshed ahead of the function."""
        engine = Engine()
        x = engine.declare("x", 2)
        mode = engine.declare("mode", "ratio")
        ratio_fn, ratio_calls = _counting(lambda: 10 // x.get())
        ratio = engine.declare_derivation(ratio_fn, name="ratio")
        shown = engine.declare_derivation(
            lambda: ratio.get() if mode.get() == "ratio" else 42
        )
        assert shown.get() == 5

        with engine.batch():
            x.set(0)
            mode.set("const")

        assert shown.get() == 42
        assert ratio_calls[0] == 1
        assert ratio._id not in shown.dependencies
