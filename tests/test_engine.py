"""End-to-end tests for Engine."""

import pytest

from rxgraph import Engine, State

# A slice of the Portal Project surveys table, read once at session start.
SURVEYS = [
    {"record_id": 1, "year": 1977, "species_id": "NL", "weight": None},
    {"record_id": 2, "year": 1977, "species_id": "DO", "weight": 52},
    {"record_id": 3, "year": 1978, "species_id": "DO", "weight": 46},
    {"record_id": 4, "year": 1978, "species_id": "PP", "weight": 17},
    {"record_id": 5, "year": 1979, "species_id": "PP", "weight": 19},
    {"record_id": 6, "year": 1979, "species_id": "PP", "weight": 22},
    {"record_id": 7, "year": 1980, "species_id": "DM", "weight": 40},
]


class TestSpeciesDashboard:
    def _build(self):
        engine = Engine()
        species = engine.declare("species", "DO")
        calls = {"subset": 0, "render_count": 0}
        output = []

        @engine.declare_derivation
        def subset():
            calls["subset"] += 1
            return [row for row in SURVEYS if row["species_id"] == species.get()]

        @engine.declare_observer
        def render_count():
            calls["render_count"] += 1
            output.append(len(subset.get()))

        return engine, species, subset, calls, output

    def test_initial_flush(self):
        _, _, _, calls, output = self._build()
        assert output == [2]
        assert calls == {"subset": 1, "render_count": 1}

    def test_switch_species(self):
        engine, species, _, calls, output = self._build()
        species.set("PP")
        assert output == [2, 3]
        assert calls == {"subset": 2, "render_count": 2}
        assert engine.state is State.IDLE

    def test_second_output_shares_subset(self):
        engine, species, subset, calls, output = self._build()
        weights = []

        @engine.declare_observer
        def render_mean_weight():
            rows = [r["weight"] for r in subset.get() if r["weight"] is not None]
            weights.append(sum(rows) / len(rows))

        assert weights == [49]
        assert calls["subset"] == 1  # cached value reused
        engine.write("species", "PP")
        assert output == [2, 3]
        assert weights == [49, pytest.approx(58 / 3)]
        assert calls["subset"] == 2

    def test_batched_event_is_one_flush(self):
        engine, species, _, calls, output = self._build()
        with engine.batch():
            species.set("PP")
            species.set("DM")
        assert output == [2, 1]
        assert calls == {"subset": 2, "render_count": 2}


class TestSession:
    def test_close_disposes_observers(self):
        engine = Engine()
        o = engine.declare("o", 0)
        log = []
        obs = engine.declare_observer(lambda: log.append(o.get()))
        engine.close()
        assert obs.disposed
        assert engine.closed
        o.set(1)
        assert log == [0]

    def test_closed_engine_rejects_declarations(self):
        engine = Engine()
        engine.close()
        with pytest.raises(RuntimeError):
            engine.declare("x", 1)
        with pytest.raises(RuntimeError):
            engine.declare_derivation(lambda: 1)
        with pytest.raises(RuntimeError):
            engine.declare_observer(lambda: None)

    def test_context_manager(self):
        with Engine() as engine:
            o = engine.declare("o", 0)
            obs = engine.declare_observer(o.get)
        assert obs.disposed

    def test_engines_are_independent(self):
        one = Engine()
        two = Engine()
        a = one.declare("a", 1)
        log = []
        two.declare_observer(lambda: log.append(a.get()))
        a.set(2)
        assert log == [1]  # reads across engines are not tracked

    def test_repr(self):
        engine = Engine()
        engine.declare("a", 1)
        assert repr(engine) == "Engine(signals=1, observers=0, state=idle)"
