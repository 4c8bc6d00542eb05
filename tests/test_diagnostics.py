"""Tests for sampler fallback counters."""

import pickle

from joblib import Parallel, delayed

from src.bpmf.diagnostics import SamplerDiagnostics


def test_counters_start_at_zero():
    diagnostics = SamplerDiagnostics()

    assert diagnostics.snapshot() == {
        "wishart_fallbacks": 0,
        "mean_fallbacks": 0,
        "factor_fallbacks": 0,
        "empty_skipped": 0,
    }


def test_record_and_reset():
    diagnostics = SamplerDiagnostics()

    diagnostics.record_wishart_fallback()
    diagnostics.record_mean_fallback()
    diagnostics.record_factor_fallback(3)
    diagnostics.record_empty_skipped(2)

    assert diagnostics.wishart_fallbacks == 1
    assert diagnostics.mean_fallbacks == 1
    assert diagnostics.factor_fallbacks == 3
    assert diagnostics.empty_skipped == 2

    diagnostics.reset()
    assert sum(diagnostics.snapshot().values()) == 0


def test_concurrent_increments_are_not_lost():
    diagnostics = SamplerDiagnostics()

    Parallel(n_jobs=4, prefer="threads")(
        delayed(diagnostics.record_factor_fallback)() for _ in range(1000)
    )

    assert diagnostics.factor_fallbacks == 1000


def test_survives_pickling():
    diagnostics = SamplerDiagnostics()
    diagnostics.record_empty_skipped(4)

    restored = pickle.loads(pickle.dumps(diagnostics))

    assert restored.empty_skipped == 4
    restored.record_empty_skipped()
    assert restored.empty_skipped == 5


def test_restore_returns_to_snapshot():
    diagnostics = SamplerDiagnostics()
    diagnostics.record_empty_skipped(2)
    before = diagnostics.snapshot()

    diagnostics.record_factor_fallback(5)
    diagnostics.record_wishart_fallback()
    diagnostics.restore(before)

    assert diagnostics.snapshot() == before
