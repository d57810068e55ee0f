import sys

from scripts import run_analysis


def test_ctrl_c_stops_the_batch(monkeypatch):
    calls = []

    def interrupted(lead_id, settings=None):
        calls.append(lead_id)
        raise KeyboardInterrupt

    monkeypatch.setattr(run_analysis, "run_full_analysis", interrupted)
    monkeypatch.setattr(sys, "argv", ["run_analysis.py", "lead-1", "lead-2", "lead-3"])
    run_analysis.main()
    assert calls == ["lead-1"]


def test_single_stage_failures_are_counted(monkeypatch):
    from sales_intel.errors import StageBlockedError

    calls = []

    def blocked(lead_id, stage, settings=None):
        calls.append((lead_id, stage))
        raise StageBlockedError("Geo enrichment required. Run Stage 1 first.")

    monkeypatch.setattr(run_analysis, "run_stage", blocked)
    monkeypatch.setattr(sys, "argv", ["run_analysis.py", "lead-1", "lead-2", "--stage", "property"])
    run_analysis.main()
    assert calls == [("lead-1", "property"), ("lead-2", "property")]
