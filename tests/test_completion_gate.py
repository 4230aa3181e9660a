from engines.completion import should_compute
from engines.merger import merge


def test_gate_waits_for_every_source():
    record = merge(None, "academic", {"subject_id": "S1", "grades": {"Mathematics": 70}})
    assert should_compute(record) is False

    record = merge(record, "attendance", {"subject_id": "S1", "attendance_rate": 88})
    assert should_compute(record) is False
    assert record.completion.missing() == ["financial"]

    record = merge(record, "financial", {"subject_id": "S1", "fee_status": "paid"})
    assert should_compute(record) is True


def test_force_opens_the_gate():
    record = merge(None, "attendance", {"subject_id": "S1", "attendance_rate": 88})
    assert should_compute(record, force=True) is True
    assert should_compute(record, force=False) is False
