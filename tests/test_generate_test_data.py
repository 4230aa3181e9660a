import random

import pytest

import generate_test_data
from engines.merger import merge


@pytest.mark.parametrize("profile", sorted(generate_test_data.PROFILES))
def test_generated_rows_merge_into_complete_record(profile):
    subject = generate_test_data.make_subject(7, profile, random.Random(3))

    record = None
    for role in ("financial", "academic", "attendance"):
        record = merge(record, role, subject[role])

    assert record.subject_id == "STU0007"
    assert record.complete is True
    assert set(record.snapshots) == set(generate_test_data.POSITIONS)
    assert all(len(scores) == 3 for scores in record.snapshots.values())


def test_generation_is_reproducible_with_seed():
    first = generate_test_data.make_subject(1, "slipping", random.Random(42))
    second = generate_test_data.make_subject(1, "slipping", random.Random(42))
    assert first == second
