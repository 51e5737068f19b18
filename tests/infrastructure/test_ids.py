from ulid import ULID

from cadence.infrastructure.ids import generate_record_id


def test_record_ids_are_prefixed_ulids():
    record_id = generate_record_id()
    assert record_id.startswith("rev_")
    ULID.from_str(record_id.removeprefix("rev_"))


def test_record_ids_are_unique():
    assert len({generate_record_id() for _ in range(100)}) == 100
