from datetime import datetime

import reservations

BOAT = {"id": "b1", "name": "Möwe", "requires_approval": True, "bootswart": "u9", "blocked": False}
OTHER_BOAT = {"id": "b2", "name": "Kormoran", "requires_approval": False, "bootswart": None,
              "blocked": False}

EXISTING = [
    {"id": "r1", "boat_id": "b1", "user_id": "u1",
     "start_time": datetime(2025, 6, 1, 9), "end_time": datetime(2025, 6, 1, 11)},
    {"id": "r2", "boat_id": "b2", "user_id": "u2",
     "start_time": datetime(2025, 6, 1, 10), "end_time": datetime(2025, 6, 1, 12)},
]


def test_find_overlaps_touching_counts():
    hits = reservations.find_overlaps(datetime(2025, 6, 1, 11), datetime(2025, 6, 1, 13), EXISTING)
    assert [r["id"] for r in hits] == ["r1", "r2"]


def test_find_overlaps_boat_and_exclude_filters():
    start, end = datetime(2025, 6, 1, 10), datetime(2025, 6, 1, 10, 30)
    assert [r["id"] for r in reservations.find_overlaps(start, end, EXISTING, boat_id="b2")] == ["r2"]
    assert reservations.find_overlaps(start, end, EXISTING, boat_id="b1", exclude_id="r1") == []


def test_reserved_boat_ids():
    taken = reservations.reserved_boat_ids(datetime(2025, 6, 1, 8), datetime(2025, 6, 1, 9), EXISTING)
    assert taken == {"b1"}
    assert reservations.reserved_boat_ids(datetime(2025, 6, 2), datetime(2025, 6, 3), EXISTING) == set()


def test_initial_status():
    assert reservations.initial_status(BOAT, "u1") == reservations.PENDING
    assert reservations.initial_status(BOAT, "u9") == reservations.APPROVED
    assert reservations.initial_status(OTHER_BOAT, "u1") == reservations.APPROVED


def test_validate_reservation_order_of_checks():
    start, end = datetime(2025, 6, 1, 9), datetime(2025, 6, 1, 10)
    assert reservations.validate_reservation(None, start, end, []) == reservations.MSG_UNKNOWN_BOAT
    blocked = {**OTHER_BOAT, "blocked": True}
    assert reservations.validate_reservation(blocked, end, start, []) == reservations.MSG_BLOCKED
    assert reservations.validate_reservation(OTHER_BOAT, end, start, []) == reservations.MSG_END_BEFORE
    assert reservations.validate_reservation(BOAT, start, end, EXISTING) == reservations.MSG_CONFLICT


def test_validate_reservation_allows_edit_of_itself_and_zero_length():
    start, end = datetime(2025, 6, 1, 9, 30), datetime(2025, 6, 1, 10, 30)
    assert reservations.validate_reservation(BOAT, start, end, EXISTING, exclude_id="r1") is None
    same = datetime(2025, 6, 2, 9)
    assert reservations.validate_reservation(BOAT, same, same, EXISTING) is None


def test_can_decide_and_can_edit():
    res = EXISTING[0]
    assert reservations.can_decide(BOAT, "u9", False)
    assert reservations.can_decide(BOAT, "u1", True)
    assert not reservations.can_decide(BOAT, "u1", False)
    assert not reservations.can_decide(OTHER_BOAT, None, False)

    # owner on an approval boat needs to be bootswart or admin
    assert not reservations.can_edit(res, BOAT, "u1", False)
    assert reservations.can_edit(res, BOAT, "u1", True)
    assert reservations.can_edit(res, OTHER_BOAT, "u1", False)
    assert not reservations.can_edit(res, OTHER_BOAT, "u2", True)
