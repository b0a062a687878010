from datetime import datetime

import models
import workhours
from conftest import make_user

START = datetime(2025, 6, 1, 9)
END = datetime(2025, 6, 1, 12)


def _appointment(**kwargs):
    return models.get_work_appointment(
        models.create_work_appointment("Hull cleaning", "", START, END, **kwargs))


def test_join_duplicate_full_and_private(store):
    anna = make_user("Anna Becker")
    ben = make_user("Ben Hoffmann")
    eva = make_user("Eva Richter")

    apt = _appointment(max_participants=1)
    assert models.join_work_appointment(apt, anna) is None

    apt = models.get_work_appointment(apt["id"])
    assert models.join_work_appointment(apt, anna) == "You are already signed up for this appointment."
    assert models.join_work_appointment(apt, ben) == "This appointment is already full."

    # managers are not held to the limit
    assert models.join_work_appointment(apt, eva, auto_confirm=True) is None
    apt = models.get_work_appointment(apt["id"])
    assert [p["user_id"] for p in apt["participants"]] == [anna["id"], eva["id"]]
    assert workhours.participant_for(apt, eva["id"])["status"] == workhours.CONFIRMED

    private = models.get_work_appointment(models.create_private_work_hours(anna, START, END))
    assert models.join_work_appointment(private, ben, auto_confirm=True) == \
        "Private work hours cannot be joined."
    assert len(models.get_work_appointment(private["id"])["participants"]) == 1


def test_leave_removes_only_that_participant(store):
    anna = make_user("Anna Becker")
    ben = make_user("Ben Hoffmann")
    apt = _appointment()
    models.join_work_appointment(apt, anna)
    models.join_work_appointment(apt, ben)

    apt = models.get_work_appointment(apt["id"])
    assert models.leave_work_appointment(apt, anna["id"])
    assert not models.leave_work_appointment(apt, "nobody")
    apt = models.get_work_appointment(apt["id"])
    assert [p["user_id"] for p in apt["participants"]] == [ben["id"]]
