from datetime import timedelta

from helpers import NOW, ago, snapshot
from turnwatch.models import ProjectState


def test_waiting_seconds_without_user_event():
    session = snapshot(latest_event=ago(60), assistant=ago(60))

    assert session.state is ProjectState.ACTIVE
    assert session.waiting_seconds(NOW) is None
    assert session.to_dict(NOW)["waiting_seconds"] is None


def test_waiting_seconds_after_assistant_reply():
    replied = snapshot(latest_event=ago(60), user=ago(120), assistant=ago(60))
    same_instant = snapshot(latest_event=ago(60), user=ago(60), assistant=ago(60))

    assert replied.waiting_seconds(NOW) is None
    assert same_instant.waiting_seconds(NOW) is None


def test_waiting_seconds_counts_from_latest_user_event():
    session = snapshot(latest_event=ago(300), user=ago(300), assistant=ago(900))

    assert session.state is ProjectState.WAITING
    assert session.waiting_seconds(NOW) == 300
    assert session.waiting_seconds(NOW + timedelta(seconds=60)) == 360

    data = session.to_dict(NOW)
    assert data["state"] == "waiting"
    assert data["waiting_seconds"] == 300
