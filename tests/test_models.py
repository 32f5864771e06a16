from datetime import datetime, timedelta

import pytest

from models.pomodoro import Checkpoint, PomodoroPhase, PomodoroSession
from models.response import Response, ResponseKind


def test_response_create_normalizes_activity():
    response = Response.create(ResponseKind.INTRADAY, 5, "  coding  ", timestamp=datetime(2024, 3, 5, 10, 0))

    assert response.activity == "coding"
    assert response.excitement == 5
    assert response.kind == ResponseKind.INTRADAY
    assert response.id


def test_response_create_blank_activity_becomes_none():
    assert Response.create(ResponseKind.INTRADAY, 3, "   ").activity is None


@pytest.mark.parametrize("excitement", [0, 8, -1, True, 4.5, "5"])
def test_response_create_rejects_bad_excitement(excitement):
    with pytest.raises(ValueError):
        Response.create(ResponseKind.START_OF_DAY, excitement)


def test_response_create_activity_length_limit():
    assert Response.create(ResponseKind.INTRADAY, 4, "x" * 30).activity == "x" * 30
    with pytest.raises(ValueError):
        Response.create(ResponseKind.INTRADAY, 4, "x" * 31)


def test_response_is_immutable():
    response = Response.create(ResponseKind.INTRADAY, 4)
    with pytest.raises(AttributeError):
        response.excitement = 7


def test_response_dict_uses_type_key():
    response = Response.create(ResponseKind.START_OF_DAY, 6, timestamp=datetime(2024, 3, 5, 8, 0))
    data = response.to_dict()

    assert data["type"] == "start_of_day"
    assert data["timestamp"] == "2024-03-05T08:00:00"
    assert Response.from_dict(data) == response


def test_session_finalize_only_once():
    """Тест: терминальные поля сессии выставляются один раз."""
    start = datetime(2024, 3, 5, 10, 0)
    session = PomodoroSession(task_description="write", start_time=start, pomodoro_number=1)

    assert session.finalize(start + timedelta(minutes=25), completed=True) is True
    assert session.finalize(start + timedelta(minutes=30), completed=False) is False
    assert session.end_time == start + timedelta(minutes=25)
    assert session.completed is True


def test_session_from_dict_open_session():
    session = PomodoroSession.from_dict(
        {"id": "abc", "start_time": "2024-03-05T10:00:00", "task_description": "write", "pomodoro_number": 3}
    )

    assert session.end_time is None
    assert session.completed is False
    assert session.pomodoro_number == 3


def test_checkpoint_remaining_and_deadline():
    start = datetime(2024, 3, 5, 10, 0)
    checkpoint = Checkpoint(
        phase=PomodoroPhase.WORK,
        phase_start=start,
        phase_duration_seconds=1500,
        current_task="write",
        cycle_count=1,
        session_id="abc",
    )

    assert checkpoint.deadline == start + timedelta(seconds=1500)
    assert checkpoint.remaining_seconds(start + timedelta(seconds=600)) == 900
    assert checkpoint.remaining_seconds(start + timedelta(seconds=2000)) == -500
    assert Checkpoint.from_dict(checkpoint.to_dict()) == checkpoint


def test_checkpoint_from_dict_rejects_garbage():
    with pytest.raises(KeyError):
        Checkpoint.from_dict({"phase": "work"})
    with pytest.raises(ValueError):
        Checkpoint.from_dict({"phase": "nap", "phase_start": "2024-03-05T10:00:00", "phase_duration_seconds": 60})


def test_phase_is_break():
    assert PomodoroPhase.SHORT_BREAK.is_break
    assert PomodoroPhase.LONG_BREAK.is_break
    assert not PomodoroPhase.WORK.is_break
    assert not PomodoroPhase.IDLE.is_break
