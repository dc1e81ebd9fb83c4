from datetime import datetime, timedelta, timezone

from database.models import PowerLogEntry
from services.power_sessions import build_power_sessions

T0 = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


def entry(id, action, minutes, unit="Chiller 1"):
    return PowerLogEntry(id=id, unit_name=unit, action=action, at=T0 + timedelta(minutes=minutes))


def test_on_off_on_gives_three_sessions():
    entries = [entry("a", "on", 0), entry("b", "off", 30), entry("c", "on", 90)]
    now = T0 + timedelta(minutes=120)

    sessions = build_power_sessions(entries, now=now)

    assert [(s.state, s.start_at, s.end_at) for s in sessions] == [
        ("on", T0 + timedelta(minutes=90), None),
        ("off", T0 + timedelta(minutes=30), T0 + timedelta(minutes=90)),
        ("on", T0, T0 + timedelta(minutes=30)),
    ]
    assert sessions[0].duration_seconds == 30 * 60
    assert sessions[2].to_api()["durationMs"] == 30 * 60 * 1000


def test_repeated_actions_are_collapsed():
    entries = [entry("a", "on", 0), entry("b", "on", 10), entry("c", "off", 20)]
    sessions = build_power_sessions(entries, now=T0 + timedelta(minutes=20))

    # on->on pairs nothing, on->off gives 10 minutes; the open off span has zero length
    assert [(s.state, s.duration_seconds) for s in sessions] == [("on", 600)]


def test_units_are_independent_and_input_order_does_not_matter():
    entries = [
        entry("b", "off", 60, unit="Chiller 2"),
        entry("a", "on", 0, unit="Chiller 1"),
        entry("c", "on", 0, unit="Chiller 2"),
    ]
    sessions = build_power_sessions(entries, now=T0 + timedelta(minutes=120))

    by_unit = {}
    for s in sessions:
        by_unit.setdefault(s.unit_name, []).append(s.state)
    assert by_unit == {"Chiller 1": ["on"], "Chiller 2": ["off", "on"]}


def test_empty_log():
    assert build_power_sessions([]) == []
