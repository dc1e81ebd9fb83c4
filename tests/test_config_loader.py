import json

import pytest

from config_loader import (
    load_config, apply_defaults, load_dashboard_config, vars_config_for,
    seed_chillers_from_dashboard
)
from devices.models import DEFAULT_VARS


def test_load_config_applies_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("database:\n  backend: file\n  path: /tmp/db.json\ntimers:\n  replace_existing: true\n")

    config = load_config(str(path))

    assert config['database']['path'] == "/tmp/db.json"
    assert config['timers'] == {'sweep_interval_seconds': 15, 'replace_existing': True}
    assert config['devices']['cache_ttl_seconds'] == 5
    assert config['auth']['session_days'] == 7
    assert config['api']['port'] == 8000


def test_missing_config_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "absent.yaml"))


def test_postgres_backend_requires_connection_fields(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("database:\n  backend: postgres\n  host: localhost\n")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_missing_database_section_is_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("api:\n  port: 9000\n")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_apply_defaults_handles_empty_sections():
    config = apply_defaults({'database': None})
    assert config['database']['backend'] == 'file'
    assert config['logging']['timezone'] == 'UTC'


DASHBOARD = {
    "units": [
        {"name": "A", "vars": {"PowerCmd": "UnitOn"}},
        {"name": "B", "ips": ["10.0.0.2"], "vars": {"PowerCmd": "PlantOn", "ModeFb": 5}},
    ],
    "chillers": [
        {"id": "c1", "name": "Chiller 1", "ip": "10.0.0.1", "active": True},
        {"name": "Chiller 2", "ip": "10.0.0.2"},
        "junk",
    ],
}


def test_vars_config_selects_unit_by_ip():
    assert vars_config_for(DASHBOARD, "10.0.0.2").PowerCmd == "PlantOn"
    assert vars_config_for(DASHBOARD, "10.0.0.9").PowerCmd == "UnitOn"
    # non-string entries fall back to defaults
    assert vars_config_for(DASHBOARD, "10.0.0.2").ModeFb == DEFAULT_VARS['ModeFb']
    assert vars_config_for({}, "10.0.0.1").PowerCmd == DEFAULT_VARS['PowerCmd']


def test_seed_chillers_are_normalized():
    assert seed_chillers_from_dashboard(DASHBOARD) == [
        {'id': 'c1', 'name': 'Chiller 1', 'ip': '10.0.0.1', 'active': True},
        {'id': None, 'name': 'Chiller 2', 'ip': '10.0.0.2', 'active': False},
    ]


def test_dashboard_file_missing_or_invalid(tmp_path):
    assert load_dashboard_config(str(tmp_path / "none.json")) == {}
    bad = tmp_path / "bad.json"
    bad.write_text("[1, 2]")
    assert load_dashboard_config(str(bad)) == {}
    good = tmp_path / "good.json"
    good.write_text(json.dumps(DASHBOARD))
    assert load_dashboard_config(str(good))["units"][0]["name"] == "A"
