import pytest

from devices.controller import to_bool, to_num, clamp
from devices.models import VarsConfig, COMFORT_SETPOINT_VAR

SETPOINT = "CurrRoomTempSetP_Val"


def base_variables(**overrides):
    variables = {
        "SystemStatus.Ctrl": "0",
        "SetTyp": "3",
        "ReturnTemp.ReadVal": "12,34",
        SETPOINT: "18.0",
        COMFORT_SETPOINT_VAR: "18.0",
        "MB_Devices.FanElectricalInfo_ZA_1.Modulation": "35.5",
        "Al03_PWRP_1.Active": "0",
    }
    variables.update(overrides)
    return variables


def test_value_helpers():
    assert to_bool("1") and to_bool("on") and to_bool("Running")
    assert not to_bool("0") and not to_bool(None) and not to_bool("off")
    assert to_num("21,5 C") == 21.5
    assert to_num("-3.25") == -3.25
    assert to_num("n/a") != to_num("n/a")
    assert clamp(float("nan"), 0, 50) == 0


async def test_read_status_derives_logical_state(fake_chiller, controller):
    device = await fake_chiller(variables=base_variables())

    status = await controller.read_status(device.ip, VarsConfig())

    assert status.ok
    # Power feedback is off but the fan is modulating
    assert status.power is True
    assert status.fan_speed == 35.5
    assert status.temp_current == 12.3
    assert status.temp_return == 12.3
    assert status.setpoint == 18.0
    assert status.mode == "comfort"
    assert status.alarm_active is False
    assert status.to_response()["tempCurrent"] == 12.3


async def test_read_status_falls_back_to_comfort_setpoint_and_raw_mode(fake_chiller, controller):
    variables = base_variables(SetTyp="heating")
    del variables[SETPOINT]
    variables["MB_Devices.FanElectricalInfo_ZA_1.Modulation"] = "0"
    device = await fake_chiller(variables=variables)

    status = await controller.read_status(device.ip, VarsConfig())

    assert status.setpoint == 18.0
    assert status.mode == "heating"
    assert status.power is False


async def test_read_status_unreachable(controller):
    status = await controller.read_status("127.0.0.1:1", VarsConfig())
    assert status.ok is False
    assert await controller.is_reachable("127.0.0.1:1") is False


async def test_read_falls_back_to_html_page(fake_chiller, controller):
    device = await fake_chiller(variables={"SetTyp": "2"}, serve_csv=False)

    assert await controller.read_var(device.ip, "SetTyp") == "2"
    assert ("GET", "/vars.htm") in device.requests


async def test_device_requests_bypass_caches(fake_chiller, controller):
    device = await fake_chiller(variables=base_variables())

    await controller.read_var(device.ip, "SetTyp")
    await controller.set_mode(device.ip, VarsConfig(), "comfort")

    assert len(device.headers) >= 2
    for headers in device.headers:
        assert headers.get("Cache-Control") == "no-store"
        assert "text/csv" in headers.get("Accept", "")


async def test_batch_read_uses_one_fetch(fake_chiller, controller):
    device = await fake_chiller(variables=base_variables())

    values = await controller.batch_read(device.ip, ["SetTyp", "SystemStatus.Ctrl", "Missing"])

    assert values == {"SetTyp": "3", "SystemStatus.Ctrl": "0", "Missing": None}
    assert device.requests.count(("GET", "/getvar.csv")) == 1


async def test_power_on_writes_comfort_mode_then_power(fake_chiller, controller):
    device = await fake_chiller(variables=base_variables(SetTyp="0"))

    assert await controller.set_power(device.ip, VarsConfig(), True)
    assert device.writes == [("SetTyp", "3"), ("SystemStatus.Ctrl", "1")]


async def test_power_off_writes_power_then_mode(fake_chiller, controller):
    device = await fake_chiller(variables=base_variables())

    assert await controller.set_power(device.ip, VarsConfig(), False)
    assert device.writes == [("SystemStatus.Ctrl", "0"), ("SetTyp", "0")]


async def test_set_mode_codes(fake_chiller, controller):
    device = await fake_chiller(variables=base_variables())

    await controller.set_mode(device.ip, VarsConfig(), "economy")
    await controller.set_mode(device.ip, VarsConfig(), "PRE")
    await controller.set_mode(device.ip, VarsConfig(), "bogus")
    assert device.writes == [("SetTyp", "2"), ("SetTyp", "1"), ("SetTyp", "0")]


async def test_write_invalidates_cached_table(fake_chiller, controller):
    device = await fake_chiller(variables=base_variables())

    assert await controller.read_var(device.ip, "SystemStatus.Ctrl") == "0"
    await controller.set_power(device.ip, VarsConfig(), True)
    assert await controller.read_var(device.ip, "SystemStatus.Ctrl") == "1"


@pytest.mark.parametrize("desired,written", [(75, "50.0"), (-5, "0.0"), (22.04, "22.0")])
async def test_setpoint_is_clamped(fake_chiller, controller, desired, written):
    device = await fake_chiller(variables=base_variables())

    result = await controller.apply_setpoint(device.ip, VarsConfig(), desired)

    assert result.ok
    assert result.attempts == ["dot"]
    # Comfort alias goes first when the setpoint variable is the room setpoint
    assert device.writes == [(COMFORT_SETPOINT_VAR, written), (SETPOINT, written)]


async def test_setpoint_within_tolerance_is_accepted(fake_chiller, controller):
    device = await fake_chiller(variables=base_variables())
    device.write_hook = lambda name, value: "21.6" if name == SETPOINT else value

    result = await controller.apply_setpoint(device.ip, VarsConfig(), 21.5)

    assert result.ok
    assert result.actual == 21.6
    assert result.attempts == ["dot"]


async def test_setpoint_outside_tolerance_retries_with_comma(fake_chiller, controller):
    device = await fake_chiller(variables=base_variables())

    def hook(name, value):
        if name == SETPOINT and "." in value:
            return "21.7"
        return value

    device.write_hook = hook

    result = await controller.apply_setpoint(device.ip, VarsConfig(), 21.5)

    assert result.ok
    assert result.actual == 21.5
    assert result.attempts == ["dot", "comma"]
    assert (SETPOINT, "21,5") in device.writes


async def test_setpoint_unlock_escalation(fake_chiller, controller):
    device = await fake_chiller(variables=base_variables(PwdUser="0", PwdService="0"))
    setpoint_vars = (SETPOINT, COMFORT_SETPOINT_VAR)

    def hook(name, value):
        if name in setpoint_vars and device.variables.get("PwdService") != "1234":
            return None
        return value

    device.write_hook = hook

    result = await controller.apply_setpoint(device.ip, VarsConfig(), 22)

    assert result.ok
    assert result.actual == 22.0
    assert result.attempts == [
        "dot", "comma",
        "unlock:PwdUser", "dot", "comma",
        "unlock:PwdUser", "dot", "comma",
        "unlock:PwdService", "dot", "comma",
        "unlock:PwdService", "dot",
    ]
    assert device.writes[-1] == ("PwdService", "0")
    assert device.variables["PwdService"] == "0"
    assert ("PwdUser", "1489") in device.writes


async def test_setpoint_gives_up_after_all_strategies(fake_chiller, controller):
    device = await fake_chiller(variables=base_variables())
    device.write_hook = lambda name, value: None if name in (SETPOINT, COMFORT_SETPOINT_VAR) else value

    result = await controller.apply_setpoint(device.ip, VarsConfig(), 22)

    assert result.ok is False
    assert result.actual == 18.0
    assert result.attempts.count("dot") == 7
    assert not any(name in ("PwdUser", "PwdService", "PwdManuf") and value == "0"
                   for name, value in device.writes)


async def test_setpoint_without_comfort_alias(fake_chiller, controller):
    device = await fake_chiller(variables={"SetP": "10"})

    result = await controller.apply_setpoint(device.ip, VarsConfig(TempSetpoint="SetP"), 12)

    assert result.ok
    assert device.writes == [("SetP", "12.0")]


async def test_write_tries_alternate_endpoints(fake_chiller, controller):
    device = await fake_chiller(variables=base_variables(), write_paths=("/pgd/setvar.csv",))

    assert await controller.write_var(device.ip, "SetTyp", 2)

    assert device.writes == [("SetTyp", "2")]
    assert device.requests[0] == ("GET", "/setvar.csv")
    # five GET shapes and four POST shapes on the first base path
    assert device.requests.count(("GET", "/setvar.csv")) == 5
    assert device.requests.count(("POST", "/setvar.csv")) == 4
    assert ("GET", "/http/setvar.csv") not in device.requests


async def test_write_fails_when_no_endpoint_accepts(fake_chiller, controller):
    device = await fake_chiller(variables=base_variables(), write_paths=())

    assert await controller.write_var(device.ip, "SetTyp", 2) is False
    assert len(device.requests) == 36
    assert device.writes == []
