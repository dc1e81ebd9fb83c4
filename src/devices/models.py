"""
Device data structures and variable mapping configuration
"""

import asyncio
from typing import Dict, Optional, Any
from dataclasses import dataclass, field, fields

# Vendor variable names used when the dashboard config does not provide one
DEFAULT_VARS = {
    'PowerCmd': 'SystemStatus.Ctrl',
    'ModeCmd': 'SetTyp',
    'TempCurrent': 'ReturnTemp.ReadVal',
    'TempReturn': 'ReturnTemp.ReadVal',
    'TempSetpoint': 'CurrRoomTempSetP_Val',
    'PowerFb': 'SystemStatus.Ctrl',
    'FanSpeedFb': 'MB_Devices.FanElectricalInfo_ZA_1.Modulation',
    'AlarmActive': 'Al03_PWRP_1.Active',
    'ModeFb': 'SetTyp',
}

COMFORT_SETPOINT_VAR = 'UnitSetP.RoomTempSetP.Comfort'


@dataclass
class VarsConfig:
    """Mapping of logical chiller signals to vendor variable-table keys"""
    PowerCmd: str = DEFAULT_VARS['PowerCmd']
    ModeCmd: str = DEFAULT_VARS['ModeCmd']
    TempCurrent: str = DEFAULT_VARS['TempCurrent']
    TempReturn: str = DEFAULT_VARS['TempReturn']
    TempSetpoint: str = DEFAULT_VARS['TempSetpoint']
    PowerFb: str = DEFAULT_VARS['PowerFb']
    FanSpeedFb: str = DEFAULT_VARS['FanSpeedFb']
    AlarmActive: str = DEFAULT_VARS['AlarmActive']
    ModeFb: str = DEFAULT_VARS['ModeFb']

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'VarsConfig':
        """Build from a raw `vars` mapping, falling back per field to defaults"""
        data = data if isinstance(data, dict) else {}
        values = {}
        for f in fields(cls):
            raw = data.get(f.name)
            values[f.name] = raw if isinstance(raw, str) else DEFAULT_VARS[f.name]
        return cls(**values)


@dataclass
class VarRow:
    """Single name/value pair from a device variable table"""
    name: str
    value: str


@dataclass
class DeviceCacheEntry:
    """Last table fetch for one device IP"""
    value: Optional[str]
    fetched_at: float
    pending: Optional[asyncio.Future] = None


@dataclass
class StatusResult:
    """Logical status derived from one batched device read"""
    ok: bool
    power: bool = False
    temp_current: Optional[float] = None
    temp_return: Optional[float] = None
    setpoint: Optional[float] = None
    fan_speed: float = 0.0
    alarm_active: bool = False
    mode: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        """Serialize using the dashboard's camelCase field names"""
        return {
            "ok": self.ok,
            "power": self.power,
            "tempCurrent": self.temp_current,
            "tempReturn": self.temp_return,
            "setpoint": self.setpoint,
            "fanSpeed": self.fan_speed,
            "alarmActive": self.alarm_active,
            "mode": self.mode,
        }


@dataclass
class SetpointResult:
    """Outcome of the write-then-verify setpoint protocol"""
    ok: bool
    actual: Optional[float] = None
    attempts: list = field(default_factory=list)
