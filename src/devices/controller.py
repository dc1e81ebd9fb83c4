"""
Chiller control adapter
Status reads, power/mode commands and verified setpoint writes on top of the
variable-table cache and the per-device command queue
"""

import asyncio
import math
import re
import logging
from typing import Dict, Iterable, List, Optional

from .models import VarsConfig, StatusResult, SetpointResult, COMFORT_SETPOINT_VAR
from .var_table import parse_var_table, index_rows
from .cache import DeviceCache
from .command_queue import DeviceCommandQueue
from .client import DeviceHttpClient

logger = logging.getLogger(__name__)

TRUTHY_STRINGS = {'1', 'on', 'true', 'running', 'active', 'enabled'}

MODE_NAMES = {0: 'off', 1: 'precomfort', 2: 'economy', 3: 'comfort'}
MODE_CODES = {'precomfort': 1, 'pre': 1, 'economy': 2, 'eco': 2, 'comfort': 3}

# Vendor naming for "current temperature" differs between units
TEMP_CURRENT_FALLBACKS = [
    'CurrRoomTemp_Val',
    'RoomTempAct_Val',
    'RoomTemp.ReadVal',
    'SupplyTemp.ReadVal',
    'ReturnTemp.ReadVal',
]

SETPOINT_MIN = 0.0
SETPOINT_MAX = 50.0
SETPOINT_TOLERANCE = 0.15

UNLOCK_VARS = ['PwdUser', 'PwdService', 'PwdManuf']
UNLOCK_CODES = ['1489', '1234']

_NUMBER_RE = re.compile(r'-?\d+(?:\.\d+)?')
_COMFORT_SETPOINT_RE = re.compile(r'CurrRoomTempSetP', re.IGNORECASE)


def to_bool(value) -> bool:
    """Numeric values are true when > 0, strings when they read like 'on'"""
    if value is None:
        return False
    text = str(value)
    try:
        return float(text.strip()) > 0
    except ValueError:
        return text.lower() in TRUTHY_STRINGS


def to_num(value) -> float:
    """First signed decimal in the value (comma decimals accepted), NaN if none"""
    text = ('' if value is None else str(value)).replace(',', '.', 1)
    match = _NUMBER_RE.search(text)
    return float(match.group(0)) if match else math.nan


def clamp(value: float, low: float, high: float) -> float:
    if value is None or math.isnan(value):
        return low
    return max(low, min(high, value))


def _has_text(value: Optional[str]) -> bool:
    return value is not None and str(value).strip() != ''


def _round1(value: float) -> Optional[float]:
    return None if math.isnan(value) else round(value, 1)


def _lookup(text: Optional[str], names: List[str]) -> Dict[str, Optional[str]]:
    result: Dict[str, Optional[str]] = {name: None for name in names if name}
    if not text:
        return result
    table = index_rows(parse_var_table(text))
    for name in result:
        key = name.strip()
        if key in table:
            result[name] = table[key]
    return result


class ChillerController:
    """Logical operations against a physical chiller controller"""

    def __init__(self, client: Optional[DeviceHttpClient] = None,
                 cache: Optional[DeviceCache] = None,
                 queue: Optional[DeviceCommandQueue] = None,
                 settle_seconds: float = 0.7,
                 unlock_settle_seconds: float = 0.6):
        self.client = client or DeviceHttpClient()
        self.queue = queue or DeviceCommandQueue()
        self.cache = cache or DeviceCache(self.client, self.queue)
        self.settle_seconds = settle_seconds
        self.unlock_settle_seconds = unlock_settle_seconds

    # ================== READS ==================

    async def is_reachable(self, ip: str) -> bool:
        """Cheap liveness probe through the cache"""
        try:
            return await self.cache.fetch(ip) is not None
        except Exception as e:
            logger.debug(f"Reachability check for {ip} failed: {e}")
            return False

    async def batch_read(self, ip: str, names: Iterable[str]) -> Dict[str, Optional[str]]:
        """Look up several variables from a single table fetch; missing ones map to None"""
        wanted = list(dict.fromkeys(n for n in names if n))
        if not wanted:
            return {}

        text = await self.cache.fetch(ip)
        return _lookup(text, wanted)

    async def read_var(self, ip: str, name: str) -> Optional[str]:
        values = await self.batch_read(ip, [name])
        return values.get(name)

    async def read_status(self, ip: str, vars_config: VarsConfig) -> StatusResult:
        """Read power, temperatures, setpoint, alarm and mode in one batched fetch"""
        try:
            return await self._read_status(ip, vars_config)
        except Exception as e:
            logger.error(f"Status read for {ip} failed: {e}")
            return StatusResult(ok=False)

    async def _read_status(self, ip: str, cfg: VarsConfig) -> StatusResult:
        temp_candidates = [cfg.TempCurrent] if cfg.TempCurrent else []
        temp_candidates += TEMP_CURRENT_FALLBACKS

        keys = [cfg.PowerFb, cfg.FanSpeedFb, cfg.TempReturn, cfg.ModeFb,
                cfg.AlarmActive, cfg.TempSetpoint, COMFORT_SETPOINT_VAR]
        keys += temp_candidates

        text = await self.cache.fetch(ip)
        if text is None:
            return StatusResult(ok=False)
        values = _lookup(text, keys)

        power_fb = to_bool(values.get(cfg.PowerFb)) if cfg.PowerFb else False
        fan_speed = to_num(values.get(cfg.FanSpeedFb)) if cfg.FanSpeedFb else math.nan
        if math.isnan(fan_speed):
            fan_speed = 0.0

        temp_current = None
        for name in temp_candidates:
            raw = values.get(name)
            if _has_text(raw):
                temp_current = _round1(to_num(raw))
                break

        temp_return = _round1(to_num(values.get(cfg.TempReturn))) if cfg.TempReturn else None

        mode = None
        raw_mode = values.get(cfg.ModeFb) if cfg.ModeFb else None
        if raw_mode is not None:
            code = to_num(raw_mode)
            if not math.isnan(code) and code in MODE_NAMES:
                mode = MODE_NAMES[int(code)]
            else:
                mode = str(raw_mode)

        alarm_active = to_bool(values.get(cfg.AlarmActive)) if cfg.AlarmActive else False

        setpoint = to_num(values.get(cfg.TempSetpoint)) if cfg.TempSetpoint else math.nan
        if math.isnan(setpoint):
            setpoint = to_num(values.get(COMFORT_SETPOINT_VAR))

        # A running fan counts as powered on
        return StatusResult(
            ok=True,
            power=bool(power_fb or fan_speed > 0),
            temp_current=temp_current,
            temp_return=temp_return,
            setpoint=_round1(setpoint),
            fan_speed=fan_speed,
            alarm_active=alarm_active,
            mode=mode,
        )

    # ================== WRITES ==================

    async def write_var(self, ip: str, name: str, value) -> bool:
        """Queued single-variable write; invalidates the cached table on success"""
        try:
            ok = await self.queue.run(ip, lambda: self.client.write_var(ip, name, value))
        except Exception as e:
            logger.error(f"Write {name} on {ip} raised: {e}")
            return False
        if ok:
            self.cache.invalidate(ip)
        return ok

    async def set_power(self, ip: str, vars_config: VarsConfig, target: bool) -> bool:
        """Switch the unit on (comfort mode, then power) or off (power, then mode off)"""
        power_var = vars_config.PowerCmd or 'SystemStatus.Ctrl'
        mode_var = vars_config.ModeCmd

        if target:
            if mode_var and not await self.write_var(ip, mode_var, 3):
                logger.warning(f"[POWER] Comfort mode write failed on {ip}, continuing with power on")
            ok = await self.write_var(ip, power_var, 1)
        else:
            ok = await self.write_var(ip, power_var, 0)
            if mode_var and not await self.write_var(ip, mode_var, 0):
                logger.warning(f"[POWER] Mode off write failed on {ip}")

        logger.info(f"[POWER] {ip} -> {'on' if target else 'off'}: {'ok' if ok else 'failed'}")
        return ok

    async def set_mode(self, ip: str, vars_config: VarsConfig, mode: str) -> bool:
        code = MODE_CODES.get((mode or '').lower(), 0)
        ok = await self.write_var(ip, vars_config.ModeCmd or 'SetTyp', code)
        logger.info(f"[MODE] {ip} -> {mode} ({code}): {'ok' if ok else 'failed'}")
        return ok

    # ================== SETPOINT PROTOCOL ==================

    async def apply_setpoint(self, ip: str, vars_config: VarsConfig, desired: float) -> SetpointResult:
        """
        Write a temperature setpoint and verify it by reading it back.

        Order of attempts: dot decimal, comma decimal, then each unlock
        variable/code pair followed by both formats again. The unlock
        variable is reset to "0" after a successful unlocked write.
        """
        target = clamp(desired, SETPOINT_MIN, SETPOINT_MAX)
        primary_var = vars_config.TempSetpoint or 'CurrRoomTempSetP_Val'
        target_vars = [primary_var]
        if _COMFORT_SETPOINT_RE.search(primary_var):
            target_vars.insert(0, COMFORT_SETPOINT_VAR)

        result = SetpointResult(ok=False)
        try:
            if await self._write_with_format_fallback(ip, primary_var, target_vars, target, result):
                return result

            for unlock_var in UNLOCK_VARS:
                for code in UNLOCK_CODES:
                    result.attempts.append(f"unlock:{unlock_var}")
                    await self.write_var(ip, unlock_var, code)
                    await asyncio.sleep(self.unlock_settle_seconds)
                    if await self._write_with_format_fallback(ip, primary_var, target_vars, target, result):
                        await self.write_var(ip, unlock_var, '0')
                        logger.info(f"[SETPOINT] {ip} accepted {target} after unlocking via {unlock_var}")
                        return result
        except Exception as e:
            logger.error(f"[SETPOINT] {ip} setpoint protocol aborted: {e}")
            result.ok = False

        logger.warning(f"[SETPOINT] {ip} rejected {target} after all strategies (last readback {result.actual})")
        return result

    async def _write_with_format_fallback(self, ip, primary_var, target_vars, target, result) -> bool:
        dot = f"{target:.1f}"
        for label, text in (('dot', dot), ('comma', dot.replace('.', ','))):
            result.attempts.append(label)
            actual = await self._write_and_verify(ip, primary_var, target_vars, text)
            result.actual = None if math.isnan(actual) else actual
            if not math.isnan(actual) and abs(actual - target) <= SETPOINT_TOLERANCE:
                result.ok = True
                return True
        return False

    async def _write_and_verify(self, ip: str, primary_var: str, target_vars: List[str], text: str) -> float:
        for name in target_vars:
            await self.write_var(ip, name, text)
        await asyncio.sleep(self.settle_seconds)
        return await self._readback(ip, primary_var, target_vars)

    async def _readback(self, ip: str, primary_var: str, target_vars: List[str]) -> float:
        value = to_num(await self.read_var(ip, primary_var))
        if not math.isnan(value):
            return value
        values = await self.batch_read(ip, target_vars)
        for name in target_vars:
            value = to_num(values.get(name))
            if not math.isnan(value):
                return value
        return math.nan
