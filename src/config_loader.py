"""
Configuration loader for the Chiller Local Server
Loads and validates the YAML server configuration and the JSON dashboard
configuration that maps logical chiller signals to vendor variables
"""

import json
import yaml
import logging
from typing import Dict, Any, List, Optional
from pathlib import Path
from datetime import datetime
import pytz

from devices.models import VarsConfig

logger = logging.getLogger(__name__)

def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file with validation
    """
    try:
        config_file = Path(config_path)
        if not config_file.exists():
            logger.error(f"Configuration file not found: {config_path}")
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}

        _validate_config(config)

        config = apply_defaults(config)

        logger.info(f"Configuration loaded from {config_path}")
        return config

    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise

def _validate_config(config: Dict) -> None:
    """Validate that required configuration sections exist"""
    if not isinstance(config, dict):
        raise ValueError("Configuration root must be a mapping")

    if 'database' not in config:
        raise ValueError("Missing required configuration section: database")

    db = config['database'] or {}
    backend = db.get('backend', 'file')
    if backend not in ('file', 'postgres'):
        raise ValueError(f"database.backend must be 'file' or 'postgres', got {backend!r}")

    if backend == 'postgres':
        for field in ['host', 'port', 'database', 'username', 'password']:
            if field not in db:
                raise ValueError(f"Missing required database field: {field}")

    timers = config.get('timers') or {}
    interval = timers.get('sweep_interval_seconds', 15)
    if not isinstance(interval, (int, float)) or interval <= 0:
        raise ValueError("timers.sweep_interval_seconds must be a positive number")

    auth = config.get('auth') or {}
    if auth.get('secret') in (None, '', 'dev-secret'):
        logger.warning("auth.secret is not set - session tokens use an insecure development secret")

def _apply_section_defaults(config: Dict, section: str, defaults: Dict) -> None:
    if section not in config or config[section] is None:
        config[section] = {}
    for key, default_value in defaults.items():
        if key not in config[section]:
            config[section][key] = default_value

def apply_defaults(config: Dict) -> Dict:
    """Apply default values to configuration"""

    _apply_section_defaults(config, 'database', {
        'backend': 'file',
        'path': 'data/db.json'
    })

    _apply_section_defaults(config, 'api', {
        'host': '0.0.0.0',
        'port': 8000
    })

    # Device protocol timing
    _apply_section_defaults(config, 'devices', {
        'read_timeout_seconds': 4,
        'write_timeout_seconds': 8,
        'cache_ttl_seconds': 5,
        'setpoint_settle_seconds': 0.7,
        'unlock_settle_seconds': 0.6
    })

    _apply_section_defaults(config, 'timers', {
        'sweep_interval_seconds': 15,
        'replace_existing': False
    })

    _apply_section_defaults(config, 'auth', {
        'secret': 'dev-secret',
        'session_days': 7,
        'cookie_secure': False,
        'default_users': []
    })

    _apply_section_defaults(config, 'dashboard', {
        'config_path': '../assets/data/dashboard.config.json'
    })

    _apply_section_defaults(config, 'logging', {
        'level': 'INFO',
        'file': 'logs/chiller_server.log',
        'console_output': True,
        'timezone': 'UTC'
    })

    return config

# ================== DASHBOARD CONFIG (vars mapping + seed chillers) ==================

def load_dashboard_config(path: str) -> Dict[str, Any]:
    """
    Load the dashboard JSON document.
    A missing or malformed file yields an empty document so every
    variable falls back to its default name.
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("dashboard config root must be an object")
        logger.info(f"Dashboard configuration loaded from {path}")
        return data
    except FileNotFoundError:
        logger.info(f"Dashboard configuration {path} not found - using default variable names")
    except (OSError, ValueError) as e:
        logger.warning(f"Dashboard configuration {path} unreadable - using default variable names: {e}")
    return {}

def vars_config_for(dashboard: Dict[str, Any], ip: Optional[str] = None) -> VarsConfig:
    """Pick the unit group whose `ips` list contains the device, else the first unit"""
    units = dashboard.get('units')
    if not isinstance(units, list) or not units:
        return VarsConfig()

    units = [u for u in units if isinstance(u, dict)]
    if ip:
        for unit in units:
            ips = unit.get('ips')
            if isinstance(ips, list) and ip in ips:
                return VarsConfig.from_dict(unit.get('vars'))

    return VarsConfig.from_dict(units[0].get('vars') if units else None)

def seed_chillers_from_dashboard(dashboard: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Chiller definitions listed in the dashboard file, normalized"""
    items = dashboard.get('chillers')
    if not isinstance(items, list):
        return []

    seeds = []
    for item in items:
        if not isinstance(item, dict):
            continue
        chiller_id = str(item.get('id') or '').strip()
        seeds.append({
            'id': chiller_id or None,
            'name': str(item.get('name') or ''),
            'ip': str(item.get('ip') or ''),
            'active': bool(item.get('active'))
        })
    return seeds

# ================== LOGGING ==================

class TimezoneFormatter(logging.Formatter):
    """Formatter that renders timestamps in the site's configured timezone"""

    def __init__(self, fmt=None, tz_name: str = 'UTC'):
        super().__init__(fmt)
        self.tz = pytz.timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=self.tz)
        if datefmt:
            return dt.strftime(datefmt)
        else:
            # Default format: YYYY-MM-DD HH:MM:SS TZ
            return dt.strftime('%Y-%m-%d %H:%M:%S %Z')

def setup_logging(config: Dict) -> None:
    """Setup logging based on configuration with site-local timestamps"""
    log_config = config.get('logging', {})
    level = log_config.get('level', 'INFO')

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = TimezoneFormatter(log_format, log_config.get('timezone', 'UTC'))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        handlers=[]
    )
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))

    if log_config.get('console_output', True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    log_file = log_config.get('file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    logger.info(f"Logging configured: level={level}, timezone={log_config.get('timezone', 'UTC')}, "
                f"console={log_config.get('console_output', True)}, file={log_file}")
