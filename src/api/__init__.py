"""
API module for chiller control, timers, chiller definitions and the power log
"""

from .main_api import ChillerAPI
from .auth import SessionAuth
from .control_routes import create_control_routes
from .timer_routes import create_timer_routes
from .chiller_routes import create_chiller_routes
from .power_log_routes import create_power_log_routes
from .auth_routes import create_auth_routes
from .system_routes import create_system_routes

__all__ = [
    'ChillerAPI', 'SessionAuth', 'create_control_routes', 'create_timer_routes',
    'create_chiller_routes', 'create_power_log_routes', 'create_auth_routes',
    'create_system_routes',
]
