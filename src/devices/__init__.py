"""
Chiller device integration: variable-table parsing, caching, queuing and control
"""

from .models import VarsConfig, VarRow, StatusResult, SetpointResult, DEFAULT_VARS
from .var_table import parse_var_table, index_rows
from .command_queue import DeviceCommandQueue
from .cache import DeviceCache
from .client import DeviceHttpClient
from .controller import ChillerController, to_bool, to_num, clamp

__all__ = [
    'VarsConfig', 'VarRow', 'StatusResult', 'SetpointResult', 'DEFAULT_VARS',
    'parse_var_table', 'index_rows', 'DeviceCommandQueue', 'DeviceCache',
    'DeviceHttpClient', 'ChillerController', 'to_bool', 'to_num', 'clamp',
]
