"""
Script API modules: env, variables, log.
"""

from voiden_scripting.engines.script.modules.env import make_env_module
from voiden_scripting.engines.script.modules.log import make_log_module
from voiden_scripting.engines.script.modules.variables import make_variables_module

__all__ = [
    "make_env_module",
    "make_log_module",
    "make_variables_module",
]
