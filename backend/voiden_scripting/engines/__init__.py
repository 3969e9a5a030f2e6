"""
Engines: script sandbox (JavaScript / Python) and the ScriptExecutor entry point.
"""

from voiden_scripting.engines.executor import ScriptExecutor, execute_script

__all__ = [
    "ScriptExecutor",
    "execute_script",
]
