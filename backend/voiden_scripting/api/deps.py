from typing import Annotated, Any

from fastapi import Depends

from voiden_scripting.core.host import get_default_host
from voiden_scripting.core.log_store import ScriptLogStore, script_log_store


def get_script_host() -> Any:
    return get_default_host()


def get_log_store() -> ScriptLogStore:
    return script_log_store


ScriptHostDep = Annotated[Any, Depends(get_script_host)]
LogStoreDep = Annotated[ScriptLogStore, Depends(get_log_store)]
