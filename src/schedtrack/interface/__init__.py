"""
Interface module - CLI, command shell and the script API.
"""

from schedtrack.interface.scripting import LogRef, ObjRef, ScriptAPI, load_init_file, run_script
from schedtrack.interface.shell import CommandShell

__all__ = ["LogRef", "ObjRef", "ScriptAPI", "load_init_file", "run_script", "CommandShell"]
