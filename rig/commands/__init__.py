"""CLI サブコマンド群。"""

from .crew_commands import register_crew_commands
from .rig_commands import register_rig_commands
from .work_commands import register_work_commands

__all__ = [
    "register_crew_commands",
    "register_rig_commands",
    "register_work_commands",
]
