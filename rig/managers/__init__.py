"""マネージャーモジュール。"""

from .context_resolver import ContextResolver
from .crew_manager import CrewManager
from .prompter import ClickPrompter, Prompter, ScriptedPrompter
from .rig_manager import RigManager
from .sling_manager import SlingManager
from .tmux_manager import TmuxManager
from .work_manager import WorkManager
from .worktree_manager import WorktreeManager

__all__ = [
    "ClickPrompter",
    "ContextResolver",
    "CrewManager",
    "Prompter",
    "RigManager",
    "ScriptedPrompter",
    "SlingManager",
    "TmuxManager",
    "WorkManager",
    "WorktreeManager",
]
