"""データモデルモジュール。"""

from .work import (
    HookInfo,
    ParseWarning,
    Progress,
    SlingMode,
    SlingResult,
    Task,
    WorkAssignment,
    WorkInit,
    WorkScaffold,
    WorkStatusEntry,
)
from .workspace import (
    CrewAction,
    CrewMember,
    CrewRemoval,
    CrewWorkspace,
    RepoEntry,
    RigSession,
    WorktreeInfo,
)

__all__ = [
    "CrewAction",
    "CrewMember",
    "CrewRemoval",
    "CrewWorkspace",
    "HookInfo",
    "ParseWarning",
    "Progress",
    "RepoEntry",
    "RigSession",
    "SlingMode",
    "SlingResult",
    "Task",
    "WorkAssignment",
    "WorkInit",
    "WorkScaffold",
    "WorkStatusEntry",
    "WorktreeInfo",
]
