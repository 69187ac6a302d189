"""ワークスペース・Worktreeモデル定義。"""

from enum import Enum

from pydantic import BaseModel, Field

from rig.config.polecat_names import is_polecat


class WorktreeInfo(BaseModel):
    """git worktree 情報。"""

    path: str = Field(description="worktreeのパス")
    branch: str = Field(description="ブランチ名")
    commit: str = Field(default="", description="現在のコミットハッシュ")
    is_bare: bool = Field(default=False, description="bareリポジトリかどうか")
    is_detached: bool = Field(default=False, description="detached HEADかどうか")
    locked: bool = Field(default=False, description="ロックされているかどうか")
    prunable: bool = Field(default=False, description="削除可能かどうか")


class CrewAction(str, Enum):
    """crew add / start の結果として行われた操作。"""

    CREATED = "created"
    """worktree とセッションを新規作成した"""

    ATTACHED = "attached"
    """既存のセッションにアタッチしただけ"""

    SESSION_RECREATED = "session_recreated"
    """worktree は既存、セッションのみ再作成した"""


class CrewWorkspace(BaseModel):
    """crew ワークスペースの解決済み情報。"""

    rig: str = Field(description="リポジトリ名")
    name: str = Field(description="worker 名")
    path: str = Field(description="worktree のパス")
    session: str = Field(description="tmux セッション名")
    branch: str = Field(description="作業ブランチ名")
    base_branch: str | None = Field(default=None, description="分岐元ブランチ")
    action: CrewAction | None = Field(default=None, description="実行した操作")

    @property
    def is_polecat(self) -> bool:
        """polecat かどうか。"""
        return is_polecat(self.name)


class CrewRemoval(BaseModel):
    """crew remove の結果。"""

    rig: str
    name: str
    path: str
    session_killed: bool = False
    worktree_removed: bool = False
    metadata_pruned: bool = False
    branch_deleted: bool = False
    parent_removed: bool = False
    session_only: bool = Field(
        default=False, description="worktree が無くセッションだけを終了した"
    )


class CrewMember(BaseModel):
    """crew ls で表示する worker 情報。"""

    rig: str
    name: str
    path: str
    branch: str = "unknown"
    running: bool = False

    @property
    def is_polecat(self) -> bool:
        """polecat かどうか。"""
        return is_polecat(self.name)

    @property
    def status(self) -> str:
        """running / stopped。"""
        return "running" if self.running else "stopped"


class RigSession(BaseModel):
    """rig status で表示するセッション情報。"""

    session: str = Field(description="tmux セッション名")
    rig: str = Field(description="リポジトリ名")
    worker: str | None = Field(default=None, description="crew の場合の worker 名")
    path: str = Field(description="作業ディレクトリ")
    branch: str = Field(default="unknown", description="現在のブランチ")
    current: bool = Field(default=False, description="現在アタッチ中のセッションか")

    @property
    def is_crew(self) -> bool:
        """crew セッションかどうか。"""
        return self.worker is not None

    @property
    def is_polecat(self) -> bool:
        """polecat セッションかどうか。"""
        return self.worker is not None and is_polecat(self.worker)


class RepoEntry(BaseModel):
    """rig list で表示するリポジトリ情報。"""

    name: str
    path: str
    running: bool = False
