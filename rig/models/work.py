"""work item・進捗モデル定義。"""

from enum import Enum

from pydantic import BaseModel, Field

from rig.config.polecat_names import is_polecat


class Task(BaseModel):
    """progress.md のチェックリスト項目。"""

    done: bool = Field(default=False, description="完了済みか")
    description: str = Field(description="タスクの説明")


class ParseWarning(BaseModel):
    """progress.md 解析時の非致命的な警告。"""

    line_number: int = Field(description="行番号（1 始まり）")
    line: str = Field(description="該当行")
    reason: str = Field(description="警告理由")


class Progress(BaseModel):
    """progress.md の解析結果。"""

    status: str = Field(default="", description="ステータス表記")
    assigned_to: str = Field(default="", description="担当者の表記")
    tasks: list[Task] = Field(default_factory=list, description="チェックリスト")
    notes: str = Field(default="", description="Notes セクションの内容")
    warnings: list[ParseWarning] = Field(default_factory=list, description="解析時の警告")

    @property
    def current_task(self) -> str:
        """最初の未完了タスクの説明。全て完了、またはタスクが無い場合は空文字。"""
        for task in self.tasks:
            if not task.done:
                return task.description
        return ""

    @property
    def completed_count(self) -> int:
        """完了済みタスク数。"""
        return sum(1 for task in self.tasks if task.done)


class WorkScaffold(BaseModel):
    """work create で生成・スキップしたファイル。"""

    name: str
    path: str
    created: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    formula_installed: bool = False

    @property
    def existed(self) -> bool:
        """既存の work ディレクトリに対して実行されたか。"""
        return bool(self.skipped)


class WorkInit(BaseModel):
    """rig work create の結果。"""

    scaffold: WorkScaffold
    branch: str
    base_branch: str
    branch_created: bool = False
    work_existed: bool = False
    branch_existed: bool = False
    committed: bool = False
    commit_message: str | None = None


class HookInfo(BaseModel):
    """hook.md の情報。"""

    work_name: str
    formula: str
    path: str
    created: bool = Field(default=False, description="今回新規に書き込んだか")
    body: str = ""


class WorkStatusEntry(BaseModel):
    """rig work status の 1 行。"""

    rig: str
    work_name: str
    status: str = "Unknown"
    assigned_to: str
    branch: str
    current_task: str = ""

    @property
    def is_polecat(self) -> bool:
        """担当が polecat かどうか。"""
        return is_polecat(self.assigned_to)


class WorkAssignment(BaseModel):
    """フィーチャーブランチを checkout している worktree（担当者）。"""

    work_name: str
    path: str
    worker: str | None = Field(
        default=None, description="crew_base 配下の場合の worker 名"
    )
    is_main_repo: bool = False


class SlingMode(str, Enum):
    """sling の割り当て先。"""

    SELF = "self"
    CREW = "crew"
    POLECAT = "polecat"


class SlingResult(BaseModel):
    """rig sling の結果。"""

    mode: SlingMode
    rig: str
    work_name: str
    branch: str
    hook_path: str
    worker: str | None = None
    path: str | None = None
    session: str | None = None
    committed: bool = False
    keys_sent: bool = False
