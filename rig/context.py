"""アプリケーションコンテキストの定義。

1 回のコマンド実行で使う設定・マネージャーをまとめて保持する。
WorktreeManager はリポジトリパスごとにキャッシュする。
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from rig.config.settings import Settings, load_settings
from rig.managers.context_resolver import ContextResolver
from rig.managers.crew_manager import CrewManager
from rig.managers.prompter import ClickPrompter, Prompter
from rig.managers.rig_manager import RigManager
from rig.managers.sling_manager import SlingManager
from rig.managers.tmux_manager import TmuxManager
from rig.managers.work_manager import WorkManager
from rig.managers.worktree_manager import WorktreeManager


@dataclass
class AppContext:
    """アプリケーションコンテキスト。"""

    settings: Settings
    tmux: TmuxManager
    prompter: Prompter
    cwd: str = field(default_factory=os.getcwd)
    """コマンドを実行したディレクトリ"""

    worktree_managers: dict[str, WorktreeManager] = field(default_factory=dict)

    def get_worktree_manager(self, repo_path: str) -> WorktreeManager:
        """指定リポジトリのWorktreeManagerを取得または作成する。"""
        if repo_path not in self.worktree_managers:
            self.worktree_managers[repo_path] = WorktreeManager(repo_path)
        return self.worktree_managers[repo_path]

    def resolver(self) -> ContextResolver:
        return ContextResolver(
            self.settings, self.tmux, self.get_worktree_manager, cwd=self.cwd
        )

    def crew(self) -> CrewManager:
        return CrewManager(
            self.settings, self.tmux, self.prompter, self.get_worktree_manager
        )

    def work(self) -> WorkManager:
        return WorkManager(self.settings, self.prompter, self.get_worktree_manager)

    def rig(self) -> RigManager:
        return RigManager(
            self.settings,
            self.tmux,
            self.prompter,
            self.crew(),
            self.resolver(),
            self.get_worktree_manager,
        )

    def sling(self) -> SlingManager:
        return SlingManager(
            self.settings,
            self.tmux,
            self.prompter,
            self.crew(),
            self.work(),
            self.get_worktree_manager,
        )


def create_app_context(
    settings: Settings | None = None,
    prompter: Prompter | None = None,
    cwd: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppContext:
    """AppContext を生成する。

    Args:
        settings: 設定（省略時は load_settings()）
        prompter: Prompter（省略時は ClickPrompter）
        cwd: カレントディレクトリ（省略時は os.getcwd()）
        environ: tmux 判定用の環境変数（省略時は os.environ）

    Returns:
        AppContext
    """
    settings = settings or load_settings()
    return AppContext(
        settings=settings,
        tmux=TmuxManager(settings, environ=environ),
        prompter=prompter or ClickPrompter(),
        cwd=cwd or os.getcwd(),
    )
