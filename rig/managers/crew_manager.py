"""crew（worker ワークスペース）のライフサイクル管理モジュール。

<crew_base>/<rig>/<worker> の worktree と <rig>@<worker> の tmux セッションを
組として作成・再接続・削除する。worktree とセッションは独立して存在しうるため、
片方だけが残った状態も検出して整合させる。
"""

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from rig.config import naming
from rig.config.polecat_names import is_polecat
from rig.errors import (
    GitCommandError,
    NotFoundError,
    OperationCancelledError,
    RepositoryNotFoundError,
    RigError,
    SessionCreationError,
    WorkspaceNotFoundError,
    WorktreeCreationError,
)
from rig.managers.worktree_manager import WorktreeManager
from rig.models.workspace import (
    CrewAction,
    CrewMember,
    CrewRemoval,
    CrewWorkspace,
    RigSession,
)

if TYPE_CHECKING:
    from rig.config.settings import Settings
    from rig.managers.prompter import Prompter
    from rig.managers.tmux_manager import TmuxManager

logger = logging.getLogger(__name__)


def remove_empty_dir(path: Path) -> bool:
    """ディレクトリが空なら削除する。

    失敗しても例外は送出しない（後片付け用）。

    Returns:
        削除した場合True
    """
    try:
        if path.is_dir() and not any(path.iterdir()):
            path.rmdir()
            return True
    except OSError as e:
        logger.warning(f"空ディレクトリの削除に失敗: {path} - {e}")
    return False


def list_subdirs(path: Path) -> list[Path]:
    """直下のディレクトリを名前順で返す。存在しない場合は空リスト。"""
    try:
        return sorted(p for p in path.iterdir() if p.is_dir())
    except OSError:
        return []


class CrewManager:
    """crew ワークスペースを管理するクラス。"""

    def __init__(
        self,
        settings: "Settings",
        tmux: "TmuxManager",
        prompter: "Prompter",
        worktree_factory: Callable[[str], WorktreeManager] = WorktreeManager,
    ) -> None:
        """CrewManager を初期化する。

        Args:
            settings: アプリケーション設定
            tmux: TmuxManager
            prompter: 確認・表示に使う Prompter
            worktree_factory: リポジトリパスから WorktreeManager を得る関数
        """
        self.settings = settings
        self.tmux = tmux
        self.prompter = prompter
        self.worktree_factory = worktree_factory

    def _get_repo(self, rig: str) -> WorktreeManager:
        """rig の WorktreeManager を取得する。リポジトリでなければ例外。"""
        repo_path = self.settings.get_repo_path(rig)
        worktree = self.worktree_factory(str(repo_path))
        if not worktree.is_git_repo():
            raise RepositoryNotFoundError(f"リポジトリが見つかりません: {repo_path}")
        return worktree

    def _workspace(self, rig: str, name: str, branch: str | None = None) -> CrewWorkspace:
        return CrewWorkspace(
            rig=rig,
            name=name,
            path=str(self.settings.get_crew_path(rig, name)),
            session=self.settings.get_crew_session_name(rig, name),
            branch=branch or self.settings.get_crew_branch_name(name),
        )

    async def _attach(self, session: str) -> None:
        ok, message = await self.tmux.attach_session(session)
        if not ok:
            raise RigError(message)

    async def _create_session(self, workspace: CrewWorkspace) -> tuple[bool, str]:
        return await self.tmux.create_crew_session(
            workspace.session,
            workspace.path,
            workspace.rig,
            workspace.name,
            workspace.branch,
        )

    async def _rollback_worktree(
        self, worktree: WorktreeManager, path: str, branch: str | None
    ) -> None:
        """作成途中の worktree を取り消す。

        Args:
            worktree: リポジトリの WorktreeManager
            path: worktree のパス
            branch: 今回新規作成したブランチ（既存ブランチの場合は None）
        """
        logger.info(f"worktree をロールバックします: {path}")
        await worktree.remove_worktree(path)
        await worktree.prune_worktrees()
        if branch:
            await worktree.delete_branch(branch)
        remove_empty_dir(Path(path).parent)

    async def add(self, rig: str, name: str, attach: bool = True) -> CrewWorkspace:
        """crew ワークスペースを作成し、セッションにアタッチする。

        既に worktree が存在する場合は何も作成せず、必要ならセッションだけ
        再作成する（冪等）。

        Args:
            rig: リポジトリ名
            name: worker 名
            attach: 最後にセッションへアタッチするか

        Returns:
            作成・再接続したワークスペース

        Raises:
            InvalidNameError: worker 名が不正な場合
            RepositoryNotFoundError: リポジトリが存在しない場合
            NoBaseBranchError: ベースブランチを解決できない場合
            OperationCancelledError: 既存ブランチの再利用を拒否した場合
            WorktreeCreationError: worktree の作成に失敗した場合
            SessionCreationError: セッションの作成に失敗した場合
        """
        naming.validate_worker_name(name)
        worktree = self._get_repo(rig)
        workspace = self._workspace(rig, name)
        workspace.base_branch = await worktree.get_base_branch(
            self.settings.default_branch
        )
        crew_path = Path(workspace.path)

        if crew_path.exists():
            if await self.tmux.session_exists(workspace.session):
                self.prompter.info("crew ワークスペースとセッションは既に存在します")
                self.prompter.info(f"既存のセッションにアタッチします: {workspace.session}")
                workspace.action = CrewAction.ATTACHED
            else:
                self.prompter.info("crew ワークスペースは存在しますがセッションがありません")
                self.prompter.info("セッションを再作成します...")
                ok, message = await self._create_session(workspace)
                if not ok:
                    raise SessionCreationError(f"セッションの再作成に失敗しました: {message}")
                self.prompter.info(f"✓ セッションを再作成しました: {workspace.session}")
                workspace.action = CrewAction.SESSION_RECREATED
            if attach:
                await self._attach(workspace.session)
            return workspace

        crew_path.parent.mkdir(parents=True, exist_ok=True)

        self.prompter.info(f"{rig} に crew ワークスペース {name} を作成します")
        self.prompter.info(f"  Repo: {worktree.repo_path}")
        self.prompter.info(f"  Workspace: {workspace.path}")
        self.prompter.info(f"  Branch: {workspace.branch} (from {workspace.base_branch})")

        new_branch: str | None = None
        if await worktree.branch_exists(workspace.branch):
            self.prompter.info(f"ブランチ {workspace.branch} は既に存在します")
            if not self.prompter.confirm("既存のブランチを使いますか?", default=True):
                remove_empty_dir(crew_path.parent)
                raise OperationCancelledError(
                    "キャンセルしました",
                    hint="ブランチを削除するか、別の crew 名を使ってください",
                )
            ok, message, _ = await worktree.create_worktree(
                workspace.path, workspace.branch, create_branch=False
            )
        else:
            new_branch = workspace.branch
            ok, message, _ = await worktree.create_worktree(
                workspace.path,
                workspace.branch,
                create_branch=True,
                base_branch=workspace.base_branch,
            )

        if not ok:
            await self._rollback_worktree(worktree, workspace.path, new_branch)
            raise WorktreeCreationError(message)

        self.prompter.info(f"✓ crew ワークスペースを作成しました: {workspace.path}")

        ok, message = await self._create_session(workspace)
        if not ok:
            self.prompter.info("セッション作成に失敗したため worktree を削除します...")
            await self._rollback_worktree(worktree, workspace.path, new_branch)
            raise SessionCreationError(f"セッションの作成に失敗しました: {message}")

        self.prompter.info(f"✓ セッションを作成しました: {workspace.session}")
        workspace.action = CrewAction.CREATED
        if attach:
            await self._attach(workspace.session)
        return workspace

    async def create_from_branch(
        self, rig: str, name: str, branch: str
    ) -> CrewWorkspace:
        """既存ブランチから worktree とセッションを作成する（アタッチしない）。

        polecat への割り当てで使う。セッション作成に失敗した場合は
        worktree を削除する（ブランチは残す）。

        Raises:
            WorktreeCreationError: パスが既に存在する、または作成に失敗した場合
            SessionCreationError: セッションの作成に失敗した場合
        """
        naming.validate_worker_name(name)
        worktree = self._get_repo(rig)
        workspace = self._workspace(rig, name, branch=branch)
        crew_path = Path(workspace.path)

        if crew_path.exists():
            raise WorktreeCreationError(
                f"ワークスペースのパスが既に存在します: {workspace.path}",
                hint=f"rig crew remove {name} --rig={rig} で削除してから再実行してください",
            )

        crew_path.parent.mkdir(parents=True, exist_ok=True)
        ok, message, _ = await worktree.create_worktree(
            workspace.path, branch, create_branch=False
        )
        if not ok:
            await self._rollback_worktree(worktree, workspace.path, None)
            raise WorktreeCreationError(message)

        ok, message = await self._create_session(workspace)
        if not ok:
            await self._rollback_worktree(worktree, workspace.path, None)
            raise SessionCreationError(f"セッションの作成に失敗しました: {message}")

        workspace.action = CrewAction.CREATED
        return workspace

    async def start(self, rig: str, name: str, attach: bool = True) -> CrewWorkspace:
        """既存の crew ワークスペースを再開する。

        Args:
            rig: リポジトリ名
            name: worker 名
            attach: 最後にセッションへアタッチするか

        Returns:
            再開したワークスペース

        Raises:
            WorkspaceNotFoundError: worktree が存在しない場合
            GitCommandError: ブランチの切り替えに失敗した場合
            SessionCreationError: セッションの作成に失敗した場合
        """
        naming.validate_worker_name(name)
        workspace = self._workspace(rig, name)

        if not Path(workspace.path).exists():
            raise WorkspaceNotFoundError(
                f"crew ワークスペースが見つかりません: {workspace.path}",
                hint=f"先に 'rig crew add {name} --rig={rig}' を実行してください",
            )

        worktree = self.worktree_factory(str(self.settings.get_repo_path(rig)))
        current = await worktree.get_current_branch(workspace.path)
        if current and current != workspace.branch:
            self.prompter.info(
                f"ワークスペースはブランチ '{current}' にあります（期待値: '{workspace.branch}'）"
            )
            if self.prompter.confirm(f"{workspace.branch} に切り替えますか?", default=True):
                ok, message = await worktree.checkout_branch(
                    workspace.branch, path=workspace.path
                )
                if not ok:
                    raise GitCommandError(
                        f"ブランチ {workspace.branch} への切り替えに失敗しました: {message}"
                    )
                self.prompter.info(f"✓ ブランチを切り替えました: {workspace.branch}")

        workspace.action = CrewAction.ATTACHED
        if not await self.tmux.session_exists(workspace.session):
            self.prompter.info("セッションが存在しないため再作成します...")
            ok, message = await self._create_session(workspace)
            if not ok:
                raise SessionCreationError(f"セッションの作成に失敗しました: {message}")
            self.prompter.info(f"✓ セッションを作成しました: {workspace.session}")
            workspace.action = CrewAction.SESSION_RECREATED

        if attach:
            await self._attach(workspace.session)
        return workspace

    async def remove(self, rig: str, name: str) -> CrewRemoval:
        """crew ワークスペースを削除する。

        worktree ディレクトリの有無と git への登録の有無の組み合わせごとに
        整合をとってから削除する。

        Args:
            rig: リポジトリ名
            name: worker 名

        Returns:
            削除結果

        Raises:
            NotFoundError: worktree もセッションも存在しない場合
        """
        naming.validate_worker_name(name)
        worktree = self._get_repo(rig)
        workspace = self._workspace(rig, name)
        crew_path = Path(workspace.path)
        result = CrewRemoval(rig=rig, name=name, path=workspace.path)

        dir_exists = crew_path.exists()
        registered = await worktree.worktree_is_registered(workspace.path)
        was_detached = registered and not dir_exists

        if was_detached:
            self.prompter.info(
                "worktree は git に登録されていますがディレクトリがありません（detached）"
            )
            self.prompter.info("git の worktree 情報をクリーンアップします...")
            await worktree.remove_worktree(workspace.path)
            ok, _ = await worktree.prune_worktrees()
            result.metadata_pruned = ok
            registered = False

        if not dir_exists and not registered:
            if await self.tmux.session_exists(workspace.session):
                self.prompter.info("worktree が無くセッションだけが存在するため終了します...")
                result.session_killed = await self.tmux.kill_session(workspace.session)
                result.session_only = True
                self.prompter.info(f"✓ セッションを終了しました: {workspace.session}")
                return result
            if was_detached:
                result.parent_removed = remove_empty_dir(crew_path.parent)
                self.prompter.info(f"✓ crew ワークスペースを削除しました: {name} on {rig}")
                return result
            raise NotFoundError(f"crew ワークスペースが見つかりません: {workspace.path}")

        session_live = await self.tmux.session_exists(workspace.session)
        if session_live:
            current = await self.tmux.get_current_session()
            if current and naming.normalize_session_name(
                current
            ) == naming.normalize_session_name(workspace.session):
                self.prompter.warn(
                    f"現在のセッション '{workspace.session}' を削除するため接続が切断されます"
                )

        # セッションを終了する前に尋ねる（自分自身のセッションでもプロンプトが見えるように）
        delete_branch = False
        if await worktree.branch_exists(workspace.branch):
            delete_branch = self.prompter.confirm(
                f"ブランチ {workspace.branch} を削除しますか?", default=True
            )

        if session_live:
            self.prompter.info(f"セッションを終了します: {workspace.session}")
            result.session_killed = await self.tmux.kill_session(workspace.session)

        if dir_exists:
            self.prompter.info(f"worktree を削除します: {workspace.path}")
            ok, message = await worktree.remove_worktree(workspace.path)
            if not ok:
                raise GitCommandError(message)
            result.worktree_removed = True

        ok, _ = await worktree.prune_worktrees()
        result.metadata_pruned = result.metadata_pruned or ok

        if delete_branch:
            ok, message = await worktree.delete_branch(workspace.branch)
            if ok:
                result.branch_deleted = True
                self.prompter.info(f"✓ ブランチを削除しました: {workspace.branch}")
            else:
                self.prompter.warn(message)

        if remove_empty_dir(crew_path.parent):
            result.parent_removed = True
            self.prompter.info(f"空のディレクトリを削除しました: {crew_path.parent}")

        self.prompter.info(f"✓ crew ワークスペースを削除しました: {name} on {rig}")
        return result

    async def worker_names(self, rig: str) -> list[str]:
        """rig 配下の worker ディレクトリ名一覧を返す。"""
        return [p.name for p in list_subdirs(self.settings.crew_base / rig)]

    async def list_workspaces(
        self, name_filter: str | None = None
    ) -> dict[str, list[CrewMember]]:
        """全 rig の crew ワークスペースを列挙する。

        Args:
            name_filter: 指定した場合、この名前の worker のみ

        Returns:
            rig 名 → CrewMember のリスト
        """
        members: dict[str, list[CrewMember]] = {}
        for rig_dir in list_subdirs(self.settings.crew_base):
            rig = rig_dir.name
            worktree = self.worktree_factory(str(self.settings.get_repo_path(rig)))
            for crew_dir in list_subdirs(rig_dir):
                if name_filter and crew_dir.name != name_filter:
                    continue
                branch = await worktree.get_current_branch(str(crew_dir))
                running = await self.tmux.session_exists(
                    self.settings.get_crew_session_name(rig, crew_dir.name)
                )
                members.setdefault(rig, []).append(
                    CrewMember(
                        rig=rig,
                        name=crew_dir.name,
                        path=str(crew_dir),
                        branch=branch or "unknown",
                        running=running,
                    )
                )
        return members

    def _known_workspaces(self) -> dict[str, tuple[str, str, Path]]:
        """正規化済みセッション名 → (rig, worker, path) の対応表を作る。"""
        known: dict[str, tuple[str, str, Path]] = {}
        for rig_dir in list_subdirs(self.settings.crew_base):
            for crew_dir in list_subdirs(rig_dir):
                session = naming.session_name(rig_dir.name, crew_dir.name)
                known[naming.normalize_session_name(session)] = (
                    rig_dir.name,
                    crew_dir.name,
                    crew_dir,
                )
        return known

    async def active_sessions(
        self, sessions: list[str] | None = None, current: str | None = None
    ) -> list[RigSession]:
        """ワークスペースが実在する crew セッションを返す。

        Args:
            sessions: tmux のセッション一覧（省略時は取得する）
            current: 現在のセッション名（省略時は取得する）

        Returns:
            RigSession のリスト
        """
        if sessions is None:
            sessions = await self.tmux.list_sessions()
        if current is None:
            current = await self.tmux.get_current_session()
        current_normalized = naming.normalize_session_name(current) if current else ""

        known = self._known_workspaces()
        result: list[RigSession] = []
        for session in sessions:
            if naming.SESSION_SEPARATOR not in session:
                continue
            entry = known.get(naming.normalize_session_name(session))
            if entry is None:
                continue
            rig, worker, path = entry
            worktree = self.worktree_factory(str(self.settings.get_repo_path(rig)))
            branch = await worktree.get_current_branch(str(path))
            result.append(
                RigSession(
                    session=session,
                    rig=rig,
                    worker=worker,
                    path=str(path),
                    branch=branch or "unknown",
                    current=naming.normalize_session_name(session) == current_normalized,
                )
            )
        return result

    def list_polecats(self) -> list[CrewMember]:
        """全 rig の polecat ワークスペースを返す。"""
        polecats: list[CrewMember] = []
        for rig_dir in list_subdirs(self.settings.crew_base):
            for crew_dir in list_subdirs(rig_dir):
                if is_polecat(crew_dir.name):
                    polecats.append(
                        CrewMember(rig=rig_dir.name, name=crew_dir.name, path=str(crew_dir))
                    )
        return polecats

    async def prune_polecats(self) -> list[CrewRemoval]:
        """全 polecat ワークスペースを確認のうえ一括削除する。

        Returns:
            削除結果のリスト（対象なし、またはキャンセル時は空）
        """
        polecats = self.list_polecats()
        if not polecats:
            self.prompter.info("polecat は見つかりませんでした")
            return []

        self.prompter.info(f"{len(polecats)} 件の polecat が見つかりました:")
        for member in polecats:
            self.prompter.info(f"  - 🐱 {member.name} (rig: {member.rig})")

        if not self.prompter.confirm(
            "これらのワークスペースと worktree を削除しますか?", default=False
        ):
            self.prompter.info("キャンセルしました")
            return []

        removals: list[CrewRemoval] = []
        for member in polecats:
            self.prompter.info(f"🐱 {member.name} を削除しています...")
            worktree = self.worktree_factory(str(self.settings.get_repo_path(member.rig)))
            session = self.settings.get_crew_session_name(member.rig, member.name)
            removal = CrewRemoval(rig=member.rig, name=member.name, path=member.path)

            if await self.tmux.session_exists(session):
                removal.session_killed = await self.tmux.kill_session(session)
                self.prompter.info(f"  ✓ セッションを終了しました: {session}")

            if os.path.exists(member.path):
                ok, message = await worktree.remove_worktree(member.path)
                removal.worktree_removed = ok
                if ok:
                    self.prompter.info(f"  ✓ worktree を削除しました: {member.path}")
                else:
                    self.prompter.warn(message)

            ok, _ = await worktree.prune_worktrees()
            removal.metadata_pruned = ok
            removal.parent_removed = remove_empty_dir(Path(member.path).parent)
            removals.append(removal)

        self.prompter.info(f"✓ {len(removals)} 件の polecat を削除しました")
        return removals
