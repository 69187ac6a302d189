"""work item の割り当て（sling）モジュール。

work の hook を生成してコミットし、フィーチャーブランチを解放したうえで
自分自身・既存の crew・新しい polecat のいずれかに割り当てる。
"""

import asyncio
import logging
import os
import random
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING

from rig.config import naming
from rig.config.polecat_names import generate_name, is_polecat
from rig.errors import (
    BranchNotFoundError,
    FormulaNotFoundError,
    GitCommandError,
    OperationCancelledError,
    RepositoryNotFoundError,
    WorkItemNotFoundError,
    WorkspaceNotFoundError,
)
from rig.managers.work_manager import HOOK_FILE, WORK_DIR, parse_work_path
from rig.managers.worktree_manager import WorktreeManager
from rig.models.work import SlingMode, SlingResult, WorkAssignment

if TYPE_CHECKING:
    from rig.config.settings import Settings
    from rig.managers.crew_manager import CrewManager
    from rig.managers.prompter import Prompter
    from rig.managers.tmux_manager import TmuxManager
    from rig.managers.work_manager import WorkManager

logger = logging.getLogger(__name__)

HOOK_COMMAND = "rig hook"
ASSIGNMENT_MESSAGE = (
    f"# YOUR WORK ASSIGNMENT: Run the command '{HOOK_COMMAND}' to see your instructions"
)


class SlingManager:
    """work を worker に割り当てるクラス。"""

    def __init__(
        self,
        settings: "Settings",
        tmux: "TmuxManager",
        prompter: "Prompter",
        crew: "CrewManager",
        work: "WorkManager",
        worktree_factory: Callable[[str], WorktreeManager] = WorktreeManager,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """SlingManager を初期化する。

        Args:
            settings: アプリケーション設定
            tmux: TmuxManager
            prompter: 確認・表示に使う Prompter
            crew: worktree とセッションの作成に使う CrewManager
            work: hook の生成に使う WorkManager
            worktree_factory: リポジトリパスから WorktreeManager を得る関数
            rng: polecat 名の選択に使う乱数生成器
            sleep: 待機関数（テストでは待たない関数を渡す）
        """
        self.settings = settings
        self.tmux = tmux
        self.prompter = prompter
        self.crew = crew
        self.work = work
        self.worktree_factory = worktree_factory
        self.rng = rng
        self.sleep = sleep

    async def sling(
        self,
        work_path: str,
        cwd: str | os.PathLike[str],
        to: str | None = None,
        formula: str | None = None,
        self_assign: bool = False,
    ) -> SlingResult:
        """work を割り当てる。

        Args:
            work_path: work/<name> 形式の参照
            cwd: カレントディレクトリ（このディレクトリを含むリポジトリが対象）
            to: 割り当て先の既存 crew 名
            formula: formula 名（省略時は設定のデフォルト）
            self_assign: 現在のセッションで自分が作業するか

        Returns:
            割り当て結果

        Raises:
            InvalidWorkPathError: work パスの形式が不正な場合
            RepositoryNotFoundError: git リポジトリ外の場合
            WorkItemNotFoundError: work ディレクトリが無い場合
            BranchNotFoundError: フィーチャーブランチが無い場合
            FormulaNotFoundError: formula が存在しない場合
            HookExistsError: ブランチ上の hook が別の formula で生成済みの場合
            OperationCancelledError: コミットや再割り当てを拒否した場合
        """
        work_name = parse_work_path(work_path)
        naming.validate_work_name(work_name)

        root = await self.worktree_factory(str(cwd)).get_repo_root()
        if not root:
            raise RepositoryNotFoundError(f"git リポジトリ内ではありません: {cwd}")
        rig = Path(root).name
        worktree = self.worktree_factory(root)
        branch = naming.feature_branch_name(work_name)

        # 割り当て済みの work はメインリポジトリの checkout に無いのでブランチも見る
        work_dir = f"{WORK_DIR}/{work_name}"
        if not (
            self.work.work_path(root, work_name).is_dir()
            or await worktree.path_exists_on_branch(branch, work_dir)
        ):
            raise WorkItemNotFoundError(
                f"work ディレクトリが見つかりません: {work_dir}",
                hint=f"先に 'rig work create {work_name}' を実行してください",
            )
        if not await worktree.branch_exists(branch):
            raise BranchNotFoundError(
                f"フィーチャーブランチが見つかりません: {branch}",
                hint=f"先に 'rig work create {work_name}' を実行してください",
            )

        current = await worktree.get_current_branch()
        formula = formula or self.settings.default_formula
        if current == branch:
            formulas = self.work.list_formulas(root)
        else:
            formulas = await self.work.list_branch_formulas(worktree, branch)
        if formula not in formulas:
            raise FormulaNotFoundError(
                f"formula が見つかりません: {formula}", available=formulas
            )

        # 他の worktree がブランチを保持したままでは checkout できない。
        # 以前の worktree の削除は全ての確認が済んでから行う
        commit_confirmed = False
        prior = None
        if not self_assign and not to:
            prior = await self._confirm_reassignment(work_name, worktree)
        if prior is not None:
            await self.work.check_branch_hook(worktree, branch, work_name, formula)
            commit_confirmed = await self._confirm_commit_before_release(
                worktree, branch, work_name
            )
            await self._release_assignment(rig, prior, worktree)

        if current != branch:
            self.prompter.info(f"{branch} に切り替えます...")
            await self._checkout(worktree, branch)

        hook = self.work.generate_hook(root, work_name, formula)
        if hook.created:
            self.prompter.info(f"✓ hook を作成しました: {WORK_DIR}/{work_name}/hook.md")
        else:
            self.prompter.info(f"✓ 既存の hook を使用します: {WORK_DIR}/{work_name}/hook.md")

        result = SlingResult(
            mode=SlingMode.SELF,
            rig=rig,
            work_name=work_name,
            branch=branch,
            hook_path=hook.path,
        )
        result.committed = await self._commit_work_changes(
            worktree, work_name, confirmed=commit_confirmed
        )

        base_branch = await worktree.get_base_branch(self.settings.default_branch)
        self.prompter.info(f"{base_branch} に切り替えます...")
        await self._checkout(worktree, base_branch)

        if self_assign:
            self.prompter.info("✓ 現在のワークスペースで hook の準備ができました")
            self.prompter.info("")
            self.prompter.info("作業を始めるには、AI CLI のセッションで次のコマンドを実行してください:")
            self.prompter.info(f"  {HOOK_COMMAND}")
            return result

        if to:
            return await self._assign_to_crew(result, worktree, to)
        return await self._assign_to_polecat(result, worktree)

    async def _checkout(self, worktree: WorktreeManager, branch: str) -> None:
        ok, message = await worktree.checkout_branch(branch)
        if not ok:
            raise GitCommandError(f"{branch} への切り替えに失敗しました: {message}")

    async def _pending_changes(self, worktree: WorktreeManager, work_name: str) -> str:
        ok, changes = await worktree.get_uncommitted_changes(f"{WORK_DIR}/{work_name}/")
        if not ok:
            raise GitCommandError(f"git status の確認に失敗しました: {changes}")
        return changes

    def _confirm_commit(self, changes: str) -> None:
        if changes:
            self.prompter.warn("work ディレクトリに未コミットの変更があります:")
            self.prompter.info(changes)
        if not self.prompter.confirm("割り当て前にコミットしますか?", default=True):
            raise OperationCancelledError(
                "キャンセルしました", hint="割り当て前に変更をコミットしてください"
            )

    async def _confirm_commit_before_release(
        self, worktree: WorktreeManager, branch: str, work_name: str
    ) -> bool:
        """以前の worktree を削除する前に、後で必要になるコミットの確認を済ませる。

        未コミットの変更があるか、ブランチに hook がまだ無い場合に確認する。

        Returns:
            確認した場合True（コミット不要なら False）

        Raises:
            OperationCancelledError: コミットを拒否した場合
        """
        changes = await self._pending_changes(worktree, work_name)
        hook_committed = await worktree.path_exists_on_branch(
            branch, f"{WORK_DIR}/{work_name}/{HOOK_FILE}"
        )
        if not changes and hook_committed:
            return False
        self._confirm_commit(changes)
        return True

    async def _commit_work_changes(
        self, worktree: WorktreeManager, work_name: str, confirmed: bool = False
    ) -> bool:
        """work ディレクトリの未コミット変更を確認のうえコミットする。

        Args:
            worktree: リポジトリの WorktreeManager
            work_name: work 名
            confirmed: 確認済みの場合は尋ねずにコミットする

        Returns:
            コミットした場合True

        Raises:
            GitCommandError: 状態確認・コミットに失敗した場合
            OperationCancelledError: コミットを拒否した場合
        """
        changes = await self._pending_changes(worktree, work_name)
        if not changes:
            return False
        if not confirmed:
            self._confirm_commit(changes)

        pathspec = f"{WORK_DIR}/{work_name}/"

        commit_message = f"Update work files for {work_name}"
        ok, message = await worktree.commit_paths([pathspec], commit_message)
        if not ok:
            raise GitCommandError(message)
        self.prompter.info(f'✓ 変更をコミットしました: "{commit_message}"')
        return True

    async def _assign_to_crew(
        self, result: SlingResult, worktree: WorktreeManager, name: str
    ) -> SlingResult:
        """既存の crew に割り当てる。キー送信はせず、手順を表示するだけ。"""
        naming.validate_worker_name(name)
        crew_path = self.settings.get_crew_path(result.rig, name)
        if not crew_path.exists():
            raise WorkspaceNotFoundError(
                f"crew ワークスペースが見つかりません: {crew_path}",
                hint=f"先に 'rig crew add {name} --rig={result.rig}' を実行してください",
            )

        current = await worktree.get_current_branch(str(crew_path))
        if current and current != result.branch:
            self.prompter.warn(
                f"{name} はブランチ '{current}' にあります（期待値: '{result.branch}'）"
            )
            if self.prompter.confirm("フィーチャーブランチを checkout しますか?", default=True):
                ok, message = await worktree.checkout_branch(
                    result.branch, path=str(crew_path)
                )
                if not ok:
                    raise GitCommandError(f"ブランチの切り替えに失敗しました: {message}")
                self.prompter.info(f"✓ ブランチを checkout しました: {result.branch}")

        result.mode = SlingMode.CREW
        result.worker = name
        result.path = str(crew_path)
        result.session = self.settings.get_crew_session_name(result.rig, name)

        self.prompter.info(f"✓ ワークスペース: {crew_path}")
        self.prompter.info(f"✓ ブランチ: {result.branch}")
        self.prompter.info("")
        self.prompter.info(f"作業を始めるには、{name} の AI CLI セッションに次のコマンドを貼り付けてください:")
        self.prompter.info(f"  {HOOK_COMMAND}")
        return result

    async def _confirm_reassignment(
        self, work_name: str, worktree: WorktreeManager
    ) -> WorkAssignment | None:
        """フィーチャーブランチを checkout している既存の worktree があれば再割り当てを確認する。

        メインリポジトリ自身が checkout している場合は対象外。確認のみで何も変更しない。

        Returns:
            解放する以前の割り当て（無い場合は None）

        Raises:
            OperationCancelledError: 再割り当てを拒否した場合
        """
        assignment = await self.work.find_assignment(worktree, work_name)
        if assignment is None or assignment.is_main_repo:
            return None

        holder = assignment.worker or assignment.path
        if assignment.worker and is_polecat(assignment.worker):
            holder = f"🐱 {assignment.worker}"
        self.prompter.warn(f"{WORK_DIR}/{work_name} は既に {holder} に割り当てられています")
        self.prompter.info(f"   Workspace: {assignment.path}")
        if not self.prompter.confirm("新しい polecat に再割り当てしますか?", default=False):
            raise OperationCancelledError("キャンセルしました")
        return assignment

    async def _release_assignment(
        self, rig: str, assignment: WorkAssignment, worktree: WorktreeManager
    ) -> None:
        """以前の worker のセッションを終了し、worktree を削除する。

        Raises:
            GitCommandError: 以前の worktree の削除に失敗した場合
        """
        if assignment.worker:
            session = self.settings.get_crew_session_name(rig, assignment.worker)
            if await self.tmux.session_exists(session):
                await self.tmux.kill_session(session)
                self.prompter.info(f"✓ 以前のセッションを終了しました: {session}")

        ok, message = await worktree.remove_worktree(assignment.path)
        if not ok:
            raise GitCommandError(message)
        await worktree.prune_worktrees()
        logger.info(f"以前の割り当てを解放しました: {assignment.path}")
        self.prompter.info(f"✓ 以前の worktree を削除しました: {assignment.path}")

    async def _assign_to_polecat(
        self, result: SlingResult, worktree: WorktreeManager
    ) -> SlingResult:
        """新しい polecat を作成して割り当て、セッションに指示を送る。"""
        used = await self.crew.worker_names(result.rig)
        name = generate_name(used, rng=self.rng)
        self.prompter.info(f"✓ polecat を作成しました: 🐱 {name}")

        workspace = await self.crew.create_from_branch(result.rig, name, result.branch)
        result.mode = SlingMode.POLECAT
        result.worker = name
        result.path = workspace.path
        result.session = workspace.session

        self.prompter.info(f"✓ ワークスペース: {workspace.path}")
        self.prompter.info(f"✓ セッション: {workspace.session}")
        self.prompter.info(f"✓ ブランチ: {result.branch}")

        result.keys_sent = await self._send_assignment(workspace.session)
        if result.keys_sent:
            self.prompter.info("")
            self.prompter.info(f"セッションを開始し、'{HOOK_COMMAND}' を AI CLI に送信しました")
        else:
            self.prompter.warn(
                f"指示の送信に失敗しました。セッション {workspace.session} で "
                f"'{HOOK_COMMAND}' を実行してください"
            )
        return result

    async def _send_assignment(self, session: str) -> bool:
        """AI CLI の起動を待ってから、指示メッセージと hook コマンドを送る。"""
        interval = self.settings.keystroke_interval_seconds
        target = self.tmux.assistant_target(session)

        await self.sleep(self.settings.startup_delay_seconds)
        sent = await self.tmux.send_keys(target, ASSIGNMENT_MESSAGE, enter=False)
        await self.sleep(interval)
        sent = await self.tmux.send_enter(target) and sent
        await self.sleep(interval)
        sent = await self.tmux.send_keys(target, HOOK_COMMAND, enter=False) and sent
        await self.sleep(interval)
        sent = await self.tmux.send_enter(target) and sent
        logger.info(f"割り当ての指示を送信しました: {target} (成功: {sent})")
        return sent
