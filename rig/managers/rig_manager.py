"""rig（リポジトリ単位の tmux セッション）管理モジュール。"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from rig.config.naming import SESSION_SEPARATOR, normalize_session_name
from rig.errors import (
    NotFoundError,
    RepositoryNotFoundError,
    RigError,
    SessionCreationError,
)
from rig.managers.crew_manager import list_subdirs
from rig.managers.worktree_manager import WorktreeManager
from rig.models.workspace import RepoEntry, RigSession

if TYPE_CHECKING:
    from rig.config.settings import Settings
    from rig.managers.context_resolver import ContextResolver
    from rig.managers.crew_manager import CrewManager
    from rig.managers.prompter import Prompter
    from rig.managers.tmux_manager import TmuxManager

logger = logging.getLogger(__name__)


class RigManager:
    """rig セッションを管理するクラス。"""

    def __init__(
        self,
        settings: "Settings",
        tmux: "TmuxManager",
        prompter: "Prompter",
        crew: "CrewManager",
        resolver: "ContextResolver",
        worktree_factory: Callable[[str], WorktreeManager] = WorktreeManager,
    ) -> None:
        self.settings = settings
        self.tmux = tmux
        self.prompter = prompter
        self.crew = crew
        self.resolver = resolver
        self.worktree_factory = worktree_factory

    async def _resolve(self, name: str | None) -> str:
        if name:
            return name
        rig = await self.resolver.resolve_rig()
        self.prompter.info(f"推定した rig: {rig}")
        return rig

    async def _attach(self, session: str) -> None:
        ok, message = await self.tmux.attach_session(session)
        if not ok:
            raise RigError(message)

    def _known_rigs(self) -> dict[str, str]:
        """正規化済みセッション名 → rig 名（git リポジトリのみ）。"""
        return {
            normalize_session_name(path.name): path.name
            for path in list_subdirs(self.settings.rigs_base)
            if self.worktree_factory(str(path)).is_git_repo()
        }

    async def up(self, name: str | None = None, attach: bool = True) -> str:
        """rig セッションを作成（または既存に切り替え）してアタッチする。

        Args:
            name: rig 名（省略時はコンテキストから推定）
            attach: 最後にアタッチするか

        Returns:
            rig 名

        Raises:
            AmbiguousContextError: rig を推定できない場合
            RepositoryNotFoundError: リポジトリが存在しない場合
            SessionCreationError: セッションの作成に失敗した場合
        """
        rig = await self._resolve(name)
        repo_path = self.settings.get_repo_path(rig)
        if not self.worktree_factory(str(repo_path)).is_git_repo():
            raise RepositoryNotFoundError(f"リポジトリが見つかりません: {repo_path}")

        if await self.tmux.session_exists(rig):
            self.prompter.info(f"既存の rig に切り替えます: {rig}")
        else:
            self.prompter.info(f"新しい rig を作成します: {rig}")
            self.prompter.info(f"Repo: {repo_path}")
            ok, message = await self.tmux.create_rig_session(rig, str(repo_path))
            if not ok:
                raise SessionCreationError(f"rig セッションの作成に失敗しました: {message}")
            self.prompter.info(f"✓ rig を作成しました: {rig}")

        if attach:
            await self._attach(rig)
        return rig

    async def down(self, name: str | None = None) -> str:
        """rig セッションを終了する。

        Raises:
            NotFoundError: セッションが存在しない場合
        """
        rig = await self._resolve(name)
        if not await self.tmux.session_exists(rig):
            raise NotFoundError(f"rig が見つかりません: {rig}")
        if not await self.tmux.kill_session(rig):
            raise RigError(f"rig の終了に失敗しました: {rig}")
        self.prompter.info(f"✓ rig を終了しました: {rig}")
        return rig

    async def list_repos(self) -> list[RepoEntry]:
        """rigs_base 配下の git リポジトリを列挙する。

        Raises:
            NotFoundError: rigs_base が存在しない場合
        """
        if not self.settings.rigs_base.is_dir():
            raise NotFoundError(
                f"ベースディレクトリが存在しません: {self.settings.rigs_base}"
            )

        repos: list[RepoEntry] = []
        for path in list_subdirs(self.settings.rigs_base):
            if not self.worktree_factory(str(path)).is_git_repo():
                continue
            repos.append(
                RepoEntry(
                    name=path.name,
                    path=str(path),
                    running=await self.tmux.session_exists(path.name),
                )
            )
        return repos

    async def status(self) -> tuple[list[RigSession], list[RigSession]]:
        """稼働中の rig セッションと crew セッションを返す。

        実在するリポジトリ・ワークスペースに対応するセッションのみを含める。

        Returns:
            (rig セッション, crew セッション) のタプル
        """
        sessions = await self.tmux.list_sessions()
        current = await self.tmux.get_current_session()
        current_normalized = normalize_session_name(current) if current else ""

        known_rigs = self._known_rigs()
        rig_sessions: list[RigSession] = []
        for session in sessions:
            if SESSION_SEPARATOR in session:
                continue
            rig = known_rigs.get(normalize_session_name(session))
            if rig is None:
                continue
            repo_path = self.settings.get_repo_path(rig)
            branch = await self.worktree_factory(str(repo_path)).get_current_branch()
            rig_sessions.append(
                RigSession(
                    session=session,
                    rig=rig,
                    path=str(repo_path),
                    branch=branch or "unknown",
                    current=normalize_session_name(session) == current_normalized,
                )
            )

        crew_sessions = await self.crew.active_sessions(sessions, current)
        return rig_sessions, crew_sessions

    async def switch(self, session: str) -> None:
        """指定セッションに切り替える。

        Raises:
            NotFoundError: セッションが存在しない場合
        """
        if not await self.tmux.session_exists(session):
            raise NotFoundError(f"セッションが見つかりません: {session}")
        await self._attach(session)

    async def attach(self, session: str | None = None) -> None:
        """セッションにアタッチする。省略時は直近のセッション。"""
        if session:
            await self.switch(session)
            return
        ok, message = await self.tmux.attach_default()
        if not ok:
            raise RigError(message)

    async def killall(
        self, include_crew: bool = False, crew_only: bool = False
    ) -> list[str]:
        """rig（と crew）のセッションをまとめて終了する。

        Args:
            include_crew: crew セッションも終了するか
            crew_only: crew セッションのみを終了するか

        Returns:
            終了したセッション名
        """
        sessions = await self.tmux.list_sessions()
        if not sessions:
            return []

        known_rigs = self._known_rigs()
        crew_sessions = {
            s.session for s in await self.crew.active_sessions(sessions, "")
        }

        killed: list[str] = []
        for session in sessions:
            is_crew = session in crew_sessions
            is_rig = (
                SESSION_SEPARATOR not in session
                and normalize_session_name(session) in known_rigs
            )
            if crew_only:
                should_kill = is_crew
            elif include_crew:
                should_kill = is_rig or is_crew
            else:
                should_kill = is_rig

            if should_kill and await self.tmux.kill_session(session):
                self.prompter.info(f"  Killed: {session}")
                killed.append(session)
        return killed
