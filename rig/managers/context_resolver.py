"""実行コンテキストから対象 rig（リポジトリ）を推定するモジュール。"""

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from rig.config.naming import (
    SESSION_SEPARATOR,
    normalize_session_name,
    split_session_name,
)
from rig.errors import AmbiguousContextError
from rig.managers.crew_manager import list_subdirs
from rig.managers.worktree_manager import WorktreeManager

if TYPE_CHECKING:
    from rig.config.settings import Settings
    from rig.managers.tmux_manager import TmuxManager

logger = logging.getLogger(__name__)


def _strictly_under(path: Path, base: Path) -> bool:
    """path が base の子孫（base 自身は除く）か判定する。"""
    return path != base and path.is_relative_to(base)


class ContextResolver:
    """rig 名を推定するクラス。

    優先順位:
    1. 明示的な指定
    2. カレントディレクトリが rigs_base 配下 → git ルートのディレクトリ名
    3. カレントディレクトリが crew_base 配下 → crew_base からの最初のパス要素
    4. 現在の tmux セッション名

    状態の読み取りのみを行い、何も変更しない。
    """

    def __init__(
        self,
        settings: "Settings",
        tmux: "TmuxManager",
        worktree_factory: Callable[[str], WorktreeManager] = WorktreeManager,
        cwd: str | os.PathLike[str] | None = None,
    ) -> None:
        """ContextResolver を初期化する。

        Args:
            settings: アプリケーション設定
            tmux: セッション情報の取得に使う TmuxManager
            worktree_factory: リポジトリパスから WorktreeManager を得る関数
            cwd: カレントディレクトリ（省略時は解決時の os.getcwd()）
        """
        self.settings = settings
        self.tmux = tmux
        self.worktree_factory = worktree_factory
        self._cwd = cwd

    @property
    def cwd(self) -> Path:
        """解決済みのカレントディレクトリ。"""
        return Path(self._cwd if self._cwd is not None else os.getcwd()).resolve()

    async def resolve_rig(self, explicit: str | None = None) -> str:
        """対象 rig 名を解決する。

        Args:
            explicit: 明示的に指定された rig 名（存在確認はしない）

        Returns:
            rig 名

        Raises:
            AmbiguousContextError: どの方法でも推定できない場合
        """
        if explicit:
            return explicit

        cwd = self.cwd
        rigs_base = self.settings.rigs_base.resolve()
        crew_base = self.settings.crew_base.resolve()

        if _strictly_under(cwd, rigs_base):
            root = await self.worktree_factory(str(cwd)).get_repo_root()
            if root:
                rig = Path(root).name
                logger.debug(f"rigs_base 配下のカレントディレクトリから推定: {rig}")
                return rig

        # worktree 自身の git ルートではなく <crew_base>/<rig>/<worker> の構造から読む
        if _strictly_under(cwd, crew_base):
            rig = cwd.relative_to(crew_base).parts[0]
            logger.debug(f"crew_base 配下のカレントディレクトリから推定: {rig}")
            return rig

        session = await self.tmux.get_current_session()
        if session:
            if SESSION_SEPARATOR in session:
                segment, _ = split_session_name(session)
                rig = self._repo_for_session(segment) or segment
                logger.debug(f"crew セッション名から推定: {rig}")
                return rig
            rig = self._repo_for_session(session)
            if rig:
                logger.debug(f"rig セッション名から推定: {rig}")
                return rig

        raise AmbiguousContextError(
            "rig を推定できませんでした",
            hint=(
                "--rig=<repo> を指定するか、"
                f"{self.settings.rigs_base} または {self.settings.crew_base} "
                "配下のリポジトリ内で実行してください"
            ),
        )

    def _repo_for_session(self, segment: str) -> str | None:
        """セッション名の rig 部分から実在するリポジトリ名を引く。

        tmux は . を _ に置き換えて保存するため、rigs_base 直下の
        ディレクトリ名を正規化して照合する。同名のディレクトリを優先する。
        """
        if self.worktree_factory(str(self.settings.get_repo_path(segment))).is_git_repo():
            return segment
        normalized = normalize_session_name(segment)
        for path in list_subdirs(self.settings.rigs_base):
            if (
                normalize_session_name(path.name) == normalized
                and self.worktree_factory(str(path)).is_git_repo()
            ):
                return path.name
        return None
