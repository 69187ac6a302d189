"""git worktree 管理モジュール。

rig / crew / polecat が必要とする git 操作（ブランチ・worktree・コミット）を
git コマンドの薄いラッパーとして提供する。
"""

import asyncio
import logging
import os
import subprocess
from pathlib import Path

from rig.errors import NoBaseBranchError
from rig.models.workspace import WorktreeInfo

logger = logging.getLogger(__name__)

COMMON_BASE_BRANCHES = ("main", "master", "develop")
"""origin/HEAD と設定値で解決できない場合に試すブランチ名"""


class WorktreeManager:
    """git worktree を管理するクラス。

    repo_path を作業ディレクトリとして git コマンドを実行する。
    """

    def __init__(self, repo_path: str | os.PathLike[str]) -> None:
        """WorktreeManagerを初期化する。

        Args:
            repo_path: メインリポジトリのパス
        """
        self.repo_path = str(repo_path)

    async def _run_command(
        self, *args: str, cwd: str | None = None
    ) -> tuple[int, str, str]:
        """コマンドを実行する。

        Args:
            *args: コマンドと引数
            cwd: 作業ディレクトリ（省略時はrepo_path）

        Returns:
            (リターンコード, stdout, stderr) のタプル
        """
        work_dir = cwd or self.repo_path
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=work_dir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await proc.communicate()
            return proc.returncode or 0, stdout.decode(), stderr.decode()
        except FileNotFoundError:
            return 1, "", f"コマンドまたはディレクトリが見つかりません: {args[0]} ({work_dir})"
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"コマンド実行エラー: {e}")
            return 1, "", str(e)

    async def _run_git(
        self, *args: str, cwd: str | None = None
    ) -> tuple[int, str, str]:
        """gitコマンドを実行する。

        Args:
            *args: gitコマンドの引数
            cwd: 作業ディレクトリ（省略時はrepo_path）

        Returns:
            (リターンコード, stdout, stderr) のタプル
        """
        return await self._run_command("git", *args, cwd=cwd)

    def is_git_repo(self) -> bool:
        """repo_path がリポジトリのルートか確認する。

        サブディレクトリではなく、.git を直下に持つディレクトリのみを
        リポジトリとして扱う。

        Returns:
            有効なgitリポジトリの場合True
        """
        return (Path(self.repo_path) / ".git").exists()

    async def get_repo_root(self) -> str | None:
        """repo_path を含むリポジトリのルートを取得する。

        Returns:
            ルートの絶対パス、リポジトリ外の場合は None
        """
        code, stdout, _ = await self._run_git("rev-parse", "--show-toplevel")
        if code != 0:
            return None
        return stdout.strip() or None

    async def branch_exists(self, branch: str) -> bool:
        """ローカルブランチが存在するか確認する。"""
        code, _, _ = await self._run_git(
            "show-ref", "--verify", "--quiet", f"refs/heads/{branch}"
        )
        return code == 0

    async def resolve_default_remote_branch(self) -> str | None:
        """origin/HEAD が指すブランチ名を取得する。

        ローカルに同名ブランチが存在する場合のみ返す。
        """
        code, stdout, _ = await self._run_git(
            "symbolic-ref", "refs/remotes/origin/HEAD"
        )
        if code != 0:
            return None
        branch = stdout.strip().removeprefix("refs/remotes/origin/")
        if branch and await self.branch_exists(branch):
            return branch
        return None

    async def get_base_branch(self, default_branch: str) -> str:
        """ベースブランチを解決する。

        優先順位: origin/HEAD → 設定のデフォルトブランチ → main → master → develop

        Args:
            default_branch: 設定で指定されたデフォルトブランチ

        Returns:
            ベースブランチ名

        Raises:
            NoBaseBranchError: いずれのブランチも存在しない場合
        """
        remote_default = await self.resolve_default_remote_branch()
        if remote_default:
            return remote_default

        if await self.branch_exists(default_branch):
            return default_branch

        for branch in COMMON_BASE_BRANCHES:
            if await self.branch_exists(branch):
                return branch

        tried = ", ".join(["origin/HEAD", default_branch, *COMMON_BASE_BRANCHES])
        raise NoBaseBranchError(f"ベースブランチが見つかりません（試行: {tried}）")

    async def create_worktree(
        self,
        path: str,
        branch: str,
        create_branch: bool = True,
        base_branch: str | None = None,
    ) -> tuple[bool, str, str | None]:
        """新しいworktreeを作成する。

        Args:
            path: worktreeのパス
            branch: ブランチ名
            create_branch: 新しいブランチを作成するか（False の場合は既存ブランチを使う）
            base_branch: 新しいブランチの基点となるブランチ（省略時はHEAD）

        Returns:
            (成功フラグ, メッセージ, 実際のworktreeパス) のタプル
        """
        if os.path.exists(path):
            return False, f"パスが既に存在します: {path}", None

        args = ["worktree", "add"]

        if create_branch:
            args.extend(["-b", branch])
            args.append(path)
            if base_branch:
                args.append(base_branch)
        else:
            args.append(path)
            args.append(branch)

        code, stdout, stderr = await self._run_git(*args)

        if code != 0:
            logger.error(f"worktree作成エラー: {stderr}")
            return False, f"worktree作成に失敗しました: {stderr.strip()}", None

        logger.info(f"worktreeを作成しました: {path} ({branch})")
        return True, f"worktreeを作成しました: {path}", path

    async def remove_worktree(self, path: str, force: bool = True) -> tuple[bool, str]:
        """worktreeを削除する。

        ブランチは削除しない（削除するかは呼び出し側が決める）。

        Args:
            path: worktreeのパス
            force: 未コミットの変更があっても削除するか

        Returns:
            (成功フラグ, メッセージ) のタプル
        """
        args = ["worktree", "remove"]
        if force:
            args.append("--force")
        args.append(path)

        code, stdout, stderr = await self._run_git(*args)

        if code != 0:
            logger.warning(f"worktree削除エラー: {stderr}")
            return False, f"worktree削除に失敗しました: {stderr.strip()}"

        logger.info(f"worktreeを削除しました: {path}")
        return True, f"worktreeを削除しました: {path}"

    async def prune_worktrees(self) -> tuple[bool, str]:
        """削除済みディレクトリの worktree 情報をクリーンアップする。

        Returns:
            (成功フラグ, メッセージ) のタプル
        """
        code, stdout, stderr = await self._run_git("worktree", "prune")

        if code != 0:
            logger.warning(f"worktree prune 失敗: {stderr}")
            return False, f"prune失敗: {stderr.strip()}"

        return True, "worktree情報をクリーンアップしました"

    async def delete_branch(self, branch: str) -> tuple[bool, str]:
        """ブランチを強制削除する。"""
        code, _, stderr = await self._run_git("branch", "-D", branch)
        if code != 0:
            logger.warning(f"ブランチ削除に失敗: {branch} - {stderr}")
            return False, f"ブランチ削除に失敗しました: {stderr.strip()}"

        logger.info(f"ブランチを削除しました: {branch}")
        return True, f"ブランチを削除しました: {branch}"

    async def get_current_branch(self, path: str | None = None) -> str:
        """現在のブランチ名を取得する。

        Args:
            path: 作業ディレクトリ（省略時はrepo_path）

        Returns:
            ブランチ名（取得できない場合や detached HEAD の場合は空文字）
        """
        code, stdout, _ = await self._run_git("branch", "--show-current", cwd=path)
        return stdout.strip() if code == 0 else ""

    async def checkout_branch(
        self, branch: str, path: str | None = None
    ) -> tuple[bool, str]:
        """ブランチを checkout する。

        Args:
            branch: ブランチ名
            path: 作業ディレクトリ（省略時はrepo_path）

        Returns:
            (成功フラグ, メッセージ) のタプル
        """
        code, _, stderr = await self._run_git("checkout", branch, cwd=path)
        if code != 0:
            logger.error(f"checkout エラー: {stderr}")
            return False, f"checkout に失敗しました: {stderr.strip()}"
        return True, f"{branch} に切り替えました"

    async def create_feature_branch(
        self, branch: str, base_branch: str
    ) -> tuple[bool, str]:
        """base_branch から新しいブランチを作成して checkout する。"""
        code, _, stderr = await self._run_git("checkout", "-b", branch, base_branch)
        if code != 0:
            logger.error(f"ブランチ作成エラー: {stderr}")
            return False, f"ブランチ作成に失敗しました: {stderr.strip()}"
        return True, f"ブランチを作成しました: {branch}"

    async def get_uncommitted_changes(self, pathspec: str) -> tuple[bool, str]:
        """指定パス配下の未コミット変更を取得する。

        Args:
            pathspec: 対象パス（リポジトリルートからの相対）

        Returns:
            (成功フラグ, git status --porcelain の出力) のタプル
        """
        code, stdout, stderr = await self._run_git(
            "status", "--porcelain", "--", pathspec
        )
        if code != 0:
            logger.error(f"git status エラー: {stderr}")
            return False, stderr.strip()
        return True, stdout.strip()

    async def commit_paths(self, paths: list[str], message: str) -> tuple[bool, str]:
        """指定パスをステージしてコミットする。

        Args:
            paths: ステージするパス
            message: コミットメッセージ

        Returns:
            (成功フラグ, メッセージ) のタプル
        """
        code, _, stderr = await self._run_git("add", "--", *paths)
        if code != 0:
            logger.error(f"git add エラー: {stderr}")
            return False, f"ステージに失敗しました: {stderr.strip()}"

        code, _, stderr = await self._run_git("commit", "-m", message)
        if code != 0:
            logger.error(f"git commit エラー: {stderr}")
            return False, f"コミットに失敗しました: {stderr.strip()}"

        logger.info(f"コミットしました: {message}")
        return True, message

    async def list_worktrees(self) -> list[WorktreeInfo]:
        """worktree一覧を取得する。

        Returns:
            WorktreeInfo のリスト
        """
        code, stdout, stderr = await self._run_git("worktree", "list", "--porcelain")

        if code != 0:
            logger.error(f"worktree一覧取得エラー: {stderr}")
            return []

        worktrees: list[WorktreeInfo] = []
        current: dict[str, str] = {}

        for line in stdout.strip().split("\n"):
            line = line.strip()
            if not line:
                if current:
                    worktrees.append(self._parse_worktree_info(current))
                    current = {}
                continue

            if " " in line:
                key, value = line.split(" ", 1)
                current[key] = value
            else:
                current[line] = "true"

        if current:
            worktrees.append(self._parse_worktree_info(current))

        return worktrees

    def _parse_worktree_info(self, data: dict[str, str]) -> WorktreeInfo:
        """worktree情報をパースする。

        Args:
            data: パース済みのworktreeデータ

        Returns:
            WorktreeInfo オブジェクト
        """
        return WorktreeInfo(
            path=data.get("worktree", ""),
            branch=data.get("branch", "").replace("refs/heads/", ""),
            commit=data.get("HEAD", ""),
            is_bare="bare" in data,
            is_detached="detached" in data,
            locked="locked" in data,
            prunable="prunable" in data,
        )

    async def worktree_is_registered(self, path: str) -> bool:
        """指定パスが worktree として git に登録されているか確認する。

        ディレクトリが削除済みでも登録が残っていれば True を返す。
        """
        target = os.path.realpath(path)
        for wt in await self.list_worktrees():
            if wt.path and os.path.realpath(wt.path) == target:
                return True
        return False

    async def path_exists_on_branch(self, branch: str, path: str) -> bool:
        """ブランチにコミット済みのパスが存在するか確認する。"""
        code, _, _ = await self._run_git("cat-file", "-e", f"{branch}:{path}")
        return code == 0

    async def list_branch_files(self, branch: str, directory: str) -> list[str]:
        """ブランチにコミット済みのディレクトリ直下のパス一覧を返す。

        Args:
            branch: ブランチ名
            directory: リポジトリルートからの相対パス

        Returns:
            リポジトリルートからの相対パスのリスト（存在しない場合は空リスト）
        """
        code, stdout, _ = await self._run_git(
            "ls-tree", "--name-only", branch, f"{directory.rstrip('/')}/"
        )
        if code != 0:
            return []
        return [line for line in stdout.splitlines() if line]

    async def read_branch_file(self, branch: str, path: str) -> str | None:
        """ブランチにコミット済みのファイル内容を返す。存在しなければ None。"""
        code, stdout, _ = await self._run_git("show", f"{branch}:{path}")
        if code != 0:
            return None
        return stdout
