"""rig の例外定義。

全ての例外は RigError を基底とし、ユーザーに提示するメッセージと
必要に応じて復旧用のコマンド（hint）を持つ。
"""


class RigError(Exception):
    """rig の基底例外。"""

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def format(self) -> str:
        """メッセージと hint を結合した表示用文字列を返す。"""
        if self.hint:
            return f"{self.message}\n{self.hint}"
        return self.message


class InvalidNameError(RigError, ValueError):
    """crew 名が命名規則に違反している。"""


class RepositoryNotFoundError(RigError):
    """リポジトリが存在しない、または git リポジトリではない。"""


class WorkspaceNotFoundError(RigError):
    """crew ワークスペース（worktree）が存在しない。"""


class NotFoundError(RigError):
    """worktree もセッションも見つからない。"""


class AmbiguousContextError(RigError):
    """現在のコンテキストから rig を推定できない。"""


class NoBaseBranchError(RigError):
    """ベースブランチを解決できない。"""


class WorktreeCreationError(RigError):
    """worktree の作成に失敗した。"""


class SessionCreationError(RigError):
    """tmux セッションの作成に失敗した。"""


class OperationCancelledError(RigError):
    """ユーザーが確認を拒否して操作を中断した。"""


class FormulaNotFoundError(RigError):
    """指定された formula が存在しない。"""

    def __init__(
        self, message: str, available: list[str] | None = None, hint: str | None = None
    ) -> None:
        self.available = list(available or [])
        if hint is None:
            if self.available:
                hint = f"利用可能な formula: {', '.join(self.available)}"
            else:
                hint = "利用可能な formula がありません"
        super().__init__(message, hint)


class HookExistsError(RigError):
    """別の formula で生成済みの hook が存在する。"""


class InvalidWorkPathError(RigError):
    """work パスの形式が不正（work/<name> ではない）。"""


class WorkItemNotFoundError(RigError):
    """work ディレクトリが存在しない。"""


class BranchNotFoundError(RigError):
    """必要なブランチが存在しない。"""


class GitCommandError(RigError):
    """git 操作（checkout / commit など）に失敗した。"""
