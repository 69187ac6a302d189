"""設定管理モジュール。"""

import os
from pathlib import Path

from pydantic import AliasChoices, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

from rig.config import naming


def resolve_env_file(home: str | os.PathLike[str] | None = None) -> str | None:
    """ユーザー別 .env ファイルを解決する。

    Args:
        home: ホームディレクトリ（省略時は Path.home()）

    Returns:
        .env ファイルのパス（存在する場合）、または None
    """
    base = Path(home) if home else Path.home()
    env_file = base / ".rig" / ".env"
    if env_file.exists():
        return str(env_file)
    return None


class Settings(BaseSettings):
    """rig の設定。

    プロセス起動時に一度だけ構築し、各マネージャーへ明示的に渡す。
    構築後は変更できない（frozen）。

    優先順位:
    1. 環境変数（最優先）
    2. ~/.rig/.env
    3. デフォルト値
    """

    model_config = ConfigDict(
        env_prefix="RIG_",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # ディレクトリ設定
    rigs_base: Path = Field(
        default_factory=lambda: Path.home() / "git",
        validation_alias=AliasChoices("RIGS_BASE", "RIG_RIGS_BASE", "rigs_base"),
        description="リポジトリを配置するルートディレクトリ",
    )
    """rig（リポジトリ）のルート。<rigs_base>/<repo> がリポジトリ"""

    crew_base: Path = Field(
        default_factory=lambda: Path.home() / "crew",
        validation_alias=AliasChoices("CREW_BASE", "RIG_CREW_BASE", "crew_base"),
        description="crew worktree を配置するルートディレクトリ",
    )
    """crew のルート。<crew_base>/<repo>/<worker> が worktree"""

    # git 設定
    default_branch: str = "main"
    """origin/HEAD が解決できない場合に使うベースブランチ"""

    # tmux 設定
    use_cc: bool = False
    """iTerm2 の tmux -CC 統合を使うか（ペイン分割レイアウトになる）"""

    window_name_assistant: str = "Claude Code"
    """AI CLI を起動するウィンドウ名"""

    window_name_terminal: str = "Terminal"
    """シェル用ウィンドウ名"""

    assistant_command: str = "claude"
    """セッション作成時に起動する AI CLI コマンド"""

    # work 設定
    default_formula: str = "build"
    """sling で formula 未指定時に使う formula 名"""

    # キー送信設定
    startup_delay_seconds: float = Field(
        default=2.0, ge=0, description="AI CLI 起動待ちの秒数"
    )
    """polecat セッション作成後、指示を送るまでの待機秒数"""

    keystroke_interval_seconds: float = Field(
        default=0.1, ge=0, description="キー送信間の待機秒数"
    )
    """連続するキー送信の間に挟む待機秒数"""

    @field_validator("rigs_base", "crew_base", mode="before")
    @classmethod
    def expand_home(cls, value: str | Path) -> Path:
        """~ を展開して Path に変換する。"""
        return Path(os.path.expanduser(str(value)))

    @field_validator("default_branch", "default_formula")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        """空文字を拒否する。"""
        candidate = value.strip()
        if not candidate:
            raise ValueError("空文字は許可されません")
        return candidate

    def get_repo_path(self, rig: str) -> Path:
        """リポジトリのフルパスを返す。"""
        return naming.repo_path(self.rigs_base, rig)

    def get_crew_path(self, rig: str, name: str) -> Path:
        """crew ワークスペースのパスを返す。"""
        return naming.worker_path(self.crew_base, rig, name)

    def get_crew_session_name(self, rig: str, name: str) -> str:
        """crew の tmux セッション名を返す。"""
        return naming.session_name(rig, name)

    def get_crew_branch_name(self, name: str) -> str:
        """crew の作業ブランチ名を返す。"""
        return naming.work_branch_name(name)


def load_settings(home: str | os.PathLike[str] | None = None) -> Settings:
    """.env を反映した Settings を生成する。

    Args:
        home: .env を探すホームディレクトリ（省略時は Path.home()）

    Returns:
        読み込み済み Settings インスタンス
    """
    env_file = resolve_env_file(home)
    if env_file:
        return Settings(_env_file=env_file)
    return Settings(_env_file=None)
