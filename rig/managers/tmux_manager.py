"""tmuxセッション管理モジュール。"""

import asyncio
import logging
import os
from collections.abc import Mapping
from typing import TYPE_CHECKING

from rig.config.naming import normalize_session_name
from rig.config.polecat_names import is_polecat

if TYPE_CHECKING:
    from rig.config.settings import Settings

logger = logging.getLogger(__name__)

RIG_WINDOW_EMOJI = "🏗️ "
CREW_WINDOW_EMOJI = "👤"
POLECAT_WINDOW_EMOJI = "🐱"

ASSISTANT_PANE_WIDTH = "70%"
"""CC レイアウトでの AI CLI ペインの幅"""


class TmuxManager:
    """tmuxセッションを管理するクラス。

    全てのセッション名は tmux に渡す前に normalize_session_name で正規化する。
    """

    def __init__(
        self, settings: "Settings", environ: Mapping[str, str] | None = None
    ) -> None:
        """TmuxManagerを初期化する。

        Args:
            settings: アプリケーション設定
            environ: 環境変数（$TMUX の判定に使用。省略時は os.environ）
        """
        self.settings = settings
        self.environ = environ if environ is not None else os.environ

    async def _run(self, *args: str) -> tuple[int, str, str]:
        """tmuxコマンドを実行する。

        Args:
            *args: tmuxコマンドの引数

        Returns:
            (リターンコード, stdout, stderr) のタプル
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                "tmux",
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await proc.communicate()
            return proc.returncode or 0, stdout.decode(), stderr.decode()
        except FileNotFoundError:
            logger.error("tmux がインストールされていません")
            return 1, "", "tmux not found"
        except OSError as e:
            logger.error(f"tmux コマンド実行エラー: {e}")
            return 1, "", str(e)

    async def _run_interactive(self, *args: str) -> int:
        """端末を引き継いで tmux コマンドを実行する（attach / switch-client 用）。

        Args:
            *args: tmuxコマンドの引数

        Returns:
            リターンコード
        """
        try:
            proc = await asyncio.create_subprocess_exec("tmux", *args)
            return await proc.wait()
        except FileNotFoundError:
            logger.error("tmux がインストールされていません")
            return 1
        except OSError as e:
            logger.error(f"tmux コマンド実行エラー: {e}")
            return 1

    def in_tmux(self) -> bool:
        """tmux クライアント内から実行されているか。"""
        return bool(self.environ.get("TMUX"))

    async def session_exists(self, session: str) -> bool:
        """セッションが存在するか確認する。

        Args:
            session: セッション名

        Returns:
            存在する場合True
        """
        code, _, _ = await self._run(
            "has-session", "-t", normalize_session_name(session)
        )
        return code == 0

    async def list_sessions(self) -> list[str]:
        """セッション一覧を取得する。

        サーバーが起動していない場合は空リストを返す。

        Returns:
            セッション名のリスト
        """
        code, stdout, _ = await self._run("list-sessions", "-F", "#{session_name}")
        if code != 0:
            return []
        return [s.strip() for s in stdout.strip().split("\n") if s.strip()]

    async def kill_session(self, session: str) -> bool:
        """セッションを終了する。

        Args:
            session: セッション名

        Returns:
            成功した場合True
        """
        code, _, stderr = await self._run(
            "kill-session", "-t", normalize_session_name(session)
        )
        if code != 0:
            logger.warning(f"セッション終了エラー（既に終了している可能性）: {stderr}")
        return code == 0

    async def get_current_session(self) -> str:
        """現在アタッチしているセッション名を取得する。

        Returns:
            セッション名（tmux 外の場合は空文字）
        """
        if not self.in_tmux():
            return ""
        code, stdout, _ = await self._run("display-message", "-p", "#S")
        if code != 0:
            return ""
        return stdout.strip()

    async def attach_session(self, session: str) -> tuple[bool, str]:
        """セッションにアタッチする。

        tmux 内からは switch-client、外からは attach-session を使う。

        Args:
            session: セッション名

        Returns:
            (成功フラグ, メッセージ) のタプル
        """
        name = normalize_session_name(session)
        if self.in_tmux():
            code = await self._run_interactive("switch-client", "-t", name)
        else:
            args = ["attach-session", "-t", name]
            if self.settings.use_cc:
                args.insert(0, "-CC")
            code = await self._run_interactive(*args)

        if code != 0:
            return False, f"セッションへのアタッチに失敗しました: {name}"
        return True, f"セッションにアタッチしました: {name}"

    async def attach_default(self) -> tuple[bool, str]:
        """直近のセッションにアタッチする。

        Returns:
            (成功フラグ, メッセージ) のタプル
        """
        if self.in_tmux():
            return False, "既に tmux セッション内にいます"

        args = ["attach-session"]
        if self.settings.use_cc:
            args.insert(0, "-CC")
        code = await self._run_interactive(*args)
        if code != 0:
            return False, "セッションへのアタッチに失敗しました"
        return True, "セッションにアタッチしました"

    async def send_keys(self, target: str, text: str, enter: bool = True) -> bool:
        """ターゲットにキー入力を送信する。

        テキストはリテラルとして送り、Enter は別途送信する。

        Args:
            target: 送信先（セッション名またはペイン指定）
            text: 送信するテキスト
            enter: 最後に Enter を送信するか

        Returns:
            成功した場合True
        """
        code, _, stderr = await self._run("send-keys", "-t", target, "-l", text)
        if code != 0:
            logger.error(f"キー送信エラー: {stderr}")
            return False

        if not enter:
            return True

        code, _, stderr = await self._run("send-keys", "-t", target, "Enter")
        if code != 0:
            logger.error(f"Enterキー送信エラー: {stderr}")
        return code == 0

    async def send_enter(self, target: str) -> bool:
        """ターゲットに Enter を送信する。"""
        code, _, stderr = await self._run("send-keys", "-t", target, "Enter")
        if code != 0:
            logger.error(f"Enterキー送信エラー: {stderr}")
        return code == 0

    def assistant_target(self, session: str) -> str:
        """AI CLI が動いているペインのターゲットを返す。"""
        name = normalize_session_name(session)
        if self.settings.use_cc:
            return f"{name}:.0"
        return f"{name}:{self.settings.window_name_assistant}"

    def terminal_target(self, session: str) -> str:
        """シェル用ペインのターゲットを返す。"""
        name = normalize_session_name(session)
        if self.settings.use_cc:
            return f"{name}:.1"
        return f"{name}:{self.settings.window_name_terminal}"

    async def create_rig_session(self, session: str, repo_path: str) -> tuple[bool, str]:
        """rig（リポジトリ）用のセッションを作成する。

        Args:
            session: セッション名
            repo_path: リポジトリのパス

        Returns:
            (成功フラグ, メッセージ) のタプル
        """
        name = normalize_session_name(session)
        return await self._create_session(
            name,
            repo_path,
            cc_window_name=f"{RIG_WINDOW_EMOJI} {name}",
            header=f"# {name} terminal",
        )

    async def create_crew_session(
        self,
        session: str,
        crew_path: str,
        rig: str,
        member: str,
        branch: str,
    ) -> tuple[bool, str]:
        """crew / polecat 用のセッションを作成する。

        Args:
            session: セッション名
            crew_path: worktree のパス
            rig: リポジトリ名
            member: worker 名
            branch: worktree のブランチ名

        Returns:
            (成功フラグ, メッセージ) のタプル
        """
        name = normalize_session_name(session)
        emoji = POLECAT_WINDOW_EMOJI if is_polecat(member) else CREW_WINDOW_EMOJI
        return await self._create_session(
            name,
            crew_path,
            cc_window_name=f"{emoji} {name}",
            header=f"# {member} on {rig} (branch: {branch})",
        )

    async def _create_session(
        self, name: str, working_dir: str, cc_window_name: str, header: str
    ) -> tuple[bool, str]:
        """レイアウトを選んでセッションを作成する。"""
        if self.settings.use_cc:
            ok, message = await self._create_cc_layout(name, working_dir, cc_window_name)
        else:
            ok, message = await self._create_native_layout(name, working_dir)
        if not ok:
            return False, message

        interval = self.settings.keystroke_interval_seconds
        assistant = self.assistant_target(name)
        terminal = self.terminal_target(name)

        await self.send_keys(assistant, f"cd {working_dir}")
        await asyncio.sleep(interval)
        await self.send_keys(assistant, self.settings.assistant_command)

        await self.send_keys(terminal, f"cd {working_dir}")
        await self.send_keys(terminal, f"echo '{header}'")
        await self.send_keys(terminal, "git status")

        logger.info(f"セッションを作成しました: {name} ({working_dir})")
        return True, f"セッションを作成しました: {name}"

    async def _create_native_layout(
        self, name: str, working_dir: str
    ) -> tuple[bool, str]:
        """AI CLI ウィンドウとターミナルウィンドウの 2 ウィンドウ構成を作成する。

        ウィンドウは base-index に依存しないよう名前で指定する。
        """
        code, _, stderr = await self._run(
            "new-session", "-d", "-s", name,
            "-n", self.settings.window_name_assistant,
            "-c", working_dir,
        )
        if code != 0:
            logger.error(f"セッション作成エラー: {stderr}")
            return False, f"セッション作成に失敗しました: {stderr.strip()}"

        code, _, stderr = await self._run(
            "new-window", "-t", name,
            "-n", self.settings.window_name_terminal,
            "-c", working_dir,
        )
        if code != 0:
            logger.error(f"ターミナルウィンドウ作成エラー: {stderr}")
            await self.kill_session(name)
            return False, f"ターミナルウィンドウ作成に失敗しました: {stderr.strip()}"

        await self._run(
            "select-window", "-t", f"{name}:{self.settings.window_name_assistant}"
        )
        return True, ""

    async def _create_cc_layout(
        self, name: str, working_dir: str, window_name: str
    ) -> tuple[bool, str]:
        """1 ウィンドウを左右 70:30 に分割した iTerm2 向け構成を作成する。"""
        code, _, stderr = await self._run(
            "new-session", "-d", "-s", name, "-n", window_name, "-c", working_dir
        )
        if code != 0:
            logger.error(f"セッション作成エラー: {stderr}")
            return False, f"セッション作成に失敗しました: {stderr.strip()}"

        # ペイン番号を pane-base-index に依存させない
        await self._run("set-option", "-t", name, "pane-base-index", "0")
        await self._run("set-window-option", "-t", name, "automatic-rename", "off")

        code, _, stderr = await self._run(
            "split-window", "-h", "-t", name, "-c", working_dir
        )
        if code != 0:
            logger.error(f"ペイン分割エラー: {stderr}")
            await self.kill_session(name)
            return False, f"ペイン分割に失敗しました: {stderr.strip()}"

        await self._run(
            "select-pane", "-t", f"{name}:.0", "-T", self.settings.window_name_assistant
        )
        await self._run(
            "select-pane", "-t", f"{name}:.1", "-T", self.settings.window_name_terminal
        )
        await self._run("resize-pane", "-t", f"{name}:.0", "-x", ASSISTANT_PANE_WIDTH)
        await self._run("select-pane", "-t", f"{name}:.0")
        return True, ""
