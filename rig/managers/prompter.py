"""ユーザーへの確認・メッセージ表示のインターフェース。

マネージャーは入出力を直接扱わず、注入された Prompter を経由する。
"""

import logging
from collections import deque
from collections.abc import Iterable
from typing import Protocol

import click

logger = logging.getLogger(__name__)


class Prompter(Protocol):
    """確認プロンプトと進捗表示の抽象。"""

    def confirm(self, message: str, default: bool = True) -> bool:
        """はい/いいえを尋ねる。"""
        ...

    def info(self, message: str) -> None:
        """進捗メッセージを表示する。"""
        ...

    def warn(self, message: str) -> None:
        """警告メッセージを表示する。"""
        ...


class ClickPrompter:
    """click を使った対話用 Prompter。"""

    def confirm(self, message: str, default: bool = True) -> bool:
        return click.confirm(message, default=default)

    def info(self, message: str) -> None:
        click.echo(message)

    def warn(self, message: str) -> None:
        click.secho(f"⚠️  {message}", fg="yellow", err=True)


class ScriptedPrompter:
    """あらかじめ決めた回答を返す Prompter。

    回答が尽きた場合は各プロンプトのデフォルト値を返す。
    表示したメッセージと尋ねたプロンプトは全て記録する。
    """

    def __init__(self, answers: Iterable[bool] = ()) -> None:
        """ScriptedPrompter を初期化する。

        Args:
            answers: confirm に順に返す回答
        """
        self._answers = deque(answers)
        self.prompts: list[str] = []
        self.messages: list[str] = []
        self.warnings: list[str] = []

    def confirm(self, message: str, default: bool = True) -> bool:
        self.prompts.append(message)
        if self._answers:
            answer = self._answers.popleft()
        else:
            answer = default
        logger.debug(f"確認 '{message}' -> {answer}")
        return answer

    def info(self, message: str) -> None:
        self.messages.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)
