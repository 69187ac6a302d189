"""CLI コマンド共通のヘルパー。"""

import asyncio
import logging
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click

from rig.config.polecat_names import is_polecat
from rig.context import AppContext
from rig.errors import RigError

logger = logging.getLogger(__name__)

T = TypeVar("T")

pass_app = click.make_pass_decorator(AppContext)
"""コマンド関数に AppContext を渡すデコレーター"""


class RigClickException(click.ClickException):
    """RigError を click の終了処理に乗せる例外。"""

    def __init__(self, error: RigError) -> None:
        super().__init__(error.format())
        self.error = error


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """コルーチンを実行し、RigError を click の例外に変換する。"""
    try:
        return asyncio.run(coro)
    except RigError as e:
        logger.debug(f"{type(e).__name__}: {e.message}")
        raise RigClickException(e) from e


def condense_path(path: str, home: Path | None = None) -> str:
    """ホームディレクトリを ~ に置き換える。"""
    home_str = str(home or Path.home())
    if path == home_str or path.startswith(home_str + "/"):
        return "~" + path[len(home_str):]
    return path


def worker_emoji(name: str) -> str:
    """polecat は 🐱、それ以外は 👤。"""
    return "🐱" if is_polecat(name) else "👤"
