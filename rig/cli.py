"""rig コマンドラインエントリーポイント。"""

import logging

import click
from pydantic import ValidationError

from rig import __version__
from rig.commands import (
    register_crew_commands,
    register_rig_commands,
    register_work_commands,
)
from rig.context import create_app_context

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbosity: int) -> None:
    """ログ出力を設定する。ログは stderr、コマンドの出力は stdout に分ける。

    Args:
        verbosity: -v の個数（0: WARNING, 1: INFO, 2 以上: DEBUG）
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="rig")
@click.option("-v", "--verbose", count=True, help="詳細ログを出力する（-vv でデバッグ）")
@click.pass_context
def cli(ctx: click.Context, verbose: int) -> None:
    """rig - tmux ベースの開発環境を管理する。

    \b
    例:
        rig up myapp            ~/git/myapp の rig を起動
        rig up                  カレントディレクトリから推定して起動
        rig status              稼働中の rig と crew を表示
        rig down myapp          myapp の rig を終了
        rig crew add alice      crew ワークスペースを作成
        rig work create login   work とフィーチャーブランチを作成
        rig sling work/login    work を polecat に割り当て
    """
    setup_logging(verbose)
    if ctx.obj is None:
        try:
            ctx.obj = create_app_context()
        except ValidationError as e:
            raise click.ClickException(f"設定が不正です: {e}") from e


register_rig_commands(cli)
register_crew_commands(cli)
register_work_commands(cli)


def main() -> None:
    """コンソールスクリプトのエントリーポイント。"""
    cli(prog_name="rig")


if __name__ == "__main__":
    main()
