"""work item 関連のコマンド（work / hook / sling）。"""

import click

from rig.commands.common import pass_app, run_async, worker_emoji
from rig.context import AppContext
from rig.errors import RepositoryNotFoundError
from rig.models.work import WorkInit


async def _repo_root(app: AppContext) -> str:
    root = await app.get_worktree_manager(app.cwd).get_repo_root()
    if not root:
        raise RepositoryNotFoundError(f"git リポジトリ内ではありません: {app.cwd}")
    return root


def register_work_commands(cli: click.Group) -> None:
    """work / hook / sling コマンドを登録する。"""

    @cli.group()
    def work() -> None:
        """フィーチャー作業（work item）を管理する。"""

    @work.command()
    @click.argument("name")
    @pass_app
    def create(app: AppContext, name: str) -> None:
        """work ディレクトリとフィーチャーブランチを作成する。"""

        async def _create() -> WorkInit:
            root = await _repo_root(app)
            return await app.work().initialize(root, name)

        result = run_async(_create())
        click.echo()
        click.echo("次のステップ:")
        click.echo(f"  1. work/{name}/spec.md を編集する")
        click.echo(f"  2. 準備ができたら: rig sling work/{name}")
        click.echo()
        click.echo(f"現在のブランチ: {result.branch}")

    @work.command(name="status")
    @pass_app
    def work_status(app: AppContext) -> None:
        """全 rig の進行中の work を表示する。"""
        click.echo("💼 進行中の work")
        click.echo()

        if not app.settings.crew_base.is_dir():
            click.echo("crew ワークスペースが見つかりません")
            return

        entries = run_async(app.work().collect_work_status())
        if not entries:
            click.echo("進行中の work はありません")
            click.echo()
            click.echo("work の作成: rig work create <name>")
            click.echo("work の割り当て: rig sling work/<name>")
            return

        for rig, items in entries.items():
            click.echo(f"🏗️  {rig}")
            for item in items:
                click.echo(
                    f"  {item.work_name:<20} [{item.status:<14}] "
                    f"{worker_emoji(item.assigned_to)} {item.assigned_to:<18} {item.branch}"
                )
                if item.current_task:
                    click.echo(f"    → {item.current_task}")
            click.echo()

    @work.command()
    @pass_app
    def formulas(app: AppContext) -> None:
        """利用可能な formula を一覧表示する。"""
        root = run_async(_repo_root(app))
        names = app.work().list_formulas(root)
        if not names:
            click.echo("formula がありません（rig work create で build が設置されます）")
            return
        for formula in names:
            click.echo(f"  {formula}")

    @cli.command()
    @pass_app
    def hook(app: AppContext) -> None:
        """現在の work の hook を表示する。"""
        info = run_async(app.work().current_hook(app.cwd))
        click.echo(f"🪝 Hook: {info.work_name}")
        click.echo()
        click.echo(info.body, nl=not info.body.endswith("\n"))

    @cli.command()
    @click.argument("work_path")
    @click.option("--to", "to_name", default=None, help="既存の crew に割り当てる")
    @click.option("--formula", default=None, help="使用する formula（デフォルト: build）")
    @click.option("--self", "self_assign", is_flag=True, help="現在のセッションで自分が作業する")
    @pass_app
    def sling(
        app: AppContext,
        work_path: str,
        to_name: str | None,
        formula: str | None,
        self_assign: bool,
    ) -> None:
        """work を crew または polecat に割り当てる。

        WORK_PATH は work/<name> 形式で指定する。
        """
        run_async(
            app.sling().sling(
                work_path,
                app.cwd,
                to=to_name,
                formula=formula,
                self_assign=self_assign,
            )
        )
