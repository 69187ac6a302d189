"""crew ワークスペース関連のコマンド。"""

import click

from rig.commands.common import pass_app, run_async, worker_emoji
from rig.context import AppContext

rig_option = click.option("--rig", "rig_name", default=None, help="対象のリポジトリ名")


async def _resolve(app: AppContext, rig_name: str | None) -> str:
    return await app.resolver().resolve_rig(rig_name)


def register_crew_commands(cli: click.Group) -> None:
    """crew コマンドグループを登録する。"""

    @cli.group()
    def crew() -> None:
        """crew ワークスペースを管理する。"""

    @crew.command()
    @click.argument("name")
    @rig_option
    @pass_app
    def add(app: AppContext, name: str, rig_name: str | None) -> None:
        """crew ワークスペースを作成する。"""

        async def _add() -> None:
            rig = await _resolve(app, rig_name)
            await app.crew().add(rig, name)

        run_async(_add())

    @crew.command()
    @click.argument("name")
    @rig_option
    @pass_app
    def start(app: AppContext, name: str, rig_name: str | None) -> None:
        """既存の crew ワークスペースにアタッチする。"""

        async def _start() -> None:
            rig = await _resolve(app, rig_name)
            await app.crew().start(rig, name)

        run_async(_start())

    @click.command()
    @click.argument("name")
    @rig_option
    @pass_app
    def remove(app: AppContext, name: str, rig_name: str | None) -> None:
        """crew ワークスペースを削除する。"""

        async def _remove() -> None:
            rig = await _resolve(app, rig_name)
            await app.crew().remove(rig, name)

        run_async(_remove())

    crew.add_command(remove)
    crew.add_command(remove, name="rm")

    @click.command(name="ls")
    @click.argument("name", required=False)
    @pass_app
    def list_crew(app: AppContext, name: str | None) -> None:
        """crew ワークスペースを一覧表示する。"""
        crew_base = app.settings.crew_base
        if not crew_base.is_dir():
            click.echo(f"crew ワークスペースはありません（ディレクトリが存在しません: {crew_base}）")
            return

        members = run_async(app.crew().list_workspaces(name))
        if not members:
            if name:
                click.echo(f"ワークスペースが見つかりません: {name}")
            else:
                click.echo("crew ワークスペースが見つかりません")
            click.echo()
            click.echo("作成: rig crew add <name>")
            return

        for rig, workers in members.items():
            click.echo(f"🏗️  {rig}")
            for member in workers:
                click.echo(
                    f"  {worker_emoji(member.name)} {member.name:<18} "
                    f"{member.branch:<26} [{member.status}]"
                )
            click.echo()

    crew.add_command(list_crew)
    crew.add_command(list_crew, name="list")

    @crew.command(name="status")
    @pass_app
    def crew_status(app: AppContext) -> None:
        """稼働中の crew セッションを表示する。"""
        sessions = run_async(app.crew().active_sessions())

        click.echo("👥 稼働中の crew セッション")
        click.echo()
        if not sessions:
            click.echo("  稼働中の crew セッションはありません")
            return

        for session in sessions:
            click.echo(f"  {worker_emoji(session.worker or '')} {session.session}")
            click.echo(f"      {session.path}")
            click.echo(f"      {session.branch}")
            click.echo()

    @crew.command()
    @click.option(
        "--polecats", is_flag=True, help="polecat のみを削除する（デフォルトの動作）"
    )
    @pass_app
    def prune(app: AppContext, polecats: bool) -> None:
        """polecat のワークスペースをまとめて削除する。"""
        if not app.settings.crew_base.is_dir():
            click.echo("crew ワークスペースが見つかりません")
            return
        run_async(app.crew().prune_polecats())
