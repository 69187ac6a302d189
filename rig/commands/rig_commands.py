"""rig セッション関連のコマンド（up / down / status / list / switch / at / killall）。"""

import click

from rig.commands.common import condense_path, pass_app, run_async, worker_emoji
from rig.context import AppContext


def register_rig_commands(cli: click.Group) -> None:
    """rig セッション関連のコマンドを登録する。"""

    @cli.command()
    @click.argument("name", required=False)
    @pass_app
    def up(app: AppContext, name: str | None) -> None:
        """rig を起動する（既に起動していれば切り替える）。

        NAME を省略するとカレントディレクトリや現在のセッションから推定する。
        """
        run_async(app.rig().up(name))

    @cli.command()
    @click.argument("name", required=False)
    @pass_app
    def down(app: AppContext, name: str | None) -> None:
        """rig を終了する。"""
        run_async(app.rig().down(name))

    @click.command()
    @pass_app
    def status(app: AppContext) -> None:
        """稼働中の rig と crew を表示する。"""
        rig_sessions, crew_sessions = run_async(app.rig().status())

        if not rig_sessions and not crew_sessions:
            click.echo("稼働中の rig / crew はありません")
            click.echo()
            click.echo("rig の起動: rig up <name>")
            click.echo("crew の作成: rig crew add <name>")
            return

        click.echo("🏗️  稼働中の rig")
        click.echo()
        if not rig_sessions:
            click.echo("  稼働中の rig はありません")
        for session in rig_sessions:
            marker = "✓" if session.current else " "
            click.echo(f"  {marker} {session.session}")
            click.echo(f"      {condense_path(session.path):<50} 🌿 {session.branch}")
            click.echo()

        click.echo("👥 crew")
        click.echo()
        if not crew_sessions:
            click.echo("  稼働中の crew はありません")
        for session in crew_sessions:
            marker = "✓" if session.current else " "
            click.echo(f"  {marker} {worker_emoji(session.worker or '')} {session.session}")
            click.echo(f"      {condense_path(session.path):<50} 🌿 {session.branch}")
            click.echo()

    cli.add_command(status)
    cli.add_command(status, name="ls")

    @cli.command(name="list")
    @pass_app
    def list_repos(app: AppContext) -> None:
        """利用可能なリポジトリを一覧表示する。"""
        repos = run_async(app.rig().list_repos())

        click.echo("🏗️  利用可能なリポジトリ")
        click.echo()
        if not repos:
            click.echo("  git リポジトリが見つかりません")
        for repo in repos:
            suffix = " [running]" if repo.running else ""
            click.echo(f"  {repo.name}{suffix}")
        click.echo()
        click.echo(f"合計: {len(repos)} 件")

    @cli.command()
    @click.argument("session")
    @pass_app
    def switch(app: AppContext, session: str) -> None:
        """rig / crew のセッションに切り替える。"""
        run_async(app.rig().switch(session))

    @cli.command()
    @click.argument("session", required=False)
    @pass_app
    def at(app: AppContext, session: str | None) -> None:
        """セッションにアタッチする（省略時は直近のセッション）。"""
        run_async(app.rig().attach(session))

    @cli.command()
    @click.option("--crew", "include_crew", is_flag=True, help="crew セッションも終了する")
    @click.option("--crew-only", is_flag=True, help="crew セッションのみ終了する")
    @pass_app
    def killall(app: AppContext, include_crew: bool, crew_only: bool) -> None:
        """全ての rig を終了する（--crew で crew も含める）。"""
        killed = run_async(
            app.rig().killall(include_crew=include_crew, crew_only=crew_only)
        )
        if not killed:
            click.echo("終了対象のセッションはありません")
        else:
            click.echo(f"{len(killed)} 件のセッションを終了しました")
