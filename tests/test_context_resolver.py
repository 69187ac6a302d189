"""ContextResolverのテスト。"""

import pytest
from fakes import FakeTmuxManager, git, init_repo

from rig.errors import AmbiguousContextError
from rig.managers.context_resolver import ContextResolver
from rig.managers.worktree_manager import WorktreeManager


def make_resolver(settings, cwd, current_session=""):
    tmux = FakeTmuxManager(settings, current_session=current_session)
    return ContextResolver(settings, tmux, WorktreeManager, cwd=cwd)


class TestResolveRig:
    """resolve_rig のテスト。"""

    @pytest.mark.asyncio
    async def test_explicit_wins(self, settings, rig_repo):
        """明示的な指定は存在確認なしでそのまま返すことをテスト。"""
        resolver = make_resolver(settings, rig_repo, current_session="other")
        assert await resolver.resolve_rig("elsewhere") == "elsewhere"

    @pytest.mark.asyncio
    async def test_inside_repository(self, settings, rig_repo):
        resolver = make_resolver(settings, rig_repo)
        assert await resolver.resolve_rig() == "myapp"

    @pytest.mark.asyncio
    async def test_inside_repository_subdirectory(self, settings, rig_repo):
        """サブディレクトリからは git ルートの名前を使うことをテスト。"""
        sub = rig_repo / "src" / "api"
        sub.mkdir(parents=True)
        resolver = make_resolver(settings, sub)
        assert await resolver.resolve_rig() == "myapp"

    @pytest.mark.asyncio
    async def test_directory_wins_over_session(self, settings, rig_repo):
        resolver = make_resolver(settings, rig_repo, current_session="other@bob")
        assert await resolver.resolve_rig() == "myapp"

    @pytest.mark.asyncio
    async def test_inside_crew_workspace(self, settings, rig_repo):
        """crew 配下ではパス構造から rig を読むことをテスト。"""
        crew_dir = settings.crew_base / "myapp" / "alice"
        git(rig_repo, "worktree", "add", "-b", "alice/work", str(crew_dir))
        (crew_dir / "docs").mkdir()

        resolver = make_resolver(settings, crew_dir / "docs")
        assert await resolver.resolve_rig() == "myapp"

    @pytest.mark.asyncio
    async def test_crew_path_differs_from_git_root_name(self, settings, temp_dir):
        """worktree の実体が別名のリポジトリでもパス構造を優先することをテスト。"""
        source = init_repo(temp_dir / "elsewhere" / "source-repo")
        crew_dir = settings.crew_base / "myapp" / "alice"
        git(source, "worktree", "add", "-b", "alice/work", str(crew_dir))

        resolver = make_resolver(settings, crew_dir)
        assert await resolver.resolve_rig() == "myapp"

    @pytest.mark.asyncio
    async def test_crew_session_name(self, settings, temp_dir):
        """crew セッション名の @ より前を使うことをテスト。"""
        resolver = make_resolver(settings, temp_dir, current_session="myapp@alice")
        assert await resolver.resolve_rig() == "myapp"

    @pytest.mark.asyncio
    async def test_rig_session_name(self, settings, rig_repo, temp_dir):
        resolver = make_resolver(settings, temp_dir, current_session="myapp")
        assert await resolver.resolve_rig() == "myapp"

    @pytest.mark.asyncio
    async def test_unrelated_session_is_ambiguous(self, settings, temp_dir):
        """リポジトリでないセッション名からは推定しないことをテスト。"""
        resolver = make_resolver(settings, temp_dir, current_session="scratch")
        with pytest.raises(AmbiguousContextError) as exc_info:
            await resolver.resolve_rig()
        assert "--rig" in exc_info.value.hint

    @pytest.mark.asyncio
    async def test_base_directory_itself_is_ambiguous(self, settings, rig_repo):
        """rigs_base 自身では推定しないことをテスト。"""
        resolver = make_resolver(settings, settings.rigs_base)
        with pytest.raises(AmbiguousContextError):
            await resolver.resolve_rig()

    @pytest.mark.asyncio
    async def test_does_not_modify_anything(self, settings, rig_repo):
        """推定は状態を変更しないことをテスト。"""
        resolver = make_resolver(settings, rig_repo, current_session="myapp@alice")
        await resolver.resolve_rig()
        assert resolver.tmux.sessions == []
        assert [c[0] for c in resolver.tmux.commands] in ([], ["display-message"])

    @pytest.mark.asyncio
    async def test_normalized_crew_session_name(self, settings, temp_dir):
        """正規化されたセッション名から . を含むリポジトリ名を引くことをテスト。"""
        init_repo(settings.rigs_base / "my.app")
        resolver = make_resolver(settings, temp_dir, current_session="my_app@bob")
        assert await resolver.resolve_rig() == "my.app"

    @pytest.mark.asyncio
    async def test_normalized_rig_session_name(self, settings, temp_dir):
        init_repo(settings.rigs_base / "my.app")
        resolver = make_resolver(settings, temp_dir, current_session="my_app")
        assert await resolver.resolve_rig() == "my.app"

    @pytest.mark.asyncio
    async def test_exact_directory_name_wins(self, settings, temp_dir):
        """正規化後に同じ名前になる場合は同名のリポジトリを優先することをテスト。"""
        init_repo(settings.rigs_base / "my.app")
        init_repo(settings.rigs_base / "my_app")
        resolver = make_resolver(settings, temp_dir, current_session="my_app@bob")
        assert await resolver.resolve_rig() == "my_app"
