"""CrewManagerのテスト。"""

import shutil

import pytest
from fakes import FakeTmuxManager, branch_exists, git, init_repo

from rig.errors import (
    InvalidNameError,
    NotFoundError,
    OperationCancelledError,
    RepositoryNotFoundError,
    RigError,
    SessionCreationError,
    WorkspaceNotFoundError,
    WorktreeCreationError,
)
from rig.managers.crew_manager import CrewManager
from rig.managers.prompter import ScriptedPrompter
from rig.managers.worktree_manager import WorktreeManager
from rig.models.workspace import CrewAction


def crew_with_answers(settings, tmux, *answers):
    prompter = ScriptedPrompter(answers)
    return CrewManager(settings, tmux, prompter, WorktreeManager), prompter


class TestAdd:
    """crew add のテスト。"""

    @pytest.mark.asyncio
    async def test_creates_worktree_and_session(self, crew_manager, settings, tmux, rig_repo):
        """worktree・ブランチ・セッションを作成してアタッチすることをテスト。"""
        workspace = await crew_manager.add("myapp", "alice")

        crew_path = settings.crew_base / "myapp" / "alice"
        assert workspace.action == CrewAction.CREATED
        assert workspace.base_branch == "main"
        assert crew_path.is_dir()
        assert git(crew_path, "branch", "--show-current") == "alice/work"
        assert tmux.sessions == ["myapp@alice"]
        assert tmux.interactive == [("attach-session", "-t", "myapp@alice")]

    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, crew_manager, settings, tmux, rig_repo):
        """2 回目は何も作成せずにアタッチだけすることをテスト。"""
        await crew_manager.add("myapp", "alice", attach=False)
        worktrees_before = git(rig_repo, "worktree", "list")

        workspace = await crew_manager.add("myapp", "alice", attach=False)

        assert workspace.action == CrewAction.ATTACHED
        assert tmux.sessions == ["myapp@alice"]
        assert git(rig_repo, "worktree", "list") == worktrees_before

    @pytest.mark.asyncio
    async def test_missing_session_is_recreated(self, crew_manager, tmux, rig_repo):
        await crew_manager.add("myapp", "alice", attach=False)
        tmux.sessions.clear()

        workspace = await crew_manager.add("myapp", "alice", attach=False)

        assert workspace.action == CrewAction.SESSION_RECREATED
        assert tmux.sessions == ["myapp@alice"]

    @pytest.mark.asyncio
    async def test_dotted_rig_name(self, crew_manager, settings, tmux):
        """. を含むリポジトリ名でもセッション名を正規化して扱うことをテスト。"""
        init_repo(settings.rigs_base / "my.app")

        await crew_manager.add("my.app", "alice", attach=False)
        assert tmux.sessions == ["my_app@alice"]

        workspace = await crew_manager.add("my.app", "alice", attach=False)
        assert workspace.action == CrewAction.ATTACHED

    @pytest.mark.asyncio
    async def test_invalid_name(self, crew_manager, rig_repo):
        with pytest.raises(InvalidNameError):
            await crew_manager.add("myapp", "bad@name")

    @pytest.mark.asyncio
    async def test_missing_repository(self, crew_manager, settings):
        with pytest.raises(RepositoryNotFoundError):
            await crew_manager.add("ghost", "alice")

    @pytest.mark.asyncio
    async def test_existing_branch_accepted(self, settings, tmux, rig_repo):
        """既存ブランチの利用を承諾した場合はそのブランチで作成することをテスト。"""
        git(rig_repo, "branch", "alice/work")
        manager, prompter = crew_with_answers(settings, tmux, True)

        workspace = await manager.add("myapp", "alice", attach=False)

        assert workspace.action == CrewAction.CREATED
        assert prompter.prompts == ["既存のブランチを使いますか?"]

    @pytest.mark.asyncio
    async def test_existing_branch_declined(self, settings, tmux, rig_repo):
        """既存ブランチの利用を拒否した場合は何も残さないことをテスト。"""
        git(rig_repo, "branch", "alice/work")
        manager, _ = crew_with_answers(settings, tmux, False)

        with pytest.raises(OperationCancelledError):
            await manager.add("myapp", "alice")

        assert not (settings.crew_base / "myapp").exists()
        assert branch_exists(rig_repo, "alice/work")
        assert tmux.sessions == []

    @pytest.mark.asyncio
    async def test_session_failure_rolls_back(self, crew_manager, settings, tmux, rig_repo):
        """セッション作成に失敗した場合は worktree とブランチを削除することをテスト。"""
        tmux.fail.add("new-session")

        with pytest.raises(SessionCreationError):
            await crew_manager.add("myapp", "alice")

        assert not (settings.crew_base / "myapp" / "alice").exists()
        assert not (settings.crew_base / "myapp").exists()
        assert not branch_exists(rig_repo, "alice/work")
        assert str(settings.crew_base) not in git(rig_repo, "worktree", "list")

    @pytest.mark.asyncio
    async def test_session_failure_keeps_reused_branch(self, settings, tmux, rig_repo):
        """既存ブランチを使った場合はロールバックでブランチを消さないことをテスト。"""
        git(rig_repo, "branch", "alice/work")
        manager, _ = crew_with_answers(settings, tmux, True)
        tmux.fail.add("new-session")

        with pytest.raises(SessionCreationError):
            await manager.add("myapp", "alice")

        assert branch_exists(rig_repo, "alice/work")
        assert not (settings.crew_base / "myapp" / "alice").exists()

    @pytest.mark.asyncio
    async def test_worktree_failure(self, crew_manager, settings, tmux, rig_repo):
        """worktree 作成に失敗した場合はセッションを作らないことをテスト。"""
        # refs/heads/alice があると alice/work は作成できない
        git(rig_repo, "branch", "alice")

        with pytest.raises(WorktreeCreationError):
            await crew_manager.add("myapp", "alice")

        assert tmux.sessions == []
        assert not branch_exists(rig_repo, "alice/work")
        assert not (settings.crew_base / "myapp").exists()

    @pytest.mark.asyncio
    async def test_attach_failure(self, crew_manager, tmux, rig_repo):
        tmux.fail.add("attach")
        with pytest.raises(RigError):
            await crew_manager.add("myapp", "alice")


class TestStart:
    """crew start のテスト。"""

    @pytest.mark.asyncio
    async def test_missing_workspace(self, crew_manager, rig_repo):
        """ワークスペースが無い場合は add を促すことをテスト。"""
        with pytest.raises(WorkspaceNotFoundError) as exc_info:
            await crew_manager.start("myapp", "alice")
        assert "rig crew add alice" in exc_info.value.hint

    @pytest.mark.asyncio
    async def test_recreates_session(self, crew_manager, tmux, rig_repo):
        await crew_manager.add("myapp", "alice", attach=False)
        tmux.sessions.clear()

        workspace = await crew_manager.start("myapp", "alice", attach=False)

        assert workspace.action == CrewAction.SESSION_RECREATED
        assert tmux.sessions == ["myapp@alice"]

    @pytest.mark.asyncio
    async def test_attaches_to_running_session(self, crew_manager, tmux, rig_repo):
        await crew_manager.add("myapp", "alice", attach=False)

        workspace = await crew_manager.start("myapp", "alice")

        assert workspace.action == CrewAction.ATTACHED
        assert tmux.interactive[-1] == ("attach-session", "-t", "myapp@alice")

    @pytest.mark.asyncio
    async def test_offers_branch_switch(self, settings, tmux, rig_repo):
        """ブランチがずれている場合に切り替えを提案することをテスト。"""
        manager, prompter = crew_with_answers(settings, tmux, True)
        await manager.add("myapp", "alice", attach=False)
        crew_path = settings.crew_base / "myapp" / "alice"
        git(crew_path, "checkout", "-b", "experiment")

        await manager.start("myapp", "alice", attach=False)

        assert prompter.prompts == ["alice/work に切り替えますか?"]
        assert git(crew_path, "branch", "--show-current") == "alice/work"

    @pytest.mark.asyncio
    async def test_declined_branch_switch(self, settings, tmux, rig_repo):
        manager, _ = crew_with_answers(settings, tmux, False)
        await manager.add("myapp", "alice", attach=False)
        crew_path = settings.crew_base / "myapp" / "alice"
        git(crew_path, "checkout", "-b", "experiment")

        await manager.start("myapp", "alice", attach=False)

        assert git(crew_path, "branch", "--show-current") == "experiment"


class TestRemove:
    """crew remove のテスト。"""

    @pytest.mark.asyncio
    async def test_removes_everything(self, settings, tmux, rig_repo):
        """セッション・worktree・ブランチ・空ディレクトリを削除することをテスト。"""
        manager, prompter = crew_with_answers(settings, tmux, True)
        await manager.add("myapp", "alice", attach=False)

        result = await manager.remove("myapp", "alice")

        assert result.session_killed is True
        assert result.worktree_removed is True
        assert result.branch_deleted is True
        assert result.parent_removed is True
        assert tmux.sessions == []
        assert not branch_exists(rig_repo, "alice/work")
        assert not (settings.crew_base / "myapp").exists()
        assert prompter.prompts == ["ブランチ alice/work を削除しますか?"]

    @pytest.mark.asyncio
    async def test_keeps_branch_when_declined(self, settings, tmux, rig_repo):
        manager, _ = crew_with_answers(settings, tmux, False)
        await manager.add("myapp", "alice", attach=False)

        result = await manager.remove("myapp", "alice")

        assert result.branch_deleted is False
        assert branch_exists(rig_repo, "alice/work")

    @pytest.mark.asyncio
    async def test_keeps_sibling_directory(self, crew_manager, settings, rig_repo):
        """他の worker が残っている場合は rig ディレクトリを残すことをテスト。"""
        await crew_manager.add("myapp", "alice", attach=False)
        await crew_manager.add("myapp", "bob", attach=False)

        result = await crew_manager.remove("myapp", "alice")

        assert result.parent_removed is False
        assert (settings.crew_base / "myapp" / "bob").is_dir()

    @pytest.mark.asyncio
    async def test_remove_then_add(self, crew_manager, settings, tmux, rig_repo):
        """削除後に同じ名前で再作成できることをテスト。"""
        await crew_manager.add("myapp", "alice", attach=False)
        await crew_manager.remove("myapp", "alice")

        workspace = await crew_manager.add("myapp", "alice", attach=False)

        assert workspace.action == CrewAction.CREATED
        assert tmux.sessions == ["myapp@alice"]

    @pytest.mark.asyncio
    async def test_detached_worktree(self, crew_manager, settings, tmux, rig_repo):
        """ディレクトリだけが消えた worktree の登録を片付けることをテスト。"""
        await crew_manager.add("myapp", "alice", attach=False)
        crew_path = settings.crew_base / "myapp" / "alice"
        shutil.rmtree(crew_path)
        tmux.sessions.clear()

        result = await crew_manager.remove("myapp", "alice")

        assert result.metadata_pruned is True
        assert result.parent_removed is True
        assert str(crew_path) not in git(rig_repo, "worktree", "list")

    @pytest.mark.asyncio
    async def test_detached_worktree_with_session(self, crew_manager, settings, tmux, rig_repo):
        await crew_manager.add("myapp", "alice", attach=False)
        shutil.rmtree(settings.crew_base / "myapp" / "alice")

        result = await crew_manager.remove("myapp", "alice")

        assert result.metadata_pruned is True
        assert result.session_only is True
        assert tmux.sessions == []

    @pytest.mark.asyncio
    async def test_orphan_session(self, crew_manager, tmux, rig_repo):
        """worktree が無くセッションだけがある場合はセッションだけ終了することをテスト。"""
        tmux.sessions.append("myapp@bob")

        result = await crew_manager.remove("myapp", "bob")

        assert result.session_only is True
        assert result.session_killed is True
        assert tmux.sessions == []

    @pytest.mark.asyncio
    async def test_nothing_to_remove(self, crew_manager, rig_repo):
        with pytest.raises(NotFoundError):
            await crew_manager.remove("myapp", "nobody")

    @pytest.mark.asyncio
    async def test_warns_when_removing_current_session(self, settings, rig_repo):
        """自分がいるセッションを削除する場合に警告することをテスト。"""
        tmux = FakeTmuxManager(settings, current_session="myapp@alice")
        manager, prompter = crew_with_answers(settings, tmux, True)
        await manager.add("myapp", "alice", attach=False)

        await manager.remove("myapp", "alice")

        assert len(prompter.warnings) == 1
        assert "myapp@alice" in prompter.warnings[0]


class TestListing:
    """一覧・状態表示のテスト。"""

    @pytest.mark.asyncio
    async def test_list_workspaces(self, crew_manager, tmux, rig_repo):
        await crew_manager.add("myapp", "bob", attach=False)
        await crew_manager.add("myapp", "alice", attach=False)
        tmux.sessions.remove("myapp@bob")

        members = await crew_manager.list_workspaces()

        assert list(members) == ["myapp"]
        assert [(m.name, m.branch, m.status) for m in members["myapp"]] == [
            ("alice", "alice/work", "running"),
            ("bob", "bob/work", "stopped"),
        ]

    @pytest.mark.asyncio
    async def test_list_workspaces_filter(self, crew_manager, rig_repo):
        await crew_manager.add("myapp", "alice", attach=False)
        await crew_manager.add("myapp", "bob", attach=False)

        members = await crew_manager.list_workspaces("bob")

        assert [m.name for m in members["myapp"]] == ["bob"]

    @pytest.mark.asyncio
    async def test_active_sessions_skip_unknown(self, crew_manager, tmux, rig_repo):
        """ワークスペースが実在しない crew セッションは表示しないことをテスト。"""
        await crew_manager.add("myapp", "alice", attach=False)
        tmux.sessions.extend(["myapp", "other@ghost", "scratch"])

        sessions = await crew_manager.active_sessions()

        assert [s.session for s in sessions] == ["myapp@alice"]
        assert sessions[0].branch == "alice/work"
        assert sessions[0].current is False

    @pytest.mark.asyncio
    async def test_active_sessions_marks_current(self, crew_manager, tmux, rig_repo):
        await crew_manager.add("myapp", "alice", attach=False)
        tmux.set_current_session("myapp@alice")

        sessions = await crew_manager.active_sessions()

        assert sessions[0].current is True

    @pytest.mark.asyncio
    async def test_worker_names(self, crew_manager, rig_repo):
        await crew_manager.add("myapp", "polecat_emma", attach=False)
        await crew_manager.add("myapp", "alice", attach=False)
        assert await crew_manager.worker_names("myapp") == ["alice", "polecat_emma"]
        assert await crew_manager.worker_names("ghost") == []


class TestPrunePolecats:
    """polecat の一括削除のテスト。"""

    @pytest.mark.asyncio
    async def test_prune(self, settings, tmux, rig_repo):
        """polecat だけを削除することをテスト。"""
        manager, _ = crew_with_answers(settings, tmux, True)
        await manager.add("myapp", "alice", attach=False)
        await manager.add("myapp", "polecat_emma", attach=False)

        removals = await manager.prune_polecats()

        assert [r.name for r in removals] == ["polecat_emma"]
        assert removals[0].session_killed is True
        assert removals[0].worktree_removed is True
        assert tmux.sessions == ["myapp@alice"]
        assert (settings.crew_base / "myapp" / "alice").is_dir()
        assert not (settings.crew_base / "myapp" / "polecat_emma").exists()

    @pytest.mark.asyncio
    async def test_prune_defaults_to_cancel(self, crew_manager, prompter, settings, rig_repo):
        """確認のデフォルトはキャンセルであることをテスト。"""
        await crew_manager.add("myapp", "polecat_emma", attach=False)

        removals = await crew_manager.prune_polecats()

        assert removals == []
        assert "キャンセルしました" in prompter.messages
        assert (settings.crew_base / "myapp" / "polecat_emma").is_dir()

    @pytest.mark.asyncio
    async def test_prune_without_polecats(self, crew_manager, prompter):
        assert await crew_manager.prune_polecats() == []
        assert prompter.prompts == []
