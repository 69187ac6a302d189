"""モデルと例外のテスト。"""

from rig.errors import FormulaNotFoundError, RigError, WorkspaceNotFoundError
from rig.models.work import Progress, Task, WorkStatusEntry
from rig.models.workspace import CrewMember, CrewWorkspace, RigSession


class TestProgress:
    """Progress モデルのテスト。"""

    def test_current_task_is_first_unchecked(self):
        """最初の未完了タスクを返すことをテスト。"""
        progress = Progress(
            tasks=[
                Task(done=True, description="Define API"),
                Task(done=False, description="Implement handler"),
                Task(done=False, description="Write tests"),
            ]
        )
        assert progress.current_task == "Implement handler"
        assert progress.completed_count == 1

    def test_current_task_empty_when_all_done(self):
        progress = Progress(tasks=[Task(done=True, description="Done")])
        assert progress.current_task == ""

    def test_current_task_empty_without_tasks(self):
        assert Progress().current_task == ""


class TestWorkspaceModels:
    """ワークスペースモデルのテスト。"""

    def test_crew_member_status(self):
        member = CrewMember(rig="myapp", name="alice", path="/crew/myapp/alice")
        assert member.status == "stopped"
        assert member.branch == "unknown"
        member.running = True
        assert member.status == "running"

    def test_polecat_flags(self):
        """polecat 判定が名前のプレフィックスに従うことをテスト。"""
        workspace = CrewWorkspace(
            rig="myapp",
            name="polecat_emma",
            path="/crew/myapp/polecat_emma",
            session="myapp@polecat_emma",
            branch="feat/login",
        )
        assert workspace.is_polecat is True
        assert CrewMember(rig="myapp", name="alice", path="/p").is_polecat is False

    def test_rig_session_kinds(self):
        rig = RigSession(session="myapp", rig="myapp", path="/git/myapp")
        crew = RigSession(
            session="myapp@polecat_ava", rig="myapp", worker="polecat_ava", path="/p"
        )
        assert rig.is_crew is False
        assert rig.is_polecat is False
        assert crew.is_crew is True
        assert crew.is_polecat is True

    def test_work_status_entry_default_status(self):
        entry = WorkStatusEntry(
            rig="myapp", work_name="login", assigned_to="alice", branch="feat/login"
        )
        assert entry.status == "Unknown"
        assert entry.is_polecat is False


class TestErrors:
    """例外のテスト。"""

    def test_format_with_hint(self):
        """hint がある場合は改行で結合することをテスト。"""
        error = WorkspaceNotFoundError("見つかりません", hint="rig crew add alice")
        assert error.format() == "見つかりません\nrig crew add alice"
        assert str(error) == "見つかりません"

    def test_format_without_hint(self):
        assert RigError("失敗").format() == "失敗"

    def test_formula_not_found_lists_available(self):
        """利用可能な formula が hint に含まれることをテスト。"""
        error = FormulaNotFoundError("formula が見つかりません: deploy", available=["build", "fix"])
        assert error.available == ["build", "fix"]
        assert "build, fix" in error.hint

    def test_formula_not_found_without_available(self):
        error = FormulaNotFoundError("formula が見つかりません: deploy")
        assert error.available == []
        assert error.hint == "利用可能な formula がありません"
