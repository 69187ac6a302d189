"""pytest設定とフィクスチャ。"""

import os
import tempfile
from pathlib import Path

import pytest
from fakes import FakeTmuxManager, init_repo

from rig.config.settings import Settings
from rig.context import AppContext
from rig.managers.crew_manager import CrewManager
from rig.managers.prompter import ScriptedPrompter
from rig.managers.work_manager import WorkManager
from rig.managers.worktree_manager import WorktreeManager


@pytest.fixture(autouse=True)
def git_identity(monkeypatch):
    """ユーザーの git 設定に依存しないようにする。"""
    monkeypatch.setenv("GIT_AUTHOR_NAME", "rig-test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "rig-test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "rig-test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "rig-test@example.com")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", os.devnull)
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")


@pytest.fixture
def temp_dir():
    """一時ディレクトリを作成する。"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def settings(temp_dir):
    """テスト用の設定を作成する。"""
    return Settings(
        rigs_base=temp_dir / "git",
        crew_base=temp_dir / "crew",
        startup_delay_seconds=0,
        keystroke_interval_seconds=0,
    )


@pytest.fixture
def git_repo(temp_dir):
    """テスト用のgitリポジトリを作成する。"""
    return init_repo(temp_dir / "repo")


@pytest.fixture
def rig_repo(settings):
    """rigs_base 配下に myapp リポジトリを作成する。"""
    return init_repo(settings.rigs_base / "myapp")


@pytest.fixture
def prompter():
    """全ての確認にデフォルト値で答える Prompter。"""
    return ScriptedPrompter()


@pytest.fixture
def tmux(settings):
    """tmux サーバーを模した TmuxManager を作成する。"""
    return FakeTmuxManager(settings)


@pytest.fixture
def crew_manager(settings, tmux, prompter):
    """CrewManagerインスタンスを作成する。"""
    return CrewManager(settings, tmux, prompter, WorktreeManager)


@pytest.fixture
def work_manager(settings, prompter):
    """WorkManagerインスタンスを作成する。"""
    return WorkManager(settings, prompter, WorktreeManager)


@pytest.fixture
def app_context(settings, tmux, prompter, rig_repo):
    """CLI テスト用の AppContext（カレントディレクトリは myapp）。"""
    return AppContext(settings=settings, tmux=tmux, prompter=prompter, cwd=str(rig_repo))
