"""パス・セッション名・ブランチ名の命名規則。

I/O を行わない純粋関数のみを置く。
"""

import re
from pathlib import Path

from rig.errors import InvalidNameError

SESSION_SEPARATOR = "@"
"""crew セッション名の区切り文字（<rig>@<worker>）"""

WORK_BRANCH_SUFFIX = "/work"
FEATURE_BRANCH_PREFIX = "feat/"

MAX_WORKER_NAME_LENGTH = 50

_FORBIDDEN_CHARS_RE = re.compile(r"[/\\:" + re.escape(SESSION_SEPARATOR) + r"]")
_FORBIDDEN_LEADING_RE = re.compile(r"^[.-]")


def _validate_name(name: str, label: str) -> str:
    if not name:
        raise InvalidNameError(f"{label}を空にすることはできません")
    if _FORBIDDEN_CHARS_RE.search(name):
        raise InvalidNameError(
            f"{label}に使用できない文字が含まれています (/, \\, :, {SESSION_SEPARATOR}): {name}"
        )
    if _FORBIDDEN_LEADING_RE.match(name):
        raise InvalidNameError(f"{label}を . または - で始めることはできません: {name}")
    if len(name) > MAX_WORKER_NAME_LENGTH:
        raise InvalidNameError(
            f"{label}が長すぎます（最大 {MAX_WORKER_NAME_LENGTH} 文字）: {name}"
        )
    return name


def validate_worker_name(name: str) -> str:
    """worker 名を検証する。

    不正な名前はサニタイズせずに拒否する。

    Args:
        name: worker 名

    Returns:
        検証済みの名前

    Raises:
        InvalidNameError: 名前が不正な場合
    """
    return _validate_name(name, "crew 名")


def validate_work_name(name: str) -> str:
    """work 名を検証する。

    work 名は work/<name>/ と feat/<name> にそのまま使われるため、
    worker 名と同じ規則を適用する。

    Raises:
        InvalidNameError: 名前が不正な場合
    """
    return _validate_name(name, "work 名")


def repo_path(rigs_base: Path, rig: str) -> Path:
    """<rigs_base>/<rig> を返す。"""
    return Path(rigs_base) / rig


def worker_path(crew_base: Path, rig: str, worker: str) -> Path:
    """<crew_base>/<rig>/<worker> を返す。"""
    return Path(crew_base) / rig / worker


def session_name(rig: str, worker: str | None = None) -> str:
    """セッション名を返す。

    rig セッションはリポジトリ名そのまま、crew セッションは <rig>@<worker>。
    """
    if worker is None:
        return rig
    return f"{rig}{SESSION_SEPARATOR}{worker}"


def split_session_name(name: str) -> tuple[str, str | None]:
    """セッション名を (rig, worker) に分解する。rig セッションの worker は None。"""
    if SESSION_SEPARATOR not in name:
        return name, None
    rig, worker = name.split(SESSION_SEPARATOR, 1)
    return rig, worker


def normalize_session_name(name: str) -> str:
    """tmux 互換のセッション名に正規化する。

    tmux はセッション名の "." を "_" に置換するため、
    比較の前に必ず同じ正規化を適用する。
    """
    return name.replace(".", "_")


def work_branch_name(worker: str) -> str:
    """crew の作業ブランチ名 <worker>/work を返す。"""
    return f"{worker}{WORK_BRANCH_SUFFIX}"


def feature_branch_name(work_name: str) -> str:
    """work item のフィーチャーブランチ名 feat/<work> を返す。"""
    return f"{FEATURE_BRANCH_PREFIX}{work_name}"


def work_name_from_branch(branch: str) -> str | None:
    """feat/<work> から work 名を取り出す。フィーチャーブランチでなければ None。"""
    if branch.startswith(FEATURE_BRANCH_PREFIX):
        name = branch[len(FEATURE_BRANCH_PREFIX):]
        return name or None
    return None
