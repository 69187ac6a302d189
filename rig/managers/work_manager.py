"""work item 管理モジュール。

work/<name>/ 配下のドキュメント（spec / design / breakdown / progress / hook）と
work/formula/ 配下の formula を扱う。担当者や状態は保存せず、
worktree と progress.md を走査して都度導出する。
"""

import logging
import os
import re
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from rig.config import naming
from rig.config.template_loader import TemplateLoader, get_template_loader
from rig.errors import (
    BranchNotFoundError,
    FormulaNotFoundError,
    GitCommandError,
    HookExistsError,
    InvalidWorkPathError,
    RepositoryNotFoundError,
    WorkItemNotFoundError,
)
from rig.managers.worktree_manager import WorktreeManager
from rig.models.work import (
    HookInfo,
    ParseWarning,
    Progress,
    Task,
    WorkAssignment,
    WorkInit,
    WorkScaffold,
    WorkStatusEntry,
)

if TYPE_CHECKING:
    from rig.config.settings import Settings
    from rig.managers.prompter import Prompter

logger = logging.getLogger(__name__)

WORK_DIR = "work"
FORMULA_DIR = "formula"
HOOK_FILE = "hook.md"
PROGRESS_FILE = "progress.md"

WORK_DOCUMENTS = ("spec", "design", "breakdown", "progress")
"""work create で生成するドキュメント（テンプレート名 = ファイル名）"""

UNKNOWN_STATUS = "Unknown"

_STATUS_RE = re.compile(r"^##\s*Status:\s*(.+)$", re.IGNORECASE)
_ASSIGNED_RE = re.compile(r"^##\s*Assigned to:\s*(.*)$", re.IGNORECASE)
_CHECKLIST_RE = re.compile(r"^##\s*Checklist\s*$", re.IGNORECASE)
_NOTES_RE = re.compile(r"^##\s*Notes\s*$", re.IGNORECASE)
_TASK_RE = re.compile(r"^-\s*\[(.)\]\s*(.+)$")
_TASK_LIKE_RE = re.compile(r"^-\s*\[")


def parse_progress(content: str) -> Progress:
    """progress.md の内容を解析する。

    チェックリスト項目は [x] / [X] を完了、それ以外の 1 文字を未完了とする。
    解釈できない行は読み飛ばし、チェックリスト項目に見えるが
    形式が崩れている行だけを警告として記録する。例外は送出しない。

    Args:
        content: progress.md の内容

    Returns:
        解析結果
    """
    progress = Progress()
    in_checklist = False
    in_notes = False
    notes: list[str] = []

    for line_number, line in enumerate(content.splitlines(), start=1):
        match = _STATUS_RE.match(line)
        if match:
            progress.status = match.group(1).strip()
            continue

        match = _ASSIGNED_RE.match(line)
        if match:
            progress.assigned_to = match.group(1).strip()
            continue

        if _CHECKLIST_RE.match(line):
            in_checklist, in_notes = True, False
            continue

        if _NOTES_RE.match(line):
            in_checklist, in_notes = False, True
            continue

        if in_checklist:
            match = _TASK_RE.match(line)
            if match:
                progress.tasks.append(
                    Task(
                        done=match.group(1).lower() == "x",
                        description=match.group(2).strip(),
                    )
                )
            elif _TASK_LIKE_RE.match(line):
                progress.warnings.append(
                    ParseWarning(
                        line_number=line_number,
                        line=line,
                        reason="チェックリスト項目として解釈できません",
                    )
                )

        if in_notes and line.strip():
            notes.append(line)

    progress.notes = "\n".join(notes)
    return progress


def parse_work_path(work_path: str) -> str:
    """work/<name> 形式の参照から work 名を取り出す。

    Raises:
        InvalidWorkPathError: 形式が不正な場合
    """
    parts = work_path.rstrip("/").split("/")
    if len(parts) != 2 or parts[0] != WORK_DIR or not parts[1]:
        raise InvalidWorkPathError(
            f"work パスは 'work/<name>' の形式で指定してください: {work_path}"
        )
    return parts[1]


def _title(work_name: str) -> str:
    """build-frontend → Build Frontend"""
    words = work_name.replace("-", " ").split(" ")
    return " ".join(word[:1].upper() + word[1:] for word in words)


def _split_front_matter(content: str) -> tuple[dict[str, Any], str]:
    """YAML front matter と本文に分割する。front matter が無ければ空 dict。"""
    if not content.startswith("---\n"):
        return {}, content
    parts = content.split("---\n", 2)
    if len(parts) < 3:
        return {}, content
    try:
        front_matter = yaml.safe_load(parts[1]) or {}
    except yaml.YAMLError as e:
        logger.warning(f"front matter の解析に失敗: {e}")
        return {}, content
    if not isinstance(front_matter, dict):
        return {}, content
    return front_matter, parts[2].lstrip("\n")


def _hook_info(content: str, work_name: str, path: str) -> HookInfo:
    front_matter, body = _split_front_matter(content)
    return HookInfo(
        work_name=str(front_matter.get("work", work_name)),
        formula=str(front_matter.get("formula", "")),
        path=path,
        body=body,
    )


def _ensure_same_formula(existing: HookInfo, formula: str, work_name: str) -> None:
    """既存の hook が別の formula で生成されていれば HookExistsError を送出する。"""
    if existing.formula == formula:
        return
    recorded = existing.formula or "不明"
    raise HookExistsError(
        f"hook は別の formula ({recorded}) で生成済みです: {existing.path}",
        hint=f"再生成する場合は {WORK_DIR}/{work_name}/{HOOK_FILE} を削除してから再実行してください",
    )


class WorkManager:
    """work item を管理するクラス。"""

    def __init__(
        self,
        settings: "Settings",
        prompter: "Prompter",
        worktree_factory: Callable[[str], WorktreeManager] = WorktreeManager,
        templates: TemplateLoader | None = None,
    ) -> None:
        """WorkManager を初期化する。

        Args:
            settings: アプリケーション設定
            prompter: 確認・表示に使う Prompter
            worktree_factory: リポジトリパスから WorktreeManager を得る関数
            templates: テンプレートローダー（省略時は共有インスタンス）
        """
        self.settings = settings
        self.prompter = prompter
        self.worktree_factory = worktree_factory
        self.templates = templates or get_template_loader()

    # ========== パス ==========

    @staticmethod
    def work_path(repo_path: str | os.PathLike[str], work_name: str) -> Path:
        """<repo>/work/<name> を返す。"""
        return Path(repo_path) / WORK_DIR / work_name

    @staticmethod
    def formula_dir(repo_path: str | os.PathLike[str]) -> Path:
        """<repo>/work/formula を返す。"""
        return Path(repo_path) / WORK_DIR / FORMULA_DIR

    @classmethod
    def formula_path(cls, repo_path: str | os.PathLike[str], formula: str) -> Path:
        """<repo>/work/formula/<formula>.md を返す。"""
        return cls.formula_dir(repo_path) / f"{formula}.md"

    @classmethod
    def hook_path(cls, repo_path: str | os.PathLike[str], work_name: str) -> Path:
        """<repo>/work/<name>/hook.md を返す。"""
        return cls.work_path(repo_path, work_name) / HOOK_FILE

    # ========== ドキュメント生成 ==========

    def create(self, repo_path: str | os.PathLike[str], work_name: str) -> WorkScaffold:
        """work ディレクトリとドキュメント一式を生成する。

        既存のファイルは上書きしない。

        Args:
            repo_path: リポジトリ（または worktree）のパス
            work_name: work 名

        Returns:
            生成・スキップしたファイル
        """
        naming.validate_work_name(work_name)
        work_dir = self.work_path(repo_path, work_name)
        work_dir.mkdir(parents=True, exist_ok=True)
        self.formula_dir(repo_path).mkdir(parents=True, exist_ok=True)

        scaffold = WorkScaffold(name=work_name, path=str(work_dir))
        for document in WORK_DOCUMENTS:
            filename = f"{document}.md"
            file_path = work_dir / filename
            if file_path.exists():
                scaffold.skipped.append(filename)
                continue
            content = self.templates.render(WORK_DIR, document, title=_title(work_name))
            file_path.write_text(content, encoding="utf-8")
            scaffold.created.append(filename)

        scaffold.formula_installed = self.ensure_default_formula(repo_path)
        logger.info(
            f"work を生成しました: {work_dir} "
            f"(作成: {scaffold.created}, スキップ: {scaffold.skipped})"
        )
        return scaffold

    def ensure_default_formula(self, repo_path: str | os.PathLike[str]) -> bool:
        """デフォルト formula が無ければ設置する。

        Returns:
            新たに設置した場合True
        """
        path = self.formula_path(repo_path, self.settings.default_formula)
        if path.exists():
            return False
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.templates.load(FORMULA_DIR, "build"), encoding="utf-8")
        logger.info(f"デフォルト formula を設置しました: {path}")
        return True

    def list_formulas(self, repo_path: str | os.PathLike[str]) -> list[str]:
        """formula 名の一覧を返す。ディレクトリが無ければ空リスト。"""
        formula_dir = self.formula_dir(repo_path)
        if not formula_dir.is_dir():
            return []
        return sorted(
            p.stem for p in formula_dir.iterdir() if p.is_file() and p.suffix == ".md"
        )

    # ========== progress ==========

    def load_progress(self, path: str | os.PathLike[str]) -> Progress | None:
        """progress.md を読み込んで解析する。

        Returns:
            解析結果（読み込めない場合は None）
        """
        try:
            content = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"progress.md を読み込めません ({path}): {e}")
            return None

        progress = parse_progress(content)
        for warning in progress.warnings:
            logger.warning(
                f"{path}:{warning.line_number}: {warning.reason}: {warning.line.strip()}"
            )
        return progress

    # ========== hook ==========

    def read_hook(
        self, repo_path: str | os.PathLike[str], work_name: str
    ) -> HookInfo | None:
        """hook.md を読み込む。存在しなければ None。"""
        path = self.hook_path(repo_path, work_name)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return _hook_info(content, work_name, str(path))

    async def read_branch_hook(
        self, worktree: WorktreeManager, branch: str, work_name: str
    ) -> HookInfo | None:
        """ブランチにコミット済みの hook.md を checkout せずに読み込む。"""
        path = f"{WORK_DIR}/{work_name}/{HOOK_FILE}"
        content = await worktree.read_branch_file(branch, path)
        if content is None:
            return None
        return _hook_info(content, work_name, path)

    async def list_branch_formulas(
        self, worktree: WorktreeManager, branch: str
    ) -> list[str]:
        """ブランチにコミット済みの formula 名の一覧を返す。"""
        files = await worktree.list_branch_files(branch, f"{WORK_DIR}/{FORMULA_DIR}")
        return sorted(Path(f).stem for f in files if f.endswith(".md"))

    async def check_branch_hook(
        self, worktree: WorktreeManager, branch: str, work_name: str, formula: str
    ) -> None:
        """ブランチ上の hook が formula と矛盾しないか確認する。

        Raises:
            HookExistsError: 別の formula の hook がコミット済みの場合
        """
        existing = await self.read_branch_hook(worktree, branch, work_name)
        if existing is not None:
            _ensure_same_formula(existing, formula, work_name)

    def generate_hook(
        self, repo_path: str | os.PathLike[str], work_name: str, formula: str
    ) -> HookInfo:
        """hook.md を生成する。

        既に同じ formula で生成済みならそのまま再利用する。
        別の formula で生成済みの場合は上書きせずにエラーとする。

        Args:
            repo_path: リポジトリのパス
            work_name: work 名
            formula: formula 名

        Returns:
            hook 情報

        Raises:
            FormulaNotFoundError: formula が存在しない場合
            HookExistsError: 別の formula の hook が既に存在する場合
        """
        if not self.formula_path(repo_path, formula).exists():
            raise FormulaNotFoundError(
                f"formula が見つかりません: {formula}",
                available=self.list_formulas(repo_path),
            )

        existing = self.read_hook(repo_path, work_name)
        if existing is not None:
            _ensure_same_formula(existing, formula, work_name)
            logger.info(f"既存の hook を再利用します: {existing.path}")
            return existing

        body = self.templates.render(
            "hook", "hook", work_name=work_name, formula_name=formula
        )
        front_matter = {
            "work": work_name,
            "formula": formula,
            "created_at": datetime.now().isoformat(timespec="seconds"),
        }
        yaml_str = yaml.dump(
            front_matter, allow_unicode=True,
            default_flow_style=False, sort_keys=False,
        )
        path = self.hook_path(repo_path, work_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"---\n{yaml_str}---\n\n{body}", encoding="utf-8")
        logger.info(f"hook を生成しました: {path} (formula: {formula})")
        return HookInfo(
            work_name=work_name, formula=formula, path=str(path), created=True, body=body
        )

    async def current_hook(self, cwd: str | os.PathLike[str]) -> HookInfo:
        """カレントディレクトリの feat/<name> ブランチに対応する hook を返す。

        Raises:
            RepositoryNotFoundError: git リポジトリ外の場合
            BranchNotFoundError: フィーチャーブランチ上にいない場合
            WorkItemNotFoundError: hook.md が無い場合
        """
        root = await self.worktree_factory(str(cwd)).get_repo_root()
        if not root:
            raise RepositoryNotFoundError(f"git リポジトリ内ではありません: {cwd}")

        branch = await self.worktree_factory(root).get_current_branch()
        work_name = naming.work_name_from_branch(branch)
        if not work_name:
            raise BranchNotFoundError(
                "フィーチャーブランチ (feat/<name>) 上にいません。"
                f"現在のブランチ: {branch or '(detached)'}"
            )

        hook = self.read_hook(root, work_name)
        if hook is None:
            raise WorkItemNotFoundError(
                f"work の hook が見つかりません: {work_name}",
                hint=f"'rig sling work/{work_name}' で作成してください",
            )
        return hook

    # ========== work create ==========

    async def initialize(self, repo_path: str, work_name: str) -> WorkInit:
        """work を作成し、フィーチャーブランチに切り替えて初回コミットする。

        ステージ・コミットの失敗は警告に留める。

        Args:
            repo_path: リポジトリのルート
            work_name: work 名

        Returns:
            作成結果

        Raises:
            NoBaseBranchError: ベースブランチを解決できない場合
            GitCommandError: ブランチの作成・切り替えに失敗した場合
        """
        naming.validate_work_name(work_name)
        worktree = self.worktree_factory(repo_path)
        branch = naming.feature_branch_name(work_name)

        work_existed = self.work_path(repo_path, work_name).exists()
        if work_existed:
            self.prompter.warn(f"work/{work_name}/ は既に存在します")

        branch_existed = await worktree.branch_exists(branch)
        if branch_existed:
            self.prompter.warn(f"ブランチ {branch} は既に存在します")

        scaffold = self.create(repo_path, work_name)
        if work_existed:
            self.prompter.info("✓ 既存のファイルはスキップし、不足分を作成しました")
        else:
            self.prompter.info(f"✓ work ディレクトリを作成しました: work/{work_name}/")

        base_branch = await worktree.get_base_branch(self.settings.default_branch)
        result = WorkInit(
            scaffold=scaffold,
            branch=branch,
            base_branch=base_branch,
            work_existed=work_existed,
            branch_existed=branch_existed,
        )

        if branch_existed:
            ok, message = await worktree.checkout_branch(branch)
            if not ok:
                raise GitCommandError(f"ブランチの切り替えに失敗しました: {message}")
            self.prompter.info(f"✓ 既存のブランチを使用します: {branch}")
        else:
            ok, message = await worktree.create_feature_branch(branch, base_branch)
            if not ok:
                raise GitCommandError(f"フィーチャーブランチの作成に失敗しました: {message}")
            result.branch_created = True
            self.prompter.info(f"✓ フィーチャーブランチを作成しました: {branch}")

        if self.formula_path(repo_path, self.settings.default_formula).exists():
            self.prompter.info(f"✓ formula ディレクトリを確認しました: {WORK_DIR}/{FORMULA_DIR}/")

        if not work_existed:
            commit_message = f"Initialize work: {work_name}"
            ok, message = await worktree.commit_paths(
                [f"{WORK_DIR}/{work_name}/", f"{WORK_DIR}/{FORMULA_DIR}/"], commit_message
            )
            if ok:
                result.committed = True
                result.commit_message = commit_message
                self.prompter.info(f'✓ 初回コミット: "{commit_message}"')
            else:
                self.prompter.warn(message)

        return result

    # ========== 状態の導出 ==========

    async def find_assignment(
        self, worktree: WorktreeManager, work_name: str
    ) -> WorkAssignment | None:
        """feat/<name> を checkout している worktree を探す。

        Args:
            worktree: リポジトリの WorktreeManager
            work_name: work 名

        Returns:
            担当 worktree（未割り当ての場合は None）
        """
        branch = naming.feature_branch_name(work_name)
        repo_real = os.path.realpath(worktree.repo_path)
        crew_base = self.settings.crew_base.resolve()

        for wt in await worktree.list_worktrees():
            if wt.branch != branch:
                continue
            wt_real = Path(os.path.realpath(wt.path))
            worker = None
            if wt_real.is_relative_to(crew_base):
                parts = wt_real.relative_to(crew_base).parts
                if len(parts) >= 2:
                    worker = parts[1]
            return WorkAssignment(
                work_name=work_name,
                path=wt.path,
                worker=worker,
                is_main_repo=str(wt_real) == repo_real,
            )
        return None

    async def collect_work_status(self) -> dict[str, list[WorkStatusEntry]]:
        """全 worker の worktree を走査して進行中の work を集める。

        Returns:
            rig 名 → WorkStatusEntry のリスト
        """
        entries: dict[str, list[WorkStatusEntry]] = {}
        crew_base = self.settings.crew_base
        if not crew_base.is_dir():
            return entries

        for rig_dir in sorted(p for p in crew_base.iterdir() if p.is_dir()):
            for crew_dir in sorted(p for p in rig_dir.iterdir() if p.is_dir()):
                branch = await self.worktree_factory(str(crew_dir)).get_current_branch()
                work_name = naming.work_name_from_branch(branch)
                if not work_name:
                    continue

                progress = self.load_progress(
                    self.work_path(crew_dir, work_name) / PROGRESS_FILE
                )
                entries.setdefault(rig_dir.name, []).append(
                    WorkStatusEntry(
                        rig=rig_dir.name,
                        work_name=work_name,
                        status=(progress.status if progress else "") or UNKNOWN_STATUS,
                        assigned_to=crew_dir.name,
                        branch=branch,
                        current_task=progress.current_task if progress else "",
                    )
                )
        return entries
