"""パッケージ同梱テンプレートの読み込み。

work ドキュメント（work/）、formula（formula/）、hook（hook/）の
Markdown テンプレートを扱う。
"""

from pathlib import Path
from typing import Any

TEMPLATE_SUFFIX = ".md"


class TemplateLoader:
    """rig/templates/<category>/<name>.md を読み込むクラス。"""

    def __init__(self, base_dir: Path | None = None) -> None:
        """TemplateLoader を初期化する。

        Args:
            base_dir: テンプレートのベースディレクトリ（デフォルト: rig/templates/）
        """
        self._base_dir = base_dir or Path(__file__).parent.parent / "templates"
        self._cache: dict[str, str] = {}

    def _path(self, category: str, name: str) -> Path:
        path = (self._base_dir / category / f"{name}{TEMPLATE_SUFFIX}").resolve()
        # base_dir の外は参照させない
        try:
            path.relative_to(self._base_dir.resolve())
        except ValueError as e:
            raise FileNotFoundError(
                f"テンプレートディレクトリ外へのアクセスは許可されていません: {category}/{name}"
            ) from e
        return path

    def load(self, category: str, name: str) -> str:
        """テンプレートを読み込む。

        Args:
            category: カテゴリ（work, formula, hook）
            name: テンプレート名（拡張子なし）

        Returns:
            テンプレート内容

        Raises:
            FileNotFoundError: テンプレートが見つからない場合
        """
        key = f"{category}/{name}"
        if key not in self._cache:
            path = self._path(category, name)
            if not path.is_file():
                raise FileNotFoundError(f"テンプレートが見つかりません: {key}")
            self._cache[key] = path.read_text(encoding="utf-8")
        return self._cache[key]

    def render(self, category: str, name: str, **kwargs: Any) -> str:
        """テンプレートの {変数} を置換して返す。"""
        return self.load(category, name).format(**kwargs)

    def available(self, category: str) -> list[str]:
        """カテゴリ内のテンプレート名をソートして返す。"""
        directory = self._base_dir / category
        if not directory.is_dir():
            return []
        return sorted(p.stem for p in directory.glob(f"*{TEMPLATE_SUFFIX}"))


_loader: TemplateLoader | None = None


def get_template_loader() -> TemplateLoader:
    """共有の TemplateLoader を取得する。"""
    global _loader
    if _loader is None:
        _loader = TemplateLoader()
    return _loader
