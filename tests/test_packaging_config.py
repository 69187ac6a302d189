"""配布設定の回帰を防ぐテスト。"""

import tomllib
from pathlib import Path

from rig.config.template_loader import TemplateLoader


class TestPyprojectPackagingConfig:
    """pyproject.toml の配布設定を検証する。"""

    def _load(self) -> dict:
        pyproject_path = Path(__file__).resolve().parents[1] / "pyproject.toml"
        return tomllib.loads(pyproject_path.read_text(encoding="utf-8"))

    def test_package_data_includes_templates(self) -> None:
        """パッケージに templates ディレクトリが同梱されることを確認する。"""
        data = self._load()
        package_data = data["tool"]["setuptools"]["package-data"]
        assert "templates/**/*.md" in package_data["rig"]

    def test_console_script(self) -> None:
        data = self._load()
        assert data["project"]["scripts"]["rig"] == "rig.cli:main"

    def test_bundled_templates_exist(self) -> None:
        """同梱テンプレートが揃っていることを確認する。"""
        assert set(TemplateLoader().available("work")) >= {"spec", "design", "breakdown", "progress"}
        assert "hook" in TemplateLoader().available("hook")
        assert "build" in TemplateLoader().available("formula")
