"""設定モジュール。"""

from .settings import Settings, load_settings
from .template_loader import TemplateLoader, get_template_loader

__all__ = [
    "Settings",
    "TemplateLoader",
    "get_template_loader",
    "load_settings",
]
