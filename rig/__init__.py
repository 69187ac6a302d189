"""rig - tmux ベースの開発環境マネージャー。"""

__version__ = "0.3.0"
