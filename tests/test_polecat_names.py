"""polecat 名生成のテスト。"""

import random

from rig.config.polecat_names import (
    POLECAT_NAMES,
    POLECAT_PREFIX,
    generate_name,
    is_polecat,
)


class TestIsPolecat:
    """is_polecat のテスト。"""

    def test_prefixed_name(self):
        assert is_polecat("polecat_emma") is True

    def test_crew_name(self):
        assert is_polecat("alice") is False
        assert is_polecat("polecat") is False


class TestGenerateName:
    """generate_name のテスト。"""

    def test_returns_prefixed_pool_member(self):
        """プール内の名前に polecat_ を付けて返すことをテスト。"""
        name = generate_name([], rng=random.Random(0))
        assert name.startswith(POLECAT_PREFIX)
        assert name[len(POLECAT_PREFIX):] in POLECAT_NAMES

    def test_returns_only_remaining_name(self):
        """1 つを除いて使用済みの場合、残りの名前を返すことをテスト。"""
        pool = ("emma", "olivia", "ava")
        used = ["polecat_emma", "polecat_ava"]
        for seed in range(10):
            assert generate_name(used, pool=pool, rng=random.Random(seed)) == "polecat_olivia"

    def test_ignores_non_polecat_names(self):
        """polecat_ で始まらない worker 名は除外対象にならないことをテスト。"""
        pool = ("emma",)
        assert generate_name(["emma", "alice"], pool=pool) == "polecat_emma"

    def test_exhausted_pool_falls_back_to_whole_pool(self):
        """全て使用済みの場合もプール内の名前を返すことをテスト。"""
        pool = ("emma", "olivia")
        used = ["polecat_emma", "polecat_olivia"]
        name = generate_name(used, pool=pool, rng=random.Random(1))
        assert name in {"polecat_emma", "polecat_olivia"}

    def test_default_pool_size(self):
        """デフォルトプールに重複が無いことをテスト。"""
        assert len(set(POLECAT_NAMES)) == len(POLECAT_NAMES) >= 20
