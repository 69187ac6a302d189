"""polecat（使い捨て worker）の名前生成。"""

import random

POLECAT_PREFIX = "polecat_"
"""polecat を示す予約プレフィックス"""

POLECAT_NAMES: tuple[str, ...] = (
    "emma", "olivia", "ava", "sophia", "mia", "charlotte",
    "amelia", "harper", "evelyn", "abigail", "ella", "scarlett",
    "grace", "chloe", "lily", "zoe", "maya", "lucy",
    "isabella", "aria", "aurora", "violet", "nova", "hazel",
)


def is_polecat(name: str) -> bool:
    """名前が polecat の命名規則に従っているか判定する。"""
    return name.startswith(POLECAT_PREFIX)


def generate_name(
    used: list[str],
    pool: tuple[str, ...] | list[str] = POLECAT_NAMES,
    rng: random.Random | None = None,
) -> str:
    """未使用の polecat 名を生成する。

    used のうち polecat_ で始まるものからベース名を取り出して除外し、
    残りから一様ランダムに選ぶ。全て使用済みの場合はプール全体から選ぶ
    （既存 worker と衝突しうる。衝突の検出は呼び出し側の責務）。

    Args:
        used: 既存の worker 名
        pool: 候補となるベース名
        rng: 乱数生成器（テスト用）

    Returns:
        polecat_<name> 形式の名前
    """
    rng = rng or random.Random()
    used_bases = {name[len(POLECAT_PREFIX):] for name in used if is_polecat(name)}
    available = [name for name in pool if name not in used_bases]

    if not available:
        return f"{POLECAT_PREFIX}{rng.choice(list(pool))}"
    return f"{POLECAT_PREFIX}{rng.choice(available)}"
