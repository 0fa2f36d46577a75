import random
import string

ALPHABET = string.ascii_uppercase + string.digits


def build_trigger_word(prefix: str, rng: random.Random | None = None, length: int = 6) -> str:
    picker = rng or random.SystemRandom()
    suffix = "".join(picker.choice(ALPHABET) for _ in range(length))
    return f"{prefix}_{suffix}"
