import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def sanitize_brand_name(name: str) -> str:
    slug = _NON_ALNUM.sub("-", name.lower()).strip("-")
    # Hangul-only and other non-latin names slug to nothing.
    return slug or "brand"


def build_model_name(brand_name: str, stamp: int) -> str:
    return f"{sanitize_brand_name(brand_name)}-{stamp}"
