import re
from typing import Optional

HASHTAG_PATTERN = re.compile(r"#(\w+)")


def extract_tags(text: Optional[str]) -> set[str]:
    """Hashtag bodies found in ``text``, deduplicated, case preserved."""
    if not text:
        return set()
    return set(HASHTAG_PATTERN.findall(text))
