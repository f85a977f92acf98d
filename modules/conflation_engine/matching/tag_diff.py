"""Tag difference between upstream-derived tags and live tags."""

from typing import Dict, Mapping, Optional


def tag_diff(upstream: Optional[Mapping[str, str]],
             live: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Tags the upstream side asserts that the live side lacks or disagrees on.

    Only upstream keys are reported; keys present only in ``live`` are ignored.
    Absent mappings are treated as empty.

    Args:
        upstream: Tags derived from the upstream item
        live: Tags of the matched live feature

    Returns:
        Mapping of upstream key to upstream value for every differing key
    """
    upstream = upstream or {}
    live = live or {}
    return {key: value for key, value in upstream.items()
            if key not in live or live[key] != value}
