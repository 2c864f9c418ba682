"""Tag encoding helpers for taskkeeper."""

from typing import List, Optional

from taskkeeper.logging_config import get_logger

logger = get_logger(__name__)

TAG_SEPARATOR = ","


def tags_to_string(tags: Optional[List[str]]) -> str:
    """
    Join a list of tags into the string stored in the ``tags`` column.

    Args:
        tags: Ordered list of tags (None is treated as empty)

    Returns:
        Comma-joined tags, or an empty string for an empty list

    Examples:
        >>> tags_to_string(["work", "urgent"])
        'work,urgent'
        >>> tags_to_string([])
        ''

    Notes:
        Commas inside a tag are not escaped. Such a tag is split into
        several tags when read back, so a warning is logged.
    """
    if not tags:
        return ""

    for tag in tags:
        if TAG_SEPARATOR in tag:
            logger.warning(f"Tag {tag!r} contains '{TAG_SEPARATOR}' and will be split into separate tags")

    return TAG_SEPARATOR.join(tags)


def string_to_tags(value: Optional[str]) -> List[str]:
    """
    Split a stored tags string back into an ordered list.

    Args:
        value: Comma-joined tags as stored (None is treated as empty)

    Returns:
        List of tags; an empty string yields an empty list, not ``[""]``

    Examples:
        >>> string_to_tags("work,urgent")
        ['work', 'urgent']
        >>> string_to_tags("")
        []
    """
    if not value:
        return []
    return value.split(TAG_SEPARATOR)


def normalize_tags(tags: Optional[List[str]]) -> List[str]:
    """
    Reduce a tag list to exactly what reading it back from storage yields.

    Examples:
        >>> normalize_tags([""])
        []
        >>> normalize_tags(["a,b", "c"])
        ['a', 'b', 'c']
    """
    return string_to_tags(tags_to_string(tags))
