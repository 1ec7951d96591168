"""
Bounded traversal of parsed JSON payloads.

Inline scripts and API responses carry arbitrarily nested JSON. walk_strings
visits every string leaf together with the key it sits under, and stops
descending past a fixed depth so hostile payloads cannot blow the stack.
"""

from clips.service.constants import JSON_MAX_DEPTH, VIDEO_URL_PATTERN


def walk_strings(value, key=None, max_depth=JSON_MAX_DEPTH, _depth=0):
    """
    Yield (enclosing_key, string) for every string in a JSON value.

    Values are the types json.loads produces: dict, list, str, int, float,
    bool and None. Numbers, booleans and nulls yield nothing. Items of a list
    inherit the key the list sits under.

    Args:
        value: Parsed JSON value
        key: Key the value was found under
        max_depth: Containers nested deeper than this are skipped

    Yields:
        tuple: (key or None, str)
    """
    if isinstance(value, str):
        yield key, value
    elif _depth >= max_depth:
        return
    elif isinstance(value, dict):
        for child_key, child in value.items():
            yield from walk_strings(child, str(child_key), max_depth, _depth + 1)
    elif isinstance(value, list):
        for child in value:
            yield from walk_strings(child, key, max_depth, _depth + 1)


def find_media_urls(value, max_depth=JSON_MAX_DEPTH):
    """
    Find media URLs embedded anywhere in a JSON value.

    Returns:
        list: (enclosing_key, url) pairs in document order
    """
    found = []
    for key, text in walk_strings(value, max_depth=max_depth):
        for match in VIDEO_URL_PATTERN.finditer(text):
            found.append((key, match.group(0)))
    return found
