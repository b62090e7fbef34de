"""
Embedded-Data Extractor
Recovers GraphQL-shaped data from the JSON blobs Instagram embeds in rendered
pages, for when the network capture missed it.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

# Runs in the browser: every application/json script tag, parsed
EMBEDDED_JSON_SCRIPT = """
() => Array.from(document.querySelectorAll('script[type="application/json"]'))
    .map(script => { try { return JSON.parse(script.innerText); } catch (e) { return null; } })
    .filter(blob => blob !== null)
"""


def _key_matches(key: str, key_to_match: str, starts_with: bool) -> bool:
    return key.startswith(key_to_match) if starts_with else key == key_to_match


def find_object_with_key(data: Any, key_to_match: str, starts_with: bool = False) -> Optional[Dict[str, Any]]:
    """
    Depth-first search for the first object that directly owns key_to_match.

    An object's own keys are checked before its values are descended into;
    arrays are descended in order. Scalars are leaves. Returns None when no
    object owns the key.
    """
    if isinstance(data, dict):
        for key in data:
            if _key_matches(key, key_to_match, starts_with):
                return data
        children = data.values()
    elif isinstance(data, list):
        children = data
    else:
        return None

    for value in children:
        found = find_object_with_key(value, key_to_match, starts_with)
        if found is not None:
            return found
    return None


async def extract_embedded_blobs(session) -> List[Any]:
    """All JSON blobs embedded in the session's current page"""
    blobs = await session.evaluate_in_page(EMBEDDED_JSON_SCRIPT)
    return blobs if isinstance(blobs, list) else []


async def find_object_in_page(session, key_to_match: str, starts_with: bool = False) -> Optional[Dict[str, Any]]:
    """Search every embedded JSON blob of the current page for an object owning key_to_match"""
    blobs = await extract_embedded_blobs(session)
    for blob in blobs:
        found = find_object_with_key(blob, key_to_match, starts_with)
        if found is not None:
            logger.debug(f"Found embedded '{key_to_match}' in page {session.current_url()}")
            return found
    logger.debug(f"No embedded '{key_to_match}' among {len(blobs)} JSON blobs")
    return None
