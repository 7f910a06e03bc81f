"""Translate structured tool arguments into Shortcut search syntax.

Examples:
    {"name": "login bug", "isDone": False, "owner": "me"}
    -> 'name:"login bug" !is:done owner:alice'
"""
import logging
from typing import Any, Optional

import httpx

from .client import ShortcutClient

logger = logging.getLogger("shortcut-mcp.search")

USER_PARAMS = ("owner", "requester")


def get_key(prop: str) -> str:
    """Map an argument name to its search operator (isDone -> is:done, hasOwner -> has:owner)."""
    if prop.startswith("is") and prop[2:3].isupper():
        return f"is:{prop[2:].lower()}"
    if prop.startswith("has") and prop[3:4].isupper():
        return f"has:{prop[3:].lower()}"
    return prop


def format_value(key: str, value: Any) -> str:
    q = get_key(key)
    if isinstance(value, bool):
        return q if value else f"!{q}"
    if isinstance(value, (int, float)):
        return f"{q}:{value}"
    if isinstance(value, str) and " " in value:
        return f'{q}:"{value}"'
    return f"{q}:{value}"


def format_user_param(key: str, value: str, current_user: Optional[dict]) -> str:
    q = get_key(key)
    if value == "me" and current_user and current_user.get("mention_name"):
        return f"{q}:{current_user['mention_name']}"
    return f"{q}:{value}"


async def format_team_param(value: str, client: Optional[ShortcutClient]) -> str:
    """Resolve a team name to its id when possible, otherwise search by mention name."""
    if client is None:
        return f"team:{value}"
    try:
        teams = await client.list_teams()
    except httpx.HTTPError as e:
        logger.warning(f"Could not resolve team {value!r}: {e}")
        return f"team:{value}"

    for team in teams:
        if team.get("name", "").lower() == value.lower():
            return f"group:{team['id']}"
    return f"team:{value}"


async def build_search_query(
    params: dict[str, Any],
    current_user: Optional[dict],
    client: Optional[ShortcutClient] = None,
) -> str:
    """
    Build a Shortcut search query from tool arguments.

    Args:
        params: Tool arguments (None values are skipped)
        current_user: Current member, used to resolve the "me" keyword
        client: Optional client used to resolve team names

    Returns:
        Space-separated search query
    """
    parts = []
    for key, value in params.items():
        if value is None:
            continue
        if key in USER_PARAMS and isinstance(value, str):
            parts.append(format_user_param(key, value, current_user))
        elif key == "team" and isinstance(value, str):
            parts.append(await format_team_param(value, client))
        else:
            parts.append(format_value(key, value))
    return " ".join(parts)
