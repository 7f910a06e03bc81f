"""Async client for the Shortcut REST API (v3).

One client exists per MCP session and is bound to that session's API token.
Members and workflows change rarely and are cached for a few minutes; the
current member is cached for the client's lifetime.
"""
import logging
import time
from typing import Any, Callable, Generic, Hashable, Optional, TypeVar

import httpx

logger = logging.getLogger("shortcut-mcp.client")

DEFAULT_BASE_URL = "https://api.app.shortcut.com/api/v3"
CACHE_TTL_SECONDS = 5 * 60
SEARCH_PAGE_SIZE = 25

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class Cache(Generic[K, V]):
    """Keyed cache refreshed wholesale; stale once older than the TTL."""

    def __init__(self, ttl_seconds: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self._values: dict[K, V] = {}
        self._loaded_at: Optional[float] = None
        self._ttl = ttl_seconds
        self._clock = clock

    def get(self, key: K) -> Optional[V]:
        return self._values.get(key)

    def values(self) -> list[V]:
        return list(self._values.values())

    def set_many(self, items: list[tuple[K, V]]) -> None:
        self._values = dict(items)
        self._loaded_at = self._clock()

    def clear(self) -> None:
        self._values = {}
        self._loaded_at = None

    @property
    def is_stale(self) -> bool:
        if self._loaded_at is None:
            return True
        return self._clock() - self._loaded_at > self._ttl


class ShortcutClient:
    """
    Thin wrapper over httpx.AsyncClient for the endpoints the tools need.

    Lookups of single entities return None on 404; every other HTTP error
    propagates as httpx.HTTPStatusError for the tool layer to report.
    """

    def __init__(
        self,
        api_token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={
                "Shortcut-Token": api_token,
                "Accept": "application/json",
            },
            transport=transport,
        )
        self._current_user: Optional[dict] = None
        self._members: Cache[str, dict] = Cache()
        self._workflows: Cache[int, dict] = Cache()

    async def __aenter__(self) -> "ShortcutClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    async def _get(self, path: str, params: Optional[dict] = None) -> Any:
        response = await self._http.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def _get_optional(self, path: str) -> Optional[Any]:
        response = await self._http.get(path)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    async def _post(self, path: str, payload: dict) -> Any:
        response = await self._http.post(path, json=payload)
        response.raise_for_status()
        return response.json()

    async def _put(self, path: str, payload: dict) -> Any:
        response = await self._http.put(path, json=payload)
        response.raise_for_status()
        return response.json()

    async def _search(self, entity: str, query: str, next_page_token: Optional[str] = None) -> dict:
        params: dict[str, Any] = {"query": query, "page_size": SEARCH_PAGE_SIZE, "detail": "slim"}
        if next_page_token:
            params["next"] = next_page_token
        result = await self._get(f"/search/{entity}", params=params)
        return {
            "data": result.get("data") or [],
            "total": result.get("total", 0),
            "next": result.get("next"),
        }

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def _load_members(self) -> None:
        if self._members.is_stale:
            members = await self._get("/members")
            self._members.set_many([(member["id"], member) for member in members])
            logger.debug(f"Loaded {len(members)} members into cache")

    async def get_current_user(self) -> dict:
        if self._current_user is None:
            self._current_user = await self._get("/member")
        return self._current_user

    async def get_user(self, user_id: str) -> Optional[dict]:
        return await self._get_optional(f"/members/{user_id}")

    async def list_users(self) -> list[dict]:
        await self._load_members()
        return self._members.values()

    async def get_user_map(self, user_ids: list[str]) -> dict[str, dict]:
        await self._load_members()
        users = {}
        for user_id in user_ids:
            member = self._members.get(user_id)
            if member is not None:
                users[user_id] = member
        return users

    # ------------------------------------------------------------------
    # Workflows and teams
    # ------------------------------------------------------------------

    async def _load_workflows(self) -> None:
        if self._workflows.is_stale:
            workflows = await self._get("/workflows")
            self._workflows.set_many([(workflow["id"], workflow) for workflow in workflows])
            logger.debug(f"Loaded {len(workflows)} workflows into cache")

    async def list_workflows(self) -> list[dict]:
        await self._load_workflows()
        return self._workflows.values()

    async def get_workflow_map(self, workflow_ids: list[int]) -> dict[int, dict]:
        await self._load_workflows()
        workflows = {}
        for workflow_id in workflow_ids:
            workflow = self._workflows.get(workflow_id)
            if workflow is not None:
                workflows[workflow_id] = workflow
        return workflows

    async def get_workflow(self, workflow_id: int) -> Optional[dict]:
        return await self._get_optional(f"/workflows/{workflow_id}")

    async def list_teams(self) -> list[dict]:
        return await self._get("/groups")

    async def get_team(self, team_id: str) -> Optional[dict]:
        return await self._get_optional(f"/groups/{team_id}")

    # ------------------------------------------------------------------
    # Stories
    # ------------------------------------------------------------------

    async def get_story(self, story_id: int) -> Optional[dict]:
        return await self._get_optional(f"/stories/{story_id}")

    async def create_story(self, params: dict) -> dict:
        return await self._post("/stories", params)

    async def update_story(self, story_id: int, params: dict) -> dict:
        return await self._put(f"/stories/{story_id}", params)

    async def create_story_comment(self, story_id: int, text: str) -> dict:
        return await self._post(f"/stories/{story_id}/comments", {"text": text})

    async def search_stories(self, query: str, next_page_token: Optional[str] = None) -> dict:
        return await self._search("stories", query, next_page_token)

    # ------------------------------------------------------------------
    # Epics and iterations
    # ------------------------------------------------------------------

    async def get_epic(self, epic_id: int) -> Optional[dict]:
        return await self._get_optional(f"/epics/{epic_id}")

    async def create_epic(self, params: dict) -> dict:
        return await self._post("/epics", params)

    async def search_epics(self, query: str) -> dict:
        return await self._search("epics", query)

    async def get_iteration(self, iteration_id: int) -> Optional[dict]:
        return await self._get_optional(f"/iterations/{iteration_id}")

    async def search_iterations(self, query: str) -> dict:
        return await self._search("iterations", query)

    async def list_iteration_stories(self, iteration_id: int) -> list[dict]:
        return await self._get(
            f"/iterations/{iteration_id}/stories",
            params={"includes_description": "false"},
        )

    # ------------------------------------------------------------------
    # Story history, tasks and relations
    # ------------------------------------------------------------------

    async def get_story_history(self, story_id: int) -> list[dict]:
        return await self._get(f"/stories/{story_id}/history")

    async def get_task(self, story_id: int, task_id: int) -> Optional[dict]:
        return await self._get_optional(f"/stories/{story_id}/tasks/{task_id}")

    async def create_task(self, story_id: int, params: dict) -> dict:
        return await self._post(f"/stories/{story_id}/tasks", params)

    async def update_task(self, story_id: int, task_id: int, params: dict) -> dict:
        return await self._put(f"/stories/{story_id}/tasks/{task_id}", params)

    async def create_story_link(self, subject_id: int, object_id: int, verb: str) -> dict:
        return await self._post("/story-links", {"subject_id": subject_id, "object_id": object_id, "verb": verb})

    # ------------------------------------------------------------------
    # Objectives
    # ------------------------------------------------------------------

    async def get_objective(self, objective_id: int) -> Optional[dict]:
        return await self._get_optional(f"/objectives/{objective_id}")

    async def search_objectives(self, query: str, next_page_token: Optional[str] = None) -> dict:
        return await self._search("objectives", query, next_page_token)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def get_doc(self, doc_id: str) -> Optional[dict]:
        return await self._get_optional(f"/documents/{doc_id}")

    async def list_docs(self) -> list[dict]:
        return await self._get("/documents")

    async def create_doc(self, params: dict) -> dict:
        return await self._post("/documents", params)

    async def update_doc(self, doc_id: str, params: dict) -> dict:
        return await self._put(f"/documents/{doc_id}", params)

    async def search_documents(self, filters: dict, next_page_token: Optional[str] = None) -> dict:
        """Search documents by title; filters are sent as query parameters, not search syntax."""
        params: dict[str, Any] = {"page_size": SEARCH_PAGE_SIZE}
        params.update({key: value for key, value in filters.items() if value is not None})
        if next_page_token:
            params["next"] = next_page_token
        result = await self._get("/search/documents", params=params)
        return {
            "data": result.get("data") or [],
            "total": result.get("total", 0),
            "next": result.get("next"),
        }
