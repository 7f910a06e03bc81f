"""Tests for tool handlers against a fake Shortcut API."""
import json

import httpx
import pytest
import pytest_asyncio

from shortcut_mcp import handlers
from shortcut_mcp.client import ShortcutClient

ME = {"id": "u1", "mention_name": "alice", "name": "Alice"}
MEMBERS = [
    {"id": "u1", "profile": {"mention_name": "alice", "name": "Alice"}},
    {"id": "u2", "profile": {"mention_name": "bob", "name": "Bob"}},
]
WORKFLOW = {
    "id": 500,
    "name": "Engineering",
    "default_state_id": 5001,
    "states": [{"id": 5001, "name": "To Do", "type": "unstarted"}],
}
TEAM = {"id": "g-1", "name": "Platform", "mention_name": "platform", "member_ids": ["u2"], "workflow_ids": [500]}


class FakeShortcut:
    """Routes requests to canned responses and records writes."""

    def __init__(self):
        self.stories = {
            42: {"id": 42, "name": "Fix Login Bug!", "owner_ids": ["u2"], "app_url": "https://app/sc-42"},
            43: {"id": 43, "name": "Session Timeout", "owner_ids": [], "app_url": "https://app/sc-43"},
        }
        self.tasks = {(42, 3): {"id": 3, "description": "Write tests", "complete": False}}
        self.docs = {
            "doc-1": {"id": "doc-1", "title": "Runbook", "content_markdown": "# Steps", "app_url": "https://app/doc-1"},
        }
        self.history = {
            42: [
                {
                    "id": "h1",
                    "changed_at": "2024-05-01T10:00:00Z",
                    "member_id": "u2",
                    "actions": [{"action": "update", "entity_type": "story", "name": "Fix Login Bug!",
                                 "changes": {"workflow_state_id": {"old": 1, "new": 2}}}],
                },
            ],
        }
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/v3")
        method = request.method

        if path == "/member":
            return httpx.Response(200, json=ME)
        if path == "/members":
            return httpx.Response(200, json=MEMBERS)
        if path == "/groups":
            return httpx.Response(200, json=[TEAM])
        if path == "/groups/g-1":
            return httpx.Response(200, json=TEAM)
        if path in ("/workflows", "/workflows/500"):
            return httpx.Response(200, json=[WORKFLOW] if path == "/workflows" else WORKFLOW)
        if path.startswith("/stories/") and path.endswith("/history"):
            return httpx.Response(200, json=self.history.get(int(path.split("/")[2]), []))
        if path.startswith("/stories/") and "/tasks" in path:
            parts = path.split("/")
            story_id = int(parts[2])
            if method == "POST":
                payload = json.loads(request.content)
                return httpx.Response(201, json={"id": 4, "complete": False, **payload})
            task = self.tasks.get((story_id, int(parts[4])))
            if task is None:
                return httpx.Response(404, json={"message": "not found"})
            if method == "PUT":
                task.update(json.loads(request.content))
            return httpx.Response(200, json=task)
        if path.startswith("/stories/") and path.endswith("/comments"):
            return httpx.Response(201, json={"id": 1, "app_url": "https://app/comment/1"})
        if path.startswith("/stories/"):
            story_id = int(path.split("/")[2])
            story = self.stories.get(story_id)
            if story is None:
                return httpx.Response(404, json={"message": "not found"})
            if method == "PUT":
                story.update(json.loads(request.content))
            return httpx.Response(200, json=story)
        if path == "/stories" and method == "POST":
            payload = json.loads(request.content)
            return httpx.Response(201, json={"id": 99, **payload})
        if path == "/search/stories":
            return httpx.Response(200, json={"data": [self.stories[42]], "total": 1, "next": "tok-2"})
        if path == "/search/objectives":
            objective = {"id": 9, "name": "Reliability", "state": "started"}
            return httpx.Response(200, json={"data": [objective], "total": 3, "next": "obj-2"})
        if path == "/objectives/9":
            return httpx.Response(200, json={"id": 9, "name": "Reliability", "state": "started",
                                             "app_url": "https://app/objective/9"})
        if path == "/story-links" and method == "POST":
            return httpx.Response(201, json={"id": 11, **json.loads(request.content)})
        if path == "/documents":
            if method == "POST":
                payload = json.loads(request.content)
                return httpx.Response(201, json={"id": "doc-2", "title": payload["title"],
                                                 "app_url": "https://app/doc-2"})
            return httpx.Response(200, json=list(self.docs.values()))
        if path.startswith("/documents/"):
            doc = self.docs.get(path.split("/")[2])
            if doc is None:
                return httpx.Response(404, json={"message": "not found"})
            if method == "PUT":
                payload = json.loads(request.content)
                doc.update(title=payload["title"], content_markdown=payload["content"])
            return httpx.Response(200, json=doc)
        if path == "/search/documents":
            return httpx.Response(200, json={"data": list(self.docs.values()), "total": 1, "next": None})
        if path == "/epics" and method == "POST":
            return httpx.Response(201, json={"id": 7, "name": json.loads(request.content)["name"]})
        return httpx.Response(404, json={"message": f"unexpected {method} {path}"})

    def last(self, method: str, path: str) -> httpx.Request:
        return next(r for r in reversed(self.requests) if r.method == method and r.url.path.endswith(path))


@pytest.fixture
def api():
    return FakeShortcut()


@pytest_asyncio.fixture
async def client(api):
    async with ShortcutClient("token", base_url="https://shortcut.test/api/v3",
                              transport=httpx.MockTransport(api)) as client:
        yield client


def text_of(content) -> str:
    return content[0].text


class TestUserAndTeamHandlers:
    """Test read-only lookups."""

    @pytest.mark.asyncio
    async def test_current_user(self, client, api):
        result = await handlers.handle_get_current_user({}, client)
        assert "Mention name: @alice" in text_of(result)
        assert api.requests[0].headers["Shortcut-Token"] == "token"

    @pytest.mark.asyncio
    async def test_current_user_cached(self, client, api):
        await handlers.handle_get_current_user({}, client)
        await handlers.handle_get_current_user({}, client)
        assert len(api.requests) == 1

    @pytest.mark.asyncio
    async def test_team_with_members(self, client):
        result = await handlers.handle_get_team({"teamPublicId": "g-1"}, client)
        assert "- id=u2 @bob" in text_of(result)

    @pytest.mark.asyncio
    async def test_missing_team(self, client):
        with pytest.raises(ValueError):
            await handlers.handle_get_team({"teamPublicId": "nope"}, client)

    @pytest.mark.asyncio
    async def test_list_teams_shows_default_state(self, client):
        result = await handlers.handle_list_teams({}, client)
        assert "Default state: id=5001 name=To Do" in text_of(result)


class TestStoryHandlers:
    """Test story reads and writes."""

    @pytest.mark.asyncio
    async def test_get_story(self, client):
        result = await handlers.handle_get_story({"storyPublicId": 42}, client)
        assert "Story: sc-42" in text_of(result)
        assert "Owners: @bob" in text_of(result)

    @pytest.mark.asyncio
    async def test_get_missing_story(self, client):
        with pytest.raises(ValueError, match="public ID: 404"):
            await handlers.handle_get_story({"storyPublicId": 404}, client)

    @pytest.mark.asyncio
    async def test_search_stories(self, client, api):
        result = await handlers.handle_search_stories(
            {"owner": "me", "isDone": False, "nextPageToken": "tok-1"}, client
        )

        request = api.last("GET", "/search/stories")
        assert request.url.params["query"] == "owner:alice !is:done"
        assert request.url.params["next"] == "tok-1"
        assert "Result (first 1 shown of 1 total stories found):" in text_of(result)
        assert "Next page token: tok-2" in text_of(result)

    @pytest.mark.asyncio
    async def test_branch_name(self, client):
        result = await handlers.handle_get_story_branch_name({"storyPublicId": 42}, client)
        assert text_of(result) == "Branch name for story sc-42: alice/sc-42/fix-login-bug"

    def test_branch_name_truncated(self):
        story = {"id": 1, "name": "a very long story name that keeps going well past the limit"}
        branch = handlers.build_branch_name("alice", story)
        assert len(branch) == 50
        assert branch.startswith("alice/sc-1/a-very-long-story-name")

    @pytest.mark.asyncio
    async def test_create_story_requires_team_or_workflow(self, client):
        with pytest.raises(ValueError, match="Team or Workflow"):
            await handlers.handle_create_story({"name": "New"}, client)

    @pytest.mark.asyncio
    async def test_create_story_uses_team_workflow_default_state(self, client, api):
        result = await handlers.handle_create_story({"name": "New", "team": "g-1", "type": "bug"}, client)

        payload = json.loads(api.last("POST", "/stories").content)
        assert payload["workflow_state_id"] == 5001
        assert payload["group_id"] == "g-1"
        assert payload["story_type"] == "bug"
        assert text_of(result) == "Created story: sc-99"

    @pytest.mark.asyncio
    async def test_update_story_only_sends_given_fields(self, client, api):
        await handlers.handle_update_story({"storyPublicId": 42, "name": "Renamed", "epic": None}, client)

        payload = json.loads(api.last("PUT", "/stories/42").content)
        assert payload == {"name": "Renamed", "epic_id": None}

    @pytest.mark.asyncio
    async def test_update_story_without_fields(self, client):
        with pytest.raises(ValueError, match="No fields"):
            await handlers.handle_update_story({"storyPublicId": 42}, client)

    @pytest.mark.asyncio
    async def test_comment(self, client):
        result = await handlers.handle_create_story_comment({"storyPublicId": 42, "text": "LGTM"}, client)
        assert "Comment URL: https://app/comment/1" in text_of(result)

    @pytest.mark.asyncio
    async def test_assign_and_unassign_current_user(self, client, api):
        await handlers.handle_assign_current_user({"storyPublicId": 42}, client)
        assert api.stories[42]["owner_ids"] == ["u2", "u1"]

        result = await handlers.handle_assign_current_user({"storyPublicId": 42}, client)
        assert text_of(result) == "Current user is already an owner of the story"

        await handlers.handle_unassign_current_user({"storyPublicId": 42}, client)
        assert api.stories[42]["owner_ids"] == ["u2"]


class TestEpicHandlers:
    """Test epic writes."""

    @pytest.mark.asyncio
    async def test_create_epic(self, client, api):
        result = await handlers.handle_create_epic({"name": "Q3", "teamId": "g-1"}, client)

        assert json.loads(api.last("POST", "/epics").content) == {"name": "Q3", "group_id": "g-1"}
        assert text_of(result) == "Epic created with ID: 7."


class TestStoryTaskAndRelationHandlers:
    """Test story history, tasks and relations."""

    @pytest.mark.asyncio
    async def test_history_names_the_actor(self, client):
        result = await handlers.handle_get_story_history({"storyPublicId": 42}, client)

        text = text_of(result)
        assert text.startswith("Result (1 history entries for story sc-42):")
        assert "2024-05-01T10:00:00Z by @bob: update story Fix Login Bug! (changed: workflow_state_id)" in text

    @pytest.mark.asyncio
    async def test_empty_history(self, client):
        result = await handlers.handle_get_story_history({"storyPublicId": 43}, client)
        assert text_of(result) == "Result: No history found for story sc-43."

    @pytest.mark.asyncio
    async def test_history_of_missing_story(self, client):
        with pytest.raises(ValueError, match="public ID: 404"):
            await handlers.handle_get_story_history({"storyPublicId": 404}, client)

    @pytest.mark.asyncio
    async def test_add_task_with_owners(self, client, api):
        result = await handlers.handle_add_task(
            {"storyPublicId": 42, "taskDescription": "Add retry", "taskOwnerIds": ["u1"]}, client
        )

        payload = json.loads(api.last("POST", "/stories/42/tasks").content)
        assert payload == {"description": "Add retry", "owner_ids": ["u1"]}
        assert text_of(result) == "Created task for story sc-42. Task ID: 4."

    @pytest.mark.asyncio
    async def test_add_task_rejects_unknown_owner(self, client, api):
        with pytest.raises(ValueError, match="u404"):
            await handlers.handle_add_task(
                {"storyPublicId": 42, "taskDescription": "Add retry", "taskOwnerIds": ["u1", "u404"]}, client
            )
        assert not any(r.method == "POST" for r in api.requests)

    @pytest.mark.asyncio
    async def test_add_task_requires_description(self, client):
        with pytest.raises(ValueError, match="Task description"):
            await handlers.handle_add_task({"storyPublicId": 42, "taskDescription": "  "}, client)

    @pytest.mark.asyncio
    async def test_complete_task(self, client, api):
        result = await handlers.handle_update_task(
            {"storyPublicId": 42, "taskPublicId": 3, "isCompleted": True}, client
        )

        assert json.loads(api.last("PUT", "/stories/42/tasks/3").content) == {"complete": True}
        assert api.tasks[(42, 3)]["complete"] is True
        assert text_of(result) == "Completed task for story sc-42. Task ID: 3."

    @pytest.mark.asyncio
    async def test_update_task_description(self, client, api):
        result = await handlers.handle_update_task(
            {"storyPublicId": 42, "taskPublicId": 3, "taskDescription": "Write more tests"}, client
        )

        assert json.loads(api.last("PUT", "/stories/42/tasks/3").content) == {"description": "Write more tests"}
        assert text_of(result) == "Updated task for story sc-42. Task ID: 3."

    @pytest.mark.asyncio
    async def test_update_missing_task(self, client):
        with pytest.raises(ValueError, match="task with public ID: 8"):
            await handlers.handle_update_task({"storyPublicId": 42, "taskPublicId": 8}, client)

    @pytest.mark.asyncio
    async def test_relation_defaults_to_relates_to(self, client, api):
        result = await handlers.handle_add_relation({"storyPublicId": 42, "relatedStoryPublicId": 43}, client)

        payload = json.loads(api.last("POST", "/story-links").content)
        assert payload == {"subject_id": 42, "object_id": 43, "verb": "relates to"}
        assert text_of(result) == "Added a relationship between sc-42 and sc-43."

    @pytest.mark.asyncio
    async def test_blocked_by_is_stored_as_inverse_blocks(self, client, api):
        result = await handlers.handle_add_relation(
            {"storyPublicId": 42, "relatedStoryPublicId": 43, "relationshipType": "blocked by"}, client
        )

        payload = json.loads(api.last("POST", "/story-links").content)
        assert payload == {"subject_id": 43, "object_id": 42, "verb": "blocks"}
        assert text_of(result) == "Marked sc-43 as a blocker to sc-42."

    @pytest.mark.asyncio
    async def test_duplicates(self, client, api):
        result = await handlers.handle_add_relation(
            {"storyPublicId": 42, "relatedStoryPublicId": 43, "relationshipType": "duplicates"}, client
        )
        assert json.loads(api.last("POST", "/story-links").content)["verb"] == "duplicates"
        assert text_of(result) == "Marked sc-42 as a duplicate of sc-43."

    @pytest.mark.asyncio
    async def test_relation_to_missing_story(self, client, api):
        with pytest.raises(ValueError, match="public ID: 404"):
            await handlers.handle_add_relation({"storyPublicId": 42, "relatedStoryPublicId": 404}, client)
        assert not any(r.url.path.endswith("/story-links") for r in api.requests)


class TestObjectiveHandlers:
    """Test objective lookups and search."""

    @pytest.mark.asyncio
    async def test_get_objective(self, client):
        result = await handlers.handle_get_objective({"objectivePublicId": 9}, client)
        assert "Objective: 9" in text_of(result)
        assert "State: started" in text_of(result)

    @pytest.mark.asyncio
    async def test_get_missing_objective(self, client):
        with pytest.raises(ValueError, match="objective with public ID: 5"):
            await handlers.handle_get_objective({"objectivePublicId": 5}, client)

    @pytest.mark.asyncio
    async def test_search_objectives(self, client, api):
        result = await handlers.handle_search_objectives(
            {"owner": "me", "isArchived": False, "nextPageToken": "obj-1"}, client
        )

        request = api.last("GET", "/search/objectives")
        assert request.url.params["query"] == "owner:alice !is:archived"
        assert request.url.params["next"] == "obj-1"
        assert "Result (first 1 shown of 3 total objectives found):" in text_of(result)
        assert "- 9: Reliability (State: started)" in text_of(result)
        assert "Next page token: obj-2" in text_of(result)


class TestDocumentHandlers:
    """Test document reads and writes."""

    @pytest.mark.asyncio
    async def test_create_document_as_markdown(self, client, api):
        result = await handlers.handle_create_document({"title": "Notes", "content": "# Hi"}, client)

        payload = json.loads(api.last("POST", "/documents").content)
        assert payload == {"title": "Notes", "content": "# Hi", "content_format": "markdown"}
        assert text_of(result).startswith("Document created successfully")
        assert "id=doc-2 title=Notes url=https://app/doc-2" in text_of(result)

    @pytest.mark.asyncio
    async def test_update_keeps_existing_title(self, client, api):
        result = await handlers.handle_update_document({"docId": "doc-1", "content": "# New steps"}, client)

        payload = json.loads(api.last("PUT", "/documents/doc-1").content)
        assert payload == {"title": "Runbook", "content": "# New steps", "content_format": "markdown"}
        assert "# New steps" in text_of(result)

    @pytest.mark.asyncio
    async def test_update_missing_document(self, client, api):
        result = await handlers.handle_update_document({"docId": "nope", "title": "X"}, client)
        assert text_of(result) == "Document with ID nope not found."
        assert not any(r.method == "PUT" for r in api.requests)

    @pytest.mark.asyncio
    async def test_list_documents(self, client):
        result = await handlers.handle_list_documents({}, client)
        assert text_of(result).startswith("Found 1 documents.")

    @pytest.mark.asyncio
    async def test_list_documents_empty(self, client, api):
        api.docs.clear()
        result = await handlers.handle_list_documents({}, client)
        assert text_of(result) == "No documents were found."

    @pytest.mark.asyncio
    async def test_search_documents_sends_filters(self, client, api):
        result = await handlers.handle_search_documents(
            {"title": "Runbook", "createdByCurrentUser": True, "nextPageToken": "d-1"}, client
        )

        params = api.last("GET", "/search/documents").url.params
        assert params["title"] == "Runbook"
        assert params["created_by_me"] == "true"
        assert params["next"] == "d-1"
        assert "archived" not in params
        assert "Result (first 1 shown of 1 total documents found):" in text_of(result)

    @pytest.mark.asyncio
    async def test_search_documents_requires_title(self, client):
        with pytest.raises(ValueError, match="title"):
            await handlers.handle_search_documents({}, client)

    @pytest.mark.asyncio
    async def test_get_document(self, client):
        result = await handlers.handle_get_document({"docId": "doc-1"}, client)
        assert "Title: Runbook" in text_of(result)
        assert "# Steps" in text_of(result)

    @pytest.mark.asyncio
    async def test_get_missing_document(self, client):
        result = await handlers.handle_get_document({"docId": "nope"}, client)
        assert text_of(result) == "Document with ID nope not found."
