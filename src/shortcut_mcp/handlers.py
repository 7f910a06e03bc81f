"""MCP tool handlers for Shortcut.

All handlers follow a consistent pattern:
- Accept: arguments dict and the session's ShortcutClient
- Return: list[TextContent] built with the formatters module
- Raise ValueError for bad input or missing entities; the server turns it into an error result
- Log every write operation
"""
import logging
import re
from typing import Any, Optional

from mcp.types import TextContent

from . import formatters
from .client import ShortcutClient
from .search import build_search_query

logger = logging.getLogger("shortcut-mcp.handlers")

BRANCH_NAME_MAX_LENGTH = 50


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def _result_header(shown: int, total: int, entity: str) -> str:
    return f"Result (first {shown} shown of {total} total {entity} found):"


async def _require_story(client: ShortcutClient, story_id: int) -> dict:
    story = await client.get_story(story_id)
    if story is None:
        raise ValueError(f"Failed to retrieve Shortcut story with public ID: {story_id}")
    return story


# ============================================================================
# User Handlers
# ============================================================================

async def handle_get_current_user(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    user = await client.get_current_user()
    return _text(formatters.format_current_user(user))


async def handle_list_users(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    users = await client.list_users()
    lines = "\n".join(formatters.format_member(user) for user in users)
    return _text(f"Found {len(users)} users:\n{lines}")


# ============================================================================
# Team Handlers
# ============================================================================

async def handle_get_team(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    team_id = arguments["teamPublicId"]
    team = await client.get_team(team_id)
    if team is None:
        raise ValueError(f"Team with public ID: {team_id} not found.")
    users = await client.get_user_map(team.get("member_ids", []))
    return _text(formatters.format_team(team, users))


async def handle_list_teams(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    teams = await client.list_teams()
    if not teams:
        return _text("No teams found.")

    workflow_ids = sorted({wid for team in teams for wid in team.get("workflow_ids", [])})
    workflows = await client.get_workflow_map(workflow_ids)
    summaries = "\n\n".join(formatters.format_team_summary(team, workflows) for team in teams)
    return _text(f"Result (first {len(teams)} shown of {len(teams)} total teams found):\n\n{summaries}")


# ============================================================================
# Workflow Handlers
# ============================================================================

async def handle_get_workflow(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    workflow_id = arguments["workflowPublicId"]
    workflow = await client.get_workflow(workflow_id)
    if workflow is None:
        raise ValueError(f"Workflow with public ID: {workflow_id} not found.")
    return _text(formatters.format_workflow(workflow))


async def handle_list_workflows(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    workflows = await client.list_workflows()
    if not workflows:
        return _text("No workflows found.")

    by_id = {workflow["id"]: workflow for workflow in workflows}
    lines = formatters.format_workflow_list(list(by_id), by_id)
    return _text(f"{_result_header(len(workflows), len(workflows), 'workflows')}\n{lines}")


# ============================================================================
# Story Handlers
# ============================================================================

async def handle_get_story(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    story = await _require_story(client, arguments["storyPublicId"])
    users = await client.get_user_map(story.get("owner_ids", []))
    return _text(formatters.format_story(story, users))


async def handle_search_stories(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    """Search stories with structured filters.

    RETURNS:
    • One summary line per story
    • A next page token when more results exist; pass it back with the same filters
    """
    params = {k: v for k, v in arguments.items() if k != "nextPageToken"}
    current_user = await client.get_current_user()
    query = await build_search_query(params, current_user, client)
    logger.info(f"Searching stories with query: {query!r}")

    result = await client.search_stories(query, arguments.get("nextPageToken"))
    stories = result["data"]
    if not stories:
        return _text("Result: No stories found.")

    owner_ids = sorted({oid for story in stories for oid in story.get("owner_ids", [])})
    users = await client.get_user_map(owner_ids)
    text = f"{_result_header(len(stories), result['total'], 'stories')}\n{formatters.format_story_list(stories, users)}"
    if result["next"]:
        text += f"\n\nNext page token: {result['next']}"
    return _text(text)


def build_branch_name(mention_name: str, story: dict) -> str:
    """Build a git branch name like ``alice/sc-123/fix-login-bug``."""
    slug = re.sub(r"\s+", "-", story["name"].lower())
    slug = re.sub(r"[^\w-]", "", slug)
    return f"{mention_name}/sc-{story['id']}/{slug}"[:BRANCH_NAME_MAX_LENGTH]


async def handle_get_story_branch_name(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    story_id = arguments["storyPublicId"]
    current_user = await client.get_current_user()
    story = await _require_story(client, story_id)
    branch_name = build_branch_name(current_user["mention_name"], story)
    return _text(f"Branch name for story sc-{story_id}: {branch_name}")


async def handle_create_story(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    """Create a story in the given workflow, or in the team's first workflow.

    The story starts in the workflow's default state.
    """
    team_id: Optional[str] = arguments.get("team")
    workflow_id: Optional[int] = arguments.get("workflow")

    if not team_id and not workflow_id:
        raise ValueError("Team or Workflow has to be specified")

    if not workflow_id:
        team = await client.get_team(team_id)
        if team is None:
            raise ValueError(f"Team with public ID: {team_id} not found.")
        workflow_ids = team.get("workflow_ids") or []
        if not workflow_ids:
            raise ValueError(f"Team {team_id} has no workflows.")
        workflow_id = workflow_ids[0]

    workflow = await client.get_workflow(workflow_id)
    if workflow is None:
        raise ValueError(f"Failed to find workflow: {workflow_id}")

    payload: dict[str, Any] = {
        "name": arguments["name"],
        "description": arguments.get("description", ""),
        "story_type": arguments.get("type", "feature"),
        "workflow_state_id": workflow["default_state_id"],
    }
    if arguments.get("owner"):
        payload["owner_ids"] = [arguments["owner"]]
    if arguments.get("epic") is not None:
        payload["epic_id"] = arguments["epic"]
    if arguments.get("iteration") is not None:
        payload["iteration_id"] = arguments["iteration"]
    if team_id:
        payload["group_id"] = team_id

    story = await client.create_story(payload)
    logger.info(f"Created story sc-{story['id']}: {story['name']}")
    return _text(f"Created story: sc-{story['id']}")


UPDATE_FIELDS = {
    "name": "name",
    "description": "description",
    "type": "story_type",
    "epic": "epic_id",
    "estimate": "estimate",
    "iteration": "iteration_id",
    "owner_ids": "owner_ids",
    "workflow_state_id": "workflow_state_id",
    "team_id": "group_id",
    "deadline": "deadline",
    "archived": "archived",
}


async def handle_update_story(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    """Update only the fields present in the arguments; explicit nulls clear a field."""
    story_id = arguments["storyPublicId"]
    payload = {api_field: arguments[arg] for arg, api_field in UPDATE_FIELDS.items() if arg in arguments}
    if not payload:
        raise ValueError("No fields to update")

    await _require_story(client, story_id)
    story = await client.update_story(story_id, payload)
    logger.info(f"Updated story sc-{story_id}: {sorted(payload)}")
    return _text(f"Updated story sc-{story_id}. Story URL: {story.get('app_url', '')}")


async def handle_create_story_comment(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    story_id = arguments["storyPublicId"]
    text = arguments.get("text", "")
    if not text.strip():
        raise ValueError("Comment text is required")

    await _require_story(client, story_id)
    comment = await client.create_story_comment(story_id, text)
    logger.info(f"Created comment on story sc-{story_id}")
    return _text(f"Created comment on story sc-{story_id}. Comment URL: {comment.get('app_url', '')}")


async def handle_assign_current_user(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    story_id = arguments["storyPublicId"]
    story = await _require_story(client, story_id)
    current_user = await client.get_current_user()

    owner_ids = story.get("owner_ids", [])
    if current_user["id"] in owner_ids:
        return _text("Current user is already an owner of the story")

    await client.update_story(story_id, {"owner_ids": owner_ids + [current_user["id"]]})
    logger.info(f"Assigned {current_user['mention_name']} to story sc-{story_id}")
    return _text(f"Assigned current user as owner of story sc-{story_id}")


async def handle_unassign_current_user(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    story_id = arguments["storyPublicId"]
    story = await _require_story(client, story_id)
    current_user = await client.get_current_user()

    owner_ids = story.get("owner_ids", [])
    if current_user["id"] not in owner_ids:
        return _text("Current user is not an owner of the story")

    await client.update_story(story_id, {"owner_ids": [oid for oid in owner_ids if oid != current_user["id"]]})
    logger.info(f"Unassigned {current_user['mention_name']} from story sc-{story_id}")
    return _text(f"Unassigned current user as owner of story sc-{story_id}")


async def handle_get_story_history(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    story_id = arguments["storyPublicId"]
    await _require_story(client, story_id)
    history = await client.get_story_history(story_id)
    if not history:
        return _text(f"Result: No history found for story sc-{story_id}.")

    member_ids = sorted({entry["member_id"] for entry in history if entry.get("member_id")})
    users = await client.get_user_map(member_ids)
    lines = "\n".join(formatters.format_history_entry(entry, users) for entry in history)
    return _text(f"Result ({len(history)} history entries for story sc-{story_id}):\n{lines}")


async def _require_owners(client: ShortcutClient, owner_ids: list[str]) -> None:
    users = await client.get_user_map(owner_ids)
    missing = [owner_id for owner_id in owner_ids if owner_id not in users]
    if missing:
        raise ValueError(f"Failed to retrieve users with IDs: {', '.join(missing)}")


async def handle_add_task(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    story_id = arguments["storyPublicId"]
    description = arguments.get("taskDescription", "")
    if not description.strip():
        raise ValueError("Task description is required")

    await _require_story(client, story_id)
    payload: dict[str, Any] = {"description": description}
    owner_ids = arguments.get("taskOwnerIds") or []
    if owner_ids:
        await _require_owners(client, owner_ids)
        payload["owner_ids"] = owner_ids

    task = await client.create_task(story_id, payload)
    logger.info(f"Created task {task['id']} on story sc-{story_id}")
    return _text(f"Created task for story sc-{story_id}. Task ID: {task['id']}.")


async def handle_update_task(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    story_id = arguments["storyPublicId"]
    task_id = arguments["taskPublicId"]
    await _require_story(client, story_id)
    if await client.get_task(story_id, task_id) is None:
        raise ValueError(f"Failed to retrieve Shortcut task with public ID: {task_id}")

    payload: dict[str, Any] = {}
    if arguments.get("taskDescription"):
        payload["description"] = arguments["taskDescription"]
    if "taskOwnerIds" in arguments:
        payload["owner_ids"] = arguments["taskOwnerIds"] or []
    if "isCompleted" in arguments:
        payload["complete"] = bool(arguments["isCompleted"])

    task = await client.update_task(story_id, task_id, payload)
    logger.info(f"Updated task {task_id} on story sc-{story_id}: {sorted(payload)}")
    verb = "Completed" if arguments.get("isCompleted") else "Updated"
    return _text(f"{verb} task for story sc-{story_id}. Task ID: {task['id']}.")


# Inverse relations are stored as their active form with subject and object swapped
INVERSE_RELATIONS = {"blocked by": "blocks", "duplicated by": "duplicates"}


async def handle_add_relation(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    story_id = arguments["storyPublicId"]
    related_id = arguments["relatedStoryPublicId"]
    relation = arguments.get("relationshipType") or "relates to"

    await _require_story(client, story_id)
    await _require_story(client, related_id)

    subject_id, object_id = story_id, related_id
    if relation in INVERSE_RELATIONS:
        relation = INVERSE_RELATIONS[relation]
        subject_id, object_id = related_id, story_id

    await client.create_story_link(subject_id, object_id, relation)
    logger.info(f"Linked sc-{subject_id} {relation} sc-{object_id}")

    if relation == "blocks":
        return _text(f"Marked sc-{subject_id} as a blocker to sc-{object_id}.")
    if relation == "duplicates":
        return _text(f"Marked sc-{subject_id} as a duplicate of sc-{object_id}.")
    return _text(f"Added a relationship between sc-{subject_id} and sc-{object_id}.")


# ============================================================================
# Epic Handlers
# ============================================================================

async def handle_get_epic(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    epic_id = arguments["epicPublicId"]
    epic = await client.get_epic(epic_id)
    if epic is None:
        raise ValueError(f"Failed to retrieve Shortcut epic with public ID: {epic_id}")
    return _text(formatters.format_epic(epic, show_points=True))


async def handle_search_epics(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    current_user = await client.get_current_user()
    query = await build_search_query(arguments, current_user, client)
    result = await client.search_epics(query)
    epics = result["data"]
    if not epics:
        return _text("Result: No epics found.")

    lines = formatters.format_unordered_list([f"{epic['id']}: {epic['name']}" for epic in epics])
    return _text(f"{_result_header(len(epics), result['total'], 'epics')}\n{lines}")


async def handle_create_epic(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    payload = {"name": arguments["name"]}
    if arguments.get("teamId"):
        payload["group_id"] = arguments["teamId"]
    if arguments.get("description"):
        payload["description"] = arguments["description"]

    epic = await client.create_epic(payload)
    logger.info(f"Created epic {epic['id']}: {epic['name']}")
    return _text(f"Epic created with ID: {epic['id']}.")


# ============================================================================
# Iteration Handlers
# ============================================================================

async def handle_get_iteration(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    iteration_id = arguments["iterationPublicId"]
    iteration = await client.get_iteration(iteration_id)
    if iteration is None:
        raise ValueError(f"Failed to retrieve Shortcut iteration with public ID: {iteration_id}")
    return _text(formatters.format_iteration(iteration))


async def handle_search_iterations(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    current_user = await client.get_current_user()
    query = await build_search_query(arguments, current_user, client)
    result = await client.search_iterations(query)
    iterations = result["data"]
    if not iterations:
        return _text("Result: No iterations found.")

    lines = "\n".join(formatters.format_iteration_summary(iteration) for iteration in iterations)
    return _text(f"{_result_header(len(iterations), result['total'], 'iterations')}\n{lines}")


async def handle_get_iteration_stories(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    iteration_id = arguments["iterationPublicId"]
    stories = await client.list_iteration_stories(iteration_id)
    if not stories:
        return _text(f"No stories found in iteration {iteration_id}.")

    owner_ids = sorted({oid for story in stories for oid in story.get("owner_ids", [])})
    users = await client.get_user_map(owner_ids)
    return _text(
        f"Result ({len(stories)} stories found in iteration {iteration_id}):\n"
        f"{formatters.format_story_list(stories, users)}"
    )


# ============================================================================
# Objective Handlers
# ============================================================================

async def handle_get_objective(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    objective_id = arguments["objectivePublicId"]
    objective = await client.get_objective(objective_id)
    if objective is None:
        raise ValueError(f"Failed to retrieve Shortcut objective with public ID: {objective_id}")
    return _text(formatters.format_objective(objective))


async def handle_search_objectives(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    params = {k: v for k, v in arguments.items() if k != "nextPageToken"}
    current_user = await client.get_current_user()
    query = await build_search_query(params, current_user, client)
    result = await client.search_objectives(query, arguments.get("nextPageToken"))
    objectives = result["data"]
    if not objectives:
        return _text("Result: No objectives found.")

    lines = "\n".join(formatters.format_objective_summary(objective) for objective in objectives)
    text = f"{_result_header(len(objectives), result['total'], 'objectives')}\n{lines}"
    if result["next"]:
        text += f"\n\nNext page token: {result['next']}"
    return _text(text)


# ============================================================================
# Document Handlers
# ============================================================================

async def handle_create_document(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    """Create a document; content is always sent as Markdown."""
    doc = await client.create_doc({
        "title": arguments["title"],
        "content": arguments["content"],
        "content_format": "markdown",
    })
    logger.info(f"Created document {doc['id']}: {doc.get('title')}")
    return _text(f"Document created successfully\n{formatters.format_document_summary(doc)}")


async def handle_update_document(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    """Update a document's title and/or content, keeping whichever is not given."""
    doc_id = arguments["docId"]
    doc = await client.get_doc(doc_id)
    if doc is None:
        return _text(f"Document with ID {doc_id} not found.")

    title = arguments.get("title")
    content = arguments.get("content")
    updated = await client.update_doc(doc_id, {
        "title": title if title is not None else doc.get("title") or "",
        "content": content if content is not None else doc.get("content_markdown") or "",
        "content_format": "markdown",
    })
    logger.info(f"Updated document {doc_id}")
    return _text(f"Document updated successfully\n\n{formatters.format_document(updated)}")


async def handle_list_documents(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    docs = await client.list_docs()
    if not docs:
        return _text("No documents were found.")
    lines = "\n".join(formatters.format_document_summary(doc) for doc in docs)
    return _text(f"Found {len(docs)} documents.\n{lines}")


DOCUMENT_SEARCH_PARAMS = {
    "title": "title",
    "archived": "archived",
    "createdByCurrentUser": "created_by_me",
    "followedByCurrentUser": "followed_by_me",
}


async def handle_search_documents(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    if not arguments.get("title"):
        raise ValueError("Document title is required")

    filters = {api_param: arguments.get(arg) for arg, api_param in DOCUMENT_SEARCH_PARAMS.items()}
    result = await client.search_documents(filters, arguments.get("nextPageToken"))
    docs = result["data"]
    if not docs:
        return _text("Result: No documents found.")

    lines = "\n".join(formatters.format_document_summary(doc) for doc in docs)
    text = f"{_result_header(len(docs), result['total'], 'documents')}\n{lines}"
    if result["next"]:
        text += f"\n\nNext page token: {result['next']}"
    return _text(text)


async def handle_get_document(arguments: dict, client: ShortcutClient) -> list[TextContent]:
    doc_id = arguments["docId"]
    doc = await client.get_doc(doc_id)
    if doc is None:
        return _text(f"Document with ID {doc_id} not found.")
    return _text(formatters.format_document(doc))


HANDLERS = {
    "users-get-current": handle_get_current_user,
    "users-list": handle_list_users,
    "teams-get-by-id": handle_get_team,
    "teams-list": handle_list_teams,
    "workflows-get-by-id": handle_get_workflow,
    "workflows-list": handle_list_workflows,
    "stories-get-by-id": handle_get_story,
    "stories-search": handle_search_stories,
    "stories-get-branch-name": handle_get_story_branch_name,
    "stories-create": handle_create_story,
    "stories-update": handle_update_story,
    "stories-create-comment": handle_create_story_comment,
    "stories-assign-current-user": handle_assign_current_user,
    "stories-unassign-current-user": handle_unassign_current_user,
    "stories-get-history": handle_get_story_history,
    "stories-add-task": handle_add_task,
    "stories-update-task": handle_update_task,
    "stories-add-relation": handle_add_relation,
    "epics-get-by-id": handle_get_epic,
    "epics-search": handle_search_epics,
    "epics-create": handle_create_epic,
    "iterations-get-by-id": handle_get_iteration,
    "iterations-search": handle_search_iterations,
    "iterations-get-stories": handle_get_iteration_stories,
    "objectives-get-by-id": handle_get_objective,
    "objectives-search": handle_search_objectives,
    "documents-create": handle_create_document,
    "documents-update": handle_update_document,
    "documents-list": handle_list_documents,
    "documents-search": handle_search_documents,
    "documents-get-by-id": handle_get_document,
}
