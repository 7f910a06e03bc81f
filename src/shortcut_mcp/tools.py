"""Shared MCP tool definitions for Shortcut.

This module provides the definitive list of MCP tools exposed to every session,
split into read tools (always available) and write tools (only when the server
is not read-only). The order of get_tools() is the order tools are listed to
the model, so the most useful ones come first.
"""
from typing import Iterable, Optional

from mcp.types import Tool, ToolAnnotations

DATE_DESCRIPTION = (
    'The date in "YYYY-MM-DD" format, or one of the keywords: "yesterday", "today", "tomorrow", '
    'or a date range in the format "YYYY-MM-DD..YYYY-MM-DD". Either bound of a range can be "*" '
    'for an open range. Examples: "2023-01-01", "today", "2023-01-01..*", "*..yesterday".'
)
DATE_PATTERN = (
    r"^(today|tomorrow|yesterday|\d{4}-\d{2}-\d{2}"
    r"|(\*|today|tomorrow|yesterday|\d{4}-\d{2}-\d{2})\.\.(\*|today|tomorrow|yesterday|\d{4}-\d{2}-\d{2}))$"
)


def _is(field: str) -> dict:
    return {
        "type": "boolean",
        "description": f"Find only entities that are {field} when true, "
                       f"or only entities that are not {field} when false.",
    }


def _has(field: str) -> dict:
    return {
        "type": "boolean",
        "description": f"Find only entities that have {field} when true, "
                       f"or only entities that do not have {field} when false.",
    }


def _user(field: str) -> dict:
    return {
        "type": "string",
        "description": f"Find entities where the {field} match the specified user. This must either be "
                       f"the user's mention name or the keyword \"me\" for the current user.",
    }


def _date() -> dict:
    return {"type": "string", "pattern": DATE_PATTERN, "description": DATE_DESCRIPTION}


def _public_id(entity: str) -> dict:
    return {"type": "integer", "minimum": 1, "description": f"The public ID of the {entity}"}


READ = ToolAnnotations(readOnlyHint=True)
WRITE = ToolAnnotations(readOnlyHint=False, destructiveHint=False)


def _all_tools() -> list[Tool]:
    return [
        # ============================================================================
        # User Tools
        # ============================================================================
        Tool(
            name="users-get-current",
            description="Get the current user (the owner of the API token).",
            inputSchema={"type": "object", "properties": {}},
            annotations=READ,
        ),
        Tool(
            name="users-list",
            description="List all members of the Shortcut workspace.",
            inputSchema={"type": "object", "properties": {}},
            annotations=READ,
        ),
        # ============================================================================
        # Story Tools
        # ============================================================================
        Tool(
            name="stories-get-by-id",
            description="Get a Shortcut story by public ID.",
            inputSchema={
                "type": "object",
                "properties": {"storyPublicId": _public_id("story")},
                "required": ["storyPublicId"],
            },
            annotations=READ,
        ),
        Tool(
            name="stories-search",
            description="Find Shortcut stories. "
                        "Combine filters to narrow results; pass nextPageToken from a previous result "
                        "together with the same filters to get the next page.",
            inputSchema={
                "type": "object",
                "properties": {
                    "nextPageToken": {
                        "type": "string",
                        "description": "Token returned by a previous search to fetch the next page",
                    },
                    "id": {"type": "integer", "description": "Find only stories with the specified public ID"},
                    "name": {"type": "string", "description": "Find only stories matching the specified name"},
                    "description": {
                        "type": "string",
                        "description": "Find only stories matching the specified description",
                    },
                    "comment": {"type": "string", "description": "Find only stories matching the specified comment"},
                    "type": {
                        "type": "string",
                        "enum": ["feature", "bug", "chore"],
                        "description": "Find only stories of the specified type",
                    },
                    "estimate": {"type": "integer", "description": "Find only stories with the specified estimate"},
                    "epic": {"type": "integer", "description": "Find only stories in the specified epic"},
                    "state": {"type": "string", "description": "Find only stories in the specified workflow state"},
                    "label": {"type": "string", "description": "Find only stories with the specified label"},
                    "owner": _user("owner"),
                    "requester": _user("requester"),
                    "team": {
                        "type": "string",
                        "description": "Find only stories of the specified team (team mention name or team name).",
                    },
                    "isDone": _is("completed"),
                    "isStarted": _is("started"),
                    "isUnstarted": _is("unstarted"),
                    "isUnestimated": _is("unestimated"),
                    "isOverdue": _is("overdue"),
                    "isArchived": _is("archived"),
                    "isBlocker": _is("blocking"),
                    "isBlocked": _is("blocked"),
                    "hasComment": _has("a comment"),
                    "hasLabel": _has("a label"),
                    "hasDeadline": _has("a deadline"),
                    "hasOwner": _has("an owner"),
                    "hasEpic": _has("an epic"),
                    "hasTask": _has("a task"),
                    "created": _date(),
                    "updated": _date(),
                    "completed": _date(),
                    "due": _date(),
                },
            },
            annotations=READ,
        ),
        Tool(
            name="stories-get-branch-name",
            description="Get a valid git branch name for a specific story.",
            inputSchema={
                "type": "object",
                "properties": {"storyPublicId": _public_id("story")},
                "required": ["storyPublicId"],
            },
            annotations=READ,
        ),
        Tool(
            name="stories-create",
            description="Create a new Shortcut story. "
                        "Name is required, and either a team or a workflow must be specified. "
                        "When only a team is given, the team's first workflow is used.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "maxLength": 512, "description": "The name of the story"},
                    "description": {"type": "string", "description": "The description of the story"},
                    "type": {
                        "type": "string",
                        "enum": ["feature", "bug", "chore"],
                        "description": "The type of the story (default: feature)",
                    },
                    "owner": {"type": "string", "description": "The user id of the owner of the story"},
                    "epic": {"type": "integer", "description": "The epic id to add the story to"},
                    "iteration": {"type": "integer", "description": "The iteration id to add the story to"},
                    "team": {"type": "string", "description": "The team id to assign the story to"},
                    "workflow": {"type": "integer", "description": "The workflow id to create the story in"},
                },
                "required": ["name"],
            },
            annotations=WRITE,
        ),
        Tool(
            name="stories-update",
            description="Update an existing Shortcut story. Only the provided fields are changed.",
            inputSchema={
                "type": "object",
                "properties": {
                    "storyPublicId": _public_id("story"),
                    "name": {"type": "string", "description": "The new name of the story"},
                    "description": {"type": "string", "description": "The new description of the story"},
                    "type": {"type": "string", "enum": ["feature", "bug", "chore"]},
                    "epic": {"type": ["integer", "null"], "description": "Epic id, or null to remove"},
                    "estimate": {"type": ["integer", "null"], "description": "Point estimate, or null to remove"},
                    "iteration": {"type": ["integer", "null"], "description": "Iteration id, or null to remove"},
                    "owner_ids": {"type": "array", "items": {"type": "string"}, "description": "Owner user ids"},
                    "workflow_state_id": {"type": "integer", "description": "Workflow state to move the story to"},
                    "team_id": {"type": ["string", "null"], "description": "Team id, or null to remove"},
                    "deadline": {"type": ["string", "null"], "description": "Deadline (ISO 8601), or null to remove"},
                    "archived": {"type": "boolean", "description": "Archive or unarchive the story"},
                },
                "required": ["storyPublicId"],
            },
            annotations=WRITE,
        ),
        Tool(
            name="stories-create-comment",
            description="Create a comment on a Shortcut story.",
            inputSchema={
                "type": "object",
                "properties": {
                    "storyPublicId": _public_id("story"),
                    "text": {"type": "string", "minLength": 1, "description": "The text of the comment"},
                },
                "required": ["storyPublicId", "text"],
            },
            annotations=WRITE,
        ),
        Tool(
            name="stories-assign-current-user",
            description="Assign the current user as an owner of a story.",
            inputSchema={
                "type": "object",
                "properties": {"storyPublicId": _public_id("story")},
                "required": ["storyPublicId"],
            },
            annotations=WRITE,
        ),
        Tool(
            name="stories-unassign-current-user",
            description="Remove the current user from the owners of a story.",
            inputSchema={
                "type": "object",
                "properties": {"storyPublicId": _public_id("story")},
                "required": ["storyPublicId"],
            },
            annotations=WRITE,
        ),
        Tool(
            name="stories-get-history",
            description="Get the change history for a Shortcut story. Shows what changed, when, and by whom.",
            inputSchema={
                "type": "object",
                "properties": {"storyPublicId": _public_id("story")},
                "required": ["storyPublicId"],
            },
            annotations=READ,
        ),
        Tool(
            name="stories-add-task",
            description="Add a task to a story.",
            inputSchema={
                "type": "object",
                "properties": {
                    "storyPublicId": _public_id("story"),
                    "taskDescription": {"type": "string", "minLength": 1, "description": "The description of the task"},
                    "taskOwnerIds": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "User ids to assign as owners of the task",
                    },
                },
                "required": ["storyPublicId", "taskDescription"],
            },
            annotations=WRITE,
        ),
        Tool(
            name="stories-update-task",
            description="Update a task in a story.",
            inputSchema={
                "type": "object",
                "properties": {
                    "storyPublicId": _public_id("story"),
                    "taskPublicId": _public_id("task"),
                    "taskDescription": {"type": "string", "description": "The description of the task"},
                    "taskOwnerIds": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "User ids to assign as owners of the task",
                    },
                    "isCompleted": {"type": "boolean", "description": "Whether the task is completed"},
                },
                "required": ["storyPublicId", "taskPublicId"],
            },
            annotations=WRITE,
        ),
        Tool(
            name="stories-add-relation",
            description="Add a story relationship to a story.",
            inputSchema={
                "type": "object",
                "properties": {
                    "storyPublicId": _public_id("story"),
                    "relatedStoryPublicId": _public_id("related story"),
                    "relationshipType": {
                        "type": "string",
                        "enum": ["relates to", "blocks", "blocked by", "duplicates", "duplicated by"],
                        "default": "relates to",
                        "description": "The type of relationship",
                    },
                },
                "required": ["storyPublicId", "relatedStoryPublicId"],
            },
            annotations=WRITE,
        ),
        # ============================================================================
        # Iteration Tools
        # ============================================================================
        Tool(
            name="iterations-get-by-id",
            description="Get a Shortcut iteration by public ID.",
            inputSchema={
                "type": "object",
                "properties": {"iterationPublicId": _public_id("iteration")},
                "required": ["iterationPublicId"],
            },
            annotations=READ,
        ),
        Tool(
            name="iterations-get-stories",
            description="Get the stories in a specific iteration by iteration public ID.",
            inputSchema={
                "type": "object",
                "properties": {"iterationPublicId": _public_id("iteration")},
                "required": ["iterationPublicId"],
            },
            annotations=READ,
        ),
        Tool(
            name="iterations-search",
            description="Find Shortcut iterations.",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {"type": "integer", "description": "Find only iterations with the specified public ID"},
                    "name": {"type": "string", "description": "Find only iterations matching the specified name"},
                    "description": {
                        "type": "string",
                        "description": "Find only iterations matching the specified description",
                    },
                    "state": {
                        "type": "string",
                        "enum": ["started", "unstarted", "done"],
                        "description": "Find only iterations in the specified state",
                    },
                    "team": {"type": "string", "description": "Find only iterations of the specified team"},
                    "created": _date(),
                    "updated": _date(),
                    "start_date": _date(),
                    "end_date": _date(),
                },
            },
            annotations=READ,
        ),
        # ============================================================================
        # Epic Tools
        # ============================================================================
        Tool(
            name="epics-get-by-id",
            description="Get a Shortcut epic by public ID.",
            inputSchema={
                "type": "object",
                "properties": {"epicPublicId": _public_id("epic")},
                "required": ["epicPublicId"],
            },
            annotations=READ,
        ),
        Tool(
            name="epics-search",
            description="Find Shortcut epics.",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {"type": "integer", "description": "Find only epics with the specified public ID"},
                    "name": {"type": "string", "description": "Find only epics matching the specified name"},
                    "description": {
                        "type": "string",
                        "description": "Find only epics matching the specified description",
                    },
                    "state": {
                        "type": "string",
                        "enum": ["unstarted", "started", "done"],
                        "description": "Find only epics in the specified state",
                    },
                    "objective": {"type": "integer", "description": "Find only epics of the specified objective"},
                    "owner": _user("owner"),
                    "requester": _user("requester"),
                    "team": {"type": "string", "description": "Find only epics of the specified team"},
                    "comment": {"type": "string", "description": "Find only epics matching the specified comment"},
                    "isUnstarted": _is("unstarted"),
                    "isStarted": _is("started"),
                    "isDone": _is("completed"),
                    "isArchived": _is("archived"),
                    "isOverdue": _is("overdue"),
                    "hasOwner": _has("an owner"),
                    "hasComment": _has("a comment"),
                    "hasDeadline": _has("a deadline"),
                    "hasLabel": _has("a label"),
                    "created": _date(),
                    "updated": _date(),
                    "completed": _date(),
                    "due": _date(),
                },
            },
            annotations=READ,
        ),
        Tool(
            name="epics-create",
            description="Create a new Shortcut epic.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "The name of the epic"},
                    "teamId": {"type": "string", "description": "The id of the team to assign the epic to"},
                    "description": {"type": "string", "description": "The description of the epic"},
                },
                "required": ["name"],
            },
            annotations=WRITE,
        ),
        # ============================================================================
        # Team Tools
        # ============================================================================
        Tool(
            name="teams-get-by-id",
            description="Get a Shortcut team by public ID.",
            inputSchema={
                "type": "object",
                "properties": {"teamPublicId": {"type": "string", "description": "The public ID of the team"}},
                "required": ["teamPublicId"],
            },
            annotations=READ,
        ),
        Tool(
            name="teams-list",
            description="List all Shortcut teams.",
            inputSchema={"type": "object", "properties": {}},
            annotations=READ,
        ),
        # ============================================================================
        # Workflow Tools
        # ============================================================================
        Tool(
            name="workflows-get-by-id",
            description="Get a Shortcut workflow and its states by public ID.",
            inputSchema={
                "type": "object",
                "properties": {"workflowPublicId": _public_id("workflow")},
                "required": ["workflowPublicId"],
            },
            annotations=READ,
        ),
        Tool(
            name="workflows-list",
            description="List all Shortcut workflows.",
            inputSchema={"type": "object", "properties": {}},
            annotations=READ,
        ),
        # ============================================================================
        # Objective Tools
        # ============================================================================
        Tool(
            name="objectives-get-by-id",
            description="Get a Shortcut objective by public ID.",
            inputSchema={
                "type": "object",
                "properties": {"objectivePublicId": _public_id("objective")},
                "required": ["objectivePublicId"],
            },
            annotations=READ,
        ),
        Tool(
            name="objectives-search",
            description="Find Shortcut objectives.",
            inputSchema={
                "type": "object",
                "properties": {
                    "nextPageToken": {
                        "type": "string",
                        "description": "Token returned by a previous search to fetch the next page",
                    },
                    "id": {"type": "integer", "description": "Find only objectives with the specified public ID"},
                    "name": {"type": "string", "description": "Find only objectives matching the specified name"},
                    "description": {
                        "type": "string",
                        "description": "Find only objectives matching the specified description",
                    },
                    "state": {
                        "type": "string",
                        "enum": ["unstarted", "started", "done"],
                        "description": "Find only objectives in the specified state",
                    },
                    "owner": _user("owner"),
                    "requester": _user("requester"),
                    "team": {"type": "string", "description": "Find only objectives of the specified team"},
                    "isUnstarted": _is("unstarted"),
                    "isStarted": _is("started"),
                    "isDone": _is("completed"),
                    "isArchived": _is("archived"),
                    "hasOwner": _has("an owner"),
                    "created": _date(),
                    "updated": _date(),
                    "completed": _date(),
                },
            },
            annotations=READ,
        ),
        # ============================================================================
        # Document Tools
        # ============================================================================
        Tool(
            name="documents-create",
            description="Create a new document in Shortcut with a title and Markdown content. "
                        "Returns the document's id, title and URL.",
            inputSchema={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "maxLength": 256, "description": "The title of the document"},
                    "content": {"type": "string", "description": "The content of the document in Markdown"},
                },
                "required": ["title", "content"],
            },
            annotations=WRITE,
        ),
        Tool(
            name="documents-update",
            description="Update the title and/or content of an existing Shortcut document.",
            inputSchema={
                "type": "object",
                "properties": {
                    "docId": {"type": "string", "description": "The ID of the document to update"},
                    "title": {"type": "string", "maxLength": 256, "description": "The new title of the document"},
                    "content": {"type": "string", "description": "The new content of the document in Markdown"},
                },
                "required": ["docId"],
            },
            annotations=WRITE,
        ),
        Tool(
            name="documents-list",
            description="List all documents in Shortcut.",
            inputSchema={"type": "object", "properties": {}},
            annotations=READ,
        ),
        Tool(
            name="documents-search",
            description="Find Shortcut documents by title.",
            inputSchema={
                "type": "object",
                "properties": {
                    "nextPageToken": {
                        "type": "string",
                        "description": "Token returned by a previous search to fetch the next page",
                    },
                    "title": {"type": "string", "description": "Find documents matching the specified title"},
                    "archived": {"type": "boolean", "description": "Find only documents with this archived status"},
                    "createdByCurrentUser": {
                        "type": "boolean",
                        "description": "Find only documents created by the current user",
                    },
                    "followedByCurrentUser": {
                        "type": "boolean",
                        "description": "Find only documents followed by the current user",
                    },
                },
                "required": ["title"],
            },
            annotations=READ,
        ),
        Tool(
            name="documents-get-by-id",
            description="Get a Shortcut document as Markdown by its ID.",
            inputSchema={
                "type": "object",
                "properties": {"docId": {"type": "string", "description": "The ID of the document"}},
                "required": ["docId"],
            },
            annotations=READ,
        ),
    ]


def is_write_tool(tool: Tool) -> bool:
    return not (tool.annotations and tool.annotations.readOnlyHint)


def should_add_tool(name: str, enabled_tools: Optional[Iterable[str]]) -> bool:
    """
    Check a tool against the enabled-tools filter.

    An empty filter enables everything; otherwise an entry matches either the
    entity prefix (``stories`` for ``stories-search``) or the full tool name.
    """
    enabled = set(enabled_tools or [])
    if not enabled:
        return True
    entity = name.split("-", 1)[0]
    return entity in enabled or name in enabled


def get_tools(readonly: bool = True, enabled_tools: Optional[Iterable[str]] = None) -> list[Tool]:
    """Get the tools available under the given access mode and filter."""
    enabled = list(enabled_tools or [])
    return [
        tool
        for tool in _all_tools()
        if (not readonly or not is_write_tool(tool)) and should_add_tool(tool.name, enabled)
    ]


def get_tool_names(readonly: bool = True, enabled_tools: Optional[Iterable[str]] = None) -> list[str]:
    return [tool.name for tool in get_tools(readonly, enabled_tools)]
