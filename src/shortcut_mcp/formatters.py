"""Shared formatting functions for MCP tool responses.

Shortcut entities are rendered as compact plain text for the model to read.
"""


def _yes_no(value) -> str:
    return "Yes" if value else "No"


def _or_none(value, placeholder: str = "[None]") -> str:
    return str(value) if value not in (None, "", []) else placeholder


def story_state(story: dict) -> str:
    if story.get("completed"):
        return "Completed"
    if story.get("started"):
        return "In Progress"
    return "Not Started"


def format_mention(member: dict) -> str:
    profile = member.get("profile") or {}
    return f"@{profile.get('mention_name') or member.get('mention_name', '?')}"


def format_current_user(user: dict) -> str:
    return f"""Current user:
Id: {user['id']}
Mention name: @{user['mention_name']}
Full name: {user.get('name', '')}"""


def format_member(member: dict) -> str:
    profile = member.get("profile") or {}
    name = profile.get("name")
    name_info = f" ({name})" if name else ""
    return f"- id={member['id']} {format_mention(member)}{name_info}"


def format_member_list(ids: list[str], users: dict[str, dict]) -> str:
    lines = []
    for user_id in ids:
        user = users.get(user_id)
        if user:
            lines.append(f"- id={user['id']} {format_mention(user)}")
        else:
            lines.append(f"- id={user_id} [Unknown]")
    return "\n".join(lines)


def format_owners(owner_ids: list[str], users: dict[str, dict]) -> str:
    mentions = [format_mention(users[owner_id]) for owner_id in owner_ids if owner_id in users]
    return ", ".join(mentions) or "[None]"


def format_workflow_list(ids: list[int], workflows: dict[int, dict]) -> str:
    lines = []
    for workflow_id in ids:
        workflow = workflows.get(workflow_id)
        if not workflow:
            continue
        default_state = next(
            (state for state in workflow.get("states", []) if state["id"] == workflow.get("default_state_id")),
            None,
        )
        state_info = (
            f"id={default_state['id']} name={default_state['name']}" if default_state else "[Unknown]"
        )
        lines.append(f"- id={workflow['id']} name={workflow['name']}. Default state: {state_info}")
    return "\n".join(lines)


def format_workflow(workflow: dict) -> str:
    """Format a workflow with its states for display."""
    states = "\n".join(
        f"- id={state['id']} name={state['name']} type={state.get('type', 'unknown')}"
        + (" (default)" if state["id"] == workflow.get("default_state_id") else "")
        for state in workflow.get("states", [])
    )
    return f"""Workflow: {workflow['id']}
Name: {workflow['name']}
Description: {_or_none(workflow.get('description'))}
States:
{states or '[None]'}"""


def format_team(team: dict, users: dict[str, dict]) -> str:
    return f"""Team with id: {team['id']}
Name: {team['name']}
Mention name: {team.get('mention_name', '')}
Description: {_or_none(team.get('description'))}
Members:
{format_member_list(team.get('member_ids', []), users) or '[None]'}"""


def format_team_summary(team: dict, workflows: dict[int, dict]) -> str:
    return f"""Team with id: {team['id']}
Name: {team['name']}
Description: {_or_none(team.get('description'))}
Number of Members: {len(team.get('member_ids', []))}
Workflows:
{format_workflow_list(team.get('workflow_ids', []), workflows) or '[None]'}"""


def format_story_summary(story: dict, users: dict[str, dict]) -> str:
    """Format a story as a one-liner for list views."""
    return (
        f"- sc-{story['id']}: {story['name']} "
        f"(Type: {story.get('story_type', 'unknown')}, "
        f"State: {story_state(story)}, "
        f"Team: {_or_none(story.get('group_id'))}, "
        f"Epic: {_or_none(story.get('epic_id'))}, "
        f"Iteration: {_or_none(story.get('iteration_id'))}, "
        f"Owners: {format_owners(story.get('owner_ids', []), users)})"
    )


def format_story_list(stories: list[dict], users: dict[str, dict]) -> str:
    return "\n".join(format_story_summary(story, users) for story in stories)


def format_task_list(tasks: list[dict]) -> str:
    return "\n".join(f"- {'[X]' if task.get('complete') else '[ ]'} {task['description']}" for task in tasks)


def format_story(story: dict, users: dict[str, dict]) -> str:
    """Format a story with its details, tasks and description."""
    tasks = story.get("tasks") or []
    tasks_info = f"\n\nTasks:\n{format_task_list(tasks)}" if tasks else ""
    labels = ", ".join(label["name"] for label in story.get("labels") or [])

    return f"""Story: sc-{story['id']}
URL: {story.get('app_url', '')}
Name: {story['name']}
Type: {story.get('story_type', 'unknown')}
State: {story_state(story)}
Archived: {_yes_no(story.get('archived'))}
Estimate: {_or_none(story.get('estimate'), '[Not set]')}
Deadline: {_or_none(story.get('deadline'), '[Not set]')}
Team: {_or_none(story.get('group_id'))}
Epic: {_or_none(story.get('epic_id'))}
Iteration: {_or_none(story.get('iteration_id'))}
Workflow state: {_or_none(story.get('workflow_state_id'))}
Labels: {labels or '[None]'}
Owners: {format_owners(story.get('owner_ids', []), users)}{tasks_info}

Description:
{story.get('description') or '(No description)'}"""


def format_stats(stats: dict, show_points: bool) -> str:
    lines = [
        "Stats:",
        f"- Total stories: {stats.get('num_stories_total', 0)}",
        f"- Unstarted stories: {stats.get('num_stories_unstarted', 0)}",
        f"- Stories in progress: {stats.get('num_stories_started', 0)}",
        f"- Completed stories: {stats.get('num_stories_done', 0)}",
    ]
    if show_points:
        lines.extend([
            f"- Total points: {stats.get('num_points', 0)}",
            f"- Completed points: {stats.get('num_points_done', 0)}",
        ])
    return "\n".join(lines)


def format_epic(epic: dict, show_points: bool = False) -> str:
    stats = format_stats(epic.get("stats") or {}, show_points)
    return f"""Epic: {epic['id']}
URL: {epic.get('app_url', '')}
Name: {epic['name']}
Archived: {_yes_no(epic.get('archived'))}
Completed: {_yes_no(epic.get('completed'))}
Started: {_yes_no(epic.get('started'))}
Due date: {_or_none(epic.get('deadline'), '[Not set]')}
Team: {_or_none(epic.get('group_id'))}
Objective: {_or_none(epic.get('milestone_id'))}

{stats}

Description:
{epic.get('description') or '(No description)'}"""


def format_iteration(iteration: dict) -> str:
    return f"""Iteration: {iteration['id']}
URL: {iteration.get('app_url', '')}
Name: {iteration['name']}
Start date: {iteration.get('start_date')}
End date: {iteration.get('end_date')}
Completed: {_yes_no(iteration.get('status') == 'done')}
Started: {_yes_no(iteration.get('status') == 'started')}

Description:
{iteration.get('description') or '(No description)'}"""


def format_iteration_summary(iteration: dict) -> str:
    return (
        f"- {iteration['id']}: {iteration['name']} "
        f"(Start date: {iteration.get('start_date')}, End date: {iteration.get('end_date')})"
    )


def format_unordered_list(items: list[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def format_objective(objective: dict) -> str:
    return f"""Objective: {objective['id']}
URL: {objective.get('app_url', '')}
Name: {objective['name']}
State: {objective.get('state', 'unknown')}
Archived: {_yes_no(objective.get('archived'))}
Completed: {_yes_no(objective.get('completed'))}
Started: {_yes_no(objective.get('started'))}

Description:
{objective.get('description') or '(No description)'}"""


def format_objective_summary(objective: dict) -> str:
    return f"- {objective['id']}: {objective['name']} (State: {objective.get('state', 'unknown')})"


def _format_action(action: dict) -> str:
    entity = action.get("entity_type", "entity")
    label = f" {action['name']}" if action.get("name") else ""
    changes = ", ".join(sorted(action.get("changes") or {}))
    changes_info = f" (changed: {changes})" if changes else ""
    return f"{action.get('action', 'update')} {entity}{label}{changes_info}"


def format_history_entry(entry: dict, users: dict[str, dict]) -> str:
    """Format one story history entry as a line per action."""
    actor = entry.get("actor_name")
    if not actor:
        member = users.get(entry.get("member_id"))
        actor = format_mention(member) if member else _or_none(entry.get("member_id"), "[Unknown]")
    actions = "; ".join(_format_action(action) for action in entry.get("actions") or []) or "[No actions]"
    return f"- {entry.get('changed_at', '')} by {actor}: {actions}"


def format_document_summary(doc: dict) -> str:
    return f"- id={doc['id']} title={doc.get('title') or '(Untitled)'} url={doc.get('app_url', '')}"


def format_document(doc: dict) -> str:
    return f"""Document: {doc['id']}
URL: {doc.get('app_url', '')}
Title: {doc.get('title') or '(Untitled)'}

Content:
{doc.get('content_markdown') or '(No content)'}"""
