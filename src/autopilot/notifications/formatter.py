"""Message formatting for notification channels."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from autopilot.notifications.models import EventType

if TYPE_CHECKING:
    from autopilot.notifications.models import NotificationEvent

# (emoji, title, hex color) per event type
_EVENT_METADATA: dict[EventType, tuple[str, str, str]] = {
    EventType.AGENT_STARTED: ("🚀", "Agent Started", "#3b82f6"),
    EventType.AGENT_COMPLETED: ("✅", "Agent Completed", "#22c55e"),
    EventType.AGENT_FAILED: ("❌", "Agent Failed", "#ef4444"),
    EventType.AGENT_STUCK: ("⚠️", "Agent Stuck", "#f59e0b"),
    EventType.PR_CREATED: ("🔗", "PR Created", "#8b5cf6"),
}

MAX_DISCORD_ERROR = 500


def format_duration(ms: int) -> str:
    """Format milliseconds as "1h 2m", "3m 4s" or "5s"."""
    seconds = ms // 1000
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def _details(event: NotificationEvent) -> list[tuple[str, str]]:
    """Event-specific (label, value) pairs."""
    if event.type == EventType.AGENT_STARTED:
        return [("Branch", event.branch_name)]
    if event.type == EventType.AGENT_COMPLETED:
        return [("Duration", format_duration(event.duration_ms or 0))]
    if event.type == EventType.AGENT_FAILED:
        return [
            ("Error", event.error or "unknown error"),
            ("Attempt", f"{event.attempt}/{event.max_attempts}"),
        ]
    if event.type == EventType.AGENT_STUCK:
        return [("Running for", format_duration(event.running_for_ms or 0))]
    return [("PR", event.pr_url or "")]


def format_event(event: NotificationEvent) -> str:
    """Render an event as plain text."""
    emoji, title, _ = _EVENT_METADATA[event.type]
    lines = [
        f"{emoji} {title}: {event.ticket.identifier} - {event.ticket.title} ({event.tenant.name})"
    ]
    lines.extend(f"{label}: {value}" for label, value in _details(event))
    return "\n".join(lines)


def format_slack(event: NotificationEvent) -> dict[str, Any]:
    """Build a Slack incoming-webhook payload."""
    emoji, title, color = _EVENT_METADATA[event.type]
    fields = [
        {"type": "mrkdwn", "text": f"*Ticket:*\n{event.ticket.identifier}"},
        {"type": "mrkdwn", "text": f"*Tenant:*\n{event.tenant.name}"},
    ]
    error_block = None
    for label, value in _details(event):
        if label == "Error":
            error_block = {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Error:*\n```{value}```"},
            }
        elif label == "PR":
            fields.append({"type": "mrkdwn", "text": f"*PR:*\n<{value}|View PR>"})
        else:
            fields.append({"type": "mrkdwn", "text": f"*{label}:*\n{value}"})

    blocks: list[dict[str, Any]] = [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"{emoji} *{title}*\n{event.ticket.title}"},
        },
        {"type": "section", "fields": fields},
    ]
    if error_block:
        blocks.append(error_block)
    return {"text": format_event(event), "attachments": [{"color": color, "blocks": blocks}]}


def format_discord(event: NotificationEvent) -> dict[str, Any]:
    """Build a Discord webhook payload with one embed."""
    emoji, title, color = _EVENT_METADATA[event.type]
    fields = [
        {"name": "Ticket", "value": event.ticket.identifier, "inline": True},
        {"name": "Tenant", "value": event.tenant.name, "inline": True},
    ]
    for label, value in _details(event):
        if label == "Error":
            fields.append(
                {"name": "Error", "value": f"```{value[:MAX_DISCORD_ERROR]}```", "inline": False}
            )
        elif label == "PR":
            fields.append({"name": "PR", "value": f"[View PR]({value})", "inline": True})
        else:
            fields.append({"name": label, "value": value, "inline": True})
    return {
        "embeds": [
            {
                "title": f"{emoji} {title}",
                "description": event.ticket.title,
                "color": int(color[1:], 16),
                "fields": fields,
                "timestamp": event.timestamp.isoformat(),
            }
        ]
    }


def format_webhook(event: NotificationEvent) -> dict[str, Any]:
    """Build a generic JSON payload."""
    payload: dict[str, Any] = {
        "type": event.type.value,
        "timestamp": event.timestamp.isoformat(),
        "ticket": {
            "id": event.ticket.id,
            "identifier": event.ticket.identifier,
            "title": event.ticket.title,
        },
        "tenant": event.tenant.name,
        "branch_name": event.branch_name,
        "message": format_event(event),
    }
    extras = {
        "duration_ms": event.duration_ms,
        "error": event.error,
        "attempt": event.attempt,
        "max_attempts": event.max_attempts,
        "pr_url": event.pr_url,
        "running_for_ms": event.running_for_ms,
    }
    payload.update({key: value for key, value in extras.items() if value is not None})
    return payload
