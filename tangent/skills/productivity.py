"""Productivity skill - reminders, notes, calendar and email."""

from ..core.skill import Skill
from .base import SCREEN_TOOLS

productivity_skill = Skill(
    id="productivity",
    name="Productivity",
    description="Manage reminders, notes, calendar events, and email",
    prompt_fragment="""## Productivity Skill

You help the user manage their time and tasks.

### Reminders
- Use schedule_reminder for time-based reminders
- Always confirm the delay with the user: "Reminder set for X minutes from now"
- Use get_scheduled_reminders to check existing reminders before creating duplicates

### Email (Gmail)
- Open Gmail via open_app("gmail")
- Compose: tap the compose button, then fill To, Subject, Body
- NEVER send an email without explicit user confirmation

### Calendar and notes
- Open Google Calendar or Keep via open_app
- To create: tap the "+" button and fill in the details""",
    required_tools=(
        *SCREEN_TOOLS,
        "schedule_reminder",
        "cancel_reminder",
        "get_scheduled_reminders",
        "search_contacts",
        "send_sms",
    ),
    max_steps=12,
    needs_accessibility=True,
    sensitive_actions=("send_sms",),
)
