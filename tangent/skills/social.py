"""Social media skill - Twitter/X, Instagram, WhatsApp, Telegram."""

from ..core.skill import Skill
from .base import SCREEN_TOOLS

social_media_skill = Skill(
    id="social_media",
    name="Social Media",
    description="Control social media apps like Twitter/X, Instagram, WhatsApp, Telegram",
    prompt_fragment="""## Social Media Skill

You are controlling social media apps through screen control.

- Open the app with open_app, then call get_screen to read the feed.
- Feeds contain many layout elements; focus on elements with actual text content.
- To open a chat or profile, tap the row container, not the name text.
- Summarize posts with author, content and time. Stop navigating once you have the answer.
- NEVER post, send a DM, like or follow without explicit user confirmation.""",
    required_tools=(*SCREEN_TOOLS, "send_whatsapp", "search_contacts"),
    max_steps=15,
    needs_accessibility=True,
    needs_background=True,
    sensitive_actions=("send_whatsapp",),
)
