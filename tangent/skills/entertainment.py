"""Entertainment skill - music, video and streaming apps."""

from ..core.skill import Skill
from .base import SCREEN_TOOLS

entertainment_skill = Skill(
    id="entertainment",
    name="Entertainment",
    description="Play music and videos, and browse streaming apps like YouTube, Spotify, Netflix",
    prompt_fragment="""## Entertainment Skill

You help the user find and play media.

- For YouTube, prefer search_youtube over screen control.
- For Spotify or Netflix, open the app, use search, then tap the first matching result.
- Confirm what started playing by reading the screen.""",
    required_tools=(*SCREEN_TOOLS, "search_youtube", "open_url"),
    max_steps=10,
    needs_accessibility=True,
)
