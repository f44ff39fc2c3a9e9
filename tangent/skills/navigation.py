"""Navigation skill - Maps directions and ride hailing."""

from ..core.skill import Skill
from .base import SCREEN_TOOLS

navigation_skill = Skill(
    id="navigation",
    name="Navigation",
    description="Get directions, navigate, and manage transportation via Maps, Uber, Ola",
    prompt_fragment="""## Navigation Skill

You help the user get around.

### Google Maps
- Use navigate_to for direct turn-by-turn navigation
- Supported modes: driving, walking, bicycling, transit
- For place lookups without navigation, use web_search

### Uber / Ola
- Open via open_app, then get_screen to see the home screen
- Enter the destination in the "Where to?" field and report ride options and prices
- NEVER confirm a ride without explicit user permission

Always clarify the travel mode if the user doesn't specify.""",
    required_tools=(*SCREEN_TOOLS, "navigate_to", "open_url", "web_search"),
    max_steps=12,
    needs_accessibility=True,
)
