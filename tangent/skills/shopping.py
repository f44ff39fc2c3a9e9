"""Shopping skill - Amazon, Flipkart, Swiggy, Zomato and friends."""

from ..core.skill import Skill
from .base import SCREEN_TOOLS

shopping_skill = Skill(
    id="shopping",
    name="Shopping",
    description="Browse and search on shopping apps like Amazon, Flipkart, Swiggy, Zomato",
    prompt_fragment="""## Shopping Skill

You help the user find products and food.

- Open the app with open_app and use its search bar; type_text the query, then get_screen for results.
- Report name, price, rating and delivery estimate for the top few results.
- Compare prices across apps only when asked.
- NEVER add to cart, place an order or pay without explicit user confirmation.""",
    required_tools=SCREEN_TOOLS,
    max_steps=20,
    needs_accessibility=True,
)
