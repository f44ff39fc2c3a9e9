"""Tangent built-in skills."""

from ..core.registry import SkillRegistry
from ..core.skill import Skill
from .entertainment import entertainment_skill
from .navigation import navigation_skill
from .productivity import productivity_skill
from .research import research_skill
from .shopping import shopping_skill
from .social import social_media_skill

BUILTIN_SKILLS: list[tuple[Skill, list[str]]] = [
    (
        social_media_skill,
        [
            "twitter", "x", "tweet", "instagram", "ig", "insta", "whatsapp",
            "telegram", "social media", "post", "dm", "direct message", "story",
            "stories", "feed", "timeline", "retweet", "like", "follow",
            "unfollow", "snapchat", "facebook", "tiktok",
        ],
    ),
    (
        shopping_skill,
        [
            "amazon", "flipkart", "myntra", "swiggy", "zomato", "order", "buy",
            "purchase", "shop", "cart", "delivery", "food", "restaurant",
            "price", "product", "deal",
        ],
    ),
    (
        productivity_skill,
        [
            "reminder", "remind", "calendar", "event", "meeting", "schedule",
            "email", "gmail", "note", "notes", "keep", "todo", "task", "deadline",
        ],
    ),
    (
        navigation_skill,
        [
            "navigate", "directions", "map", "maps", "route", "uber", "ola",
            "cab", "taxi", "drive", "walk", "transit", "bus", "train", "commute",
            "traffic",
        ],
    ),
    (
        entertainment_skill,
        [
            "play", "music", "song", "video", "youtube", "spotify", "netflix",
            "watch", "listen", "stream", "movie", "show", "podcast", "album",
            "playlist",
        ],
    ),
    (
        research_skill,
        [
            "search", "look up", "research", "find out", "what is", "who is",
            "news", "article", "wikipedia", "define", "explain",
        ],
    ),
]


def initialize_skills(registry: SkillRegistry) -> None:
    """Register the built-in skills once per registry."""
    if registry.initialized:
        return

    for skill, keywords in BUILTIN_SKILLS:
        registry.register(skill, keywords)

    registry.initialized = True
    registry.console.print(
        f"[dim]Skills initialized: {len(registry.get_all_skills())} skills registered[/dim]"
    )


__all__ = [
    "BUILTIN_SKILLS",
    "initialize_skills",
    "entertainment_skill",
    "navigation_skill",
    "productivity_skill",
    "research_skill",
    "shopping_skill",
    "social_media_skill",
]
