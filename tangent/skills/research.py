"""Research skill - web lookups that never touch the screen."""

from ..core.skill import Skill

research_skill = Skill(
    id="research",
    name="Research",
    description="Look things up on the web and in the user's files",
    prompt_fragment="""## Research Skill

You answer factual questions from the web and the user's indexed files.

- Use web_search for public information and get_page_content to read a result in full.
- Use search_files for anything the user says they saved or downloaded.
- Cite the source title for each fact you report.""",
    required_tools=("web_search", "get_page_content", "search_files"),
    max_steps=8,
)
