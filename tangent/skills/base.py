"""Tool groups shared by the built-in skills."""

# Accessibility-driven screen control; any skill using these must set
# needs_accessibility=True
SCREEN_TOOLS = (
    "check_accessibility",
    "open_accessibility_settings",
    "get_screen",
    "tap",
    "tap_at",
    "type_text",
    "scroll",
    "press_back",
    "open_app",
    "return_to_tangent",
)
