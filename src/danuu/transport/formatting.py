"""Plain-text renderings for transports without native widgets."""

from __future__ import annotations

from danuu.types import InteractiveMenu


def format_menu_text(menu: InteractiveMenu) -> str:
    """Render *menu* as numbered text.

    WhatsApp dropped interactive buttons for non-business accounts, so each
    option shows the command the user should send instead.
    """
    lines: list[str] = []
    if menu.title:
        lines.append(menu.title)
    if menu.body:
        lines.extend(["", menu.body])
    if menu.options:
        lines.append("")
        for i, option in enumerate(menu.options, 1):
            lines.append(f"{i}. {option.label}: {option.id}")
    if menu.footer:
        lines.extend(["", f"_{menu.footer}_"])
    return "\n".join(lines).strip()
