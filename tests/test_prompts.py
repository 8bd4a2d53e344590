from __future__ import annotations

from terminalauditor.prompts import build_system_prompt


def test_base_prompt_describes_directives() -> None:
    prompt = build_system_prompt()

    assert prompt.startswith("You are a senior code auditor")
    assert "[NO_FINDINGS]" in prompt
    assert "[INTERRUPT]" in prompt
    assert "FOCUS" not in prompt


def test_focus_overlays_are_appended_in_order() -> None:
    prompt = build_system_prompt(["performance", " Security "])

    performance = prompt.index("## PERFORMANCE FOCUS")
    security = prompt.index("## SECURITY FOCUS")
    assert performance < security
    assert "N+1" in prompt
    assert "SQL injection" in prompt


def test_unknown_focus_areas_are_ignored() -> None:
    assert build_system_prompt(["vibes"]) == build_system_prompt()
