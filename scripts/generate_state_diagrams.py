"""
Generate Mermaid diagrams from the USSD step enum and transition tables.

Usage:
    python scripts/generate_state_diagrams.py                  # print to stdout
    python scripts/generate_state_diagrams.py --update-design  # rewrite the block in DESIGN.md
    python scripts/generate_state_diagrams.py --check          # fail if DESIGN.md is stale (CI)
"""
import argparse
import re
import sys
from pathlib import Path
from typing import Any

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from splitbill.state_machine.states import (  # noqa: E402
    INITIAL_STEP,
    USSD_TERMINAL_OUTCOMES,
    USSD_TRANSITIONS,
    UssdOutcome,
    UssdStep,
)

DESIGN_MD_PATH = Path(__file__).resolve().parent.parent / "DESIGN.md"

START_MARKER = "<!-- STATE_DIAGRAMS_START -->"
END_MARKER = "<!-- STATE_DIAGRAMS_END -->"

STEP_LABELS: dict[str, str] = {
    UssdStep.AWAITING_AMOUNT.value: "Enter total amount",
    UssdStep.AWAITING_MEMBERS.value: "Enter member phones",
    UssdStep.AWAITING_CONFIRMATION.value: "Confirm or cancel",
}

OUTCOME_LABELS: dict[str, str] = {
    UssdOutcome.BILL_CREATED.value: "1 and bill saved",
    UssdOutcome.BILL_FAILED.value: "1 but bill creation failed",
    UssdOutcome.CANCELLED.value: "2",
}


def generate_mermaid_from_transitions(
    transitions: dict[Any, list[Any]],
    labels: dict[str, str],
    *,
    initial: Any,
    terminal: dict[Any, list[Any]] | None = None,
    terminal_labels: dict[str, str] | None = None,
) -> str:
    """
    Build a stateDiagram-v2 from a transition table.

    Self-transitions (re-prompts) are drawn as loops. Terminal outcomes
    become edges into [*] labelled with the outcome.
    """
    lines: list[str] = ["stateDiagram-v2"]

    all_states: list[str] = []
    for source, targets in transitions.items():
        for state in [source, *targets]:
            if state.value not in all_states:
                all_states.append(state.value)

    for state_value in all_states:
        lines.append(f"    {state_value} : {labels.get(state_value, state_value)}")

    lines.append("")
    lines.append(f"    [*] --> {initial.value}")

    for source, targets in transitions.items():
        for target in targets:
            lines.append(f"    {source.value} --> {target.value}")

    terminal_labels = terminal_labels or {}
    for source, outcomes in (terminal or {}).items():
        for outcome in outcomes:
            label = terminal_labels.get(outcome.value, outcome.value)
            lines.append(f"    {source.value} --> [*] : {label}")

    return "\n".join(lines)


def generate_all_diagrams() -> dict[str, str]:
    """Return {title: mermaid source} for every diagram"""
    return {
        "USSD dialogue (UssdStep)": generate_mermaid_from_transitions(
            USSD_TRANSITIONS,
            STEP_LABELS,
            initial=INITIAL_STEP,
            terminal=USSD_TERMINAL_OUTCOMES,
            terminal_labels=OUTCOME_LABELS,
        ),
    }


def format_diagrams_as_markdown(diagrams: dict[str, str]) -> str:
    sections: list[str] = []
    for name, mermaid_code in diagrams.items():
        sections.append(f"#### {name}\n")
        sections.append(f"```mermaid\n{mermaid_code}\n```\n")
    return "\n".join(sections)


def _section(markdown_content: str) -> str:
    return f"{START_MARKER}\n\n### State diagrams\n\n{markdown_content}\n{END_MARKER}"


def _marker_pattern() -> re.Pattern:
    return re.compile(re.escape(START_MARKER) + r".*?" + re.escape(END_MARKER), re.DOTALL)


def update_design_md(markdown_content: str, path: Path = DESIGN_MD_PATH) -> None:
    """Replace the marked block, or append it when the markers are missing"""
    content = path.read_text(encoding="utf-8")
    new_section = _section(markdown_content)

    if START_MARKER in content:
        content = _marker_pattern().sub(lambda _: new_section, content)
    else:
        content = content.rstrip("\n") + "\n\n" + new_section + "\n"

    path.write_text(content, encoding="utf-8")
    print(f"Updated: {path}")


def check_design_md(markdown_content: str, path: Path = DESIGN_MD_PATH) -> bool:
    """True when the marked block matches the code"""
    content = path.read_text(encoding="utf-8")

    match = _marker_pattern().search(content)
    if not match:
        print(f"Error: no diagram markers in {path.name}")
        return False

    if match.group(0) == _section(markdown_content):
        print("Diagrams are in sync with the code ✓")
        return True

    print(f"Error: diagrams in {path.name} are out of date")
    print("Run: python scripts/generate_state_diagrams.py --update-design")
    return False


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate Mermaid diagrams of the USSD dialogue")
    parser.add_argument(
        "--update-design",
        action="store_true",
        help="Rewrite the diagram block in DESIGN.md",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Exit 1 if DESIGN.md is out of sync with the code (for CI)",
    )
    args = parser.parse_args()

    markdown = format_diagrams_as_markdown(generate_all_diagrams())

    if args.check:
        sys.exit(0 if check_design_md(markdown) else 1)
    elif args.update_design:
        update_design_md(markdown)
    else:
        print(markdown)


if __name__ == "__main__":
    main()
