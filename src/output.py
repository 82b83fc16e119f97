"""Rich console output and markdown report save for discussion sessions."""

import logging
import re
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from src.models import Archetype, Contribution, Feedback, Participant, SessionSetup

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

ARCHETYPE_LABELS: dict[Archetype, str] = {
    Archetype.AGGRESSIVE: "抢位",
    Archetype.STRUCTURED: "总结",
    Archetype.DETAIL: "细节",
}

_ARCHETYPE_STYLES: dict[Archetype, str] = {
    Archetype.AGGRESSIVE: "red",
    Archetype.STRUCTURED: "blue",
    Archetype.DETAIL: "green",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def print_setup(setup: SessionSetup, roster: Sequence[Participant]) -> None:
    console.print(Rule("[bold cyan]高压模拟讨论[/bold cyan]"))
    console.print(Panel(setup.topic, title=f"[bold]讨论主题[/bold] · {setup.job_title}", border_style="yellow"))
    names = ", ".join(f"{p.name} ({ARCHETYPE_LABELS.get(p.archetype, p.archetype.value)})" for p in roster)
    console.print(Text(f"Participants: {names}", style="dim"))
    console.print(Text(
        "Type to speak, /dictate to toggle voice input, /status for rounds, /finish to end and get feedback.",
        style="dim",
    ))


def print_contribution(contribution: Contribution, roster: Sequence[Participant]) -> None:
    """Print one contribution: participants left-aligned, the human right-aligned."""
    participant = next((p for p in roster if p.id == contribution.speaker_id), None)
    if participant is None:
        console.print(
            Align.right(
                Panel(
                    contribution.text,
                    title=f"[bold]{contribution.display_name}[/bold]",
                    border_style="magenta",
                    width=min(console.width, 80),
                )
            )
        )
        return
    label = ARCHETYPE_LABELS.get(participant.archetype, participant.archetype.value)
    style = _ARCHETYPE_STYLES.get(participant.archetype, "white")
    console.print(
        Panel(
            contribution.text,
            title=f"[bold]{participant.name}[/bold] [{style}]{label}[/{style}]",
            border_style=style,
            width=min(console.width, 80),
        )
    )


def print_turn_started(participant: Participant) -> None:
    console.print(Text(f"{participant.name} 正在发言...", style="dim italic"))


def print_interruption() -> None:
    console.print(Text("检测到抢话！这会影响你的抗压评估分数。", style="bold white on red"), justify="center")


def print_feedback(feedback: Feedback) -> None:
    """Print the performance evaluation."""
    console.print(Rule("[bold green]表现评估[/bold green]"))
    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Overall score", f"{feedback.overall_score:.0f}")
    table.add_row("Voice share", f"{feedback.voice_share:.0f}%")
    table.add_row("Contributions", str(feedback.user_contributions))
    table.add_row("Interruptions", str(feedback.interruptions))
    table.add_row("Timing", feedback.timing)
    table.add_row("Structure", feedback.structural_contribution)
    table.add_row("Under pressure", feedback.interruption_handling)
    console.print(table)
    for i, suggestion in enumerate(feedback.suggestions, 1):
        console.print(f"  {i}. {suggestion}")


def save_report(
    setup: SessionSetup,
    contributions: Sequence[Contribution],
    feedback: Feedback | None,
    output_dir: Path,
    rounds: int,
) -> Path:
    """Save the transcript and evaluation as a markdown report.

    Args:
        setup: Topic and job title of the discussion.
        contributions: The full transcript.
        feedback: The evaluation, or None if scoring failed.
        output_dir: Directory to save the file in.
        rounds: Completed autonomous rounds.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"{timestamp}_{_slug(setup.job_title) or 'session'}.md"
    filepath = output_dir / filename

    interruptions = sum(1 for c in contributions if c.kind == "interruption")
    lines: list[str] = [
        f"# Group Discussion: {setup.job_title}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Company:** {setup.company or '-'}",
        f"**Rounds:** {rounds}",
        f"**Contributions:** {len(contributions)}",
        f"**Interruptions:** {interruptions}",
        f"**Source:** {setup.source}",
        "",
        "## Topic",
        "",
        setup.topic,
        "",
        "---",
        "",
        "## Transcript",
        "",
    ]

    for c in contributions:
        marker = " *(interruption)*" if c.kind == "interruption" else ""
        lines.append(f"**{c.display_name}** ({c.created_at.strftime('%H:%M:%S')}){marker}: {c.text}")
        lines.append("")

    lines += ["## Evaluation", ""]
    if feedback is None:
        lines.append("*Evaluation unavailable.*")
    else:
        lines += [
            f"- **Overall score:** {feedback.overall_score:.0f}",
            f"- **Voice share:** {feedback.voice_share:.0f}%",
            f"- **Timing:** {feedback.timing}",
            f"- **Structural contribution:** {feedback.structural_contribution}",
            f"- **Interruption handling:** {feedback.interruption_handling}",
            "",
            "### Suggestions",
            "",
        ]
        lines += [f"{i}. {s}" for i, s in enumerate(feedback.suggestions, 1)]
    lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Report saved to: %s", filepath)
    return filepath
