"""Click CLI: orchestrates config loading, provider selection, the discussion loop and evaluation."""

import asyncio
import logging
import random
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from src.feedback import evaluate_performance
from src.generation import ContentGenerator
from src.input_capture import EmptySubmitError
from src.models import Contribution, Feedback, Participant, SchedulerPhase, SessionSetup, Turn
from src.output import (
    print_contribution,
    print_feedback,
    print_interruption,
    print_setup,
    print_turn_started,
    save_report,
)
from src.providers.anthropic import AnthropicProvider
from src.providers.base import AIProvider, GenerationError
from src.providers.gemini import GeminiProvider
from src.providers.openai_provider import OpenAIProvider
from src.scenario import parse_scenario
from src.session import USER_ID, DiscussionSession

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "google-genai": GeminiProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}

_FINISH_COMMANDS = {"/finish", "/end", "/quit"}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_all_providers(config: AppConfig) -> dict[str, AIProvider]:
    """Build all available providers. Returns dict keyed by name."""
    providers: dict[str, AIProvider] = {}
    for name in sorted(config.available_providers):
        model_cfg = config.models[name]
        if model_cfg.sdk not in PROVIDER_CLASSES:
            logging.warning("Provider '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        try:
            providers[name] = PROVIDER_CLASSES[model_cfg.sdk](model_cfg)
        except Exception as exc:
            logging.warning("Failed to instantiate provider '%s': %s", name, exc)
    return providers


def _pick_provider(all_providers: dict[str, AIProvider], preferred: str) -> AIProvider | None:
    """Preferred provider when available, else the first available one."""
    if preferred in all_providers:
        return all_providers[preferred]
    if all_providers:
        fallback = next(iter(all_providers.values()))
        logger.warning("Provider '%s' unavailable, using '%s'", preferred, fallback.name())
        return fallback
    return None


def _resolve_setup(
    topic: str | None,
    job_title: str | None,
    company: str | None,
    scenario_file: str | None,
) -> SessionSetup:
    """Merge scenario file and CLI flags. CLI flags win; topic may be left empty."""
    if scenario_file:
        setup = parse_scenario(Path(scenario_file))
    else:
        setup = SessionSetup(topic="", job_title="", source="cli")
    if topic:
        setup.topic = topic.strip()
        setup.source = "cli"
    if job_title:
        setup.job_title = job_title.strip()
    if company:
        setup.company = company.strip()
    return setup


def _parse_command(line: str) -> tuple[str, str]:
    """Map a terminal line to (command, text). Commands: say, finish, status, dictate, noop."""
    stripped = line.strip()
    if not stripped:
        return "noop", ""
    if stripped.lower() in _FINISH_COMMANDS:
        return "finish", ""
    if stripped.lower() == "/status":
        return "status", ""
    if stripped.lower() == "/dictate":
        return "dictate", ""
    return "say", stripped


def _status_line(session: DiscussionSession) -> str:
    state = session.state
    line = f"回合数: {state.round_count}"
    if state.active_turn is not None:
        speaker = next(p for p in session.roster if p.id == state.active_turn.speaker_id)
        line += f" | {speaker.name} {'generating' if state.active_turn.pending else 'up next'}"
    if session.phase == SchedulerPhase.CEILING:
        line += " | round limit reached, type /finish for feedback"
    return line


def _toggle_dictation(session: DiscussionSession) -> str:
    """Start or stop listening; finalized speech lands in the pending input."""
    if not session.dictation_available:
        return "No dictation source configured; type your contribution instead."
    if session.listening:
        session.stop_dictation()
        return f"Dictation off. Pending: {session.pending_input or '-'}"
    if not session.start_dictation():
        return "Dictation unavailable: the discussion has finished."
    return "Listening... /dictate again to stop, empty line to send."


async def _discussion_loop(session: DiscussionSession) -> list[Contribution]:
    """Read terminal lines until /finish or EOF while the session runs on the loop."""
    session.start()
    while not session.finished:
        try:
            line = await asyncio.to_thread(input)
        except EOFError:
            break
        command, text = _parse_command(line)
        if command == "finish":
            break
        if command == "status":
            console.print(f"[dim]{_status_line(session)}[/dim]")
        elif command == "dictate":
            console.print(f"[dim]{_toggle_dictation(session)}[/dim]")
        elif command == "noop":
            # an empty line sends whatever dictation has finalized
            try:
                session.submit()
            except EmptySubmitError:
                continue
        elif command == "say":
            try:
                session.submit(text)
            except EmptySubmitError:
                continue
    transcript = session.finish()
    if session.outstanding_generations:
        console.print("[dim]Waiting for the current speaker to finish...[/dim]")
    await session.close()
    return transcript


async def _evaluate(
    setup: SessionSetup,
    transcript: list[Contribution],
    scorer: AIProvider,
    config: AppConfig,
) -> Feedback | None:
    if not any(c.speaker_id == USER_ID for c in transcript):
        console.print("[yellow]You did not speak; skipping evaluation.[/yellow]")
        return None
    try:
        return await evaluate_performance(
            setup, transcript, scorer, config.prompts, user_name=config.defaults.user_name
        )
    except (GenerationError, RuntimeError) as exc:
        logger.error("Evaluation failed: %s", exc)
        return None


async def _run_session(
    setup: SessionSetup,
    config: AppConfig,
    speaker: AIProvider,
    scorer: AIProvider,
    output_dir: Path | None,
    seed: int | None,
) -> None:
    generator = ContentGenerator(speaker, config.prompts)

    if not setup.topic:
        console.print(f"[dim]Generating a topic for {setup.job_title}...[/dim]")
        setup.topic = await generator.generate_topic(setup.company, setup.job_title)
        setup.source = "generated"

    roster = config.roster
    print_setup(setup, roster)

    def on_turn_started(turn: Turn, participant: Participant) -> None:
        print_turn_started(participant)

    session = DiscussionSession.from_config(
        setup,
        config,
        generator,
        rng=random.Random(seed) if seed is not None else None,
        on_contribution=lambda c: print_contribution(c, roster),
        on_turn_started=on_turn_started,
        on_interruption=lambda event: print_interruption(),
    )
    transcript = await _discussion_loop(session)
    rounds = session.state.round_count

    feedback = await _evaluate(setup, transcript, scorer, config)
    if feedback is not None:
        print_feedback(feedback)

    if output_dir is not None and transcript:
        saved_path = save_report(setup, transcript, feedback, output_dir, rounds)
        console.print(f"\n[dim]Saved to: {saved_path}[/dim]")


@click.command()
@click.option("--topic", default=None, help="Discussion topic (default: generated)")
@click.option("--job-title", default=None, help="Job title the interview is for")
@click.option("--company", default=None, help="Company used when generating a topic")
@click.option("--scenario", "scenario_file", type=click.Path(exists=True),
              help="Read company/job_title/topic from a .md scenario file")
@click.option("--provider", default=None, help="Provider voicing the participants (default: from config)")
@click.option("--scorer", default=None, help="Provider scoring your performance (default: from config)")
@click.option("--max-rounds", default=None, type=int, help="Autonomous round limit (default: from config)")
@click.option("--output", "output_path", default=None, help="Report directory (default: from config)")
@click.option("--seed", default=None, type=int, help="Seed speaker selection for a reproducible session")
@click.option("--no-save", is_flag=True, default=False, help="Do not write a markdown report")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    topic: str | None,
    job_title: str | None,
    company: str | None,
    scenario_file: str | None,
    provider: str | None,
    scorer: str | None,
    max_rounds: int | None,
    output_path: str | None,
    seed: int | None,
    no_save: bool,
    verbose: bool,
) -> None:
    """Group interview simulator -- hold your ground in a high-pressure discussion.

    \b
    Examples:
      python -m src.cli --job-title "产品经理" --company "字节跳动"
      python -m src.cli --job-title "PM" --topic "Design a campus delivery service"
      python -m src.cli --scenario scenario.md --max-rounds 10
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if max_rounds is not None:
        if max_rounds <= 0:
            console.print("[bold red]Error:[/bold red] --max-rounds must be positive.")
            sys.exit(1)
        config.defaults.max_rounds = max_rounds

    try:
        setup = _resolve_setup(topic, job_title, company, scenario_file)
    except ValueError as exc:
        console.print(f"[bold red]Scenario error:[/bold red] {exc}")
        sys.exit(1)
    if not setup.job_title:
        console.print("[bold red]Error:[/bold red] Provide --job-title or a scenario with job_title.")
        sys.exit(1)

    all_providers = _build_all_providers(config)
    speaker = _pick_provider(all_providers, provider or config.defaults.reply_provider)
    judge = _pick_provider(all_providers, scorer or config.defaults.feedback_provider)
    if speaker is None or judge is None:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    output_dir = None if no_save else Path(output_path) if output_path else config.defaults.output_dir

    try:
        asyncio.run(_run_session(setup, config, speaker, judge, output_dir, seed))
    except GenerationError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
