"""Click CLI — config loading, health check, one deliberation round, output."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from council_client.backend.http import HttpCouncilBackend
from council_client.errors import CouncilClientError, NotFoundError, SessionInitError
from council_client.healthcheck import check_server
from council_client.models import AssistantMessage, Conversation
from council_client.output import (
    export_conversation,
    print_assistant_message,
    print_council,
    print_summaries,
    print_telemetry,
)
from council_client.session import DeliberationCoordinator
from council_client.store import ConversationStore

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _progress_description(message: AssistantMessage) -> str:
    """Spinner text for the stage currently running."""
    if message.progress.stage3:
        return "Stage 3: chairman is synthesizing the verdict..."
    if message.progress.stage2:
        return "Stage 2: council members are ranking each other..."
    if message.progress.stage1:
        return "Stage 1: collecting individual responses..."
    if message.stage3 is not None:
        return "Finishing up..."
    return "Waiting for the council..."


def _find_message(conversation: Conversation, message_id: str) -> AssistantMessage | None:
    for message in conversation.messages:
        if message.message_id == message_id and isinstance(message, AssistantMessage):
            return message
    return None


async def _ask(
    coordinator: DeliberationCoordinator,
    conversation_id: str | None,
    question: str,
) -> tuple[Conversation, AssistantMessage]:
    """Submit one question with a live spinner. Returns the final conversation and answer."""
    store = coordinator.store

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task_id = progress.add_task("Waiting for the council...", total=None)

        def on_change(conversation: Conversation) -> None:
            last = conversation.messages[-1] if conversation.messages else None
            if isinstance(last, AssistantMessage):
                progress.update(task_id, description=_progress_description(last))

        unsubscribe = store.subscribe(on_change)
        try:
            session = await coordinator.submit(conversation_id, question)
        finally:
            unsubscribe()

    conversation = store.get(session.conversation_id)
    message = _find_message(conversation, session.message_id) if conversation else None
    if conversation is None or message is None:
        raise RuntimeError(f"Session {session.message_id} left no assistant message")
    return conversation, message


async def _run(
    config: AppConfig,
    question: str | None,
    conversation_id: str | None,
    list_only: bool,
    export: bool,
    output_dir: Path,
    skip_health_check: bool,
) -> int:
    async with HttpCouncilBackend(config.server) as backend:
        if not skip_health_check:
            ok, err = await check_server(backend)
            if not ok:
                console.print(f"[bold red]Error:[/bold red] Council server unreachable at {config.server.base_url}: {err}")
                return 1

        store = ConversationStore(backend)
        coordinator = DeliberationCoordinator(backend, store)

        if list_only:
            try:
                summaries = await store.list_summaries()
            except CouncilClientError as exc:
                console.print(f"[bold red]Error:[/bold red] {exc}")
                return 1
            print_summaries(summaries)
            return 0

        if conversation_id:
            try:
                await coordinator.open_conversation(conversation_id)
            except NotFoundError:
                console.print(f"[bold red]Error:[/bold red] No conversation with id {conversation_id}")
                return 1
            except CouncilClientError as exc:
                console.print(f"[bold red]Error:[/bold red] {exc}")
                return 1

        if question is None:
            conversation = store.active
            if conversation is None:
                console.print("[bold red]Error:[/bold red] Provide a QUESTION, --conversation, or --list.")
                return 1
            for message in conversation.messages:
                if isinstance(message, AssistantMessage):
                    print_assistant_message(message)
                else:
                    console.print(f"\n[bold]Q:[/bold] {message.content}")
        else:
            print_council(config.council.members, config.council.chairman)
            console.print(f"Question: [italic]{question[:80]}{'...' if len(question) > 80 else ''}[/italic]\n")
            try:
                conversation, message = await _ask(coordinator, conversation_id, question)
            except SessionInitError as exc:
                console.print(f"[bold red]Error:[/bold red] {exc}")
                return 1
            print_assistant_message(message)
            print_telemetry(coordinator.telemetry)
            console.print(f"\n[dim]Conversation: {conversation.id}[/dim]")
            if message.error:
                return 1

        if export and store.active is not None:
            saved_path = export_conversation(store.active, output_dir)
            console.print(f"[dim]Saved to: {saved_path}[/dim]")
        return 0


@click.command()
@click.argument("question", required=False)
@click.option("--conversation", "conversation_id", default=None, help="Continue or show an existing conversation")
@click.option("--list", "list_only", is_flag=True, help="List conversations and exit")
@click.option("--export", is_flag=True, help="Save the conversation as markdown")
@click.option("--output", "output_path", default=None, help="Export directory (default: from config)")
@click.option("--server", default=None, help="Council server URL (default: from config / env)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the server connectivity check at startup")
def main(
    question: str | None,
    conversation_id: str | None,
    list_only: bool,
    export: bool,
    output_path: str | None,
    server: str | None,
    verbose: bool,
    skip_health_check: bool,
) -> None:
    """LLM Council client -- ask the council, watch it deliberate.

    \b
    Examples:
      council-client "What is 2+2?"
      council-client "And 3+3?" --conversation 5f1c...
      council-client --conversation 5f1c... --export
      council-client --list
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if server:
        config.server.base_url = server.rstrip("/")
    effective_output = Path(output_path) if output_path else config.defaults.output_dir

    exit_code = asyncio.run(
        _run(
            config=config,
            question=question,
            conversation_id=conversation_id,
            list_only=list_only,
            export=export,
            output_dir=effective_output,
            skip_health_check=skip_health_check,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
