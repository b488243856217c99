import argparse
import asyncio
import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def main():
    parser = argparse.ArgumentParser(
        description="repo-chat - index hosted repositories and ask questions about them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  repo-chat serve                                   Start the HTTP API
  repo-chat index acme/widgets                      Index a GitHub repository
  repo-chat index github:acme:widgets --branch dev  Index a specific branch
  repo-chat status github:acme:widgets              Show indexing status
  repo-chat ask github:acme:widgets "How does auth work?"
  repo-chat settings                                Show current configuration
""",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API server")
    serve_parser.add_argument("--host", help="Bind address (defaults to API_HOST)")
    serve_parser.add_argument("--port", type=int, help="Port (defaults to API_PORT)")

    index_parser = subparsers.add_parser("index", help="Index a repository now")
    index_parser.add_argument("target", help="owner/repo or provider:owner:repo")
    index_parser.add_argument("--branch", "-b", help="Branch to index (defaults to the default branch)")
    index_parser.add_argument(
        "--credential", "-c",
        help="Access token for private repositories (falls back to GITHUB_TOKEN)",
    )
    index_parser.add_argument("--requester", default="cli", help="Requester id to record")

    status_parser = subparsers.add_parser("status", help="Show the indexing status of a repository")
    status_parser.add_argument("repository_id", help="provider:owner:repo")

    ask_parser = subparsers.add_parser("ask", help="Ask a question about an indexed repository")
    ask_parser.add_argument("repository_id", help="provider:owner:repo")
    ask_parser.add_argument("question", help="Question to ask")
    ask_parser.add_argument("--conversation", help="Conversation id to continue")

    subparsers.add_parser("settings", help="Show current configuration")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)
    elif args.command == "serve":
        run_serve(args.host, args.port)
    elif args.command == "index":
        asyncio.run(run_index(args.target, args.branch, args.credential, args.requester))
    elif args.command == "status":
        asyncio.run(run_status(args.repository_id))
    elif args.command == "ask":
        asyncio.run(run_ask(args.repository_id, args.question, args.conversation))
    elif args.command == "settings":
        run_settings()
    else:
        parser.print_help()


def parse_target(target: str):
    from repo_chat.repositories import RepositoryId

    if ":" in target:
        return RepositoryId.parse(target)
    owner, _, repo = target.partition("/")
    return RepositoryId.for_repository(owner, repo)


def run_serve(host: str | None = None, port: int | None = None):
    import uvicorn

    from repo_chat.api import create_app
    from repo_chat.config import get_settings

    settings = get_settings()
    configure_logging(settings.server.log_level)
    uvicorn.run(
        create_app(settings=settings),
        host=host or settings.server.api_host,
        port=port or settings.server.api_port,
        log_level=settings.server.log_level.lower(),
    )


async def run_index(
    target: str,
    branch: str | None = None,
    credential: str | None = None,
    requester: str = "cli",
):
    from rich.console import Console
    from rich.progress import (
        BarColumn,
        Progress,
        SpinnerColumn,
        TaskProgressColumn,
        TextColumn,
        TimeElapsedColumn,
    )

    from repo_chat.api import build_services
    from repo_chat.core.errors import LockBusyError, ValidationError
    from repo_chat.pipeline import ProgressTracker
    from repo_chat.pipeline.progress import PipelineProgress
    from repo_chat.repositories.models import IndexRequest

    configure_logging("WARNING")
    console = Console()

    try:
        repository_id = parse_target(target)
        repository_id.ensure_supported()
    except ValidationError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    console.print(f"[bold blue]Indexing[/bold blue] repository: [cyan]{repository_id}[/cyan]")
    console.print()

    try:
        services = await build_services()
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("[yellow]Make sure Memgraph is running.[/yellow]")
        sys.exit(1)

    request = IndexRequest(
        repository_id=repository_id,
        requester_id=requester,
        branch=branch,
        credential=credential,
        force=True,
    )

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Starting...", total=100)

            def on_progress(p: PipelineProgress):
                progress.update(task, completed=p.overall_percentage)
                stage_name = p.current_stage.value.replace("_", " ").title()
                stage_progress = p.stages.get(p.current_stage)
                if stage_progress and stage_progress.total > 0:
                    detail = f"({stage_progress.current}/{stage_progress.total})"
                else:
                    detail = ""
                progress.update(task, description=f"{stage_name} {detail}")

            tracker = ProgressTracker()
            tracker.add_callback(on_progress)

            try:
                result = await services.orchestrator.index_now(request, tracker=tracker)
                progress.update(task, completed=100, description="Complete")
            except LockBusyError as e:
                console.print(f"\n[yellow]{e}[/yellow]")
                sys.exit(1)
            except Exception as e:
                console.print(f"\n[red]Error: {e}[/red]")
                sys.exit(1)
    finally:
        await services.close()

    stats = result.stats
    progress_info = tracker.progress
    console.print()
    console.print("[green]Indexing complete![/green]")
    console.print(f"  [cyan]Total files:[/cyan]      {stats.total_files}")
    console.print(f"  [cyan]With content:[/cyan]     {stats.indexed_files}")
    console.print(f"  [cyan]Total size:[/cyan]       {stats.total_size} bytes")
    console.print(f"  [cyan]Skipped content:[/cyan]  {progress_info.files_skipped}")
    console.print(f"  [cyan]Time elapsed:[/cyan]     {progress_info.elapsed_time:.1f}s")


async def run_status(repository_id: str):
    from rich.console import Console
    from rich.panel import Panel
    from rich.table import Table

    from repo_chat.api import build_services
    from repo_chat.core.errors import ValidationError

    configure_logging("WARNING")
    console = Console()

    try:
        services = await build_services()
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("[yellow]Make sure Memgraph is running.[/yellow]")
        sys.exit(1)

    try:
        status = await services.orchestrator.poll_status(repository_id)
    except ValidationError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    finally:
        await services.close()

    colors = {"ready": "green", "indexing": "yellow", "error": "red", "idle": "dim"}
    color = colors.get(status["status"], "white")
    info = (
        f"[cyan]Status:[/cyan] [{color}]{status['status']}[/{color}]\n"
        f"[cyan]Indexed at:[/cyan] {status['indexedAt'] or 'N/A'}"
    )
    if status.get("error"):
        info += f"\n[cyan]Error:[/cyan] [red]{status['error']}[/red]"
    console.print(Panel(info, title=f"Repository: {repository_id}", border_style="cyan"))

    stats = status.get("stats")
    if stats and stats.get("languages"):
        table = Table(title="Languages")
        table.add_column("Language", style="cyan")
        table.add_column("Files", justify="right", style="green")
        for language, count in sorted(stats["languages"].items(), key=lambda kv: -kv[1]):
            table.add_row(language, str(count))
        console.print(table)


async def run_ask(repository_id: str, question: str, conversation_id: str | None = None):
    from rich.console import Console
    from rich.markdown import Markdown
    from rich.panel import Panel

    from repo_chat.api import build_services
    from repo_chat.core.errors import NotReadyError, RepoChatError

    configure_logging("WARNING")
    console = Console()

    try:
        services = await build_services()
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("[yellow]Make sure Memgraph is running.[/yellow]")
        sys.exit(1)

    try:
        with console.status("[bold blue]Asking...[/bold blue]"):
            result = await services.gateway.handle(repository_id, question, conversation_id)
    except NotReadyError as e:
        console.print(f"[yellow]{e}[/yellow]")
        sys.exit(1)
    except RepoChatError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    finally:
        await services.close()

    console.print(Panel(Markdown(result["response"] or "_No answer_"), title="Answer", border_style="green"))
    if result["sources"]:
        console.print("[bold]Sources:[/bold]")
        for source in result["sources"]:
            console.print(f"  [cyan]{source['path']}[/cyan]")
    console.print(f"[dim]Conversation: {result['conversationId']}[/dim]")


def run_settings():
    from rich.console import Console
    from rich.table import Table

    from repo_chat.config import get_settings

    console = Console()
    settings = get_settings()

    db_table = Table(title="Metadata Store", show_header=False)
    db_table.add_column("Setting", style="cyan")
    db_table.add_column("Value", style="green")

    db_table.add_row("Memgraph Host", settings.database.memgraph_host)
    db_table.add_row("Memgraph Port", str(settings.database.memgraph_port))
    db_table.add_row("Payload Cache Dir", str(settings.cache_dir))

    console.print(db_table)
    console.print()

    gh_table = Table(title="GitHub", show_header=False)
    gh_table.add_column("Setting", style="cyan")
    gh_table.add_column("Value", style="green")

    gh_table.add_row("API URL", settings.github.github_api_url)
    gh_table.add_row("Timeout", f"{settings.github.github_timeout_seconds}s")
    token_status = "[green]set[/green]" if settings.github_token else "[red]not set[/red]"
    gh_table.add_row("Fallback Token", token_status)

    console.print(gh_table)
    console.print()

    idx_table = Table(title="Indexing Configuration", show_header=False)
    idx_table.add_column("Setting", style="cyan")
    idx_table.add_column("Value", style="green")

    idx_table.add_row("Lock TTL", f"{settings.lock_ttl_seconds}s")
    idx_table.add_row("Max Content Files", str(settings.indexing.max_content_files))
    idx_table.add_row("Max File Bytes", str(settings.indexing.max_file_bytes))
    idx_table.add_row("Max Content Chars", str(settings.indexing.max_content_chars))
    idx_table.add_row("Max Concurrent Requests", str(settings.max_concurrent_requests))
    idx_table.add_row("Indexable Extensions", ", ".join(settings.indexing.indexable_extensions))
    idx_table.add_row("Check Revision On Ready", str(settings.indexing.check_revision_on_ready))

    console.print(idx_table)
    console.print()

    srv_table = Table(title="Server", show_header=False)
    srv_table.add_column("Setting", style="cyan")
    srv_table.add_column("Value", style="green")

    srv_table.add_row("Host", settings.server.api_host)
    srv_table.add_row("Port", str(settings.server.api_port))
    srv_table.add_row("Log Level", settings.server.log_level)
    backend = settings.answer_backend.answer_backend_url or "[red]not configured[/red]"
    srv_table.add_row("Answer Backend", backend)
    signature_status = "[green]set[/green]" if settings.internal_signature else "[dim]not set[/dim]"
    srv_table.add_row("Internal Signature", signature_status)

    console.print(srv_table)


if __name__ == "__main__":
    main()
