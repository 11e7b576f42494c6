#!/usr/bin/env python3
"""WardOps CLI.

Command-line entry point for the ward operations assistant and the live
task view.

Architecture:
    - AgentOrchestrator turns a request into tool calls via OpenRouter
    - PostgresWardOperations executes those calls against PostgreSQL
    - TaskSyncEngine keeps a live list of in-flight tasks (push, then polling)

Environment Variables:
    - OPENROUTER_API_KEY: Completion provider key (required for chat)
    - DATABASE_URL: PostgreSQL connection string (required)
    - WARDOPS_* / TASK_SYNC_*: Optional tuning, see src/wardops/config.py

Example Usage:
    $ python main.py chat "send food to room 101"     # One-shot request
    $ python main.py chat                             # Interactive session
    $ python main.py watch                            # Live task list
    $ python main.py install-trigger                  # Create the NOTIFY trigger
"""
import argparse
import asyncio
import logging
import signal
import sys

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.wardops.agent import (
    AgentEvent,
    AgentOrchestrator,
    OpenRouterProvider,
    PostgresWardOperations,
    ToolExecutor,
    ToolRegistry,
)
from src.wardops.api import ConfigurationError, WardOpsError, close_pool, create_pool
from src.wardops.config import Settings, load_settings
from src.wardops.sync import Task, TaskSyncEngine, fallback_visuals
from src.wardops.sync.adapters import (
    PostgresTaskChangeFeed,
    PostgresTaskRepository,
    install_trigger,
)

logger = logging.getLogger("wardops.main")

EXIT_PROMPTS = {"exit", "quit", ":q"}


# ============================================
# Chat
# ============================================

def _print_event(event: AgentEvent) -> None:
    if event.type.value in ("tool_call", "tool_result"):
        print(f"  [{event.type.value}] {event.content}")


async def run_chat(settings: Settings, message: str | None) -> int:
    """Run one request, or an interactive session when no message is given."""
    provider = OpenRouterProvider(settings.agent.provider_config())
    pool = await create_pool(settings.database_url)
    operations = PostgresWardOperations(pool, PostgresTaskRepository(pool))
    orchestrator = AgentOrchestrator(
        provider=provider,
        tool_executor=ToolExecutor(ToolRegistry(operations)),
        config=settings.agent.agent_config(),
        on_event=_print_event,
    )

    try:
        if message:
            response = await orchestrator.chat(message)
            print(response.reply)
            return 1 if response.failed else 0

        print("WardOps assistant. Type 'exit' to quit.")
        history = []
        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            line = line.strip()
            if not line:
                continue
            if line.lower() in EXIT_PROMPTS:
                break
            response = await orchestrator.chat(line, history)
            history = response.history
            print(response.reply)
        return 0
    finally:
        await orchestrator.close()
        await close_pool(pool)


# ============================================
# Watch
# ============================================

def _log_tasks(tasks: list[Task]) -> None:
    if not tasks:
        logger.info("No active tasks")
        return
    lines = []
    for task in tasks:
        icon = fallback_visuals(task.type, task.priority).icon
        lines.append(
            f"  [{icon}] {task.title} ({task.status.value}, {task.progress:.0f}%, "
            f"{task.priority.value})"
        )
    logger.info(f"{len(tasks)} active task(s):\n" + "\n".join(lines))


async def run_watch(settings: Settings) -> int:
    """Keep the live task view running until SIGINT/SIGTERM."""
    pool = await create_pool(settings.database_url)
    engine = TaskSyncEngine(
        task_repo=PostgresTaskRepository(pool),
        change_feed=PostgresTaskChangeFeed(settings.database_url),
        config=settings.sync.task_sync_config(),
    )
    engine.add_listener(_log_tasks)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, shutdown_event.set)

    try:
        await engine.start()
        logger.info("Watching ward tasks (Ctrl+C to stop)")
        await shutdown_event.wait()
        logger.info("Received shutdown signal")
    finally:
        await engine.stop()
        await close_pool(pool)
    return 0


async def run_install_trigger(settings: Settings) -> int:
    pool = await create_pool(settings.database_url, min_size=1, max_size=1)
    try:
        async with pool.acquire() as conn:
            await install_trigger(conn)
    finally:
        await close_pool(pool)
    return 0


# ============================================
# Entry Point
# ============================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ward operations assistant and live task view",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py chat "send food to room 101"   # One-shot request
  python main.py chat                           # Interactive session
  python main.py watch                          # Live task list
  python main.py install-trigger                # Create the task change trigger
        """,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    chat = commands.add_parser("chat", help="Send a request to the assistant")
    chat.add_argument(
        "message",
        nargs="*",
        help="Request text (omit for an interactive session)",
    )

    commands.add_parser("watch", help="Show in-flight tasks as they change")
    commands.add_parser("install-trigger", help="Install the task change NOTIFY trigger")
    return parser


async def dispatch(args: argparse.Namespace) -> int:
    if args.command == "chat":
        settings = load_settings(required=("OPENROUTER_API_KEY", "DATABASE_URL"))
        return await run_chat(settings, " ".join(args.message).strip() or None)
    settings = load_settings(required=("DATABASE_URL",))
    if args.command == "watch":
        return await run_watch(settings)
    return await run_install_trigger(settings)


def main():
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    try:
        sys.exit(asyncio.run(dispatch(args)))
    except ConfigurationError as e:
        print(f"[Main] Configuration error: {e}")
        sys.exit(2)
    except WardOpsError as e:
        logger.error(f"{e.code}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
