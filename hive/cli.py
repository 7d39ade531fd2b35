"""CLI interface for the Hive routing and yield core.

Usage:
    python -m hive.cli route "best USDC lending yields"
    python -m hive.cli route --interactive
    python -m hive.cli yields lending --token USDC
    python -m hive.cli --output json yields staking --risk low --horizon long
    python -m hive.cli market traders --time-frame 1W
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from hive.cli_output import CLIOutput, OutputFormat
from hive.config import Settings, load_settings
from hive.llm import GeminiProposalModel
from hive.market import TIME_FRAMES, MarketService
from hive.routing.context import derive_chat_memory
from hive.routing.router import ConversationRouter, build_execution_plan
from hive.routing.types import ChatMemory
from hive.tools import Tool, is_yield_tool, qualified_name
from hive.utils.logging import bind_context, configure_logging, get_logger
from hive.utils.metrics import metrics_snapshot
from hive.yields.service import YieldService
from hive.yields.types import YieldQuery

logger = get_logger(__name__)

MAX_HISTORY_MESSAGES = 20


def available_tools(settings: Settings) -> List[str]:
    return [qualified_name(tool, settings.tool_namespace) for tool in Tool]


class Session:
    """One CLI conversation: history, memory and the services it talks to."""

    def __init__(
        self,
        router: ConversationRouter,
        yields: YieldService,
        settings: Settings,
        wallet_address: Optional[str] = None,
    ) -> None:
        self.router = router
        self.yields = yields
        self.settings = settings
        self.wallet_address = wallet_address
        self.messages: List[Dict[str, Any]] = []
        self.memory: Optional[ChatMemory] = None

    def clear(self) -> None:
        self.messages.clear()
        self.memory = None

    async def turn(self, query: str, output: CLIOutput, run_yields: bool = True) -> None:
        self.messages.append({"role": "user", "content": query})
        result = await self.router.route(
            self.messages, wallet_address=self.wallet_address, memory=self.memory
        )
        plan = build_execution_plan(result.decision, available_tools(self.settings))
        output.route(result, plan)

        assistant: Dict[str, Any] = {
            "role": "assistant",
            "content": "",
            "annotations": [result.annotation()],
        }
        if run_yields and plan.forced_tool and is_yield_tool(plan.forced_tool):
            args = plan.forced_args or {}
            yield_result = await self.yields.run_tool(plan.forced_tool, args)
            output.yields(yield_result)
            assistant["toolInvocations"] = [
                {
                    "toolName": plan.forced_tool,
                    "args": args,
                    "state": "result",
                    "result": yield_result.as_tool_result(),
                }
            ]
        self.messages.append(assistant)
        self.messages = self.messages[-MAX_HISTORY_MESSAGES:]
        memory = derive_chat_memory(self.messages, self.memory, self.wallet_address)
        if not memory.same_as(self.memory):
            logger.debug(
                "chat_memory_updated", memory=memory.model_dump(exclude_none=True)
            )
            self.memory = memory


async def run_interactive(session: Session, output: CLIOutput) -> None:
    """Run interactive REPL session."""
    output.info("Hive CLI - Interactive Mode")
    output.info("Type your messages, or use /quit to exit, /clear to reset context")
    output.info("-" * 50)

    while True:
        try:
            query = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            output.info("\nGoodbye!")
            break

        if not query:
            continue

        if query.startswith("/"):
            cmd = query.lower()
            if cmd in ("/quit", "/exit", "/q"):
                output.info("Goodbye!")
                break
            elif cmd in ("/clear", "/reset"):
                session.clear()
                output.info("Context cleared.")
                continue
            elif cmd == "/metrics":
                output.info(json.dumps(metrics_snapshot(), indent=2))
                continue
            elif cmd in ("/help", "/h"):
                output.info("Commands: /quit, /clear, /metrics, /help")
                continue
            else:
                output.warning(f"Unknown command: {query}")
                continue

        try:
            await session.turn(query, output)
        except Exception as exc:
            logger.exception("cli_turn_failed", error=str(exc))
            output.error(f"Error: {exc}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Hive CLI - route Solana assistant messages and query yields",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m hive.cli route "best USDC lending yields"
  python -m hive.cli route --interactive
  python -m hive.cli yields lending --token USDC
  python -m hive.cli --output json yields staking --risk low
  python -m hive.cli market trending --limit 5
        """,
    )
    parser.add_argument(
        "-o",
        "--output",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug information",
    )
    sub = parser.add_subparsers(dest="command")

    route = sub.add_parser("route", help="Route a chat message to an agent")
    route.add_argument("message", nargs="?", help="Chat message to route")
    route.add_argument("-i", "--interactive", action="store_true", help="Start REPL mode")
    route.add_argument("--wallet", help="Connected wallet address")
    route.add_argument(
        "--no-tools", action="store_true", help="Do not run yield tools after routing"
    )

    yields = sub.add_parser("yields", help="Print the top yield pools")
    yields.add_argument("kind", choices=["lending", "staking"])
    yields.add_argument("--token", help="Token symbol filter (e.g. USDC)")
    yields.add_argument("--protocol", help="Protocol filter (e.g. kamino)")
    yields.add_argument("--limit", type=int, help="Number of pools (1-50)")
    yields.add_argument("--risk", choices=["low", "medium", "high"])
    yields.add_argument("--horizon", choices=["short", "medium", "long"])

    market = sub.add_parser("market", help="Show trending tokens or top traders")
    market.add_argument("kind", choices=["trending", "traders"])
    market.add_argument("--limit", type=int, default=10, help="Number of tokens")
    market.add_argument("--time-frame", choices=list(TIME_FRAMES), default="today")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        output_format = OutputFormat(args.output)
    except ValueError:
        output_format = OutputFormat.TEXT
    output = CLIOutput(format=output_format, verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        settings = load_settings()
    except Exception as exc:
        output.error(f"Failed to load settings: {exc}")
        return 1

    configure_logging(
        "DEBUG" if args.verbose else settings.log_level,
        log_file=settings.log_file,
        console=args.verbose or settings.log_file is None,
    )
    bind_context(command=args.command)

    async with YieldService(settings) as yields:
        if args.command == "yields":
            query = YieldQuery(
                token_symbol=args.token,
                protocol=args.protocol,
                limit=args.limit,
                risk=args.risk,
                time_horizon=args.horizon,
            )
            output.status(f"Fetching {args.kind} yields...")
            if args.kind == "lending":
                result = await yields.lending_yields(query)
            else:
                result = await yields.liquid_staking_yields(query)
            output.yields(result)
            return 0 if result.status != "unavailable" else 2

        if args.command == "market":
            market = MarketService.from_settings(yields.client, settings)
            if args.kind == "trending":
                payload = await market.trending_tokens(args.limit)
            else:
                payload = await market.top_traders(args.time_frame)
            output.tool_result(payload)
            return 0

        if not settings.gemini_api_key:
            output.error("GEMINI_API_KEY is required for routing")
            return 1
        model = GeminiProposalModel(
            api_key=settings.gemini_api_key, model_name=settings.gemini_model
        )
        session = Session(
            ConversationRouter.from_settings(model, settings),
            yields,
            settings,
            wallet_address=args.wallet,
        )

        if args.interactive:
            await run_interactive(session, output)
            return 0
        if not args.message:
            output.error("A message is required unless --interactive is set")
            return 1
        await session.turn(args.message, output, run_yields=not args.no_tools)
        output.debug("metrics", metrics_snapshot())
    return 0


def cli_main() -> None:
    """Synchronous wrapper for CLI entry."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    cli_main()
