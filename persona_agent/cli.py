#!/usr/bin/env python3
"""
Persona Voice Agent - Command Line Interface

Talk to the persona from a terminal and manage its channel memories.

Commands:
    serve       - Run the HTTP server
    say         - Send a single prompt
    chat        - Start an interactive chat session
    history     - Show the latest messages of a channel
    forget      - Delete a channel's memory
    stats       - Show the active configuration

Usage:
    python -m persona_agent.cli serve
    python -m persona_agent.cli say "Rimuru, what's your favorite food?" --user moon
    python -m persona_agent.cli chat --user moon --stream
    python -m persona_agent.cli history moon --limit 10

For help on a specific command:
    python -m persona_agent.cli <command> --help
"""

import argparse
import asyncio
import sys

from persona_agent.config import settings
from persona_agent.errors import GateDeclined, PersonaAgentError
from persona_agent.logger import get_logger, init_logging

# Initialize logging
init_logging()
logger = get_logger(__name__)


def _build_agent():
    from persona_agent.agent import ConversationAgent

    settings.validate_all()
    return ConversationAgent()


def _request(args: argparse.Namespace, prompt: str):
    from persona_agent.conversation.models import PromptRequest

    return PromptRequest(
        prompt=prompt,
        user_id=args.user,
        personality=args.personality,
        gender=args.gender,
        source_material=args.source_material,
    )


async def _print_fragment(chunk) -> None:
    if chunk.response:
        print(chunk.response, end="", flush=True)


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the FastAPI server with uvicorn.
    """
    import uvicorn

    host = args.host or settings.api.host
    port = args.port or settings.api.port
    print(f"\n🚀 Serving on http://{host}:{port}")
    uvicorn.run("api_server:app", host=host, port=port, reload=args.reload)
    return 0


def cmd_say(args: argparse.Namespace) -> int:
    """
    Send one prompt and print the reply.
    """
    print(f"\n🗨️  {args.user}: {args.prompt}")
    print("-" * 50)

    async def run() -> None:
        agent = _build_agent()
        request = _request(args, args.prompt)
        if args.stream:
            print(f"{request.personality_profile().name}: ", end="", flush=True)
            await agent.handle_turn(request, _print_fragment, gated=args.gated, speak=False)
            print("\n")
        else:
            reply = await agent.handle_turn(request, gated=args.gated, speak=False)
            print(f"{request.personality_profile().name}: {reply.response}\n")
            if args.verbose:
                print("📝 Grounded prompt:")
                print(reply.grounded_prompt)

    try:
        asyncio.run(run())
        return 0
    except GateDeclined as e:
        print(f"🤐 {e.message}")
        return 0
    except PersonaAgentError as e:
        print(f"❌ Turn failed ({e.status_code}): {e.message}")
        logger.error(f"Say error: {e.message}")
        return 1


def cmd_chat(args: argparse.Namespace) -> int:
    """
    Start an interactive chat session.
    """
    name = args.personality or "the persona"

    print("\n" + "=" * 60)
    print(f"🎭 Persona Voice Agent - Chatting with {name}")
    print("=" * 60)
    print("Type your messages below. Commands:")
    print("  /history - Show the last 10 messages")
    print("  /forget  - Delete this conversation")
    print("  /quit    - Exit chat")
    print("-" * 60)

    async def run() -> None:
        from persona_agent.conversation.models import DeleteHistoryRequest, HistoryRequest

        agent = _build_agent()
        persona = _request(args, "").personality_profile().name

        while True:
            try:
                user_input = input("You: ").strip()
            except (KeyboardInterrupt, EOFError):
                print("\n👋 Goodbye!")
                break

            if not user_input:
                continue

            command = user_input.lower()
            if command == "/quit":
                print("\n👋 Goodbye!")
                break
            if command == "/history":
                try:
                    history = await agent.get_history(HistoryRequest(user_id=args.user, limit=10))
                except PersonaAgentError as e:
                    print(f"⚠️  {e.message}\n")
                    continue
                for record in history.messages:
                    print(f"   {record.author}: {record.text}")
                print()
                continue
            if command == "/forget":
                try:
                    status = await agent.delete_history(DeleteHistoryRequest(user_id=args.user))
                    print(f"🗑️  {status.message}\n")
                except PersonaAgentError as e:
                    print(f"⚠️  {e.message}\n")
                continue

            try:
                if args.stream:
                    print(f"{persona}: ", end="", flush=True)
                    await agent.handle_turn(
                        _request(args, user_input), _print_fragment, gated=args.gated, speak=False
                    )
                    print("\n")
                else:
                    reply = await agent.handle_turn(_request(args, user_input), gated=args.gated, speak=False)
                    print(f"{persona}: {reply.response}\n")
            except GateDeclined as e:
                print(f"🤐 ({e.message})\n")
            except PersonaAgentError as e:
                print(f"\n❌ {e.message}\n")
                logger.error(f"Chat turn failed: {e.message}")

    asyncio.run(run())
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    """
    Print the latest messages of a channel, oldest first.
    """
    from persona_agent.conversation.models import HistoryRequest

    async def run():
        return await _build_agent().get_history(HistoryRequest(user_id=args.user, limit=args.limit))

    try:
        history = asyncio.run(run())
    except PersonaAgentError as e:
        print(f"❌ {e.message}")
        return 1

    print(f"\n📜 Last {len(history.messages)} messages for {args.user}")
    print("-" * 50)
    for record in history.messages:
        print(f"{record.author}: {record.text}")
    return 0


def cmd_forget(args: argparse.Namespace) -> int:
    """
    Delete a channel's memory.
    """
    from persona_agent.conversation.models import DeleteHistoryRequest

    if not args.force:
        confirm = input(f"⚠️  This will delete everything remembered for {args.user}. Continue? [y/N]: ")
        if confirm.lower() != "y":
            print("Cancelled.")
            return 0

    async def run():
        return await _build_agent().delete_history(DeleteHistoryRequest(user_id=args.user))

    try:
        status = asyncio.run(run())
    except PersonaAgentError as e:
        print(f"❌ {e.message}")
        return 1

    print(f"✅ {status.message}")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """
    Show the active configuration.
    """
    convo = settings.conversation

    print("\n📊 Configuration")
    print("-" * 50)
    print("Inference:")
    print(f"  Host:            {settings.ollama.host}")
    print(f"  Chat model:      {settings.ollama.chat_model}")
    print(f"  Embed model:     {settings.ollama.embed_model}")
    print(f"  Keep alive:      {settings.ollama.keep_alive}")

    print("\nMemory:")
    print(f"  Backend:         {settings.memory.backend}")
    if settings.memory.is_remote:
        print(f"  Server:          {settings.memory.host}:{settings.memory.port}")
    else:
        print(f"  Directory:       {settings.memory.directory}")

    print("\nConversation:")
    print(f"  Turn window:     {convo.turn_recent_count} recent / {convo.turn_relevant_count} relevant")
    print(f"  Gate window:     {convo.gate_recent_count} recent / {convo.gate_relevant_count} relevant")
    print(f"  Debounce:        {convo.debounce_seconds}s")
    print(f"  Aliases:         {len(convo.aliases)}")

    print("\nSpeech:")
    print(f"  TTS:             {settings.speech.tts_url}")
    print(f"  RVC:             {settings.speech.rvc_url}")
    print(f"  Voices:          {', '.join(settings.speech.supported_voices)}")
    print(f"\n  Environment:     {settings.app_env}")
    return 0


def _add_persona_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--user", "-u",
        default="cli",
        help="Caller id, which selects the channel (default: cli)"
    )
    parser.add_argument(
        "--personality", "-p",
        help="Character to play (default: Rimuru)"
    )
    parser.add_argument(
        "--gender",
        help="Character gender used in prompts"
    )
    parser.add_argument(
        "--source-material",
        help="Work the character comes from"
    )
    parser.add_argument(
        "--stream", "-s",
        action="store_true",
        help="Stream the reply as it is generated"
    )
    parser.add_argument(
        "--gated",
        action="store_true",
        help="Let the persona decide whether to answer, as in a group chat"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all commands."""
    parser = argparse.ArgumentParser(
        prog="persona-agent",
        description="Persona voice agent CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Run the server:
    python -m persona_agent.cli serve --port 8080

  Talk to the persona:
    python -m persona_agent.cli say "Hi Rimuru!" --user moon
    python -m persona_agent.cli chat --user moon --personality Frieren --gender female

  Memory management:
    python -m persona_agent.cli history moon --limit 20
    python -m persona_agent.cli forget moon --force
        """
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP server"
    )
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Bind port")
    serve_parser.add_argument(
        "--reload",
        action="store_true",
        help="Reload on code changes"
    )
    serve_parser.set_defaults(func=cmd_serve)

    # Say command
    say_parser = subparsers.add_parser(
        "say",
        help="Send a single prompt"
    )
    say_parser.add_argument(
        "prompt",
        help="What to say"
    )
    _add_persona_arguments(say_parser)
    say_parser.set_defaults(func=cmd_say)

    # Chat command
    chat_parser = subparsers.add_parser(
        "chat",
        help="Start an interactive chat session"
    )
    _add_persona_arguments(chat_parser)
    chat_parser.set_defaults(func=cmd_chat)

    # History command
    history_parser = subparsers.add_parser(
        "history",
        help="Show the latest messages of a channel"
    )
    history_parser.add_argument("user", help="Caller id")
    history_parser.add_argument(
        "--limit", "-n",
        type=int,
        default=10,
        help="Number of messages (default: 10)"
    )
    history_parser.set_defaults(func=cmd_history)

    # Forget command
    forget_parser = subparsers.add_parser(
        "forget",
        help="Delete a channel's memory"
    )
    forget_parser.add_argument("user", help="Caller id")
    forget_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Skip confirmation prompt"
    )
    forget_parser.set_defaults(func=cmd_forget)

    # Stats command
    stats_parser = subparsers.add_parser(
        "stats",
        help="Show the active configuration"
    )
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main() -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    if args.verbose:
        import logging
        logging.getLogger().setLevel(logging.DEBUG)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
