"""CLI entry point for agent-relay."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from agent_relay.app import AgentRelayApp
from agent_relay.config import AppConfig, load_config
from agent_relay.log import setup_logging
from agent_relay.models.event import Event


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="agent-relay",
        description="Route channel events to configurable AI agents with session continuity",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # handle command
    handle_parser = subparsers.add_parser("handle", help="Handle one event from a JSON file")
    handle_parser.add_argument("event", help="Path to the event JSON file ('-' for stdin)")
    _add_config_args(handle_parser)

    # config-check command
    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    _add_config_args(check_parser)

    # agent-info command
    agent_parser = subparsers.add_parser("agent-info", help="Show model and tools per agent")
    _add_config_args(agent_parser)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(2)

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "agent-info":
        _agent_info(args.config, args.env)
    elif args.command == "handle":
        _handle(args.event, args.config, args.env)


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def _load_or_exit(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load_or_exit(config_path, env_path)
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory : {config.data_dir}")
    print(f"  Storage        : {config.storage.db_path}")
    print(f"  Model service  : {config.llm.base_url}")
    print(f"  Tool gateway   : {config.tool_gateway.url}")
    kg = config.knowledge_graph
    print(f"  Knowledge graph: {kg.search_url if kg.enabled else '(disabled)'}")
    print(f"  Delivery       : {config.delivery.url}")
    print(f"  Agents configured: {len(config.agents)}")
    for agent in config.agents:
        print(f"    - {agent.agent_id} [{agent.model or config.orchestrator.default_model}]")


def _agent_info(config_path: str, env_path: str) -> None:
    """Show model, prompt and tool information for each agent."""
    config = _load_or_exit(config_path, env_path)
    defaults = config.orchestrator

    print("Agent Configuration")
    print("=" * 50)
    for agent in config.agents:
        prompt = agent.system_prompt or defaults.default_system_prompt
        print(f"\n  Agent: {agent.agent_id}" + (f" ({agent.name})" if agent.name else ""))
        print(f"    Model  : {agent.model or defaults.default_model}")
        print(f"    Prompt : {prompt[:60]}{'...' if len(prompt) > 60 else ''}")
        print(f"    Voice  : {agent.voice or config.llm.tts_voice}")
        tools = agent.allowed_tools
        print(f"    Tools  : {', '.join(tools) if tools else '(none)'}")
    print()


def _read_event(path: str) -> Event:
    raw = sys.stdin.read() if path == "-" else Path(path).read_text(encoding="utf-8")
    return Event.model_validate_json(raw)


def _handle(event_path: str, config_path: str, env_path: str) -> None:
    """Handle a single event and print the reply as JSON."""
    config = _load_or_exit(config_path, env_path)
    setup_logging(config.log_level)

    try:
        event = _read_event(event_path)
    except (OSError, ValidationError) as e:
        print(json.dumps({"ok": False, "error": f"Invalid Event: {e}"}))
        sys.exit(1)

    async def _async_main() -> int:
        async with AgentRelayApp(config) as app:
            try:
                reply = await app.handle_event(event)
            except Exception as e:
                print(json.dumps({"ok": False, "error": str(e)}))
                return 1
        body = reply.to_dict() if reply is not None else {"ok": True}
        print(json.dumps(body, ensure_ascii=False, indent=2))
        return 0

    sys.exit(asyncio.run(_async_main()))


if __name__ == "__main__":
    main()
