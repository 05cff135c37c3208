# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Agent Society CLI - peer discovery and payment setup over Nostr.

Commands:
  agent-society keygen                  Generate a new Nostr keypair
  agent-society discover <pubkey>       Discover ILP peers followed by <pubkey>
  agent-society trust <subject>         Compute the trust score of <subject>
  agent-society spsp <recipient>        Request fresh SPSP parameters
  agent-society spsp <recipient> --static
                                        Read published SPSP parameters
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from typing import Any

from .core.config import AgentSocietySettings, get_config
from .core.exceptions import AgentSocietyError, ConfigError
from .core.logging import configure_logging
from .crypto.keys import NostrKeys
from .discovery.peer_discovery import PeerDiscovery
from .events.models import normalize_identity
from .spsp.client import SpspClient
from .transport.base import Transport
from .transport.relay_pool import RelayPool
from .trust.social_graph import SocialGraph

logger = logging.getLogger(__name__)


def make_transport(config: AgentSocietySettings) -> Transport:
    """Transport used by the network commands."""
    return RelayPool.from_config(config)


async def _close(transport: Any) -> None:
    close = getattr(transport, "close", None)
    if close is not None:
        await close()


def _relays(args: argparse.Namespace, config: AgentSocietySettings) -> list[str]:
    relays = args.relay or config.relay_list
    if not relays:
        raise ConfigError("No relays configured", missing_vars=["AGENT_SOCIETY_RELAYS"])
    return relays


def _keys(config: AgentSocietySettings) -> NostrKeys:
    if not config.private_key:
        raise ConfigError("A private key is required", missing_vars=["AGENT_SOCIETY_PRIVATE_KEY"])
    try:
        return NostrKeys(config.private_key)
    except ValueError as e:
        raise ConfigError(f"Invalid AGENT_SOCIETY_PRIVATE_KEY: {e}") from e


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


# ============================================================================
# Commands
# ============================================================================


def cmd_keygen(args: argparse.Namespace) -> int:
    """Generate a keypair."""
    keys = NostrKeys.generate()
    if args.json:
        _print_json({"private_key": keys.private_key_hex, "public_key": keys.public_key})
        return 0
    print(f"Public key:  {keys.public_key}")
    print(f"Private key: {keys.private_key_hex}")
    print("\nStore the private key in AGENT_SOCIETY_PRIVATE_KEY.")
    return 0


def cmd_discover(args: argparse.Namespace) -> int:
    """Discover peers through the follow list of a pubkey."""
    config = get_config()
    pubkey = normalize_identity(args.pubkey)

    async def run() -> list[Any]:
        transport = make_transport(config)
        try:
            discovery = PeerDiscovery(transport, _relays(args, config))
            return await discovery.discover_peers(pubkey)
        finally:
            await _close(transport)

    peers = asyncio.run(run())

    if args.json:
        _print_json({"peers": [p.to_dict() for p in peers], "count": len(peers)})
        return 0

    if not peers:
        print("No peers discovered")
        return 0

    print(f"Discovered {len(peers)} peer(s)\n")
    for i, peer in enumerate(peers, 1):
        name = peer.petname or peer.pubkey[:16] + "..."
        print(f"{i}. {name}")
        print(f"   ILP address:  {peer.info.ilp_address}")
        print(f"   BTP endpoint: {peer.info.btp_endpoint}")
        if peer.info.settlement:
            methods = ", ".join(s.type for s in peer.info.settlement)
            print(f"   Settlement:   {methods}")
        print()
    return 0


def cmd_trust(args: argparse.Namespace) -> int:
    """Compute the trust score of a subject."""
    config = get_config()
    subject = normalize_identity(args.subject)
    own_pubkey = normalize_identity(args.as_pubkey) if args.as_pubkey else _keys(config).public_key

    async def run() -> Any:
        transport = make_transport(config)
        try:
            graph = SocialGraph(transport, _relays(args, config), own_pubkey, config.trust_config())
            return await graph.compute_trust(subject)
        finally:
            await _close(transport)

    score = asyncio.run(run())

    if args.json:
        _print_json(score.to_dict())
        return 0

    print(f"Trust for {score.subject}")
    print(f"   Followed:       {'yes' if score.is_followed else 'no'}")
    print(f"   Follows back:   {'yes' if score.follows_back else 'no'}")
    print(f"   Mutual follows: {score.mutual_follower_count}")
    print(f"   Credit limit:   {score.credit_limit}")
    print(f"   Score:          {score.score}/100")
    return 0


def cmd_spsp(args: argparse.Namespace) -> int:
    """Fetch SPSP parameters for a recipient."""
    config = get_config()
    recipient = normalize_identity(args.recipient)
    keys = None if args.static else _keys(config)

    async def run() -> Any:
        transport = make_transport(config)
        try:
            client = SpspClient(transport, _relays(args, config), keys, timeout=config.request_timeout)
            if args.static:
                return await client.get_spsp_info(recipient)
            return await client.request_spsp_info(recipient, timeout=args.timeout)
        finally:
            await _close(transport)

    info = asyncio.run(run())

    if info is None:
        print("No SPSP info published", file=sys.stderr)
        return 1

    if args.json:
        _print_json(
            {
                "destination_account": info.destination_account,
                "shared_secret": info.shared_secret,
                "receipts_enabled": info.receipts_enabled,
            }
        )
        return 0

    print(f"Destination account: {info.destination_account}")
    print(f"Shared secret:       {info.shared_secret}")
    if info.receipts_enabled is not None:
        print(f"Receipts enabled:    {'yes' if info.receipts_enabled else 'no'}")
    return 0


# ============================================================================
# Parser
# ============================================================================


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="agent-society",
        description="ILP peer discovery and SPSP over Nostr",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  agent-society keygen
  agent-society discover <pubkey> --relay wss://relay.damus.io
  agent-society trust <subject> --json
  agent-society spsp <recipient> --static
        """,
    )
    parser.add_argument("--relay", action="append", help="Relay URL (repeatable, overrides config)")
    parser.add_argument("--json", action="store_true", help="Output JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("keygen", help="Generate a new keypair")

    discover_parser = subparsers.add_parser("discover", help="Discover ILP peers via follows")
    discover_parser.add_argument("pubkey", help="Pubkey whose follow list is used")

    trust_parser = subparsers.add_parser("trust", help="Compute a trust score")
    trust_parser.add_argument("subject", help="Pubkey to score")
    trust_parser.add_argument(
        "--as",
        dest="as_pubkey",
        help="Score from this pubkey's point of view (default: own key)",
    )

    spsp_parser = subparsers.add_parser("spsp", help="Fetch SPSP parameters")
    spsp_parser.add_argument("recipient", help="Pubkey of the payment receiver")
    spsp_parser.add_argument("--static", action="store_true", help="Read published kind 10047 info")
    spsp_parser.add_argument("--timeout", type=float, help="Request timeout in seconds")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)

    config = get_config()
    configure_logging(level="DEBUG" if args.verbose else config.log_level)

    commands = {
        "keygen": cmd_keygen,
        "discover": cmd_discover,
        "trust": cmd_trust,
        "spsp": cmd_spsp,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except AgentSocietyError as e:
        if args.json:
            _print_json(e.to_dict())
        else:
            print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
