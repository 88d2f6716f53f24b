import argparse
import asyncio
import logging
from decimal import Decimal

from crowns.models import TimingConfig
from crowns.storage import MemoryStorage

from .seed import seed_defaults, seed_players
from .server import HostServer
from .service import TableService


def main() -> None:
    parser = argparse.ArgumentParser(description="Crown tables host server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument("--start-delay", type=int, default=2_000, help="Debounce before round 1 (milliseconds)")
    parser.add_argument("--reveal-time", type=int, default=12_000, help="Reveal window per round (milliseconds)")
    parser.add_argument("--result-time", type=int, default=15_000, help="Result display before the next round (milliseconds)")
    parser.add_argument("--commission-rate", type=Decimal, default=Decimal("5.00"), help="House commission in percent")
    parser.add_argument(
        "--player",
        action="append",
        default=[],
        metavar="NAME:BALANCE",
        help="Create a player account (repeatable)",
    )
    parser.add_argument("--operator-token", default=None, help="Token required for operator control messages")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    storage = MemoryStorage()
    seed_defaults(storage, commission_rate=args.commission_rate)
    seed_players(storage, args.player)

    timing = TimingConfig(
        start_delay_ms=args.start_delay,
        reveal_ms=args.reveal_time,
        result_display_ms=args.result_time,
    )
    server = HostServer(TableService(storage, timing=timing), operator_token=args.operator_token)
    asyncio.run(server.start(host=args.host, port=args.port))


if __name__ == "__main__":
    main()
