"""
CubeArena - multiplayer cube arena client

Usage:
    python arena.py play --room lobby --script "d:1.0,w:0.5" --duration 3
    python arena.py relay --port 8765

Environment Variables:
    ARENA_ENVIRONMENT - development, production or testing (default: development)
    ARENA_TRANSPORT - memory, pusher or socket (default: memory)
    ARENA_PUSHER_KEY - Pusher app key (required for the pusher transport)
    ARENA_PUSHER_CLUSTER - Pusher cluster (default: eu)
    ARENA_RELAY_URL - Relay websocket URL for the socket transport
    ARENA_LOG_LEVEL - Logging level (default: INFO)
    ARENA_LOG_FILE_PATH - Rotating log file (default: none)
"""

import argparse
import logging
import sys

# Set up basic logging first
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger('arena')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='cubearena', description="Multiplayer cube arena")
    subparsers = parser.add_subparsers(dest='command', required=True)

    play = subparsers.add_parser('play', help="Join a room and move a cube")
    play.add_argument('--room', default=None, help="Room code; whitespace and case are ignored")
    play.add_argument('--transport', choices=['memory', 'pusher', 'socket'], default=None)
    play.add_argument('--script', default=None, help="Scripted keys, e.g. 'd:1.0,w:0.5'")
    play.add_argument('--duration', type=float, default=None, help="Seconds to play before leaving")

    relay = subparsers.add_parser('relay', help="Serve the websocket relay")
    relay.add_argument('--host', default=None)
    relay.add_argument('--port', type=int, default=None)

    return parser


def main(argv=None):
    """Main entry point for CubeArena"""
    args = build_parser().parse_args(argv)

    try:
        from services.arena_application import create_application

        app = create_application()

        if args.command == 'relay':
            logger.info("Starting CubeArena relay...")
            app.run_relay(args.host, args.port)
        else:
            logger.info("Starting CubeArena...")
            app.initialize(transport=args.transport)
            app.run_sync(args.room, script=args.script, duration=args.duration)

    except ImportError as e:
        logger.error(f"Failed to import required modules: {e}")
        logger.error("Make sure all dependencies are installed:")
        logger.error("  pip install -e .")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Application failed to start: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
