"""
Main entry point for the peercall package.
Run with: python -m peercall [client|server]
"""
import argparse
import asyncio

from .core.config import CallConfig


def main():
    parser = argparse.ArgumentParser(prog="peercall", description="Two-party WebRTC calls")
    parser.add_argument("mode", nargs="?", choices=("client", "server"), default="client")
    parser.add_argument("--signaling-url", help="relay server URL for the client")
    parser.add_argument("--port", type=int, help="listening port for the server")
    args = parser.parse_args()

    config = CallConfig()
    if args.signaling_url:
        config.signaling_url = args.signaling_url
    if args.port:
        config.port = args.port

    if args.mode == "server":
        from .services.relay_server import main as run_server
        asyncio.run(run_server(config))
    else:
        from .call_client import main as run_client
        asyncio.run(run_client(config))


if __name__ == "__main__":
    main()
