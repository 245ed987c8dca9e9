import argparse
import sys

from .config import GatewayConfig
from .errors import GatewayError
from .logging_config import configure_logging
from .server import GatewayServer


def main():
    parser = argparse.ArgumentParser(description="Proxies.sx MCP gateway (account API + x402 pay-per-use)")
    parser.add_argument("--transport", type=str, default="stdio", choices=["stdio", "sse", "streamable-http"],
                        help="MCP transport to serve on")
    parser.add_argument("--log-level", type=str, default=None, help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)")

    args = parser.parse_args()

    try:
        config = GatewayConfig.from_env()
        if args.log_level:
            config.log_level = args.log_level
        configure_logging(config.log_level, config.log_file)
        server = GatewayServer(config)
    except GatewayError as e:
        print(f"Failed to start proxies-sx-mcp: {e.message}", file=sys.stderr)
        sys.exit(1)

    try:
        server.run(transport=args.transport)
    finally:
        server.close()


if __name__ == "__main__":
    main()
