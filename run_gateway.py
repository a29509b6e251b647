import argparse
import asyncio
import logging

import uvicorn

from ethgate.config import load_config
from ethgate.gateway import create_app
from ethgate.logger import configure_logging, get_logger

# Suppress uvicorn's default logging; the gateway logs requests itself
uvicorn_loggers = [
    logging.getLogger("uvicorn"),
    logging.getLogger("uvicorn.error"),
    logging.getLogger("uvicorn.access"),
    logging.getLogger("uvicorn.asgi"),
]

for uvicorn_logger in uvicorn_loggers:
    uvicorn_logger.setLevel(logging.ERROR)
    # Remove handlers to prevent duplicate output
    uvicorn_logger.handlers = []


async def serve(app, host: str, ports: list) -> None:
    """Serve one app on every port (HTTP and WebSocket may be split)."""
    servers = [
        uvicorn.Server(uvicorn.Config(
            app,
            host=host,
            port=port,
            access_log=False,
            log_config=None,
            # The app's lifespan owns the upstream connection; run it once
            lifespan="on" if i == 0 else "off",
        ))
        for i, port in enumerate(ports)
    ]
    await asyncio.gather(*(server.serve() for server in servers))


def main() -> None:
    parser = argparse.ArgumentParser(description="ethgate JSON-RPC gateway")
    parser.add_argument("--config", help="Path to gateway.toml (default: $ETHGATE_CONFIG or ./gateway.toml)")
    args = parser.parse_args()

    config = load_config(args.config)
    config.validate()
    configure_logging(config.gateway.log_level)

    logger = get_logger("ethgate")
    logger.info(
        "Proxy listening on %s port(s) %s, upstream %s",
        config.http.host, ", ".join(str(p) for p in config.listen_ports), config.upstream.url,
    )

    app = create_app(config)
    asyncio.run(serve(app, config.http.host, config.listen_ports))


if __name__ == "__main__":
    main()
