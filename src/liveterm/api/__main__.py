"""Run the terminal service with Uvicorn."""

import uvicorn

from .main import app, config


def main() -> None:
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        ws_ping_interval=config.ws_ping_interval,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
