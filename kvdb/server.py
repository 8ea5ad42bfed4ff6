"""Console entrypoint: serve the application with uvicorn on LISTEN_ON."""

from __future__ import annotations

import uvicorn

from kvdb.core.config import parse_listen_address, settings


def run() -> None:
    host, port = parse_listen_address(settings.app.listen_on)
    # log_config=None keeps the JSON logging configured by the app factory
    uvicorn.run("kvdb.main:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    run()
