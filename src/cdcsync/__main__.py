"""
Main entrypoint: serves the provisioning API under uvicorn.

Usage:
    python -m cdcsync                                   # host/port from settings
    uvicorn cdcsync.api.main:app --host 0.0.0.0 --port 8000
"""
import logging

import uvicorn

from cdcsync.config import get_settings


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logging.getLogger(__name__).info(
        "Starting cdcsync API on %s:%s", settings.api_host, settings.api_port
    )
    uvicorn.run("cdcsync.api.main:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
