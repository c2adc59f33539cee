from __future__ import annotations

import logging

import uvicorn

from .configuration import get_settings


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=str(settings.logging.level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "einvoice_backend.main:app",
        host=str(settings.server.host),
        port=int(settings.server.port),
        reload=False,
    )


if __name__ == "__main__":
    main()
