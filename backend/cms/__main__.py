"""Run the API with uvicorn: `python -m cms`."""

import uvicorn

from cms.config import settings


def main() -> None:
    uvicorn.run(
        "cms.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
