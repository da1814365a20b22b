import asyncio

from app.core.config import settings
from app.core.observability import setup_logging
from app.worker import run_worker


def main():
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    asyncio.run(run_worker(settings))


if __name__ == "__main__":
    main()
