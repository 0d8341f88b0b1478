"""Serve the API with uvicorn: ``python -m decisions`` or ``group-decisions``."""
import uvicorn

from decisions.config import settings


def main():
    uvicorn.run(
        "decisions.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
