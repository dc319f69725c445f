"""Run the API with uvicorn: python -m gitstack."""

import uvicorn

from gitstack.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "gitstack.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
