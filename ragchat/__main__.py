"""Run the API server: ``python -m ragchat``."""

import uvicorn

from ragchat.config import get_settings


def main() -> None:
    """Serve the app on the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "ragchat.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
