import os

import uvicorn

from api.app import create_app
from core.config import AppConfig
from core.logging_setup import setup_logging


def main() -> None:
    config = AppConfig.from_env()
    setup_logging(config.log_level, config.log_format, service_name="brokerage-api")
    uvicorn.run(
        create_app(config),
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
