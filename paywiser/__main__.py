"""Run the PayWiser Yellow Network API with uvicorn."""

import os

import uvicorn
from dotenv import load_dotenv

from paywiser.api import create_app
from paywiser.core.logging import configure_logging


def main() -> None:
    load_dotenv()
    configure_logging()
    app = create_app()
    uvicorn.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "3001")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
