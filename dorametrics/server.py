"""Console entry point — serve the API with uvicorn."""

from __future__ import annotations

import os

import uvicorn
from dotenv import load_dotenv


def main() -> None:
    load_dotenv()
    uvicorn.run(
        "dorametrics.api:create_app",
        factory=True,
        host=os.environ.get("DORAMETRICS_HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "3000")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
