"""Run the API server: `python -m policyrag` or the `policyrag` script."""

import uvicorn

from policyrag.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("policyrag.main:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
