"""Run the API with uvicorn: ``python -m core_memory``."""

import uvicorn

from .config import settings


def main() -> None:
    uvicorn.run("core_memory.main:create_app", factory=True, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
