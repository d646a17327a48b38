"""Run the aicat gateway: python -m aicat"""

import uvicorn

from aicat.config import get_config


def main() -> None:
    config = get_config()
    uvicorn.run("aicat.main:app", host=config.host, port=config.port, log_level="debug" if config.debug else "info")


if __name__ == "__main__":
    main()
