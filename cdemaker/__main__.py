from __future__ import annotations
import uvicorn

from cdemaker.config import load_config


def main() -> None:
    config = load_config()
    uvicorn.run("cdemaker.main:app", host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
