"""命令行入口：python -m launchpad_proxy"""

import uvicorn

from launchpad_proxy.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "launchpad_proxy.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
