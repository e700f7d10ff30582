import uvicorn

from core_config import get_settings
from core_config.constants import HYDRATOR_PORT


def main() -> None:
    uvicorn.run(
        "hydrator.app:app",
        host="0.0.0.0",
        port=HYDRATOR_PORT,
        log_level=get_settings().service_log_level.lower(),
        access_log=False,
    )


if __name__ == "__main__":
    main()
