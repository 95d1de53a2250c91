import uvicorn
from dotenv import load_dotenv

from backend.core.config import Settings


def main() -> None:
    load_dotenv()
    settings = Settings.from_env()
    uvicorn.run("backend.app:app", host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
