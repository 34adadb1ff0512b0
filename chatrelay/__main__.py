import uvicorn

from .config import settings


def main():
    uvicorn.run("chatrelay.app:app", host=settings.host, port=settings.port,
                log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
