import uvicorn

from projectboard.config import settings


def run() -> None:
    uvicorn.run("projectboard.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
