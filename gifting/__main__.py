import uvicorn

from gifting.config import settings


def run():
    uvicorn.run("gifting.main:app", host=settings.app_host, port=settings.app_port)


if __name__ == "__main__":
    run()
