import logging

from aiohttp import web

from .app import DATABASE, create_app
from .config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
log = logging.getLogger(__name__)

_DEMO_USER = {"name": "John Doe", "email": "john.doe@gmail.com"}


def main():
    settings = get_settings()
    app = create_app(settings=settings)
    app[DATABASE].create_user(**_DEMO_USER)
    log.info(
        "Mock API on http://%s:%d%s (demo login: %s)",
        settings.host, settings.port, settings.prefix, _DEMO_USER["email"],
    )
    web.run_app(app, host=settings.host, port=settings.port, print=None)


if __name__ == "__main__":
    main()
