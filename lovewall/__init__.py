"""Application factory for the Love Wall site."""

from datetime import UTC, datetime
from pathlib import Path

from flask import Flask, current_app
from sqlalchemy.exc import SQLAlchemyError

from .config import get_config
from .extensions import csrf, db, migrate
from .routes import BUS_EXTENSION, FEEDS_EXTENSION, api_bp, main_bp
from .services import couples
from .wall import ApprovedFeed, DataCache, FeedFetchError, InvalidationBus
from .wall.cache import APPROVALS_CHANNEL

_BASE_DIR = Path(__file__).resolve().parent.parent

VIEW_NAMES = ("wall", "carousel", "album")


def create_app(config_name: str | None = None) -> Flask:
    """Build and configure the Flask application instance."""
    app = Flask(
        __name__,
        static_folder=str(_BASE_DIR / "static"),
        static_url_path="/static",
    )
    config_obj = get_config(config_name)
    app.config.from_object(config_obj)

    register_extensions(app)
    register_blueprints(app)
    register_feeds(app)
    register_context_processors(app)

    return app


def register_extensions(app: Flask) -> None:
    """Initialize application extensions."""
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)


def register_blueprints(app: Flask) -> None:
    """Register application blueprints."""
    app.register_blueprint(main_bp)
    csrf.exempt(api_bp)
    app.register_blueprint(api_bp)


def register_feeds(app: Flask) -> None:
    """Give each public view its own cache, all listening on one bus."""
    bus = InvalidationBus(APPROVALS_CHANNEL)
    feeds: dict[str, ApprovedFeed] = {}
    for view in VIEW_NAMES:
        prefix = view.upper()
        cache = DataCache(int(app.config.get(f"{prefix}_CACHE_SECONDS", 30)))
        feeds[view] = ApprovedFeed(
            _approved_fetcher(f"{prefix}_FETCH_LIMIT"),
            cache,
            poll_seconds=int(app.config.get(f"{prefix}_POLL_SECONDS", 60)),
            bus=bus,
        )
    app.extensions[BUS_EXTENSION] = bus
    app.extensions[FEEDS_EXTENSION] = feeds


def register_context_processors(app: Flask) -> None:
    """Attach template helpers."""

    @app.context_processor
    def inject_current_year() -> dict[str, int]:
        return {"current_year": datetime.now(UTC).year}


def _approved_fetcher(limit_key: str):
    """Load approved couples, capped by ``limit_key`` when that key is set."""

    def fetch():
        limit = current_app.config.get(limit_key)
        try:
            return couples.list_approved(limit=int(limit) if limit else None)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise FeedFetchError(f"Failed to load approved couples: {exc}") from exc

    return fetch
