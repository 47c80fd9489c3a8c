"""Entry point for running the Love Wall Flask application."""

from dotenv import load_dotenv

load_dotenv()

from lovewall import create_app  # noqa: E402

app = create_app()
