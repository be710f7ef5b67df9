"""Logging setup shared by the API and scripts."""
import logging


def configure_logging(level: str = "INFO", force: bool = False) -> None:
    """Initialise the root logger once."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        force=force,
    )
