"""loguru sinks for the daemon and the CLI."""
import sys

from loguru import logger

from .config import Settings

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan> - <level>{message}</level>"
)


def setup_logging(settings: Settings, to_file: bool = True, level: str | None = None) -> None:
    """Replace the default sink with stderr plus a rotating file under data_dir."""
    level = level or ("DEBUG" if settings.debug else settings.log_level)
    logger.remove()
    logger.configure(extra={"module": "wakekeeper"})
    logger.add(sys.stderr, level=level, format=_FORMAT)
    if to_file and settings.log_file:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.data_dir / settings.log_file,
            level=level,
            format=_FORMAT,
            rotation="5 MB",
            retention=5,
            enqueue=True,
        )
