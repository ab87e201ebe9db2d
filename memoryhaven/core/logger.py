import sys
from loguru import logger
from memoryhaven.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

def setup_logger(config=settings):
    logger.remove()

    # Console: operator-facing, level from settings
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=config.LOG_LEVEL)

    # File: full debug trail incl. ffmpeg progress; executor threads write here too
    logger.add(
        config.DATA_DIR / config.LOG_FILE,
        rotation="10 MB",
        retention="1 week",
        compression="zip",
        level="DEBUG",
        enqueue=True,
    )

setup_logger()
