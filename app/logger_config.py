import logging
import os

from dotenv import load_dotenv

load_dotenv()

# Logger name
LOG_NAME = os.getenv("APP_LOGGER_NAME", "udhar_ledger")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Create logger
logger = logging.getLogger(LOG_NAME)
logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

# Log format with ISO-like timestamp including milliseconds
LOG_FORMAT = "%(asctime)s.%(msecs)03d - %(filename)s - %(funcName)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Formatter
formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

# Console handler
if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Avoid duplicate logs when imported in multiple modules
logger.propagate = False
