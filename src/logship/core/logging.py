import logging

# Package-wide logger; handlers are installed by logging_config.setup_logging()
logger = logging.getLogger("logship")
