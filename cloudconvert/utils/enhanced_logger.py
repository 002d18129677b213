import json
import logging
import os
import sys

LOGGER_NAME = "cloudconvert"


def setup_enhanced_logging():
    """Console logging for the client, shared by every module of the package"""
    logger = logging.getLogger(LOGGER_NAME)

    # Modules call this at import time; only the first call installs the handler
    if logger.handlers:
        return logger

    level_name = os.getenv("CLOUDCONVERT_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def log_with_context(logger, level, message, job_url=None, **context):
    """Log with structured context"""
    level_no = getattr(logging, level.upper())
    if not logger.isEnabledFor(level_no):
        return

    context_parts = []

    if job_url:
        # Process urls look like //host.cloudconvert.com/process/<id>; keep the id
        context_parts.append(f"job={job_url.rstrip('/').rsplit('/', 1)[-1]}")
    for key, value in context.items():
        if isinstance(value, (dict, list)):
            formatted_value = json.dumps(value, separators=(',', ':'), default=str)
        else:
            formatted_value = str(value)
        context_parts.append(f"{key}={formatted_value}")

    if context_parts:
        enhanced_message = f"{message} | {' | '.join(context_parts)}"
    else:
        enhanced_message = message

    logger.log(
        level_no,
        enhanced_message,
        extra={"job_url": job_url, "context": context},
    )
