import logging

logger = logging.getLogger("speechbot")
