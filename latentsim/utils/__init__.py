"""Utils module for the latent proxy study."""
from .logging_config import (
    setup_logging,
    get_logger,
    JsonFormatter,
    StudyLogger,
    configure_warnings
)
