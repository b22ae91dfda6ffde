"""
activealchemy - ActiveModel-style callbacks, translations and validations
for SQLAlchemy declarative models.
"""

from activealchemy.callbacks import CallbacksMixin, callback
from activealchemy.config import Settings, configure, get_settings, reset_settings
from activealchemy.errors import ErrorDetail, Errors
from activealchemy.exceptions import (
    ActiveAlchemyError,
    ConfigurationError,
    HookFailed,
    ValidationFailed,
)
from activealchemy.i18n import I18n, get_i18n, reset_i18n
from activealchemy.logging_config import get_logger, log_context, setup_logging
from activealchemy.model import ActiveModelMixin, Dataset
from activealchemy.translations import TranslationsMixin
from activealchemy.validations import ValidationsMixin
from activealchemy.validators import (
    BlockValidator,
    EachValidator,
    Validator,
    ValidatorOptions,
    register_validator,
)

__version__ = "0.1.0"

__all__ = [
    "ActiveAlchemyError",
    "ActiveModelMixin",
    "BlockValidator",
    "CallbacksMixin",
    "ConfigurationError",
    "Dataset",
    "EachValidator",
    "ErrorDetail",
    "Errors",
    "HookFailed",
    "I18n",
    "Settings",
    "TranslationsMixin",
    "ValidationFailed",
    "ValidationsMixin",
    "Validator",
    "ValidatorOptions",
    "callback",
    "configure",
    "get_i18n",
    "get_logger",
    "get_settings",
    "log_context",
    "register_validator",
    "reset_i18n",
    "reset_settings",
    "setup_logging",
]
