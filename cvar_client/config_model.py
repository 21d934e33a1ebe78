import logging
from typing import Any, Dict, Optional

from .normalize import DEFAULTS_VERSION, default_values, normalize
from .schemas import RunConfig

logger = logging.getLogger(__name__)


def reset() -> RunConfig:
    """Canonical default configuration (see DEFAULTS_VERSION)."""
    return RunConfig.model_validate(default_values())


class ConfigModel:
    """
    Editable optimizer configuration.

    Every edit goes through normalize(), so the held RunConfig is always in bounds.
    The held value is immutable; snapshot() hands it out as-is for submission.

    `lambda` stays editable whatever the objective; it is only meaningful for
    mean_minus_lambda_cvar and the service ignores it otherwise.
    """

    defaults_version = DEFAULTS_VERSION

    def __init__(self, config: Optional[RunConfig] = None):
        self._config = config if config is not None else reset()

    def update(self, field: str, raw: Any) -> Any:
        if field == "lambda_":
            field = "lambda"
        value = normalize(field, raw)
        if value != raw:
            logger.debug("config %s: %r coerced to %r", field, raw, value)
        self._config = RunConfig.model_validate({**self.values(), field: value})
        return value

    def update_many(self, edits: Dict[str, Any]) -> RunConfig:
        for field, raw in edits.items():
            self.update(field, raw)
        return self._config

    def get(self, field: str) -> Any:
        return self.values()[field]

    def values(self) -> Dict[str, Any]:
        return self._config.model_dump(by_alias=True)

    def snapshot(self) -> RunConfig:
        return self._config

    @property
    def lambda_active(self) -> bool:
        return self._config.lambda_active

    def reset(self) -> RunConfig:
        self._config = reset()
        return self._config
