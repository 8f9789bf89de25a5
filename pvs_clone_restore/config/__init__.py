from .settings import (
    DEFAULT_SETTINGS,
    JobTriggerSettings,
    RunSettings,
    SSHSettings,
    load_run_settings,
    load_settings,
)

__all__ = [
    "DEFAULT_SETTINGS",
    "JobTriggerSettings",
    "RunSettings",
    "SSHSettings",
    "load_run_settings",
    "load_settings",
]
