"""
Deployment settings read from the environment (or a .env file loaded by app.py)
"""
import os
from dataclasses import dataclass


SLACK_WORKSPACE_ID_VAR = "SLACK_WORKSPACE_ID"
SLACK_CHANNEL_ID_VAR = "SLACK_CHANNEL_ID"


class MissingConfigurationError(ValueError):
    """Raised when a required deployment setting is absent or blank."""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(
            f"Missing required configuration: {', '.join(self.missing)}"
        )


@dataclass(frozen=True)
class SlackSettings:
    workspace_id: str
    channel_id: str

    @classmethod
    def from_env(cls, environ=None) -> "SlackSettings":
        environ = os.environ if environ is None else environ

        workspace_id = (environ.get(SLACK_WORKSPACE_ID_VAR) or "").strip()
        channel_id = (environ.get(SLACK_CHANNEL_ID_VAR) or "").strip()

        missing = []
        if not workspace_id:
            missing.append(SLACK_WORKSPACE_ID_VAR)
        if not channel_id:
            missing.append(SLACK_CHANNEL_ID_VAR)
        if missing:
            raise MissingConfigurationError(missing)

        return cls(workspace_id=workspace_id, channel_id=channel_id)
