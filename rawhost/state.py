from dataclasses import dataclass

from rawhost.auth import PasswordRotator, SessionStore
from rawhost.config import Settings
from rawhost.gate import AccessPolicy, build_policy
from rawhost.repository import FileRepository
from rawhost.storage import LocalContentStore
from rawhost.webhook import WebhookNotifier


@dataclass
class AppState:
    """Process-scoped state shared by request handlers and timer tasks."""

    settings: Settings
    repository: FileRepository
    storage: LocalContentStore
    sessions: SessionStore
    rotator: PasswordRotator
    notifier: WebhookNotifier
    policy: AccessPolicy

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppState":
        sessions = SessionStore(settings.session_ttl_seconds)
        return cls(
            settings=settings,
            repository=FileRepository(settings.metadata_path),
            storage=LocalContentStore(settings.storage_dir),
            sessions=sessions,
            rotator=PasswordRotator(settings.password_length, settings.password_ttl_seconds),
            notifier=WebhookNotifier(settings.webhook_url, settings.webhook_timeout_seconds),
            policy=build_policy(settings, sessions),
        )

    def init(self) -> None:
        self.repository.init()
        self.storage.init()
