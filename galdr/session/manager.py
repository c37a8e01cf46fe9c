"""Session manager for handling session persistence and operations."""

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from galdr.providers.ids import ProviderId, SwitchMode
from galdr.session.models import (
    ConversationContext,
    SessionData,
    SessionIndex,
    SessionMetadata,
    next_timestamp,
)
from galdr.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SESSION = "default"
INDEX_FILE = "metadata.json"


class SessionDefaults(BaseModel):
    """Provider settings a new session starts with."""

    provider: ProviderId = ProviderId.CLAUDE
    switch_mode: SwitchMode = SwitchMode.MANUAL
    models: Dict[str, str] = Field(default_factory=dict)


class SessionManager:
    """Manages session files and the index that tracks the current session."""

    def __init__(self, sessions_dir: Path, defaults: Optional[SessionDefaults] = None):
        """Initialize session manager.

        Args:
            sessions_dir: Directory to store session files and the index.
            defaults: Provider settings applied to newly created sessions.
        """
        self.sessions_dir = Path(sessions_dir)
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.index_path = self.sessions_dir / INDEX_FILE
        self.defaults = defaults or SessionDefaults()
        self.index = self._load_index()
        logger.debug(f"SessionManager initialized with dir: {self.sessions_dir}")

        if DEFAULT_SESSION not in self.index.sessions:
            self.create_session(DEFAULT_SESSION)
        if self.index.current_session not in self.index.sessions:
            logger.warning(f"Current session '{self.index.current_session}' missing, using '{DEFAULT_SESSION}'")
            self.index.current_session = DEFAULT_SESSION
            self._save_index()

    @property
    def current_session_name(self) -> str:
        return self.index.current_session

    def _get_session_path(self, name: str) -> Path:
        """Get the file path for a session."""
        return self.sessions_dir / f"{name}.json"

    def _sanitize_name(self, name: str) -> str:
        """Sanitize session name for filesystem safety."""
        # Replace problematic characters with underscores
        invalid_chars = '<>:"/\\|?*'
        sanitized = name
        for char in invalid_chars:
            sanitized = sanitized.replace(char, "_")
        return sanitized.strip()

    def _is_valid_name(self, name: str) -> bool:
        return bool(name) and name != Path(INDEX_FILE).stem and not name.startswith(".")

    def _write_atomic(self, path: Path, payload: str) -> None:
        tmp_path = path.with_suffix(".tmp")
        try:
            # Write to temp file first
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)

            # Atomic rename
            tmp_path.replace(path)
        except OSError as e:
            logger.error(f"Failed to write {path}: {e}")
            # Clean up temp file if it exists
            if tmp_path.exists():
                tmp_path.unlink()
            raise

    def _load_index(self) -> SessionIndex:
        if not self.index_path.exists():
            return SessionIndex(current_session=DEFAULT_SESSION)
        try:
            return SessionIndex.model_validate_json(self.index_path.read_text(encoding="utf-8"))
        except ValueError as e:
            logger.warning(f"Corrupted session index {self.index_path}, creating new one: {e}")
            return SessionIndex(current_session=DEFAULT_SESSION)

    def _save_index(self) -> None:
        self._write_atomic(self.index_path, self.index.model_dump_json(indent=2))

    def session_exists(self, name: str) -> bool:
        return self._sanitize_name(name) in self.index.sessions

    def get_session_metadata(self, name: str) -> Optional[SessionMetadata]:
        return self.index.sessions.get(self._sanitize_name(name))

    def list_sessions(self) -> List[SessionMetadata]:
        """List all sessions, most recently accessed first."""
        return sorted(self.index.sessions.values(), key=lambda m: m.last_accessed, reverse=True)

    def create_session(
        self,
        name: str,
        description: Optional[str] = None,
        current_provider: Optional[ProviderId] = None,
    ) -> bool:
        """Create a new, empty session without switching to it.

        Args:
            name: Session name.
            description: Optional free-text description.
            current_provider: Provider to start with; defaults to the configured one.

        Returns:
            False if the name is taken or invalid.
        """
        sanitized_name = self._sanitize_name(name)
        if not self._is_valid_name(sanitized_name):
            logger.warning(f"Invalid session name: {name!r}")
            return False
        if sanitized_name in self.index.sessions:
            logger.warning(f"Session already exists: {sanitized_name}")
            return False

        context = ConversationContext(
            current_provider=current_provider or self.defaults.provider,
            switch_mode=self.defaults.switch_mode,
            provider_models=dict(self.defaults.models),
        )
        metadata = SessionMetadata(name=sanitized_name, description=description)
        data = SessionData(**context.model_dump(), metadata=metadata)
        self._write_atomic(self._get_session_path(sanitized_name), data.model_dump_json(indent=2))

        self.index.sessions[sanitized_name] = metadata
        self._save_index()
        logger.info(f"Created new session: {sanitized_name}")
        return True

    def load_session(self, name: str) -> Optional[ConversationContext]:
        """Load a session's conversation from disk and mark it accessed.

        Returns:
            The conversation, or None if the file is missing or unreadable.
        """
        sanitized_name = self._sanitize_name(name)
        session_path = self._get_session_path(sanitized_name)

        if not session_path.exists():
            return None

        try:
            data = SessionData.model_validate_json(session_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load session {sanitized_name}: {e}")
            return None

        metadata = self.index.sessions.get(sanitized_name)
        if metadata is not None:
            metadata.last_accessed = next_timestamp()
            self._save_index()

        logger.debug(f"Loaded session: {sanitized_name}")
        return data.to_context()

    def save_session(self, name: str, context: ConversationContext, description: Optional[str] = None) -> None:
        """Persist a conversation and refresh its index entry.

        ``message_count`` always mirrors the number of messages written.
        """
        sanitized_name = self._sanitize_name(name)
        existing = self.index.sessions.get(sanitized_name)
        metadata = SessionMetadata(
            name=sanitized_name,
            created=existing.created if existing else next_timestamp(),
            last_accessed=next_timestamp(),
            message_count=len(context.messages),
            description=description if description is not None else (existing.description if existing else None),
        )
        data = SessionData(**context.model_dump(), metadata=metadata)
        self._write_atomic(self._get_session_path(sanitized_name), data.model_dump_json(indent=2))

        self.index.sessions[sanitized_name] = metadata
        self._save_index()
        logger.debug(f"Saved session: {sanitized_name} ({metadata.message_count} messages)")

    def switch_session(self, name: str) -> bool:
        """Point the index at another existing session."""
        sanitized_name = self._sanitize_name(name)
        if sanitized_name not in self.index.sessions:
            logger.warning(f"Session not found: {sanitized_name}")
            return False

        self.index.current_session = sanitized_name
        self.index.sessions[sanitized_name].last_accessed = next_timestamp()
        self._save_index()
        logger.info(f"Switched to session: {sanitized_name}")
        return True

    def delete_session(self, name: str) -> bool:
        """Delete a session.

        Returns:
            False if not found or if it is the current session.
        """
        sanitized_name = self._sanitize_name(name)
        if sanitized_name not in self.index.sessions:
            logger.warning(f"Session not found: {sanitized_name}")
            return False
        if sanitized_name == self.index.current_session:
            logger.warning(f"Refusing to delete current session: {sanitized_name}")
            return False

        self._get_session_path(sanitized_name).unlink(missing_ok=True)
        del self.index.sessions[sanitized_name]
        self._save_index()
        logger.info(f"Deleted session: {sanitized_name}")
        return True

    def rename_session(self, old_name: str, new_name: str) -> bool:
        """Rename a session, carrying the current-session pointer along.

        Returns:
            True if renamed, False otherwise.
        """
        old_sanitized = self._sanitize_name(old_name)
        new_sanitized = self._sanitize_name(new_name)

        if old_sanitized not in self.index.sessions:
            logger.warning(f"Session not found: {old_sanitized}")
            return False
        if not self._is_valid_name(new_sanitized) or new_sanitized in self.index.sessions:
            logger.warning(f"Session already exists or name invalid: {new_sanitized}")
            return False

        old_path = self._get_session_path(old_sanitized)
        metadata = self.index.sessions[old_sanitized].model_copy(update={"name": new_sanitized})
        if old_path.exists():
            try:
                data = SessionData.model_validate_json(old_path.read_text(encoding="utf-8"))
            except ValueError as e:
                logger.error(f"Failed to rename session, unreadable file {old_path}: {e}")
                return False
            data.metadata = metadata
            self._write_atomic(self._get_session_path(new_sanitized), data.model_dump_json(indent=2))
            old_path.unlink()

        del self.index.sessions[old_sanitized]
        self.index.sessions[new_sanitized] = metadata
        if self.index.current_session == old_sanitized:
            self.index.current_session = new_sanitized
        self._save_index()
        logger.info(f"Renamed session: {old_sanitized} -> {new_sanitized}")
        return True

    def update_session_description(self, name: str, description: Optional[str]) -> bool:
        sanitized_name = self._sanitize_name(name)
        metadata = self.index.sessions.get(sanitized_name)
        if metadata is None:
            return False

        metadata.description = description or None
        session_path = self._get_session_path(sanitized_name)
        if session_path.exists():
            try:
                data = SessionData.model_validate_json(session_path.read_text(encoding="utf-8"))
            except ValueError as e:
                logger.warning(f"Could not update description in {session_path}: {e}")
            else:
                data.metadata = metadata
                self._write_atomic(session_path, data.model_dump_json(indent=2))
        self._save_index()
        return True
