"""Typed accessors over the secure store, one per concern."""

from typing import Optional

from reglo_client.storage.secure_store import SecureStore

TOKEN_KEY = "reglo_token"
COMPANY_KEY = "reglo_active_company_id"
STUDENT_KEY = "reglo_selected_student_id"
INSTRUCTOR_KEY = "reglo_selected_instructor_id"
PUSH_TOKEN_KEY = "reglo_push_token"
PUSH_INTENT_KEY = "reglo_push_intent"


def _set_or_delete(store: SecureStore, key: str, value: Optional[str]) -> None:
    if not value:
        store.delete_item(key)
        return
    store.set_item(key, value)


class AuthStorage:
    """Bearer token and active company id. Written only by the session coordinator."""

    def __init__(self, store: SecureStore) -> None:
        self._store = store

    def get_token(self) -> Optional[str]:
        return self._store.get_item(TOKEN_KEY)

    def set_token(self, token: Optional[str]) -> None:
        _set_or_delete(self._store, TOKEN_KEY, token)

    def get_active_company_id(self) -> Optional[str]:
        return self._store.get_item(COMPANY_KEY)

    def set_active_company_id(self, company_id: Optional[str]) -> None:
        _set_or_delete(self._store, COMPANY_KEY, company_id)

    def clear(self) -> None:
        self._store.delete_item(TOKEN_KEY)
        self._store.delete_item(COMPANY_KEY)


class SessionStorage:
    """Last selected student and instructor."""

    def __init__(self, store: SecureStore) -> None:
        self._store = store

    def get_selected_student_id(self) -> Optional[str]:
        return self._store.get_item(STUDENT_KEY)

    def set_selected_student_id(self, student_id: Optional[str]) -> None:
        _set_or_delete(self._store, STUDENT_KEY, student_id)

    def get_selected_instructor_id(self) -> Optional[str]:
        return self._store.get_item(INSTRUCTOR_KEY)

    def set_selected_instructor_id(self, instructor_id: Optional[str]) -> None:
        _set_or_delete(self._store, INSTRUCTOR_KEY, instructor_id)

    def clear(self) -> None:
        self._store.delete_item(STUDENT_KEY)
        self._store.delete_item(INSTRUCTOR_KEY)


class PushStorage:
    """Registered device push token and the single pending push intent."""

    def __init__(self, store: SecureStore) -> None:
        self._store = store

    def get_push_token(self) -> Optional[str]:
        return self._store.get_item(PUSH_TOKEN_KEY)

    def set_push_token(self, token: Optional[str]) -> None:
        _set_or_delete(self._store, PUSH_TOKEN_KEY, token)

    def save_pending_intent(self, intent: str) -> None:
        self._store.set_item(PUSH_INTENT_KEY, intent)

    def pop_pending_intent(self) -> Optional[str]:
        """Read and clear the pending intent in one step."""
        intent = self._store.get_item(PUSH_INTENT_KEY)
        if intent:
            self._store.delete_item(PUSH_INTENT_KEY)
        return intent
