"""Session binding for proceed contexts and offered authenticators.

The binder keeps per-session flow state in a caller-supplied mapping (for
example a web framework's per-user storage). The flow is strictly sequential
per session, so no locking is done here.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from idxauth.auth.catalog import factors_of, resolve
from idxauth.auth.errors import MissingProceedContextError, StateIntegrityError

if TYPE_CHECKING:
    from collections.abc import MutableMapping, Sequence

    from idxauth.auth.models import Authenticator, Factor, ProceedContext

logger = logging.getLogger(__name__)

_CONTEXT_KEY = "proceed_context"
_AUTHENTICATORS_KEY = "authenticators"


class SessionBinder:
    """Stores flow state per session key.

    Implements SessionBinderProtocol. ``store`` maps a session key to that
    session's own dict; a fresh dict is used when none is given.
    """

    def __init__(self, store: MutableMapping[str, dict[str, Any]] | None = None) -> None:
        self._store: MutableMapping[str, dict[str, Any]] = (
            store if store is not None else {}
        )

    def _session(self, session_key: str) -> dict[str, Any]:
        return self._store.setdefault(session_key, {})

    def bind(self, session_key: str, context: ProceedContext | None) -> None:
        """Bind ``context`` as the latest for the session.

        Binding None releases the context and any bound authenticators; that
        is what callers do when the flow reaches a terminal state.
        """
        session = self._session(session_key)
        if context is None:
            session.pop(_CONTEXT_KEY, None)
            session.pop(_AUTHENTICATORS_KEY, None)
            logger.debug("Released proceed context for session %s", session_key)
            return
        session[_CONTEXT_KEY] = context

    def retrieve(self, session_key: str) -> ProceedContext:
        """Return the most recently bound context.

        Raises:
            MissingProceedContextError: If nothing is bound for the session.
        """
        context = self._store.get(session_key, {}).get(_CONTEXT_KEY)
        if context is None:
            msg = f"No proceed context bound for session {session_key}"
            raise MissingProceedContextError(msg)
        return context

    def bind_authenticators(
        self, session_key: str, authenticators: Sequence[Authenticator]
    ) -> None:
        self._session(session_key)[_AUTHENTICATORS_KEY] = list(authenticators)

    def retrieve_authenticators(self, session_key: str) -> list[Authenticator]:
        """Return the bound authenticators.

        Raises:
            StateIntegrityError: If no authenticators are bound for the session.
        """
        authenticators = self._store.get(session_key, {}).get(_AUTHENTICATORS_KEY)
        if authenticators is None:
            msg = f"No authenticators bound for session {session_key}"
            raise StateIntegrityError(msg)
        return list(authenticators)

    def remember_factors(
        self, session_key: str, authenticators: Sequence[Authenticator]
    ) -> list[str]:
        """Bind ``authenticators`` and return their factor methods for display."""
        methods = factors_of(authenticators)
        self.bind_authenticators(session_key, authenticators)
        return methods

    def factor_for(self, session_key: str, method: str) -> Factor:
        """Resolve a user's factor choice against the bound authenticators."""
        return resolve(method, self.retrieve_authenticators(session_key))

    def clear(self, session_key: str) -> None:
        """Drop everything held for the session."""
        self._store.pop(session_key, None)
