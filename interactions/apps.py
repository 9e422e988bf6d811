"""
interactions/apps.py

AppConfig for the interactions app.

Composition root for the ledger runtime: owns the process's CompletionBus
(handed to producers and ledgers alike) and, on first use, the
LedgerRegistry with its background scheduler.
"""

import threading

from django.apps import AppConfig


class InteractionsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "interactions"
    verbose_name = "Interactions"

    def ready(self):
        from django.contrib.auth.signals import user_logged_out

        from hireledger.bus import CompletionBus

        self.bus = CompletionBus()
        self._registry = None
        self._registry_lock = threading.Lock()

        user_logged_out.connect(
            self._release_ledger,
            dispatch_uid="interactions.release_ledger_on_logout",
        )

    @property
    def registry(self):
        # Built lazily so management commands and migrations never start
        # the background scheduler.
        with self._registry_lock:
            if self._registry is None:
                from interactions.sessions import LedgerRegistry

                self._registry = LedgerRegistry(self.bus)
            return self._registry

    def _release_ledger(self, sender, request=None, user=None, **kwargs):
        if self._registry is None or user is None:
            return
        from recruiters.services import get_recruiter_for_user

        recruiter = get_recruiter_for_user(user)
        if recruiter is not None:
            self._registry.release(recruiter.pk)
