"""Hot-reload-aware store. Opt-in; import only if you need hot-reload support."""

import logging

from refrax.store import Store

logger = logging.getLogger("refrax.hot_reload")


class HotReloadStore(Store):
    """Store whose handlers and subscriptions can be redefined in place.

    Same API as Store. Adds reconcile(setup_fn):
    - setup_fn(store) re-registers events and subscriptions (last write wins)
    - live subscriptions are rebuilt against their new definitions
    - state, mounted components and untouched definitions are preserved
    - exception safety: a failing setup_fn is logged, every registration it
      made is rolled back, and the store keeps running
    """

    def reconcile(self, setup_fn) -> bool:
        """Safe reconciliation: catches exceptions, logs, never crashes."""
        events_before = self._events.snapshot()
        subs_before = self._graph.snapshot()
        try:
            with self.transaction():
                try:
                    setup_fn(self)
                except Exception:
                    self._events.restore(events_before)
                    self._renders.invalidate(self._graph.restore(subs_before))
                    raise
        except Exception:
            logger.exception("Failed to re-register handlers during reconcile")
            return False
        logger.info(
            "Reconciled: %d->%d events, %d->%d subscriptions",
            len(events_before), len(self._events),
            len(subs_before), len(self._arena.definitions),
        )
        return True
