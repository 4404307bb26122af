"""Indirect calls between domains that cannot import one another."""

from __future__ import annotations

import json
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable

from servicekit.logger import Logger


@dataclass(frozen=True)
class Data:
    """An event passed between domains."""

    domain: str
    action: str
    raw_params: bytes = b""

    def __str__(self) -> str:
        params = self.raw_params.decode("utf-8", "replace")
        return (
            f"Event{{Domain:{_quote(self.domain)}, "
            f"Action:{_quote(self.action)}, "
            f"RawParams:{_quote(params)}}}"
        )


Func = Callable[[Data], None]


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


class Delegate:
    """Holds the functions to call for each domain and action."""

    def __init__(self, log: Logger) -> None:
        self._log = log
        self._funcs: defaultdict[str, defaultdict[str, list[Func]]] = defaultdict(
            lambda: defaultdict(list)
        )

    def register(self, domain: str, action: str, fn: Func) -> None:
        """Add a function to be called for a domain and action."""
        self._funcs[domain][action].append(fn)

    def call(self, data: Data) -> None:
        """Run every function registered for the event's domain and action.

        Functions run in registration order; an exception from one is logged
        and does not stop the rest.
        """
        self._log.info(
            "delegate call",
            "status", "started",
            "domain", data.domain,
            "action", data.action,
            "params", data.raw_params,
        )
        try:
            actions = self._funcs.get(data.domain)
            funcs = actions.get(data.action, []) if actions is not None else []
            for fn in funcs:
                self._log.info("delegate call", "status", "sending")
                try:
                    fn(data)
                except Exception as exc:
                    self._log.error("delegate call", "err", exc)
        finally:
            self._log.info("delegate call", "status", "completed")