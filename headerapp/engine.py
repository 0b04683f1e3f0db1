"""Resolve the extra response headers for a request URL on a site.

Each site's app secrets are parsed once into an ordered tuple of ``Rule`` and
kept in a ``HeaderRuleCache`` until the next configuration-changed event. The
first rule with a pattern matching the decoded URL wins.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Callable, Dict, List, Mapping, Optional, Pattern, TypeVar, Union
from urllib.parse import unquote_plus

from headerapp.cache import ABSENT, CacheEntry, HeaderRuleCache, SiteRuleSet
from headerapp.events import AppSecretSavedEvent
from headerapp.observability.metrics import (
    inc_cache_event,
    inc_resolution,
    inc_secret_fetch_failure,
)
from headerapp.parser import DefaultHeaderSecretsParser, HeaderSecretsParser, Rule
from headerapp.secrets_store import SecretStore
from headerapp.settings import APP_KEY, APP_PROP_NAME, SYSTEM_USER
from headerapp.telemetry.logging import ContextAdapter, bind

_log = logging.getLogger(__name__)

T = TypeVar("T")

Logger = Union[logging.Logger, ContextAdapter]


def _recover(label: str, fn: Callable[[], T], default: T, log: Logger = _log) -> T:
    """Run ``fn``; on any exception log it and return ``default``."""
    try:
        return fn()
    except Exception as exc:
        log.warning("%s failed, using default: %s", label, exc)
        return default


def decode_url(url: str) -> str:
    try:
        return unquote_plus(url, encoding="utf-8", errors="strict")
    except (UnicodeDecodeError, TypeError, ValueError):
        return url


@lru_cache(maxsize=1024)
def _compile(pattern: str) -> Optional[Pattern[str]]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return None


def pattern_matches(decoded_url: str, pattern: str) -> bool:
    """Case-insensitive regex search; invalid regexes match as plain substrings."""
    pattern = pattern.strip()
    if not pattern:
        return False
    compiled = _compile(pattern)
    if compiled is None:
        return pattern.lower() in decoded_url.lower()
    return compiled.search(decoded_url) is not None


def first_match(decoded_url: str, rules: SiteRuleSet) -> Optional[Rule]:
    for rule in rules:
        if any(pattern_matches(decoded_url, p) for p in rule.patterns):
            return rule
    return None


class HeaderResolutionEngine:
    """
    Per-site header resolution with a lazily filled rule cache.

    Also the subscriber for ``AppSecretSavedEvent``: any save anywhere clears
    the whole cache. Concurrent misses for one site may fetch and parse twice;
    the last published rule set wins, but a rule set loaded before a clear is
    handed to its caller without being cached.
    """

    def __init__(
        self,
        store: SecretStore,
        parser: Optional[HeaderSecretsParser] = None,
        *,
        app_key: str = APP_KEY,
        metadata_key: str = APP_PROP_NAME,
        acting_user: str = SYSTEM_USER,
        cache: Optional[HeaderRuleCache] = None,
    ) -> None:
        self._store = store
        self._parser: HeaderSecretsParser = parser or DefaultHeaderSecretsParser()
        self._app_key = app_key
        self._metadata_key = metadata_key
        self._acting_user = acting_user
        self._cache = cache if cache is not None else HeaderRuleCache()

    @property
    def key(self) -> str:
        return self._app_key

    @property
    def cache(self) -> HeaderRuleCache:
        return self._cache

    @property
    def store(self) -> SecretStore:
        return self._store

    # ------------------------------------------------------------------ public

    def resolve_headers(self, url: str, site: Optional[str]) -> Optional[Dict[str, str]]:
        """
        Return the headers of the first rule matching ``url`` on ``site``.

        ``None`` means apply nothing (no site, no configuration, or no rule
        matched). An empty dict is a matched rule without headers.
        """
        if not site or url is None:
            return None

        entry = self.rules_for(site)
        if entry is ABSENT:
            inc_resolution("absent")
            return None

        rule = first_match(decode_url(url), entry)  # type: ignore[arg-type]
        if rule is None:
            inc_resolution("unmatched")
            _log.debug("no header rule for %s on site %s", url, site)
            return None

        inc_resolution("matched")
        return dict(rule.headers)

    def rules_for(self, site: str) -> CacheEntry:
        entry = self._cache.lookup(site)
        if entry is not None:
            inc_cache_event("hit")
            return entry

        inc_cache_event("miss")
        generation = self._cache.generation
        return self._cache.populate(site, self._load(site), generation)

    def invalidate(self) -> int:
        dropped = self._cache.clear_all()
        inc_cache_event("invalidate")
        return dropped

    def notify(self, event: AppSecretSavedEvent) -> None:
        key = getattr(event, "key", None)
        _log.info("Cleaning local header cache for: %s", key, extra={"event_key": key})
        dropped = self.invalidate()
        _log.info(
            "Cleaned local header cache for: %s (%d sites)",
            key,
            dropped,
            extra={"event_key": key},
        )

    # ----------------------------------------------------------------- loading

    def _fetch(self, site: str, log: Logger) -> Optional[Mapping[str, str]]:
        def _get() -> Optional[Mapping[str, str]]:
            try:
                return self._store.get_secrets(self._app_key, site, self._acting_user)
            except Exception:
                inc_secret_fetch_failure()
                raise

        return _recover("secret fetch", _get, None, log)

    def _load(self, site: str) -> CacheEntry:
        log = bind(_log, site=site)
        secrets = self._fetch(site, log)
        if not secrets:
            log.debug("no header configuration")
            return ABSENT
        rules = self._parse_all(secrets, log)
        log.debug("parsed %d header rules", len(rules))
        return tuple(rules)

    def _parse_all(self, secrets: Mapping[str, str], log: Logger) -> List[Rule]:
        rules: List[Rule] = []
        for field_name, value in secrets.items():
            if str(field_name).lower() == self._metadata_key.lower():
                continue
            rule = _recover(
                f"parse of header field {field_name!r}",
                lambda f=field_name, v=value: self._parser.parse(  # type: ignore[misc]
                    str(f), "" if v is None else str(v)
                ),
                None,
                log,
            )
            if rule is not None:
                rules.append(rule)
        return rules

