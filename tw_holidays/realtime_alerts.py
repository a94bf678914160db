"""Realtime class/work suspension alerts.

從國家災害防救科技中心 (NCDR) 的即時警報 JSON feed 取得停班停課通知，
並篩選出「全市」停班停課的項目。

全市 / 行政區的判斷依賴 feed 的書寫慣例:
- "[停班停課通知]臺北市:今天停止上班"        -> 全市
- "[停班停課通知]臺北市北投區:今天停止上班"  -> 行政區 (市名與冒號之間夾有區名)
"""

import logging
import time
from typing import Any, Iterable, List, Optional, Tuple

import requests

from .config import Config
from .error_handler import RemoteFeedError, ValidationError, handle_error
from .logging_config import get_logging_manager
from .models import AlertEntry
from .security import NetworkSecurityManager, validate_url_input

logger = logging.getLogger(__name__)

DEFAULT_FEED_URL = "https://alerts.ncdr.nat.gov.tw/JSONAtomFeed.ashx?AlertType=33"
DEFAULT_CITY_NAMES = ("臺北市", "台北市")
CITY_HEADER_SEPARATORS = (":", "：")


class RealtimeAlertClassifier:
    """Fetches the alert feed and keeps only full-city closure notices."""

    def __init__(self,
                 feed_url: str = DEFAULT_FEED_URL,
                 city_names: Iterable[str] = DEFAULT_CITY_NAMES,
                 connect_timeout: float = 10,
                 read_timeout: float = 30,
                 cache_ttl: float = 60,
                 session: Optional[requests.Session] = None):
        """
        Args:
            feed_url: 即時警報 feed 的 URL
            city_names: 同一城市的所有寫法 (例如 臺北市 / 台北市)
            connect_timeout: 連線逾時 (秒)
            read_timeout: 讀取逾時 (秒)
            cache_ttl: 成功結果的快取秒數，0 表示不快取
            session: 預先建立的 HTTP session (未指定時自動建立)
        """
        self.feed_url = feed_url
        # a single spelling may be given as a plain string
        self.city_names = (city_names,) if isinstance(city_names, str) else tuple(city_names)
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.cache_ttl = cache_ttl
        self._session = session

        self._cached: Optional[Tuple[float, List[AlertEntry]]] = None
        self.logging_manager = get_logging_manager()

    @classmethod
    def from_config(cls, config: Config, session: Optional[requests.Session] = None) -> 'RealtimeAlertClassifier':
        realtime_config = config.get_realtime_config()
        return cls(
            feed_url=realtime_config.get('feed_url', DEFAULT_FEED_URL),
            city_names=realtime_config.get('city_names', DEFAULT_CITY_NAMES),
            connect_timeout=realtime_config.get('connect_timeout', 10),
            read_timeout=realtime_config.get('read_timeout', 30),
            cache_ttl=realtime_config.get('cache_ttl', 60),
            session=session,
        )

    def is_full_city_closure(self, entry: AlertEntry) -> bool:
        """True when the summary announces a closure for the whole city.

        The city name must appear, and at least one spelling must be directly
        followed by an ASCII or full-width colon.
        """
        text = entry.summary_text
        if not text:
            return False

        if not any(city in text for city in self.city_names):
            return False

        return any(
            city + separator in text
            for city in self.city_names
            for separator in CITY_HEADER_SEPARATORS
        )

    def classify(self, entries: Iterable[AlertEntry]) -> List[AlertEntry]:
        """Filter entries, preserving feed order."""
        return [entry for entry in entries if self.is_full_city_closure(entry)]

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = NetworkSecurityManager.create_secure_session()
        return self._session

    def fetch_feed(self) -> List[AlertEntry]:
        """Download and deserialize every entry of the feed.

        Raises:
            RemoteFeedError: network failure, HTTP error or an unreadable payload
        """
        try:
            validated_url = validate_url_input(self.feed_url)
        except ValidationError as e:
            raise RemoteFeedError(f"即時警報 URL 格式錯誤: {self.feed_url}", url=self.feed_url, cause=e) from e

        try:
            with self.logging_manager.monitor_operation("fetch_realtime_feed", {"url": validated_url}):
                response = self._get_session().get(
                    validated_url,
                    timeout=(self.connect_timeout, self.read_timeout)
                )
                response.raise_for_status()
                payload = response.json()
        except requests.exceptions.RequestException as e:
            raise RemoteFeedError(f"查詢即時停班停課資訊失敗: {e}", url=validated_url, cause=e) from e
        except ValueError as e:
            raise RemoteFeedError(f"即時警報回應不是有效的 JSON: {e}", url=validated_url, cause=e) from e

        try:
            return [AlertEntry.from_dict(item) for item in self._extract_entries(payload)]
        except (AttributeError, TypeError) as e:
            raise RemoteFeedError(f"即時警報回應格式錯誤: {e}", url=validated_url, cause=e) from e

    @staticmethod
    def _extract_entries(payload: Any) -> List[Any]:
        if payload is None:
            return []
        if not isinstance(payload, dict):
            raise TypeError(f"feed must be an object, got {type(payload).__name__}")

        entries = payload.get('entry')
        if entries is None:
            return []
        # a feed with a single entry may render it as an object
        if isinstance(entries, dict):
            return [entries]
        if not isinstance(entries, list):
            raise TypeError(f"entry must be a list, got {type(entries).__name__}")
        return entries

    def get_realtime_alerts(self) -> List[AlertEntry]:
        """Current full-city closure notices; never raises.

        A failed fetch is reported and yields an empty list that is not cached,
        so the next call tries the feed again.
        """
        now = time.monotonic()
        if self._cached is not None:
            fetched_at, alerts = self._cached
            if now - fetched_at < self.cache_ttl:
                logger.debug("使用快取的即時警報")
                return list(alerts)

        try:
            entries = self.fetch_feed()
        except RemoteFeedError as e:
            handle_error(e, {"operation": "get_realtime_alerts"})
            self._cached = None
            return []

        alerts = self.classify(entries)
        logger.info(f"即時警報: 共 {len(entries)} 筆, 全市停班停課 {len(alerts)} 筆")

        if self.cache_ttl > 0:
            self._cached = (now, alerts)
        return list(alerts)

    def clear_cache(self):
        self._cached = None
