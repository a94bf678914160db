"""
Unit tests for the realtime suspension alert classifier.
"""

from unittest.mock import Mock

import pytest
import requests

from tw_holidays.config import Config
from tw_holidays.error_handler import RemoteFeedError, get_error_handler
from tw_holidays.models import AlertEntry, AlertSummary
from tw_holidays.realtime_alerts import RealtimeAlertClassifier


def entry(text):
    return AlertEntry(id='1', title='停班停課通知', updated='2024-07-24T20:00:00+08:00',
                      summary=AlertSummary(text=text))


class TestIsFullCityClosure:

    def setup_method(self):
        self.classifier = RealtimeAlertClassifier(session=Mock())

    @pytest.mark.parametrize('text', [
        '[停班停課通知]臺北市:今天停止上班',
        '[停班停課通知]台北市:今天停止上班',
        '[停班停課通知]臺北市：今天停止上班',
        '[停班停課通知]台北市：今天停止上班',
    ])
    def test_full_city_notice(self, text):
        assert self.classifier.is_full_city_closure(entry(text))

    def test_district_notice_does_not_match(self):
        assert not self.classifier.is_full_city_closure(entry('[停班停課通知]臺北市北投區:今天停止上班'))

    def test_city_mentioned_outside_header_does_not_match(self):
        text = '[停班停課通知]基隆市:今天停止上班，台北市正常上班上課'
        assert not self.classifier.is_full_city_closure(entry(text))

    def test_other_city_does_not_match(self):
        assert not self.classifier.is_full_city_closure(entry('[停班停課通知]新北市:今天停止上班'))

    @pytest.mark.parametrize('alert', [
        AlertEntry(id='1'),
        AlertEntry(id='1', summary=AlertSummary()),
        AlertEntry(id='1', summary=AlertSummary(text='')),
    ])
    def test_missing_summary_does_not_match(self, alert):
        assert not self.classifier.is_full_city_closure(alert)

    def test_configured_city_names(self):
        classifier = RealtimeAlertClassifier(city_names=['高雄市'], session=Mock())

        assert classifier.is_full_city_closure(entry('[停班停課通知]高雄市:今天停止上班'))
        assert not classifier.is_full_city_closure(entry('[停班停課通知]臺北市:今天停止上班'))

    def test_single_city_name_string(self):
        classifier = RealtimeAlertClassifier(city_names='臺北市', session=Mock())

        assert classifier.city_names == ('臺北市',)
        assert classifier.is_full_city_closure(entry('[停班停課通知]臺北市:今天停止上班'))
        assert not classifier.is_full_city_closure(entry('[停班停課通知]新北市:今天停止上班'))


class TestFetchFeed:

    def test_entries_are_deserialized(self, sample_alert_feed, json_session):
        classifier = RealtimeAlertClassifier(session=json_session(sample_alert_feed))

        entries = classifier.fetch_feed()

        assert [e.id for e in entries] == ['CWB-001', 'CWB-002', 'CWB-003', 'CWB-004', 'CWB-005']
        assert entries[0].summary_text == '[停班停課通知]臺北市:明天停止上班、停止上課。'
        assert entries[3].summary is None

    def test_timeouts_passed_as_tuple(self, sample_alert_feed, json_session):
        session = json_session(sample_alert_feed)
        classifier = RealtimeAlertClassifier(connect_timeout=3, read_timeout=7, session=session)

        classifier.fetch_feed()

        _, kwargs = session.get.call_args
        assert kwargs['timeout'] == (3, 7)

    def test_single_entry_object(self, json_session):
        payload = {"entry": {"id": "X", "summary": {"#text": "[停班停課通知]臺北市:停止上課"}}}
        classifier = RealtimeAlertClassifier(session=json_session(payload))

        entries = classifier.fetch_feed()

        assert len(entries) == 1
        assert entries[0].summary_text == '[停班停課通知]臺北市:停止上課'

    def test_feed_without_entries(self, json_session):
        classifier = RealtimeAlertClassifier(session=json_session({"title": "停班停課"}))

        assert classifier.fetch_feed() == []

    def test_network_error_raises_remote_feed_error(self):
        session = Mock()
        session.get.side_effect = requests.exceptions.ConnectTimeout("timed out")

        with pytest.raises(RemoteFeedError):
            RealtimeAlertClassifier(session=session).fetch_feed()

    def test_http_error_raises_remote_feed_error(self, json_session):
        session = json_session({})
        session.get.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError("503")

        with pytest.raises(RemoteFeedError):
            RealtimeAlertClassifier(session=session).fetch_feed()

    def test_invalid_json_raises_remote_feed_error(self, json_session):
        session = json_session(None)
        session.get.return_value.json.side_effect = ValueError("Expecting value")

        with pytest.raises(RemoteFeedError):
            RealtimeAlertClassifier(session=session).fetch_feed()

    @pytest.mark.parametrize('payload', [[1, 2], {"entry": "oops"}, {"entry": [1]}])
    def test_unexpected_shape_raises_remote_feed_error(self, payload, json_session):
        with pytest.raises(RemoteFeedError):
            RealtimeAlertClassifier(session=json_session(payload)).fetch_feed()

    def test_malformed_url_raises_remote_feed_error(self):
        session = Mock()

        with pytest.raises(RemoteFeedError):
            RealtimeAlertClassifier(feed_url='ftp://example.com/feed', session=session).fetch_feed()

        session.get.assert_not_called()


class TestGetRealtimeAlerts:
    """Test cases for the never-failing realtime read path."""

    def test_filters_in_feed_order(self, sample_alert_feed, json_session):
        classifier = RealtimeAlertClassifier(session=json_session(sample_alert_feed))

        alerts = classifier.get_realtime_alerts()

        assert [a.id for a in alerts] == ['CWB-001', 'CWB-005']

    def test_error_yields_empty_list(self):
        session = Mock()
        session.get.side_effect = requests.exceptions.ConnectionError("unreachable")

        assert RealtimeAlertClassifier(session=session).get_realtime_alerts() == []

    def test_repeated_failures_are_not_accumulated(self):
        session = Mock()
        session.get.side_effect = requests.exceptions.ConnectionError("unreachable")
        classifier = RealtimeAlertClassifier(session=session, cache_ttl=0)
        handler = get_error_handler()
        monitor = classifier.logging_manager.performance_monitor
        handler_state, monitor_state = dict(vars(handler)), dict(vars(monitor))

        for _ in range(300):
            assert classifier.get_realtime_alerts() == []

        assert session.get.call_count == 300
        assert vars(handler) == handler_state
        assert vars(monitor) == monitor_state

    def test_successful_result_is_cached(self, sample_alert_feed, json_session):
        session = json_session(sample_alert_feed)
        classifier = RealtimeAlertClassifier(cache_ttl=60, session=session)

        first = classifier.get_realtime_alerts()
        second = classifier.get_realtime_alerts()

        assert first == second
        assert session.get.call_count == 1

    def test_cache_expires_after_ttl(self, sample_alert_feed, json_session):
        session = json_session(sample_alert_feed)
        classifier = RealtimeAlertClassifier(cache_ttl=60, session=session)

        classifier.get_realtime_alerts()
        fetched_at, alerts = classifier._cached
        classifier._cached = (fetched_at - 61, alerts)
        classifier.get_realtime_alerts()

        assert session.get.call_count == 2

    def test_error_result_is_not_cached(self, sample_alert_feed, json_session):
        session = json_session(sample_alert_feed)
        good_response = session.get.return_value
        session.get.side_effect = [requests.exceptions.ReadTimeout("slow"), good_response]
        classifier = RealtimeAlertClassifier(cache_ttl=60, session=session)

        assert classifier.get_realtime_alerts() == []
        assert [a.id for a in classifier.get_realtime_alerts()] == ['CWB-001', 'CWB-005']

    def test_clear_cache(self, sample_alert_feed, json_session):
        session = json_session(sample_alert_feed)
        classifier = RealtimeAlertClassifier(cache_ttl=60, session=session)

        classifier.get_realtime_alerts()
        classifier.clear_cache()
        classifier.get_realtime_alerts()

        assert session.get.call_count == 2

    def test_zero_ttl_disables_cache(self, sample_alert_feed, json_session):
        session = json_session(sample_alert_feed)
        classifier = RealtimeAlertClassifier(cache_ttl=0, session=session)

        classifier.get_realtime_alerts()
        classifier.get_realtime_alerts()

        assert session.get.call_count == 2

    def test_from_config(self, temp_dir):
        config = Config(str(temp_dir / 'missing.json'))
        config.set('realtime.city_names', ['高雄市'])
        config.set('realtime.cache_ttl', 5)

        classifier = RealtimeAlertClassifier.from_config(config, session=Mock())

        assert classifier.feed_url == 'https://alerts.ncdr.nat.gov.tw/JSONAtomFeed.ashx?AlertType=33'
        assert classifier.city_names == ('高雄市',)
        assert classifier.cache_ttl == 5
