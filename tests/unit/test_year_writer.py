"""
Unit tests for year-partitioned JSON output.
"""

import json
import os
from unittest.mock import patch

import pytest

from tw_holidays.error_handler import PerYearWriteError
from tw_holidays.models import HolidayRecord
from tw_holidays.year_writer import (
    YEARS_INDEX_FILENAME, YearPartitionWriter, group_by_year, to_json_lf
)


def record(date, name='節日', note=None):
    return HolidayRecord(
        date=date,
        name=name,
        is_holiday=True,
        holiday_category='放假之紀念日及節日',
        description='',
        note=note,
    )


class TestGroupByYear:

    def test_grouping_is_a_partition_in_original_order(self):
        records = [record('20240101'), record('20250101'), record('20240210'), record('20250208')]

        grouped = group_by_year(records)

        assert list(grouped) == ['2024', '2025']
        assert [r.date for r in grouped['2024']] == ['20240101', '20240210']
        assert [r.date for r in grouped['2025']] == ['20250101', '20250208']

        regrouped = [r for group in grouped.values() for r in group]
        assert sorted(regrouped, key=records.index) == records

    def test_empty_input(self):
        assert group_by_year([]) == {}


class TestToJsonLf:

    def test_trailing_single_lf(self):
        text = to_json_lf(['2025', '2024'])

        assert text.endswith(']\n')
        assert not text.endswith('\n\n')
        assert '\r' not in text

    def test_carriage_returns_in_values_are_escaped(self):
        text = to_json_lf([{'description': '第一行\r\n第二行'}])

        assert '\r' not in text
        assert json.loads(text)[0]['description'] == '第一行\r\n第二行'

    def test_non_ascii_is_kept(self):
        assert '國慶日' in to_json_lf({'name': '國慶日'})


class TestYearPartitionWriter:
    """Test cases for YearPartitionWriter."""

    def test_write_year_document(self, output_dir):
        writer = YearPartitionWriter(output_dir)

        path = writer.write_year('2024', [record('20241010', name='國慶日', note=None)])

        assert path == output_dir / '2024.json'
        raw = path.read_bytes()
        assert b'\r' not in raw
        assert raw.endswith(b'\n') and not raw.endswith(b'\n\n')

        document = json.loads(raw.decode('utf-8'))
        assert document == [{
            'date': '20241010',
            'year': '2024',
            'name': '國慶日',
            'isHoliday': True,
            'holidayCategory': '放假之紀念日及節日',
            'description': '',
            'note': None,
        }]

    def test_write_year_overwrites_existing_document(self, output_dir):
        writer = YearPartitionWriter(output_dir)
        writer.write_year('2024', [record('20240101'), record('20240102')])

        writer.write_year('2024', [record('20240101')])

        assert len(json.loads((output_dir / '2024.json').read_text(encoding='utf-8'))) == 1
        assert sorted(os.listdir(output_dir)) == ['2024.json']

    def test_write_years_reports_each_year(self, output_dir):
        writer = YearPartitionWriter(output_dir)
        grouped = group_by_year([record('20240101'), record('20250101')])

        report = writer.write_years(grouped)

        assert report.written_years == ['2024', '2025']
        assert report.failed_years == []
        assert (output_dir / '2024.json').is_file()
        assert (output_dir / '2025.json').is_file()

    def test_failing_year_does_not_stop_others(self, output_dir):
        writer = YearPartitionWriter(output_dir)
        grouped = group_by_year([record('20240101'), record('20250101'), record('20260101')])
        original = writer._write_json_lf

        def fail_for_2025(path, data):
            if path.name == '2025.json':
                raise OSError("disk full")
            return original(path, data)

        with patch.object(writer, '_write_json_lf', side_effect=fail_for_2025):
            report = writer.write_years(grouped)

        assert report.written_years == ['2024', '2026']
        assert report.failed_years == ['2025']
        assert not (output_dir / '2025.json').exists()

    def test_write_year_raises_per_year_error(self, output_dir):
        writer = YearPartitionWriter(output_dir)

        with patch.object(writer, '_write_json_lf', side_effect=OSError("read-only")):
            with pytest.raises(PerYearWriteError) as exc_info:
                writer.write_year('2024', [record('20240101')])

        assert exc_info.value.context_data['year'] == '2024'
        assert isinstance(exc_info.value.cause, OSError)

    def test_years_index_is_union_sorted_descending(self, output_dir):
        output_dir.mkdir(parents=True)
        (output_dir / '2019.json').write_text('[]\n', encoding='utf-8')
        (output_dir / '2023.json').write_text('[]\n', encoding='utf-8')
        (output_dir / 'notes.json').write_text('[]\n', encoding='utf-8')
        (output_dir / '20240.json').write_text('[]\n', encoding='utf-8')

        writer = YearPartitionWriter(output_dir)
        years = writer.write_years_index(['2024', '2023', '2025'])

        assert years == ['2025', '2024', '2023', '2019']
        raw = (output_dir / YEARS_INDEX_FILENAME).read_bytes()
        assert json.loads(raw.decode('utf-8')) == years
        assert raw.endswith(b']\n')
        assert b'\r' not in raw

    def test_years_index_without_output_dir(self, output_dir):
        writer = YearPartitionWriter(output_dir)

        assert writer.write_years_index(['2024']) == ['2024']
        assert (output_dir / YEARS_INDEX_FILENAME).is_file()

    def test_list_existing_years_ignores_index_file(self, output_dir):
        writer = YearPartitionWriter(output_dir)
        writer.write_year('2024', [record('20240101')])
        writer.write_years_index(['2024'])

        assert writer.list_existing_years() == ['2024']

    def test_read_year_document_restores_records(self, output_dir):
        writer = YearPartitionWriter(output_dir)
        path = writer.write_year('2024', [record('20240217', name='', note='小年夜')])

        holidays = writer.read_year_document(path)

        assert holidays == [record('20240217', name='', note='小年夜')]

    def test_read_year_document_rejects_non_array(self, output_dir):
        output_dir.mkdir(parents=True)
        path = output_dir / '2024.json'
        path.write_text('{"date": "20240101"}', encoding='utf-8')

        with pytest.raises(ValueError):
            YearPartitionWriter(output_dir).read_year_document(path)
