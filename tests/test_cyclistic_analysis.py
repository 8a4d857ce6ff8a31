"""
Tests for the member vs casual aggregations and the end-to-end pipeline.

Dates used: 2020-01-04 was a Saturday, 2020-01-05 a Sunday, 2020-01-06 a Monday.
"""

import json

import pandas as pd
import pytest

from cyclistic_analysis import (
    avg_ride_length_by_rider_type,
    ride_length_distribution,
    rides_by_day_of_week,
    rides_by_hour,
    rides_by_rider_type,
    run_pipeline,
    write_findings_report,
    top_start_stations,
)
from trip_normalizer import CANONICAL_COLUMNS, merge_and_enrich


_BASE = {
    'ride_id': 'R0',
    'rideable_type': 'docked_bike',
    'start_station_id': '1',
    'end_station_id': '2',
    'end_station_name': 'Clark St & Leland Ave',
}

_ROWS = [
    # rider,   start,                  end,                   station
    ('member', '2020-01-05 08:00:00', '2020-01-05 08:10:00', 'Canal St & Adams St'),
    ('member', '2020-01-06 08:30:00', '2020-01-06 08:35:00', 'Canal St & Adams St'),
    ('member', '2020-01-06 17:00:00', '2020-01-06 17:20:00', 'Clinton St & Madison St'),
    ('casual', '2020-01-04 14:00:00', '2020-01-04 15:00:00', 'Streeter Dr & Grand Ave'),
    ('casual', '2020-01-04 14:10:00', '2020-01-04 14:09:50', 'Streeter Dr & Grand Ave'),
    ('guest',  '2020-01-05 09:00:00', '2020-01-05 09:05:00', 'Canal St & Adams St'),
    ('member', 'not-a-date',          '2020-01-06 09:00:00', 'Clinton St & Madison St'),
]


@pytest.fixture
def trips():
    frame = pd.DataFrame([
        {**_BASE, 'ride_id': f'R{i}', 'member_casual': rider, 'started_at': start,
         'ended_at': end, 'start_station_name': station}
        for i, (rider, start, end, station) in enumerate(_ROWS)
    ])[CANONICAL_COLUMNS]
    return merge_and_enrich(frame.iloc[0:0], frame)


def _value(table, rider, column, **keys):
    mask = table['member_casual'] == rider
    for key, val in keys.items():
        mask &= table[key] == val
    return table.loc[mask, column].iloc[0]


# ---------------------------------------------------------------------------
# Aggregations
# ---------------------------------------------------------------------------

class TestRidesByRiderType:
    def test_counts_exclude_unknown_riders(self, trips):
        totals = rides_by_rider_type(trips)
        assert _value(totals, 'member', 'total_rides') == 4
        assert _value(totals, 'casual', 'total_rides') == 2
        assert totals['total_rides'].sum() == 6

    def test_absent_segment_reported_as_zero(self, trips):
        members_only = trips[trips['member_casual'] == 'member']
        totals = rides_by_rider_type(members_only)
        assert list(totals['member_casual'].astype(str)) == ['member', 'casual']
        assert _value(totals, 'casual', 'total_rides') == 0


class TestAvgRideLength:
    def test_mean_skips_missing_and_keeps_negative(self, trips):
        avg = avg_ride_length_by_rider_type(trips)
        assert _value(avg, 'member', 'avg_ride_length') == pytest.approx(700.0)
        assert _value(avg, 'casual', 'avg_ride_length') == pytest.approx((3600 - 10) / 2)


class TestRidesByDayOfWeek:
    def test_full_grid(self, trips):
        by_day = rides_by_day_of_week(trips)
        assert len(by_day) == 14
        assert list(by_day.columns) == ['member_casual', 'day_of_week', 'num_rides']

    def test_counts(self, trips):
        by_day = rides_by_day_of_week(trips)
        assert _value(by_day, 'member', 'num_rides', day_of_week=1) == 1
        assert _value(by_day, 'member', 'num_rides', day_of_week=2) == 2
        assert _value(by_day, 'casual', 'num_rides', day_of_week=7) == 2
        assert _value(by_day, 'casual', 'num_rides', day_of_week=1) == 0

    def test_unparsed_rows_not_counted(self, trips):
        by_day = rides_by_day_of_week(trips)
        assert by_day.loc[by_day['member_casual'] == 'member', 'num_rides'].sum() == 3


class TestRidesByHour:
    def test_counts(self, trips):
        by_hour = rides_by_hour(trips)
        assert len(by_hour) == 48
        assert _value(by_hour, 'member', 'num_rides', hour=8) == 2
        assert _value(by_hour, 'member', 'num_rides', hour=17) == 1
        assert _value(by_hour, 'casual', 'num_rides', hour=14) == 2
        assert by_hour['num_rides'].sum() == 5

    def test_unparsed_end_not_counted(self):
        frame = pd.DataFrame([
            {**_BASE, 'member_casual': 'member', 'started_at': '2020-01-06 08:00:00',
             'ended_at': '2020-01-06 08:10:00', 'start_station_name': 'Canal St & Adams St'},
            {**_BASE, 'member_casual': 'member', 'started_at': '2020-01-06 08:30:00',
             'ended_at': 'not-a-date', 'start_station_name': 'Canal St & Adams St'},
        ])[CANONICAL_COLUMNS]
        trips = merge_and_enrich(frame.iloc[0:0], frame)
        by_hour = rides_by_hour(trips)
        by_day = rides_by_day_of_week(trips)
        assert _value(by_hour, 'member', 'num_rides', hour=8) == 1
        assert by_hour['num_rides'].sum() == by_day['num_rides'].sum() == 1


class TestTopStartStations:
    def test_ties_broken_alphabetically(self, trips):
        top = top_start_stations(trips, n=1)
        assert len(top) == 2
        assert _value(top, 'member', 'start_station_name') == 'Canal St & Adams St'
        assert _value(top, 'casual', 'start_station_name') == 'Streeter Dr & Grand Ave'

    def test_busiest_first_per_segment(self, trips):
        top = top_start_stations(trips)
        assert list(top['member_casual'].astype(str)) == ['member', 'member', 'casual']
        assert list(top['num_rides']) == [2, 2, 2]

    def test_unknown_riders_excluded(self, trips):
        top = top_start_stations(trips)
        assert top['member_casual'].notna().all()


class TestRideLengthDistribution:
    def test_minutes_clipped(self, trips):
        dist = ride_length_distribution(trips, max_minutes=30)
        assert len(dist) == 5
        casual = sorted(dist.loc[dist['member_casual'] == 'casual', 'ride_length_mins'])
        assert casual == [0, 30]
        member = sorted(dist.loc[dist['member_casual'] == 'member', 'ride_length_mins'])
        assert member == [5, 10, 20]


# ---------------------------------------------------------------------------
# End-to-end pipeline
# ---------------------------------------------------------------------------

@pytest.fixture
def source_csvs(tmp_path):
    legacy = pd.DataFrame({
        'trip_id': [21742443, 21742444, 21742445],
        'start_time': ['2019-01-01 00:04:37', '2019-01-05 13:00:00', '2019-01-06 09:00:00'],
        'end_time': ['2019-01-01 00:11:07', '2019-01-05 13:45:01', '2019-01-06 09:12:00'],
        'bikeid': [2167, 4386, 1524],
        'tripduration': ['390.0', '2700.0', '720.0'],
        'from_station_id': [199, 44, 15],
        'from_station_name': ['Wabash Ave & Grand Ave', 'State St & Randolph St', 'Racine Ave & 18th St'],
        'to_station_id': [84, 624, 644],
        'to_station_name': ['Milwaukee Ave & Grand Ave', 'Dearborn St & Van Buren St', 'Western Ave & Fillmore St'],
        'usertype': ['Subscriber', 'Customer', 'Dependent'],
        'gender': ['Male', 'Female', None],
        'birthyear': [1989, 1990, None],
    })
    current = pd.DataFrame({
        'ride_id': ['EACB19130B0CDA4A', '8FED874C809DC021', '789F3C21E472CA96'],
        'rideable_type': ['docked_bike'] * 3,
        'started_at': ['2020-01-21 20:06:59', '2020-01-25 14:22:39', 'not-a-date'],
        'ended_at': ['2020-01-21 20:14:31', '2020-01-25 14:22:00', '2020-01-09 19:30:39'],
        'start_station_name': ['Western Ave & Leland Ave', 'Clark St & Montrose Ave', 'Broadway & Belmont Ave'],
        'start_station_id': [239, 234, 296],
        'end_station_name': ['Clark St & Leland Ave', 'Clark St & Leland Ave', 'Wilton Ave & Belmont Ave'],
        'end_station_id': [326.0, 318.0, None],
        'start_lat': [41.9665, 41.9616, 41.9401],
        'start_lng': [-87.6884, -87.6660, -87.6455],
        'end_lat': [41.9671, 41.9542, 41.9402],
        'end_lng': [-87.6674, -87.6644, -87.6530],
        'member_casual': ['member', 'casual', 'member'],
    })
    legacy_path = tmp_path / 'Divvy_Trips_2019_Q1.csv'
    current_path = tmp_path / 'Divvy_Trips_2020_Q1.csv'
    legacy.to_csv(legacy_path, index=False)
    current.to_csv(current_path, index=False)
    return legacy_path, current_path


class TestRunPipeline:
    def test_writes_all_outputs(self, source_csvs, tmp_path):
        out = tmp_path / 'outputs'
        run_pipeline(*source_csvs, output_dir=str(out))
        expected = [
            '01_total_rides.png', '02_avg_ride_length.png', '03_rides_by_day_of_week.png',
            '04_rides_by_hour.png', '05_top_start_stations.png', '06_ride_length_distribution.png',
            'cleaning_summary.json', 'eda_results.json', 'findings.md',
        ]
        for name in expected:
            assert (out / name).exists(), name

    def test_keeps_every_row(self, source_csvs, tmp_path):
        df, _ = run_pipeline(*source_csvs, output_dir=str(tmp_path / 'outputs'))
        assert len(df) == 6
        assert list(df['ride_id'][:3]) == ['21742443', '21742444', '21742445']

    def test_cleaning_summary_counts(self, source_csvs, tmp_path):
        out = tmp_path / 'outputs'
        run_pipeline(*source_csvs, output_dir=str(out))
        summary = json.loads((out / 'cleaning_summary.json').read_text())
        assert summary['legacy_records'] == 3
        assert summary['current_records'] == 3
        assert summary['combined_records'] == 6
        assert summary['unparseable_timestamps'] == 1
        assert summary['unknown_rider_type'] == 1
        assert summary['non_positive_ride_length'] == 1
        assert summary['date_range'] == '2019-01-01 to 2020-01-25'

    def test_eda_results(self, source_csvs, tmp_path):
        _, eda_results = run_pipeline(*source_csvs, output_dir=str(tmp_path / 'outputs'))
        assert eda_results['total_rides'] == {'member': 3, 'casual': 2}
        assert eda_results['member_share_pct'] == 60.0
        assert eda_results['avg_ride_length'] == {'member': '00:07:01', 'casual': '00:22:11'}
        assert eda_results['busiest_day']['casual'] == 'Sat'

    def test_findings_report_has_numbers(self, source_csvs, tmp_path):
        out = tmp_path / 'outputs'
        run_pipeline(*source_csvs, output_dir=str(out))
        report = (out / 'findings.md').read_text(encoding='utf-8')
        assert 'Members took 3 rides, casual riders 2 ' in report
        assert '## Recommendations' in report

    def test_missing_source_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            run_pipeline(str(tmp_path / 'missing_2019.csv'), str(tmp_path / 'missing_2020.csv'),
                         output_dir=str(tmp_path / 'outputs'))


class TestWriteFindingsReport:
    def test_empty_segment_shows_not_available(self, tmp_path):
        eda_results = {
            'total_rides': {'member': 2, 'casual': 0},
            'member_share_pct': 100.0,
            'avg_ride_length': {'member': '00:07:30', 'casual': None},
            'median_ride_length_mins': {'member': 7.5, 'casual': None},
            'peak_hour': {'member': 8, 'casual': None},
            'busiest_day': {'member': 'Mon', 'casual': None},
            'top_start_station': {'member': 'Canal St & Adams St', 'casual': None},
        }
        path = write_findings_report(eda_results, output_dir=str(tmp_path))
        report = open(path, encoding='utf-8').read()
        assert 'Peak hour: members 8:00, casual riders n/a.' in report
        assert 'Busiest day: members Mon, casual riders n/a.' in report
        assert 'members "Canal St & Adams St", casual riders n/a.' in report
        assert 'Median ride length: members 7.5 min, casual riders n/a.' in report
        assert 'None' not in report
