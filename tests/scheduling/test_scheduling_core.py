"""
Tests for the scheduling building blocks (pure business logic).
These tests have no database or Flask dependencies - they test pure functions.
"""
from datetime import date, datetime

import pytest

from jobcal.brain.scheduling.calculator import (
    adjusted_labor_days,
    original_labor_days,
    reset_labor_days,
    round_up_to_half,
    span_days,
)
from jobcal.brain.scheduling.calendar import WorkCalendar, expand_range, is_weekend
from jobcal.brain.scheduling.config import SchedulingConfig
from jobcal.brain.scheduling.occupancy import OccupancyTracker
from jobcal.brain.scheduling.records import (
    BlockOutRecord,
    JobRecord,
    JobStatus,
    as_bool,
    as_labor_days,
    as_rank,
)
from jobcal.exceptions import CalendarExhaustedError

MON = date(2025, 3, 3)
TUE = date(2025, 3, 4)
WED = date(2025, 3, 5)
THU = date(2025, 3, 6)
FRI = date(2025, 3, 7)
SAT = date(2025, 3, 8)
SUN = date(2025, 3, 9)
NEXT_MON = date(2025, 3, 10)


def block(start, end=None, block_id="b1", description="Blocked"):
    return BlockOutRecord(block_out_id=block_id, start_date=start, end_date=end or start, description=description)


# ==============================================================================
# SPAN CALCULATOR TESTS
# ==============================================================================

class TestSpanCalculator:
    """Tests for labor estimate -> working-day span conversion."""

    @pytest.mark.parametrize("labor_days, expected", [
        (1.1, 2),
        (1.6, 2),
        (2.5, 3),
        (0, 1),
        (1, 1),
        (0.25, 1),
        (3.0, 3),
    ])
    def test_span_examples(self, labor_days, expected):
        """Test the documented span examples."""
        assert span_days(labor_days) == expected

    def test_missing_or_invalid_estimate_is_one_day(self):
        """Test that None, negative, NaN and junk strings fall back to one day."""
        for value in (None, -2, float('nan'), float('inf'), "abc", ""):
            assert span_days(value) == 1, f"{value!r} should span one day"

    def test_numeric_strings_are_accepted(self):
        """Test that persisted numeric strings are parsed."""
        assert span_days("2.2") == 3

    def test_round_up_to_half(self):
        """Test half-day rounding goes up, never to nearest."""
        assert round_up_to_half(1.1) == 1.5
        assert round_up_to_half(1.5) == 1.5
        assert round_up_to_half(1.6) == 2.0
        assert round_up_to_half(0) == 0.5

    def test_adjust_starts_from_current_span(self):
        """Test that +1 on a 1.25 day job gives 3 whole days."""
        assert adjusted_labor_days(1.25, 1) == 3

    def test_adjust_never_goes_below_one(self):
        """Test that a large negative delta floors at one day."""
        assert adjusted_labor_days(2, -5) == 1

    def test_adjust_missing_estimate_starts_at_one(self):
        """Test that a job without an estimate is adjusted from one day."""
        assert adjusted_labor_days(None, 1) == 2

    def test_original_kept_when_present(self):
        """Test that an existing original estimate is never overwritten."""
        assert original_labor_days(4, 2.5) == 2.5

    def test_original_defaults_to_current_span(self):
        """Test the original is captured as the current span on first adjust."""
        assert original_labor_days(1.25, None) == 2.0

    def test_reset_rounds_original(self):
        """Test that reset restores the rounded original estimate."""
        assert reset_labor_days(2.4) == 2
        assert reset_labor_days(0.4) == 1

    def test_reset_without_original_is_none(self):
        """Test that there is nothing to restore without an original."""
        assert reset_labor_days(None) is None
        assert reset_labor_days(0) is None


# ==============================================================================
# DAY CLASSIFIER TESTS
# ==============================================================================

class TestWorkCalendar:
    """Tests for working-day classification and forward scans."""

    def test_weekdays_are_working_days(self):
        """Test that a plain weekday is a working day."""
        calendar = WorkCalendar()
        assert calendar.is_working_day(MON) is True
        assert calendar.is_working_day(FRI) is True

    def test_weekends_follow_policy(self):
        """Test that weekend days depend on the job's flags."""
        calendar = WorkCalendar()
        assert calendar.is_working_day(SAT) is False
        assert calendar.is_working_day(SAT, allow_saturday=True) is True
        assert calendar.is_working_day(SUN, allow_saturday=True) is False
        assert calendar.is_working_day(SUN, allow_sunday=True) is True

    def test_block_out_overrides_weekend_permission(self):
        """Test that a blocked Saturday is never a working day."""
        calendar = WorkCalendar([block(SAT)])
        assert calendar.is_working_day(SAT, allow_saturday=True) is False

    def test_policy_free_classification(self):
        """Test is_blocked_day treats weekends and block-outs as blocked."""
        calendar = WorkCalendar([block(TUE)])
        assert calendar.is_blocked_day(SAT) is True
        assert calendar.is_blocked_day(TUE) is True
        assert calendar.is_blocked_day(WED) is False
        assert is_weekend(SUN) is True

    def test_next_working_day_is_identity_on_working_day(self):
        """Test that a working day is returned unchanged."""
        assert WorkCalendar().next_working_day(WED) == WED

    def test_next_working_day_skips_weekend(self):
        """Test that Saturday rolls forward to Monday."""
        assert WorkCalendar().next_working_day(SAT) == NEXT_MON

    def test_next_working_day_skips_block_out(self):
        """Test that a blocked range is skipped."""
        calendar = WorkCalendar([block(MON, WED)])
        assert calendar.next_working_day(MON) == THU

    def test_next_working_day_exhausted(self):
        """Test that a fully blocked scan window raises."""
        calendar = WorkCalendar([block(MON, date(2025, 3, 20))], max_scan_days=10)
        with pytest.raises(CalendarExhaustedError) as exc_info:
            calendar.next_working_day(MON)
        assert exc_info.value.max_days == 10
        assert exc_info.value.start == MON

    def test_working_day_sequence(self):
        """Test a 3-day sequence starting Thursday skips the weekend."""
        days = WorkCalendar().working_day_sequence(THU, 3)
        assert days == [THU, FRI, NEXT_MON]

    def test_working_day_sequence_with_saturday(self):
        """Test a Saturday-allowed sequence uses Saturday but not Sunday."""
        days = WorkCalendar().working_day_sequence(FRI, 3, allow_saturday=True)
        assert days == [FRI, SAT, NEXT_MON]

    def test_blocked_days_index(self):
        """Test each blocked date maps to the covering block-outs."""
        first = block(MON, TUE, block_id="b1")
        second = block(TUE, block_id="b2")
        index = WorkCalendar([first, second]).blocked_days_index()
        assert set(index.keys()) == {MON, TUE}
        assert [b.block_out_id for b in index[TUE]] == ["b1", "b2"]

    def test_expand_range_is_bounded(self):
        """Test that range expansion stops at the limit."""
        days = expand_range(date(2025, 1, 1), date(2030, 1, 1))
        assert len(days) == SchedulingConfig.MAX_RANGE_DAYS


# ==============================================================================
# OCCUPANCY TRACKER TESTS
# ==============================================================================

class TestOccupancyTracker:
    """Tests for the per-pass occupied-date index."""

    def test_occupy_maps_days_to_end(self):
        """Test occupied days report the placement end as conflict end."""
        tracker = OccupancyTracker()
        tracker.occupy([MON, TUE, WED], WED)
        assert tracker.is_occupied(TUE)
        assert tracker.conflict_end(MON) == WED
        assert THU not in tracker

    def test_occupy_keeps_furthest_end(self):
        """Test a later end wins when a day is occupied twice."""
        tracker = OccupancyTracker()
        tracker.occupy([MON], FRI)
        tracker.occupy([MON], TUE)
        assert tracker.conflict_end(MON) == FRI

    def test_reserve_includes_weekends(self):
        """Test a gap reservation covers every calendar day, end exclusive."""
        tracker = OccupancyTracker()
        count = tracker.reserve(FRI, NEXT_MON)
        assert count == 3
        assert SAT in tracker and SUN in tracker
        assert NEXT_MON not in tracker

    def test_reserve_long_gap_is_not_truncated(self):
        """Test a gap longer than a year stays reserved to its last day."""
        tracker = OccupancyTracker()
        end_exclusive = date(2027, 3, 1)
        count = tracker.reserve(MON, end_exclusive)

        assert count == (end_exclusive - MON).days
        assert count > SchedulingConfig.MAX_RANGE_DAYS
        assert date(2027, 2, 28) in tracker
        assert tracker.conflict_end(date(2026, 6, 1)) == date(2026, 6, 1)
        assert end_exclusive not in tracker

    def test_reserve_empty_range(self):
        """Test an empty or inverted range reserves nothing."""
        tracker = OccupancyTracker()
        assert tracker.reserve(FRI, FRI) == 0
        assert tracker.reserve(FRI, MON) == 0
        assert FRI not in tracker

    def test_first_conflict(self):
        """Test the first occupied day of a window is reported."""
        tracker = OccupancyTracker()
        tracker.occupy_day(WED)
        assert tracker.first_conflict([MON, TUE]) is None
        assert tracker.first_conflict([TUE, WED, THU]) == WED
        assert len(tracker) == 1


# ==============================================================================
# RECORD NORMALIZATION TESTS
# ==============================================================================

class TestRecordDefaults:
    """Tests for loose persisted values resolving to clean records."""

    def test_as_bool(self):
        """Test flag coercion for the forms stored rows use."""
        assert as_bool(True) is True
        assert as_bool("true") is True
        assert as_bool("YES") is True
        assert as_bool("false") is False
        assert as_bool("0") is False
        assert as_bool(None) is False
        assert as_bool(1) is True

    def test_as_labor_days(self):
        """Test non-finite labor estimates become None."""
        assert as_labor_days("1.5") == 1.5
        assert as_labor_days(float('nan')) is None
        assert as_labor_days("x") is None
        assert as_labor_days(True) is None

    def test_as_rank(self):
        """Test only positive whole ranks survive."""
        assert as_rank("3") == 3
        assert as_rank(2.0) == 2
        assert as_rank(2.5) is None
        assert as_rank(0) is None
        assert as_rank(None) is None

    def test_status_parse(self):
        """Test status strings are case-insensitive and unknown means estimate."""
        assert JobStatus.parse(" SOLD ") is JobStatus.SOLD
        assert JobStatus.parse("pending") is JobStatus.PENDING
        assert JobStatus.parse("lost") is JobStatus.ESTIMATE
        assert JobStatus.parse(None) is JobStatus.ESTIMATE

    def test_job_from_raw_accepts_camel_case(self):
        """Test the camelCase field names are accepted as aliases."""
        record = JobRecord.from_raw({
            'id': 'j1',
            'status': 'sold',
            'laborDays': '2.5',
            'holdDate': '2025-03-06T00:00:00Z',
            'allowSaturday': 'true',
            'queueRank': 4,
            'updatedAt': 1735689600000,
        })
        assert record.job_id == 'j1'
        assert record.status is JobStatus.SOLD
        assert record.labor_days == 2.5
        assert record.hold_date == THU
        assert record.allow_saturday is True
        assert record.allow_sunday is False
        assert record.queue_rank == 4
        assert record.updated_at == datetime(2025, 1, 1)

    def test_job_from_raw_malformed_values_fall_back(self):
        """Test a corrupt row still yields a usable record."""
        record = JobRecord.from_raw({
            'id': 7,
            'status': 'SOLD',
            'labor_days': 'lots',
            'hold_date': 'not-a-date',
            'queue_rank': 'first',
            'calendar_hidden': None,
        })
        assert record.job_id == '7'
        assert record.labor_days is None
        assert record.hold_date is None
        assert record.queue_rank is None
        assert record.calendar_hidden is False
        assert record.is_visible_sold is True

    def test_job_without_id_is_skipped(self):
        """Test that a mapping with no id produces no record."""
        assert JobRecord.from_raw({'status': 'sold'}) is None
        assert JobRecord.from_raw({'id': '  '}) is None

    def test_requested_start_prefers_hold(self):
        """Test hold date wins over the explicit start request."""
        record = JobRecord(job_id='j', hold_date=THU, start_date=TUE)
        assert record.requested_start == THU

    def test_appointment_date_from_scheduled_at(self):
        """Test an estimate appears on its appointment date."""
        record = JobRecord(job_id='e', scheduled_at=datetime(2025, 3, 5, 15, 30), start_date=MON)
        assert record.appointment_date == WED

    def test_block_out_from_raw_defaults(self):
        """Test a block-out without end or description."""
        record = BlockOutRecord.from_raw({'id': 'b', 'start_date': '2025-03-04'})
        assert record.start_date == TUE
        assert record.end_date == TUE
        assert record.description == "Blocked"

    def test_block_out_from_raw_swaps_reversed_range(self):
        """Test a reversed range is normalized."""
        record = BlockOutRecord.from_raw({'id': 'b', 'start_date': '2025-03-07', 'end_date': '2025-03-05'})
        assert (record.start_date, record.end_date) == (WED, FRI)

    def test_block_out_description_truncated(self):
        """Test long descriptions are cut to the column size."""
        record = BlockOutRecord.from_raw({'id': 'b', 'start_date': '2025-03-04', 'description': 'x' * 500})
        assert len(record.description) == SchedulingConfig.BLOCK_OUT_DESCRIPTION_MAX

    def test_block_out_without_start_is_skipped(self):
        """Test a block-out with no usable start date is dropped."""
        assert BlockOutRecord.from_raw({'id': 'b'}) is None

    def test_weekend_field(self):
        """Test weekend day names map to job flags."""
        assert SchedulingConfig.weekend_field("Saturday") == "allow_saturday"
        assert SchedulingConfig.weekend_field("sun") == "allow_sunday"
        assert SchedulingConfig.weekend_field("monday") is None
        assert SchedulingConfig.weekend_field(None) is None
