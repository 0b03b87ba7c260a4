"""
Lifecycle classifier tests.
"""

from datetime import timedelta

import pytest

from trendintel.core.enums import LifecycleStage, TrendCycle
from trendintel.etl.lifecycle import classify_lifecycle, derive_trend_cycle
from tests.helpers.builders import TODAY

EARLIER = TODAY - timedelta(days=3)


class TestClassifyLifecycle:
    @pytest.mark.parametrize(
        "peak, v7, v14, length, expected",
        [
            (TODAY, 5.0, 2.0, 10, LifecycleStage.GROWING),
            (TODAY, 2.0, 5.0, 10, LifecycleStage.PEAKING),
            (TODAY, 2.0, 2.0, 10, LifecycleStage.PEAKING),
            (EARLIER, 5.0, 2.0, 10, LifecycleStage.DECLINING),
            (EARLIER, -1.0, 0.0, 2, LifecycleStage.DECLINING),
            (TODAY, 0.0, 0.0, 3, LifecycleStage.EMERGING),
            (TODAY, 0.0, 0.0, 4, LifecycleStage.STABLE),
            (TODAY, -2.0, 0.0, 6, LifecycleStage.STABLE),
        ],
    )
    def test_stage_table(self, peak, v7, v14, length, expected):
        assert classify_lifecycle(peak, TODAY, v7, v14, length) == expected


class TestDeriveTrendCycle:
    def test_direct_mappings(self):
        assert derive_trend_cycle(LifecycleStage.EMERGING, 0) == TrendCycle.EMERGING
        assert derive_trend_cycle(LifecycleStage.GROWING, 0) == TrendCycle.GROWING
        assert derive_trend_cycle(LifecycleStage.PEAKING, 500_000) == TrendCycle.PEAKING

    def test_declining_with_big_peak_is_mainstream(self):
        assert derive_trend_cycle(LifecycleStage.DECLINING, 100_001) == TrendCycle.MAINSTREAM
        assert derive_trend_cycle(LifecycleStage.DECLINING, 100_000) == TrendCycle.DECLINING

    def test_stable_reads_as_declining(self):
        assert derive_trend_cycle(LifecycleStage.STABLE, 1_000_000) == TrendCycle.DECLINING
