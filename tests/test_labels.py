import time

import pytest

from gpufeatures.labels import (
    Empty,
    LabelerList,
    Labeler,
    LabelingError,
    Labels,
    MigStrategy,
    merge,
    mig_strategy_labeler,
    new_timestamp_labeler,
)


class _Failing(Labeler):
    def labels(self):
        raise RuntimeError("boom")


def test_labels_is_its_own_labeler():
    labels = Labels({"a": "1"})
    assert labels.labels() == {"a": "1"}


def test_empty_produces_no_labels():
    assert Empty().labels() == {}


def test_merge_later_overrides_earlier():
    combined = merge(Labels({"a": "1", "b": "2"}), Empty(), Labels({"b": "3"}))
    assert combined.labels() == {"a": "1", "b": "3"}


def test_merge_of_nothing_is_empty():
    result = merge()
    assert isinstance(result, LabelerList)
    assert result.labels() == {}


def test_nested_merge():
    inner = merge(Labels({"x": "1"}), Labels({"y": "2"}))
    outer = merge(inner, Labels({"x": "9"}))
    assert outer.labels() == {"x": "9", "y": "2"}


def test_merge_wraps_errors():
    with pytest.raises(LabelingError, match="error generating labels: boom"):
        merge(Labels({"a": "1"}), _Failing()).labels()


def test_mig_strategy_none_is_empty():
    assert mig_strategy_labeler("none").labels() == {}
    assert mig_strategy_labeler(MigStrategy.NONE).labels() == {}


@pytest.mark.parametrize("strategy", ["single", "mixed"])
def test_mig_strategy_label(strategy):
    assert mig_strategy_labeler(strategy).labels() == {"nvidia.com/mig.strategy": strategy}


def test_mig_strategy_enum_value_is_used():
    assert mig_strategy_labeler(MigStrategy.MIXED).labels() == {
        "nvidia.com/mig.strategy": "mixed"
    }


def test_timestamp_disabled():
    assert new_timestamp_labeler(True).labels() == {}


def test_timestamp_enabled_is_current():
    before = int(time.time())
    labels = new_timestamp_labeler(False).labels()
    after = int(time.time())
    assert list(labels) == ["nvidia.com/gfd.timestamp"]
    assert before <= int(labels["nvidia.com/gfd.timestamp"]) <= after