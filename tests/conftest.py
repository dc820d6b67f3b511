"""Shared test fixtures for dagtimeline tests."""

import pytest

from dagtimeline.models import ReplayScript, SnapshotFrame, SnapshotRecording
from dagtimeline.scheduling import ManualScheduler
from dagtimeline.sources.replay import ReplayDataSource


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def fork_script():
    """Genesis with two children. Heights come out as [0, 1, 1]."""
    return ReplayScript.model_validate({
        "blockInterval": 1000,
        "blocks": [
            {"id": 1, "parentIds": []},
            {"id": 2, "parentIds": [1]},
            {"id": 3, "parentIds": [1]},
        ],
    })


@pytest.fixture()
def dag_script():
    """Ten blocks with merges, red and gray blocks, and one long-range parent.

    Heights: 1:0  2:1 3:1 9:1  4:2 5:2 7:2  6:3  8:4  10:5
    """
    return ReplayScript.model_validate({
        "blockInterval": 500,
        "blocks": [
            {"id": 1, "parentIds": [], "isInVirtualSelectedParentChain": True},
            {"id": 2, "parentIds": [1], "selectedParentId": 1,
             "isInVirtualSelectedParentChain": True},
            {"id": 3, "parentIds": [1], "selectedParentId": 1, "color": "red"},
            {"id": 4, "parentIds": [2, 3], "selectedParentId": 2,
             "isInVirtualSelectedParentChain": True, "mergeSetRedIds": [3]},
            {"id": 5, "parentIds": [2], "selectedParentId": 2},
            {"id": 6, "parentIds": [4, 5], "selectedParentId": 4,
             "isInVirtualSelectedParentChain": True, "mergeSetBlueIds": [5]},
            {"id": 7, "parentIds": [3], "selectedParentId": 3, "color": "gray"},
            {"id": 8, "parentIds": [6, 7], "selectedParentId": 6,
             "isInVirtualSelectedParentChain": True},
            {"id": 9, "parentIds": [1], "selectedParentId": 1, "color": "red"},
            {"id": 10, "parentIds": [8, 9], "selectedParentId": 8,
             "isInVirtualSelectedParentChain": True},
        ],
    })


@pytest.fixture()
def fork_source(fork_script, scheduler):
    """Fork script with every block already admitted."""
    source = ReplayDataSource(fork_script, scheduler)
    for _ in fork_script.blocks:
        source.add_next_block()
    return source


@pytest.fixture()
def recording(dag_script, scheduler):
    """Frames taken from the synthetic source after each admitted block."""
    source = ReplayDataSource(dag_script, scheduler)
    frames = []
    for i, _ in enumerate(dag_script.blocks):
        source.add_next_block()
        frames.append(SnapshotFrame(t=i * 200, data=source.get_head(3)))
    return SnapshotRecording(
        duration_ms=len(frames) * 200,
        height_difference=3,
        poll_interval_ms=200,
        frame_count=len(frames),
        frames=frames,
    )
