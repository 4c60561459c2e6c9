"""Tests for the marker creation flow and side panel navigation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from mapnotes.client import api, workflow

if TYPE_CHECKING:
    from fastapi import testclient


@pytest.fixture
def api_client(client: testclient.TestClient) -> api.MapNotesClient:
    return api.MapNotesClient(client)


def test_flow_success(api_client: api.MapNotesClient) -> None:
    """Test capture then submit creates a marker and refreshes."""
    created: list[dict[str, Any]] = []
    flow = workflow.MarkerCreationFlow(api_client, created.append)
    assert flow.state is workflow.FlowState.IDLE

    flow.capture(15.0, 45.0)
    assert flow.state is workflow.FlowState.POSITION_CAPTURED
    assert flow.position == (15.0, 45.0)

    marker = flow.submit(name="Spring", labels=["water"])
    assert marker is not None
    assert marker["latitude"] == 45.0
    assert marker["longitude"] == 15.0
    assert marker["layer"]["name"] == api.DEFAULT_LAYER_NAME
    assert flow.state is workflow.FlowState.IDLE
    assert flow.position is None
    assert created == [marker]


def test_flow_failure_keeps_error(api_client: api.MapNotesClient) -> None:
    """Test a rejected submit discards the position and keeps the error."""
    created: list[dict[str, Any]] = []
    flow = workflow.MarkerCreationFlow(api_client, created.append)
    flow.capture(15.0, 45.0)

    assert flow.submit(name="", photo=None) is None
    assert flow.state is workflow.FlowState.IDLE_WITH_ERROR
    assert flow.position is None
    assert flow.error == (
        "Name or photo, latitude, longitude, and layerId are required"
    )
    assert created == []

    flow.capture(16.0, 46.0)
    assert flow.error is None
    assert flow.state is workflow.FlowState.POSITION_CAPTURED


def test_flow_unknown_layer(api_client: api.MapNotesClient) -> None:
    """Test submitting into a missing layer ends in the error state."""
    flow = workflow.MarkerCreationFlow(api_client)
    flow.capture(1.0, 2.0)
    assert flow.submit(name="A", layer_id="missing") is None
    assert flow.state is workflow.FlowState.IDLE_WITH_ERROR


def test_flow_cancel_and_submit_without_position(
    api_client: api.MapNotesClient,
) -> None:
    """Test cancel returns to idle and submit then needs a new capture."""
    flow = workflow.MarkerCreationFlow(api_client)
    flow.capture(1.0, 2.0)
    flow.cancel()
    assert flow.state is workflow.FlowState.IDLE
    assert flow.position is None
    with pytest.raises(RuntimeError):
        flow.submit(name="A")


def test_panel_navigation() -> None:
    """Test views open and the back button returns one step."""
    panel = workflow.PanelNavigator()
    assert panel.view is workflow.PanelView.LAYERS

    panel.open(workflow.PanelView.MARKERS)
    panel.open(workflow.PanelView.MARKER_DETAIL, marker_id="m1")
    assert panel.marker_id == "m1"
    assert panel.previous is workflow.PanelView.MARKERS

    assert panel.back() is workflow.PanelView.MARKERS
    assert panel.marker_id is None
    assert panel.back() is workflow.PanelView.LAYERS


def test_panel_detail_requires_marker() -> None:
    """Test the detail view needs a marker id."""
    panel = workflow.PanelNavigator()
    with pytest.raises(ValueError):
        panel.open(workflow.PanelView.MARKER_DETAIL)
