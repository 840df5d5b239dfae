import logging

from SpaceCalibrator.control.context import CalibrationContext
from SpaceCalibrator.control.display_provider import TuiDisplayProvider, frame_from_controller
from SpaceCalibrator.control.offset_sink import LogOffsetSink
from SpaceCalibrator.control.state_machine import CalibrationController
from SpaceCalibrator.control.tracking_source import TrackingSource


def test_scroll_output_logs_one_status_line(caplog):
    ctx = CalibrationContext(reference_id=0, target_id=1)
    ctx.messages.message("Starting calibration, referenceID=0 targetID=1\n")
    controller = CalibrationController(ctx, TrackingSource(), LogOffsetSink())

    frame = frame_from_controller(controller)
    assert frame.samples_collected == 0
    assert frame.sample_count == 100
    assert frame.reference_tracking is False
    assert frame.last_message == "Starting calibration, referenceID=0 targetID=1"

    with caplog.at_level(logging.INFO, logger="SpaceCalibrator.control.display_provider"):
        TuiDisplayProvider(cli_output="scroll").update(frame)
    assert any(r.getMessage().startswith("[STATUS] state=none samples=0/100") for r in caplog.records)
