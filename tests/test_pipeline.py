"""
Integration tests for the per-frame pipeline, replay and CLI.
"""

import json

import numpy as np
import pytest

from gaze_tracker.cli import main, parse_selections
from gaze_tracker.config import GazeConfig, PipelineConfig
from gaze_tracker.detection import DetectionBatch
from gaze_tracker.errors import CameraConfigError, TransformLookupError
from gaze_tracker.geometry import CameraModel
from gaze_tracker.io import (
    GazeCommandType,
    RecordingActuator,
    StaticTransformProvider,
    TransformProvider,
)
from gaze_tracker.pipeline import GazeTrackingPipeline, run_replay


class GappyTransforms(TransformProvider):
    """Static pose that is unavailable at some timestamps."""

    def __init__(self, transform, missing):
        self._transform = transform
        self._missing = set(missing)

    def lookup(self, target_frame, source_frame, timestamp, timeout=10.0):
        if timestamp in self._missing:
            raise TransformLookupError(f"No transform at t={timestamp}")
        return self._transform.copy()


def manual_config():
    return PipelineConfig(gaze=GazeConfig(auto_select_nearest=False))


def frame(t, boxes=()):
    return DetectionBatch.from_boxes(list(boxes), timestamp=t)


class TestGazeTrackingPipeline:
    """Tests for per-frame processing."""

    @pytest.fixture
    def actuator(self):
        return RecordingActuator()

    def test_unlocked_track_pruned_at_frame_27(self, camera, camera_to_world,
                                               actuator, person_box):
        pipeline = GazeTrackingPipeline(
            camera, StaticTransformProvider(camera_to_world), actuator,
            manual_config())

        result = pipeline.process(frame(0.0, [person_box(2.0, 0.0)]))
        assert result.track_ids == [1]
        assert result.tracks[0].position == pytest.approx((2.0, 0.0))

        for i in range(2, 27):
            result = pipeline.process(frame(i * 0.1))
            assert result.track_ids == [1]
        assert result.tracks[0].miss_count == 25

        result = pipeline.process(frame(2.7))
        assert result.track_ids == []
        assert 1 not in pipeline.registry

    def test_locked_track_pruned_at_frame_38(self, camera, camera_to_world,
                                             actuator, person_box):
        pipeline = GazeTrackingPipeline(
            camera, StaticTransformProvider(camera_to_world), actuator)

        for i in (1, 2):
            result = pipeline.process(frame(i * 0.1, [person_box(2.0, 0.0)]))
        assert result.target_id == 1
        assert result.tracks[0].locked

        for i in range(3, 38):
            result = pipeline.process(frame(i * 0.1))
            assert result.track_ids == [1]

        result = pipeline.process(frame(3.8))
        assert result.track_ids == []
        assert result.target_id is None
        assert actuator.commands[-1].kind is GazeCommandType.HOME

    def test_size_filter_applied(self, camera, camera_to_world, actuator,
                                 person_box):
        pipeline = GazeTrackingPipeline(
            camera, StaticTransformProvider(camera_to_world), actuator,
            manual_config())

        result = pipeline.process(frame(0.0, [
            person_box(2.0, 0.0, height=3.0),
            person_box(3.0, 1.0, height=1.7),
        ]))

        assert result.track_ids == [1]
        assert result.tracks[0].position == pytest.approx((3.0, 1.0))

    def test_skipped_frame_leaves_state(self, camera, camera_to_world,
                                        actuator, person_box):
        pipeline = GazeTrackingPipeline(
            camera, GappyTransforms(camera_to_world, missing=[0.1]), actuator,
            manual_config())

        pipeline.process(frame(0.0, [person_box(2.0, 0.0)]))
        pipeline.select(1)

        result = pipeline.process(frame(0.1))

        assert result.skipped
        assert "t=0.1" in result.skip_reason
        assert pipeline.registry.get(1).miss_count == 0
        assert pipeline.selector.target_id is None

        result = pipeline.process(frame(0.2, [person_box(2.0, 0.0)]))

        assert not result.skipped
        assert result.target_id == 1
        assert len(actuator.fixations) == 1

    def test_singular_pose_skips_frame(self, camera, camera_to_world,
                                       actuator, person_box):
        camera_to_world[2, 3] = 0.0
        pipeline = GazeTrackingPipeline(
            camera, StaticTransformProvider(camera_to_world), actuator)

        result = pipeline.process(frame(0.0, [person_box(2.0, 0.0)]))

        assert result.skipped
        assert len(pipeline.registry) == 0

    def test_reset(self, camera, camera_to_world, actuator, person_box):
        pipeline = GazeTrackingPipeline(
            camera, StaticTransformProvider(camera_to_world), actuator)
        pipeline.process(frame(0.0, [person_box(2.0, 0.0)]))

        pipeline.reset()

        assert len(pipeline.registry) == 0
        assert pipeline.selector.target_id is None
        assert actuator.commands[-1].kind is GazeCommandType.HOME

    def test_reset_drops_pending_selection(self, camera, camera_to_world,
                                           actuator, person_box):
        pipeline = GazeTrackingPipeline(
            camera, StaticTransformProvider(camera_to_world), actuator,
            manual_config())
        pipeline.process(frame(0.0, [person_box(2.0, 0.0)]))
        pipeline.select(1)

        pipeline.reset()
        result = pipeline.process(frame(0.1, [person_box(2.0, 0.0)]))

        # Ids restart, so a leftover event would pick the new track 1
        assert result.track_ids == [1]
        assert result.target_id is None
        assert actuator.fixations == []

    def test_process_source(self, camera, camera_to_world, actuator, person_box):
        pipeline = GazeTrackingPipeline(
            camera, StaticTransformProvider(camera_to_world), actuator)
        batches = [frame(i * 0.1, [person_box(2.0 + 0.05 * i, 0.0)])
                   for i in range(5)]

        results = pipeline.process_source(batches, show_progress=False)

        assert [r.frame_idx for r in results] == [0, 1, 2, 3, 4]
        assert all(r.track_ids == [1] for r in results)

    def test_assumed_height_fallback(self, camera, camera_to_world, actuator):
        config = manual_config()
        config.camera.assumed_person_height = 1.8
        pipeline = GazeTrackingPipeline(
            camera, StaticTransformProvider(camera_to_world), actuator, config)

        points = pipeline.locate_with_assumed_height(
            frame(0.0, [[270.0, 90.0, 370.0, 390.0]]), np.eye(4))

        np.testing.assert_allclose(points[0], [3.0, 0.1, 0.0], atol=1e-9)
        assert len(pipeline.registry) == 0

    def test_from_config_needs_camera_file(self, camera_to_world):
        with pytest.raises(CameraConfigError):
            GazeTrackingPipeline.from_config(
                PipelineConfig(), StaticTransformProvider(camera_to_world))


@pytest.fixture
def session(tmp_path, camera, camera_to_world, person_box):
    """A three frame recording; the middle frame has no camera pose."""
    camera_file = tmp_path / "camera.yaml"
    camera.save(camera_file)

    x1, y1, x2, y2 = person_box(2.0, 0.0)
    box = [x1, y1, x2 - x1, y2 - y1]
    pose = camera_to_world.tolist()
    recording = tmp_path / "session.json"
    recording.write_text(json.dumps({
        "world_frame": "map",
        "camera_frame": "cam",
        "bbox_format": "xywh",
        "frames": [
            {"timestamp": 0.0, "camera_to_world": pose, "detections": [box]},
            {"timestamp": 0.1, "detections": [box]},
            {"timestamp": 0.2, "camera_to_world": pose, "detections": [box]},
        ],
    }))
    return recording, camera_file


class TestReplay:
    """Tests for offline replay of recorded sessions."""

    def test_run_replay(self, tmp_path, session):
        recording, camera_file = session
        output = tmp_path / "tracks.json"

        results = run_replay(recording, camera_config=camera_file,
                             output_path=output, show_progress=False)

        assert [r.skipped for r in results] == [False, True, False]
        assert results[0].target_id == 1
        assert results[2].track_ids == [1]

        data = json.loads(output.read_text())
        assert data["summary"]["frames"] == 3
        assert data["summary"]["skipped_frames"] == 1
        assert data["summary"]["track_ids"] == [1]
        assert [c["kind"] for c in data["gaze_commands"]] == ["fixate"]
        assert data["metadata"]["camera_frame"] == "cam"

    def test_replay_selection_releases_target(self, session):
        recording, camera_file = session

        results = run_replay(recording, camera_config=camera_file,
                             selections={2: 1}, show_progress=False)

        assert results[0].target_id == 1
        assert results[2].target_id is None

    def test_replay_leaves_config_untouched(self, session):
        recording, camera_file = session
        config = manual_config()

        run_replay(recording, camera_config=camera_file, config=config,
                   show_progress=False)

        assert config.camera.config_file is None
        assert config.camera.camera_frame == "l_camera_vision_link"

    def test_replay_without_camera_file(self, session):
        recording, _ = session
        with pytest.raises(CameraConfigError):
            run_replay(recording, show_progress=False)


class TestCLI:
    """Tests for the command-line interface."""

    def test_parse_selections(self):
        assert parse_selections(["40:3", "50:1"]) == {40: 3, 50: 1}
        with pytest.raises(ValueError):
            parse_selections(["40"])

    def test_config_generate(self, tmp_path):
        path = tmp_path / "config.yaml"

        assert main(["config", "--generate", str(path)]) == 0

        loaded = PipelineConfig.from_yaml(path)
        assert loaded.tracker.frames_before_destruction == 25

    def test_config_show(self, capsys):
        assert main(["config", "--show"]) == 0
        assert "associating_distance: 0.5" in capsys.readouterr().out

    def test_replay(self, tmp_path, session):
        recording, camera_file = session
        output = tmp_path / "tracks.json"

        code = main([
            "replay", str(recording),
            "--camera-config", str(camera_file),
            "-o", str(output),
            "--select", "2:1",
            "--no-progress",
        ])

        assert code == 0
        data = json.loads(output.read_text())
        assert [c["kind"] for c in data["gaze_commands"]] == ["fixate", "home"]

    def test_replay_missing_recording(self, tmp_path):
        assert main(["replay", str(tmp_path / "missing.json")]) == 1

    def test_replay_bad_selection(self, session):
        recording, camera_file = session
        code = main(["replay", str(recording), "--camera-config",
                     str(camera_file), "--select", "oops"])
        assert code == 1

    def test_replay_missing_camera_config(self, session):
        recording, _ = session
        assert main(["replay", str(recording), "--no-progress"]) == 1
