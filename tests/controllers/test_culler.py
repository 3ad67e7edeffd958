"""Tests for idle culling."""

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from notebook_controller.config import ControllerConfig
from notebook_controller.controllers.culler import (
    notebook_is_idle,
    notebook_needs_culling,
    remove_last_activity_annotation,
    set_stop_annotation,
)
from notebook_controller.metrics import Metrics
from notebook_controller.models import LAST_ACTIVITY_ANNOTATION, STOP_ANNOTATION
from tests.fakes import make_notebook

NOW = datetime(2024, 5, 2, 12, 0, tzinfo=timezone.utc)


class TestCuller(unittest.TestCase):
    """Test cases for the culling decision."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        self.config = ControllerConfig(enable_culling=True, cull_idle_time=60)

    def _notebook(self, idle_for: timedelta, **annotations):
        last_activity = (NOW - idle_for).strftime("%Y-%m-%dT%H:%M:%SZ")
        return make_notebook(annotations={LAST_ACTIVITY_ANNOTATION: last_activity, **annotations})

    def test_idle_notebook_needs_culling(self):
        self.assertTrue(notebook_needs_culling(self._notebook(timedelta(minutes=61)), self.config, NOW))

    def test_recently_active_notebook_is_kept(self):
        self.assertFalse(notebook_needs_culling(self._notebook(timedelta(minutes=59)), self.config, NOW))

    def test_culling_disabled(self):
        config = ControllerConfig(enable_culling=False, cull_idle_time=60)

        self.assertFalse(notebook_needs_culling(self._notebook(timedelta(days=2)), config, NOW))

    def test_stopped_notebook_is_not_culled_again(self):
        notebook = self._notebook(timedelta(days=2), **{STOP_ANNOTATION: "2024-05-01T00:00:00Z"})

        self.assertFalse(notebook_needs_culling(notebook, self.config, NOW))

    def test_missing_last_activity_is_not_idle(self):
        self.assertFalse(notebook_is_idle(make_notebook(), self.config, NOW))

    @patch("notebook_controller.controllers.culler.logger")
    def test_unparsable_last_activity_is_not_idle(self, mock_logger):
        notebook = make_notebook(annotations={LAST_ACTIVITY_ANNOTATION: "yesterday"})

        self.assertFalse(notebook_is_idle(notebook, self.config, NOW))
        mock_logger.error.assert_called_once()

    def test_set_stop_annotation(self):
        # Arrange
        metrics = Metrics()
        notebook = self._notebook(timedelta(days=2))

        # Act
        set_stop_annotation(notebook, NOW, metrics)

        # Assert
        self.assertEqual(notebook.metadata.annotations, {STOP_ANNOTATION: "2024-05-02T12:00:00Z"})
        self.assertEqual(
            metrics.sample("last_notebook_culling_timestamp_seconds", namespace="team-a", name="nb1"), NOW.timestamp()
        )

    def test_remove_last_activity_annotation(self):
        notebook = self._notebook(timedelta(minutes=1))

        self.assertTrue(remove_last_activity_annotation(notebook))
        self.assertFalse(remove_last_activity_annotation(notebook))
        self.assertEqual(notebook.metadata.annotations, {})


if __name__ == "__main__":
    unittest.main()
