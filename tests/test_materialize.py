"""Tests for service materialization."""

import json
import tempfile
import unittest
from pathlib import Path

from openllm_provisioner.audit import AuditLogger
from openllm_provisioner.errors import ServiceError
from openllm_provisioner.materialize import ServiceMaterializer
from openllm_provisioner.runner import ServiceAccount
from openllm_provisioner.targets import GGUF_BACKEND, TargetCollection, TargetKind
from openllm_provisioner.tool import OpenLLMTool
from openllm_provisioner.units import UnitManager, UnitRenderer
from tests.fakes import FakeRunner


class TestServiceMaterializer(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.systemd_dir = root / "systemd"
        self.systemd_dir.mkdir()
        self.log_dir = root / "log"

        self.runner = FakeRunner()
        tool = OpenLLMTool(ServiceAccount(self.runner, "openllm"), Path("/opt/openllm_models/.venv"))
        renderer = UnitRenderer(tool, "openllm", "openllm_data", Path("/opt/openllm_models"))
        self.audit = AuditLogger(self.log_dir)
        self.materializer = ServiceMaterializer(
            renderer, UnitManager(self.runner, self.systemd_dir), audit=self.audit
        )

        self.targets = TargetCollection(3000)
        self.targets.add(TargetKind.LOCAL_GGUF, "alpha", "/models/alpha.gguf", backend=GGUF_BACKEND)
        self.targets.add(TargetKind.HUB, "beta", "beta")

    def tearDown(self) -> None:
        self.audit.close()
        self._tmp.cleanup()

    def test_one_unit_per_target(self) -> None:
        results = self.materializer.materialize_all(self.targets)

        self.assertEqual([r.unit_name for r in results], ["openllm-alpha.service", "openllm-beta.service"])
        self.assertTrue(all(r.started for r in results))

        alpha = (self.systemd_dir / "openllm-alpha.service").read_text()
        beta = (self.systemd_dir / "openllm-beta.service").read_text()
        self.assertIn('start ctransformers --model-id "/models/alpha.gguf" --port 3000', alpha)
        self.assertIn('start "beta" --port 3001', beta)

    def test_systemctl_sequence_per_target(self) -> None:
        self.materializer.materialize_all(self.targets)
        self.assertEqual(self.runner.calls, [
            ["systemctl", "daemon-reload"],
            ["systemctl", "enable", "openllm-alpha.service"],
            ["systemctl", "start", "openllm-alpha.service"],
            ["systemctl", "daemon-reload"],
            ["systemctl", "enable", "openllm-beta.service"],
            ["systemctl", "start", "openllm-beta.service"],
        ])

    def test_start_failure_does_not_stop_later_targets(self) -> None:
        self.runner.responses[("start", "openllm-alpha.service")] = (1, "", "Job failed")

        results = self.materializer.materialize_all(self.targets)

        self.assertEqual([r.started for r in results], [False, True])
        self.assertEqual([r.target.port for r in results], [3000, 3001])
        self.assertTrue((self.systemd_dir / "openllm-beta.service").exists())

    def test_enable_failure_aborts(self) -> None:
        self.runner.responses[("enable",)] = (1, "", "")
        with self.assertRaises(ServiceError):
            self.materializer.materialize_all(self.targets)

    def test_audit_records_each_service(self) -> None:
        self.runner.responses[("start", "openllm-beta.service")] = (3, "", "")
        self.materializer.materialize_all(self.targets)
        self.audit.close()

        lines = (self.log_dir / "provision.log").read_text().splitlines()
        entries = [json.loads(line) for line in lines]
        self.assertEqual([e["resource"] for e in entries], ["openllm-alpha.service", "openllm-beta.service"])
        self.assertEqual([e["result"] for e in entries], ["SUCCESS", "FAILURE"])
        self.assertEqual(entries[1]["details"]["port"], 3001)


if __name__ == '__main__':
    unittest.main()
