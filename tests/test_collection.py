"""Tests for the interactive local and hub target collection flows."""

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from openllm_provisioner.collection import HubSelectionFlow, LocalModelFlow, collect_targets
from openllm_provisioner.runner import ServiceAccount
from openllm_provisioner.targets import TargetCollection, TargetKind
from openllm_provisioner.tool import OpenLLMTool, parse_model_listing
from tests.fakes import FakeRunner, FakeTool, ScriptedPrompter


class LocalFlowTestCase(unittest.TestCase):
    """Fixtures with a GGUF file and a model directory on disk."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.gguf = root / "llama.gguf"
        self.gguf.write_bytes(b"GGUF")
        self.hf_dir = root / "mistral"
        self.hf_dir.mkdir()
        (self.hf_dir / "config.json").write_text("{}")
        self.runner = FakeRunner()
        self.account = ServiceAccount(self.runner, "openllm")
        self.targets = TargetCollection(3000)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def flow(self, answers):
        prompter = ScriptedPrompter(answers)
        return LocalModelFlow(prompter, self.targets, self.account), prompter


class TestLocalModelFlow(LocalFlowTestCase):

    def test_gguf_file(self) -> None:
        flow, prompter = self.flow(["alpha", str(self.gguf), "y", "n"])
        added = flow.run()

        self.assertEqual(len(added), 1)
        target = added[0]
        self.assertEqual(target.kind, TargetKind.LOCAL_GGUF)
        self.assertEqual(target.backend, "ctransformers")
        self.assertEqual(target.model_ref, str(self.gguf))
        self.assertEqual(target.port, 3000)
        self.assertEqual(prompter.answers, [])

    def test_hf_directory(self) -> None:
        flow, _ = self.flow(["alpha", str(self.hf_dir), "no", "n"])
        target = flow.run()[0]
        self.assertEqual(target.kind, TargetKind.LOCAL_HF_DIR)
        self.assertIsNone(target.backend)

    def test_several_models(self) -> None:
        flow, _ = self.flow([
            "alpha", str(self.gguf), "YES", "yes",
            "beta", str(self.hf_dir), "n", "n",
        ])
        added = flow.run()
        self.assertEqual([t.service_id for t in added], ["alpha", "beta"])
        self.assertEqual([t.port for t in added], [3000, 3001])

    @patch('openllm_provisioner.collection.warn')
    def test_empty_service_id_reprompts(self, mock_warn) -> None:
        flow, prompter = self.flow(["", "   ", "alpha", str(self.gguf), "y", "n"])
        self.assertEqual(flow.run()[0].service_id, "alpha")
        self.assertEqual(len([q for q in prompter.questions if "Service ID" in q]), 3)

    @patch('openllm_provisioner.collection.warn')
    def test_service_id_without_usable_characters_reprompts(self, mock_warn) -> None:
        flow, prompter = self.flow(["!!!", "alpha", str(self.gguf), "y", "n"])
        self.assertEqual(flow.run()[0].service_id, "alpha")
        warnings = [call.args[0] for call in mock_warn.call_args_list]
        self.assertTrue(any("must contain letters" in w for w in warnings))

    @patch('openllm_provisioner.collection.warn')
    def test_taken_service_id_reprompts(self, mock_warn) -> None:
        self.targets.add(TargetKind.HUB, "alpha", "alpha")
        flow, prompter = self.flow(["alpha", "beta", str(self.gguf), "y", "n"])
        target = flow.run()[0]
        self.assertEqual(target.service_id, "beta")
        self.assertEqual(target.port, 3001)

    @patch('openllm_provisioner.collection.warn')
    def test_missing_path_reprompts(self, mock_warn) -> None:
        flow, prompter = self.flow(["alpha", "/does/not/exist", str(self.gguf), "y", "n"])
        self.assertEqual(flow.run()[0].model_ref, str(self.gguf))
        self.assertEqual(len([q for q in prompter.questions if "full path" in q]), 2)

    @patch('openllm_provisioner.collection.warn')
    def test_directory_classified_as_gguf_is_rejected(self, mock_warn) -> None:
        flow, prompter = self.flow([
            "alpha", str(self.hf_dir), "y",
            "alpha", str(self.hf_dir), "n", "n",
        ])
        added = flow.run()

        self.assertEqual(len(added), 1)
        self.assertEqual(added[0].kind, TargetKind.LOCAL_HF_DIR)
        warnings = [call.args[0] for call in mock_warn.call_args_list]
        self.assertTrue(any("Expected a GGUF file" in w for w in warnings))
        self.assertEqual(len([q for q in prompter.questions if "Service ID" in q]), 2)

    @patch('openllm_provisioner.collection.warn')
    def test_file_classified_as_directory_is_rejected(self, mock_warn) -> None:
        flow, _ = self.flow([
            "alpha", str(self.gguf), "n",
            "alpha", str(self.gguf), "y", "n",
        ])
        added = flow.run()
        self.assertEqual(len(added), 1)
        self.assertEqual(added[0].kind, TargetKind.LOCAL_GGUF)

    @patch('openllm_provisioner.collection.warn')
    def test_unreadable_path_only_warns(self, mock_warn) -> None:
        self.runner.responses[("test", "-r")] = (1, "", "")
        flow, _ = self.flow(["alpha", str(self.gguf), "y", "n"])

        self.assertEqual(len(flow.run()), 1)
        warnings = [call.args[0] for call in mock_warn.call_args_list]
        self.assertTrue(any("may not have read access" in w for w in warnings))
        self.assertEqual(self.runner.calls_with("sudo", "-u", "openllm", "test", "-r"),
                         [["sudo", "-u", "openllm", "test", "-r", str(self.gguf)]])


class TestHubSelectionFlow(unittest.TestCase):

    def test_selected_models_become_targets(self) -> None:
        targets = TargetCollection(3000)
        tool = FakeTool(["facebook/opt-1.3b", "llama"])
        prompter = ScriptedPrompter(["facebook/opt-1.3b  llama"])

        added = HubSelectionFlow(prompter, targets, tool).run()

        self.assertEqual([t.service_id for t in added], ["facebook-opt-1.3b", "llama"])
        self.assertEqual([t.model_ref for t in added], ["facebook/opt-1.3b", "llama"])
        self.assertTrue(all(t.kind is TargetKind.HUB for t in added))

    def test_same_model_twice_gets_suffix(self) -> None:
        targets = TargetCollection(3000)
        prompter = ScriptedPrompter(["org/m org/m org/m"])

        added = HubSelectionFlow(prompter, targets, FakeTool(["org/m"])).run()

        self.assertEqual([t.service_id for t in added], ["org-m", "org-m-1", "org-m-2"])
        self.assertEqual([t.port for t in added], [3000, 3001, 3002])

    def test_collision_with_local_id_gets_suffix(self) -> None:
        targets = TargetCollection(3000)
        local = targets.add(TargetKind.LOCAL_HF_DIR, "org-m", "/models/org-m")
        prompter = ScriptedPrompter(["org/m"])

        added = HubSelectionFlow(prompter, targets, FakeTool(["org/m"])).run()

        self.assertEqual(added[0].service_id, "org-m-1")
        self.assertEqual(targets[0], local)

    @patch('openllm_provisioner.collection.warn')
    def test_empty_listing_skips_selection(self, mock_warn) -> None:
        prompter = ScriptedPrompter([])
        added = HubSelectionFlow(prompter, TargetCollection(3000), FakeTool([])).run()
        self.assertEqual(added, [])
        self.assertEqual(prompter.questions, [])
        mock_warn.assert_called_once()

    @patch('openllm_provisioner.collection.warn')
    def test_unusable_identifier_is_skipped(self, mock_warn) -> None:
        prompter = ScriptedPrompter(["??? opt"])
        added = HubSelectionFlow(prompter, TargetCollection(3000), FakeTool(["opt"])).run()
        self.assertEqual([(t.service_id, t.port) for t in added], [("opt", 3000)])
        mock_warn.assert_called_once()

    def test_blank_selection_adds_nothing(self) -> None:
        prompter = ScriptedPrompter([""])
        added = HubSelectionFlow(prompter, TargetCollection(3000), FakeTool(["opt"])).run()
        self.assertEqual(added, [])


class TestCollectTargets(LocalFlowTestCase):

    def test_declining_both_flows_collects_nothing(self) -> None:
        tool = FakeTool(["opt"])
        targets = collect_targets(ScriptedPrompter(["n", ""]), self.targets, self.account, tool)
        self.assertFalse(targets)
        self.assertEqual(tool.list_calls, 0)

    def test_local_then_hub(self) -> None:
        prompter = ScriptedPrompter([
            "y", "alpha", str(self.hf_dir), "n", "n",
            "y", "beta",
        ])
        targets = collect_targets(prompter, self.targets, self.account, FakeTool(["beta"]))
        self.assertEqual([(t.service_id, t.port) for t in targets], [("alpha", 3000), ("beta", 3001)])


class TestModelListing(unittest.TestCase):

    def test_json_list(self) -> None:
        self.assertEqual(parse_model_listing('["opt", "org/llama", "opt"]'), ["opt", "org/llama"])

    def test_json_objects(self) -> None:
        output = json.dumps([{"model_id": "org/llama"}, {"name": "opt"}, {"other": 1}])
        self.assertEqual(parse_model_listing(output), ["org/llama", "opt"])

    def test_json_mapping(self) -> None:
        output = json.dumps({"opt": {"sizes": ["1.3b"]}, "mistral": {}})
        self.assertEqual(parse_model_listing(output), ["opt", "mistral"])

    @patch('openllm_provisioner.tool.warn')
    def test_text_fallback(self, mock_warn) -> None:
        output = '[ "opt", "org/llama",\n  "mistral" '
        self.assertEqual(parse_model_listing(output), ["opt", "org/llama", "mistral"])
        mock_warn.assert_called_once()

    def test_empty_output(self) -> None:
        self.assertEqual(parse_model_listing("  \n"), [])


class TestOpenLLMTool(unittest.TestCase):

    def setUp(self) -> None:
        self.runner = FakeRunner()
        account = ServiceAccount(self.runner, "openllm", {"OPENLLM_HOME": "/opt/models"})
        self.tool = OpenLLMTool(account, Path("/opt/models/.venv"))

    def test_list_runs_as_service_account(self) -> None:
        self.runner.responses[("models", "--show-available")] = (0, '["opt"]', "")

        self.assertEqual(self.tool.list_available_models(), ["opt"])
        self.assertEqual(self.runner.calls[0], [
            "sudo", "-u", "openllm", "-H", "env", "OPENLLM_HOME=/opt/models",
            "/opt/models/.venv/bin/openllm", "models", "--show-available",
            "--quiet", "--output", "json",
        ])

    @patch('openllm_provisioner.tool.warn')
    def test_list_fails_soft(self, mock_warn) -> None:
        self.runner.responses[("models",)] = (1, "", "network unreachable")
        self.assertEqual(self.tool.list_available_models(), [])
        mock_warn.assert_called_once()

    def test_import_model(self) -> None:
        self.assertTrue(self.tool.import_model("llama", "/models/llama.gguf", backend="ctransformers"))
        self.assertEqual(self.runner.calls[0][-6:], [
            "/opt/models/.venv/bin/openllm", "import", "llama", "/models/llama.gguf",
            "--backend", "ctransformers",
        ])
        self.runner.responses[("import",)] = (1, "", "boom")
        self.assertFalse(self.tool.import_model("other", "/models/other"))


if __name__ == '__main__':
    unittest.main()
