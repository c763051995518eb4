"""Tests for binbench.bench.hyperfine — the external timing utility."""

from __future__ import annotations

import json
import subprocess
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from pipeline_test_helpers import completed

from binbench.bench.hyperfine import hyperfine_command, parse_export, run_hyperfine
from binbench.stages import StageError

EXPORT = {
    "results": [
        {
            "command": "./target/release/ezno build example.js",
            "mean": 0.0123,
            "stddev": 0.0004,
            "median": 0.0122,
            "user": 0.0091,
            "system": 0.0030,
            "min": 0.0118,
            "max": 0.0135,
            "times": [0.0118, 0.0122, 0.0135],
            "exit_codes": [0, 0, 0],
        }
    ]
}


class TestHyperfineCommand(unittest.TestCase):
    def test_minimal(self) -> None:
        self.assertEqual(hyperfine_command("./a build x.js"), ["hyperfine", "./a build x.js"])

    def test_options(self) -> None:
        args = hyperfine_command(
            "./a build x.js", export_json=Path("/tmp/o.json"), warmup=3, runs=20
        )
        self.assertEqual(
            args,
            [
                "hyperfine",
                "--warmup",
                "3",
                "--runs",
                "20",
                "--export-json",
                "/tmp/o.json",
                "./a build x.js",
            ],
        )

    def test_zero_warmup_is_passed(self) -> None:
        self.assertIn("--warmup", hyperfine_command("x", warmup=0))


class TestParseExport(unittest.TestCase):
    def test_parses_first_result(self) -> None:
        summary = parse_export(EXPORT)
        self.assertEqual(summary.command, "./target/release/ezno build example.js")
        self.assertAlmostEqual(summary.mean, 0.0123)
        self.assertAlmostEqual(summary.stddev, 0.0004)
        self.assertEqual(summary.runs, 3)
        self.assertEqual(summary.tool, "hyperfine")

    def test_null_stddev(self) -> None:
        data = json.loads(json.dumps(EXPORT))
        data["results"][0]["stddev"] = None
        self.assertEqual(parse_export(data).stddev, 0.0)

    def test_no_results(self) -> None:
        with self.assertRaises(ValueError):
            parse_export({"results": []})


class TestRunHyperfine(unittest.TestCase):
    @patch("binbench.bench.hyperfine.run_command")
    def test_success(self, mock_run: MagicMock) -> None:
        def fake(args: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
            export = Path(args[args.index("--export-json") + 1])
            export.write_text(json.dumps(EXPORT))
            return completed(0, "Benchmark 1: ./target/release/ezno build example.js\n")

        mock_run.side_effect = fake
        summary, output = run_hyperfine(
            "./target/release/ezno build example.js", cwd=Path("."), env={}
        )
        self.assertIsNotNone(summary)
        self.assertIn("Benchmark 1", output)
        export = Path(mock_run.call_args[0][0][2])
        self.assertFalse(export.exists())

    @patch("binbench.bench.hyperfine.run_command")
    def test_unparseable_export(self, mock_run: MagicMock) -> None:
        mock_run.return_value = completed(0, "Benchmark 1: x\n")
        summary, output = run_hyperfine("x", cwd=Path("."), env={})
        self.assertIsNone(summary)
        self.assertEqual(output, "Benchmark 1: x\n")

    @patch("binbench.bench.hyperfine.run_command")
    def test_failing_command(self, mock_run: MagicMock) -> None:
        mock_run.return_value = completed(
            1, "", "Error: Command terminated with non-zero exit code: 2."
        )
        with self.assertRaises(StageError) as ctx:
            run_hyperfine("x", cwd=Path("."), env={})
        self.assertEqual(ctx.exception.kind, "measure")
        self.assertIn("non-zero exit code", ctx.exception.output)

    @patch("binbench.bench.hyperfine.run_command", side_effect=FileNotFoundError("hyperfine"))
    def test_not_installed(self, mock_run: MagicMock) -> None:
        with self.assertRaises(StageError) as ctx:
            run_hyperfine("x", cwd=Path("."), env={})
        self.assertIn("not found", ctx.exception.message)


if __name__ == "__main__":
    unittest.main()
