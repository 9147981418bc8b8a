"""
Tests for result scoring and the evaluation harness helpers.
"""
import pytest

from ai.backend import BackendUnavailableError, ScoringError
from evaluate import format_score, parse_args, run_evaluation, wait_for_result
from rxparse.config import get_settings
from rxparse.jobs import JobStatus
from rxparse.pipelines.scoring import score_result
from rxparse.service import ParserService


class TestScoreResult:
    """Tests for score_result."""

    @pytest.mark.asyncio
    async def test_delegates_to_backend(self, fake_backend, score_object):
        score = await score_result(fake_backend, '{"a": 1}', '{"a": 2}')

        assert score == score_object
        assert fake_backend.score_calls == [('{"a": 1}', '{"a": 2}')]

    @pytest.mark.asyncio
    async def test_errors_are_raised_without_retry(self, fake_backend):
        fake_backend.score_error = ScoringError("failed to score result: 500")

        with pytest.raises(ScoringError):
            await score_result(fake_backend, "{}", "{}")
        assert len(fake_backend.score_calls) == 1

    @pytest.mark.asyncio
    async def test_no_backend(self):
        with pytest.raises(BackendUnavailableError):
            await score_result(None, "{}", "{}")


class TestEvaluationHarness:
    """Tests for the evaluate.py helpers."""

    def test_parse_args_defaults(self):
        args = parse_args(["--pdf", "rx.pdf", "--json", "rx.json"])

        assert args.iterations == 1
        assert args.timeout == 120.0
        assert args.poll_interval == 5.0

    def test_parse_args_rejects_zero_iterations(self):
        with pytest.raises(SystemExit):
            parse_args(["--pdf", "rx.pdf", "--json", "rx.json", "--iterations", "0"])

    def test_format_score(self, score_object):
        text = format_score("rx.pdf", "job-1", score_object)

        assert "Filename: rx.pdf - Job ID: job-1" in text
        assert "Score: 50.00% - (1.00 / 2)" in text
        assert "Refills were misread." in text

    @pytest.mark.asyncio
    async def test_wait_for_result_times_out(self, registry):
        job_id = registry.create_job("t", "r")

        job = await wait_for_result(registry, job_id, timeout=0.05, poll_interval=0.01)

        assert job.status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_wait_for_result_unknown_job(self, registry):
        assert await wait_for_result(registry, "missing", timeout=0.05, poll_interval=0.01) is None

    @pytest.mark.asyncio
    async def test_run_evaluation_scores_each_job(
        self, tmp_path, registry, fake_backend, fake_store, orchestrator, second_pass_rx, capsys,
    ):
        pdf = tmp_path / "rx.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        service = ParserService(
            settings=get_settings(),
            registry=registry,
            backend=fake_backend,
            store=fake_store,
            orchestrator=orchestrator,
        )

        scores = await run_evaluation(
            service, pdf, second_pass_rx.canonical_json(), iterations=3, timeout=2.0, poll_interval=0.01,
        )

        assert len(scores) == 3
        assert len(fake_backend.score_calls) == 3
        expected, output = fake_backend.score_calls[0]
        assert expected == second_pass_rx.canonical_json()
        assert output == second_pass_rx.canonical_json()
        assert capsys.readouterr().out.count("Score: 50.00%") == 3

    @pytest.mark.asyncio
    async def test_run_evaluation_skips_failed_jobs(self, tmp_path, registry, fake_backend, fake_store, orchestrator):
        pdf = tmp_path / "rx.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        fake_backend.upload_error = RuntimeError("offline")
        service = ParserService(get_settings(), registry, fake_backend, fake_store, orchestrator)

        scores = await run_evaluation(service, pdf, "{}", iterations=2, timeout=2.0, poll_interval=0.01)

        assert scores == []
        assert fake_backend.score_calls == []
